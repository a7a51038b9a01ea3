"""Workload harness: storage adapter seam, operation mix, load phase and workers."""

from __future__ import annotations

import enum
import json
import logging
import math
import random
import threading
import time
from collections import Counter
from dataclasses import dataclass
from pathlib import Path
from typing import IO, Any, Dict, List, Mapping, Optional, Sequence, Tuple, Union

from .config import GEO_BOX, GEO_INSERT, GEO_INTERSECT, GEO_NEAR, GEO_SCAN, GEO_UPDATE, GeneratorConfig
from .counters import CounterStore
from .errors import DocumentParseError, GeoLoadError, SlotNotFoundError
from .generator import RecordGenerator
from .predicate import Predicate
from .schema import GeoSchema

DEFAULT_TABLE = "usertable"
FAILED_SUFFIX = "_FAILED"


class Status(enum.Enum):
    OK = "OK"
    ERROR = "ERROR"
    NOT_FOUND = "NOT_FOUND"
    NOT_IMPLEMENTED = "NOT_IMPLEMENTED"

    @property
    def is_ok(self) -> bool:
        return self is Status.OK


class GeoStore:
    """Storage adapter seam. Subclasses override the operations they support."""

    def _unsupported(self, operation: str) -> Status:
        logging.debug("%s does not implement %s", type(self).__name__, operation)
        return Status.NOT_IMPLEMENTED

    def geo_insert(self, table: str, predicate: Predicate) -> Status:
        return self._unsupported(GEO_INSERT)

    def geo_update(self, table: str, predicate: Predicate) -> Status:
        return self._unsupported(GEO_UPDATE)

    def geo_near(self, table: str, predicate: Predicate) -> Status:
        return self._unsupported(GEO_NEAR)

    def geo_box(self, table: str, predicate: Predicate) -> Status:
        return self._unsupported(GEO_BOX)

    def geo_intersect(self, table: str, predicate: Predicate) -> Status:
        return self._unsupported(GEO_INTERSECT)

    def geo_scan(self, table: str, start_key: str, limit: int, offset: int) -> Status:
        return self._unsupported(GEO_SCAN)

    def close(self) -> None:
        pass


class JsonlGeoStore(GeoStore):
    """Writes every operation as one JSON line, for replay by an external driver."""

    def __init__(self, target: Union[str, Path, IO[str]]) -> None:
        self._lock = threading.Lock()
        if isinstance(target, (str, Path)):
            path = Path(target).expanduser()
            path.parent.mkdir(parents=True, exist_ok=True)
            self._stream: IO[str] = path.open("a", encoding="utf-8")
            self._owns_stream = True
            self.path: Optional[Path] = path
        else:
            self._stream = target
            self._owns_stream = False
            self.path = None
        self.records = 0

    def _write(self, record: Dict[str, Any]) -> Status:
        line = json.dumps(record, separators=(",", ":"))
        with self._lock:
            try:
                self._stream.write(line + "\n")
            except OSError as exc:
                logging.warning("Trace write failed for %s: %s", record.get("op"), exc)
                return Status.ERROR
            self.records += 1
        return Status.OK

    def _predicate_record(self, operation: str, table: str, predicate: Predicate) -> Status:
        return self._write({"op": operation, "table": table, "predicate": predicate.to_dict()})

    def geo_insert(self, table: str, predicate: Predicate) -> Status:
        return self._predicate_record(GEO_INSERT, table, predicate)

    def geo_update(self, table: str, predicate: Predicate) -> Status:
        return self._predicate_record(GEO_UPDATE, table, predicate)

    def geo_near(self, table: str, predicate: Predicate) -> Status:
        return self._predicate_record(GEO_NEAR, table, predicate)

    def geo_box(self, table: str, predicate: Predicate) -> Status:
        return self._predicate_record(GEO_BOX, table, predicate)

    def geo_intersect(self, table: str, predicate: Predicate) -> Status:
        return self._predicate_record(GEO_INTERSECT, table, predicate)

    def geo_scan(self, table: str, start_key: str, limit: int, offset: int) -> Status:
        return self._write(
            {"op": GEO_SCAN, "table": table, "startKey": start_key, "limit": limit, "offset": offset}
        )

    def close(self) -> None:
        with self._lock:
            self._stream.flush()
            if self._owns_stream:
                self._stream.close()


class OperationChooser:
    def __init__(self, proportions: Mapping[str, float], rng: Optional[random.Random] = None) -> None:
        weighted = [(name, float(weight)) for name, weight in proportions.items() if weight > 0]
        if not weighted:
            raise ValueError("no operation has a positive proportion")
        self.operations = [name for name, _ in weighted]
        self.weights = [weight for _, weight in weighted]
        self.rng = rng or random.Random()

    def next(self) -> str:
        return self.rng.choices(self.operations, weights=self.weights, k=1)[0]


class WorkloadRunner:
    """Turns one chosen operation into a compiled predicate and an adapter call."""

    def __init__(self, chooser: OperationChooser, table: str = DEFAULT_TABLE) -> None:
        self.chooser = chooser
        self.table = table

    def dispatch(self, operation: str, generator: RecordGenerator, store: GeoStore) -> Status:
        if operation == GEO_INSERT:
            return store.geo_insert(self.table, generator.compile_insert_predicate())
        if operation == GEO_UPDATE:
            return store.geo_update(self.table, generator.compile_update_predicate())
        if operation == GEO_NEAR:
            return store.geo_near(self.table, generator.compile_read_predicate())
        if operation == GEO_BOX:
            return store.geo_box(self.table, generator.compile_read_predicate())
        if operation == GEO_INTERSECT:
            return store.geo_intersect(self.table, generator.compile_read_predicate())
        if operation == GEO_SCAN:
            return store.geo_scan(
                self.table,
                generator.doc_id_with_distribution(),
                generator.random_limit(),
                generator.random_offset(),
            )
        raise ValueError(f"unknown operation {operation!r}")

    def do_transaction(self, generator, store) -> Tuple[str, Status]:
        operation = self.chooser.next()
        try:
            status = self.dispatch(operation, generator, store)
        except SlotNotFoundError as exc:
            logging.warning("%s found no stored document: %s", operation, exc)
            return operation, Status.NOT_FOUND
        except GeoLoadError as exc:
            logging.warning("%s failed: %s", operation, exc)
            return operation, Status.ERROR
        return operation, status


def load_corpus(path: Union[str, Path]) -> List[Dict[str, Any]]:
    """Read documents from a GeoJSON FeatureCollection, a JSON array or a JSON-lines file."""

    corpus_path = Path(path).expanduser()
    text = corpus_path.read_text(encoding="utf-8")
    try:
        data = json.loads(text)
    except json.JSONDecodeError:
        documents: List[Dict[str, Any]] = []
        for lineno, line in enumerate(text.splitlines(), start=1):
            if not line.strip():
                continue
            try:
                doc = json.loads(line)
            except json.JSONDecodeError as exc:
                raise DocumentParseError(f"{corpus_path}:{lineno}: invalid JSON: {exc}") from exc
            if not isinstance(doc, dict):
                raise DocumentParseError(f"{corpus_path}:{lineno}: expected an object")
            documents.append(doc)
        return documents

    if isinstance(data, dict) and data.get("type") == "FeatureCollection":
        data = data.get("features") or []
    elif isinstance(data, dict):
        data = [data]
    if not isinstance(data, list):
        raise DocumentParseError(f"{corpus_path}: expected a FeatureCollection, array or JSON lines")
    for index, doc in enumerate(data):
        if not isinstance(doc, dict):
            raise DocumentParseError(f"{corpus_path}: entry {index} is not an object")
    return data


def extra_inserts(record_count: int, total_docs: int) -> int:
    """Extra inserts written per ingested document so the load reaches ``record_count``."""
    if total_docs <= 0:
        return 0
    return max(0, int(math.floor(record_count / total_docs + 0.5)) - 1)


@dataclass
class LoadResult:
    ingested: int = 0
    inserted: int = 0
    failed: int = 0


def load_phase(
    generator: RecordGenerator,
    store: GeoStore,
    documents: Sequence[Mapping[str, Any]],
    record_count: Optional[int] = None,
    total_docs: Optional[int] = None,
    table: str = DEFAULT_TABLE,
) -> LoadResult:
    """Ingest ``documents`` and write the matching bulk of inserts through ``store``."""

    config = generator.config
    record_count = config.record_count if record_count is None else record_count
    total_docs = config.total_record_count if total_docs is None else total_docs
    per_doc = extra_inserts(record_count, total_docs)
    result = LoadResult()
    for doc in documents:
        key = generator.doc_id_random()
        generator.ingest_document(key, doc)
        result.ingested += 1
        for _ in range(per_doc):
            try:
                status = store.geo_insert(table, generator.compile_insert_predicate())
            except GeoLoadError as exc:
                logging.warning("%s failed during load: %s", GEO_INSERT, exc)
                status = Status.ERROR
            if status.is_ok:
                result.inserted += 1
            else:
                result.failed += 1
    logging.debug(
        "Load phase ingested=%d inserted=%d failed=%d", result.ingested, result.inserted, result.failed
    )
    return result


def worker_rng(seed: Optional[int], worker_id: int) -> random.Random:
    if seed is None:
        return random.Random(time.time() + worker_id)
    return random.Random(seed + worker_id)


def run_worker(
    worker_id: int,
    operations: int,
    counter_store: CounterStore,
    geo_store: GeoStore,
    config: GeneratorConfig,
    schema: GeoSchema,
    table: str,
    stop_event: threading.Event,
    error_sink: List[Tuple[int, Exception]],
    error_lock: threading.Lock,
    coverage_counts: Dict[str, int],
    coverage_lock: threading.Lock,
    deadline: Optional[float],
) -> None:
    rng = worker_rng(config.seed, worker_id)
    generator = RecordGenerator(counter_store, config, schema, rng=rng)
    runner = WorkloadRunner(OperationChooser(config.proportions, rng), table)
    local_counts: Counter[str] = Counter()
    max_operations = operations if operations > 0 else None
    done = 0
    try:
        while not stop_event.is_set():
            if deadline and time.time() >= deadline:
                break
            if max_operations is not None and done >= max_operations:
                break
            done += 1
            operation, status = runner.do_transaction(generator, geo_store)
            if status.is_ok:
                local_counts[operation] += 1
            else:
                local_counts[operation + FAILED_SUFFIX] += 1
            logging.debug("[W%02d][%05d] %s %s", worker_id, done, operation, status.value)
    except Exception as exc:
        with error_lock:
            error_sink.append((worker_id, exc))
        stop_event.set()
        logging.exception("Worker %02d aborted", worker_id)
    finally:
        with coverage_lock:
            for name, value in local_counts.items():
                coverage_counts[name] = coverage_counts.get(name, 0) + value
        counter_store.close()
