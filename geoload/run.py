#!/usr/bin/env python3
"""Geo workload harness: load a GeoJSON corpus into the counter store, then replay
a weighted mix of geo operations from concurrent worker threads."""

from __future__ import annotations

import argparse
import logging
import sys
import threading
import time
from datetime import datetime
from pathlib import Path
from typing import Dict, List, Optional, Sequence, Tuple

from .config import OPERATION_PROPERTIES, GeneratorConfig, apply_overrides, load_json_config, parse_property
from .counters import (
    DEFAULT_COUNTER_TABLE,
    CounterStore,
    DBConfig,
    MemoryCounterStore,
    MySQLCounterStore,
    seed_counters,
)
from .errors import GeoLoadError, StoreError
from .generator import RecordGenerator
from .schema import GeoSchema, get_schema, register_schema, schema_from_dict
from .workload import (
    DEFAULT_TABLE,
    FAILED_SUFFIX,
    GeoStore,
    JsonlGeoStore,
    load_corpus,
    load_phase,
    run_worker,
    worker_rng,
)

STORE_BACKENDS = ("memory", "mysql")


def parse_args(argv: Optional[Sequence[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description=__doc__)
    parser.add_argument("--load", action="store_true", help="Ingest the corpus into the counter store.")
    parser.add_argument("--run", action="store_true", help="Run the transaction phase.")
    parser.add_argument("--config", help="Path to the JSON config (default: config/geo_config.json).")
    parser.add_argument(
        "--allow-env-overrides",
        action="store_true",
        help="Let GEO_* / COUNTER_* environment variables override the config file.",
    )
    parser.add_argument("--store", choices=STORE_BACKENDS, help="Counter store backend.")
    parser.add_argument("--store-host")
    parser.add_argument("--store-port", type=int)
    parser.add_argument("--store-user")
    parser.add_argument("--store-password")
    parser.add_argument("--store-socket")
    parser.add_argument("--store-database")
    parser.add_argument("--store-table", help=f"Counter table name (default: {DEFAULT_COUNTER_TABLE}).")
    parser.add_argument("--corpus", help="GeoJSON FeatureCollection or JSON-lines file to ingest.")
    parser.add_argument("--output", help="JSON-lines trace file receiving every compiled operation.")
    parser.add_argument("--table", default=DEFAULT_TABLE, help="Table/collection name passed to the adapter.")
    parser.add_argument("--workers", type=int, help="Number of concurrent worker threads.")
    parser.add_argument("--operations", type=int, help="Operations per worker (0 means no limit).")
    parser.add_argument("--duration", type=float, help="Stop workers after this many seconds.")
    parser.add_argument("--distribution", choices=("uniform", "zipfian", "latest"))
    parser.add_argument("--seed", type=int, help="Seed for reproducible runs.")
    parser.add_argument(
        "-p",
        "--property",
        dest="properties",
        action="append",
        type=parse_property,
        metavar="KEY=VALUE",
        help="Workload property override (repeatable).",
    )
    parser.add_argument("--log-level", default="INFO", choices=["DEBUG", "INFO", "WARNING", "ERROR"])
    parser.add_argument("--log-file", help="Log file path (default: logs/geoload_<timestamp>.log).")
    args = parser.parse_args(argv)
    if not (args.load or args.run):
        parser.error("at least one of --load or --run is required")
    return args


def configure_logging(args: argparse.Namespace) -> Path:
    log_level = getattr(logging, args.log_level.upper(), logging.INFO)
    handlers: List[logging.Handler] = [logging.StreamHandler(sys.stdout)]

    if args.log_file:
        log_path = Path(args.log_file).expanduser()
    else:
        timestamp = datetime.now().strftime("%Y%m%d_%H%M%S")
        phases = "_".join(name for name in ("load", "run") if getattr(args, name))
        log_path = Path("logs") / f"geoload_{timestamp}_{phases}.log"

    log_path.parent.mkdir(parents=True, exist_ok=True)
    handlers.append(logging.FileHandler(log_path))

    logging.basicConfig(
        level=log_level,
        format="%(asctime)s %(levelname)s %(message)s",
        handlers=handlers,
        force=True,
    )
    return log_path


def ensure_effective_args(args: argparse.Namespace) -> None:
    if args.store not in STORE_BACKENDS:
        raise SystemExit(f"Unknown counter store backend: {args.store}")
    if args.store == "mysql" and not args.store_database:
        raise SystemExit("The mysql counter store requires a database (--store-database).")
    if args.load and not args.corpus:
        raise SystemExit("--load requires a corpus (--corpus or load.corpus in the config).")
    if not args.output:
        raise SystemExit("An output trace is required (--output or run.output in the config).")
    if args.workers is None or args.workers < 1:
        raise SystemExit(f"workers must be >= 1 (got {args.workers})")
    if args.operations is None or args.operations < 0:
        raise SystemExit(f"operations must be >= 0 (got {args.operations})")
    if args.duration is not None and args.duration < 0:
        raise SystemExit(f"duration must be >= 0 (got {args.duration})")


def resolve_schema(args: argparse.Namespace, config: GeneratorConfig) -> GeoSchema:
    if args.schema_block:
        schema = schema_from_dict(args.schema_block)
        register_schema(schema)
        if config.schema_name is None:
            return schema
    return get_schema(config.schema_name)


def build_counter_store(args: argparse.Namespace) -> CounterStore:
    if args.store == "memory":
        return MemoryCounterStore()
    cfg = DBConfig(
        host=args.store_host,
        port=int(args.store_port),
        user=args.store_user,
        password=args.store_password,
        socket=args.store_socket,
        db=args.store_database,
    )
    store = MySQLCounterStore(cfg, args.store_table or DEFAULT_COUNTER_TABLE)
    store.ensure_table()
    return store


def run_loader(
    worker_id: int,
    documents: Sequence[Dict[str, object]],
    counter_store: CounterStore,
    geo_store: GeoStore,
    config: GeneratorConfig,
    schema: GeoSchema,
    table: str,
    error_sink: List[Tuple[int, Exception]],
    error_lock: threading.Lock,
    totals: Dict[str, int],
    totals_lock: threading.Lock,
) -> None:
    generator = RecordGenerator(counter_store, config, schema, rng=worker_rng(config.seed, worker_id))
    try:
        result = load_phase(generator, geo_store, documents, table=table)
        with totals_lock:
            totals["ingested"] += result.ingested
            totals["inserted"] += result.inserted
            totals["failed"] += result.failed
        logging.info(
            "Loader %02d ingested %d document(s), %d insert(s), %d failed",
            worker_id,
            result.ingested,
            result.inserted,
            result.failed,
        )
    except Exception as exc:
        with error_lock:
            error_sink.append((worker_id, exc))
        logging.exception("Loader %02d aborted", worker_id)
    finally:
        counter_store.close()


def start_threads(target, arg_sets: List[Tuple[object, ...]], prefix: str) -> None:
    threads: List[threading.Thread] = []
    for worker_id, thread_args in enumerate(arg_sets, start=1):
        thread = threading.Thread(target=target, args=thread_args, name=f"{prefix}-{worker_id:02d}")
        threads.append(thread)
        thread.start()
    for thread in threads:
        thread.join()


def load(
    args: argparse.Namespace,
    counter_store: CounterStore,
    geo_store: GeoStore,
    config: GeneratorConfig,
    schema: GeoSchema,
) -> int:
    documents = load_corpus(args.corpus)
    if not documents:
        logging.error("Corpus %s holds no documents", args.corpus)
        return 1
    workers = min(args.workers, len(documents))
    logging.info("Loading %d document(s) from %s with %d loader(s)", len(documents), args.corpus, workers)

    error_sink: List[Tuple[int, Exception]] = []
    error_lock = threading.Lock()
    totals = {"ingested": 0, "inserted": 0, "failed": 0}
    totals_lock = threading.Lock()
    start_time = time.time()
    start_threads(
        run_loader,
        [
            (
                worker_id,
                documents[worker_id - 1 :: workers],
                counter_store,
                geo_store,
                config,
                schema,
                args.table,
                error_sink,
                error_lock,
                totals,
                totals_lock,
            )
            for worker_id in range(1, workers + 1)
        ],
        "loader",
    )
    logging.info(
        "Load finished in %.1fs: ingested=%d inserted=%d failed=%d",
        time.time() - start_time,
        totals["ingested"],
        totals["inserted"],
        totals["failed"],
    )
    if error_sink:
        worker_id, exc = error_sink[0]
        logging.error("Loader %02d encountered an error: %s", worker_id, exc)
        return 1
    return 0


def transact(
    args: argparse.Namespace,
    counter_store: CounterStore,
    geo_store: GeoStore,
    config: GeneratorConfig,
    schema: GeoSchema,
) -> int:
    if not config.proportions:
        names = ", ".join(prop for prop, _ in OPERATION_PROPERTIES)
        logging.error("No operation has a positive proportion; set one of: %s", names)
        return 1

    stop_event = threading.Event()
    error_sink: List[Tuple[int, Exception]] = []
    error_lock = threading.Lock()
    coverage_lock = threading.Lock()
    coverage_counts: Dict[str, int] = {name: 0 for name in config.proportions}
    deadline = time.time() + args.duration if args.duration else None
    operation_label = "unlimited" if args.operations == 0 else str(args.operations)
    logging.info(
        "Launching %d worker(s) x %s operation(s), distribution=%s",
        args.workers,
        operation_label,
        config.distribution,
    )
    if args.operations == 0 and deadline is None:
        logging.warning("Neither operations nor duration bound the run; stop it with Ctrl-C")

    start_time = time.time()
    try:
        start_threads(
            run_worker,
            [
                (
                    worker_id,
                    args.operations,
                    counter_store,
                    geo_store,
                    config,
                    schema,
                    args.table,
                    stop_event,
                    error_sink,
                    error_lock,
                    coverage_counts,
                    coverage_lock,
                    deadline,
                )
                for worker_id in range(1, args.workers + 1)
            ],
            "worker",
        )
    except KeyboardInterrupt:
        stop_event.set()
        logging.warning("Termination requested; workload ended early")
        return 1

    logging.info("Elapsed %.1fs", time.time() - start_time)
    logging.info("Workload coverage summary:")
    for name in sorted(coverage_counts):
        logging.info("  %s: %d", name, coverage_counts[name])

    if error_sink:
        worker_id, exc = error_sink[0]
        logging.error("Worker %02d encountered an error: %s", worker_id, exc)
        return 1
    failed = sum(value for name, value in coverage_counts.items() if name.endswith(FAILED_SUFFIX))
    if failed:
        logging.warning("%d operation(s) failed", failed)
    return 0


def main(argv: Optional[Sequence[str]] = None) -> int:
    args = parse_args(argv)
    log_path = configure_logging(args)
    logging.info("Logging to %s", log_path)

    config_path, raw_config = load_json_config(args.config)
    env_overrides, ignored_env = apply_overrides(args, raw_config, config_path)
    if env_overrides:
        logging.info("Environment overrides applied: %s", ", ".join(env_overrides))
    if ignored_env:
        logging.warning(
            "Ignoring environment overrides (pass --allow-env-overrides to apply): %s",
            ", ".join(ignored_env),
        )
    ensure_effective_args(args)

    try:
        config = GeneratorConfig.from_properties(args.workload_properties)
        schema = resolve_schema(args, config)
    except ValueError as exc:
        logging.error("Invalid configuration in %s: %s", config_path, exc)
        return 1
    logging.info(
        "Config %s: schema=%s store=%s total_docs=%d record_count=%d",
        config_path,
        schema.name,
        args.store,
        config.total_record_count,
        config.record_count,
    )

    try:
        counter_store = build_counter_store(args)
        seed_counters(counter_store, schema, config.total_record_count, config.insert_start)
    except StoreError as exc:
        logging.error("Counter store unavailable: %s", exc)
        return 1

    geo_store = JsonlGeoStore(args.output)
    rc = 0
    try:
        if args.load:
            rc = load(args, counter_store, geo_store, config, schema)
        if args.run and rc == 0:
            rc = transact(args, counter_store, geo_store, config, schema)
    except (GeoLoadError, OSError) as exc:
        logging.error("Aborted: %s", exc)
        rc = 1
    finally:
        geo_store.close()
        counter_store.close()
    logging.info("Trace: %d record(s) written to %s", geo_store.records, geo_store.path)
    return rc


if __name__ == "__main__":
    sys.exit(main())
