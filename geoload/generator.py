"""Per-worker record generator: ingests documents and compiles query predicates.

One :class:`RecordGenerator` belongs to one worker thread. Instances share
nothing but the :class:`~geoload.counters.CounterStore`, whose atomic
``increment`` keeps slot and insert-sequence claims collision free across
threads.
"""

from __future__ import annotations

import json
import logging
import random
from typing import Any, Dict, Mapping, Optional, Set, Union

from .config import GeneratorConfig
from .counters import CounterStore
from .distribution import DistributionSampler
from .errors import CounterMissingError, SlotNotFoundError, StoreError
from .geometry import geometry_predicate, synth_multilinestring, synth_point, synth_polygon
from .predicate import Predicate
from .schema import GeoSchema, get_schema
from .tokenizer import backfill_leading, store_tokens, tokenize


class RecordGenerator:
    def __init__(
        self,
        store: CounterStore,
        config: Optional[GeneratorConfig] = None,
        schema: Optional[GeoSchema] = None,
        rng: Optional[random.Random] = None,
    ) -> None:
        self.store = store
        self.config = config or GeneratorConfig()
        self.schema = schema or get_schema(self.config.schema_name)
        if rng is None:
            rng = random.Random(self.config.seed) if self.config.seed is not None else random.Random()
        self.rng = rng
        self.window = self.config.window
        self.sampler = DistributionSampler(self.config.distribution, self.window, self.rng)
        self.all_values_initialized = False
        self._total_docs_count = 0
        self._stored_docs_count = 0

    def _read_count(self, counter: str) -> int:
        key = self.schema.counter_key(counter)
        raw = self.store.get(key)
        if raw is None:
            raise CounterMissingError(key)
        try:
            return int(raw)
        except ValueError as exc:
            raise StoreError(f"counter {key!r} holds non-integer value {raw!r}") from exc

    @property
    def total_docs_count(self) -> int:
        # memoized once positive; never refreshed afterwards
        if self._total_docs_count == 0:
            self._total_docs_count = self._read_count(self.schema.total_count_counter)
        return self._total_docs_count

    @property
    def stored_docs_count(self) -> int:
        # same memoization: documents ingested after the first positive read stay invisible here
        if self._stored_docs_count == 0:
            self._stored_docs_count = self._read_count(self.schema.stored_count_counter)
        return self._stored_docs_count

    def ingest_document(self, key: str, body: Union[str, Mapping[str, Any]]) -> int:
        """Store ``body`` in the next free slot and return that slot."""

        if not isinstance(body, str):
            body = json.dumps(body)
        tokens = tokenize(body, self.schema)
        slot = self.store.increment(self.schema.counter_key(self.schema.stored_count_counter), 1) - 1
        self.store.set(self.schema.doc_id_key(slot), str(key))
        self.store.set(self.schema.body_key(slot), body)
        store_tokens(self.store, self.schema, slot, tokens)

        if not self.all_values_initialized and slot > 1:
            self.all_values_initialized = backfill_leading(self.store, self.schema, slot)
            if self.all_values_initialized:
                logging.debug("All fields initialized after slot %d", slot)
        logging.debug("Ingested %s into slot %d", key, slot)
        return slot

    def _load_body(self, slot: int) -> str:
        key = self.schema.body_key(slot)
        body = self.store.get(key)
        if body is None:
            raise SlotNotFoundError(slot, key)
        return body

    def _next_doc_id(self) -> str:
        sequence = self.store.increment(self.schema.counter_key(self.schema.insert_counter), 1)
        return self.schema.generated_doc_id(sequence)

    def _stored_geometry(self, body: str, slot: int) -> Optional[Dict[str, Any]]:
        try:
            doc = json.loads(body)
        except ValueError as exc:
            logging.warning("Stored document in slot %d is not valid JSON: %s", slot, exc)
            return None
        geometry = doc.get(self.schema.geometry_field) if isinstance(doc, dict) else None
        if not isinstance(geometry, dict):
            logging.warning("Stored document in slot %d has no %s object", slot, self.schema.geometry_field)
            return None
        return geometry

    def compile_insert_predicate(self) -> Predicate:
        slot = self.sampler.uniform(self.stored_docs_count)
        body = self._load_body(slot)
        return Predicate(doc_id=self._next_doc_id(), raw_value=body)

    def compile_update_predicate(self) -> Predicate:
        predicate = self.compile_insert_predicate()
        predicate.attach("A", geometry_predicate(self.schema.geometry_field, synth_point(self.rng)))
        return predicate

    def compile_read_predicate(self, with_polygon: Optional[bool] = None) -> Predicate:
        """Predicate for near/box/intersect queries around a distribution-sampled document.

        Child A carries the sampled document's own geometry, B a jittered
        point, C a jittered multi-line string and D (unless disabled) a
        jittered polygon. Each synthetic child is preceded by one discarded
        insert compilation, which advances the insert sequence.
        """

        if with_polygon is None:
            with_polygon = self.config.read_polygon
        name = self.schema.geometry_field

        slot = self.distributed_index()
        body = self._load_body(slot)
        root = Predicate(doc_id=self._next_doc_id(), raw_value=body)
        root.attach("A", geometry_predicate(name, self._stored_geometry(body, slot)))

        self.compile_insert_predicate()
        root.attach("B", geometry_predicate(name, synth_point(self.rng)))

        self.compile_insert_predicate()
        root.attach("C", geometry_predicate(name, synth_multilinestring(self.rng)))

        if with_polygon:
            self.compile_insert_predicate()
            root.attach("D", geometry_predicate(name, synth_polygon(self.rng)))
        return root

    def random_index(self) -> int:
        return self.sampler.uniform(self.total_docs_count)

    def distributed_index(self) -> int:
        return self.sampler.sample(self.total_docs_count, self.stored_docs_count)

    def doc_id_random(self) -> str:
        return str(self.random_index())

    def doc_id_with_distribution(self) -> str:
        return str(self.distributed_index())

    def random_limit(self) -> int:
        return self.window.random_limit(self.rng)

    def random_offset(self) -> int:
        return self.window.random_offset(self.rng)

    def projection_fields(self) -> Set[str]:
        return self.schema.projection_fields()
