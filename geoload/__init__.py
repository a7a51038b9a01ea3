"""Synthetic geospatial workload generator for database benchmarks."""

from .config import GeneratorConfig
from .counters import CounterStore, DBConfig, MemoryCounterStore, MySQLCounterStore, seed_counters
from .distribution import DistributionSampler, QueryWindow, ZipfianGenerator
from .errors import CounterMissingError, DocumentParseError, GeoLoadError, SlotNotFoundError, StoreError
from .generator import RecordGenerator
from .predicate import Predicate
from .schema import INCIDENTS_SCHEMA, GeoSchema, get_schema, schema_from_dict

__all__ = [
    "CounterMissingError",
    "CounterStore",
    "DBConfig",
    "DistributionSampler",
    "DocumentParseError",
    "GeneratorConfig",
    "GeoLoadError",
    "GeoSchema",
    "INCIDENTS_SCHEMA",
    "MemoryCounterStore",
    "MySQLCounterStore",
    "Predicate",
    "QueryWindow",
    "RecordGenerator",
    "SlotNotFoundError",
    "StoreError",
    "ZipfianGenerator",
    "get_schema",
    "schema_from_dict",
    "seed_counters",
]

__version__ = "0.1.0"
