"""Generator properties and the layered JSON/CLI/env configuration."""

from __future__ import annotations

import argparse
import json
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Callable, Dict, List, Mapping, Optional, Tuple

from .distribution import UNIFORM, QueryWindow, normalize_distribution

DEFAULT_CONFIG_PATH = Path(__file__).resolve().parent.parent / "config" / "geo_config.json"

TOTAL_DOCS_DEFAULT = 13348
RECORD_COUNT_DEFAULT = 1000000
QUERY_LIMIT_MIN_DEFAULT = 10
QUERY_LIMIT_MAX_DEFAULT = 100
QUERY_OFFSET_MIN_DEFAULT = 10
QUERY_OFFSET_MAX_DEFAULT = 100

GEO_INSERT = "GEO_INSERT"
GEO_UPDATE = "GEO_UPDATE"
GEO_NEAR = "GEO_NEAR"
GEO_BOX = "GEO_BOX"
GEO_INTERSECT = "GEO_INTERSECT"
GEO_SCAN = "GEO_SCAN"

# property name -> operation name, in chooser order
OPERATION_PROPERTIES: Tuple[Tuple[str, str], ...] = (
    ("geo_insert", GEO_INSERT),
    ("geo_update", GEO_UPDATE),
    ("geo_near", GEO_NEAR),
    ("geo_box", GEO_BOX),
    ("geo_intersect", GEO_INTERSECT),
    ("geo_scan", GEO_SCAN),
)

_TRUE = {"1", "true", "yes", "on"}
_FALSE = {"0", "false", "no", "off"}


def _int_prop(props: Mapping[str, object], name: str, default: int) -> int:
    raw = props.get(name)
    if raw is None or raw == "":
        return default
    try:
        return int(str(raw).strip())
    except ValueError:
        raise ValueError(f"property {name} must be an integer (got {raw!r})") from None


def _float_prop(props: Mapping[str, object], name: str, default: float) -> float:
    raw = props.get(name)
    if raw is None or raw == "":
        return default
    try:
        return float(str(raw).strip())
    except ValueError:
        raise ValueError(f"property {name} must be a number (got {raw!r})") from None


def _bool_prop(props: Mapping[str, object], name: str, default: bool) -> bool:
    raw = props.get(name)
    if raw is None or raw == "":
        return default
    if isinstance(raw, bool):
        return raw
    text = str(raw).strip().lower()
    if text in _TRUE:
        return True
    if text in _FALSE:
        return False
    raise ValueError(f"property {name} must be a boolean (got {raw!r})")


@dataclass
class GeneratorConfig:
    total_record_count: int = TOTAL_DOCS_DEFAULT
    record_count: int = RECORD_COUNT_DEFAULT
    insert_start: int = 0
    window: QueryWindow = field(default_factory=QueryWindow)
    distribution: str = UNIFORM
    read_polygon: bool = True
    schema_name: Optional[str] = None
    seed: Optional[int] = None
    proportions: Dict[str, float] = field(default_factory=dict)

    @classmethod
    def from_properties(cls, props: Mapping[str, object]) -> "GeneratorConfig":
        """Build a config from YCSB-style properties (string or JSON scalar values)."""

        window = QueryWindow(
            limit_min=_int_prop(props, "geo_querylimit_min", QUERY_LIMIT_MIN_DEFAULT),
            limit_max=_int_prop(props, "geo_querylimit_max", QUERY_LIMIT_MAX_DEFAULT),
            offset_min=_int_prop(props, "geo_offset_min", QUERY_OFFSET_MIN_DEFAULT),
            offset_max=_int_prop(props, "geo_offset_max", QUERY_OFFSET_MAX_DEFAULT),
        )
        seed_raw = props.get("geo_seed")
        proportions: Dict[str, float] = {}
        for prop, operation in OPERATION_PROPERTIES:
            weight = _float_prop(props, prop, 0.0)
            if weight < 0:
                raise ValueError(f"property {prop} must not be negative (got {weight})")
            if weight > 0:
                proportions[operation] = weight
        schema_name = props.get("geo_schema")
        return cls(
            total_record_count=_int_prop(props, "totalrecordcount", TOTAL_DOCS_DEFAULT),
            record_count=_int_prop(props, "recordcount", RECORD_COUNT_DEFAULT),
            insert_start=_int_prop(props, "insertstart", 0),
            window=window,
            distribution=normalize_distribution(
                str(props["geo_request_distribution"]) if props.get("geo_request_distribution") else None
            ),
            read_polygon=_bool_prop(props, "geo_read_polygon", True),
            schema_name=str(schema_name) if schema_name else None,
            seed=None if seed_raw in (None, "") else _int_prop(props, "geo_seed", 0),
            proportions=proportions,
        )


def parse_property(text: str) -> Tuple[str, str]:
    """argparse type for ``-p key=value``."""
    key, sep, value = text.partition("=")
    if not sep or not key.strip():
        raise argparse.ArgumentTypeError(f"expected key=value, got {text!r}")
    return key.strip(), value.strip()


def load_json_config(path: Optional[str]) -> Tuple[Path, Dict[str, object]]:
    config_path = Path(path).expanduser() if path else DEFAULT_CONFIG_PATH
    if not config_path.exists():
        raise SystemExit(f"Config file not found: {config_path}")
    try:
        data = json.loads(config_path.read_text(encoding="utf-8"))
    except json.JSONDecodeError as exc:
        raise SystemExit(f"Invalid JSON in {config_path}: {exc}") from exc
    if not isinstance(data, dict):
        raise SystemExit(f"Config {config_path} must hold a JSON object.")
    return config_path, data


def apply_overrides(
    args: argparse.Namespace, config: Dict[str, object], config_path: Optional[Path] = None
) -> Tuple[List[str], List[str]]:
    """Resolve every effective setting onto ``args``: CLI, then env (opt-in), then config.

    Returns the environment variables that were applied and those that were
    set but ignored because ``--allow-env-overrides`` was not given.
    """

    env_overrides: List[str] = []
    ignored_env: List[str] = []
    env_allowed = bool(getattr(args, "allow_env_overrides", False))

    def pick(
        cli_value: Optional[object],
        config_value: Optional[object],
        env_name: Optional[str] = None,
        cast: Optional[Callable[[str], object]] = None,
    ) -> Optional[object]:
        if cli_value is not None:
            return cli_value
        if env_name:
            env_val = os.getenv(env_name)
            if env_val not in (None, ""):
                if env_allowed:
                    env_overrides.append(env_name)
                    return cast(env_val) if cast else env_val
                ignored_env.append(env_name)
        return config_value

    store_cfg = config.get("counter_store", {}) or {}
    args.store = pick(args.store, store_cfg.get("backend", "memory"), "COUNTER_BACKEND")
    args.store_host = pick(args.store_host, store_cfg.get("host", "127.0.0.1"), "COUNTER_HOST")
    args.store_port = pick(args.store_port, store_cfg.get("port", 3306), "COUNTER_PORT", int)
    args.store_user = pick(args.store_user, store_cfg.get("user", "root"), "COUNTER_USER")
    args.store_password = pick(args.store_password, store_cfg.get("password"), "COUNTER_PASSWORD")
    args.store_socket = pick(args.store_socket, store_cfg.get("socket"), "COUNTER_SOCKET")
    args.store_database = pick(args.store_database, store_cfg.get("database"), "COUNTER_DATABASE")
    args.store_table = pick(args.store_table, store_cfg.get("table"), None)

    load_cfg = config.get("load", {}) or {}
    args.corpus = pick(args.corpus, load_cfg.get("corpus"), "GEO_CORPUS")

    run_cfg = config.get("run", {}) or {}
    args.workers = pick(args.workers, run_cfg.get("workers", 1), "GEO_WORKERS", int)
    args.operations = pick(args.operations, run_cfg.get("operations", 1000), "GEO_OPERATIONS", int)
    args.duration = pick(args.duration, run_cfg.get("duration_seconds"), "GEO_DURATION", float)
    args.output = pick(args.output, run_cfg.get("output"), "GEO_OUTPUT")

    properties: Dict[str, object] = dict(config.get("workload", {}) or {})
    distribution = pick(args.distribution, None, "GEO_DISTRIBUTION")
    if distribution is not None:
        properties["geo_request_distribution"] = distribution
    seed = pick(args.seed, None, "GEO_SEED", int)
    if seed is not None:
        properties["geo_seed"] = seed
    for key, value in getattr(args, "properties", None) or []:
        properties[key] = value
    args.workload_properties = properties

    args.schema_block = config.get("schema")
    if config_path is not None:
        args.config_path = str(config_path)
    return env_overrides, ignored_env
