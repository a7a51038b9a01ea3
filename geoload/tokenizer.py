"""Flatten documents into per-field tokens and keep stored slots backfilled."""

from __future__ import annotations

import json
import logging
import math
from numbers import Number
from typing import Any, Dict, Mapping, Optional

from .counters import CounterStore
from .errors import DocumentParseError
from .schema import GeoSchema

Tokens = Dict[str, Optional[str]]


def field_key(schema: GeoSchema, path: str, slot: int) -> str:
    return schema.prefix + path + schema.delimiter + str(slot)


def _require_object(value: Any, name: str) -> Mapping[str, Any]:
    if not isinstance(value, dict):
        raise DocumentParseError(f"{name} is not an object: {type(value).__name__}")
    return value


def _string_value(value: Any, name: str) -> str:
    if not isinstance(value, str):
        raise DocumentParseError(f"{name} is not a string: {value!r}")
    return value


def _whole_number(value: float, name: str) -> str:
    if not math.isfinite(value):
        raise DocumentParseError(f"{name} is not a finite number: {value!r}")
    return str(int(value))


def _int_value(value: Any, name: str) -> str:
    if isinstance(value, bool):
        raise DocumentParseError(f"{name} is not an integer: {value!r}")
    if isinstance(value, int):
        return str(value)
    if isinstance(value, float):
        return _whole_number(value, name)
    if isinstance(value, str):
        try:
            return str(int(value.strip()))
        except ValueError:
            pass
    raise DocumentParseError(f"{name} is not an integer: {value!r}")


def _id_value(value: Any, name: str) -> str:
    if isinstance(value, dict):
        return json.dumps(value, separators=(",", ":"))
    if isinstance(value, bool):
        raise DocumentParseError(f"unsupported {name} value: {value!r}")
    if isinstance(value, int):
        return str(value)
    # numeric ids are truncated to integers
    if isinstance(value, float):
        return _whole_number(value, name)
    if isinstance(value, str):
        return value
    raise DocumentParseError(f"unsupported {name} value: {value!r}")


def _coordinates_value(coordinates: Any) -> Optional[str]:
    if coordinates is None:
        return None
    if not isinstance(coordinates, list):
        raise DocumentParseError(f"coordinates is not an array: {coordinates!r}")
    if not coordinates:
        return None
    head = coordinates[:2]
    # polygons and lines nest their pairs one level deeper; those are left null
    if len(head) < 2 or not all(_finite_number(c) for c in head):
        return None
    return f"{head[0]},{head[1]}"


def _finite_number(value: Any) -> bool:
    return isinstance(value, Number) and not isinstance(value, bool) and math.isfinite(value)


def _tokenize_fields(doc: Mapping[str, Any], schema: GeoSchema, tokens: Tokens) -> None:
    for name in schema.string_fields:
        value = doc.get(name)
        if value is not None:
            tokens[name] = _string_value(value, name)


def _tokenize_objects(doc: Mapping[str, Any], schema: GeoSchema, tokens: Tokens) -> None:
    doc_id = doc.get(schema.id_field)
    if doc_id is not None:
        tokens[schema.id_field] = _id_value(doc_id, schema.id_field)

    props = doc.get(schema.properties_field)
    if props is not None:
        props = _require_object(props, schema.properties_field)
        for name in schema.properties_string_fields:
            value = props.get(name)
            if value is not None:
                tokens[schema.properties_path(name)] = _string_value(value, name)
        for name in schema.properties_int_fields:
            value = props.get(name)
            if value is not None:
                tokens[schema.properties_path(name)] = _int_value(value, name)

    geometry = doc.get(schema.geometry_field)
    if geometry is not None:
        geometry = _require_object(geometry, schema.geometry_field)
        geo_type = geometry.get(schema.geometry_type_field)
        if geo_type is not None:
            tokens[schema.geometry_path(schema.geometry_type_field)] = _string_value(
                geo_type, schema.geometry_type_field
            )
        tokens[schema.geometry_path(schema.geometry_coordinates_field)] = _coordinates_value(
            geometry.get(schema.geometry_coordinates_field)
        )


def tokenize(body: str, schema: GeoSchema) -> Tokens:
    """Split a document body into a token set covering every schema field path.

    Fields missing from the body (or lost to a parse failure) are present with a
    None value.
    """

    tokens: Tokens = {path: None for path in schema.field_paths()}
    try:
        doc = json.loads(body)
    except (TypeError, ValueError) as exc:
        logging.warning("Document parsing error - invalid JSON: %s", exc)
        return tokens
    if not isinstance(doc, dict):
        logging.warning("Document parsing error - body is %s, not an object", type(doc).__name__)
        return tokens

    try:
        _tokenize_fields(doc, schema, tokens)
    except DocumentParseError as exc:
        logging.warning("Document parsing error - plain fields: %s", exc)

    try:
        _tokenize_objects(doc, schema, tokens)
    except DocumentParseError as exc:
        logging.warning("Document parsing error - objects: %s", exc)

    return tokens


def store_tokens(store: CounterStore, schema: GeoSchema, slot: int, tokens: Tokens) -> Tokens:
    """Persist a slot's tokens, copying the nearest earlier value into null fields.

    Returns the values actually stored for the slot (None where no earlier slot
    had a value either).
    """

    stored: Tokens = {}
    for path, value in tokens.items():
        if value is not None:
            store.set(field_key(schema, path, slot), value)
            stored[path] = value
            continue
        stored[path] = None
        for prev in range(slot - 1, -1, -1):
            prev_value = store.get(field_key(schema, path, prev))
            if prev_value is not None:
                store.set(field_key(schema, path, slot), prev_value)
                stored[path] = prev_value
                break
    return stored


def backfill_leading(store: CounterStore, schema: GeoSchema, slot: int) -> bool:
    """Fill the leading null slots of every field from its first known value.

    Scans slots ``0..slot`` per field. Returns True when every field has at
    least one value somewhere, i.e. no further repair pass is needed.
    """

    complete = True
    for path in schema.field_paths():
        for index in range(slot + 1):
            value = store.get(field_key(schema, path, index))
            if value is None:
                continue
            for earlier in range(index - 1, -1, -1):
                store.set(field_key(schema, path, earlier), value)
            break
        else:
            complete = False
            logging.debug("Field %s has no value in slots 0..%d yet", path, slot)
    return complete


def read_tokens(store: CounterStore, schema: GeoSchema, slot: int) -> Tokens:
    return {path: store.get(field_key(schema, path, slot)) for path in schema.field_paths()}
