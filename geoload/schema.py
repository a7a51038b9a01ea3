"""Fixed document schemas known to the tokenizer.

A schema names the flattened field paths a document is split into and the
counter/meta key names used for it in the counter store. The incidents schema
is built in; other variants are described with a JSON mapping and loaded with
:func:`schema_from_dict`.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Dict, List, Mapping, Optional, Set, Tuple

DEFAULT_DELIMITER = ":::"


@dataclass(frozen=True)
class GeoSchema:
    name: str
    collection: str = "usertable"
    delimiter: str = DEFAULT_DELIMITER
    id_field: str = "_id"
    string_fields: Tuple[str, ...] = ("type",)
    properties_field: str = "properties"
    properties_string_fields: Tuple[str, ...] = ()
    properties_int_fields: Tuple[str, ...] = ()
    geometry_field: str = "geometry"
    geometry_type_field: str = "type"
    geometry_coordinates_field: str = "coordinates"
    insert_counter: str = "GEO_insert_document_counter"
    stored_count_counter: str = "GEO_storage_docs_count_docs"
    total_count_counter: str = "GEO_total_docs_count"
    doc_id_family: str = "GEO_doc_id"
    body_family: str = "GEO_insert_document"
    _paths: Tuple[str, ...] = field(init=False, repr=False, compare=False)

    def __post_init__(self) -> None:
        overlap = set(self.properties_string_fields) & set(self.properties_int_fields)
        if overlap:
            raise ValueError(
                f"schema {self.name}: fields declared both string and int: {sorted(overlap)}"
            )
        paths: List[str] = list(self.string_fields)
        paths.append(self.id_field)
        paths.extend(self.properties_path(name) for name in self.properties_fields())
        paths.append(self.geometry_path(self.geometry_type_field))
        paths.append(self.geometry_path(self.geometry_coordinates_field))
        object.__setattr__(self, "_paths", tuple(paths))

    @property
    def prefix(self) -> str:
        return self.collection + self.delimiter

    def properties_fields(self) -> Tuple[str, ...]:
        """Property sub-fields in declaration order (strings first, then ints)."""
        return self.properties_string_fields + self.properties_int_fields

    def properties_path(self, sub_field: str) -> str:
        return self.properties_field + self.delimiter + sub_field

    def geometry_path(self, sub_field: str) -> str:
        return self.geometry_field + self.delimiter + sub_field

    def field_paths(self) -> Tuple[str, ...]:
        return self._paths

    def projection_fields(self) -> Set[str]:
        """Every document field name an adapter should project when reading."""
        names: Set[str] = {self.id_field, self.properties_field, self.geometry_field}
        names.update(self.string_fields)
        names.update(self.properties_fields())
        names.add(self.geometry_type_field)
        names.add(self.geometry_coordinates_field)
        return names

    def counter_key(self, counter: str) -> str:
        return self.prefix + counter

    def slot_key(self, family: str, slot: int) -> str:
        return self.prefix + family + self.delimiter + str(slot)

    def doc_id_key(self, slot: int) -> str:
        return self.slot_key(self.doc_id_family, slot)

    def body_key(self, slot: int) -> str:
        return self.slot_key(self.body_family, slot)

    def generated_doc_id(self, sequence: int) -> str:
        return self.prefix + str(sequence)


INCIDENTS_SCHEMA = GeoSchema(
    name="incidents",
    properties_string_fields=(
        "INCIDENT_NUMBER",
        "LOCATION",
        "NOTIFICATION",
        "INCIDENT_DATE",
        "MONIKER_CLASS",
        "PROP_TYPE",
        "Waiver",
    ),
    properties_int_fields=("OBJECTID", "TAG_COUNT", "SQ_FT"),
)

SCHEMAS: Dict[str, GeoSchema] = {INCIDENTS_SCHEMA.name: INCIDENTS_SCHEMA}


def schema_from_dict(data: Mapping[str, object]) -> GeoSchema:
    """Build a schema from a config mapping such as the ``schema`` config block."""

    if "name" not in data:
        raise ValueError("schema definition requires a name")
    kwargs: Dict[str, object] = {}
    for key, value in data.items():
        if key not in GeoSchema.__dataclass_fields__ or key.startswith("_"):
            raise ValueError(f"unknown schema key: {key}")
        if isinstance(value, list):
            value = tuple(str(item) for item in value)
        kwargs[key] = value
    return GeoSchema(**kwargs)  # type: ignore[arg-type]


def register_schema(schema: GeoSchema) -> None:
    SCHEMAS[schema.name] = schema


def get_schema(name: Optional[str]) -> GeoSchema:
    if not name:
        return INCIDENTS_SCHEMA
    try:
        return SCHEMAS[name]
    except KeyError:
        raise ValueError(
            f"unknown schema {name!r} (known: {', '.join(sorted(SCHEMAS))})"
        ) from None
