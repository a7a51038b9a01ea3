"""Compiled query/document payloads handed to storage adapters."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

PREDICATE_TYPE_STRING = "string"
PREDICATE_TYPE_INTEGER = "int"
PREDICATE_TYPE_BOOLEAN = "bool"

SLOTS = ("A", "B", "C", "D")


@dataclass
class Predicate:
    """One node of a predicate tree: a root plus at most four named children.

    Adapters read only what their query needs: inserts use ``doc_id`` and
    ``raw_value``; near/box/intersect use the children's ``name`` and
    ``value_object``.
    """

    name: Optional[str] = None
    value_object: Optional[Dict[str, Any]] = None
    value_array: Optional[List[Any]] = None
    raw_value: Optional[str] = None
    doc_id: Optional[str] = None
    operation: Optional[str] = None
    relation: Optional[str] = None
    type: str = PREDICATE_TYPE_STRING
    children: Dict[str, "Predicate"] = field(default_factory=dict)

    def attach(self, slot: str, child: "Predicate") -> "Predicate":
        if slot not in SLOTS:
            raise ValueError(f"unknown nested predicate slot {slot!r}")
        if child.children:
            raise ValueError("nested predicates cannot carry children of their own")
        if child is self:
            raise ValueError("a predicate cannot nest itself")
        self.children[slot] = child
        return child

    @property
    def nested_a(self) -> Optional["Predicate"]:
        return self.children.get("A")

    @property
    def nested_b(self) -> Optional["Predicate"]:
        return self.children.get("B")

    @property
    def nested_c(self) -> Optional["Predicate"]:
        return self.children.get("C")

    @property
    def nested_d(self) -> Optional["Predicate"]:
        return self.children.get("D")

    def to_dict(self) -> Dict[str, Any]:
        out: Dict[str, Any] = {
            "name": self.name,
            "valueObject": self.value_object,
            "valueArray": self.value_array,
            "rawValue": self.raw_value,
            "docId": self.doc_id,
            "operation": self.operation,
            "relation": self.relation,
            "type": self.type,
        }
        for slot in SLOTS:
            child = self.children.get(slot)
            out[f"nested{slot}"] = child.to_dict() if child is not None else None
        return out
