"""Exception types raised by the generator and its counter stores."""

from __future__ import annotations


class GeoLoadError(Exception):
    """Base class for generator failures."""


class StoreError(GeoLoadError):
    """A counter store get/set/increment call failed."""


class CounterMissingError(StoreError):
    def __init__(self, key: str) -> None:
        super().__init__(f"counter {key!r} is not initialized")
        self.key = key


class SlotNotFoundError(GeoLoadError):
    def __init__(self, slot: int, key: str) -> None:
        super().__init__(f"no document stored for slot {slot} ({key})")
        self.slot = slot
        self.key = key


class DocumentParseError(GeoLoadError):
    """Malformed or schema-violating document body."""
