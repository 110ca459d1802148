"""Property records, the enumerator contract and the in-memory store."""
from __future__ import annotations

from propvar.property.model import Property, read_properties, read_property
from propvar.property.serializer import PropertySerializer
from propvar.property.store import NAMED_PROPERTIES_FMTID, STORAGE_VERSION, MemoryPropertyStore

__all__ = [
    "Property",
    "read_property",
    "read_properties",
    "MemoryPropertyStore",
    "NAMED_PROPERTIES_FMTID",
    "STORAGE_VERSION",
    "PropertySerializer",
]
