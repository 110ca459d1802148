"""Property records read through the property-storage enumerator contract.

An enumerator is any iterable of ``(fmtid, key, record_address)``
triples, where ``key`` is a numeric property id or a property name and
``record_address`` points at a native variant record.  The enumerator
owns its records and clears them after each step; reading a property
only copies the value out.
"""
from __future__ import annotations

from collections.abc import Iterable, Iterator
from dataclasses import dataclass
from typing import Any, Tuple, Union
from uuid import UUID

from propvar.config import CodecConfig
from propvar.memory.allocator import TaskAllocator
from propvar.types.vartype import VariantType
from propvar.variant.record import read_record, variant_from_native

PropertyKey = Union[int, str]
EnumeratorEntry = Tuple[UUID, PropertyKey, int]


@dataclass(frozen=True)
class Property:
    """One property of a property set.

    Parameters
    ----------
    name:
        The property name for named properties, else ``None``.
    fmtid:
        Format id of the property set the property belongs to.
    id:
        Numeric property id; ``0`` for named properties.
    type:
        The variant type the value was stored with.
    value:
        The extracted Python value.
    """

    name: str | None
    fmtid: UUID
    id: int
    type: VariantType
    value: Any

    @property
    def key(self) -> PropertyKey:
        return self.name if self.name is not None else self.id

    def __str__(self) -> str:
        return "{" + str(self.fmtid) + "} " + str(self.key) + " => " + str(self.value)


def read_property(
    allocator: TaskAllocator,
    fmtid: UUID,
    key: PropertyKey,
    record_address: int,
    config: CodecConfig | None = None,
) -> Property:
    """Build a ``Property`` from one enumerator entry without taking ownership."""
    borrowed = read_record(allocator, record_address, owned=False)
    try:
        vt = borrowed.vt
    finally:
        borrowed.dispose()
    value = variant_from_native(allocator, record_address, config)
    if isinstance(key, str):
        return Property(name=key, fmtid=fmtid, id=0, type=vt, value=value)
    return Property(name=None, fmtid=fmtid, id=int(key), type=vt, value=value)


def read_properties(
    enumerator: Iterable[EnumeratorEntry],
    allocator: TaskAllocator,
    config: CodecConfig | None = None,
) -> Iterator[Property]:
    """Yield a ``Property`` per enumerator entry.

    Each value is copied out before the enumerator advances, so it stays
    valid after the enumerator clears its record.
    """
    for fmtid, key, record_address in enumerator:
        yield read_property(allocator, fmtid, key, record_address, config)
