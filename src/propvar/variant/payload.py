"""Payload shapes of a variant.

A variant's payload is exactly one of three shapes:

``Inline``
    A scalar stored by value; no allocation.
``Pointer``
    One out-of-line allocation: string text, GUID bytes, or a CLIPDATA
    record (which itself points at the clip payload).
``Counted``
    A count plus one allocation: vector elements (``count`` is the
    element count) or blob bytes (``count`` is the byte length).
"""
from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Union

from propvar.memory.buffer import OwnedBuffer


@dataclass(frozen=True, slots=True)
class Inline:
    """A native scalar held by value."""

    value: Any


@dataclass(frozen=True, slots=True)
class Pointer:
    """A single out-of-line allocation."""

    buffer: OwnedBuffer


@dataclass(frozen=True, slots=True)
class Counted:
    """A counted out-of-line allocation (vector or blob)."""

    count: int
    buffer: OwnedBuffer


Payload = Union[Inline, Pointer, Counted]

EMPTY_PAYLOAD = Inline(None)
