"""Marshalling helpers between Python values and task-allocator memory.

Strings come in three native encodings:

``LPWSTR``
    UTF-16LE code units terminated by a zero unit.
``LPSTR``
    Bytes in the ANSI code page terminated by a zero byte.
``BSTR``
    A 4-byte little-endian byte length, then UTF-16LE code units and a
    zero unit.  The string pointer addresses the first code unit, so the
    allocation starts four bytes *before* the pointer.
"""
from __future__ import annotations

import struct

from propvar.memory.allocator import TaskAllocator

POINTER_SIZE = 8
_BSTR_PREFIX = 4

_INT_FORMATS: dict[tuple[int, bool], str] = {
    (1, True): "<b",
    (1, False): "<B",
    (2, True): "<h",
    (2, False): "<H",
    (4, True): "<i",
    (4, False): "<I",
    (8, True): "<q",
    (8, False): "<Q",
}


def read_int(allocator: TaskAllocator, address: int, nbytes: int, signed: bool = False) -> int:
    return struct.unpack(_INT_FORMATS[nbytes, signed], allocator.read(address, nbytes))[0]


def write_int(
    allocator: TaskAllocator, address: int, value: int, nbytes: int, signed: bool = False
) -> None:
    allocator.write(address, struct.pack(_INT_FORMATS[nbytes, signed], value))


def read_pointer(allocator: TaskAllocator, address: int) -> int:
    return read_int(allocator, address, POINTER_SIZE)


def write_pointer(allocator: TaskAllocator, address: int, pointer: int) -> None:
    write_int(allocator, address, pointer, POINTER_SIZE)


# ---------------------------------------------------------------------------
# Strings
# ---------------------------------------------------------------------------


def ptr_to_string_uni(allocator: TaskAllocator, address: int) -> str | None:
    if address == 0:
        return None
    return allocator.read_until_null(address, 2).decode("utf-16-le", errors="surrogatepass")


def ptr_to_string_ansi(allocator: TaskAllocator, address: int, encoding: str) -> str | None:
    if address == 0:
        return None
    return allocator.read_until_null(address, 1).decode(encoding, errors="replace")


def ptr_to_string_bstr(allocator: TaskAllocator, address: int) -> str | None:
    if address == 0:
        return None
    length = read_int(allocator, address - _BSTR_PREFIX, 4)
    return allocator.read(address, length).decode("utf-16-le", errors="surrogatepass")


def bstr_allocation(address: int) -> int:
    """Return the allocation address behind a BSTR pointer."""
    return address - _BSTR_PREFIX if address else 0
