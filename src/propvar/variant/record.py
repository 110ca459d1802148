"""The fixed-size native variant record.

This is the layout handed to (and received from) the external
subsystem.  It is 24 bytes on a 64-bit platform::

    offset  size  field
    0       2     vt
    2       6     reserved
    8       16    union
                  - inline scalars at offset 8, at their native width
                  - a pointer at offset 8 (strings, GUID, CLIPDATA)
                  - count:u32 at offset 8, pointer at offset 16
                    (vectors, blob)
                  - DECIMAL spans offsets 0-16; its reserved word is
                    overwritten by vt

The record never owns anything by itself: writing one *lends* the
variant's allocations, and reading one either borrows them or adopts
them into a new ``Variant``.
"""
from __future__ import annotations

import struct
from typing import Any

from propvar.config import CodecConfig
from propvar.memory import marshal
from propvar.memory.allocator import TaskAllocator
from propvar.memory.buffer import OwnedBuffer
from propvar.types.vartype import STRING_TYPES, VECTOR_ELEMENT_SIZES, VarType, VariantType
from propvar.variant.convert import (
    SCALAR_FORMATS,
    pack_decimal,
    pack_scalar,
    unpack_decimal,
    unpack_scalar,
)
from propvar.variant.payload import EMPTY_PAYLOAD, Counted, Inline, Payload, Pointer
from propvar.variant.variant import Variant

RECORD_SIZE = 24
UNION_OFFSET = 8
CLIPDATA_SIZE = 16
GUID_SIZE = 16

_HEADER = struct.Struct("<HHHH")
_COUNTED = struct.Struct("<I4xQ")


def write_record(variant: Variant, allocator: TaskAllocator, address: int) -> None:
    """Write ``variant`` as a native record at ``address``, lending its payload."""
    vt = variant.vt
    payload = variant.payload
    allocator.write(address, bytes(RECORD_SIZE))
    if isinstance(payload, Inline):
        if vt.base is VarType.VT_DECIMAL:
            allocator.write(address, pack_decimal(payload.value))
        elif vt.base in SCALAR_FORMATS:
            allocator.write(address + UNION_OFFSET, pack_scalar(vt.base, payload.value))
        elif isinstance(payload.value, bytes):
            allocator.write(address + UNION_OFFSET, payload.value[:16])
    elif isinstance(payload, Pointer):
        pointer = payload.buffer.address
        if vt.base is VarType.VT_BSTR and pointer:
            pointer += 4
        marshal.write_pointer(allocator, address + UNION_OFFSET, pointer)
    else:
        allocator.write(
            address + UNION_OFFSET, _COUNTED.pack(payload.count, payload.buffer.address)
        )
    allocator.write(address, struct.pack("<H", int(vt)))


def read_record(allocator: TaskAllocator, address: int, owned: bool = False) -> Variant:
    """Build a ``Variant`` over the record at ``address``.

    With ``owned=False`` the variant borrows the record's allocations
    and disposing it frees nothing.  With ``owned=True`` it takes them
    over; the record memory itself is never freed here.

    Raises
    ------
    UnsupportedTypeError
        If the record's tag is not a valid variant type.
    """
    raw = allocator.read(address, RECORD_SIZE)
    vt = VariantType.from_int(_HEADER.unpack_from(raw)[0])
    return Variant(vt, _read_payload(allocator, vt, raw, owned))


def _read_payload(allocator: TaskAllocator, vt: VariantType, raw: bytes, owned: bool) -> Payload:
    base = vt.base
    if vt.vector or base is VarType.VT_BLOB:
        count, pointer = _COUNTED.unpack_from(raw, UNION_OFFSET)
        stride = VECTOR_ELEMENT_SIZES.get(base, 0) if vt.vector else 1
        return Counted(count, OwnedBuffer(allocator, pointer, count * stride, owned=owned))
    if base in STRING_TYPES or base in (VarType.VT_CLSID, VarType.VT_CF):
        pointer = struct.unpack_from("<Q", raw, UNION_OFFSET)[0]
        if base is VarType.VT_BSTR:
            pointer = marshal.bstr_allocation(pointer)
        size = GUID_SIZE if base is VarType.VT_CLSID else CLIPDATA_SIZE if base is VarType.VT_CF else 0
        return Pointer(OwnedBuffer(allocator, pointer, size, owned=owned))
    if base is VarType.VT_DECIMAL:
        return Inline(unpack_decimal(raw[:16]))
    if base in SCALAR_FORMATS:
        width = struct.calcsize(SCALAR_FORMATS[base])
        return Inline(unpack_scalar(base, raw[UNION_OFFSET : UNION_OFFSET + width]))
    if base in (VarType.VT_EMPTY, VarType.VT_NULL):
        return EMPTY_PAYLOAD
    # Interface pointers and other opaque unions: kept raw, never owned.
    return Inline(raw[UNION_OFFSET:])


def write_native(variant: Variant, allocator: TaskAllocator) -> OwnedBuffer:
    """Allocate a record for ``variant`` to hand to the external subsystem.

    The returned buffer owns only the 24-byte record; the payload stays
    owned by ``variant``.
    """
    record = OwnedBuffer.allocate(allocator, RECORD_SIZE)
    try:
        write_record(variant, allocator, record.address)
    except BaseException:
        record.release()
        raise
    return record


def adopt_native(allocator: TaskAllocator, address: int) -> Variant:
    """Take ownership of a heap-allocated record and its payload.

    The record shell is freed; the returned variant owns the payload.
    """
    try:
        return read_record(allocator, address, owned=True)
    finally:
        allocator.free(address)


def variant_from_native(
    allocator: TaskAllocator, address: int, config: CodecConfig | None = None
) -> Any:
    """Extract the value of a record owned by someone else.

    The record and its payload are left untouched; the returned value is
    an independent copy.  A null address yields ``None``.
    """
    if address == 0:
        return None
    from propvar.variant.extract import extract

    borrowed = read_record(allocator, address, owned=False)
    try:
        return extract(borrowed, config)
    finally:
        borrowed.dispose()
