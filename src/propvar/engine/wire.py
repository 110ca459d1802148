"""Serialized property value format (``TypedPropertyValue``).

Layout, little endian::

    type      u16   the variant type, VT_VECTOR bit included
    padding   u16   zero
    value     ...   depends on the type, padded to a multiple of 4

Values:

- fixed-width scalars at their native width (``VT_BOOL`` as 0xFFFF/0)
- ``VT_LPWSTR``: ``u32`` character count including the terminator,
  then UTF-16LE code units
- ``VT_LPSTR``: ``u32`` byte count including the terminator, then the
  code-page bytes
- ``VT_BSTR``: ``u32`` byte count including the terminator, then
  UTF-16LE bytes
- ``VT_BLOB``: ``u32`` size, then the bytes
- ``VT_CF``: ``u32`` size (4 + payload), ``i32`` clipboard format, then
  the payload
- vectors: ``u32`` count, then the elements; scalar elements are packed
  and padded once at the end, string elements are padded one by one and
  ``VT_VARIANT`` elements are complete ``TypedPropertyValue`` packets

A null string is written with a zero count and read back as a null
pointer.
"""
from __future__ import annotations

import logging
import struct

from propvar.errors import UnsupportedTypeError
from propvar.memory import marshal
from propvar.memory.allocator import TaskAllocator
from propvar.memory.buffer import OwnedBuffer
from propvar.types.vartype import STRING_TYPES, VECTOR_ELEMENT_SIZES, VarType, VariantType
from propvar.variant.construct import AllocationScope
from propvar.variant.convert import SCALAR_FORMATS, pack_decimal, pack_scalar, unpack_decimal
from propvar.variant.payload import EMPTY_PAYLOAD, Counted, Inline, Pointer
from propvar.variant.record import (
    CLIPDATA_SIZE,
    GUID_SIZE,
    RECORD_SIZE,
    read_record,
    write_native,
    write_record,
)
from propvar.variant.variant import Variant

logger = logging.getLogger(__name__)

S_OK = 0
E_INVALIDARG = -2147024809  # 0x80070057
STG_E_INVALIDPARAMETER = -2147286953  # 0x80030057

_HEADER = struct.Struct("<HH")
_U32 = struct.Struct("<I")
_CLIPDATA = struct.Struct("<IiQ")


class EngineFault(Exception):
    """Internal failure carrying the status code the primitive reports."""

    def __init__(self, code: int, message: str) -> None:
        super().__init__(message)
        self.code = code


def _pad(out: bytearray) -> None:
    out.extend(bytes(-len(out) % 4))


# ---------------------------------------------------------------------------
# Encoding: native record → bytes
# ---------------------------------------------------------------------------


def _encode_string(
    out: bytearray, base: VarType, allocator: TaskAllocator, pointer: int
) -> None:
    """Append one string value; ``pointer`` is the string pointer as stored."""
    start = len(out)
    if pointer == 0:
        out.extend(_U32.pack(0))
    elif base is VarType.VT_LPWSTR:
        chars = allocator.read_until_null(pointer, 2)
        out.extend(_U32.pack(len(chars) // 2 + 1))
        out.extend(chars + b"\x00\x00")
    elif base is VarType.VT_LPSTR:
        chars = allocator.read_until_null(pointer, 1)
        out.extend(_U32.pack(len(chars) + 1))
        out.extend(chars + b"\x00")
    else:
        length = marshal.read_int(allocator, pointer - 4, 4)
        out.extend(_U32.pack(length + 2))
        out.extend(allocator.read(pointer, length) + b"\x00\x00")
    out.extend(bytes(-(len(out) - start) % 4))


def _encode_clipdata(out: bytearray, allocator: TaskAllocator, address: int) -> None:
    if address == 0:
        out.extend(_U32.pack(4) + struct.pack("<i", 0))
        return
    size, discriminator, pointer = _CLIPDATA.unpack(allocator.read(address, CLIPDATA_SIZE))
    payload = allocator.read(pointer, size - 4) if pointer and size > 4 else b""
    out.extend(_U32.pack(4 + len(payload)) + struct.pack("<i", discriminator) + payload)
    _pad(out)


def _encode_vector(
    out: bytearray, vt: VariantType, allocator: TaskAllocator, payload: Counted
) -> None:
    base = vt.base
    count = payload.count
    address = payload.buffer.address
    out.extend(_U32.pack(count))
    if count == 0:
        return
    if base in STRING_TYPES:
        for index in range(count):
            pointer = marshal.read_pointer(allocator, address + index * marshal.POINTER_SIZE)
            _encode_string(out, base, allocator, pointer)
    elif base is VarType.VT_VARIANT:
        for index in range(count):
            out.extend(encode_record(allocator, address + index * RECORD_SIZE))
    elif base is VarType.VT_BOOL:
        slots = struct.iter_unpack("<h", allocator.read(address, count * 2))
        out.extend(b"".join(struct.pack("<h", -1 if slot else 0) for (slot,) in slots))
        _pad(out)
    elif base is VarType.VT_CLSID or base in SCALAR_FORMATS:
        out.extend(allocator.read(address, count * VECTOR_ELEMENT_SIZES[base]))
        _pad(out)
    else:
        raise EngineFault(E_INVALIDARG, f"{vt} cannot be serialized")


def encode_record(allocator: TaskAllocator, address: int) -> bytes:
    """Encode the native record at ``address`` as a ``TypedPropertyValue``.

    The record is only borrowed.

    Raises
    ------
    EngineFault
        With ``E_INVALIDARG`` for tags that have no serialized form.
    """
    try:
        variant = read_record(allocator, address, owned=False)
    except UnsupportedTypeError as exc:
        raise EngineFault(E_INVALIDARG, str(exc)) from exc
    vt = variant.vt
    payload = variant.payload
    base = vt.base
    out = bytearray(_HEADER.pack(int(vt), 0))
    if vt.vector:
        assert isinstance(payload, Counted)
        _encode_vector(out, vt, allocator, payload)
    elif base in (VarType.VT_EMPTY, VarType.VT_NULL):
        pass
    elif base is VarType.VT_DECIMAL:
        assert isinstance(payload, Inline)
        out.extend(pack_decimal(payload.value))
    elif base is VarType.VT_BOOL:
        assert isinstance(payload, Inline)
        out.extend(struct.pack("<h", -1 if payload.value else 0))
        _pad(out)
    elif base in SCALAR_FORMATS:
        assert isinstance(payload, Inline)
        out.extend(pack_scalar(base, payload.value))
        _pad(out)
    elif base in STRING_TYPES:
        assert isinstance(payload, Pointer)
        pointer = payload.buffer.address
        if base is VarType.VT_BSTR:
            pointer = pointer + 4 if pointer else 0
        _encode_string(out, base, allocator, pointer)
    elif base is VarType.VT_CLSID:
        assert isinstance(payload, Pointer)
        guid_address = payload.buffer.address
        out.extend(allocator.read(guid_address, GUID_SIZE) if guid_address else bytes(GUID_SIZE))
    elif base is VarType.VT_BLOB:
        assert isinstance(payload, Counted)
        data = payload.buffer.read(0, payload.count) if payload.count else b""
        out.extend(_U32.pack(len(data)) + data)
        _pad(out)
    elif base is VarType.VT_CF:
        assert isinstance(payload, Pointer)
        _encode_clipdata(out, allocator, payload.buffer.address)
    else:
        raise EngineFault(E_INVALIDARG, f"{vt} cannot be serialized")
    return bytes(out)


# ---------------------------------------------------------------------------
# Decoding: bytes → native record
# ---------------------------------------------------------------------------


class _Reader:
    """Cursor over the input with bounds-checked reads."""

    def __init__(self, data: bytes) -> None:
        self._data = data
        self.pos = 0

    @property
    def remaining(self) -> int:
        return len(self._data) - self.pos

    def take(self, size: int) -> bytes:
        if size < 0 or size > self.remaining:
            raise EngineFault(
                STG_E_INVALIDPARAMETER,
                f"truncated input: need {size} bytes at offset {self.pos}, "
                f"{self.remaining} left",
            )
        chunk = self._data[self.pos : self.pos + size]
        self.pos += size
        return chunk

    def u32(self) -> int:
        return _U32.unpack(self.take(4))[0]

    def align(self, start: int) -> None:
        """Skip padding so the value begun at ``start`` spans a multiple of 4."""
        self.take(-(self.pos - start) % 4)


def _malformed(message: str) -> EngineFault:
    return EngineFault(STG_E_INVALIDPARAMETER, message)


def _decode_string_bytes(reader: _Reader, base: VarType) -> bytes | None:
    """Read one string value and return its native allocation content."""
    start = reader.pos
    length = reader.u32()
    if length == 0:
        reader.align(start)
        return None
    if base is VarType.VT_LPWSTR:
        chars = reader.take(length * 2)
        if chars[-2:] != b"\x00\x00":
            raise _malformed("LPWSTR value is not null-terminated")
        content = chars
    elif base is VarType.VT_LPSTR:
        chars = reader.take(length)
        if chars[-1:] != b"\x00":
            raise _malformed("LPSTR value is not null-terminated")
        content = chars
    else:
        chars = reader.take(length)
        if length % 2 or chars[-2:] != b"\x00\x00":
            raise _malformed("BSTR value is not a null-terminated UTF-16 string")
        content = _U32.pack(length - 2) + chars
    reader.align(start)
    return content


def _decode_vector(
    reader: _Reader, vt: VariantType, scope: AllocationScope
) -> Variant:
    base = vt.base
    if base not in VECTOR_ELEMENT_SIZES:
        raise EngineFault(E_INVALIDARG, f"{vt} cannot be deserialized")
    count = reader.u32()
    if count == 0:
        return Variant(vt, Counted(0, OwnedBuffer.null(scope.allocator)))
    # Every element occupies at least one byte (four for strings and variants).
    minimum = 1 if base in SCALAR_FORMATS else 4
    if count * minimum > reader.remaining:
        raise _malformed(f"vector count {count} exceeds the input")
    stride = VECTOR_ELEMENT_SIZES[base]
    buffer = scope.buffer(stride * count)
    allocator = scope.allocator
    if base in STRING_TYPES:
        for index in range(count):
            content = _decode_string_bytes(reader, base)
            pointer = 0
            if content is not None:
                pointer = scope.raw(allocator.alloc(len(content)))
                allocator.write(pointer, content)
                if base is VarType.VT_BSTR:
                    pointer += 4
            marshal.write_pointer(allocator, buffer.address + index * marshal.POINTER_SIZE, pointer)
    elif base is VarType.VT_VARIANT:
        for index in range(count):
            element = _decode_value(reader, scope)
            write_record(element, allocator, buffer.address + index * RECORD_SIZE)
            scope.hand_off(element)
    else:
        start = reader.pos
        buffer.write(0, reader.take(stride * count))
        reader.align(start)
    return Variant(vt, Counted(count, buffer))


def _decode_value(reader: _Reader, scope: AllocationScope) -> Variant:
    raw_type, _ = _HEADER.unpack(reader.take(_HEADER.size))
    try:
        vt = VariantType.from_int(raw_type)
    except UnsupportedTypeError as exc:
        raise EngineFault(E_INVALIDARG, str(exc)) from exc
    base = vt.base
    allocator = scope.allocator
    if vt.vector:
        return _decode_vector(reader, vt, scope)
    if base in (VarType.VT_EMPTY, VarType.VT_NULL):
        return Variant(vt, EMPTY_PAYLOAD)
    if base is VarType.VT_DECIMAL:
        return Variant(vt, Inline(unpack_decimal(reader.take(16))))
    if base in SCALAR_FORMATS:
        start = reader.pos
        fmt = SCALAR_FORMATS[base]
        (native,) = struct.unpack(fmt, reader.take(struct.calcsize(fmt)))
        reader.align(start)
        return Variant(vt, Inline(native))
    if base in STRING_TYPES:
        content = _decode_string_bytes(reader, base)
        if content is None:
            return Variant(vt, Pointer(OwnedBuffer.null(allocator)))
        buffer = scope.buffer(len(content))
        buffer.write(0, content)
        return Variant(vt, Pointer(buffer))
    if base is VarType.VT_CLSID:
        buffer = scope.buffer(GUID_SIZE)
        buffer.write(0, reader.take(GUID_SIZE))
        return Variant(vt, Pointer(buffer))
    if base is VarType.VT_BLOB:
        start = reader.pos
        size = reader.u32()
        data = reader.take(size)
        reader.align(start)
        if not data:
            return Variant(vt, Counted(0, OwnedBuffer.null(allocator)))
        buffer = scope.buffer(size)
        buffer.write(0, data)
        return Variant(vt, Counted(size, buffer))
    if base is VarType.VT_CF:
        start = reader.pos
        size = reader.u32()
        if size < 4:
            raise _malformed(f"clipboard data size {size} is smaller than its format field")
        (discriminator,) = struct.unpack("<i", reader.take(4))
        data = reader.take(size - 4)
        reader.align(start)
        record = scope.buffer(CLIPDATA_SIZE)
        pointer = 0
        if data:
            pointer = scope.raw(allocator.alloc(len(data)))
            allocator.write(pointer, data)
        record.write(0, _CLIPDATA.pack(size, discriminator, pointer))
        return Variant(vt, Pointer(record))
    raise EngineFault(E_INVALIDARG, f"{vt} cannot be deserialized")


def decode_record(allocator: TaskAllocator, data: bytes) -> int:
    """Decode one ``TypedPropertyValue`` into a new heap-allocated record.

    Returns the record address; the caller owns the record and its
    payload.  On failure nothing stays allocated.

    Raises
    ------
    EngineFault
        With ``STG_E_INVALIDPARAMETER`` for truncated or inconsistent
        input and ``E_INVALIDARG`` for unsupported tags.
    """
    reader = _Reader(data)
    with AllocationScope(allocator) as scope:
        variant = _decode_value(reader, scope)
        record = write_native(variant, allocator)
    variant.detach()
    return record.detach()


# ---------------------------------------------------------------------------
# Primitives
# ---------------------------------------------------------------------------


def engine_serialize(allocator: TaskAllocator, record_address: int) -> tuple[bytes, int]:
    """Serialize a native record.  Returns ``(data, status)``."""
    try:
        return encode_record(allocator, record_address), S_OK
    except EngineFault as fault:
        logger.debug("engine_serialize failed (0x%08X): %s", fault.code & 0xFFFFFFFF, fault)
        return b"", fault.code


def engine_deserialize(allocator: TaskAllocator, data: bytes) -> tuple[int, int]:
    """Deserialize bytes into a native record.  Returns ``(address, status)``."""
    try:
        return decode_record(allocator, bytes(data)), S_OK
    except EngineFault as fault:
        logger.debug("engine_deserialize failed (0x%08X): %s", fault.code & 0xFFFFFFFF, fault)
        return 0, fault.code
