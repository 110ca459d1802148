"""Extraction: ``Variant`` → Python value (the read path).

Extraction copies everything it needs out of the variant's allocations,
so the returned value is independent of the variant and stays valid
after the variant is disposed.  Vectors come back as ``Vector`` lists
carrying their element type, so they classify to the same tag again.
"""
from __future__ import annotations

import struct
from typing import Any, Callable
from uuid import UUID

from propvar.config import DEFAULT_CONFIG, CodecConfig
from propvar.errors import UnsupportedTypeError
from propvar.memory import marshal
from propvar.memory.buffer import OwnedBuffer
from propvar.types.clipdata import CF_FMTID, CF_MACINTOSH, CF_WINDOWS, ClipData
from propvar.types.scalars import Vector
from propvar.types.vartype import VarType, VariantType
from propvar.variant.convert import SCALAR_FORMATS, from_native
from propvar.variant.payload import Counted, Inline, Pointer
from propvar.variant.record import GUID_SIZE, RECORD_SIZE, variant_from_native
from propvar.variant.variant import Variant

_EMPTY_GUID = UUID(int=0)


def extract(variant: Variant, config: CodecConfig | None = None) -> Any:
    """Return the Python value held by ``variant``.

    Raises
    ------
    UnsupportedTypeError
        For tags with no Python mapping (interface pointers, reserved
        tags); the error carries the raw tag value.
    UseAfterReleaseError
        If the variant was disposed.
    """
    config = config if config is not None else DEFAULT_CONFIG
    vt = variant.vt
    payload = variant.payload
    if vt.vector:
        if not isinstance(payload, Counted):
            raise UnsupportedTypeError.for_tag(int(vt))
        return _extract_vector(vt, payload, config)
    handler = _SCALAR_HANDLERS.get(vt.base)
    if handler is None:
        raise UnsupportedTypeError.for_tag(int(vt))
    return handler(vt.base, payload, config)


# ---------------------------------------------------------------------------
# Scalars
# ---------------------------------------------------------------------------


def _nothing(base: VarType, payload: Any, config: CodecConfig) -> None:
    return None


def _inline(base: VarType, payload: Any, config: CodecConfig) -> Any:
    assert isinstance(payload, Inline)
    return from_native(base, payload.value)


def _string(base: VarType, payload: Any, config: CodecConfig) -> str | None:
    assert isinstance(payload, Pointer)
    return _read_string(base, payload.buffer, config)


def _read_string(base: VarType, buffer: OwnedBuffer, config: CodecConfig) -> str | None:
    allocator = buffer.allocator
    address = buffer.address
    if address == 0:
        return None
    if base is VarType.VT_LPWSTR:
        return marshal.ptr_to_string_uni(allocator, address)
    if base is VarType.VT_LPSTR:
        return marshal.ptr_to_string_ansi(allocator, address, config.ansi_encoding)
    return marshal.ptr_to_string_bstr(allocator, address + 4)


def _guid(base: VarType, payload: Any, config: CodecConfig) -> UUID:
    assert isinstance(payload, Pointer)
    if payload.buffer.is_null:
        return _EMPTY_GUID
    return UUID(bytes_le=payload.buffer.allocator.read(payload.buffer.address, GUID_SIZE))


def _blob(base: VarType, payload: Any, config: CodecConfig) -> bytes:
    assert isinstance(payload, Counted)
    if payload.count == 0 or payload.buffer.is_null:
        return b""
    return payload.buffer.allocator.read(payload.buffer.address, payload.count)


def _clipdata(base: VarType, payload: Any, config: CodecConfig) -> ClipData | None:
    assert isinstance(payload, Pointer)
    record = payload.buffer
    if record.is_null:
        return None
    allocator = record.allocator
    size, discriminator, pointer = struct.unpack("<IiQ", allocator.read(record.address, 16))
    payload_size = max(size - 4, 0)
    if discriminator in (CF_WINDOWS, CF_MACINTOSH):
        if pointer == 0 or payload_size < 4:
            return ClipData()
        clip_format = marshal.read_int(allocator, pointer, 4)
        data = allocator.read(pointer + 4, payload_size - 4)
        if clip_format == 0:
            return ClipData()
        return ClipData(format=clip_format, data=data, mac=discriminator == CF_MACINTOSH)
    if discriminator == CF_FMTID:
        if pointer == 0:
            return ClipData(fmtid=_EMPTY_GUID)
        fmtid = UUID(bytes_le=allocator.read(pointer, GUID_SIZE))
        data = allocator.read(pointer + GUID_SIZE, max(payload_size - GUID_SIZE, 0))
        return ClipData(fmtid=fmtid, data=data)
    if discriminator > 0 and pointer != 0:
        name = marshal.ptr_to_string_uni(allocator, pointer)
        if name:
            name_size = discriminator * 2
            data = allocator.read(pointer + name_size, max(payload_size - name_size, 0))
            return ClipData(name=name, data=data)
    # Unknown discriminators decode to the empty descriptor rather than failing.
    return ClipData()


def _opaque(base: VarType, payload: Any, config: CodecConfig) -> Any:
    raise UnsupportedTypeError.for_tag(int(base))


_SCALAR_HANDLERS: dict[VarType, Callable[[VarType, Any, CodecConfig], Any]] = {
    VarType.VT_EMPTY: _nothing,
    VarType.VT_NULL: _nothing,
    **{tag: _inline for tag in SCALAR_FORMATS},
    VarType.VT_DECIMAL: _inline,
    VarType.VT_LPSTR: _string,
    VarType.VT_LPWSTR: _string,
    VarType.VT_BSTR: _string,
    VarType.VT_CLSID: _guid,
    VarType.VT_BLOB: _blob,
    VarType.VT_CF: _clipdata,
    VarType.VT_UNKNOWN: _opaque,
    VarType.VT_DISPATCH: _opaque,
}


# ---------------------------------------------------------------------------
# Vectors
# ---------------------------------------------------------------------------


def _extract_vector(vt: VariantType, payload: Counted, config: CodecConfig) -> Vector:
    base = vt.base
    count = payload.count
    buffer = payload.buffer
    if count == 0:
        return Vector([], element_type=base)
    allocator = buffer.allocator
    address = buffer.address

    if base in (VarType.VT_LPSTR, VarType.VT_LPWSTR, VarType.VT_BSTR):
        items: list[Any] = []
        for index in range(count):
            pointer = marshal.read_pointer(allocator, address + index * marshal.POINTER_SIZE)
            if pointer == 0:
                items.append(None)
            elif base is VarType.VT_LPWSTR:
                items.append(marshal.ptr_to_string_uni(allocator, pointer))
            elif base is VarType.VT_LPSTR:
                items.append(marshal.ptr_to_string_ansi(allocator, pointer, config.ansi_encoding))
            else:
                items.append(marshal.ptr_to_string_bstr(allocator, pointer))
        return Vector(items, element_type=base)

    if base is VarType.VT_VARIANT:
        return Vector(
            [
                variant_from_native(allocator, address + index * RECORD_SIZE, config)
                for index in range(count)
            ],
            element_type=base,
        )

    if base is VarType.VT_CLSID:
        data = allocator.read(address, count * GUID_SIZE)
        return Vector(
            [UUID(bytes_le=data[i : i + GUID_SIZE]) for i in range(0, len(data), GUID_SIZE)],
            element_type=base,
        )

    if base is VarType.VT_BOOL:
        data = allocator.read(address, count * 2)
        return Vector([slot != 0 for (slot,) in struct.iter_unpack("<h", data)], element_type=base)

    if base in SCALAR_FORMATS:
        fmt = SCALAR_FORMATS[base]
        data = allocator.read(address, count * struct.calcsize(fmt))
        return Vector(
            [from_native(base, native) for (native,) in struct.iter_unpack(fmt, data)],
            element_type=base,
        )

    raise UnsupportedTypeError.for_tag(int(vt))
