"""Construction: Python value → ``Variant`` (the write path).

Scalars are copied inline.  Strings, GUIDs, blobs, clip data and
vectors get owned allocations from the task allocator.  If anything
fails part-way, every allocation made for the value is released before
the error propagates, so no partial variant is ever observable.

Values whose type has no classification rule (foreign objects) become
``VT_EMPTY`` instead of raising.  Unsupported *elements* of a sequence
still raise.
"""
from __future__ import annotations

import logging
import struct
from collections.abc import Iterator
from datetime import datetime
from decimal import Decimal
from types import TracebackType
from typing import Any
from uuid import UUID

from propvar.config import DEFAULT_CONFIG, CodecConfig
from propvar.errors import TypeMismatchError, UnsupportedTypeError
from propvar.memory import marshal
from propvar.memory.allocator import TaskAllocator, task_allocator
from propvar.memory.buffer import OwnedBuffer
from propvar.types.clipdata import CF_EMPTY, CF_FMTID, ClipData
from propvar.types.inference import (
    INTEGER_TAGS,
    classify,
    classify_scalar,
    infer_element_type,
    is_sequence,
)
from propvar.types.vartype import (
    STRING_TYPES,
    VECTOR_ELEMENT_SIZES,
    VarType,
    VariantType,
)
from propvar.variant.convert import SCALAR_FORMATS, integer_range, pack_scalar, to_native
from propvar.variant.payload import EMPTY_PAYLOAD, Counted, Inline, Pointer
from propvar.variant.record import CLIPDATA_SIZE, GUID_SIZE, RECORD_SIZE, write_record
from propvar.variant.variant import Variant

logger = logging.getLogger(__name__)

# Python types a tag accepts besides values that classify to it exactly.
_COMPATIBLE: dict[VarType, tuple[type, ...]] = {
    **{tag: (int,) for tag in INTEGER_TAGS},
    VarType.VT_R4: (float, int),
    VarType.VT_R8: (float, int),
    VarType.VT_BOOL: (bool,),
    VarType.VT_CY: (Decimal, int),
    VarType.VT_DATE: (datetime,),
    VarType.VT_FILETIME: (datetime,),
    VarType.VT_CLSID: (UUID,),
    VarType.VT_LPSTR: (str,),
    VarType.VT_LPWSTR: (str,),
    VarType.VT_BSTR: (str,),
}


class AllocationScope:
    """Tracks buffers allocated for one value; releases them all on error."""

    def __init__(self, allocator: TaskAllocator) -> None:
        self.allocator = allocator
        self._buffers: list[OwnedBuffer] = []
        self._raw: list[int] = []
        self._handed_off: list[Variant] = []

    def buffer(self, size: int) -> OwnedBuffer:
        buffer = OwnedBuffer.allocate(self.allocator, size)
        self._buffers.append(buffer)
        return buffer

    def raw(self, address: int) -> int:
        """Track a raw address that will end up referenced from a buffer."""
        self._raw.append(address)
        return address

    def adopt(self, variant: Variant) -> None:
        """Track a sub-variant until it is folded into its parent."""
        self._buffers.append(_VariantGuard(variant))  # type: ignore[arg-type]

    def hand_off(self, variant: Variant) -> None:
        """Detach a sub-variant whose record now lives in a parent buffer.

        Detaching waits until the scope exits cleanly, so a later failure
        still releases everything the sub-variant allocated.
        """
        self._handed_off.append(variant)

    def __enter__(self) -> "AllocationScope":
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        if exc_type is None:
            for variant in self._handed_off:
                variant.detach()
            return
        for address in reversed(self._raw):
            self.allocator.free(address)
        for buffer in reversed(self._buffers):
            buffer.release()
        logger.debug("Released partial allocations after %s", exc_type.__name__)


class _VariantGuard:
    """Adapter giving a sub-variant the ``release`` method of a buffer."""

    def __init__(self, variant: Variant) -> None:
        self._variant = variant

    def release(self) -> None:
        self._variant.dispose()


# ---------------------------------------------------------------------------
# Entry point
# ---------------------------------------------------------------------------


def _as_variant_type(vt: VarType | VariantType | int) -> VariantType:
    if isinstance(vt, VariantType):
        return vt
    return VariantType.from_int(int(vt))


def construct(
    value: Any,
    vt: VarType | VariantType | int | None = None,
    allocator: TaskAllocator | None = None,
    config: CodecConfig | None = None,
) -> Variant:
    """Populate a new ``Variant`` from a Python value.

    Parameters
    ----------
    value:
        The value to encode.  An existing ``Variant`` is copied through
        its extracted value.
    vt:
        Optional explicit type, e.g. ``VarType.VT_BSTR`` for a string or
        ``VarType.VT_UI2`` for a plain ``int``.  Without it the type is
        inferred with ``classify``.
    allocator:
        Where out-of-line payloads are allocated.
    config:
        Encoding options.

    Raises
    ------
    UnsupportedTypeError
        If an explicit ``vt`` cannot hold ``value`` or a sequence holds
        unsupported elements.
    TypeMismatchError
        If a vector's elements disagree with its element type.
    """
    allocator = allocator if allocator is not None else task_allocator()
    config = config if config is not None else DEFAULT_CONFIG

    if isinstance(value, Variant):
        from propvar.variant.extract import extract

        if vt is None:
            vt = value.vt
        value = extract(value, config)
    if isinstance(value, Iterator):
        value = list(value)

    if vt is not None:
        target = _as_variant_type(vt)
    else:
        try:
            target = classify(value)
        except UnsupportedTypeError:
            if is_sequence(value):
                raise
            logger.debug(
                "No variant mapping for %s; constructing VT_EMPTY", type(value).__qualname__
            )
            return Variant.empty()

    with AllocationScope(allocator) as allocations:
        return _build(target, value, allocations, config)


def _build(target: VariantType, value: Any, allocations: AllocationScope, config: CodecConfig) -> Variant:
    if target.vector:
        return _build_vector(target, value, allocations, config)
    base = target.base
    if base in (VarType.VT_EMPTY, VarType.VT_NULL):
        return Variant(target, EMPTY_PAYLOAD)
    if base is VarType.VT_DECIMAL or base in SCALAR_FORMATS:
        return Variant(target, Inline(to_native(base, value, config)))
    if base in STRING_TYPES:
        return Variant(target, Pointer(_string_buffer(base, value, allocations, config)))
    if base is VarType.VT_CLSID:
        buffer = allocations.buffer(GUID_SIZE)
        buffer.write(0, _guid_bytes(value))
        return Variant(target, Pointer(buffer))
    if base is VarType.VT_BLOB:
        return _build_blob(target, value, allocations)
    if base is VarType.VT_CF:
        return _build_clipdata(target, value, allocations)
    raise UnsupportedTypeError(
        f"Cannot construct a {base.name} variant from Python values.", vartype=int(target)
    )


# ---------------------------------------------------------------------------
# Out-of-line scalars
# ---------------------------------------------------------------------------


def _require_str(base: VarType, value: Any) -> str:
    if not isinstance(value, str):
        raise UnsupportedTypeError(
            f"Cannot encode a value of type '{type(value).__qualname__}' as {base.name}.",
            vartype=int(base),
            python_type=type(value),
        )
    return value


def _encode_string(base: VarType, text: str, config: CodecConfig) -> bytes:
    """Return the full allocation content of a string in ``base`` encoding."""
    if base is VarType.VT_LPWSTR:
        return text.encode("utf-16-le", errors="surrogatepass") + b"\x00\x00"
    if base is VarType.VT_LPSTR:
        return text.encode(config.ansi_encoding, errors="replace") + b"\x00"
    chars = text.encode("utf-16-le", errors="surrogatepass")
    return struct.pack("<I", len(chars)) + chars + b"\x00\x00"


def _string_buffer(
    base: VarType, value: Any, allocations: AllocationScope, config: CodecConfig
) -> OwnedBuffer:
    data = _encode_string(base, _require_str(base, value), config)
    buffer = allocations.buffer(len(data))
    buffer.write(0, data)
    return buffer


def _guid_bytes(value: Any) -> bytes:
    if not isinstance(value, UUID):
        raise UnsupportedTypeError(
            f"Cannot encode a value of type '{type(value).__qualname__}' as VT_CLSID.",
            vartype=int(VarType.VT_CLSID),
            python_type=type(value),
        )
    return value.bytes_le


def _build_blob(target: VariantType, value: Any, allocations: AllocationScope) -> Variant:
    if not isinstance(value, (bytes, bytearray, memoryview)):
        raise UnsupportedTypeError(
            f"Cannot encode a value of type '{type(value).__qualname__}' as VT_BLOB.",
            vartype=int(VarType.VT_BLOB),
            python_type=type(value),
        )
    data = bytes(value)
    if not data:
        return Variant(target, Counted(0, OwnedBuffer.null(allocations.allocator)))
    buffer = allocations.buffer(len(data))
    buffer.write(0, data)
    return Variant(target, Counted(len(data), buffer))


def clip_payload(clip: ClipData) -> bytes:
    """Return the bytes ``pClipData`` points at for ``clip``."""
    discriminator = clip.discriminator
    if discriminator == CF_EMPTY:
        return b""
    if discriminator == CF_FMTID:
        return clip.fmtid.bytes_le + clip.data
    if discriminator > 0:
        return clip.name.encode("utf-16-le", errors="surrogatepass") + b"\x00\x00" + clip.data
    return struct.pack("<I", clip.format) + clip.data


def _build_clipdata(target: VariantType, value: Any, allocations: AllocationScope) -> Variant:
    if not isinstance(value, ClipData):
        raise UnsupportedTypeError(
            f"Cannot encode a value of type '{type(value).__qualname__}' as VT_CF.",
            vartype=int(VarType.VT_CF),
            python_type=type(value),
        )
    data = clip_payload(value)
    record = allocations.buffer(CLIPDATA_SIZE)
    pointer = 0
    if data:
        pointer = allocations.raw(allocations.allocator.alloc(len(data)))
        allocations.allocator.write(pointer, data)
    record.write(0, struct.pack("<IiQ", 4 + len(data), value.discriminator, pointer))
    return Variant(target, Pointer(record))


# ---------------------------------------------------------------------------
# Vectors
# ---------------------------------------------------------------------------


def _check_element(element_vt: VarType, item: Any, index: int) -> None:
    if element_vt is VarType.VT_VARIANT:
        return
    if is_sequence(item):
        raise TypeMismatchError(element_vt.name, "a sequence", index)
    found = classify_scalar(item)
    if found is element_vt:
        return
    if type(item) in _COMPATIBLE.get(element_vt, ()):
        # Plain ints must also fit the width the vector was given.
        if element_vt in INTEGER_TAGS:
            low, high = integer_range(element_vt)
            if not low <= item <= high:
                raise TypeMismatchError(element_vt.name, found.name, index)
        return
    raise TypeMismatchError(element_vt.name, found.name, index)


def _build_vector(
    target: VariantType, value: Any, allocations: AllocationScope, config: CodecConfig
) -> Variant:
    if not is_sequence(value):
        raise UnsupportedTypeError(
            f"{target} needs a sequence, got '{type(value).__qualname__}'.",
            vartype=int(target),
            python_type=type(value),
        )
    items = value if isinstance(value, list) else list(value)
    element = infer_element_type(items, target.base)
    target = element.vector_of()
    base = element.base
    if config.validate_arrays:
        for index, item in enumerate(items):
            _check_element(base, item, index)

    if not items:
        return Variant(target, Counted(0, OwnedBuffer.null(allocations.allocator)))

    stride = VECTOR_ELEMENT_SIZES[base]
    buffer = allocations.buffer(stride * len(items))
    if base in STRING_TYPES:
        for index, item in enumerate(items):
            data = _encode_string(base, _require_str(base, item), config)
            address = allocations.raw(allocations.allocator.alloc(len(data)))
            allocations.allocator.write(address, data)
            pointer = address + 4 if base is VarType.VT_BSTR else address
            buffer.write(index * marshal.POINTER_SIZE, struct.pack("<Q", pointer))
    elif base is VarType.VT_VARIANT:
        for index, item in enumerate(items):
            allocations.hand_off(_build_variant_element(buffer, index, item, allocations, config))
    elif base is VarType.VT_CLSID:
        buffer.write(0, b"".join(_guid_bytes(item) for item in items))
    else:
        buffer.write(
            0, b"".join(pack_scalar(base, to_native(base, item, config)) for item in items)
        )
    return Variant(target, Counted(len(items), buffer))


def _build_variant_element(
    buffer: OwnedBuffer,
    index: int,
    item: Any,
    allocations: AllocationScope,
    config: CodecConfig,
) -> Variant:
    if is_sequence(item):
        raise UnsupportedTypeError(
            "VT_VARIANT vector elements cannot themselves be vectors.",
            python_type=type(item),
        )
    element = construct(item, allocator=allocations.allocator, config=config)
    allocations.adopt(element)
    write_record(element, allocations.allocator, buffer.address + index * RECORD_SIZE)
    return element
