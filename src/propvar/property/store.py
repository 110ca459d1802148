"""In-memory property store with the serialized property storage format.

Values are kept serialized (one ``TypedPropertyValue`` each), so the
store holds no native memory between calls.  Iterating the store follows
the enumerator contract: each step materializes a native record, yields
its address and clears it once the consumer moves on.

Serialized layout (little endian), one storage block per format id::

    size      u32   size of the block, this field included
    version   u32   0x53505331 ("1SPS")
    fmtid     16    format id, GUID layout
    values    ...   serialized property values
    0         u32   end of values

The whole stream ends with a zero ``u32``.  A value is::

    size      u32   size of the value, this field included
    id        u32   property id          | name_size u32  bytes incl. \\0
    reserved  u8                         |
                                         | name      UTF-16LE + \\0\\0
    value     TypedPropertyValue

Names are only used in the block of ``NAMED_PROPERTIES_FMTID``.
"""
from __future__ import annotations

import logging
import struct
from collections.abc import Iterator
from pathlib import Path
from typing import Any, BinaryIO
from uuid import UUID

from propvar.codec import VariantCodec
from propvar.engine import STG_E_INVALIDPARAMETER, engine_deserialize
from propvar.errors import SerializationError
from propvar.property.model import EnumeratorEntry, Property, PropertyKey, read_properties
from propvar.types.vartype import VarType, VariantType
from propvar.variant.record import adopt_native

logger = logging.getLogger(__name__)

STORAGE_VERSION = 0x53505331
NAMED_PROPERTIES_FMTID = UUID("d5cdd505-2e9c-101b-9397-08002b2cf9ae")

_BLOCK_HEADER = struct.Struct("<II16s")
_ID_VALUE_HEADER = struct.Struct("<IIB")
_U32 = struct.Struct("<I")
_MAX_PROPERTY_ID = 0xFFFFFFFF


def _check_key(fmtid: UUID, key: PropertyKey) -> None:
    if isinstance(key, str):
        if fmtid != NAMED_PROPERTIES_FMTID:
            raise ValueError(
                f"Named properties belong to {{{NAMED_PROPERTIES_FMTID}}}, not {{{fmtid}}}"
            )
        if not key:
            raise ValueError("Property names must not be empty")
        return
    if isinstance(key, bool) or not isinstance(key, int):
        raise TypeError(f"Property key must be an int or a str, got {type(key).__qualname__}")
    if fmtid == NAMED_PROPERTIES_FMTID:
        raise ValueError(f"{{{fmtid}}} holds named properties only")
    if not 0 <= key <= _MAX_PROPERTY_ID:
        raise ValueError(f"Property id {key} is outside 0..0x{_MAX_PROPERTY_ID:X}")


class MemoryPropertyStore:
    """A property store keyed by ``(fmtid, property id | name)``.

    Parameters
    ----------
    codec:
        Codec used to encode and decode values; defaults to a fresh
        ``VariantCodec`` over the process-wide allocator.
    """

    def __init__(self, codec: VariantCodec | None = None) -> None:
        self.codec = codec if codec is not None else VariantCodec()
        self._values: dict[tuple[UUID, PropertyKey], bytes] = {}

    # ------------------------------------------------------------------
    # Mapping-style access
    # ------------------------------------------------------------------

    def set(
        self,
        fmtid: UUID,
        key: PropertyKey,
        value: Any,
        vt: VarType | VariantType | int | None = None,
    ) -> None:
        """Store ``value`` under ``(fmtid, key)``, replacing any previous value."""
        _check_key(fmtid, key)
        self._values[fmtid, key] = self.codec.encode(value, vt)

    def set_named(
        self, name: str, value: Any, vt: VarType | VariantType | int | None = None
    ) -> None:
        self.set(NAMED_PROPERTIES_FMTID, name, value, vt)

    def get(self, fmtid: UUID, key: PropertyKey, default: Any = None) -> Any:
        data = self._values.get((fmtid, key))
        if data is None:
            return default
        return self.codec.decode(data)

    def delete(self, fmtid: UUID, key: PropertyKey) -> None:
        """Remove a property.  Raises ``KeyError`` if it is absent."""
        del self._values[fmtid, key]

    def clear(self) -> None:
        self._values.clear()

    def __len__(self) -> int:
        return len(self._values)

    def __contains__(self, item: object) -> bool:
        return item in self._values

    def fmtids(self) -> list[UUID]:
        """Format ids in first-insertion order."""
        return list(dict.fromkeys(fmtid for fmtid, _ in self._values))

    # ------------------------------------------------------------------
    # Enumerator contract
    # ------------------------------------------------------------------

    def __iter__(self) -> Iterator[EnumeratorEntry]:
        allocator = self.codec.allocator
        for (fmtid, key), data in list(self._values.items()):
            address, status = engine_deserialize(allocator, data)
            if status < 0:
                raise SerializationError(status, f"stored value {key!r} is corrupt")
            try:
                yield fmtid, key, address
            finally:
                adopt_native(allocator, address).dispose()

    def properties(self) -> list[Property]:
        """Return every property with its value copied out."""
        return list(read_properties(self, self.codec.allocator, self.codec.config))

    # ------------------------------------------------------------------
    # Serialized form
    # ------------------------------------------------------------------

    def to_bytes(self) -> bytes:
        out = bytearray()
        for fmtid in self.fmtids():
            block = bytearray()
            for (value_fmtid, key), data in self._values.items():
                if value_fmtid != fmtid:
                    continue
                if isinstance(key, str):
                    name = key.encode("utf-16-le", errors="surrogatepass") + b"\x00\x00"
                    header = _ID_VALUE_HEADER.pack(
                        _ID_VALUE_HEADER.size + len(name) + len(data), len(name), 0
                    )
                    block.extend(header + name + data)
                else:
                    block.extend(
                        _ID_VALUE_HEADER.pack(_ID_VALUE_HEADER.size + len(data), key, 0) + data
                    )
            block.extend(_U32.pack(0))
            out.extend(
                _BLOCK_HEADER.pack(_BLOCK_HEADER.size + len(block), STORAGE_VERSION, fmtid.bytes_le)
            )
            out.extend(block)
        out.extend(_U32.pack(0))
        return bytes(out)

    @classmethod
    def from_bytes(cls, data: bytes, codec: VariantCodec | None = None) -> "MemoryPropertyStore":
        """Parse a serialized property storage.

        Raises
        ------
        SerializationError
            With ``STG_E_INVALIDPARAMETER`` if the layout is inconsistent.
            Values are validated by decoding them.
        """
        store = cls(codec)
        view = memoryview(bytes(data))
        offset = 0
        while True:
            (size,) = _unpack(_U32, view, offset)
            if size == 0:
                break
            if size < _BLOCK_HEADER.size + 4 or offset + size > len(view):
                raise _corrupt(f"storage block at offset {offset} has invalid size {size}")
            _, version, raw_fmtid = _BLOCK_HEADER.unpack_from(view, offset)
            if version != STORAGE_VERSION:
                raise _corrupt(f"unknown storage version 0x{version:08X}")
            fmtid = UUID(bytes_le=bytes(raw_fmtid))
            store._load_values(view[offset + _BLOCK_HEADER.size : offset + size], fmtid)
            offset += size
        logger.debug("Loaded %d properties from %d bytes", len(store), offset + 4)
        return store

    def _load_values(self, view: memoryview, fmtid: UUID) -> None:
        named = fmtid == NAMED_PROPERTIES_FMTID
        offset = 0
        while True:
            (size,) = _unpack(_U32, view, offset)
            if size == 0:
                return
            if size < _ID_VALUE_HEADER.size or offset + size > len(view):
                raise _corrupt(f"property value at offset {offset} has invalid size {size}")
            _, field, _ = _ID_VALUE_HEADER.unpack_from(view, offset)
            start = offset + _ID_VALUE_HEADER.size
            key: PropertyKey
            if named:
                if field < 2 or field % 2 or start + field > offset + size:
                    raise _corrupt(f"property name at offset {offset} has invalid size {field}")
                raw_name = bytes(view[start : start + field - 2])
                key = raw_name.decode("utf-16-le", errors="surrogatepass")
                start += field
            else:
                key = field
            data = bytes(view[start : offset + size])
            # Decoding once rejects corrupt values at load time.
            self.codec.decode(data)
            self._values[fmtid, key] = data
            offset += size

    def save(self, target: str | Path | BinaryIO) -> None:
        """Write the serialized storage to a path or a binary stream."""
        data = self.to_bytes()
        if isinstance(target, (str, Path)):
            Path(target).write_bytes(data)
        else:
            target.write(data)

    @classmethod
    def load(
        cls, source: str | Path | BinaryIO, codec: VariantCodec | None = None
    ) -> "MemoryPropertyStore":
        """Read a serialized storage from a path or a binary stream."""
        if isinstance(source, (str, Path)):
            data = Path(source).read_bytes()
        else:
            data = source.read()
        return cls.from_bytes(data, codec)

    def __repr__(self) -> str:
        return f"MemoryPropertyStore({len(self)} properties)"


def _corrupt(message: str) -> SerializationError:
    return SerializationError(STG_E_INVALIDPARAMETER, message)


def _unpack(fmt: struct.Struct, view: memoryview, offset: int) -> tuple[Any, ...]:
    if offset + fmt.size > len(view):
        raise _corrupt(f"truncated property storage at offset {offset}")
    return fmt.unpack_from(view, offset)


__all__ = ["MemoryPropertyStore", "NAMED_PROPERTIES_FMTID", "STORAGE_VERSION"]
