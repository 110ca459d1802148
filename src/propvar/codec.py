"""High-level codec facade.

``VariantCodec`` bundles a ``CodecConfig`` with a ``TaskAllocator`` and
exposes the four operations of the codec::

    codec = VariantCodec()
    with codec.to_variant(["a", "b"]) as variant:
        data = codec.serialize(variant)
    with codec.deserialize(data) as variant:
        assert codec.from_variant(variant) == ["a", "b"]

The module-level functions use a shared default codec.
"""
from __future__ import annotations

import logging
from typing import Any

from propvar.config import DEFAULT_CONFIG, CodecConfig
from propvar.engine import engine_deserialize, engine_serialize
from propvar.errors import SerializationError
from propvar.memory.allocator import TaskAllocator, task_allocator
from propvar.types.vartype import VarType, VariantType
from propvar.variant.construct import construct
from propvar.variant.extract import extract
from propvar.variant.record import adopt_native, write_native
from propvar.variant.variant import Variant

logger = logging.getLogger(__name__)


class VariantCodec:
    """Converts between Python values, variants and serialized bytes.

    Parameters
    ----------
    config:
        Encoding options; defaults to ``DEFAULT_CONFIG``.
    allocator:
        Address space for variant payloads; defaults to the process-wide
        task allocator.
    """

    def __init__(
        self,
        config: CodecConfig | None = None,
        allocator: TaskAllocator | None = None,
    ) -> None:
        self.config = config if config is not None else DEFAULT_CONFIG
        self.allocator = allocator if allocator is not None else task_allocator()

    def to_variant(self, value: Any, vt: VarType | VariantType | int | None = None) -> Variant:
        """Construct a variant owning a copy of ``value``."""
        return construct(value, vt, allocator=self.allocator, config=self.config)

    def from_variant(self, variant: Variant) -> Any:
        """Extract the Python value of ``variant``; the variant stays live."""
        return extract(variant, self.config)

    def serialize(self, variant: Variant) -> bytes:
        """Flatten ``variant`` to bytes.

        Raises
        ------
        SerializationError
            If the engine rejects the variant (e.g. an unsupported tag).
        """
        record = write_native(variant, self.allocator)
        try:
            data, status = engine_serialize(self.allocator, record.address)
        finally:
            record.release()
        if status < 0:
            raise SerializationError(status, f"cannot serialize {variant.vt}")
        return data

    def deserialize(self, data: bytes) -> Variant:
        """Rebuild a variant from bytes produced by ``serialize``.

        Raises
        ------
        SerializationError
            If ``data`` is malformed or truncated.  Nothing stays
            allocated in that case.
        """
        address, status = engine_deserialize(self.allocator, data)
        if status < 0:
            raise SerializationError(status, f"cannot deserialize {len(data)} bytes")
        return adopt_native(self.allocator, address)

    def encode(self, value: Any, vt: VarType | VariantType | int | None = None) -> bytes:
        """Serialize a Python value in one step."""
        with self.to_variant(value, vt) as variant:
            return self.serialize(variant)

    def decode(self, data: bytes) -> Any:
        """Deserialize bytes straight to a Python value."""
        with self.deserialize(data) as variant:
            return self.from_variant(variant)

    def __repr__(self) -> str:
        return f"VariantCodec(config={self.config!r}, allocator={self.allocator!r})"


_default_codec: VariantCodec | None = None


def default_codec() -> VariantCodec:
    global _default_codec
    if _default_codec is None:
        _default_codec = VariantCodec()
        logger.debug("Created default codec %r", _default_codec)
    return _default_codec


def to_variant(value: Any, vt: VarType | VariantType | int | None = None) -> Variant:
    return default_codec().to_variant(value, vt)


def from_variant(variant: Variant) -> Any:
    return default_codec().from_variant(variant)


def serialize(variant: Variant) -> bytes:
    return default_codec().serialize(variant)


def deserialize(data: bytes) -> Variant:
    return default_codec().deserialize(data)


def encode(value: Any, vt: VarType | VariantType | int | None = None) -> bytes:
    return default_codec().encode(value, vt)


def decode(data: bytes) -> Any:
    return default_codec().decode(data)
