"""propvar: a typed-value codec for PROPVARIANT-style property values.

Public API
----------
The stable public surface is everything exported from this module.
Anything inside submodules not re-exported here is considered private
and may change without notice.

Example
-------
::

    import propvar
    from propvar.types import Int16, Vector, VarType

    # Python value -> bytes -> Python value
    data = propvar.encode(["alpha", "beta"])
    propvar.decode(data)
    ['alpha', 'beta']

    # Pin a width or an encoding
    propvar.encode(Int16(7))
    propvar.encode("text", vt=VarType.VT_BSTR)

    # Keep a live variant, dispose it exactly once
    with propvar.to_variant([True, False]) as variant:
        variant.vt            # VT_VECTOR|VT_BOOL
        propvar.serialize(variant)

    propvar.__version__
    '0.1.0'
"""
from __future__ import annotations

from typing import TYPE_CHECKING, Any

from propvar.config import CodecConfig
from propvar.errors import (
    InvalidPointerError,
    SerializationError,
    TypeMismatchError,
    UnsupportedTypeError,
    UseAfterReleaseError,
    VariantError,
)

__version__: str = "0.1.0"

if TYPE_CHECKING:
    from propvar.types.vartype import VarType, VariantType
    from propvar.variant.variant import Variant


def to_variant(value: Any, vt: "VarType | VariantType | int | None" = None) -> "Variant":
    """Construct a ``Variant`` owning a copy of ``value``.

    Parameters
    ----------
    value:
        Any supported Python value; see ``propvar.types.classify``.
    vt:
        Optional explicit variant type.

    Returns
    -------
    Variant
        A live variant; dispose it (or use it as a context manager).
    """
    from propvar.codec import to_variant as _to_variant

    return _to_variant(value, vt)


def from_variant(variant: "Variant") -> Any:
    """Extract the Python value of a live ``Variant``."""
    from propvar.codec import from_variant as _from_variant

    return _from_variant(variant)


def serialize(variant: "Variant") -> bytes:
    """Flatten a ``Variant`` to its serialized bytes.

    Raises
    ------
    SerializationError
        If the variant's type has no serialized form.
    """
    from propvar.codec import serialize as _serialize

    return _serialize(variant)


def deserialize(data: bytes) -> "Variant":
    """Rebuild a ``Variant`` from serialized bytes.

    Raises
    ------
    SerializationError
        If ``data`` is malformed or truncated.
    """
    from propvar.codec import deserialize as _deserialize

    return _deserialize(data)


def encode(value: Any, vt: "VarType | VariantType | int | None" = None) -> bytes:
    """Serialize a Python value in one step."""
    from propvar.codec import encode as _encode

    return _encode(value, vt)


def decode(data: bytes) -> Any:
    """Deserialize bytes straight to a Python value."""
    from propvar.codec import decode as _decode

    return _decode(data)


def classify(value: Any) -> "VariantType":
    """Return the variant type ``value`` would be constructed with."""
    from propvar.types.inference import classify as _classify

    return _classify(value)


__all__ = [
    "__version__",
    "CodecConfig",
    "VariantError",
    "UnsupportedTypeError",
    "TypeMismatchError",
    "SerializationError",
    "UseAfterReleaseError",
    "InvalidPointerError",
    "to_variant",
    "from_variant",
    "serialize",
    "deserialize",
    "encode",
    "decode",
    "classify",
]
