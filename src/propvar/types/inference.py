"""Classification of Python values into variant types.

``classify`` decides which ``VariantType`` a Python value becomes;
``widen`` is its inverse and names the Python type that extraction
produces for a tag.  Rules are applied in priority order, most specific
type first: ``bool`` before ``int``, the width wrappers before plain
``int``/``float``, ``OleDate`` before ``datetime``.
"""
from __future__ import annotations

from collections.abc import Iterable, Mapping
from datetime import datetime
from decimal import Decimal
from typing import Any
from uuid import UUID

from propvar.errors import UnsupportedTypeError
from propvar.types.clipdata import ClipData
from propvar.types.scalars import (
    MISSING,
    Currency,
    FileTime,
    Float32,
    Int8,
    Int16,
    Int32,
    Int64,
    OleDate,
    UInt8,
    UInt16,
    UInt32,
    UInt64,
    Vector,
    _FixedInt,
    _MissingType,
)
from propvar.types.vartype import VECTOR_ELEMENT_SIZES, VarType, VariantType

_INT32_MIN, _INT32_MAX = -(1 << 31), (1 << 31) - 1
_INT64_MIN, _INT64_MAX = -(1 << 63), (1 << 63) - 1
_UINT64_MAX = (1 << 64) - 1

INTEGER_TAGS: frozenset[VarType] = frozenset(
    {
        VarType.VT_I1,
        VarType.VT_UI1,
        VarType.VT_I2,
        VarType.VT_UI2,
        VarType.VT_I4,
        VarType.VT_UI4,
        VarType.VT_I8,
        VarType.VT_UI8,
        VarType.VT_INT,
        VarType.VT_UINT,
        VarType.VT_ERROR,
    }
)

_NATIVE_TYPES: dict[VarType, type] = {
    VarType.VT_EMPTY: type(None),
    VarType.VT_NULL: type(None),
    VarType.VT_I1: Int8,
    VarType.VT_UI1: UInt8,
    VarType.VT_I2: Int16,
    VarType.VT_UI2: UInt16,
    VarType.VT_I4: Int32,
    VarType.VT_UI4: UInt32,
    VarType.VT_INT: Int32,
    VarType.VT_UINT: UInt32,
    VarType.VT_ERROR: Int32,
    VarType.VT_I8: Int64,
    VarType.VT_UI8: UInt64,
    VarType.VT_R4: Float32,
    VarType.VT_R8: float,
    VarType.VT_BOOL: bool,
    VarType.VT_CY: Currency,
    VarType.VT_DECIMAL: Decimal,
    VarType.VT_DATE: OleDate,
    VarType.VT_FILETIME: datetime,
    VarType.VT_CLSID: UUID,
    VarType.VT_BSTR: str,
    VarType.VT_LPSTR: str,
    VarType.VT_LPWSTR: str,
    VarType.VT_BLOB: bytes,
    VarType.VT_CF: ClipData,
    VarType.VT_VARIANT: object,
}


def is_sequence(value: Any) -> bool:
    """Return True for values that classify as vectors."""
    if isinstance(value, (str, bytes, bytearray, memoryview, Mapping, ClipData)):
        return False
    return isinstance(value, Iterable)


def _classify_int(value: int) -> VarType:
    if _INT32_MIN <= value <= _INT32_MAX:
        return VarType.VT_I4
    if _INT64_MIN <= value <= _INT64_MAX:
        return VarType.VT_I8
    if 0 <= value <= _UINT64_MAX:
        return VarType.VT_UI8
    raise OverflowError(f"{value} does not fit in a 64-bit integer variant")


def classify_scalar(value: Any) -> VarType:
    """Classify a non-sequence value to its base tag.

    Raises
    ------
    UnsupportedTypeError
        If no rule matches the value's type.
    OverflowError
        If a plain ``int`` exceeds the 64-bit range.
    """
    if value is None:
        return VarType.VT_NULL
    if isinstance(value, _MissingType):
        return VarType.VT_EMPTY
    if isinstance(value, bool):
        return VarType.VT_BOOL
    if isinstance(value, _FixedInt):
        return value.vartype
    if isinstance(value, FileTime):
        return VarType.VT_FILETIME
    if isinstance(value, int):
        return _classify_int(value)
    if isinstance(value, Float32):
        return VarType.VT_R4
    if isinstance(value, float):
        return VarType.VT_R8
    if isinstance(value, Currency):
        return VarType.VT_CY
    if isinstance(value, Decimal):
        return VarType.VT_DECIMAL
    if isinstance(value, str):
        return VarType.VT_LPWSTR
    if isinstance(value, OleDate):
        return VarType.VT_DATE
    if isinstance(value, datetime):
        return VarType.VT_FILETIME
    if isinstance(value, UUID):
        return VarType.VT_CLSID
    if isinstance(value, ClipData):
        return VarType.VT_CF
    if isinstance(value, (bytes, bytearray, memoryview)):
        return VarType.VT_BLOB
    raise UnsupportedTypeError.for_value(value)


def infer_element_type(items: list[Any], declared: VarType | None = None) -> VariantType:
    """Fix the element type of a vector once.

    The declared type wins; otherwise the first element decides.

    Raises
    ------
    UnsupportedTypeError
        If the sequence is empty and undeclared, or the element type
        cannot live inside a vector.
    """
    if declared is not None:
        element = VarType(declared)
    elif not items:
        raise UnsupportedTypeError(
            "Cannot infer the element type of an empty sequence; "
            "wrap it in Vector(..., element_type=...)."
        )
    else:
        first = items[0]
        if is_sequence(first):
            raise UnsupportedTypeError(
                "Vectors of sequences are not supported; use a VT_VARIANT vector.",
                python_type=type(first),
            )
        element = classify_scalar(first)
    if element not in VECTOR_ELEMENT_SIZES:
        raise UnsupportedTypeError(
            f"{element.name} is not a valid vector element type.",
            vartype=int(element) | 0x1000,
        )
    return VariantType(element)


def classify(value: Any) -> VariantType:
    """Return the ``VariantType`` a Python value becomes.

    Iterators are consumed to inspect their first element; pass a list
    or a ``Vector`` when the value must be reused.

    Raises
    ------
    UnsupportedTypeError
        If the value, or the element of a sequence, has no rule.
    """
    from propvar.variant.variant import Variant

    if isinstance(value, Variant):
        return value.vt
    if is_sequence(value):
        declared = value.element_type if isinstance(value, Vector) else None
        items = value if isinstance(value, list) else list(value)
        return infer_element_type(items, declared).vector_of()
    return VariantType(classify_scalar(value))


def widen(vt: VariantType | VarType) -> type:
    """Return the Python type extraction produces for a base tag.

    Vectors widen to ``list``.

    Raises
    ------
    UnsupportedTypeError
        For interface tags and tags with no native mapping.
    """
    if isinstance(vt, VariantType):
        if vt.vector:
            return list
        vt = vt.base
    try:
        return _NATIVE_TYPES[vt]
    except KeyError:
        raise UnsupportedTypeError.for_tag(int(vt)) from None


__all__ = [
    "INTEGER_TAGS",
    "MISSING",
    "classify",
    "classify_scalar",
    "infer_element_type",
    "is_sequence",
    "widen",
]
