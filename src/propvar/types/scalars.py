"""Python-native value types that pin a variant encoding.

Python has one ``int`` and one ``float``; the platform has eight integer
widths and two float widths.  The wrappers here are ``int``/``float``
subclasses that record the intended width, so classification can pick
the exact tag and extraction can hand back a value that classifies the
same way again.  They compare equal to the plain numbers they wrap.
"""
from __future__ import annotations

import struct
from collections.abc import Iterable
from datetime import datetime
from decimal import Decimal
from typing import Any, ClassVar

from propvar.types.vartype import VarType


class _FixedInt(int):
    """Base for range-checked integer wrappers."""

    bits: ClassVar[int] = 32
    signed: ClassVar[bool] = True
    vartype: ClassVar[VarType] = VarType.VT_I4

    def __new__(cls, value: Any = 0) -> "_FixedInt":
        number = int(value)
        if cls.signed:
            low, high = -(1 << (cls.bits - 1)), (1 << (cls.bits - 1)) - 1
        else:
            low, high = 0, (1 << cls.bits) - 1
        if not low <= number <= high:
            raise OverflowError(f"{number} does not fit in {cls.__name__} [{low}, {high}]")
        return super().__new__(cls, number)

    def __repr__(self) -> str:
        return f"{type(self).__name__}({int(self)})"

    def __str__(self) -> str:
        return int.__repr__(self)


class Int8(_FixedInt):
    bits, signed, vartype = 8, True, VarType.VT_I1


class UInt8(_FixedInt):
    bits, signed, vartype = 8, False, VarType.VT_UI1


class Int16(_FixedInt):
    bits, signed, vartype = 16, True, VarType.VT_I2


class UInt16(_FixedInt):
    bits, signed, vartype = 16, False, VarType.VT_UI2


class Int32(_FixedInt):
    bits, signed, vartype = 32, True, VarType.VT_I4


class UInt32(_FixedInt):
    bits, signed, vartype = 32, False, VarType.VT_UI4


class Int64(_FixedInt):
    bits, signed, vartype = 64, True, VarType.VT_I8


class UInt64(_FixedInt):
    bits, signed, vartype = 64, False, VarType.VT_UI8


class Float32(float):
    """A ``float`` rounded to IEEE single precision (``VT_R4``)."""

    def __new__(cls, value: Any = 0.0) -> "Float32":
        rounded = struct.unpack("<f", struct.pack("<f", float(value)))[0]
        return super().__new__(cls, rounded)

    def __repr__(self) -> str:
        return f"Float32({float(self)!r})"

    def __str__(self) -> str:
        return float.__repr__(self)


class FileTime(int):
    """Raw FILETIME ticks: 100-nanosecond intervals since 1601-01-01 UTC."""

    def __new__(cls, ticks: Any = 0) -> "FileTime":
        number = int(ticks)
        if not -(1 << 63) <= number < (1 << 63):
            raise OverflowError(f"{number} does not fit in a FILETIME")
        return super().__new__(cls, number)

    def __repr__(self) -> str:
        return f"FileTime({int(self)})"

    def __str__(self) -> str:
        return int.__repr__(self)


class OleDate(datetime):
    """A ``datetime`` that encodes as an OLE automation date (``VT_DATE``)."""

    @classmethod
    def from_datetime(cls, value: datetime) -> "OleDate":
        return cls(
            value.year,
            value.month,
            value.day,
            value.hour,
            value.minute,
            value.second,
            value.microsecond,
            tzinfo=value.tzinfo,
        )


class Currency(Decimal):
    """A ``Decimal`` that encodes as currency (``VT_CY``, 4 fixed decimals)."""


class _MissingType:
    """Sentinel for an absent parameter, distinct from ``None``."""

    _instance: ClassVar["_MissingType | None"] = None

    def __new__(cls) -> "_MissingType":
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __repr__(self) -> str:
        return "MISSING"

    def __bool__(self) -> bool:
        return False


MISSING = _MissingType()


class Vector(list):
    """A list with a declared element type.

    Use it when the element type cannot be inferred from the first
    element: empty vectors, vectors of strings that should use
    ``VT_LPSTR`` or ``VT_BSTR``, or heterogeneous ``VT_VARIANT`` vectors.

    Parameters
    ----------
    items:
        The elements.
    element_type:
        The base tag of every element, or ``None`` to infer it.
    """

    def __init__(self, items: Iterable[Any] = (), element_type: VarType | None = None) -> None:
        super().__init__(items)
        self.element_type = element_type

    def __repr__(self) -> str:
        kind = self.element_type.name if self.element_type is not None else "?"
        return f"Vector[{kind}]({list.__repr__(self)})"

    def __str__(self) -> str:
        return "[" + ", ".join(str(item) for item in self) + "]"


INTEGER_WRAPPERS: tuple[type[_FixedInt], ...] = (
    Int8,
    UInt8,
    Int16,
    UInt16,
    Int32,
    UInt32,
    Int64,
    UInt64,
)
