"""Scalar conversions between Python values and native field values.

Each inline tag has a *native* representation: the integer or float
that sits in the record's union (or a vector slot).  ``to_native``
turns a Python value into it and ``from_native`` turns it back into the
value type named by ``widen``.

Date encodings
--------------
``VT_FILETIME``
    Signed 64-bit count of 100 ns ticks since 1601-01-01 UTC.  Naive
    ``datetime`` values are taken as UTC; extraction returns an aware
    UTC ``datetime``.
``VT_DATE``
    OLE automation date: a double counting days since 1899-12-30, the
    fraction being the time of day.  For negative values the integer
    part moves backwards while the fraction still moves forward in the
    day.  Extraction rounds to the millisecond.
"""
from __future__ import annotations

import math
import struct
from datetime import datetime, timedelta, timezone
from decimal import ROUND_HALF_EVEN, Decimal
from typing import Any, NamedTuple

from propvar.config import CodecConfig
from propvar.errors import UnsupportedTypeError
from propvar.types.scalars import (
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
)
from propvar.types.vartype import VarType

# struct formats of the inline tags, also the vector element formats.
SCALAR_FORMATS: dict[VarType, str] = {
    VarType.VT_I1: "<b",
    VarType.VT_UI1: "<B",
    VarType.VT_I2: "<h",
    VarType.VT_UI2: "<H",
    VarType.VT_BOOL: "<h",
    VarType.VT_I4: "<i",
    VarType.VT_UI4: "<I",
    VarType.VT_INT: "<i",
    VarType.VT_UINT: "<I",
    VarType.VT_ERROR: "<i",
    VarType.VT_R4: "<f",
    VarType.VT_I8: "<q",
    VarType.VT_UI8: "<Q",
    VarType.VT_R8: "<d",
    VarType.VT_CY: "<q",
    VarType.VT_DATE: "<d",
    VarType.VT_FILETIME: "<q",
}

_INT_WRAPPERS: dict[VarType, type] = {
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
}


def integer_range(vt: VarType) -> tuple[int, int]:
    """Return the inclusive ``(low, high)`` bounds of integer tag ``vt``."""
    wrapper = _INT_WRAPPERS[VarType(vt)]
    if wrapper.signed:
        return -(1 << (wrapper.bits - 1)), (1 << (wrapper.bits - 1)) - 1
    return 0, (1 << wrapper.bits) - 1


VARIANT_TRUE = -1
VARIANT_FALSE = 0

FILETIME_EPOCH = datetime(1601, 1, 1, tzinfo=timezone.utc)
OADATE_EPOCH = datetime(1899, 12, 30)
_TICKS_PER_MICROSECOND = 10
_CURRENCY_SCALE = Decimal(10000)
_DECIMAL_MAX_SCALE = 28
_DECIMAL_MAX_MANTISSA = (1 << 96) - 1


class DecimalParts(NamedTuple):
    """Native ``DECIMAL`` fields: scale, sign flag and 96-bit mantissa."""

    scale: int
    negative: bool
    mantissa: int

    @property
    def hi32(self) -> int:
        return self.mantissa >> 64

    @property
    def lo64(self) -> int:
        return self.mantissa & 0xFFFFFFFFFFFFFFFF


# ---------------------------------------------------------------------------
# Dates
# ---------------------------------------------------------------------------


def datetime_to_filetime(value: datetime, clamp: bool = True) -> int:
    """Convert a ``datetime`` to FILETIME ticks.

    With ``clamp`` (the positive-only conversion) instants before the
    FILETIME epoch become ``0``; without it they raise ``OverflowError``.
    """
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    delta = value - FILETIME_EPOCH
    ticks = (delta // timedelta(microseconds=1)) * _TICKS_PER_MICROSECOND
    if ticks < 0:
        if clamp:
            return 0
        raise OverflowError(f"{value.isoformat()} is before the FILETIME epoch")
    return int(Int64(ticks))


def filetime_to_datetime(ticks: int) -> datetime:
    return FILETIME_EPOCH + timedelta(microseconds=ticks // _TICKS_PER_MICROSECOND)


def datetime_to_oadate(value: datetime) -> float:
    """Convert a ``datetime`` (wall-clock time) to an OLE automation date."""
    naive = value.replace(tzinfo=None)
    days = (naive.date() - OADATE_EPOCH.date()).days
    midnight = datetime(naive.year, naive.month, naive.day)
    fraction = (naive - midnight) / timedelta(days=1)
    return days - fraction if days < 0 else days + fraction


def oadate_to_datetime(value: float) -> OleDate:
    if not math.isfinite(value):
        raise OverflowError(f"OLE date {value!r} is not finite")
    days = math.trunc(value)
    fraction = abs(value - days)
    milliseconds = round(fraction * 86_400_000)
    moment = OADATE_EPOCH + timedelta(days=days, milliseconds=milliseconds)
    return OleDate.from_datetime(moment)


# ---------------------------------------------------------------------------
# Decimals
# ---------------------------------------------------------------------------


def _round_half_even(mantissa: int, digits: int) -> int:
    """Drop ``digits`` trailing decimal digits with banker's rounding."""
    quotient, remainder = divmod(mantissa, 10**digits)
    half = 5 * 10 ** (digits - 1)
    if remainder > half or (remainder == half and quotient % 2):
        quotient += 1
    return quotient


def decimal_to_parts(value: Decimal) -> DecimalParts:
    """Split a ``Decimal`` into DECIMAL fields, rounding to 28 places.

    Raises
    ------
    OverflowError
        For NaN, infinities and magnitudes beyond 96 bits.
    """
    if not value.is_finite():
        raise OverflowError(f"{value} cannot be stored as a DECIMAL")
    sign, digits, exponent = value.as_tuple()
    mantissa = int("".join(map(str, digits)) or "0")
    if exponent >= 0:
        mantissa *= 10**exponent
        scale = 0
    else:
        scale = -exponent
    if scale > _DECIMAL_MAX_SCALE:
        mantissa = _round_half_even(mantissa, scale - _DECIMAL_MAX_SCALE)
        scale = _DECIMAL_MAX_SCALE
    while scale > 0 and mantissa > _DECIMAL_MAX_MANTISSA:
        mantissa = _round_half_even(mantissa, 1)
        scale -= 1
    if mantissa > _DECIMAL_MAX_MANTISSA:
        raise OverflowError(f"{value} exceeds the 96-bit DECIMAL range")
    return DecimalParts(scale=scale, negative=bool(sign), mantissa=mantissa)


def parts_to_decimal(parts: DecimalParts) -> Decimal:
    return Decimal((int(parts.negative), tuple(map(int, str(parts.mantissa))), -parts.scale))


def decimal_to_currency(value: Decimal) -> int:
    ticks = (Decimal(value) * _CURRENCY_SCALE).to_integral_value(rounding=ROUND_HALF_EVEN)
    return int(Int64(int(ticks)))


def currency_to_decimal(ticks: int) -> Currency:
    return Currency(Decimal(ticks).scaleb(-4))


# ---------------------------------------------------------------------------
# Dispatch
# ---------------------------------------------------------------------------


def _reject(value: Any, vt: VarType) -> UnsupportedTypeError:
    return UnsupportedTypeError(
        f"Cannot encode a value of type '{type(value).__qualname__}' as {vt.name}.",
        vartype=int(vt),
        python_type=type(value),
    )


def to_native(vt: VarType, value: Any, config: CodecConfig) -> Any:
    """Convert a Python value to the native field value of inline tag ``vt``.

    Raises
    ------
    UnsupportedTypeError
        If ``value`` cannot represent ``vt`` at all.
    OverflowError
        If it does not fit the tag's range.
    """
    vt = VarType(vt)
    if vt is VarType.VT_BOOL:
        return VARIANT_TRUE if value else VARIANT_FALSE
    if vt in _INT_WRAPPERS:
        if isinstance(value, (bool, float)) or not isinstance(value, int):
            raise _reject(value, vt)
        return int(_INT_WRAPPERS[vt](value))
    if vt is VarType.VT_R4:
        if not isinstance(value, (int, float)) or isinstance(value, bool):
            raise _reject(value, vt)
        return float(Float32(value))
    if vt is VarType.VT_R8:
        if not isinstance(value, (int, float)) or isinstance(value, bool):
            raise _reject(value, vt)
        return float(value)
    if vt is VarType.VT_CY:
        if not isinstance(value, (Decimal, int)) or isinstance(value, bool):
            raise _reject(value, vt)
        return decimal_to_currency(Decimal(value))
    if vt is VarType.VT_DECIMAL:
        if not isinstance(value, (Decimal, int)) or isinstance(value, bool):
            raise _reject(value, vt)
        return decimal_to_parts(Decimal(value))
    if vt is VarType.VT_DATE:
        if not isinstance(value, datetime):
            raise _reject(value, vt)
        return datetime_to_oadate(value)
    if vt is VarType.VT_FILETIME:
        if isinstance(value, FileTime):
            return int(value)
        if not isinstance(value, datetime):
            raise _reject(value, vt)
        return datetime_to_filetime(value, clamp=config.clamp_negative_filetime)
    raise UnsupportedTypeError.for_tag(int(vt))


def from_native(vt: VarType, native: Any) -> Any:
    """Convert a native field value of inline tag ``vt`` to its Python type."""
    vt = VarType(vt)
    if vt is VarType.VT_BOOL:
        return native != 0
    if vt in _INT_WRAPPERS:
        return _INT_WRAPPERS[vt](native)
    if vt is VarType.VT_R4:
        return Float32(native)
    if vt is VarType.VT_R8:
        return float(native)
    if vt is VarType.VT_CY:
        return currency_to_decimal(native)
    if vt is VarType.VT_DECIMAL:
        return parts_to_decimal(native)
    if vt is VarType.VT_DATE:
        return oadate_to_datetime(native)
    if vt is VarType.VT_FILETIME:
        return filetime_to_datetime(native)
    raise UnsupportedTypeError.for_tag(int(vt))


def pack_scalar(vt: VarType, native: Any) -> bytes:
    """Pack a native value at the tag's width."""
    return struct.pack(SCALAR_FORMATS[vt], native)


def unpack_scalar(vt: VarType, data: bytes) -> Any:
    return struct.unpack(SCALAR_FORMATS[vt], data)[0]


def pack_decimal(parts: DecimalParts) -> bytes:
    """Pack DECIMAL fields into 16 bytes, reserved word first."""
    return struct.pack(
        "<HBBIQ", 0, parts.scale, 0x80 if parts.negative else 0, parts.hi32, parts.lo64
    )


def unpack_decimal(data: bytes) -> DecimalParts:
    _, scale, sign, hi32, lo64 = struct.unpack("<HBBIQ", data)
    return DecimalParts(scale=scale, negative=bool(sign & 0x80), mantissa=(hi32 << 64) | lo64)
