"""Variant type tags.

``VarType`` enumerates the base tags of the platform's PROPVARIANT.  A
``VariantType`` pairs exactly one base tag with the orthogonal
``VT_VECTOR`` modifier; it is the value stored in a variant's header.
"""
from __future__ import annotations

from dataclasses import dataclass
from enum import IntEnum

from propvar.errors import UnsupportedTypeError


class VarType(IntEnum):
    """Base variant tags, numbered as on the wire."""

    VT_EMPTY = 0
    VT_NULL = 1
    VT_I2 = 2
    VT_I4 = 3
    VT_R4 = 4
    VT_R8 = 5
    VT_CY = 6
    VT_DATE = 7
    VT_BSTR = 8
    VT_DISPATCH = 9
    VT_ERROR = 10
    VT_BOOL = 11
    VT_VARIANT = 12
    VT_UNKNOWN = 13
    VT_DECIMAL = 14
    VT_I1 = 16
    VT_UI1 = 17
    VT_UI2 = 18
    VT_UI4 = 19
    VT_I8 = 20
    VT_UI8 = 21
    VT_INT = 22
    VT_UINT = 23
    VT_VOID = 24
    VT_HRESULT = 25
    VT_PTR = 26
    VT_SAFEARRAY = 27
    VT_CARRAY = 28
    VT_USERDEFINED = 29
    VT_LPSTR = 30
    VT_LPWSTR = 31
    VT_RECORD = 36
    VT_INT_PTR = 37
    VT_UINT_PTR = 38
    VT_FILETIME = 64
    VT_BLOB = 65
    VT_STREAM = 66
    VT_STORAGE = 67
    VT_STREAMED_OBJECT = 68
    VT_STORED_OBJECT = 69
    VT_BLOB_OBJECT = 70
    VT_CF = 71
    VT_CLSID = 72
    VT_VERSIONED_STREAM = 73


VT_VECTOR = 0x1000
VT_ARRAY = 0x2000
VT_BYREF = 0x4000
VT_RESERVED = 0x8000
VT_TYPEMASK = 0x0FFF

# Tags whose payload is an out-of-line string buffer.
STRING_TYPES: frozenset[VarType] = frozenset(
    {VarType.VT_LPSTR, VarType.VT_LPWSTR, VarType.VT_BSTR}
)

# Inline scalar width in bytes, as stored in the record and in vectors.
SCALAR_SIZES: dict[VarType, int] = {
    VarType.VT_I1: 1,
    VarType.VT_UI1: 1,
    VarType.VT_I2: 2,
    VarType.VT_UI2: 2,
    VarType.VT_BOOL: 2,
    VarType.VT_I4: 4,
    VarType.VT_UI4: 4,
    VarType.VT_INT: 4,
    VarType.VT_UINT: 4,
    VarType.VT_ERROR: 4,
    VarType.VT_R4: 4,
    VarType.VT_I8: 8,
    VarType.VT_UI8: 8,
    VarType.VT_R8: 8,
    VarType.VT_CY: 8,
    VarType.VT_DATE: 8,
    VarType.VT_FILETIME: 8,
}

# Base tags allowed under VT_VECTOR, with their element stride.
VECTOR_ELEMENT_SIZES: dict[VarType, int] = {
    **SCALAR_SIZES,
    VarType.VT_CLSID: 16,
    VarType.VT_LPSTR: 8,
    VarType.VT_LPWSTR: 8,
    VarType.VT_BSTR: 8,
    VarType.VT_VARIANT: 24,
}


@dataclass(frozen=True, slots=True)
class VariantType:
    """A base tag plus the vector modifier.

    Parameters
    ----------
    base:
        The single base tag.
    vector:
        ``True`` when the variant holds a homogeneous vector of ``base``.
    """

    base: VarType
    vector: bool = False

    def __int__(self) -> int:
        return int(self.base) | (VT_VECTOR if self.vector else 0)

    def __index__(self) -> int:
        return int(self)

    def __str__(self) -> str:
        if self.vector:
            return f"VT_VECTOR|{self.base.name}"
        return self.base.name

    @classmethod
    def from_int(cls, value: int) -> "VariantType":
        """Parse a raw tag, rejecting modifiers other than ``VT_VECTOR``.

        Raises
        ------
        UnsupportedTypeError
            If the base tag is unknown or ``VT_ARRAY``/``VT_BYREF`` is set.
        """
        if value & ~(VT_TYPEMASK | VT_VECTOR):
            raise UnsupportedTypeError.for_tag(value)
        try:
            base = VarType(value & VT_TYPEMASK)
        except ValueError:
            raise UnsupportedTypeError.for_tag(value) from None
        return cls(base=base, vector=bool(value & VT_VECTOR))

    @classmethod
    def parse(cls, text: str) -> "VariantType":
        """Parse a tag name such as ``VT_BSTR``, ``i2`` or ``VT_VECTOR|VT_I4``.

        Raises
        ------
        UnsupportedTypeError
            If a part of ``text`` names no tag.
        """
        vector = False
        base: VarType | None = None
        for part in text.replace("+", "|").split("|"):
            name = part.strip().upper()
            if not name.startswith("VT_"):
                name = "VT_" + name
            if name == "VT_VECTOR":
                vector = True
                continue
            try:
                tag = VarType[name]
            except KeyError:
                raise UnsupportedTypeError(f"Unknown variant type name {part.strip()!r}.") from None
            if base is not None:
                raise UnsupportedTypeError(f"{text!r} names more than one base type.")
            base = tag
        if base is None:
            raise UnsupportedTypeError(f"{text!r} names no base type.")
        return cls(base=base, vector=vector)

    def vector_of(self) -> "VariantType":
        """Return the vector tag of this base tag."""
        if self.vector:
            raise UnsupportedTypeError(
                f"Vectors of vectors are not representable ({self}).",
                vartype=int(self),
            )
        return VariantType(self.base, vector=True)

    def element(self) -> "VariantType":
        """Return the element tag of a vector tag."""
        return VariantType(self.base)
