"""Unit tests for propvar.types.vartype: tags and the VariantType value."""
from __future__ import annotations

import pytest

from propvar.errors import UnsupportedTypeError
from propvar.types.vartype import (
    STRING_TYPES,
    VECTOR_ELEMENT_SIZES,
    VT_BYREF,
    VT_VECTOR,
    VarType,
    VariantType,
)


class TestVarType:
    @pytest.mark.parametrize(
        "tag, value",
        [
            (VarType.VT_EMPTY, 0),
            (VarType.VT_I2, 2),
            (VarType.VT_BSTR, 8),
            (VarType.VT_BOOL, 11),
            (VarType.VT_VARIANT, 12),
            (VarType.VT_DECIMAL, 14),
            (VarType.VT_LPWSTR, 31),
            (VarType.VT_FILETIME, 64),
            (VarType.VT_BLOB, 65),
            (VarType.VT_CF, 71),
            (VarType.VT_CLSID, 72),
            (VarType.VT_VERSIONED_STREAM, 73),
        ],
    )
    def test_wire_values(self, tag: VarType, value: int) -> None:
        assert int(tag) == value

    def test_vector_modifier(self) -> None:
        assert VT_VECTOR == 0x1000

    def test_string_types(self) -> None:
        assert STRING_TYPES == {VarType.VT_LPSTR, VarType.VT_LPWSTR, VarType.VT_BSTR}

    def test_vector_element_strides(self) -> None:
        assert VECTOR_ELEMENT_SIZES[VarType.VT_BOOL] == 2
        assert VECTOR_ELEMENT_SIZES[VarType.VT_CLSID] == 16
        assert VECTOR_ELEMENT_SIZES[VarType.VT_LPWSTR] == 8
        assert VECTOR_ELEMENT_SIZES[VarType.VT_VARIANT] == 24

    def test_blob_and_decimal_are_not_vector_elements(self) -> None:
        assert VarType.VT_BLOB not in VECTOR_ELEMENT_SIZES
        assert VarType.VT_DECIMAL not in VECTOR_ELEMENT_SIZES
        assert VarType.VT_CF not in VECTOR_ELEMENT_SIZES


class TestVariantType:
    def test_scalar_int_and_str(self) -> None:
        vt = VariantType(VarType.VT_I4)
        assert int(vt) == 3
        assert str(vt) == "VT_I4"

    def test_vector_int_and_str(self) -> None:
        vt = VariantType(VarType.VT_I4, vector=True)
        assert int(vt) == 0x1003
        assert str(vt) == "VT_VECTOR|VT_I4"

    def test_from_int_scalar(self) -> None:
        assert VariantType.from_int(31) == VariantType(VarType.VT_LPWSTR)

    def test_from_int_vector(self) -> None:
        assert VariantType.from_int(0x100B) == VariantType(VarType.VT_BOOL, vector=True)

    def test_from_int_rejects_byref(self) -> None:
        with pytest.raises(UnsupportedTypeError) as info:
            VariantType.from_int(VT_BYREF | 3)
        assert info.value.vartype == VT_BYREF | 3

    def test_from_int_rejects_unknown_base(self) -> None:
        with pytest.raises(UnsupportedTypeError):
            VariantType.from_int(0x0FFF)

    def test_vector_of(self) -> None:
        assert VariantType(VarType.VT_UI1).vector_of() == VariantType(VarType.VT_UI1, True)

    def test_vector_of_vector_rejected(self) -> None:
        with pytest.raises(UnsupportedTypeError):
            VariantType(VarType.VT_UI1, True).vector_of()

    def test_element(self) -> None:
        assert VariantType(VarType.VT_R8, True).element() == VariantType(VarType.VT_R8)

    def test_frozen(self) -> None:
        vt = VariantType(VarType.VT_I4)
        with pytest.raises((AttributeError, TypeError)):
            vt.vector = True  # type: ignore[misc]

    def test_hashable(self) -> None:
        assert len({VariantType(VarType.VT_I4), VariantType(VarType.VT_I4)}) == 1


class TestVariantTypeParse:
    @pytest.mark.parametrize(
        "text, expected",
        [
            ("VT_BSTR", VariantType(VarType.VT_BSTR)),
            ("bstr", VariantType(VarType.VT_BSTR)),
            ("i2", VariantType(VarType.VT_I2)),
            ("VT_VECTOR|VT_I4", VariantType(VarType.VT_I4, True)),
            ("vector|lpstr", VariantType(VarType.VT_LPSTR, True)),
            ("VT_VECTOR + VT_VARIANT", VariantType(VarType.VT_VARIANT, True)),
        ],
    )
    def test_parse(self, text: str, expected: VariantType) -> None:
        assert VariantType.parse(text) == expected

    def test_parse_round_trips_str(self) -> None:
        vt = VariantType(VarType.VT_CLSID, vector=True)
        assert VariantType.parse(str(vt)) == vt

    @pytest.mark.parametrize("text", ["VT_NOPE", "VT_VECTOR", "VT_I4|VT_I2", ""])
    def test_parse_rejects(self, text: str) -> None:
        with pytest.raises(UnsupportedTypeError):
            VariantType.parse(text)
