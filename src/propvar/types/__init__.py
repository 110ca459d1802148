"""Variant type taxonomy.

Exports the tag enumeration, the width-pinning value wrappers, the
clip-data descriptor and the classification functions.
"""
from __future__ import annotations

from propvar.types.clipdata import CF_EMPTY, CF_FMTID, CF_MACINTOSH, CF_WINDOWS, ClipData
from propvar.types.inference import classify, infer_element_type, is_sequence, widen
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
)
from propvar.types.vartype import VT_VECTOR, VarType, VariantType

__all__ = [
    # Tags
    "VarType",
    "VariantType",
    "VT_VECTOR",
    # Value wrappers
    "Int8",
    "UInt8",
    "Int16",
    "UInt16",
    "Int32",
    "UInt32",
    "Int64",
    "UInt64",
    "Float32",
    "FileTime",
    "OleDate",
    "Currency",
    "Vector",
    "MISSING",
    # Clip data
    "ClipData",
    "CF_EMPTY",
    "CF_WINDOWS",
    "CF_MACINTOSH",
    "CF_FMTID",
    # Classification
    "classify",
    "infer_element_type",
    "is_sequence",
    "widen",
]
