"""The ``Variant`` value and its construction and extraction paths."""
from __future__ import annotations

from propvar.variant.construct import construct
from propvar.variant.extract import extract
from propvar.variant.payload import Counted, Inline, Payload, Pointer
from propvar.variant.record import (
    RECORD_SIZE,
    adopt_native,
    read_record,
    variant_from_native,
    write_native,
    write_record,
)
from propvar.variant.variant import DISP_E_PARAMNOTFOUND, Variant

__all__ = [
    "Variant",
    "DISP_E_PARAMNOTFOUND",
    "Inline",
    "Pointer",
    "Counted",
    "Payload",
    "construct",
    "extract",
    "RECORD_SIZE",
    "write_record",
    "read_record",
    "write_native",
    "adopt_native",
    "variant_from_native",
]
