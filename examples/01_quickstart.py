#!/usr/bin/env python3
"""Example: propvar quickstart

Minimal working example: turn Python values into typed property values,
serialize them and read them back.

Usage:
    python examples/01_quickstart.py

Requirements:
    pip install propvar
"""
from __future__ import annotations

from uuid import UUID

import propvar
from propvar.types import Int16, VarType, Vector


def main() -> None:
    print(f"propvar version: {propvar.__version__}")

    # Step 1: Let the codec pick the variant type
    for value in (42, 2.5, "hello", [True, False], UUID(int=1)):
        print(f"  {value!r:<40} -> {propvar.classify(value)}")

    # Step 2: Pin a width or a string encoding explicitly
    data = propvar.encode(Int16(-7))
    print(f"\nInt16(-7) serializes to {data.hex()}")
    data = propvar.encode(Vector(["a", "b"], VarType.VT_BSTR))
    print(f"BSTR vector serializes to {len(data)} bytes")

    # Step 3: Round trip through bytes
    print(f"Decoded back: {propvar.decode(data)}")

    # Step 4: Work with a live variant; it is disposed on exit
    with propvar.to_variant(["alpha", "beta"]) as variant:
        print(f"\nLive variant: {variant}")
        serialized = propvar.serialize(variant)
    with propvar.deserialize(serialized) as copy:
        print(f"Deserialized {copy.vt}: {propvar.from_variant(copy)}")


if __name__ == "__main__":
    main()
