#!/usr/bin/env python3
"""Example: propvar property store

Fill an in-memory property store, save it in the serialized property
storage format, load it again and dump it as JSON.

Usage:
    python examples/02_property_store.py

Requirements:
    pip install propvar
"""
from __future__ import annotations

import io
from datetime import datetime, timezone
from uuid import UUID

from propvar.property import MemoryPropertyStore, PropertySerializer
from propvar.types import VarType

SUMMARY_INFORMATION = UUID("f29f85e0-4ff9-1068-ab91-08002b27b3d9")


def main() -> None:
    store = MemoryPropertyStore()
    store.set(SUMMARY_INFORMATION, 2, "Quarterly report")
    store.set(SUMMARY_INFORMATION, 4, "A. Author", VarType.VT_LPSTR)
    store.set(SUMMARY_INFORMATION, 12, datetime(2024, 1, 15, 9, 30, tzinfo=timezone.utc))
    store.set_named("Reviewed", True)
    print(f"Built {store!r}")

    # Save to a stream and load it back
    stream = io.BytesIO()
    store.save(stream)
    print(f"Serialized storage: {len(stream.getvalue())} bytes")
    stream.seek(0)
    loaded = MemoryPropertyStore.load(stream)

    # Walk the properties
    for prop in loaded.properties():
        print(f"  {prop}")

    print("\nAs JSON:")
    print(PropertySerializer().to_json(loaded.properties()))


if __name__ == "__main__":
    main()
