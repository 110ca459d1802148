"""Byte-level serialize/deserialize engine.

The two primitives report failures as negative status codes instead of
raising; ``propvar.codec`` turns those into ``SerializationError``.
"""
from __future__ import annotations

from propvar.engine.wire import (
    E_INVALIDARG,
    S_OK,
    STG_E_INVALIDPARAMETER,
    engine_deserialize,
    engine_serialize,
)

__all__ = [
    "engine_serialize",
    "engine_deserialize",
    "S_OK",
    "E_INVALIDARG",
    "STG_E_INVALIDPARAMETER",
]
