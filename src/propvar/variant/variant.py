"""The ``Variant`` tagged-union value.

A ``Variant`` pairs a ``VariantType`` with one payload shape and owns
every allocation reachable from the payload.  It is populated exactly
once by a factory (construction, native record adoption or
deserialization) and disposed exactly once; disposal is idempotent and
never raises.  Any access after disposal raises
``UseAfterReleaseError``.

Variants are context managers::

    with codec.to_variant("hello") as variant:
        data = codec.serialize(variant)
"""
from __future__ import annotations

import logging
from types import TracebackType
from typing import Any

from propvar.errors import UseAfterReleaseError, VariantError
from propvar.memory import marshal
from propvar.types.vartype import VarType, VariantType
from propvar.variant.payload import EMPTY_PAYLOAD, Counted, Inline, Payload, Pointer

logger = logging.getLogger(__name__)

DISP_E_PARAMNOTFOUND = -2147352572  # 0x80020004


def _clear_vector_elements(vt: VariantType, payload: Counted) -> None:
    """Release the per-element allocations of a vector buffer."""
    allocator = payload.buffer.allocator
    base = payload.buffer.address
    if vt.base in (VarType.VT_LPSTR, VarType.VT_LPWSTR, VarType.VT_BSTR):
        for index in range(payload.count):
            pointer = marshal.read_pointer(allocator, base + index * marshal.POINTER_SIZE)
            if vt.base is VarType.VT_BSTR:
                pointer = marshal.bstr_allocation(pointer)
            allocator.free(pointer)
    elif vt.base is VarType.VT_VARIANT:
        from propvar.variant.record import RECORD_SIZE, read_record

        for index in range(payload.count):
            read_record(allocator, base + index * RECORD_SIZE, owned=True).dispose()


def clear_payload(vt: VariantType, payload: Payload) -> None:
    """Free everything ``payload`` owns.  Never raises."""
    if isinstance(payload, Inline):
        return
    buffer = payload.buffer
    if buffer.released:
        return
    if buffer.owned and not buffer.is_null:
        try:
            if isinstance(payload, Counted) and vt.vector:
                _clear_vector_elements(vt, payload)
            elif vt.base is VarType.VT_CF:
                inner = marshal.read_pointer(buffer.allocator, buffer.address + 8)
                buffer.allocator.free(inner)
        except VariantError as exc:
            logger.warning("Ignoring failed release inside %s payload: %s", vt, exc)
    buffer.release()


class Variant:
    """A typed value with exclusive ownership of its out-of-line payload.

    Parameters
    ----------
    vt:
        The variant type.
    payload:
        The payload shape matching ``vt``.
    """

    __slots__ = ("_vt", "_payload", "_disposed")

    def __init__(self, vt: VariantType, payload: Payload = EMPTY_PAYLOAD) -> None:
        self._vt = vt
        self._payload = payload
        self._disposed = False

    # ------------------------------------------------------------------
    # Well-known values
    # ------------------------------------------------------------------

    @classmethod
    def empty(cls) -> "Variant":
        return cls(VariantType(VarType.VT_EMPTY))

    @classmethod
    def null(cls) -> "Variant":
        return cls(VariantType(VarType.VT_NULL))

    @classmethod
    def missing(cls) -> "Variant":
        """The "parameter not found" error variant used for omitted arguments."""
        return cls(VariantType(VarType.VT_ERROR), Inline(DISP_E_PARAMNOTFOUND))

    # ------------------------------------------------------------------
    # Accessors
    # ------------------------------------------------------------------

    def _check(self) -> None:
        if self._disposed:
            raise UseAfterReleaseError("Variant used after dispose")

    @property
    def vt(self) -> VariantType:
        self._check()
        return self._vt

    @property
    def payload(self) -> Payload:
        self._check()
        return self._payload

    @property
    def disposed(self) -> bool:
        return self._disposed

    @property
    def count(self) -> int | None:
        """Element count of a vector, byte length of a blob, else ``None``."""
        payload = self.payload
        return payload.count if isinstance(payload, Counted) else None

    @property
    def value(self) -> Any:
        """Extract the Python value with the default configuration."""
        from propvar.variant.extract import extract

        return extract(self)

    # ------------------------------------------------------------------
    # Lifetime
    # ------------------------------------------------------------------

    def dispose(self) -> None:
        """Release every owned allocation.  A second call is a no-op."""
        if self._disposed:
            return
        self._disposed = True
        clear_payload(self._vt, self._payload)

    def detach(self) -> None:
        """End this variant without freeing; its allocations now belong elsewhere."""
        self._check()
        self._disposed = True
        if isinstance(self._payload, (Pointer, Counted)):
            self._payload.buffer.detach()

    def __enter__(self) -> "Variant":
        self._check()
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        self.dispose()

    def __repr__(self) -> str:
        if self._disposed:
            return "Variant(<disposed>)"
        return f"Variant({self._vt}, {self._payload!r})"

    def __str__(self) -> str:
        if self._disposed:
            return "<disposed>"
        value = self.value
        if isinstance(value, str):
            return f"'{value}'"
        if isinstance(value, bytes):
            return f"{self._vt}: bytes[{len(value)}]"
        if isinstance(value, list):
            return f"{self._vt}: " + ", ".join(str(item) for item in value)
        return f"{self._vt}: {value}"
