"""Task allocator: the shared native address space.

Out-of-line variant payloads (strings, GUIDs, vector buffers, clip-data
records) live in memory that the codec shares with the external
subsystem and must be released explicitly, never by the garbage
collector.  ``TaskAllocator`` models that address space: every
allocation gets a stable integer address, reads and writes go through
the allocator, and it keeps an exact count of live allocations so that
leaks and double frees are observable.

Address ``0`` is the null pointer and is never handed out.
"""
from __future__ import annotations

import bisect
import logging

from propvar.errors import InvalidPointerError

logger = logging.getLogger(__name__)

_ALIGNMENT = 16
_GUARD = 16


def _align(value: int, alignment: int = _ALIGNMENT) -> int:
    return (value + alignment - 1) & ~(alignment - 1)


class TaskAllocator:
    """A byte-addressed heap with allocate/free pairing.

    Parameters
    ----------
    name:
        Label used in log messages.
    base:
        Address of the first allocation.
    """

    def __init__(self, name: str = "task", base: int = 0x10000) -> None:
        self._name = name
        self._next = _align(base)
        self._blocks: dict[int, bytearray] = {}
        self._bases: list[int] = []
        self._allocated_total = 0

    # ------------------------------------------------------------------
    # Allocation
    # ------------------------------------------------------------------

    def alloc(self, size: int) -> int:
        """Allocate ``size`` zeroed bytes and return the block address.

        A zero-size request still returns a unique, freeable address.
        """
        if size < 0:
            raise ValueError(f"Cannot allocate a negative size ({size})")
        address = self._next
        self._next = _align(address + size + _GUARD)
        self._blocks[address] = bytearray(size)
        self._bases.append(address)
        self._allocated_total += 1
        logger.debug("%s: alloc %d byte(s) at 0x%X", self._name, size, address)
        return address

    def free(self, address: int) -> None:
        """Release the block starting at ``address``.  Freeing null is a no-op.

        Raises
        ------
        InvalidPointerError
            If ``address`` is not the start of a live block (including a
            block that was already freed).
        """
        if address == 0:
            return
        if address not in self._blocks:
            raise InvalidPointerError(address, f"Free of unknown or released address 0x{address:X}")
        del self._blocks[address]
        index = bisect.bisect_left(self._bases, address)
        del self._bases[index]
        logger.debug("%s: free 0x%X", self._name, address)

    # ------------------------------------------------------------------
    # Access
    # ------------------------------------------------------------------

    def _locate(self, address: int, size: int) -> tuple[bytearray, int]:
        if address == 0:
            raise InvalidPointerError(0, "Null pointer dereference")
        index = bisect.bisect_right(self._bases, address) - 1
        if index >= 0:
            base = self._bases[index]
            block = self._blocks[base]
            offset = address - base
            if offset + size <= len(block):
                return block, offset
        raise InvalidPointerError(
            address, f"Access of {size} byte(s) at 0x{address:X} is outside any live block"
        )

    def read(self, address: int, size: int) -> bytes:
        """Copy ``size`` bytes starting at ``address``."""
        if size == 0:
            return b""
        block, offset = self._locate(address, size)
        return bytes(block[offset : offset + size])

    def write(self, address: int, data: bytes) -> None:
        """Copy ``data`` into memory starting at ``address``."""
        if not data:
            return
        block, offset = self._locate(address, len(data))
        block[offset : offset + len(data)] = data

    def read_until_null(self, address: int, unit: int = 1) -> bytes:
        """Read ``unit``-byte code units up to (excluding) the first zero unit.

        Raises
        ------
        InvalidPointerError
            If no terminator is found before the end of the block.
        """
        block, offset = self._locate(address, 0)
        terminator = bytes(unit)
        end = offset
        while end + unit <= len(block):
            if block[end : end + unit] == terminator:
                return bytes(block[offset:end])
            end += unit
        raise InvalidPointerError(address, f"Unterminated string at 0x{address:X}")

    def block_size(self, address: int) -> int:
        """Return the size of the live block starting at ``address``."""
        try:
            return len(self._blocks[address])
        except KeyError:
            raise InvalidPointerError(address) from None

    # ------------------------------------------------------------------
    # Introspection
    # ------------------------------------------------------------------

    @property
    def live_allocations(self) -> int:
        """Number of blocks allocated and not yet freed."""
        return len(self._blocks)

    @property
    def total_allocations(self) -> int:
        """Number of blocks ever allocated."""
        return self._allocated_total

    def __contains__(self, address: object) -> bool:
        return address in self._blocks

    def __repr__(self) -> str:
        return f"TaskAllocator(name={self._name!r}, live={self.live_allocations})"


_default_allocator = TaskAllocator()


def task_allocator() -> TaskAllocator:
    """Return the process-wide allocator used when none is passed explicitly."""
    return _default_allocator
