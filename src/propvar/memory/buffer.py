"""Owned-buffer handles.

An ``OwnedBuffer`` is the single owner of one allocation.  Releasing it
frees the allocation exactly once; releasing again is a no-op.  A
borrowed buffer views memory owned by someone else and never frees it.
"""
from __future__ import annotations

import logging
from types import TracebackType

from propvar.errors import InvalidPointerError, UseAfterReleaseError
from propvar.memory.allocator import TaskAllocator

logger = logging.getLogger(__name__)


class OwnedBuffer:
    """Handle to an allocation in a ``TaskAllocator``.

    Parameters
    ----------
    allocator:
        The allocator the address belongs to.
    address:
        Start address, or ``0`` for the null buffer.
    size:
        Size in bytes of the addressed region.
    owned:
        ``False`` for a borrowed view whose release does nothing.
    """

    __slots__ = ("_allocator", "_address", "_size", "_owned", "_released")

    def __init__(
        self,
        allocator: TaskAllocator,
        address: int,
        size: int,
        owned: bool = True,
    ) -> None:
        self._allocator = allocator
        self._address = address
        self._size = size
        self._owned = owned
        self._released = False

    # ------------------------------------------------------------------
    # Constructors
    # ------------------------------------------------------------------

    @classmethod
    def allocate(cls, allocator: TaskAllocator, size: int) -> "OwnedBuffer":
        """Allocate a zeroed buffer of ``size`` bytes."""
        return cls(allocator, allocator.alloc(size), size)

    @classmethod
    def from_bytes(cls, allocator: TaskAllocator, data: bytes) -> "OwnedBuffer":
        """Allocate a buffer holding a copy of ``data``."""
        buffer = cls.allocate(allocator, len(data))
        allocator.write(buffer.address, data)
        return buffer

    @classmethod
    def null(cls, allocator: TaskAllocator) -> "OwnedBuffer":
        """Return a buffer for the null pointer."""
        return cls(allocator, 0, 0)

    @classmethod
    def borrow(cls, allocator: TaskAllocator, address: int, size: int = 0) -> "OwnedBuffer":
        """Return a view of memory owned elsewhere."""
        return cls(allocator, address, size, owned=False)

    # ------------------------------------------------------------------
    # Properties
    # ------------------------------------------------------------------

    @property
    def allocator(self) -> TaskAllocator:
        return self._allocator

    @property
    def address(self) -> int:
        """The start address.

        Raises
        ------
        UseAfterReleaseError
            If the buffer was released or detached.
        """
        if self._released:
            raise UseAfterReleaseError("Buffer used after release")
        return self._address

    @property
    def size(self) -> int:
        return self._size

    @property
    def owned(self) -> bool:
        return self._owned

    @property
    def released(self) -> bool:
        return self._released

    @property
    def is_null(self) -> bool:
        return self._address == 0

    # ------------------------------------------------------------------
    # Access
    # ------------------------------------------------------------------

    def read(self, offset: int = 0, size: int | None = None) -> bytes:
        """Copy bytes out of the buffer."""
        if size is None:
            size = self._size - offset
        return self._allocator.read(self.address + offset, size)

    def write(self, offset: int, data: bytes) -> None:
        """Copy bytes into the buffer."""
        self._allocator.write(self.address + offset, data)

    # ------------------------------------------------------------------
    # Ownership
    # ------------------------------------------------------------------

    def release(self) -> None:
        """Free the allocation once.  Never raises.

        A failure reported by the allocator is logged and swallowed so
        that release can run on every exit path.
        """
        if self._released:
            return
        self._released = True
        if not self._owned or self._address == 0:
            return
        try:
            self._allocator.free(self._address)
        except InvalidPointerError as exc:
            logger.warning("Ignoring failed release of 0x%X: %s", self._address, exc)

    def detach(self) -> int:
        """Give up ownership and return the address; the caller now frees it."""
        address = self.address
        self._released = True
        return address

    def __enter__(self) -> "OwnedBuffer":
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        self.release()

    def __repr__(self) -> str:
        state = "released" if self._released else ("owned" if self._owned else "borrowed")
        return f"OwnedBuffer(0x{self._address:X}, size={self._size}, {state})"
