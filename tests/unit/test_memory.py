"""Unit tests for propvar.memory: allocator, owned buffers and marshalling."""
from __future__ import annotations

import logging

import pytest

from propvar.errors import InvalidPointerError, UseAfterReleaseError
from propvar.memory import marshal
from propvar.memory.allocator import TaskAllocator, task_allocator
from propvar.memory.buffer import OwnedBuffer


class TestTaskAllocator:
    def test_alloc_returns_zeroed_block(self, allocator: TaskAllocator) -> None:
        address = allocator.alloc(8)
        assert address != 0
        assert allocator.read(address, 8) == bytes(8)
        assert allocator.block_size(address) == 8

    def test_addresses_are_distinct_and_aligned(self, allocator: TaskAllocator) -> None:
        first = allocator.alloc(3)
        second = allocator.alloc(3)
        assert first != second
        assert first % 16 == 0 and second % 16 == 0

    def test_zero_size_allocation_is_freeable(self, allocator: TaskAllocator) -> None:
        address = allocator.alloc(0)
        assert address in allocator
        allocator.free(address)
        assert allocator.live_allocations == 0

    def test_negative_size_rejected(self, allocator: TaskAllocator) -> None:
        with pytest.raises(ValueError):
            allocator.alloc(-1)

    def test_write_then_read(self, allocator: TaskAllocator) -> None:
        address = allocator.alloc(4)
        allocator.write(address + 1, b"\xaa\xbb")
        assert allocator.read(address, 4) == b"\x00\xaa\xbb\x00"

    def test_access_past_end_rejected(self, allocator: TaskAllocator) -> None:
        address = allocator.alloc(4)
        with pytest.raises(InvalidPointerError):
            allocator.read(address + 2, 4)
        with pytest.raises(InvalidPointerError):
            allocator.write(address, b"12345")

    def test_null_dereference_rejected(self, allocator: TaskAllocator) -> None:
        with pytest.raises(InvalidPointerError) as info:
            allocator.read(0, 1)
        assert info.value.address == 0

    def test_free_null_is_noop(self, allocator: TaskAllocator) -> None:
        allocator.free(0)

    def test_double_free_rejected(self, allocator: TaskAllocator) -> None:
        address = allocator.alloc(4)
        allocator.free(address)
        with pytest.raises(InvalidPointerError):
            allocator.free(address)

    def test_access_after_free_rejected(self, allocator: TaskAllocator) -> None:
        address = allocator.alloc(4)
        allocator.free(address)
        with pytest.raises(InvalidPointerError):
            allocator.read(address, 1)

    def test_live_and_total_counts(self, allocator: TaskAllocator) -> None:
        first = allocator.alloc(1)
        allocator.alloc(1)
        allocator.free(first)
        assert allocator.live_allocations == 1
        assert allocator.total_allocations == 2

    def test_read_until_null(self, allocator: TaskAllocator) -> None:
        address = allocator.alloc(8)
        allocator.write(address, b"a\x00b\x00\x00\x00")
        assert allocator.read_until_null(address, 2) == b"a\x00b\x00"
        assert allocator.read_until_null(address, 1) == b"a"

    def test_read_until_null_unterminated(self, allocator: TaskAllocator) -> None:
        address = allocator.alloc(2)
        allocator.write(address, b"ab")
        with pytest.raises(InvalidPointerError):
            allocator.read_until_null(address, 1)

    def test_debug_logging(self, allocator: TaskAllocator, caplog: pytest.LogCaptureFixture) -> None:
        with caplog.at_level(logging.DEBUG, logger="propvar.memory.allocator"):
            allocator.free(allocator.alloc(4))
        messages = [record.getMessage() for record in caplog.records]
        assert any("alloc 4 byte(s)" in message for message in messages)
        assert any("free 0x" in message for message in messages)

    def test_default_allocator_is_shared(self) -> None:
        assert task_allocator() is task_allocator()


class TestOwnedBuffer:
    def test_release_frees_once(self, allocator: TaskAllocator) -> None:
        buffer = OwnedBuffer.allocate(allocator, 8)
        buffer.release()
        buffer.release()
        assert buffer.released
        assert allocator.live_allocations == 0

    def test_use_after_release(self, allocator: TaskAllocator) -> None:
        buffer = OwnedBuffer.from_bytes(allocator, b"abc")
        buffer.release()
        with pytest.raises(UseAfterReleaseError):
            _ = buffer.address
        with pytest.raises(UseAfterReleaseError):
            buffer.read()

    def test_from_bytes(self, allocator: TaskAllocator) -> None:
        with OwnedBuffer.from_bytes(allocator, b"abc") as buffer:
            assert buffer.read() == b"abc"
            assert buffer.read(1, 1) == b"b"
        assert allocator.live_allocations == 0

    def test_borrowed_buffer_never_frees(self, allocator: TaskAllocator) -> None:
        address = allocator.alloc(4)
        OwnedBuffer.borrow(allocator, address, 4).release()
        assert address in allocator

    def test_null_buffer(self, allocator: TaskAllocator) -> None:
        buffer = OwnedBuffer.null(allocator)
        assert buffer.is_null
        buffer.release()

    def test_detach_hands_over_the_address(self, allocator: TaskAllocator) -> None:
        buffer = OwnedBuffer.allocate(allocator, 4)
        address = buffer.detach()
        buffer.release()
        assert address in allocator
        allocator.free(address)

    def test_release_failure_is_logged_not_raised(
        self, allocator: TaskAllocator, caplog: pytest.LogCaptureFixture
    ) -> None:
        buffer = OwnedBuffer.allocate(allocator, 4)
        allocator.free(buffer.address)
        with caplog.at_level(logging.WARNING, logger="propvar.memory.buffer"):
            buffer.release()
        assert "Ignoring failed release" in caplog.text


class TestMarshal:
    def _store(self, allocator: TaskAllocator, data: bytes) -> int:
        address = allocator.alloc(len(data))
        allocator.write(address, data)
        return address

    def test_unicode_string(self, allocator: TaskAllocator) -> None:
        address = self._store(allocator, "héllo\x00".encode("utf-16-le"))
        assert marshal.ptr_to_string_uni(allocator, address) == "héllo"

    def test_ansi_string(self, allocator: TaskAllocator) -> None:
        address = self._store(allocator, b"caf\xe9\x00")
        assert marshal.ptr_to_string_ansi(allocator, address, "cp1252") == "café"

    def test_bstr_layout(self, allocator: TaskAllocator) -> None:
        block = self._store(allocator, b"\x04\x00\x00\x00a\x00b\x00\x00\x00")
        pointer = block + 4
        assert marshal.bstr_allocation(pointer) == block
        assert marshal.ptr_to_string_bstr(allocator, pointer) == "ab"

    def test_bstr_with_embedded_null(self, allocator: TaskAllocator) -> None:
        block = self._store(allocator, b"\x06\x00\x00\x00a\x00\x00\x00b\x00\x00\x00")
        assert marshal.ptr_to_string_bstr(allocator, block + 4) == "a\x00b"

    def test_null_pointers(self, allocator: TaskAllocator) -> None:
        assert marshal.ptr_to_string_uni(allocator, 0) is None
        assert marshal.ptr_to_string_ansi(allocator, 0, "cp1252") is None
        assert marshal.ptr_to_string_bstr(allocator, 0) is None
        assert marshal.bstr_allocation(0) == 0

    def test_pointer_round_trip(self, allocator: TaskAllocator) -> None:
        address = allocator.alloc(marshal.POINTER_SIZE)
        marshal.write_pointer(allocator, address, 0x1234_5678_9ABC)
        assert marshal.read_pointer(allocator, address) == 0x1234_5678_9ABC

    def test_signed_int(self, allocator: TaskAllocator) -> None:
        address = allocator.alloc(2)
        marshal.write_int(allocator, address, -2, 2, signed=True)
        assert marshal.read_int(allocator, address, 2) == 0xFFFE
        assert marshal.read_int(allocator, address, 2, signed=True) == -2
