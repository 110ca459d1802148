"""Native memory model: task allocator, owned buffers, marshalling."""
from __future__ import annotations

from propvar.memory.allocator import TaskAllocator, task_allocator
from propvar.memory.buffer import OwnedBuffer
from propvar.memory.marshal import POINTER_SIZE

__all__ = [
    "TaskAllocator",
    "task_allocator",
    "OwnedBuffer",
    "POINTER_SIZE",
]
