"""Shared test fixtures for propvar.

Fixtures defined here are available to all tests in the suite without
needing an explicit import. Every test that touches native memory gets
its own allocator so leak assertions are exact.
"""
from __future__ import annotations

import pytest

from propvar.codec import VariantCodec
from propvar.memory.allocator import TaskAllocator


@pytest.fixture()
def package_name() -> str:
    """Return the importable package name for assertions."""
    return "propvar"


@pytest.fixture()
def expected_version() -> str:
    """Return the current expected version string.

    Update this fixture when cutting a release so that the version
    test immediately catches stale ``__version__`` values.
    """
    return "0.1.0"


@pytest.fixture()
def allocator() -> TaskAllocator:
    """A fresh, empty task allocator."""
    return TaskAllocator(name="test")


@pytest.fixture()
def codec(allocator: TaskAllocator) -> VariantCodec:
    """A codec with default settings over the test allocator."""
    return VariantCodec(allocator=allocator)
