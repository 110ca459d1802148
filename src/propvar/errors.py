"""Error types for the propvar codec.

Every error raised by classification, construction, extraction and the
serialize/deserialize boundary derives from ``VariantError`` so callers
can catch the whole family at once.  Where a built-in exception already
describes the failure (``TypeError``, ``ValueError``, ``RuntimeError``)
the codec error also subclasses it.
"""
from __future__ import annotations


class VariantError(Exception):
    """Base class for all propvar errors."""


class UnsupportedTypeError(VariantError, TypeError):
    """Raised when a Python type or a variant tag has no defined mapping.

    Parameters
    ----------
    message:
        Human-readable description of the problem.
    vartype:
        The raw tag value that could not be handled, if the failure came
        from a variant.
    python_type:
        The Python type that could not be classified, if the failure
        came from a Python value.
    """

    def __init__(
        self,
        message: str,
        vartype: int | None = None,
        python_type: type | None = None,
    ) -> None:
        super().__init__(message)
        self.vartype = vartype
        self.python_type = python_type

    @classmethod
    def for_tag(cls, vartype: int) -> "UnsupportedTypeError":
        """Build the error for an unrecognised variant tag."""
        return cls(f"Variant type 0x{vartype:04X} is not supported.", vartype=vartype)

    @classmethod
    def for_value(cls, value: object) -> "UnsupportedTypeError":
        """Build the error for a Python value with no classification rule."""
        value_type = type(value)
        return cls(
            f"Value of type '{value_type.__module__}.{value_type.__qualname__}' "
            "is not supported.",
            python_type=value_type,
        )


class TypeMismatchError(VariantError, TypeError):
    """Raised when a vector element does not match the vector's element type.

    Parameters
    ----------
    expected:
        The element type fixed from the first classification.
    found:
        The type the offending element classified to.
    index:
        Position of the offending element in the sequence.
    """

    def __init__(self, expected: object, found: object, index: int) -> None:
        super().__init__(
            f"Vector element {index} is {found}, expected {expected}; "
            "mixed-type vectors need an explicit VT_VARIANT element type."
        )
        self.expected = expected
        self.found = found
        self.index = index


class SerializationError(VariantError):
    """Raised when the byte-level engine rejects a value or a buffer.

    Parameters
    ----------
    code:
        The negative status code reported by the engine.
    """

    def __init__(self, code: int, message: str | None = None) -> None:
        detail = f": {message}" if message else ""
        super().__init__(f"Serialization failed with status 0x{code & 0xFFFFFFFF:08X}{detail}")
        self.code = code


class UseAfterReleaseError(VariantError, RuntimeError):
    """Raised when a disposed variant or a released buffer is used again."""


class InvalidPointerError(VariantError, ValueError):
    """Raised on access to an address the task allocator does not own.

    Parameters
    ----------
    address:
        The offending address.
    """

    def __init__(self, address: int, message: str | None = None) -> None:
        super().__init__(message or f"Address 0x{address:X} is not a live allocation.")
        self.address = address
