"""Codec configuration.

``CodecConfig`` gathers the few knobs that change how values are
encoded.  It can be built in code, from a plain dict, or from a YAML
file::

    # propvar.yaml
    ansi_encoding: cp1252
    validate_arrays: true
    clamp_negative_filetime: true
"""
from __future__ import annotations

import codecs
from dataclasses import dataclass, fields
from pathlib import Path
from typing import Any

import yaml


@dataclass(frozen=True)
class CodecConfig:
    """Immutable codec settings.

    Parameters
    ----------
    ansi_encoding:
        Python codec name used for ``VT_LPSTR`` text (the platform's
        ANSI code page).
    validate_arrays:
        When ``True``, every element of a vector must classify to the
        vector's element type or ``TypeMismatchError`` is raised.  When
        ``False`` the caller is trusted and elements are coerced.
    clamp_negative_filetime:
        When ``True``, ``datetime`` values before 1601-01-01 encode as a
        zero FILETIME instead of raising ``OverflowError``.
    """

    ansi_encoding: str = "cp1252"
    validate_arrays: bool = True
    clamp_negative_filetime: bool = True

    def __post_init__(self) -> None:
        try:
            codecs.lookup(self.ansi_encoding)
        except LookupError:
            raise ValueError(f"Unknown ANSI encoding {self.ansi_encoding!r}") from None

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "CodecConfig":
        """Build a config from a mapping, rejecting unknown keys."""
        known = {f.name for f in fields(cls)}
        unknown = sorted(set(data) - known)
        if unknown:
            raise ValueError(f"Unknown configuration key(s): {', '.join(unknown)}")
        return cls(**data)

    @classmethod
    def from_yaml(cls, path: str | Path) -> "CodecConfig":
        """Load a config from a YAML file.  An empty file yields the defaults."""
        text = Path(path).read_text(encoding="utf-8")
        data = yaml.safe_load(text) or {}
        if not isinstance(data, dict):
            raise ValueError(f"{path}: expected a mapping at the top level")
        return cls.from_dict(data)


DEFAULT_CONFIG = CodecConfig()
