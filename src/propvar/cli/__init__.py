"""CLI package.

The ``cli`` sub-package contains the Click application and its
commands.  Values are encoded and decoded through ``VariantCodec``; the
codec settings come from ``--config``.
"""
from __future__ import annotations
