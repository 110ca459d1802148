"""Clipboard-format descriptor carried by ``VT_CF`` variants."""
from __future__ import annotations

from dataclasses import dataclass, field
from uuid import UUID

# ulClipFmt discriminators of a CLIPDATA record.
CF_EMPTY = 0
CF_WINDOWS = -1
CF_MACINTOSH = -2
CF_FMTID = -3


@dataclass(frozen=True)
class ClipData:
    """A clipboard format identity plus optional payload bytes.

    At most one of ``fmtid``, ``name`` and ``format`` identifies the
    format; a descriptor with none of them is the empty descriptor.

    Parameters
    ----------
    fmtid:
        A format GUID (``ulClipFmt == -3``).
    name:
        A registered clipboard format name (``ulClipFmt > 0``).
    format:
        A numeric clipboard format code (``ulClipFmt == -1``).
    data:
        Raw payload bytes following the format identity.
    mac:
        Marks a numeric format as a Macintosh format (``ulClipFmt == -2``).
    """

    fmtid: UUID | None = None
    name: str | None = None
    format: int = 0
    data: bytes = field(default=b"")
    mac: bool = False

    def __post_init__(self) -> None:
        identities = sum((self.fmtid is not None, self.name is not None, self.format != 0))
        if identities > 1:
            raise ValueError("ClipData takes one of fmtid, name or format, not several")
        if self.name == "":
            raise ValueError("ClipData name must not be empty")
        if not 0 <= self.format <= 0xFFFFFFFF:
            raise ValueError(f"ClipData format {self.format} is not a 32-bit format code")
        if identities == 0 and (self.data or self.mac):
            raise ValueError("An empty ClipData carries no data and no Macintosh flag")
        object.__setattr__(self, "data", bytes(self.data))

    @property
    def discriminator(self) -> int:
        """The ``ulClipFmt`` value this descriptor encodes to."""
        if self.fmtid is not None:
            return CF_FMTID
        if self.name is not None:
            return len(self.name.encode("utf-16-le", errors="surrogatepass")) // 2 + 1
        if self.format != 0:
            return CF_MACINTOSH if self.mac else CF_WINDOWS
        return CF_EMPTY

    @property
    def is_empty(self) -> bool:
        return self.discriminator == CF_EMPTY

    def __str__(self) -> str:
        if self.fmtid is not None:
            return "{" + str(self.fmtid) + "}"
        if self.name is not None:
            return self.name
        if self.format == 0:
            return ""
        return str(self.format)
