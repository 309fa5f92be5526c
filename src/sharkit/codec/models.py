"""Typed models for line-oriented transcoding."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum

UU_LINE_BYTES = 45
BASE64_LINE_BYTES = 45

UU_END_OF_DATA = "`"
BASE64_END_OF_DATA = "===="
END_MARKER = "end"

UU_BEGIN = "begin"
BASE64_BEGIN = "begin-base64"
BASE64_ENCODED_NAME_BEGIN = "begin-base64-encoded"


class Scheme(Enum):
    """Supported transcoding alphabets."""

    UU = "uu"
    BASE64 = "base64"


@dataclass(slots=True, frozen=True)
class BlockHeader:
    """Parsed `begin` line of one encoded block."""

    scheme: Scheme
    mode_bits: int
    name: str
    encoded_filename: bool = False


@dataclass(slots=True, frozen=True)
class EncodedBlock:
    """Header fields plus the body lines, including end-of-data and `end`."""

    scheme: Scheme
    mode_bits: int
    logical_name: str
    encoded_filename: bool
    header_line: str
    lines: tuple[str, ...]

    def all_lines(self) -> list[str]:
        """Return the header line followed by every body line."""
        return [self.header_line, *self.lines]


@dataclass(slots=True, frozen=True)
class DecodedBlock:
    """Decoded payload with the header it was announced under."""

    header: BlockHeader
    data: bytes
