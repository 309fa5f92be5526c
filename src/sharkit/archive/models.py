"""Typed models for archive assembly and splitting."""

from __future__ import annotations

import re
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Final

from sharkit.archive.classifier import Classification
from sharkit.codec import EncodedBlock, Scheme
from sharkit.errors import ValidationError

DEFAULT_HERE_DELIMITER: Final[str] = "SHAR_EOF"
DELIMITER_PATTERN: Final[re.Pattern[str]] = re.compile(r"^[A-Za-z0-9_]+$")
COMPACTION_TOOLS: Final[tuple[str, ...]] = ("gzip", "bzip2", "xz")


class EncodingMode(Enum):
    """How members are routed between the raw-text and codec paths."""

    AUTO = "auto"
    TEXT = "text"
    BINARY = "binary"


@dataclass(slots=True, frozen=True)
class CompactionSpec:
    """External compression tool applied before encoding."""

    tool: str
    level: int = 9

    def __post_init__(self) -> None:
        if self.tool not in COMPACTION_TOOLS:
            raise ValidationError(
                reason=f"Unsupported compaction tool '{self.tool}'.",
                hint=f"Use one of: {', '.join(COMPACTION_TOOLS)}.",
            )
        if not 1 <= self.level <= 9:
            raise ValidationError(
                reason="Compaction level must be between 1 and 9.",
                hint="Pass a level such as 9.",
                actual=self.level,
            )


@dataclass(slots=True, frozen=True)
class FileBundle:
    """One source file staged for archiving."""

    path: Path
    archive_name: str
    mode_bits: int
    mtime: int
    classification: Classification
    compaction: CompactionSpec | None
    encoded: EncodedBlock | None
    raw_text: tuple[str, ...] | None
    byte_count: int
    digest: str

    def __post_init__(self) -> None:
        if (self.encoded is None) == (self.raw_text is None):
            raise ValidationError(
                reason="A staged file must carry either encoded or raw text content.",
                hint="Stage files with stage_file().",
                path=self.archive_name,
            )

    @property
    def is_encoded(self) -> bool:
        return self.encoded is not None

    def describe_kind(self) -> str:
        """Short label used in extraction messages and listings."""
        if self.compaction is not None:
            return f"{self.compaction.tool} compressed"
        return self.classification.value


@dataclass(slots=True, frozen=True)
class ArchiveHeader:
    """Archive-wide header and unpacking-behaviour settings."""

    archive_name: str | None = None
    submitter: str | None = None
    cut_mark: bool = False
    net_headers: bool = False
    here_delimiter: str = DEFAULT_HERE_DELIMITER
    quiet_unshar: bool = False
    restore_timestamps: bool = True
    force_prefix_every_line: bool = False

    def __post_init__(self) -> None:
        if self.net_headers and not self.archive_name:
            raise ValidationError(
                reason="Net headers require an archive name.",
                hint="Pass --archive-name together with --net-headers.",
            )
        if not DELIMITER_PATTERN.match(self.here_delimiter) or not self.here_delimiter.strip("_"):
            raise ValidationError(
                reason="Here delimiter may only contain letters, digits, and underscores.",
                hint="Use a delimiter such as SHAR_EOF.",
                actual=self.here_delimiter,
            )
        for field_name, value in (
            ("archive_name", self.archive_name),
            ("submitter", self.submitter),
        ):
            if value is not None and ("\n" in value or "\r" in value):
                raise ValidationError(
                    reason=f"Header field '{field_name}' contains a line break.",
                    hint="Header fields must fit on one line.",
                )

    @property
    def fenced_delimiter(self) -> str:
        return f"_{self.here_delimiter.strip('_')}_"


@dataclass(slots=True, frozen=True)
class BuildOptions:
    """Per-archive encoding and integrity toggles."""

    encoding_mode: EncodingMode = EncodingMode.AUTO
    scheme: Scheme = Scheme.UU
    encode_filename: bool = False
    character_count: bool = True
    md5_digest: bool = True
    basename_only: bool = False
    compaction: CompactionSpec | None = None

    def __post_init__(self) -> None:
        if self.encode_filename and self.scheme is not Scheme.BASE64:
            raise ValidationError(
                reason="File name encoding requires the base64 scheme.",
                hint="Combine --encode-file-name with --base64.",
            )


@dataclass(slots=True, frozen=True)
class SplitPlan:
    """Size limit and splitting mode for multi-part output."""

    limit_bytes: int | None = None
    allow_mid_item_split: bool = False
