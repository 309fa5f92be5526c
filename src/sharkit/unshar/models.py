"""Typed models for extraction runs."""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path

from sharkit.archive.integrity import VerificationResult
from sharkit.errors import SharError

OverwritePrompt = Callable[[str], bool]


class OverwritePolicy(Enum):
    """What to do when a destination file already exists."""

    REJECT = "reject"
    FORCE = "force"
    INTERACTIVE = "interactive"


class FileAction(Enum):
    WRITTEN = "written"
    SKIPPED = "skipped"
    FAILED = "failed"


@dataclass(slots=True, frozen=True)
class ExtractionContext:
    """Settings for one unshar run, threaded explicitly through the interpreter."""

    target_directory: Path
    overwrite_policy: OverwritePolicy = OverwritePolicy.REJECT
    debug: bool = False
    quiet: bool = False
    restore_timestamps: bool = True
    check_integrity: bool = True


@dataclass(slots=True, frozen=True)
class FileOutcome:
    """Result of extracting one archive member."""

    name: str
    action: FileAction
    verification: VerificationResult | None = None
    error: SharError | None = None

    @property
    def ok(self) -> bool:
        return self.error is None


@dataclass(slots=True)
class SegmentReport:
    """Everything that happened while one segment was interpreted."""

    index: int
    start_line: int
    outcomes: list[FileOutcome] = field(default_factory=list)
    errors: list[SharError] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)
    aborted: bool = False

    @property
    def ok(self) -> bool:
        return not self.errors and all(outcome.ok for outcome in self.outcomes)


@dataclass(slots=True)
class RunReport:
    """All segments of one run plus errors detected after the last segment."""

    segments: list[SegmentReport] = field(default_factory=list)
    errors: list[SharError] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not self.errors and all(segment.ok for segment in self.segments)

    def all_errors(self) -> list[SharError]:
        """Segment, file, and run errors in the order they occurred."""
        collected: list[SharError] = []
        for segment in self.segments:
            collected.extend(segment.errors)
            collected.extend(
                outcome.error for outcome in segment.outcomes if outcome.error is not None
            )
        collected.extend(self.errors)
        return collected
