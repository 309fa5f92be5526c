"""Locate embedded archives in arbitrary input and hand them to the interpreter."""

from __future__ import annotations

import re
from collections.abc import Iterable, Iterator
from dataclasses import dataclass, field
from pathlib import Path
from typing import Final, TextIO

from sharkit.errors import InputUnreadable, ValidationError
from sharkit.logging.audit import JsonlAuditLogger
from sharkit.unshar.interpreter import Interpreter
from sharkit.unshar.models import ExtractionContext, OverwritePrompt, RunReport
from sharkit.unshar.parser import parse_segment

INPUT_ENCODING: Final[str] = "latin-1"
EXIT_LINE: Final[str] = "exit 0"
ARCHIVE_START_PATTERNS: Final[tuple[re.Pattern[str], ...]] = (
    re.compile(r"^#!\s*/bin/(?:ba)?sh\b"),
    re.compile(r"^#!\s*/usr/bin/env\s+(?:ba)?sh\b"),
    re.compile(r"^#\s*-+\s*cut here", re.IGNORECASE),
    re.compile(r"^#\s*This is (?:a shell archive|part \d+ of a multipart archive)", re.IGNORECASE),
    re.compile(r"^:\s*(?:run sh|this is a shar archive)", re.IGNORECASE),
)


@dataclass(slots=True)
class Segment:
    """Lines of one embedded archive and where they started in the input."""

    start_line: int
    lines: list[str] = field(default_factory=list)


def is_archive_start(line: str) -> bool:
    """Return True when a line looks like the first line of a shell archive."""
    text = line.rstrip("\r")
    return any(pattern.match(text) for pattern in ARCHIVE_START_PATTERNS)


def decode_lines(chunks: Iterable[bytes]) -> Iterator[str]:
    """Decode raw input lines, dropping the line feed only."""
    for raw in chunks:
        text = raw.decode(INPUT_ENCODING)
        yield text[:-1] if text.endswith("\n") else text


def iter_segments(
    lines: Iterable[str],
    split_at: str | None = None,
    exit_0: bool = False,
    first_line_number: int = 1,
) -> Iterator[Segment]:
    """Yield embedded archives found in `lines`.

    With `split_at` a segment ends before a line equal to the pattern; with
    `exit_0` it ends after a line that is exactly `exit 0`. Without either,
    everything after the first archive start is one segment. Lines outside
    segments are discarded.
    """
    if split_at is not None and exit_0:
        raise ValidationError(
            reason="split_at and exit_0 are mutually exclusive.",
            hint="Choose one segment boundary rule.",
        )
    current: Segment | None = None
    for number, line in enumerate(lines, start=first_line_number):
        if current is None:
            if is_archive_start(line):
                current = Segment(start_line=number, lines=[line])
            continue
        text = line.rstrip("\r")
        if split_at is not None and text == split_at:
            yield current
            current = None
            continue
        current.lines.append(line)
        if exit_0 and text == EXIT_LINE:
            yield current
            current = None
    if current is not None:
        yield current


class Unsharer:
    """One extraction run over any number of inputs.

    Inputs are scanned in the order given and share one interpreter, so the
    parts of a split archive may arrive as separate files.
    """

    def __init__(
        self,
        context: ExtractionContext,
        *,
        split_at: str | None = None,
        exit_0: bool = False,
        prompt: OverwritePrompt | None = None,
        messages: TextIO | None = None,
        trace: TextIO | None = None,
        audit: JsonlAuditLogger | None = None,
    ) -> None:
        if split_at is not None and exit_0:
            raise ValidationError(
                reason="split_at and exit_0 are mutually exclusive.",
                hint="Choose one segment boundary rule.",
            )
        self._split_at = split_at
        self._exit_0 = exit_0
        self._interpreter = Interpreter(
            context, prompt=prompt, messages=messages, trace=trace, audit=audit
        )
        self._report = RunReport()

    @property
    def report(self) -> RunReport:
        return self._report

    def feed_lines(self, lines: Iterable[str]) -> None:
        """Scan one input and interpret every archive embedded in it."""
        for segment in iter_segments(lines, self._split_at, self._exit_0):
            self._dispatch(segment)

    def _dispatch(self, segment: Segment) -> None:
        # lines after an `exit` are scanned again for the next archive start
        pending: Segment | None = segment
        while pending is not None:
            parsed = parse_segment(pending.lines, pending.start_line)
            report = self._interpreter.run_segment(
                parsed.directives,
                index=len(self._report.segments) + 1,
                start_line=pending.start_line,
                line_numbers=parsed.line_numbers,
            )
            if parsed.error is not None:
                report.errors.append(parsed.error)
            self._report.segments.append(report)
            rest = pending.lines[parsed.consumed :]
            pending = next(
                iter_segments(rest, first_line_number=pending.start_line + parsed.consumed),
                None,
            )

    def feed_stream(self, chunks: Iterable[bytes]) -> None:
        self.feed_lines(decode_lines(chunks))

    def feed_path(self, path: Path) -> None:
        try:
            handle = path.open("rb")
        except OSError as error:
            raise InputUnreadable(
                reason="Input file cannot be read.",
                hint="Check that the file exists and is readable.",
                path=str(path),
                actual=str(error),
            ) from error
        with handle:
            self.feed_stream(handle)

    def finish(self) -> RunReport:
        """Close the run and return its report."""
        self._report.errors.extend(self._interpreter.finish())
        return self._report


def unshar_stream(
    chunks: Iterable[bytes],
    context: ExtractionContext,
    *,
    split_at: str | None = None,
    exit_0: bool = False,
    prompt: OverwritePrompt | None = None,
    messages: TextIO | None = None,
    trace: TextIO | None = None,
    audit: JsonlAuditLogger | None = None,
) -> RunReport:
    """Unpack every archive found in a binary line stream."""
    unsharer = Unsharer(
        context,
        split_at=split_at,
        exit_0=exit_0,
        prompt=prompt,
        messages=messages,
        trace=trace,
        audit=audit,
    )
    unsharer.feed_stream(chunks)
    return unsharer.finish()
