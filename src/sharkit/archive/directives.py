"""Closed instruction set shared by the archive builder and the unshar interpreter.

Every directive renders to one or more lines of plain POSIX shell text, so a
built archive stays readable (and unpackable by hand) while the interpreter
only ever executes the directives it recognises.
"""

from __future__ import annotations

import shlex
from dataclasses import dataclass
from datetime import UTC, datetime
from typing import Final, TypeAlias

SEQUENCE_FILE: Final[str] = "_sh_seq"
TEXT_PREFIX: Final[str] = "X"
CONTINUED_MARKER: Final[str] = "# continued"
TIMESTAMP_FORMAT: Final[str] = "%Y%m%d%H%M.%S"


def quote(value: str) -> str:
    """Quote a word for the shell."""
    return shlex.quote(value)


def format_timestamp(mtime: int) -> str:
    """Render epoch seconds as a UTC `touch -t` stamp."""
    return datetime.fromtimestamp(mtime, tz=UTC).strftime(TIMESTAMP_FORMAT)


def parse_timestamp(stamp: str) -> int:
    """Inverse of format_timestamp."""
    parsed = datetime.strptime(stamp, TIMESTAMP_FORMAT).replace(tzinfo=UTC)
    return int(parsed.timestamp())


@dataclass(slots=True, frozen=True)
class Preamble:
    """Verbatim header text such as mail headers or the interpreter line."""

    text: str

    def render(self) -> list[str]:
        return [self.text]


@dataclass(slots=True, frozen=True)
class Comment:
    text: str

    def render(self) -> list[str]:
        return [f"# {self.text}" if self.text else "#"]


@dataclass(slots=True, frozen=True)
class ItemBanner:
    """Comment line opening the directives of one archive member."""

    name: str

    def render(self) -> list[str]:
        return [f"# ============= {self.name} =============="]


@dataclass(slots=True, frozen=True)
class ChangeDirectory:
    path: str

    def render(self) -> list[str]:
        return [f"cd {quote(self.path)}"]


@dataclass(slots=True, frozen=True)
class EnsureDirectory:
    path: str

    def render(self) -> list[str]:
        return [f"mkdir -p {quote(self.path)}"]


@dataclass(slots=True, frozen=True)
class Message:
    text: str

    def render(self) -> list[str]:
        return [f"echo {quote(self.text)}"]


@dataclass(slots=True, frozen=True)
class Trace:
    enabled: bool

    def render(self) -> list[str]:
        return ["set -x" if self.enabled else "set +x"]


def _write_command(
    name: str | None,
    delimiter: str,
    encoded: bool,
    compaction: str | None,
    strip_prefix: str | None,
    append: bool,
) -> str:
    redirect = ">>" if append else ">"
    heredoc = f"<< '{delimiter}'"
    target = quote(name) if name is not None else ""
    if compaction is not None:
        return f"uudecode -o /dev/stdout {heredoc} | {compaction} -dc {redirect} {target}"
    if encoded:
        command = f"uudecode -o {target} {heredoc}" if name is not None else f"uudecode {heredoc}"
        return f"{command} {CONTINUED_MARKER}" if append else command
    if strip_prefix is None:
        return f"cat {heredoc} {redirect} {target}"
    return f"sed 's/^{strip_prefix}//' {heredoc} {redirect} {target}"


@dataclass(slots=True, frozen=True)
class BeginFileWrite:
    """Open a here-document that creates one file.

    `encoded` bodies are a complete `begin ... end` block, and without a name
    the block's own header names the file. Text bodies carry raw lines where
    a leading `strip_prefix` is removed.
    """

    name: str | None
    mode_bits: int | None
    delimiter: str
    encoded: bool = False
    compaction: str | None = None
    strip_prefix: str | None = TEXT_PREFIX

    def render(self) -> list[str]:
        command = _write_command(
            self.name,
            self.delimiter,
            self.encoded,
            self.compaction,
            self.strip_prefix,
            append=False,
        )
        if self.name is None or self.mode_bits is None:
            return [command]
        mode = format(self.mode_bits & 0o7777, "04o")
        return [f"{command} && chmod {mode} {quote(self.name)}"]


@dataclass(slots=True, frozen=True)
class ResumeFileWrite:
    """Continue a file write that was suspended at the end of the previous part."""

    name: str
    delimiter: str
    encoded: bool = False
    compaction: str | None = None
    strip_prefix: str | None = TEXT_PREFIX

    def render(self) -> list[str]:
        return [
            _write_command(
                self.name,
                self.delimiter,
                self.encoded,
                self.compaction,
                self.strip_prefix,
                append=True,
            )
        ]


@dataclass(slots=True, frozen=True)
class FileDataLine:
    text: str

    def render(self) -> list[str]:
        return [self.text]


def count_check_line(name: str, byte_count: int) -> str:
    warning = quote(f"{name}: original size {byte_count}, restored size differs")
    return f"test $( LC_ALL=C wc -c < {quote(name)} ) -ne {byte_count} && echo {warning}"


def digest_check_line(name: str, digest: str) -> str:
    warning = quote(f"{name}: MD5 check failed")
    return (
        f"echo {quote(f'{digest}  {name}')} | md5sum -c >/dev/null 2>&1 || echo {warning}"
    )


@dataclass(slots=True, frozen=True)
class EndFileWrite:
    """Close a file write; optional markers are verified after writing."""

    name: str
    delimiter: str
    expected_byte_count: int | None = None
    expected_digest: str | None = None

    def render(self) -> list[str]:
        lines = [self.delimiter]
        if self.expected_byte_count is not None:
            lines.append(count_check_line(self.name, self.expected_byte_count))
        if self.expected_digest is not None:
            lines.append(digest_check_line(self.name, self.expected_digest))
        return lines


@dataclass(slots=True, frozen=True)
class SuspendFileWrite:
    """Close the here-document of a file that continues in the next part."""

    name: str
    delimiter: str
    next_part: int

    def render(self) -> list[str]:
        notice = f"File {self.name} is continued in part {self.next_part:02d}"
        return [self.delimiter, f"echo {quote(notice)}"]


@dataclass(slots=True, frozen=True)
class RestoreTimestamp:
    name: str
    mtime: int

    def render(self) -> list[str]:
        return [f"TZ=UTC0 touch -t {format_timestamp(self.mtime)} {quote(self.name)}"]


@dataclass(slots=True, frozen=True)
class SequenceCheck:
    """Refuse to continue unless the previous part was unpacked."""

    part: int

    def render(self) -> list[str]:
        previous = self.part - 1
        notice = quote(f"Please unpack part {previous:02d} first!")
        return [
            f'test "$( cat {SEQUENCE_FILE} 2>/dev/null )" = {previous} '
            f"|| {{ echo {notice}; exit 1; }}"
        ]


@dataclass(slots=True, frozen=True)
class PartComplete:
    """Record that a part of a split archive was fully unpacked."""

    part: int | None
    final: bool = False

    def render(self) -> list[str]:
        if self.final:
            return [f"rm -f {SEQUENCE_FILE}"]
        return [f"echo {self.part} > {SEQUENCE_FILE}"]


@dataclass(slots=True, frozen=True)
class UnrecognizedCommand:
    """Shell text the interpreter refuses to execute."""

    text: str
    line_number: int | None = None

    def render(self) -> list[str]:
        return [self.text]


@dataclass(slots=True, frozen=True)
class SegmentEnd:
    def render(self) -> list[str]:
        return ["exit 0"]


Directive: TypeAlias = (
    Preamble
    | Comment
    | ItemBanner
    | ChangeDirectory
    | EnsureDirectory
    | Message
    | Trace
    | BeginFileWrite
    | ResumeFileWrite
    | FileDataLine
    | EndFileWrite
    | SuspendFileWrite
    | RestoreTimestamp
    | SequenceCheck
    | PartComplete
    | UnrecognizedCommand
    | SegmentEnd
)


def render_lines(directives: list[Directive] | tuple[Directive, ...]) -> list[str]:
    """Flatten directives into archive lines."""
    lines: list[str] = []
    for directive in directives:
        lines.extend(directive.render())
    return lines


def rendered_size(directive: Directive) -> int:
    """Size in bytes of a directive's rendering, newlines included."""
    return sum(len(line) + 1 for line in directive.render())


def render_text(directives: list[Directive] | tuple[Directive, ...]) -> str:
    """Render directives into archive text."""
    return "".join(f"{line}\n" for line in render_lines(directives))
