"""Parse collected archive text back into directives.

The grammar recognised here is the one `sharkit.archive.directives` renders,
plus the plain `cat`/`sed`/`uudecode` here-document forms older archives
use. Anything else becomes an `UnrecognizedCommand` and is never executed.
"""

from __future__ import annotations

import re
import shlex
from collections.abc import Sequence
from dataclasses import dataclass, field
from typing import Final

from sharkit.archive.directives import (
    CONTINUED_MARKER,
    SEQUENCE_FILE,
    BeginFileWrite,
    ChangeDirectory,
    Directive,
    EndFileWrite,
    EnsureDirectory,
    FileDataLine,
    Message,
    PartComplete,
    RestoreTimestamp,
    ResumeFileWrite,
    SegmentEnd,
    SequenceCheck,
    SuspendFileWrite,
    Trace,
    UnrecognizedCommand,
    parse_timestamp,
)
from sharkit.archive.models import COMPACTION_TOOLS
from sharkit.errors import TruncatedArchive

WRITE_COMMANDS: Final[tuple[str, ...]] = ("sed", "cat", "uudecode")
REDIRECTS: Final[tuple[str, ...]] = (">", ">>")
SHELL_OPERATORS: Final[frozenset[str]] = frozenset({"|", "||", "&", "&&", ";", ">", ">>", "<", "<<"})

SEQUENCE_CHECK_PATTERN: Final[re.Pattern[str]] = re.compile(
    rf'^test "\$\( cat {SEQUENCE_FILE} 2>/dev/null \)" = (?P<previous>\d+) \|\| '
)
PART_COMPLETE_PATTERN: Final[re.Pattern[str]] = re.compile(
    rf"^echo (?P<part>\d+) > {SEQUENCE_FILE}$"
)
FINAL_PART_PATTERN: Final[re.Pattern[str]] = re.compile(rf"^rm -f {SEQUENCE_FILE}$")
COUNT_CHECK_PATTERN: Final[re.Pattern[str]] = re.compile(
    r"^test \$\( LC_ALL=C wc -c < (?P<name>.+) \) -ne (?P<count>\d+) && echo "
)
DIGEST_CHECK_PATTERN: Final[re.Pattern[str]] = re.compile(
    r"^echo (?P<spec>.+?) \| md5sum -c "
)
SUSPEND_PATTERN: Final[re.Pattern[str]] = re.compile(
    r"^File (?P<name>.+) is continued in part (?P<part>\d+)$"
)
STRIP_EXPRESSION: Final[re.Pattern[str]] = re.compile(r"^s/\^(?P<prefix>[^/\\.*\[\]^$]+)//$")
CONTINUED_PATTERN: Final[re.Pattern[str]] = re.compile(rf"\s{re.escape(CONTINUED_MARKER)}\s*$")
MODE_PATTERN: Final[re.Pattern[str]] = re.compile(r"^[0-7]{1,4}$")
EXIT_PATTERN: Final[re.Pattern[str]] = re.compile(r"^exit(?:\s+\d+)?\s*(?:;\s*)?$")


@dataclass(slots=True)
class ParseResult:
    """Directives of one segment with the line each one started on."""

    directives: list[Directive] = field(default_factory=list)
    line_numbers: list[int] = field(default_factory=list)
    error: TruncatedArchive | None = None
    consumed: int = 0

    def add(self, directive: Directive, line_number: int) -> None:
        self.directives.append(directive)
        self.line_numbers.append(line_number)


@dataclass(slots=True, frozen=True)
class _WriteCommand:
    name: str | None
    mode_bits: int | None
    delimiter: str
    encoded: bool
    compaction: str | None
    strip_prefix: str | None
    append: bool


def _tokens(line: str) -> list[str] | None:
    lexer = shlex.shlex(line, posix=True, punctuation_chars=True)
    lexer.whitespace_split = True
    try:
        return list(lexer)
    except ValueError:
        return None


def _words(line: str) -> list[str] | None:
    try:
        return shlex.split(line, comments=True)
    except ValueError:
        return None


def _unquote(word: str) -> str | None:
    words = _words(word)
    if words is None or len(words) != 1:
        return None
    return words[0]


def _split_on(tokens: list[str], operator: str) -> list[list[str]]:
    groups: list[list[str]] = [[]]
    for token in tokens:
        if token == operator:
            groups.append([])
        else:
            groups[-1].append(token)
    return groups


def _take_redirect(stage: list[str]) -> tuple[list[str], str | None, bool] | None:
    """Remove a trailing `> name`/`>> name`; return (rest, name, append)."""
    for index, token in enumerate(stage):
        if token in REDIRECTS:
            if index + 1 >= len(stage):
                return None
            rest = stage[:index] + stage[index + 2 :]
            return rest, stage[index + 1], token == ">>"
    return stage, None, False


def _parse_write_command(line: str) -> _WriteCommand | None:
    """Recognise a here-document command that writes one file."""
    tokens = _tokens(line)
    if not tokens or tokens[0] not in WRITE_COMMANDS or "<<" not in tokens:
        return None
    continued = CONTINUED_PATTERN.search(line) is not None

    commands = _split_on(tokens, "&&")
    if len(commands) > 2:
        return None
    stages = _split_on(commands[0], "|")
    if len(stages) > 2:
        return None

    reader = stages[0]
    if "<<" not in reader:
        return None
    marker = reader.index("<<")
    if marker + 1 >= len(reader):
        return None
    delimiter = reader[marker + 1]
    reader = reader[:marker] + reader[marker + 2 :]

    compaction: str | None = None
    target: str | None = None
    append = False
    if len(stages) == 2:
        taken = _take_redirect(stages[1])
        if taken is None:
            return None
        tool_words, target, append = taken
        if not tool_words or tool_words[0] not in COMPACTION_TOOLS:
            return None
        if sorted("".join(word.lstrip("-") for word in tool_words[1:])) != ["c", "d"]:
            return None
        compaction = tool_words[0]

    taken = _take_redirect(reader)
    if taken is None:
        return None
    reader, reader_target, reader_append = taken
    if reader_target is not None:
        if compaction is not None:
            return None
        target, append = reader_target, reader_append

    command, arguments = reader[0], reader[1:]
    encoded = command == "uudecode"
    strip_prefix: str | None = None
    if command == "sed":
        if len(arguments) != 1 or target is None:
            return None
        match = STRIP_EXPRESSION.match(arguments[0])
        if match is None:
            return None
        strip_prefix = match.group("prefix")
    elif command == "cat":
        if arguments or target is None:
            return None
    else:
        if arguments[:1] == ["-o"] and len(arguments) == 2:
            output = arguments[1]
        elif not arguments:
            output = None
        else:
            return None
        if compaction is not None:
            if output != "/dev/stdout" or target is None:
                return None
        elif target is not None:
            return None
        else:
            target = output
            append = continued

    mode_bits: int | None = None
    if len(commands) == 2:
        chmod = commands[1]
        if (
            len(chmod) != 3
            or chmod[0] != "chmod"
            or MODE_PATTERN.match(chmod[1]) is None
            or chmod[2] != target
        ):
            return None
        mode_bits = int(chmod[1], 8)

    return _WriteCommand(
        name=target,
        mode_bits=mode_bits,
        delimiter=delimiter,
        encoded=encoded,
        compaction=compaction,
        strip_prefix=strip_prefix,
        append=append,
    )


def _write_directive(command: _WriteCommand) -> Directive:
    if command.append and command.name is not None:
        return ResumeFileWrite(
            name=command.name,
            delimiter=command.delimiter,
            encoded=command.encoded,
            compaction=command.compaction,
            strip_prefix=command.strip_prefix,
        )
    return BeginFileWrite(
        name=command.name,
        mode_bits=command.mode_bits,
        delimiter=command.delimiter,
        encoded=command.encoded,
        compaction=command.compaction,
        strip_prefix=command.strip_prefix,
    )


def _parse_check(line: str) -> tuple[int | None, str | None] | None:
    """Return (count, digest) for an integrity check line, one of them set."""
    count = COUNT_CHECK_PATTERN.match(line)
    if count is not None:
        return int(count.group("count")), None
    check = DIGEST_CHECK_PATTERN.match(line)
    if check is not None:
        spec = _unquote(check.group("spec"))
        if spec is None:
            return None
        digest, _, _name = spec.partition("  ")
        if re.fullmatch(r"[0-9a-fA-F]{32}", digest) is None:
            return None
        return None, digest.lower()
    return None


def _parse_simple(line: str, line_number: int) -> list[Directive]:
    """Parse a one-line command."""
    sequence = SEQUENCE_CHECK_PATTERN.match(line)
    if sequence is not None:
        return [SequenceCheck(int(sequence.group("previous")) + 1)]
    complete = PART_COMPLETE_PATTERN.match(line)
    if complete is not None:
        return [PartComplete(part=int(complete.group("part")))]
    if FINAL_PART_PATTERN.match(line) is not None:
        return [PartComplete(part=None, final=True)]

    unrecognized: list[Directive] = [UnrecognizedCommand(text=line, line_number=line_number)]
    tokens = _tokens(line)
    if tokens is None or any(token in SHELL_OPERATORS for token in tokens):
        return unrecognized
    words = _words(line)
    if not words:
        return unrecognized
    command, arguments = words[0], words[1:]

    if command == "cd" and len(arguments) == 1:
        return [ChangeDirectory(arguments[0])]
    if command == "mkdir":
        paths = [argument for argument in arguments if argument != "-p"]
        if paths and not any(path.startswith("-") for path in paths):
            return [EnsureDirectory(path) for path in paths]
        return unrecognized
    if command == "echo":
        return [Message(" ".join(arguments))]
    if command == "set" and arguments in (["-x"], ["+x"]):
        return [Trace(enabled=arguments[0] == "-x")]
    if command == "TZ=UTC0" and arguments:
        command, arguments = arguments[0], arguments[1:]
    if command == "touch" and len(arguments) == 3 and arguments[0] == "-t":
        try:
            mtime = parse_timestamp(arguments[1])
        except ValueError:
            return unrecognized
        return [RestoreTimestamp(name=arguments[2], mtime=mtime)]
    return unrecognized


def parse_segment(lines: Sequence[str], first_line_number: int = 1) -> ParseResult:
    """Parse the lines of one collected segment.

    Parsing stops after the first `exit` line; `consumed` counts the lines
    read up to that point. A here-document whose delimiter never arrives is
    dropped and reported as a truncated archive.
    """
    result = ParseResult()
    index = 0
    total = len(lines)
    while index < total:
        line_number = first_line_number + index
        line = lines[index].rstrip("\r")
        stripped = line.strip()
        index += 1
        if not stripped or stripped.startswith("#") or stripped == ":":
            continue
        if EXIT_PATTERN.match(stripped) is not None:
            result.add(SegmentEnd(), line_number)
            break

        command = _parse_write_command(stripped)
        if command is None:
            for directive in _parse_simple(stripped, line_number):
                result.add(directive, line_number)
            continue

        body: list[tuple[str, int]] = []
        closed = False
        while index < total:
            body_line = lines[index]
            body_number = first_line_number + index
            index += 1
            if body_line == command.delimiter or body_line.rstrip("\r") == command.delimiter:
                closed = True
                break
            body.append((body_line, body_number))
        if not closed:
            result.error = TruncatedArchive(
                reason="Input ended inside a file body.",
                hint="The archive was cut short; obtain a complete copy.",
                path=command.name,
                line_number=line_number,
                expected=command.delimiter,
            )
            break

        result.add(_write_directive(command), line_number)
        for text, number in body:
            result.add(FileDataLine(text), number)

        name = command.name or ""
        closing_number = first_line_number + index - 1
        if index < total:
            words = _words(lines[index].rstrip("\r"))
            if words and words[0] == "echo" and len(words) == 2:
                suspended = SUSPEND_PATTERN.match(words[1])
                if suspended is not None and suspended.group("name") == name:
                    result.add(
                        SuspendFileWrite(
                            name=name,
                            delimiter=command.delimiter,
                            next_part=int(suspended.group("part")),
                        ),
                        closing_number,
                    )
                    index += 1
                    continue

        expected_count: int | None = None
        expected_digest: str | None = None
        while index < total:
            check = _parse_check(lines[index].rstrip("\r"))
            if check is None:
                break
            count, digest = check
            if count is not None:
                expected_count = count
            if digest is not None:
                expected_digest = digest
            index += 1
        result.add(
            EndFileWrite(
                name=name,
                delimiter=command.delimiter,
                expected_byte_count=expected_count,
                expected_digest=expected_digest,
            ),
            closing_number,
        )
    result.consumed = index
    return result
