"""Partition an archive's directives into size-bounded parts."""

from __future__ import annotations

import re
from collections.abc import Callable, Sequence
from dataclasses import dataclass
from typing import Final

from sharkit.archive.directives import (
    BeginFileWrite,
    Directive,
    EndFileWrite,
    ItemBanner,
    Message,
    PartComplete,
    ResumeFileWrite,
    SegmentEnd,
    SequenceCheck,
    SuspendFileWrite,
    render_text,
    rendered_size,
)
from sharkit.archive.models import SplitPlan
from sharkit.errors import ValidationError

MIN_SIZE_LIMIT: Final[int] = 1024
MAX_SIZE_LIMIT: Final[int] = 2**31 - 1
KILOBYTE_THRESHOLD: Final[int] = 1024
SIZE_SUFFIXES: Final[dict[str, int]] = {
    "k": 1000,
    "kB": 1000,
    "K": 1024,
    "KiB": 1024,
    "m": 1_000_000,
    "MB": 1_000_000,
    "M": 2**20,
    "MiB": 2**20,
}
SIZE_PATTERN: Final[re.Pattern[str]] = re.compile(r"^\s*(?P<number>\d+)\s*(?P<suffix>[A-Za-z]*)\s*$")
PERCENT_FORMAT: Final[re.Pattern[str]] = re.compile(r"%0?\d*d")

PreambleFactory = Callable[[int, bool], list[Directive]]


@dataclass(slots=True, frozen=True)
class ArchivePart:
    """Directives written to one output stream."""

    index: int
    directives: tuple[Directive, ...]

    def render(self) -> str:
        return render_text(self.directives)

    @property
    def size(self) -> int:
        return sum(rendered_size(directive) for directive in self.directives)


def resolve_size_limit(value: int | str) -> int:
    """Resolve a configured size limit to bytes.

    Plain numbers below 1024 are kilobytes; suffixes k/kB (1000),
    K/KiB (1024), m/MB (10**6), and M/MiB (2**20) scale explicitly.
    """
    if isinstance(value, bool):
        raise ValidationError(reason="Size limit must be a number.", hint="Pass e.g. 50K.")
    if isinstance(value, int):
        number, suffix = value, ""
    else:
        match = SIZE_PATTERN.match(value)
        if match is None:
            raise ValidationError(
                reason="Size limit is not a number with an optional suffix.",
                hint="Use forms such as 60, 60000, 64K, or 1M.",
                actual=value,
            )
        number, suffix = int(match.group("number")), match.group("suffix")
    if suffix:
        scale = SIZE_SUFFIXES.get(suffix)
        if scale is None:
            raise ValidationError(
                reason=f"Unknown size suffix '{suffix}'.",
                hint=f"Use one of: {', '.join(SIZE_SUFFIXES)}.",
                actual=value,
            )
        resolved = number * scale
    elif number < KILOBYTE_THRESHOLD:
        resolved = number * 1024
    else:
        resolved = number
    if not MIN_SIZE_LIMIT <= resolved <= MAX_SIZE_LIMIT:
        raise ValidationError(
            reason="Size limit is outside the supported range.",
            hint=f"Choose a limit between {MIN_SIZE_LIMIT} and {MAX_SIZE_LIMIT} bytes.",
            expected=f"{MIN_SIZE_LIMIT}..{MAX_SIZE_LIMIT}",
            actual=resolved,
        )
    return resolved


def part_output_name(prefix: str, index: int) -> str:
    """Name of the output file for part `index`."""
    if prefix.count("%") == 1 and PERCENT_FORMAT.search(prefix):
        return prefix % index
    return f"{prefix}.{index:02d}"


def _sizes(directives: Sequence[Directive]) -> int:
    return sum(rendered_size(directive) for directive in directives)


def _partition(directives: Sequence[Directive]) -> list[list[Directive]]:
    """Group item directives; each group starts at an ItemBanner."""
    groups: list[list[Directive]] = []
    for directive in directives:
        if isinstance(directive, ItemBanner) or not groups:
            groups.append([])
        groups[-1].append(directive)
    return groups


def _body(directives: Sequence[Directive]) -> list[Directive]:
    start = next(
        (index for index, item in enumerate(directives) if isinstance(item, ItemBanner)),
        len(directives),
    )
    end = len(directives)
    while end > start and isinstance(directives[end - 1], SegmentEnd):
        end -= 1
    return list(directives[start:end])


def split_archive(
    directives: Sequence[Directive],
    plan: SplitPlan,
    preamble: PreambleFactory,
    notices: bool = True,
) -> list[ArchivePart]:
    """Split a single-part directive stream according to `plan`."""
    if plan.limit_bytes is None or _sizes(directives) <= plan.limit_bytes:
        return [ArchivePart(index=1, directives=tuple(directives))]
    body = _body(directives)
    if not body:
        return [ArchivePart(index=1, directives=tuple(directives))]
    if plan.allow_mid_item_split:
        return _split_mid_item(body, plan.limit_bytes, preamble, notices)
    return _split_whole_items(body, plan.limit_bytes, preamble)


def _split_whole_items(
    body: list[Directive],
    limit: int,
    preamble: PreambleFactory,
) -> list[ArchivePart]:
    trailer_size = rendered_size(SegmentEnd())
    parts_groups: list[list[list[Directive]]] = []
    current: list[list[Directive]] = []
    used = 0
    for group in _partition(body):
        group_size = _sizes(group)
        overhead = _sizes(preamble(len(parts_groups) + 1, True)) + trailer_size
        if current and overhead + used + group_size > limit:
            parts_groups.append(current)
            current, used = [], 0
        current.append(group)
        used += group_size
    if current:
        parts_groups.append(current)

    multipart = len(parts_groups) > 1
    parts: list[ArchivePart] = []
    for index, groups in enumerate(parts_groups, start=1):
        part_directives = preamble(index, multipart)
        for group in groups:
            part_directives.extend(group)
        part_directives.append(SegmentEnd())
        parts.append(ArchivePart(index=index, directives=tuple(part_directives)))
    return parts


@dataclass(slots=True, frozen=True)
class _OpenWrite:
    name: str
    delimiter: str
    encoded: bool
    compaction: str | None
    strip_prefix: str | None


def _track_open(current: _OpenWrite | None, directive: Directive) -> _OpenWrite | None:
    if isinstance(directive, (BeginFileWrite, ResumeFileWrite)):
        return _OpenWrite(
            name=directive.name or "",
            delimiter=directive.delimiter,
            encoded=directive.encoded,
            compaction=directive.compaction,
            strip_prefix=directive.strip_prefix,
        )
    if isinstance(directive, EndFileWrite):
        return None
    return current


def _opening(
    part: int, open_write: _OpenWrite | None, preamble: PreambleFactory
) -> list[Directive]:
    directives = preamble(part, True)
    if part > 1:
        directives.append(SequenceCheck(part))
    if open_write is not None:
        directives.append(ItemBanner(open_write.name))
        directives.append(
            ResumeFileWrite(
                name=open_write.name,
                delimiter=open_write.delimiter,
                encoded=open_write.encoded,
                compaction=open_write.compaction,
                strip_prefix=open_write.strip_prefix,
            )
        )
    return directives


def _closing(part: int, open_write: _OpenWrite | None, notices: bool) -> list[Directive]:
    directives: list[Directive] = []
    if open_write is not None:
        directives.append(
            SuspendFileWrite(name=open_write.name, delimiter=open_write.delimiter, next_part=part + 1)
        )
    directives.append(PartComplete(part=part))
    if notices:
        directives.append(Message(f"End of part {part:02d}, continue with part {part + 1:02d}"))
    directives.append(SegmentEnd())
    return directives


def _split_mid_item(
    body: list[Directive],
    limit: int,
    preamble: PreambleFactory,
    notices: bool,
) -> list[ArchivePart]:
    parts: list[ArchivePart] = []
    part = 1
    open_write: _OpenWrite | None = None
    current = _opening(part, open_write, preamble)
    used = _sizes(current)
    has_content = False
    for directive in body:
        size = rendered_size(directive)
        after = _track_open(open_write, directive)
        reserve = _sizes(_closing(part, after, notices))
        if has_content and used + size + reserve > limit:
            current.extend(_closing(part, open_write, notices))
            parts.append(ArchivePart(index=part, directives=tuple(current)))
            part += 1
            current = _opening(part, open_write, preamble)
            used = _sizes(current)
            has_content = False
        current.append(directive)
        used += size
        has_content = True
        open_write = after
    current.append(PartComplete(part=part, final=True))
    if notices:
        current.append(Message("End of multipart archive"))
    current.append(SegmentEnd())
    parts.append(ArchivePart(index=part, directives=tuple(current)))
    return parts
