"""Safe extraction of shell archives without running a shell."""

from .interpreter import Interpreter
from .models import (
    ExtractionContext,
    FileAction,
    FileOutcome,
    OverwritePolicy,
    OverwritePrompt,
    RunReport,
    SegmentReport,
)
from .parser import ParseResult, parse_segment
from .scanner import Segment, Unsharer, decode_lines, is_archive_start, iter_segments, unshar_stream

__all__ = [
    "ExtractionContext",
    "FileAction",
    "FileOutcome",
    "Interpreter",
    "OverwritePolicy",
    "OverwritePrompt",
    "ParseResult",
    "RunReport",
    "Segment",
    "SegmentReport",
    "Unsharer",
    "decode_lines",
    "is_archive_start",
    "iter_segments",
    "parse_segment",
    "unshar_stream",
]
