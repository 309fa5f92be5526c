"""Archive assembly: classification, integrity markers, building, and splitting."""

from .builder import ArchiveBuilder, build_parts, choose_delimiter, needs_prefix, net_archive_name
from .classifier import Classification, classify, classify_file
from .integrity import IntegrityMarkers, IntegrityTracker, VerificationResult, digest, verify
from .models import (
    ArchiveHeader,
    BuildOptions,
    CompactionSpec,
    EncodingMode,
    FileBundle,
    SplitPlan,
)
from .split import ArchivePart, part_output_name, resolve_size_limit, split_archive
from .staging import archive_member_name, run_compaction, stage_file

__all__ = [
    "ArchiveBuilder",
    "ArchiveHeader",
    "ArchivePart",
    "BuildOptions",
    "Classification",
    "CompactionSpec",
    "EncodingMode",
    "FileBundle",
    "IntegrityMarkers",
    "IntegrityTracker",
    "SplitPlan",
    "VerificationResult",
    "archive_member_name",
    "build_parts",
    "choose_delimiter",
    "classify",
    "classify_file",
    "digest",
    "needs_prefix",
    "net_archive_name",
    "part_output_name",
    "resolve_size_limit",
    "run_compaction",
    "split_archive",
    "stage_file",
    "verify",
]
