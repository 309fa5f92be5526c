"""Option files and deterministic merge order for the command-line tools.

Each tool's settings are merged as defaults, then the tool's table of an
optional TOML option file (`--load-opts`), then command-line overrides.
"""

from __future__ import annotations

import tomllib
from collections.abc import Mapping
from dataclasses import dataclass, replace
from pathlib import Path
from typing import TypeVar

from sharkit.archive.models import (
    DEFAULT_HERE_DELIMITER,
    ArchiveHeader,
    BuildOptions,
    CompactionSpec,
    EncodingMode,
    SplitPlan,
)
from sharkit.archive.split import resolve_size_limit
from sharkit.codec import Scheme
from sharkit.errors import ValidationError
from sharkit.unshar.models import ExtractionContext, OverwritePolicy


@dataclass(slots=True, frozen=True)
class SharConfig:
    """Fully merged archive-creation settings."""

    encoding_mode: EncodingMode = EncodingMode.AUTO
    base64: bool = False
    encode_file_name: bool = False
    compaction: str | None = None
    compaction_level: int = 9
    archive_name: str | None = None
    submitter: str | None = None
    net_headers: bool = False
    cut_mark: bool = False
    here_delimiter: str = DEFAULT_HERE_DELIMITER
    output_prefix: str | None = None
    whole_size_limit: int | None = None
    split_size_limit: int | None = None
    character_count: bool = True
    md5_digest: bool = True
    quiet_unshar: bool = False
    restore_timestamps: bool = True
    force_prefix: bool = False
    basename: bool = False

    def __post_init__(self) -> None:
        if self.whole_size_limit is not None and self.split_size_limit is not None:
            raise ValidationError(
                reason="Whole-size and split-size limits are mutually exclusive.",
                hint="Pass either --whole-size-limit or --split-size-limit.",
            )
        if self.size_limit is not None and not self.output_prefix:
            raise ValidationError(
                reason="A size limit needs an output prefix.",
                hint="Pass --output-prefix so each part gets its own file.",
            )
        if self.encode_file_name and not self.base64:
            raise ValidationError(
                reason="File name encoding requires the base64 scheme.",
                hint="Combine --encode-file-name with --base64.",
            )
        # constructing the header and compaction spec validates them
        self.header()
        self.compaction_spec()

    @property
    def size_limit(self) -> int | None:
        if self.split_size_limit is not None:
            return self.split_size_limit
        return self.whole_size_limit

    def compaction_spec(self) -> CompactionSpec | None:
        if self.compaction is None:
            return None
        return CompactionSpec(tool=self.compaction, level=self.compaction_level)

    def header(self) -> ArchiveHeader:
        return ArchiveHeader(
            archive_name=self.archive_name,
            submitter=self.submitter,
            cut_mark=self.cut_mark,
            net_headers=self.net_headers,
            here_delimiter=self.here_delimiter,
            quiet_unshar=self.quiet_unshar,
            restore_timestamps=self.restore_timestamps,
            force_prefix_every_line=self.force_prefix,
        )

    def build_options(self) -> BuildOptions:
        return BuildOptions(
            encoding_mode=self.encoding_mode,
            scheme=Scheme.BASE64 if self.base64 else Scheme.UU,
            encode_filename=self.encode_file_name,
            character_count=self.character_count,
            md5_digest=self.md5_digest,
            basename_only=self.basename,
            compaction=self.compaction_spec(),
        )

    def split_plan(self) -> SplitPlan:
        return SplitPlan(
            limit_bytes=self.size_limit,
            allow_mid_item_split=self.split_size_limit is not None,
        )


@dataclass(slots=True, frozen=True)
class UnsharConfig:
    """Fully merged extraction settings."""

    directory: Path = Path(".")
    overwrite: OverwritePolicy = OverwritePolicy.REJECT
    split_at: str | None = None
    exit_0: bool = False
    debug: bool = False
    quiet: bool = False
    audit_log: Path | None = None

    def __post_init__(self) -> None:
        if self.split_at is not None and self.exit_0:
            raise ValidationError(
                reason="split_at and exit_0 are mutually exclusive.",
                hint="Pass either --split-at or --exit-0.",
            )
        if self.split_at == "":
            raise ValidationError(
                reason="split_at pattern is empty.",
                hint="Pass the exact separator line, e.g. --split-at='--'.",
            )

    def context(self) -> ExtractionContext:
        return ExtractionContext(
            target_directory=self.directory.resolve(),
            overwrite_policy=self.overwrite,
            debug=self.debug,
            quiet=self.quiet,
        )


@dataclass(slots=True, frozen=True)
class UuencodeConfig:
    base64: bool = False
    encode_file_name: bool = False

    def __post_init__(self) -> None:
        if self.encode_file_name and not self.base64:
            raise ValidationError(
                reason="File name encoding requires the base64 scheme.",
                hint="Combine --encode-file-name with --base64.",
            )

    @property
    def scheme(self) -> Scheme:
        return Scheme.BASE64 if self.base64 else Scheme.UU


@dataclass(slots=True, frozen=True)
class UudecodeConfig:
    output_file: str | None = None
    ignore_chmod: bool = False
    directory: Path = Path(".")


ConfigT = TypeVar("ConfigT", SharConfig, UnsharConfig, UuencodeConfig, UudecodeConfig)

_SECTIONS: dict[type, str] = {
    SharConfig: "shar",
    UnsharConfig: "unshar",
    UuencodeConfig: "uuencode",
    UudecodeConfig: "uudecode",
}

_FIELD_TYPES: dict[type, dict[str, tuple[type, ...]]] = {
    SharConfig: {
        "encoding_mode": (str,),
        "base64": (bool,),
        "encode_file_name": (bool,),
        "compaction": (str,),
        "compaction_level": (int,),
        "archive_name": (str,),
        "submitter": (str,),
        "net_headers": (bool,),
        "cut_mark": (bool,),
        "here_delimiter": (str,),
        "output_prefix": (str,),
        "whole_size_limit": (int, str),
        "split_size_limit": (int, str),
        "character_count": (bool,),
        "md5_digest": (bool,),
        "quiet_unshar": (bool,),
        "restore_timestamps": (bool,),
        "force_prefix": (bool,),
        "basename": (bool,),
    },
    UnsharConfig: {
        "directory": (str,),
        "overwrite": (str,),
        "split_at": (str,),
        "exit_0": (bool,),
        "debug": (bool,),
        "quiet": (bool,),
        "audit_log": (str,),
    },
    UuencodeConfig: {
        "base64": (bool,),
        "encode_file_name": (bool,),
    },
    UudecodeConfig: {
        "output_file": (str,),
        "ignore_chmod": (bool,),
        "directory": (str,),
    },
}


def load_options_file(path: Path | None) -> dict[str, object]:
    """Load an optional TOML option file."""
    if path is None:
        return {}
    try:
        with path.open("rb") as handle:
            payload = tomllib.load(handle)
    except OSError as error:
        raise ValidationError(
            reason="Option file cannot be read.",
            hint="Check the path passed to --load-opts.",
            path=str(path),
            actual=str(error),
        ) from error
    except tomllib.TOMLDecodeError as error:
        raise ValidationError(
            reason="Option file is not valid TOML.",
            hint="Fix the syntax error reported below.",
            path=str(path),
            actual=str(error),
        ) from error
    return payload


def _get_table(payload: Mapping[str, object], key: str) -> dict[str, object]:
    value = payload.get(key, {})
    if not isinstance(value, dict):
        raise ValidationError(reason=f"Config section '{key}' must be a table.")
    return value


def _read_table(
    payload: Mapping[str, object], section: str, field_types: dict[str, tuple[type, ...]]
) -> dict[str, object]:
    values: dict[str, object] = {}
    for key, value in _get_table(payload, section).items():
        name = key.replace("-", "_")
        expected = field_types.get(name)
        if expected is None:
            raise ValidationError(
                reason=f"Config field '{section}.{key}' is not supported.",
                hint=f"Supported fields: {', '.join(sorted(field_types))}.",
            )
        if isinstance(value, bool) and bool not in expected:
            valid = False
        else:
            valid = isinstance(value, expected)
        if not valid:
            kinds = " or ".join(kind.__name__ for kind in expected)
            raise ValidationError(
                reason=f"Config field '{section}.{key}' must be of type {kinds}.",
                actual=value,
            )
        values[name] = value
    return values


def _coerce(values: dict[str, object]) -> dict[str, object]:
    coerced = dict(values)
    for name in ("whole_size_limit", "split_size_limit"):
        if name in coerced:
            coerced[name] = resolve_size_limit(coerced[name])  # type: ignore[arg-type]
    for name in ("directory", "audit_log"):
        if name in coerced:
            coerced[name] = Path(str(coerced[name]))
    for name, enum_type in (("encoding_mode", EncodingMode), ("overwrite", OverwritePolicy)):
        if name in coerced and not isinstance(coerced[name], enum_type):
            try:
                coerced[name] = enum_type(coerced[name])
            except ValueError as error:
                choices = ", ".join(member.value for member in enum_type)
                raise ValidationError(
                    reason=f"Config field '{name}' must be one of: {choices}.",
                    actual=coerced[name],
                ) from error
    return coerced


def merge_config(
    base: ConfigT,
    payload: Mapping[str, object],
    overrides: Mapping[str, object] | None = None,
) -> ConfigT:
    """Merge the tool's option-file table, then non-None CLI overrides."""
    config_type = type(base)
    values = _read_table(payload, _SECTIONS[config_type], _FIELD_TYPES[config_type])
    values.update({key: value for key, value in (overrides or {}).items() if value is not None})
    return replace(base, **_coerce(values))


def load_effective_config(
    base: ConfigT,
    options_file: Path | None = None,
    overrides: Mapping[str, object] | None = None,
) -> ConfigT:
    """Load effective config using merge order defaults -> option file -> overrides."""
    return merge_config(base, load_options_file(options_file), overrides)
