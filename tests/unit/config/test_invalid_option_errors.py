from __future__ import annotations

from pathlib import Path

import pytest

from sharkit.config import SharConfig, UnsharConfig, UuencodeConfig, load_effective_config
from sharkit.errors import ValidationError


def _options(tmp_path: Path, text: str) -> Path:
    path = tmp_path / "sharkit.toml"
    path.write_text(text, encoding="utf-8")
    return path


def test_unknown_field_is_rejected(tmp_path: Path) -> None:
    with pytest.raises(ValidationError, match="'shar.colour' is not supported"):
        load_effective_config(SharConfig(), _options(tmp_path, "[shar]\ncolour = 'red'\n"))


@pytest.mark.parametrize(
    "text",
    ["[shar]\ncut_mark = 'yes'\n", "[shar]\ncompaction_level = true\n", "shar = 3\n"],
)
def test_wrong_types_are_rejected(tmp_path: Path, text: str) -> None:
    with pytest.raises(ValidationError):
        load_effective_config(SharConfig(), _options(tmp_path, text))


def test_invalid_toml_is_reported(tmp_path: Path) -> None:
    with pytest.raises(ValidationError, match="not valid TOML"):
        load_effective_config(SharConfig(), _options(tmp_path, "[shar\n"))


def test_missing_option_file_is_reported(tmp_path: Path) -> None:
    with pytest.raises(ValidationError, match="cannot be read"):
        load_effective_config(SharConfig(), tmp_path / "absent.toml")


def test_unknown_enum_value_is_rejected(tmp_path: Path) -> None:
    with pytest.raises(ValidationError, match="must be one of"):
        load_effective_config(UnsharConfig(), _options(tmp_path, "[unshar]\noverwrite = 'ask'\n"))


@pytest.mark.parametrize(
    "kwargs",
    [
        {"output_prefix": "p", "whole_size_limit": 2048, "split_size_limit": 2048},
        {"whole_size_limit": 2048},
        {"encode_file_name": True},
        {"compaction": "zip"},
        {"here_delimiter": "bad delimiter"},
        {"net_headers": True},
    ],
)
def test_inconsistent_shar_settings(kwargs: dict[str, object]) -> None:
    with pytest.raises(ValidationError):
        SharConfig(**kwargs)  # type: ignore[arg-type]


def test_unshar_boundaries_are_exclusive() -> None:
    with pytest.raises(ValidationError, match="mutually exclusive"):
        UnsharConfig(split_at="--", exit_0=True)
    with pytest.raises(ValidationError, match="empty"):
        UnsharConfig(split_at="")


def test_file_name_encoding_needs_base64() -> None:
    with pytest.raises(ValidationError):
        UuencodeConfig(encode_file_name=True)
