from __future__ import annotations

from pathlib import Path

from sharkit.archive.models import EncodingMode
from sharkit.config import SharConfig, UnsharConfig, UuencodeConfig, load_effective_config
from sharkit.unshar.models import OverwritePolicy


def test_merge_order_defaults_then_file_then_cli(tmp_path: Path) -> None:
    options = tmp_path / "sharkit.toml"
    options.write_text(
        "\n".join(
            [
                "[shar]",
                "archive-name = 'tools'",
                "cut_mark = true",
                "encoding_mode = 'text'",
                "output_prefix = 'part'",
                "split_size_limit = '64K'",
            ]
        ),
        encoding="utf-8",
    )

    config = load_effective_config(
        SharConfig(),
        options,
        {"archive_name": "override", "cut_mark": None, "md5_digest": False},
    )

    assert config.archive_name == "override"
    assert config.cut_mark is True
    assert config.encoding_mode is EncodingMode.TEXT
    assert config.split_size_limit == 65_536
    assert config.md5_digest is False
    assert config.character_count is True


def test_defaults_without_option_file() -> None:
    config = load_effective_config(SharConfig())

    assert config == SharConfig()
    assert config.split_plan().limit_bytes is None
    assert config.build_options().md5_digest is True


def test_split_plan_follows_the_chosen_limit() -> None:
    whole = SharConfig(output_prefix="p", whole_size_limit=2048).split_plan()
    mid = SharConfig(output_prefix="p", split_size_limit=2048).split_plan()

    assert (whole.limit_bytes, whole.allow_mid_item_split) == (2048, False)
    assert (mid.limit_bytes, mid.allow_mid_item_split) == (2048, True)


def test_unshar_section_is_read(tmp_path: Path) -> None:
    options = tmp_path / "sharkit.toml"
    options.write_text(
        "[unshar]\ndirectory = 'out'\noverwrite = 'force'\nexit-0 = true\n",
        encoding="utf-8",
    )

    config = load_effective_config(UnsharConfig(), options, {"directory": str(tmp_path / "cli")})

    assert config.directory == tmp_path / "cli"
    assert config.overwrite is OverwritePolicy.FORCE
    assert config.exit_0 is True
    assert config.context().target_directory == (tmp_path / "cli").resolve()


def test_other_sections_are_ignored(tmp_path: Path) -> None:
    options = tmp_path / "sharkit.toml"
    options.write_text("[shar]\nbasename = true\n[uuencode]\nbase64 = true\n", encoding="utf-8")

    config = load_effective_config(UuencodeConfig(), options)

    assert config.base64 is True
    assert config.scheme.value == "base64"
