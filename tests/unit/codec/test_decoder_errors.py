from __future__ import annotations

import pytest

from sharkit.codec import Scheme, decode, parse_header
from sharkit.errors import (
    CodecError,
    InvalidAlphabetByte,
    LineLengthMismatch,
    MalformedHeader,
    MissingBeginMarker,
    MissingEndMarker,
)


def test_missing_begin_line_is_rejected() -> None:
    with pytest.raises(MissingBeginMarker):
        decode(["#0V%T", "`", "end"])


def test_empty_input_has_no_begin_line() -> None:
    with pytest.raises(MissingBeginMarker, match="No begin line"):
        decode([])


@pytest.mark.parametrize(
    "line",
    ["begin", "begin 644", "begin rwx file", "begin 9999 file", "begin 644  "],
)
def test_malformed_headers_are_rejected(line: str) -> None:
    with pytest.raises(MalformedHeader):
        parse_header(line)


def test_declared_length_must_match_encoded_data() -> None:
    with pytest.raises(LineLengthMismatch) as error:
        decode(["begin 644 cat", "$0V%T", "`", "end"])

    assert error.value.line_number == 2


def test_non_alphabet_characters_are_rejected_in_classic_body() -> None:
    with pytest.raises(InvalidAlphabetByte):
        decode(["begin 644 cat", "#0v%t", "`", "end"])


def test_non_alphabet_characters_are_rejected_in_base64_body() -> None:
    with pytest.raises(InvalidAlphabetByte):
        decode(["begin-base64 644 x", "aGVs*G8=", "====", "end"])


def test_missing_end_line_is_rejected() -> None:
    with pytest.raises(MissingEndMarker):
        decode(["begin 644 cat", "#0V%T", "`"])


def test_base64_block_needs_end_of_data_marker() -> None:
    with pytest.raises(MissingEndMarker, match="===="):
        decode(["begin-base64 644 x", "aGVsbG8=", "end"])


def test_scheme_mismatch_is_reported() -> None:
    with pytest.raises(MalformedHeader, match="different scheme"):
        decode(["begin 644 cat", "#0V%T", "`", "end"], scheme=Scheme.BASE64)


def test_codec_errors_share_a_base_class() -> None:
    for error_type in (
        MissingBeginMarker,
        MalformedHeader,
        LineLengthMismatch,
        InvalidAlphabetByte,
        MissingEndMarker,
    ):
        assert issubclass(error_type, CodecError)
