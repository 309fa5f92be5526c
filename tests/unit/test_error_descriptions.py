from __future__ import annotations

import pytest

from sharkit import errors


def test_describe_includes_location_and_values() -> None:
    error = errors.CountMismatch(
        reason="Restored size differs from the original.",
        hint="The archive was damaged in transit.",
        path="a.txt",
        line_number=12,
        expected=10,
        actual=11,
    )

    assert error.describe() == (
        "a.txt:line 12: Restored size differs from the original. (expected 10, got 11)"
    )
    assert str(error) == "Restored size differs from the original."


def test_describe_without_context_is_the_reason() -> None:
    assert errors.ValidationError(reason="Bad option.").describe() == "Bad option."


@pytest.mark.parametrize(
    ("error_type", "parent"),
    [
        (errors.MissingBeginMarker, errors.CodecError),
        (errors.LineLengthMismatch, errors.CodecError),
        (errors.InvalidAlphabetByte, errors.CodecError),
        (errors.MissingEndMarker, errors.CodecError),
        (errors.MalformedHeader, errors.CodecError),
        (errors.CountMismatch, errors.IntegrityMismatch),
        (errors.DigestMismatch, errors.IntegrityMismatch),
        (errors.PathTraversalRejected, errors.SharError),
        (errors.OverwriteRefused, errors.SharError),
        (errors.TruncatedArchive, errors.SharError),
        (errors.CompactionToolFailure, errors.SharError),
        (errors.DestinationUnwritable, errors.SharError),
        (errors.InputUnreadable, errors.SharError),
    ],
)
def test_error_taxonomy(error_type: type[errors.SharError], parent: type[errors.SharError]) -> None:
    assert issubclass(error_type, parent)
    assert error_type.code != parent.code
