from __future__ import annotations

import pytest

from core.errors import ClassificationError
from core.models import (
    FlagLevel,
    SourceStats,
    VerificationResult,
    VersionCompatibility,
    flag_label,
    parse_flag_level,
)


def test_parse_flag_level_accepts_known_levels() -> None:
    for value in range(7):
        parsed = parse_flag_level(value)
        assert parsed.ok
        assert parsed.level == FlagLevel(value)


@pytest.mark.parametrize("value", [-1, 7, 2.0, "2", True, None])
def test_parse_flag_level_rejects_without_coercion(value) -> None:
    parsed = parse_flag_level(value)
    assert not parsed.ok
    assert parsed.level is None
    assert "Unknown flag type" in parsed.error


def test_flag_label() -> None:
    assert flag_label(0) == "SAFE"
    assert flag_label(6) == "PAST_OFFENDER"
    assert flag_label(42) == "UNKNOWN"


def test_from_payload_keeps_absent_fields_absent() -> None:
    result = VerificationResult.from_payload({"id": 10, "flagType": 1})

    assert result.flag_level == FlagLevel.PENDING
    assert result.confidence is None
    assert result.reasons is None
    assert result.reviewer is None
    assert result.to_payload() == {"id": 10, "flagType": 1}


def test_from_payload_full_entry_round_trips() -> None:
    payload = {
        "id": 11,
        "flagType": 2,
        "confidence": 0.0,
        "reasons": {"chat": {"message": "spam", "confidence": 0.7, "evidence": None}},
        "reviewer": {"username": "rev", "displayName": "Reviewer"},
        "engineVersion": "2.1.0",
        "versionCompatibility": "outdated",
        "lastUpdated": 1700000000,
    }

    result = VerificationResult.from_payload(payload)

    # Zero confidence is a real value, not a missing one.
    assert result.confidence == 0.0
    assert result.version_compatibility == VersionCompatibility.OUTDATED
    assert result.reasons["chat"].evidence is None
    assert result.to_payload() == payload


def test_from_payload_rejects_unknown_flag() -> None:
    with pytest.raises(ClassificationError):
        VerificationResult.from_payload({"id": 1, "flagType": 7})


def test_source_stats_counts_unsafe_flags() -> None:
    stats = SourceStats()
    stats.record(VerificationResult(id=1, flag_level=FlagLevel.SAFE))
    stats.record(VerificationResult(id=2, flag_level=FlagLevel.PENDING))
    stats.record(VerificationResult(id=3, flag_level=FlagLevel.SAFE))

    assert stats.flag_breakdown == {"SAFE": 2, "PENDING": 1}
    assert stats.matched == 3
    assert stats.unsafe_matches == 1
