"""Core domain models.

These dataclasses are shared across the core and adapters to avoid tight
coupling to the verifier's wire format or to any particular producer.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum, IntEnum
from typing import Any, Mapping, Optional, Tuple

from core.errors import ClassificationError

Batch = Tuple[int, ...]


class FlagLevel(IntEnum):
    """Ordinal classification returned by the verifier (0 = no concern)."""

    SAFE = 0
    PENDING = 1
    UNSAFE = 2
    QUEUED = 3
    INTEGRATION = 4
    MIXED = 5
    PAST_OFFENDER = 6


class VersionCompatibility(str, Enum):
    CURRENT = "current"
    COMPATIBLE = "compatible"
    OUTDATED = "outdated"
    DEPRECATED = "deprecated"


@dataclass(frozen=True)
class FlagParse:
    """Tagged result of a strict flag-level parse."""

    level: Optional[FlagLevel] = None
    error: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.level is not None


def parse_flag_level(value: Any) -> FlagParse:
    """Parse a raw flag value without coercion.

    Booleans, floats and strings are rejected even when they look numeric.
    """

    if isinstance(value, bool) or not isinstance(value, int):
        return FlagParse(error=f"Unknown flag type: {value!r}")
    try:
        return FlagParse(level=FlagLevel(value))
    except ValueError:
        return FlagParse(error=f"Unknown flag type: {value}")


def flag_label(value: Any) -> str:
    """Return the enum name for a flag value, or UNKNOWN."""

    parsed = parse_flag_level(value)
    return parsed.level.name if parsed.ok else "UNKNOWN"


@dataclass(frozen=True)
class Reason:
    message: str
    confidence: float
    evidence: Optional[Tuple[str, ...]] = None


@dataclass(frozen=True)
class Reviewer:
    username: str
    display_name: str


def _optional_float(value: Any) -> Optional[float]:
    return None if value is None else float(value)


@dataclass(frozen=True)
class VerificationResult:
    """One verifier answer. ``None`` fields were not provided by the service."""

    id: int
    flag_level: FlagLevel
    confidence: Optional[float] = None
    reasons: Optional[Mapping[str, Reason]] = None
    reviewer: Optional[Reviewer] = None
    engine_version: Optional[str] = None
    version_compatibility: Optional[VersionCompatibility] = None
    last_updated: Optional[int] = None

    @property
    def flag_label(self) -> str:
        return self.flag_level.name

    @classmethod
    def from_payload(cls, payload: Mapping[str, Any]) -> "VerificationResult":
        """Build a result from the verifier's JSON entry.

        Raises ClassificationError when ``flagType`` is outside 0-6.
        """

        parsed = parse_flag_level(payload.get("flagType"))
        if not parsed.ok:
            raise ClassificationError(parsed.error)

        reasons = None
        raw_reasons = payload.get("reasons")
        if raw_reasons is not None:
            reasons = {}
            for label, raw in raw_reasons.items():
                evidence = raw.get("evidence")
                reasons[label] = Reason(
                    message=raw.get("message", ""),
                    confidence=float(raw.get("confidence", 0.0)),
                    evidence=tuple(evidence) if evidence is not None else None,
                )

        reviewer = None
        raw_reviewer = payload.get("reviewer")
        if raw_reviewer:
            reviewer = Reviewer(
                username=raw_reviewer.get("username", ""),
                display_name=raw_reviewer.get("displayName", ""),
            )

        compatibility = payload.get("versionCompatibility")
        last_updated = payload.get("lastUpdated")

        return cls(
            id=int(payload["id"]),
            flag_level=parsed.level,
            confidence=_optional_float(payload.get("confidence")),
            reasons=reasons,
            reviewer=reviewer,
            engine_version=payload.get("engineVersion"),
            version_compatibility=VersionCompatibility(compatibility) if compatibility else None,
            last_updated=int(last_updated) if last_updated is not None else None,
        )

    def to_payload(self) -> dict[str, Any]:
        """Return the wire shape, omitting fields the verifier did not send."""

        payload: dict[str, Any] = {"id": self.id, "flagType": int(self.flag_level)}
        if self.confidence is not None:
            payload["confidence"] = self.confidence
        if self.reasons is not None:
            payload["reasons"] = {
                label: {
                    "message": reason.message,
                    "confidence": reason.confidence,
                    "evidence": list(reason.evidence) if reason.evidence is not None else None,
                }
                for label, reason in self.reasons.items()
            }
        if self.reviewer is not None:
            payload["reviewer"] = {
                "username": self.reviewer.username,
                "displayName": self.reviewer.display_name,
            }
        if self.engine_version is not None:
            payload["engineVersion"] = self.engine_version
        if self.version_compatibility is not None:
            payload["versionCompatibility"] = self.version_compatibility.value
        if self.last_updated is not None:
            payload["lastUpdated"] = self.last_updated
        return payload


@dataclass(frozen=True)
class SourceDescriptor:
    """Identity of one collection being scanned (a friend list or a group)."""

    kind: str
    target_id: str
    label: str
    metadata: Mapping[str, Any] = field(default_factory=dict)

    def to_payload(self) -> dict[str, Any]:
        return {
            "type": self.kind,
            "targetId": self.target_id,
            "label": self.label,
            **dict(self.metadata),
        }


@dataclass(frozen=True)
class SourceEntry:
    """A single identifier delivered by a producer.

    ``partition`` is producer-specific context, e.g. the group roleset id.
    """

    identifier: int
    partition: Optional[int] = None


@dataclass
class SourceStats:
    """Counters accumulated while processing one source."""

    total_collected: int = 0
    unique: int = 0
    newly_checked: int = 0
    unresolved: int = 0
    unsafe_matches: int = 0
    flag_breakdown: dict[str, int] = field(default_factory=dict)

    @property
    def matched(self) -> int:
        return sum(self.flag_breakdown.values())

    def record(self, result: VerificationResult) -> None:
        label = result.flag_label
        self.flag_breakdown[label] = self.flag_breakdown.get(label, 0) + 1
        if result.flag_level != FlagLevel.SAFE:
            self.unsafe_matches += 1


@dataclass(frozen=True)
class StatusSnapshot:
    """Progress counters handed to status reporters."""

    total_collected: int
    unique: int
    matched: int
    unsafe_matches: int
    queue_size: int
    in_flight: int = 0
