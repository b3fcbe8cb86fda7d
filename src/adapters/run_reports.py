"""Run directory layout and JSON reports.

Each run writes to ``<output>/<run_id>/<kind>-<target_id>/`` and finishes
with a ``summary.json`` aggregating every processed source.
"""

from __future__ import annotations

import json
import os
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Iterable, Mapping, Optional

from core.models import SourceDescriptor, SourceStats
from adapters.file_sinks import isoformat_utc


@dataclass(frozen=True)
class SourceSummary:
    """What the run summary keeps about one processed source."""

    source: SourceDescriptor
    stats: SourceStats
    index_file: str

    def to_payload(self) -> dict[str, Any]:
        return {
            "type": self.source.kind,
            "targetId": self.source.target_id,
            "label": self.source.label,
            "totalUsers": self.stats.total_collected,
            "uniqueUsers": self.stats.unique,
            "newlyChecked": self.stats.newly_checked,
            "unresolved": self.stats.unresolved,
            "indexFile": self.index_file,
            "flagBreakdown": dict(self.stats.flag_breakdown),
        }


def make_run_id(moment: Optional[datetime] = None) -> str:
    """Filesystem-safe run id derived from a UTC timestamp."""

    stamp = isoformat_utc(moment or datetime.now(timezone.utc))
    return stamp.replace(":", "-").replace(".", "-")


def ensure_target_dir(run_dir: str, kind: str, target_id: str) -> tuple[str, str]:
    """Create the per-source directory and return (absolute, relative) paths."""

    relative_dir = f"{kind}-{target_id}"
    dir_path = os.path.join(run_dir, relative_dir)
    os.makedirs(dir_path, exist_ok=True)
    return dir_path, relative_dir


def write_json(path: str, payload: Mapping[str, Any]) -> None:
    with open(path, "w", encoding="utf-8") as handle:
        json.dump(payload, handle, ensure_ascii=False, indent=2)


def build_index_payload(
    run_id: str,
    source: SourceDescriptor,
    stats: SourceStats,
    files: Mapping[str, Any],
    generated_at: Optional[datetime] = None,
) -> dict[str, Any]:
    return {
        "runId": run_id,
        "generatedAt": isoformat_utc(generated_at or datetime.now(timezone.utc)),
        "source": source.to_payload(),
        "counts": {
            "totalCollected": stats.total_collected,
            "uniqueCollected": stats.unique,
            "uniqueMatched": stats.matched,
            "newlyChecked": stats.newly_checked,
            "unresolved": stats.unresolved,
            "unsafeMatches": stats.unsafe_matches,
        },
        "flagBreakdown": dict(stats.flag_breakdown),
        "files": dict(files),
    }


def build_summary_payload(
    run_id: str,
    run_dir: str,
    summaries: Iterable[SourceSummary],
    unique_matched: int,
    generated_at: Optional[datetime] = None,
) -> dict[str, Any]:
    """Aggregate per-source results; ``unique_matched`` is the RunCache size."""

    summaries = list(summaries)
    breakdown: dict[str, int] = {}
    for summary in summaries:
        for label, count in summary.stats.flag_breakdown.items():
            breakdown[label] = breakdown.get(label, 0) + count

    return {
        "runId": run_id,
        "generatedAt": isoformat_utc(generated_at or datetime.now(timezone.utc)),
        "runDirectory": run_dir,
        "stats": {
            "sourcesAnalyzed": len(summaries),
            "uniqueUsersMatched": unique_matched,
            "totalIdsCollected": sum(s.stats.total_collected for s in summaries),
        },
        "flagBreakdown": breakdown,
        "sources": [summary.to_payload() for summary in summaries],
    }
