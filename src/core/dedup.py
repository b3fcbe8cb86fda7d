"""Deduplication helpers (core domain)."""

from __future__ import annotations

from typing import Optional

from core.models import VerificationResult


class RunCache:
    """Per-run memo of resolved identifiers.

    Entries are write-once: the first answer seen for an identifier is final
    for the run. Writes never await, so they are atomic under asyncio.
    """

    def __init__(self) -> None:
        self._results: dict[int, VerificationResult] = {}

    def get(self, identifier: int) -> Optional[VerificationResult]:
        return self._results.get(identifier)

    def __contains__(self, identifier: object) -> bool:
        return identifier in self._results

    def __len__(self) -> int:
        return len(self._results)

    def store(self, result: VerificationResult) -> VerificationResult:
        """Store a result unless one exists; return the cached one."""

        return self._results.setdefault(result.id, result)


class StreamDeduplicator:
    """Tracks identifiers already delivered by one stream."""

    def __init__(self) -> None:
        self._seen: set[int] = set()

    def admit(self, identifier: int) -> bool:
        """Mark ``identifier`` seen; False when it was seen before."""

        if identifier in self._seen:
            return False
        self._seen.add(identifier)
        return True
