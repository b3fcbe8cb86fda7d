"""Ports (interfaces) used by the core pipeline.

Ports define the minimal contracts for producers, verifiers and result
sinks so the core can be reused with different backends.
"""

from __future__ import annotations

from typing import Optional, Protocol, Sequence

from core.models import SourceEntry, VerificationResult


class IdentifierStream(Protocol):
    """Lazy producer of identifiers for one source."""

    async def next_entry(self) -> Optional[SourceEntry]:
        """Return the next entry, or None once the stream is exhausted.

        Producer failures must surface as StreamError, never as an early None.
        """
        ...


class VerifierPort(Protocol):
    """Batch lookup against the remote verification service."""

    async def verify_batch(self, batch: Sequence[int]) -> dict[int, VerificationResult]:
        """Resolve a batch; raises BatchVerificationError on per-batch failure."""
        ...


class ResultSinkPort(Protocol):
    """Append-only destination for one source's verification records."""

    async def append(self, result: VerificationResult) -> bool:
        ...

    async def close(self) -> None:
        ...
