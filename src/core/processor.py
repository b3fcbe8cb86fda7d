"""Core source processing pipeline.

This module is integration-agnostic. It only relies on ports for the
identifier stream, the verifier and the result sink, so new producers or
verification backends need no changes here.

Per source the pipeline enforces a strict order for every entry:
1) Raw collection hook
2) Per-stream dedup (repeated deliveries are dropped silently)
3) RunCache hit -> record straight to the sink, no network call
4) Otherwise buffer; full buffers are dispatched as background batches
"""

from __future__ import annotations

import asyncio
import logging
from typing import Awaitable, Callable, Optional

from core.config import BatchConfig
from core.dedup import RunCache, StreamDeduplicator
from core.errors import BatchVerificationError
from core.models import (
    Batch,
    SourceDescriptor,
    SourceEntry,
    SourceStats,
    StatusSnapshot,
    VerificationResult,
)
from core.ports import IdentifierStream, ResultSinkPort, VerifierPort
from core.rate_gate import RateGate, Sleep

LOGGER = logging.getLogger(__name__)

EntryHook = Callable[[SourceEntry], Awaitable[None]]
StatusHook = Callable[[StatusSnapshot], None]
Submit = Callable[[Batch], Awaitable[None]]


class BatchAccumulator:
    """Buffers identifiers and launches fixed-size batches without waiting.

    Launches pause for ``stagger_delay_ms`` after every ``stagger_every``
    batches, which bounds burst size without a hard concurrency cap.
    """

    def __init__(
        self,
        config: BatchConfig,
        submit: Submit,
        gate: Optional[RateGate] = None,
        sleep: Sleep = asyncio.sleep,
    ) -> None:
        self._config = config
        self._submit = submit
        self._gate = gate
        self._sleep = sleep
        self._buffer: list[int] = []
        self._tasks: dict[asyncio.Task, Batch] = {}
        self._launched = 0

    @property
    def queue_size(self) -> int:
        return len(self._buffer)

    @property
    def in_flight(self) -> int:
        return sum(1 for task in self._tasks if not task.done())

    @property
    def launched(self) -> int:
        return self._launched

    async def add(self, identifier: int) -> None:
        self._buffer.append(identifier)
        if len(self._buffer) >= self._config.batch_size:
            await self._dispatch()

    async def flush(self) -> None:
        """Dispatch the remaining partial buffer, if any."""

        if self._buffer:
            await self._dispatch()

    async def _dispatch(self) -> None:
        batch: Batch = tuple(self._buffer)
        self._buffer.clear()
        if self._gate is not None:
            await self._gate.wait()
        task = asyncio.ensure_future(self._submit(batch))
        self._tasks[task] = batch
        self._launched += 1
        if self._launched % self._config.stagger_every == 0:
            await self._sleep(self._config.stagger_delay_ms / 1000)

    async def join(self) -> list[tuple[Batch, BatchVerificationError]]:
        """Wait for every launched batch and return the recoverable failures.

        Siblings are never cancelled by a failing batch. Any error that is
        not a BatchVerificationError is re-raised once all batches finished.
        """

        tasks = list(self._tasks)
        outcomes = await asyncio.gather(*tasks, return_exceptions=True)
        failures: list[tuple[Batch, BatchVerificationError]] = []
        fatal: Optional[BaseException] = None
        for task, outcome in zip(tasks, outcomes):
            if isinstance(outcome, BatchVerificationError):
                failures.append((self._tasks[task], outcome))
            elif isinstance(outcome, BaseException) and fatal is None:
                fatal = outcome
        self._tasks.clear()
        if fatal is not None:
            raise fatal
        return failures

    async def cancel(self) -> None:
        """Cancel in-flight batches; used when the run aborts."""

        for task in self._tasks:
            task.cancel()
        await asyncio.gather(*self._tasks, return_exceptions=True)
        self._tasks.clear()
        self._buffer.clear()


class SourceProcessor:
    """Drives sources through dedup, batching, verification and the sink.

    One processor owns the RunCache for a run, so every source processed by
    it shares resolved results.
    """

    def __init__(
        self,
        verifier: VerifierPort,
        batch_config: BatchConfig,
        gate: Optional[RateGate] = None,
        cache: Optional[RunCache] = None,
        sleep: Sleep = asyncio.sleep,
    ) -> None:
        self._verifier = verifier
        self._batch_config = batch_config
        self._gate = gate
        self._cache = cache if cache is not None else RunCache()
        self._sleep = sleep

    @property
    def cache(self) -> RunCache:
        return self._cache

    async def process(
        self,
        source: SourceDescriptor,
        stream: IdentifierStream,
        sink: ResultSinkPort,
        on_entry: Optional[EntryHook] = None,
        on_status: Optional[StatusHook] = None,
    ) -> SourceStats:
        """Consume ``stream`` fully and record every resolved identifier.

        The sink is left open; closing it is the caller's final action.
        """

        stats = SourceStats()
        dedup = StreamDeduplicator()

        async def submit(batch: Batch) -> None:
            await self._resolve_batch(source, batch, sink, stats)

        accumulator = BatchAccumulator(self._batch_config, submit, gate=self._gate, sleep=self._sleep)

        def emit() -> None:
            if on_status is None:
                return
            on_status(
                StatusSnapshot(
                    total_collected=stats.total_collected,
                    unique=stats.unique,
                    matched=stats.matched,
                    unsafe_matches=stats.unsafe_matches,
                    queue_size=accumulator.queue_size,
                    in_flight=accumulator.in_flight,
                )
            )

        try:
            while True:
                entry = await stream.next_entry()
                if entry is None:
                    break
                if on_entry is not None:
                    await on_entry(entry)
                stats.total_collected += 1

                if not dedup.admit(entry.identifier):
                    continue
                stats.unique += 1

                cached = self._cache.get(entry.identifier)
                if cached is not None:
                    await self._record(sink, cached, stats)
                    emit()
                    continue

                await accumulator.add(entry.identifier)
                emit()

            await accumulator.flush()
        except BaseException:
            # Records already appended stay valid; only in-flight work is dropped.
            await accumulator.cancel()
            raise

        LOGGER.debug("[%s] stream exhausted, waiting for %s batch(es)", source.label, accumulator.launched)
        for batch, exc in await accumulator.join():
            stats.unresolved += len(batch)
            LOGGER.warning(
                "[%s] batch of %s id(s) left unresolved: %s",
                source.label,
                len(batch),
                exc,
            )

        emit()
        return stats

    async def _resolve_batch(
        self,
        source: SourceDescriptor,
        batch: Batch,
        sink: ResultSinkPort,
        stats: SourceStats,
    ) -> None:
        LOGGER.debug("[%s] checking %s id(s)", source.label, len(batch))
        stats.newly_checked += len(batch)
        results = await self._verifier.verify_batch(batch)

        for identifier in batch:
            result = results.get(identifier)
            if result is None:
                stats.unresolved += 1
                LOGGER.warning("[%s] missing verification data for %s", source.label, identifier)
                continue
            await self._record(sink, self._cache.store(result), stats)

    async def _record(self, sink: ResultSinkPort, result: VerificationResult, stats: SourceStats) -> None:
        if await sink.append(result):
            stats.record(result)
