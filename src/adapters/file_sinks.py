"""Append-only file adapters.

Implements the core ResultSinkPort as a JSON-lines file, plus the plain
line logs used for raw collection output.
"""

from __future__ import annotations

import json
import os
from datetime import datetime, timezone
from typing import Any, Callable, Optional

from core.errors import SinkClosedError
from core.models import SourceDescriptor, VerificationResult

Clock = Callable[[], datetime]


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


def isoformat_utc(moment: datetime) -> str:
    """ISO-8601 with millisecond precision and a trailing Z."""

    return moment.astimezone(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")


def build_record(
    run_id: str,
    source: SourceDescriptor,
    result: VerificationResult,
    generated_at: datetime,
) -> dict[str, Any]:
    """Return one self-contained verification record."""

    return {
        "runId": run_id,
        "generatedAt": isoformat_utc(generated_at),
        "source": source.to_payload(),
        "user": {
            "id": result.id,
            "flagType": int(result.flag_level),
            "flagLabel": result.flag_label,
            "status": result.to_payload(),
        },
    }


class _AppendFile:
    """Shared open/flush/close handling for append-only text files."""

    def __init__(self, path: str) -> None:
        directory = os.path.dirname(path)
        if directory:
            os.makedirs(directory, exist_ok=True)
        self.path = path
        self._handle = open(path, "a", encoding="utf-8")
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    def _write_line(self, text: str) -> None:
        if self._closed:
            raise SinkClosedError(f"Write after close: {self.path}")
        self._handle.write(f"{text}\n")
        # Flush per line so a crash loses at most the line being written.
        self._handle.flush()

    def _close(self) -> None:
        if self._closed:
            return
        self._handle.flush()
        os.fsync(self._handle.fileno())
        self._handle.close()
        self._closed = True


class JsonlResultSink(_AppendFile):
    """One JSON record per resolved identifier, in completion order."""

    def __init__(
        self,
        path: str,
        run_id: str,
        source: SourceDescriptor,
        clock: Optional[Clock] = None,
    ) -> None:
        super().__init__(path)
        self._run_id = run_id
        self._source = source
        self._clock = clock or _utc_now
        self._written: set[int] = set()

    @property
    def written(self) -> int:
        return len(self._written)

    async def append(self, result: VerificationResult) -> bool:
        """Append a record; False when this identifier was already written."""

        if self.closed:
            raise SinkClosedError(f"Write after close: {self.path}")
        if result.id in self._written:
            return False
        record = build_record(self._run_id, self._source, result, self._clock())
        self._write_line(json.dumps(record, ensure_ascii=False))
        self._written.add(result.id)
        return True

    async def close(self) -> None:
        self._close()


class LineLogWriter(_AppendFile):
    """Raw collection log: one identifier per line, duplicates included."""

    async def write(self, identifier: int) -> None:
        self._write_line(str(identifier))

    async def close(self) -> None:
        self._close()
