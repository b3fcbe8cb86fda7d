from __future__ import annotations

import asyncio
import json
from datetime import datetime, timezone

import pytest

from adapters.file_sinks import JsonlResultSink, LineLogWriter, isoformat_utc
from core.errors import SinkClosedError
from core.models import FlagLevel, SourceDescriptor, VerificationResult

SOURCE = SourceDescriptor(
    kind="group",
    target_id="7",
    label="group:7",
    metadata={"groupId": "7", "cap": None},
)


def _fixed_clock() -> datetime:
    return datetime(2024, 1, 1, 12, 0, 0, tzinfo=timezone.utc)


def test_records_are_self_contained_json_lines(tmp_path) -> None:
    path = tmp_path / "group-7" / "rotector"
    sink = JsonlResultSink(str(path), "run-1", SOURCE, clock=_fixed_clock)

    async def scenario() -> None:
        await sink.append(VerificationResult(id=5, flag_level=FlagLevel.UNSAFE, confidence=0.9))
        await sink.append(VerificationResult(id=6, flag_level=FlagLevel.SAFE))
        await sink.close()

    asyncio.run(scenario())

    lines = path.read_text(encoding="utf-8").splitlines()
    assert len(lines) == 2
    first = json.loads(lines[0])
    assert first == {
        "runId": "run-1",
        "generatedAt": "2024-01-01T12:00:00.000Z",
        "source": {"type": "group", "targetId": "7", "label": "group:7", "groupId": "7", "cap": None},
        "user": {
            "id": 5,
            "flagType": 2,
            "flagLabel": "UNSAFE",
            "status": {"id": 5, "flagType": 2, "confidence": 0.9},
        },
    }


def test_same_identifier_is_written_once(tmp_path) -> None:
    sink = JsonlResultSink(str(tmp_path / "rotector"), "run-1", SOURCE)
    result = VerificationResult(id=5, flag_level=FlagLevel.SAFE)

    async def scenario() -> tuple[bool, bool]:
        first = await sink.append(result)
        second = await sink.append(result)
        await sink.close()
        return first, second

    assert asyncio.run(scenario()) == (True, False)
    assert sink.written == 1
    assert len((tmp_path / "rotector").read_text(encoding="utf-8").splitlines()) == 1


def test_writes_after_close_are_rejected(tmp_path) -> None:
    sink = JsonlResultSink(str(tmp_path / "rotector"), "run-1", SOURCE)

    async def scenario() -> None:
        await sink.close()
        await sink.close()
        await sink.append(VerificationResult(id=1, flag_level=FlagLevel.SAFE))

    with pytest.raises(SinkClosedError):
        asyncio.run(scenario())


def test_existing_output_is_appended_not_truncated(tmp_path) -> None:
    path = tmp_path / "users"
    path.write_text("1\n", encoding="utf-8")
    log = LineLogWriter(str(path))

    async def scenario() -> None:
        await log.write(2)
        await log.write(2)
        await log.close()

    asyncio.run(scenario())
    assert path.read_text(encoding="utf-8") == "1\n2\n2\n"


def test_isoformat_utc_normalises_timezone() -> None:
    moment = datetime(2024, 5, 6, 7, 8, 9, 123456, tzinfo=timezone.utc)
    assert isoformat_utc(moment) == "2024-05-06T07:08:09.123Z"
