from __future__ import annotations

import asyncio
from typing import AsyncIterator

import pytest

from core.errors import StreamError
from core.models import SourceEntry
from core.streams import AsyncIteratorStream


def test_end_of_stream_is_sticky() -> None:
    stream = AsyncIteratorStream.from_iterable([1, SourceEntry(2, partition=7)])

    async def scenario() -> list:
        return [await stream.next_entry() for _ in range(4)]

    assert asyncio.run(scenario()) == [SourceEntry(1), SourceEntry(2, partition=7), None, None]
    assert stream.delivered == 2


def test_cap_closes_the_producer() -> None:
    state = {"closed": False}

    async def producer() -> AsyncIterator[int]:
        try:
            for identifier in range(100):
                yield identifier
        finally:
            state["closed"] = True

    stream = AsyncIteratorStream(producer(), cap=2)

    async def scenario() -> list:
        return [await stream.next_entry() for _ in range(3)]

    assert asyncio.run(scenario()) == [SourceEntry(0), SourceEntry(1), None]
    assert state["closed"]


def test_cap_must_be_positive() -> None:
    with pytest.raises(ValueError):
        AsyncIteratorStream.from_iterable([], cap=0)


def test_producer_errors_become_stream_errors() -> None:
    async def producer() -> AsyncIterator[int]:
        yield 1
        raise KeyError("userId")

    stream = AsyncIteratorStream(producer())

    async def scenario() -> None:
        await stream.next_entry()
        await stream.next_entry()

    with pytest.raises(StreamError, match="Identifier stream failed"):
        asyncio.run(scenario())
