from __future__ import annotations

import asyncio
from typing import Callable

import httpx
import pytest

from adapters.roblox_sources import RobloxSources, Roleset
from core.config import BackoffConfig
from core.errors import StreamError
from core.streams import AsyncIteratorStream


class RecordingSleep:
    def __init__(self) -> None:
        self.calls: list[float] = []

    async def __call__(self, seconds: float) -> None:
        self.calls.append(seconds)


def _run(handler: Callable[[httpx.Request], httpx.Response], scenario, sleep=None, backoff=BackoffConfig()):
    async def _main():
        async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as client:
            sources = RobloxSources(client, backoff=backoff, sleep=sleep or RecordingSleep())
            return await scenario(sources)

    return asyncio.run(_main())


async def _drain(stream: AsyncIteratorStream) -> list:
    entries = []
    while True:
        entry = await stream.next_entry()
        if entry is None:
            return entries
        entries.append(entry)


def test_friends_yields_subject_then_every_page() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        assert request.url.path == "/v1/users/100/friends/search"
        if request.url.params.get("cursor") == "page2":
            return httpx.Response(200, json={"PageItems": [{"id": 3}], "NextCursor": None})
        return httpx.Response(200, json={"PageItems": [{"id": 1}, {"id": 2}], "NextCursor": "page2"})

    async def scenario(sources: RobloxSources):
        return await _drain(AsyncIteratorStream(sources.friends("100")))

    entries = _run(handler, scenario)

    assert [entry.identifier for entry in entries] == [100, 1, 2, 3]
    assert all(entry.partition is None for entry in entries)


def test_group_roles_skip_guest_rank() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(
            200,
            json={
                "roles": [
                    {"id": 1, "name": "Guest", "rank": 0, "memberCount": 0},
                    {"id": 11, "name": "Member", "rank": 1, "memberCount": 40},
                    {"id": 12, "name": "Owner", "rank": 255, "memberCount": 1},
                ]
            },
        )

    roles = _run(handler, lambda sources: sources.group_roles("9"))

    assert roles == [Roleset(11, "Member", 1, 40), Roleset(12, "Owner", 255, 1)]
    assert roles[0].to_payload() == {"id": 11, "name": "Member", "rank": 1, "memberCount": 40}


def test_group_members_are_tagged_with_roleset_and_capped() -> None:
    requested: list[str] = []

    def handler(request: httpx.Request) -> httpx.Response:
        requested.append(request.url.path)
        if request.url.path.endswith("/roles/11/users"):
            if request.url.params.get("cursor") == "next":
                return httpx.Response(200, json={"data": [{"userId": 3}], "nextPageCursor": None})
            return httpx.Response(200, json={"data": [{"userId": 1}, {"userId": 2}], "nextPageCursor": "next"})
        return httpx.Response(200, json={"data": [{"userId": 4}], "nextPageCursor": None})

    roles = [Roleset(11, "Member", 1, 3), Roleset(12, "Owner", 255, 1)]

    async def scenario(sources: RobloxSources):
        return await _drain(AsyncIteratorStream(sources.group_members("9", roles), cap=3))

    entries = _run(handler, scenario)

    assert [(entry.identifier, entry.partition) for entry in entries] == [(1, 11), (2, 11), (3, 11)]
    # The cap is reached before the second roleset is requested.
    assert all("/roles/12/" not in path for path in requested)


def test_fetch_gives_up_after_max_attempts() -> None:
    calls = {"count": 0}

    def handler(request: httpx.Request) -> httpx.Response:
        calls["count"] += 1
        return httpx.Response(500)

    sleep = RecordingSleep()
    with pytest.raises(StreamError, match="HTTP 500"):
        _run(handler, lambda sources: sources.fetch_json("https://groups.roblox.com/v1/groups/9/roles"), sleep=sleep)

    assert calls["count"] == 5
    assert sleep.calls == [1.0, 2.0, 4.0, 8.0]


def test_fetch_honours_retry_after_on_429() -> None:
    responses = iter(
        [httpx.Response(429, headers={"Retry-After": "3"}), httpx.Response(200, json={"roles": []})]
    )
    sleep = RecordingSleep()

    data = _run(
        lambda request: next(responses),
        lambda sources: sources.fetch_json("https://groups.roblox.com/v1/groups/9/roles"),
        sleep=sleep,
    )

    assert data == {"roles": []}
    assert sleep.calls == [3.0]


def test_transport_failure_surfaces_as_stream_error() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("unreachable", request=request)

    async def scenario(sources: RobloxSources):
        return await _drain(AsyncIteratorStream(sources.friends("5")))

    with pytest.raises(StreamError, match="Network error"):
        _run(handler, scenario, backoff=BackoffConfig(max_retries=2))


def test_undecodable_page_is_retried() -> None:
    responses = iter(
        [
            httpx.Response(200, headers={"Content-Encoding": "gzip"}, stream=httpx.ByteStream(b"\x00garbage")),
            httpx.Response(200, json={"roles": []}),
        ]
    )
    sleep = RecordingSleep()

    data = _run(
        lambda request: next(responses),
        lambda sources: sources.fetch_json("https://groups.roblox.com/v1/groups/9/roles"),
        sleep=sleep,
    )

    assert data == {"roles": []}
    assert sleep.calls == [1.0]
