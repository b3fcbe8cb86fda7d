"""Roblox paginated collections as identifier producers.

Friend lists and group member lists are exposed as async generators of
SourceEntry; the app wraps them in AsyncIteratorStream for the core.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Any, AsyncIterator, Optional

import httpx

from core.backoff import retry_delay_ms
from core.config import BackoffConfig
from core.errors import StreamError
from core.models import SourceEntry
from core.rate_gate import Sleep
from adapters.verifier_client import parse_retry_after

LOGGER = logging.getLogger(__name__)

FRIENDS_BASE_URL = "https://friends.roblox.com"
GROUPS_BASE_URL = "https://groups.roblox.com"
FRIENDS_PAGE_LIMIT = 50
MEMBERS_PAGE_LIMIT = 100


@dataclass(frozen=True)
class Roleset:
    id: int
    name: str
    rank: int
    member_count: int

    def to_payload(self) -> dict[str, Any]:
        return {"id": self.id, "name": self.name, "rank": self.rank, "memberCount": self.member_count}


def friends_url(user_id: str, cursor: Optional[str] = None) -> str:
    url = f"{FRIENDS_BASE_URL}/v1/users/{user_id}/friends/search?limit={FRIENDS_PAGE_LIMIT}"
    return f"{url}&cursor={cursor}" if cursor else url


def group_roles_url(group_id: str) -> str:
    return f"{GROUPS_BASE_URL}/v1/groups/{group_id}/roles"


def roleset_members_url(group_id: str, roleset_id: int, cursor: Optional[str] = None) -> str:
    url = (
        f"{GROUPS_BASE_URL}/v1/groups/{group_id}/roles/{roleset_id}/users"
        f"?limit={MEMBERS_PAGE_LIMIT}&sortOrder=Asc"
    )
    return f"{url}&cursor={cursor}" if cursor else url


class RobloxSources:
    """Paginated Roblox API reader with retry and backoff.

    Pagination failures are raised as StreamError so the run aborts instead
    of silently truncating a collection.
    """

    def __init__(
        self,
        client: httpx.AsyncClient,
        backoff: BackoffConfig = BackoffConfig(),
        sleep: Sleep = asyncio.sleep,
    ) -> None:
        self._client = client
        self._backoff = backoff
        self._sleep = sleep

    async def fetch_json(self, url: str) -> Any:
        attempt = 0
        while True:
            attempt += 1
            try:
                response = await self._client.get(url, headers={"Accept": "application/json"})
            except httpx.RequestError as exc:
                if attempt >= self._backoff.max_retries:
                    raise StreamError(f"Network error fetching {url}: {exc}") from exc
                wait_ms = retry_delay_ms(attempt, self._backoff)
                LOGGER.warning(
                    "Network error fetching %s, retrying in %ss (attempt %s)",
                    url,
                    round(wait_ms / 1000),
                    attempt,
                )
                await self._sleep(wait_ms / 1000)
                continue

            if response.is_success:
                try:
                    return response.json()
                except ValueError as exc:
                    raise StreamError(f"Invalid JSON from {url}: {exc}") from exc

            if attempt >= self._backoff.max_retries:
                raise StreamError(f"HTTP {response.status_code} error fetching {url}")

            retry_after = None
            if response.status_code == 429:
                retry_after = parse_retry_after(response.headers.get("Retry-After"))
            wait_ms = int(retry_after * 1000) if retry_after is not None else retry_delay_ms(attempt, self._backoff)
            LOGGER.warning(
                "HTTP %s fetching %s, retrying in %ss (attempt %s)",
                response.status_code,
                url,
                round(wait_ms / 1000),
                attempt,
            )
            await self._sleep(wait_ms / 1000)

    async def friends(self, user_id: str) -> AsyncIterator[SourceEntry]:
        """Yield the subject user first, then every friend page by page."""

        yield SourceEntry(identifier=int(user_id))

        cursor: Optional[str] = None
        while True:
            data = await self.fetch_json(friends_url(user_id, cursor))
            for item in data.get("PageItems") or []:
                yield SourceEntry(identifier=int(item["id"]))
            cursor = data.get("NextCursor")
            if not cursor:
                break

    async def group_roles(self, group_id: str) -> list[Roleset]:
        """Return the ranked rolesets of a group (the guest role is skipped)."""

        data = await self.fetch_json(group_roles_url(group_id))
        roles = [
            Roleset(
                id=int(raw["id"]),
                name=str(raw.get("name", "")),
                rank=int(raw.get("rank", 0)),
                member_count=int(raw.get("memberCount", 0)),
            )
            for raw in data.get("roles") or []
        ]
        return [role for role in roles if role.rank > 0]

    async def roleset_members(self, group_id: str, roleset_id: int) -> AsyncIterator[SourceEntry]:
        cursor: Optional[str] = None
        while True:
            data = await self.fetch_json(roleset_members_url(group_id, roleset_id, cursor))
            for item in data.get("data") or []:
                yield SourceEntry(identifier=int(item["userId"]), partition=roleset_id)
            cursor = data.get("nextPageCursor")
            if not cursor:
                break

    async def group_members(
        self, group_id: str, roles: Optional[list[Roleset]] = None
    ) -> AsyncIterator[SourceEntry]:
        """Yield members role by role; caps are applied by the stream wrapper."""

        if roles is None:
            roles = await self.group_roles(group_id)
        for role in roles:
            async for entry in self.roleset_members(group_id, role.id):
                yield entry
