"""Identifier stream adapters.

Producers are naturally written as async generators; the pipeline consumes
them through the explicit ``next_entry`` contract instead, where ``None``
marks the end of the stream and producer failures become StreamError.
"""

from __future__ import annotations

from typing import AsyncIterator, Iterable, Optional, Union

from core.errors import StreamError
from core.models import SourceEntry

RawEntry = Union[int, SourceEntry]


def _as_entry(raw: RawEntry) -> SourceEntry:
    if isinstance(raw, SourceEntry):
        return raw
    return SourceEntry(identifier=int(raw))


class AsyncIteratorStream:
    """Wrap an async iterator of ids or SourceEntry objects.

    ``cap`` stops the stream after that many delivered entries.
    """

    def __init__(self, iterator: AsyncIterator[RawEntry], cap: Optional[int] = None) -> None:
        if cap is not None and cap <= 0:
            raise ValueError("cap must be positive")
        self._iterator = iterator
        self._cap = cap
        self._delivered = 0
        self._exhausted = False

    @classmethod
    def from_iterable(cls, items: Iterable[RawEntry], cap: Optional[int] = None) -> "AsyncIteratorStream":
        async def _gen() -> AsyncIterator[RawEntry]:
            for item in items:
                yield item

        return cls(_gen(), cap=cap)

    @property
    def delivered(self) -> int:
        return self._delivered

    async def next_entry(self) -> Optional[SourceEntry]:
        if self._exhausted:
            return None
        if self._cap is not None and self._delivered >= self._cap:
            await self._finish()
            return None
        try:
            raw = await self._iterator.__anext__()
        except StopAsyncIteration:
            self._exhausted = True
            return None
        except StreamError:
            self._exhausted = True
            raise
        except Exception as exc:
            self._exhausted = True
            raise StreamError(f"Identifier stream failed: {exc}") from exc
        self._delivered += 1
        return _as_entry(raw)

    async def _finish(self) -> None:
        self._exhausted = True
        aclose = getattr(self._iterator, "aclose", None)
        if aclose is not None:
            await aclose()
