"""Human-readable progress output.

Keeping formatting here prevents drift between the CLI and the pipeline's
status callbacks. Non-verbose mode keeps a single live line on screen;
verbose mode prints every (throttled) update as its own line.
"""

from __future__ import annotations

import time
from typing import Callable, Optional

from rich.console import Console
from rich.status import Status
from rich.text import Text

from core.models import StatusSnapshot

PREFIX = "[status] "


def format_status_line(label: str, snapshot: StatusSnapshot) -> str:
    """Return the one-line progress summary for a source."""

    pending = max(0, snapshot.unique - snapshot.matched)
    return (
        f"{label} :: total {snapshot.total_collected} | unique {snapshot.unique} | "
        f"matched {snapshot.matched} (unsafe {snapshot.unsafe_matches}) | "
        f"queue {snapshot.queue_size} | pending {pending}"
    )


class StatusLine:
    """Status reporter with a rewriting line or plain verbose output."""

    def __init__(
        self,
        console: Optional[Console] = None,
        verbose: bool = False,
        min_interval: float = 0.1,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._console = console or Console(stderr=True)
        self._verbose = verbose
        self._min_interval = min_interval
        self._clock = clock
        self._last_update: Optional[float] = None
        self._live: Optional[Status] = None

    def update(self, message: str, force: bool = False) -> None:
        now = self._clock()
        if not force and self._last_update is not None and now - self._last_update < self._min_interval:
            return
        self._last_update = now

        text = Text(f"{PREFIX}{message}")
        if self._verbose:
            self._console.print(text)
            return
        if self._live is None:
            self._live = self._console.status(text)
            self._live.start()
        else:
            self._live.update(text)

    def snapshot_hook(self, label: str) -> Callable[[StatusSnapshot], None]:
        """Return a processor status callback bound to a source label."""

        def _hook(snapshot: StatusSnapshot) -> None:
            self.update(format_status_line(label, snapshot))

        return _hook

    def done(self, final_message: Optional[str] = None) -> None:
        """Clear the live line and optionally print a final summary."""

        if self._live is not None:
            self._live.stop()
            self._live = None
        self._last_update = None
        if final_message:
            self._console.print(Text(f"{PREFIX}{final_message}"))

    def log(self, message: str) -> None:
        self.done()
        self._console.print(Text(message))
