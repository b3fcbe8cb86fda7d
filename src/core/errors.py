"""Error taxonomy shared by the core and adapters."""

from __future__ import annotations

from typing import Sequence


class FlagscopeError(Exception):
    """Base class for every error raised by flagscope."""


class ConfigError(FlagscopeError):
    """Invalid or missing configuration."""


class ClassificationError(FlagscopeError):
    """A verifier returned a flag level outside the known range."""


class BatchVerificationError(FlagscopeError):
    """Recoverable failure of a single batch.

    The pipeline logs it and leaves the batch members unresolved for the run.
    """

    def __init__(self, message: str, batch: Sequence[int] = ()) -> None:
        super().__init__(message)
        self.batch = tuple(batch)


class RetriesExhaustedError(BatchVerificationError):
    """Transport or server errors persisted past the retry ceiling."""


class ServiceLogicalError(BatchVerificationError):
    """Well-formed response that reported an unsuccessful lookup."""


class StreamError(FlagscopeError):
    """An identifier producer failed; aborts the run."""


class SinkClosedError(FlagscopeError):
    """A write was attempted on a closed result sink."""
