"""
Custom exception hierarchy for divscan.

All exceptions inherit from DivscanError, which provides optional context
for structured error handling and logging.

Per-entity fetch problems are never raised: the request executor turns them
into outcome values. Exceptions are reserved for conditions that abort a
command (bad configuration, a failed listing call, an unwritable checkpoint).
"""

from __future__ import annotations

from typing import Any


class DivscanError(Exception):
    """Base exception for all divscan errors.

    Attributes:
        message: Human-readable error message.
        context: Optional structured context for logging/debugging.
    """

    def __init__(self, message: str, context: dict[str, Any] | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.context = context or {}

    def __str__(self) -> str:
        if self.context:
            ctx_str = ", ".join(f"{k}={v!r}" for k, v in self.context.items())
            return f"{self.message} ({ctx_str})"
        return self.message

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}({self.message!r}, context={self.context!r})"


class ConfigurationError(DivscanError):
    """Raised when configuration is invalid.

    Examples:
        - MAX_DELAY_SECONDS below MIN_DELAY_SECONDS
        - Unknown supplementary fallback policy
    """

    pass


class DataFetchError(DivscanError):
    """Raised when fetching external data fails in a way the caller must see.

    Context should include:
        - source: The data source (e.g., "nasdaq")
        - url: The URL that was being fetched
        - outcome: The final outcome kind
        - attempts: Number of attempts made
    """

    pass


class ListingError(DataFetchError):
    """Raised when the bulk entity listing cannot be fetched.

    This is the only run-fatal fetch failure: without a listing there is
    nothing to enumerate and nothing to resume into.
    """

    pass


class CheckpointError(DivscanError):
    """Raised when checkpoint documents cannot be written or removed.

    Context should include:
        - path: The document path
        - error: The underlying OS error
    """

    pass


class ReportError(DivscanError):
    """Raised when the final report cannot be written."""

    pass
