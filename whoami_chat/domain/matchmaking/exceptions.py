"""Domain-level exceptions for the matchmaking queue."""

from __future__ import annotations


class MatchmakingError(Exception):
    """Base class for matchmaking errors."""

    reason: str = "matchmaking_error"

    def __init__(self, reason: str | None = None) -> None:
        super().__init__(reason or self.reason)
        if reason:
            self.reason = reason


class InvalidFilters(MatchmakingError):
    reason = "invalid_filters"


class SearchNotAllowed(MatchmakingError):
    """Raised when filters change while a search is running."""

    reason = "search_not_allowed"
