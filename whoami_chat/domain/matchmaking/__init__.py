"""Matchmaking domain exports."""

from .directory import DirectoryClient
from .exceptions import InvalidFilters, MatchmakingError, SearchNotAllowed
from .filters import age_from_dob, build_pool, matches, resolve_age
from .models import DirectoryUser, GenderPreference, MatchmakingFilters, MatchState
from .queue import MatchmakingQueue

__all__ = [
    "DirectoryClient",
    "DirectoryUser",
    "GenderPreference",
    "InvalidFilters",
    "MatchState",
    "MatchmakingError",
    "MatchmakingFilters",
    "MatchmakingQueue",
    "SearchNotAllowed",
    "age_from_dob",
    "build_pool",
    "matches",
    "resolve_age",
]
