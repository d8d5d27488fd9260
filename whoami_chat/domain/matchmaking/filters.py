"""Candidate pool construction for matchmaking searches."""

from __future__ import annotations

from datetime import date, datetime
from typing import Iterable, List, Optional

from .models import DirectoryUser, MatchmakingFilters


def _parse_dob(raw: Optional[str]) -> Optional[date]:
    if not raw:
        return None
    text = raw.strip()
    try:
        return datetime.fromisoformat(text.replace("Z", "+00:00")).date()
    except ValueError:
        pass
    try:
        return date.fromisoformat(text[:10])
    except ValueError:
        return None


def age_from_dob(dob: Optional[str], today: Optional[date] = None) -> Optional[int]:
    """Age in whole years, one less until this year's birthday has passed."""
    born = _parse_dob(dob)
    if born is None:
        return None
    today = today or date.today()
    age = today.year - born.year
    if (today.month, today.day) < (born.month, born.day):
        age -= 1
    return age


def resolve_age(user: DirectoryUser, today: Optional[date] = None) -> Optional[int]:
    if user.age is not None:
        return user.age
    return age_from_dob(user.date_of_birth, today)


def matches(user: DirectoryUser, filters: MatchmakingFilters, today: Optional[date] = None) -> bool:
    wanted_gender = filters.gender.profile_gender
    if wanted_gender is not None and (user.gender or "").lower() != wanted_gender:
        return False

    # Users without a resolvable age are not excluded.
    age = resolve_age(user, today)
    if age is not None and not (filters.age_min <= age <= filters.age_max):
        return False

    if filters.interests:
        theirs = {tag.strip().lower() for tag in user.interests}
        if theirs.isdisjoint(filters.interests):
            return False
    return True


def build_pool(
    users: Iterable[DirectoryUser],
    filters: MatchmakingFilters,
    today: Optional[date] = None,
    exclude_ids: Iterable[str] = (),
) -> List[DirectoryUser]:
    excluded = set(exclude_ids)
    return [user for user in users if user.id not in excluded and matches(user, filters, today)]
