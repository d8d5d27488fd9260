"""Matchmaking filters, directory users and queue states."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import List, Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from whoami_chat.domain.chat.models import PeerSummary
from whoami_chat.domain.chat.schemas import UserPayload
from whoami_chat.settings import settings


class GenderPreference(str, Enum):
    ANYONE = "anyone"
    GIRLS = "girls"
    BOYS = "boys"

    @property
    def profile_gender(self) -> Optional[str]:
        """Gender attribute stored on profiles, or None when unconstrained."""
        if self is GenderPreference.GIRLS:
            return "female"
        if self is GenderPreference.BOYS:
            return "male"
        return None


class MatchState(str, Enum):
    IDLE = "idle"
    FILTERS = "filters"
    SEARCHING = "searching"
    COMPLETE = "complete"


def _clamp_age(value: int) -> int:
    return max(settings.match_age_min, min(settings.match_age_max, int(value)))


class MatchmakingFilters(BaseModel):
    model_config = ConfigDict(frozen=True, populate_by_name=True)

    gender: GenderPreference = GenderPreference.ANYONE
    age_min: int = Field(default_factory=lambda: settings.match_age_min, alias="ageMin")
    age_max: int = Field(default_factory=lambda: settings.match_age_max, alias="ageMax")
    interests: Tuple[str, ...] = ()

    @field_validator("age_min", "age_max")
    @classmethod
    def _clamp(cls, value: int) -> int:
        return _clamp_age(value)

    @field_validator("interests", mode="before")
    @classmethod
    def _normalise_interests(cls, value):
        if value is None:
            return ()
        seen: List[str] = []
        for item in value:
            tag = str(item).strip().lower()
            if tag and tag not in seen:
                seen.append(tag)
        return tuple(seen)

    @model_validator(mode="after")
    def _check_range(self) -> "MatchmakingFilters":
        if self.age_min > self.age_max:
            raise ValueError("age_min must not exceed age_max")
        return self


@dataclass(frozen=True)
class DirectoryUser:
    """A directory entry as used by matchmaking."""

    id: str
    username: Optional[str] = None
    profile_photo: Optional[str] = None
    gender: Optional[str] = None
    age: Optional[int] = None
    date_of_birth: Optional[str] = None
    interests: Tuple[str, ...] = field(default_factory=tuple)
    is_online: bool = False

    @classmethod
    def from_payload(cls, payload: UserPayload) -> "DirectoryUser":
        return cls(
            id=payload.id,
            username=payload.username,
            profile_photo=payload.profile_photo,
            gender=payload.gender,
            age=payload.age,
            date_of_birth=payload.date_of_birth,
            interests=tuple(payload.interests or ()),
            is_online=bool(payload.is_online),
        )

    def to_peer(self) -> PeerSummary:
        """Peer hint for opening a chat with this candidate."""
        return PeerSummary(
            id=self.id,
            display_name=self.username,
            avatar_ref=self.profile_photo,
            is_online=self.is_online,
        )
