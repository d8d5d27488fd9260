"""User directory listing used to seed matchmaking searches."""

from __future__ import annotations

import logging
from typing import List

from pydantic import ValidationError

from whoami_chat.domain.chat.schemas import UserPayload
from whoami_chat.infra.api import ApiClient, ApiError

from .models import DirectoryUser

logger = logging.getLogger(__name__)

USERS_ROUTE = "/user"


class DirectoryClient:
    def __init__(self, api: ApiClient) -> None:
        self._api = api

    async def fetch_users(self) -> List[DirectoryUser]:
        """Return directory users; an unavailable directory reads as empty."""
        try:
            data = await self._api.get(USERS_ROUTE, route=USERS_ROUTE)
        except ApiError:
            logger.warning("user directory unavailable")
            return []
        if not isinstance(data, list):
            logger.warning("user directory returned an unexpected payload")
            return []
        users: List[DirectoryUser] = []
        for item in data:
            try:
                users.append(DirectoryUser.from_payload(UserPayload.model_validate(item)))
            except ValidationError:
                logger.debug("skipping malformed directory entry")
        return users
