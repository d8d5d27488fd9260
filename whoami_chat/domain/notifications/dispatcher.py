"""Local notification dispatch with user preferences and a capped history log."""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Awaitable, Callable, Dict, List, Literal, Optional, Protocol

import ulid

from whoami_chat.infra.redis import redis_client
from whoami_chat.obs import metrics as obs_metrics
from whoami_chat.settings import settings

logger = logging.getLogger(__name__)

NotificationKind = Literal["message", "match"]


@dataclass
class NotificationLogItem:
    id: str
    type: str
    title: str
    created_at: datetime
    body: Optional[str] = None
    data: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "type": self.type,
            "title": self.title,
            "body": self.body,
            "createdAt": self.created_at.isoformat(),
            "data": self.data,
        }

    @classmethod
    def from_dict(cls, raw: dict) -> "NotificationLogItem":
        return cls(
            id=str(raw["id"]),
            type=str(raw["type"]),
            title=str(raw["title"]),
            body=raw.get("body"),
            created_at=datetime.fromisoformat(raw["createdAt"]),
            data=dict(raw.get("data") or {}),
        )


@dataclass
class NotificationPreferences:
    enabled: bool = False
    message: bool = False
    match: bool = False

    def allows(self, kind: str) -> bool:
        if not self.enabled:
            return False
        if kind == "message":
            return self.message
        if kind == "match":
            return self.match
        return True


class NotificationDispatcher(Protocol):
    async def dispatch(
        self,
        kind: NotificationKind,
        title: str,
        body: Optional[str] = None,
        data: Optional[Dict[str, Any]] = None,
    ) -> bool:
        ...


Deliver = Callable[[NotificationLogItem], Awaitable[None]]


def _parse_bool(value: Optional[str], fallback: bool = False) -> bool:
    if value is None:
        return fallback
    return value == "true"


class LocalNotificationDispatcher:
    """Records every request in the log and delivers it when preferences allow.

    `deliver` is the platform hook that actually surfaces an alert. Without one
    the notification is only logged.
    """

    def __init__(
        self,
        deliver: Optional[Deliver] = None,
        *,
        log_key: Optional[str] = None,
        prefs_key: Optional[str] = None,
        log_limit: Optional[int] = None,
    ) -> None:
        self._deliver = deliver
        self._log_key = log_key or settings.notification_log_key
        self._prefs_key = prefs_key or settings.notification_prefs_key
        self._log_limit = log_limit or settings.notification_log_limit

    async def get_preferences(self) -> NotificationPreferences:
        raw = await redis_client.hgetall(self._prefs_key) or {}
        enabled = _parse_bool(raw.get("enabled"), False)
        return NotificationPreferences(
            enabled=enabled,
            message=_parse_bool(raw.get("message"), enabled),
            match=_parse_bool(raw.get("match"), enabled),
        )

    async def set_preferences(
        self,
        *,
        enabled: Optional[bool] = None,
        message: Optional[bool] = None,
        match: Optional[bool] = None,
    ) -> NotificationPreferences:
        mapping = {
            name: "true" if value else "false"
            for name, value in (("enabled", enabled), ("message", message), ("match", match))
            if value is not None
        }
        if mapping:
            await redis_client.hset(self._prefs_key, mapping=mapping)
        return await self.get_preferences()

    async def dispatch(
        self,
        kind: NotificationKind,
        title: str,
        body: Optional[str] = None,
        data: Optional[Dict[str, Any]] = None,
    ) -> bool:
        item = NotificationLogItem(
            id=ulid.new().str,
            type=kind,
            title=title,
            body=body,
            created_at=datetime.now(timezone.utc),
            data=dict(data or {}),
        )
        try:
            await redis_client.push_capped(self._log_key, json.dumps(item.to_dict()), self._log_limit)
        except Exception:
            logger.warning("notification log write failed", exc_info=True)

        try:
            prefs = await self.get_preferences()
        except Exception:
            logger.warning("notification preferences unavailable", exc_info=True)
            prefs = NotificationPreferences()
        if not prefs.allows(kind):
            obs_metrics.inc_notification(kind, "suppressed")
            return False

        if self._deliver is None:
            logger.info("notification", extra={"kind": kind, "title": title})
        else:
            try:
                await self._deliver(item)
            except Exception:
                obs_metrics.inc_notification(kind, "failed")
                logger.warning("notification delivery failed", exc_info=True)
                return False
        obs_metrics.inc_notification(kind, "delivered")
        return True

    async def get_log(self) -> List[NotificationLogItem]:
        raw_items = await redis_client.lrange(self._log_key, 0, self._log_limit - 1)
        items: List[NotificationLogItem] = []
        for raw in raw_items:
            try:
                items.append(NotificationLogItem.from_dict(json.loads(raw)))
            except (ValueError, KeyError, TypeError):
                logger.debug("skipping unreadable notification log entry")
        return items

    async def clear_log(self) -> None:
        await redis_client.delete(self._log_key)
