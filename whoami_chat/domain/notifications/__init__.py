"""Notification domain exports."""

from .dispatcher import (
    LocalNotificationDispatcher,
    NotificationDispatcher,
    NotificationLogItem,
    NotificationPreferences,
)

__all__ = [
    "LocalNotificationDispatcher",
    "NotificationDispatcher",
    "NotificationLogItem",
    "NotificationPreferences",
]
