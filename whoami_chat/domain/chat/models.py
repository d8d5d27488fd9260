"""Domain models for conversation previews and messages."""

from __future__ import annotations

from dataclasses import dataclass, replace
from datetime import datetime, timezone
from typing import Optional, Union

_EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)


@dataclass(frozen=True, slots=True)
class ConfirmedId:
	"""Server-assigned conversation identifier."""

	value: str

	@property
	def pending(self) -> bool:
		return False


@dataclass(frozen=True, slots=True)
class PendingId:
	"""Speculative identity for a preview created from a live event."""

	message_id: str

	@property
	def value(self) -> str:
		return f"temp-{self.message_id}"

	@property
	def pending(self) -> bool:
		return True


PreviewId = Union[ConfirmedId, PendingId]


@dataclass(slots=True)
class PeerSummary:
	id: str
	display_name: Optional[str] = None
	avatar_ref: Optional[str] = None
	last_seen: Optional[datetime] = None
	is_online: bool = False


@dataclass(frozen=True, slots=True)
class ReplySummary:
	id: str
	body: Optional[str] = None
	image_ref: Optional[str] = None
	sender_id: Optional[str] = None
	created_at: Optional[datetime] = None


@dataclass(frozen=True, slots=True)
class Message:
	id: str
	sender_id: str
	receiver_id: str
	created_at: datetime
	body: Optional[str] = None
	image_ref: Optional[str] = None
	reply_to: Union[str, ReplySummary, None] = None
	streak_count: Optional[int] = None

	def other_party(self, user_id: str) -> str:
		return self.receiver_id if self.sender_id == user_id else self.sender_id

	def is_participant(self, user_id: str) -> bool:
		return user_id in (self.sender_id, self.receiver_id)


@dataclass(slots=True)
class ConversationPreview:
	id: PreviewId
	peer_id: Optional[str]
	peer: Optional[PeerSummary] = None
	last_message: Optional[Message] = None
	updated_at: Optional[datetime] = None
	unread_count: int = 0
	is_pinned: bool = False
	is_blocked: bool = False
	is_blocked_by_other: bool = False
	streak_count: Optional[int] = None

	@property
	def conversation_id(self) -> str:
		return self.id.value

	@property
	def is_pending(self) -> bool:
		return self.id.pending

	def copy(self, **changes) -> "ConversationPreview":
		return replace(self, **changes)


def sort_timestamp(preview: ConversationPreview) -> datetime:
	if preview.last_message is not None:
		return preview.last_message.created_at
	return preview.updated_at or _EPOCH


def preview_subtitle(preview: ConversationPreview) -> str:
	if preview.is_blocked_by_other:
		return "You are blocked by this user."
	if preview.is_blocked:
		return "You blocked this chat."
	if preview.last_message is not None and preview.last_message.body:
		return preview.last_message.body
	return "Start the conversation."
