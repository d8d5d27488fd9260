"""Pydantic schemas for the chat backend's wire payloads."""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Annotated, Any, List, Optional, Union

from pydantic import (
	AfterValidator,
	BaseModel,
	ConfigDict,
	Field,
	TypeAdapter,
	ValidationError,
	WrapValidator,
)

from .models import (
	ConfirmedId,
	ConversationPreview,
	Message,
	PeerSummary,
	ReplySummary,
)

logger = logging.getLogger(__name__)


def _ensure_utc(value: datetime) -> datetime:
	if value.tzinfo is None:
		return value.replace(tzinfo=timezone.utc)
	return value


def _lenient_datetime(value: Any, handler) -> Optional[datetime]:
	try:
		parsed = handler(value)
	except ValidationError:
		return None
	return _ensure_utc(parsed) if parsed is not None else None


UtcDatetime = Annotated[datetime, AfterValidator(_ensure_utc)]
LenientDatetime = Annotated[Optional[datetime], WrapValidator(_lenient_datetime)]


class WireModel(BaseModel):
	model_config = ConfigDict(populate_by_name=True, extra="ignore")


class UserPayload(WireModel):
	id: str = Field(..., alias="_id", min_length=1)
	username: Optional[str] = None
	profile_photo: Optional[str] = Field(default=None, alias="profilePhoto")
	is_online: Optional[bool] = Field(default=None, alias="isOnline")
	last_seen: LenientDatetime = Field(default=None, alias="lastSeen")
	updated_at: LenientDatetime = Field(default=None, alias="updatedAt")
	date_of_birth: Optional[str] = Field(default=None, alias="dateOfBirth")
	age: Optional[int] = None
	interests: Optional[List[str]] = None
	gender: Optional[str] = None

	def to_peer(self) -> PeerSummary:
		return PeerSummary(
			id=self.id,
			display_name=self.username,
			avatar_ref=self.profile_photo,
			last_seen=self.last_seen or self.updated_at,
			is_online=bool(self.is_online),
		)


class ReplyPayload(WireModel):
	id: str = Field(..., alias="_id")
	message: Optional[str] = None
	image_url: Optional[str] = Field(default=None, alias="imageUrl")
	sender_id: Optional[str] = Field(default=None, alias="senderId")
	created_at: LenientDatetime = Field(default=None, alias="createdAt")

	def to_model(self) -> ReplySummary:
		return ReplySummary(
			id=self.id,
			body=self.message,
			image_ref=self.image_url,
			sender_id=self.sender_id,
			created_at=self.created_at,
		)


class MessagePayload(WireModel):
	id: str = Field(..., alias="_id", min_length=1)
	sender_id: str = Field(..., alias="senderId", min_length=1)
	receiver_id: str = Field(..., alias="receiverId", min_length=1)
	message: Optional[str] = None
	image_url: Optional[str] = Field(default=None, alias="imageUrl")
	reply_to: Union[str, ReplyPayload, None] = Field(default=None, alias="replyTo")
	created_at: UtcDatetime = Field(..., alias="createdAt")
	streak_count: Optional[int] = Field(default=None, alias="streakCount")

	def to_model(self) -> Message:
		reply = self.reply_to.to_model() if isinstance(self.reply_to, ReplyPayload) else self.reply_to
		return Message(
			id=self.id,
			sender_id=self.sender_id,
			receiver_id=self.receiver_id,
			created_at=self.created_at,
			body=self.message,
			image_ref=self.image_url,
			reply_to=reply,
			streak_count=self.streak_count,
		)


class ConversationPayload(WireModel):
	id: str = Field(..., alias="_id", min_length=1)
	user: Optional[UserPayload] = None
	last_message: Optional[MessagePayload] = Field(default=None, alias="lastMessage")
	updated_at: LenientDatetime = Field(default=None, alias="updatedAt")
	unread_count: Optional[int] = Field(default=None, alias="unreadCount")
	streak_count: Optional[int] = Field(default=None, alias="streakCount")
	is_pinned: Optional[bool] = Field(default=None, alias="isPinned")
	is_blocked: Optional[bool] = Field(default=None, alias="isBlocked")
	is_blocked_by_other: Optional[bool] = Field(default=None, alias="isBlockedByOther")

	def to_model(self) -> ConversationPreview:
		last_message = self.last_message.to_model() if self.last_message else None
		return ConversationPreview(
			id=ConfirmedId(self.id),
			peer_id=self.user.id if self.user else None,
			peer=self.user.to_peer() if self.user else None,
			last_message=last_message,
			updated_at=last_message.created_at if last_message else self.updated_at,
			unread_count=max(0, self.unread_count or 0),
			is_pinned=bool(self.is_pinned),
			is_blocked=bool(self.is_blocked),
			is_blocked_by_other=bool(self.is_blocked_by_other),
			streak_count=self.streak_count,
		)


class TypingPayload(WireModel):
	from_user: str = Field(..., alias="from", min_length=1)
	is_typing: bool = Field(default=False, alias="isTyping")


class SendMessageRequest(WireModel):
	message: str = ""
	image: Optional[str] = None
	reply_to: Optional[str] = Field(default=None, alias="replyTo")

	def to_body(self) -> dict:
		return self.model_dump(by_alias=True, exclude_none=True)


class SendMessageResponse(WireModel):
	new_message: MessagePayload = Field(..., alias="newMessage")


_ONLINE_USERS = TypeAdapter(List[str])


def parse_message(data: Any) -> Message:
	"""Validate a raw message payload; raises ValidationError when malformed."""
	return MessagePayload.model_validate(data).to_model()


def parse_messages(data: Any) -> list[Message]:
	if not isinstance(data, list):
		raise ValueError("expected a list of messages")
	messages: list[Message] = []
	for item in data:
		try:
			messages.append(parse_message(item))
		except ValidationError:
			logger.debug("dropping malformed message entry")
	return messages


def parse_conversations(data: Any) -> list[ConversationPreview]:
	"""Validate a previews listing, skipping entries that do not parse."""
	if not isinstance(data, list):
		raise ValueError("expected a list of conversations")
	previews: list[ConversationPreview] = []
	for item in data:
		try:
			previews.append(ConversationPayload.model_validate(item).to_model())
		except ValidationError:
			logger.debug("dropping malformed conversation entry")
	return previews


def parse_online_users(data: Any) -> list[str]:
	return [user_id for user_id in _ONLINE_USERS.validate_python(data) if user_id]


def parse_typing(data: Any) -> TypingPayload:
	return TypingPayload.model_validate(data)
