"""Domain-level exceptions for the chat session."""

from __future__ import annotations


class ChatError(Exception):
	"""Base class for chat feature errors."""

	reason: str = "unknown"

	def __init__(self, reason: str | None = None) -> None:
		super().__init__(reason or self.reason)
		if reason:
			self.reason = reason


class SessionNotStarted(ChatError):
	reason = "session_not_started"


class ConversationNotFound(ChatError):
	reason = "conversation_not_found"


class ConversationBlocked(ChatError):
	reason = "conversation_blocked"


class EmptyMessage(ChatError):
	reason = "empty_message"


class ChatRequestFailed(ChatError):
	"""A mutating backend call was rejected; local state was left untouched."""

	reason = "request_failed"

	def __init__(self, reason: str | None = None, *, status_code: int = 0) -> None:
		super().__init__(reason)
		self.status_code = status_code
