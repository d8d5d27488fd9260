"""Chat domain exports."""

from .exceptions import (
	ChatError,
	ChatRequestFailed,
	ConversationBlocked,
	ConversationNotFound,
	EmptyMessage,
	SessionNotStarted,
)
from .models import ConversationPreview, Message, PeerSummary, preview_subtitle
from .service import ChatSession
from .store import ConversationStore

__all__ = [
	"ChatError",
	"ChatRequestFailed",
	"ChatSession",
	"ConversationBlocked",
	"ConversationNotFound",
	"ConversationPreview",
	"ConversationStore",
	"EmptyMessage",
	"Message",
	"PeerSummary",
	"SessionNotStarted",
	"preview_subtitle",
]
