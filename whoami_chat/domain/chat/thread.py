"""Message list for the open conversation, deduplicated by message id."""

from __future__ import annotations

from typing import Iterable, List, Tuple

from .models import Message


class ChatThread:
	def __init__(self, peer_id: str) -> None:
		self.peer_id = peer_id
		self._messages: List[Message] = []
		self._ids: set[str] = set()

	@property
	def messages(self) -> Tuple[Message, ...]:
		return tuple(self._messages)

	def __len__(self) -> int:
		return len(self._messages)

	def __contains__(self, message_id: object) -> bool:
		return message_id in self._ids

	def belongs_to(self, message: Message, user_id: str) -> bool:
		return message.is_participant(user_id) and message.other_party(user_id) == self.peer_id

	def append(self, message: Message) -> bool:
		if message.id in self._ids:
			return False
		self._ids.add(message.id)
		self._messages.append(message)
		return True

	def replace(self, messages: Iterable[Message]) -> None:
		self._messages = []
		self._ids = set()
		for message in messages:
			self.append(message)
