"""Presence and typing state derived purely from pushed events."""

from __future__ import annotations

import asyncio
import logging
from typing import Dict, FrozenSet, Iterable, Optional

from whoami_chat.settings import settings

logger = logging.getLogger(__name__)


class PresenceTracker:
	"""Online peers, replaced wholesale by every presence event."""

	def __init__(self) -> None:
		self._online: FrozenSet[str] = frozenset()

	@property
	def online_ids(self) -> FrozenSet[str]:
		return self._online

	def replace(self, peer_ids: Iterable[str]) -> None:
		self._online = frozenset(peer_id for peer_id in peer_ids if peer_id)

	def is_online(self, peer_id: Optional[str]) -> bool:
		return bool(peer_id) and peer_id in self._online

	def reset(self) -> None:
		self._online = frozenset()


class TypingTracker:
	"""Peer typing flags with an optional local expiry.

	A flag is cleared by the peer's own "stopped" event, by a message from that
	peer, or locally after `ttl` seconds without a follow-up event.
	"""

	def __init__(self, *, ttl: Optional[float] = None) -> None:
		self._ttl = settings.typing_indicator_ttl_seconds if ttl is None else ttl
		self._typing: Dict[str, bool] = {}
		self._expiry: Dict[str, asyncio.TimerHandle] = {}

	def set(self, peer_id: str, is_typing: bool) -> None:
		self._cancel_expiry(peer_id)
		if not is_typing:
			self._typing[peer_id] = False
			return
		self._typing[peer_id] = True
		if self._ttl > 0:
			loop = asyncio.get_running_loop()
			self._expiry[peer_id] = loop.call_later(self._ttl, self._expire, peer_id)

	def clear(self, peer_id: str) -> None:
		self._cancel_expiry(peer_id)
		self._typing.pop(peer_id, None)

	def is_typing(self, peer_id: str) -> bool:
		return self._typing.get(peer_id, False)

	def snapshot(self) -> Dict[str, bool]:
		return dict(self._typing)

	def reset(self) -> None:
		for handle in self._expiry.values():
			handle.cancel()
		self._expiry.clear()
		self._typing.clear()

	def _cancel_expiry(self, peer_id: str) -> None:
		handle = self._expiry.pop(peer_id, None)
		if handle is not None:
			handle.cancel()

	def _expire(self, peer_id: str) -> None:
		self._expiry.pop(peer_id, None)
		if self._typing.get(peer_id):
			logger.debug("typing indicator expired for peer=%s", peer_id)
			self._typing[peer_id] = False
