"""Per-peer unread counters persisted under the authenticated user's key."""

from __future__ import annotations

import asyncio
import logging
from typing import Dict, Mapping, Optional

from whoami_chat.infra.redis import redis_client
from whoami_chat.obs import metrics as obs_metrics
from whoami_chat.settings import settings

logger = logging.getLogger(__name__)


def storage_key(user_id: str) -> str:
	return f"{settings.unread_key_prefix}{user_id}"


def _clean_counts(raw: object) -> Dict[str, int]:
	if not isinstance(raw, dict):
		return {}
	counts: Dict[str, int] = {}
	for peer_id, value in raw.items():
		try:
			count = int(value)
		except (TypeError, ValueError):
			continue
		if peer_id and count > 0:
			counts[str(peer_id)] = count
	return counts


class UnreadCounter:
	"""Unread count per peer; the active peer always reads as zero.

	Mutations are synchronous in memory and persisted by a single background
	writer that always stores the latest state. Persistence is best-effort.
	"""

	def __init__(self, user_id: str) -> None:
		self.user_id = user_id
		self._counts: Dict[str, int] = {}
		self._active_peer: Optional[str] = None
		self._dirty = False
		self._persist_task: Optional[asyncio.Task] = None

	@property
	def key(self) -> str:
		return storage_key(self.user_id)

	@property
	def active_peer(self) -> Optional[str]:
		return self._active_peer

	async def load(self) -> Dict[str, int]:
		"""Load persisted counts; absent or unreadable state starts empty."""
		try:
			raw = await redis_client.get_json(self.key)
		except Exception:
			logger.warning("unread counters could not be loaded; starting empty", exc_info=True)
			raw = None
		self._counts = _clean_counts(raw)
		if self._active_peer:
			self._counts.pop(self._active_peer, None)
		return dict(self._counts)

	def get(self, peer_id: str) -> int:
		return self._counts.get(peer_id, 0)

	def snapshot(self) -> Dict[str, int]:
		return dict(self._counts)

	def total(self) -> int:
		return sum(self._counts.values())

	def set_active(self, peer_id: Optional[str]) -> None:
		self._active_peer = peer_id
		if peer_id:
			self.reset(peer_id)

	def increment(self, peer_id: str) -> bool:
		if not peer_id or peer_id == self._active_peer:
			return False
		self._counts[peer_id] = self._counts.get(peer_id, 0) + 1
		obs_metrics.inc_unread_increment()
		self._schedule_persist()
		return True

	def reset(self, peer_id: str) -> None:
		"""Mark read: the peer's entry is removed (absent reads as zero)."""
		if self._counts.pop(peer_id, None) is not None:
			self._schedule_persist()

	def discard(self, peer_id: str) -> None:
		self.reset(peer_id)

	def replace_all(self, counts: Mapping[str, int]) -> None:
		cleaned = _clean_counts(dict(counts))
		if self._active_peer:
			cleaned.pop(self._active_peer, None)
		if cleaned != self._counts:
			self._counts = cleaned
			self._schedule_persist()

	def clear(self) -> None:
		self._counts = {}
		self._active_peer = None

	async def flush(self) -> None:
		"""Wait for any scheduled write to finish."""
		task = self._persist_task
		if task is not None and not task.done():
			await task

	def _schedule_persist(self) -> None:
		self._dirty = True
		if self._persist_task is None or self._persist_task.done():
			self._persist_task = asyncio.get_running_loop().create_task(
				self._persist_loop(), name=f"unread-persist:{self.user_id}"
			)

	async def _persist_loop(self) -> None:
		while self._dirty:
			self._dirty = False
			snapshot = dict(self._counts)
			try:
				await redis_client.set_json(self.key, snapshot)
			except Exception:
				obs_metrics.inc_unread_persist_failure()
				logger.warning("unread counters could not be persisted", exc_info=True)
