"""Outbound typing signals with an inactivity timer per peer."""

from __future__ import annotations

import asyncio
import logging
import time
from contextlib import suppress
from typing import Awaitable, Callable, Dict, Optional

from whoami_chat.settings import settings

logger = logging.getLogger(__name__)

EmitTyping = Callable[[str, bool], Awaitable[None]]


class TypingEmitter:
	def __init__(self, emit: EmitTyping, *, idle_seconds: Optional[float] = None) -> None:
		self._emit = emit
		self._idle = settings.typing_idle_seconds if idle_seconds is None else idle_seconds
		self._timers: Dict[str, asyncio.Task] = {}
		self._last_emit: Dict[str, float] = {}

	def is_pending(self, peer_id: str) -> bool:
		task = self._timers.get(peer_id)
		return task is not None and not task.done()

	async def keystroke(self, peer_id: str) -> None:
		"""Signal typing and push the "stopped" signal back by one idle window."""
		if not peer_id:
			return
		now = time.monotonic()
		last = self._last_emit.get(peer_id)
		if last is None or (now - last) >= self._idle:
			self._last_emit[peer_id] = now
			await self._emit(peer_id, True)
		self._reschedule(peer_id)

	async def message_sent(self, peer_id: str) -> None:
		await self._cancel(peer_id)
		self._last_emit.pop(peer_id, None)
		await self._emit(peer_id, False)

	async def cancel_all(self) -> None:
		timers = list(self._timers.values())
		self._timers.clear()
		self._last_emit.clear()
		for task in timers:
			task.cancel()
		for task in timers:
			with suppress(asyncio.CancelledError):
				await task

	def _reschedule(self, peer_id: str) -> None:
		previous = self._timers.pop(peer_id, None)
		if previous is not None:
			previous.cancel()
		self._timers[peer_id] = asyncio.get_running_loop().create_task(
			self._stop_after_idle(peer_id), name=f"typing-stop:{peer_id}"
		)

	async def _cancel(self, peer_id: str) -> None:
		task = self._timers.pop(peer_id, None)
		if task is None:
			return
		task.cancel()
		with suppress(asyncio.CancelledError):
			await task

	async def _stop_after_idle(self, peer_id: str) -> None:
		await asyncio.sleep(self._idle)
		current = self._timers.get(peer_id)
		if current is asyncio.current_task():
			self._timers.pop(peer_id, None)
		self._last_emit.pop(peer_id, None)
		try:
			await self._emit(peer_id, False)
		except Exception:
			logger.warning("stop-typing emit failed for peer=%s", peer_id, exc_info=True)
