"""Socket.IO event channel for the authenticated chat session."""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Any, Optional, Protocol
from urllib.parse import urlencode

import socketio

from whoami_chat.obs import metrics as obs_metrics
from whoami_chat.settings import settings

logger = logging.getLogger(__name__)

EVENT_NEW_MESSAGE = "newMessage"
EVENT_ONLINE_USERS = "getOnlineUsers"
EVENT_TYPING = "typing"

INBOUND_EVENTS = (EVENT_NEW_MESSAGE, EVENT_ONLINE_USERS, EVENT_TYPING)


@dataclass(frozen=True, slots=True)
class TransportEvent:
	name: str
	payload: Any


class EventTransport(Protocol):
	@property
	def user_id(self) -> Optional[str]:
		...

	async def connect(self, user_id: str, sink: "asyncio.Queue[TransportEvent]") -> None:
		...

	async def emit(self, event: str, payload: dict) -> None:
		...

	async def disconnect(self) -> None:
		...


class SocketTransport:
	"""One Socket.IO connection per identity, forwarding inbound events to a queue."""

	def __init__(self, url: str | None = None, *, client: Any = None) -> None:
		self._url = (url or settings.socket_url or "").rstrip("/")
		self._client = client if client is not None else socketio.AsyncClient(reconnection=True)
		self._sink: Optional[asyncio.Queue[TransportEvent]] = None
		self._user_id: Optional[str] = None
		for event in INBOUND_EVENTS:
			self._client.on(event, self._make_forwarder(event))
		self._client.on("connect", self._on_connect)
		self._client.on("disconnect", self._on_disconnect)

	@property
	def user_id(self) -> Optional[str]:
		return self._user_id

	@property
	def connected(self) -> bool:
		return self._user_id is not None and bool(getattr(self._client, "connected", False))

	async def connect(self, user_id: str, sink: "asyncio.Queue[TransportEvent]") -> None:
		if self._user_id == user_id:
			self._sink = sink
			return
		if self._user_id is not None:
			# Never keep receiving events under the previous identity.
			await self.disconnect()
		self._sink = sink
		self._user_id = user_id
		url = f"{self._url}?{urlencode({'userId': user_id})}"
		logger.info("event channel connecting", extra={"target": self._url})
		try:
			await self._client.connect(url, transports=["websocket"])
		except Exception:
			self._user_id = None
			self._sink = None
			raise

	async def emit(self, event: str, payload: dict) -> None:
		if not self.connected:
			logger.debug("event channel not connected; skipping emit of %s", event)
			return
		await self._client.emit(event, payload)
		obs_metrics.socket_emit(event)

	async def disconnect(self) -> None:
		if self._user_id is None:
			return
		self._user_id = None
		self._sink = None
		await self._client.disconnect()

	def _make_forwarder(self, event: str):
		async def _forward(data: Any = None) -> None:
			await self._forward(event, data)

		return _forward

	async def _forward(self, event: str, data: Any) -> None:
		obs_metrics.socket_event(event)
		sink = self._sink
		if sink is None:
			obs_metrics.socket_event_dropped(event, "no_session")
			return
		await sink.put(TransportEvent(name=event, payload=data))

	async def _on_connect(self) -> None:
		obs_metrics.socket_connected()
		logger.info("event channel connected")

	async def _on_disconnect(self, *_: Any) -> None:
		obs_metrics.socket_disconnected()
		logger.info("event channel disconnected")
