import asyncio
from unittest.mock import AsyncMock

import pytest

from whoami_chat.infra.transport import EVENT_NEW_MESSAGE, SocketTransport, TransportEvent


class StubClient:
	def __init__(self) -> None:
		self.handlers = {}
		self.connected = False
		self.connect = AsyncMock(side_effect=self._connect)
		self.disconnect = AsyncMock(side_effect=self._disconnect)
		self.emit = AsyncMock()

	def on(self, event, handler):
		self.handlers[event] = handler

	async def _connect(self, url, **kwargs):
		self.connected = True

	async def _disconnect(self):
		self.connected = False


@pytest.mark.asyncio
async def test_connect_passes_user_id_in_query():
	client = StubClient()
	transport = SocketTransport("http://chat.test", client=client)

	await transport.connect("user 1", asyncio.Queue())

	client.connect.assert_awaited_once_with("http://chat.test?userId=user+1", transports=["websocket"])
	assert transport.user_id == "user 1"
	assert transport.connected


@pytest.mark.asyncio
async def test_inbound_events_are_forwarded_to_sink():
	client = StubClient()
	transport = SocketTransport("http://chat.test", client=client)
	sink: asyncio.Queue = asyncio.Queue()
	await transport.connect("me", sink)

	await client.handlers[EVENT_NEW_MESSAGE]({"_id": "m1"})
	await client.handlers["getOnlineUsers"](["ann"])

	assert sink.get_nowait() == TransportEvent(name="newMessage", payload={"_id": "m1"})
	assert sink.get_nowait() == TransportEvent(name="getOnlineUsers", payload=["ann"])


@pytest.mark.asyncio
async def test_events_without_session_are_dropped():
	client = StubClient()
	transport = SocketTransport("http://chat.test", client=client)
	sink: asyncio.Queue = asyncio.Queue()
	await transport.connect("me", sink)
	await transport.disconnect()

	await client.handlers["typing"]({"from": "ann", "isTyping": True})

	assert sink.empty()


@pytest.mark.asyncio
async def test_identity_change_disconnects_first():
	client = StubClient()
	transport = SocketTransport("http://chat.test", client=client)

	await transport.connect("me", asyncio.Queue())
	await transport.connect("me", asyncio.Queue())
	assert client.connect.await_count == 1

	await transport.connect("other", asyncio.Queue())
	assert client.disconnect.await_count == 1
	assert client.connect.await_count == 2
	assert transport.user_id == "other"


@pytest.mark.asyncio
async def test_failed_connect_resets_identity():
	client = StubClient()
	client.connect = AsyncMock(side_effect=ConnectionError("refused"))
	transport = SocketTransport("http://chat.test", client=client)

	with pytest.raises(ConnectionError):
		await transport.connect("me", asyncio.Queue())
	assert transport.user_id is None


@pytest.mark.asyncio
async def test_emit_only_when_connected():
	client = StubClient()
	transport = SocketTransport("http://chat.test", client=client)

	await transport.emit("typing", {"to": "ann", "isTyping": True})
	client.emit.assert_not_awaited()

	await transport.connect("me", asyncio.Queue())
	await transport.emit("typing", {"to": "ann", "isTyping": True})
	client.emit.assert_awaited_once_with("typing", {"to": "ann", "isTyping": True})

	await transport.disconnect()
	await transport.disconnect()
	assert client.disconnect.await_count == 1
