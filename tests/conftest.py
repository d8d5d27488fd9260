import asyncio
from typing import Any

import pytest
import pytest_asyncio
from fakeredis.aioredis import FakeRedis

from whoami_chat.domain.chat.service import ChatSession
from whoami_chat.infra.api import ApiError
from whoami_chat.infra.transport import TransportEvent
from whoami_chat.settings import settings


@pytest_asyncio.fixture(autouse=True)
async def fake_redis():
    from whoami_chat.infra.redis import redis_client, set_redis_client

    original = redis_client._client
    client = FakeRedis(decode_responses=True)
    set_redis_client(client)
    try:
        yield client
    finally:
        set_redis_client(original)
        await client.flushall()


@pytest.fixture(autouse=True)
def force_test_settings():
    """Short timers so timed behaviour runs in milliseconds."""
    original = (
        settings.typing_idle_seconds,
        settings.typing_indicator_ttl_seconds,
        settings.match_reveal_interval_seconds,
    )
    settings.typing_idle_seconds = 0.05
    settings.typing_indicator_ttl_seconds = 0.05
    settings.match_reveal_interval_seconds = 0.01
    try:
        yield
    finally:
        (
            settings.typing_idle_seconds,
            settings.typing_indicator_ttl_seconds,
            settings.match_reveal_interval_seconds,
        ) = original


class FakeApi:
    """Canned responses keyed by (method, path); exceptions are raised."""

    def __init__(self) -> None:
        self.responses: dict[tuple[str, str], Any] = {("GET", "/message/conversations"): []}
        self.calls: list[tuple[str, str, Any]] = []
        self.held: dict[tuple[str, str], tuple[asyncio.Event, Any]] = {}

    def respond(self, method: str, path: str, value: Any) -> None:
        self.responses[(method, path)] = value

    def fail(self, method: str, path: str, message: str = "Request failed.", status_code: int = 500) -> None:
        self.responses[(method, path)] = ApiError(message, status_code=status_code)

    def hold(self, method: str, path: str, value: Any) -> asyncio.Event:
        """The next call to (method, path) blocks until the event is set, then returns `value`."""
        gate = asyncio.Event()
        self.held[(method, path)] = (gate, value)
        return gate

    async def wait_for_call(self, method: str, path: str, count: int = 1) -> None:
        while self.count(method, path) < count:
            await asyncio.sleep(0)

    async def _handle(self, method: str, path: str, body: Any = None) -> Any:
        self.calls.append((method, path, body))
        held = self.held.pop((method, path), None)
        if held is not None:
            gate, value = held
            await gate.wait()
        else:
            value = self.responses.get((method, path))
        if isinstance(value, Exception):
            raise value
        return value

    def count(self, method: str, path: str) -> int:
        return sum(1 for m, p, _ in self.calls if (m, p) == (method, path))

    async def get(self, path, *, route=None):
        return await self._handle("GET", path)

    async def post(self, path, body=None, *, route=None):
        return await self._handle("POST", path, body)

    async def delete(self, path, *, route=None):
        return await self._handle("DELETE", path)

    async def aclose(self):
        return None


class FakeTransport:
    def __init__(self) -> None:
        self.user_id = None
        self.sink = None
        self.emitted: list[tuple[str, dict]] = []
        self.history: list[tuple[str, str | None]] = []

    async def connect(self, user_id, sink):
        if self.user_id is not None and self.user_id != user_id:
            await self.disconnect()
        self.user_id = user_id
        self.sink = sink
        self.history.append(("connect", user_id))

    async def emit(self, event, payload):
        self.emitted.append((event, payload))

    async def disconnect(self):
        if self.user_id is None:
            return
        self.history.append(("disconnect", self.user_id))
        self.user_id = None
        self.sink = None

    async def push(self, name, payload):
        await self.sink.put(TransportEvent(name=name, payload=payload))


class RecordingDispatcher:
    def __init__(self) -> None:
        self.sent: list[tuple[str, str, str | None, dict]] = []

    async def dispatch(self, kind, title, body=None, data=None):
        self.sent.append((kind, title, body, dict(data or {})))
        return True


def _user(user_id: str, username: str | None = None, **extra) -> dict:
    payload = {"_id": user_id, "username": username or user_id.title()}
    payload.update(extra)
    return payload


def _message(message_id, sender, receiver, created_at="2024-05-01T10:00:00Z", text="hi", **extra) -> dict:
    payload = {
        "_id": message_id,
        "senderId": sender,
        "receiverId": receiver,
        "message": text,
        "createdAt": created_at,
    }
    payload.update(extra)
    return payload


def _conversation(conversation_id, peer, *, last=None, unread=0, username=None, **extra) -> dict:
    payload = {
        "_id": conversation_id,
        "user": _user(peer, username),
        "lastMessage": last,
        "updatedAt": "2024-05-01T09:00:00Z",
        "unreadCount": unread,
        "isPinned": False,
        "isBlocked": False,
        "isBlockedByOther": False,
    }
    payload.update(extra)
    return payload


@pytest.fixture
def make_user():
    return _user


@pytest.fixture
def make_message():
    return _message


@pytest.fixture
def make_conversation():
    return _conversation


@pytest.fixture
def api():
    return FakeApi()


@pytest.fixture
def transport():
    return FakeTransport()


@pytest.fixture
def dispatcher():
    return RecordingDispatcher()


@pytest_asyncio.fixture
async def session(api, transport, dispatcher):
    chat = ChatSession(api, transport, dispatcher)
    try:
        yield chat
    finally:
        await chat.stop()
        await asyncio.sleep(0)
