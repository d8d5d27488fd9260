"""Client entrypoint: wires the API, event channel, chat session and matchmaking."""

from __future__ import annotations

from contextlib import asynccontextmanager
from dataclasses import dataclass
from datetime import date
from typing import AsyncIterator, List, Optional

from whoami_chat.domain.chat import ChatSession, Message
from whoami_chat.domain.matchmaking import DirectoryClient, DirectoryUser, MatchmakingQueue
from whoami_chat.domain.notifications import LocalNotificationDispatcher
from whoami_chat.domain.notifications.dispatcher import Deliver
from whoami_chat.infra.api import ApiClient
from whoami_chat.infra.transport import EventTransport, SocketTransport
from whoami_chat.obs import init as obs_init


@dataclass
class ChatClient:
	api: ApiClient
	transport: EventTransport
	dispatcher: LocalNotificationDispatcher
	session: ChatSession
	directory: DirectoryClient
	matchmaking: MatchmakingQueue

	async def start(self, user_id: str) -> None:
		await self.session.start(user_id)

	async def find_matches(self, *, today: Optional[date] = None) -> List[DirectoryUser]:
		"""Fetch the directory and start a timed search with the current filters."""
		users = await self.directory.fetch_users()
		exclude = (self.session.user_id,) if self.session.user_id else ()
		return await self.matchmaking.start(users, today=today, exclude_ids=exclude)

	async def message_candidate(self, candidate: DirectoryUser, text: str) -> Message:
		"""Open a conversation with a revealed candidate."""
		return await self.session.send_message(candidate.id, text, peer_hint=candidate.to_peer())

	async def aclose(self) -> None:
		await self.matchmaking.cancel()
		await self.session.stop()
		await self.api.aclose()


def build_client(
	*,
	api: Optional[ApiClient] = None,
	transport: Optional[EventTransport] = None,
	dispatcher: Optional[LocalNotificationDispatcher] = None,
	deliver: Optional[Deliver] = None,
) -> ChatClient:
	obs_init()
	api = api or ApiClient()
	transport = transport or SocketTransport()
	dispatcher = dispatcher or LocalNotificationDispatcher(deliver)
	return ChatClient(
		api=api,
		transport=transport,
		dispatcher=dispatcher,
		session=ChatSession(api, transport, dispatcher),
		directory=DirectoryClient(api),
		matchmaking=MatchmakingQueue(dispatcher),
	)


@asynccontextmanager
async def open_client(user_id: str, **kwargs) -> AsyncIterator[ChatClient]:
	client = build_client(**kwargs)
	await client.start(user_id)
	try:
		yield client
	finally:
		await client.aclose()
