"""Chat session: reconciles snapshots, pushed events and local actions.

One `ChatSession` exists per authenticated identity. Inbound events from the
transport are queued and applied by a single reconciliation task, so every
mutation of the store, the unread counters and the presence/typing trackers
happens in a well-defined order.
"""

from __future__ import annotations

import asyncio
import logging
from collections import OrderedDict
from contextlib import suppress
from typing import Dict, FrozenSet, List, Optional
from urllib.parse import quote

from pydantic import ValidationError

from whoami_chat.domain.notifications import NotificationDispatcher
from whoami_chat.infra.api import ApiClient, ApiError
from whoami_chat.infra.transport import (
	EVENT_NEW_MESSAGE,
	EVENT_ONLINE_USERS,
	EVENT_TYPING,
	EventTransport,
	TransportEvent,
)
from whoami_chat.obs import logging as obs_logging
from whoami_chat.obs import metrics as obs_metrics
from whoami_chat.settings import settings

from .exceptions import (
	ChatRequestFailed,
	ConversationBlocked,
	ConversationNotFound,
	EmptyMessage,
	SessionNotStarted,
)
from .models import ConversationPreview, Message, PeerSummary
from .presence import PresenceTracker, TypingTracker
from .schemas import (
	SendMessageRequest,
	SendMessageResponse,
	parse_conversations,
	parse_message,
	parse_messages,
	parse_online_users,
	parse_typing,
)
from .store import ConversationStore
from .thread import ChatThread
from .typing_emitter import TypingEmitter
from .unread import UnreadCounter

logger = logging.getLogger(__name__)

CONVERSATIONS_ROUTE = "/message/conversations"
CONVERSATION_ROUTE = "/message/conversations/{id}"
PIN_ROUTE = "/message/conversations/{id}/pin"
BLOCK_ROUTE = "/message/conversations/{id}/block"
THREAD_ROUTE = "/message/{peerId}"
SEND_ROUTE = "/message/send/{peerId}"

_FALLBACK_TITLE = "New message"
_FALLBACK_BODY = "You received a new message."


def _unread_summary(count: int) -> str:
	return f"You have {count} unread message{'s' if count > 1 else ''}."


class ChatSession:
	"""Dependency-injected chat state for one authenticated user."""

	def __init__(
		self,
		api: ApiClient,
		transport: EventTransport,
		dispatcher: NotificationDispatcher,
		*,
		store: Optional[ConversationStore] = None,
		presence: Optional[PresenceTracker] = None,
		typing: Optional[TypingTracker] = None,
	) -> None:
		self._api = api
		self._transport = transport
		self._dispatcher = dispatcher
		self.store = store or ConversationStore()
		self.presence = presence or PresenceTracker()
		self.typing = typing or TypingTracker()
		self._emitter = TypingEmitter(self.send_typing)
		self._user_id: Optional[str] = None
		self._unread: Optional[UnreadCounter] = None
		self._queue: Optional[asyncio.Queue[TransportEvent]] = None
		self._loop_task: Optional[asyncio.Task] = None
		self._background: set[asyncio.Task] = set()
		self._seen: OrderedDict[str, None] = OrderedDict()
		self._live_bumps: Dict[str, int] = {}
		self._thread: Optional[ChatThread] = None
		self.latest_message: Optional[Message] = None

	# ------------------------------------------------------------------ lifecycle

	@property
	def user_id(self) -> Optional[str]:
		return self._user_id

	@property
	def started(self) -> bool:
		return self._user_id is not None

	async def start(self, user_id: str) -> None:
		"""Bind the session to `user_id`, tearing down any previous identity first."""
		if not user_id:
			raise ValueError("user_id is required")
		if self._user_id == user_id:
			return
		if self._user_id is not None:
			await self.stop()

		self._user_id = user_id
		self._unread = UnreadCounter(user_id)
		# Counters must be in place before the first event is processed.
		await self._unread.load()
		self._queue = asyncio.Queue()
		self._loop_task = asyncio.get_running_loop().create_task(
			self._consume(self._queue), name=f"chat-reconcile:{user_id}"
		)
		try:
			await self._transport.connect(user_id, self._queue)
		except Exception:
			logger.warning("event channel unavailable; continuing with snapshots only", exc_info=True)
		logger.info("chat session started", extra={"session_user": user_id})
		await self.load_snapshot()

	async def stop(self) -> None:
		if self._user_id is None:
			return
		user_id = self._user_id
		self._user_id = None
		try:
			await self._transport.disconnect()
		except Exception:
			logger.warning("event channel disconnect failed", exc_info=True)
		await self._emitter.cancel_all()

		tasks = [task for task in (self._loop_task, *self._background) if task is not None]
		for task in tasks:
			task.cancel()
		for task in tasks:
			with suppress(asyncio.CancelledError):
				await task
		self._loop_task = None
		self._background.clear()
		self._queue = None

		if self._unread is not None:
			await self._unread.flush()
		self._unread = None
		self.store.clear()
		self.presence.reset()
		self.typing.reset()
		self._seen.clear()
		self._live_bumps.clear()
		self._thread = None
		self.latest_message = None
		logger.info("chat session stopped", extra={"session_user": user_id})

	async def drain(self) -> None:
		"""Wait until queued events and background refreshes have been applied."""
		if self._queue is not None:
			await self._queue.join()
		while self._background:
			await asyncio.gather(*list(self._background), return_exceptions=True)

	# ---------------------------------------------------------------- read views

	@property
	def conversations(self) -> List[ConversationPreview]:
		return self.store.ordered()

	@property
	def unread_counts(self) -> Dict[str, int]:
		return self._unread.snapshot() if self._unread else {}

	@property
	def online_user_ids(self) -> FrozenSet[str]:
		return self.presence.online_ids

	@property
	def typing_users(self) -> Dict[str, bool]:
		return self.typing.snapshot()

	@property
	def active_peer_id(self) -> Optional[str]:
		return self._unread.active_peer if self._unread else None

	@property
	def thread(self) -> Optional[ChatThread]:
		return self._thread

	def unread_count(self, peer_id: str) -> int:
		return self._unread.get(peer_id) if self._unread else 0

	def is_online(self, peer_id: str) -> bool:
		if self.presence.is_online(peer_id):
			return True
		preview = self.store.find_by_peer(peer_id)
		return bool(preview and preview.peer and preview.peer.is_online)

	def search(self, query: str) -> List[ConversationPreview]:
		return self.store.search(query)

	# ------------------------------------------------------------------ snapshot

	async def load_snapshot(self) -> List[ConversationPreview]:
		"""Fetch previews and replace local state; never raises on fetch failure."""
		user_id = self._user_id
		if user_id is None or self._unread is None:
			return []
		since = self.store.revision
		try:
			data = await self._api.get(CONVERSATIONS_ROUTE, route=CONVERSATIONS_ROUTE)
			previews = parse_conversations(data)
		except (ApiError, ValueError):
			obs_metrics.inc_snapshot("failed")
			logger.warning("conversation snapshot failed; keeping current state")
			return self.store.ordered()
		if self._user_id != user_id:
			return []

		self.store.replace_from_snapshot(previews, since_revision=since)
		counts = {p.peer_id: p.unread_count for p in previews if p.peer_id}
		for peer_id, revision in list(self._live_bumps.items()):
			if revision > since:
				# The snapshot predates this live increment.
				counts[peer_id] = max(counts.get(peer_id, 0), self._unread.get(peer_id))
			else:
				self._live_bumps.pop(peer_id, None)
		before = self._unread.snapshot()
		self._unread.replace_all(counts)
		obs_metrics.inc_snapshot("ok")
		await self._notify_unread_growth(before)
		return self.store.ordered()

	async def _notify_unread_growth(self, before: Dict[str, int]) -> None:
		active = self.active_peer_id
		for peer_id, count in self.unread_counts.items():
			if peer_id == active or count <= before.get(peer_id, 0):
				continue
			preview = self.store.find_by_peer(peer_id)
			title = (preview.peer.display_name if preview and preview.peer else None) or _FALLBACK_TITLE
			await self._dispatch("message", title, _unread_summary(count), {"userId": peer_id})

	# -------------------------------------------------------------------- events

	async def _consume(self, queue: "asyncio.Queue[TransportEvent]") -> None:
		while True:
			event = await queue.get()
			tokens = obs_logging.bind_context(user_id=self._user_id, event=event.name)
			try:
				await self._handle_event(event)
			except ValueError:
				obs_metrics.socket_event_dropped(event.name, "malformed")
				logger.debug("dropping malformed %s event", event.name)
			except Exception:
				obs_metrics.socket_event_dropped(event.name, "error")
				logger.exception("event handling failed")
			finally:
				obs_logging.reset_context(tokens)
				queue.task_done()

	async def _handle_event(self, event: TransportEvent) -> None:
		if event.name == EVENT_NEW_MESSAGE:
			await self.apply_incoming_message(parse_message(event.payload))
		elif event.name == EVENT_ONLINE_USERS:
			self.presence.replace(parse_online_users(event.payload))
		elif event.name == EVENT_TYPING:
			payload = parse_typing(event.payload)
			self.typing.set(payload.from_user, payload.is_typing)
		else:
			obs_metrics.socket_event_dropped(event.name, "unknown")

	def _remember(self, message_id: str) -> bool:
		"""Record a message id; False when it was already applied."""
		if message_id in self._seen:
			self._seen.move_to_end(message_id)
			return False
		self._seen[message_id] = None
		while len(self._seen) > settings.seen_message_cache_size:
			self._seen.popitem(last=False)
		return True

	def _require_user(self) -> str:
		if self._user_id is None:
			raise SessionNotStarted()
		return self._user_id

	async def apply_incoming_message(self, message: Message) -> Optional[ConversationPreview]:
		user_id = self._require_user()
		if not message.is_participant(user_id):
			obs_metrics.socket_event_dropped(EVENT_NEW_MESSAGE, "foreign")
			return None
		if not self._remember(message.id):
			obs_metrics.inc_duplicate_message()
			return self.store.find_by_peer(message.other_party(user_id))

		peer_id = message.other_party(user_id)
		preview, created = self.store.upsert_from_message(message, peer_id)
		self.latest_message = message
		if self._thread is not None and self._thread.belongs_to(message, user_id):
			self._thread.append(message)
		# A message implies the peer stopped typing.
		self.typing.clear(peer_id)

		if message.sender_id != user_id and self._unread is not None and peer_id != self._unread.active_peer:
			if self._unread.increment(peer_id):
				self._live_bumps[peer_id] = self.store.revision
			title = (preview.peer.display_name if preview.peer else None) or _FALLBACK_TITLE
			body = message.body[: settings.notification_body_max_chars] if message.body else _FALLBACK_BODY
			await self._dispatch("message", title, body, {"userId": peer_id})

		if created:
			self._refresh_in_background()
		return preview

	def apply_sent_message(
		self,
		message: Message,
		peer_hint: Optional[PeerSummary] = None,
	) -> Optional[ConversationPreview]:
		"""Local echo of a message the user sent; never counts as unread."""
		user_id = self._require_user()
		peer_id = message.other_party(user_id)
		if not self._remember(message.id):
			obs_metrics.inc_duplicate_message()
			return self.store.find_by_peer(peer_id)
		preview, created = self.store.upsert_from_message(message, peer_id, peer_hint)
		if self._thread is not None and self._thread.belongs_to(message, user_id):
			self._thread.append(message)
		if created:
			self._refresh_in_background()
		return preview

	def _refresh_in_background(self) -> None:
		task = asyncio.get_running_loop().create_task(self.load_snapshot(), name="chat-snapshot-refresh")
		self._background.add(task)
		task.add_done_callback(self._background.discard)

	async def _dispatch(self, kind: str, title: str, body: str, data: dict) -> None:
		try:
			await self._dispatcher.dispatch(kind, title, body, data)
		except Exception:
			obs_metrics.inc_notification(kind, "failed")
			logger.warning("notification dispatch failed", exc_info=True)

	# ------------------------------------------------------------- local actions

	def mark_active(self, peer_id: Optional[str]) -> None:
		self._require_user()
		self._unread.set_active(peer_id)

	def mark_read(self, peer_id: str) -> None:
		self._require_user()
		self._unread.reset(peer_id)

	def _confirmed_preview(self, conversation_id: str) -> Optional[ConversationPreview]:
		preview = self.store.find(conversation_id)
		if preview is not None and preview.is_pending:
			raise ConversationNotFound("conversation_pending")
		return preview

	async def _call(self, method: str, path: str, *, route: str) -> None:
		try:
			if method == "POST":
				await self._api.post(path, {}, route=route)
			else:
				await self._api.delete(path, route=route)
		except ApiError as exc:
			raise ChatRequestFailed(exc.message, status_code=exc.status_code) from exc

	async def delete_conversation(self, conversation_id: str, peer_id: Optional[str] = None) -> None:
		user_id = self._require_user()
		preview = self._confirmed_preview(conversation_id)
		await self._call("DELETE", f"/message/conversations/{quote(conversation_id)}", route=CONVERSATION_ROUTE)
		if self._user_id != user_id:
			return
		removed = self.store.remove(conversation_id)
		peer = peer_id or (removed.peer_id if removed else None) or (preview.peer_id if preview else None)
		if peer and self._unread is not None:
			self._unread.discard(peer)
			self._live_bumps.pop(peer, None)

	async def toggle_pin(self, conversation_id: str, pinned: bool) -> Optional[ConversationPreview]:
		user_id = self._require_user()
		self._confirmed_preview(conversation_id)
		path = f"/message/conversations/{quote(conversation_id)}/pin"
		await self._call("POST" if pinned else "DELETE", path, route=PIN_ROUTE)
		if self._user_id != user_id:
			return None
		return self.store.patch(conversation_id, is_pinned=pinned)

	async def toggle_block(self, conversation_id: str, blocked: bool) -> Optional[ConversationPreview]:
		user_id = self._require_user()
		self._confirmed_preview(conversation_id)
		path = f"/message/conversations/{quote(conversation_id)}/block"
		await self._call("POST" if blocked else "DELETE", path, route=BLOCK_ROUTE)
		if self._user_id != user_id:
			return None
		if blocked:
			return self.store.patch(conversation_id, is_blocked=True)
		self.store.patch(conversation_id, is_blocked=False, is_blocked_by_other=False)
		# The local clear is provisional; the server decides whether the peer still blocks us.
		blocked_by_other = await self._fetch_blocked_by_other(conversation_id)
		if self._user_id != user_id:
			return None
		if blocked_by_other is None:
			return self.store.find(conversation_id)
		return self.store.patch(conversation_id, is_blocked_by_other=blocked_by_other)

	async def _fetch_blocked_by_other(self, conversation_id: str) -> Optional[bool]:
		try:
			previews = parse_conversations(await self._api.get(CONVERSATIONS_ROUTE, route=CONVERSATIONS_ROUTE))
		except (ApiError, ValueError):
			logger.info("could not refetch block state for conversation=%s", conversation_id)
			return None
		for preview in previews:
			if preview.conversation_id == conversation_id:
				return preview.is_blocked_by_other
		return None

	# ------------------------------------------------------------------ messages

	async def fetch_messages(self, peer_id: str) -> List[Message]:
		try:
			data = await self._api.get(f"/message/{quote(peer_id)}", route=THREAD_ROUTE)
			return parse_messages(data) if data is not None else []
		except (ApiError, ValueError):
			logger.info("message history unavailable for peer=%s", peer_id)
			return []

	async def open_thread(self, peer_id: str) -> ChatThread:
		"""Make `peer_id` the active conversation and load its history."""
		self._require_user()
		self.mark_active(peer_id)
		thread = ChatThread(peer_id)
		self._thread = thread
		history = await self.fetch_messages(peer_id)
		live = list(thread.messages)
		thread.replace([*history, *live])
		return thread

	def close_thread(self) -> None:
		"""Leave the conversation screen; in-flight sends still land in the store."""
		self._thread = None
		if self._user_id is not None:
			self.mark_active(None)

	async def send_message(
		self,
		peer_id: str,
		text: str,
		*,
		image: Optional[str] = None,
		reply_to: Optional[str] = None,
		peer_hint: Optional[PeerSummary] = None,
	) -> Message:
		user_id = self._require_user()
		body = (text or "").strip()
		if not body and not image:
			raise EmptyMessage()
		preview = self.store.find_by_peer(peer_id)
		if preview is not None and (preview.is_blocked or preview.is_blocked_by_other):
			raise ConversationBlocked()

		await self._emitter.message_sent(peer_id)
		request = SendMessageRequest(message=body, image=image, reply_to=reply_to)
		tokens = obs_logging.bind_context(peer_id=peer_id)
		try:
			data = await self._api.post(f"/message/send/{quote(peer_id)}", request.to_body(), route=SEND_ROUTE)
			message = SendMessageResponse.model_validate(data).new_message.to_model()
		except ApiError as exc:
			raise ChatRequestFailed(exc.message, status_code=exc.status_code) from exc
		except ValidationError as exc:
			raise ChatRequestFailed("invalid_response") from exc
		finally:
			obs_logging.reset_context(tokens)

		if self._user_id == user_id:
			self.apply_sent_message(message, peer_hint)
		else:
			logger.info("discarding sent message echo after identity change")
		return message

	async def typing_keystroke(self, peer_id: str) -> None:
		if self._user_id is None:
			return
		await self._emitter.keystroke(peer_id)

	async def send_typing(self, peer_id: str, is_typing: bool) -> None:
		if self._user_id is None or not peer_id:
			return
		try:
			await self._transport.emit(EVENT_TYPING, {"to": peer_id, "isTyping": is_typing})
		except Exception:
			logger.warning("typing emit failed", exc_info=True)
