"""In-memory conversation preview collection.

The store is synchronous: every method is a plain state transition so that the
session's reconciliation loop fully determines interleavings. It never talks to
the network; callers confirm mutations with the backend first.
"""

from __future__ import annotations

from typing import Iterable, Iterator, List, Optional, Sequence, Tuple

from .models import (
	ConversationPreview,
	Message,
	PeerSummary,
	PendingId,
	sort_timestamp,
)


def _sort_key(preview: ConversationPreview) -> Tuple[int, float]:
	return (0 if preview.is_pinned else 1, -sort_timestamp(preview).timestamp())


def order_previews(previews: Iterable[ConversationPreview]) -> List[ConversationPreview]:
	"""Pinned first, then most recent activity; ties keep their incoming order."""
	return sorted(previews, key=_sort_key)


def is_ordered(previews: Sequence[ConversationPreview]) -> bool:
	for before, after in zip(previews, previews[1:]):
		if before.is_pinned < after.is_pinned:
			return False
		if before.is_pinned == after.is_pinned and sort_timestamp(before) < sort_timestamp(after):
			return False
	return True


def _keep_newer_local(incoming: ConversationPreview, local: ConversationPreview) -> ConversationPreview:
	"""Last write wins by message timestamp when a snapshot predates a live event."""
	local_message = local.last_message
	peer = incoming.peer or local.peer
	if local_message is None:
		return incoming if peer is incoming.peer else incoming.copy(peer=peer)
	remote_message = incoming.last_message
	if remote_message is not None and remote_message.created_at >= local_message.created_at:
		return incoming if peer is incoming.peer else incoming.copy(peer=peer)
	return incoming.copy(
		peer=peer,
		last_message=local_message,
		updated_at=local_message.created_at,
		streak_count=local.streak_count if local.streak_count is not None else incoming.streak_count,
	)


class ConversationStore:
	"""Ordered collection of previews holding at most one preview per peer."""

	def __init__(self) -> None:
		self._items: List[ConversationPreview] = []
		self._revision = 0
		self._touched: dict[str, int] = {}

	def __len__(self) -> int:
		return len(self._items)

	def __iter__(self) -> Iterator[ConversationPreview]:
		return iter(self.ordered())

	@property
	def revision(self) -> int:
		return self._revision

	def _bump(self) -> int:
		self._revision += 1
		return self._revision

	def _index_by_peer(self, peer_id: Optional[str]) -> Optional[int]:
		if not peer_id:
			return None
		for index, preview in enumerate(self._items):
			if preview.peer_id == peer_id:
				return index
		return None

	def _index_by_id(self, conversation_id: str) -> Optional[int]:
		for index, preview in enumerate(self._items):
			if preview.conversation_id == conversation_id:
				return index
		return None

	def find(self, conversation_id: str) -> Optional[ConversationPreview]:
		index = self._index_by_id(conversation_id)
		return self._items[index] if index is not None else None

	def find_by_peer(self, peer_id: Optional[str]) -> Optional[ConversationPreview]:
		index = self._index_by_peer(peer_id)
		return self._items[index] if index is not None else None

	def ordered(self) -> List[ConversationPreview]:
		return order_previews(self._items)

	def search(self, query: str) -> List[ConversationPreview]:
		needle = query.strip().lower()
		if not needle:
			return self.ordered()

		def _matches(preview: ConversationPreview) -> bool:
			name = (preview.peer.display_name or "") if preview.peer else ""
			text = (preview.last_message.body or "") if preview.last_message else ""
			return needle in name.lower() or needle in text.lower()

		return order_previews(p for p in self._items if _matches(p))

	def replace_from_snapshot(
		self,
		previews: Iterable[ConversationPreview],
		*,
		since_revision: Optional[int] = None,
	) -> None:
		"""Replace the collection with a server snapshot.

		Pending previews created or updated after `since_revision` (the store
		revision when the snapshot request was issued) survive when the snapshot
		does not mention their peer yet. Pending ids for peers the snapshot does
		mention are dropped in favour of the server's confirmed id.
		"""
		previous_by_peer = {p.peer_id: p for p in self._items if p.peer_id}
		seen_peers: set[str] = set()
		merged: List[ConversationPreview] = []
		for incoming in previews:
			peer_id = incoming.peer_id
			if peer_id:
				if peer_id in seen_peers:
					continue
				seen_peers.add(peer_id)
				local = previous_by_peer.get(peer_id)
				if local is not None:
					incoming = _keep_newer_local(incoming, local)
			merged.append(incoming)

		survivors: List[ConversationPreview] = []
		if since_revision is not None:
			survivors = [
				p
				for p in self._items
				if p.peer_id
				and p.peer_id not in seen_peers
				and self._touched.get(p.peer_id, 0) > since_revision
			]
		self._items = survivors + merged
		live_peers = {p.peer_id for p in self._items if p.peer_id}
		self._touched = {peer: rev for peer, rev in self._touched.items() if peer in live_peers}
		self._bump()

	def upsert_from_message(
		self,
		message: Message,
		peer_id: str,
		peer_hint: Optional[PeerSummary] = None,
	) -> Tuple[ConversationPreview, bool]:
		"""Record `message` as the latest activity with `peer_id`.

		Returns the resulting preview and whether it was newly created. A message
		older than the preview's current last message does not regress it.
		"""
		index = self._index_by_peer(peer_id)
		if index is None:
			preview = ConversationPreview(
				id=PendingId(message.id),
				peer_id=peer_id,
				peer=peer_hint,
				last_message=message,
				updated_at=message.created_at,
				streak_count=message.streak_count,
			)
			self._items.insert(0, preview)
			self._touched[peer_id] = self._bump()
			return preview, True

		existing = self._items[index]
		current = existing.last_message
		if current is not None and message.created_at < current.created_at:
			if existing.peer is None and peer_hint is not None:
				existing = existing.copy(peer=peer_hint)
				self._items[index] = existing
				self._touched[peer_id] = self._bump()
			return existing, False

		preview = existing.copy(
			peer=existing.peer or peer_hint,
			last_message=message,
			updated_at=message.created_at,
			streak_count=message.streak_count if message.streak_count is not None else existing.streak_count,
		)
		del self._items[index]
		self._items.insert(0, preview)
		self._touched[peer_id] = self._bump()
		return preview, False

	def patch(self, conversation_id: str, **changes) -> Optional[ConversationPreview]:
		index = self._index_by_id(conversation_id)
		if index is None:
			return None
		preview = self._items[index].copy(**changes)
		self._items[index] = preview
		self._bump()
		return preview

	def remove(self, conversation_id: str) -> Optional[ConversationPreview]:
		index = self._index_by_id(conversation_id)
		if index is None:
			return None
		preview = self._items.pop(index)
		if preview.peer_id:
			self._touched.pop(preview.peer_id, None)
		self._bump()
		return preview

	def clear(self) -> None:
		self._items = []
		self._touched = {}
		self._bump()
