"""Redis connection management.

Provides a stable proxy object so imports like `from whoami_chat.infra.redis import redis_client`
always reference the same proxy instance. The underlying client can be swapped at
runtime (e.g., to fakeredis in tests) without breaking previously imported references.

Redis is the durable per-user store for the client: unread counters, notification
preferences and the notification log all live here.
"""

from __future__ import annotations

import json
from typing import Any

import redis.asyncio as redis

from whoami_chat.settings import settings


class RedisProxy:
	"""Lightweight proxy that forwards attribute access to an underlying Redis client.

	This lets us swap the real client for a FakeRedis instance in tests while keeping
	the same imported symbol across the codebase.
	"""

	def __init__(self, client: redis.Redis):
		self._client: redis.Redis = client

	def set_client(self, client: redis.Redis) -> None:
		self._client = client

	async def get_json(self, key: str) -> Any:
		"""Return the decoded JSON value at `key`, or None when absent."""
		raw = await self._client.get(key)
		if not raw:
			return None
		return json.loads(raw)

	async def set_json(self, key: str, value: Any) -> None:
		await self._client.set(key, json.dumps(value, separators=(",", ":")))

	async def push_capped(self, key: str, value: str, limit: int) -> None:
		"""Prepend to a list and keep only the newest `limit` entries."""
		async with self._client.pipeline(transaction=True) as pipe:
			pipe.lpush(key, value)
			pipe.ltrim(key, 0, max(limit, 1) - 1)
			await pipe.execute()

	# Fallback: delegate everything else to the underlying client
	def __getattr__(self, item):
		return getattr(self._client, item)


# Create proxy with the real client by default
_real_client = redis.from_url(settings.redis_url, decode_responses=True)
redis_client: RedisProxy = RedisProxy(_real_client)


def set_redis_client(client: redis.Redis) -> None:
	redis_client.set_client(client)
