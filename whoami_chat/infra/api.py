"""JSON request/response client for the chat backend."""

from __future__ import annotations

import logging
import time
from typing import Any, Optional

import httpx

from whoami_chat.obs import metrics as obs_metrics
from whoami_chat.settings import settings

logger = logging.getLogger(__name__)

_DEFAULT_ERROR = "Request failed."


class ApiError(Exception):
	"""Raised when the backend rejects a request or cannot be reached."""

	def __init__(self, message: str = _DEFAULT_ERROR, *, status_code: int = 0, route: str | None = None) -> None:
		super().__init__(message)
		self.message = message
		self.status_code = status_code
		self.route = route


class ApiClient:
	"""Thin async wrapper over httpx with the backend's JSON conventions.

	`route` names passed to each call are path templates (for example
	``/message/{peerId}``) and only feed metrics and logs; `path` is the
	concrete URL path.
	"""

	def __init__(
		self,
		base_url: str | None = None,
		*,
		timeout: float | None = None,
		http: Optional[httpx.AsyncClient] = None,
	) -> None:
		self._owns_http = http is None
		self._http = http or httpx.AsyncClient(
			base_url=(base_url or settings.api_base_url).rstrip("/"),
			timeout=timeout if timeout is not None else settings.request_timeout_seconds,
			headers={"Content-Type": "application/json"},
		)

	async def get(self, path: str, *, route: str | None = None) -> Any:
		return await self._request("GET", path, route=route)

	async def post(self, path: str, body: Any = None, *, route: str | None = None) -> Any:
		return await self._request("POST", path, json=body if body is not None else {}, route=route)

	async def delete(self, path: str, *, route: str | None = None) -> Any:
		return await self._request("DELETE", path, route=route)

	async def aclose(self) -> None:
		if self._owns_http:
			await self._http.aclose()

	async def _request(self, method: str, path: str, *, route: str | None = None, **kwargs: Any) -> Any:
		route_name = route or path
		started = time.perf_counter()
		try:
			response = await self._http.request(method, path, **kwargs)
		except httpx.HTTPError as exc:
			obs_metrics.observe_request(route_name, method, 0, time.perf_counter() - started)
			logger.warning("api %s %s failed: %s", method, route_name, exc.__class__.__name__)
			raise ApiError(_DEFAULT_ERROR, route=route_name) from exc
		obs_metrics.observe_request(route_name, method, response.status_code, time.perf_counter() - started)

		payload: Any = None
		content_type = response.headers.get("content-type", "")
		if "application/json" in content_type:
			try:
				payload = response.json()
			except ValueError:
				payload = None

		if response.is_error:
			message = _DEFAULT_ERROR
			if isinstance(payload, dict) and isinstance(payload.get("message"), str):
				message = payload["message"]
			logger.info("api %s %s rejected status=%s", method, route_name, response.status_code)
			raise ApiError(message, status_code=response.status_code, route=route_name)
		return payload
