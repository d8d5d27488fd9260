"""Central registry for Prometheus metrics used across the client."""

from __future__ import annotations

from prometheus_client import Counter, Gauge, Histogram, Summary


API_REQUESTS = Counter(
	"whoami_api_requests_total",
	"Total API requests issued",
	["route", "method", "status"],
)

API_LATENCY = Histogram(
	"whoami_api_request_duration_seconds",
	"API request latency in seconds",
	["route", "method"],
	buckets=(0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.0, 5.0),
)

SOCKET_CONNECTED = Gauge(
	"whoami_socket_connected",
	"Whether the event channel is connected (1=up,0=down)",
)

SOCKET_EVENTS = Counter(
	"whoami_socket_events_total",
	"Inbound event-channel events received",
	["event"],
)

SOCKET_EVENTS_DROPPED = Counter(
	"whoami_socket_events_dropped_total",
	"Inbound events dropped before reconciliation",
	["event", "reason"],
)

SOCKET_EMITS = Counter(
	"whoami_socket_emits_total",
	"Outbound event-channel emits",
	["event"],
)

SNAPSHOT_LOADS = Counter(
	"whoami_snapshot_loads_total",
	"Conversation snapshot fetches",
	["result"],
)

DUPLICATE_MESSAGES = Counter(
	"whoami_chat_duplicate_messages_total",
	"Messages absorbed by id-based dedupe",
)

UNREAD_INCREMENTS = Counter(
	"whoami_unread_increments_total",
	"Unread counter increments from live messages",
)

UNREAD_PERSIST_FAILURES = Counter(
	"whoami_unread_persist_failures_total",
	"Unread counter writes that failed",
)

NOTIFICATIONS = Counter(
	"whoami_notifications_total",
	"Notifications requested from the dispatcher",
	["kind", "result"],
)

MATCH_POOL_SIZE = Summary(
	"whoami_match_pool_size",
	"Candidates in a matchmaking pool at search start",
)

MATCH_REVEALS = Counter(
	"whoami_match_reveals_total",
	"Matchmaking candidates revealed",
)

MATCH_SEARCHES = Counter(
	"whoami_match_searches_total",
	"Matchmaking searches by outcome",
	["outcome"],
)


def observe_request(route: str, method: str, status: int, elapsed_seconds: float) -> None:
	API_REQUESTS.labels(route=route, method=method, status=str(status)).inc()
	API_LATENCY.labels(route=route, method=method).observe(elapsed_seconds)


def socket_connected() -> None:
	SOCKET_CONNECTED.set(1)


def socket_disconnected() -> None:
	SOCKET_CONNECTED.set(0)


def socket_event(event: str) -> None:
	SOCKET_EVENTS.labels(event=event).inc()


def socket_event_dropped(event: str, reason: str) -> None:
	SOCKET_EVENTS_DROPPED.labels(event=event, reason=reason).inc()


def socket_emit(event: str) -> None:
	SOCKET_EMITS.labels(event=event).inc()


def inc_snapshot(result: str) -> None:
	SNAPSHOT_LOADS.labels(result=result).inc()


def inc_duplicate_message() -> None:
	DUPLICATE_MESSAGES.inc()


def inc_unread_increment() -> None:
	UNREAD_INCREMENTS.inc()


def inc_unread_persist_failure() -> None:
	UNREAD_PERSIST_FAILURES.inc()


def inc_notification(kind: str, result: str) -> None:
	NOTIFICATIONS.labels(kind=kind, result=result).inc()


def observe_match_pool(size: int) -> None:
	MATCH_POOL_SIZE.observe(size)


def inc_match_reveal() -> None:
	MATCH_REVEALS.inc()


def inc_match_search(outcome: str) -> None:
	MATCH_SEARCHES.labels(outcome=outcome).inc()
