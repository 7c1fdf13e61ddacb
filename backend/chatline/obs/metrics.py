"""Central registry for Prometheus metrics used across the backend."""

from __future__ import annotations

from prometheus_client import Counter, Gauge, Histogram


REQUEST_COUNTER = Counter(
	"chatline_http_requests_total",
	"Total HTTP requests processed",
	["route", "method", "status"],
)

REQUEST_LATENCY = Histogram(
	"chatline_http_request_duration_seconds",
	"HTTP request latency in seconds",
	["route", "method"],
	buckets=(0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.0, 5.0),
)

SOCKET_CLIENTS = Gauge(
	"chatline_socketio_clients",
	"Active Socket.IO clients per namespace",
	["namespace"],
)

SOCKET_EVENTS = Counter(
	"chatline_socketio_events_total",
	"Socket.IO events handled or emitted per namespace",
	["namespace", "event", "direction"],
)

HANDSHAKE_REJECTS = Counter(
	"chatline_socketio_handshake_rejects_total",
	"Socket.IO handshakes refused",
	["reason"],
)

SESSIONS_SUPERSEDED = Counter(
	"chatline_sessions_superseded_total",
	"Session registry entries replaced by a newer connection",
)

CHAT_MESSAGES = Counter(
	"chatline_chat_messages_total",
	"Chat messages persisted and broadcast",
)

CHAT_DROPS = Counter(
	"chatline_chat_drops_total",
	"Inbound chat events dropped before any side effect",
	["reason"],
)

CHAT_READ_UPDATES = Counter(
	"chatline_chat_read_updates_total",
	"Mark-read operations applied",
)

CHAT_RECEIPTS_MARKED = Counter(
	"chatline_chat_receipts_marked_total",
	"Messages newly stamped with a read receipt",
)

NOTIFICATIONS = Counter(
	"chatline_notifications_total",
	"Notification records by type and outcome",
	["type", "result"],
)

NOTIFICATION_PUSH = Counter(
	"chatline_notification_push_total",
	"Live notification pushes by outcome",
	["outcome"],
)


def observe_request(route: str, method: str, status: int, elapsed_seconds: float) -> None:
	REQUEST_COUNTER.labels(route=route, method=method, status=str(status)).inc()
	REQUEST_LATENCY.labels(route=route, method=method).observe(elapsed_seconds)


def socket_connected(namespace: str) -> None:
	SOCKET_CLIENTS.labels(namespace=namespace).inc()


def socket_disconnected(namespace: str) -> None:
	SOCKET_CLIENTS.labels(namespace=namespace).dec()


def socket_event(namespace: str, event: str, direction: str = "inbound") -> None:
	SOCKET_EVENTS.labels(namespace=namespace, event=event, direction=direction).inc()


def handshake_rejected(reason: str) -> None:
	HANDSHAKE_REJECTS.labels(reason=reason).inc()


def session_superseded() -> None:
	SESSIONS_SUPERSEDED.inc()


def inc_chat_send() -> None:
	CHAT_MESSAGES.inc()


def inc_chat_drop(reason: str) -> None:
	CHAT_DROPS.labels(reason=reason).inc()


def inc_chat_read(marked: int) -> None:
	CHAT_READ_UPDATES.inc()
	if marked:
		CHAT_RECEIPTS_MARKED.inc(marked)


def notification_result(kind: str, result: str) -> None:
	NOTIFICATIONS.labels(type=kind, result=result).inc()


def notification_push(outcome: str) -> None:
	NOTIFICATION_PUSH.labels(outcome=outcome).inc()
