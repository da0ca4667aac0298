"""Central registry for Prometheus metrics used across the backend."""

from __future__ import annotations

from prometheus_client import Counter, Histogram


REQUEST_COUNTER = Counter(
	"textly_http_requests_total",
	"Total HTTP requests processed",
	["route", "method", "status"],
)

REQUEST_LATENCY = Histogram(
	"textly_http_request_duration_seconds",
	"HTTP request latency in seconds",
	["route", "method"],
	buckets=(0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.0, 5.0),
)

SECURITY_EVENTS = Counter(
	"textly_security_events_total",
	"Security-relevant events emitted by API routes",
	["event"],
)

RATE_LIMIT_REJECTS = Counter(
	"textly_rate_limit_rejects_total",
	"Requests rejected by the sliding-window limiter",
	["namespace"],
)

CHANGEFEED_DELIVERIES = Counter(
	"textly_changefeed_deliveries_total",
	"Change events delivered to subscription handlers",
	["topic", "event", "result"],
)

CACHE_LOOKUPS = Counter(
	"textly_local_cache_lookups_total",
	"Local cache reads by outcome",
	["kind", "result"],
)

METADATA_LOOKUPS = Counter(
	"textly_metadata_lookups_total",
	"Profile metadata batch lookups by outcome",
	["result"],
)

ASSIST_REQUESTS = Counter(
	"textly_assist_requests_total",
	"AI text transform requests by action and outcome",
	["action", "result"],
)

MESSAGES_SENT = Counter(
	"textly_messages_sent_total",
	"Messages inserted through the message store",
)

ROOMS_CREATED = Counter(
	"textly_rooms_created_total",
	"Rooms created through the room or friendship stores",
	["origin"],
)


def observe_request(route: str, method: str, status: int, elapsed_seconds: float) -> None:
	REQUEST_COUNTER.labels(route=route, method=method, status=str(status)).inc()
	REQUEST_LATENCY.labels(route=route, method=method).observe(elapsed_seconds)


def inc_security_event(event: str) -> None:
	SECURITY_EVENTS.labels(event=event).inc()


def inc_rate_limit_reject(namespace: str) -> None:
	RATE_LIMIT_REJECTS.labels(namespace=namespace).inc()


def inc_changefeed_delivery(topic: str, event: str, result: str) -> None:
	CHANGEFEED_DELIVERIES.labels(topic=topic, event=event, result=result).inc()


def inc_cache_lookup(kind: str, result: str) -> None:
	CACHE_LOOKUPS.labels(kind=kind, result=result).inc()


def inc_metadata_lookup(result: str) -> None:
	METADATA_LOOKUPS.labels(result=result).inc()


def inc_assist_request(action: str, result: str) -> None:
	ASSIST_REQUESTS.labels(action=action, result=result).inc()


def inc_message_sent() -> None:
	MESSAGES_SENT.inc()


def inc_room_created(origin: str) -> None:
	ROOMS_CREATED.labels(origin=origin).inc()
