from __future__ import annotations

import re

from prometheus_client import CONTENT_TYPE_LATEST, Counter, Histogram, generate_latest
from starlette.requests import Request


http_requests_total = Counter(
    "http_requests_total",
    "Total HTTP requests",
    ["method", "path", "status"],
)

http_request_duration_seconds = Histogram(
    "http_request_duration_seconds",
    "HTTP request duration in seconds",
    ["method", "path"],
)

work_item_transitions_total = Counter(
    "work_item_transitions_total",
    "Applied status transitions by work item kind",
    ["kind", "to_status"],
)

work_item_assignments_total = Counter(
    "work_item_assignments_total",
    "Applied assignment changes by work item kind and target",
    ["kind", "target"],
)

notification_dispatch_total = Counter(
    "notification_dispatch_total",
    "Notification dispatch attempts by outcome",
    ["outcome"],
)

time_session_events_total = Counter(
    "time_session_events_total",
    "Time session lifecycle events",
    ["event"],
)


_UUID_RE = re.compile(
    r"\b[0-9a-fA-F]{8}-[0-9a-fA-F]{4}-[1-5][0-9a-fA-F]{3}-[89abAB][0-9a-fA-F]{3}-[0-9a-fA-F]{12}\b"
)
_INT_RE = re.compile(r"/\d+\b")
_PATH_PARAM_RE = re.compile(r"\{[^{}]+\}")


def _sanitize_path(path: str) -> str:
    without_uuids = _UUID_RE.sub("{id}", path)
    return _INT_RE.sub("/{id}", without_uuids)


def resolve_http_path_label(request: Request) -> str:
    route = request.scope.get("route")
    if route is not None:
        route_path = getattr(route, "path_format", None) or getattr(route, "path", None)
        if isinstance(route_path, str) and route_path:
            return _PATH_PARAM_RE.sub("{id}", route_path)
    return _sanitize_path(request.url.path)


def observe_http_request(method: str, path: str, status: int, duration: float) -> None:
    http_requests_total.labels(method=method, path=path, status=str(status)).inc()
    http_request_duration_seconds.labels(method=method, path=path).observe(duration)


def observe_transition(kind: str, to_status: str) -> None:
    work_item_transitions_total.labels(kind=kind, to_status=to_status).inc()


def observe_assignment(kind: str, target: str) -> None:
    work_item_assignments_total.labels(kind=kind, target=target).inc()


def observe_notification(outcome: str) -> None:
    notification_dispatch_total.labels(outcome=outcome).inc()


def observe_time_session(event: str) -> None:
    time_session_events_total.labels(event=event).inc()


def generate_metrics_payload() -> bytes:
    return generate_latest()


def metrics_content_type() -> str:
    return CONTENT_TYPE_LATEST
