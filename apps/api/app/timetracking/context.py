"""Location and environment snapshots attached to a time session at start."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Protocol


logger = logging.getLogger("app.timetracking.context")


@dataclass(frozen=True)
class Location:
    lat: float
    lng: float


@dataclass(frozen=True)
class SessionContext:
    latitude: float | None = None
    longitude: float | None = None
    environment: str | None = None

    @property
    def is_empty(self) -> bool:
        return self.latitude is None and self.longitude is None and self.environment is None


class ContextSupplier(Protocol):
    def current_location(self) -> Location | None: ...

    def environment_snapshot(self, lat: float | None, lng: float | None) -> str | None: ...


def collect_context(supplier: ContextSupplier | None) -> SessionContext:
    """Ask ``supplier`` for a snapshot.

    Any part the supplier cannot provide is left empty; supplier errors are
    logged and never reach the caller.
    """
    if supplier is None:
        return SessionContext()

    location: Location | None = None
    try:
        location = supplier.current_location()
    except Exception as exc:
        logger.warning("time_session.location_unavailable", extra={"error": str(exc)})

    lat = location.lat if location is not None else None
    lng = location.lng if location is not None else None

    environment: str | None = None
    try:
        environment = supplier.environment_snapshot(lat, lng)
    except Exception as exc:
        logger.warning("time_session.environment_unavailable", extra={"error": str(exc)})

    return SessionContext(latitude=lat, longitude=lng, environment=environment)
