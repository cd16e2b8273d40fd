from __future__ import annotations

import uuid
from dataclasses import dataclass


def coerce_user_uuid(value: str) -> uuid.UUID:
    try:
        return uuid.UUID(value)
    except ValueError:
        return uuid.uuid5(uuid.NAMESPACE_URL, f"worktrack-actor:{value}")


@dataclass(frozen=True)
class ActorUser:
    user_id: uuid.UUID
    organization_id: uuid.UUID | None
    roles: frozenset[str] = frozenset()
    correlation_id: str | None = None
