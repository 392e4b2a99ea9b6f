"""Wire shaping for ServiceEvent payloads.

Shape: {"type": <event type>, **event fields}. Enums are rendered as their
string values so the payload is plain MessagePack data.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from mafia.logic.events import ServiceEvent


def service_event_payload(event: ServiceEvent) -> dict[str, Any]:
    """Return the wire-format dict for a ServiceEvent."""
    return {"type": event.event.value, **event.data.model_dump(mode="json", exclude={"type"})}
