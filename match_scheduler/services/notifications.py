"""
Domain events emitted by the scheduling core.

Delivery (websockets, broadcast displays) belongs to whoever subscribes. A
listener that raises is logged and skipped; it never fails the operation that
published the event.
"""
import logging
import threading
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Callable, Dict, List, Optional

logger = logging.getLogger(__name__)

SCHEDULE_GENERATED = "schedule_generated"
ROUND_GENERATED = "round_generated"
BRACKET_BUILT = "bracket_built"
BRACKET_ADVANCED = "bracket_advanced"
BRACKET_FINALIZED = "bracket_finalized"
STANDINGS_REFRESHED = "standings_refreshed"


@dataclass
class ScheduleEvent:
    name: str
    stage_id: int
    match_ids: List[int] = field(default_factory=list)
    payload: Dict[str, Any] = field(default_factory=dict)
    emitted_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    def to_dict(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "stage_id": self.stage_id,
            "match_ids": list(self.match_ids),
            "payload": dict(self.payload),
            "emitted_at": self.emitted_at.isoformat(),
        }


Listener = Callable[[ScheduleEvent], None]

_lock = threading.Lock()
_listeners: List[Listener] = []


def subscribe(listener: Listener) -> Callable[[], None]:
    """Register a listener. Returns a callable that removes it again."""
    with _lock:
        _listeners.append(listener)

    def _unsubscribe() -> None:
        with _lock:
            if listener in _listeners:
                _listeners.remove(listener)

    return _unsubscribe


def publish(
    name: str,
    stage_id: int,
    match_ids: Optional[List[int]] = None,
    **payload: Any,
) -> ScheduleEvent:
    event = ScheduleEvent(name=name, stage_id=stage_id, match_ids=list(match_ids or []), payload=payload)
    with _lock:
        listeners = list(_listeners)
    for listener in listeners:
        try:
            listener(event)
        except Exception:
            logger.exception("Listener %r failed for event %s (stage %d)", listener, name, stage_id)
    return event
