"""
Event bridge: outbound signals from the engine to the host application.

The host (persistence, UI, notifications) subscribes to:
    committed            (card_id, target_column_id, new_position)
    wip_limit_exceeded   (column, card)
    cycle_rejected       (target_id, from_id)

Signals fire only after the engine's decision is final. A failing
subscriber is logged and never undoes or blocks the engine.
"""
import logging
from typing import Callable, Dict, List

logger = logging.getLogger(__name__)

COMMITTED = "committed"
WIP_LIMIT_EXCEEDED = "wip_limit_exceeded"
CYCLE_REJECTED = "cycle_rejected"

EVENT_TYPES = frozenset({COMMITTED, WIP_LIMIT_EXCEEDED, CYCLE_REJECTED})


class BoardEventBridge:
    """Routes engine outcomes to host callbacks."""

    def __init__(self):
        self.subscribers: Dict[str, List[Callable]] = {}  # event_type -> callbacks

    def subscribe(self, event_type: str, callback: Callable) -> None:
        """Register a callback for an event type."""
        if event_type not in EVENT_TYPES:
            raise ValueError(f"Unknown event type: {event_type}")
        self.subscribers.setdefault(event_type, []).append(callback)

    def unsubscribe(self, event_type: str, callback: Callable) -> None:
        callbacks = self.subscribers.get(event_type, [])
        if callback in callbacks:
            callbacks.remove(callback)

    def _emit(self, event_type: str, **kwargs) -> None:
        """Emit an event to all subscribers."""
        for callback in list(self.subscribers.get(event_type, [])):
            try:
                callback(**kwargs)
            except Exception as e:
                logger.error(f"Error in {event_type} callback {callback!r}: {e}")

    def on_committed(self, card_id: str, target_column_id: str, new_position: float) -> None:
        self._emit(
            COMMITTED,
            card_id=card_id,
            target_column_id=target_column_id,
            new_position=new_position,
        )

    def on_wip_limit_exceeded(self, column, card) -> None:
        self._emit(WIP_LIMIT_EXCEEDED, column=column, card=card)

    def on_cycle_rejected(self, target_id: str, from_id: str = "") -> None:
        self._emit(CYCLE_REJECTED, target_id=target_id, from_id=from_id)
