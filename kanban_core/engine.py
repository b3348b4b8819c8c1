"""
BoardEngine: one board session.

Owns the board's MoveTransaction, DependencyGraph and event bridge, and is
the single writer of position / column_id / card_ids / dependency edges.
Dependency mutations are refused while a move is in flight: a transaction
is a critical section over the board's card and column state.
"""
import logging
from typing import Callable, Dict, List, Optional

from .analytics import CriticalPath, GraphStats, calculate_graph_stats, find_critical_path
from .config import EngineConfig
from .dependencies import DependencyGraph, would_create_circular_dependency
from .errors import InvalidState
from .events import BoardEventBridge
from .schema import Board, Relationship, RelationshipType
from .swimlanes import GroupBy, Swimlane, generate_swimlanes
from .transaction import MoveResult, MoveTransaction

logger = logging.getLogger(__name__)


class BoardEngine:
    """Facade over the ordering and dependency-integrity engine for one board."""

    def __init__(
        self,
        board: Board,
        config: Optional[EngineConfig] = None,
        events: Optional[BoardEventBridge] = None,
    ):
        self.board = board
        self.config = config or EngineConfig()
        self.events = events or BoardEventBridge()
        self.transaction = MoveTransaction(
            board,
            events=self.events,
            gap=self.config.position_gap,
            floor=self.config.position_floor,
        )
        self.dependencies = DependencyGraph(
            board,
            events=self.events,
            max_depth=self.config.max_dependency_depth,
        )

    def subscribe(self, event_type: str, callback: Callable) -> None:
        self.events.subscribe(event_type, callback)

    # ── Moves ────────────────────────────────────────────────

    def begin_move(self, card_id: str) -> None:
        self.transaction.begin(card_id)

    def retarget_move(self, target_column_id: str) -> None:
        self.transaction.retarget(target_column_id)

    def commit_move(
        self,
        target_column_id: Optional[str] = None,
        insertion_index: Optional[int] = None,
    ) -> Optional[MoveResult]:
        return self.transaction.commit(target_column_id, insertion_index)

    def cancel_move(self) -> Optional[MoveResult]:
        return self.transaction.cancel()

    def move_card(
        self,
        card_id: str,
        target_column_id: str,
        insertion_index: Optional[int] = None,
    ) -> MoveResult:
        return self.transaction.move_card(card_id, target_column_id, insertion_index)

    # ── Dependencies ─────────────────────────────────────────

    def _require_idle(self, operation: str) -> None:
        if self.transaction.is_active:
            logger.warning(f"{operation} refused while {self.transaction.card_id} is moving")
            raise InvalidState(
                f"{operation} refused: move of {self.transaction.card_id} is in progress"
            )

    def would_create_circular_dependency(self, from_id: str, to_id: str) -> bool:
        return would_create_circular_dependency(
            self.board.cards.values(),
            from_id,
            to_id,
            max_depth=self.config.max_dependency_depth,
        )

    def add_dependency(
        self,
        from_id: str,
        to_id: str,
        rel_type: RelationshipType = RelationshipType.DEPENDS_ON,
        strength: Optional[float] = None,
        metadata: Optional[Dict] = None,
    ) -> Relationship:
        """Make to_id depend on from_id (raises CycleError on a cycle)."""
        self._require_idle("add_dependency")
        return self.dependencies.add_dependency(
            from_id, to_id, rel_type, strength=strength, metadata=metadata
        )

    def remove_dependency(
        self,
        from_id: str,
        to_id: str,
        rel_type: Optional[RelationshipType] = None,
    ) -> int:
        self._require_idle("remove_dependency")
        return self.dependencies.remove_dependency(from_id, to_id, rel_type)

    # ── Derived views ────────────────────────────────────────

    def graph_stats(self) -> GraphStats:
        return calculate_graph_stats(
            sorted(self.board.cards),
            self.board.relationships,
            hub_count=self.config.hub_count,
        )

    def critical_path(self) -> CriticalPath:
        return find_critical_path(
            self.board.cards.values(),
            self.board.relationships,
            k=self.config.critical_path_size,
            bottleneck_count=self.config.critical_path_bottlenecks,
            days_per_card=self.config.days_per_card,
        )

    def swimlanes(self, group_by: GroupBy, users: Optional[Dict[str, str]] = None) -> List[Swimlane]:
        return generate_swimlanes(self.board.cards.values(), group_by, users)

    def check_integrity(self) -> None:
        self.board.check_integrity()
