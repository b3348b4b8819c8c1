"""
Move transaction: the drag/drop commit protocol for one board.

    IDLE --begin--> ACTIVE --retarget*--> ACTIVE
    ACTIVE --commit--> COMMITTED | REJECTED --> IDLE
    ACTIVE --cancel--> CANCELLED --> IDLE

Only one move may be active per board. commit/cancel from IDLE are no-ops
so duplicate drag-end events are harmless. A commit either applies every
change (renumbered keys, card fields, both card_ids lists) or none of them.
"""
import logging
from dataclasses import dataclass
from enum import Enum
from typing import List, Optional

from .errors import InvalidState, WipLimitExceeded
from .positioning import DEFAULT_FLOOR, DEFAULT_GAP, Allocation, allocate
from .schema import Board, Card, Column

logger = logging.getLogger(__name__)


class TransactionState(Enum):
    IDLE = "idle"
    ACTIVE = "active"
    COMMITTED = "committed"
    REJECTED = "rejected"
    CANCELLED = "cancelled"


@dataclass
class MoveResult:
    """Outcome of a finished move."""
    status: TransactionState
    card_id: str
    source_column_id: str
    target_column_id: str
    position: Optional[float] = None      # new key when committed
    index: Optional[int] = None           # resolved index in the target column
    renumbered: bool = False              # target column keys were respaced
    soft_limit_exceeded: bool = False     # informational, never blocks
    reason: Optional[WipLimitExceeded] = None

    @property
    def committed(self) -> bool:
        return self.status == TransactionState.COMMITTED

    @property
    def rejected(self) -> bool:
        return self.status == TransactionState.REJECTED


class MoveTransaction:
    """
    Drag/drop state for a board session.

    Created with the board session, reset to IDLE after every commit or
    cancel, discarded with the session.
    """

    def __init__(
        self,
        board: Board,
        events=None,
        gap: float = DEFAULT_GAP,
        floor: float = DEFAULT_FLOOR,
    ):
        self.board = board
        self.events = events
        self.gap = gap
        self.floor = floor
        self._reset()

    def _reset(self) -> None:
        self.state = TransactionState.IDLE
        self.card_id: Optional[str] = None
        self.source_column_id: Optional[str] = None
        self.source_position: Optional[float] = None
        self.target_column_id: Optional[str] = None

    @property
    def is_active(self) -> bool:
        return self.state == TransactionState.ACTIVE

    # ── Gesture lifecycle ────────────────────────────────────

    def begin(self, card_id: str) -> None:
        """Start moving card_id. Raises InvalidState if a move is already active."""
        if self.is_active:
            raise InvalidState(
                f"Cannot begin moving {card_id}: move of {self.card_id} is still active"
            )
        card = self.board.get_card(card_id)
        self.state = TransactionState.ACTIVE
        self.card_id = card.card_id
        self.source_column_id = card.column_id
        self.source_position = card.position
        self.target_column_id = card.column_id
        logger.debug(f"Begin move of {card_id} from {card.column_id}")

    def retarget(self, target_column_id: str) -> None:
        """Update the tentative target column. Bookkeeping only."""
        if not self.is_active:
            raise InvalidState("retarget called with no active move")
        self.board.get_column(target_column_id)
        self.target_column_id = target_column_id

    def cancel(self) -> Optional[MoveResult]:
        """Abandon the active move without touching the board."""
        if not self.is_active:
            return None
        result = MoveResult(
            status=TransactionState.CANCELLED,
            card_id=self.card_id,
            source_column_id=self.source_column_id,
            target_column_id=self.target_column_id,
            position=self.source_position,
        )
        logger.debug(f"Cancelled move of {self.card_id}")
        self._reset()
        return result

    def commit(
        self,
        target_column_id: Optional[str] = None,
        insertion_index: Optional[int] = None,
    ) -> Optional[MoveResult]:
        """
        Finish the active move.

        Args:
            target_column_id: drop column (defaults to the last retarget)
            insertion_index: index among the target's other cards (defaults to tail)

        Returns:
            MoveResult (COMMITTED or REJECTED), or None when no move is active.

        Raises:
            IntegrityViolation: an invariant was already broken, or the move
                would break one; nothing is applied
        """
        if not self.is_active:
            logger.debug("commit ignored: no active move")
            return None
        try:
            return self._commit(target_column_id or self.target_column_id, insertion_index)
        finally:
            self._reset()

    # ── Commit internals ─────────────────────────────────────

    def _commit(self, target_column_id: str, insertion_index: Optional[int]) -> MoveResult:
        card = self.board.get_card(self.card_id)
        source = self.board.get_column(card.column_id)
        target = self.board.get_column(target_column_id)

        self.board.check_integrity({source.column_id, target.column_id})

        others = [c for c in self.board.cards_in_column(target.column_id) if c.card_id != card.card_id]
        index = len(others) if insertion_index is None else insertion_index
        allocation = allocate(others, index, gap=self.gap, floor=self.floor)

        cross_column = target.column_id != source.column_id
        if cross_column and target.is_hard_limited and target.card_count() >= target.wip_limit:
            reason = WipLimitExceeded(
                target.column_id, card.card_id, target.wip_limit, target.card_count()
            )
            logger.warning(f"Move rejected: {reason}")
            if self.events is not None:
                self.events.on_wip_limit_exceeded(target, card)
            return MoveResult(
                status=TransactionState.REJECTED,
                card_id=card.card_id,
                source_column_id=source.column_id,
                target_column_id=target.column_id,
                index=allocation.index,
                reason=reason,
            )

        self._apply(card, source, target, others, allocation)

        soft_exceeded = cross_column and not target.is_hard_limited and target.is_wip_limit_exceeded()
        logger.info(
            f"Moved {card.card_id}: {source.column_id} -> {target.column_id} "
            f"@{allocation.index} (position {allocation.position})"
        )
        if self.events is not None:
            self.events.on_committed(card.card_id, target.column_id, allocation.position)

        return MoveResult(
            status=TransactionState.COMMITTED,
            card_id=card.card_id,
            source_column_id=source.column_id,
            target_column_id=target.column_id,
            position=allocation.position,
            index=allocation.index,
            renumbered=allocation.did_renumber,
            soft_limit_exceeded=soft_exceeded,
        )

    def _apply(
        self,
        card: Card,
        source: Column,
        target: Column,
        others: List[Card],
        allocation: Allocation,
    ) -> None:
        """Write the move; on any failure restore the savepoint and re-raise."""
        saved_positions = [c.position for c in others]
        saved_card = (card.column_id, card.position)
        saved_source_ids = list(source.card_ids)
        saved_target_ids = list(target.card_ids)

        try:
            if allocation.renumbered is not None:
                for other, position in zip(others, allocation.renumbered):
                    other.position = position
            source.card_ids.remove(card.card_id)
            card.column_id = target.column_id
            card.position = allocation.position
            target.card_ids.insert(allocation.index, card.card_id)
            self.board.check_integrity({source.column_id, target.column_id})
        except Exception:
            for other, position in zip(others, saved_positions):
                other.position = position
            card.column_id, card.position = saved_card
            source.card_ids[:] = saved_source_ids
            target.card_ids[:] = saved_target_ids
            logger.error(f"Move of {card.card_id} failed; board restored")
            raise

    # ── Convenience ──────────────────────────────────────────

    def move_card(
        self,
        card_id: str,
        target_column_id: str,
        insertion_index: Optional[int] = None,
    ) -> MoveResult:
        """begin + commit in one call."""
        self.begin(card_id)
        return self.commit(target_column_id, insertion_index)
