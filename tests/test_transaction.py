"""
Tests for the move transaction.

Covers:
    - begin / retarget / cancel / commit state machine
    - cross-column and same-column moves, index resolution
    - hard WIP admission (reject + signal + no mutation), soft WIP (informational)
    - atomic apply: renumbering, rollback on failure
    - pre-commit integrity checks
"""
import pytest

from kanban_core.errors import IntegrityViolation, InvalidState, NotFoundError, WipLimitExceeded
from kanban_core.events import COMMITTED, WIP_LIMIT_EXCEEDED, BoardEventBridge
from kanban_core.schema import Board
from kanban_core.transaction import MoveTransaction, TransactionState

from conftest import make_board


class ExplodingList(list):
    """card_ids list whose insert fails, to force a rollback mid-apply."""

    def insert(self, index, value):
        raise RuntimeError("storage failure")


# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━
# State machine
# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━


class TestLifecycle:

    def setup_method(self):
        self.board = make_board(("todo", ["A", "B", "C"]), ("doing", ["D"]), ("done", []))
        self.tx = MoveTransaction(self.board)

    def test_starts_idle(self):
        assert self.tx.state == TransactionState.IDLE
        assert not self.tx.is_active

    def test_begin_captures_source(self):
        self.tx.begin("B")
        assert self.tx.is_active
        assert self.tx.source_column_id == "todo"
        assert self.tx.source_position == 2000.0
        assert self.tx.target_column_id == "todo"

    def test_begin_twice_is_invalid(self):
        self.tx.begin("A")
        with pytest.raises(InvalidState):
            self.tx.begin("B")
        assert self.tx.card_id == "A"

    def test_begin_unknown_card(self):
        with pytest.raises(NotFoundError):
            self.tx.begin("nope")
        assert not self.tx.is_active

    def test_retarget_requires_active_move(self):
        with pytest.raises(InvalidState):
            self.tx.retarget("doing")

    def test_retarget_unknown_column(self):
        self.tx.begin("A")
        with pytest.raises(NotFoundError):
            self.tx.retarget("archive")
        assert self.tx.target_column_id == "todo"

    def test_cancel_after_retargets_leaves_board_unchanged(self):
        before = self.board.snapshot()
        self.tx.begin("A")
        self.tx.retarget("doing")
        self.tx.retarget("done")
        self.tx.retarget("doing")
        result = self.tx.cancel()

        assert result.status == TransactionState.CANCELLED
        assert result.target_column_id == "doing"
        assert self.board.snapshot() == before
        assert self.tx.state == TransactionState.IDLE

    def test_cancel_and_commit_from_idle_are_noops(self):
        before = self.board.snapshot()
        assert self.tx.cancel() is None
        assert self.tx.commit("doing", 0) is None
        assert self.board.snapshot() == before

    def test_duplicate_commit_is_ignored(self):
        self.tx.begin("A")
        assert self.tx.commit("doing").committed
        assert self.tx.commit("doing") is None
        assert self.board.columns["doing"].card_ids == ["D", "A"]


# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━
# Commit
# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━


class TestCommit:

    def setup_method(self):
        self.board = make_board(("todo", ["A", "B", "C"]), ("doing", ["D"]), ("done", []))
        self.events = BoardEventBridge()
        self.tx = MoveTransaction(self.board, events=self.events)

    def test_cross_column_move_to_tail(self):
        self.tx.begin("A")
        result = self.tx.commit("doing")

        assert result.committed
        assert result.source_column_id == "todo"
        assert result.position == 2000.0
        assert result.index == 1
        card = self.board.cards["A"]
        assert card.column_id == "doing"
        assert card.position == 2000.0
        assert self.board.columns["todo"].card_ids == ["B", "C"]
        assert self.board.columns["doing"].card_ids == ["D", "A"]
        self.board.check_integrity()

    def test_commit_uses_last_retarget(self):
        self.tx.begin("A")
        self.tx.retarget("done")
        result = self.tx.commit()
        assert result.target_column_id == "done"
        assert self.board.columns["done"].card_ids == ["A"]
        assert self.board.cards["A"].position == 1000.0

    def test_same_column_reorder(self):
        self.tx.begin("C")
        result = self.tx.commit("todo", 0)

        assert result.committed
        assert self.board.columns["todo"].card_ids == ["C", "A", "B"]
        assert self.board.cards["C"].position == 500.0
        self.board.check_integrity()

    def test_move_into_middle(self):
        self.tx.begin("D")
        self.tx.commit("todo", 1)
        assert self.board.columns["todo"].card_ids == ["A", "D", "B", "C"]
        assert self.board.cards["D"].position == 1500.0

    def test_commit_applies_renumbering(self):
        self.board.cards["B"].position = 1001.0
        self.board.cards["C"].position = 1002.0

        self.tx.begin("D")
        result = self.tx.commit("todo", 1)

        assert result.renumbered
        assert [self.board.cards[c].position for c in ("A", "B", "C")] == [1000.0, 2000.0, 3000.0]
        assert self.board.cards["D"].position == 1500.0
        self.board.check_integrity()

    def test_committed_signal(self, recorder):
        self.events.subscribe(COMMITTED, recorder)
        self.tx.begin("A")
        self.tx.commit("done")
        assert recorder.calls == [
            {"card_id": "A", "target_column_id": "done", "new_position": 1000.0}
        ]

    def test_failing_subscriber_does_not_undo_commit(self):
        def broken(**kwargs):
            raise RuntimeError("host crashed")

        self.events.subscribe(COMMITTED, broken)
        self.tx.begin("A")
        assert self.tx.commit("done").committed
        assert self.board.cards["A"].column_id == "done"

    def test_unknown_target_column(self):
        before = self.board.snapshot()
        self.tx.begin("A")
        with pytest.raises(NotFoundError):
            self.tx.commit("archive")
        assert self.board.snapshot() == before
        assert not self.tx.is_active

    def test_broken_board_is_refused(self):
        self.board.cards["B"].position = 500.0      # out of order with A
        before = self.board.snapshot()

        self.tx.begin("D")
        with pytest.raises(IntegrityViolation) as exc:
            self.tx.commit("todo", 0)
        assert any("todo" in p for p in exc.value.problems)
        assert self.board.snapshot() == before
        assert not self.tx.is_active


# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━
# WIP limits
# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━


class TestWipLimits:

    def test_hard_limit_rejects_without_mutation(self, recorder):
        board = make_board(("todo", ["A"]), ("doing", ["X", "Y", "Z"]), doing=3)
        events = BoardEventBridge()
        events.subscribe(WIP_LIMIT_EXCEEDED, recorder)
        committed = []
        events.subscribe(COMMITTED, lambda **kw: committed.append(kw))
        tx = MoveTransaction(board, events=events)
        before = board.snapshot()

        tx.begin("A")
        result = tx.commit("doing", 0)

        assert result.status == TransactionState.REJECTED
        assert result.rejected
        assert isinstance(result.reason, WipLimitExceeded)
        assert result.reason.wip_limit == 3
        assert board.snapshot() == before
        assert not tx.is_active
        assert len(recorder.calls) == 1
        assert recorder.calls[0]["column"].column_id == "doing"
        assert recorder.calls[0]["card"].card_id == "A"
        assert committed == []

    def test_hard_limit_allows_reorder_inside_full_column(self):
        board = make_board(("doing", ["X", "Y", "Z"]), doing=3)
        tx = MoveTransaction(board)
        tx.begin("Z")
        result = tx.commit("doing", 0)
        assert result.committed
        assert board.columns["doing"].card_ids == ["Z", "X", "Y"]

    def test_hard_limit_admits_below_limit(self):
        board = make_board(("todo", ["A"]), ("doing", ["X", "Y"]), doing=3)
        tx = MoveTransaction(board)
        tx.begin("A")
        assert tx.commit("doing").committed
        assert board.columns["doing"].card_count() == 3

    def test_soft_limit_never_blocks(self, recorder):
        board = Board()
        board.add_column("todo")
        board.add_column("doing", wip_limit=3)
        board.add_card("A", "todo")
        for card_id in ("X", "Y", "Z"):
            board.add_card(card_id, "doing")
        events = BoardEventBridge()
        events.subscribe(WIP_LIMIT_EXCEEDED, recorder)
        tx = MoveTransaction(board, events=events)

        tx.begin("A")
        result = tx.commit("doing")

        assert result.committed
        assert result.soft_limit_exceeded
        assert board.columns["doing"].card_count() == 4
        assert recorder.calls == []


# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━
# Atomicity
# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━


class TestRollback:

    def test_failed_insert_restores_everything(self, recorder):
        board = make_board(("todo", ["A"]), ("done", ["E", "F"]))
        board.cards["F"].position = 1001.0          # forces a renumber first
        board.columns["done"].card_ids = ExplodingList(board.columns["done"].card_ids)
        events = BoardEventBridge()
        events.subscribe(COMMITTED, recorder)
        tx = MoveTransaction(board, events=events)
        before = board.snapshot()

        tx.begin("A")
        with pytest.raises(RuntimeError):
            tx.commit("done", 1)

        assert board.snapshot() == before
        assert board.cards["F"].position == 1001.0
        assert board.columns["todo"].card_ids == ["A"]
        assert recorder.calls == []
        assert not tx.is_active

    def test_board_usable_after_rollback(self):
        board = make_board(("todo", ["A"]), ("done", ["E"]))
        done = board.columns["done"]
        done.card_ids = ExplodingList(done.card_ids)
        tx = MoveTransaction(board)

        tx.begin("A")
        with pytest.raises(RuntimeError):
            tx.commit("done")

        done.card_ids = list(done.card_ids)
        tx.begin("A")
        assert tx.commit("done").committed
        assert done.card_ids == ["E", "A"]


def test_move_card_convenience(board):
    tx = MoveTransaction(board)
    result = tx.move_card("B", "done")
    assert result.committed
    assert board.cards["B"].column_id == "done"
    assert not tx.is_active
