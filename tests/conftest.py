"""Shared fixtures for kanban-core tests."""

import sys
from pathlib import Path

import pytest

# Ensure the repository root is importable without installing
sys.path.insert(0, str(Path(__file__).parent.parent))

from kanban_core.schema import Board, WipLimitType


def make_board(*columns, **hard_limits) -> Board:
    """
    Board with the given column ids and cards.

    Each column is (column_id, [card ids]); cards get positions 1000, 2000, ...
    hard_limits maps column_id -> hard WIP limit.
    """
    board = Board(board_id="test")
    for column_id, card_ids in columns:
        limit = hard_limits.get(column_id)
        board.add_column(
            column_id,
            wip_limit=limit,
            wip_limit_type=WipLimitType.HARD if limit is not None else WipLimitType.SOFT,
        )
        for card_id in card_ids:
            board.add_card(card_id, column_id, title=card_id)
    return board


@pytest.fixture
def board():
    """todo: A B C, doing: D, done: (empty)"""
    return make_board(("todo", ["A", "B", "C"]), ("doing", ["D"]), ("done", []))


@pytest.fixture
def recorder():
    """Callable that records the keyword arguments of every call."""

    class Recorder:
        def __init__(self):
            self.calls = []

        def __call__(self, **kwargs):
            self.calls.append(kwargs)

    return Recorder()
