"""
Board files: read and write a board as a YAML document.

    board_id: sprint-12
    columns:
      - {id: todo, title: To Do}
      - {id: doing, title: Doing, wip_limit: 3, wip_limit_type: hard}
    cards:
      - {id: KAN-1, column_id: todo, position: 1000, labels: [backend]}
      - {id: KAN-2, column_id: todo, dependencies: [KAN-1]}
    relationships:
      - {source_id: KAN-1, target_id: KAN-2, type: blocks}

JSON is valid YAML, so exported JSON boards load the same way.
"""
import logging
from pathlib import Path
from typing import Union

import yaml

from .errors import BoardFileError
from .schema import Board

logger = logging.getLogger(__name__)

PathLike = Union[str, Path]


def load_board(path: PathLike, check: bool = True) -> Board:
    """
    Load a board from a YAML/JSON file.

    Args:
        path: board file
        check: run the full integrity check after loading

    Raises:
        BoardFileError: unreadable or malformed document
        IntegrityViolation: the board breaks an invariant (when check=True)
    """
    board_path = Path(path)
    try:
        with open(board_path, "r") as f:
            data = yaml.safe_load(f)
    except OSError as e:
        raise BoardFileError(f"Cannot read {board_path}: {e}") from e
    except yaml.YAMLError as e:
        raise BoardFileError(f"Cannot parse {board_path}: {e}") from e

    if not isinstance(data, dict):
        raise BoardFileError(f"{board_path} must contain a mapping, got {type(data).__name__}")

    try:
        board = Board.from_dict(data)
    except (KeyError, TypeError, ValueError) as e:
        raise BoardFileError(f"Malformed board in {board_path}: {e}") from e

    logger.info(
        f"Loaded board {board.board_id} from {board_path}: "
        f"{len(board.columns)} columns, {len(board.cards)} cards"
    )
    if check:
        board.check_integrity()
    return board


def dump_board(board: Board, path: PathLike) -> Path:
    """Write board to path as YAML. Returns the path written."""
    board_path = Path(path)
    with open(board_path, "w") as f:
        yaml.safe_dump(board.to_dict(), f, sort_keys=False, default_flow_style=False)
    logger.info(f"Wrote board {board.board_id} to {board_path}")
    return board_path
