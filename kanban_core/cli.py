"""
kanban-core command line.

    kanban-core check board.yaml
    kanban-core stats board.yaml
    kanban-core lanes board.yaml --group-by label
    kanban-core move board.yaml KAN-7 doing --index 0 --write
"""
import argparse
import logging
import sys
from typing import List, Optional

import yaml

from .config import EngineConfig
from .engine import BoardEngine
from .errors import KanbanCoreError
from .loader import dump_board, load_board
from .swimlanes import GroupBy

logger = logging.getLogger(__name__)

EXIT_OK = 0
EXIT_ERROR = 1
EXIT_REJECTED = 2


def _setup_logging(level: str) -> None:
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format="%(asctime)s [kanban-core] %(levelname)s: %(message)s",
        handlers=[logging.StreamHandler(sys.stdout)],
    )


def _print_yaml(data) -> None:
    print(yaml.safe_dump(data, sort_keys=False, default_flow_style=False).rstrip())


# ── Subcommands ──────────────────────────────────────────────

def cmd_check(args, cfg: EngineConfig) -> int:
    board = load_board(args.board, check=False)
    problems = board.find_integrity_problems()
    if not problems:
        print(f"{board.board_id}: OK ({len(board.cards)} cards)")
        return EXIT_OK
    print(f"{board.board_id}: {len(problems)} problem(s)")
    for problem in problems:
        print(f"  - {problem}")
    return EXIT_ERROR


def cmd_stats(args, cfg: EngineConfig) -> int:
    engine = BoardEngine(load_board(args.board), config=cfg)
    _print_yaml({
        "graph": engine.graph_stats().to_dict(),
        "critical_path": engine.critical_path().to_dict(),
    })
    return EXIT_OK


def cmd_lanes(args, cfg: EngineConfig) -> int:
    engine = BoardEngine(load_board(args.board), config=cfg)
    lanes = engine.swimlanes(GroupBy.from_str(args.group_by))
    if not lanes:
        print("No lanes")
    for lane in lanes:
        print(f"{lane.title} [{lane.lane_id}]: {', '.join(lane.card_ids)}")
    return EXIT_OK


def cmd_move(args, cfg: EngineConfig) -> int:
    board = load_board(args.board)
    engine = BoardEngine(board, config=cfg)
    result = engine.move_card(args.card, args.column, args.index)

    if result.rejected:
        print(f"Rejected: {result.reason}")
        return EXIT_REJECTED

    print(
        f"Moved {result.card_id}: {result.source_column_id} -> {result.target_column_id} "
        f"at index {result.index} (position {result.position})"
    )
    if result.renumbered:
        print(f"  {result.target_column_id} was renumbered")
    if result.soft_limit_exceeded:
        print(f"  {result.target_column_id} is over its WIP limit")
    if args.write:
        dump_board(board, args.board)
        print(f"Saved {args.board}")
    return EXIT_OK


# ── Entry point ──────────────────────────────────────────────

def build_parser() -> argparse.ArgumentParser:
    ap = argparse.ArgumentParser(
        prog="kanban-core",
        description="Card ordering and dependency-integrity checks for board files",
    )
    ap.add_argument("--config", default=None, help="Path to config.yaml")
    ap.add_argument("--verbose", "-v", action="store_true", help="Debug logging")

    sub = ap.add_subparsers(dest="command", required=True)

    p = sub.add_parser("check", help="Run integrity checks on a board file")
    p.add_argument("board")
    p.set_defaults(func=cmd_check)

    p = sub.add_parser("stats", help="Print relationship graph stats and critical path")
    p.add_argument("board")
    p.set_defaults(func=cmd_stats)

    p = sub.add_parser("lanes", help="Print swimlanes")
    p.add_argument("board")
    p.add_argument(
        "--group-by", default=GroupBy.LABEL.value,
        choices=[g.value for g in GroupBy],
        help="Grouping attribute (default: label)",
    )
    p.set_defaults(func=cmd_lanes)

    p = sub.add_parser("move", help="Move a card and print the outcome")
    p.add_argument("board")
    p.add_argument("card")
    p.add_argument("column")
    p.add_argument("--index", type=int, default=None, help="Insertion index (default: tail)")
    p.add_argument("--write", action="store_true", help="Save the board file after a commit")
    p.set_defaults(func=cmd_move)

    return ap


def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)

    try:
        cfg = EngineConfig.load(args.config)
    except KanbanCoreError as e:
        print(f"Config error: {e}", file=sys.stderr)
        return EXIT_ERROR

    _setup_logging("DEBUG" if args.verbose else cfg.log_level)

    try:
        return args.func(args, cfg)
    except KanbanCoreError as e:
        logger.error(f"{args.command} failed: {e}")
        print(f"Error: {e}", file=sys.stderr)
        return EXIT_ERROR


if __name__ == "__main__":
    sys.exit(main())
