"""
Card positioning: ordering keys for cards inside a column.

Keys are spaced GAP apart so most insertions only touch the moving card:

    head   first - GAP   (or halfway to the floor when that would cross it)
    tail   last + GAP
    mid    (left + right) / 2

When two neighbours are adjacent integers, or a midpoint collapses onto one
of them, the whole column is renumbered GAP apart and the insertion is
re-run against the fresh keys. Allocation itself is pure: the renumbered
keys are returned to the caller, which applies them together with the move.
"""
import logging
from dataclasses import dataclass
from typing import Any, List, Mapping, Optional, Sequence, Tuple

from .errors import IntegrityViolation, RenumberRequired

logger = logging.getLogger(__name__)

DEFAULT_GAP = 1000.0
DEFAULT_FLOOR = 0.0


@dataclass(frozen=True)
class Allocation:
    """Result of placing one card into a column."""
    position: float
    index: int
    # Fresh keys for the existing cards, in input order, if a renumber happened
    renumbered: Optional[Tuple[float, ...]] = None

    @property
    def did_renumber(self) -> bool:
        return self.renumbered is not None


def _position_of(item: Any) -> float:
    if isinstance(item, Mapping):
        return float(item["position"])
    return float(item.position)


def _check_gap(gap: float) -> None:
    # Renumbered neighbours must always leave room for a midpoint
    if gap <= 2:
        raise ValueError(f"Position gap must be greater than 2, got {gap}")


def _collapsed(left: float, right: float) -> bool:
    """True when no usable key fits strictly between left and right."""
    if right - left <= 1:
        return True
    mid = (left + right) / 2
    return not (left < mid < right)


def _place(positions: Sequence[float], index: int, gap: float, floor: float) -> Optional[float]:
    """Key for index against positions, or None when a renumber is needed."""
    if not positions:
        return floor + gap

    if index == 0:
        first = positions[0]
        candidate = first - gap
        if candidate > floor:
            return candidate
        if first <= floor or _collapsed(floor, first):
            return None
        return (floor + first) / 2

    if index == len(positions):
        last = positions[-1]
        candidate = last + gap
        return candidate if candidate > last else None

    left, right = positions[index - 1], positions[index]
    if _collapsed(left, right):
        return None
    return (left + right) / 2


def allocate(
    existing_ordered_cards: Sequence[Any],
    insertion_index: int,
    gap: float = DEFAULT_GAP,
    floor: float = DEFAULT_FLOOR,
) -> Allocation:
    """
    Compute the ordering key for a card inserted at insertion_index.

    Args:
        existing_ordered_cards: cards (objects with .position, or mappings with
            a "position" key) already sorted ascending, excluding the moving card
        insertion_index: 0..len(existing); larger values mean the tail
        gap: spacing used for head/tail inserts and renumbering
        floor: keys never go at or below this value

    Returns:
        Allocation with the new key and, if the column had to be renumbered,
        the fresh keys for the existing cards.

    Raises:
        ValueError: negative index or unusable gap
    """
    _check_gap(gap)
    if insertion_index < 0:
        raise ValueError(f"Insertion index must be >= 0, got {insertion_index}")

    positions = [_position_of(c) for c in existing_ordered_cards]
    index = min(insertion_index, len(positions))

    position = _place(positions, index, gap, floor)
    if position is not None:
        logger.debug(f"Allocated {position} at index {index} of {len(positions)}")
        return Allocation(position=position, index=index)

    fresh = generate_initial_positions(len(positions), gap=gap, floor=floor)
    position = _place(fresh, index, gap, floor)
    if position is None:
        raise IntegrityViolation([f"no key available at index {index} after renumbering"])

    logger.info(
        f"Renumbered {len(fresh)} cards to regain spacing "
        f"(insert at index {index} -> {position})"
    )
    return Allocation(position=position, index=index, renumbered=tuple(fresh))


def calculate_drop_position(
    existing_ordered_cards: Sequence[Any],
    insertion_index: int,
    gap: float = DEFAULT_GAP,
    floor: float = DEFAULT_FLOOR,
) -> float:
    """
    Ordering key strictly between the neighbours at insertion_index.

    Raises:
        RenumberRequired: no such key exists without renumbering the column;
            the exception carries the full Allocation, which the caller must
            apply (or call allocate() directly and check did_renumber)
        ValueError: negative index or unusable gap
    """
    allocation = allocate(existing_ordered_cards, insertion_index, gap=gap, floor=floor)
    if allocation.did_renumber:
        raise RenumberRequired(allocation)
    return allocation.position


def calculate_position(
    before: Optional[float],
    after: Optional[float],
    gap: float = DEFAULT_GAP,
) -> float:
    """
    Key between two neighbours, either of which may be missing.

    calculate_position(None, None)      -> gap
    calculate_position(None, 1000)      -> 500
    calculate_position(1000, None)      -> 2000
    calculate_position(1000, 2000)      -> 1500
    """
    if before is None and after is None:
        return gap
    if before is None:
        return after / 2
    if after is None:
        return before + gap
    return (before + after) / 2


def generate_initial_positions(
    count: int,
    gap: float = DEFAULT_GAP,
    floor: float = DEFAULT_FLOOR,
) -> List[float]:
    """Keys for count cards spaced gap apart, starting one gap above floor."""
    return [floor + gap * (i + 1) for i in range(count)]


def rebalance_positions(
    positions: Sequence[float],
    gap: float = DEFAULT_GAP,
    floor: float = DEFAULT_FLOOR,
) -> List[float]:
    """Evenly spaced replacement keys for positions, in ascending order."""
    return generate_initial_positions(len(positions), gap=gap, floor=floor)


def needs_rebalancing(positions: Sequence[float]) -> bool:
    """True if some neighbouring pair has no room left for another key."""
    ordered = sorted(positions)
    return any(_collapsed(a, b) for a, b in zip(ordered, ordered[1:]))
