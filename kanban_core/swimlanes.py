"""
Swimlane projection: group cards into horizontal lanes.

Lanes are sorted by title (case-insensitive, then lane id). Cards missing the
grouping attribute land in a dedicated bucket; a card with several labels or
assignees appears in every matching lane.
"""
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Iterable, List, Optional


class GroupBy(Enum):
    NONE = "none"
    ASSIGNEE = "assignee"
    PRIORITY = "priority"
    LABEL = "label"

    @classmethod
    def from_str(cls, value: str) -> "GroupBy":
        try:
            return cls(value.lower())
        except ValueError:
            return cls.NONE


PRIORITY_TITLES = {
    "URGENT": "Urgent",
    "HIGH": "High",
    "MEDIUM": "Medium",
    "LOW": "Low",
    "NONE": "No Priority",
}

UNASSIGNED_LANE = "assignee-unassigned"
NO_PRIORITY_LANE = "priority-NONE"
NO_LABEL_LANE = "label-none"


@dataclass
class Swimlane:
    lane_id: str
    title: str
    group_value: Optional[str]
    card_ids: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.lane_id,
            "title": self.title,
            "group_value": self.group_value,
            "card_ids": list(self.card_ids),
        }


def _lane_keys(card: Any, group_by: GroupBy, users: Dict[str, str]) -> List[tuple]:
    """(lane_id, title, group_value) for every lane the card belongs to."""
    if group_by == GroupBy.ASSIGNEE:
        if not card.assignees:
            return [(UNASSIGNED_LANE, "Unassigned", None)]
        return [
            (f"assignee-{uid}", users.get(uid) or f"User {uid}", uid)
            for uid in dict.fromkeys(card.assignees)
        ]

    if group_by == GroupBy.PRIORITY:
        value = (card.priority or "NONE").upper()
        if value == "NONE":
            return [(NO_PRIORITY_LANE, PRIORITY_TITLES["NONE"], None)]
        return [(f"priority-{value}", PRIORITY_TITLES.get(value, card.priority), value)]

    if group_by == GroupBy.LABEL:
        if not card.labels:
            return [(NO_LABEL_LANE, "No Labels", None)]
        return [(f"label-{label}", label, label) for label in dict.fromkeys(card.labels)]

    return []


def generate_swimlanes(
    cards: Iterable[Any],
    group_by: GroupBy,
    users: Optional[Dict[str, str]] = None,
) -> List[Swimlane]:
    """
    Group cards into lanes.

    Args:
        cards: Cards (or anything with assignees / priority / labels / card_id)
        group_by: grouping attribute; GroupBy.NONE yields no lanes
        users: optional user id -> display name for assignee lane titles
    """
    if not isinstance(group_by, GroupBy):
        group_by = GroupBy.from_str(group_by)
    if group_by == GroupBy.NONE:
        return []

    users = users or {}
    lanes: Dict[str, Swimlane] = {}
    for card in cards:
        for lane_id, title, value in _lane_keys(card, group_by, users):
            lane = lanes.get(lane_id)
            if lane is None:
                lane = lanes[lane_id] = Swimlane(lane_id=lane_id, title=title, group_value=value)
            lane.card_ids.append(card.card_id)

    return sorted(lanes.values(), key=lambda lane: (lane.title.casefold(), lane.lane_id))
