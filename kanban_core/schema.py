"""
Board schema: cards, columns, dependency edges and the board that owns them.

Invariants (hold before and after every committed operation):
  1. card.column_id is mirrored by exactly one column.card_ids list
  2. positions read in card_ids order are strictly increasing
  3. blocking dependencies form no cycle
  4. a hard-WIP column never holds more than wip_limit cards

The engine only mutates position, column_id, card_ids and dependency edges.
Everything else on these types belongs to the host application.
"""
import copy
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Iterable, List, Mapping, Optional, Union

from .errors import IntegrityViolation, NotFoundError, WipLimitExceeded


class WipLimitType(Enum):
    """How a column's WIP limit is enforced."""
    SOFT = "soft"    # informational only
    HARD = "hard"    # blocks the admitting move

    @classmethod
    def from_str(cls, value: Optional[str]) -> "WipLimitType":
        try:
            return cls(str(value).lower())
        except ValueError:
            return cls.SOFT


class RelationshipType(Enum):
    """Closed set of edge types between cards."""
    BLOCKS = "blocks"
    BLOCKED_BY = "blocked_by"
    DEPENDS_ON = "depends_on"
    REQUIRED_BY = "required_by"
    RELATES_TO = "relates_to"
    DUPLICATES = "duplicates"
    PARENT_OF = "parent_of"
    CHILD_OF = "child_of"
    SIMILAR_TO = "similar_to"

    @classmethod
    def from_str(cls, value: Optional[str]) -> "RelationshipType":
        try:
            return cls(str(value).lower())
        except ValueError:
            return cls.DEPENDS_ON


# Edge types that order work and therefore take part in cycle checks
BLOCKING_TYPES = frozenset({
    RelationshipType.BLOCKS,
    RelationshipType.BLOCKED_BY,
    RelationshipType.DEPENDS_ON,
    RelationshipType.REQUIRED_BY,
})

# Edge types counted as inbound pressure by the critical path heuristic
CRITICAL_PATH_TYPES = frozenset({
    RelationshipType.BLOCKS,
    RelationshipType.DEPENDS_ON,
})


@dataclass
class Relationship:
    """
    Directed edge between two cards.

    source_id is the card being depended upon, target_id the dependent card.
    The direction is fixed regardless of type; the type is a label that
    decides whether the edge participates in ordering (see BLOCKING_TYPES).
    """
    source_id: str
    target_id: str
    type: RelationshipType = RelationshipType.DEPENDS_ON
    rel_id: str = ""
    strength: Optional[float] = None   # 0.0–1.0, for auto-detected edges
    metadata: Dict[str, Any] = field(default_factory=dict)

    def __post_init__(self):
        if not isinstance(self.type, RelationshipType):
            self.type = RelationshipType.from_str(self.type)
        if self.strength is not None:
            self.strength = float(self.strength)
            if not 0.0 <= self.strength <= 1.0:
                raise ValueError(f"Relationship strength must be within 0..1, got {self.strength}")
        if not self.rel_id:
            self.rel_id = f"{self.source_id}-{self.target_id}-{self.type.value}"

    @property
    def is_blocking(self) -> bool:
        return self.type in BLOCKING_TYPES

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {
            "id": self.rel_id,
            "source_id": self.source_id,
            "target_id": self.target_id,
            "type": self.type.value,
        }
        if self.strength is not None:
            data["strength"] = self.strength
        if self.metadata:
            data["metadata"] = copy.deepcopy(self.metadata)
        return data

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "Relationship":
        return cls(
            source_id=str(data["source_id"]),
            target_id=str(data["target_id"]),
            type=RelationshipType.from_str(data.get("type")),
            rel_id=str(data.get("id") or data.get("rel_id") or ""),
            strength=data.get("strength"),
            metadata=dict(data.get("metadata") or {}),
        )


DependencyEntry = Union[str, Mapping[str, Any], Relationship]


def normalize_dependency(card_id: str, entry: DependencyEntry) -> Relationship:
    """
    Turn one raw dependency entry of card_id into a Relationship.

    Accepted shapes:
        "KAN-7"                                   bare id of the prerequisite
        {"task_id": "KAN-7", "type": ..., "lag": 2}   scheduling record
        {"target_id": "KAN-7"}                    legacy board record
        {"source_id": "KAN-7", "target_id": card_id, ...}   full edge record
        Relationship(...)
    """
    if isinstance(entry, Relationship):
        if entry.target_id != card_id:
            raise ValueError(
                f"Dependency {entry.rel_id} targets {entry.target_id}, not {card_id}"
            )
        return entry

    if isinstance(entry, str):
        return Relationship(source_id=entry, target_id=card_id)

    if isinstance(entry, Mapping):
        # A full edge record names both ends; it must belong to this card
        if entry.get("source_id") and entry.get("target_id"):
            if str(entry["target_id"]) != card_id:
                raise ValueError(
                    f"Dependency {entry['source_id']} -> {entry['target_id']} "
                    f"targets {entry['target_id']}, not {card_id}"
                )
        prereq = entry.get("task_id") or entry.get("source_id") or entry.get("target_id")
        if not prereq:
            raise ValueError(f"Dependency entry of {card_id} has no card reference: {dict(entry)}")

        metadata = dict(entry.get("metadata") or {})
        raw_type = entry.get("type")
        rel_type = RelationshipType.DEPENDS_ON
        if raw_type:
            try:
                rel_type = RelationshipType(str(raw_type).lower())
            except ValueError:
                # Scheduling types (finish-to-start, ...) are kept as metadata
                metadata["dependency_type"] = raw_type
        if entry.get("lag") is not None:
            metadata["lag"] = entry["lag"]

        return Relationship(
            source_id=str(prereq),
            target_id=card_id,
            type=rel_type,
            rel_id=str(entry.get("id") or entry.get("rel_id") or ""),
            strength=entry.get("strength"),
            metadata=metadata,
        )

    raise TypeError(f"Unsupported dependency entry for {card_id}: {entry!r}")


@dataclass
class Card:
    """A card on the board."""

    card_id: str
    column_id: str = ""
    position: float = 0.0

    # Descriptive fields (used by swimlane grouping)
    title: str = ""
    assignees: List[str] = field(default_factory=list)
    priority: Optional[str] = None
    labels: List[str] = field(default_factory=list)

    # Edges where this card is the dependent side
    dependencies: List[Relationship] = field(default_factory=list)

    def __post_init__(self):
        self.position = float(self.position)
        self.dependencies = [normalize_dependency(self.card_id, d) for d in self.dependencies]

    def depends_on(self, card_id: str) -> bool:
        return any(d.source_id == card_id for d in self.dependencies)

    def dependency_ids(self) -> List[str]:
        """Ids of the cards this card depends on, in insertion order."""
        seen: List[str] = []
        for dep in self.dependencies:
            if dep.source_id not in seen:
                seen.append(dep.source_id)
        return seen

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.card_id,
            "column_id": self.column_id,
            "position": self.position,
            "title": self.title,
            "assignees": list(self.assignees),
            "priority": self.priority,
            "labels": list(self.labels),
            "dependencies": [d.to_dict() for d in self.dependencies],
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "Card":
        card_id = str(data.get("id") or data.get("card_id") or "")
        if not card_id:
            raise ValueError(f"Card without id: {dict(data)}")

        # Legacy single-assignee field
        assignees = list(data.get("assignees") or data.get("assigned_user_ids") or [])
        if not assignees and data.get("assignee"):
            assignees = [data["assignee"]]

        return cls(
            card_id=card_id,
            column_id=str(data.get("column_id") or ""),
            position=data.get("position") or 0.0,
            title=data.get("title", ""),
            assignees=assignees,
            priority=data.get("priority"),
            labels=list(data.get("labels") or []),
            dependencies=list(data.get("dependencies") or []),
        )


@dataclass
class Column:
    """A board column with an optional WIP limit."""

    column_id: str
    title: str = ""
    position: float = 0.0
    card_ids: List[str] = field(default_factory=list)
    wip_limit: Optional[int] = None
    wip_limit_type: WipLimitType = WipLimitType.SOFT

    def __post_init__(self):
        if not isinstance(self.wip_limit_type, WipLimitType):
            self.wip_limit_type = WipLimitType.from_str(self.wip_limit_type)
        if self.wip_limit is not None:
            self.wip_limit = int(self.wip_limit)
            if self.wip_limit < 0:
                raise ValueError(f"Column {self.column_id}: wip_limit must be >= 0")

    def has_card(self, card_id: str) -> bool:
        return card_id in self.card_ids

    def card_count(self) -> int:
        return len(self.card_ids)

    @property
    def is_hard_limited(self) -> bool:
        return self.wip_limit is not None and self.wip_limit_type == WipLimitType.HARD

    def is_wip_limit_exceeded(self) -> bool:
        """True if the column holds more cards than its limit (any limit type)."""
        if self.wip_limit is None:
            return False
        return len(self.card_ids) > self.wip_limit

    def can_add_card(self) -> bool:
        """True unless a hard limit is already reached."""
        if not self.is_hard_limited:
            return True
        return len(self.card_ids) < self.wip_limit

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.column_id,
            "title": self.title,
            "position": self.position,
            "card_ids": list(self.card_ids),
            "wip_limit": self.wip_limit,
            "wip_limit_type": self.wip_limit_type.value,
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "Column":
        column_id = str(data.get("id") or data.get("column_id") or "")
        if not column_id:
            raise ValueError(f"Column without id: {dict(data)}")
        return cls(
            column_id=column_id,
            title=data.get("title", ""),
            position=data.get("position") or 0.0,
            card_ids=[str(c) for c in data.get("card_ids") or []],
            wip_limit=data.get("wip_limit"),
            wip_limit_type=WipLimitType.from_str(data.get("wip_limit_type")),
        )


@dataclass
class Board:
    """Owns all columns and cards; the unit of atomicity."""

    board_id: str = "board"
    columns: Dict[str, Column] = field(default_factory=dict)
    cards: Dict[str, Card] = field(default_factory=dict)

    # ── Lookup ───────────────────────────────────────────────

    def get_card(self, card_id: str) -> Card:
        try:
            return self.cards[card_id]
        except KeyError:
            raise NotFoundError("card", card_id) from None

    def get_column(self, column_id: str) -> Column:
        try:
            return self.columns[column_id]
        except KeyError:
            raise NotFoundError("column", column_id) from None

    def ordered_columns(self) -> List[Column]:
        return sorted(self.columns.values(), key=lambda c: (c.position, c.column_id))

    def cards_in_column(self, column_id: str) -> List[Card]:
        """Cards of a column in card_ids order (ascending position)."""
        column = self.get_column(column_id)
        return [self.cards[cid] for cid in column.card_ids if cid in self.cards]

    @property
    def relationships(self) -> List[Relationship]:
        """Every dependency edge on the board."""
        return [dep for card in self.cards.values() for dep in card.dependencies]

    # ── Host-side construction ───────────────────────────────

    def add_column(
        self,
        column_id: str,
        title: str = "",
        wip_limit: Optional[int] = None,
        wip_limit_type: Union[WipLimitType, str] = WipLimitType.SOFT,
    ) -> Column:
        if column_id in self.columns:
            raise ValueError(f"Column {column_id} already exists")
        position = max((c.position for c in self.columns.values()), default=-1) + 1
        column = Column(
            column_id=column_id,
            title=title or column_id,
            position=position,
            wip_limit=wip_limit,
            wip_limit_type=wip_limit_type,
        )
        self.columns[column_id] = column
        return column

    def add_card(self, card_id: str, column_id: str, title: str = "", **fields: Any) -> Card:
        """Create a card at the tail of a column, renumbering the column if needed."""
        from .positioning import allocate

        if card_id in self.cards:
            raise ValueError(f"Card {card_id} already exists")
        column = self.get_column(column_id)
        if not column.can_add_card():
            raise WipLimitExceeded(column_id, card_id, column.wip_limit, column.card_count())

        existing = self.cards_in_column(column_id)
        allocation = allocate(existing, len(existing))
        card = Card(
            card_id=card_id, column_id=column_id, position=allocation.position, title=title, **fields
        )
        if allocation.renumbered is not None:
            for other, position in zip(existing, allocation.renumbered):
                other.position = position
        self.cards[card_id] = card
        column.card_ids.insert(allocation.index, card_id)
        return card

    # ── Integrity ────────────────────────────────────────────

    def find_integrity_problems(self, column_ids: Optional[Iterable[str]] = None) -> List[str]:
        """
        List every invariant violation, optionally restricted to some columns.

        The cycle check only runs for a full-board scan.
        """
        problems: List[str] = []
        scoped = column_ids is not None
        wanted = set(column_ids) if scoped else set(self.columns)

        owners: Dict[str, List[str]] = {}
        for column in self.columns.values():
            for cid in column.card_ids:
                owners.setdefault(cid, []).append(column.column_id)

        for column_id in sorted(wanted):
            column = self.columns.get(column_id)
            if column is None:
                problems.append(f"column {column_id} does not exist")
                continue

            if len(set(column.card_ids)) != len(column.card_ids):
                problems.append(f"column {column_id} lists a card more than once")

            previous: Optional[float] = None
            for cid in column.card_ids:
                card = self.cards.get(cid)
                if card is None:
                    problems.append(f"column {column_id} lists unknown card {cid}")
                    continue
                if card.column_id != column_id:
                    problems.append(
                        f"card {cid} is listed in {column_id} but belongs to {card.column_id}"
                    )
                if previous is not None and not card.position > previous:
                    problems.append(
                        f"column {column_id}: position of {cid} ({card.position}) "
                        f"does not follow {previous}"
                    )
                previous = card.position

            if column.is_hard_limited and column.card_count() > column.wip_limit:
                problems.append(
                    f"column {column_id} holds {column.card_count()} cards "
                    f"over its hard limit {column.wip_limit}"
                )

        for card in self.cards.values():
            if scoped and card.column_id not in wanted:
                continue
            listed = owners.get(card.card_id, [])
            if listed != [card.column_id]:
                problems.append(
                    f"card {card.card_id} (column_id={card.column_id}) is listed in {listed or 'no column'}"
                )

        if not scoped:
            from .dependencies import detect_cycles

            for chain in detect_cycles(self.cards.values()):
                problems.append(f"dependency cycle: {' -> '.join(chain)}")

        return problems

    def check_integrity(self, column_ids: Optional[Iterable[str]] = None) -> None:
        """Raise IntegrityViolation if any invariant is false."""
        problems = self.find_integrity_problems(column_ids)
        if problems:
            raise IntegrityViolation(problems)

    # ── Serialization ────────────────────────────────────────

    def to_dict(self) -> Dict[str, Any]:
        return {
            "board_id": self.board_id,
            "columns": [c.to_dict() for c in self.ordered_columns()],
            "cards": [self.cards[cid].to_dict() for cid in sorted(self.cards)],
        }

    def snapshot(self) -> Dict[str, Any]:
        """Deep, serialisable copy of the mutable board state."""
        return copy.deepcopy(self.to_dict())

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "Board":
        """
        Build a board from a plain mapping.

        Columns without card_ids get them derived from the cards' positions.
        Cards without a position are spaced in card_ids (or listed) order. Top-level
        "relationships" are folded into the dependent card's dependencies.
        """
        from .positioning import generate_initial_positions

        board = cls(board_id=str(data.get("board_id") or data.get("id") or "board"))

        for index, raw in enumerate(data.get("columns") or []):
            column = Column.from_dict(raw)
            if "position" not in raw:
                column.position = float(index)
            board.columns[column.column_id] = column

        by_column: Dict[str, List[Card]] = {}
        unplaced = set()
        for raw in data.get("cards") or []:
            card = Card.from_dict(raw)
            if card.card_id in board.cards:
                raise ValueError(f"Duplicate card id {card.card_id}")
            board.cards[card.card_id] = card
            by_column.setdefault(card.column_id, []).append(card)
            if raw.get("position") is None:
                unplaced.add(card.card_id)

        # One unplaced card respaces its whole column, in card_ids order when
        # the column declares one, otherwise in listed order
        for column_id, cards in by_column.items():
            if not any(c.card_id in unplaced for c in cards):
                continue
            column = board.columns.get(column_id)
            if column is not None and column.card_ids:
                rank = {cid: i for i, cid in enumerate(column.card_ids)}
                cards = sorted(cards, key=lambda c: rank.get(c.card_id, len(rank)))
            for card, pos in zip(cards, generate_initial_positions(len(cards))):
                card.position = pos

        for raw in data.get("relationships") or []:
            rel = Relationship.from_dict(raw)
            board.get_card(rel.target_id).dependencies.append(rel)

        for column in board.columns.values():
            if not column.card_ids:
                members = sorted(by_column.get(column.column_id, []), key=lambda c: c.position)
                column.card_ids = [c.card_id for c in members]

        return board
