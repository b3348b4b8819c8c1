"""
Dependency graph between cards.

Edges live on the dependent card (card.dependencies); each edge points from
the card being depended upon (source_id) to the dependent card (target_id).
Only blocking-style edges (blocks, blocked_by, depends_on, required_by)
order work and take part in cycle checks; relates_to, similar_to,
duplicates and parent/child edges are tracked but exempt.

A single proposed edge is checked with an explicit stack (no recursion) and
the classic visited / on-stack marking, bounded by max_depth. Whole-board
cycle listing and ordering go through networkx.
"""
import logging
from typing import Any, Dict, Iterable, List, Mapping, Optional, Set

import networkx as nx

from .errors import CycleError, DependencyValidationError, IntegrityViolation
from .schema import (
    BLOCKING_TYPES,
    Board,
    Relationship,
    RelationshipType,
    normalize_dependency,
)

logger = logging.getLogger(__name__)

DEFAULT_MAX_DEPTH = 10_000


# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━
# Normalization
# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━


def _card_id(card: Any) -> str:
    if isinstance(card, Mapping):
        return str(card.get("id") or card.get("card_id"))
    return card.card_id


def normalize_dependencies(card: Any) -> List[Relationship]:
    """Canonical edges of a Card or a plain card mapping."""
    if isinstance(card, Mapping):
        card_id = _card_id(card)
        return [normalize_dependency(card_id, d) for d in card.get("dependencies") or []]
    return list(card.dependencies)


def build_adjacency(cards: Iterable[Any]) -> Dict[str, List[str]]:
    """
    Map each card id to the ids it depends on through blocking edges.

    Every card gets an entry, even without dependencies.
    """
    adjacency: Dict[str, List[str]] = {}
    for card in cards:
        deps = adjacency.setdefault(_card_id(card), [])
        for edge in normalize_dependencies(card):
            if edge.type in BLOCKING_TYPES and edge.source_id not in deps:
                deps.append(edge.source_id)
    return adjacency


# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━
# Cycle detection
# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━


def _has_cycle_from(adjacency: Dict[str, List[str]], start: str, max_depth: int) -> bool:
    """DFS from start; True when a node on the active path is reached again."""
    visited: Set[str] = {start}
    on_stack: Set[str] = {start}
    stack = [(start, iter(adjacency.get(start, ())))]

    while stack:
        node, neighbours = stack[-1]
        for nxt in neighbours:
            if nxt in on_stack:
                return True
            if nxt not in visited:
                if len(stack) >= max_depth:
                    raise IntegrityViolation(
                        [f"dependency chain from {start} is deeper than {max_depth}"]
                    )
                visited.add(nxt)
                on_stack.add(nxt)
                stack.append((nxt, iter(adjacency.get(nxt, ()))))
                break
        else:
            stack.pop()
            on_stack.discard(node)

    return False


def would_create_circular_dependency(
    all_cards: Iterable[Any],
    from_id: str,
    to_id: str,
    max_depth: int = DEFAULT_MAX_DEPTH,
) -> bool:
    """
    True if making to_id depend on from_id would close a cycle.

    That is the case exactly when from_id already (transitively) depends
    on to_id, or when both ids are the same card.
    """
    if from_id == to_id:
        return True
    adjacency = build_adjacency(all_cards)
    adjacency[to_id] = adjacency.get(to_id, []) + [from_id]
    return _has_cycle_from(adjacency, to_id, max_depth)


def _dependency_digraph(cards: Iterable[Any]) -> nx.DiGraph:
    """Blocking edges as a DiGraph, dependent -> prerequisite, board cards only."""
    adjacency = build_adjacency(cards)
    graph = nx.DiGraph()
    graph.add_nodes_from(adjacency)
    for node, prereqs in adjacency.items():
        for prereq in prereqs:
            if graph.has_node(prereq):
                graph.add_edge(node, prereq)
    return graph


def detect_cycles(cards: Iterable[Any]) -> List[List[str]]:
    """
    Every elementary cycle, as chains "a depends on b depends on ... a".

    Each chain starts and ends at its smallest id; chains are sorted. An
    acyclic board returns [].
    """
    graph = _dependency_digraph(cards)
    if nx.is_directed_acyclic_graph(graph):
        return []

    chains = []
    for cycle in nx.simple_cycles(graph):
        start = cycle.index(min(cycle))
        chain = cycle[start:] + cycle[:start]
        chains.append(chain + [chain[0]])
    return sorted(chains)


def topological_order(cards: Iterable[Any]) -> List[str]:
    """
    Card ids with prerequisites first (ties by id).

    Prerequisites that are not on the board are ignored.

    Raises:
        CycleError: the blocking edges contain a cycle
    """
    graph = _dependency_digraph(cards)
    try:
        return list(nx.lexicographical_topological_sort(graph.reverse(copy=False)))
    except nx.NetworkXUnfeasible:
        cycle = nx.find_cycle(graph)
        raise CycleError(min(node for node, _ in cycle)) from None


def validate_dependencies(cards: Iterable[Any]) -> None:
    """
    Check that every dependency points at a known card and nothing cycles.

    Raises:
        DependencyValidationError: kind "missing" or "circular"
    """
    cards = list(cards)
    known = {_card_id(c) for c in cards}

    for card in cards:
        for edge in normalize_dependencies(card):
            if edge.source_id not in known:
                raise DependencyValidationError(
                    f"Card {edge.target_id} depends on non-existent card {edge.source_id}",
                    "missing",
                    [edge.target_id, edge.source_id],
                )

    cycles = detect_cycles(cards)
    if cycles:
        raise DependencyValidationError(
            "Circular dependencies detected: "
            + ", ".join(" -> ".join(chain) for chain in cycles),
            "circular",
            [cid for chain in cycles for cid in chain],
        )


# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━
# Relationship helpers
# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━

_INVERSES = {
    RelationshipType.BLOCKS: RelationshipType.BLOCKED_BY,
    RelationshipType.BLOCKED_BY: RelationshipType.BLOCKS,
    RelationshipType.DEPENDS_ON: RelationshipType.REQUIRED_BY,
    RelationshipType.REQUIRED_BY: RelationshipType.DEPENDS_ON,
    RelationshipType.PARENT_OF: RelationshipType.CHILD_OF,
    RelationshipType.CHILD_OF: RelationshipType.PARENT_OF,
}

_LABELS = {
    RelationshipType.BLOCKS: "Blocks",
    RelationshipType.BLOCKED_BY: "Blocked by",
    RelationshipType.DEPENDS_ON: "Depends on",
    RelationshipType.REQUIRED_BY: "Required by",
    RelationshipType.RELATES_TO: "Relates to",
    RelationshipType.DUPLICATES: "Duplicates",
    RelationshipType.PARENT_OF: "Parent of",
    RelationshipType.CHILD_OF: "Child of",
    RelationshipType.SIMILAR_TO: "Similar to",
}


def inverse_relationship(rel_type: RelationshipType) -> Optional[RelationshipType]:
    """The same edge named from the other card, or None for symmetric types."""
    return _INVERSES.get(rel_type)


def is_directional(rel_type: RelationshipType) -> bool:
    return rel_type in _INVERSES


def relationship_label(rel_type: RelationshipType) -> str:
    return _LABELS.get(rel_type, rel_type.value)


def create_relationship(
    source_id: str,
    target_id: str,
    rel_type: RelationshipType = RelationshipType.DEPENDS_ON,
    strength: Optional[float] = None,
    metadata: Optional[Dict[str, Any]] = None,
) -> Relationship:
    return Relationship(
        source_id=source_id,
        target_id=target_id,
        type=rel_type,
        strength=strength,
        metadata=dict(metadata or {}),
    )


# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━
# DependencyGraph: validated mutations on a board
# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━


class DependencyGraph:
    """
    Adds and removes dependency edges on a board without ever admitting a cycle.

    A rejected add leaves every card's dependency list untouched.
    """

    def __init__(self, board: Board, events=None, max_depth: int = DEFAULT_MAX_DEPTH):
        self.board = board
        self.events = events
        self.max_depth = max_depth

    def would_create_cycle(self, from_id: str, to_id: str) -> bool:
        return would_create_circular_dependency(
            self.board.cards.values(), from_id, to_id, max_depth=self.max_depth
        )

    def add_dependency(
        self,
        from_id: str,
        to_id: str,
        rel_type: RelationshipType = RelationshipType.DEPENDS_ON,
        strength: Optional[float] = None,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> Relationship:
        """
        Make to_id depend on from_id.

        Returns the stored edge (the existing one if it is already present).

        Raises:
            NotFoundError: either card is unknown
            CycleError: the edge would close a cycle at to_id
        """
        self.board.get_card(from_id)
        target = self.board.get_card(to_id)
        if not isinstance(rel_type, RelationshipType):
            rel_type = RelationshipType(rel_type)

        for existing in target.dependencies:
            if existing.source_id == from_id and existing.type == rel_type:
                return existing

        edge = create_relationship(from_id, to_id, rel_type, strength=strength, metadata=metadata)

        if edge.is_blocking and self.would_create_cycle(from_id, to_id):
            logger.warning(f"Rejected dependency {from_id} -> {to_id}: would create a cycle")
            if self.events is not None:
                self.events.on_cycle_rejected(to_id, from_id)
            raise CycleError(to_id, from_id)

        target.dependencies.append(edge)
        logger.info(f"Added {rel_type.value} edge {from_id} -> {to_id}")
        return edge

    def remove_dependency(
        self,
        from_id: str,
        to_id: str,
        rel_type: Optional[RelationshipType] = None,
    ) -> int:
        """Drop edges from_id -> to_id (of one type, or all). Returns how many."""
        target = self.board.cards.get(to_id)
        if target is None:
            return 0
        kept = [
            d for d in target.dependencies
            if not (d.source_id == from_id and (rel_type is None or d.type == rel_type))
        ]
        removed = len(target.dependencies) - len(kept)
        target.dependencies = kept
        if removed:
            logger.info(f"Removed {removed} edge(s) {from_id} -> {to_id}")
        return removed

    def relationships_for(self, card_id: str) -> List[Relationship]:
        """Every edge touching card_id, either direction."""
        return [
            rel for rel in self.board.relationships
            if rel.source_id == card_id or rel.target_id == card_id
        ]

    def are_connected(self, card_a: str, card_b: str) -> bool:
        return any(
            {rel.source_id, rel.target_id} == {card_a, card_b}
            for rel in self.board.relationships
        )

    def predecessors(self, card_id: str) -> List[str]:
        """Cards that card_id depends on."""
        card = self.board.get_card(card_id)
        return [cid for cid in card.dependency_ids() if cid in self.board.cards]

    def successors(self, card_id: str) -> List[str]:
        """Cards that depend on card_id."""
        return sorted(
            card.card_id for card in self.board.cards.values() if card.depends_on(card_id)
        )

    def validate(self) -> None:
        validate_dependencies(self.board.cards.values())

    def topological_order(self) -> List[str]:
        return topological_order(self.board.cards.values())
