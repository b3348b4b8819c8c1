"""
Tests for the dependency graph.

Covers:
    - normalization of bare-id / record / Relationship entries
    - would_create_circular_dependency()  transitive, self, exempt types, depth bound
    - DependencyGraph                      add / remove / queries, cycle rejection
    - detect_cycles / topological_order / validate_dependencies
    - relationship helpers
"""
import pytest

from kanban_core.dependencies import (
    DependencyGraph,
    build_adjacency,
    create_relationship,
    detect_cycles,
    inverse_relationship,
    is_directional,
    normalize_dependencies,
    relationship_label,
    topological_order,
    validate_dependencies,
    would_create_circular_dependency,
)
from kanban_core.errors import (
    CycleError,
    DependencyValidationError,
    IntegrityViolation,
    NotFoundError,
)
from kanban_core.events import CYCLE_REJECTED, BoardEventBridge
from kanban_core.schema import Card, Relationship, RelationshipType

from conftest import make_board


def card(card_id, *deps):
    return {"id": card_id, "dependencies": list(deps)}


# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━
# Normalization
# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━


class TestNormalization:

    def test_bare_ids(self):
        edges = normalize_dependencies(card("B", "A"))
        assert [(e.source_id, e.target_id, e.type) for e in edges] == [
            ("A", "B", RelationshipType.DEPENDS_ON)
        ]

    def test_scheduling_record(self):
        edges = normalize_dependencies(
            card("B", {"task_id": "A", "type": "finish-to-start", "lag": 2})
        )
        edge = edges[0]
        assert edge.source_id == "A"
        assert edge.type == RelationshipType.DEPENDS_ON
        assert edge.metadata == {"dependency_type": "finish-to-start", "lag": 2}

    def test_legacy_target_record(self):
        edges = normalize_dependencies(card("B", {"target_id": "A", "type": "blocks"}))
        assert edges[0].source_id == "A"
        assert edges[0].target_id == "B"
        assert edges[0].type == RelationshipType.BLOCKS

    def test_card_objects_are_normalized_on_construction(self):
        c = Card(card_id="B", dependencies=["A", {"task_id": "C"}])
        assert c.dependency_ids() == ["A", "C"]
        assert all(isinstance(d, Relationship) for d in c.dependencies)

    def test_entry_without_reference(self):
        with pytest.raises(ValueError):
            normalize_dependencies(card("B", {"type": "blocks"}))

    def test_full_record_must_target_its_card(self):
        with pytest.raises(ValueError):
            Card(card_id="B", dependencies=[{"source_id": "B", "target_id": "A"}])
        with pytest.raises(ValueError):
            Card(card_id="B", dependencies=[{"source_id": "A", "target_id": "C"}])

        c = Card(card_id="B", dependencies=[{"source_id": "A", "target_id": "B"}])
        assert [(e.source_id, e.target_id) for e in c.dependencies] == [("A", "B")]

    def test_adjacency_skips_non_blocking_edges(self):
        adjacency = build_adjacency([
            card("A"),
            card("B", "A", {"task_id": "C", "type": "relates_to"}),
            card("C"),
        ])
        assert adjacency == {"A": [], "B": ["A"], "C": []}


# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━
# Cycle prediction
# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━


class TestWouldCreateCircularDependency:

    def setup_method(self):
        # B depends on A, C depends on B
        self.cards = [card("A"), card("B", "A"), card("C", "B")]

    def test_closing_edge_detected(self):
        assert would_create_circular_dependency(self.cards, "C", "A") is True

    def test_direct_back_edge_detected(self):
        assert would_create_circular_dependency(self.cards, "B", "A") is True

    def test_forward_edge_allowed(self):
        assert would_create_circular_dependency(self.cards, "A", "C") is False

    def test_duplicate_edge_allowed(self):
        assert would_create_circular_dependency(self.cards, "A", "B") is False

    def test_self_dependency(self):
        assert would_create_circular_dependency(self.cards, "A", "A") is True

    def test_unknown_cards_are_not_cycles(self):
        assert would_create_circular_dependency(self.cards, "X", "Y") is False

    def test_exempt_types_do_not_count(self):
        cards = [card("A", {"task_id": "B", "type": "relates_to"}), card("B")]
        assert would_create_circular_dependency(cards, "A", "B") is False

    def test_depth_bound(self):
        chain = [card("c0")] + [card(f"c{i}", f"c{i - 1}") for i in range(1, 5)]
        with pytest.raises(IntegrityViolation):
            would_create_circular_dependency(chain, "c4", "c0", max_depth=2)
        assert would_create_circular_dependency(chain, "c4", "c0") is True

    def test_long_chain_is_iterative(self):
        chain = [card("c0")] + [card(f"c{i}", f"c{i - 1}") for i in range(1, 3000)]
        assert would_create_circular_dependency(chain, "c2999", "c0") is True


# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━
# DependencyGraph
# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━


class TestDependencyGraph:

    def setup_method(self):
        self.board = make_board(("todo", ["A", "B", "C", "D"]))
        self.events = BoardEventBridge()
        self.graph = DependencyGraph(self.board, events=self.events)

    def test_add_dependency(self):
        edge = self.graph.add_dependency("A", "B")
        assert edge.source_id == "A"
        assert edge.target_id == "B"
        assert edge.type == RelationshipType.DEPENDS_ON
        assert self.board.cards["B"].dependencies == [edge]

    def test_cycle_rejected_with_signal_and_no_mutation(self, recorder):
        self.events.subscribe(CYCLE_REJECTED, recorder)
        self.graph.add_dependency("A", "B")
        self.graph.add_dependency("B", "C")
        before = self.board.snapshot()

        with pytest.raises(CycleError) as exc:
            self.graph.add_dependency("C", "A")

        assert exc.value.target_id == "A"
        assert exc.value.from_id == "C"
        assert recorder.calls == [{"target_id": "A", "from_id": "C"}]
        assert self.board.snapshot() == before

    def test_non_blocking_edge_may_close_a_loop(self):
        self.graph.add_dependency("A", "B")
        edge = self.graph.add_dependency("B", "A", RelationshipType.RELATES_TO)
        assert edge in self.board.cards["A"].dependencies
        self.board.check_integrity()

    def test_type_given_as_string(self):
        edge = self.graph.add_dependency("A", "B", "blocks")
        assert edge.type == RelationshipType.BLOCKS

    def test_duplicate_add_returns_existing_edge(self):
        first = self.graph.add_dependency("A", "B")
        second = self.graph.add_dependency("A", "B")
        assert second is first
        assert len(self.board.cards["B"].dependencies) == 1

    def test_unknown_card(self):
        with pytest.raises(NotFoundError):
            self.graph.add_dependency("A", "Z")

    def test_invalid_strength(self):
        with pytest.raises(ValueError):
            self.graph.add_dependency("A", "B", strength=1.5)
        assert self.board.cards["B"].dependencies == []

    def test_remove_dependency(self):
        self.graph.add_dependency("A", "B")
        self.graph.add_dependency("A", "B", RelationshipType.RELATES_TO)
        assert self.graph.remove_dependency("A", "B", RelationshipType.RELATES_TO) == 1
        assert self.graph.remove_dependency("A", "B") == 1
        assert self.graph.remove_dependency("A", "B") == 0
        assert self.graph.remove_dependency("A", "nope") == 0

    def test_removing_an_edge_reopens_the_reverse_edge(self):
        self.graph.add_dependency("A", "B")
        self.graph.add_dependency("B", "C")
        with pytest.raises(CycleError):
            self.graph.add_dependency("C", "A")

        assert self.graph.remove_dependency("B", "C") == 1
        edge = self.graph.add_dependency("C", "A")

        assert edge in self.board.cards["A"].dependencies
        self.board.check_integrity()

    def test_queries(self):
        self.graph.add_dependency("A", "C")
        self.graph.add_dependency("B", "C")
        self.graph.add_dependency("A", "D")

        assert self.graph.predecessors("C") == ["A", "B"]
        assert self.graph.successors("A") == ["C", "D"]
        assert self.graph.are_connected("C", "A")
        assert not self.graph.are_connected("B", "D")
        assert len(self.graph.relationships_for("A")) == 2
        assert self.graph.topological_order() == ["A", "B", "C", "D"]
        self.graph.validate()


# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━
# Whole-board checks
# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━


def test_detect_cycles_reports_chain():
    cards = [card("A", "C"), card("B", "A"), card("C", "B")]
    assert detect_cycles(cards) == [["A", "C", "B", "A"]]


def test_detect_cycles_acyclic():
    assert detect_cycles([card("A"), card("B", "A")]) == []


def test_topological_order_prerequisites_first():
    cards = [card("C", "A", "B"), card("B", "A"), card("A")]
    assert topological_order(cards) == ["A", "B", "C"]


def test_topological_order_ignores_missing_prerequisites():
    assert topological_order([card("A", "ghost")]) == ["A"]


def test_topological_order_rejects_cycle():
    with pytest.raises(CycleError):
        topological_order([card("A", "B"), card("B", "A")])


def test_validate_missing_reference():
    with pytest.raises(DependencyValidationError) as exc:
        validate_dependencies([card("A"), card("B", "Z")])
    assert exc.value.kind == "missing"
    assert exc.value.card_ids == ["B", "Z"]


def test_validate_circular():
    with pytest.raises(DependencyValidationError) as exc:
        validate_dependencies([card("A", "B"), card("B", "A")])
    assert exc.value.kind == "circular"


def test_relationship_helpers():
    assert inverse_relationship(RelationshipType.BLOCKS) == RelationshipType.BLOCKED_BY
    assert inverse_relationship(RelationshipType.REQUIRED_BY) == RelationshipType.DEPENDS_ON
    assert inverse_relationship(RelationshipType.RELATES_TO) is None
    assert is_directional(RelationshipType.PARENT_OF)
    assert not is_directional(RelationshipType.SIMILAR_TO)
    assert relationship_label(RelationshipType.BLOCKED_BY) == "Blocked by"

    rel = create_relationship("A", "B", RelationshipType.BLOCKS, strength=0.5)
    assert rel.rel_id == "A-B-blocks"
    assert rel.is_blocking


def test_detect_cycles_reports_self_loop():
    assert detect_cycles([card("A", "A"), card("B", "A")]) == [["A", "A"]]
