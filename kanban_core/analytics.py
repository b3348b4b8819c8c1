"""
Graph analytics over cards and their relationships.

Everything here is derived and stateless: degree, density, hubs, isolated
nodes, weakly-connected clusters and an approximate critical path.

The critical path is a ranking heuristic (cards with the most inbound
blocks/depends_on edges). It does not propagate durations or earliest
starts, and total_duration is a flat per-card estimate.
"""
from collections import Counter
from dataclasses import asdict, dataclass, field
from typing import Any, Dict, Iterable, List, Mapping, Tuple

import networkx as nx

from .schema import CRITICAL_PATH_TYPES, Relationship, RelationshipType

DEFAULT_HUB_COUNT = 5
DEFAULT_PATH_SIZE = 5
DEFAULT_BOTTLENECKS = 2
DEFAULT_DAYS_PER_CARD = 5


@dataclass
class HubNode:
    card_id: str
    degree: int


@dataclass
class GraphStats:
    total_nodes: int
    total_edges: int
    average_degree: float
    density: float
    clusters: int
    isolated_nodes: List[str] = field(default_factory=list)
    hub_nodes: List[HubNode] = field(default_factory=list)
    most_common_relation_type: RelationshipType = RelationshipType.RELATES_TO

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data["most_common_relation_type"] = self.most_common_relation_type.value
        return data


@dataclass
class CriticalPath:
    card_ids: List[str] = field(default_factory=list)
    relationship_ids: List[str] = field(default_factory=list)
    total_duration: int = 0      # estimate: len(card_ids) * days_per_card
    bottlenecks: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


# ── Boundary normalization ───────────────────────────────────

def _node_id(node: Any) -> str:
    if isinstance(node, str):
        return node
    if isinstance(node, Mapping):
        return str(node.get("id") or node.get("card_id"))
    return getattr(node, "card_id", None) or getattr(node, "id")


def _edge_parts(edge: Any) -> Tuple[str, str, RelationshipType, str]:
    """(source, target, type, id) of a Relationship or a plain edge mapping."""
    if isinstance(edge, Relationship):
        return edge.source_id, edge.target_id, edge.type, edge.rel_id

    source = edge.get("source_id", edge.get("source"))
    target = edge.get("target_id", edge.get("target"))
    source, target = _node_id(source), _node_id(target)
    rel_type = RelationshipType.from_str(edge.get("type") or RelationshipType.RELATES_TO.value)
    rel_id = str(edge.get("id") or f"{source}-{target}-{rel_type.value}")
    return source, target, rel_type, rel_id


# ── Degree-based metrics ─────────────────────────────────────

def degrees(edges: Iterable[Any]) -> Dict[str, int]:
    """Edges touching each node, either direction."""
    counts: Dict[str, int] = {}
    for edge in edges:
        source, target, _, _ = _edge_parts(edge)
        counts[source] = counts.get(source, 0) + 1
        counts[target] = counts.get(target, 0) + 1
    return counts


def degree(node_id: str, edges: Iterable[Any]) -> int:
    return degrees(edges).get(node_id, 0)


def density(node_count: int, edge_count: int) -> float:
    """edge_count / (n(n-1)/2); 0 for fewer than two nodes."""
    if node_count < 2:
        return 0.0
    return edge_count / (node_count * (node_count - 1) / 2)


def hub_nodes(edges: Iterable[Any], k: int = DEFAULT_HUB_COUNT) -> List[HubNode]:
    """Top-k nodes by degree, ties by id ascending."""
    ranked = sorted(degrees(edges).items(), key=lambda item: (-item[1], item[0]))
    return [HubNode(card_id=cid, degree=deg) for cid, deg in ranked[:k]]


def isolated_nodes(nodes: Iterable[Any], edges: Iterable[Any]) -> List[str]:
    connected = degrees(edges)
    return [nid for nid in (_node_id(n) for n in nodes) if nid not in connected]


def count_clusters(nodes: Iterable[Any], edges: Iterable[Any]) -> int:
    """Weakly-connected components with at least two nodes."""
    graph = nx.Graph()
    graph.add_nodes_from(_node_id(n) for n in nodes)
    for edge in edges:
        source, target, _, _ = _edge_parts(edge)
        graph.add_edge(source, target)
    return sum(1 for component in nx.connected_components(graph) if len(component) >= 2)


def calculate_graph_stats(
    nodes: Iterable[Any],
    edges: Iterable[Any],
    hub_count: int = DEFAULT_HUB_COUNT,
) -> GraphStats:
    """
    Summary statistics for a relationship graph.

    Args:
        nodes: card ids, Cards, or mappings with an "id"
        edges: Relationships or mappings with source/target (ids or nodes) and type
        hub_count: how many hub nodes to report
    """
    nodes = list(nodes)
    edges = list(edges)
    total_nodes = len(nodes)
    total_edges = len(edges)

    deg = degrees(edges)
    average_degree = sum(deg.values()) / total_nodes if total_nodes else 0.0

    type_counts = Counter(_edge_parts(e)[2] for e in edges)
    order = list(RelationshipType)
    most_common = RelationshipType.RELATES_TO
    if type_counts:
        most_common = min(type_counts, key=lambda t: (-type_counts[t], order.index(t)))

    return GraphStats(
        total_nodes=total_nodes,
        total_edges=total_edges,
        average_degree=average_degree,
        density=density(total_nodes, total_edges),
        clusters=count_clusters(nodes, edges),
        isolated_nodes=isolated_nodes(nodes, edges),
        hub_nodes=hub_nodes(edges, hub_count),
        most_common_relation_type=most_common,
    )


def find_critical_path(
    cards: Iterable[Any],
    relationships: Iterable[Any],
    k: int = DEFAULT_PATH_SIZE,
    bottleneck_count: int = DEFAULT_BOTTLENECKS,
    days_per_card: int = DEFAULT_DAYS_PER_CARD,
) -> CriticalPath:
    """
    Approximate critical path: cards ranked by inbound blocking pressure.

    Only blocks/depends_on edges between cards present in `cards` count.
    Members are the top-k by inbound count (ties by id), bottlenecks the
    first bottleneck_count of them. Not a schedule computation.
    """
    known = {_node_id(c) for c in cards}
    edges = [_edge_parts(r) for r in relationships]
    edges = [e for e in edges if e[0] in known and e[1] in known]

    inbound: Dict[str, int] = {}
    for _, target, rel_type, _ in edges:
        if rel_type in CRITICAL_PATH_TYPES:
            inbound[target] = inbound.get(target, 0) + 1

    ranked = sorted(inbound.items(), key=lambda item: (-item[1], item[0]))
    members = [cid for cid, _ in ranked[:k]]
    member_set = set(members)

    relationship_ids = [
        rel_id for source, target, _, rel_id in edges
        if source in member_set or target in member_set
    ]

    return CriticalPath(
        card_ids=members,
        relationship_ids=relationship_ids,
        total_duration=len(members) * days_per_card,
        bottlenecks=members[:bottleneck_count],
    )
