"""Impact analysis over imported EA Core dependency edges.

Deterministic, read-only traversal. `downstream` follows the dependency
direction (source -> target); `upstream` follows it in reverse. Only edges
imported from EA Core as dependencies take part, so authored diagram edges
never change the answer.

Risk-concentration indicators are descriptive only and never prune the
traversal.
"""
from __future__ import annotations

from collections import deque
from dataclasses import dataclass, field
from typing import Any, Dict, FrozenSet, Iterable, List, Optional, Tuple

import networkx as nx

from ea_studio.modeling.entities import EA_SOURCE_DEPENDENCY, Edge, Node

DOWNSTREAM = "downstream"
UPSTREAM = "upstream"
DEPTH_CHOICES = (1, 2, 3)


@dataclass(frozen=True)
class ImpactIndicators:
    in_degree_by_node_id: Dict[str, int] = field(default_factory=dict)
    out_degree_by_node_id: Dict[str, int] = field(default_factory=dict)
    max_fan_in: int = 0
    max_fan_out: int = 0
    high_fan_in_node_ids: FrozenSet[str] = frozenset()
    high_fan_out_node_ids: FrozenSet[str] = frozenset()
    chain_node_ids: FrozenSet[str] = frozenset()


@dataclass(frozen=True)
class ImpactResult:
    direction: str
    depth_limit: int
    start_node_ids: Tuple[str, ...]
    impacted_node_ids: FrozenSet[str]
    impacted_edge_ids: FrozenSet[str]
    depth_by_node_id: Dict[str, int]
    indicators: ImpactIndicators

    def to_dict(self) -> Dict[str, Any]:
        ind = self.indicators
        return {
            "direction": self.direction,
            "depthLimit": self.depth_limit,
            "startNodeIds": list(self.start_node_ids),
            "impactedNodeIds": sorted(self.impacted_node_ids),
            "impactedEdgeIds": sorted(self.impacted_edge_ids),
            "depthByNodeId": dict(sorted(self.depth_by_node_id.items())),
            "indicators": {
                "inDegreeByNodeId": dict(sorted(ind.in_degree_by_node_id.items())),
                "outDegreeByNodeId": dict(sorted(ind.out_degree_by_node_id.items())),
                "maxFanIn": ind.max_fan_in,
                "maxFanOut": ind.max_fan_out,
                "highFanInNodeIds": sorted(ind.high_fan_in_node_ids),
                "highFanOutNodeIds": sorted(ind.high_fan_out_node_ids),
                "chainNodeIds": sorted(ind.chain_node_ids),
            },
        }


def is_ea_dependency_edge(edge: Edge) -> bool:
    return bool(
        edge.source
        and edge.target
        and edge.metadata.is_external
        and edge.metadata.source_type == EA_SOURCE_DEPENDENCY
    )


def normalize_depth(value: Any) -> int:
    """Clamp to 1, 2 or 3; anything else falls back to 1."""
    if isinstance(value, str):
        value = value.strip()
        if not value.isdigit():
            return 1
        value = int(value)
    if isinstance(value, bool):
        return 1
    return int(value) if value in DEPTH_CHOICES else 1


def normalize_direction(value: Optional[str]) -> str:
    return UPSTREAM if value == UPSTREAM else DOWNSTREAM


def build_dependency_graph(nodes: Iterable[Node], edges: Iterable[Edge]) -> nx.MultiDiGraph:
    """Nodes of the diagram plus its EA dependency edges, keyed by edge id."""
    g = nx.MultiDiGraph()
    for node in nodes:
        if node.id:
            g.add_node(node.id)
    for edge in edges:
        if not is_ea_dependency_edge(edge):
            continue
        if edge.source not in g or edge.target not in g:
            continue
        g.add_edge(edge.source, edge.target, key=edge.id)
    return g


def _oriented(edge_source: str, edge_target: str, direction: str) -> Tuple[str, str]:
    if direction == DOWNSTREAM:
        return edge_source, edge_target
    return edge_target, edge_source


def _bfs_depths(g: nx.MultiDiGraph, start_ids: List[str], direction: str, depth_limit: int) -> Dict[str, int]:
    neighbours = g.successors if direction == DOWNSTREAM else g.predecessors
    depth_by_node_id: Dict[str, int] = {}
    queue = deque()
    for node_id in start_ids:
        if node_id in g and node_id not in depth_by_node_id:
            depth_by_node_id[node_id] = 0
            queue.append(node_id)

    while queue:
        current = queue.popleft()
        depth = depth_by_node_id[current]
        if depth >= depth_limit:
            continue
        for next_id in sorted(neighbours(current)):
            if next_id in depth_by_node_id and depth_by_node_id[next_id] <= depth + 1:
                continue
            depth_by_node_id[next_id] = depth + 1
            queue.append(next_id)
    return depth_by_node_id


def _indicators(g: nx.MultiDiGraph, impacted: FrozenSet[str]) -> ImpactIndicators:
    sub = g.subgraph(impacted)
    in_degree = {node_id: sub.in_degree(node_id) for node_id in impacted}
    out_degree = {node_id: sub.out_degree(node_id) for node_id in impacted}
    max_fan_in = max(in_degree.values(), default=0)
    max_fan_out = max(out_degree.values(), default=0)
    return ImpactIndicators(
        in_degree_by_node_id=in_degree,
        out_degree_by_node_id=out_degree,
        max_fan_in=max_fan_in,
        max_fan_out=max_fan_out,
        high_fan_in_node_ids=frozenset(n for n, d in in_degree.items() if max_fan_in > 0 and d == max_fan_in),
        high_fan_out_node_ids=frozenset(n for n, d in out_degree.items() if max_fan_out > 0 and d == max_fan_out),
        chain_node_ids=frozenset(n for n in impacted if in_degree[n] == 1 and out_degree[n] == 1),
    )


def compute_impact_analysis(
    nodes: Iterable[Node],
    edges: Iterable[Edge],
    selected_node_ids: Iterable[str],
    direction: Optional[str] = DOWNSTREAM,
    max_depth: Any = 1,
) -> ImpactResult:
    depth_limit = normalize_depth(max_depth)
    direction = normalize_direction(direction)
    start_ids = sorted({node_id for node_id in selected_node_ids or () if node_id})

    g = build_dependency_graph(nodes, edges)
    depth_by_node_id = _bfs_depths(g, start_ids, direction, depth_limit)
    impacted = frozenset(depth_by_node_id)

    impacted_edge_ids = set()
    for source, target, edge_id in g.edges(keys=True):
        origin, destination = _oriented(source, target, direction)
        from_depth = depth_by_node_id.get(origin)
        to_depth = depth_by_node_id.get(destination)
        if from_depth is None or to_depth is None:
            continue
        if to_depth == from_depth + 1 and from_depth < depth_limit:
            impacted_edge_ids.add(edge_id)

    return ImpactResult(
        direction=direction,
        depth_limit=depth_limit,
        start_node_ids=tuple(start_ids),
        impacted_node_ids=impacted,
        impacted_edge_ids=frozenset(impacted_edge_ids),
        depth_by_node_id=depth_by_node_id,
        indicators=_indicators(g, impacted),
    )


def explain_impact(result: ImpactResult, nodes: Iterable[Node]) -> Dict[str, Any]:
    """Human-readable summary of an impact result for panels and the CLI."""
    titles = {node.id: node.title or node.id for node in nodes}

    def named(ids: Iterable[str]) -> List[str]:
        return [titles.get(i, i) for i in sorted(ids)]

    counts: Dict[int, int] = {}
    for depth in result.depth_by_node_id.values():
        counts[depth] = counts.get(depth, 0) + 1
    ind = result.indicators
    return {
        "direction": result.direction,
        "depthLimit": result.depth_limit,
        "start": named(result.start_node_ids),
        "impactedCount": max(len(result.impacted_node_ids) - len(set(result.start_node_ids) & result.impacted_node_ids), 0),
        "countByDepth": {str(depth): counts[depth] for depth in sorted(counts)},
        "highFanIn": named(ind.high_fan_in_node_ids),
        "highFanOut": named(ind.high_fan_out_node_ids),
        "chains": named(ind.chain_node_ids),
    }
