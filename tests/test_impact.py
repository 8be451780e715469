from __future__ import annotations

from ea_studio.impact.analysis import compute_impact_analysis, explain_impact, normalize_depth
from ea_studio.modeling.entities import Edge, EntityMetadata, Node


# ─── Helpers ──────────────────────────────────────────────────────────────────

def _nodes(*ids):
    return [Node(id=i, title=i.upper()) for i in ids]


def _dep(edge_id, source, target):
    return Edge(
        id=edge_id,
        source=source,
        target=target,
        edge_type_id="rel.dependsOn",
        metadata=EntityMetadata(source="EA_CORE", source_type="Dependency", source_id=edge_id),
    )


def _authored(edge_id, source, target):
    return Edge(id=edge_id, source=source, target=target, edge_type_id="rel.dependsOn")


def _tree():
    return _nodes("a", "b", "c", "d"), [_dep("ab", "a", "b"), _dep("bc", "b", "c"), _dep("bd", "b", "d")]


# ─── Traversal ────────────────────────────────────────────────────────────────

def test_downstream_depth_two():
    nodes, edges = _tree()
    result = compute_impact_analysis(nodes, edges, ["a"], "downstream", 2)
    assert result.depth_by_node_id == {"a": 0, "b": 1, "c": 2, "d": 2}
    assert result.impacted_edge_ids == {"ab", "bc", "bd"}


def test_downstream_depth_one_stops_early():
    nodes, edges = _tree()
    result = compute_impact_analysis(nodes, edges, ["a"], "downstream", 1)
    assert result.depth_by_node_id == {"a": 0, "b": 1}
    assert result.impacted_edge_ids == {"ab"}


def test_upstream_reverses_edges():
    nodes, edges = _tree()
    result = compute_impact_analysis(nodes, edges, ["c"], "upstream", 3)
    assert result.depth_by_node_id == {"c": 0, "b": 1, "a": 2}
    assert result.impacted_edge_ids == {"bc", "ab"}
    assert result.direction == "upstream"


def test_authored_edges_are_ignored():
    nodes = _nodes("a", "b", "c")
    edges = [_dep("ab", "a", "b"), _authored("bc", "b", "c")]
    result = compute_impact_analysis(nodes, edges, ["a"], "downstream", 3)
    assert result.impacted_node_ids == {"a", "b"}


def test_shortest_path_edges_only():
    nodes = _nodes("a", "b", "c")
    edges = [_dep("ab", "a", "b"), _dep("bc", "b", "c"), _dep("ac", "a", "c")]
    result = compute_impact_analysis(nodes, edges, ["a"], "downstream", 3)
    assert result.depth_by_node_id == {"a": 0, "b": 1, "c": 1}
    assert result.impacted_edge_ids == {"ab", "ac"}


def test_start_ids_sorted_and_deduplicated():
    nodes, edges = _tree()
    result = compute_impact_analysis(nodes, edges, ["c", "a", "a", "", "zz"], "downstream", 1)
    assert result.start_node_ids == ("a", "c", "zz")
    assert "zz" not in result.impacted_node_ids
    assert result.depth_by_node_id["c"] == 0


def test_invalid_depth_and_direction_fall_back():
    assert normalize_depth(0) == 1
    assert normalize_depth(4) == 1
    assert normalize_depth("3") == 3
    assert normalize_depth(2.5) == 1
    assert normalize_depth(None) == 1
    nodes, edges = _tree()
    result = compute_impact_analysis(nodes, edges, ["a"], "sideways", 7)
    assert result.direction == "downstream"
    assert result.depth_limit == 1


# ─── Indicators ───────────────────────────────────────────────────────────────

def test_indicators_over_impacted_subgraph():
    nodes, edges = _tree()
    result = compute_impact_analysis(nodes, edges, ["a"], "downstream", 2)
    ind = result.indicators
    assert ind.out_degree_by_node_id == {"a": 1, "b": 2, "c": 0, "d": 0}
    assert ind.max_fan_out == 2
    assert ind.high_fan_out_node_ids == {"b"}
    assert ind.max_fan_in == 1
    assert ind.high_fan_in_node_ids == {"b", "c", "d"}
    assert ind.chain_node_ids == frozenset()


def test_chain_nodes_and_ties():
    nodes = _nodes("a", "b", "c")
    edges = [_dep("ab", "a", "b"), _dep("bc", "b", "c")]
    result = compute_impact_analysis(nodes, edges, ["a"], "downstream", 3)
    assert result.indicators.chain_node_ids == {"b"}
    assert result.indicators.high_fan_out_node_ids == {"a", "b"}


def test_no_edges_means_no_high_fan_sets():
    result = compute_impact_analysis(_nodes("a"), [], ["a"], "downstream", 1)
    assert result.indicators.max_fan_in == 0
    assert result.indicators.high_fan_in_node_ids == frozenset()
    assert result.indicators.high_fan_out_node_ids == frozenset()


def test_explain_impact_summary():
    nodes, edges = _tree()
    result = compute_impact_analysis(nodes, edges, ["a"], "downstream", 2)
    summary = explain_impact(result, nodes)
    assert summary["start"] == ["A"]
    assert summary["impactedCount"] == 3
    assert summary["countByDepth"] == {"0": 1, "1": 1, "2": 2}
    assert summary["highFanOut"] == ["B"]
    assert result.to_dict()["impactedNodeIds"] == ["a", "b", "c", "d"]
