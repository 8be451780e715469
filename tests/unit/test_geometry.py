"""Unit tests for the nesting geometry and containment helpers used by transitions."""
from __future__ import annotations

from ea_studio.modeling.entities import Node, Position
from ea_studio.modeling.model import create_component_node, create_group_node
from ea_studio.store.transitions import absolute_position, containment_error, is_descendant


def _chain():
    root = Node(id="root", kind="group", position=Position(x=100, y=100))
    mid = Node(id="mid", kind="group", position=Position(x=10, y=20), parent_node="root")
    leaf = Node(id="leaf", position=Position(x=1, y=2), parent_node="mid")
    return {n.id: n for n in (root, mid, leaf)}


def test_absolute_position_walks_ancestors():
    nodes = _chain()
    assert absolute_position(nodes["leaf"], nodes) == Position(x=111, y=122)
    assert absolute_position(nodes["root"], nodes) == Position(x=100, y=100)


def test_absolute_position_survives_cycles_and_gaps():
    a = Node(id="a", kind="group", position=Position(x=1, y=1), parent_node="b")
    b = Node(id="b", kind="group", position=Position(x=2, y=2), parent_node="a")
    orphan = Node(id="o", position=Position(x=5, y=5), parent_node="gone")
    nodes = {"a": a, "b": b, "o": orphan}
    assert absolute_position(a, nodes) == Position(x=3, y=3)
    assert absolute_position(orphan, nodes) == Position(x=5, y=5)


def test_is_descendant():
    nodes = _chain()
    assert is_descendant(nodes, "leaf", "root")
    assert not is_descendant(nodes, "root", "leaf")
    assert not is_descendant(nodes, "missing", "root")


def test_containment_error(registry, asymmetric_registry):
    category = create_group_node(registry, "ea.catDept")
    capability = create_group_node(registry, "ea.capability")
    process = create_component_node(registry, "ea.businessProcess")
    assert containment_error(registry, category, capability) is None
    assert "cannot contain" in containment_error(registry, capability, category)
    assert "component type" in containment_error(registry, category, process)
    assert containment_error(registry, process, capability) == "Nodes can only be nested within groups."

    sub = create_group_node(asymmetric_registry, "ea.subCapability")
    assert containment_error(asymmetric_registry, category, sub) is not None

