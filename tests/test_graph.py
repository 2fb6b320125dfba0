"""Tests for flow graph construction and validation."""
import pytest

from flowsim.models.graph import FlowDiagram, FlowLink, FlowNode
from flowsim.simulation.graph import InvalidGraphError, build_graph, from_diagram


def _node(node_id: str, category: str = "income", value: float = 0.0) -> FlowNode:
    return FlowNode(id=node_id, category=category, value=value)


def _link(source: int, target: int, value: float = 1.0) -> FlowLink:
    return FlowLink(source=source, target=target, value=value)


def test_build_graph_outgoing_in_declared_order():
    nodes = [_node("a"), _node("b"), _node("c")]
    links = [_link(0, 2), _link(0, 1), _link(1, 2)]
    graph = build_graph(nodes, links)
    assert graph.outgoing == ((0, 1), (2,), ())
    assert graph.source == 0
    assert graph.is_terminal(2)
    assert not graph.is_terminal(0)


def test_default_source_is_first_node_without_incoming_links():
    nodes = [_node("x"), _node("root"), _node("y")]
    links = [_link(1, 0), _link(0, 2)]
    graph = build_graph(nodes, links)
    assert graph.source == 1


def test_explicit_source_respected():
    nodes = [_node("a"), _node("b")]
    graph = build_graph(nodes, [_link(0, 1)], source=1)
    assert graph.source == 1


def test_empty_graph_rejected():
    with pytest.raises(InvalidGraphError):
        build_graph([], [])


def test_out_of_range_target_rejected():
    with pytest.raises(InvalidGraphError, match="out of range"):
        build_graph([_node("a"), _node("b")], [_link(0, 5)])


def test_negative_source_index_rejected():
    with pytest.raises(InvalidGraphError):
        build_graph([_node("a"), _node("b")], [_link(-1, 1)])


def test_out_of_range_designated_source_rejected():
    with pytest.raises(InvalidGraphError):
        build_graph([_node("a")], [], source=3)


def test_closed_cycle_rejected():
    # a -> b -> c -> b : b and c can never reach a terminal
    nodes = [_node("a"), _node("b"), _node("c")]
    links = [_link(0, 1), _link(1, 2), _link(2, 1)]
    with pytest.raises(InvalidGraphError, match="cannot reach any terminal"):
        build_graph(nodes, links)


def test_cycle_with_exit_is_allowed():
    # a -> b -> a, b -> c (terminal)
    nodes = [_node("a"), _node("b"), _node("c")]
    links = [_link(0, 1), _link(1, 0), _link(1, 2)]
    graph = build_graph(nodes, links, source=0)
    assert graph.outgoing[1] == (1, 2)


def test_unreachable_trap_does_not_block_construction():
    # Trap d <-> e is not reachable from the source a
    nodes = [_node("a"), _node("b"), _node("d"), _node("e")]
    links = [_link(0, 1), _link(2, 3), _link(3, 2)]
    graph = build_graph(nodes, links, source=0)
    assert graph.source == 0


def test_link_sign_negative_into_expense():
    nodes = [_node("rev"), _node("cost", "expense"), _node("profit", "equity"), _node("debt", "liability")]
    links = [_link(0, 1), _link(0, 2), _link(0, 3)]
    graph = build_graph(nodes, links)
    assert graph.link_sign(0) == -1.0
    assert graph.link_sign(1) == 1.0
    assert graph.link_sign(2) == -1.0


def test_from_diagram_and_inputs_untouched():
    diagram = FlowDiagram(
        nodes=[{"id": "rev"}, {"id": "profit", "category": "equity"}],
        links=[{"source": 0, "target": 1, "value": 10.0}],
    )
    before = diagram.model_dump()
    graph = from_diagram(diagram)
    assert graph.nodes[0].name == "rev"
    assert diagram.model_dump() == before
