import pytest

from forgeflow.errors import GraphValidationError
from forgeflow.graph import BoolPort, FlowGraph, LoopPort

from conftest import edge, node


def test_trigger_nodes_are_nodes_without_incoming_edges():
    graph = FlowGraph(
        [node("a", "trigger_manual"), node("b", "action_log"), node("c", "trigger_manual")],
        [edge("a", "b")],
    )
    assert [n.id for n in graph.trigger_nodes()] == ["a", "c"]


def test_dangling_targets_still_count_as_targets():
    graph = FlowGraph([node("a", "trigger_manual")], [edge("a", "ghost")])
    assert [n.id for n in graph.trigger_nodes()] == ["a"]
    assert [route.target for route in graph.outgoing("a")] == ["ghost"]


def test_ports_are_resolved_per_family():
    graph = FlowGraph(
        [node("if", "condition_if"), node("loop", "loop_foreach"), node("x", "action_log"), node("y", "action_log")],
        [edge("if", "x", "true"), edge("if", "y", "false"), edge("loop", "x", "loop"), edge("loop", "y", "done")],
    )
    assert [r.target for r in graph.outgoing("if", BoolPort.TRUE)] == ["x"]
    assert [r.target for r in graph.outgoing("if", BoolPort.FALSE)] == ["y"]
    assert [r.target for r in graph.outgoing("loop", LoopPort.DONE)] == ["y"]


def test_outgoing_keeps_edge_order():
    graph = FlowGraph(
        [node("a", "trigger_manual"), node("b", "action_log"), node("c", "action_log")],
        [edge("a", "c"), edge("a", "b")],
    )
    assert [r.target for r in graph.outgoing("a")] == ["c", "b"]


@pytest.mark.parametrize(
    "node_type, handle",
    [
        ("condition_if", "yes"),
        ("condition_if", None),
        ("loop_foreach", "true"),
        ("condition_try_catch", "finally"),
        ("condition_filter", "match "),
        ("condition_manual_approval", "approve"),
        ("condition_switch", None),
    ],
)
def test_invalid_ports_fail_at_load_time(node_type, handle):
    with pytest.raises(GraphValidationError):
        FlowGraph([node("a", node_type), node("b", "action_log")], [edge("a", "b", handle)])


def test_sequential_nodes_ignore_handles():
    graph = FlowGraph([node("a", "action_log"), node("b", "action_log")], [edge("a", "b", "whatever")])
    assert len(graph.outgoing("a")) == 1


def test_switch_accepts_any_case_name():
    graph = FlowGraph([node("s", "condition_switch"), node("b", "action_log")], [edge("s", "b", "case_42")])
    assert [r.target for r in graph.outgoing("s", "case_42")] == ["b"]


def test_duplicate_node_ids_are_rejected():
    with pytest.raises(GraphValidationError):
        FlowGraph([node("a", "action_log"), node("a", "action_log")], [])
