"""
Tests for the campaign flow graph walker.
"""

from teleflow.services.campaigns import FlowGraphWalker, find_next_of_type, find_upstream_of_type
from tests.factories import FlowDefinitionFactory


def node(node_id, node_type):
    return {"id": node_id, "type": node_type, "data": {}}


def edge(source, target):
    return {"source": source, "target": target}


class TestFindNextOfType:
    def test_linear_chain(self):
        flow = FlowDefinitionFactory()

        wait = find_next_of_type(flow["nodes"], flow["edges"], "action-1", "wait")
        upsell = find_next_of_type(flow["nodes"], flow["edges"], "wait-1", "action")

        assert wait.id == "wait-1"
        assert upsell.id == "action-2"

    def test_start_node_is_excluded(self):
        nodes = [node("a1", "action"), node("a2", "action")]
        assert find_next_of_type(nodes, [edge("a1", "a2")], "a1", "action").id == "a2"

    def test_edge_order_decides_between_branches(self):
        nodes = [node("logic", "logic"), node("w1", "wait"), node("w2", "wait")]
        edges = [edge("logic", "w2"), edge("logic", "w1")]
        assert find_next_of_type(nodes, edges, "logic", "wait").id == "w2"

    def test_depth_first_before_later_siblings(self):
        nodes = [node("s", "logic"), node("x", "logic"), node("deep", "channel"), node("near", "channel")]
        edges = [edge("s", "x"), edge("s", "near"), edge("x", "deep")]
        assert find_next_of_type(nodes, edges, "s", "channel").id == "deep"

    def test_cycle_terminates(self):
        nodes = [node("a", "action"), node("b", "logic"), node("c", "logic")]
        edges = [edge("a", "b"), edge("b", "c"), edge("c", "a"), edge("c", "b")]
        assert find_next_of_type(nodes, edges, "a", "wait") is None

    def test_cycle_still_finds_match(self):
        nodes = [node("a", "logic"), node("b", "logic"), node("w", "wait")]
        edges = [edge("a", "b"), edge("b", "a"), edge("b", "w")]
        assert find_next_of_type(nodes, edges, "a", "wait").id == "w"

    def test_unknown_start_or_no_match(self):
        flow = FlowDefinitionFactory()
        assert find_next_of_type(flow["nodes"], flow["edges"], "missing", "wait") is None
        assert find_next_of_type(flow["nodes"], flow["edges"], "channel-2", "wait") is None


class TestUpstreamAndPositionFree:
    def test_find_upstream(self):
        flow = FlowDefinitionFactory()
        segment = find_upstream_of_type(flow["nodes"], flow["edges"], "wait-1", "segment")
        nearest_action = find_upstream_of_type(flow["nodes"], flow["edges"], "wait-1", "action")

        assert segment.id == "segment-1"
        assert nearest_action.id == "action-1"

    def test_first_of_type_with_exclusion(self):
        flow = FlowDefinitionFactory()
        walker = FlowGraphWalker(flow["nodes"], flow["edges"])

        assert walker.first_of_type("action").id == "action-1"
        assert walker.first_of_type("action", exclude=["action-1"]).id == "action-2"
        assert walker.first_of_type("trigger", exclude=["trigger-1"]) is None
