from nodecanvas.core.ConnectionValidator import is_connection_allowed
from nodecanvas.core.GraphPrimitives import CanvasNode, WorkflowGraph
from nodecanvas.core.Types import ConnectionKind, Endpoint
from nodecanvas.noderegistry.NodeRegistry import NodeTypeDescriptor, NodeTypeRegistry

MAIN = ConnectionKind.MAIN
TOOL = ConnectionKind.AI_TOOL


def _registry() -> NodeTypeRegistry:
    return NodeTypeRegistry([
        NodeTypeDescriptor(name="source", outputs=["main"]),
        NodeTypeDescriptor(name="target", inputs=["main"], outputs=["main"]),
        NodeTypeDescriptor(name="tool", outputs=["ai_tool"]),
        NodeTypeDescriptor(name="onlyTypeA", outputs=["ai_tool"]),
        NodeTypeDescriptor(name="agent", inputs=["main", "ai_tool"], outputs=["main"]),
        NodeTypeDescriptor(name="filtered", inputs=[{"type": "ai_tool", "filter": {"nodes": ["onlyTypeA"]}}]),
        NodeTypeDescriptor(name="sink", inputs=[], outputs=["main"]),
    ])


class TestConnectionValidator:

    def setup_method(self):
        self.registry = _registry()
        self.graph = WorkflowGraph()

    def _node(self, name, node_type, add=True):
        node = CanvasNode(name, node_type, position=[0, 0])
        if add:
            self.graph.add_node(node)
        return node

    def _allowed(self, source, target, source_endpoint, target_endpoint):
        return is_connection_allowed(source, target, source_endpoint, target_endpoint, self.registry, self.graph)

    def test_matching_kinds(self):
        """A main output into a main input is allowed"""
        s = self._node("S", "source")
        t = self._node("T", "target")
        assert self._allowed(s, t, Endpoint("S", MAIN, 0), Endpoint("T", MAIN, 0)) is True

    def test_kind_mismatch(self):
        """Ports of different kinds never connect, swapping to matching kinds does"""
        tool = self._node("Tool", "tool")
        agent = self._node("Agent", "agent")
        assert self._allowed(tool, agent, Endpoint("Tool", TOOL, 0), Endpoint("Agent", MAIN, 0)) is False
        assert self._allowed(tool, agent, Endpoint("Tool", TOOL, 0), Endpoint("Agent", TOOL, 0)) is True

    def test_self_connection_always_allowed(self):
        """A node wired to itself passes regardless of its descriptor"""
        ghost = self._node("Ghost", "unknownType", add=False)
        assert self._allowed(ghost, ghost, Endpoint("Ghost", TOOL, 5), Endpoint("Ghost", MAIN, 9)) is True

    def test_missing_descriptor(self):
        s = self._node("S", "source")
        unknown = self._node("U", "unknownType")
        assert self._allowed(s, unknown, Endpoint("S", MAIN, 0), Endpoint("U", MAIN, 0)) is False
        assert self._allowed(unknown, s, Endpoint("U", MAIN, 0), Endpoint("S", MAIN, 0)) is False

    def test_target_without_inputs(self):
        s = self._node("S", "source")
        sink = self._node("Sink", "sink")
        assert self._allowed(s, sink, Endpoint("S", MAIN, 0), Endpoint("Sink", MAIN, 0)) is False

    def test_target_not_in_graph(self):
        """A target that is addressable but not in the live graph is rejected"""
        s = self._node("S", "source")
        detached = self._node("T", "target", add=False)
        assert self._allowed(s, detached, Endpoint("S", MAIN, 0), Endpoint("T", MAIN, 0)) is False

    def test_source_lacks_kind(self):
        s = self._node("S", "source")
        agent = self._node("Agent", "agent")
        assert self._allowed(s, agent, Endpoint("S", TOOL, 0), Endpoint("Agent", TOOL, 0)) is False

    def test_index_out_of_range(self):
        s = self._node("S", "source")
        t = self._node("T", "target")
        assert self._allowed(s, t, Endpoint("S", MAIN, 1), Endpoint("T", MAIN, 0)) is False
        assert self._allowed(s, t, Endpoint("S", MAIN, 0), Endpoint("T", MAIN, 1)) is False
        assert self._allowed(s, t, Endpoint("S", MAIN, -1), Endpoint("T", MAIN, 0)) is False

    def test_filter_enforcement(self):
        """Only source types on the input's allow-list may connect"""
        allowed_source = self._node("A", "onlyTypeA")
        other_source = self._node("Tool", "tool")
        filtered = self._node("F", "filtered")

        assert self._allowed(allowed_source, filtered, Endpoint("A", TOOL, 0), Endpoint("F", TOOL, 0)) is True
        assert self._allowed(other_source, filtered, Endpoint("Tool", TOOL, 0), Endpoint("F", TOOL, 0)) is False

    def test_versioned_descriptor(self):
        """The node's own type version decides which ports exist"""
        self.registry.register(NodeTypeDescriptor(name="switch", version=1, inputs=["main"]))
        self.registry.register(NodeTypeDescriptor(name="switch", version=2, inputs=["main", "ai_tool"]))
        tool = self._node("Tool", "tool")
        old = CanvasNode("Old", "switch", type_version=1)
        new = CanvasNode("New", "switch", type_version=2)
        self.graph.add_node(old)
        self.graph.add_node(new)

        assert self._allowed(tool, old, Endpoint("Tool", TOOL, 0), Endpoint("Old", TOOL, 0)) is False
        assert self._allowed(tool, new, Endpoint("Tool", TOOL, 0), Endpoint("New", TOOL, 0)) is True
