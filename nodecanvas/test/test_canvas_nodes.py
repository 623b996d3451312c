import asyncio

import pytest

from nodecanvas.core.CanvasOperations import CanvasOperations, get_unique_node_name
from nodecanvas.core.Errors import ExecutionNotFoundError
from nodecanvas.core.GraphPrimitives import WorkflowGraph
from nodecanvas.core.History import HistoryService
from nodecanvas.core.Interface import ICredentialSource, IExecutionSource, INotifier
from nodecanvas.core.Types import CanvasConnection, ConnectionKind, Endpoint
from nodecanvas.noderegistry.NodeRegistry import NodeTypeRegistry
from nodecanvas.server.node_definitions import register_demo_node_types

MAIN = ConnectionKind.MAIN


class MockNotifier(INotifier):
    def __init__(self):
        self.messages = []

    def show_message(self, type, title, message=""):
        self.messages.append((type, title, message))


class MockCredentials(ICredentialSource):
    def __init__(self, by_type=None):
        self.by_type = by_type or {}

    def usable_credentials(self, credential_type):
        return self.by_type.get(credential_type, [])


class MockExecutions(IExecutionSource):
    def __init__(self, executions=None, error=None):
        self.executions = executions or {}
        self.error = error

    async def fetch_execution(self, execution_id):
        if self.error is not None:
            raise self.error
        return self.executions.get(execution_id)


class BaseCanvasTest:

    def setup_method(self):
        self.registry = register_demo_node_types(NodeTypeRegistry())
        self.graph = WorkflowGraph()
        self.history = HistoryService()
        self.notifier = MockNotifier()
        self.credentials = MockCredentials()
        self.executions = MockExecutions()
        self.events = []
        self.ops = CanvasOperations(
            graph=self.graph,
            registry=self.registry,
            history=self.history,
            credentials=self.credentials,
            executions=self.executions,
            notifier=self.notifier,
            on_change=self.events.append,
        )

    def _add(self, node_type, **fields):
        added = self.ops.add_nodes([dict(type=node_type, **fields)])
        return added[0] if added else None


class TestAddNodes(BaseCanvasTest):

    def test_defaults_from_catalog(self):
        """Name, latest version, parameter defaults and position all come from the catalog"""
        node = self._add("set")

        assert node.name == "Edit Fields"
        assert node.type_version == 3
        assert node.parameters == {"values": {}}
        assert node.position == [0, 0]
        assert self.graph.state_is_dirty is True
        assert self.graph.is_node_pristine(node.name) is True
        assert self.events[0]["type"] == "NODE_ADDED"

    def test_unique_names(self):
        first, second, third = self.ops.add_nodes([{"type": "set"}, {"type": "set"}, {"type": "set"}])

        assert [first.name, second.name, third.name] == ["Edit Fields", "Edit Fields1", "Edit Fields2"]

    def test_consecutive_nodes_step_right(self):
        """Each node without a position lands one step to the right of the previous one"""
        first, second = self.ops.add_nodes([{"type": "set"}, {"type": "noOp"}], position=[0, 0])
        assert second.position == [first.position[0] + 208, first.position[1]]

    def test_unsupported_version_uses_latest(self):
        node = self._add("set", typeVersion=9)
        assert node.type_version == 3

    def test_unknown_type_gets_placeholder(self):
        """Types missing from the catalog are still added, with no ports"""
        node = self._add("custom.unknown")

        assert node.name == "custom.unknown"
        assert node.type_version == 1
        assert self.graph.get_node_by_id(node.id) is node

    def test_keep_pristine(self):
        self.ops.add_nodes([{"type": "set"}], keep_pristine=True)
        assert self.graph.state_is_dirty is False

    def test_auto_connect_main(self):
        """A node added from an output handle is wired from that output"""
        anchor = self._add("set", name="Anchor")
        self.ops.editor.last_interacted_with_node_id = anchor.id
        self.ops.editor.last_interacted_with_node_handle = "outputs/main/0"

        node = self._add("noOp")

        assert self.graph.has_connection(Endpoint("Anchor", MAIN, 0), Endpoint(node.name, MAIN, 0))

    def test_auto_connect_configuration(self):
        """A sub-node added from a configuration input feeds into the anchor"""
        agent = self._add("agent")
        self.ops.editor.last_interacted_with_node_id = agent.id
        self.ops.editor.last_interacted_with_node_handle = "inputs/ai_tool/0"

        tool = self._add("toolCode")

        tool_kind = ConnectionKind.AI_TOOL
        assert self.graph.has_connection(Endpoint(tool.name, tool_kind, 0), Endpoint(agent.name, tool_kind, 0))
        assert tool.position[1] > agent.position[1]

    def test_auto_connect_from_main_input(self):
        """A node added from a main input becomes the anchor's predecessor and sits left of it"""
        anchor = self._add("set", name="Anchor")
        self.ops.editor.last_interacted_with_node_id = anchor.id
        self.ops.editor.last_interacted_with_node_handle = "inputs/main/0"

        node = self._add("noOp")

        assert self.graph.connection_pairs() == [(Endpoint(node.name, MAIN, 0), Endpoint("Anchor", MAIN, 0))]
        assert node.position[0] < anchor.position[0]

    def test_auto_connect_from_configuration_output(self):
        """A node added from a sub-node's output is fed by that output whatever its kind"""
        tool = self._add("toolCode", name="Tool")
        self.ops.editor.last_interacted_with_node_id = tool.id
        self.ops.editor.last_interacted_with_node_handle = "outputs/ai_tool/0"

        agent = self._add("agent")

        tool_kind = ConnectionKind.AI_TOOL
        assert self.graph.connection_pairs() == [(Endpoint("Tool", tool_kind, 0), Endpoint(agent.name, tool_kind, 0))]
        assert agent.position[0] > tool.position[0]

    def test_auto_add_skips_connection(self):
        anchor = self._add("set", name="Anchor")
        self.ops.editor.last_interacted_with_node_id = anchor.id
        self.ops.editor.last_interacted_with_node_handle = "outputs/main/0"

        self.ops.add_nodes([{"type": "noOp"}], is_auto_add=True)

        assert self.graph.connection_pairs() == []

    def test_single_credential_assigned(self):
        self.credentials.by_type["openAiApi"] = [{"id": "1", "name": "OpenAI account"}]
        node = self._add("lmChatOpenAi")
        assert node.credentials == {"openAiApi": {"id": "1", "name": "OpenAI account"}}

    def test_ambiguous_credentials_left_unset(self):
        """With more than one candidate the user has to pick"""
        self.credentials.by_type["openAiApi"] = [{"id": "1", "name": "a"}, {"id": "2", "name": "b"}]
        node = self._add("lmChatOpenAi")
        assert not node.credentials

    def test_max_nodes(self):
        """Going over a type's limit shows an error and skips that node only"""
        self._add("manualTrigger")
        added = self.ops.add_nodes([{"type": "manualTrigger"}, {"type": "set"}])

        assert [n.type for n in added] == ["set"]
        assert self.notifier.messages[0][0] == "error"
        assert self.notifier.messages[0][1] == "Could not add node"
        assert self.graph.node_count_by_type("manualTrigger") == 1

    def test_webhook_path(self):
        """Path based triggers get their webhook id as default path"""
        node = self._add("webhook")

        assert node.webhook_id
        assert node.parameters["path"] == node.webhook_id
        assert node.type_version == 2

    def test_explicit_webhook_path_kept(self):
        node = self._add("webhook", parameters={"path": "orders"})
        assert node.parameters["path"] == "orders"

    def test_open_detail(self):
        node = self.ops.add_nodes([{"type": "set"}], open_detail=True)[0]
        assert self.ops.editor.active_node_name == node.name

        self.ops.editor.active_node_name = None
        self.ops.add_nodes([{"type": "stickyNote"}], open_detail=True)
        assert self.ops.editor.active_node_name is None

    def test_history_bulk(self):
        self.ops.add_nodes([{"type": "set"}, {"type": "noOp"}], track_history=True)
        assert len(self.history.undo_stack) == 1
        assert len(self.history.undo_stack[0].commands) == 2


class TestNodeEdits(BaseCanvasTest):

    def test_delete_node_bridges(self):
        """Deleting a node in a chain reconnects its neighbours"""
        a, b, c = self.ops.add_nodes([{"type": "set", "name": n} for n in "ABC"])
        self.ops.create_connection((Endpoint("A", MAIN, 0), Endpoint("B", MAIN, 0)))
        self.ops.create_connection((Endpoint("B", MAIN, 0), Endpoint("C", MAIN, 0)))
        self.ops.editor.last_interacted_with_node_id = b.id

        self.ops.delete_node(b.id)

        assert self.graph.get_node_by_id(b.id) is None
        assert self.graph.connection_pairs() == [(Endpoint("A", MAIN, 0), Endpoint("C", MAIN, 0))]
        assert self.ops.editor.last_interacted_with_node_id is None
        assert self.events[-1] == {"type": "NODE_REMOVED", "nodeId": b.id, "name": "B"}

    def test_delete_missing_node(self):
        """Deleting ids that are gone leaves the workflow untouched"""
        a, b = self.ops.add_nodes([{"type": "set", "name": n} for n in "AB"])
        self.ops.create_connection((Endpoint("A", MAIN, 0), Endpoint("B", MAIN, 0)))
        self.graph.set_state_dirty(False)
        undo = list(self.history.undo_stack)
        events = len(self.events)

        self.ops.delete_node("missing", track_history=True)
        self.ops.delete_node("missing", track_history=True)
        assert self.ops.delete_connection(CanvasConnection(
            source="missing", target=b.id, sourceHandle="outputs/main/0", targetHandle="inputs/main/0",
        ), track_history=True) is False

        assert self.graph.state_is_dirty is False
        assert {n.id for n in self.graph.all_nodes()} == {a.id, b.id}
        assert self.graph.connection_pairs() == [(Endpoint("A", MAIN, 0), Endpoint("B", MAIN, 0))]
        assert self.history.undo_stack == undo
        assert len(self.events) == events

    def test_rename(self):
        node = self._add("set", name="Old")
        self.ops.set_node_active(node.id)
        self.ops.editor.selected_node_names = {"Old"}

        assert self.ops.rename_node("Old", "New", track_history=True) is True

        assert node.name == "New"
        assert self.ops.editor.active_node_name == "New"
        assert self.ops.editor.selected_node_names == {"New"}
        assert self.events[-1] == {"type": "NODE_RENAMED", "oldName": "Old", "newName": "New"}

    def test_rename_conflict(self):
        """A taken name shows an error and changes nothing"""
        self._add("set", name="A")
        self._add("set", name="B")

        assert self.ops.rename_node("A", "B", track_history=True) is False

        assert self.notifier.messages[-1][1] == "Node name already exists"
        assert self.graph.get_node_by_name("A") is not None
        assert self.history.undo_stack == []
        assert self.history.is_recording() is False

    def test_rename_missing_node(self):
        """Renaming a node that does not exist is a silent no-op"""
        assert self.ops.rename_node("Ghost", "Other", track_history=True) is False

        assert self.graph.state_is_dirty is False
        assert self.history.undo_stack == []
        assert self.history.is_recording() is False
        assert not any(e["type"] == "NODE_RENAMED" for e in self.events)

    def test_toggle_disabled(self):
        """Any enabled node in the set disables them all, otherwise all get enabled"""
        a = self._add("set", name="A", disabled=True)
        b = self._add("set", name="B")

        assert self.ops.toggle_nodes_disabled([a.id, b.id]) == [b.id]
        assert a.disabled and b.disabled

        assert sorted(self.ops.toggle_nodes_disabled([a.id, b.id])) == sorted([a.id, b.id])
        assert not a.disabled and not b.disabled

        self.ops.revert_toggle_node_disabled("A")
        assert a.disabled

    def test_update_position(self):
        node = self._add("set")
        self.ops.update_node_position(node.id, {"x": 320, "y": 64}, track_history=True)

        assert node.position == [320, 64]
        assert self.events[-1]["type"] == "NODE_MOVED"
        assert len(self.history.undo_stack) == 1

    def test_tidy_up_is_one_step(self):
        a = self._add("set", name="A")
        b = self._add("set", name="B")
        self.history.reset()

        self.ops.tidy_up([(a.id, [0, 160]), (b.id, [208, 160]), ("missing", [0, 0])])

        assert len(self.history.undo_stack) == 1
        assert a.position == [0, 160]

    def test_replace_parameters(self):
        node = self._add("set")
        new_parameters = {"values": {"x": 1}}

        self.ops.replace_node_parameters(node.id, node.parameters, new_parameters)
        new_parameters["values"]["x"] = 2

        assert node.parameters == {"values": {"x": 1}}
        assert self.events[-1]["type"] == "NODE_UPDATED"

    def test_set_node_active(self):
        node = self._add("set")
        self.ops.set_node_active(node.id)

        assert self.ops.editor.active_node_name == node.name
        assert self.graph.is_node_pristine(node.name) is False

    def test_set_node_selected(self):
        node = self._add("set")
        self.ops.set_node_selected(node.id)
        assert self.ops.editor.last_interacted_with_node_id == node.id
        assert self.ops.editor.last_selected_node_name == node.name

        self.ops.set_node_selected()
        assert self.ops.editor.last_interacted_with_node_id is None
        assert self.ops.editor.last_selected_node_name is None


class TestWorkspace(BaseCanvasTest):

    def test_duplicate_nodes(self):
        """Copies get fresh ids, unique names, an offset and their internal wiring"""
        a, b = self.ops.add_nodes([{"type": "set", "name": "A"}, {"type": "webhook", "name": "Hook"}])
        self.ops.add_nodes([{"type": "set", "name": "B"}])
        self.ops.create_connection((Endpoint("A", MAIN, 0), Endpoint("B", MAIN, 0)))

        new_ids = self.ops.duplicate_nodes([a.id, b.id])

        copies = self.graph.get_nodes_by_ids(new_ids)
        assert sorted(n.name for n in copies) == ["A1", "Hook1"]
        a_copy = self.graph.get_node_by_name("A1")
        assert a_copy.position == [a.position[0] + 32, a.position[1] + 32]
        hook_copy = self.graph.get_node_by_name("Hook1")
        assert hook_copy.webhook_id != b.webhook_id
        assert hook_copy.parameters["path"] == hook_copy.webhook_id
        # A -> B leaves the copied set, so it is not duplicated
        assert not self.graph.has_connection(Endpoint("A1", MAIN, 0), Endpoint("B", MAIN, 0))
        assert self.ops.editor.selected_node_names == {"A1", "Hook1"}
        assert len(self.history.undo_stack[-1].commands) == 2

    def test_duplicate_keeps_internal_connections(self):
        self.ops.add_nodes([{"type": "set", "name": "A"}, {"type": "set", "name": "B"}])
        a, b = self.graph.get_node_by_name("A"), self.graph.get_node_by_name("B")
        self.ops.create_connection((Endpoint("A", MAIN, 0), Endpoint("B", MAIN, 0)))

        self.ops.duplicate_nodes([a.id, b.id])

        assert self.graph.has_connection(Endpoint("A1", MAIN, 0), Endpoint("B1", MAIN, 0))

    def test_import_template(self):
        self._add("set", name="Existing")
        template = {
            "id": 42,
            "workflow": {
                "nodes": [
                    {"name": "Existing", "type": "set", "typeVersion": 3, "position": [0, 0]},
                    {"name": "Next", "type": "noOp", "typeVersion": 1, "position": [208, 0]},
                ],
                "connections": {"Existing": {"main": [[{"node": "Next", "type": "main", "index": 0}]]}},
            },
        }

        imported = self.ops.import_template(template)

        assert [n.name for n in imported] == ["Existing1", "Next"]
        assert self.graph.has_connection(Endpoint("Existing1", MAIN, 0), Endpoint("Next", MAIN, 0))
        assert self.graph.meta["templateId"] == "42"

    def test_initialize_workspace(self):
        """Loaded documents get catalog defaults and start clean"""
        self.ops.initialize_workspace({
            "name": "Orders",
            "nodes": [
                {"id": "h", "name": "Hook", "type": "webhook", "typeVersion": 2, "position": [0, 0]},
                {"id": "s", "name": "Set", "type": "set", "typeVersion": 3, "position": [208, 0]},
            ],
            "connections": {"Hook": {"main": [[{"node": "Set", "type": "main", "index": 0}]]}},
            "pinData": {"Hook": [{"json": {"id": 1}}]},
        })

        hook = self.graph.get_node_by_id("h")
        assert self.graph.name == "Orders"
        assert hook.webhook_id and hook.parameters["path"] == hook.webhook_id
        assert self.graph.get_node_by_id("s").parameters == {"values": {}}
        assert self.graph.has_connection(Endpoint("Hook", MAIN, 0), Endpoint("Set", MAIN, 0))
        assert self.graph.pin_data == {"Hook": [{"json": {"id": 1}}]}
        assert self.graph.state_is_dirty is False
        assert self.events[-1]["type"] == "WORKSPACE_LOADED"

    def test_reset_workspace(self):
        self.ops.add_nodes([{"type": "set"}], track_history=True)
        self.ops.reset_workspace()

        assert self.graph.all_nodes() == []
        assert self.history.can_undo() is False
        assert self.events[-1]["type"] == "WORKSPACE_RESET"


class TestOpenExecution(BaseCanvasTest):

    def _execution(self, mode="manual", error=None):
        data = {
            "id": "7",
            "mode": mode,
            "workflowData": {
                "name": "Ran",
                "nodes": [{"id": "t", "name": "Start", "type": "manualTrigger", "position": [0, 0]}],
                "connections": {},
                "pinData": {"Start": [{"json": {}}]},
            },
            "data": {"resultData": {"runData": {"Start": [{}]}}},
        }
        if error is not None:
            data["data"]["resultData"]["error"] = error
            data["data"]["resultData"]["lastNodeExecuted"] = "Last Node"
        return data

    def test_not_found(self):
        with pytest.raises(ExecutionNotFoundError) as info:
            asyncio.run(self.ops.open_execution("404"))
        assert info.value.description == 'Execution with id "404" could not be found!'

    def test_without_source(self):
        self.ops.executions = None
        with pytest.raises(ExecutionNotFoundError):
            asyncio.run(self.ops.open_execution("1"))

    def test_manual_execution_keeps_pins(self):
        self.executions.executions["7"] = self._execution("manual")

        data = asyncio.run(self.ops.open_execution("7"))

        assert data["id"] == "7"
        assert self.graph.get_node_by_name("Start") is not None
        assert self.graph.pin_data == {"Start": [{"json": {}}]}
        assert self.graph.execution_data is data
        assert self.graph.state_is_dirty is False
        assert self.events[-1]["type"] == "EXECUTION_OPENED"

    def test_production_execution_clears_pins(self):
        """Pinned data only survives in modes that used it"""
        self.executions.executions["7"] = self._execution("trigger")
        asyncio.run(self.ops.open_execution("7"))
        assert self.graph.pin_data == {}

    def test_failed_execution_notifies(self):
        self.executions.executions["7"] = self._execution(error={"message": "boom"})

        asyncio.run(self.ops.open_execution("7"))

        assert self.notifier.messages == [("error", "Problem in node ‘Last Node‘", "boom")]

    def test_fetch_failure(self):
        self.ops.executions = MockExecutions(error=RuntimeError("backend down"))

        assert asyncio.run(self.ops.open_execution("7")) is None
        assert self.notifier.messages[0][0] == "error"
        assert self.notifier.messages[0][2] == "backend down"


class TestUniqueNames:

    def test_suffixes(self):
        assert get_unique_node_name("Set", set()) == "Set"
        assert get_unique_node_name("Set", {"Set"}) == "Set1"
        assert get_unique_node_name("Set", {"Set", "Set1"}) == "Set2"
        assert get_unique_node_name("Set1", {"Set1"}) == "Set2"
