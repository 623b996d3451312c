"""
Canvas operations: every mutation the editor performs on a workflow graph.

Operations read the graph store and node type registry, validate through
`is_connection_allowed`, mutate the store, and (when asked to track history)
push an inverse command to the history service. Missing nodes are never an
error: the operation is a no-op so repeated UI actions stay harmless.
"""
from __future__ import annotations

import asyncio
import copy
import logging
import re
import uuid
from typing import Any, Callable, Dict, Iterable, List, Optional, Set, Tuple, Union

from .ConnectionValidator import is_connection_allowed
from .EditorState import EditorState
from .Errors import CanvasError, ExecutionNotFoundError, MaxNodesReachedError, NodeNameConflictError
from .GraphPrimitives import CanvasNode, WorkflowGraph, connections_from_dict
from .Handles import create_handle, endpoint_from_handle, parse_handle
from .History import (
    AddConnectionCommand,
    AddNodeCommand,
    EnableNodeToggleCommand,
    HistoryService,
    MoveNodeCommand,
    RemoveConnectionCommand,
    RemoveNodeCommand,
    RenameNodeCommand,
    ReplaceNodeParametersCommand,
)
from .Interface import (
    ICredentialSource,
    IExecutionSource,
    IGraphStore,
    IHistoryService,
    INodeTypeRegistry,
    INotifier,
    NullCredentialSource,
    NullNotifier,
)
from .Placement import GRID_SIZE, PUSH_NODES_OFFSET, PlacementResolver
from .Types import (
    PATH_BASED_TRIGGER_TYPES,
    STICKY_NODE_TYPE,
    CanvasConnection,
    ConnectionKind,
    ConnectionMode,
    ConnectionPair,
    Connections,
    Endpoint,
    XY,
)
from ..noderegistry.NodeRegistry import NodeTypeDescriptor, NodeTypeRegistry

logger = logging.getLogger(__name__)

DUPLICATE_OFFSET = (GRID_SIZE * 2, GRID_SIZE * 2)

# Execution modes that keep the pinned data of the workflow they ran
PIN_DATA_MODES = ("manual", "evaluation")

AnyConnection = Union[CanvasConnection, ConnectionPair]


def get_unique_node_name(original_name: str, existing_names: Set[str]) -> str:
    """Append (or bump) a numeric suffix until the name is free: Set, Set1, Set2, ..."""
    if original_name not in existing_names:
        return original_name
    match = re.match(r"(.*\D+)(\d*)$", original_name)
    base = match.group(1) if match else original_name
    index = 1
    candidate = f"{base}{index}"
    while candidate in existing_names:
        index += 1
        candidate = f"{base}{index}"
    return candidate


def filter_connections_by_nodes(connections: Connections, node_names: Iterable[str]) -> Connections:
    """Keep only connections whose both ends are in *node_names*, preserving the slot layout."""
    include = set(node_names)
    result: Connections = {}
    for source_name, by_kind in connections.items():
        if source_name not in include:
            continue
        result[source_name] = {
            kind: [[e for e in (slot or []) if e.node in include] for slot in slots]
            for kind, slots in by_kind.items()
        }
    return result


def _xy(position: Any) -> XY:
    if isinstance(position, dict):
        return [position["x"], position["y"]]
    return [position[0], position[1]]


class RefreshScheduler:
    """
    Effects deferred to the next refresh tick.

    The editor applies them after the current handler returns; tests and async
    callers call `flush()` (or `await CanvasOperations.next_tick()`).
    """

    def __init__(self, immediate: bool = False):
        self.immediate = immediate
        self._pending: List[Callable[[], Any]] = []

    def schedule(self, effect: Callable[[], Any]):
        if self.immediate:
            effect()
        else:
            self._pending.append(effect)

    def flush(self):
        while self._pending:
            effect = self._pending.pop(0)
            effect()

    def has_pending(self) -> bool:
        return bool(self._pending)

    def clear(self):
        self._pending.clear()


class CanvasOperations:

    def __init__(self,
                 graph: Optional[IGraphStore] = None,
                 registry: Optional[INodeTypeRegistry] = None,
                 history: Optional[IHistoryService] = None,
                 editor: Optional[EditorState] = None,
                 credentials: Optional[ICredentialSource] = None,
                 executions: Optional[IExecutionSource] = None,
                 notifier: Optional[INotifier] = None,
                 scheduler: Optional[RefreshScheduler] = None,
                 on_change: Optional[Callable[[Dict[str, Any]], None]] = None,
                 ):
        self.graph = graph if graph is not None else WorkflowGraph()
        self.registry = registry if registry is not None else NodeTypeRegistry()
        self.history = history if history is not None else HistoryService()
        self.editor = editor if editor is not None else EditorState()
        self.credentials = credentials if credentials is not None else NullCredentialSource()
        self.executions = executions
        self.notifier = notifier if notifier is not None else NullNotifier()
        self.scheduler = scheduler if scheduler is not None else RefreshScheduler()
        self.placement = PlacementResolver(self.graph, self.registry, self.editor)
        self._listeners: List[Callable[[Dict[str, Any]], None]] = []
        if on_change is not None:
            self._listeners.append(on_change)

    # ------------------------------------------------------------------
    # Change notification
    # ------------------------------------------------------------------

    def on_change(self, callback: Callable[[Dict[str, Any]], None]):
        self._listeners.append(callback)

    def _emit(self, event_type: str, **payload):
        event = {"type": event_type, **payload}
        for callback in self._listeners:
            try:
                callback(event)
            except Exception:
                logger.exception("change listener failed for %s", event_type)

    def _mark_dirty(self, keep_pristine: bool = False):
        if not keep_pristine:
            self.graph.set_state_dirty(True)

    # ------------------------------------------------------------------
    # Refresh tick
    # ------------------------------------------------------------------

    def flush_pending(self):
        self.scheduler.flush()

    async def next_tick(self):
        await asyncio.sleep(0)
        self.scheduler.flush()

    # ------------------------------------------------------------------
    # Node type descriptors
    # ------------------------------------------------------------------

    def require_node_type_description(self, node_type: str, version: Optional[int] = None) -> NodeTypeDescriptor:
        descriptor = self.registry.describe(node_type, version)
        if descriptor is None:
            logger.debug("no descriptor for %s v%s, using placeholder", node_type, version)
            return NodeTypeDescriptor.placeholder(node_type)
        return descriptor

    def resolve_node_version(self, descriptor: NodeTypeDescriptor) -> int:
        return descriptor.latest_version()

    # ------------------------------------------------------------------
    # Connection validation
    # ------------------------------------------------------------------

    def is_connection_allowed(self,
                              source_node: CanvasNode,
                              target_node: CanvasNode,
                              source_endpoint: Endpoint,
                              target_endpoint: Endpoint) -> bool:
        return is_connection_allowed(
            source_node, target_node, source_endpoint, target_endpoint, self.registry, self.graph
        )

    def _resolve_canvas_connection(self, connection: CanvasConnection) -> Optional[Tuple[CanvasNode, CanvasNode, Endpoint, Endpoint]]:
        source_node = self.graph.get_node_by_id(connection.source)
        target_node = self.graph.get_node_by_id(connection.target)
        if source_node is None or target_node is None:
            return None
        source_endpoint = endpoint_from_handle(source_node.name, connection.sourceHandle)
        target_endpoint = endpoint_from_handle(target_node.name, connection.targetHandle)
        return source_node, target_node, source_endpoint, target_endpoint

    def _resolve_pair(self, connection: AnyConnection) -> Optional[Tuple[CanvasNode, CanvasNode, Endpoint, Endpoint]]:
        if isinstance(connection, CanvasConnection):
            return self._resolve_canvas_connection(connection)
        source_endpoint, target_endpoint = connection
        source_node = self.graph.get_node_by_name(source_endpoint.node)
        target_node = self.graph.get_node_by_name(target_endpoint.node)
        if source_node is None or target_node is None:
            return None
        return source_node, target_node, source_endpoint, target_endpoint

    def to_canvas_connection(self, pair: ConnectionPair) -> Optional[CanvasConnection]:
        resolved = self._resolve_pair(pair)
        if resolved is None:
            return None
        source_node, target_node, source_endpoint, target_endpoint = resolved
        return CanvasConnection(
            source=source_node.id,
            target=target_node.id,
            sourceHandle=create_handle(ConnectionMode.OUTPUT, source_endpoint.kind, source_endpoint.index),
            targetHandle=create_handle(ConnectionMode.INPUT, target_endpoint.kind, target_endpoint.index),
        )

    # ------------------------------------------------------------------
    # Connection create / delete
    # ------------------------------------------------------------------

    def create_connection(self,
                          connection: AnyConnection,
                          track_history: bool = False,
                          keep_pristine: bool = False) -> bool:
        resolved = self._resolve_pair(connection)
        if resolved is None:
            return False
        source_node, target_node, source_endpoint, target_endpoint = resolved

        if not self.is_connection_allowed(source_node, target_node, source_endpoint, target_endpoint):
            logger.debug("connection %s -> %s not allowed", source_endpoint, target_endpoint)
            return False

        if not self.graph.add_connection(source_endpoint, target_endpoint):
            return False
        if track_history:
            self.history.push_command_to_undo(AddConnectionCommand(connection=(source_endpoint, target_endpoint)))
        self._mark_dirty(keep_pristine)
        self._emit("CONNECTION_ADDED", source=source_endpoint.to_dict(), target=target_endpoint.to_dict())
        return True

    def add_connections(self,
                        connections: Iterable[AnyConnection],
                        track_history: bool = False,
                        track_bulk: bool = True,
                        keep_pristine: bool = False) -> int:
        if track_history and track_bulk:
            self.history.start_recording_undo()
        created = 0
        for connection in connections:
            if self.create_connection(connection, track_history=track_history, keep_pristine=keep_pristine):
                created += 1
        if track_history and track_bulk:
            self.history.stop_recording_undo()
        return created

    def revert_create_connection(self, connection: ConnectionPair):
        source_endpoint, target_endpoint = connection
        if self.graph.remove_connection(source_endpoint, target_endpoint):
            self._emit("CONNECTION_REMOVED", source=source_endpoint.to_dict(), target=target_endpoint.to_dict())

    def delete_connection(self,
                          connection: AnyConnection,
                          track_history: bool = False,
                          track_bulk: bool = True) -> bool:
        resolved = self._resolve_pair(connection)
        if resolved is None:
            return False
        _, _, source_endpoint, target_endpoint = resolved

        if track_history and track_bulk:
            self.history.start_recording_undo()

        removed = self.graph.remove_connection(source_endpoint, target_endpoint)
        if removed:
            if track_history:
                self.history.push_command_to_undo(RemoveConnectionCommand(connection=(source_endpoint, target_endpoint)))
            self._mark_dirty()
            self._emit("CONNECTION_REMOVED", source=source_endpoint.to_dict(), target=target_endpoint.to_dict())

        if track_history and track_bulk:
            self.history.stop_recording_undo()
        return removed

    def revert_delete_connection(self, connection: ConnectionPair):
        source_endpoint, target_endpoint = connection
        if self.graph.add_connection(source_endpoint, target_endpoint):
            self._emit("CONNECTION_ADDED", source=source_endpoint.to_dict(), target=target_endpoint.to_dict())

    def delete_connections_by_node_id(self, node_id: str, track_history: bool = False, track_bulk: bool = True):
        node = self.graph.get_node_by_id(node_id)
        if node is None:
            return

        if track_history and track_bulk:
            self.history.start_recording_undo()

        for source_endpoint, target_endpoint in self._connection_pairs():
            if source_endpoint.node == node.name or target_endpoint.node == node.name:
                self.delete_connection((source_endpoint, target_endpoint), track_history=track_history, track_bulk=False)

        if isinstance(self.graph, WorkflowGraph):
            self.graph.remove_all_node_connections(node.name)

        if track_history and track_bulk:
            self.history.stop_recording_undo()

    def _connection_pairs(self) -> List[ConnectionPair]:
        pairs: List[ConnectionPair] = []
        for node in self.graph.all_nodes():
            for kind, slots in self.graph.outgoing_connections_by_node_name(node.name).items():
                for index, slot in enumerate(slots):
                    for target in slot or []:
                        pairs.append((Endpoint(node.name, kind, index), target))
        return pairs

    # ------------------------------------------------------------------
    # Revalidation
    # ------------------------------------------------------------------

    def revalidate_node_input_connections(self, node_id: str) -> List[ConnectionPair]:
        return self._revalidate_node_connections(node_id, ConnectionMode.INPUT)

    def revalidate_node_output_connections(self, node_id: str) -> List[ConnectionPair]:
        return self._revalidate_node_connections(node_id, ConnectionMode.OUTPUT)

    def _revalidate_node_connections(self, node_id: str, mode: ConnectionMode) -> List[ConnectionPair]:
        """Schedule removal of connections whose kind the node no longer offers on *mode*."""
        node = self.graph.get_node_by_id(node_id)
        if node is None:
            return []
        descriptor = self.registry.describe(node.type, node.type_version)
        if descriptor is None:
            return []

        kinds = set(descriptor.kinds(mode))
        invalid: List[ConnectionPair] = []
        for source_endpoint, target_endpoint in self._connection_pairs():
            endpoint = target_endpoint if mode == ConnectionMode.INPUT else source_endpoint
            if endpoint.node != node.name:
                continue
            if source_endpoint.kind != target_endpoint.kind or endpoint.kind not in kinds:
                invalid.append((source_endpoint, target_endpoint))

        for pair in invalid:
            logger.info("revalidation of %s drops %s -> %s", node.name, pair[0], pair[1])
            self.scheduler.schedule(lambda pair=pair: self.delete_connection(pair))
        return invalid

    # ------------------------------------------------------------------
    # Topology rewrites
    # ------------------------------------------------------------------

    def connect_adjacent_nodes(self, node_id: str, track_history: bool = False) -> List[ConnectionPair]:
        """Bridge the node's predecessors straight to its successors, slot by slot."""
        node = self.graph.get_node_by_id(node_id)
        if node is None:
            return []

        incoming_by_kind = self.graph.incoming_connections_by_node_name(node.name)
        outgoing_by_kind = self.graph.outgoing_connections_by_node_name(node.name)
        bridged: List[ConnectionPair] = []

        for kind, incoming_slots in incoming_by_kind.items():
            outgoing_slots = outgoing_by_kind.get(kind) or []
            for slot_index in range(min(len(incoming_slots), len(outgoing_slots))):
                for incoming in incoming_slots[slot_index] or []:
                    if self.graph.get_node_by_name(incoming.node) is None:
                        continue
                    for outgoing in outgoing_slots[slot_index] or []:
                        if self.graph.get_node_by_name(outgoing.node) is None:
                            continue
                        source_endpoint = Endpoint(incoming.node, kind, incoming.index)
                        target_endpoint = Endpoint(outgoing.node, kind, outgoing.index)
                        if self.create_connection((source_endpoint, target_endpoint), track_history=track_history):
                            bridged.append((source_endpoint, target_endpoint))
        return bridged

    def replace_node_connections(self,
                                 previous_id: str,
                                 new_id: str,
                                 replace_inputs: bool = True,
                                 replace_outputs: bool = True,
                                 track_history: bool = False,
                                 track_bulk: bool = True):
        previous_node = self.graph.get_node_by_id(previous_id)
        new_node = self.graph.get_node_by_id(new_id)
        if previous_node is None or new_node is None:
            return

        pairs: List[ConnectionPair] = []
        for source_endpoint, target_endpoint in self._connection_pairs():
            is_input = replace_inputs and target_endpoint.node == previous_node.name
            is_output = replace_outputs and source_endpoint.node == previous_node.name
            if is_input or is_output:
                pairs.append((source_endpoint, target_endpoint))

        if track_history and track_bulk:
            self.history.start_recording_undo()

        for source_endpoint, target_endpoint in pairs:
            self.delete_connection((source_endpoint, target_endpoint), track_history=track_history, track_bulk=False)
            if replace_outputs and source_endpoint.node == previous_node.name:
                source_endpoint = source_endpoint._replace(node=new_node.name)
            if replace_inputs and target_endpoint.node == previous_node.name:
                target_endpoint = target_endpoint._replace(node=new_node.name)
            self.create_connection((source_endpoint, target_endpoint), track_history=track_history)

        if track_history and track_bulk:
            self.history.stop_recording_undo()

    # ------------------------------------------------------------------
    # Adding nodes
    # ------------------------------------------------------------------

    def add_nodes(self,
                  nodes: List[Union[Dict[str, Any], CanvasNode]],
                  position: Optional[XY] = None,
                  track_history: bool = False,
                  track_bulk: bool = True,
                  keep_pristine: bool = False,
                  is_auto_add: bool = False,
                  open_detail: bool = False) -> List[CanvasNode]:
        insert_position = position
        added: List[CanvasNode] = []

        if track_history and track_bulk:
            self.history.start_recording_undo()

        for data in nodes:
            node = data.copy() if isinstance(data, CanvasNode) else CanvasNode.from_dict(data)
            if node.position is None and insert_position is not None:
                node.position = _xy(insert_position)
            descriptor = self.registry.describe(node.type, node.type_version)
            if descriptor is None:
                descriptor = self.require_node_type_description(node.type)
            try:
                last = self.add_node(
                    node,
                    descriptor,
                    track_history=track_history,
                    keep_pristine=keep_pristine,
                    is_auto_add=is_auto_add,
                    open_detail=open_detail,
                )
            except CanvasError as error:
                logger.error("could not add %s node: %s", node.type, error.description)
                self.notifier.show_message("error", error.title, error.description)
                continue
            added.append(last)
            # the next node without a position goes to the right of this one
            insert_position = [last.position[0] + PUSH_NODES_OFFSET, last.position[1]]

        if track_history and track_bulk:
            self.history.stop_recording_undo()
        self._mark_dirty(keep_pristine)
        return added

    def add_node(self,
                 node: CanvasNode,
                 descriptor: NodeTypeDescriptor,
                 track_history: bool = False,
                 keep_pristine: bool = False,
                 is_auto_add: bool = False,
                 open_detail: bool = False,
                 force_position: bool = False) -> CanvasNode:
        if descriptor.max_nodes is not None and self.graph.node_count_by_type(node.type) >= descriptor.max_nodes:
            raise MaxNodesReachedError(node.type, descriptor.max_nodes)

        node = self.resolve_node_data(node, descriptor, force_position=force_position)
        self.graph.add_node(node)
        if track_history:
            self.history.push_command_to_undo(AddNodeCommand(node=node))
        logger.info("added node %s (%s v%s) at %s", node.name, node.type, node.type_version, node.position)
        self._emit("NODE_ADDED", node=node.to_dict())

        if not is_auto_add:
            self._connect_to_last_interacted_node(node, descriptor, track_history=track_history)

        self._mark_dirty(keep_pristine)
        if isinstance(self.graph, WorkflowGraph):
            self.graph.set_node_pristine(node.name, True)
        if open_detail and node.type != STICKY_NODE_TYPE:
            self.set_node_active_by_name(node.name)
        return node

    def resolve_node_data(self, node: CanvasNode, descriptor: NodeTypeDescriptor, force_position: bool = False) -> CanvasNode:
        node.type = descriptor.name
        if not node.type_version:
            node.type_version = self.resolve_node_version(descriptor)
        elif self.registry.describe(node.type, node.type_version) is None and descriptor.versions():
            node.type_version = self.resolve_node_version(descriptor)
        if not node.name:
            node.name = descriptor.default_name or descriptor.display_name
        if not (force_position and node.position is not None):
            node.position = self.placement.resolve_node_position(node, descriptor)

        self.resolve_node_name(node)
        self.resolve_node_parameters(node, descriptor)
        self.resolve_node_credentials(node, descriptor)
        self.resolve_node_webhook(node, descriptor)
        return node

    def resolve_node_name(self, node: CanvasNode):
        node.name = get_unique_node_name(node.name, {n.name for n in self.graph.all_nodes()})

    def resolve_node_parameters(self, node: CanvasNode, descriptor: NodeTypeDescriptor):
        for name, default in descriptor.properties.items():
            if name not in node.parameters:
                node.parameters[name] = copy.deepcopy(default)

    def resolve_node_credentials(self, node: CanvasNode, descriptor: NodeTypeDescriptor):
        """Attach a credential only when exactly one usable candidate exists for a kind."""
        for spec in descriptor.credentials:
            if node.credentials and spec.name in node.credentials:
                continue
            candidates = self.credentials.usable_credentials(spec.name)
            if len(candidates) != 1:
                continue
            credential = candidates[0]
            node.credentials = dict(node.credentials or {})
            node.credentials[spec.name] = {"id": credential.get("id"), "name": credential.get("name")}

    def resolve_node_webhook(self, node: CanvasNode, descriptor: NodeTypeDescriptor):
        if descriptor.webhooks and not node.webhook_id:
            node.webhook_id = str(uuid.uuid4())
        if node.type.split(".")[-1] in PATH_BASED_TRIGGER_TYPES and node.parameters.get("path") == "":
            node.parameters["path"] = node.webhook_id

    def _connect_to_last_interacted_node(self, node: CanvasNode, descriptor: NodeTypeDescriptor, track_history: bool = False):
        anchor = None
        if self.editor.last_interacted_with_node_id:
            anchor = self.graph.get_node_by_id(self.editor.last_interacted_with_node_id)
        if anchor is None or anchor.id == node.id:
            return

        handle = self.editor.last_interacted_with_node_handle
        if handle:
            mode, kind, index = parse_handle(handle)
        elif descriptor.is_configuration_node():
            mode, kind, index = ConnectionMode.INPUT, descriptor.outputs[0].kind, 0
        else:
            mode, kind, index = ConnectionMode.OUTPUT, ConnectionKind.MAIN, 0

        if mode == ConnectionMode.OUTPUT:
            connection = CanvasConnection(
                source=anchor.id,
                target=node.id,
                sourceHandle=create_handle(ConnectionMode.OUTPUT, kind, index),
                targetHandle=create_handle(ConnectionMode.INPUT, kind, 0),
            )
        else:
            # the anchor handle is an input, so the new node feeds it
            connection = CanvasConnection(
                source=node.id,
                target=anchor.id,
                sourceHandle=create_handle(ConnectionMode.OUTPUT, kind, 0),
                targetHandle=create_handle(ConnectionMode.INPUT, kind, index),
            )
        self.create_connection(connection, track_history=track_history)

    def revert_add_node(self, node_name: str):
        node = self.graph.get_node_by_name(node_name)
        if node is None:
            return
        self.graph.remove_node_by_id(node.id)
        self._mark_dirty()
        self._emit("NODE_REMOVED", nodeId=node.id, name=node.name)

    # ------------------------------------------------------------------
    # Deleting nodes
    # ------------------------------------------------------------------

    def delete_node(self, node_id: str, track_history: bool = False, track_bulk: bool = True):
        node = self.graph.get_node_by_id(node_id)
        if node is None:
            return

        if track_history and track_bulk:
            self.history.start_recording_undo()

        if self.editor.last_interacted_with_node_id == node_id:
            self.editor.last_interacted_with_node_id = None
        self.editor.selected_node_names.discard(node.name)

        self.connect_adjacent_nodes(node_id, track_history=track_history)
        self.delete_connections_by_node_id(node_id, track_history=track_history, track_bulk=False)

        if isinstance(self.graph, WorkflowGraph):
            self.graph.remove_node_execution_data_by_id(node_id)
        self.graph.remove_node_by_id(node_id)
        self._mark_dirty()
        logger.info("deleted node %s", node.name)
        self._emit("NODE_REMOVED", nodeId=node.id, name=node.name)

        if track_history:
            self.history.push_command_to_undo(RemoveNodeCommand(node=node))
            if track_bulk:
                self.history.stop_recording_undo()

    def delete_nodes(self, ids: Iterable[str], track_history: bool = True, track_bulk: bool = True) -> List[str]:
        ids = list(ids)
        if track_history and track_bulk:
            self.history.start_recording_undo()
        for node_id in ids:
            self.delete_node(node_id, track_history=track_history, track_bulk=False)
        if track_history and track_bulk:
            self.history.stop_recording_undo()
        return ids

    def revert_delete_node(self, node: CanvasNode):
        if self.graph.get_node_by_id(node.id) is not None:
            return
        restored = node.copy()
        self.graph.add_node(restored)
        self._mark_dirty()
        self._emit("NODE_ADDED", node=restored.to_dict())

    # ------------------------------------------------------------------
    # Renaming
    # ------------------------------------------------------------------

    def rename_node(self, current_name: str, new_name: str, track_history: bool = False, track_bulk: bool = True) -> bool:
        if current_name == new_name:
            return False
        if self.graph.get_node_by_name(current_name) is None:
            return False

        if track_history and track_bulk:
            self.history.start_recording_undo()
        try:
            try:
                self.graph.rename_node(current_name, new_name)
            except NodeNameConflictError as error:
                self.notifier.show_message("error", error.title, error.description)
                return False

            if track_history:
                self.history.push_command_to_undo(RenameNodeCommand(current_name=current_name, new_name=new_name))
        finally:
            if track_history and track_bulk:
                self.history.stop_recording_undo()

        self._after_rename(current_name, new_name)
        return True

    def revert_rename_node(self, current_name: str, new_name: str):
        """Rename *current_name* back to *new_name* without recording history."""
        self.graph.rename_node(current_name, new_name)
        self._after_rename(current_name, new_name)

    def _after_rename(self, old_name: str, new_name: str):
        if self.editor.active_node_name == old_name:
            self.editor.active_node_name = new_name
        if self.editor.last_selected_node_name == old_name:
            self.editor.last_selected_node_name = new_name
        if old_name in self.editor.selected_node_names:
            self.editor.selected_node_names.discard(old_name)
            self.editor.selected_node_names.add(new_name)
        self._mark_dirty()
        self._emit("NODE_RENAMED", oldName=old_name, newName=new_name)

    # ------------------------------------------------------------------
    # Focus and selection
    # ------------------------------------------------------------------

    def set_node_active(self, node_id: str):
        node = self.graph.get_node_by_id(node_id)
        if node is None:
            return
        if isinstance(self.graph, WorkflowGraph):
            self.graph.set_node_pristine(node.name, False)
        self.set_node_active_by_name(node.name)

    def set_node_active_by_name(self, name: str):
        self.editor.active_node_name = name

    def set_node_selected(self, node_id: Optional[str] = None):
        if not node_id:
            self.editor.last_interacted_with_node_id = None
            self.editor.last_selected_node_name = None
            return
        node = self.graph.get_node_by_id(node_id)
        if node is None:
            return
        self.editor.last_interacted_with_node_id = node_id
        self.editor.last_selected_node_name = node.name

    # ------------------------------------------------------------------
    # Disabled flag
    # ------------------------------------------------------------------

    def toggle_nodes_disabled(self, ids: Iterable[str], track_history: bool = True, track_bulk: bool = True) -> List[str]:
        nodes = [self.graph.get_node_by_id(i) for i in ids]
        return self._disable_nodes([n for n in nodes if n is not None], track_history, track_bulk)

    def revert_toggle_node_disabled(self, node_name: str):
        node = self.graph.get_node_by_name(node_name)
        if node is not None:
            self._disable_nodes([node], track_history=False, track_bulk=False)

    def _disable_nodes(self, nodes: List[CanvasNode], track_history: bool, track_bulk: bool) -> List[str]:
        # any enabled node in the set disables them all, otherwise all get enabled
        new_state = any(not n.disabled for n in nodes)
        changed: List[str] = []

        if track_history and track_bulk:
            self.history.start_recording_undo()
        for node in nodes:
            old_state = node.disabled
            if old_state == new_state:
                continue
            self.graph.set_node_value(node.id, "disabled", new_state)
            changed.append(node.id)
            if track_history:
                self.history.push_command_to_undo(
                    EnableNodeToggleCommand(node_name=node.name, old_state=old_state, new_state=new_state)
                )
            self._emit("NODE_UPDATED", nodeId=node.id, disabled=new_state)
        if track_history and track_bulk:
            self.history.stop_recording_undo()

        if changed:
            self._mark_dirty()
        return changed

    # ------------------------------------------------------------------
    # Positions
    # ------------------------------------------------------------------

    def update_node_position(self, node_id: str, position: Any, track_history: bool = False):
        node = self.graph.get_node_by_id(node_id)
        if node is None:
            return
        old_position = list(node.position) if node.position is not None else None
        new_position = _xy(position)
        self.graph.set_node_position(node_id, new_position)
        if track_history:
            self.history.push_command_to_undo(
                MoveNodeCommand(node_name=node.name, old_position=old_position, new_position=new_position)
            )
        self._mark_dirty()
        self._emit("NODE_MOVED", nodeId=node_id, position=new_position)

    def update_nodes_position(self,
                              events: Iterable[Tuple[str, Any]],
                              track_history: bool = False,
                              track_bulk: bool = True) -> List[str]:
        moved: List[str] = []
        if track_history and track_bulk:
            self.history.start_recording_undo()
        for node_id, position in events:
            if self.graph.get_node_by_id(node_id) is None:
                continue
            self.update_node_position(node_id, position, track_history=track_history)
            moved.append(node_id)
        if track_history and track_bulk:
            self.history.stop_recording_undo()
        return moved

    def revert_update_node_position(self, node_name: str, position: XY):
        node = self.graph.get_node_by_name(node_name)
        if node is None:
            return
        self.graph.set_node_position(node.id, _xy(position))
        self._emit("NODE_MOVED", nodeId=node.id, position=list(position))

    def tidy_up(self, events: Iterable[Tuple[str, Any]]) -> List[str]:
        """Apply a precomputed layout as a single undo step."""
        return self.update_nodes_position(events, track_history=True, track_bulk=True)

    # ------------------------------------------------------------------
    # Parameters
    # ------------------------------------------------------------------

    def replace_node_parameters(self,
                                node_id: str,
                                current_parameters: Dict[str, Any],
                                new_parameters: Dict[str, Any],
                                track_history: bool = False,
                                track_bulk: bool = True):
        node = self.graph.get_node_by_id(node_id)
        if node is None:
            return

        if track_history and track_bulk:
            self.history.start_recording_undo()
        self.graph.set_node_parameters(node_id, copy.deepcopy(new_parameters))
        if track_history:
            self.history.push_command_to_undo(ReplaceNodeParametersCommand(
                node_id=node_id,
                current_parameters=copy.deepcopy(current_parameters),
                new_parameters=copy.deepcopy(new_parameters),
            ))
            if track_bulk:
                self.history.stop_recording_undo()
        self._mark_dirty()
        self._emit("NODE_UPDATED", nodeId=node_id, parameters=copy.deepcopy(new_parameters))

    def revert_replace_node_parameters(self, node_id: str, current_parameters: Dict[str, Any], new_parameters: Dict[str, Any]):
        self.replace_node_parameters(node_id, new_parameters, current_parameters)

    # ------------------------------------------------------------------
    # Copies, templates and workspace lifecycle
    # ------------------------------------------------------------------

    def _import_nodes(self,
                      nodes: List[CanvasNode],
                      connections: Connections,
                      offset: Tuple[float, float] = (0, 0),
                      track_history: bool = False,
                      track_bulk: bool = True,
                      regenerate_webhooks: bool = False) -> List[CanvasNode]:
        existing = {n.name for n in self.graph.all_nodes()}
        renamed: Dict[str, str] = {}
        imported: List[CanvasNode] = []

        if track_history and track_bulk:
            self.history.start_recording_undo()

        for source in nodes:
            node = source.copy()
            node.id = uuid.uuid4().hex
            node.name = get_unique_node_name(node.name, existing)
            existing.add(node.name)
            renamed[source.name] = node.name
            if node.position is not None:
                node.position = [node.position[0] + offset[0], node.position[1] + offset[1]]
            if regenerate_webhooks and node.webhook_id:
                old_webhook = node.webhook_id
                node.webhook_id = str(uuid.uuid4())
                if node.parameters.get("path") == old_webhook:
                    node.parameters["path"] = node.webhook_id
            descriptor = self.require_node_type_description(node.type, node.type_version)
            self.resolve_node_parameters(node, descriptor)
            self.resolve_node_webhook(node, descriptor)

            self.graph.add_node(node)
            if track_history:
                self.history.push_command_to_undo(AddNodeCommand(node=node))
            self._emit("NODE_ADDED", node=node.to_dict())
            imported.append(node)

        kept = filter_connections_by_nodes(connections, renamed.keys())
        for source_name, by_kind in kept.items():
            for kind, slots in by_kind.items():
                for index, slot in enumerate(slots):
                    for target in slot:
                        pair = (Endpoint(renamed[source_name], kind, index), target._replace(node=renamed[target.node]))
                        if self.graph.add_connection(*pair):
                            if track_history:
                                self.history.push_command_to_undo(AddConnectionCommand(connection=pair))
                            self._emit("CONNECTION_ADDED", source=pair[0].to_dict(), target=pair[1].to_dict())

        if track_history and track_bulk:
            self.history.stop_recording_undo()
        if imported:
            self._mark_dirty()
        return imported

    def duplicate_nodes(self, ids: Iterable[str], track_history: bool = True) -> List[str]:
        nodes = [n for n in (self.graph.get_node_by_id(i) for i in ids) if n is not None]
        if not nodes:
            return []
        connections = {n.name: self.graph.outgoing_connections_by_node_name(n.name) for n in nodes}
        copies = self._import_nodes(
            nodes,
            connections,
            offset=DUPLICATE_OFFSET,
            track_history=track_history,
            regenerate_webhooks=True,
        )
        self.editor.selected_node_names = {n.name for n in copies}
        return [n.id for n in copies]

    def import_template(self, template: Dict[str, Any], track_history: bool = False) -> List[CanvasNode]:
        workflow = template.get("workflow", {})
        nodes = [CanvasNode.from_dict(n) for n in workflow.get("nodes", [])]
        connections = connections_from_dict(workflow.get("connections", {}))
        imported = self._import_nodes(nodes, connections, track_history=track_history, regenerate_webhooks=True)
        if isinstance(self.graph, WorkflowGraph):
            self.graph.meta["templateId"] = str(template.get("id"))
        logger.info("imported template %s with %d nodes", template.get("id"), len(imported))
        return imported

    def initialize_workspace(self, data: Dict[str, Any]):
        """Load a workflow document, filling parameter defaults and webhook ids from the catalog."""
        self.scheduler.clear()
        if isinstance(self.graph, WorkflowGraph):
            self.graph.reset()
            self.graph.name = data.get("name", self.graph.name)
            if data.get("id"):
                self.graph.id = data["id"]
            self.graph.meta.update(data.get("meta") or {})
        else:
            for node in self.graph.all_nodes():
                self.graph.remove_node_by_id(node.id)

        for node_data in data.get("nodes", []):
            node = CanvasNode.from_dict(node_data)
            descriptor = self.require_node_type_description(node.type, node.type_version)
            self.resolve_node_parameters(node, descriptor)
            self.resolve_node_webhook(node, descriptor)
            self.graph.add_node(node)

        for source, target in self._pairs_from(connections_from_dict(data.get("connections", {}))):
            self.graph.add_connection(source, target)

        if isinstance(self.graph, WorkflowGraph):
            for name, items in (data.get("pinData") or {}).items():
                self.graph.set_pin_data(name, items)
        self.graph.set_state_dirty(False)
        self._emit("WORKSPACE_LOADED", nodeCount=len(self.graph.all_nodes()))

    @staticmethod
    def _pairs_from(connections: Connections) -> List[ConnectionPair]:
        pairs = []
        for source_name, by_kind in connections.items():
            for kind, slots in by_kind.items():
                for index, slot in enumerate(slots):
                    for target in slot or []:
                        pairs.append((Endpoint(source_name, kind, index), target))
        return pairs

    def reset_workspace(self):
        self.scheduler.clear()
        if isinstance(self.graph, WorkflowGraph):
            self.graph.reset()
        else:
            for node in self.graph.all_nodes():
                self.graph.remove_node_by_id(node.id)
        self.editor.reset()
        if isinstance(self.history, HistoryService):
            self.history.reset()
        self._emit("WORKSPACE_RESET")

    async def open_execution(self, execution_id: str) -> Optional[Dict[str, Any]]:
        if self.executions is None:
            raise ExecutionNotFoundError(execution_id)
        try:
            data = await self.executions.fetch_execution(execution_id)
        except Exception as error:
            logger.error("failed to fetch execution %s: %s", execution_id, error)
            self.notifier.show_message("error", "Problem loading execution", str(error))
            return None
        if data is None:
            raise ExecutionNotFoundError(execution_id)

        self.initialize_workspace(data.get("workflowData", {}))

        # execution data and pin data change together
        if isinstance(self.graph, WorkflowGraph):
            self.graph.set_workflow_execution_data(data)
            if data.get("mode") not in PIN_DATA_MODES:
                self.graph.clear_pin_data()
        self.graph.set_state_dirty(False)
        self._emit("EXECUTION_OPENED", executionId=execution_id, mode=data.get("mode"))

        result_data = (data.get("data") or {}).get("resultData") or {}
        error = result_data.get("error")
        if error:
            last_node = result_data.get("lastNodeExecuted")
            title = f"Problem in node ‘{last_node}‘" if last_node else "Problem executing workflow"
            message = error.get("message", "") if isinstance(error, dict) else str(error)
            self.notifier.show_message("error", title, message)
        return data

    # ------------------------------------------------------------------
    # History
    # ------------------------------------------------------------------

    def undo(self):
        if isinstance(self.history, HistoryService):
            return self.history.undo(self)
        return None

    def redo(self):
        if isinstance(self.history, HistoryService):
            return self.history.redo(self)
        return None
