from typing import Any, Dict, List, Optional, Set
from collections import defaultdict
import copy
import logging
import uuid

from .Errors import NodeNameConflictError
from .Interface import IGraphStore
from .Types import ConnectionKind, Connections, Endpoint, NodeConnections, XY

logger = logging.getLogger(__name__)


# A node on the canvas. Parameters are an open bag owned by the node type.
class CanvasNode:
    def __init__(self,
                 name: str,
                 type: str,
                 type_version: Optional[int] = None,
                 position: Optional[XY] = None,
                 parameters: Optional[Dict[str, Any]] = None,
                 id: Optional[str] = None,
                 disabled: bool = False,
                 credentials: Optional[Dict[str, Dict[str, Any]]] = None,
                 webhook_id: Optional[str] = None,
                 ):
        self.id = id or uuid.uuid4().hex
        self.name = name
        self.type = type
        self.type_version = type_version
        self.position = list(position) if position is not None else None
        self.parameters = parameters if parameters is not None else {}
        self.disabled = disabled
        self.credentials = credentials
        self.webhook_id = webhook_id

    def copy(self) -> 'CanvasNode':
        return copy.deepcopy(self)

    def to_dict(self) -> Dict[str, Any]:
        data = {
            "id": self.id,
            "name": self.name,
            "type": self.type,
            "typeVersion": self.type_version,
            "position": list(self.position) if self.position is not None else None,
            "parameters": copy.deepcopy(self.parameters),
            "disabled": self.disabled,
        }
        if self.credentials is not None:
            data["credentials"] = copy.deepcopy(self.credentials)
        if self.webhook_id is not None:
            data["webhookId"] = self.webhook_id
        return data

    @staticmethod
    def from_dict(data: Dict[str, Any]) -> 'CanvasNode':
        return CanvasNode(
            name=data.get("name"),
            type=data["type"],
            type_version=data.get("typeVersion"),
            position=data.get("position"),
            parameters=copy.deepcopy(data.get("parameters")),
            id=data.get("id"),
            disabled=bool(data.get("disabled", False)),
            credentials=copy.deepcopy(data.get("credentials")),
            webhook_id=data.get("webhookId"),
        )

    def __repr__(self):
        return f"CanvasNode({self.name}:{self.type})"


def connections_from_dict(data: Dict[str, Any]) -> Connections:
    """Build the typed adjacency from its plain-dict form, keeping empty and None slots."""
    result: Connections = {}
    for source_name, by_kind in (data or {}).items():
        result[source_name] = {}
        for kind, slots in by_kind.items():
            typed_slots = []
            for slot in slots or []:
                if slot is None:
                    typed_slots.append(None)
                    continue
                typed_slots.append([
                    e if isinstance(e, Endpoint) else Endpoint.from_dict(e)
                    for e in slot if e is not None
                ])
            result[source_name][ConnectionKind.parse(kind)] = typed_slots
    return result


def connections_to_dict(connections: Connections) -> Dict[str, Any]:
    return {
        source_name: {
            kind.value: [
                None if slot is None else [e.to_dict() for e in slot]
                for slot in slots
            ]
            for kind, slots in by_kind.items()
        }
        for source_name, by_kind in connections.items()
    }


class WorkflowGraph(IGraphStore):
    """
    In-memory graph store (Arena Pattern): nodes are held by id, connections
    are a separate index keyed by source node name, then connection kind, then
    output index. Nothing holds a direct reference to another node object.
    """

    def __init__(self, name: str = "My workflow", id: Optional[str] = None):
        self.id = id or uuid.uuid4().hex
        self.name = name
        self.nodes: Dict[str, CanvasNode] = {}
        self.connections: Connections = {}
        self.state_is_dirty = False
        self.node_metadata: Dict[str, Dict[str, Any]] = defaultdict(dict)
        self.pin_data: Dict[str, List[Dict[str, Any]]] = {}
        self.execution_data: Optional[Dict[str, Any]] = None
        self.meta: Dict[str, Any] = {}

    # -----------------------------------------------------------------
    # Nodes
    # -----------------------------------------------------------------

    def add_node(self, node: CanvasNode):
        if node.id in self.nodes:
            raise ValueError(f"Node with id '{node.id}' already exists in the workflow")
        if self.get_node_by_name(node.name) is not None:
            raise NodeNameConflictError(node.name)
        self.nodes[node.id] = node
        logger.debug("graph: added node %s (%s)", node.name, node.id)

    def remove_node_by_id(self, node_id: str):
        node = self.nodes.pop(node_id, None)
        if node is None:
            return
        # Arena Pattern: drop every connection that still references the node
        self.connections.pop(node.name, None)
        for by_kind in self.connections.values():
            for slots in by_kind.values():
                for i, slot in enumerate(slots):
                    if slot:
                        slots[i] = [e for e in slot if e.node != node.name]
        self.node_metadata.pop(node.name, None)
        self.pin_data.pop(node.name, None)

    def get_node_by_id(self, node_id: str) -> Optional[CanvasNode]:
        return self.nodes.get(node_id)

    def get_node_by_name(self, name: str) -> Optional[CanvasNode]:
        for node in self.nodes.values():
            if node.name == name:
                return node
        return None

    def get_nodes_by_ids(self, ids: List[str]) -> List[CanvasNode]:
        return [self.nodes[i] for i in ids if i in self.nodes]

    def all_nodes(self) -> List[CanvasNode]:
        return list(self.nodes.values())

    def node_names(self) -> Set[str]:
        return {node.name for node in self.nodes.values()}

    def node_count_by_type(self, node_type: str) -> int:
        return sum(1 for node in self.nodes.values() if node.type == node_type)

    def set_node_position(self, node_id: str, position: XY):
        node = self.nodes.get(node_id)
        if node is not None:
            node.position = list(position)

    def set_node_parameters(self, node_id: str, parameters: Dict[str, Any]):
        node = self.nodes.get(node_id)
        if node is not None:
            node.parameters = parameters

    def set_node_value(self, node_id: str, key: str, value: Any):
        node = self.nodes.get(node_id)
        if node is not None:
            setattr(node, key, value)

    def rename_node(self, current_name: str, new_name: str):
        node = self.get_node_by_name(current_name)
        if node is None:
            return
        if current_name == new_name:
            return
        if self.get_node_by_name(new_name) is not None:
            raise NodeNameConflictError(new_name)

        node.name = new_name
        if current_name in self.connections:
            self.connections[new_name] = self.connections.pop(current_name)
        for by_kind in self.connections.values():
            for slots in by_kind.values():
                for i, slot in enumerate(slots):
                    if slot:
                        slots[i] = [e._replace(node=new_name) if e.node == current_name else e for e in slot]
        for bag in (self.node_metadata, self.pin_data):
            if current_name in bag:
                bag[new_name] = bag.pop(current_name)
        run_data = (self.execution_data or {}).get("runData")
        if run_data and current_name in run_data:
            run_data[new_name] = run_data.pop(current_name)
        logger.info("graph: renamed node %s -> %s", current_name, new_name)

    # -----------------------------------------------------------------
    # Connections
    # -----------------------------------------------------------------

    def add_connection(self, source: Endpoint, target: Endpoint) -> bool:
        slots = self.connections.setdefault(source.node, {}).setdefault(source.kind, [])
        while len(slots) <= source.index:
            slots.append([])
        if slots[source.index] is None:
            slots[source.index] = []
        if target in slots[source.index]:
            return False
        slots[source.index].append(target)
        return True

    def remove_connection(self, source: Endpoint, target: Endpoint) -> bool:
        slots = self.connections.get(source.node, {}).get(source.kind)
        if not slots or source.index >= len(slots) or not slots[source.index]:
            return False
        slot = slots[source.index]
        if target not in slot:
            return False
        slot.remove(target)
        return True

    def has_connection(self, source: Endpoint, target: Endpoint) -> bool:
        slots = self.connections.get(source.node, {}).get(source.kind) or []
        return source.index < len(slots) and bool(slots[source.index]) and target in slots[source.index]

    def outgoing_connections_by_node_name(self, name: str) -> NodeConnections:
        return copy.deepcopy(self.connections.get(name, {}))

    def incoming_connections_by_node_name(self, name: str) -> NodeConnections:
        """Connections arriving at *name*, grouped by kind then by the node's input index."""
        result: NodeConnections = {}
        for source_name, by_kind in self.connections.items():
            for kind, slots in by_kind.items():
                for output_index, slot in enumerate(slots):
                    for target in slot or []:
                        if target.node != name:
                            continue
                        inputs = result.setdefault(kind, [])
                        while len(inputs) <= target.index:
                            inputs.append([])
                        inputs[target.index].append(Endpoint(source_name, kind, output_index))
        return result

    def connection_pairs(self) -> List[tuple]:
        pairs = []
        for source_name, by_kind in self.connections.items():
            for kind, slots in by_kind.items():
                for output_index, slot in enumerate(slots):
                    for target in slot or []:
                        pairs.append((Endpoint(source_name, kind, output_index), target))
        return pairs

    def set_connections(self, connections: Connections):
        self.connections = connections

    def remove_all_node_connections(self, name: str):
        self.connections.pop(name, None)

    # -----------------------------------------------------------------
    # Workspace flags and attached data
    # -----------------------------------------------------------------

    def set_state_dirty(self, dirty: bool = True):
        self.state_is_dirty = dirty

    def set_node_pristine(self, name: str, pristine: bool):
        self.node_metadata[name]["pristine"] = pristine

    def is_node_pristine(self, name: str) -> bool:
        return self.node_metadata.get(name, {}).get("pristine", True)

    def set_pin_data(self, name: str, data: List[Dict[str, Any]]):
        self.pin_data[name] = data

    def clear_pin_data(self):
        self.pin_data = {}

    def set_workflow_execution_data(self, data: Optional[Dict[str, Any]]):
        self.execution_data = data

    def remove_node_execution_data_by_id(self, node_id: str):
        node = self.nodes.get(node_id)
        run_data = (self.execution_data or {}).get("runData")
        if node is not None and run_data:
            run_data.pop(node.name, None)

    def reset(self):
        self.nodes.clear()
        self.connections.clear()
        self.node_metadata.clear()
        self.pin_data.clear()
        self.execution_data = None
        self.meta.clear()
        self.state_is_dirty = False
