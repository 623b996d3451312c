"""
Graph serializer.

Converts the WorkflowGraph into JSON-safe dicts in the wire shape the browser
editor renders: nodes with their port handles, connections both in the stored
adjacency form and as a flat list of canvas edges.
"""
from __future__ import annotations

from typing import Any, Dict, List, Optional

from ...core.EditorState import EditorState
from ...core.GraphPrimitives import CanvasNode, WorkflowGraph, connections_to_dict
from ...core.Handles import create_handle
from ...core.Interface import INodeTypeRegistry
from ...core.Types import ConnectionMode
from ...noderegistry.NodeRegistry import NodeTypeDescriptor, PortSpec

# SerializedPort keys: handle, type, index, displayName, required
# SerializedNode keys: id, name, type, typeVersion, position, parameters,
#                      disabled, inputs, outputs, (credentials), (webhookId)
# SerializedEdge keys: id, source, target, sourceHandle, targetHandle


# ── Helpers ───────────────────────────────────────────────────────────────────

def _serialize_ports(ports: List[PortSpec], mode: ConnectionMode) -> List[Dict[str, Any]]:
    result = []
    seen: Dict[str, int] = {}
    for port in ports:
        index = seen.get(port.kind.value, 0)
        seen[port.kind.value] = index + 1
        entry: Dict[str, Any] = {
            "handle": create_handle(mode, port.kind, index),
            "type": port.kind.value,
            "index": index,
            "displayName": port.display_name,
            "required": port.required,
        }
        if port.filter is not None:
            entry["filter"] = {"nodes": list(port.filter.nodes)}
        result.append(entry)
    return result


def serialize_node(node: CanvasNode, descriptor: Optional[NodeTypeDescriptor]) -> Dict[str, Any]:
    data = node.to_dict()
    data["inputs"] = _serialize_ports(descriptor.inputs, ConnectionMode.INPUT) if descriptor else []
    data["outputs"] = _serialize_ports(descriptor.outputs, ConnectionMode.OUTPUT) if descriptor else []
    return data


def serialize_edges(graph: WorkflowGraph) -> List[Dict[str, Any]]:
    edges = []
    for source, target in graph.connection_pairs():
        source_node = graph.get_node_by_name(source.node)
        target_node = graph.get_node_by_name(target.node)
        if source_node is None or target_node is None:
            continue
        source_handle = create_handle(ConnectionMode.OUTPUT, source.kind, source.index)
        target_handle = create_handle(ConnectionMode.INPUT, target.kind, target.index)
        edges.append({
            "id": f"[{source_node.id}/{source_handle}][{target_node.id}/{target_handle}]",
            "source": source_node.id,
            "target": target_node.id,
            "sourceHandle": source_handle,
            "targetHandle": target_handle,
        })
    return edges


def serialize_descriptor(descriptor: NodeTypeDescriptor) -> Dict[str, Any]:
    return {
        "name": descriptor.name,
        "displayName": descriptor.display_name,
        "version": descriptor.version,
        "group": list(descriptor.group),
        "inputs": _serialize_ports(descriptor.inputs, ConnectionMode.INPUT),
        "outputs": _serialize_ports(descriptor.outputs, ConnectionMode.OUTPUT),
        "webhooks": len(descriptor.webhooks),
        "credentials": [c.name for c in descriptor.credentials],
        "maxNodes": descriptor.max_nodes,
    }


# ── Public API ────────────────────────────────────────────────────────────────

def serialize_workflow(
    graph: WorkflowGraph,
    registry: INodeTypeRegistry,
    editor: Optional[EditorState] = None,
) -> Dict[str, Any]:
    nodes = [
        serialize_node(node, registry.describe(node.type, node.type_version))
        for node in graph.all_nodes()
    ]
    result: Dict[str, Any] = {
        "id": graph.id,
        "name": graph.name,
        "nodes": nodes,
        "connections": connections_to_dict(graph.connections),
        "edges": serialize_edges(graph),
        "pinData": dict(graph.pin_data),
        "meta": dict(graph.meta),
        "isDirty": graph.state_is_dirty,
    }
    if editor is not None:
        result["activeNode"] = editor.active_node_name
        result["selectedNodes"] = editor.selection()
    return result
