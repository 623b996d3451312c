"""
Canvas REST routes.

All routes are mounted under /api by main.py. Every handler runs one canvas
operation to completion; missing node ids are reported as 404 before the
operation is called.
"""
from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional

from fastapi import APIRouter, HTTPException, Response
from pydantic import BaseModel

from ...core.Errors import ExecutionNotFoundError
from ...core.GraphPrimitives import CanvasNode
from ...core.Handles import endpoint_from_handle
from ...core.Types import CanvasConnection
from ..serializers.graph_serializer import serialize_descriptor, serialize_node, serialize_workflow
from ..state import canvas_state

logger = logging.getLogger(__name__)

router = APIRouter()


def _require_node(node_id: str) -> CanvasNode:
    node = canvas_state.get_node(node_id)
    if node is None:
        raise HTTPException(status_code=404, detail=f"Node '{node_id}' not found")
    return node


def _serialize(node: CanvasNode) -> Dict[str, Any]:
    return serialize_node(node, canvas_state.registry.describe(node.type, node.type_version))


# ── GET /workflow ─────────────────────────────────────────────────────────────

@router.get("/workflow")
async def get_workflow() -> Dict[str, Any]:
    return serialize_workflow(canvas_state.graph, canvas_state.registry, canvas_state.editor)


# ── POST /workflow/reset ──────────────────────────────────────────────────────

@router.post("/workflow/reset")
async def reset_workflow() -> Dict[str, Any]:
    canvas_state.ops.reset_workspace()
    return {"ok": True}


# ── GET /node-types ───────────────────────────────────────────────────────────

@router.get("/node-types")
async def list_node_types() -> List[Dict[str, Any]]:
    return [serialize_descriptor(d) for d in canvas_state.registry.all_descriptors()]


# ── POST /nodes ───────────────────────────────────────────────────────────────

class CreateNodeBody(BaseModel):
    type: str
    name: Optional[str] = None
    typeVersion: Optional[int] = None
    position: Optional[List[float]] = None
    parameters: Optional[Dict[str, Any]] = None
    # interaction context recorded by the editor
    lastInteractedWithNodeId: Optional[str] = None
    lastInteractedWithNodeHandle: Optional[str] = None
    cancelledConnectionPosition: Optional[List[float]] = None
    clickPosition: Optional[List[float]] = None
    openDetail: bool = False


@router.post("/nodes", status_code=201)
async def create_node(body: CreateNodeBody) -> Dict[str, Any]:
    editor = canvas_state.editor
    editor.last_interacted_with_node_id = body.lastInteractedWithNodeId
    editor.last_interacted_with_node_handle = body.lastInteractedWithNodeHandle
    editor.last_cancelled_connection_position = body.cancelledConnectionPosition
    if body.clickPosition is not None:
        editor.last_click_position = body.clickPosition

    data = {
        "type": body.type,
        "name": body.name,
        "typeVersion": body.typeVersion,
        "position": body.position,
        "parameters": body.parameters,
    }
    added = canvas_state.ops.add_nodes([data], track_history=True, open_detail=body.openDetail)
    if not added:
        raise HTTPException(status_code=400, detail=f"Could not add node of type '{body.type}'")
    return _serialize(added[0])


# ── DELETE /nodes/:id ─────────────────────────────────────────────────────────

@router.delete("/nodes/{node_id}", status_code=204)
async def delete_node(node_id: str) -> Response:
    _require_node(node_id)
    canvas_state.ops.delete_node(node_id, track_history=True)
    return Response(status_code=204)


# ── POST /nodes/delete ────────────────────────────────────────────────────────

class NodeIdsBody(BaseModel):
    ids: List[str]


@router.post("/nodes/delete")
async def delete_nodes(body: NodeIdsBody) -> Dict[str, Any]:
    deleted = canvas_state.ops.delete_nodes(body.ids, track_history=True)
    return {"ids": deleted}


# ── POST /nodes/duplicate ─────────────────────────────────────────────────────

@router.post("/nodes/duplicate", status_code=201)
async def duplicate_nodes(body: NodeIdsBody) -> Dict[str, Any]:
    return {"ids": canvas_state.ops.duplicate_nodes(body.ids)}


# ── POST /nodes/toggle-disabled ───────────────────────────────────────────────

@router.post("/nodes/toggle-disabled")
async def toggle_disabled(body: NodeIdsBody) -> Dict[str, Any]:
    return {"ids": canvas_state.ops.toggle_nodes_disabled(body.ids)}


# ── PATCH /nodes/:id/position ─────────────────────────────────────────────────

class PositionBody(BaseModel):
    x: float
    y: float


@router.patch("/nodes/{node_id}/position")
async def move_node(node_id: str, body: PositionBody) -> Dict[str, Any]:
    _require_node(node_id)
    canvas_state.ops.update_node_position(node_id, {"x": body.x, "y": body.y}, track_history=True)
    return _serialize(_require_node(node_id))


# ── POST /nodes/positions ─────────────────────────────────────────────────────

class NodePositionEvent(BaseModel):
    id: str
    x: float
    y: float


class PositionsBody(BaseModel):
    events: List[NodePositionEvent]
    tidyUp: bool = False


@router.post("/nodes/positions")
async def move_nodes(body: PositionsBody) -> Dict[str, Any]:
    events = [(e.id, [e.x, e.y]) for e in body.events]
    if body.tidyUp:
        moved = canvas_state.ops.tidy_up(events)
    else:
        moved = canvas_state.ops.update_nodes_position(events, track_history=True)
    return {"ids": moved}


# ── PATCH /nodes/:id/name ─────────────────────────────────────────────────────

class RenameBody(BaseModel):
    name: str


@router.patch("/nodes/{node_id}/name")
async def rename_node(node_id: str, body: RenameBody) -> Dict[str, Any]:
    node = _require_node(node_id)
    current_name = node.name
    if current_name != body.name and not canvas_state.ops.rename_node(current_name, body.name, track_history=True):
        raise HTTPException(status_code=400, detail=f'Node name "{body.name}" is already in use')
    return _serialize(node)


# ── PUT /nodes/:id/parameters ─────────────────────────────────────────────────

class ParametersBody(BaseModel):
    parameters: Dict[str, Any]


@router.put("/nodes/{node_id}/parameters")
async def replace_parameters(node_id: str, body: ParametersBody) -> Dict[str, Any]:
    node = _require_node(node_id)
    canvas_state.ops.replace_node_parameters(node_id, dict(node.parameters), body.parameters, track_history=True)
    return _serialize(node)


# ── POST /nodes/:id/replace ───────────────────────────────────────────────────

class ReplaceBody(BaseModel):
    newNodeId: str
    replaceInputs: bool = True
    replaceOutputs: bool = True


@router.post("/nodes/{node_id}/replace")
async def replace_node(node_id: str, body: ReplaceBody) -> Dict[str, Any]:
    _require_node(node_id)
    _require_node(body.newNodeId)
    canvas_state.ops.replace_node_connections(
        node_id,
        body.newNodeId,
        replace_inputs=body.replaceInputs,
        replace_outputs=body.replaceOutputs,
        track_history=True,
    )
    return serialize_workflow(canvas_state.graph, canvas_state.registry, canvas_state.editor)


# ── POST /nodes/:id/revalidate ────────────────────────────────────────────────

@router.post("/nodes/{node_id}/revalidate")
async def revalidate_node(node_id: str) -> Dict[str, Any]:
    _require_node(node_id)
    removed = canvas_state.ops.revalidate_node_input_connections(node_id)
    removed += canvas_state.ops.revalidate_node_output_connections(node_id)
    await canvas_state.ops.next_tick()
    return {"removed": [[s.to_dict(), t.to_dict()] for s, t in removed]}


# ── Connections ───────────────────────────────────────────────────────────────

class ConnectionBody(BaseModel):
    source: str
    target: str
    sourceHandle: str = "outputs/main/0"
    targetHandle: str = "inputs/main/0"

    def to_connection(self) -> CanvasConnection:
        return CanvasConnection(self.source, self.target, self.sourceHandle, self.targetHandle)


@router.post("/connections/allowed")
async def connection_allowed(body: ConnectionBody) -> Dict[str, Any]:
    source_node = _require_node(body.source)
    target_node = _require_node(body.target)
    allowed = canvas_state.ops.is_connection_allowed(
        source_node,
        target_node,
        endpoint_from_handle(source_node.name, body.sourceHandle),
        endpoint_from_handle(target_node.name, body.targetHandle),
    )
    return {"allowed": allowed}


@router.post("/connections", status_code=201)
async def create_connection(body: ConnectionBody) -> Dict[str, Any]:
    _require_node(body.source)
    _require_node(body.target)
    if not canvas_state.ops.create_connection(body.to_connection(), track_history=True):
        raise HTTPException(status_code=400, detail="Connection not allowed")
    return {"ok": True}


@router.delete("/connections", status_code=204)
async def delete_connection(body: ConnectionBody) -> Response:
    canvas_state.ops.delete_connection(body.to_connection(), track_history=True)
    return Response(status_code=204)


# ── Undo / redo ───────────────────────────────────────────────────────────────

@router.post("/undo")
async def undo() -> Dict[str, Any]:
    command = canvas_state.ops.undo()
    return {"undone": type(command).__name__ if command else None}


@router.post("/redo")
async def redo() -> Dict[str, Any]:
    command = canvas_state.ops.redo()
    return {"redone": type(command).__name__ if command else None}


# ── Templates and executions ──────────────────────────────────────────────────

class TemplateBody(BaseModel):
    id: str
    name: str = ""
    workflow: Dict[str, Any]


@router.post("/templates/import", status_code=201)
async def import_template(body: TemplateBody) -> Dict[str, Any]:
    imported = canvas_state.ops.import_template(body.model_dump(), track_history=True)
    return {"ids": [n.id for n in imported]}


@router.post("/executions/{execution_id}/open")
async def open_execution(execution_id: str) -> Dict[str, Any]:
    try:
        await canvas_state.ops.open_execution(execution_id)
    except ExecutionNotFoundError as exc:
        raise HTTPException(status_code=404, detail=exc.description)
    return serialize_workflow(canvas_state.graph, canvas_state.registry, canvas_state.editor)
