"""
CanvasState: the server's single editing session.

Builds a demo workflow on startup so the editor has something to display on
first load. Every mutation goes through the CanvasOperations instance held
here; its change events are forwarded to `global_events` (and from there to
Socket.IO).
"""
from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional

from ..core.CanvasOperations import CanvasOperations, RefreshScheduler
from ..core.EditorState import EditorState
from ..core.GraphPrimitives import CanvasNode, WorkflowGraph
from ..core.History import HistoryService
from ..core.Interface import ICredentialSource, IExecutionSource
from ..core.Types import ConnectionKind, Endpoint
from ..noderegistry.NodeRegistry import NodeTypeRegistry
from .events.event_emitter import CanvasEventEmitter, global_events
from .node_definitions import register_demo_node_types

logger = logging.getLogger(__name__)


class InMemoryCredentialStore(ICredentialSource):
    """Credentials keyed by credential type: type → [{id, name}]."""

    def __init__(self) -> None:
        self._by_type: Dict[str, List[Dict[str, Any]]] = {}

    def add(self, credential_type: str, credential_id: str, name: str) -> None:
        self._by_type.setdefault(credential_type, []).append({"id": credential_id, "name": name})

    def usable_credentials(self, credential_type: str) -> List[Dict[str, Any]]:
        return list(self._by_type.get(credential_type, []))


class InMemoryExecutionStore(IExecutionSource):
    def __init__(self) -> None:
        self._executions: Dict[str, Dict[str, Any]] = {}

    def save(self, execution_id: str, data: Dict[str, Any]) -> None:
        self._executions[execution_id] = data

    async def fetch_execution(self, execution_id: str) -> Optional[Dict[str, Any]]:
        return self._executions.get(execution_id)


class CanvasState:
    """Holds the registry, graph, history and operations of the editing session."""

    def __init__(self, events: Optional[CanvasEventEmitter] = None, seed: bool = True) -> None:
        self.events = events if events is not None else global_events
        self.registry = register_demo_node_types(NodeTypeRegistry())
        self.credentials = InMemoryCredentialStore()
        self.executions = InMemoryExecutionStore()
        self.reset(seed=seed)

    def reset(self, seed: bool = True) -> None:
        self.graph = WorkflowGraph("Demo workflow")
        self.history = HistoryService()
        self.editor = EditorState()
        # the server has no render loop, so deferred effects apply at once
        self.ops = CanvasOperations(
            graph=self.graph,
            registry=self.registry,
            history=self.history,
            editor=self.editor,
            credentials=self.credentials,
            executions=self.executions,
            notifier=self.events,
            scheduler=RefreshScheduler(immediate=True),
            on_change=self.events.fire,
        )
        if seed:
            self._seed_demo()

    # ── Demo graph ──────────────────────────────────────────────────────────

    def _seed_demo(self) -> None:
        ops = self.ops
        trigger, fields, agent = ops.add_nodes(
            [
                {"type": "manualTrigger", "name": "Start", "position": [0, 0]},
                {"type": "set", "name": "Prepare input", "position": [208, 0]},
                {"type": "agent", "name": "Agent", "position": [416, 0]},
            ],
            keep_pristine=True,
            is_auto_add=True,
        )
        model, memory = ops.add_nodes(
            [
                {"type": "lmChatOpenAi", "name": "Chat Model", "position": [336, 224]},
                {"type": "memoryBufferWindow", "name": "Memory", "position": [464, 224]},
            ],
            keep_pristine=True,
            is_auto_add=True,
        )

        main = ConnectionKind.MAIN
        for source, target in [
            (Endpoint(trigger.name, main, 0), Endpoint(fields.name, main, 0)),
            (Endpoint(fields.name, main, 0), Endpoint(agent.name, main, 0)),
            (Endpoint(model.name, ConnectionKind.AI_LANGUAGE_MODEL, 0),
             Endpoint(agent.name, ConnectionKind.AI_LANGUAGE_MODEL, 0)),
            (Endpoint(memory.name, ConnectionKind.AI_MEMORY, 0),
             Endpoint(agent.name, ConnectionKind.AI_MEMORY, 0)),
        ]:
            ops.create_connection((source, target), keep_pristine=True)
        self.graph.set_state_dirty(False)
        logger.info("seeded demo workflow with %d nodes", len(self.graph.nodes))

    # ── Lookups used by the routes ──────────────────────────────────────────

    def get_node(self, node_id: str) -> Optional[CanvasNode]:
        return self.graph.get_node_by_id(node_id)


# ---------------------------------------------------------------------------
# Module-level singleton
# ---------------------------------------------------------------------------

canvas_state = CanvasState()
