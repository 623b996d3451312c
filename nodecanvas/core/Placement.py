"""
Default placement for nodes added without a position.

Priority, first match wins:
    1. explicit position on the node
    2. the point where the user dropped an unfinished wire
    3. relative to the node the user last interacted with (the anchor)
    4. the last clicked canvas point
    5. the origin

Computed coordinates snap to the canvas grid and are nudged until they do not
sit exactly on top of another node.
"""
from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Optional, Tuple

from .EditorState import EditorState
from .Handles import parse_handle
from .Types import ConnectionKind, ConnectionMode, STICKY_NODE_TYPE, XY

if TYPE_CHECKING:
    from .GraphPrimitives import CanvasNode
    from .Interface import IGraphStore, INodeTypeRegistry
    from ..noderegistry.NodeRegistry import NodeTypeDescriptor

logger = logging.getLogger(__name__)

# ── Canvas geometry ───────────────────────────────────────────────────────────

GRID_SIZE = 16
NODE_SIZE = 96
CONFIGURATION_NODE_SIZE = (80, 80)

# horizontal step between a node and its downstream neighbour
PUSH_NODES_OFFSET = NODE_SIZE * 2 + GRID_SIZE
# anchors with configuration inputs are wider
SCOPED_INPUT_PUSH = 140
# vertical step between sibling targets of the same output
ROW_HEIGHT = NODE_SIZE + GRID_SIZE * 2
# configuration nodes hang below their consumer
CONFIGURATION_Y_OFFSET = 220
# language models and memories sit left of the consumer's centre line
CONFIGURATION_SIDE_OFFSETS = {
    ConnectionKind.AI_LANGUAGE_MODEL: CONFIGURATION_NODE_SIZE[0] * 2,
    ConnectionKind.AI_MEMORY: CONFIGURATION_NODE_SIZE[0] * 2,
}

DEFAULT_PUSH_OFFSETS = (40, 40)
ANCHOR_PUSH_OFFSETS = (100, 0)

# Safety bound on the collision nudge loop
MAX_PUSH_STEPS = 1000


def closest_number_divisible_by(n: float, m: int) -> int:
    """Nearest multiple of *m*; exact halves round away from zero."""
    q = int(n / m)
    n1 = m * q
    n2 = m * (q + 1) if n * m > 0 else m * (q - 1)
    if abs(n - n1) < abs(n - n2):
        return n1
    return n2


def snap_position(position: XY) -> XY:
    return [closest_number_divisible_by(position[0], GRID_SIZE),
            closest_number_divisible_by(position[1], GRID_SIZE)]


def generate_output_offsets(count: int, index: int) -> int:
    """Vertical offset of output *index* when a node fans out to *count* main outputs."""
    if count <= 1:
        return 0
    step = NODE_SIZE + GRID_SIZE
    return int((index - (count - 1) / 2) * step)


class PlacementResolver:

    def __init__(self, graph: 'IGraphStore', registry: 'INodeTypeRegistry', editor: EditorState):
        self.graph = graph
        self.registry = registry
        self.editor = editor

    def resolve_node_position(self, node: 'CanvasNode', descriptor: Optional['NodeTypeDescriptor']) -> XY:
        if node.position is not None:
            return list(node.position)

        dropped = self.editor.consume_cancelled_connection_position()
        if dropped is not None:
            position = snap_position([dropped[0], dropped[1] - NODE_SIZE / 2])
            logger.debug("placing %s at wire drop point %s", node.name, position)
            return position

        anchor = None
        if self.editor.last_interacted_with_node_id:
            anchor = self.graph.get_node_by_id(self.editor.last_interacted_with_node_id)

        if anchor is not None and anchor.position is not None:
            position = self._position_relative_to_anchor(anchor, descriptor)
            return self.push_until_free(snap_position(position), ANCHOR_PUSH_OFFSETS)

        if self.editor.last_click_position is not None:
            return self.push_until_free(snap_position(self.editor.last_click_position), DEFAULT_PUSH_OFFSETS)

        return self.push_until_free([0, 0], DEFAULT_PUSH_OFFSETS)

    # ── Anchor-relative placement ─────────────────────────────────────────────

    def _position_relative_to_anchor(self, anchor: 'CanvasNode', descriptor: Optional['NodeTypeDescriptor']) -> XY:
        anchor_type = self.registry.describe(anchor.type, anchor.type_version)
        handle = self.editor.last_interacted_with_node_handle

        if handle:
            parsed = parse_handle(handle)
            if parsed.mode == ConnectionMode.OUTPUT:
                return self._right_of(anchor, anchor_type, parsed.index)
            if parsed.kind.isPrimary():
                return [anchor.position[0] - PUSH_NODES_OFFSET, anchor.position[1]]
            return self._below(anchor, parsed.kind)

        if descriptor is not None and descriptor.is_configuration_node():
            return self._below(anchor, descriptor.outputs[0].kind)
        return [anchor.position[0] + PUSH_NODES_OFFSET, anchor.position[1]]

    def _right_of(self, anchor: 'CanvasNode', anchor_type: Optional['NodeTypeDescriptor'], output_index: int) -> XY:
        push = PUSH_NODES_OFFSET
        main_outputs = 1
        if anchor_type is not None:
            if anchor_type.is_configurable_node():
                push += SCOPED_INPUT_PUSH
            main_outputs = len(anchor_type.ports_of_kind(ConnectionMode.OUTPUT, ConnectionKind.MAIN))

        y_offset = generate_output_offsets(main_outputs, output_index)
        siblings = self._sibling_count(anchor.name, output_index)
        return [anchor.position[0] + push, anchor.position[1] + y_offset + siblings * ROW_HEIGHT]

    def _below(self, anchor: 'CanvasNode', kind: ConnectionKind) -> XY:
        ordinal = 0
        incoming = self.graph.incoming_connections_by_node_name(anchor.name).get(kind, [])
        for slot in incoming:
            ordinal += len(slot or [])

        x = (anchor.position[0]
             - CONFIGURATION_NODE_SIZE[0] / 2
             - CONFIGURATION_SIDE_OFFSETS.get(kind, 0)
             - ordinal * (CONFIGURATION_NODE_SIZE[0] + GRID_SIZE))
        return [x, anchor.position[1] + CONFIGURATION_Y_OFFSET]

    def _sibling_count(self, anchor_name: str, output_index: int) -> int:
        slots = self.graph.outgoing_connections_by_node_name(anchor_name).get(ConnectionKind.MAIN, [])
        if output_index >= len(slots):
            return 0
        return len(slots[output_index] or [])

    # ── Collision nudge ───────────────────────────────────────────────────────

    def push_until_free(self, position: XY, offsets: Tuple[int, int]) -> XY:
        occupied = {
            tuple(n.position) for n in self.graph.all_nodes()
            if n.position is not None and n.type != STICKY_NODE_TYPE
        }
        candidate = list(position)
        steps = 0
        while tuple(candidate) in occupied and steps < MAX_PUSH_STEPS:
            candidate = snap_position([candidate[0] + offsets[0], candidate[1] + offsets[1]])
            steps += 1
        return candidate
