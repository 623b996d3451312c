"""
Connection compatibility check.

A pure predicate: it reads the registry and the graph but never mutates them.
Any missing metadata fails closed so a half-loaded catalog never throws.
"""
from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from .Types import ConnectionMode, Endpoint

if TYPE_CHECKING:
    from .GraphPrimitives import CanvasNode
    from .Interface import IGraphStore, INodeTypeRegistry

logger = logging.getLogger(__name__)


def is_connection_allowed(
    source_node: 'CanvasNode',
    target_node: 'CanvasNode',
    source_endpoint: Endpoint,
    target_endpoint: Endpoint,
    registry: 'INodeTypeRegistry',
    graph: 'IGraphStore',
) -> bool:
    # self-loops are always structurally permitted
    if source_node.id == target_node.id:
        return True

    if source_endpoint.kind != target_endpoint.kind:
        return False

    source_type = registry.describe(source_node.type, source_node.type_version)
    target_type = registry.describe(target_node.type, target_node.type_version)
    if source_type is None or target_type is None:
        return False

    if len(target_type.inputs) == 0:
        return False

    if graph.get_node_by_id(target_node.id) is None:
        return False

    source_ports = source_type.ports_of_kind(ConnectionMode.OUTPUT, source_endpoint.kind)
    if not source_ports:
        return False

    target_ports = target_type.ports_of_kind(ConnectionMode.INPUT, target_endpoint.kind)
    if not target_ports:
        return False

    if not 0 <= source_endpoint.index < len(source_ports):
        return False

    if not 0 <= target_endpoint.index < len(target_ports):
        return False

    target_port = target_ports[target_endpoint.index]
    if target_port.filter is not None and target_port.filter.nodes:
        if source_node.type not in target_port.filter.nodes:
            logger.debug(
                "connection %s -> %s rejected by input filter %s",
                source_endpoint, target_endpoint, target_port.filter.nodes,
            )
            return False

    return True
