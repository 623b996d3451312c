"""
nodecanvas
==========
Mutation and validation engine for a node-and-wire workflow editor.

Public API
----------
    from nodecanvas.core.CanvasOperations import CanvasOperations
    from nodecanvas.noderegistry.NodeRegistry import NodeTypeRegistry

    registry = NodeTypeRegistry()
    registry.register_from_dict({"name": "set", "inputs": ["main"], "outputs": ["main"]})
    ops = CanvasOperations(registry=registry)
    ops.add_nodes([{"type": "set"}])
"""
