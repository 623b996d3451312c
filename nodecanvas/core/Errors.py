from typing import Optional


class CanvasError(Exception):
    """Base class for user-facing canvas errors. Carries a title and description for display."""

    def __init__(self, title: str, description: Optional[str] = None):
        super().__init__(description or title)
        self.title = title
        self.description = description or title


class NodeNameConflictError(CanvasError):
    def __init__(self, name: str):
        super().__init__(
            "Node name already exists",
            f'The name "{name}" is already used by another node. Please choose a different name.',
        )
        self.name = name


class MaxNodesReachedError(CanvasError):
    def __init__(self, node_type: str, max_nodes: int):
        super().__init__(
            "Could not add node",
            f'Only {max_nodes} "{node_type}" node{"s" if max_nodes != 1 else ""} allowed in a workflow',
        )
        self.node_type = node_type
        self.max_nodes = max_nodes


class ExecutionNotFoundError(CanvasError):
    def __init__(self, execution_id: str):
        super().__init__(
            "Execution not found",
            f'Execution with id "{execution_id}" could not be found!',
        )
        self.execution_id = execution_id
