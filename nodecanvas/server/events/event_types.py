"""
Canvas change events pushed to connected editors.
All events are plain dicts so they can be emitted over Socket.IO without Pydantic overhead.
"""
from typing import Any, Dict, List, Literal, Optional, TypedDict, Union


class EndpointDict(TypedDict):
    node: str
    type: str
    index: int


class NodeAddedEvent(TypedDict):
    type: Literal["NODE_ADDED"]
    node: Dict[str, Any]
    ts: int


class NodeRemovedEvent(TypedDict):
    type: Literal["NODE_REMOVED"]
    nodeId: str
    name: str
    ts: int


class NodeRenamedEvent(TypedDict):
    type: Literal["NODE_RENAMED"]
    oldName: str
    newName: str
    ts: int


class NodeMovedEvent(TypedDict):
    type: Literal["NODE_MOVED"]
    nodeId: str
    position: List[float]
    ts: int


class NodeUpdatedEvent(TypedDict, total=False):
    type: Literal["NODE_UPDATED"]
    nodeId: str
    disabled: bool
    parameters: Dict[str, Any]
    ts: int


class ConnectionAddedEvent(TypedDict):
    type: Literal["CONNECTION_ADDED"]
    source: EndpointDict
    target: EndpointDict
    ts: int


class ConnectionRemovedEvent(TypedDict):
    type: Literal["CONNECTION_REMOVED"]
    source: EndpointDict
    target: EndpointDict
    ts: int


class WorkspaceLoadedEvent(TypedDict):
    type: Literal["WORKSPACE_LOADED"]
    nodeCount: int
    ts: int


class WorkspaceResetEvent(TypedDict):
    type: Literal["WORKSPACE_RESET"]
    ts: int


class ExecutionOpenedEvent(TypedDict):
    type: Literal["EXECUTION_OPENED"]
    executionId: str
    mode: Optional[str]
    ts: int


class NotificationEvent(TypedDict):
    type: Literal["NOTIFICATION"]
    level: str
    title: str
    message: str
    ts: int


CanvasEvent = Union[
    NodeAddedEvent,
    NodeRemovedEvent,
    NodeRenamedEvent,
    NodeMovedEvent,
    NodeUpdatedEvent,
    ConnectionAddedEvent,
    ConnectionRemovedEvent,
    WorkspaceLoadedEvent,
    WorkspaceResetEvent,
    ExecutionOpenedEvent,
    NotificationEvent,
]
