from __future__ import annotations
from typing import Optional, List, Dict, Any, TYPE_CHECKING

import logging
from abc import ABC, abstractmethod

from .Types import Endpoint, NodeConnections, XY

if TYPE_CHECKING:
    from .GraphPrimitives import CanvasNode
    from ..noderegistry.NodeRegistry import NodeTypeDescriptor

logger = logging.getLogger(__name__)


class INodeTypeRegistry(ABC):
    @abstractmethod
    def describe(self, node_type: str, version: Optional[int] = None) -> Optional['NodeTypeDescriptor']:
        pass


# The authoritative graph. Connections are addressed by endpoints; nodes by id or name.
class IGraphStore(ABC):
    @abstractmethod
    def add_node(self, node: 'CanvasNode'):
        pass

    @abstractmethod
    def remove_node_by_id(self, node_id: str):
        pass

    @abstractmethod
    def get_node_by_id(self, node_id: str) -> Optional['CanvasNode']:
        pass

    @abstractmethod
    def get_node_by_name(self, name: str) -> Optional['CanvasNode']:
        pass

    @abstractmethod
    def all_nodes(self) -> List['CanvasNode']:
        pass

    @abstractmethod
    def node_count_by_type(self, node_type: str) -> int:
        pass

    @abstractmethod
    def add_connection(self, source: Endpoint, target: Endpoint) -> bool:
        pass

    @abstractmethod
    def remove_connection(self, source: Endpoint, target: Endpoint) -> bool:
        pass

    @abstractmethod
    def outgoing_connections_by_node_name(self, name: str) -> NodeConnections:
        pass

    @abstractmethod
    def incoming_connections_by_node_name(self, name: str) -> NodeConnections:
        pass

    @abstractmethod
    def set_node_position(self, node_id: str, position: XY):
        pass

    @abstractmethod
    def set_node_parameters(self, node_id: str, parameters: Dict[str, Any]):
        pass

    @abstractmethod
    def set_node_value(self, node_id: str, key: str, value: Any):
        pass

    @abstractmethod
    def rename_node(self, current_name: str, new_name: str):
        pass

    @abstractmethod
    def set_state_dirty(self, dirty: bool = True):
        pass


class IHistoryService(ABC):
    @abstractmethod
    def push_command_to_undo(self, command: Any, clear_redo: bool = True):
        pass

    @abstractmethod
    def start_recording_undo(self):
        pass

    @abstractmethod
    def stop_recording_undo(self):
        pass


class ICredentialSource(ABC):
    # Returns the credentials of *credential_type* the current user may attach to a node.
    @abstractmethod
    def usable_credentials(self, credential_type: str) -> List[Dict[str, Any]]:
        pass


class IExecutionSource(ABC):
    @abstractmethod
    async def fetch_execution(self, execution_id: str) -> Optional[Dict[str, Any]]:
        pass


class INotifier(ABC):
    @abstractmethod
    def show_message(self, type: str, title: str, message: str = ""):
        pass


class NullNotifier(INotifier):
    """Notifier that only logs. Used when the host does not supply a notification surface."""

    def show_message(self, type: str, title: str, message: str = ""):
        logger.info("[%s] %s: %s", type, title, message)


class NullCredentialSource(ICredentialSource):
    def usable_credentials(self, credential_type: str) -> List[Dict[str, Any]]:
        return []
