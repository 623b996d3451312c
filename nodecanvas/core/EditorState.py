from typing import List, Optional, Set

from .Types import XY


class EditorState:
    """What the user last did on the canvas. Placement and auto-connection read from it."""

    def __init__(self):
        self.last_interacted_with_node_id: Optional[str] = None
        self.last_interacted_with_node_handle: Optional[str] = None
        self.last_cancelled_connection_position: Optional[XY] = None
        self.last_click_position: Optional[XY] = None
        self.active_node_name: Optional[str] = None
        self.last_selected_node_name: Optional[str] = None
        self.selected_node_names: Set[str] = set()

    def consume_cancelled_connection_position(self) -> Optional[XY]:
        position = self.last_cancelled_connection_position
        self.last_cancelled_connection_position = None
        return position

    def reset(self):
        self.__init__()

    def selection(self) -> List[str]:
        return sorted(self.selected_node_names)
