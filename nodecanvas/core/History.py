"""
Undo/redo history.

Every mutating canvas operation describes itself as a command value that
knows its own inverse (built from the old and new values it was given).
Reverting a command replays it through the `revert_*` canvas operations,
which never record history themselves.

`HistoryService` keeps two stacks. Commands pushed between
`start_recording_undo()` and `stop_recording_undo()` collapse into a single
`BulkCommand` so the user undoes them in one step.
"""
from __future__ import annotations

import logging
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, Dict, List, Optional

from .GraphPrimitives import CanvasNode
from .Interface import IHistoryService
from .Types import ConnectionPair, XY

if TYPE_CHECKING:
    from .CanvasOperations import CanvasOperations

logger = logging.getLogger(__name__)


def _now_ms() -> int:
    return int(time.time() * 1000)


@dataclass
class Command(ABC):
    timestamp: int = field(default_factory=_now_ms, compare=False, init=False)

    @abstractmethod
    def reverse(self) -> 'Command':
        pass

    @abstractmethod
    def revert(self, operations: 'CanvasOperations'):
        pass


# ── Node commands ────────────────────────────────────────────────────────────

@dataclass
class AddNodeCommand(Command):
    node: CanvasNode = None

    def __post_init__(self):
        self.node = self.node.copy()

    def reverse(self) -> 'Command':
        return RemoveNodeCommand(node=self.node)

    def revert(self, operations: 'CanvasOperations'):
        operations.revert_add_node(self.node.name)


@dataclass
class RemoveNodeCommand(Command):
    node: CanvasNode = None

    def __post_init__(self):
        self.node = self.node.copy()

    def reverse(self) -> 'Command':
        return AddNodeCommand(node=self.node)

    def revert(self, operations: 'CanvasOperations'):
        operations.revert_delete_node(self.node)


@dataclass
class MoveNodeCommand(Command):
    node_name: str = ""
    old_position: XY = None
    new_position: XY = None

    def reverse(self) -> 'Command':
        return MoveNodeCommand(node_name=self.node_name, old_position=self.new_position, new_position=self.old_position)

    def revert(self, operations: 'CanvasOperations'):
        operations.revert_update_node_position(self.node_name, self.old_position)


@dataclass
class RenameNodeCommand(Command):
    current_name: str = ""
    new_name: str = ""

    def reverse(self) -> 'Command':
        return RenameNodeCommand(current_name=self.new_name, new_name=self.current_name)

    def revert(self, operations: 'CanvasOperations'):
        operations.revert_rename_node(self.new_name, self.current_name)


@dataclass
class EnableNodeToggleCommand(Command):
    node_name: str = ""
    old_state: bool = False
    new_state: bool = True

    def reverse(self) -> 'Command':
        return EnableNodeToggleCommand(node_name=self.node_name, old_state=self.new_state, new_state=self.old_state)

    def revert(self, operations: 'CanvasOperations'):
        operations.revert_toggle_node_disabled(self.node_name)


@dataclass
class ReplaceNodeParametersCommand(Command):
    node_id: str = ""
    current_parameters: Dict[str, Any] = None
    new_parameters: Dict[str, Any] = None

    def reverse(self) -> 'Command':
        return ReplaceNodeParametersCommand(
            node_id=self.node_id,
            current_parameters=self.new_parameters,
            new_parameters=self.current_parameters,
        )

    def revert(self, operations: 'CanvasOperations'):
        operations.revert_replace_node_parameters(self.node_id, self.current_parameters, self.new_parameters)


# ── Connection commands ──────────────────────────────────────────────────────

@dataclass
class AddConnectionCommand(Command):
    connection: ConnectionPair = None

    def reverse(self) -> 'Command':
        return RemoveConnectionCommand(connection=self.connection)

    def revert(self, operations: 'CanvasOperations'):
        operations.revert_create_connection(self.connection)


@dataclass
class RemoveConnectionCommand(Command):
    connection: ConnectionPair = None

    def reverse(self) -> 'Command':
        return AddConnectionCommand(connection=self.connection)

    def revert(self, operations: 'CanvasOperations'):
        operations.revert_delete_connection(self.connection)


@dataclass
class BulkCommand(Command):
    commands: List[Command] = field(default_factory=list)

    def reverse(self) -> 'Command':
        return BulkCommand(commands=[c.reverse() for c in reversed(self.commands)])

    def revert(self, operations: 'CanvasOperations'):
        for command in reversed(self.commands):
            command.revert(operations)


# -----------------------------------------------------------------------------
# History service
# -----------------------------------------------------------------------------

class HistoryService(IHistoryService):

    def __init__(self, max_size: int = 100):
        self.max_size = max_size
        self.undo_stack: List[Command] = []
        self.redo_stack: List[Command] = []
        self._bulk: Optional[BulkCommand] = None
        self._bulk_depth = 0

    def push_command_to_undo(self, command: Command, clear_redo: bool = True):
        if self._bulk is not None:
            self._bulk.commands.append(command)
        else:
            self._push(command)
        if clear_redo:
            self.redo_stack.clear()

    def start_recording_undo(self):
        if self._bulk_depth == 0:
            self._bulk = BulkCommand()
        self._bulk_depth += 1

    def stop_recording_undo(self):
        if self._bulk_depth == 0:
            return
        self._bulk_depth -= 1
        if self._bulk_depth == 0:
            bulk, self._bulk = self._bulk, None
            if bulk.commands:
                self._push(bulk)

    def is_recording(self) -> bool:
        return self._bulk is not None

    def _push(self, command: Command):
        self.undo_stack.append(command)
        if len(self.undo_stack) > self.max_size:
            self.undo_stack.pop(0)

    def can_undo(self) -> bool:
        return bool(self.undo_stack)

    def can_redo(self) -> bool:
        return bool(self.redo_stack)

    def undo(self, operations: 'CanvasOperations') -> Optional[Command]:
        if not self.undo_stack:
            return None
        command = self.undo_stack.pop()
        logger.info("undo %s", type(command).__name__)
        command.revert(operations)
        self.redo_stack.append(command.reverse())
        return command

    def redo(self, operations: 'CanvasOperations') -> Optional[Command]:
        if not self.redo_stack:
            return None
        command = self.redo_stack.pop()
        logger.info("redo %s", type(command).__name__)
        command.revert(operations)
        self.undo_stack.append(command.reverse())
        return command

    def reset(self):
        self.undo_stack.clear()
        self.redo_stack.clear()
        self._bulk = None
        self._bulk_depth = 0
