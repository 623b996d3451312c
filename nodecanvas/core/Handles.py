"""
Handle strings: the editor addresses ports as "<mode>/<kind>/<index>",
e.g. "outputs/main/0" or "inputs/ai_tool/0".
"""
from typing import NamedTuple, Optional

from .Types import ConnectionKind, ConnectionMode, Endpoint


class ParsedHandle(NamedTuple):
    mode: ConnectionMode
    kind: ConnectionKind
    index: int


def create_handle(mode: ConnectionMode, kind: ConnectionKind = ConnectionKind.MAIN, index: int = 0) -> str:
    return f"{ConnectionMode(mode).value}/{ConnectionKind.parse(kind).value}/{index}"


def parse_handle(handle: Optional[str]) -> ParsedHandle:
    """Parse a handle string; malformed or missing parts fall back to outputs/main/0."""
    mode = ConnectionMode.OUTPUT
    kind = ConnectionKind.MAIN
    index = 0
    if not handle:
        return ParsedHandle(mode, kind, index)

    parts = handle.split("/")
    if len(parts) > 0:
        try:
            mode = ConnectionMode(parts[0])
        except ValueError:
            pass
    if len(parts) > 1:
        try:
            kind = ConnectionKind(parts[1])
        except ValueError:
            pass
    if len(parts) > 2:
        try:
            index = int(parts[2])
        except ValueError:
            index = 0
    return ParsedHandle(mode, kind, index)


def endpoint_from_handle(node_name: str, handle: Optional[str]) -> Endpoint:
    parsed = parse_handle(handle)
    return Endpoint(node_name, parsed.kind, parsed.index)
