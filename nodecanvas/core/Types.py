from enum import Enum
from typing import Any, Dict, List, NamedTuple, Optional, Tuple


class ConnectionKind(str, Enum):
    MAIN = "main"
    AI_AGENT = "ai_agent"
    AI_CHAIN = "ai_chain"
    AI_DOCUMENT = "ai_document"
    AI_EMBEDDING = "ai_embedding"
    AI_LANGUAGE_MODEL = "ai_languageModel"
    AI_MEMORY = "ai_memory"
    AI_OUTPUT_PARSER = "ai_outputParser"
    AI_RETRIEVER = "ai_retriever"
    AI_TEXT_SPLITTER = "ai_textSplitter"
    AI_TOOL = "ai_tool"
    AI_VECTOR_STORE = "ai_vectorStore"

    @staticmethod
    def parse(value: Any) -> 'ConnectionKind':
        if isinstance(value, ConnectionKind):
            return value
        return ConnectionKind(value)

    def isPrimary(self) -> bool:
        return self is ConnectionKind.MAIN


class ConnectionMode(str, Enum):
    INPUT = "inputs"
    OUTPUT = "outputs"


# Node types that expose a webhook path parameter which mirrors the webhook id
PATH_BASED_TRIGGER_TYPES = (
    "webhook",
    "formTrigger",
    "mcpTrigger",
)

STICKY_NODE_TYPE = "stickyNote"

XY = List[float]


class Endpoint(NamedTuple):
    """One side of a connection: (node name, connection kind, port index)."""
    node: str
    kind: ConnectionKind
    index: int = 0

    def to_dict(self) -> Dict[str, Any]:
        return {"node": self.node, "type": self.kind.value, "index": self.index}

    @staticmethod
    def from_dict(data: Dict[str, Any]) -> 'Endpoint':
        return Endpoint(data["node"], ConnectionKind.parse(data["type"]), int(data.get("index", 0)))

    def __repr__(self):
        return f"Endpoint({self.node}:{self.kind.value}[{self.index}])"


# (source, target)
ConnectionPair = Tuple[Endpoint, Endpoint]

# nodeName -> kind -> portIndex -> targets (None / [] for empty slots)
ConnectionSlots = List[Optional[List[Endpoint]]]
NodeConnections = Dict[ConnectionKind, ConnectionSlots]
Connections = Dict[str, NodeConnections]


class CanvasConnection(NamedTuple):
    """A connection as addressed by the editor: node ids plus handle strings."""
    source: str
    target: str
    sourceHandle: Optional[str] = None
    targetHandle: Optional[str] = None
