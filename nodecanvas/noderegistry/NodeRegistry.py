"""
Node type registry: a lookup table of capability descriptors.

Node types are data, not classes: a descriptor lists the ordered input and
output ports (each tagged with a connection kind and an optional allow-list of
peer node types), webhook and credential capabilities and parameter defaults.
Several versions of the same type may be registered side by side.
"""
from __future__ import annotations

import logging
from collections import defaultdict
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Optional, Union

from ..core.Interface import INodeTypeRegistry
from ..core.Types import ConnectionKind, ConnectionMode

logger = logging.getLogger(__name__)


@dataclass
class PortFilter:
    nodes: List[str] = field(default_factory=list)


@dataclass
class PortSpec:
    kind: ConnectionKind = ConnectionKind.MAIN
    display_name: str = ""
    required: bool = False
    max_connections: Optional[int] = None
    filter: Optional[PortFilter] = None

    @staticmethod
    def from_value(value: Union[str, ConnectionKind, Dict[str, Any], 'PortSpec']) -> 'PortSpec':
        # a bare kind is shorthand for an unfiltered port
        if isinstance(value, PortSpec):
            return value
        if isinstance(value, (str, ConnectionKind)):
            return PortSpec(kind=ConnectionKind.parse(value))
        port_filter = None
        if value.get("filter") is not None:
            port_filter = PortFilter(nodes=list(value["filter"].get("nodes", [])))
        return PortSpec(
            kind=ConnectionKind.parse(value.get("type", value.get("kind", "main"))),
            display_name=value.get("displayName", ""),
            required=bool(value.get("required", False)),
            max_connections=value.get("maxConnections"),
            filter=port_filter,
        )


@dataclass
class WebhookSpec:
    name: str = "default"
    http_method: str = "GET"
    path: str = ""


@dataclass
class CredentialSpec:
    name: str
    required: bool = False


@dataclass
class NodeTypeDescriptor:
    name: str
    display_name: str = ""
    version: Union[int, List[int]] = 1
    group: List[str] = field(default_factory=list)
    inputs: List[PortSpec] = field(default_factory=list)
    outputs: List[PortSpec] = field(default_factory=list)
    webhooks: List[WebhookSpec] = field(default_factory=list)
    credentials: List[CredentialSpec] = field(default_factory=list)
    # parameter name -> default value
    properties: Dict[str, Any] = field(default_factory=dict)
    max_nodes: Optional[int] = None
    default_name: Optional[str] = None

    def __post_init__(self):
        self.inputs = [PortSpec.from_value(p) for p in self.inputs]
        self.outputs = [PortSpec.from_value(p) for p in self.outputs]
        if not self.display_name:
            self.display_name = self.name

    # -- versions ------------------------------------------------------

    def versions(self) -> List[int]:
        if isinstance(self.version, (list, tuple)):
            return list(self.version)
        return [self.version]

    def latest_version(self) -> int:
        return max(self.versions())

    def supports_version(self, version: int) -> bool:
        return version in self.versions()

    # -- ports ---------------------------------------------------------

    def ports(self, mode: ConnectionMode) -> List[PortSpec]:
        return self.inputs if mode == ConnectionMode.INPUT else self.outputs

    def ports_of_kind(self, mode: ConnectionMode, kind: ConnectionKind) -> List[PortSpec]:
        return [p for p in self.ports(mode) if p.kind == kind]

    def kinds(self, mode: ConnectionMode) -> List[ConnectionKind]:
        return [p.kind for p in self.ports(mode)]

    def is_trigger(self) -> bool:
        return "trigger" in self.group

    def is_configuration_node(self) -> bool:
        """True when the node only feeds other nodes through non-primary outputs."""
        return bool(self.outputs) and all(not p.kind.isPrimary() for p in self.outputs)

    def is_configurable_node(self) -> bool:
        return any(not p.kind.isPrimary() for p in self.inputs)

    @staticmethod
    def placeholder(node_type: str) -> 'NodeTypeDescriptor':
        """Descriptor for a type the catalog does not know: no ports, version 1."""
        return NodeTypeDescriptor(name=node_type, display_name=node_type, version=1)

    @staticmethod
    def from_dict(data: Dict[str, Any]) -> 'NodeTypeDescriptor':
        return NodeTypeDescriptor(
            name=data["name"],
            display_name=data.get("displayName", data["name"]),
            version=data.get("version", 1),
            group=list(data.get("group", [])),
            inputs=list(data.get("inputs", [])),
            outputs=list(data.get("outputs", [])),
            webhooks=[
                WebhookSpec(
                    name=w.get("name", "default"),
                    http_method=w.get("httpMethod", "GET"),
                    path=w.get("path", ""),
                )
                for w in data.get("webhooks", [])
            ],
            credentials=[
                CredentialSpec(name=c["name"], required=bool(c.get("required", False)))
                for c in data.get("credentials", [])
            ],
            properties={p["name"]: p.get("default") for p in data.get("properties", [])},
            max_nodes=data.get("maxNodes"),
            default_name=data.get("defaults", {}).get("name"),
        )


class NodeTypeRegistry(INodeTypeRegistry):
    """In-memory descriptor table keyed by type name, holding every registered version."""

    def __init__(self, descriptors: Optional[Iterable[NodeTypeDescriptor]] = None):
        self._descriptors: Dict[str, List[NodeTypeDescriptor]] = defaultdict(list)
        for descriptor in descriptors or []:
            self.register(descriptor)

    def register(self, descriptor: NodeTypeDescriptor, replace: bool = False) -> NodeTypeDescriptor:
        existing = self._descriptors[descriptor.name]
        overlapping = [d for d in existing if set(d.versions()) & set(descriptor.versions())]
        if overlapping:
            if not replace:
                raise ValueError(
                    f"Node type '{descriptor.name}' version {descriptor.version} is already registered"
                )
            for d in overlapping:
                existing.remove(d)
        existing.append(descriptor)
        logger.debug("registered node type %s v%s", descriptor.name, descriptor.version)
        return descriptor

    def register_from_dict(self, data: Dict[str, Any], replace: bool = False) -> NodeTypeDescriptor:
        return self.register(NodeTypeDescriptor.from_dict(data), replace=replace)

    def describe(self, node_type: str, version: Optional[int] = None) -> Optional[NodeTypeDescriptor]:
        candidates = self._descriptors.get(node_type)
        if not candidates:
            return None
        if version is None:
            return max(candidates, key=lambda d: d.latest_version())
        for descriptor in candidates:
            if descriptor.supports_version(version):
                return descriptor
        return None

    def latest_version(self, node_type: str) -> Optional[int]:
        descriptor = self.describe(node_type)
        return descriptor.latest_version() if descriptor else None

    def all_descriptors(self) -> List[NodeTypeDescriptor]:
        return [d for versions in self._descriptors.values() for d in versions]

    def unregister(self, node_type: str):
        self._descriptors.pop(node_type, None)

    def clear(self):
        self._descriptors.clear()
