"""Typed graph model shared by the parser, layout engine and renderer."""
from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Iterator, List, Mapping, Optional, Set

log = logging.getLogger(__name__)


class NodeType(str, Enum):
    ENTRY = "entry"
    COMPONENT = "component"
    MODULE = "module"
    SERVICE = "service"
    DATABASE = "database"
    EXTERNAL = "external"
    CONFIG = "config"
    API = "api"
    HOOK = "hook"
    UTIL = "util"
    TEST = "test"

    @classmethod
    def coerce(cls, value: Any) -> "NodeType":
        if isinstance(value, NodeType):
            return value
        try:
            return cls(str(value).strip().lower())
        except ValueError:
            return cls.COMPONENT


class NodeShape(str, Enum):
    RECT = "rect"
    CIRCLE = "circle"
    DIAMOND = "diamond"
    ASYMMETRIC = "asymmetric"
    SUBROUTINE = "subroutine"
    CYLINDER = "cylinder"
    PARALLELOGRAM = "parallelogram"
    PARALLELOGRAM_ALT = "parallelogram_alt"
    ROUND = "round"


class EdgeStyle(str, Enum):
    SOLID = "solid"
    DOTTED = "dotted"
    THICK = "thick"
    PLAIN = "plain"


@dataclass
class Node:
    id: str
    label: str
    type: NodeType = NodeType.COMPONENT
    complexity: float = 5.0
    importance: float = 5.0
    dependencies: List[str] = field(default_factory=list)
    shape: NodeShape = NodeShape.RECT
    metadata: Dict[str, Any] = field(default_factory=dict)
    layer: Optional[int] = None
    x: Optional[float] = None
    y: Optional[float] = None

    @property
    def file_path(self) -> Optional[str]:
        value = self.metadata.get("file_path") or self.metadata.get("filePath")
        return str(value) if value else None


@dataclass
class Edge:
    source: str
    target: str
    label: Optional[str] = None
    style: EdgeStyle = EdgeStyle.SOLID


@dataclass
class Graph:
    """Insertion-ordered nodes plus ordered edges.

    Every edge stored here references nodes that exist; ``add_edge`` drops
    dangling edges and records a diagnostic instead of raising.
    """

    nodes: Dict[str, Node] = field(default_factory=dict)
    edges: List[Edge] = field(default_factory=list)
    direction: str = "TD"
    diagnostics: List[str] = field(default_factory=list)

    def __len__(self) -> int:
        return len(self.nodes)

    def __iter__(self) -> Iterator[Node]:
        return iter(self.nodes.values())

    def __contains__(self, node_id: object) -> bool:
        return node_id in self.nodes

    @property
    def is_empty(self) -> bool:
        return not self.nodes

    def get(self, node_id: Optional[str]) -> Optional[Node]:
        if node_id is None:
            return None
        return self.nodes.get(node_id)

    def add_node(self, node: Node) -> bool:
        if node.id in self.nodes:
            log.debug("ignoring redeclaration of node %r", node.id)
            return False
        self.nodes[node.id] = node
        return True

    def add_edge(self, edge: Edge) -> bool:
        missing = [nid for nid in (edge.source, edge.target) if nid not in self.nodes]
        if missing:
            self.warn(
                f"dropping edge {edge.source} -> {edge.target}: "
                f"unknown node(s) {', '.join(missing)}"
            )
            return False
        self.edges.append(edge)
        self.nodes[edge.source].dependencies.append(edge.target)
        return True

    def warn(self, message: str) -> None:
        self.diagnostics.append(message)
        log.warning(message)

    def outgoing(self, node_id: str) -> List[str]:
        return [edge.target for edge in self.edges if edge.source == node_id]

    def incoming(self, node_id: str) -> List[str]:
        return [edge.source for edge in self.edges if edge.target == node_id]

    def neighbors(self, node_id: str) -> Set[str]:
        related: Set[str] = set()
        for edge in self.edges:
            if edge.source == node_id:
                related.add(edge.target)
            if edge.target == node_id:
                related.add(edge.source)
        return related

    def entry_candidates(self) -> List[str]:
        """Nodes that look like entry points by type or label."""
        found: List[str] = []
        for node in self.nodes.values():
            if node.type is NodeType.ENTRY or label_mentions(node.label, ("main", "app", "index")):
                found.append(node.id)
        return found

    @classmethod
    def from_dict(cls, payload: Mapping[str, Any]) -> "Graph":
        """Build a graph from an analyzer payload (``nodes`` and ``edges`` lists).

        Unknown node keys are kept in ``metadata``; edges that reference
        unknown nodes are dropped with a warning.
        """
        if not isinstance(payload, Mapping):
            raise ValueError("graph payload must be an object with 'nodes' and 'edges'")
        graph = cls(direction=str(payload.get("direction") or "TD"))
        known = {
            "id", "label", "name", "type", "complexity", "importance", "shape",
            "dependencies", "metadata", "layer", "x", "y",
        }
        for raw in payload.get("nodes") or []:
            if not isinstance(raw, Mapping) or raw.get("id") in (None, ""):
                graph.warn(f"skipping node without id: {raw!r}")
                continue
            node_id = str(raw["id"])
            try:
                shape = NodeShape(raw.get("shape", NodeShape.RECT))
            except ValueError:
                shape = NodeShape.RECT
            metadata = dict(raw["metadata"]) if isinstance(raw.get("metadata"), Mapping) else {}
            metadata.update((k, v) for k, v in raw.items() if k not in known)
            node = Node(
                id=node_id,
                label=str(raw.get("label") or raw.get("name") or node_id),
                type=NodeType.coerce(raw.get("type", NodeType.COMPONENT)),
                complexity=_number(raw.get("complexity"), 5.0),
                importance=_number(raw.get("importance"), 5.0),
                shape=shape,
                metadata=metadata,
            )
            graph.add_node(node)
        for raw in payload.get("edges") or payload.get("connections") or []:
            if not isinstance(raw, Mapping):
                graph.warn(f"skipping malformed edge: {raw!r}")
                continue
            source = raw.get("from", raw.get("source"))
            target = raw.get("to", raw.get("target"))
            try:
                style = EdgeStyle(raw.get("style", EdgeStyle.SOLID))
            except ValueError:
                style = EdgeStyle.SOLID
            graph.add_edge(
                Edge(
                    source=str(source),
                    target=str(target),
                    label=raw.get("label"),
                    style=style,
                )
            )
        return graph

    def to_dict(self) -> Dict[str, Any]:
        nodes = []
        for node in self.nodes.values():
            entry: Dict[str, Any] = {
                "id": node.id,
                "label": node.label,
                "type": node.type.value,
                "shape": node.shape.value,
                "complexity": node.complexity,
                "importance": node.importance,
                "dependencies": list(node.dependencies),
            }
            if node.layer is not None:
                entry.update({"layer": node.layer, "x": node.x, "y": node.y})
            if node.metadata:
                entry["metadata"] = dict(node.metadata)
            nodes.append(entry)
        edges = []
        for edge in self.edges:
            item: Dict[str, Any] = {"from": edge.source, "to": edge.target, "style": edge.style.value}
            if edge.label:
                item["label"] = edge.label
            edges.append(item)
        return {"direction": self.direction, "nodes": nodes, "edges": edges}


_CAMEL_RE = re.compile(r"(?<=[a-z0-9])(?=[A-Z])")
_WORD_SPLIT_RE = re.compile(r"[^A-Za-z0-9]+")


def words(text: str) -> List[str]:
    """Lower-cased words of ``text``, splitting camelCase and punctuation."""
    spaced = _CAMEL_RE.sub(" ", text or "")
    return [chunk.lower() for chunk in _WORD_SPLIT_RE.split(spaced) if chunk]


def label_mentions(text: str, keywords) -> bool:
    """True when any word of ``text`` starts with one of ``keywords``."""
    tokens = words(text)
    return any(token.startswith(keyword) for token in tokens for keyword in keywords)


def _number(value: Any, default: float) -> float:
    if value is None:
        return default
    try:
        return float(value)
    except (TypeError, ValueError):
        return default


__all__ = [
    "NodeType",
    "NodeShape",
    "EdgeStyle",
    "Node",
    "Edge",
    "Graph",
    "words",
    "label_mentions",
]
