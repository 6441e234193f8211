"""Deterministic layered layout over a parsed or supplied graph."""
from __future__ import annotations

import logging
from collections import deque
from dataclasses import dataclass, field
from typing import Deque, Dict, List, Optional, Set, Tuple

from .config import LayoutConfig
from .geometry import Box, merge_box, node_box
from .model import Graph

log = logging.getLogger(__name__)


@dataclass(frozen=True)
class Placement:
    layer: int
    x: float
    y: float


@dataclass
class LayoutResult:
    """Node placements keyed by id, plus the rows they were placed in.

    ``rows[i]`` lists node ids of layer ``i`` in placement order. When some
    nodes cannot be reached from any root they form the final row and are
    listed in ``unreached``.
    """

    placements: Dict[str, Placement] = field(default_factory=dict)
    rows: List[List[str]] = field(default_factory=list)
    roots: List[str] = field(default_factory=list)
    unreached: List[str] = field(default_factory=list)
    canvas_width: float = 800.0
    config: LayoutConfig = field(default_factory=LayoutConfig)

    @property
    def is_empty(self) -> bool:
        return not self.placements

    @property
    def layer_count(self) -> int:
        return len(self.rows)

    @property
    def unreached_layer(self) -> Optional[int]:
        if not self.unreached:
            return None
        return len(self.rows) - 1

    def __contains__(self, node_id: object) -> bool:
        return node_id in self.placements

    def get(self, node_id: str) -> Optional[Placement]:
        return self.placements.get(node_id)

    def center(self, node_id: str) -> Tuple[float, float]:
        placement = self.placements[node_id]
        return (placement.x, placement.y)

    def box(self, node_id: str) -> Box:
        return node_box(self.center(node_id), self.config.node_width, self.config.node_height)

    def band(self, layer: int) -> Tuple[float, float]:
        """Vertical extent (top, bottom) of the background band for ``layer``."""
        cfg = self.config
        center_y = cfg.top_margin + layer * cfg.layer_height
        half = cfg.layer_height / 2.0
        return (center_y - half, center_y + half)

    def bounds(self) -> Optional[Box]:
        merged: Optional[Box] = None
        for node_id in self.placements:
            merged = merge_box(merged, self.box(node_id))
        return merged

    def apply(self, graph: Graph) -> None:
        """Copy placements onto the graph's nodes."""
        for node_id, placement in self.placements.items():
            node = graph.get(node_id)
            if node is None:
                continue
            node.layer = placement.layer
            node.x = placement.x
            node.y = placement.y


def find_roots(graph: Graph) -> List[str]:
    targets: Set[str] = {edge.target for edge in graph.edges}
    roots = [node_id for node_id in graph.nodes if node_id not in targets]
    if roots:
        return roots
    roots = graph.entry_candidates()
    if roots:
        log.debug("no node without incoming edges; using entry-like nodes %s", roots)
        return roots
    first = next(iter(graph.nodes), None)
    if first is None:
        return []
    log.debug("no entry-like node; using first node %r as root", first)
    return [first]


def assign_layers(graph: Graph, roots: List[str]) -> List[List[str]]:
    """Breadth-first layering; a node keeps the depth of its first dequeue."""
    outgoing: Dict[str, List[str]] = {node_id: [] for node_id in graph.nodes}
    for edge in graph.edges:
        outgoing[edge.source].append(edge.target)

    queue: Deque[Tuple[str, int]] = deque((root, 0) for root in roots)
    visited: Set[str] = set()
    rows: List[List[str]] = []
    while queue:
        node_id, level = queue.popleft()
        if node_id in visited:
            continue
        visited.add(node_id)
        while len(rows) <= level:
            rows.append([])
        rows[level].append(node_id)
        for target in outgoing[node_id]:
            if target not in visited:
                queue.append((target, level + 1))
    return rows


def layout(
    graph: Graph,
    canvas_width: Optional[float] = None,
    config: Optional[LayoutConfig] = None,
) -> LayoutResult:
    cfg = config or LayoutConfig()
    width = cfg.canvas_width if canvas_width is None else float(canvas_width)
    result = LayoutResult(canvas_width=width, config=cfg)
    if graph.is_empty:
        return result

    roots = find_roots(graph)
    rows = assign_layers(graph, roots)
    placed = {node_id for row in rows for node_id in row}
    unreached = [node_id for node_id in graph.nodes if node_id not in placed]
    if unreached:
        log.debug("placing %d unreached node(s) in a trailing row", len(unreached))
        rows.append(unreached)

    for layer_index, row in enumerate(rows):
        count = len(row)
        row_width = count * cfg.node_width + max(count - 1, 0) * cfg.node_spacing
        start_x = (width - row_width) / 2.0
        y = cfg.top_margin + layer_index * cfg.layer_height
        for position, node_id in enumerate(row):
            x = start_x + position * (cfg.node_width + cfg.node_spacing) + cfg.node_width / 2.0
            result.placements[node_id] = Placement(layer=layer_index, x=x, y=y)

    result.rows = rows
    result.roots = roots
    result.unreached = unreached
    return result


__all__ = ["Placement", "LayoutResult", "find_roots", "assign_layers", "layout"]
