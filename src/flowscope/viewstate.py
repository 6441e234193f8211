"""Viewport, selection, highlight and filter state for one diagram session.

All mutation goes through the methods on ``ViewState`` so the interaction
state machine can be exercised without any drawing surface.
"""
from __future__ import annotations

import math
from dataclasses import dataclass, field
from enum import Enum
from typing import FrozenSet, Iterable, List, Optional, Set

from .config import ViewConfig
from .geometry import Affine, Point, apply_affine, invert_affine, viewport_affine
from .model import Node, NodeType


class QueryMode(str, Enum):
    FILTER = "filter"
    HIGHLIGHT = "highlight"
    CLUSTER = "cluster"
    PATH_TRACE = "path_trace"


@dataclass(frozen=True)
class QueryResult:
    target_ids: FrozenSet[str]
    mode: QueryMode
    rule: str = "search"


class Annotation(str, Enum):
    ARCHITECTURE = "architecture"
    COMPLEXITY = "complexity"
    DEPENDENCIES = "dependencies"


class InteractionState(str, Enum):
    IDLE = "idle"
    DRAGGING = "dragging"
    NODE_SELECTED = "node_selected"


class NodeFilter:
    def __call__(self, node: Node) -> bool:  # pragma: no cover - interface
        raise NotImplementedError

    def describe(self) -> str:
        return "all"


@dataclass(frozen=True)
class AllNodes(NodeFilter):
    def __call__(self, node: Node) -> bool:
        return True


@dataclass(frozen=True)
class IdFilter(NodeFilter):
    ids: FrozenSet[str]

    def __call__(self, node: Node) -> bool:
        return node.id in self.ids

    def describe(self) -> str:
        return f"{len(self.ids)} node(s)"


@dataclass(frozen=True)
class TypeFilter(NodeFilter):
    node_type: NodeType

    def __call__(self, node: Node) -> bool:
        return node.type is self.node_type

    def describe(self) -> str:
        return f"type={self.node_type.value}"


SHOW_ALL = AllNodes()


@dataclass
class ViewState:
    config: ViewConfig = field(default_factory=ViewConfig)
    scale: float = 1.0
    offset: Point = (0.0, 0.0)
    selected_node: Optional[str] = None
    highlighted_nodes: Set[str] = field(default_factory=set)
    active_filter: NodeFilter = SHOW_ALL
    query_history: List[str] = field(default_factory=list)
    mode: Optional[QueryMode] = None
    annotation: Annotation = Annotation.ARCHITECTURE
    loading: bool = False
    dragging: bool = False
    _drag_anchor: Point = (0.0, 0.0)
    _press_point: Point = (0.0, 0.0)
    _drag_moved: bool = False

    def __post_init__(self) -> None:
        self.scale = self._clamp(self.scale, fallback=1.0)

    # -- viewport -------------------------------------------------------

    @property
    def affine(self) -> Affine:
        return viewport_affine(self.scale, self.offset)

    def to_surface(self, point: Point) -> Point:
        return apply_affine(self.affine, point)

    def to_graph(self, point: Point) -> Point:
        inverse = invert_affine(self.affine)
        if inverse is None:
            return point
        return apply_affine(inverse, point)

    def _clamp(self, value: float, fallback: Optional[float] = None) -> float:
        if not math.isfinite(value):
            value = self.scale if fallback is None else fallback
        return max(self.config.min_scale, min(self.config.max_scale, value))

    def zoom_by(self, factor: float, anchor: Optional[Point] = None) -> float:
        """Multiply the scale by ``factor``; keep ``anchor`` (surface point) fixed."""
        new_scale = self._clamp(self.scale * factor)
        if anchor is not None and new_scale != self.scale:
            gx, gy = self.to_graph(anchor)
            self.offset = (anchor[0] - gx * new_scale, anchor[1] - gy * new_scale)
        self.scale = new_scale
        return self.scale

    def zoom_in(self) -> float:
        return self.zoom_by(self.config.button_step)

    def zoom_out(self) -> float:
        return self.zoom_by(1.0 / self.config.button_step)

    def wheel(self, delta_y: float, anchor: Optional[Point] = None) -> float:
        if delta_y == 0:
            return self.scale
        factor = self.config.wheel_zoom_out if delta_y > 0 else self.config.wheel_zoom_in
        return self.zoom_by(factor, anchor)

    def pan_by(self, dx: float, dy: float) -> None:
        self.offset = (self.offset[0] + dx, self.offset[1] + dy)

    def reset_view(self) -> None:
        self.scale = self._clamp(1.0)
        self.offset = (0.0, 0.0)

    # -- dragging -------------------------------------------------------

    @property
    def interaction_state(self) -> InteractionState:
        if self.dragging:
            return InteractionState.DRAGGING
        if self.selected_node is not None:
            return InteractionState.NODE_SELECTED
        return InteractionState.IDLE

    def begin_drag(self, x: float, y: float) -> None:
        self.dragging = True
        self._drag_moved = False
        self._press_point = (x, y)
        self._drag_anchor = (x - self.offset[0], y - self.offset[1])

    def drag_to(self, x: float, y: float) -> bool:
        if not self.dragging:
            return False
        self.offset = (x - self._drag_anchor[0], y - self._drag_anchor[1])
        if math.hypot(x - self._press_point[0], y - self._press_point[1]) > self.config.click_slop:
            self._drag_moved = True
        return True

    def end_drag(self) -> bool:
        """Leave the dragging state; returns True when the pointer actually moved."""
        moved = self.dragging and self._drag_moved
        self.dragging = False
        self._drag_moved = False
        return moved

    # -- selection and highlight ---------------------------------------

    def select(self, node_id: str, related: Iterable[str] = ()) -> None:
        self.selected_node = node_id
        self.highlighted_nodes = {node_id, *related}

    def clear_selection(self) -> None:
        self.selected_node = None
        self.highlighted_nodes = set()
        if self.mode is not QueryMode.FILTER:
            self.mode = None

    def set_filter(self, node_filter: Optional[NodeFilter]) -> None:
        self.active_filter = node_filter or SHOW_ALL

    def set_type_filter(self, node_type: Optional[str]) -> None:
        if node_type in (None, "", "all"):
            self.set_filter(SHOW_ALL)
            return
        self.set_filter(TypeFilter(NodeType(node_type)))

    def is_visible(self, node: Node) -> bool:
        return self.active_filter(node)

    def set_annotation(self, annotation: str) -> None:
        self.annotation = Annotation(annotation)

    # -- queries --------------------------------------------------------

    def push_history(self, query: str) -> None:
        query = query.strip()
        if not query:
            return
        if self.query_history and self.query_history[0] == query:
            return
        self.query_history.insert(0, query)
        del self.query_history[self.config.history_limit:]

    def apply_query(self, query: str, result: Optional[QueryResult]) -> None:
        if not query.strip() or result is None:
            self.set_filter(SHOW_ALL)
            self.highlighted_nodes = set()
            self.mode = None
            return
        if result.mode is QueryMode.FILTER:
            self.set_filter(IdFilter(frozenset(result.target_ids)))
            self.highlighted_nodes = set()
            if self.selected_node is not None and self.selected_node not in result.target_ids:
                self.selected_node = None
        else:
            self.set_filter(SHOW_ALL)
            self.highlighted_nodes = set(result.target_ids)
        self.mode = result.mode
        self.push_history(query)


__all__ = [
    "QueryMode",
    "QueryResult",
    "Annotation",
    "InteractionState",
    "NodeFilter",
    "AllNodes",
    "IdFilter",
    "TypeFilter",
    "SHOW_ALL",
    "ViewState",
]
