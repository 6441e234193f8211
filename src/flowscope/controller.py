"""Interaction controller tying a graph, its layout, a view and a surface."""
from __future__ import annotations

import asyncio
import datetime as _dt
import logging
from typing import Callable, List, Optional

from . import export
from .config import LayoutConfig, RenderTheme, ViewConfig
from .geometry import box_contains
from .layout import LayoutResult, layout as compute_layout
from .model import Graph, Node
from .query import classify, suggest_queries
from .render import Surface, draw_order, render as render_scene
from .scheduling import Debouncer, DeferredTask
from .viewstate import InteractionState, QueryResult, ViewState

log = logging.getLogger(__name__)

NodeClickCallback = Callable[[Node], None]


class InteractionController:
    """Pointer, wheel, resize and query handling for one rendered diagram.

    The controller owns the layout and re-renders after every change that
    affects the picture. Resize and query application are deferred on the
    running asyncio loop; a newer request always supersedes a pending one.
    """

    def __init__(
        self,
        graph: Graph,
        layout: Optional[LayoutResult] = None,
        view: Optional[ViewState] = None,
        surface: Optional[Surface] = None,
        on_node_click: Optional[NodeClickCallback] = None,
        layout_config: Optional[LayoutConfig] = None,
        view_config: Optional[ViewConfig] = None,
        theme: Optional[RenderTheme] = None,
    ) -> None:
        self.graph = graph
        self.layout_config = layout_config or LayoutConfig()
        self.view = view or ViewState(config=view_config or ViewConfig())
        self.surface = surface
        self.theme = theme or RenderTheme()
        self.on_node_click = on_node_click
        width = surface.width if surface is not None and surface.width > 0 else None
        self.layout = layout or compute_layout(graph, width, self.layout_config)
        self.layout.apply(graph)
        self._resize = Debouncer(self.view.config.resize_debounce, self._apply_resize)
        self._query = DeferredTask(self.view.config.query_delay)

    # -- drawing --------------------------------------------------------

    def render(self) -> bool:
        return render_scene(self.graph, self.layout, self.view, self.surface, self.theme)

    @property
    def interaction_state(self) -> InteractionState:
        return self.view.interaction_state

    def hit_test(self, x: float, y: float) -> Optional[str]:
        """Id of the topmost visible node under surface point (x, y)."""
        point = self.view.to_graph((x, y))
        for node_id in reversed(draw_order(self.graph, self.layout, self.view)):
            if box_contains(self.layout.box(node_id), point):
                return node_id
        return None

    # -- pointer --------------------------------------------------------

    def pointer_down(self, x: float, y: float) -> None:
        self.view.begin_drag(x, y)

    def pointer_move(self, x: float, y: float) -> None:
        if self.view.drag_to(x, y):
            self.render()

    def pointer_up(self, x: float, y: float) -> Optional[str]:
        """End a drag; a press that did not move counts as a click."""
        if not self.view.dragging:
            return None
        moved = self.view.end_drag()
        if moved:
            self.render()
            return None
        return self.click(x, y)

    def pointer_leave(self) -> None:
        if self.view.dragging:
            self.view.end_drag()
            self.render()

    def click(self, x: float, y: float) -> Optional[str]:
        node_id = self.hit_test(x, y)
        if node_id is None:
            self.view.clear_selection()
            self.render()
            return None
        self.view.select(node_id, self.graph.neighbors(node_id))
        self.render()
        if self.on_node_click is not None:
            self.on_node_click(self.graph.nodes[node_id])
        return node_id

    def wheel(self, delta_y: float, x: float, y: float) -> float:
        scale = self.view.wheel(delta_y, (x, y))
        self.render()
        return scale

    def zoom_in(self) -> float:
        scale = self.view.zoom_in()
        self.render()
        return scale

    def zoom_out(self) -> float:
        scale = self.view.zoom_out()
        self.render()
        return scale

    def reset_view(self) -> None:
        self.view.reset_view()
        self.render()

    def set_view_mode(self, annotation: str) -> None:
        self.view.set_annotation(annotation)
        self.render()

    def set_type_filter(self, node_type: Optional[str]) -> None:
        self.view.set_type_filter(node_type)
        self.render()

    # -- resize ---------------------------------------------------------

    def resize(self, width: int, height: int) -> None:
        """Schedule a re-layout at the new size; bursts collapse to the last one."""
        self._resize.trigger(width, height)

    @property
    def resize_pending(self) -> bool:
        return self._resize.pending

    def _apply_resize(self, width: int, height: int) -> None:
        if self.surface is None:
            self.surface = Surface(width, height)
        else:
            self.surface.resize(width, height)
        if self.surface.width > 0:
            self.relayout(self.surface.width)
        self.render()

    def relayout(self, canvas_width: Optional[float] = None) -> LayoutResult:
        self.layout = compute_layout(self.graph, canvas_width, self.layout_config)
        self.layout.apply(self.graph)
        return self.layout

    def replace_graph(self, graph: Graph) -> None:
        self.graph = graph
        self.view.clear_selection()
        self.view.apply_query("", None)
        width = self.surface.width if self.surface is not None and self.surface.width > 0 else None
        self.relayout(width)
        self.render()

    # -- queries --------------------------------------------------------

    def submit_query(self, query: str) -> "asyncio.Task[Optional[QueryResult]]":
        """Apply ``query`` after the configured delay; ``loading`` is set meanwhile."""
        self.view.loading = True
        task = self._query.schedule(self.apply_query_now, query)
        task.add_done_callback(self._query_done)
        return task

    def cancel_query(self) -> None:
        self._query.cancel()
        self.view.loading = False

    def _query_done(self, task: "asyncio.Task[Optional[QueryResult]]") -> None:
        if not self._query.pending:
            self.view.loading = False
        if not task.cancelled() and task.exception() is not None:
            log.error("query application failed", exc_info=task.exception())

    def apply_query_now(self, query: str) -> Optional[QueryResult]:
        result = classify(query, self.graph) if query.strip() else None
        self.view.apply_query(query, result)
        if result is not None:
            log.debug("query %r -> %s (%d nodes)", query, result.mode.value, len(result.target_ids))
        self.render()
        return result

    def suggestions(self) -> List[str]:
        return suggest_queries(self.graph, self.view)

    # -- export ---------------------------------------------------------

    def export_data_url(self) -> str:
        if self.surface is None or not self.surface.is_drawable:
            raise ValueError("nothing to export: no drawable surface")
        self.render()
        return export.to_data_url(self.surface)

    def export_filename(self, subject: str, date: Optional[_dt.date] = None) -> str:
        return export.export_filename(subject, date)

    def copy_summary(self, clipboard: Callable[[str], None]) -> str:
        text = export.selection_summary(self.graph, self.view)
        clipboard(text)
        return text


__all__ = ["InteractionController", "NodeClickCallback"]
