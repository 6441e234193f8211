"""PNG / data-URL export, file naming, clipboard summaries and serializers."""
from __future__ import annotations

import base64
import datetime as _dt
import json
import re
from typing import Any, Dict, List, Optional

from .layout import LayoutResult
from .model import EdgeStyle, Graph, NodeShape
from .render import Surface
from .viewstate import SHOW_ALL, ViewState

DATA_URL_PREFIX = "data:image/png;base64,"

_SHAPE_BRACKETS = {
    NodeShape.RECT: ("[", "]"),
    NodeShape.CIRCLE: ("((", "))"),
    NodeShape.DIAMOND: ("{", "}"),
    NodeShape.ASYMMETRIC: (">", "]"),
    NodeShape.SUBROUTINE: ("[[", "]]"),
    NodeShape.CYLINDER: ("[(", ")]"),
    NodeShape.PARALLELOGRAM: ("[/", "/]"),
    NodeShape.PARALLELOGRAM_ALT: ("[\\", "\\]"),
    NodeShape.ROUND: ("(", ")"),
}
_ARROWS = {
    EdgeStyle.SOLID: "-->",
    EdgeStyle.DOTTED: "-.->",
    EdgeStyle.THICK: "==>",
    EdgeStyle.PLAIN: "---",
}
_NEEDS_QUOTES = re.compile(r"[\[\](){}|<>/\\;&\"]")


def to_png_bytes(surface: Surface) -> bytes:
    return surface.to_png_bytes()


def to_data_url(surface: Surface) -> str:
    """Encode the surface as a ``data:image/png;base64,`` URL."""
    return DATA_URL_PREFIX + base64.b64encode(to_png_bytes(surface)).decode("ascii")


def slugify(subject: str) -> str:
    slug = re.sub(r"[^A-Za-z0-9]+", "-", subject or "").strip("-").lower()
    return slug or "diagram"


def export_filename(subject: str, date: Optional[_dt.date] = None) -> str:
    """``<subject-slug>-flowchart[-YYYY-MM-DD].png``."""
    name = f"{slugify(subject)}-flowchart"
    if date is not None:
        name += f"-{date.strftime('%Y-%m-%d')}"
    return name + ".png"


def selection_summary(graph: Graph, view: ViewState) -> str:
    """Human-readable text describing what the view currently shows."""
    lines: List[str] = []
    node = graph.get(view.selected_node)
    if node is not None:
        lines.append(f"{node.label} ({node.type.value})")
        lines.append(f"complexity: {node.complexity:g}  importance: {node.importance:g}")
        if node.file_path:
            lines.append(f"file: {node.file_path}")
        deps = [graph.nodes[dep].label for dep in node.dependencies if dep in graph.nodes]
        lines.append("depends on: " + (", ".join(deps) if deps else "nothing"))
        used_by = [graph.nodes[src].label for src in graph.incoming(node.id)]
        lines.append("used by: " + (", ".join(used_by) if used_by else "nothing"))
    else:
        visible = sum(1 for item in graph if view.is_visible(item))
        lines.append(f"{len(graph.nodes)} nodes, {len(graph.edges)} edges ({visible} visible)")
        if view.active_filter is not SHOW_ALL:
            lines.append(f"filter: {view.active_filter.describe()}")
    highlighted = [graph.nodes[nid].label for nid in graph.nodes if nid in view.highlighted_nodes]
    if highlighted:
        lines.append("highlighted: " + ", ".join(highlighted))
    if view.query_history:
        lines.append(f"last query: {view.query_history[0]}")
    return "\n".join(lines)


def _mermaid_ids(graph: Graph) -> Dict[str, str]:
    ids: Dict[str, str] = {}
    used = set()
    for node_id in graph.nodes:
        safe = re.sub(r"[^A-Za-z0-9_]+", "_", node_id) or "node"
        candidate = safe
        suffix = 2
        while candidate in used:
            candidate = f"{safe}_{suffix}"
            suffix += 1
        used.add(candidate)
        ids[node_id] = candidate
    return ids


def _mermaid_label(label: str) -> str:
    if _NEEDS_QUOTES.search(label):
        return '"' + label.replace('"', "&quot;") + '"'
    return label


def to_mermaid(graph: Graph) -> str:
    """Serialize ``graph`` back to flowchart DSL text that ``parse`` accepts."""
    ids = _mermaid_ids(graph)
    lines = [f"graph {graph.direction}"]
    for node in graph:
        opener, closer = _SHAPE_BRACKETS.get(node.shape, ("[", "]"))
        lines.append(f"    {ids[node.id]}{opener}{_mermaid_label(node.label)}{closer}")
    for edge in graph.edges:
        arrow = _ARROWS[edge.style]
        if edge.label:
            arrow += f"|{edge.label.replace('|', '/')}|"
        lines.append(f"    {ids[edge.source]} {arrow} {ids[edge.target]}")
    return "\n".join(lines) + "\n"


def to_json(graph: Graph, layout: Optional[LayoutResult] = None, indent: Optional[int] = 2) -> str:
    payload: Dict[str, Any] = graph.to_dict()
    if layout is not None and not layout.is_empty:
        payload["layout"] = {
            "canvas_width": layout.canvas_width,
            "roots": list(layout.roots),
            "rows": [list(row) for row in layout.rows],
            "unreached": list(layout.unreached),
            "positions": {
                node_id: {"layer": p.layer, "x": p.x, "y": p.y}
                for node_id, p in layout.placements.items()
            },
        }
    return json.dumps(payload, indent=indent)


__all__ = [
    "DATA_URL_PREFIX",
    "to_png_bytes",
    "to_data_url",
    "slugify",
    "export_filename",
    "selection_summary",
    "to_mermaid",
    "to_json",
]
