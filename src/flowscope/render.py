"""Raster rendering of a laid-out graph onto a Pillow surface."""
from __future__ import annotations

import io
import logging
import re
from pathlib import Path
from typing import Dict, List, Optional, Tuple

from PIL import Image, ImageDraw, ImageFont

from .config import Color, RenderTheme
from .geometry import (
    Box,
    apply_affine,
    arrow_head,
    dash_segments,
    layer_curve,
    ray_box_exit,
    transform_box,
)
from .layout import LayoutResult
from .model import EdgeStyle, Graph, Node, NodeType
from .viewstate import Annotation, ViewState

log = logging.getLogger(__name__)

GENERIC_FONT_FALLBACKS = {
    "sans-serif": ["Helvetica", "Arial", "Liberation Sans", "DejaVu Sans"],
    "monospace": ["Courier New", "Liberation Mono", "DejaVu Sans Mono"],
}
PLACEHOLDER_TEXT = "No diagram to display"
MAX_LABEL_LINES = 3


class Surface:
    """An RGB raster target. Zero-size surfaces are valid but not drawable."""

    def __init__(self, width: int, height: int) -> None:
        self.width = max(0, int(width))
        self.height = max(0, int(height))
        self.image: Optional[Image.Image] = None
        if self.is_drawable:
            self.image = Image.new("RGB", (self.width, self.height))

    @property
    def is_drawable(self) -> bool:
        return self.width > 0 and self.height > 0

    def resize(self, width: int, height: int) -> None:
        self.width = max(0, int(width))
        self.height = max(0, int(height))
        self.image = Image.new("RGB", (self.width, self.height)) if self.is_drawable else None

    def clear(self, color: Color) -> None:
        if self.image is not None:
            self.image.paste(color, (0, 0, self.width, self.height))

    def to_png_bytes(self) -> bytes:
        if self.image is None:
            raise ValueError("surface has no pixels to encode")
        buffer = io.BytesIO()
        self.image.save(buffer, format="PNG")
        return buffer.getvalue()


class TextMeasurer:
    """Caches Pillow fonts by (family, size) and measures text."""

    FONT_DIRS = [
        Path("/System/Library/Fonts"),
        Path("/Library/Fonts"),
        Path("~/Library/Fonts").expanduser(),
        Path("/usr/share/fonts"),
        Path("/usr/local/share/fonts"),
        Path("C:/Windows/Fonts"),
    ]

    def __init__(self) -> None:
        self._fonts: Dict[Tuple[str, int], ImageFont.ImageFont] = {}
        self._paths: Dict[str, Optional[str]] = {}

    def font(self, size: float, family: str = "sans-serif") -> ImageFont.ImageFont:
        key = (family.lower(), max(1, int(round(size))))
        if key in self._fonts:
            return self._fonts[key]
        candidates = [
            path
            for name in GENERIC_FONT_FALLBACKS.get(key[0], [family])
            for path in [self._locate(name)]
            if path
        ]
        candidates.append("DejaVuSans.ttf")
        font: Optional[ImageFont.ImageFont] = None
        for candidate in candidates:
            try:
                font = ImageFont.truetype(candidate, key[1])
                break
            except OSError:
                continue
        if font is None:
            try:
                font = ImageFont.load_default(size=key[1])
            except TypeError:
                # Pillow < 10.1 has no sized default font.
                font = ImageFont.load_default()
        self._fonts[key] = font
        return font

    def measure(self, text: str, size: float, family: str = "sans-serif") -> float:
        return float(self.font(size, family).getlength(text))

    def line_height(self, size: float, family: str = "sans-serif") -> float:
        font = self.font(size, family)
        if not hasattr(font, "getmetrics"):
            return size * 1.2
        ascent, descent = font.getmetrics()
        return float(ascent + descent)

    def _locate(self, family: str) -> Optional[str]:
        key = family.lower()
        if key in self._paths:
            return self._paths[key]
        normalized = re.sub(r"[^a-z0-9]+", "", key)
        best: Optional[Tuple[int, str]] = None
        for directory in self.FONT_DIRS:
            if not directory.exists():
                continue
            for path in directory.rglob("*.ttf"):
                stem = re.sub(r"[^a-z0-9]+", "", path.stem.lower())
                if stem == normalized:
                    score = 0
                elif stem.startswith(normalized):
                    score = 1
                else:
                    continue
                if best is None or score < best[0]:
                    best = (score, str(path))
        self._paths[key] = best[1] if best else None
        return self._paths[key]


_TEXT_MEASURER = TextMeasurer()


def wrap_label(text: str, width_limit: float, font_size: float, family: str = "sans-serif") -> List[str]:
    words = text.split()
    lines: List[str] = []
    current = ""
    for word in words:
        candidate = f"{current} {word}" if current else word
        if not current or _TEXT_MEASURER.measure(candidate, font_size, family) <= width_limit:
            current = candidate
            continue
        lines.append(current)
        current = word
    if current:
        lines.append(current)
    if len(lines) > MAX_LABEL_LINES:
        lines = lines[:MAX_LABEL_LINES]
        lines[-1] = lines[-1] + "..."
    return lines or [""]


def draw_order(graph: Graph, layout: LayoutResult, view: ViewState) -> List[str]:
    """Ids of the nodes that are drawn, in drawing order."""
    return [node.id for node in graph if node.id in layout and view.is_visible(node)]


def band_label(layout: LayoutResult, layer: int) -> str:
    if layer == layout.unreached_layer:
        return "Unreached"
    if layer == 0:
        return "Entry Points"
    return f"Layer {layer}"


def render(
    graph: Graph,
    layout: LayoutResult,
    view: ViewState,
    surface: Optional[Surface],
    theme: Optional[RenderTheme] = None,
) -> bool:
    """Clear ``surface`` and draw the scene; returns False when nothing was drawn."""
    if surface is None or not surface.is_drawable or surface.image is None:
        log.debug("render skipped: no drawable surface")
        return False
    theme = theme or RenderTheme()
    surface.clear(theme.background)
    draw = ImageDraw.Draw(surface.image)

    if graph.is_empty or layout.is_empty:
        _draw_centered_text(draw, surface, PLACEHOLDER_TEXT, theme.placeholder_text, theme)
        return True

    order = draw_order(graph, layout, view)
    visible = set(order)
    _draw_bands(draw, surface, layout, view, theme)
    _draw_edges(draw, graph, layout, view, visible, theme)
    for node_id in order:
        _draw_node(draw, graph.nodes[node_id], layout, view, theme)
    for node_id in order:
        _draw_node_text(draw, graph.nodes[node_id], layout, view, theme)
    return True


def _scaled(value: float, view: ViewState, minimum: float = 1.0) -> float:
    return max(minimum, value * view.scale)


def _draw_bands(draw: ImageDraw.ImageDraw, surface: Surface, layout: LayoutResult, view: ViewState, theme: RenderTheme) -> None:
    font_size = _scaled(theme.font_size, view)
    font = _TEXT_MEASURER.font(font_size, theme.font_family)
    for layer in range(layout.layer_count):
        top, bottom = layout.band(layer)
        _, sy0 = view.to_surface((0.0, top))
        _, sy1 = view.to_surface((0.0, bottom))
        if sy1 < 0 or sy0 > surface.height:
            continue
        if layer % 2 == 0:
            draw.rectangle((0, sy0, surface.width, sy1), fill=theme.band_fill)
        draw.text((10, sy0 + 6), band_label(layout, layer), fill=theme.band_label, font=font)


def _draw_edges(
    draw: ImageDraw.ImageDraw,
    graph: Graph,
    layout: LayoutResult,
    view: ViewState,
    visible: set,
    theme: RenderTheme,
) -> None:
    m = view.affine
    for edge in graph.edges:
        if edge.source not in visible or edge.target not in visible:
            continue
        source = layout.placements[edge.source]
        target = layout.placements[edge.target]
        source_box = layout.box(edge.source)
        target_box = layout.box(edge.target)
        if source.layer == target.layer:
            start = ray_box_exit((source.x, source.y), (target.x, target.y), source_box)
            end = ray_box_exit((target.x, target.y), (source.x, source.y), target_box)
            points = [start, end]
        else:
            downward = target.layer > source.layer
            start = (source.x, source_box[3] if downward else source_box[1])
            end = (target.x, target_box[1] if downward else target_box[3])
            points = layer_curve(start, end)
        surface_points = [apply_affine(m, p) for p in points]
        if len(surface_points) < 2 or surface_points[0] == surface_points[-1]:
            continue

        color = theme.edge_thick if edge.style is EdgeStyle.THICK else theme.edge
        width = int(round(_scaled(4.0 if edge.style is EdgeStyle.THICK else 2.0, view)))
        if edge.style is EdgeStyle.DOTTED:
            runs = dash_segments(surface_points, _scaled(6.0, view), _scaled(4.0, view))
        else:
            runs = [surface_points]
        for run in runs:
            draw.line(run, fill=color, width=width, joint="curve")
        if edge.style is not EdgeStyle.PLAIN:
            draw.polygon(
                arrow_head(surface_points[-1], surface_points[-2], _scaled(10.0, view)),
                fill=color,
            )
        if edge.label:
            mid = surface_points[len(surface_points) // 2]
            size = _scaled(theme.annotation_font_size, view)
            text_width = _TEXT_MEASURER.measure(edge.label, size, theme.font_family)
            draw.text(
                (mid[0] - text_width / 2.0 + 4, mid[1] - size),
                edge.label,
                fill=theme.edge_label,
                font=_TEXT_MEASURER.font(size, theme.font_family),
            )


def _draw_node(draw: ImageDraw.ImageDraw, node: Node, layout: LayoutResult, view: ViewState, theme: RenderTheme) -> None:
    box = transform_box(view.affine, layout.box(node.id))
    selected = view.selected_node == node.id
    highlighted = node.id in view.highlighted_nodes
    if selected or highlighted:
        pad = _scaled(5.0, view)
        halo = (box[0] - pad, box[1] - pad, box[2] + pad, box[3] + pad)
        draw.rounded_rectangle(
            halo,
            radius=_radius(halo, _scaled(12.0, view)),
            outline=theme.highlight_halo,
            width=max(2, int(round(_scaled(3.0, view)))),
        )
    fill = theme.node_color(node.type.value)
    outline = theme.selected_border if selected else theme.node_border
    width = max(1, int(round(_scaled(3.0 if selected else 1.0, view))))
    _draw_shape(draw, node.type, box, fill, outline, width, view)


def _draw_shape(
    draw: ImageDraw.ImageDraw,
    node_type: NodeType,
    box: Box,
    fill: Color,
    outline: Color,
    width: int,
    view: ViewState,
) -> None:
    x0, y0, x1, y1 = box
    w = x1 - x0
    h = y1 - y0
    if node_type is NodeType.ENTRY:
        points = [(x0 + w * 0.2, y0), (x1, y0 + h / 2), (x0 + w * 0.2, y1), (x0, y0 + h / 2)]
        draw.polygon(points, fill=fill, outline=outline, width=width)
    elif node_type is NodeType.DATABASE:
        cap = min(_scaled(10.0, view), h / 4)
        draw.rectangle((x0, y0 + cap, x1, y1 - cap), fill=fill)
        draw.ellipse((x0, y1 - 2 * cap, x1, y1), fill=fill, outline=outline, width=width)
        draw.line([(x0, y0 + cap), (x0, y1 - cap)], fill=outline, width=width)
        draw.line([(x1, y0 + cap), (x1, y1 - cap)], fill=outline, width=width)
        draw.ellipse((x0, y0, x1, y0 + 2 * cap), fill=fill, outline=outline, width=width)
    elif node_type is NodeType.EXTERNAL:
        points = [(x0 + w / 2, y0), (x1, y0 + h / 2), (x0 + w / 2, y1), (x0, y0 + h / 2)]
        draw.polygon(points, fill=fill, outline=outline, width=width)
    else:
        draw.rounded_rectangle(box, radius=_radius(box, _scaled(8.0, view)), fill=fill, outline=outline, width=width)


def _radius(box: Box, radius: float) -> float:
    return max(0.0, min(radius, (box[2] - box[0]) / 2.0, (box[3] - box[1]) / 2.0))


def _draw_node_text(draw: ImageDraw.ImageDraw, node: Node, layout: LayoutResult, view: ViewState, theme: RenderTheme) -> None:
    cfg = layout.config
    cx, cy = view.to_surface(layout.center(node.id))
    font_size = _scaled(theme.font_size, view)
    font = _TEXT_MEASURER.font(font_size, theme.font_family)
    line_height = _TEXT_MEASURER.line_height(font_size, theme.font_family)
    lines = wrap_label(node.label, _scaled(cfg.node_width - 20.0, view), font_size, theme.font_family)

    annotation = _annotation_text(node, view, theme)
    block_height = line_height * len(lines)
    y = cy - block_height / 2.0 - (line_height / 2.0 if annotation else 0.0)
    for line in lines:
        width = _TEXT_MEASURER.measure(line, font_size, theme.font_family)
        draw.text((cx - width / 2.0, y), line, fill=theme.node_text, font=font)
        y += line_height

    if annotation:
        text, color = annotation
        size = _scaled(theme.annotation_font_size, view)
        width = _TEXT_MEASURER.measure(text, size, theme.font_family)
        draw.text((cx - width / 2.0, y + 2), text, fill=color, font=_TEXT_MEASURER.font(size, theme.font_family))


def _annotation_text(node: Node, view: ViewState, theme: RenderTheme) -> Optional[Tuple[str, Color]]:
    if view.annotation is Annotation.COMPLEXITY:
        if node.complexity >= 8:
            color = theme.annotation_high
        elif node.complexity >= 5:
            color = theme.annotation_mid
        else:
            color = theme.annotation_low
        return f"C: {node.complexity:g}", color
    if view.annotation is Annotation.DEPENDENCIES:
        return f"D: {len(node.dependencies)}", theme.annotation_deps
    return None


def _draw_centered_text(draw: ImageDraw.ImageDraw, surface: Surface, text: str, color: Color, theme: RenderTheme) -> None:
    size = theme.font_size * 1.5
    width = _TEXT_MEASURER.measure(text, size, theme.font_family)
    height = _TEXT_MEASURER.line_height(size, theme.font_family)
    draw.text(
        ((surface.width - width) / 2.0, (surface.height - height) / 2.0),
        text,
        fill=color,
        font=_TEXT_MEASURER.font(size, theme.font_family),
    )


__all__ = [
    "Surface",
    "TextMeasurer",
    "render",
    "draw_order",
    "band_label",
    "wrap_label",
    "PLACEHOLDER_TEXT",
]
