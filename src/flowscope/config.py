"""Configuration defaults for layout, viewport behavior and rendering."""
from __future__ import annotations

import os
from dataclasses import dataclass, field, replace
from typing import Dict, Mapping, Optional, Tuple


@dataclass(frozen=True)
class LayoutConfig:
    node_width: float = 140.0
    node_height: float = 60.0
    node_spacing: float = 20.0
    layer_height: float = 150.0
    top_margin: float = 100.0
    canvas_width: float = 800.0


@dataclass(frozen=True)
class ViewConfig:
    min_scale: float = 0.1
    max_scale: float = 3.0
    wheel_zoom_in: float = 1.1
    wheel_zoom_out: float = 0.9
    button_step: float = 1.2
    history_limit: int = 10
    query_delay: float = 0.4
    resize_debounce: float = 0.15
    click_slop: float = 3.0

    def __post_init__(self) -> None:
        if self.min_scale <= 0 or self.max_scale <= 0:
            raise ValueError("scale bounds must be > 0")
        if self.min_scale > self.max_scale:
            raise ValueError(
                f"min_scale ({self.min_scale}) exceeds max_scale ({self.max_scale})"
            )
        if self.history_limit < 1:
            raise ValueError("history_limit must be >= 1")
        if self.query_delay < 0 or self.resize_debounce < 0:
            raise ValueError("delays must be >= 0")

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None) -> "ViewConfig":
        env = os.environ if environ is None else environ
        overrides: Dict[str, float] = {}
        for key, attr in (
            ("FLOWSCOPE_MIN_SCALE", "min_scale"),
            ("FLOWSCOPE_MAX_SCALE", "max_scale"),
            ("FLOWSCOPE_QUERY_DELAY", "query_delay"),
        ):
            raw = env.get(key)
            if raw is None or not raw.strip():
                continue
            try:
                overrides[attr] = float(raw)
            except ValueError as exc:
                raise ValueError(f"{key} must be a number, got {raw!r}") from exc
        return replace(cls(), **overrides)


Color = Tuple[int, int, int]


def _hex(value: str) -> Color:
    value = value.lstrip("#")
    return (int(value[0:2], 16), int(value[2:4], 16), int(value[4:6], 16))


DEFAULT_NODE_COLORS: Dict[str, Color] = {
    "entry": _hex("#10b981"),
    "component": _hex("#3b82f6"),
    "module": _hex("#8b5cf6"),
    "service": _hex("#a855f7"),
    "database": _hex("#ef4444"),
    "external": _hex("#f59e0b"),
    "config": _hex("#6b7280"),
    "api": _hex("#06b6d4"),
    "hook": _hex("#ec4899"),
    "util": _hex("#84cc16"),
    "test": _hex("#f97316"),
}


@dataclass(frozen=True)
class RenderTheme:
    background: Color = _hex("#0f172a")
    band_fill: Color = _hex("#1f2937")
    band_label: Color = _hex("#9ca3af")
    edge: Color = _hex("#6b7280")
    edge_thick: Color = _hex("#f59e0b")
    edge_label: Color = _hex("#cbd5e1")
    node_border: Color = _hex("#374151")
    node_text: Color = _hex("#ffffff")
    selected_border: Color = _hex("#ffffff")
    highlight_halo: Color = _hex("#facc15")
    placeholder_text: Color = _hex("#9ca3af")
    annotation_low: Color = _hex("#10b981")
    annotation_mid: Color = _hex("#f59e0b")
    annotation_high: Color = _hex("#ef4444")
    annotation_deps: Color = _hex("#93c5fd")
    font_family: str = "sans-serif"
    font_size: float = 12.0
    annotation_font_size: float = 10.0
    node_colors: Dict[str, Color] = field(default_factory=lambda: dict(DEFAULT_NODE_COLORS))

    def node_color(self, type_name: str) -> Color:
        return self.node_colors.get(type_name, self.node_colors["component"])


def debug_enabled(environ: Optional[Mapping[str, str]] = None) -> bool:
    env = os.environ if environ is None else environ
    return env.get("FLOWSCOPE_DEBUG") == "1"


__all__ = [
    "LayoutConfig",
    "ViewConfig",
    "RenderTheme",
    "DEFAULT_NODE_COLORS",
    "debug_enabled",
]
