"""Affine viewport math and node box helpers."""
from __future__ import annotations

import math
from typing import List, Optional, Tuple

Affine = Tuple[float, float, float, float, float, float]
Point = Tuple[float, float]
Box = Tuple[float, float, float, float]


def identity_affine() -> Affine:
    return (1.0, 0.0, 0.0, 1.0, 0.0, 0.0)


def mul_affine(m1: Affine, m2: Affine) -> Affine:
    # Composition m = m1 * m2 (m2 applied first)
    a1, b1, c1, d1, e1, f1 = m1
    a2, b2, c2, d2, e2, f2 = m2
    return (
        a1 * a2 + c1 * b2,
        b1 * a2 + d1 * b2,
        a1 * c2 + c1 * d2,
        b1 * c2 + d1 * d2,
        a1 * e2 + c1 * f2 + e1,
        b1 * e2 + d1 * f2 + f1,
    )


def apply_affine(m: Affine, p: Point) -> Point:
    a, b, c, d, e, f = m
    x, y = p
    return (a * x + c * y + e, b * x + d * y + f)


def invert_affine(m: Affine) -> Optional[Affine]:
    a, b, c, d, e, f = m
    det = a * d - b * c
    if abs(det) < 1e-12:
        return None
    inv_det = 1.0 / det
    ai = d * inv_det
    bi = -b * inv_det
    ci = -c * inv_det
    di = a * inv_det
    ei = -(ai * e + ci * f)
    fi = -(bi * e + di * f)
    return (ai, bi, ci, di, ei, fi)


def translate(tx: float, ty: float) -> Affine:
    return (1.0, 0.0, 0.0, 1.0, tx, ty)


def scale(sx: float, sy: Optional[float] = None) -> Affine:
    return (sx, 0.0, 0.0, sx if sy is None else sy, 0.0, 0.0)


def viewport_affine(scale_factor: float, offset: Point) -> Affine:
    """Graph space to surface space: scale first, then translate by ``offset``."""
    return mul_affine(translate(offset[0], offset[1]), scale(scale_factor))


def node_box(center: Point, width: float, height: float) -> Box:
    cx, cy = center
    return (cx - width / 2.0, cy - height / 2.0, cx + width / 2.0, cy + height / 2.0)


def box_contains(box: Box, p: Point) -> bool:
    left, top, right, bottom = box
    return left <= p[0] <= right and top <= p[1] <= bottom


def transform_box(m: Affine, box: Box) -> Box:
    x0, y0 = apply_affine(m, (box[0], box[1]))
    x1, y1 = apply_affine(m, (box[2], box[3]))
    return (min(x0, x1), min(y0, y1), max(x0, x1), max(y0, y1))


def merge_box(a: Optional[Box], b: Box) -> Box:
    if a is None:
        return b
    return (min(a[0], b[0]), min(a[1], b[1]), max(a[2], b[2]), max(a[3], b[3]))


def quadratic_points(p0: Point, control: Point, p1: Point, steps: int = 12) -> List[Point]:
    points: List[Point] = []
    for i in range(steps + 1):
        t = i / steps
        u = 1.0 - t
        x = u * u * p0[0] + 2 * u * t * control[0] + t * t * p1[0]
        y = u * u * p0[1] + 2 * u * t * control[1] + t * t * p1[1]
        points.append((x, y))
    return points


def layer_curve(start: Point, end: Point, steps: int = 12) -> List[Point]:
    """Two quadratic segments meeting at the midpoint, bending vertically."""
    mid_x = (start[0] + end[0]) / 2.0
    mid_y = (start[1] + end[1]) / 2.0
    first = quadratic_points(start, (mid_x, start[1]), (mid_x, mid_y), steps)
    second = quadratic_points((mid_x, mid_y), (mid_x, end[1]), end, steps)
    return first + second[1:]


def dash_segments(points: List[Point], dash: float, gap: float) -> List[List[Point]]:
    """Split a polyline into dash runs of ``dash`` length separated by ``gap``."""
    if dash <= 0 or len(points) < 2:
        return [points]
    runs: List[List[Point]] = []
    current: List[Point] = [points[0]]
    drawing = True
    remaining = dash
    for (x0, y0), (x1, y1) in zip(points, points[1:]):
        seg_len = math.hypot(x1 - x0, y1 - y0)
        travelled = 0.0
        while seg_len - travelled > 1e-9:
            step = min(remaining, seg_len - travelled)
            travelled += step
            t = travelled / seg_len
            p = (x0 + (x1 - x0) * t, y0 + (y1 - y0) * t)
            remaining -= step
            if drawing:
                current.append(p)
            if remaining <= 1e-9:
                if drawing and len(current) >= 2:
                    runs.append(current)
                drawing = not drawing
                remaining = dash if drawing else gap
                current = [p]
    if drawing and len(current) >= 2:
        runs.append(current)
    return runs


def arrow_head(tip: Point, tail: Point, length: float = 10.0) -> List[Point]:
    angle = math.atan2(tip[1] - tail[1], tip[0] - tail[0])
    left = (
        tip[0] - length * math.cos(angle - math.pi / 6),
        tip[1] - length * math.sin(angle - math.pi / 6),
    )
    right = (
        tip[0] - length * math.cos(angle + math.pi / 6),
        tip[1] - length * math.sin(angle + math.pi / 6),
    )
    return [tip, left, right]


def ray_box_exit(center: Point, toward: Point, box: Box) -> Point:
    """Point where the ray from ``center`` to ``toward`` leaves ``box``."""
    dx = toward[0] - center[0]
    dy = toward[1] - center[1]
    if abs(dx) < 1e-9 and abs(dy) < 1e-9:
        return center
    half_w = (box[2] - box[0]) / 2.0
    half_h = (box[3] - box[1]) / 2.0
    scale_x = half_w / abs(dx) if abs(dx) > 1e-9 else math.inf
    scale_y = half_h / abs(dy) if abs(dy) > 1e-9 else math.inf
    t = min(scale_x, scale_y, 1.0)
    return (center[0] + dx * t, center[1] + dy * t)


__all__ = [
    "Affine",
    "Point",
    "Box",
    "identity_affine",
    "mul_affine",
    "apply_affine",
    "invert_affine",
    "translate",
    "scale",
    "viewport_affine",
    "node_box",
    "box_contains",
    "transform_box",
    "merge_box",
    "quadratic_points",
    "layer_curve",
    "dash_segments",
    "arrow_head",
    "ray_box_exit",
]
