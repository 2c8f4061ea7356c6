"""Hand-drawn stroke generation.

Strokes follow the rough.js model: each straight segment becomes two loosely
overlaid cubic curves whose endpoints and bowing are randomly displaced, and
smooth curves are Catmull-Rom splines through jittered points drawn twice.
All displacement scales with ``roughness``; ``roughness=0`` reproduces the
exact geometry.
"""
from __future__ import annotations

import math
import random
from typing import List, Optional, Sequence, Tuple

from .svg import fmt

Point = Tuple[float, float]


class Sketcher:
    def __init__(
        self,
        roughness: float,
        *,
        seed: Optional[int] = 0,
        bowing: float = 1.0,
        max_randomness_offset: float = 2.0,
    ) -> None:
        if roughness < 0:
            raise ValueError(f"roughness must be >= 0 (got {roughness})")
        self.roughness = roughness
        self.bowing = bowing
        self.max_randomness_offset = max_randomness_offset
        self._rng = random.Random(seed) if seed is not None else random.Random()

    def _offset(self, low: float, high: float, gain: float = 1.0) -> float:
        return self.roughness * gain * (self._rng.random() * (high - low) + low)

    def _offset_opt(self, value: float, gain: float = 1.0) -> float:
        return self._offset(-value, value, gain)

    def _line_ops(self, p1: Point, p2: Point, *, move: bool, overlay: bool) -> List[str]:
        x1, y1 = p1
        x2, y2 = p2
        length_sq = (x1 - x2) ** 2 + (y1 - y2) ** 2
        length = math.sqrt(length_sq)
        if length < 200:
            gain = 1.0
        elif length > 500:
            gain = 0.4
        else:
            gain = -0.0016668 * length + 1.233334

        offset = self.max_randomness_offset
        if offset * offset * 100 > length_sq:
            offset = length / 10.0
        half_offset = offset / 2.0
        diverge = 0.2 + self._rng.random() * 0.2
        mid_x = self._offset_opt(self.bowing * self.max_randomness_offset * (y2 - y1) / 200.0, gain)
        mid_y = self._offset_opt(self.bowing * self.max_randomness_offset * (x1 - x2) / 200.0, gain)

        def _jitter() -> float:
            return self._offset_opt(half_offset if overlay else offset, gain)

        ops: List[str] = []
        if move:
            ops.append(f"M{fmt(x1 + _jitter())} {fmt(y1 + _jitter())}")
        ops.append(
            "C"
            f"{fmt(mid_x + x1 + (x2 - x1) * diverge + _jitter())} "
            f"{fmt(mid_y + y1 + (y2 - y1) * diverge + _jitter())} "
            f"{fmt(mid_x + x1 + 2 * (x2 - x1) * diverge + _jitter())} "
            f"{fmt(mid_y + y1 + 2 * (y2 - y1) * diverge + _jitter())} "
            f"{fmt(x2 + _jitter())} {fmt(y2 + _jitter())}"
        )
        return ops

    def _double_line_ops(self, p1: Point, p2: Point) -> List[str]:
        return self._line_ops(p1, p2, move=True, overlay=False) + self._line_ops(
            p1, p2, move=True, overlay=True
        )

    def line(self, p1: Point, p2: Point) -> str:
        return " ".join(self._double_line_ops(p1, p2))

    def linear_path(self, points: Sequence[Point], *, close: bool = False) -> str:
        if len(points) < 2:
            raise ValueError("a sketched path needs at least two points")
        ops: List[str] = []
        for start, end in zip(points, points[1:]):
            ops.extend(self._double_line_ops(start, end))
        if close:
            ops.extend(self._double_line_ops(points[-1], points[0]))
        return " ".join(ops)

    def rectangle(self, x: float, y: float, width: float, height: float) -> str:
        corners = [(x, y), (x + width, y), (x + width, y + height), (x, y + height)]
        return self.linear_path(corners, close=True)

    def polygon_fill(self, points: Sequence[Point]) -> str:
        """Closed fill outline through slightly displaced vertices."""
        jitter = self.max_randomness_offset / 4.0
        moved = [(px + self._offset_opt(jitter), py + self._offset_opt(jitter)) for px, py in points]
        parts = [f"M{fmt(moved[0][0])} {fmt(moved[0][1])}"]
        parts.extend(f"L{fmt(px)} {fmt(py)}" for px, py in moved[1:])
        parts.append("Z")
        return " ".join(parts)

    def curve(self, points: Sequence[Point]) -> str:
        if len(points) < 2:
            raise ValueError("a sketched curve needs at least two points")
        first = self._curve_with_offset(points, 1.0 * (1 + self.roughness * 0.2))
        second = self._curve_with_offset(points, 1.5 * (1 + self.roughness * 0.22))
        return f"{first} {second}"

    def _curve_with_offset(self, points: Sequence[Point], offset: float) -> str:
        jittered: List[Point] = [
            (points[0][0] + self._offset_opt(offset), points[0][1] + self._offset_opt(offset))
        ]
        for px, py in points:
            jittered.append((px + self._offset_opt(offset), py + self._offset_opt(offset)))
        last = points[-1]
        jittered.append((last[0] + self._offset_opt(offset), last[1] + self._offset_opt(offset)))
        return _catmull_rom(jittered)


def _catmull_rom(points: Sequence[Point]) -> str:
    """Cubic Bezier path through ``points[1:-1]``; outer points only shape the ends."""
    ops = [f"M{fmt(points[1][0])} {fmt(points[1][1])}"]
    for i in range(1, len(points) - 2):
        p0, p1, p2, p3 = points[i - 1], points[i], points[i + 1], points[i + 2]
        c1 = (p1[0] + (p2[0] - p0[0]) / 6.0, p1[1] + (p2[1] - p0[1]) / 6.0)
        c2 = (p2[0] + (p1[0] - p3[0]) / 6.0, p2[1] + (p1[1] - p3[1]) / 6.0)
        ops.append(
            f"C{fmt(c1[0])} {fmt(c1[1])} {fmt(c2[0])} {fmt(c2[1])} {fmt(p2[0])} {fmt(p2[1])}"
        )
    return " ".join(ops)
