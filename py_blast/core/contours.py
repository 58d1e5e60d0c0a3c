"""
Contour lines over a triangulated surface.

Each triangle is cut by every contour level inside its Z range. A vertex
counts as above a level when its Z is at or over it, so every triangle edge
is crossed at most once per level and a triangle yields at most one segment.
Crossing points are identified by the mesh edge (or vertex) they lie on, so
segments from neighbouring triangles are joined exactly, without a distance
tolerance.
"""

import math
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Sequence, Tuple

import structlog

from .geometry import EPSILON, plane_gradient
from .triangulation import Triangle

logger = structlog.get_logger()

Point2 = Tuple[float, float]
Vector2 = Tuple[float, float]


@dataclass
class ContourPolyline:
    """A stitched contour line at one level."""
    level: float
    points: List[Point2] = field(default_factory=list)
    closed: bool = False
    # downslope[i] belongs to the segment points[i] -> points[i + 1]
    downslope: List[Optional[Vector2]] = field(default_factory=list)

    @property
    def length(self) -> float:
        return sum(math.dist(a, b) for a, b in zip(self.points, self.points[1:]))


@dataclass
class FirstMovementArrow:
    """Direction of increasing Z across one triangle."""
    start: Point2
    end: Point2
    direction: Vector2


@dataclass
class _Segment:
    start_key: tuple
    end_key: tuple
    start: Point2
    end: Point2
    downslope: Optional[Vector2]


def contour_levels(min_z: float, max_z: float, interval: float, base: float = 0.0) -> List[float]:
    """Multiples of interval (offset by base) inside [min_z, max_z]."""
    if interval <= 0:
        raise ValueError(f"contour interval must be positive, got {interval}")
    first = math.ceil((min_z - base) / interval)
    last = math.floor((max_z - base) / interval)
    return [base + k * interval for k in range(first, last + 1)]


def downslope_direction(triangle: Triangle) -> Optional[Vector2]:
    """Unit vector of steepest descent, or None on a flat triangle."""
    gradient = plane_gradient(*triangle.vertices)
    if gradient is None:
        return None
    magnitude = math.hypot(gradient[0], gradient[1])
    if magnitude < EPSILON:
        return None
    return -gradient[0] / magnitude, -gradient[1] / magnitude


def _crossing(triangle: Triangle, i: int, j: int, level: float):
    """Crossing point of edge (i, j) with level, or None."""
    zi = triangle.vertices[i][2]
    zj = triangle.vertices[j][2]
    if not ((zi < level and zj >= level) or (zi >= level and zj < level)):
        return None

    # Interpolate from the lower key so both triangles sharing the edge agree
    if triangle.keys[j] < triangle.keys[i]:
        i, j = j, i
    a = triangle.vertices[i]
    b = triangle.vertices[j]
    t = (level - a[2]) / (b[2] - a[2])
    if t <= 0.0:
        return ("v", triangle.keys[i]), (a[0], a[1])
    if t >= 1.0:
        return ("v", triangle.keys[j]), (b[0], b[1])
    point = (a[0] + t * (b[0] - a[0]), a[1] + t * (b[1] - a[1]))
    return ("e", triangle.keys[i], triangle.keys[j]), point


def triangle_segment(triangle: Triangle, level: float) -> Optional[_Segment]:
    crossings = []
    for i, j in ((0, 1), (1, 2), (2, 0)):
        crossing = _crossing(triangle, i, j, level)
        if crossing is not None:
            crossings.append(crossing)
    if len(crossings) != 2:
        return None
    (start_key, start), (end_key, end) = crossings
    if start_key == end_key:
        return None
    return _Segment(start_key, end_key, start, end, downslope_direction(triangle))


def stitch_segments(level: float, segments: Sequence[_Segment]) -> List[ContourPolyline]:
    """
    Join segments that share a crossing point into polylines.

    Open chains are walked from their free ends first; whatever remains
    forms closed loops.
    """
    incident: Dict[tuple, List[int]] = {}
    for index, segment in enumerate(segments):
        incident.setdefault(segment.start_key, []).append(index)
        incident.setdefault(segment.end_key, []).append(index)

    used = [False] * len(segments)

    def walk(start_key) -> ContourPolyline:
        polyline = ContourPolyline(level=level)
        current = start_key
        while True:
            nxt = next((s for s in incident[current] if not used[s]), None)
            if nxt is None:
                break
            used[nxt] = True
            segment = segments[nxt]
            if segment.start_key == current:
                a, b, other = segment.start, segment.end, segment.end_key
            else:
                a, b, other = segment.end, segment.start, segment.start_key
            if not polyline.points:
                polyline.points.append(a)
            polyline.points.append(b)
            polyline.downslope.append(segment.downslope)
            current = other
        polyline.closed = len(polyline.points) > 3 and current == start_key
        return polyline

    polylines = []
    for key, members in incident.items():
        if len(members) == 1 and not used[members[0]]:
            polylines.append(walk(key))
    for index, segment in enumerate(segments):
        if not used[index]:
            polylines.append(walk(segment.start_key))
    return polylines


def generate_contours(
    triangles: Sequence[Triangle], interval: float, base: float = 0.0, token=None
) -> List[ContourPolyline]:
    """
    Contour polylines for every level crossing the surface.

    Args:
        triangles: mesh from triangulate()
        interval: level spacing in Z units (metres or ms)
        base: level offset
        token: optional cancellation token

    Returns:
        Polylines ordered by level
    """
    if interval is None or interval <= 0:
        raise ValueError(f"contour interval must be positive, got {interval}")
    if not triangles:
        return []

    levels = contour_levels(
        min(t.min_z for t in triangles), max(t.max_z for t in triangles), interval, base
    )
    by_level: Dict[float, List[_Segment]] = {level: [] for level in levels}
    for count, triangle in enumerate(triangles):
        if token is not None and count % 1024 == 0:
            token.raise_if_cancelled()
        for level in levels:
            if level < triangle.min_z or level > triangle.max_z:
                continue
            segment = triangle_segment(triangle, level)
            if segment is not None:
                by_level[level].append(segment)

    polylines = []
    for level in levels:
        polylines.extend(stitch_segments(level, by_level[level]))

    logger.debug("Contours generated", levels=len(levels), polylines=len(polylines))
    return polylines


def first_movement_arrows(
    triangles: Sequence[Triangle], size: float = 1.0, min_area: float = 0.1
) -> List[FirstMovementArrow]:
    """
    Per-triangle arrows pointing towards increasing Z.

    On a firing-time surface this is the direction the blast moves first.
    Triangles smaller than min_area or flat triangles get no arrow.
    """
    arrows = []
    for triangle in triangles:
        if triangle.area < min_area:
            continue
        downslope = downslope_direction(triangle)
        if downslope is None:
            continue
        direction = (-downslope[0], -downslope[1])
        cx, cy = triangle.centroid
        arrows.append(FirstMovementArrow(
            start=(cx, cy),
            end=(cx + direction[0] * size, cy + direction[1] * size),
            direction=direction,
        ))
    return arrows
