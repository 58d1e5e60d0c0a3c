"""
Delaunay triangulation of hole positions.

The triangulation runs over the XY projection of collar, grade or toe
positions; vertex Z carries either the elevation of that position or the
hole's firing time, so the same mesh feeds elevation contours and timing
contours. Triangles spanning gaps in the pattern are removed by an edge
length cutoff.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import List, Mapping, Optional, Sequence, Tuple

import numpy as np
import structlog
from scipy.spatial import Delaunay, QhullError
from sklearn.neighbors import KDTree

from .geometry import EPSILON, deduplicate_points, distance_2d, min_angle_deg, triangle_area
from .issues import EngineIssue, IssueKind, issue
from .models import Hole, HoleKey, Point3, PositionKind, validate_holes

logger = structlog.get_logger()

ADAPTIVE_NEIGHBOURS = 6


class VertexValue(str, Enum):
    """What a triangle vertex's Z coordinate represents."""
    ELEVATION = "elevation"
    FIRING_TIME = "firing_time"


@dataclass
class Triangle:
    """A mesh triangle with the hole keys of its vertices."""
    vertices: Tuple[Point3, Point3, Point3]
    keys: Tuple[HoleKey, HoleKey, HoleKey]
    min_z: float = field(init=False)
    max_z: float = field(init=False)

    def __post_init__(self):
        zs = [v[2] for v in self.vertices]
        self.min_z = min(zs)
        self.max_z = max(zs)

    @property
    def longest_edge(self) -> float:
        a, b, c = self.vertices
        return max(distance_2d(a, b), distance_2d(b, c), distance_2d(c, a))

    @property
    def area(self) -> float:
        return triangle_area(*self.vertices)

    @property
    def centroid(self) -> Tuple[float, float]:
        a, b, c = self.vertices
        return (a[0] + b[0] + c[0]) / 3.0, (a[1] + b[1] + c[1]) / 3.0


@dataclass
class TriangulationResult:
    triangles: List[Triangle] = field(default_factory=list)
    vertex_keys: List[HoleKey] = field(default_factory=list)
    issues: List[EngineIssue] = field(default_factory=list)


def local_average_spacing(points: np.ndarray, neighbours: int = ADAPTIVE_NEIGHBOURS) -> np.ndarray:
    """Mean distance from each point to its nearest neighbours."""
    k = min(neighbours + 1, len(points))
    if k < 2:
        return np.zeros(len(points))
    distances, _ = KDTree(points).query(points, k=k)
    return distances[:, 1:].mean(axis=1)


def triangulate(
    holes: Sequence[Hole],
    max_edge_length: float,
    position: PositionKind = PositionKind.COLLAR,
    value: VertexValue = VertexValue.ELEVATION,
    firing_times: Optional[Mapping[HoleKey, float]] = None,
    min_angle: float = 0.0,
    adaptive_factor: Optional[float] = None,
    dedup_tolerance: float = 0.001,
    token=None,
) -> TriangulationResult:
    """
    Triangulate hole positions and drop over-long triangles.

    Args:
        holes: holes from one or more entities
        max_edge_length: triangles whose longest XY edge exceeds this are removed
        position: which point of each hole is triangulated
        value: vertex Z source; FIRING_TIME requires firing_times and skips
            holes without a resolved time
        firing_times: resolved firing times keyed by hole
        min_angle: drop slivers whose smallest angle is below this (degrees)
        adaptive_factor: when set, also drop triangles whose longest edge
            exceeds this factor times the local average hole spacing
        dedup_tolerance: XY merge radius in metres
        token: optional cancellation token

    Returns:
        TriangulationResult; degenerate input gives an empty mesh plus an issue
    """
    validate_holes(holes)
    if max_edge_length is None or max_edge_length <= 0:
        raise ValueError(f"max_edge_length must be positive, got {max_edge_length}")
    value = VertexValue(value)
    position = PositionKind(position)
    if value is VertexValue.FIRING_TIME and firing_times is None:
        raise ValueError("firing_times are required to triangulate a timing surface")

    result = TriangulationResult()
    selected = list(holes)
    if value is VertexValue.FIRING_TIME:
        selected = [h for h in selected if firing_times.get(h.key) is not None]
        skipped = len(holes) - len(selected)
        if skipped:
            logger.debug("Unresolved holes excluded from timing surface", skipped=skipped)

    points = np.array(
        [
            (
                h.position(position)[0],
                h.position(position)[1],
                h.position(position)[2] if value is VertexValue.ELEVATION else firing_times[h.key],
            )
            for h in selected
        ],
        dtype=float,
    ).reshape(-1, 3)

    unique_indices, _ = deduplicate_points(points, dedup_tolerance)
    if len(unique_indices) < 3:
        result.issues.append(issue(
            IssueKind.INSUFFICIENT_DATA,
            f"triangulation needs 3 distinct positions, got {len(unique_indices)}",
            [h.key for h in selected],
        ))
        return result

    vertices = points[unique_indices]
    keys = [selected[i].key for i in unique_indices]
    result.vertex_keys = keys
    xy = vertices[:, :2]

    centred = xy - xy.mean(axis=0)
    if np.linalg.matrix_rank(centred, tol=1e-9) < 2:
        result.issues.append(issue(IssueKind.DEGENERATE_GEOMETRY, "all positions are collinear", keys))
        return result
    try:
        mesh = Delaunay(xy)
    except QhullError as e:
        logger.warning("Delaunay triangulation failed", error=str(e))
        result.issues.append(issue(IssueKind.DEGENERATE_GEOMETRY, f"triangulation failed: {e}", keys))
        return result

    local_spacing = local_average_spacing(xy) if adaptive_factor else None
    dropped = 0
    for count, simplex in enumerate(mesh.simplices):
        if token is not None and count % 2048 == 0:
            token.raise_if_cancelled()
        i, j, k = (int(s) for s in simplex)
        corners = tuple(tuple(float(c) for c in vertices[idx]) for idx in (i, j, k))
        triangle = Triangle(vertices=corners, keys=(keys[i], keys[j], keys[k]))

        longest = triangle.longest_edge
        if longest > max_edge_length or triangle.area < EPSILON:
            dropped += 1
            continue
        if min_angle > 0 and min_angle_deg(*corners) < min_angle:
            dropped += 1
            continue
        if local_spacing is not None:
            threshold = adaptive_factor * float(np.mean(local_spacing[[i, j, k]]))
            if longest > threshold:
                dropped += 1
                continue
        result.triangles.append(triangle)

    logger.info("Triangulation complete", vertices=len(keys), triangles=len(result.triangles),
                dropped=dropped, value=value.value)
    return result
