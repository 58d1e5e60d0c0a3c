"""
Geometric primitives shared by the row, timing and surface stages.

All angles are radians measured counter-clockwise from +X unless the name
says bearing; bearings are compass degrees (0 = north, clockwise).
"""

import math
from typing import List, Optional, Sequence, Tuple

import numpy as np
from sklearn.neighbors import KDTree

EPSILON = 1e-12


def distance_2d(a: Sequence[float], b: Sequence[float]) -> float:
    """Planar distance between two points (Z ignored)."""
    return math.hypot(b[0] - a[0], b[1] - a[1])


def distance_3d(a: Sequence[float], b: Sequence[float]) -> float:
    dx = b[0] - a[0]
    dy = b[1] - a[1]
    dz = b[2] - a[2]
    return math.sqrt(dx * dx + dy * dy + dz * dz)


def angle_to_bearing(angle: float) -> float:
    """Convert a math angle (radians from +X) to a compass bearing in degrees."""
    return (90.0 - math.degrees(angle)) % 360.0


def fold_angle(angle: float) -> float:
    """Fold an undirected line angle into [0, pi)."""
    folded = math.fmod(angle, math.pi)
    if folded < 0:
        folded += math.pi
    if folded >= math.pi - EPSILON:
        folded = 0.0
    return folded


def direction_vectors(angle: float) -> Tuple[np.ndarray, np.ndarray]:
    """Unit vector along angle and its left-hand normal."""
    u = np.array([math.cos(angle), math.sin(angle)])
    n = np.array([-math.sin(angle), math.cos(angle)])
    return u, n


def project(points: np.ndarray, angle: float) -> Tuple[np.ndarray, np.ndarray]:
    """
    Project points into the frame of a direction.

    Args:
        points: (n, 2) array of XY coordinates
        angle: direction in radians

    Returns:
        Tuple of (along, across) coordinate arrays
    """
    u, n = direction_vectors(angle)
    pts = np.asarray(points, dtype=float).reshape(-1, 2)
    return pts @ u, pts @ n


def principal_axis_angle(points: np.ndarray) -> Optional[float]:
    """
    Angle of the best-fit line through points (closed-form 2x2 PCA).

    Returns None when the points do not define a direction (fewer than two
    distinct points).
    """
    pts = np.asarray(points, dtype=float).reshape(-1, 2)
    if len(pts) < 2:
        return None
    centred = pts - pts.mean(axis=0)
    cxx = float(np.dot(centred[:, 0], centred[:, 0]))
    cyy = float(np.dot(centred[:, 1], centred[:, 1]))
    cxy = float(np.dot(centred[:, 0], centred[:, 1]))
    if cxx + cyy < EPSILON:
        return None
    if abs(cxy) < 1e-10:
        return 0.0 if cxx >= cyy else math.pi / 2
    return fold_angle(0.5 * math.atan2(2.0 * cxy, cxx - cyy))


def point_line_distance(point: Sequence[float], origin: Sequence[float], angle: float) -> float:
    """Perpendicular distance from point to the infinite line through origin."""
    _, n = direction_vectors(angle)
    return abs((point[0] - origin[0]) * n[0] + (point[1] - origin[1]) * n[1])


def triangle_area(a: Sequence[float], b: Sequence[float], c: Sequence[float]) -> float:
    return 0.5 * abs((b[0] - a[0]) * (c[1] - a[1]) - (c[0] - a[0]) * (b[1] - a[1]))


def plane_gradient(
    a: Sequence[float], b: Sequence[float], c: Sequence[float]
) -> Optional[Tuple[float, float]]:
    """
    XY gradient (dz/dx, dz/dy) of the plane through three 3D points.

    Returns None for triangles with no planar extent.
    """
    v1 = (b[0] - a[0], b[1] - a[1], b[2] - a[2])
    v2 = (c[0] - a[0], c[1] - a[1], c[2] - a[2])
    nx = v1[1] * v2[2] - v1[2] * v2[1]
    ny = v1[2] * v2[0] - v1[0] * v2[2]
    nz = v1[0] * v2[1] - v1[1] * v2[0]
    if abs(nz) < EPSILON:
        return None
    return -nx / nz, -ny / nz


def min_angle_deg(a: Sequence[float], b: Sequence[float], c: Sequence[float]) -> float:
    """Smallest interior angle of a triangle in degrees."""
    ab = distance_2d(a, b)
    bc = distance_2d(b, c)
    ca = distance_2d(c, a)
    if min(ab, bc, ca) < EPSILON:
        return 0.0

    def angle(opposite: float, s1: float, s2: float) -> float:
        cosine = (s1 * s1 + s2 * s2 - opposite * opposite) / (2 * s1 * s2)
        return math.degrees(math.acos(max(-1.0, min(1.0, cosine))))

    return min(angle(bc, ab, ca), angle(ca, ab, bc), angle(ab, bc, ca))


def deduplicate_points(points: np.ndarray, tolerance: float = 0.001) -> Tuple[np.ndarray, np.ndarray]:
    """
    Merge points closer than tolerance in XY.

    The first point encountered in input order is kept as representative.

    Args:
        points: (n, 2) or (n, 3) array; only the first two columns are compared
        tolerance: merge radius in metres

    Returns:
        Tuple of (unique_indices, representative) where unique_indices lists the
        kept input indices in input order and representative[i] is the position
        of point i's representative within unique_indices.
    """
    pts = np.asarray(points, dtype=float)
    n = len(pts)
    if n == 0:
        return np.zeros(0, dtype=int), np.zeros(0, dtype=int)
    if tolerance <= 0:
        tolerance = 0.001

    tree = KDTree(pts[:, :2])
    neighbours = tree.query_radius(pts[:, :2], r=tolerance)

    representative = np.full(n, -1, dtype=int)
    unique_indices: List[int] = []
    for i in range(n):
        if representative[i] != -1:
            continue
        slot = len(unique_indices)
        unique_indices.append(i)
        for j in neighbours[i]:
            if representative[j] == -1:
                representative[j] = slot
    return np.array(unique_indices, dtype=int), representative


def nearest_neighbour_distances(points: np.ndarray) -> np.ndarray:
    """Distance from each point to its nearest distinct neighbour."""
    pts = np.asarray(points, dtype=float).reshape(-1, 2)
    if len(pts) < 2:
        return np.zeros(len(pts))
    tree = KDTree(pts)
    distances, _ = tree.query(pts, k=2)
    return distances[:, 1]
