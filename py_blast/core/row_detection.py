"""
Row detection for drill patterns.

This module turns the flat hole list of one entity into rows:
- Estimates the row direction from the hole numbering sequence, and
  from the lattice axes of the pattern when the numbering does not agree
  on one direction
- Builds a sequence-weighted distance matrix in which holes lying on a
  common line along that direction are closer than the same distances
  across rows; the across-row stretch grows with the spacing to burden
  ratio so rows never merge into one cluster
- Clusters the matrix with HDBSCAN; each cluster is a row
- Force-assigns HDBSCAN noise points to the row with the smallest
  perpendicular distance, so every hole ends with a row
- Numbers rows across the pattern and positions along each row
"""

import math
import re
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Sequence, Tuple

import numpy as np
import structlog
from pydantic import BaseModel, Field
from sklearn.cluster import HDBSCAN
from sklearn.neighbors import KDTree

from .geometry import (
    EPSILON,
    angle_to_bearing,
    deduplicate_points,
    fold_angle,
    point_line_distance,
    principal_axis_angle,
    project,
)
from .issues import EngineIssue, IssueKind, issue
from .models import Hole, HoleKey

logger = structlog.get_logger()

NUMBER_PATTERN = re.compile(r"^(\D*)(\d+)")


class RowDetectionOptions(BaseModel):
    """Tuning parameters for row detection."""

    perpendicular_weight: float = Field(
        default=4.0, gt=1.0,
        description="Smallest stretch applied to distances across the row direction",
    )
    row_separation: float = Field(
        default=4.0, gt=2.0,
        description="Stretched burden kept at least this many spacings apart",
    )
    direction_tolerance_deg: float = Field(
        default=10.0, gt=0.0, le=45.0,
        description="Angular window used when voting for the row direction",
    )
    sequence_id_ratio: float = Field(
        default=0.7, ge=0.0, le=1.0,
        description="Share of numbered hole IDs required to trust the sequence",
    )
    min_sequence_support: float = Field(
        default=0.5, gt=0.0, le=1.0,
        description="Share of sequence steps that must agree on the row direction",
    )
    min_cluster_size: int = Field(default=2, ge=2, description="Smallest row HDBSCAN may report")
    dedup_tolerance: float = Field(default=0.001, gt=0.0, description="XY merge radius in metres")


@dataclass
class RowDetectionResult:
    """Rows detected for one entity."""
    entity_name: str
    orientation: float  # radians, folded into [0, pi)
    rows: List[List[HoleKey]] = field(default_factory=list)  # ordered by row_id, then pos_id
    row_ids: Dict[HoleKey, int] = field(default_factory=dict)
    pos_ids: Dict[HoleKey, int] = field(default_factory=dict)
    method: str = "hdbscan"
    issues: List[EngineIssue] = field(default_factory=list)

    @property
    def orientation_bearing(self) -> float:
        """Row orientation as a compass bearing in degrees."""
        return angle_to_bearing(self.orientation)

    @property
    def row_count(self) -> int:
        return len(self.rows)


def _sequence_key(hole_id: str) -> Optional[Tuple[str, int]]:
    match = NUMBER_PATTERN.match(str(hole_id).strip())
    if not match:
        return None
    return match.group(1).upper(), int(match.group(2))


def sequence_vectors(holes: Sequence[Hole], points: np.ndarray, min_ratio: float = 0.7) -> np.ndarray:
    """
    Vectors between consecutive holes in numbering order.

    Holes are ordered by (alphabetic prefix, number) so both "1, 2, 3" and
    "A1, A2, B1" numbering walk along rows. Returns an empty array when too
    few IDs are numbered for the sequence to be meaningful.
    """
    keyed = []
    for index, hole in enumerate(holes):
        seq = _sequence_key(hole.hole_id)
        if seq is not None:
            keyed.append((seq, index))
    if not keyed or len(keyed) / len(holes) < min_ratio:
        return np.zeros((0, 2))

    keyed.sort()
    vectors = []
    for (prev_seq, prev), (seq, cur) in zip(keyed, keyed[1:]):
        if prev_seq[0] != seq[0]:
            continue
        vector = points[cur] - points[prev]
        if np.hypot(vector[0], vector[1]) > 1e-9:
            vectors.append(vector)
    return np.array(vectors).reshape(-1, 2)


def _folded_angles(vectors: np.ndarray) -> np.ndarray:
    """Undirected angles of vectors in [0, pi)."""
    vectors = np.asarray(vectors, dtype=float).reshape(-1, 2)
    angles = np.mod(np.arctan2(vectors[:, 1], vectors[:, 0]), math.pi)
    angles[angles >= math.pi - EPSILON] = 0.0
    return angles


def _angle_gaps(angles: np.ndarray, angle: float) -> np.ndarray:
    diff = np.abs(angles - angle)
    return np.minimum(diff, math.pi - diff)


def direction_vote(vectors: np.ndarray, tolerance_deg: float = 10.0) -> Tuple[Optional[float], float]:
    """
    Most common undirected direction among vectors and its support.

    Each vector votes for the angles within tolerance of its own; the best
    supported candidate is then refined by a doubled-angle mean of its
    supporters.

    Returns:
        Tuple of (angle in radians or None, share of vectors supporting it)
    """
    if len(vectors) == 0:
        return None, 0.0
    angles = _folded_angles(vectors)
    tolerance = math.radians(tolerance_deg)

    # Sorted copies shifted by a half turn handle the wrap at 0 / pi
    ordered = np.sort(angles)
    extended = np.concatenate([ordered - math.pi, ordered, ordered + math.pi])
    counts = (np.searchsorted(extended, angles + tolerance, side="right")
              - np.searchsorted(extended, angles - tolerance, side="left"))
    candidate = float(angles[int(np.argmax(counts))])

    supporters = angles[_angle_gaps(angles, candidate) <= tolerance]
    share = len(supporters) / len(angles)
    c = float(np.sum(np.cos(2 * supporters)))
    s = float(np.sum(np.sin(2 * supporters)))
    if abs(c) < 1e-12 and abs(s) < 1e-12:
        return candidate, share
    return fold_angle(0.5 * math.atan2(s, c)), share


def dominant_direction(vectors: np.ndarray, tolerance_deg: float = 10.0) -> Optional[float]:
    """Most common undirected direction among vectors."""
    return direction_vote(vectors, tolerance_deg)[0]


def lattice_direction(points: np.ndarray, tolerance_deg: float = 10.0) -> Optional[float]:
    """
    Row direction from the lattice axes of the pattern.

    Vectors to the closest neighbours of every hole vote for the pattern
    axes. Among the well supported axes rows run along the one with the
    widest hole pitch (spacing is at least burden); when two pitches agree
    within 10% the axis along the longer pattern extent wins.
    """
    n = len(points)
    if n < 2:
        return None
    k = min(4, n - 1)
    _, neighbours = KDTree(points).query(points, k=k + 1)
    vectors = np.array([points[j] - points[i] for i in range(n) for j in neighbours[i][1:]])
    lengths = np.hypot(vectors[:, 0], vectors[:, 1])
    angles = _folded_angles(vectors)
    tolerance = math.radians(tolerance_deg)

    axes = []  # (angle, supporters, pitch)
    remaining = np.ones(len(vectors), dtype=bool)
    while remaining.any() and len(axes) < 3:
        angle, _ = direction_vote(vectors[remaining], tolerance_deg)
        members = remaining & (_angle_gaps(angles, angle) <= tolerance)
        if not members.any():
            break
        axes.append((angle, int(members.sum()), float(np.median(lengths[members]))))
        remaining &= ~members

    if not axes:
        return None
    strongest = axes[0][1]
    candidates = [axis for axis in axes if axis[1] >= 0.6 * strongest]
    candidates.sort(key=lambda axis: -axis[2])
    best = candidates[0]
    if len(candidates) > 1 and candidates[1][2] >= 0.9 * best[2]:
        def extent(axis):
            along, _ = project(points, axis[0])
            return float(along.max() - along.min())
        best = max(candidates[:2], key=extent)
    return best[0]


def estimate_row_direction(
    holes: Sequence[Hole], points: np.ndarray, unique_points: np.ndarray, options: RowDetectionOptions
) -> Tuple[float, str]:
    """
    Estimate the direction rows run in.

    The numbering sequence is trusted only when enough consecutive steps
    agree on one direction; shuffled numbering falls through to the lattice
    estimate.

    Returns:
        Tuple of (angle in radians, source) where source is "sequence",
        "lattice" or "default"
    """
    direction, support = direction_vote(
        sequence_vectors(holes, points, options.sequence_id_ratio), options.direction_tolerance_deg
    )
    if direction is not None and support >= options.min_sequence_support:
        return direction, "sequence"
    direction = lattice_direction(unique_points, options.direction_tolerance_deg)
    if direction is not None:
        return direction, "lattice"
    return 0.0, "default"


def row_pitches(
    points: np.ndarray, direction: float, tolerance_deg: float = 10.0
) -> Tuple[Optional[float], Optional[float]]:
    """
    Median spacing along and burden across the row direction.

    A neighbour within tolerance of the row direction counts as the same
    row; the closest other neighbour gives the across-row offset.

    Returns:
        Tuple of (spacing, burden); either is None when no hole pair
        measures it
    """
    along, across = project(points, direction)
    d_along = np.abs(along[:, None] - along[None, :])
    d_across = np.abs(across[:, None] - across[None, :])
    distance = np.hypot(d_along, d_across)
    np.fill_diagonal(distance, np.inf)
    in_row = d_across <= math.tan(math.radians(tolerance_deg)) * d_along

    spacing_each = np.where(in_row, distance, np.inf).min(axis=1)
    burden_each = np.where(in_row, np.inf, d_across).min(axis=1)
    spacing_each = spacing_each[np.isfinite(spacing_each)]
    burden_each = burden_each[np.isfinite(burden_each) & (burden_each > 0)]
    spacing = float(np.median(spacing_each)) if len(spacing_each) else None
    burden = float(np.median(burden_each)) if len(burden_each) else None
    return spacing, burden


def across_row_weight(points: np.ndarray, direction: float, options: RowDetectionOptions) -> float:
    """
    Across-row stretch for the clustering matrix.

    HDBSCAN prefers one cluster for the whole pattern unless the stretched
    burden is more than twice the spacing, so the weight keeps it
    ``row_separation`` spacings apart.
    """
    spacing, burden = row_pitches(points, direction, options.direction_tolerance_deg)
    if spacing is None or burden is None:
        return options.perpendicular_weight
    return max(options.perpendicular_weight, options.row_separation * spacing / burden)


def sequence_weighted_distances(points: np.ndarray, direction: float, perpendicular_weight: float) -> np.ndarray:
    """
    Full pairwise distance matrix with the across-row component stretched.

    Two holes one spacing apart along the row direction stay one spacing
    apart; two holes one burden apart across rows become
    ``perpendicular_weight`` burdens apart.
    """
    along, across = project(points, direction)
    d_along = along[:, None] - along[None, :]
    d_across = (across[:, None] - across[None, :]) * perpendicular_weight
    matrix = np.hypot(d_along, d_across)
    np.fill_diagonal(matrix, 0.0)
    return matrix


def cluster_rows(points: np.ndarray, direction: float, options: RowDetectionOptions) -> np.ndarray:
    """
    HDBSCAN over the sequence-weighted matrix.

    Returns:
        Label per point; -1 marks points HDBSCAN left unassigned
    """
    weight = across_row_weight(points, direction, options)
    logger.debug("Across-row weight", weight=round(weight, 3))
    matrix = sequence_weighted_distances(points, direction, weight)
    clusterer = HDBSCAN(
        min_cluster_size=options.min_cluster_size,
        min_samples=1,
        metric="precomputed",
        cluster_selection_method="eom",
        allow_single_cluster=True,
        copy=True,
    )
    return clusterer.fit_predict(matrix)


def assign_noise(points: np.ndarray, labels: np.ndarray, fallback_direction: float) -> np.ndarray:
    """
    Force every noise point into the row whose best-fit line is closest.

    With no clusters at all every point joins a single row 0.
    """
    labels = labels.copy()
    cluster_ids = sorted(set(int(l) for l in labels if l >= 0))
    if not cluster_ids:
        return np.zeros(len(points), dtype=int)

    lines = {}
    for cid in cluster_ids:
        members = points[labels == cid]
        angle = principal_axis_angle(members)
        lines[cid] = (members.mean(axis=0), fallback_direction if angle is None else angle)

    for i in np.where(labels < 0)[0]:
        best = min(
            cluster_ids,
            key=lambda cid: (point_line_distance(points[i], lines[cid][0], lines[cid][1]), cid),
        )
        labels[i] = best
    return labels


def detect_rows(
    holes: Sequence[Hole], options: Optional[RowDetectionOptions] = None, token=None
) -> RowDetectionResult:
    """
    Detect rows and positions for the holes of a single entity.

    Args:
        holes: holes sharing one entity name
        options: detection parameters
        token: optional cancellation token checked before clustering

    Returns:
        RowDetectionResult with a row and position for every hole
    """
    options = options or RowDetectionOptions()
    holes = list(holes)
    if not holes:
        return RowDetectionResult(
            entity_name="", orientation=0.0, method="empty",
            issues=[issue(IssueKind.INSUFFICIENT_DATA, "no holes to detect rows in")],
        )

    entity_names = {h.entity_name for h in holes}
    if len(entity_names) != 1:
        raise ValueError(f"detect_rows expects one entity, got {sorted(entity_names)}")
    entity_name = holes[0].entity_name
    issues: List[EngineIssue] = []

    points = np.array([[h.collar[0], h.collar[1]] for h in holes], dtype=float)
    unique_indices, representative = deduplicate_points(points, options.dedup_tolerance)
    unique_points = points[unique_indices]
    if len(unique_indices) < len(holes):
        kept = set(unique_indices.tolist())
        merged = [holes[i].key for i in range(len(holes)) if i not in kept]
        issues.append(issue(
            IssueKind.DEGENERATE_GEOMETRY,
            f"{len(merged)} holes share a collar position with another hole",
            merged,
        ))

    direction, source = estimate_row_direction(holes, points, unique_points, options)
    logger.debug("Row direction estimated", entity=entity_name,
                 direction_deg=round(math.degrees(direction), 3), source=source)

    if len(unique_points) < 3:
        labels = np.zeros(len(unique_points), dtype=int)
        method = "single-row"
    else:
        if token is not None:
            token.raise_if_cancelled()
        labels = cluster_rows(unique_points, direction, options)
        noise = int(np.sum(labels < 0))
        if noise:
            logger.debug("Assigning unclustered holes", entity=entity_name, noise=noise)
        labels = assign_noise(unique_points, labels, direction)
        method = "hdbscan"

    hole_labels = labels[representative]

    # Orientation from the dominant row
    counts: Dict[int, int] = {}
    for label in labels:
        counts[int(label)] = counts.get(int(label), 0) + 1
    dominant = min(counts, key=lambda label: (-counts[label], label))
    orientation = principal_axis_angle(unique_points[labels == dominant])
    if orientation is None:
        orientation = principal_axis_angle(unique_points)
    if orientation is None:
        orientation = direction

    along, across = project(points, orientation)
    row_order = sorted(
        counts,
        key=lambda label: (
            float(np.mean(across[hole_labels == label])),
            float(np.mean(along[hole_labels == label])),
        ),
    )

    result = RowDetectionResult(
        entity_name=entity_name, orientation=orientation, method=method, issues=issues
    )
    for row_id, label in enumerate(row_order):
        members = [i for i in range(len(holes)) if hole_labels[i] == label]
        members.sort(key=lambda i: (along[i], i))
        row_keys = []
        for pos_id, index in enumerate(members):
            key = holes[index].key
            result.row_ids[key] = row_id
            result.pos_ids[key] = pos_id
            row_keys.append(key)
        result.rows.append(row_keys)

    logger.info("Rows detected", entity=entity_name, holes=len(holes), rows=len(result.rows),
                method=method, bearing=round(result.orientation_bearing, 2))
    return result
