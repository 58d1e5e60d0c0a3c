"""
Voronoi partition of a pattern into per-hole areas of influence.

Sites are mirrored across the four edges of a padded bounding box before
running Voronoi, so the region of every real site is finite and the box edges
become cell edges. The cells therefore tile the box exactly.
"""

import math
from dataclasses import dataclass, field
from typing import List, Optional, Sequence, Tuple

import numpy as np
import structlog
from scipy.spatial import QhullError, Voronoi
from shapely.geometry import Point, Polygon, box

from .geometry import deduplicate_points, nearest_neighbour_distances
from .issues import EngineIssue, IssueKind, issue
from .models import Hole, HoleKey, PositionKind, validate_holes

logger = structlog.get_logger()

MIN_PADDING = 1.0

BoundingBox = Tuple[float, float, float, float]


@dataclass
class VoronoiCell:
    """
    The area of influence of one hole.

    Holes sharing a position share the same polygon; ``area_m2`` is this
    hole's equal share of it. Metric fields stay None until
    aggregate_metrics() fills them.
    """
    key: HoleKey
    site: Tuple[float, float]
    polygon: Polygon
    area_m2: float
    volume_m3: Optional[float] = None
    mass_kg: Optional[float] = None
    powder_factor: Optional[float] = None

    @property
    def exterior(self) -> List[Tuple[float, float]]:
        """Ordered polygon outline without the closing point."""
        if self.polygon.is_empty:
            return []
        return list(self.polygon.exterior.coords)[:-1]


@dataclass
class VoronoiResult:
    cells: List[VoronoiCell] = field(default_factory=list)
    bounding_box: Optional[BoundingBox] = None
    issues: List[EngineIssue] = field(default_factory=list)

    @property
    def bounding_area(self) -> float:
        if self.bounding_box is None:
            return 0.0
        minx, miny, maxx, maxy = self.bounding_box
        return (maxx - minx) * (maxy - miny)


def default_padding(sites: np.ndarray) -> float:
    """Half the median nearest-neighbour distance, at least MIN_PADDING."""
    if len(sites) < 2:
        return MIN_PADDING
    return max(0.5 * float(np.median(nearest_neighbour_distances(sites))), MIN_PADDING)


def padded_bounds(sites: np.ndarray, padding: float) -> BoundingBox:
    minx, miny = sites.min(axis=0)
    maxx, maxy = sites.max(axis=0)
    return (float(minx - padding), float(miny - padding), float(maxx + padding), float(maxy + padding))


def mirror_sites(sites: np.ndarray, bounds: BoundingBox) -> np.ndarray:
    """Sites followed by their reflections across the four box edges."""
    minx, miny, maxx, maxy = bounds
    left = sites.copy()
    left[:, 0] = 2 * minx - sites[:, 0]
    right = sites.copy()
    right[:, 0] = 2 * maxx - sites[:, 0]
    bottom = sites.copy()
    bottom[:, 1] = 2 * miny - sites[:, 1]
    top = sites.copy()
    top[:, 1] = 2 * maxy - sites[:, 1]
    return np.vstack([sites, left, right, bottom, top])


def _region_polygon(vor: Voronoi, site_index: int) -> Optional[Polygon]:
    region = vor.regions[vor.point_region[site_index]]
    if not region or -1 in region:
        return None
    corners = vor.vertices[region]
    centre = corners.mean(axis=0)
    # Regions are convex; order corners by angle around their centre
    order = np.argsort(np.arctan2(corners[:, 1] - centre[1], corners[:, 0] - centre[0]))
    return Polygon(corners[order])


def partition(
    holes: Sequence[Hole],
    toe_radius_boundary: bool = False,
    toe_radius_m: Optional[float] = None,
    padding: Optional[float] = None,
    use_toe_location: bool = False,
    dedup_tolerance: float = 0.001,
    token=None,
) -> VoronoiResult:
    """
    Voronoi cells for the holes of one entity.

    Args:
        holes: holes sharing one entity name
        toe_radius_boundary: clip each cell to a circle around its site
        toe_radius_m: clip radius; defaults to the median nearest-neighbour
            distance
        padding: bounding box margin; defaults to default_padding()
        use_toe_location: use toe XY instead of collar XY as sites
        dedup_tolerance: XY merge radius in metres
        token: optional cancellation token

    Returns:
        VoronoiResult with one cell per hole and the closing bounding box
    """
    validate_holes(holes)
    result = VoronoiResult()
    if not holes:
        result.issues.append(issue(IssueKind.INSUFFICIENT_DATA, "no holes to partition"))
        return result

    kind = PositionKind.TOE if use_toe_location else PositionKind.COLLAR
    points = np.array([h.position(kind)[:2] for h in holes], dtype=float)
    unique_indices, representative = deduplicate_points(points, dedup_tolerance)
    sites = points[unique_indices]

    if padding is None:
        padding = default_padding(sites)
    elif padding <= 0:
        raise ValueError(f"padding must be positive, got {padding}")
    bounds = padded_bounds(sites, padding)
    result.bounding_box = bounds
    frame = box(*bounds)

    if len(sites) == 1:
        polygons = [frame]
    else:
        if token is not None:
            token.raise_if_cancelled()
        try:
            vor = Voronoi(mirror_sites(sites, bounds))
        except QhullError as e:
            logger.warning("Voronoi construction failed", error=str(e))
            result.issues.append(issue(
                IssueKind.DEGENERATE_GEOMETRY, f"Voronoi construction failed: {e}", [h.key for h in holes]
            ))
            return result
        polygons = []
        for i in range(len(sites)):
            polygon = _region_polygon(vor, i)
            polygons.append(frame if polygon is None else polygon.intersection(frame))

    if toe_radius_boundary:
        radius = toe_radius_m
        if radius is None:
            radius = float(np.median(nearest_neighbour_distances(sites))) if len(sites) > 1 else padding
        if radius <= 0:
            raise ValueError(f"toe radius must be positive, got {radius}")
        polygons = [
            polygon.intersection(Point(site[0], site[1]).buffer(radius))
            for polygon, site in zip(polygons, sites)
        ]

    shares = np.bincount(representative, minlength=len(sites))
    for i, hole in enumerate(holes):
        slot = int(representative[i])
        polygon = polygons[slot]
        result.cells.append(VoronoiCell(
            key=hole.key,
            site=(float(sites[slot][0]), float(sites[slot][1])),
            polygon=polygon,
            area_m2=float(polygon.area) / int(shares[slot]),
        ))

    if len(unique_indices) < len(holes):
        kept = set(unique_indices.tolist())
        result.issues.append(issue(
            IssueKind.DEGENERATE_GEOMETRY,
            "holes sharing a position split one Voronoi cell",
            [holes[i].key for i in range(len(holes)) if i not in kept],
        ))

    logger.debug("Voronoi partition complete", cells=len(result.cells), padding=round(padding, 3),
                 clipped=toe_radius_boundary)
    return result


def cells_area(cells: Sequence[VoronoiCell]) -> float:
    return math.fsum(cell.area_m2 for cell in cells)
