"""
Per-entity blast statistics.

Summarises annotated holes into the figures a blast report shows: hole
count, design burden and spacing, drill metres, explosive mass, broken
volume, the firing window and how many holes detonate together.
"""

import math
from collections import Counter
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Sequence

import structlog

from .models import AnnotatedHole, HoleKey
from .voronoi_cells import VoronoiCell

logger = structlog.get_logger()

MODE_TOLERANCE = 0.1
FIRING_WINDOW_MS = 8.0


@dataclass
class WindowCount:
    window_start_ms: float
    window_end_ms: float
    hole_count: int


@dataclass
class EntityStatistics:
    """Summary figures for one entity."""
    entity_name: str
    hole_count: int
    burden: Optional[float]
    spacing: Optional[float]
    drill_metres: float
    total_mass_kg: float
    total_volume_m3: Optional[float]
    min_firing_time_ms: Optional[float]
    max_firing_time_ms: Optional[float]
    unresolved_count: int
    connector_groups: Dict[float, int] = field(default_factory=dict)
    max_holes_per_window: int = 0
    windows: List[WindowCount] = field(default_factory=list)


def mode_with_tolerance(values: Sequence[float], tolerance: float = MODE_TOLERANCE) -> Optional[float]:
    """
    Most frequent value after rounding to multiples of tolerance.

    Ties go to the smallest bin. Returns None for no values.
    """
    if not values:
        return None
    bins = Counter(round(v / tolerance) for v in values)
    best = min(bins, key=lambda b: (-bins[b], b))
    return round(best * tolerance, 10)


def firing_windows(times: Sequence[float], window_ms: float = FIRING_WINDOW_MS) -> List[WindowCount]:
    """Hole counts in consecutive fixed windows of window_ms."""
    if window_ms <= 0:
        raise ValueError(f"window must be positive, got {window_ms}")
    buckets = Counter(math.floor(t / window_ms) for t in times)
    return [
        WindowCount(
            window_start_ms=bucket * window_ms,
            window_end_ms=(bucket + 1) * window_ms,
            hole_count=count,
        )
        for bucket, count in sorted(buckets.items())
    ]


def connector_groups(holes: Sequence[AnnotatedHole]) -> Dict[float, int]:
    """Number of connectors per delay; holes without a parent are not connectors."""
    groups: Counter = Counter()
    for annotated in holes:
        hole = annotated.hole
        parent = HoleKey.parse(hole.from_hole_id) if hole.from_hole_id else None
        if parent is None or parent == hole.key:
            continue
        groups[float(hole.timing_delay_ms)] += 1
    return dict(sorted(groups.items()))


def entity_statistics(
    entity_name: str,
    holes: Sequence[AnnotatedHole],
    cells: Optional[Sequence[VoronoiCell]] = None,
    window_ms: float = FIRING_WINDOW_MS,
) -> EntityStatistics:
    burdens = [h.burden for h in holes if h.burden is not None and h.burden > 0]
    spacings = [h.spacing for h in holes if h.spacing is not None and h.spacing > 0]
    masses = [
        h.hole.charge_mass_kg if h.hole.charge_mass_kg is not None else h.hole.measured_mass_kg
        for h in holes
    ]
    times = [h.firing_time_ms for h in holes if h.firing_time_ms is not None]

    total_volume = None
    if cells:
        volumes = [c.volume_m3 for c in cells if c.volume_m3 is not None]
        total_volume = math.fsum(volumes) if volumes else None

    windows = firing_windows(times, window_ms)
    return EntityStatistics(
        entity_name=entity_name,
        hole_count=len(holes),
        burden=mode_with_tolerance(burdens),
        spacing=mode_with_tolerance(spacings),
        drill_metres=math.fsum(h.hole.hole_length for h in holes),
        total_mass_kg=math.fsum(m for m in masses if m is not None),
        total_volume_m3=total_volume,
        min_firing_time_ms=min(times) if times else None,
        max_firing_time_ms=max(times) if times else None,
        unresolved_count=sum(1 for h in holes if h.is_unresolved),
        connector_groups=connector_groups(holes),
        max_holes_per_window=max((w.hole_count for w in windows), default=0),
        windows=windows,
    )


def blast_statistics(
    holes: Sequence[AnnotatedHole],
    cells: Optional[Dict[str, Sequence[VoronoiCell]]] = None,
    window_ms: float = FIRING_WINDOW_MS,
) -> Dict[str, EntityStatistics]:
    """
    Statistics for every entity present in holes.

    Args:
        holes: annotated holes from one engine run
        cells: optional Voronoi cells with metrics, keyed by entity name
        window_ms: firing window width used for the simultaneous-hole count

    Returns:
        Dictionary of entity name to EntityStatistics
    """
    groups: Dict[str, List[AnnotatedHole]] = {}
    for annotated in holes:
        groups.setdefault(annotated.hole.entity_name, []).append(annotated)

    stats = {
        name: entity_statistics(name, members, (cells or {}).get(name), window_ms)
        for name, members in groups.items()
    }
    logger.debug("Statistics calculated", entities=len(stats))
    return stats
