"""
Blast engine pipeline.

Runs every stage over an immutable hole snapshot and joins the results by
hole identity. The engine keeps no state between runs; every derived field
is recomputed from scratch on each call.
"""

from dataclasses import dataclass, field
from typing import Dict, List, Mapping, Optional, Sequence

import structlog

from ..config.config import EngineSettings
from .burden_spacing import calculate_burden_spacing
from .contours import ContourPolyline, FirstMovementArrow, first_movement_arrows, generate_contours
from .issues import EngineIssue
from .metrics import aggregate_metrics
from .models import AnnotatedHole, Hole, HoleKey, group_by_entity, validate_holes
from .row_detection import RowDetectionOptions, RowDetectionResult, detect_rows
from .statistics import EntityStatistics, blast_statistics
from .timing import TimingResult, calculate_firing_times
from .triangulation import Triangle, VertexValue, triangulate
from .voronoi_cells import VoronoiCell, partition

logger = structlog.get_logger()


@dataclass
class BlastResult:
    """Everything derived from one engine run."""
    holes: List[AnnotatedHole] = field(default_factory=list)  # input order
    rows: Dict[str, RowDetectionResult] = field(default_factory=dict)
    timing: Optional[TimingResult] = None
    timing_triangles: List[Triangle] = field(default_factory=list)
    timing_contours: List[ContourPolyline] = field(default_factory=list)
    first_movement: List[FirstMovementArrow] = field(default_factory=list)
    elevation_triangles: List[Triangle] = field(default_factory=list)
    elevation_contours: List[ContourPolyline] = field(default_factory=list)
    cells: Dict[str, List[VoronoiCell]] = field(default_factory=dict)
    statistics: Dict[str, EntityStatistics] = field(default_factory=dict)
    issues: List[EngineIssue] = field(default_factory=list)

    def hole(self, key: HoleKey) -> AnnotatedHole:
        for annotated in self.holes:
            if annotated.key == key:
                return annotated
        raise KeyError(key)

    def to_records(self) -> List[dict]:
        return [h.to_record() for h in self.holes]


class BlastEngine:
    """
    Row detection, burden/spacing, timing, surfaces and metrics in one call.

    Example:
        engine = BlastEngine(EngineSettings())
        result = engine.run(holes)
        for record in result.to_records():
            ...
    """

    def __init__(self, settings: Optional[EngineSettings] = None):
        self.settings = settings or EngineSettings()
        self.row_options = RowDetectionOptions(
            perpendicular_weight=self.settings.perpendicular_weight,
            dedup_tolerance=self.settings.dedup_tolerance,
        )

    def run(
        self,
        holes: Sequence[Hole],
        charges: Optional[Mapping[HoleKey, float]] = None,
        token=None,
    ) -> BlastResult:
        """
        Recompute every derived field for holes.

        Args:
            holes: the complete hole snapshot, any number of entities
            charges: optional explicit charge mass per hole (kg)
            token: optional CancellationToken; checked between stages

        Returns:
            BlastResult joined by hole identity

        Raises:
            TypeError, ValueError: on invalid or duplicate hole input
            ComputationCancelled: when token is cancelled mid-run
        """
        validate_holes(holes)
        holes = list(holes)
        settings = self.settings
        result = BlastResult()
        groups = group_by_entity(holes)
        logger.info("Blast engine run started", holes=len(holes), entities=len(groups))

        burden: Dict[HoleKey, Optional[float]] = {}
        spacing: Dict[HoleKey, Optional[float]] = {}
        for entity_name, entity_holes in groups.items():
            self._check(token)
            rows = detect_rows(entity_holes, self.row_options, token=token)
            result.rows[entity_name] = rows
            result.issues.extend(rows.issues)

            measured = calculate_burden_spacing(entity_holes, rows)
            burden.update(measured.burden)
            spacing.update(measured.spacing)
            result.issues.extend(measured.issues)

        self._check(token)
        timing = calculate_firing_times(holes, token=token)
        result.timing = timing
        result.issues.extend(timing.issues)

        for hole in holes:
            rows = result.rows[hole.entity_name]
            result.holes.append(AnnotatedHole(
                hole=hole,
                row_id=rows.row_ids[hole.key],
                pos_id=rows.pos_ids[hole.key],
                burden=burden.get(hole.key),
                spacing=spacing.get(hole.key),
                firing_time_ms=timing.firing_time(hole.key),
                timing_status=timing.status(hole.key),
            ))

        self._check(token)
        surface = triangulate(
            holes,
            settings.max_edge_length,
            value=VertexValue.FIRING_TIME,
            firing_times=timing.firing_times,
            min_angle=settings.min_triangle_angle,
            adaptive_factor=settings.adaptive_edge_factor,
            dedup_tolerance=settings.dedup_tolerance,
            token=token,
        )
        result.timing_triangles = surface.triangles
        result.issues.extend(surface.issues)
        result.timing_contours = generate_contours(surface.triangles, settings.contour_interval, token=token)
        result.first_movement = first_movement_arrows(surface.triangles, settings.first_movement_size)

        self._check(token)
        ground = triangulate(
            holes,
            settings.max_edge_length,
            position=settings.elevation_position,
            min_angle=settings.min_triangle_angle,
            adaptive_factor=settings.adaptive_edge_factor,
            dedup_tolerance=settings.dedup_tolerance,
            token=token,
        )
        result.elevation_triangles = ground.triangles
        result.issues.extend(ground.issues)
        result.elevation_contours = generate_contours(
            ground.triangles, settings.elevation_contour_interval, token=token
        )

        for entity_name, entity_holes in groups.items():
            self._check(token)
            voronoi = partition(
                entity_holes,
                toe_radius_boundary=settings.toe_radius_boundary,
                toe_radius_m=settings.toe_radius_m,
                padding=settings.voronoi_padding,
                use_toe_location=settings.use_toe_location,
                dedup_tolerance=settings.dedup_tolerance,
                token=token,
            )
            result.issues.extend(voronoi.issues)
            metrics = aggregate_metrics(voronoi.cells, entity_holes, settings.volume_basis, charges)
            result.cells[entity_name] = metrics.cells
            result.issues.extend(metrics.issues)

        result.statistics = blast_statistics(result.holes, result.cells, settings.firing_window_ms)
        logger.info("Blast engine run complete", holes=len(result.holes), issues=len(result.issues),
                    unresolved=len(timing.unresolved))
        return result

    @staticmethod
    def _check(token) -> None:
        if token is not None:
            token.raise_if_cancelled()
