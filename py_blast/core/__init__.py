"""
Core blast geometry and timing functionality.
"""

from .models import AnnotatedHole, Hole, HoleKey, PositionKind, TimingStatus
from .issues import BlastEngineError, ComputationCancelled, EngineIssue, IssueKind
from .row_detection import RowDetectionOptions, RowDetectionResult, detect_rows
from .burden_spacing import BurdenSpacingResult, calculate_burden_spacing
from .timing import ConnectorNetwork, TimingResult, calculate_firing_times, propagate_timing
from .triangulation import Triangle, VertexValue, triangulate
from .contours import ContourPolyline, first_movement_arrows, generate_contours
from .voronoi_cells import VoronoiCell, partition
from .metrics import VolumeBasis, aggregate_metrics
from .statistics import EntityStatistics, blast_statistics

__all__ = ['AnnotatedHole', 'Hole', 'HoleKey', 'PositionKind', 'TimingStatus',
           'BlastEngineError', 'ComputationCancelled', 'EngineIssue', 'IssueKind',
           'RowDetectionOptions', 'RowDetectionResult', 'detect_rows',
           'BurdenSpacingResult', 'calculate_burden_spacing',
           'ConnectorNetwork', 'TimingResult', 'calculate_firing_times', 'propagate_timing',
           'Triangle', 'VertexValue', 'triangulate',
           'ContourPolyline', 'first_movement_arrows', 'generate_contours',
           'VoronoiCell', 'partition', 'VolumeBasis', 'aggregate_metrics',
           'EntityStatistics', 'blast_statistics']
