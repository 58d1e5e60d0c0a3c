from typing import Optional

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

from ..core.metrics import VolumeBasis
from ..core.models import PositionKind


class EngineSettings(BaseSettings):
    """Engine parameters pulled from environment variables (PY_BLAST_*)."""

    model_config = SettingsConfigDict(env_prefix="PY_BLAST_", env_file=".env", extra="ignore")

    # Row detection
    perpendicular_weight: float = Field(
        default=4.0, gt=1.0, description="Across-row stretch of the row clustering distance matrix"
    )
    dedup_tolerance: float = Field(default=0.001, gt=0.0, description="XY merge radius in metres")

    # Triangulation and contours
    max_edge_length: float = Field(default=15.0, gt=0.0, description="Longest triangle edge kept (m)")
    min_triangle_angle: float = Field(
        default=0.0, ge=0.0, lt=60.0, description="Drop slivers below this angle (degrees)"
    )
    adaptive_edge_factor: Optional[float] = Field(
        default=None, gt=0.0, description="Drop triangles longer than this multiple of local spacing"
    )
    contour_interval: float = Field(default=25.0, gt=0.0, description="Firing time contour interval (ms)")
    first_movement_size: float = Field(default=1.0, gt=0.0, description="First movement arrow length (m)")
    elevation_position: PositionKind = Field(
        default=PositionKind.COLLAR, description="Hole point the elevation surface is built over"
    )
    elevation_contour_interval: float = Field(
        default=1.0, gt=0.0, description="Elevation contour interval (m)"
    )

    # Voronoi and metrics
    toe_radius_boundary: bool = Field(default=False, description="Clip cells to a circle around each hole")
    toe_radius_m: Optional[float] = Field(default=None, gt=0.0, description="Clip radius in metres")
    voronoi_padding: Optional[float] = Field(default=None, gt=0.0, description="Bounding box margin in metres")
    use_toe_location: bool = Field(default=False, description="Use toe XY as Voronoi sites")
    volume_basis: VolumeBasis = Field(
        default=VolumeBasis.BENCH_HEIGHT, description="Height used for cell volume"
    )

    # Statistics
    firing_window_ms: float = Field(default=8.0, gt=0.0, description="Window for simultaneous hole counts")

    # Logging
    log_level: str = Field(default="INFO", description="Logging level")
    log_format: str = Field(default="json", pattern="^(json|console)$", description="json or console")
