"""Per-hole volume, explosive mass and powder factor from Voronoi cells."""

from dataclasses import dataclass, field, replace
from enum import Enum
from typing import List, Mapping, Optional, Sequence

import structlog

from .issues import EngineIssue, IssueKind, issue
from .models import Hole, HoleKey
from .voronoi_cells import VoronoiCell

logger = structlog.get_logger()


class VolumeBasis(str, Enum):
    """Height multiplied by cell area to get the rock volume of a hole."""
    BENCH_HEIGHT = "bench_height"
    HOLE_LENGTH = "hole_length"


@dataclass
class MetricsResult:
    cells: List[VoronoiCell] = field(default_factory=list)
    issues: List[EngineIssue] = field(default_factory=list)

    @property
    def total_volume_m3(self) -> Optional[float]:
        volumes = [c.volume_m3 for c in self.cells if c.volume_m3 is not None]
        return sum(volumes) if volumes else None

    @property
    def total_mass_kg(self) -> Optional[float]:
        masses = [c.mass_kg for c in self.cells if c.mass_kg is not None]
        return sum(masses) if masses else None


def hole_height(hole: Hole, basis: VolumeBasis) -> float:
    if VolumeBasis(basis) is VolumeBasis.HOLE_LENGTH:
        return hole.hole_length
    return hole.bench_height


def hole_mass(hole: Hole, charges: Optional[Mapping[HoleKey, float]] = None) -> Optional[float]:
    """Explicit charge mass, else the hole's design mass, else its measured mass."""
    if charges is not None and charges.get(hole.key) is not None:
        return float(charges[hole.key])
    if hole.charge_mass_kg is not None:
        return float(hole.charge_mass_kg)
    if hole.measured_mass_kg is not None:
        return float(hole.measured_mass_kg)
    return None


def aggregate_metrics(
    cells: Sequence[VoronoiCell],
    holes: Sequence[Hole],
    volume_basis: VolumeBasis = VolumeBasis.BENCH_HEIGHT,
    charges: Optional[Mapping[HoleKey, float]] = None,
) -> MetricsResult:
    """
    Fill volume, mass and powder factor on each cell.

    Args:
        cells: cells from partition()
        holes: the holes the cells were built for
        volume_basis: height used for volume = area x height
        charges: optional explicit charge mass per hole (kg)

    Returns:
        MetricsResult with new cells; undefined metrics are None and reported
    """
    by_key = {h.key: h for h in holes}
    result = MetricsResult()
    no_volume = []
    no_mass = []
    no_powder_factor = []

    for cell in cells:
        hole = by_key.get(cell.key)
        if hole is None:
            raise ValueError(f"cell refers to unknown hole {cell.key}")

        height = hole_height(hole, volume_basis)
        volume = cell.area_m2 * height if cell.area_m2 > 0 and height > 0 else None
        mass = hole_mass(hole, charges)
        powder_factor = None
        if volume is None:
            no_volume.append(cell.key)
        if mass is None:
            no_mass.append(cell.key)
        if volume is not None and mass is not None and mass > 0:
            powder_factor = mass / volume
        else:
            no_powder_factor.append(cell.key)

        result.cells.append(replace(cell, volume_m3=volume, mass_kg=mass, powder_factor=powder_factor))

    if no_volume:
        result.issues.append(issue(
            IssueKind.UNDEFINED_METRIC,
            f"{len(no_volume)} holes have zero cell area or zero {VolumeBasis(volume_basis).value}",
            no_volume,
        ))
    if no_mass:
        result.issues.append(issue(
            IssueKind.UNDEFINED_METRIC, f"{len(no_mass)} holes carry no charge mass", no_mass
        ))
    if no_powder_factor:
        result.issues.append(issue(
            IssueKind.UNDEFINED_METRIC,
            f"powder factor undefined for {len(no_powder_factor)} holes",
            no_powder_factor,
        ))

    logger.debug("Metrics aggregated", cells=len(result.cells), undefined=len(no_powder_factor))
    return result
