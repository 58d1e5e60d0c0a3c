"""
Burden and spacing from detected rows.

Spacing is measured along the row orientation between neighbouring holes of
the same row; burden is measured along the orientation normal between a hole
and the neighbouring rows. Holes or rows with no neighbour to measure against
get None (unavailable) rather than zero.
"""

from dataclasses import dataclass, field
from typing import Dict, List, Optional, Sequence

import numpy as np
import structlog

from .geometry import project
from .issues import EngineIssue, IssueKind, issue
from .models import Hole, HoleKey
from .row_detection import RowDetectionResult

logger = structlog.get_logger()


@dataclass
class BurdenSpacingResult:
    """Per-hole burden and spacing for one entity."""
    entity_name: str
    burden: Dict[HoleKey, Optional[float]] = field(default_factory=dict)
    spacing: Dict[HoleKey, Optional[float]] = field(default_factory=dict)
    issues: List[EngineIssue] = field(default_factory=list)


def _two_sided(before: Optional[float], after: Optional[float]) -> Optional[float]:
    """Average of the available sides; the single side at a boundary."""
    if before is not None and after is not None:
        return (before + after) / 2.0
    if before is not None:
        return before
    return after


def calculate_burden_spacing(holes: Sequence[Hole], rows: RowDetectionResult) -> BurdenSpacingResult:
    """
    Compute burden and spacing for every hole of an entity.

    Args:
        holes: the holes rows were detected for
        rows: RowDetectionResult for the same holes

    Returns:
        BurdenSpacingResult keyed by hole identity
    """
    result = BurdenSpacingResult(entity_name=rows.entity_name)
    by_key = {h.key: h for h in holes}
    missing = [key for row in rows.rows for key in row if key not in by_key]
    if missing:
        raise ValueError(f"row detection refers to unknown holes: {missing[:5]}")
    if not rows.rows:
        return result

    keys = [key for row in rows.rows for key in row]
    points = np.array([[by_key[k].collar[0], by_key[k].collar[1]] for k in keys], dtype=float)
    along_arr, across_arr = project(points, rows.orientation)
    along = dict(zip(keys, along_arr.tolist()))
    across = dict(zip(keys, across_arr.tolist()))

    # Spacing: along-row gaps to the previous and next hole by posID
    single_hole_rows = []
    for row in rows.rows:
        if len(row) < 2:
            result.spacing[row[0]] = None
            single_hole_rows.append(row[0])
            continue
        for i, key in enumerate(row):
            before = abs(along[key] - along[row[i - 1]]) if i > 0 else None
            after = abs(along[row[i + 1]] - along[key]) if i < len(row) - 1 else None
            result.spacing[key] = _two_sided(before, after)
    if single_hole_rows:
        result.issues.append(issue(
            IssueKind.INSUFFICIENT_DATA,
            f"{len(single_hole_rows)} single-hole rows have no spacing",
            single_hole_rows,
        ))

    # Burden: perpendicular offset to the mean line of each neighbouring row
    row_offsets = [float(np.mean([across[k] for k in row])) for row in rows.rows]
    if len(rows.rows) < 2:
        for key in keys:
            result.burden[key] = None
        result.issues.append(issue(
            IssueKind.INSUFFICIENT_DATA,
            f"entity {rows.entity_name} has a single row; burden unavailable",
        ))
    else:
        last = len(rows.rows) - 1
        for row_index, row in enumerate(rows.rows):
            for key in row:
                before = abs(across[key] - row_offsets[row_index - 1]) if row_index > 0 else None
                after = abs(row_offsets[row_index + 1] - across[key]) if row_index < last else None
                result.burden[key] = _two_sided(before, after)

    logger.debug("Burden and spacing calculated", entity=rows.entity_name,
                 holes=len(keys), rows=len(rows.rows))
    return result
