"""Tests for burden and spacing calculation."""

import pytest

from py_blast.core.burden_spacing import calculate_burden_spacing
from py_blast.core.issues import IssueKind, issues_of_kind
from py_blast.core.models import Hole
from py_blast.core.row_detection import RowDetectionResult, detect_rows


class TestBurdenSpacing:
    """Test burden and spacing on detected rows."""

    def test_grid_values(self, grid_holes):
        """Every hole of a regular grid gets the design spacing and burden."""
        rows = detect_rows(grid_holes)
        result = calculate_burden_spacing(grid_holes, rows)

        for hole in grid_holes:
            assert result.spacing[hole.key] == pytest.approx(5.0)
            assert result.burden[hole.key] == pytest.approx(4.0)
        assert result.issues == []

    def test_end_holes_use_single_neighbour(self):
        holes = [Hole("E", str(i), (x, 0.0, 0.0)) for i, x in enumerate((0.0, 3.0, 7.0))]
        rows = RowDetectionResult(entity_name="E", orientation=0.0, rows=[[h.key for h in holes]])
        result = calculate_burden_spacing(holes, rows)

        assert result.spacing[holes[0].key] == pytest.approx(3.0)
        assert result.spacing[holes[1].key] == pytest.approx(3.5)
        assert result.spacing[holes[2].key] == pytest.approx(4.0)

    def test_single_row_has_no_burden(self, line_holes):
        rows = detect_rows(line_holes)
        result = calculate_burden_spacing(line_holes, rows)

        assert all(result.burden[h.key] is None for h in line_holes)
        assert result.spacing[line_holes[1].key] == pytest.approx(3.0)
        assert issues_of_kind(result.issues, IssueKind.INSUFFICIENT_DATA)

    def test_single_hole_row_has_no_spacing(self):
        a = Hole("E", "a", (0.0, 0.0, 0.0))
        b = Hole("E", "b", (0.0, 4.0, 0.0))
        c = Hole("E", "c", (5.0, 4.0, 0.0))
        rows = RowDetectionResult(entity_name="E", orientation=0.0, rows=[[a.key], [b.key, c.key]])
        result = calculate_burden_spacing([a, b, c], rows)

        assert result.spacing[a.key] is None
        assert result.spacing[b.key] == pytest.approx(5.0)
        assert result.burden[a.key] == pytest.approx(4.0)
        assert result.burden[c.key] == pytest.approx(4.0)
        assert issues_of_kind(result.issues, IssueKind.INSUFFICIENT_DATA)

    def test_unknown_hole_rejected(self):
        a = Hole("E", "a", (0.0, 0.0, 0.0))
        rows = RowDetectionResult(entity_name="E", orientation=0.0, rows=[[a.key, Hole("E", "x", (1.0, 0.0, 0.0)).key]])
        with pytest.raises(ValueError):
            calculate_burden_spacing([a], rows)

    def test_deterministic(self, grid_holes):
        first = calculate_burden_spacing(grid_holes, detect_rows(grid_holes))
        second = calculate_burden_spacing(grid_holes, detect_rows(grid_holes))

        assert first.burden == second.burden
        assert first.spacing == second.spacing
