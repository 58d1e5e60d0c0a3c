"""Tests for per-hole metrics."""

import pytest
from shapely.geometry import box

from py_blast.core.issues import IssueKind, issues_of_kind
from py_blast.core.metrics import VolumeBasis, aggregate_metrics, hole_mass
from py_blast.core.models import Hole
from py_blast.core.voronoi_cells import VoronoiCell


def cell_for(hole, area_polygon=None):
    polygon = area_polygon if area_polygon is not None else box(0, 0, 5, 4)
    return VoronoiCell(key=hole.key, site=hole.collar[:2], polygon=polygon, area_m2=polygon.area)


class TestMetricAggregation:
    """Test volume, mass and powder factor."""

    def test_bench_height_basis(self):
        hole = Hole("E", "1", (0.0, 0.0, 100.0), bench_height_m=10.0, charge_mass_kg=100.0)
        result = aggregate_metrics([cell_for(hole)], [hole])
        cell = result.cells[0]

        assert cell.volume_m3 == pytest.approx(200.0)
        assert cell.mass_kg == pytest.approx(100.0)
        assert cell.powder_factor == pytest.approx(0.5)
        assert result.issues == []

    def test_bench_height_from_grade(self):
        hole = Hole("E", "1", (0.0, 0.0, 100.0), grade=(0.0, 0.0, 88.0), charge_mass_kg=120.0)
        result = aggregate_metrics([cell_for(hole)], [hole])

        assert result.cells[0].volume_m3 == pytest.approx(240.0)

    def test_hole_length_basis(self):
        hole = Hole("E", "1", (0.0, 0.0, 100.0), length_m=12.0, bench_height_m=10.0, charge_mass_kg=120.0)
        result = aggregate_metrics([cell_for(hole)], [hole], volume_basis=VolumeBasis.HOLE_LENGTH)

        assert result.cells[0].volume_m3 == pytest.approx(240.0)
        assert result.cells[0].powder_factor == pytest.approx(0.5)

    def test_explicit_charges_override(self):
        hole = Hole("E", "1", (0.0, 0.0, 100.0), bench_height_m=10.0, charge_mass_kg=100.0)
        result = aggregate_metrics([cell_for(hole)], [hole], charges={hole.key: 50.0})

        assert result.cells[0].mass_kg == pytest.approx(50.0)

    def test_measured_mass_fallback(self):
        hole = Hole("E", "1", (0.0, 0.0, 0.0), measured_mass_kg=80.0)
        assert hole_mass(hole) == 80.0

    def test_missing_mass_is_undefined(self):
        hole = Hole("E", "1", (0.0, 0.0, 100.0), bench_height_m=10.0)
        result = aggregate_metrics([cell_for(hole)], [hole])

        assert result.cells[0].mass_kg is None
        assert result.cells[0].powder_factor is None
        assert issues_of_kind(result.issues, IssueKind.UNDEFINED_METRIC)

    def test_zero_volume_is_undefined(self):
        hole = Hole("E", "1", (0.0, 0.0, 0.0), charge_mass_kg=100.0)
        result = aggregate_metrics([cell_for(hole)], [hole])

        assert result.cells[0].volume_m3 is None
        assert result.cells[0].powder_factor is None
        assert issues_of_kind(result.issues, IssueKind.UNDEFINED_METRIC)

    def test_zero_mass_is_undefined(self):
        hole = Hole("E", "1", (0.0, 0.0, 100.0), bench_height_m=10.0, charge_mass_kg=0.0)
        result = aggregate_metrics([cell_for(hole)], [hole])

        assert result.cells[0].powder_factor is None

    def test_input_cells_untouched(self):
        hole = Hole("E", "1", (0.0, 0.0, 100.0), bench_height_m=10.0, charge_mass_kg=100.0)
        cell = cell_for(hole)
        aggregate_metrics([cell], [hole])

        assert cell.powder_factor is None

    def test_totals(self):
        holes = [Hole("E", str(i), (float(i), 0.0, 100.0), bench_height_m=10.0, charge_mass_kg=100.0)
                 for i in range(3)]
        result = aggregate_metrics([cell_for(h) for h in holes], holes)

        assert result.total_volume_m3 == pytest.approx(600.0)
        assert result.total_mass_kg == pytest.approx(300.0)

    def test_unknown_hole_rejected(self):
        hole = Hole("E", "1", (0.0, 0.0, 0.0))
        with pytest.raises(ValueError):
            aggregate_metrics([cell_for(hole)], [])
