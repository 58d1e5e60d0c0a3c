"""Tests for geometric primitives."""

import math

import numpy as np
import pytest

from py_blast.core.geometry import (
    angle_to_bearing, deduplicate_points,
    distance_2d, distance_3d, fold_angle, min_angle_deg, nearest_neighbour_distances,
    plane_gradient, principal_axis_angle, project
)


class TestDistancesAndBearings:
    """Test distance and bearing helpers."""

    def test_distances(self):
        assert distance_2d((0, 0), (3, 4)) == pytest.approx(5.0)
        assert distance_3d((0, 0, 0), (2, 3, 6)) == pytest.approx(7.0)

    def test_angle_to_bearing(self):
        assert angle_to_bearing(0.0) == pytest.approx(90.0)
        assert angle_to_bearing(math.pi / 2) == pytest.approx(0.0)


class TestAngles:
    """Test undirected angle handling."""

    def test_fold_angle(self):
        assert fold_angle(-math.pi / 4) == pytest.approx(3 * math.pi / 4)
        assert fold_angle(math.pi) == pytest.approx(0.0)
        assert fold_angle(5 * math.pi / 4) == pytest.approx(math.pi / 4)

    def test_principal_axis(self):
        diagonal = np.array([[0, 0], [1, 1], [2, 2], [3, 3]], dtype=float)
        assert principal_axis_angle(diagonal) == pytest.approx(math.pi / 4)

        vertical = np.array([[2, 0], [2, 5], [2, 9]], dtype=float)
        assert principal_axis_angle(vertical) == pytest.approx(math.pi / 2)

    def test_principal_axis_degenerate(self):
        assert principal_axis_angle(np.array([[1.0, 1.0]])) is None
        assert principal_axis_angle(np.array([[1.0, 1.0], [1.0, 1.0]])) is None

    def test_projection(self):
        along, across = project(np.array([[3.0, 4.0]]), math.pi / 2)
        assert along[0] == pytest.approx(4.0)
        assert across[0] == pytest.approx(-3.0)


class TestAreasAndPlanes:
    """Test area and plane helpers."""

    def test_plane_gradient(self):
        gradient = plane_gradient((0, 0, 0), (1, 0, 1), (0, 1, 0))
        assert gradient == pytest.approx((1.0, 0.0))

    def test_plane_gradient_vertical_triangle(self):
        assert plane_gradient((0, 0, 0), (1, 0, 0), (2, 0, 5)) is None

    def test_min_angle(self):
        equilateral = ((0, 0), (1, 0), (0.5, math.sqrt(3) / 2))
        assert min_angle_deg(*equilateral) == pytest.approx(60.0)


class TestDeduplication:
    """Test XY point deduplication."""

    def test_first_point_wins(self):
        points = np.array([[0.0, 0.0], [0.0005, 0.0], [5.0, 0.0]])
        unique, representative = deduplicate_points(points, 0.001)

        np.testing.assert_array_equal(unique, [0, 2])
        np.testing.assert_array_equal(representative, [0, 0, 1])

    def test_empty(self):
        unique, representative = deduplicate_points(np.zeros((0, 2)))
        assert len(unique) == 0
        assert len(representative) == 0

    def test_nearest_neighbour_distances(self):
        points = np.array([[0.0, 0.0], [3.0, 0.0], [10.0, 0.0]])
        np.testing.assert_allclose(nearest_neighbour_distances(points), [3.0, 3.0, 7.0])
