"""Shared fixtures for engine tests."""

import math

import pytest

from py_blast.core.models import Hole


def make_grid(rows=3, columns=4, spacing=5.0, burden=4.0, angle_deg=0.0, entity="PAT", z=100.0):
    """Row-major numbered grid; rows run along angle_deg, one burden apart."""
    angle = math.radians(angle_deg)
    ux, uy = math.cos(angle), math.sin(angle)
    nx, ny = -math.sin(angle), math.cos(angle)
    holes = []
    number = 1
    for r in range(rows):
        for c in range(columns):
            x = c * spacing * ux + r * burden * nx
            y = c * spacing * uy + r * burden * ny
            holes.append(Hole(
                entity_name=entity,
                hole_id=str(number),
                collar=(x, y, z),
                toe=(x, y, z - 11.0),
                grade=(x, y, z - 10.0),
                length_m=11.0,
                charge_mass_kg=150.0,
            ))
            number += 1
    return holes


@pytest.fixture
def grid_holes():
    """3 rows x 4 holes, 5 m spacing along X, 4 m burden along Y."""
    return make_grid()


@pytest.fixture
def line_holes():
    """Single row of three holes chained with 17 ms connectors."""
    return [
        Hole(entity_name="E", hole_id="1", collar=(0.0, 0.0, 0.0)),
        Hole(entity_name="E", hole_id="2", collar=(3.0, 0.0, 0.0),
             from_hole_id="E:::1", timing_delay_ms=17.0),
        Hole(entity_name="E", hole_id="3", collar=(6.0, 0.0, 0.0),
             from_hole_id="E:::2", timing_delay_ms=17.0),
    ]
