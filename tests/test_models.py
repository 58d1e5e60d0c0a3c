"""Tests for hole records and identity keys."""

import pytest

from py_blast.core.models import (
    AnnotatedHole, Hole, HoleKey, PositionKind, TimingStatus, group_by_entity,
    validate_holes
)


class TestHoleKey:
    """Test identity key parsing."""

    def test_render_and_parse(self):
        key = HoleKey("Pattern 1", "A12")

        assert str(key) == "Pattern 1:::A12"
        assert HoleKey.parse(str(key)) == key

    @pytest.mark.parametrize("reference", ["", "A12", ":::A12", "P:::", "a:::b:::c"])
    def test_malformed_references(self, reference):
        assert HoleKey.parse(reference) is None


class TestHole:
    """Test hole records."""

    def test_from_mapping(self):
        hole = Hole.from_mapping({
            "entityName": "P",
            "holeID": 7,
            "startXLocation": "1.5", "startYLocation": 2, "startZLocation": 100,
            "endXLocation": 1.5, "endYLocation": 2, "endZLocation": 88,
            "benchHeight": 10,
            "fromHoleID": "P:::6",
            "timingDelayMilliseconds": 25,
            "measuredMass": "",
        })

        assert hole.key == HoleKey("P", "7")
        assert hole.collar == (1.5, 2.0, 100.0)
        assert hole.bench_height == 10.0
        assert hole.hole_length == pytest.approx(12.0)
        assert hole.from_hole_id == "P:::6"
        assert hole.measured_mass_kg is None
        assert hole.grade is None

    def test_grade_falls_back_to_toe(self):
        hole = Hole("E", "1", (0.0, 0.0, 10.0), toe=(1.0, 0.0, -2.0))

        assert hole.position(PositionKind.GRADE) == (1.0, 0.0, -2.0)
        assert hole.bench_height == 12.0


class TestValidation:
    """Test input collection checks."""

    def test_duplicate_keys(self):
        holes = [Hole("E", "1", (0.0, 0.0, 0.0)), Hole("E", "1", (5.0, 0.0, 0.0))]
        with pytest.raises(ValueError):
            validate_holes(holes)

    def test_same_id_in_different_entities(self):
        validate_holes([Hole("A", "1", (0.0, 0.0, 0.0)), Hole("B", "1", (0.0, 0.0, 0.0))])

    def test_wrong_types(self):
        with pytest.raises(TypeError):
            validate_holes(None)
        with pytest.raises(TypeError):
            validate_holes([{"holeID": "1"}])

    def test_group_by_entity_keeps_order(self):
        holes = [Hole("B", "1", (0.0, 0.0, 0.0)), Hole("A", "1", (0.0, 0.0, 0.0)), Hole("B", "2", (0.0, 0.0, 0.0))]
        groups = group_by_entity(holes)

        assert list(groups) == ["B", "A"]
        assert [h.hole_id for h in groups["B"]] == ["1", "2"]


class TestAnnotatedHole:
    """Test output records."""

    def test_unresolved_record(self):
        hole = Hole("E", "1", (0.0, 0.0, 0.0))
        annotated = AnnotatedHole(hole=hole, row_id=0, pos_id=0, burden=None, spacing=None,
                                  firing_time_ms=None, timing_status=TimingStatus.UNRESOLVED)
        record = annotated.to_record()

        assert annotated.is_unresolved
        assert record["holeTime"] is None
        assert record["timingStatus"] == "unresolved"
        assert record["burden"] is None

    def test_root_record_fires_at_zero(self):
        hole = Hole("E", "1", (0.0, 0.0, 0.0))
        annotated = AnnotatedHole(hole=hole, row_id=0, pos_id=0, burden=4.0, spacing=5.0,
                                  firing_time_ms=0.0, timing_status=TimingStatus.ROOT)

        assert annotated.to_record()["holeTime"] == 0.0
        assert not annotated.is_unresolved
