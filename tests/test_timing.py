"""Tests for connector networks and firing time propagation."""

import pytest

from py_blast.core.issues import ComputationCancelled, IssueKind, issues_of_kind
from py_blast.core.models import Hole, HoleKey, TimingStatus
from py_blast.core.timing import (
    NO_PARENT, ConnectorNetwork, calculate_firing_times, connector_travel_time_ms, propagate_timing
)
from py_blast.utils.cancellation import CancellationToken


def hole(hole_id, parent=None, delay=0.0, x=0.0, vod=0.0):
    return Hole(
        entity_name="E",
        hole_id=hole_id,
        collar=(x, 0.0, 0.0),
        from_hole_id=f"E:::{parent}" if parent else None,
        timing_delay_ms=delay,
        connector_vod_ms=vod,
    )


class TestConnectorNetwork:
    """Test network construction."""

    def test_build_adjacency(self):
        holes = [hole("R"), hole("A", "R", 10), hole("B", "R", 20)]
        network = ConnectorNetwork.build(holes)

        assert network.parents == [NO_PARENT, 0, 0]
        assert network.children[0] == [1, 2]
        assert network.delays == [0.0, 10.0, 20.0]
        assert network.roots == [0]

    def test_dangling_reference_becomes_root(self):
        holes = [hole("A", "missing", 25)]
        network = ConnectorNetwork.build(holes)

        assert network.roots == [0]
        dangling = issues_of_kind(network.issues, IssueKind.DANGLING_REFERENCE)
        assert dangling and dangling[0].keys == ("E:::A",)

    def test_malformed_reference_is_dangling(self):
        holes = [Hole("E", "A", (0.0, 0.0, 0.0), from_hole_id="not-a-key", timing_delay_ms=5)]
        network = ConnectorNetwork.build(holes)

        assert network.roots == [0]
        assert issues_of_kind(network.issues, IssueKind.DANGLING_REFERENCE)

    def test_duplicate_identity_rejected(self):
        with pytest.raises(ValueError):
            ConnectorNetwork.build([hole("A"), hole("A")])

    def test_vod_travel_time(self):
        assert connector_travel_time_ms(30.0, 6000.0) == pytest.approx(5.0)
        assert connector_travel_time_ms(30.0, 0.0) == 0.0


class TestTimingPropagation:
    """Test firing time propagation."""

    def test_no_connectors(self):
        holes = [hole(str(i), x=float(i)) for i in range(5)]
        result = calculate_firing_times(holes)

        assert all(result.firing_times[h.key] == 0.0 for h in holes)
        assert result.unresolved == []
        assert all(result.status(h.key) is TimingStatus.ROOT for h in holes)

    def test_chain(self):
        """Each 25 ms edge adds 25 ms along the chain."""
        holes = [hole("0")] + [hole(str(k), str(k - 1), 25.0) for k in range(1, 6)]
        result = calculate_firing_times(holes)

        for k, h in enumerate(holes):
            assert result.firing_times[h.key] == pytest.approx(25.0 * k)
        assert result.status(holes[3].key) is TimingStatus.RESOLVED

    def test_cycle_terminates_unresolved(self):
        holes = [hole("A", "C", 10), hole("B", "A", 10), hole("C", "B", 10), hole("D")]
        result = calculate_firing_times(holes)

        assert set(result.unresolved) == {HoleKey("E", "A"), HoleKey("E", "B"), HoleKey("E", "C")}
        assert result.firing_time(HoleKey("E", "A")) is None
        assert result.firing_times[HoleKey("E", "D")] == 0.0
        assert issues_of_kind(result.issues, IssueKind.CYCLIC_OR_UNRESOLVED_CONNECTOR)

    def test_self_reference_is_a_cycle(self):
        result = calculate_firing_times([hole("A", "A", 5)])

        assert result.unresolved == [HoleKey("E", "A")]
        assert result.status(HoleKey("E", "A")) is TimingStatus.UNRESOLVED

    def test_chain_hanging_off_a_cycle(self):
        holes = [hole("A", "B", 5), hole("B", "A", 5), hole("C", "B", 5)]
        result = calculate_firing_times(holes)

        assert len(result.unresolved) == 3

    def test_branching(self):
        holes = [hole("R"), hole("A", "R", 10), hole("B", "R", 20), hole("G", "A", 5)]
        result = calculate_firing_times(holes)

        assert result.firing_times[HoleKey("E", "A")] == pytest.approx(10.0)
        assert result.firing_times[HoleKey("E", "B")] == pytest.approx(20.0)
        assert result.firing_times[HoleKey("E", "G")] == pytest.approx(15.0)

    def test_dangling_reference_fires_at_zero(self):
        holes = [hole("A", "missing", 42), hole("B", "A", 17)]
        result = calculate_firing_times(holes)

        assert result.firing_times[HoleKey("E", "A")] == 0.0
        assert result.firing_times[HoleKey("E", "B")] == pytest.approx(17.0)
        assert issues_of_kind(result.issues, IssueKind.DANGLING_REFERENCE)

    def test_connector_vod_adds_travel_time(self):
        holes = [hole("A"), hole("B", "A", 17.0, x=30.0, vod=6000.0)]
        result = calculate_firing_times(holes)

        assert result.firing_times[HoleKey("E", "B")] == pytest.approx(22.0)

    def test_negative_delay_warns(self):
        holes = [hole("A"), hole("B", "A", -5.0)]
        result = calculate_firing_times(holes)

        assert result.firing_times[HoleKey("E", "B")] == pytest.approx(-5.0)
        assert issues_of_kind(result.issues, IssueKind.NEGATIVE_DELAY)

    def test_cross_entity_connector(self):
        a = Hole("P1", "1", (0.0, 0.0, 0.0))
        b = Hole("P2", "1", (5.0, 0.0, 0.0), from_hole_id="P1:::1", timing_delay_ms=42.0)
        result = calculate_firing_times([a, b])

        assert result.firing_times[b.key] == pytest.approx(42.0)

    def test_cancellation(self):
        holes = [hole(str(i), x=float(i)) for i in range(1100)]
        token = CancellationToken()
        token.cancel()

        with pytest.raises(ComputationCancelled):
            propagate_timing(ConnectorNetwork.build(holes), token=token)
