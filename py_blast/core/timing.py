"""
Connector network and firing-time propagation.

Each hole names at most one parent through ``from_hole_id`` and fires
``timing_delay_ms`` (plus any surface connector travel time) after it. The
network is built once into index arrays and firing times are propagated
breadth-first from every root at once. A visited set bounds the traversal, so
cycles and chains that never reach a root end up unresolved instead of
looping.
"""

from collections import deque
from dataclasses import dataclass, field
from functools import cached_property
from typing import Dict, List, Optional, Sequence

import structlog

from .geometry import distance_3d
from .issues import EngineIssue, IssueKind, issue
from .models import Hole, HoleKey, TimingStatus, validate_holes

logger = structlog.get_logger()

NO_PARENT = -1


def connector_travel_time_ms(distance_m: float, vod_ms: float) -> float:
    """Surface connector travel time; zero when no VOD is given."""
    if not vod_ms or vod_ms <= 0:
        return 0.0
    return distance_m / vod_ms * 1000.0


@dataclass
class ConnectorNetwork:
    """
    Index-based view of the connector forest.

    ``parents[i]`` is the index of hole i's parent or NO_PARENT,
    ``delays[i]`` the weight of the edge into hole i and ``children[i]`` the
    indices initiated by hole i.
    """
    keys: List[HoleKey]
    index: Dict[HoleKey, int]
    parents: List[int]
    delays: List[float]
    children: List[List[int]]
    issues: List[EngineIssue] = field(default_factory=list)

    @property
    def roots(self) -> List[int]:
        return [i for i, parent in enumerate(self.parents) if parent == NO_PARENT]

    def __len__(self) -> int:
        return len(self.keys)

    @classmethod
    def build(cls, holes: Sequence[Hole]) -> "ConnectorNetwork":
        """
        Build the network from hole connector fields.

        A ``from_hole_id`` that does not name an existing hole leaves the
        hole as a root and records a dangling-reference warning.
        """
        validate_holes(holes)
        keys = [h.key for h in holes]
        index = {key: i for i, key in enumerate(keys)}
        parents = [NO_PARENT] * len(holes)
        delays = [0.0] * len(holes)
        children: List[List[int]] = [[] for _ in holes]
        issues: List[EngineIssue] = []
        dangling = []
        negative = []

        for i, hole in enumerate(holes):
            if not hole.from_hole_id:
                continue
            parent_key = HoleKey.parse(hole.from_hole_id)
            parent = index.get(parent_key) if parent_key is not None else None
            if parent is None:
                dangling.append(keys[i])
                logger.warning("Dangling connector reference", hole=str(keys[i]),
                               from_hole_id=hole.from_hole_id)
                continue

            delay = float(hole.timing_delay_ms or 0.0)
            if delay < 0:
                negative.append(keys[i])
            delay += connector_travel_time_ms(
                distance_3d(holes[parent].collar, hole.collar), hole.connector_vod_ms
            )
            parents[i] = parent
            delays[i] = delay
            children[parent].append(i)

        if dangling:
            issues.append(issue(
                IssueKind.DANGLING_REFERENCE,
                f"{len(dangling)} holes reference a missing hole and were treated as roots",
                dangling,
            ))
        if negative:
            issues.append(issue(
                IssueKind.NEGATIVE_DELAY,
                f"{len(negative)} connectors carry a negative delay",
                negative,
            ))
        return cls(keys=keys, index=index, parents=parents, delays=delays,
                   children=children, issues=issues)


@dataclass
class TimingResult:
    """Firing times for every hole that could be reached from a root."""
    firing_times: Dict[HoleKey, float] = field(default_factory=dict)
    unresolved: List[HoleKey] = field(default_factory=list)
    roots: List[HoleKey] = field(default_factory=list)
    issues: List[EngineIssue] = field(default_factory=list)

    def status(self, key: HoleKey) -> TimingStatus:
        if key in self.firing_times:
            return TimingStatus.ROOT if key in self._root_set else TimingStatus.RESOLVED
        return TimingStatus.UNRESOLVED

    def firing_time(self, key: HoleKey) -> Optional[float]:
        """Firing time in ms, or None when unresolved."""
        return self.firing_times.get(key)

    @cached_property
    def _root_set(self):
        return set(self.roots)


def propagate_timing(network: ConnectorNetwork, token=None) -> TimingResult:
    """
    Breadth-first firing-time propagation from all roots simultaneously.

    Args:
        network: connector network built with ConnectorNetwork.build
        token: optional cancellation token, checked periodically

    Returns:
        TimingResult with resolved times, unresolved keys and warnings
    """
    n = len(network)
    times: List[Optional[float]] = [None] * n
    visited = [False] * n
    queue = deque()

    for root in network.roots:
        times[root] = 0.0
        visited[root] = True
        queue.append(root)

    processed = 0
    while queue:
        current = queue.popleft()
        processed += 1
        if token is not None and processed % 1024 == 0:
            token.raise_if_cancelled()
        for child in network.children[current]:
            if visited[child]:
                continue
            visited[child] = True
            times[child] = times[current] + network.delays[child]
            queue.append(child)

    result = TimingResult(
        roots=[network.keys[i] for i in network.roots], issues=list(network.issues)
    )
    for i, key in enumerate(network.keys):
        if visited[i]:
            result.firing_times[key] = times[i]
        else:
            result.unresolved.append(key)

    if result.unresolved:
        result.issues.append(issue(
            IssueKind.CYCLIC_OR_UNRESOLVED_CONNECTOR,
            f"{len(result.unresolved)} holes are not connected to any initiation point",
            result.unresolved,
        ))
        logger.warning("Unresolved firing times", count=len(result.unresolved))

    logger.info("Timing propagated", holes=n, roots=len(result.roots),
                unresolved=len(result.unresolved))
    return result


def calculate_firing_times(holes: Sequence[Hole], token=None) -> TimingResult:
    """Build the connector network for holes and propagate firing times."""
    return propagate_timing(ConnectorNetwork.build(holes), token=token)
