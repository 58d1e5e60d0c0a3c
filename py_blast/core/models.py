"""Hole records and identity keys shared by all engine stages."""

from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, List, Mapping, NamedTuple, Optional, Sequence, Tuple

KEY_SEPARATOR = ":::"

Point3 = Tuple[float, float, float]


class HoleKey(NamedTuple):
    """Global identity of a hole: (entity name, hole ID)."""
    entity_name: str
    hole_id: str

    def __str__(self) -> str:
        return f"{self.entity_name}{KEY_SEPARATOR}{self.hole_id}"

    @classmethod
    def parse(cls, reference: str) -> Optional["HoleKey"]:
        """
        Parse an ``entityName:::holeID`` reference.

        Returns None when the reference is empty or not in that form.
        """
        if not reference:
            return None
        parts = reference.split(KEY_SEPARATOR)
        if len(parts) != 2 or not parts[0] or not parts[1]:
            return None
        return cls(parts[0], parts[1])


class PositionKind(str, Enum):
    """Which point along the hole axis a stage works on."""
    COLLAR = "collar"
    GRADE = "grade"
    TOE = "toe"


class TimingStatus(str, Enum):
    ROOT = "root"
    RESOLVED = "resolved"
    UNRESOLVED = "unresolved"


@dataclass(frozen=True)
class Hole:
    """
    A drilled hole as supplied by importers and editing tools.

    Geometry and charge fields are opaque inputs; the engine only reads them
    where a metric needs them. Connector fields describe the single parent
    this hole is initiated from.
    """
    entity_name: str
    hole_id: str
    collar: Point3
    toe: Point3 = (0.0, 0.0, 0.0)
    grade: Optional[Point3] = None
    diameter_mm: float = 115.0
    angle_deg: float = 0.0
    bearing_deg: float = 0.0
    length_m: Optional[float] = None
    subdrill_m: float = 0.0
    bench_height_m: Optional[float] = None
    from_hole_id: Optional[str] = None
    timing_delay_ms: float = 0.0
    connector_vod_ms: float = 0.0
    charge_mass_kg: Optional[float] = None
    measured_mass_kg: Optional[float] = None

    @property
    def key(self) -> HoleKey:
        return HoleKey(self.entity_name, str(self.hole_id))

    def position(self, kind: PositionKind) -> Point3:
        """Return the collar, grade or toe point; grade falls back to toe."""
        kind = PositionKind(kind)
        if kind is PositionKind.COLLAR:
            return self.collar
        if kind is PositionKind.GRADE:
            return self.grade if self.grade is not None else self.toe
        return self.toe

    @property
    def hole_length(self) -> float:
        """Supplied length, or the collar-to-toe distance when absent."""
        if self.length_m is not None:
            return abs(self.length_m)
        dx = self.toe[0] - self.collar[0]
        dy = self.toe[1] - self.collar[1]
        dz = self.toe[2] - self.collar[2]
        return (dx * dx + dy * dy + dz * dz) ** 0.5

    @property
    def bench_height(self) -> float:
        """Supplied bench height, or |collar Z - grade Z|."""
        if self.bench_height_m is not None:
            return abs(self.bench_height_m)
        return abs(self.collar[2] - self.position(PositionKind.GRADE)[2])

    @classmethod
    def from_mapping(cls, record: Mapping[str, Any]) -> "Hole":
        """
        Build a Hole from a plain importer record.

        Accepts the camelCase keys written by the blast-hole importers
        (``entityName``, ``holeID``, ``startXLocation`` ...).
        """
        def num(name: str, default: float = 0.0) -> float:
            value = record.get(name)
            if value is None or value == "":
                return default
            return float(value)

        def opt(name: str) -> Optional[float]:
            value = record.get(name)
            if value is None or value == "":
                return None
            return float(value)

        grade = None
        if any(record.get(k) is not None for k in ("gradeXLocation", "gradeYLocation", "gradeZLocation")):
            grade = (num("gradeXLocation"), num("gradeYLocation"), num("gradeZLocation"))

        return cls(
            entity_name=str(record.get("entityName", "")),
            hole_id=str(record.get("holeID", "")),
            collar=(num("startXLocation"), num("startYLocation"), num("startZLocation")),
            toe=(num("endXLocation"), num("endYLocation"), num("endZLocation")),
            grade=grade,
            diameter_mm=num("holeDiameter", 115.0),
            angle_deg=num("holeAngle"),
            bearing_deg=num("holeBearing"),
            length_m=opt("holeLengthCalculated"),
            subdrill_m=num("subdrillAmount"),
            bench_height_m=opt("benchHeight"),
            from_hole_id=record.get("fromHoleID") or None,
            timing_delay_ms=num("timingDelayMilliseconds"),
            connector_vod_ms=num("connectorVodMs"),
            charge_mass_kg=opt("massPerHole"),
            measured_mass_kg=opt("measuredMass"),
        )


@dataclass(frozen=True)
class AnnotatedHole:
    """A hole plus every field derived by one engine run."""
    hole: Hole
    row_id: int
    pos_id: int
    burden: Optional[float]
    spacing: Optional[float]
    firing_time_ms: Optional[float]
    timing_status: TimingStatus

    @property
    def key(self) -> HoleKey:
        return self.hole.key

    @property
    def is_unresolved(self) -> bool:
        return self.timing_status is TimingStatus.UNRESOLVED

    def to_record(self) -> Dict[str, Any]:
        """Render the camelCase record consumed by rendering and export tools."""
        h = self.hole
        return {
            "entityName": h.entity_name,
            "holeID": h.hole_id,
            "startXLocation": h.collar[0],
            "startYLocation": h.collar[1],
            "startZLocation": h.collar[2],
            "endXLocation": h.toe[0],
            "endYLocation": h.toe[1],
            "endZLocation": h.toe[2],
            "fromHoleID": h.from_hole_id or "",
            "timingDelayMilliseconds": h.timing_delay_ms,
            "rowID": self.row_id,
            "posID": self.pos_id,
            "burden": self.burden,
            "spacing": self.spacing,
            "holeTime": self.firing_time_ms,
            "timingStatus": self.timing_status.value,
        }


def group_by_entity(holes: Sequence[Hole]) -> Dict[str, List[Hole]]:
    """Group holes by entity name, preserving input order."""
    groups: Dict[str, List[Hole]] = {}
    for hole in holes:
        groups.setdefault(hole.entity_name, []).append(hole)
    return groups


def validate_holes(holes: Sequence[Hole]) -> None:
    """
    Reject input collections that indicate a programming error.

    Raises:
        TypeError: if holes is None or contains non-Hole items
        ValueError: if two holes share the same (entity, hole ID) key
    """
    if holes is None:
        raise TypeError("holes must be a sequence of Hole, not None")
    seen = set()
    for hole in holes:
        if not isinstance(hole, Hole):
            raise TypeError(f"expected Hole, got {type(hole).__name__}")
        if hole.key in seen:
            raise ValueError(f"duplicate hole identity {hole.key}")
        seen.add(hole.key)
