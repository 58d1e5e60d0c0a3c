"""
Non-fatal issue reporting and engine exceptions.

Every engine stage returns its data together with a list of EngineIssue
records. Expected domain conditions (too few points, cycles in the connector
network, dangling references, degenerate geometry) are reported this way and
never raised. Exceptions are reserved for programming errors and for
cooperative cancellation.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import List, Tuple


class IssueKind(str, Enum):
    """Categories of non-fatal conditions reported by the engine."""
    INSUFFICIENT_DATA = "insufficient_data"
    CYCLIC_OR_UNRESOLVED_CONNECTOR = "cyclic_or_unresolved_connector"
    DANGLING_REFERENCE = "dangling_reference"
    DEGENERATE_GEOMETRY = "degenerate_geometry"
    NEGATIVE_DELAY = "negative_delay"
    UNDEFINED_METRIC = "undefined_metric"


@dataclass(frozen=True)
class EngineIssue:
    """A warning attached to a stage result."""
    kind: IssueKind
    message: str
    keys: Tuple[str, ...] = field(default_factory=tuple)


def issue(kind: IssueKind, message: str, keys=()) -> EngineIssue:
    """Build an EngineIssue, rendering hole keys as strings."""
    return EngineIssue(kind=kind, message=message, keys=tuple(str(k) for k in keys))


def issues_of_kind(issues: List[EngineIssue], kind: IssueKind) -> List[EngineIssue]:
    return [i for i in issues if i.kind == kind]


class BlastEngineError(Exception):
    """Base class for engine exceptions."""


class ComputationCancelled(BlastEngineError):
    """Raised when a cancellation token is triggered mid-computation."""
