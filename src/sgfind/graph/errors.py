"""Error types raised while resolving and propagating the state group graph.

All fatal conditions derive from StateGroupError so callers can abort the
run with a single except clause. Dangling references are not errors: they
are counted by the closure phase and reported alongside the results.
"""

from __future__ import annotations

from dataclasses import dataclass


class StateGroupError(Exception):
    """Base class for fatal failures during an unreferenced-group search."""


@dataclass
class NodeSourceError(StateGroupError):
    """Raised when the node source cannot complete a fetch.

    Wraps driver-level failures (connection refused, query errors, missing
    tables). The core never retries; nothing fetched so far is durable, so
    the whole run is aborted.

    Attributes:
        operation: The source operation that failed (e.g. ``fetch_all``).
        detail: Driver error message.
    """

    operation: str
    detail: str = ""

    def __post_init__(self) -> None:
        msg = f"Node source failed during {self.operation}"
        if self.detail:
            msg += f": {self.detail}"
        super().__init__(msg)


@dataclass
class DataConsistencyError(StateGroupError):
    """Raised when two observations of a state group disagree.

    A group's prev group and referenced flag are fixed in the database, so
    every row returned for the same id must agree on them. A mismatch means
    the source is corrupt or the adapter is broken; it is never resolved by
    keeping the last value seen.

    Attributes:
        group_id: The state group whose observations disagree.
        field: Name of the disagreeing attribute.
        existing: Value recorded from an earlier row.
        observed: Conflicting value from the current row.
    """

    group_id: int
    field: str
    existing: object
    observed: object

    def __post_init__(self) -> None:
        super().__init__(
            f"State group {self.group_id} has conflicting {self.field}: "
            f"{self.existing!r} then {self.observed!r}"
        )


@dataclass
class BrokenInvariantError(StateGroupError):
    """Raised when propagation meets a prev group the closure never accounted for.

    After closure every prev group id is either loaded or recorded as
    dangling. Hitting an id that is neither means the fixpoint was not
    actually reached, which is a bug rather than bad data.

    Attributes:
        group_id: The prev group id with no entry.
        referenced_by: The state group whose prev edge points at it.
    """

    group_id: int
    referenced_by: int

    def __post_init__(self) -> None:
        super().__init__(
            f"State group {self.group_id} (prev group of {self.referenced_by}) "
            "is neither loaded nor recorded as dangling"
        )
