"""Node source protocol and the row shape it produces.

A NodeSource answers the only two questions the core asks of the
database: "every state group in scope" and "these specific state groups".
Both return NodeRecord rows lazily; how they are queried, paginated and
streamed is up to the implementation.
"""

from __future__ import annotations

from collections.abc import Iterable, Iterator, Sequence
from dataclasses import dataclass
from typing import Any, Protocol, runtime_checkable

# Selects one row per (state group, next group) pair. The joins against
# event_to_state_groups can repeat rows; merging them is idempotent.
STATE_GROUP_COLUMNS = """\
SELECT
    main.id AS state_group,
    forwards.state_group AS next_group,
    backwards.prev_state_group AS prev_group,
    e.event_id IS NOT NULL AS is_referenced
"""

STATE_GROUP_JOINS = """\
LEFT JOIN state_group_edges AS backwards ON (main.id = backwards.state_group)
LEFT JOIN state_group_edges AS forwards ON (main.id = forwards.prev_state_group)
LEFT JOIN event_to_state_groups AS e ON (e.state_group = main.id)
"""

DEFAULT_FETCH_BATCH_SIZE = 100
DEFAULT_MISSING_BATCH_SIZE = 1000


@dataclass(frozen=True, slots=True)
class NodeRecord:
    """One row describing a state group and at most one of its next groups.

    Attributes:
        state_group: Id of the state group.
        next_group: A state group whose prev group is ``state_group``.
        prev_group: The state group ``state_group`` was derived from.
        is_referenced: Whether an event points at ``state_group``.
    """

    state_group: int
    next_group: int | None
    prev_group: int | None
    is_referenced: bool

    @classmethod
    def from_row(cls, row: Sequence[Any]) -> NodeRecord:
        """Build a record from a 4-column result row."""
        state_group, next_group, prev_group, is_referenced = row
        return cls(
            state_group=int(state_group),
            next_group=None if next_group is None else int(next_group),
            prev_group=None if prev_group is None else int(prev_group),
            is_referenced=bool(is_referenced),
        )


@runtime_checkable
class NodeSource(Protocol):
    """Read-only access to the state groups stored in a database.

    Implementations raise NodeSourceError on any driver failure.
    """

    def fetch_all(self, room_id: str | None = None) -> Iterator[NodeRecord]:
        """Stream every state group in scope, optionally limited to one room.

        The iterator is finite and can only be consumed once.
        """
        ...

    def fetch_by_ids(self, ids: Iterable[int]) -> Iterator[NodeRecord]:
        """Stream the rows of the given state groups.

        An id with no rows does not exist in the database.
        """
        ...

    def close(self) -> None:
        """Release the underlying connection."""
        ...


def chunked(ids: Iterable[int], size: int) -> Iterator[list[int]]:
    """Split *ids* into sorted lists of at most *size* ids."""
    ordered = sorted(ids)
    for start in range(0, len(ordered), size):
        yield ordered[start : start + size]
