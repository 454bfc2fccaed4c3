"""In-memory state group map.

StateGroupMap accumulates the rows returned by a NodeSource across the
initial bulk load and every closure round. Several rows arrive per state
group (one per next group), so entries are merged rather than replaced:
next groups only ever grow, while the prev group and referenced flag are
fixed the first time they are seen and must agree on every later row.
"""

from __future__ import annotations

from collections.abc import Iterator
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

from sgfind.graph.errors import DataConsistencyError

if TYPE_CHECKING:
    from sgfind.sources.base import NodeRecord

# Distinguishes "prev group not reported" from "reported as having none"
_UNSET: Any = object()


@dataclass
class StateGroupEntry:
    """Everything known about one state group.

    Attributes:
        next_groups: State groups whose prev group is this one.
        prev_group: The state group this one was derived from, if any.
        is_referenced: Whether an event points directly at this group.
        live: Referenced directly or by a descendant. Starts equal to
            ``is_referenced`` and is only ever raised by propagation.
        prev_observed: Whether ``prev_group`` has been set from a row yet.
        referenced_observed: Whether ``is_referenced`` has been set yet.
    """

    next_groups: set[int] = field(default_factory=set)
    prev_group: int | None = None
    is_referenced: bool = False
    live: bool = False
    prev_observed: bool = False
    referenced_observed: bool = False


class StateGroupMap:
    """Mapping of state group id to StateGroupEntry, owned by a single run."""

    def __init__(self) -> None:
        self._entries: dict[int, StateGroupEntry] = {}

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, group_id: object) -> bool:
        return group_id in self._entries

    def __iter__(self) -> Iterator[int]:
        return iter(sorted(self._entries))

    def contains(self, group_id: int) -> bool:
        """Check whether a state group has been loaded."""
        return group_id in self._entries

    def get(self, group_id: int) -> StateGroupEntry | None:
        """Get the entry for a state group, or None if not loaded."""
        return self._entries.get(group_id)

    def all_ids(self) -> set[int]:
        """Return a snapshot of every loaded state group id."""
        return set(self._entries)

    def items(self) -> Iterator[tuple[int, StateGroupEntry]]:
        """Iterate over ``(group_id, entry)`` pairs in ascending id order."""
        for group_id in sorted(self._entries):
            yield group_id, self._entries[group_id]

    def upsert(
        self,
        group_id: int,
        *,
        next_group: int | None = None,
        prev_group: int | None = _UNSET,
        is_referenced: bool | None = None,
    ) -> bool:
        """Create or extend the entry for *group_id*.

        Args:
            group_id: State group the row describes.
            next_group: A state group whose prev group is *group_id*.
            prev_group: The group's prev group (``None`` means it has none).
                Omit when the row carries no prev group information.
            is_referenced: Whether an event references the group. Omit
                when unknown.

        Returns:
            True if the entry was created by this call.

        Raises:
            DataConsistencyError: If *prev_group* or *is_referenced*
                differs from a value recorded by an earlier row.
        """
        entry = self._entries.get(group_id)
        created = entry is None
        if entry is None:
            entry = StateGroupEntry()
            self._entries[group_id] = entry

        if next_group is not None:
            entry.next_groups.add(next_group)

        if prev_group is not _UNSET:
            if not entry.prev_observed:
                entry.prev_group = prev_group
                entry.prev_observed = True
            elif entry.prev_group != prev_group:
                raise DataConsistencyError(
                    group_id=group_id,
                    field="prev_group",
                    existing=entry.prev_group,
                    observed=prev_group,
                )

        if is_referenced is not None:
            if not entry.referenced_observed:
                entry.is_referenced = is_referenced
                entry.referenced_observed = True
                entry.live = entry.live or is_referenced
            elif entry.is_referenced != is_referenced:
                raise DataConsistencyError(
                    group_id=group_id,
                    field="is_referenced",
                    existing=entry.is_referenced,
                    observed=is_referenced,
                )

        return created

    def merge_record(self, record: NodeRecord) -> bool:
        """Merge one source row into the map. Returns True if the entry is new."""
        return self.upsert(
            record.state_group,
            next_group=record.next_group,
            prev_group=record.prev_group,
            is_referenced=record.is_referenced,
        )
