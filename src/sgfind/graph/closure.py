"""Closure completion: fetch state groups referenced but not yet loaded.

A room-scoped bulk load can return groups whose prev group or next groups
live outside the loaded set. complete_closure() keeps fetching those ids
until every edge of every loaded group points at a loaded group, or at an
id the source has confirmed does not exist (a dangling reference).

Algorithm:
    1. frontier = groups added by the previous round (initially all).
    2. missing = (prev groups + next groups of frontier) - loaded ids.
    3. Stop when missing is empty.
    4. Fetch exactly the missing ids and merge every returned row.
    5. Ids that came back become the next frontier; ids that did not are
       recorded as dangling and never requested again.

The source is assumed not to change during a run, so a dangling id is
final and not retried.
"""

from __future__ import annotations

from collections.abc import Callable, Iterable
from dataclasses import dataclass, field
from typing import TYPE_CHECKING

from sgfind.observability.logging import get_logger

if TYPE_CHECKING:
    from sgfind.graph.store import StateGroupMap
    from sgfind.sources.base import NodeSource

log = get_logger(__name__)


@dataclass(frozen=True)
class ClosureRound:
    """Counts for one fetch round.

    Attributes:
        round_number: 1-based round index.
        requested: Number of missing ids requested from the source.
        fetched_rows: Rows the source returned for them.
        resolved: Requested ids that the source returned.
        dangling: Requested ids the source has no record for.
    """

    round_number: int
    requested: int
    fetched_rows: int
    resolved: int
    dangling: int


@dataclass
class ClosureResult:
    """Outcome of complete_closure()."""

    rounds: list[ClosureRound] = field(default_factory=list)
    dangling: frozenset[int] = frozenset()

    @property
    def dangling_count(self) -> int:
        return len(self.dangling)

    @property
    def fetched_rows(self) -> int:
        return sum(r.fetched_rows for r in self.rounds)

    @property
    def fetched_groups(self) -> int:
        return sum(r.resolved for r in self.rounds)


def find_missing(groups: StateGroupMap, frontier: Iterable[int]) -> set[int]:
    """Return ids referenced by the frontier's edges that are not loaded.

    Args:
        groups: The state group map.
        frontier: Loaded ids whose edges should be checked.

    Returns:
        Prev and next group ids absent from *groups*.
    """
    missing: set[int] = set()
    for group_id in frontier:
        entry = groups.get(group_id)
        if entry is None:
            continue
        for next_group in entry.next_groups:
            if next_group not in groups:
                missing.add(next_group)
        if entry.prev_group is not None and entry.prev_group not in groups:
            missing.add(entry.prev_group)
    return missing


def complete_closure(
    groups: StateGroupMap,
    source: NodeSource,
    frontier: Iterable[int] | None = None,
    on_round: Callable[[ClosureRound], None] | None = None,
) -> ClosureResult:
    """Fetch missing state groups until the loaded graph is edge-closed.

    Args:
        groups: Map to complete in place.
        source: Where missing groups are fetched from.
        frontier: Ids to start checking from. Defaults to every loaded id.
        on_round: Called with the counts of each round once it is merged.

    Returns:
        Per-round counts and the set of dangling ids.

    Raises:
        NodeSourceError: If a fetch fails.
        DataConsistencyError: If a fetched row contradicts a loaded one.
    """
    current = groups.all_ids() if frontier is None else set(frontier)
    result = ClosureResult()
    dangling: set[int] = set()

    while True:
        missing = find_missing(groups, current) - dangling
        if not missing:
            break

        round_number = len(result.rounds) + 1
        log.info("closure_round_started", round=round_number, missing=len(missing))

        returned: set[int] = set()
        fetched_rows = 0
        for record in source.fetch_by_ids(missing):
            groups.merge_record(record)
            returned.add(record.state_group)
            fetched_rows += 1

        resolved = missing & returned
        unresolved = missing - resolved
        dangling |= unresolved

        closure_round = ClosureRound(
            round_number=round_number,
            requested=len(missing),
            fetched_rows=fetched_rows,
            resolved=len(resolved),
            dangling=len(unresolved),
        )
        result.rounds.append(closure_round)

        log.info(
            "closure_round_finished",
            round=round_number,
            fetched_rows=fetched_rows,
            resolved=len(resolved),
        )
        if unresolved:
            log.warning(
                "dangling_references",
                round=round_number,
                count=len(unresolved),
                sample=sorted(unresolved)[:10],
            )

        if on_round is not None:
            on_round(closure_round)

        current = resolved

    result.dangling = frozenset(dangling)
    log.info(
        "closure_complete",
        rounds=len(result.rounds),
        total_groups=len(groups),
        dangling=result.dangling_count,
    )
    return result
