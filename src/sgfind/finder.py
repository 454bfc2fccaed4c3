"""Unreferenced state group search.

Runs the whole computation against a NodeSource:

1. Bulk load every state group in scope into a StateGroupMap.
2. Complete the closure, fetching groups referenced but not loaded.
3. Propagate references up every prev chain.
4. Summarise the groups left unreferenced.

Nothing is written back to the database.
"""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass
from typing import TYPE_CHECKING

from sgfind.graph.closure import ClosureResult, ClosureRound, complete_closure
from sgfind.graph.propagation import PropagationResult, propagate_references
from sgfind.graph.report import FindReport, iter_unreferenced
from sgfind.graph.store import StateGroupMap
from sgfind.observability.logging import get_logger

if TYPE_CHECKING:
    from sgfind.sources.base import NodeSource

log = get_logger(__name__)

# Rows between bulk-load progress callbacks
PROGRESS_INTERVAL = 1000


@dataclass
class LoadResult:
    """Counts from the bulk load."""

    rows: int
    groups: int


@dataclass
class FindOutcome:
    """Everything produced by find_unreferenced()."""

    groups: StateGroupMap
    load: LoadResult
    closure: ClosureResult
    propagation: PropagationResult
    report: FindReport

    def unreferenced_ids(self) -> list[int]:
        return list(iter_unreferenced(self.groups))


def load_state_groups(
    groups: StateGroupMap,
    source: NodeSource,
    room_id: str | None = None,
    on_progress: Callable[[int], None] | None = None,
) -> LoadResult:
    """Merge every in-scope row from *source* into *groups*.

    Args:
        groups: Map to fill.
        source: Database to read.
        room_id: Limit the load to one room.
        on_progress: Called with the running row count every
            PROGRESS_INTERVAL rows and once at the end.

    Returns:
        Row and group counts.
    """
    rows = 0
    for record in source.fetch_all(room_id):
        groups.merge_record(record)
        rows += 1
        if on_progress is not None and rows % PROGRESS_INTERVAL == 0:
            on_progress(rows)
    if on_progress is not None:
        on_progress(rows)

    log.info("bulk_load_complete", rows=rows, groups=len(groups), room_id=room_id)
    return LoadResult(rows=rows, groups=len(groups))


def find_unreferenced(
    source: NodeSource,
    room_id: str | None = None,
    on_progress: Callable[[int], None] | None = None,
    on_loaded: Callable[[LoadResult], None] | None = None,
    on_round: Callable[[ClosureRound], None] | None = None,
) -> FindOutcome:
    """Find state groups that no event references.

    Args:
        source: Database to read.
        room_id: Limit the search to one room. Groups outside the room are
            still fetched when a loaded group points at them.
        on_progress: Bulk-load row counter callback.
        on_loaded: Called once the bulk load has finished.
        on_round: Called after each closure round.

    Returns:
        The propagated map, per-phase counts and a summary report.

    Raises:
        NodeSourceError: If the database cannot be read.
        DataConsistencyError: If rows for one group disagree.
        BrokenInvariantError: If closure left an unaccounted prev group.
    """
    groups = StateGroupMap()
    load = load_state_groups(groups, source, room_id=room_id, on_progress=on_progress)
    if on_loaded is not None:
        on_loaded(load)
    closure = complete_closure(groups, source, on_round=on_round)
    propagation = propagate_references(groups, dangling=closure.dangling)

    unreferenced = sum(1 for _ in iter_unreferenced(groups))
    report = FindReport(
        room_id=room_id,
        initial_groups=load.groups,
        total_groups=len(groups),
        closure_rounds=len(closure.rounds),
        marked_live=propagation.marked_live,
        truncated_walks=propagation.truncated_walks,
        unreferenced_count=unreferenced,
        dangling_count=closure.dangling_count,
    )
    log.info("search_complete", **report.model_dump())
    return FindOutcome(
        groups=groups,
        load=load,
        closure=closure,
        propagation=propagation,
        report=report,
    )
