"""Reference propagation over a closed state group map.

A state group is live if an event references it or any group derived from
it. propagate_references() walks the prev chain of every directly
referenced group and marks each ancestor live, stopping as soon as it
reaches a group that is already live: everything above that point was
marked by an earlier walk. Each group flips at most once, so total work is
linear in the number of groups however long the chains are and however
many referenced groups share them.
"""

from __future__ import annotations

from collections.abc import Collection
from dataclasses import dataclass
from typing import TYPE_CHECKING

from sgfind.graph.errors import BrokenInvariantError
from sgfind.observability.logging import get_logger

if TYPE_CHECKING:
    from sgfind.graph.store import StateGroupMap

log = get_logger(__name__)


@dataclass
class PropagationResult:
    """Counts from a propagation pass.

    Attributes:
        walks: Directly referenced groups whose prev chain was walked.
        steps: Prev-chain entries visited across all walks.
        marked_live: Groups flipped from not live to live.
        truncated_walks: Walks that stopped at a dangling prev group.
    """

    walks: int = 0
    steps: int = 0
    marked_live: int = 0
    truncated_walks: int = 0


def propagate_references(
    groups: StateGroupMap,
    dangling: Collection[int] = frozenset(),
    trace: list[int] | None = None,
) -> PropagationResult:
    """Mark every ancestor of a directly referenced group as live.

    Args:
        groups: Closed state group map, updated in place.
        dangling: Ids the closure phase could not fetch. A walk reaching
            one of them stops there.
        trace: If given, every group flipped live is appended in order.

    Returns:
        Walk and flip counts.

    Raises:
        BrokenInvariantError: If a prev group is neither loaded nor in
            *dangling*.
    """
    result = PropagationResult()

    for group_id, entry in groups.items():
        if not entry.is_referenced:
            continue

        result.walks += 1
        child = group_id
        cursor = entry.prev_group
        while cursor is not None:
            result.steps += 1
            ancestor = groups.get(cursor)
            if ancestor is None:
                if cursor not in dangling:
                    raise BrokenInvariantError(group_id=cursor, referenced_by=child)
                result.truncated_walks += 1
                log.debug("walk_truncated", start=group_id, missing=cursor)
                break
            if ancestor.live:
                break
            ancestor.live = True
            result.marked_live += 1
            if trace is not None:
                trace.append(cursor)
            child = cursor
            cursor = ancestor.prev_group

    log.info(
        "propagation_complete",
        walks=result.walks,
        steps=result.steps,
        marked_live=result.marked_live,
        truncated=result.truncated_walks,
    )
    return result
