"""Graph package - state group map, closure and reference propagation.

The state groups of a homeserver form a forest through their prev group
edges. This package loads that forest into memory, fetches whatever part
of it a scoped load missed, and works out which groups are still needed.
"""

from sgfind.graph.closure import ClosureResult, ClosureRound, complete_closure, find_missing
from sgfind.graph.errors import (
    BrokenInvariantError,
    DataConsistencyError,
    NodeSourceError,
    StateGroupError,
)
from sgfind.graph.propagation import PropagationResult, propagate_references
from sgfind.graph.report import FindReport, iter_unreferenced, write_unreferenced
from sgfind.graph.store import StateGroupEntry, StateGroupMap

__all__ = [
    "BrokenInvariantError",
    "ClosureResult",
    "ClosureRound",
    "DataConsistencyError",
    "FindReport",
    "NodeSourceError",
    "PropagationResult",
    "StateGroupEntry",
    "StateGroupError",
    "StateGroupMap",
    "complete_closure",
    "find_missing",
    "iter_unreferenced",
    "propagate_references",
    "write_unreferenced",
]
