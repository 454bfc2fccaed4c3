"""Reporting of unreferenced state groups."""

from __future__ import annotations

from collections.abc import Iterator
from pathlib import Path  # noqa: TC003 - used at runtime
from typing import TYPE_CHECKING

from pydantic import BaseModel, Field

if TYPE_CHECKING:
    from sgfind.graph.store import StateGroupMap


class FindReport(BaseModel):
    """Summary of an unreferenced state group search."""

    room_id: str | None = Field(default=None, description="Room the search was limited to")
    initial_groups: int = Field(ge=0, description="Groups returned by the bulk load")
    total_groups: int = Field(ge=0, description="Groups loaded after closure")
    closure_rounds: int = Field(ge=0)
    marked_live: int = Field(ge=0, description="Ancestors flipped live by propagation")
    truncated_walks: int = Field(ge=0, description="Walks stopped by a dangling prev group")
    unreferenced_count: int = Field(ge=0)
    dangling_count: int = Field(ge=0, description="Referenced ids the database could not return")

    @property
    def complete(self) -> bool:
        """True when every referenced id was resolved."""
        return self.dangling_count == 0


def iter_unreferenced(groups: StateGroupMap) -> Iterator[int]:
    """Yield ids of groups that are not live, in ascending order."""
    for group_id, entry in groups.items():
        if not entry.live:
            yield group_id


def write_unreferenced(groups: StateGroupMap, path: Path) -> int:
    """Write unreferenced group ids to *path*, one per line.

    The ids go to a temporary file beside *path* which then replaces it,
    so a failed write never leaves a partial list behind.

    Args:
        groups: Propagated state group map.
        path: Output file; parent directories are created.

    Returns:
        Number of ids written.
    """
    path.parent.mkdir(parents=True, exist_ok=True)
    tmp_path = path.with_name(path.name + ".tmp")
    count = 0
    try:
        with tmp_path.open("w", encoding="utf-8") as f:
            for group_id in iter_unreferenced(groups):
                f.write(f"{group_id}\n")
                count += 1
        tmp_path.replace(path)
    except Exception:
        if tmp_path.exists():
            tmp_path.unlink()
        raise
    return count
