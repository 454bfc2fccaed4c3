"""End-to-end tests for find_unreferenced()."""

from __future__ import annotations

from typing import TYPE_CHECKING

import pytest

from sgfind.finder import PROGRESS_INTERVAL, find_unreferenced, load_state_groups
from sgfind.graph.errors import DataConsistencyError, NodeSourceError
from sgfind.graph.store import StateGroupMap
from sgfind.sources import NodeRecord, SqliteNodeSource
from tests.fixtures.state_groups import FailingNodeSource, FakeNodeSource, make_synapse_db

if TYPE_CHECKING:
    from collections.abc import Iterable, Iterator
    from pathlib import Path


class TestLoadStateGroups:
    """Test the bulk load."""

    def test_counts_rows_and_groups(self) -> None:
        source = FakeNodeSource({1: None, 2: 1, 3: 1})
        groups = StateGroupMap()

        load = load_state_groups(groups, source)

        # group 1 has two next groups, so two rows
        assert load.rows == 4
        assert load.groups == 3

    def test_progress_reported_per_interval_and_at_end(self) -> None:
        parents: dict[int, int | None] = {i: None for i in range(PROGRESS_INTERVAL * 2 + 5)}
        source = FakeNodeSource(parents)
        seen: list[int] = []

        load_state_groups(StateGroupMap(), source, on_progress=seen.append)

        assert seen == [PROGRESS_INTERVAL, PROGRESS_INTERVAL * 2, PROGRESS_INTERVAL * 2 + 5]

    def test_room_passed_to_source(self) -> None:
        source = FakeNodeSource({1: None})
        load_state_groups(StateGroupMap(), source, room_id="!r:test")
        assert source.fetch_all_calls == ["!r:test"]


class TestFindUnreferenced:
    """Full runs against fake and SQLite sources."""

    def test_reports_unreferenced_groups(self) -> None:
        source = FakeNodeSource({1: None, 2: 1, 3: 2, 4: 1}, referenced={4})

        outcome = find_unreferenced(source)

        assert outcome.unreferenced_ids() == [2, 3]
        report = outcome.report
        assert report.total_groups == 4
        assert report.unreferenced_count == 2
        assert report.dangling_count == 0
        assert report.complete

    def test_scoped_load_pulls_in_ancestors(self) -> None:
        """Ancestors outside the room are fetched and kept live."""
        source = FakeNodeSource({1: None, 2: 1, 3: 2}, referenced={3}, initial={3})

        outcome = find_unreferenced(source, room_id="!r:test")

        assert outcome.report.initial_groups == 1
        assert outcome.report.total_groups == 3
        assert outcome.report.closure_rounds == 2
        assert outcome.report.marked_live == 2
        assert outcome.unreferenced_ids() == []

    def test_dangling_parent_reported_not_fatal(self) -> None:
        source = FakeNodeSource({5: 6, 7: None}, referenced={5}, present={5, 7})
        loaded: list[int] = []

        outcome = find_unreferenced(source, on_loaded=lambda load: loaded.append(load.groups))

        assert loaded == [2]
        assert outcome.report.dangling_count == 1
        assert outcome.report.truncated_walks == 1
        assert not outcome.report.complete
        assert outcome.unreferenced_ids() == [7]

    def test_source_failure_aborts(self) -> None:
        source = FailingNodeSource({1: None, 2: 1}, initial={2})

        with pytest.raises(NodeSourceError):
            find_unreferenced(source)

    def test_conflicting_rows_abort(self) -> None:
        class ConflictingSource(FakeNodeSource):
            def fetch_all(self, room_id: str | None = None) -> Iterator[NodeRecord]:
                yield NodeRecord(state_group=2, next_group=None, prev_group=1, is_referenced=False)
                yield NodeRecord(state_group=2, next_group=None, prev_group=3, is_referenced=False)

            def fetch_by_ids(self, ids: Iterable[int]) -> Iterator[NodeRecord]:
                return iter(())

        with pytest.raises(DataConsistencyError):
            find_unreferenced(ConflictingSource({}))

    def test_sqlite_room_scope(self, tmp_path: Path) -> None:
        """A room's groups chain into another room's and are resolved there."""
        path = make_synapse_db(
            tmp_path / "homeserver.db",
            {1: None, 2: 1, 3: 2, 4: 2, 5: None, 6: 5},
            referenced={3},
            rooms={3: "!scoped:test", 4: "!scoped:test"},
        )
        source = SqliteNodeSource(path)
        try:
            outcome = find_unreferenced(source, room_id="!scoped:test")
        finally:
            source.close()

        # 5 and 6 belong to an unrelated tree and are never loaded
        assert outcome.groups.all_ids() == {1, 2, 3, 4}
        assert outcome.unreferenced_ids() == [4]
        assert outcome.report.dangling_count == 0

    def test_sqlite_purged_child_is_dangling(self, tmp_path: Path) -> None:
        """An edge left behind by a purged group names a child that is gone."""
        path = make_synapse_db(
            tmp_path / "purged.db",
            {1: None, 2: 1, 3: 1},
            referenced={2},
            present={1, 2},
        )
        source = SqliteNodeSource(path)
        try:
            outcome = find_unreferenced(source)
        finally:
            source.close()

        assert outcome.report.initial_groups == 2
        assert outcome.report.dangling_count == 1
        assert outcome.closure.dangling == frozenset({3})
        assert outcome.groups.all_ids() == {1, 2}
        assert outcome.unreferenced_ids() == []
