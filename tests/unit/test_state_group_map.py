"""Tests for StateGroupMap - the in-memory state group store."""

from __future__ import annotations

import pytest

from sgfind.graph.errors import DataConsistencyError
from sgfind.graph.store import StateGroupEntry, StateGroupMap
from sgfind.sources.base import NodeRecord


class TestUpsert:
    """Test creating and extending entries."""

    def test_creates_empty_entry(self) -> None:
        """A bare upsert creates an entry with no edges that is not live."""
        groups = StateGroupMap()
        created = groups.upsert(7)

        assert created is True
        entry = groups.get(7)
        assert entry == StateGroupEntry()
        assert entry is not None
        assert entry.live is False
        assert entry.prev_observed is False

    def test_second_upsert_is_not_a_create(self) -> None:
        groups = StateGroupMap()
        groups.upsert(7)
        assert groups.upsert(7) is False
        assert len(groups) == 1

    def test_next_groups_accumulate(self) -> None:
        """Rows for the same group add next groups, never remove them."""
        groups = StateGroupMap()
        groups.upsert(1, next_group=2, prev_group=None, is_referenced=False)
        groups.upsert(1, next_group=3, prev_group=None, is_referenced=False)
        groups.upsert(1, prev_group=None)

        entry = groups.get(1)
        assert entry is not None
        assert entry.next_groups == {2, 3}

    def test_referenced_group_starts_live(self) -> None:
        groups = StateGroupMap()
        groups.upsert(1, is_referenced=True)
        entry = groups.get(1)
        assert entry is not None
        assert entry.live is True

    def test_same_values_are_idempotent(self) -> None:
        """Re-observing identical prev/referenced values is a no-op."""
        groups = StateGroupMap()
        groups.upsert(2, prev_group=1, is_referenced=True)
        groups.upsert(2, prev_group=1, is_referenced=True)

        entry = groups.get(2)
        assert entry is not None
        assert entry.prev_group == 1
        assert entry.is_referenced is True

    def test_omitted_prev_does_not_mark_observed(self) -> None:
        """Upserting without a prev group leaves it open for a later row."""
        groups = StateGroupMap()
        groups.upsert(2, next_group=3)
        groups.upsert(2, prev_group=1)

        entry = groups.get(2)
        assert entry is not None
        assert entry.prev_group == 1


class TestConsistency:
    """Conflicting observations must fail loudly."""

    def test_conflicting_prev_group_raises(self) -> None:
        groups = StateGroupMap()
        groups.upsert(2, prev_group=1)

        with pytest.raises(DataConsistencyError) as exc_info:
            groups.upsert(2, prev_group=5)

        err = exc_info.value
        assert err.group_id == 2
        assert err.field == "prev_group"
        assert err.existing == 1
        assert err.observed == 5
        assert "State group 2" in str(err)

    def test_none_then_prev_group_raises(self) -> None:
        """A group first seen without a prev group cannot gain one later."""
        groups = StateGroupMap()
        groups.upsert(2, prev_group=None)

        with pytest.raises(DataConsistencyError):
            groups.upsert(2, prev_group=1)

    def test_conflicting_referenced_flag_raises(self) -> None:
        groups = StateGroupMap()
        groups.upsert(4, is_referenced=False)

        with pytest.raises(DataConsistencyError) as exc_info:
            groups.upsert(4, is_referenced=True)
        assert exc_info.value.field == "is_referenced"

    def test_conflict_leaves_existing_value(self) -> None:
        """A rejected row does not overwrite what was recorded."""
        groups = StateGroupMap()
        groups.upsert(2, prev_group=1)
        with pytest.raises(DataConsistencyError):
            groups.upsert(2, prev_group=9)

        entry = groups.get(2)
        assert entry is not None
        assert entry.prev_group == 1


class TestMergeRecord:
    """Test merging NodeRecord rows."""

    def test_merge_twice_equals_merge_once(self) -> None:
        """Applying the same record twice yields the same state as once."""
        record = NodeRecord(state_group=3, next_group=4, prev_group=2, is_referenced=True)

        once = StateGroupMap()
        once.merge_record(record)
        twice = StateGroupMap()
        twice.merge_record(record)
        twice.merge_record(record)

        assert list(once.items()) == list(twice.items())

    def test_fan_out_rows_merge_into_one_entry(self) -> None:
        groups = StateGroupMap()
        for next_group in (11, 12, 13):
            groups.merge_record(
                NodeRecord(state_group=10, next_group=next_group, prev_group=None, is_referenced=False)
            )

        assert len(groups) == 1
        entry = groups.get(10)
        assert entry is not None
        assert entry.next_groups == {11, 12, 13}


class TestAccessors:
    """Test lookup and iteration."""

    def test_contains(self) -> None:
        groups = StateGroupMap()
        groups.upsert(1)
        assert groups.contains(1)
        assert 1 in groups
        assert not groups.contains(2)
        assert 2 not in groups

    def test_get_missing_returns_none(self) -> None:
        assert StateGroupMap().get(1) is None

    def test_all_ids_is_a_snapshot(self) -> None:
        """all_ids() does not change when the map grows afterwards."""
        groups = StateGroupMap()
        groups.upsert(1)
        snapshot = groups.all_ids()
        groups.upsert(2)

        assert snapshot == {1}
        assert groups.all_ids() == {1, 2}

    def test_items_sorted_by_id(self) -> None:
        groups = StateGroupMap()
        for group_id in (30, 10, 20):
            groups.upsert(group_id)

        assert [gid for gid, _ in groups.items()] == [10, 20, 30]
        assert list(groups) == [10, 20, 30]
