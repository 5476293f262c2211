"""
Unit Tests: Three-Way Merge

Tests:
    - diff over mappings, sequences and scalars
    - apply_changes on copies, with missing intermediate containers
    - merge of a caller's edits onto a concurrently changed record
"""

import pytest

from backedsession.session.merge import (
    Change,
    ChangeKind,
    apply_changes,
    diff,
    merge,
)


class TestDiff:
    """Tests for diff()."""

    def test_identical_is_empty(self):
        doc = {"a": 1, "b": {"c": [1, 2]}}
        assert diff(doc, {"a": 1, "b": {"c": [1, 2]}}) == []

    def test_mapping_changes(self):
        changes = diff({"keep": 1, "gone": 2, "edit": 3}, {"keep": 1, "edit": 4, "added": 5})

        assert Change(ChangeKind.DELETED, ("gone",), old=2) in changes
        assert Change(ChangeKind.EDITED, ("edit",), old=3, new=4) in changes
        assert Change(ChangeKind.NEW, ("added",), new=5) in changes
        assert len(changes) == 3

    def test_nested_path(self):
        changes = diff({"cookie": {"expires": "a"}}, {"cookie": {"expires": "b"}})
        assert changes == [Change(ChangeKind.EDITED, ("cookie", "expires"), old="a", new="b")]

    def test_sequence_append(self):
        changes = diff({"l": [1]}, {"l": [1, 2, 3]})
        assert changes == [
            Change(ChangeKind.NEW, ("l", 1), new=2),
            Change(ChangeKind.NEW, ("l", 2), new=3),
        ]

    def test_sequence_truncate_deletes_highest_index_first(self):
        changes = diff({"l": [1, 2, 3]}, {"l": [1]})
        assert [c.path for c in changes] == [("l", 2), ("l", 1)]
        assert all(c.kind is ChangeKind.DELETED for c in changes)

    def test_type_change_is_edit(self):
        assert diff({"flag": True}, {"flag": 1}) == [
            Change(ChangeKind.EDITED, ("flag",), old=True, new=1)
        ]
        assert diff({"v": {"x": 1}}, {"v": [1]}) == [
            Change(ChangeKind.EDITED, ("v",), old={"x": 1}, new=[1])
        ]

    def test_inputs_not_mutated(self):
        before = {"a": {"b": 1}}
        after = {"a": {"b": 2}}
        changes = diff(before, after)
        after["a"]["b"] = 99
        assert changes[0].new == 2
        assert before == {"a": {"b": 1}}


class TestApplyChanges:
    """Tests for apply_changes()."""

    def test_returns_copy(self):
        target = {"a": {"b": 1}}
        result = apply_changes(target, [Change(ChangeKind.EDITED, ("a", "b"), old=1, new=2)])

        assert result == {"a": {"b": 2}}
        assert target == {"a": {"b": 1}}

    def test_creates_missing_containers(self):
        result = apply_changes({}, [Change(ChangeKind.NEW, ("cookie", "path"), new="/")])
        assert result == {"cookie": {"path": "/"}}

    def test_delete_missing_path_is_noop(self):
        result = apply_changes({"a": 1}, [Change(ChangeKind.DELETED, ("x", "y"), old=1)])
        assert result == {"a": 1}

    def test_list_append_beyond_end(self):
        result = apply_changes({"l": []}, [Change(ChangeKind.NEW, ("l", 3), new="x")])
        assert result == {"l": ["x"]}


class TestMerge:
    """Tests for merge()."""

    def test_preserves_concurrent_touch(self):
        snapshot = {"cookie": {"expires": "2024-01-01T00:00:00.000Z", "originalMaxAge": 1000}, "views": 1}
        modified = {"cookie": {"expires": "2024-01-01T00:00:00.000Z", "originalMaxAge": 1000}, "views": 2}
        current = {"cookie": {"expires": "2024-01-01T00:05:00.000Z", "originalMaxAge": 1000}, "views": 1}

        merged = merge(snapshot, modified, current)

        assert merged["views"] == 2
        assert merged["cookie"]["expires"] == "2024-01-01T00:05:00.000Z"

    def test_first_write_stores_everything(self):
        payload = {"user": "ada", "cookie": {"originalMaxAge": 60000, "expires": None}}
        assert merge(None, payload, None) == payload

    def test_first_write_onto_existing_record(self):
        merged = merge(None, {"user": "ada"}, {"cart": [1]})
        assert merged == {"user": "ada", "cart": [1]}

    def test_caller_delete_wins_over_untouched_field(self):
        merged = merge({"a": 1, "b": 2}, {"b": 2}, {"a": 1, "b": 2, "c": 3})
        assert merged == {"b": 2, "c": 3}

    @pytest.mark.parametrize("current", [None, {}])
    def test_missing_current(self, current):
        assert merge({"a": 1}, {"a": 2}, current) == {"a": 2}
