"""
Unit tests for diff_utils module.
"""

import pytest
from pydantic import ValidationError

from config_editor.diff_utils import (
    MISSING,
    ROOT_PATH,
    DiffEntry,
    apply_diff_entries,
    build_diff_entries,
    calculate_diff,
    create_change_badge,
    format_diff_for_display,
    format_path,
    format_value,
    has_changes,
    json_equal,
    parse_path,
    summarize_diff,
)


def as_dicts(entries):
    return [entry.to_dict() for entry in entries]


class TestCalculateDiff:
    """Test class for the structural diff."""

    @pytest.mark.parametrize("document", [
        {},
        {"name": "John", "age": 30},
        {"a": {"b": [1, {"c": None}]}, "flag": False},
    ])
    def test_identical_documents_have_no_diff(self, document):
        assert calculate_diff(document, document) == []
        assert not has_changes(calculate_diff(document, dict(document)))

    def test_scalar_change(self):
        diff = calculate_diff({"timeout": 30}, {"timeout": 60})

        assert as_dicts(diff) == [{"path": "timeout", "type": "changed", "before": 30, "after": 60}]

    def test_nested_addition_reported_once(self):
        diff = calculate_diff({}, {"retry": {"max": 3, "backoffMs": 100}})

        assert as_dicts(diff) == [
            {"path": "retry", "type": "added", "after": {"max": 3, "backoffMs": 100}}
        ]

    def test_subtree_removal_reported_once(self):
        diff = calculate_diff({"retry": {"max": 3}, "keep": 1}, {"keep": 1})

        assert as_dicts(diff) == [{"path": "retry", "type": "removed", "before": {"max": 3}}]

    def test_nested_change_path(self):
        original = {"servers": [{"host": "a"}, {"host": "b"}]}
        modified = {"servers": [{"host": "a"}, {"host": "c"}]}

        diff = calculate_diff(original, modified)

        assert as_dicts(diff) == [
            {"path": "servers[1].host", "type": "changed", "before": "b", "after": "c"}
        ]

    def test_array_growth_and_shrink(self):
        grown = calculate_diff({"a": [1]}, {"a": [1, 2, 3]})
        shrunk = calculate_diff({"a": [1, 2]}, {"a": [1]})

        assert [(e.path, e.type) for e in grown] == [("a[1]", "added"), ("a[2]", "added")]
        assert as_dicts(shrunk) == [{"path": "a[1]", "type": "removed", "before": 2}]

    def test_kind_mismatch_is_a_change(self):
        diff = calculate_diff({"a": [1]}, {"a": {"x": 1}})

        assert as_dicts(diff) == [{"path": "a", "type": "changed", "before": [1], "after": {"x": 1}}]

    def test_null_is_a_value(self):
        """JSON null on either side is a real value, not an absence."""
        added = calculate_diff({}, {"a": None})
        changed = calculate_diff({"a": None}, {"a": 1})

        assert as_dicts(added) == [{"path": "a", "type": "added", "after": None}]
        assert as_dicts(changed) == [{"path": "a", "type": "changed", "before": None, "after": 1}]

    def test_int_and_float_are_equal(self):
        assert calculate_diff({"a": 1}, {"a": 1.0}) == []

    def test_bool_is_not_a_number(self):
        assert as_dicts(calculate_diff({"a": 1}, {"a": True})) == [
            {"path": "a", "type": "changed", "before": 1, "after": True}
        ]
        assert as_dicts(calculate_diff({"a": [0]}, {"a": [False]})) == [
            {"path": "a[0]", "type": "changed", "before": 0, "after": False}
        ]

    @pytest.mark.parametrize("a,b", [
        (True, 1),
        (False, 0),
        ({"x": [1, {"y": 0}]}, {"x": [1, {"y": False}]}),
    ])
    def test_json_equal_separates_bool_and_number(self, a, b):
        assert not json_equal(a, b)
        assert not json_equal(b, a)

    def test_key_order_ignored(self):
        assert calculate_diff({"a": 1, "b": 2}, {"b": 2, "a": 1}) == []

    def test_entries_hold_copies(self):
        after = {"inner": [1]}
        diff = calculate_diff({}, {"x": after})

        after["inner"].append(2)

        assert diff[0].after == {"inner": [1]}

    def test_emission_order(self):
        """Original keys come first, then keys only present in the draft."""
        diff = calculate_diff({"b": 1, "a": 1}, {"a": 2, "c": 3, "b": 2})

        assert [e.path for e in diff] == ["b", "a", "c"]

    def test_root_level_values(self):
        assert as_dicts(build_diff_entries(1, 2)) == [
            {"path": ROOT_PATH, "type": "changed", "before": 1, "after": 2}
        ]
        assert build_diff_entries(MISSING, MISSING) == []


class TestApplyDiff:
    """Applying a diff to the original reconstructs the draft."""

    @pytest.mark.parametrize("original,modified", [
        ({}, {"retry": {"max": 3}}),
        ({"a": 1, "b": [1, 2, 3]}, {"a": 2, "b": [1]}),
        ({"a": [1]}, {"a": [1, {"x": [True]}, "z"]}),
        ({"a": {"b": {"c": 1}}, "d": None}, {"a": {"b": {}}, "e": "new"}),
        ({"list": [{"k": 1}, {"k": 2}]}, {"list": [{"k": 1, "j": 0}]}),
        ({"x": "scalar"}, {"x": ["now", "array"]}),
        ({"a": 1}, {"a": True}),
    ])
    def test_round_trip(self, original, modified):
        diff = calculate_diff(original, modified)

        assert json_equal(apply_diff_entries(original, diff), modified)

    def test_original_not_mutated(self):
        original = {"a": [1, 2]}

        apply_diff_entries(original, calculate_diff(original, {"a": []}))

        assert original == {"a": [1, 2]}

    def test_entries_without_segments_use_path(self):
        entries = [DiffEntry(path="a.b[0]", type="changed", before=1, after=5)]

        assert apply_diff_entries({"a": {"b": [1]}}, entries) == {"a": {"b": [5]}}


class TestDiffEntry:
    """Test cases for the DiffEntry model."""

    def test_added_carries_only_after(self):
        with pytest.raises(ValidationError):
            DiffEntry(path="a", type="added", before=1, after=2)

    def test_removed_requires_before(self):
        with pytest.raises(ValidationError):
            DiffEntry(path="a", type="removed")

    def test_changed_requires_both(self):
        with pytest.raises(ValidationError):
            DiffEntry(path="a", type="changed", after=2)

    def test_unknown_type(self):
        with pytest.raises(ValidationError):
            DiffEntry(path="a", type="moved", before=1, after=2)

    def test_explicit_null_side_is_present(self):
        entry = DiffEntry(path="a", type="removed", before=None)

        assert entry.has_before
        assert not entry.has_after
        assert entry.to_dict() == {"path": "a", "type": "removed", "before": None}

    def test_segments_not_dumped(self):
        entry = calculate_diff({}, {"a": 1})[0]

        assert entry.segments == ("a",)
        assert "segments" not in entry.to_dict()


class TestPaths:
    """Test cases for path formatting and parsing."""

    def test_format_path(self):
        assert format_path([]) == ROOT_PATH
        assert format_path(["a", "b", 0, "c"]) == "a.b[0].c"
        assert format_path([0, "x"]) == "[0].x"

    def test_parse_path(self):
        assert parse_path("a.b[0].c") == ["a", "b", 0, "c"]
        assert parse_path(ROOT_PATH) == []
        assert parse_path("list[2][3]") == ["list", 2, 3]


class TestDisplay:
    """Test cases for diff display helpers."""

    def test_format_value(self):
        assert format_value("plain") == "plain"
        assert format_value(MISSING) == "—"
        assert format_value(None) == "null"
        assert format_value({"a": 1}) == '{\n  "a": 1\n}'
        assert format_value("abcdefghij", max_length=6) == "abc..."

    def test_create_change_badge(self):
        assert "Added" in create_change_badge("added")
        assert "Removed" in create_change_badge("removed")
        assert "Changed" in create_change_badge("changed")

    def test_no_changes_message(self):
        assert format_diff_for_display([]) == "✅ **No changes detected**"

    def test_display_lists_every_entry(self):
        diff = calculate_diff({"a": 1, "gone": True}, {"a": 2, "new": "x"})

        text = format_diff_for_display(diff)

        assert "`a`" in text
        assert "`gone`" in text
        assert "`new`" in text
        assert "before: —" in text

    def test_summarize_diff(self):
        diff = calculate_diff({"a": 1, "gone": True}, {"a": 2, "new": "x", "other": 1})

        assert summarize_diff(diff) == {"added": 2, "removed": 1, "changed": 1, "total": 4}
