"""Tests for text edits — span-checked splices of frontmatter."""

from __future__ import annotations

from collections.abc import Callable

import pytest

from vaultctl.domain.edits import (
    EditConflictError,
    TextEdit,
    apply_edit,
    auto_duplicate_survivor,
    dedupe_key,
    insert_discriminators,
    insert_key,
    keep_occurrence,
    remove_key,
    remove_list_items,
    rename_key,
    render_pair,
    render_scalar,
    replace_list_item,
    replace_value,
)
from vaultctl.domain.structural import BOM, StructuralFrontmatter, parse_structural


def _apply(raw: str, build: Callable[[StructuralFrontmatter], TextEdit]) -> str:
    return apply_edit(raw, build(parse_structural(raw)))


class TestApplyEdit:
    def test_splice(self) -> None:
        assert apply_edit("abcdef", TextEdit(2, 4, "cd", "XY")) == "abXYef"

    def test_stale_span_raises(self) -> None:
        with pytest.raises(EditConflictError, match="changed"):
            apply_edit("abcdef", TextEdit(2, 4, "zz", "XY"))

    def test_out_of_range_raises(self) -> None:
        with pytest.raises(EditConflictError, match="out of range"):
            apply_edit("abc", TextEdit(2, 10, "c", ""))


class TestRendering:
    def test_plain_scalars(self) -> None:
        assert render_scalar("raw") == "raw"
        assert render_scalar(True) == "true"
        assert render_scalar(3) == "3"
        assert render_scalar(None) == ""

    def test_iso_date_is_unquoted(self) -> None:
        assert render_scalar("2024-03-05") == "2024-03-05"

    def test_wikilink_is_quoted(self) -> None:
        rendered = render_scalar("[[Apollo]]")
        assert rendered in ("'[[Apollo]]'", '"[[Apollo]]"')

    def test_render_pair_list(self) -> None:
        assert render_pair("labels", ["a", "b"]) == "labels:\n  - a\n  - b\n"
        assert render_pair("labels", [], "\r\n") == "labels: []\r\n"
        assert render_pair("status", None) == "status:\n"


class TestValueEdits:
    def test_replace_scalar_keeps_rest_of_document(self) -> None:
        raw = "---\nstatus: Raw\nx: 1\n---\nbody\n"
        assert _apply(raw, lambda s: replace_value(s, "status", "raw")) == "---\nstatus: raw\nx: 1\n---\nbody\n"

    def test_replace_quoted_scalar(self) -> None:
        raw = "---\nestimate: '3'\n---\n"
        assert _apply(raw, lambda s: replace_value(s, "estimate", 3)) == "---\nestimate: 3\n---\n"

    def test_replace_empty_value(self) -> None:
        raw = "---\nstatus:\nx: 1\n---\n"
        assert _apply(raw, lambda s: replace_value(s, "status", "raw")) == "---\nstatus: raw\nx: 1\n---\n"

    def test_replace_effective_occurrence(self) -> None:
        raw = "---\na: 1\na: 2\n---\n"
        assert _apply(raw, lambda s: replace_value(s, "a", 5)) == "---\na: 1\na: 5\n---\n"

    def test_replace_flow_list(self) -> None:
        raw = "---\nlabels: [a, b]\n---\n"
        assert _apply(raw, lambda s: replace_value(s, "labels", ["c"])) == "---\nlabels: [c]\n---\n"

    def test_replace_missing_key_raises(self) -> None:
        with pytest.raises(EditConflictError, match="not found"):
            replace_value(parse_structural("---\na: 1\n---\n"), "b", 2)

    def test_replace_list_item(self) -> None:
        raw = "---\nlabels:\n  - a\n  - B\n---\n"
        assert _apply(raw, lambda s: replace_list_item(s, "labels", 1, "b")) == "---\nlabels:\n  - a\n  - b\n---\n"

    def test_remove_block_list_items(self) -> None:
        raw = "---\nlabels:\n  - a\n  - b\n  - a\n---\n"
        result = _apply(raw, lambda s: remove_list_items(s, "labels", [2]))
        assert result == "---\nlabels:\n  - a\n  - b\n---\n"

    def test_remove_flow_list_items(self) -> None:
        raw = "---\nlabels: [a, b, a]\n---\n"
        assert _apply(raw, lambda s: remove_list_items(s, "labels", [2])) == "---\nlabels: [a, b]\n---\n"


class TestKeyEdits:
    def test_insert_in_field_order(self) -> None:
        raw = "---\ntype: task\npriority: high\n---\n"
        result = _apply(raw, lambda s: insert_key(s, "status", "raw", ["status", "priority"]))
        assert result == "---\ntype: task\nstatus: raw\npriority: high\n---\n"

    def test_insert_after_earlier_field(self) -> None:
        raw = "---\nstatus: raw\nlabels: [a]\n---\n"
        result = _apply(raw, lambda s: insert_key(s, "due", "2024-01-01", ["status", "due", "labels"]))
        assert result == "---\nstatus: raw\ndue: 2024-01-01\nlabels: [a]\n---\n"

    def test_insert_at_end_when_order_unknown(self) -> None:
        raw = "---\ntype: task\n---\n"
        assert _apply(raw, lambda s: insert_key(s, "status", "raw")) == "---\ntype: task\nstatus: raw\n---\n"

    def test_insert_existing_raises(self) -> None:
        with pytest.raises(EditConflictError, match="already present"):
            insert_key(parse_structural("---\na: 1\n---\n"), "a", 2)

    def test_insert_keeps_crlf(self) -> None:
        raw = "---\r\ntype: task\r\n---\r\n"
        assert _apply(raw, lambda s: insert_key(s, "status", "raw")) == "---\r\ntype: task\r\nstatus: raw\r\n---\r\n"

    def test_rename(self) -> None:
        raw = "---\nStatus: raw\n---\n"
        assert _apply(raw, lambda s: rename_key(s, "Status", "status")) == "---\nstatus: raw\n---\n"

    def test_remove_block_value(self) -> None:
        raw = "---\na: 1\nlabels:\n  - x\n  - y\nb: 2\n---\n"
        assert _apply(raw, lambda s: remove_key(s, "labels")) == "---\na: 1\nb: 2\n---\n"


class TestDiscriminators:
    def test_new_block_for_bare_document(self) -> None:
        raw = "body\n"
        result = _apply(raw, lambda s: insert_discriminators(s, {"type": "task"}))
        assert result == "---\ntype: task\n---\nbody\n"

    def test_new_block_after_bom(self) -> None:
        raw = BOM + "body\n"
        result = _apply(raw, lambda s: insert_discriminators(s, {"type": "task"}))
        assert result == BOM + "---\ntype: task\n---\nbody\n"

    def test_subtype_keys_follow_existing_type(self) -> None:
        raw = "---\ntype: objective\ntitle: Launch\n---\n"
        result = _apply(raw, lambda s: insert_discriminators(s, {"type": "objective", "objective-type": "milestone"}))
        assert result == "---\ntype: objective\nobjective-type: milestone\ntitle: Launch\n---\n"

    def test_nothing_missing_raises(self) -> None:
        with pytest.raises(EditConflictError):
            insert_discriminators(parse_structural("---\ntype: task\n---\n"), {"type": "task"})

    def test_scalar_block_raises(self) -> None:
        with pytest.raises(EditConflictError, match="not a mapping"):
            insert_discriminators(parse_structural("---\njust some text\n---\nbody\n"), {"type": "task"})


class TestDuplicates:
    RAW = "---\na: 1\nb: 2\na: 3\n---\n"

    def test_keep_first(self) -> None:
        assert _apply(self.RAW, lambda s: dedupe_key(s, "a", "first")) == "---\na: 1\nb: 2\n---\n"

    def test_keep_last(self) -> None:
        assert _apply(self.RAW, lambda s: dedupe_key(s, "a", "last")) == "---\nb: 2\na: 3\n---\n"

    def test_keep_occurrence(self) -> None:
        raw = "---\na: 1\na: 2\na: 3\n---\n"
        assert _apply(raw, lambda s: keep_occurrence(s, "a", 1)) == "---\na: 2\n---\n"

    def test_auto_survivor_equal_values(self) -> None:
        occurrences = parse_structural("---\na: x\na:\na: x\n---\n").occurrences("a")
        assert auto_duplicate_survivor(occurrences) == 2

    def test_auto_survivor_all_empty(self) -> None:
        occurrences = parse_structural("---\na:\na: ''\n---\n").occurrences("a")
        assert auto_duplicate_survivor(occurrences) == 1

    def test_auto_survivor_conflict(self) -> None:
        occurrences = parse_structural(self.RAW).occurrences("a")
        assert auto_duplicate_survivor(occurrences) is None

    def test_not_duplicated_raises(self) -> None:
        with pytest.raises(EditConflictError, match="no longer duplicated"):
            dedupe_key(parse_structural("---\na: 1\n---\n"), "a", "first")
