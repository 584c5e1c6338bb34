"""Tests for the replace engine."""

from __future__ import annotations

import pytest

from extragrid.exceptions import ValidationError
from extragrid.replace import ReplaceEngine, ReplaceOptions, TextReplacement, ValueReplacement
from extragrid.search import GridSearch, Scope, SearchOptions
from extragrid.transport import LocalFileTransport
from extragrid.types import Match
from tests.fakes import FlakyTransport


def match(sheet: str, cell: str, value: object, sheet_id: str | None = None) -> Match:
    return Match(sheet=sheet, cell=cell, value=value, old_value=value, sheet_id=sheet_id)


class TestTextReplacement:
    """Tests for computing replacement text."""

    def test_replaces_all_case_insensitively(self) -> None:
        rule = TextReplacement("total", "sum")
        assert rule.apply("Total and TOTAL") == "sum and sum"

    def test_case_sensitive(self) -> None:
        rule = TextReplacement("total", "sum", case_sensitive=True)
        assert rule.apply("Total and total") == "Total and sum"

    def test_first_only(self) -> None:
        rule = TextReplacement("a", "b", replace_mode="first")
        assert rule.apply("a-a-a") == "b-a-a"

    def test_whole_word(self) -> None:
        rule = TextReplacement("cat", "dog", whole_word=True)
        assert rule.apply("cat catalog cat.") == "dog catalog dog."

    def test_whole_cell_only(self) -> None:
        rule = TextReplacement("North", "N", replace_inside=False)
        assert rule.apply("north") == "N"
        assert rule.apply("North total") == "North total"

    def test_special_characters_are_literal(self) -> None:
        rule = TextReplacement("$1.00 (net)", r"\g<0>")
        assert rule.apply("Price: $1.00 (net)") == r"Price: \g<0>"

    def test_numbers_become_text(self) -> None:
        assert TextReplacement("2024", "2025").apply(2024) == "2025"

    def test_no_match_returns_original(self) -> None:
        value = 42
        assert TextReplacement("x", "y").apply(value) is value

    def test_validation(self) -> None:
        with pytest.raises(ValidationError):
            TextReplacement("", "y")
        with pytest.raises(ValidationError):
            TextReplacement("x", "y", replace_mode="last")


class TestReplaceOptions:
    def test_defaults(self) -> None:
        options = ReplaceOptions()
        assert options.batch_size == 20
        assert options.highlight_color == "#FFFF00"
        assert not options.highlight_changes

    @pytest.mark.parametrize("size", [0, 21])
    def test_batch_size_bounds(self, size: int) -> None:
        with pytest.raises(ValidationError):
            ReplaceOptions(batch_size=size)

    def test_color(self) -> None:
        with pytest.raises(ValidationError):
            ReplaceOptions(highlight_color="yellow")


class TestApplyReplace:
    """Tests for writing replacements back."""

    @pytest.mark.asyncio
    async def test_writes_and_reports_changes(self, transport: LocalFileTransport) -> None:
        engine = ReplaceEngine(transport)
        matches = [match("Summary", "A1", "Total Sales"), match("Summary", "A3", "Grand total")]
        outcome = await engine.apply_replace(
            "d1", "iBudget", matches, TextReplacement("total", "Sum")
        )
        assert [(c.cell, c.old_value, c.new_value) for c in outcome.changes] == [
            ("A1", "Total Sales", "Sum Sales"),
            ("A3", "Grand total", "Grand Sum"),
        ]
        assert outcome.errors == []
        assert outcome.summary.total == 2
        assert outcome.summary.successful == 2
        assert transport.cell("d1", "iBudget", "Summary", "A3") == "Grand Sum"

    @pytest.mark.asyncio
    async def test_uses_live_values_and_offsets(self, transport: LocalFileTransport) -> None:
        engine = ReplaceEngine(transport)
        outcome = await engine.apply_replace(
            "d1", "iBudget", [match("Data", "C6", "North total", "sData")],
            TextReplacement("north", "South"),
        )
        assert [c.cell for c in outcome.changes] == ["C6"]
        assert transport.cell("d1", "iBudget", "sData", "C6") == "South total"

    @pytest.mark.asyncio
    async def test_second_pass_changes_nothing(self, transport: LocalFileTransport) -> None:
        search = GridSearch(transport)
        engine = ReplaceEngine(transport)
        matches = await search.find_matches(
            "d1", "iBudget", Scope.ALL_SHEETS, SearchOptions(search_term="total")
        )
        rule = TextReplacement("total", "sum")

        first = await engine.apply_replace("d1", "iBudget", matches, rule)
        second = await engine.apply_replace("d1", "iBudget", matches, rule)

        assert len(first.changes) == 3
        assert len(second.changes) == 0
        assert second.summary.skipped == 3
        assert second.summary.total == 3

    @pytest.mark.asyncio
    async def test_batches_by_size(self, transport: LocalFileTransport) -> None:
        engine = ReplaceEngine(transport)
        matches = [
            match("Summary", "A1", "Total Sales"),
            match("Summary", "B1", "Region"),
            match("Summary", "B2", "North"),
        ]
        outcome = await engine.apply_replace(
            "d1", "iBudget", matches, ValueReplacement("x"), ReplaceOptions(batch_size=2)
        )
        assert outcome.summary.successful == 3
        assert transport.calls["batch_patch"] == 2

    @pytest.mark.asyncio
    async def test_groups_by_sheet(self, transport: LocalFileTransport) -> None:
        engine = ReplaceEngine(transport)
        matches = [
            match("Summary", "A1", "Total Sales"),
            match("Data", "C6", "North total"),
            match("Summary", "A3", "Grand total"),
        ]
        outcome = await engine.apply_replace(
            "d1", "iBudget", matches, TextReplacement("total", "T")
        )
        assert [(c.sheet, c.cell) for c in outcome.changes] == [
            ("Summary", "A1"),
            ("Summary", "A3"),
            ("Data", "C6"),
        ]
        assert transport.calls["get_used_range"] == 2

    @pytest.mark.asyncio
    async def test_value_replacement(self, transport: LocalFileTransport) -> None:
        engine = ReplaceEngine(transport)
        outcome = await engine.apply_replace(
            "d1",
            "iBudget",
            [match("Entities", "C2", "Acme Corp"), match("Entities", "C3", "Globex")],
            ValueReplacement("Globex"),
        )
        assert [c.cell for c in outcome.changes] == ["C2"]
        assert [m.cell for m in outcome.skipped] == ["C3"]
        assert transport.cell("d1", "iBudget", "Entities", "C2") == "Globex"

    @pytest.mark.asyncio
    async def test_label_captures_are_written_once(self) -> None:
        transport = LocalFileTransport(
            {
                "drives": [
                    {
                        "id": "d",
                        "name": "Drive",
                        "children": [
                            {
                                "id": "wb",
                                "name": "Book.xlsx",
                                "sheets": [
                                    {
                                        "id": "s1",
                                        "name": "Sheet1",
                                        "values": [
                                            ["", "Entity", ""],
                                            ["Entity Name:", "Acme", ""],
                                        ],
                                    }
                                ],
                            }
                        ],
                    }
                ]
            }
        )
        matches = await GridSearch(transport).find_matches(
            "d", "wb", Scope.ENTITY_NAME, SearchOptions()
        )
        outcome = await ReplaceEngine(transport).apply_replace(
            "d", "wb", matches, ValueReplacement("Initech")
        )
        assert outcome.summary.total == 1
        assert [c.cell for c in outcome.changes] == ["B2"]
        assert len(transport.writes) == 1
        assert transport.cell("d", "wb", "Sheet1", "B2") == "Initech"


class TestFaultIsolation:
    """Tests for partial failures during replace."""

    @pytest.mark.asyncio
    async def test_batch_failure_falls_back_to_single_cells(self) -> None:
        transport = FlakyTransport(fail_batch=True, fail_cells={"A3"})
        engine = ReplaceEngine(transport)
        matches = [
            match("Summary", "A1", "Total Sales"),
            match("Summary", "A3", "Grand total"),
            match("Data", "C6", "North total"),
        ]
        outcome = await engine.apply_replace(
            "d1", "iBudget", matches, TextReplacement("total", "sum")
        )
        assert [c.cell for c in outcome.changes] == ["A1", "C6"]
        assert [(e.sheet, e.cell) for e in outcome.errors] == [("Summary", "A3")]
        assert "Cell locked" in outcome.errors[0].error
        summary = outcome.summary
        assert summary.successful + summary.failed + summary.skipped == summary.total
        assert transport.calls["patch_range"] == 3

    @pytest.mark.asyncio
    async def test_rejected_batch_entries_become_errors(self) -> None:
        transport = FlakyTransport(batch_rejects={"A1"})
        engine = ReplaceEngine(transport)
        matches = [match("Summary", "A1", "Total Sales"), match("Summary", "A3", "Grand total")]
        outcome = await engine.apply_replace(
            "d1", "iBudget", matches, TextReplacement("total", "sum")
        )
        assert [c.cell for c in outcome.changes] == ["A3"]
        assert [(e.cell, e.error) for e in outcome.errors] == [("A1", "Invalid value")]
        assert transport.calls["patch_range"] == 0

    @pytest.mark.asyncio
    async def test_sheet_read_failure_is_one_sheet_level_error(self) -> None:
        transport = FlakyTransport(fail_used_range={"Summary"})
        engine = ReplaceEngine(transport)
        matches = [
            match("Summary", "A1", "Total Sales"),
            match("Summary", "A3", "Grand total"),
            match("Data", "C6", "North total", "sData"),
        ]
        outcome = await engine.apply_replace(
            "d1", "iBudget", matches, TextReplacement("total", "sum")
        )
        assert len(outcome.errors) == 1
        assert outcome.errors[0].sheet == "Summary"
        assert outcome.errors[0].cell is None
        summary = outcome.summary
        assert summary.total == 3
        assert summary.successful == 1
        assert summary.successful + summary.failed < summary.total

    @pytest.mark.asyncio
    async def test_highlight_failure_does_not_affect_accounting(self) -> None:
        transport = FlakyTransport(fail_fill=True)
        engine = ReplaceEngine(transport)
        outcome = await engine.apply_replace(
            "d1",
            "iBudget",
            [match("Summary", "A1", "Total Sales")],
            TextReplacement("total", "sum"),
            ReplaceOptions(highlight_changes=True),
        )
        assert outcome.summary.successful == 1
        assert outcome.errors == []
        assert transport.calls["set_fill"] == 1

    @pytest.mark.asyncio
    async def test_highlights_changed_cells(self, transport: LocalFileTransport) -> None:
        engine = ReplaceEngine(transport)
        await engine.apply_replace(
            "d1",
            "iBudget",
            [match("Summary", "A1", "Total Sales"), match("Summary", "B1", "Region")],
            TextReplacement("total", "sum"),
            ReplaceOptions(highlight_changes=True, highlight_color="#00FF00"),
        )
        assert transport.fills == [{"sheet": "Summary", "address": "A1", "color": "#00FF00"}]
