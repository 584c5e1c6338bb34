"""Tests for the command line interface."""

from __future__ import annotations

import json
import sys
from pathlib import Path

import pytest
from loguru import logger

from extragrid.__main__ import main
from extragrid.config import get_settings


@pytest.fixture(autouse=True)
def cli_env(monkeypatch: pytest.MonkeyPatch, tmp_path: Path):
    monkeypatch.delenv("EXTRAGRID_ACCESS_TOKEN", raising=False)
    monkeypatch.setenv("EXTRAGRID_LOG_LEVEL", "ERROR")
    monkeypatch.chdir(tmp_path)
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()
    logger.remove()
    logger.add(sys.stderr)


def run(golden_path: Path, *argv: str) -> int:
    return main(["--local", str(golden_path), *argv])


class TestResolveCommand:
    """Tests for `extragrid resolve`."""

    def test_prints_identifiers(self, golden_path: Path, capsys: pytest.CaptureFixture) -> None:
        code = run(
            golden_path,
            "resolve",
            "--drive",
            "Documents",
            "--file",
            "Budget.xlsx",
            "--sheet",
            "Data",
        )
        assert code == 0
        payload = json.loads(capsys.readouterr().out)
        assert payload["item_id"] == "iBudget"
        assert payload["sheet_id"] == "sData"

    def test_ambiguous_exit_code(self, golden_path: Path, capsys: pytest.CaptureFixture) -> None:
        code = run(golden_path, "resolve", "--drive", "Documents", "--file", "file.xlsx")
        assert code == 2
        captured = capsys.readouterr()
        assert sorted(json.loads(captured.out)["paths"]) == ["/A/file.xlsx", "/B/file.xlsx"]
        assert "Multiple" in captured.err

    def test_not_found_exit_code(self, golden_path: Path, capsys: pytest.CaptureFixture) -> None:
        code = run(golden_path, "resolve", "--drive", "Nope")
        assert code == 1
        assert "Available: Documents, Archive" in capsys.readouterr().err

    def test_missing_token_without_local(self, capsys: pytest.CaptureFixture) -> None:
        assert main(["resolve", "--drive", "Documents"]) == 1
        assert "access token" in capsys.readouterr().err


class TestFindCommand:
    """Tests for `extragrid find`."""

    def test_preview(self, golden_path: Path, capsys: pytest.CaptureFixture) -> None:
        code = run(
            golden_path,
            "find",
            "--drive", "Documents",
            "--file", "Budget.xlsx",
            "--scope", "all_sheets",
            "--term", "north",
        )
        assert code == 0
        payload = json.loads(capsys.readouterr().out)
        assert payload["total_matches"] == 2
        assert payload["by_sheet"] == {"Summary": 1, "Data": 1}

    def test_selectable(self, golden_path: Path, capsys: pytest.CaptureFixture) -> None:
        code = run(
            golden_path,
            "find",
            "--drive", "Documents",
            "--file", "Budget.xlsx",
            "--scope", "label_neighbor",
            "--label", "Total Sales",
            "--selectable",
        )
        assert code == 0
        payload = json.loads(capsys.readouterr().out)
        assert [entry["match_id"] for entry in payload] == ["Summary!A2"]

    def test_validation_error(self, golden_path: Path, capsys: pytest.CaptureFixture) -> None:
        code = run(golden_path, "find", "--drive", "Documents", "--file", "Budget.xlsx")
        assert code == 1
        assert "search_term is required" in capsys.readouterr().err


class TestReplaceCommand:
    """Tests for `extragrid replace`."""

    def test_replace_text(self, golden_path: Path, capsys: pytest.CaptureFixture) -> None:
        code = run(
            golden_path,
            "replace",
            "--drive", "Documents",
            "--file", "Budget.xlsx",
            "--scope", "all_sheets",
            "--term", "north",
            "--with", "N",
            "--select", "Data!C6",
        )
        assert code == 0
        payload = json.loads(capsys.readouterr().out)
        assert payload["summary"]["successful"] == 1
        assert payload["changes"][0]["new_value"] == "N total"

    def test_label_scope_needs_value(
        self, golden_path: Path, capsys: pytest.CaptureFixture
    ) -> None:
        code = run(
            golden_path,
            "replace",
            "--drive", "Documents",
            "--file", "Budget.xlsx",
            "--scope", "entity_name",
        )
        assert code == 1
        assert "--value is required" in capsys.readouterr().err


class TestRelatedCommand:
    """Tests for `extragrid related`."""

    def test_lists_suggestions(self, golden_path: Path, capsys: pytest.CaptureFixture) -> None:
        code = run(golden_path, "related", "--drive", "Documents", "2024", "2025")
        assert code == 0
        payload = json.loads(capsys.readouterr().out)
        assert [(s["current_name"], s["suggested_name"]) for s in payload] == [("2024", "2025")]


class TestRenameCommand:
    """Tests for `extragrid rename`."""

    def test_rename_file(self, golden_path: Path, capsys: pytest.CaptureFixture) -> None:
        code = run(
            golden_path,
            "rename",
            "--drive", "Documents",
            "--name", "file.xlsx",
            "--path", "/B/file.xlsx",
            "--new-name", "b-file.xlsx",
        )
        assert code == 0
        payload = json.loads(capsys.readouterr().out)
        assert payload["id"] == "iB"
        assert (payload["kind"], payload["new_name"]) == ("file", "b-file.xlsx")

    def test_rename_sheet(self, golden_path: Path, capsys: pytest.CaptureFixture) -> None:
        code = run(
            golden_path,
            "rename",
            "--drive", "Documents",
            "--kind", "sheet",
            "--file", "Budget.xlsx",
            "--name", "Data",
            "--new-name", "Figures",
        )
        assert code == 0
        payload = json.loads(capsys.readouterr().out)
        assert payload["workbook_id"] == "iBudget"
        assert payload["old_name"] == "Data"

    def test_sheet_rename_needs_file(
        self, golden_path: Path, capsys: pytest.CaptureFixture
    ) -> None:
        code = run(
            golden_path,
            "rename",
            "--drive", "Documents",
            "--kind", "sheet",
            "--name", "Data",
            "--new-name", "Figures",
        )
        assert code == 1
        assert "file_name is required" in capsys.readouterr().err

    def test_conflict(self, golden_path: Path, capsys: pytest.CaptureFixture) -> None:
        code = run(
            golden_path,
            "rename",
            "--drive", "Documents",
            "--kind", "folder",
            "--name", "A",
            "--new-name", "b",
        )
        assert code == 1
        assert "already exists" in capsys.readouterr().err


class TestRangeCommands:
    """Tests for `extragrid read` and `extragrid write`."""

    def test_read(self, golden_path: Path, capsys: pytest.CaptureFixture) -> None:
        code = run(
            golden_path,
            "read",
            "--drive", "Documents",
            "--file", "Budget.xlsx",
            "--range", "Data!C6:D7",
        )
        assert code == 0
        payload = json.loads(capsys.readouterr().out)
        assert payload["values"] == [["North total", 10], ["South", 20]]

    def test_write(self, golden_path: Path, capsys: pytest.CaptureFixture) -> None:
        code = run(
            golden_path,
            "write",
            "--drive", "Documents",
            "--file", "Budget.xlsx",
            "--range", "Summary!B2",
            "--values", '[["West"]]',
        )
        assert code == 0
        payload = json.loads(capsys.readouterr().out)
        assert payload["old_values"] == [["North"]]
        assert payload["values"] == [["West"]]

    def test_write_rejects_bad_json(
        self, golden_path: Path, capsys: pytest.CaptureFixture
    ) -> None:
        code = run(
            golden_path,
            "write",
            "--drive", "Documents",
            "--file", "Budget.xlsx",
            "--range", "A1",
            "--values", "[1, 2",
        )
        assert code == 1
        assert "not valid JSON" in capsys.readouterr().err


class TestJsonLogs:
    """Logs never mix with the JSON printed on stdout."""

    def test_stdout_is_only_the_payload(
        self, golden_path: Path, capsys: pytest.CaptureFixture
    ) -> None:
        code = main(
            [
                "--local", str(golden_path),
                "--json-logs",
                "--log-level", "debug",
                "resolve",
                "--drive", "Documents",
                "--file", "Budget.xlsx",
            ]
        )
        assert code == 0
        captured = capsys.readouterr()
        assert json.loads(captured.out)["item_id"] == "iBudget"
        log_lines = [json.loads(line) for line in captured.err.splitlines() if line]
        assert any(entry["message"] == "Resolved request" for entry in log_lines)
