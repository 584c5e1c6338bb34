"""
Utility functions for extragrid.

Provides A1 coordinate conversion and range-address parsing.
"""

from __future__ import annotations

import re
from typing import TypeVar

T = TypeVar("T")

_CELL_RE = re.compile(r"^\$?([A-Za-z]+)\$?(\d+)$")


def column_index_to_letter(index: int) -> str:
    """Convert a zero-based column index to A1 notation letter(s).

    Examples:
        0 -> A, 1 -> B, 25 -> Z, 26 -> AA, 27 -> AB, 702 -> AAA
    """
    if index < 0:
        raise ValueError(f"Column index must be non-negative: {index}")
    result = ""
    while True:
        result = chr(ord("A") + (index % 26)) + result
        index = index // 26 - 1
        if index < 0:
            break
    return result


def letter_to_column_index(letter: str) -> int:
    """Convert A1 notation letter(s) to a zero-based column index.

    Examples:
        A -> 0, B -> 1, Z -> 25, AA -> 26, AB -> 27, AAA -> 702
    """
    result = 0
    for char in letter.upper():
        result = result * 26 + (ord(char) - ord("A") + 1)
    return result - 1


def cell_to_a1(row_index: int, col_index: int) -> str:
    """Convert zero-based row and column indices to A1 notation.

    Examples:
        (0, 0) -> A1, (0, 1) -> B1, (9, 2) -> C10
    """
    return f"{column_index_to_letter(col_index)}{row_index + 1}"


def a1_to_cell(a1: str) -> tuple[int, int]:
    """Convert A1 notation to zero-based (row_index, col_index).

    Absolute markers (``$``) are ignored.

    Examples:
        A1 -> (0, 0), B1 -> (0, 1), $C$10 -> (9, 2)
    """
    match = _CELL_RE.match(a1.strip())
    if not match:
        raise ValueError(f"Invalid A1 notation: {a1}")
    col_letter, row_str = match.groups()
    return int(row_str) - 1, letter_to_column_index(col_letter)


def parse_sheet_and_address(range_spec: str) -> tuple[str | None, str]:
    """Split ``Sheet!A1:B2`` into (sheet_name, address).

    Quotes around the sheet name are removed. Without a ``!`` the whole
    spec is the address and the sheet is None.

    Examples:
        "Sheet1!A2:D20" -> ("Sheet1", "A2:D20")
        "'My Sheet'!B3" -> ("My Sheet", "B3")
        "A2:D20" -> (None, "A2:D20")
    """
    spec = range_spec.strip()
    if "!" not in spec:
        return None, spec
    sheet, address = spec.rsplit("!", 1)
    sheet = sheet.strip()
    if len(sheet) >= 2 and sheet[0] == "'" and sheet[-1] == "'":
        sheet = sheet[1:-1].replace("''", "'")
    else:
        sheet = sheet.replace("'", "")
    return sheet or None, address.strip()


def range_anchor(address: str) -> tuple[int, int]:
    """Return the zero-based (row, col) of a range's top-left cell.

    Accepts sheet-qualified addresses as returned by the Graph API
    (``Sheet1!B2:D10``). Column-only (``A:C``) and row-only (``2:5``) forms
    anchor at row 0 / column 0 respectively. Anything unparseable anchors
    at A1.

    Examples:
        "Sheet1!B2:D10" -> (1, 1)
        "C5" -> (4, 2)
        "B:D" -> (0, 1)
    """
    _, bare = parse_sheet_and_address(address) if address else (None, "")
    start = bare.split(":", 1)[0].replace("$", "").strip()
    if not start:
        return 0, 0
    match = re.match(r"^([A-Za-z]*)(\d*)$", start)
    if not match:
        return 0, 0
    col_letter, row_str = match.groups()
    row = int(row_str) - 1 if row_str else 0
    col = letter_to_column_index(col_letter) if col_letter else 0
    return max(row, 0), max(col, 0)


def chunked(items: list[T], size: int) -> list[list[T]]:
    """Split ``items`` into consecutive lists of at most ``size`` elements."""
    if size < 1:
        raise ValueError("size must be at least 1")
    return [items[i : i + size] for i in range(0, len(items), size)]


def cell_text(value: object) -> str:
    """Render a cell value as text; None becomes the empty string."""
    if value is None:
        return ""
    if isinstance(value, bool):
        return "TRUE" if value else "FALSE"
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    return str(value)


def is_empty(value: object) -> bool:
    return value is None or (isinstance(value, str) and value.strip() == "")


def range_shape(address: str) -> tuple[int, int]:
    """Return (rows, columns) covered by a bare or sheet-qualified A1 range.

    Raises:
        ValueError: The address is not ``A1`` or ``A1:B2`` shaped.

    Examples:
        "A1" -> (1, 1), "Sheet1!B2:D10" -> (9, 3)
    """
    _, bare = parse_sheet_and_address(address)
    start, _, end = bare.partition(":")
    r1, c1 = a1_to_cell(start)
    r2, c2 = a1_to_cell(end) if end else (r1, c1)
    return abs(r2 - r1) + 1, abs(c2 - c1) + 1
