"""
Pipe-table parsing and serialization.

Tables are embedded as header-labeled statements rather than raw pipe
text so that a row like ``| സ്കൂൾ കെട്ടിടം | ₹30 ലക്ഷം |`` under headers
``പദ്ധതി | ബജറ്റ്`` becomes::

    Columns: പദ്ധതി, ബജറ്റ്
    പദ്ധതി is സ്കൂൾ കെട്ടിടം; ബജറ്റ് is ₹30 ലക്ഷം.
"""

import re
from typing import List

_SEPARATOR_CELL = re.compile(r"^[-\s:]*$")


def is_table_line(line: str) -> bool:
    return "|" in line and len(line.split("|")) > 2


def parse_row(line: str) -> List[str]:
    stripped = line.strip()
    if stripped.startswith("|"):
        stripped = stripped[1:]
    if stripped.endswith("|"):
        stripped = stripped[:-1]
    return [cell.strip() for cell in stripped.split("|")]


def is_separator_row(cells: List[str]) -> bool:
    return bool(cells) and all(_SEPARATOR_CELL.match(cell) for cell in cells)


def parse_table(lines: List[str]) -> List[List[str]]:
    """Parse pipe-table lines into rows of cells, dropping separator rows."""
    rows = [parse_row(line) for line in lines if line.strip()]
    return [row for row in rows if not is_separator_row(row)]


def serialize_table(rows: List[List[str]], column_label: str = "Column") -> str:
    """Flatten a table into one header-labeled statement per data row.

    The first row is the header. Missing or empty headers fall back to
    ``Column N``; empty cells are skipped.
    """
    if not rows:
        return ""

    header = rows[0]
    width = max(len(row) for row in rows)
    labels = [
        header[i] if i < len(header) and header[i] else f"{column_label} {i + 1}"
        for i in range(width)
    ]

    lines = ["Columns: " + ", ".join(labels)]
    for row in rows[1:]:
        statements = [
            f"{labels[i]} is {cell}" for i, cell in enumerate(row) if cell
        ]
        if statements:
            lines.append("; ".join(statements) + ".")
    return "\n".join(lines)
