from __future__ import annotations

import csv
import io
from typing import Iterable, Sequence


def read_csv_rows(text: str) -> list[list[str]]:
    """Rows of a decoded CSV upload, blank rows dropped and cells stripped.

    Quoted cells may hold commas, doubled quotes and line breaks.
    """

    reader = csv.reader(io.StringIO(text.lstrip("\ufeff"), newline=""), skipinitialspace=True)
    rows: list[list[str]] = []
    for row in reader:
        cells = [cell.strip() for cell in row]
        if any(cells):
            rows.append(cells)
    return rows


def write_quoted_csv(header: Sequence[str], rows: Iterable[Sequence[object]]) -> bytes:
    """Render rows with every cell quoted, encoded for spreadsheet tools."""

    out = io.StringIO()
    writer = csv.writer(out, quoting=csv.QUOTE_ALL, lineterminator="\n")
    writer.writerow(header)
    for row in rows:
        writer.writerow(["" if cell is None else cell for cell in row])
    return out.getvalue().encode("utf-8-sig")
