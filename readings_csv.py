from __future__ import annotations

import csv
import math
from pathlib import Path

from billsplit.api.expression import ExpressionError, evaluate_expression


NAME_COLUMNS = ("Unit", "Name", "Tenant")
READING_COLUMNS = ("kWh", "Consumption")


def _pick_column(headers: list[str], candidates: tuple[str, ...]) -> str | None:
    lowered = {header.lower(): header for header in headers}
    for candidate in candidates:
        if candidate.lower() in lowered:
            return lowered[candidate.lower()]
    return None


def _parse_reading(raw: str, line_number: int) -> tuple[float, str | None]:
    text = (raw or "").strip()
    if not text:
        return 0.0, None
    try:
        value = float(text)
        if math.isfinite(value):
            return max(0.0, value), None
    except ValueError:
        pass
    try:
        return evaluate_expression(text), text
    except ExpressionError as exc:
        raise ValueError(f"Line {line_number}: invalid reading {text!r} ({exc})") from exc


def parse_readings_csv(path: Path) -> list[dict]:
    """Read one row per tenant: a unit name column and a kWh column.

    Readings may be plain numbers or ``+ - * /`` expressions such as
    ``1520-1270``; the expression text is kept alongside the value.
    """
    with path.open("r", encoding="utf-8-sig", newline="") as handle:
        reader = csv.DictReader(handle)
        if reader.fieldnames is None:
            raise ValueError(f"CSV has no header row: {path}")

        headers = [header.strip() for header in reader.fieldnames]
        name_column = _pick_column(headers, NAME_COLUMNS)
        reading_column = _pick_column(headers, READING_COLUMNS)
        if reading_column is None:
            expected = " or ".join(READING_COLUMNS)
            raise ValueError(f"CSV missing required column: {expected}")

        readings: list[dict] = []
        for raw_row in reader:
            line_number = reader.line_num
            row = {str(key).strip(): (value or "") for key, value in raw_row.items() if key is not None}
            name = row.get(name_column, "").strip() if name_column else ""
            raw_reading = row.get(reading_column, "")
            if not name and not raw_reading.strip():
                continue
            consumption, expression = _parse_reading(raw_reading, line_number)
            readings.append({"name": name, "consumption": consumption, "expression": expression})

    return readings
