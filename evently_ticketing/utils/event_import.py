"""
CSV parsing for bulk event import.

Headers are matched case-insensitively with spaces read as underscores. A
``date`` column and an optional ``time`` column are merged into
``event_date``; empty cells are dropped so defaults apply.
"""

import csv
import io
from typing import Any, Dict, List

from .exceptions import ValidationError

# The header line is row 1 of the sheet
FIRST_DATA_ROW = 2


def _normalize_header(header: str) -> str:
    return header.strip().lower().replace(" ", "_")


def parse_events_csv(content: bytes) -> List[Dict[str, Any]]:
    """
    Read event rows from an uploaded CSV file.

    Raises:
        ValidationError: When the file is not UTF-8 text or has no header row
    """
    try:
        text = content.decode("utf-8-sig")
    except UnicodeDecodeError:
        raise ValidationError("Event file must be UTF-8 encoded CSV")

    reader = csv.DictReader(io.StringIO(text))
    if not reader.fieldnames:
        raise ValidationError("Event file has no header row")
    reader.fieldnames = [_normalize_header(name) for name in reader.fieldnames]

    rows = []
    for raw in reader:
        row = {
            key: value.strip()
            for key, value in raw.items()
            if key and isinstance(value, str) and value.strip()
        }
        date = row.pop("date", None)
        time = row.pop("time", None)
        if date and "event_date" not in row:
            row["event_date"] = f"{date}T{time}" if time else date
        rows.append(row)
    return rows
