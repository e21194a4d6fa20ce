"""
Shared utility functions for Intune Sync Tool.
"""

from __future__ import annotations

import csv
import re
from datetime import datetime, timezone
from pathlib import Path
from typing import Iterable, List, Optional

from .config import ConfigurationError

# Graph reports never-synced devices with this placeholder instead of null.
_NEVER_SYNCED = "0001-01-01T00:00:00Z"


def parse_line_delimited_file(path: str) -> List[str]:
    """
    Parse a file containing one item per line, stripping whitespace and ignoring empty lines.

    Args:
        path: Path to the file to parse

    Returns:
        List of non-empty strings from the file, in file order

    Raises:
        ConfigurationError: If the file cannot be read
    """
    try:
        text = Path(path).read_text(encoding="utf-8-sig")
    except OSError as exc:
        raise ConfigurationError(f"Cannot read device list {path}: {exc}") from exc
    tokens: List[str] = []
    for line in text.splitlines():
        val = line.strip()
        if val:
            tokens.append(val)
    return tokens


def read_csv_column(path: str, column: str) -> List[str]:
    """
    Read one named column from a CSV file.

    The header match is exact after trimming whitespace. Blank cells are skipped and
    row order is preserved.

    Args:
        path: Path to the CSV file
        column: Header name of the column holding device names

    Returns:
        List of non-empty cell values from the column

    Raises:
        ConfigurationError: If the file cannot be read or the column is absent

    Examples:
        >>> read_csv_column("devices.csv", "DeviceName")
        ['PC-001', 'PC-002']
    """
    try:
        with Path(path).open("r", encoding="utf-8-sig", newline="") as handle:
            reader = csv.DictReader(handle)
            headers = [h.strip() for h in (reader.fieldnames or [])]
            if column not in headers:
                available = ", ".join(headers) or "none"
                raise ConfigurationError(
                    f"Column '{column}' not found in {path}. Available columns: {available}"
                )
            raw_key = (reader.fieldnames or [])[headers.index(column)]
            values: List[str] = []
            for row in reader:
                val = (row.get(raw_key) or "").strip()
                if val:
                    values.append(val)
            return values
    except OSError as exc:
        raise ConfigurationError(f"Cannot read CSV file {path}: {exc}") from exc
    except csv.Error as exc:
        raise ConfigurationError(f"Malformed CSV file {path}: {exc}") from exc


def collect_device_names(
    names: Iterable[str],
    device_list: Optional[str] = None,
    csv_path: Optional[str] = None,
    csv_column: Optional[str] = None,
) -> List[str]:
    """
    Merge literal names, a line-delimited file and a CSV column into one ordered list.

    Duplicates are kept; every occurrence is synced independently.
    """
    collected: List[str] = [n.strip() for n in names if n and n.strip()]
    if device_list:
        collected.extend(parse_line_delimited_file(device_list))
    if csv_path:
        if not csv_column:
            raise ConfigurationError("A column name is required when reading device names from CSV.")
        collected.extend(read_csv_column(csv_path, csv_column))
    if not collected:
        raise ConfigurationError("No device names supplied.")
    return collected


def parse_graph_datetime(date_str: Optional[str]) -> Optional[datetime]:
    """
    Parse a Graph timestamp into an aware UTC datetime.

    Graph returns ISO8601 with up to seven fractional digits, e.g.
    "2025-03-15T05:49:00.1234567Z". The never-synced placeholder yields None.

    Examples:
        >>> parse_graph_datetime("2025-03-15T05:49:00Z")
        datetime.datetime(2025, 3, 15, 5, 49, tzinfo=datetime.timezone.utc)
        >>> parse_graph_datetime("0001-01-01T00:00:00Z") is None
        True
    """
    if not date_str or date_str == _NEVER_SYNCED:
        return None
    value = date_str.replace("Z", "+00:00")
    # fromisoformat before 3.11 wants exactly six fractional digits
    value = re.sub(r"\.(\d+)", lambda m: "." + (m.group(1) + "000000")[:6], value)
    try:
        dt = datetime.fromisoformat(value)
    except ValueError:
        return None
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    if dt.year <= 1:
        return None
    return dt


def format_last_sync(value: Optional[datetime]) -> str:
    if value is None:
        return "Never"
    return value.strftime("%Y-%m-%d %H:%M UTC")
