"""
Tabular ingestion: delimited text files into ordered row records.

Rows are plain ``Dict[str, str]`` mappings. No type coercion happens here;
chart builders use ``parse_number`` when they need numbers.
"""

import csv
import math
import logging
import re
from pathlib import Path
from typing import Dict, List, Optional, Tuple, Union

from chartpipe.errors import IngestionError

logger = logging.getLogger(__name__)

Row = Dict[str, str]

# Characters stripped before numeric parsing ("$1,234", "12.5%")
_NUMBER_NOISE = re.compile(r"[,$%\s]")


def read_rows(path: Union[str, Path], separator: str = ",") -> List[Row]:
    """
    Read a delimited file into a fully materialized list of rows.

    The header row defines field names verbatim; every following non-empty line maps
    positionally onto them. Short lines are padded with empty strings and
    surplus cells are dropped.

    Args:
        path: Path to the delimited file (UTF-8, BOM tolerated)
        separator: Single-character field separator

    Returns:
        Rows in encounter order

    Raises:
        IngestionError: If the path is missing, not a file, unreadable, or its
            header repeats a column name
    """
    path = Path(path)
    if not path.exists():
        raise IngestionError(f"Source file not found: {path}")
    if not path.is_file():
        raise IngestionError(f"Source path is not a file: {path}")

    rows: List[Row] = []
    try:
        with open(path, "r", encoding="utf-8-sig", newline="") as f:
            reader = csv.reader(f, delimiter=separator)
            header = next(reader, None)
            if header is None:
                logger.warning(f"{path} is empty")
                return rows
            duplicates = sorted({h for h in header if header.count(h) > 1})
            if duplicates:
                raise IngestionError(f"{path} has duplicate column(s): {', '.join(duplicates)}")

            for line_num, cells in enumerate(reader, 2):
                if not cells:
                    continue
                if len(cells) != len(header):
                    logger.debug(
                        f"{path}:{line_num} has {len(cells)} cells, header has {len(header)}"
                    )
                padded = cells + [""] * (len(header) - len(cells))
                rows.append(dict(zip(header, padded)))
    except (OSError, UnicodeDecodeError, csv.Error) as e:
        raise IngestionError(f"Failed to read {path}: {e}") from e

    logger.debug(f"Read {len(rows)} rows from {path}")
    return rows


def parse_number(value: Optional[str]) -> Optional[float]:
    """Parse a loosely formatted numeric string, or None if it is not a number."""
    if value is None:
        return None
    cleaned = _NUMBER_NOISE.sub("", str(value))
    if not cleaned:
        return None
    try:
        number = float(cleaned)
    except ValueError:
        return None
    # "nan" and "inf" parse but have no JSON form
    return number if math.isfinite(number) else None


class DatasetCache:
    """
    Memoizes parsed sources by resolved path and separator.

    Owned by the pipeline driver and cleared at the start of every run, so a
    source is parsed at most once per run no matter how many charts read it.
    """

    def __init__(self):
        self._rows: Dict[Tuple[str, str], List[Row]] = {}
        self.hits = 0
        self.misses = 0

    def get(self, path: Union[str, Path], separator: str = ",") -> List[Row]:
        """Return cached rows for ``path``, reading the file on first use."""
        key = (str(Path(path).resolve()), separator)
        if key in self._rows:
            self.hits += 1
            return self._rows[key]

        self.misses += 1
        rows = read_rows(path, separator)
        self._rows[key] = rows
        return rows

    def clear(self) -> None:
        self._rows.clear()
        self.hits = 0
        self.misses = 0

    def __len__(self) -> int:
        return len(self._rows)
