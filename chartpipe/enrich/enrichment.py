"""
Reference enrichment: join rows against the country directory.

Each row is optionally projected onto renamed columns, then extended with
derived fields (iso2, continent, region, flag) looked up from one key field.
A retention filter keeps only records whose required fields are all present
and non-empty; the accepted/rejected counts are reported, not hidden.
"""

import logging
from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Optional, Sequence

from chartpipe.enrich.countries import CountryDirectory, CountryInfo
from chartpipe.errors import LookupMiss

logger = logging.getLogger(__name__)

Record = Dict[str, str]

DERIVED_ATTRIBUTES = {"iso2", "continent", "region", "flag"}


@dataclass
class EnrichmentResult:
    """Retained records plus the in/out counts of the retention filter."""
    records: List[Record] = field(default_factory=list)
    accepted: int = 0
    rejected: int = 0

    @property
    def total(self) -> int:
        return self.accepted + self.rejected

    def summary(self) -> Dict[str, int]:
        return {"rows_in": self.total, "accepted": self.accepted, "rejected": self.rejected}


def project_row(row: Record, columns: Dict[str, str]) -> Record:
    """Build a new record with ``{output: source}`` renamed columns."""
    return {out: row.get(src, "") for out, src in columns.items()}


def derive_fields(
    key_value: str,
    directory: CountryDirectory,
    derived: Dict[str, str],
) -> Dict[str, str]:
    """
    Look up ``key_value`` and return the requested derived fields.

    A lookup miss yields an empty dict; a flag miss only drops flag fields.
    """
    try:
        info: CountryInfo = directory.by_country(key_value)
    except LookupMiss as e:
        logger.debug(f"Lookup miss: {e}")
        return {}

    values: Dict[str, str] = {}
    for out_name, attribute in derived.items():
        if attribute == "flag":
            try:
                values[out_name] = directory.flag(info.iso2)
            except LookupMiss as e:
                logger.debug(f"Flag miss: {e}")
        else:
            value = getattr(info, attribute)
            if value:
                values[out_name] = value
    return values


def is_retained(record: Record, required_fields: Iterable[str]) -> bool:
    """A record survives only if every required field is present and non-empty."""
    for name in required_fields:
        value = record.get(name)
        if value is None or (isinstance(value, str) and not value.strip()):
            return False
    return True


def enrich_rows(
    rows: Sequence[Record],
    key_field: str,
    directory: CountryDirectory,
    required_fields: Sequence[str] = (),
    derived: Optional[Dict[str, str]] = None,
    columns: Optional[Dict[str, str]] = None,
) -> EnrichmentResult:
    """
    Enrich rows with country-derived fields and apply the retention filter.

    Args:
        rows: Source rows (not modified)
        key_field: Field holding the country name, read from the source row
        directory: Country reference directory
        required_fields: Output fields that must be present and non-empty
        derived: ``{output_name: attribute}`` with attribute in iso2/continent/region/flag
        columns: Optional ``{output_name: source_column}`` projection applied first

    Returns:
        EnrichmentResult with retained records in source order
    """
    derived = derived or {}
    unknown = set(derived.values()) - DERIVED_ATTRIBUTES
    if unknown:
        raise ValueError(f"Unknown derived attributes: {sorted(unknown)}")

    result = EnrichmentResult()
    for row in rows:
        record = project_row(row, columns) if columns else dict(row)
        if derived:
            record.update(derive_fields(row.get(key_field, ""), directory, derived))

        if is_retained(record, required_fields):
            result.records.append(record)
            result.accepted += 1
        else:
            result.rejected += 1

    logger.info(
        f"Enrichment on '{key_field}': {result.total} rows in, "
        f"{result.accepted} accepted, {result.rejected} rejected"
    )
    return result
