"""Tabular ingestion."""

from chartpipe.ingest.tabular import DatasetCache, Row, parse_number, read_rows

__all__ = ["DatasetCache", "Row", "parse_number", "read_rows"]
