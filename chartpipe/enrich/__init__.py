"""Reference enrichment against the country directory."""

from chartpipe.enrich.countries import CountryDirectory, CountryInfo, flag_glyph
from chartpipe.enrich.enrichment import EnrichmentResult, enrich_rows

__all__ = ["CountryDirectory", "CountryInfo", "EnrichmentResult", "enrich_rows", "flag_glyph"]
