"""spi-intl-scatter: offensive vs. defensive rating of national teams, labelled by ISO code."""

import logging

from chartpipe.enrich.enrichment import enrich_rows
from chartpipe.pipeline.driver import BuildContext
from chartpipe.spec.builder import ChartBuilder, nominal, quantitative
from chartpipe.spec.models import ChartDocument

logger = logging.getLogger(__name__)

CHART_NAME = "spi-intl-scatter"
DATA_FILE = "spi_global_rankings_intl.csv"

# Teams kept after the country join, in ranking order
ROW_LIMIT = 48


def build_spi_scatter(ctx: BuildContext) -> ChartDocument:
    rows = ctx.read(DATA_FILE)
    result = enrich_rows(
        rows,
        key_field="name",
        directory=ctx.directory,
        required_fields=["countryCode"],
        derived={"countryCode": "iso2"},
    )
    ctx.record_enrichment(result)
    records = result.records[:ROW_LIMIT]
    logger.info(f"{CHART_NAME}: plotting {len(records)} of {result.accepted} matched teams")

    return (
        ChartBuilder(data=records, width=400, height=300)
        .mark("text")
        .encode(
            x=quantitative("off"),
            y=quantitative("def"),
            color=nominal("confed"),
            text=nominal("countryCode"),
        )
        .build()
    )
