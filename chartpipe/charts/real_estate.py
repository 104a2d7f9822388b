"""
Real-estate charts: city buying prices vs. rents, grouped by continent.

Every chart reads the same CSV (parsed once per run through the driver's
cache), renames the source columns and joins each row to its country's
continent, region and flag glyph. Rows missing any of those are dropped.
"""

import logging
from typing import Dict, List, Optional

from chartpipe.enrich.enrichment import EnrichmentResult, enrich_rows
from chartpipe.ingest.tabular import parse_number
from chartpipe.pipeline.driver import BuildContext
from chartpipe.spec.builder import ChartBuilder, nominal, ordinal, quantitative, when
from chartpipe.spec.decompose import DeltaSeries, decompose_series, delta_from_percent_change
from chartpipe.spec.models import ChartDocument, FieldDef, Mark, Param

logger = logging.getLogger(__name__)

PROJECT = "real-estate"
DATA_FILE = "real_estate.csv"

PRICE = "Buying Price per m² ($)"
RENT = "Rent per Month ($)"
CHANGE_5Y = "5-Year Price Change (%)"
PRICE_DELTA_5Y = "5-Year Price Delta ($)"

COLUMNS = {
    "Country": "Country",
    "City": "City",
    PRICE: "Buying_Price_US _$ per_Sq_M.",
    RENT: "Rent_per_Month_US_$",
}
DERIVED = {
    "Continent": "continent",
    "Region": "region",
    "Flag": "flag",
}
REQUIRED = list(COLUMNS) + list(DERIVED)

PRICE_CHANGE_CITIES = 20
SEGMENT_COLORS = {
    "5-year base": "#bab0ac",
    "5-year increase": "#54a24b",
    "5-year decrease": "#e45756",
}


def load_real_estate(ctx: BuildContext, extra_columns: Optional[Dict[str, str]] = None) -> EnrichmentResult:
    """Renamed, enriched rows with every required field present."""
    columns = dict(COLUMNS)
    columns.update(extra_columns or {})
    result = enrich_rows(
        ctx.read(DATA_FILE),
        key_field="Country",
        directory=ctx.directory,
        required_fields=REQUIRED + list(extra_columns or {}),
        derived=DERIVED,
        columns=columns,
    )
    ctx.record_enrichment(result)
    return result


def _tooltip(*extra: FieldDef) -> List[FieldDef]:
    return [FieldDef("City"), FieldDef("Country"), quantitative(RENT), *extra]


def build_interactive(ctx: BuildContext) -> ChartDocument:
    """real-estate-interactive: flag glyphs, legend click highlights one continent."""
    records = load_real_estate(ctx).records
    return (
        ChartBuilder(data=records, width=600, height=600, config={"legend": {}})
        .mark("text", filled=True, fontSize=18)
        .encode(
            x=quantitative(RENT),
            y=quantitative(PRICE),
            color=FieldDef("Continent"),
            tooltip=_tooltip(),
            text=FieldDef("Flag"),
            opacity=when("continent-selected", 1, 0.1),
        )
        .param("continent-selected", ["Continent"])
        .build()
    )


def build_scatter(ctx: BuildContext) -> ChartDocument:
    """real-estate-scatter: a filled point per city with its flag floating above."""
    records = load_real_estate(ctx).records
    return (
        ChartBuilder(width=500, height=500, config={"legend": {}})
        .encode(
            x=quantitative(RENT),
            y=quantitative(PRICE),
            color=FieldDef("Continent"),
            tooltip=_tooltip(quantitative(PRICE)),
        )
        .layer(
            Mark("point", {"filled": True, "size": 60}),
            encoding={"opacity": when("continent-selected-2", 1, 0.067)},
            data=records,
            params=[Param("continent-selected-2", ["Continent"])],
        )
        .layer(
            Mark("text", {"align": "center", "dy": -10}),
            encoding={
                "text": FieldDef("Flag"),
                "opacity": when("continent-selected-1", 1, 0.067),
            },
            data=records,
            params=[Param("continent-selected-1", ["Continent"])],
        )
        .build()
    )


def price_change_records(records: List[Dict[str, str]], limit: int = PRICE_CHANGE_CITIES) -> List[Dict]:
    """
    Stack segments for the most expensive cities.

    Each city's current price splits into the level five years ago and the
    change since; a fall is drawn on top of the current price instead.
    """
    rows = []
    for record in records:
        price = parse_number(record[PRICE])
        change = parse_number(record[CHANGE_5Y])
        if price is None or change is None:
            continue
        try:
            delta = delta_from_percent_change(price, change)
        except ValueError as e:
            logger.warning(f"Skipping {record['City']}: {e}")
            continue
        rows.append(dict(record, **{PRICE: price, PRICE_DELTA_5Y: delta}))

    rows.sort(key=lambda r: r[PRICE], reverse=True)
    return decompose_series(
        rows[:limit],
        value_field=PRICE,
        deltas=[DeltaSeries(PRICE_DELTA_5Y, "5-year")],
        keep_fields=["City", "Country", "Flag"],
        base_label="5-year base",
    )


def build_price_change(ctx: BuildContext) -> ChartDocument:
    """real-estate-price-change: base + five-year delta stacked per city."""
    result = load_real_estate(ctx, extra_columns={CHANGE_5Y: "%_of_house_price_change_last_5 years"})
    segments = price_change_records(result.records)
    return (
        ChartBuilder(data=segments, width=600, height=400, title="Buying price and five-year change")
        .mark("bar")
        .encode(
            x=nominal("City"),
            y=quantitative("value", title=PRICE),
            color=nominal(
                "type",
                title="Segment",
                scale={"domain": list(SEGMENT_COLORS), "range": list(SEGMENT_COLORS.values())},
            ),
            order=ordinal("order"),
            tooltip=[FieldDef("City"), FieldDef("type"), quantitative("value")],
        )
        .build()
    )
