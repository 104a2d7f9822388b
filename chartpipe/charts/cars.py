"""
cars-scatter-interactive: horsepower vs. mileage, one text glyph per car.

Data is referenced by URL and never fetched; the column list below lets the
builder validate encodings against it anyway.
"""

from chartpipe.pipeline.driver import BuildContext
from chartpipe.spec.builder import ChartBuilder, nominal, quantitative, when
from chartpipe.spec.expressions import initials
from chartpipe.spec.models import ChartDocument, UrlData

CHART_NAME = "cars-scatter-interactive"

CARS_URL = "https://vega.github.io/vega-lite/examples/data/cars.json"
CARS_FIELDS = [
    "Name",
    "Miles_per_Gallon",
    "Cylinders",
    "Displacement",
    "Horsepower",
    "Weight_in_lbs",
    "Acceleration",
    "Year",
    "Origin",
]
ORIGIN_COLORS = ["purple", "#ff0000", "teal"]


def build_cars_scatter(ctx: BuildContext) -> ChartDocument:
    data = UrlData(CARS_URL, fields_hint=CARS_FIELDS)
    return (
        ChartBuilder(data=data, width=700, height=500)
        .transform(initials("Origin"), "OriginInitial")
        .mark("text")
        .encode(
            x=quantitative("Horsepower"),
            y=quantitative("Miles_per_Gallon"),
            color=nominal("Origin", scale={"range": ORIGIN_COLORS}),
            text=nominal("OriginInitial"),
            opacity=when("origin-param", 1, 0.1),
        )
        .param("origin-param", ["Origin"])
        .build()
    )
