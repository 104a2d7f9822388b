"""
Chart catalogue: every pipeline the driver can run, by name.

Charts sharing a ``project`` are written into the same output folder.
"""

from typing import Dict, Iterable, List, Optional

from chartpipe.charts import cars, real_estate, spi_intl
from chartpipe.pipeline.driver import ChartBuild

CHARTS: Dict[str, ChartBuild] = {
    build.name: build
    for build in [
        ChartBuild(cars.CHART_NAME, cars.build_cars_scatter),
        ChartBuild(spi_intl.CHART_NAME, spi_intl.build_spi_scatter),
        ChartBuild("real-estate-interactive", real_estate.build_interactive, project=real_estate.PROJECT),
        ChartBuild("real-estate-scatter", real_estate.build_scatter, project=real_estate.PROJECT),
        ChartBuild("real-estate-price-change", real_estate.build_price_change, project=real_estate.PROJECT),
    ]
}


def get_builds(names: Optional[Iterable[str]] = None, projects: Optional[Dict[str, str]] = None) -> List[ChartBuild]:
    """
    Look up builds by name, in catalogue order when ``names`` is None.

    Args:
        names: Chart names to run (None for all)
        projects: Optional per-chart output folder overrides

    Raises:
        KeyError: If a name is not in the catalogue
    """
    selected = list(CHARTS) if names is None else list(names)
    unknown = [n for n in selected if n not in CHARTS]
    if unknown:
        raise KeyError(f"Unknown chart(s): {', '.join(unknown)}. Known: {', '.join(CHARTS)}")

    builds = []
    for name in selected:
        build = CHARTS[name]
        if projects and name in projects:
            build = ChartBuild(build.name, build.build, project=projects[name])
        builds.append(build)
    return builds
