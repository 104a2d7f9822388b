"""
chartpipe - declarative chart specification pipeline.

Turns tabular datasets into Vega-Lite documents, compiles them to Vega
specs and writes both plus an embeddable HTML fragment.

Modules:
    ingest - Delimited-file reading and the per-run dataset cache
    enrich - Country directory and row enrichment with retention filter
    spec - Document model, transform expressions, builder, decomposition
    qa - JSON Schema and reference gates for documents and compiled specs
    compiler - Declarative-to-renderable compilation
    artifacts - Atomic artifact writes and the HTML embed fragment
    pipeline - Batch driver and run manifest
    charts - The chart catalogue
    config - Batch configuration loading
    cli - Command-line interface entrypoints
"""

from . import errors
from . import ingest
from . import enrich
from . import spec
from . import qa
from . import compiler
from . import artifacts
from . import pipeline
from . import charts
from . import config
from . import cli

__version__ = "0.4.0"
