"""
Exception taxonomy for the chart pipeline.

Every failure that aborts a chart build derives from ChartPipelineError.
LookupMiss is deliberately outside that hierarchy: it is a per-row skip
signal that enrichment always recovers from locally.
"""


class ChartPipelineError(Exception):
    """Base class for errors that abort a chart build."""
    pass


class IngestionError(ChartPipelineError):
    """Raised when a tabular source is missing or unreadable."""
    pass


class SpecBuildError(ChartPipelineError):
    """Raised when a chart document references unknown fields or params."""
    pass


class CompileError(ChartPipelineError):
    """Raised when a chart document cannot be resolved during compilation."""
    pass


class ArtifactWriteError(ChartPipelineError):
    """Raised when an output artifact cannot be written."""
    pass


class LookupMiss(LookupError):
    """Raised by the country directory when a name or code does not resolve."""

    def __init__(self, key: str, message: str = "not found"):
        self.key = key
        super().__init__(f"{key}: {message}")


class ConfigError(ChartPipelineError):
    """Raised when the batch configuration cannot be loaded."""
    pass
