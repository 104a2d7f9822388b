"""Batch driver and run manifest."""

from chartpipe.pipeline.driver import BuildContext, ChartBuild, ChartResult, PipelineDriver, RunReport

__all__ = ["BuildContext", "ChartBuild", "ChartResult", "PipelineDriver", "RunReport"]
