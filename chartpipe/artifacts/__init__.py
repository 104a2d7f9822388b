"""Artifact writing: declarative/compiled JSON and the HTML embed fragment."""

from chartpipe.artifacts.html import create_html_fragment
from chartpipe.artifacts.writer import ChartArtifactSet, create_folder, overwrite_file, write_artifacts

__all__ = [
    "ChartArtifactSet",
    "create_folder",
    "create_html_fragment",
    "overwrite_file",
    "write_artifacts",
]
