"""
Artifact persistence.

Each chart produces three files under its output folder:
- <name>.vl.json: declarative document
- <name>.vg.json: compiled spec
- <name>.html: embeddable fragment for the compiled spec

Writes go to a temp file in the target directory and are moved into place
with ``os.replace``, so a target holds either its previous or its new
content, never a partial write.
"""

from __future__ import annotations

import json
import logging
import os
import tempfile
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, Union

from chartpipe.artifacts.html import create_html_fragment
from chartpipe.errors import ArtifactWriteError

logger = logging.getLogger(__name__)

PathLike = Union[str, Path]


@dataclass
class ChartArtifactSet:
    """Paths written for one chart, plus the fragment's element id."""
    spec_path: Path
    compiled_path: Path
    html_path: Path
    element_id: str

    def paths(self) -> Dict[str, Path]:
        return {"vl": self.spec_path, "vg": self.compiled_path, "html": self.html_path}


def create_folder(path: PathLike) -> Path:
    """Create ``path`` (and parents); no-op if it exists."""
    folder = Path(path)
    try:
        folder.mkdir(parents=True, exist_ok=True)
    except OSError as e:
        raise ArtifactWriteError(f"Cannot create folder {folder}: {e}") from e
    return folder


def overwrite_file(path: PathLike, text: str) -> Path:
    """
    Replace the content of ``path`` with ``text`` (UTF-8).

    Raises:
        ArtifactWriteError: If the file cannot be written
    """
    target = Path(path)
    try:
        fd, temp_name = tempfile.mkstemp(prefix=f".{target.name}.", suffix=".tmp", dir=target.parent)
    except OSError as e:
        raise ArtifactWriteError(f"Cannot write {target}: {e}") from e
    try:
        with os.fdopen(fd, "w", encoding="utf-8") as f:
            f.write(text)
        os.replace(temp_name, target)
    except OSError as e:
        if os.path.exists(temp_name):
            os.unlink(temp_name)
        raise ArtifactWriteError(f"Cannot write {target}: {e}") from e
    return target


def dump_json(data: Dict[str, Any]) -> str:
    """Serialize in construction key order; identical input gives identical bytes."""
    try:
        return json.dumps(data, indent=2, ensure_ascii=False, allow_nan=False) + "\n"
    except (TypeError, ValueError) as e:
        raise ArtifactWriteError(f"Cannot serialize artifact: {e}") from e


def write_artifacts(
    name: str,
    document: Dict[str, Any],
    compiled: Dict[str, Any],
    output_dir: PathLike,
) -> ChartArtifactSet:
    """
    Write the declarative, compiled and HTML artifacts for one chart.

    Args:
        name: Chart name (file stem)
        document: Serialized declarative document
        compiled: Compiled spec
        output_dir: Folder to write into (created if missing)

    Returns:
        ChartArtifactSet with the written paths
    """
    folder = create_folder(output_dir)

    spec_text = dump_json(document)
    compiled_text = dump_json(compiled)
    element_id, html = create_html_fragment(compiled)

    spec_path = overwrite_file(folder / f"{name}.vl.json", spec_text)
    logger.info(f"Wrote {spec_path}")
    compiled_path = overwrite_file(folder / f"{name}.vg.json", compiled_text)
    logger.info(f"Wrote {compiled_path}")
    html_path = overwrite_file(folder / f"{name}.html", html + "\n")
    logger.info(f"Wrote {html_path}")

    return ChartArtifactSet(
        spec_path=spec_path,
        compiled_path=compiled_path,
        html_path=html_path,
        element_id=element_id,
    )
