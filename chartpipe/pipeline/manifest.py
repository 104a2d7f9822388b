"""
Run manifest for reproducibility tracking.

Generates run_manifest.json with:
- generated_at_utc: When the batch finished
- git_commit: Current git commit hash (or "unknown")
- status: OK if every chart succeeded, else FAIL
- charts: Per-chart status, error, enrichment counts and artifact paths
- hashes: SHA256 hashes of every written artifact, keyed by relative path
"""

import hashlib
import logging
import os
import subprocess
from dataclasses import asdict, dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, List, Optional

from chartpipe.artifacts.writer import create_folder, dump_json, overwrite_file

logger = logging.getLogger(__name__)

MANIFEST_NAME = "run_manifest.json"


@dataclass
class RunManifest:
    """Complete run manifest for one batch."""
    status: str
    charts: List[Dict[str, Any]]
    hashes: Dict[str, str]
    git_commit: str = "unknown"
    generated_at_utc: str = field(default_factory=lambda: datetime.now(timezone.utc).isoformat())

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


def compute_file_hash(file_path: Path) -> Optional[str]:
    """
    Compute SHA256 hash of a file.

    Returns:
        "sha256:<hash>" or None if the file doesn't exist
    """
    if not os.path.exists(file_path):
        return None

    hasher = hashlib.sha256()
    with open(file_path, "rb") as f:
        for chunk in iter(lambda: f.read(8192), b""):
            hasher.update(chunk)
    return f"sha256:{hasher.hexdigest()}"


def get_git_commit() -> str:
    """Current commit hash, or "unknown" outside a git checkout."""
    try:
        result = subprocess.run(
            ["git", "rev-parse", "HEAD"],
            capture_output=True,
            text=True,
            cwd=Path(__file__).resolve().parents[2],
        )
    except (OSError, subprocess.SubprocessError):
        return "unknown"
    if result.returncode == 0:
        return result.stdout.strip()
    return "unknown"


def compute_artifact_hashes(paths: List[Path], output_dir: Path) -> Dict[str, str]:
    """Hash each artifact, keyed by its path relative to ``output_dir``."""
    hashes: Dict[str, str] = {}
    for path in paths:
        hash_value = compute_file_hash(path)
        if hash_value is None:
            logger.warning(f"Artifact missing when hashing: {path}")
            continue
        try:
            key = Path(path).resolve().relative_to(output_dir.resolve()).as_posix()
        except ValueError:
            key = Path(path).as_posix()
        hashes[key] = hash_value
    return hashes


def generate_run_manifest(charts: List[Dict[str, Any]], artifact_paths: List[Path], output_dir: Path) -> RunManifest:
    """
    Build the manifest for a finished batch.

    Args:
        charts: Per-chart summaries (must carry a "status" key)
        artifact_paths: Every file written during the batch
        output_dir: Batch output root
    """
    status = "OK" if all(c.get("status") == "OK" for c in charts) else "FAIL"
    return RunManifest(
        status=status,
        charts=charts,
        hashes=compute_artifact_hashes(artifact_paths, output_dir),
        git_commit=get_git_commit(),
    )


def write_run_manifest(manifest: RunManifest, output_dir: Path) -> Path:
    """Write the manifest to ``output_dir/run_manifest.json`` and return its path."""
    path = overwrite_file(create_folder(output_dir) / MANIFEST_NAME, dump_json(manifest.to_dict()))
    logger.info(f"Run manifest: {path} ({manifest.status})")
    return path
