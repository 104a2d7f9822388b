"""
Pipeline driver: runs the per-chart step sequence for a batch.

Steps per chart:
1. build   - ingest, enrich and assemble the declarative document
2. compile - compile it and gate the result through QA
3. write   - persist .vl.json, .vg.json and .html

A failing chart is logged with its error class and its remaining steps are
skipped. Other charts still run unless ``fail_fast`` is set, in which case
the batch stops at the first failure.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional, Sequence, Union

from chartpipe.artifacts.writer import ChartArtifactSet, write_artifacts
from chartpipe.compiler import compile_document
from chartpipe.enrich.countries import CountryDirectory
from chartpipe.enrich.enrichment import EnrichmentResult
from chartpipe.errors import ChartPipelineError, CompileError
from chartpipe.ingest.tabular import DatasetCache, Row
from chartpipe.pipeline.manifest import generate_run_manifest, write_run_manifest
from chartpipe.qa import qa_compiled_spec
from chartpipe.spec.models import ChartDocument

logger = logging.getLogger(__name__)


@dataclass
class BuildContext:
    """What a chart build may touch: the shared cache, the country directory, the data folder."""
    cache: DatasetCache
    directory: CountryDirectory
    data_dir: Path
    enrichment: Dict[str, int] = field(default_factory=dict)

    def read(self, filename: Union[str, Path], separator: str = ",") -> List[Row]:
        """Rows of a data file, relative to ``data_dir`` unless absolute."""
        path = Path(filename)
        if not path.is_absolute():
            path = self.data_dir / path
        return self.cache.get(path, separator)

    def record_enrichment(self, result: EnrichmentResult) -> None:
        self.enrichment = result.summary()


@dataclass
class ChartBuild:
    """A named chart pipeline; ``project`` groups several charts in one folder."""
    name: str
    build: Callable[[BuildContext], ChartDocument]
    project: Optional[str] = None

    @property
    def folder(self) -> str:
        return self.project or self.name


@dataclass
class ChartResult:
    """Outcome of one chart: OK, FAIL (pipeline error), CRASH (unexpected) or SKIPPED."""
    name: str
    status: str
    artifacts: Optional[ChartArtifactSet] = None
    error: Optional[str] = None
    error_type: Optional[str] = None
    failed_step: Optional[str] = None
    enrichment: Dict[str, int] = field(default_factory=dict)

    @property
    def ok(self) -> bool:
        return self.status == "OK"

    def to_dict(self) -> Dict[str, Any]:
        d: Dict[str, Any] = {"name": self.name, "status": self.status}
        if self.error is not None:
            d["error"] = self.error
            d["error_type"] = self.error_type
            d["failed_step"] = self.failed_step
        if self.enrichment:
            d["enrichment"] = self.enrichment
        if self.artifacts is not None:
            d["artifacts"] = {kind: path.as_posix() for kind, path in self.artifacts.paths().items()}
        return d


@dataclass
class RunReport:
    results: List[ChartResult] = field(default_factory=list)
    manifest_path: Optional[Path] = None

    @property
    def ok(self) -> bool:
        return all(r.ok for r in self.results)

    @property
    def failed(self) -> List[ChartResult]:
        return [r for r in self.results if not r.ok]


def _stamp() -> str:
    return datetime.now(timezone.utc).strftime("%H:%M:%S.%f")[:-3]


class PipelineDriver:
    """
    Runs chart builds in order against one output folder.

    Args:
        output_dir: Root for per-chart folders and the run manifest
        data_dir: Folder that relative data file names resolve against
        directory: Country directory (loaded from the bundled YAML if None)
        write_manifest: Whether to write run_manifest.json after the batch
    """

    def __init__(
        self,
        output_dir: Union[str, Path],
        data_dir: Union[str, Path],
        directory: Optional[CountryDirectory] = None,
        write_manifest: bool = True,
    ):
        self.output_dir = Path(output_dir)
        self.data_dir = Path(data_dir)
        self.directory = directory or CountryDirectory.from_yaml()
        self.cache = DatasetCache()
        self.write_manifest = write_manifest

    def run(self, builds: Sequence[ChartBuild], fail_fast: bool = False) -> RunReport:
        """Run every build; see module docstring for the failure policy."""
        self.cache.clear()
        report = RunReport()
        logger.info(f"Running {len(builds)} chart(s) into {self.output_dir}")

        for i, build in enumerate(builds):
            result = self.run_chart(build)
            report.results.append(result)
            if fail_fast and not result.ok:
                for skipped in builds[i + 1:]:
                    logger.warning(f"[SKIP] {skipped.name} (batch aborted after {build.name})")
                    report.results.append(ChartResult(skipped.name, "SKIPPED"))
                break

        if self.write_manifest:
            artifact_paths: List[Path] = []
            for r in report.results:
                if r.artifacts is not None:
                    artifact_paths.extend(r.artifacts.paths().values())
            manifest = generate_run_manifest([r.to_dict() for r in report.results], artifact_paths, self.output_dir)
            report.manifest_path = write_run_manifest(manifest, self.output_dir)

        logger.info(
            f"Batch finished: {sum(r.ok for r in report.results)}/{len(report.results)} chart(s) OK"
        )
        return report

    def run_chart(self, build: ChartBuild) -> ChartResult:
        """Run build -> compile -> write for one chart, never raising."""
        context = BuildContext(cache=self.cache, directory=self.directory, data_dir=self.data_dir)
        step = "build"
        try:
            logger.info(f"[{_stamp()}] {build.name}: building spec")
            document = build.build(context)
            logger.info(f"[{_stamp()}] {build.name}: spec built")

            step = "compile"
            logger.info(f"[{_stamp()}] {build.name}: compiling spec")
            compiled = compile_document(document)
            qa = qa_compiled_spec(compiled)
            for warning in qa["warnings"]:
                logger.warning(f"{build.name}: {warning}")
            if qa["status"] != "OK":
                raise CompileError(f"Compiled spec failed QA: {'; '.join(qa['errors'])}")
            logger.info(f"[{_stamp()}] {build.name}: spec compiled")

            step = "write"
            logger.info(f"[{_stamp()}] {build.name}: writing artifacts")
            artifacts = write_artifacts(build.name, document.to_dict(), compiled, self.output_dir / build.folder)
            logger.info(f"[{_stamp()}] {build.name}: artifacts written")
        except ChartPipelineError as e:
            logger.error(f"[FAIL] {build.name} at {step}: {type(e).__name__}: {e}")
            return ChartResult(build.name, "FAIL", error=str(e), error_type=type(e).__name__,
                               failed_step=step, enrichment=context.enrichment)
        except Exception as e:
            logger.exception(f"[CRASH] {build.name} at {step}: {type(e).__name__}: {e}")
            return ChartResult(build.name, "CRASH", error=str(e), error_type=type(e).__name__,
                               failed_step=step, enrichment=context.enrichment)

        logger.info(f"[OK] {build.name} done")
        return ChartResult(build.name, "OK", artifacts=artifacts, enrichment=context.enrichment)
