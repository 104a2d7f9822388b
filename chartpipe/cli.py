"""
Command-line interface for the chart pipeline.

Provides subcommands for running the chart batch, listing the catalogue,
and compiling or validating a stored declarative document.
"""

import argparse
import json
import logging
import sys
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv

from chartpipe.artifacts.writer import create_folder, dump_json, overwrite_file
from chartpipe.charts import CHARTS, get_builds
from chartpipe.compiler import compile_document
from chartpipe.config import load_pipeline_config
from chartpipe.errors import ChartPipelineError
from chartpipe.logging_config import configure_logging
from chartpipe.pipeline.driver import PipelineDriver
from chartpipe.qa import qa_chart_document, qa_compiled_spec
from chartpipe.spec.builder import check_document
from chartpipe.spec.models import ChartDocument


def _load_document(path: str) -> ChartDocument:
    try:
        with open(path, "r", encoding="utf-8") as f:
            raw = json.load(f)
    except (OSError, json.JSONDecodeError) as e:
        raise ChartPipelineError(f"Cannot read {path}: {e}") from e
    return ChartDocument.from_dict(raw)


def cmd_run(args: argparse.Namespace) -> int:
    """Run the configured chart batch."""
    try:
        config = load_pipeline_config(args.config)
        names = args.chart or config.charts
        builds = get_builds(names, config.projects)
    except (ChartPipelineError, KeyError) as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1

    output_dir = Path(args.output_dir) if args.output_dir else config.output_dir
    data_dir = Path(args.data_dir) if args.data_dir else config.data_dir
    fail_fast = args.fail_fast or config.fail_fast

    try:
        driver = PipelineDriver(output_dir=output_dir, data_dir=data_dir)
    except ChartPipelineError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1

    report = driver.run(builds, fail_fast=fail_fast)

    for result in report.results:
        line = f"  {result.status:<8} {result.name}"
        if result.error:
            line += f" ({result.error_type} at {result.failed_step}: {result.error})"
        print(line)
    if report.manifest_path:
        print(f"Manifest: {report.manifest_path}")

    return 0 if report.ok else 1


def cmd_list(args: argparse.Namespace) -> int:
    """List catalogued charts and their output folders."""
    for build in CHARTS.values():
        print(f"{build.name:<28} -> {build.folder}/")
    return 0


def cmd_compile(args: argparse.Namespace) -> int:
    """Compile a stored .vl.json document to a .vg.json file."""
    try:
        document = _load_document(args.spec)
        compiled = compile_document(document)
        qa = qa_compiled_spec(compiled)
        if qa["status"] != "OK":
            for error in qa["errors"]:
                print(f"  QA: {error}", file=sys.stderr)
            return 1

        output = Path(args.output) if args.output else Path(args.spec.replace(".vl.json", "") + ".vg.json")
        create_folder(output.parent)
        overwrite_file(output, dump_json(compiled))
        print(f"Compiled spec: {output}")
        return 0

    except ChartPipelineError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1


def cmd_validate(args: argparse.Namespace) -> int:
    """Validate a stored .vl.json document (references + JSON Schema)."""
    try:
        with open(args.spec, "r", encoding="utf-8") as f:
            raw = json.load(f)
    except (OSError, json.JSONDecodeError) as e:
        print(f"Error: Cannot read {args.spec}: {e}", file=sys.stderr)
        return 1

    qa = qa_chart_document(raw)
    errors = list(qa["errors"])
    if not errors:
        try:
            errors.extend(check_document(ChartDocument.from_dict(raw)))
        except ChartPipelineError as e:
            errors.append(str(e))

    for warning in qa["warnings"]:
        print(f"  WARN: {warning}")
    if errors:
        for error in errors:
            print(f"  ERROR: {error}", file=sys.stderr)
        print(f"FAIL: {args.spec}")
        return 1

    print(f"OK: {args.spec}")
    return 0


def main(argv: Optional[list] = None) -> int:
    """Main CLI entrypoint."""
    load_dotenv()

    parser = argparse.ArgumentParser(
        prog="chartpipe",
        description="Build, compile and write declarative chart specs",
    )
    parser.add_argument(
        "-v", "--verbose",
        action="store_true",
        help="Debug logging"
    )

    subparsers = parser.add_subparsers(dest="command", help="Commands")

    # run command
    run_parser = subparsers.add_parser("run", help="Run the chart batch")
    run_parser.add_argument("--config", help="Batch config (default: CHARTPIPE_CONFIG or config/charts.yaml)")
    run_parser.add_argument("--output-dir", help="Output root (overrides config)")
    run_parser.add_argument("--data-dir", help="Data folder (overrides config)")
    run_parser.add_argument("--chart", action="append", metavar="NAME",
                            help="Run only this chart (repeatable)")
    run_parser.add_argument("--fail-fast", action="store_true",
                            help="Stop the batch at the first failing chart")
    run_parser.set_defaults(func=cmd_run)

    # list command
    list_parser = subparsers.add_parser("list", help="List catalogued charts")
    list_parser.set_defaults(func=cmd_list)

    # compile command
    compile_parser = subparsers.add_parser("compile", help="Compile a .vl.json document")
    compile_parser.add_argument("spec", help="Declarative document (.vl.json)")
    compile_parser.add_argument("--output", "-o", help="Output file (default: alongside, .vg.json)")
    compile_parser.set_defaults(func=cmd_compile)

    # validate command
    validate_parser = subparsers.add_parser("validate", help="Validate a .vl.json document")
    validate_parser.add_argument("spec", help="Declarative document (.vl.json)")
    validate_parser.set_defaults(func=cmd_validate)

    args = parser.parse_args(argv)

    if not args.command:
        parser.print_help()
        return 0

    configure_logging(logging.DEBUG if args.verbose else logging.INFO)
    return args.func(args)


if __name__ == "__main__":
    sys.exit(main())
