"""
Deterministic QA gates for declarative documents and compiled specs.

Both gates return ``{"status": "OK"|"FAIL", "errors": [...], "warnings": [...]}``
so callers can log warnings and decide how to fail.
"""

from __future__ import annotations

import json
from functools import lru_cache
from pathlib import Path
from typing import Any, Dict, List, Set

import jsonschema

DOCUMENT_SCHEMA_PATH = Path(__file__).resolve().parents[1] / "config" / "schemas" / "chart_document.schema.json"


@lru_cache(maxsize=4)
def load_schema(path: str = str(DOCUMENT_SCHEMA_PATH)) -> Dict[str, Any]:
    with open(path, "r", encoding="utf-8") as f:
        return json.load(f)


def _error_path(error: jsonschema.ValidationError) -> str:
    return "/".join(str(p) for p in error.absolute_path) or "<root>"


def qa_chart_document(spec: Dict[str, Any]) -> Dict[str, Any]:
    """Validate a serialized declarative document against the JSON Schema."""
    errors: List[str] = []
    warnings: List[str] = []

    validator = jsonschema.Draft7Validator(load_schema())
    for error in sorted(validator.iter_errors(spec), key=lambda e: list(e.absolute_path)):
        errors.append(f"{_error_path(error)}: {error.message}")

    data = spec.get("data")
    if isinstance(data, dict) and data.get("values") == []:
        warnings.append("data.values is empty")
    for i, layer in enumerate(spec.get("layer", []) or []):
        layer_data = layer.get("data") if isinstance(layer, dict) else None
        if isinstance(layer_data, dict) and layer_data.get("values") == []:
            warnings.append(f"layer[{i}].data.values is empty")

    if "width" not in spec or "height" not in spec:
        warnings.append("width/height not set; renderer defaults apply")

    return {"status": "FAIL" if errors else "OK", "errors": errors, "warnings": warnings}


def qa_compiled_spec(compiled: Dict[str, Any]) -> Dict[str, Any]:
    """Check internal references of a compiled spec (data, scales, signals)."""
    errors: List[str] = []
    warnings: List[str] = []

    if "$schema" not in compiled:
        errors.append("Missing $schema")

    data_names: Set[str] = set()
    for d in compiled.get("data", []):
        name = d.get("name")
        if not name:
            errors.append("A data set is missing its name")
            continue
        if name in data_names:
            errors.append(f"Duplicate data name: {name}")
        source = d.get("source")
        if source is not None and source not in data_names:
            errors.append(f"Data set {name} references unknown source: {source}")
        data_names.add(name)

    scale_names = {s.get("name") for s in compiled.get("scales", [])}
    signal_names = {s.get("name") for s in compiled.get("signals", [])}
    if len(signal_names) != len(compiled.get("signals", [])):
        errors.append("signals[] contains duplicate names")

    marks = compiled.get("marks", [])
    if not marks:
        errors.append("No marks")
    for mark in marks:
        source = (mark.get("from") or {}).get("data")
        if source is not None and source not in data_names:
            errors.append(f"Mark {mark.get('name')} reads unknown data: {source}")
        for channel, value in (mark.get("encode", {}).get("update", {}) or {}).items():
            for entry in value if isinstance(value, list) else [value]:
                scale = entry.get("scale") if isinstance(entry, dict) else None
                if scale is not None and scale not in scale_names:
                    errors.append(f"Mark {mark.get('name')}.{channel} uses unknown scale: {scale}")

    for axis in compiled.get("axes", []):
        if axis.get("scale") not in scale_names:
            errors.append(f"Axis references unknown scale: {axis.get('scale')}")
    for legend in compiled.get("legends", []):
        for key in ("fill", "stroke", "opacity", "size"):
            if key in legend and legend[key] not in scale_names:
                errors.append(f"Legend references unknown scale: {legend[key]}")

    for signal in compiled.get("signals", []):
        if signal.get("name", "").endswith("_modify"):
            store = signal["name"][: -len("_modify")] + "_store"
            if store not in data_names:
                errors.append(f"Signal {signal['name']} has no store data set {store}")

    if not compiled.get("axes"):
        warnings.append("No axes")

    return {"status": "FAIL" if errors else "OK", "errors": errors, "warnings": warnings}
