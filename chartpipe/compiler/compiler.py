"""
Declarative-to-renderable spec compiler.

Turns a ChartDocument into the Vega v5 shape: source and derived data sets,
selection stores and signals, one mark group per rendering pass, and the
scales/axes/legends they share. Compilation is pure: no I/O, and every data
set and signal name derives from layer positions and param names, so the same
document always compiles to the same output.

Usage:
    from chartpipe.compiler import compile_document

    compiled = compile_document(doc)
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Set, Tuple

from chartpipe.errors import CompileError
from chartpipe.compiler.scales import (
    DISCRETE_TYPES,
    POSITION_CHANNELS,
    SCALE_CHANNELS,
    ScalePlan,
    ScaleUse,
    build_axis,
    build_legend,
    build_scale,
    datum_ref,
    field_ref,
    field_type,
    legend_name,
)
from chartpipe.compiler.selection import (
    check_param,
    legend_test,
    selection_data,
    selection_signals,
    selection_test,
    signal_var,
)
from chartpipe.spec.models import (
    CHANNELS,
    MARK_TYPES,
    ChannelDef,
    ChartDocument,
    ConditionalDef,
    Data,
    Encoding,
    FieldDef,
    InlineData,
    Mark,
    Param,
    SingleView,
    ValueDef,
)

logger = logging.getLogger(__name__)

VEGA_SCHEMA = "https://vega.github.io/schema/vega/v5.json"

DEFAULT_WIDTH = 200
DEFAULT_HEIGHT = 200
DEFAULT_COLOR = "#4c78a8"

VEGA_MARKS = {"point": "symbol", "text": "text", "bar": "rect"}
LEGEND_CHANNELS = ("color", "opacity", "size")


@dataclass
class StackPlan:
    """Stack operator for one bar pass: ``measure`` stacked within ``groupby``."""
    measure: str
    field: str
    groupby: str
    sort_fields: List[str]

    @property
    def start(self) -> str:
        return f"{self.field}_start"

    @property
    def end(self) -> str:
        return f"{self.field}_end"

    def to_transform(self) -> Dict[str, Any]:
        return {
            "type": "stack",
            "groupby": [field_ref(self.groupby)],
            "field": field_ref(self.field),
            "sort": {
                "field": [field_ref(name) for name in self.sort_fields],
                "order": ["ascending"] * len(self.sort_fields),
            },
            "as": [self.start, self.end],
            "offset": "zero",
        }


@dataclass
class RenderPass:
    """One mark group: a single view, or one layer after inheritance."""
    name: str
    mark: Mark
    encoding: Encoding
    data: Data
    params: Dict[str, Param]
    fields: Optional[Set[str]]
    source: str = ""
    table: str = ""
    band: Optional[str] = None
    measure: Optional[str] = None
    stack: Optional[StackPlan] = None

    @property
    def filled(self) -> bool:
        if self.mark.type == "point":
            return bool(self.mark.properties.get("filled", False))
        return True


def compile_document(doc: ChartDocument) -> Dict[str, Any]:
    """
    Compile a declarative document into a renderable spec.

    Raises:
        CompileError: If a field or param cannot be resolved after layer
            inheritance, a legend-bound param has no legend for its field,
            a layered document has no layers, or a bar mark lacks x/y
    """
    params = _collect_params(doc)
    produced = [t.as_ for t in doc.transforms]
    passes = _resolve_passes(doc)
    for render_pass in passes:
        _check_pass(render_pass)
    _check_param_fields(params, passes)

    data = _build_data(doc, passes, produced)
    plans = _plan_scales(passes)
    legends, bound = _build_legends(plans, passes, params)

    signals: List[Dict[str, Any]] = []
    for param in params.values():
        data.append(selection_data(param))
        signals.extend(selection_signals(param, legend_name(bound[param.name])))

    marks = [_build_mark(render_pass, plans) for render_pass in passes]
    scales = [build_scale(plans[c]) for c in SCALE_CHANNELS if c in plans]
    axes = [build_axis(plans[c]) for c in POSITION_CHANNELS if c in plans]

    compiled: Dict[str, Any] = {
        "$schema": VEGA_SCHEMA,
        "padding": 5,
        "autosize": {"type": "pad"},
        "width": doc.width or DEFAULT_WIDTH,
        "height": doc.height or DEFAULT_HEIGHT,
        "style": "cell",
    }
    if doc.title:
        compiled["title"] = {"text": doc.title, "frame": "group"}
    compiled["data"] = data
    compiled["signals"] = signals
    compiled["marks"] = marks
    compiled["scales"] = scales
    compiled["axes"] = axes
    compiled["legends"] = legends
    if doc.config is not None:
        compiled["config"] = doc.config

    logger.debug(f"Compiled {len(marks)} mark(s), {len(data)} data set(s), {len(signals)} signal(s)")
    return compiled


# ---------------------------------------------------------------------------
# Resolution and checks
# ---------------------------------------------------------------------------

def _collect_params(doc: ChartDocument) -> Dict[str, Param]:
    params: Dict[str, Param] = {}
    declared = list(doc.params)
    if not isinstance(doc.view, SingleView):
        for layer in doc.view.layers:
            declared.extend(layer.params)
    variables: Dict[str, str] = {}
    for param in declared:
        if param.name in params:
            raise CompileError(f"Duplicate param name '{param.name}'")
        var = signal_var(param.name)
        if var in variables:
            raise CompileError(f"Params '{variables[var]}' and '{param.name}' map to the same signal name '{var}'")
        check_param(param)
        variables[var] = param.name
        params[param.name] = param
    return params


def _resolve_passes(doc: ChartDocument) -> List[RenderPass]:
    top_scope = {p.name: p for p in doc.params}

    if isinstance(doc.view, SingleView):
        if doc.data is None:
            raise CompileError("Chart has no data")
        return [RenderPass(
            name="marks",
            mark=doc.view.mark,
            encoding=dict(doc.view.encoding),
            data=doc.data,
            params=top_scope,
            fields=_available_fields(doc.data, doc),
        )]

    if not doc.view.layers:
        raise CompileError("Layered document has no layers")

    passes = []
    for i, layer in enumerate(doc.view.layers):
        data = layer.data if layer.data is not None else doc.data
        if data is None:
            raise CompileError(f"layer[{i}] has no data and the chart has none to inherit")
        scope = dict(top_scope)
        scope.update({p.name: p for p in layer.params})
        passes.append(RenderPass(
            name=f"layer_{i}_marks",
            mark=layer.mark,
            encoding=doc.view.effective_encoding(layer),
            data=data,
            params=scope,
            fields=_available_fields(data, doc),
        ))
    return passes


def _available_fields(data: Data, doc: ChartDocument) -> Optional[Set[str]]:
    base = data.fields()
    if base is None:
        return None
    seen = set(base)
    for t in doc.transforms:
        missing = t.expr.fields() - seen
        if missing:
            raise CompileError(f"Transform '{t.as_}' reads unknown field(s): {', '.join(sorted(missing))}")
        seen.add(t.as_)
    return seen


def _check_pass(render_pass: RenderPass) -> None:
    where = render_pass.name
    mark_type = render_pass.mark.type
    if mark_type not in MARK_TYPES:
        raise CompileError(f"{where}: unknown mark type '{mark_type}'")

    for channel, definition in render_pass.encoding.items():
        if channel not in CHANNELS:
            raise CompileError(f"{where}: unknown channel '{channel}'")
        if isinstance(definition, list) and channel != "tooltip":
            raise CompileError(f"{where}: only tooltip accepts a list of fields")
        for item in definition if isinstance(definition, list) else [definition]:
            _check_definition(render_pass, channel, item)

    if mark_type == "bar":
        for channel in POSITION_CHANNELS:
            if channel not in render_pass.encoding:
                raise CompileError(f"{where}: bar mark needs an '{channel}' channel")
        _plan_bar(render_pass)


def _check_definition(render_pass: RenderPass, channel: str, item: Any) -> None:
    where = f"{render_pass.name}.{channel}"
    if isinstance(item, FieldDef):
        if render_pass.fields is not None and item.field not in render_pass.fields:
            raise CompileError(f"{where}: field '{item.field}' not found")
        # Rows are drawn as-is in data order
        if item.sort is not None:
            raise CompileError(f"{where}: 'sort' is not supported by the compiler")
        if item.extra:
            raise CompileError(f"{where}: unsupported field properties: {', '.join(sorted(item.extra))}")
    elif isinstance(item, ConditionalDef):
        if channel in POSITION_CHANNELS:
            raise CompileError(f"{where}: position channels cannot be conditional")
        param = render_pass.params.get(item.param)
        if param is None:
            raise CompileError(f"{where}: param '{item.param}' is not in scope")
        if render_pass.fields is not None:
            for name in param.fields:
                if name not in render_pass.fields:
                    raise CompileError(f"{where}: param '{item.param}' selects field '{name}' missing here")
    elif not isinstance(item, ValueDef):
        raise CompileError(f"{where}: unsupported definition {type(item).__name__}")


def _check_param_fields(params: Dict[str, Param], passes: List[RenderPass]) -> None:
    known = [p.fields for p in passes]
    if any(fields is None for fields in known):
        return
    union: Set[str] = set().union(*known)
    for param in params.values():
        for name in param.fields:
            if name not in union:
                raise CompileError(f"Param '{param.name}' selects unknown field '{name}'")


def _plan_bar(render_pass: RenderPass) -> None:
    encoding = render_pass.encoding
    x, y = encoding["x"], encoding["y"]
    if not isinstance(x, FieldDef) or not isinstance(y, FieldDef):
        raise CompileError(f"{render_pass.name}: bar x/y must be field definitions")

    x_discrete = field_type("x", x) in DISCRETE_TYPES
    y_discrete = field_type("y", y) in DISCRETE_TYPES
    if x_discrete == y_discrete:
        raise CompileError(f"{render_pass.name}: bar mark needs exactly one nominal/ordinal axis")

    band, measure = ("x", "y") if x_discrete else ("y", "x")
    render_pass.band = band
    render_pass.measure = measure

    sort_fields = []
    for channel in ("order", "color"):
        definition = encoding.get(channel)
        if isinstance(definition, FieldDef):
            sort_fields.append(definition.field)
    if sort_fields:
        render_pass.stack = StackPlan(
            measure=measure,
            field=encoding[measure].field,
            groupby=encoding[band].field,
            sort_fields=sort_fields,
        )


# ---------------------------------------------------------------------------
# Data
# ---------------------------------------------------------------------------

def _source_entry(data: Data) -> Dict[str, Any]:
    if isinstance(data, InlineData):
        return {"values": data.values}
    return {"url": data.url, "format": {"type": data.format_type or "json"}}


def _numeric_fields(render_pass: RenderPass, produced: List[str]) -> List[str]:
    names: List[str] = []
    for channel, definition in render_pass.encoding.items():
        for item in definition if isinstance(definition, list) else [definition]:
            if isinstance(item, FieldDef) and field_type(channel, item) == "quantitative":
                if item.field not in produced and item.field not in names:
                    names.append(item.field)
    return names


def _valid_filter(render_pass: RenderPass) -> Optional[Dict[str, Any]]:
    """Drop rows whose quantitative position is missing or not a number."""
    clauses = []
    for channel in POSITION_CHANNELS:
        definition = render_pass.encoding.get(channel)
        if isinstance(definition, FieldDef) and field_type(channel, definition) == "quantitative":
            ref = datum_ref(definition.field)
            clauses.append(f"isValid({ref}) && isFinite(+{ref})")
    if not clauses:
        return None
    return {"type": "filter", "expr": " && ".join(clauses)}


def _build_data(doc: ChartDocument, passes: List[RenderPass], produced: List[str]) -> List[Dict[str, Any]]:
    data: List[Dict[str, Any]] = []
    sources: Dict[str, Dict[str, Any]] = {}
    tables: Dict[str, str] = {}
    formulas = [{"type": "formula", "expr": t.expr.to_expr(), "as": t.as_} for t in doc.transforms]

    for render_pass in passes:
        entry = _source_entry(render_pass.data)
        key = json.dumps(entry, sort_keys=True, ensure_ascii=False, default=str)
        if key not in sources:
            source = {"name": f"source_{len(sources)}", **entry}
            sources[key] = source
            data.append(source)
        source = sources[key]
        render_pass.source = source["name"]

        numeric = _numeric_fields(render_pass, produced)
        if numeric:
            fmt = source.setdefault("format", {"type": "json"})
            parse = fmt.setdefault("parse", {})
            for name in numeric:
                parse[name] = "number"

        transform = list(formulas)
        valid = _valid_filter(render_pass)
        if valid is not None:
            transform.append(valid)
        if render_pass.stack is not None:
            transform.append(render_pass.stack.to_transform())

        table_key = json.dumps([render_pass.source, transform], sort_keys=True, ensure_ascii=False)
        if table_key not in tables:
            table = {"name": f"data_{len(tables)}", "source": render_pass.source}
            if transform:
                table["transform"] = transform
            tables[table_key] = table["name"]
            data.append(table)
        render_pass.table = tables[table_key]

    for source in sources.values():
        parse = source.get("format", {}).get("parse")
        if parse:
            source["format"]["parse"] = dict(sorted(parse.items()))
    return data


# ---------------------------------------------------------------------------
# Scales and legends
# ---------------------------------------------------------------------------

def _plan_scales(passes: List[RenderPass]) -> Dict[str, ScalePlan]:
    plans: Dict[str, ScalePlan] = {}
    for render_pass in passes:
        for channel in SCALE_CHANNELS:
            definition = render_pass.encoding.get(channel)
            if not isinstance(definition, FieldDef):
                continue
            fields: Tuple[str, ...] = (definition.field,)
            stack = render_pass.stack
            if stack is not None and channel == stack.measure:
                fields = (stack.start, stack.end)
            plan = plans.setdefault(channel, ScalePlan(channel))
            if plan.uses and (plan.type in DISCRETE_TYPES) != (field_type(channel, definition) in DISCRETE_TYPES):
                raise CompileError(f"Channel '{channel}' mixes discrete and continuous fields across layers")
            plan.uses.append(ScaleUse(definition, render_pass.table, fields, render_pass.mark.type))
    return plans


def _legend_channel(param: Param, plans: Dict[str, ScalePlan]) -> Optional[str]:
    target = param.fields[0]
    for channel in LEGEND_CHANNELS:
        plan = plans.get(channel)
        if plan and any(use.definition.field == target for use in plan.uses):
            return channel
    return None


def _legend_property(channel: str, passes: List[RenderPass]) -> str:
    if channel != "color":
        return channel
    return "fill" if any(p.filled for p in passes) else "stroke"


def _build_legends(
    plans: Dict[str, ScalePlan],
    passes: List[RenderPass],
    params: Dict[str, Param],
) -> Tuple[List[Dict[str, Any]], Dict[str, str]]:
    bound: Dict[str, str] = {}
    for param in params.values():
        channel = _legend_channel(param, plans)
        if channel is None:
            raise CompileError(
                f"Legend-bound param '{param.name}' has no legend channel encoding field '{param.fields[0]}'"
            )
        bound[param.name] = channel

    legends = []
    for channel in LEGEND_CHANNELS:
        if channel not in plans:
            continue
        selecting = [params[name] for name, c in bound.items() if c == channel]
        selection = {"test": legend_test(selecting[0])} if selecting else None
        legends.append(build_legend(plans[channel], _legend_property(channel, passes), selection))
    return legends, bound


# ---------------------------------------------------------------------------
# Marks
# ---------------------------------------------------------------------------

def _channel_value(definition: ChannelDef, scale: Optional[str] = None) -> Any:
    if isinstance(definition, FieldDef):
        ref: Dict[str, Any] = {"field": field_ref(definition.field)}
        if scale is not None:
            ref = {"scale": scale, **ref}
        return ref
    if isinstance(definition, ValueDef):
        return {"value": definition.value}
    if isinstance(definition, ConditionalDef):
        return [
            {"test": selection_test(definition.param, definition.empty), "value": definition.value},
            {"value": definition.otherwise},
        ]
    raise CompileError(f"Cannot compile channel definition {definition!r}")


def _tooltip(definition: ChannelDef) -> Dict[str, Any]:
    if isinstance(definition, ValueDef):
        return {"value": definition.value}
    items = definition if isinstance(definition, list) else [definition]
    entries = []
    for item in items:
        if not isinstance(item, FieldDef):
            raise CompileError("Tooltip entries must be field definitions")
        ref = datum_ref(item.field)
        if field_type("tooltip", item) == "quantitative":
            value = f'format({ref}, "")'
        else:
            value = f'isValid({ref}) ? {ref} : ""+{ref}'
        entries.append(f"{json.dumps(item.title or item.field, ensure_ascii=False)}: {value}")
    return {"signal": "{" + ", ".join(entries) + "}"}


def _position(render_pass: RenderPass) -> Dict[str, Any]:
    encoding = render_pass.encoding
    out: Dict[str, Any] = {}

    if render_pass.mark.type == "bar":
        band, measure = render_pass.band, render_pass.measure
        out[band] = {"scale": band, "field": field_ref(encoding[band].field)}
        out["width" if band == "x" else "height"] = {"signal": f"max(0.25, bandwidth('{band}'))"}
        if render_pass.stack is not None:
            out[measure] = {"scale": measure, "field": field_ref(render_pass.stack.end)}
            out[f"{measure}2"] = {"scale": measure, "field": field_ref(render_pass.stack.start)}
        else:
            out[measure] = {"scale": measure, "field": field_ref(encoding[measure].field)}
            out[f"{measure}2"] = {"scale": measure, "value": 0}
        return out

    for channel in POSITION_CHANNELS:
        definition = encoding.get(channel)
        if definition is None:
            out[channel] = {"signal": "width" if channel == "x" else "height", "mult": 0.5}
        else:
            out[channel] = _channel_value(definition, channel if isinstance(definition, FieldDef) else None)
    return out


def _build_mark(render_pass: RenderPass, plans: Dict[str, ScalePlan]) -> Dict[str, Any]:
    mark_type = render_pass.mark.type
    color_prop = "fill" if render_pass.filled else "stroke"
    update: Dict[str, Any] = {}

    if mark_type == "point":
        update["opacity"] = {"value": 0.7}
        if not render_pass.filled:
            update["fill"] = {"value": "transparent"}
    elif mark_type == "text":
        update["align"] = {"value": "center"}
        update["baseline"] = {"value": "middle"}
    update[color_prop] = {"value": "black" if mark_type == "text" else DEFAULT_COLOR}

    for key, value in render_pass.mark.properties.items():
        if key == "filled":
            continue
        update[color_prop if key == "color" else key] = {"value": value}

    for channel, definition in render_pass.encoding.items():
        scale = channel if channel in plans and isinstance(definition, FieldDef) else None
        if channel == "color":
            update[color_prop] = _channel_value(definition, scale)
        elif channel == "opacity":
            update["opacity"] = _channel_value(definition, scale)
        elif channel == "size":
            update["fontSize" if mark_type == "text" else "size"] = _channel_value(definition, scale)
        elif channel == "text":
            update["text"] = _channel_value(definition)
        elif channel == "tooltip":
            update["tooltip"] = _tooltip(definition)

    update.update(_position(render_pass))

    mark: Dict[str, Any] = {
        "name": render_pass.name,
        "type": VEGA_MARKS[mark_type],
        "style": [mark_type],
        "interactive": bool(render_pass.params) or "tooltip" in render_pass.encoding,
        "from": {"data": render_pass.table},
        "encode": {"update": update},
    }
    order = render_pass.encoding.get("order")
    if isinstance(order, FieldDef) and render_pass.stack is None:
        mark["sort"] = {"field": f"datum.{field_ref(order.field)}", "order": "ascending"}
    return mark
