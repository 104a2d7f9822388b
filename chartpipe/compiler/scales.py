"""
Scale, axis and legend construction for compiled specs.

Scales are shared by every rendering pass; their domains are the union of the
(data set, field) pairs that feed each channel. Styling from the declarative
field definition is merged verbatim over the defaults built here.
"""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Tuple

from chartpipe.spec.models import FieldDef

POSITION_CHANNELS = ("x", "y")
SCALE_CHANNELS = ("x", "y", "color", "opacity", "size")
DISCRETE_TYPES = ("nominal", "ordinal")

DEFAULT_TYPES = {
    "x": "quantitative",
    "y": "quantitative",
    "opacity": "quantitative",
    "size": "quantitative",
    "order": "quantitative",
    "color": "nominal",
    "text": "nominal",
    "tooltip": "nominal",
    "detail": "nominal",
}


def field_type(channel: str, definition: FieldDef) -> str:
    """Declared type, or the channel default when none is given."""
    return definition.type or DEFAULT_TYPES.get(channel, "nominal")


def field_ref(name: str) -> str:
    """Escape a field name so Vega does not read dots/brackets as a path."""
    return name.replace("\\", "\\\\").replace(".", "\\.").replace("[", "\\[").replace("]", "\\]")


def datum_ref(name: str) -> str:
    return f"datum[{json.dumps(name, ensure_ascii=False)}]"


@dataclass
class ScaleUse:
    """One channel's use of a scale by one rendering pass."""
    definition: FieldDef
    data: str
    fields: Tuple[str, ...]
    mark_type: str


@dataclass
class ScalePlan:
    channel: str
    uses: List[ScaleUse] = field(default_factory=list)

    @property
    def first(self) -> FieldDef:
        return self.uses[0].definition

    @property
    def type(self) -> str:
        return field_type(self.channel, self.first)

    @property
    def discrete(self) -> bool:
        return self.type in DISCRETE_TYPES

    def title(self) -> str:
        for use in self.uses:
            if use.definition.title:
                return use.definition.title
        names: List[str] = []
        for use in self.uses:
            if use.definition.field not in names:
                names.append(use.definition.field)
        return ", ".join(names)

    def user_props(self, attribute: str) -> Dict[str, Any]:
        """Merge a styling attribute (scale/axis/legend) across uses, first wins."""
        merged: Dict[str, Any] = {}
        for use in reversed(self.uses):
            merged.update(getattr(use.definition, attribute) or {})
        return merged

    def domain(self) -> Dict[str, Any]:
        refs: List[Dict[str, str]] = []
        for use in self.uses:
            for name in use.fields:
                ref = {"data": use.data, "field": field_ref(name)}
                if ref not in refs:
                    refs.append(ref)
        if len(refs) == 1:
            domain: Dict[str, Any] = dict(refs[0])
        else:
            domain = {"fields": refs}
        if self.discrete:
            domain["sort"] = True
        return domain


def build_scale(plan: ScalePlan) -> Dict[str, Any]:
    """Default scale for a channel, with the document's scale props on top."""
    channel = plan.channel
    scale: Dict[str, Any] = {"name": channel}

    if channel in POSITION_CHANNELS:
        extent = [0, {"signal": "width"}] if channel == "x" else [{"signal": "height"}, 0]
        if plan.discrete:
            if any(use.mark_type == "bar" for use in plan.uses):
                scale.update({"type": "band", "domain": plan.domain(), "range": extent,
                              "paddingInner": 0.1, "paddingOuter": 0.05})
            else:
                scale.update({"type": "point", "domain": plan.domain(), "range": extent, "padding": 0.5})
        else:
            scale.update({"type": "linear", "domain": plan.domain(), "range": extent,
                          "nice": True, "zero": True})
    elif channel == "color":
        if plan.type == "quantitative":
            scale.update({"type": "linear", "domain": plan.domain(), "range": "ramp",
                          "interpolate": "hcl", "zero": False})
        else:
            scale.update({"type": "ordinal", "domain": plan.domain(),
                          "range": "ordinal" if plan.type == "ordinal" else "category"})
    elif channel == "opacity":
        scale.update({"type": "linear", "domain": plan.domain(), "range": [0.3, 0.8], "zero": False})
    elif channel == "size":
        scale.update({"type": "linear", "domain": plan.domain(), "range": [9, 361], "zero": True})

    scale.update(plan.user_props("scale"))
    return scale


def build_axis(plan: ScalePlan) -> Dict[str, Any]:
    channel = plan.channel
    axis: Dict[str, Any] = {
        "scale": channel,
        "orient": "bottom" if channel == "x" else "left",
        "title": plan.title(),
        "grid": not plan.discrete,
        "labelOverlap": True,
        "zindex": 0,
    }
    if not plan.discrete:
        size_signal = "width" if channel == "x" else "height"
        axis["tickCount"] = {"signal": f"ceil({size_signal}/40)"}
        if channel == "x":
            axis["labelFlush"] = True
    axis.update(plan.user_props("axis"))
    return axis


def legend_name(channel: str) -> str:
    return f"{channel}_legend"


def build_legend(
    plan: ScalePlan,
    property_name: str,
    selection: Optional[Dict[str, Any]] = None,
) -> Dict[str, Any]:
    """
    Legend for a non-positional scale.

    Args:
        plan: Scale plan of the channel
        property_name: Vega legend property the scale drives (fill/stroke/opacity/size)
        selection: Optional ``{"test": expr}`` making legend entries interactive
    """
    legend: Dict[str, Any] = {property_name: plan.channel, "title": plan.title()}
    if property_name in ("fill", "stroke"):
        legend["symbolType"] = "circle"

    if selection is not None:
        name = legend_name(plan.channel)
        dimmed = [{"test": selection["test"], "value": 0.7}, {"value": 0.2}]
        legend["encode"] = {
            "symbols": {
                "name": f"{name}_symbols",
                "interactive": True,
                "update": {"opacity": dimmed},
            },
            "labels": {
                "name": f"{name}_labels",
                "interactive": True,
                "update": {"opacity": [{"test": selection["test"], "value": 1}, {"value": 0.25}]},
            },
        }

    legend.update(plan.user_props("legend"))
    return legend
