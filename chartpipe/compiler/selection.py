"""
Point-selection wiring for legend-bound params.

Each param compiles to a ``<var>_store`` data set holding the selected tuples
and a chain of signals: the legend signal captures the clicked legend value,
``_tuple`` packs it with ``_tuple_fields``, and ``_modify`` writes it to the
store (shift-click toggles via ``_toggle``). A double click anywhere clears it.
"""

from __future__ import annotations

import re
from typing import Any, Dict, List

from chartpipe.errors import CompileError
from chartpipe.spec.models import Param

_UNSAFE = re.compile(r"[^A-Za-z0-9_]")


def signal_var(name: str) -> str:
    """Param name as a valid Vega signal identifier."""
    var = _UNSAFE.sub("_", name)
    if var[:1].isdigit():
        var = "_" + var
    return var


def store_name(param: str) -> str:
    return f"{signal_var(param)}_store"


def legend_signal(param: Param) -> str:
    return f"{signal_var(param.name)}_{signal_var(param.fields[0])}_legend"


def selection_test(param: str, empty: bool = False) -> str:
    """
    Expression true for data selected by ``param``.

    With ``empty=False`` nothing matches while the store is empty, so every
    mark falls through to the fallback value.
    """
    store = store_name(param)
    if empty:
        return f'!length(data("{store}")) || vlSelectionTest("{store}", datum)'
    return f'length(data("{store}")) && vlSelectionTest("{store}", datum)'


def legend_test(param: Param) -> str:
    """Expression evaluated per legend entry: highlighted when selected or nothing is."""
    return f'!length(data("{store_name(param.name)}")) || {legend_signal(param)} === datum.value'


def check_param(param: Param) -> None:
    if param.select != "point":
        raise CompileError(f"Param '{param.name}': only point selections are supported, got '{param.select}'")
    if not param.fields:
        raise CompileError(f"Param '{param.name}' selects no fields")
    if param.bind != "legend":
        raise CompileError(f"Param '{param.name}' must be bound to a legend")
    if len(param.fields) != 1:
        raise CompileError(f"Legend-bound param '{param.name}' must select exactly one field")


def selection_data(param: Param) -> Dict[str, Any]:
    return {"name": store_name(param.name)}


def selection_signals(param: Param, legend_mark: str) -> List[Dict[str, Any]]:
    """Signals for one param whose legend entries are named ``legend_mark``_symbols/_labels."""
    var = signal_var(param.name)
    legend = legend_signal(param)
    fields = [{"type": "E", "field": name} for name in param.fields]

    return [
        {
            "name": legend,
            "value": None,
            "on": [
                {
                    "events": [
                        {"source": "view", "type": "click", "markname": f"{legend_mark}_symbols"},
                        {"source": "view", "type": "click", "markname": f"{legend_mark}_labels"},
                    ],
                    "update": "datum.value",
                    "force": True,
                },
                {"events": [{"source": "view", "type": "dblclick"}], "update": "null"},
            ],
        },
        {"name": f"{var}_tuple_fields", "value": fields},
        {
            "name": f"{var}_tuple",
            "update": f"{legend} !== null ? {{fields: {var}_tuple_fields, values: [{legend}]}} : null",
        },
        {
            "name": f"{var}_toggle",
            "value": False,
            "on": [{"events": [{"source": "view", "type": "click"}], "update": "event.shiftKey"}],
        },
        {
            "name": f"{var}_modify",
            "on": [{
                "events": {"signal": f"{var}_tuple"},
                "update": (
                    f'modify("{var}_store", {var}_toggle ? null : {var}_tuple, '
                    f"{var}_toggle ? null : true, {var}_toggle ? {var}_tuple : null)"
                ),
            }],
        },
    ]
