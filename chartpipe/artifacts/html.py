"""
Embeddable HTML fragment for a compiled spec.

The fragment is a ``<div>`` target plus an inline script that hands the spec
to ``vegaEmbed``. The host page is expected to load vega, vega-lite and
vega-embed itself.
"""

from __future__ import annotations

import json
import uuid
from typing import Any, Dict, Tuple

FRAGMENT_TEMPLATE = (
    '<div id="{selector}" class="vis"></div>'
    "<script>let {selector} = {spec};"
    'vegaEmbed("#{selector}", {selector}, {{ renderer: "svg", actions: false }});</script>'
)


def new_element_id() -> str:
    """Fresh element id; valid as both an HTML id and a JS identifier."""
    return "_" + uuid.uuid4().hex


def script_safe_json(spec: Dict[str, Any]) -> str:
    """JSON for an inline script: ``</`` would otherwise close the element."""
    return json.dumps(spec, ensure_ascii=False).replace("</", "<\\/")


def create_html_fragment(spec: Dict[str, Any]) -> Tuple[str, str]:
    """
    Render the embed fragment for ``spec``.

    Returns:
        (element_id, html)
    """
    selector = new_element_id()
    return selector, FRAGMENT_TEMPLATE.format(selector=selector, spec=script_safe_json(spec))
