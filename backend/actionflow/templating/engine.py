"""Template engine — {{input.*}} / {{$json.*}} expansion and nested path resolution.

Two namespaces are recognised:

  {{input.<path>}}          → looked up in the trigger / node inputs mapping
  {{$json.<nodeId>.<path>}} → looked up in the outputs of completed nodes

A placeholder that cannot be resolved is left in the output verbatim, so the
rendered request shows exactly which value failed to bind.  Anything else
between braces (``{{foo}}``) is not a placeholder and is never touched.
"""

from __future__ import annotations

import json
import re
from typing import Any, Mapping

# Matches {{input.a.b}} or {{$json.node_1.data.id}}
_TEMPLATE_RE = re.compile(r"\{\{\s*(input|\$json)\.([^{}\s]+)\s*\}\}")

_MISSING = object()


def get_nested_value(obj: Any, path: str) -> Any:
    """Resolve dotted path like 'data.items.0.id' against nested mappings / sequences.

    Returns the module-level ``_MISSING`` sentinel when any segment does not
    exist; ``None`` is a legitimate stored value.
    """
    current: Any = obj
    for part in path.split("."):
        if isinstance(current, Mapping):
            if part not in current:
                return _MISSING
            current = current[part]
        elif isinstance(current, (list, tuple)) and part.lstrip("-").isdigit():
            idx = int(part)
            if not -len(current) <= idx < len(current):
                return _MISSING
            current = current[idx]
        else:
            return _MISSING
    return current


def is_missing(value: Any) -> bool:
    return value is _MISSING


def stringify(value: Any) -> str:
    """Render a resolved value into template text."""
    if isinstance(value, str):
        return value
    if isinstance(value, (dict, list, tuple, bool)) or value is None:
        return json.dumps(value, default=str)
    return str(value)


def resolve(
    template: str,
    user_inputs: Mapping[str, Any] | None,
    prior_results: Mapping[str, Any] | None,
) -> str:
    """Replace every {{input.*}} and {{$json.*}} placeholder in *template*."""
    if not isinstance(template, str) or "{{" not in template:
        return template

    sources = {
        "input": user_inputs or {},
        "$json": prior_results or {},
    }

    def replacer(match: re.Match) -> str:
        value = get_nested_value(sources[match.group(1)], match.group(2))
        if is_missing(value):
            return match.group(0)
        return stringify(value)

    return _TEMPLATE_RE.sub(replacer, template)


def render_value(
    value: Any,
    user_inputs: Mapping[str, Any] | None,
    prior_results: Mapping[str, Any] | None,
) -> Any:
    """Recursively resolve templates in every string leaf of *value*."""
    if isinstance(value, str):
        return resolve(value, user_inputs, prior_results)
    if isinstance(value, Mapping):
        return {key: render_value(item, user_inputs, prior_results) for key, item in value.items()}
    if isinstance(value, list):
        return [render_value(item, user_inputs, prior_results) for item in value]
    return value


def build_request_body(
    template: Mapping[str, Any] | None,
    user_inputs: Mapping[str, Any],
    prior_results: Mapping[str, Any] | None,
) -> Any:
    """Render a body template; an empty template passes *user_inputs* through unchanged."""
    if not template:
        return user_inputs
    return render_value(template, user_inputs, prior_results)
