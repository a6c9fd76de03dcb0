"""
Template Engine
===============

Placeholder substitution for custom tool requests and responses.

Admins describe a custom tool's request body as JSON containing
`{{param}}` markers, and optionally a flat text template for the response
using `{{dot.path}}` markers:

    request_template:  {"city": "{{city}}", "units": "metric"}
    response_mapping:  {"format": "template",
                        "template": "{{main.temp}}°C in {{name}}"}

Both functions are total: unknown markers are left in place so a broken
template shows up in the output instead of raising.
"""

import json
import re
from typing import Any

MARKER_PATTERN = re.compile(r"\{\{\s*([^{}]+?)\s*\}\}")


def _to_text(value: Any) -> str:
    """String form of a value as it should appear inside a template."""
    if isinstance(value, str):
        return value
    if isinstance(value, bool):
        return "true" if value else "false"
    if value is None:
        return "null"
    if isinstance(value, (dict, list)):
        return json.dumps(value)
    return str(value)


def _substitute(text: str, values: dict[str, Any]) -> str:
    def replace(match: re.Match) -> str:
        key = match.group(1)
        if key in values:
            return _to_text(values[key])
        return match.group(0)

    return MARKER_PATTERN.sub(replace, text)


def render_request(template: Any, args: dict[str, Any]) -> Any:
    """
    Fill `{{name}}` markers in a JSON request template.

    Walks dicts and lists recursively. Only string values are substituted;
    keys and other scalars are copied as they are.

    Args:
        template: The stored request template, or None
        args: Arguments supplied by the model

    Returns:
        The rendered body, or `args` itself when there is no template
    """
    if template is None:
        return args

    if isinstance(template, dict):
        return {key: render_request(value, args) for key, value in template.items()}
    if isinstance(template, list):
        return [render_request(item, args) for item in template]
    if isinstance(template, str):
        return _substitute(template, args)
    return template


def flatten(data: Any, prefix: str = "") -> dict[str, Any]:
    """
    Flatten nested objects into dot-path keys.

    Lists are not descended into; they appear at their leaf as JSON text.

    Example:
        flatten({"a": {"b": 5}, "c": [1, 2]})
        # {"a.b": 5, "c": "[1, 2]"}
    """
    flat: dict[str, Any] = {}

    if not isinstance(data, dict):
        if prefix:
            flat[prefix] = json.dumps(data) if isinstance(data, list) else data
        return flat

    for key, value in data.items():
        path = f"{prefix}.{key}" if prefix else str(key)
        if isinstance(value, dict):
            flat.update(flatten(value, path))
        elif isinstance(value, list):
            flat[path] = json.dumps(value)
        else:
            flat[path] = value

    return flat


def render_response(data: Any, mapping: dict[str, Any] | None = None) -> str:
    """
    Turn a custom tool's response into text for the model.

    Args:
        data: Decoded response body
        mapping: {"format": "template", "template": "..."} or None

    Returns:
        The filled template, or pretty-printed JSON when no template applies
    """
    if not mapping or mapping.get("format") != "template":
        return json.dumps(data, indent=2, default=str)

    template = mapping.get("template") or ""
    return _substitute(template, flatten(data))
