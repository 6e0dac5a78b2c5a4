"""Variable context helpers shared by templates, conditions and data-store logic.

A turn's render context is layered: the session context (characters,
history, ...) is overlaid by the agent outputs gathered so far, which are
in turn overlaid by the session data store, addressed by field name.
"""

import re
from collections.abc import Mapping
from typing import Any

PLACEHOLDER_PATTERN = re.compile(r"\{\{\s*([\w.]+)\s*\}\}")


def resolve_path(context: Mapping[str, Any], path: str) -> Any:
    """Look up a dotted path (``stats.hp``) in nested mappings. Missing → None."""
    current: Any = context
    for part in path.split("."):
        if isinstance(current, Mapping) and part in current:
            current = current[part]
        elif isinstance(current, list | tuple) and part.isdigit() and int(part) < len(current):
            current = current[int(part)]
        else:
            return None
    return current


def stringify(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, bool):
        return "true" if value else "false"
    return str(value)


def render_template(template: str, context: Mapping[str, Any]) -> str:
    """Substitute ``{{ dotted.path }}`` placeholders. Missing paths render empty."""
    return PLACEHOLDER_PATTERN.sub(
        lambda m: stringify(resolve_path(context, m.group(1))), template
    )


def build_full_context(
    context: Mapping[str, Any] | None = None,
    variables: Mapping[str, Any] | None = None,
    data_store: Mapping[str, Any] | None = None,
) -> dict[str, Any]:
    """Merge session context, agent variables and data-store values (later wins)."""
    return {**(context or {}), **(variables or {}), **(data_store or {})}
