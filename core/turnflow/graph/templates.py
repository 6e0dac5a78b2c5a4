"""
Response template selection and the default placeholder renderer.

Every End channel (character, user, plot) has its own response template on
the flow. When the author left it blank the channel's fixed default is used
and a warning is logged: the turn still renders, but the flow has an
authoring gap.
"""

import logging
from typing import TYPE_CHECKING, Any, Protocol

from turnflow.graph.context import render_template
from turnflow.graph.node import Channel

if TYPE_CHECKING:
    from turnflow.graph.edge import FlowSpec

logger = logging.getLogger(__name__)

DEFAULT_RESPONSE_TEMPLATES: dict[Channel, str] = {
    Channel.CHARACTER: "{{response}}",
    Channel.USER: "{{user_response}}",
    Channel.PLOT: "{{plot_response}}",
}


class TemplateRenderer(Protocol):
    """Renders a response template against a variable context."""

    def render(self, template: str, context: dict[str, Any]) -> str: ...


def select_template(flow: "FlowSpec", channel: Channel | str) -> str:
    """
    Return the response template for the End node of *channel*.

    Falls back to the channel default when the configured template is
    absent, empty or whitespace-only. The configured string is returned
    exactly as written otherwise (no trimming).
    """
    channel = Channel(channel)
    template = flow.response_templates.get(channel)
    if template is None or not template.strip():
        logger.warning(
            f"Flow '{flow.id}' has no {channel.value} response template, using default",
            extra={"event": "template_fallback", "channel": channel.value},
        )
        return DEFAULT_RESPONSE_TEMPLATES[channel]
    return template


class PlaceholderRenderer:
    """Default ``TemplateRenderer`` backed by :func:`render_template`."""

    def render(self, template: str, context: dict[str, Any]) -> str:
        return render_template(template, context)
