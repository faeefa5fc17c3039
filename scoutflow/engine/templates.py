"""Message template rendering using Jinja2.

Templates are opaque plain-text bodies with ``{{name}}`` placeholders.
Rendering never fails on a missing variable: the placeholder degrades to
its entry in DEFAULT_CONTEXT, or failing that to the caller's default.
Only {{ }} placeholders are syntax; block and comment markers in message
text are left as typed. Malformed placeholders raise TemplateRenderError.

Usage:
    from scoutflow.engine.templates import build_context, render

    text = render("Hi {{first_name}}!", build_context(prospect, agent))
"""

from functools import lru_cache
from typing import Any, Mapping, Optional

import jinja2
from jinja2.sandbox import SandboxedEnvironment

from scoutflow.core.exceptions import TemplateRenderError
from scoutflow.core.logging import get_logger
from scoutflow.db.models import AgentProfile, Prospect

logger = get_logger(__name__)


DEFAULT_CONTEXT: dict[str, str] = {
    "first_name": "Friend",
    "agent_name": "Your Agent",
    "product_name": "Our Product",
    "user_goal": "your goal",
    "booking_link": "https://calendly.com/your-link",
    "product_core_benefits": "Amazing benefits",
    "client_example_name": "Maria",
    "client_pain_point": "wanted to save for the future",
    "client_result": "saved ₱50k in 6 months",
    "timeframe": "6 months",
}


class _FallbackUndefined(jinja2.Undefined):
    """Undefined that prints a fixed fallback instead of an empty string."""

    fallback = ""

    def __str__(self) -> str:
        return self.fallback


# Control characters never appear in authored messages.
_BLOCK_START, _BLOCK_END = "\x00\x01%", "%\x01\x00"
_COMMENT_START, _COMMENT_END = "\x00\x01#", "#\x01\x00"


@lru_cache(maxsize=16)
def _get_env(default: str) -> SandboxedEnvironment:
    """Sandboxed environment whose undefined values render as ``default``."""
    undefined = type("FallbackUndefined", (_FallbackUndefined,), {"fallback": default})
    return SandboxedEnvironment(
        block_start_string=_BLOCK_START,
        block_end_string=_BLOCK_END,
        comment_start_string=_COMMENT_START,
        comment_end_string=_COMMENT_END,
        autoescape=False,
        undefined=undefined,
        keep_trailing_newline=True,
    )


def render(template_body: str, variables: Optional[Mapping[str, Any]] = None, default: str = "") -> str:
    """Render a template body.

    Args:
        template_body: Text with {{name}} placeholders
        variables: Placeholder values; None values count as missing
        default: Text for placeholders with no value and no built-in default

    Returns:
        Rendered text

    Raises:
        TemplateRenderError: If the body is not a valid template
    """
    context: dict[str, Any] = dict(DEFAULT_CONTEXT)
    for key, value in (variables or {}).items():
        if value is not None and value != "":
            context[key] = value

    try:
        template = _get_env(default).from_string(template_body or "")
        return template.render(**context)
    except jinja2.TemplateError as e:
        raise TemplateRenderError(f"Cannot render template: {e}") from e


def build_context(prospect: Prospect, agent: Optional[AgentProfile] = None) -> dict[str, Any]:
    """Per-prospect and per-agent placeholder values.

    Missing fields are omitted so the defaults apply.
    """
    context: dict[str, Any] = {
        "first_name": prospect.first_name.strip() or None,
        "last_name": prospect.last_name.strip() or None,
        "full_name": prospect.full_name or None,
    }
    if agent is not None:
        context.update(
            {
                "agent_name": agent.agent_name,
                "product_name": agent.product_name,
                "booking_link": agent.booking_link,
                "user_goal": agent.user_goal,
            }
        )
    return {k: v for k, v in context.items() if v}
