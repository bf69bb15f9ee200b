"""
Prompt helpers
==============

System-prompt templating and personalization, and cleanup of the model's
final text.
"""

from __future__ import annotations

import re
from typing import Any, Mapping

VARIABLE_RE = re.compile(r"\{\{(\w+)\}\}")
THINKING_RE = re.compile(r"<thinking>.*?</thinking>", re.DOTALL)

CURRENT_USER_NOTE = (
    "\n. Current user is: {email}. If no other email or user id is provided, "
    "use this. If user asks for my issues, my mail etc, use this email id."
)


def render_prompt(template: str, variables: Mapping[str, Any]) -> str:
    """
    Replace ``{{name}}`` variables in a prompt template.

    List values are joined with newlines. Unknown variables are left as they
    are.
    """

    def replace(match: re.Match) -> str:
        key = match.group(1)
        if key not in variables:
            return match.group(0)
        value = variables[key]
        if isinstance(value, (list, tuple)):
            return "\n".join(str(v) for v in value)
        return str(value)

    return VARIABLE_RE.sub(replace, template)


def personalize(system_prompt: str, email: str = "") -> str:
    """Tell the model who the current user is."""
    if not email:
        return system_prompt
    return system_prompt + CURRENT_USER_NOTE.format(email=email)


def clean_output_text(text: str) -> str:
    """Strip ``<thinking>`` sections from model output."""
    return THINKING_RE.sub("", text).strip()
