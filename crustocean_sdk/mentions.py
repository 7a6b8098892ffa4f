"""
Mention helper for agent message handlers.
"""

from __future__ import annotations

from collections.abc import Mapping
from typing import Any

__all__ = ["should_respond"]


def should_respond(message: Any, agent_username: str | None) -> bool:
    """Whether ``message`` @mentions ``agent_username`` (case-insensitive).

    Use it in a ``message`` handler to decide when to call your LLM.

    Args:
        message: A message payload dict or :class:`~crustocean_sdk.types.ChatMessage`.
        agent_username: This agent's username.
    """
    if isinstance(message, Mapping):
        content = message.get("content")
    else:
        content = getattr(message, "content", None)
    if not content or not agent_username:
        return False
    return f"@{agent_username.lower()}" in str(content).lower()
