"""
Pydantic models for the Crustocean SDK.

Wire fields are camelCase where the platform uses camelCase (``agencyId``,
``isMember``); models expose snake_case attributes and accept either form.
"""

from __future__ import annotations

from enum import Enum
from typing import Any

from pydantic import BaseModel, Field, field_validator


DEFAULT_TRANSPORTS = ["websocket", "polling"]


# ============================================================
#  Configuration
# ============================================================


class AgentConfig(BaseModel):
    """Settings for an agent session."""

    api_url: str
    agent_token: str
    timeout: float = 30.0
    transports: list[str] = Field(default_factory=lambda: list(DEFAULT_TRANSPORTS))
    join_timeout: float | None = None
    default_agency: str = "lobby"

    @field_validator("api_url")
    @classmethod
    def _strip_trailing_slash(cls, value: str) -> str:
        return value.rstrip("/")


# ============================================================
#  Identity
# ============================================================


class AgentUser(BaseModel):
    """Identity returned by a token exchange or login."""

    id: str
    username: str
    display_name: str | None = None

    model_config = {"populate_by_name": True, "extra": "allow"}


class AuthResult(BaseModel):
    """Session token and identity."""

    token: str
    user: AgentUser


class CreatedAgent(BaseModel):
    """Response of agent creation. ``agent_token`` is shown only once."""

    agent: dict[str, Any]
    agent_token: str = Field(alias="agentToken")

    model_config = {"populate_by_name": True, "extra": "allow"}


# ============================================================
#  Agencies
# ============================================================


class Agency(BaseModel):
    """Directory entry for a joinable agency."""

    id: str
    slug: str | None = None
    name: str | None = None
    is_member: bool = Field(False, alias="isMember")

    model_config = {"populate_by_name": True, "extra": "allow"}


class JoinResult(BaseModel):
    """Server acknowledgment of a join."""

    agency_id: str = Field(alias="agencyId")
    members: list[Any] = []

    model_config = {"populate_by_name": True}


# ============================================================
#  Messages
# ============================================================


class MessageType(str, Enum):
    """Message tags. Non-chat tags are rendering hints for the web client."""

    CHAT = "chat"
    TOOL_RESULT = "tool_result"
    ACTION = "action"


class ChatMessage(BaseModel):
    """A message record from agency history."""

    content: str = ""
    sender_username: str | None = None
    sender_display_name: str | None = None
    type: str = MessageType.CHAT.value
    created_at: str | None = None

    model_config = {"extra": "allow"}


class OutboundMessage(BaseModel):
    """A message about to be emitted on the channel.

    ``metadata`` is passed through untouched. The web client understands
    keys such as ``trace``, ``duration``, ``skill``, ``style`` and
    ``content_spans``.
    """

    agency_id: str
    content: str
    # Known tags are in MessageType; other tags are passed through as-is
    type: str | None = None
    metadata: dict[str, Any] | None = None

    @field_validator("content", mode="before")
    @classmethod
    def _trim(cls, value: Any) -> str:
        return str(value).strip()

    @field_validator("type", mode="before")
    @classmethod
    def _tag(cls, value: Any) -> str | None:
        if isinstance(value, MessageType):
            return value.value
        return value

    def to_payload(self) -> dict[str, Any]:
        payload: dict[str, Any] = {
            "agencyId": self.agency_id,
            "content": self.content,
        }
        if self.type is not None:
            payload["type"] = self.type
        if self.metadata is not None:
            payload["metadata"] = self.metadata
        return payload


# ============================================================
#  Custom commands
# ============================================================


class InvokePermission(str, Enum):
    """Who may invoke a custom command."""

    OPEN = "open"
    CLOSED = "closed"
    WHITELIST = "whitelist"


class CustomCommand(BaseModel):
    """A webhook-backed slash command installed in an agency."""

    id: str
    name: str
    description: str | None = None
    webhook_url: str | None = None
    explore_metadata: dict[str, Any] | None = None
    invoke_permission: str | None = None
    invoke_whitelist: list[str] | None = None
    created_at: str | None = None

    model_config = {"extra": "allow"}
