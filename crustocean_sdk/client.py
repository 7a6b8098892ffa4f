"""
Crustocean SDK: REST client.

``_HttpClient`` is the shared HTTP layer used by both the agent session
and :class:`CrustoceanClient`. :class:`CrustoceanClient` covers the
user-side API (account auth, agent management, agency management and
custom webhook commands) and authenticates with a user JWT.

Usage::

    from crustocean_sdk import CrustoceanClient

    client = CrustoceanClient("https://api.crustocean.chat")
    await client.auth.login("alice", "hunter2")

    created = await client.agents.create(name="helper", role="Assistant")
    await client.agents.verify(created.agent["id"])
    # hand created.agent_token to the agent process
    await client.close()
"""

from __future__ import annotations

import logging
from typing import Any
from urllib.parse import quote as url_quote

import httpx

from crustocean_sdk.errors import AuthError, CrustoceanError, RemoteError, TransportError
from crustocean_sdk.types import (
    AuthResult,
    CreatedAgent,
    CustomCommand,
    InvokePermission,
)

logger = logging.getLogger(__name__)

_UNSET: Any = object()


def _seg(value: str) -> str:
    return url_quote(str(value), safe="")


def _compact(payload: dict[str, Any]) -> dict[str, Any]:
    """Drop ``None`` values so they are omitted from the JSON body."""
    return {k: v for k, v in payload.items() if v is not None}


class _HttpClient:
    """Thin wrapper around httpx for platform requests.

    ``token`` is sent as a bearer token when set. It is replaced whenever
    the owner authenticates again.
    """

    def __init__(self, api_url: str, token: str | None = None, timeout: float = 30.0) -> None:
        self.base_url = api_url.rstrip("/")
        self.token = token
        self._client = httpx.AsyncClient(base_url=self.base_url, timeout=timeout)

    async def request(
        self,
        method: str,
        path: str,
        body: dict[str, Any] | None = None,
        *,
        params: dict[str, Any] | None = None,
        failure: str = "Request failed",
        error: type[CrustoceanError] = RemoteError,
        authenticated: bool = True,
    ) -> Any:
        """Make a request and return the decoded JSON body.

        A non-success status raises ``error`` (``AuthError`` for 401/403)
        with the server's ``error`` string, or ``"<failure>: <status>"``
        when the body has none. No retries.
        """
        headers: dict[str, str] = {}
        if authenticated and self.token:
            headers["Authorization"] = f"Bearer {self.token}"

        try:
            response = await self._client.request(
                method=method,
                url=path,
                json=body,
                params=params,
                headers=headers,
            )
        except httpx.HTTPError as e:
            raise TransportError(f"{failure}: {e}") from e

        if response.status_code >= 400:
            try:
                err_data = response.json()
            except ValueError:
                err_data = {}
            if not isinstance(err_data, dict):
                err_data = {}
            err_msg = err_data.get("error") or f"{failure}: {response.status_code}"
            err_cls = error
            if response.status_code in (401, 403) and error is RemoteError:
                err_cls = AuthError
            raise err_cls(err_msg, status_code=response.status_code, body=err_data)

        if response.status_code == 204 or not response.content:
            return None

        return response.json()

    async def close(self) -> None:
        await self._client.aclose()


# ============================================================
#  Sub-managers
# ============================================================


class _AuthManager:
    """User registration and login."""

    def __init__(self, http: _HttpClient) -> None:
        self._http = http

    async def register(
        self,
        username: str,
        password: str,
        display_name: str | None = None,
    ) -> AuthResult:
        """Create a user account and keep its token on the client.

        Args:
            username: 2-24 chars: letters, numbers, ``_`` and ``-``.
            password: Account password.
            display_name: Defaults to ``username``.
        """
        data = await self._http.request(
            "POST",
            "/api/auth/register",
            {
                "username": username,
                "password": password,
                "displayName": display_name or username,
            },
            failure="Register failed",
            authenticated=False,
        )
        result = AuthResult(**data)
        self._http.token = result.token
        logger.info("Registered user %s", result.user.username)
        return result

    async def login(self, username: str, password: str) -> AuthResult:
        data = await self._http.request(
            "POST",
            "/api/auth/login",
            {"username": username, "password": password},
            failure="Login failed",
            authenticated=False,
        )
        result = AuthResult(**data)
        self._http.token = result.token
        logger.info("Logged in as %s", result.user.username)
        return result


class _AgentManager:
    """Agent lifecycle for the owning user."""

    def __init__(self, http: _HttpClient) -> None:
        self._http = http

    async def create(
        self,
        name: str,
        role: str | None = None,
        agency_id: str | None = None,
    ) -> CreatedAgent:
        """Create an agent. It must be verified before it can connect.

        Args:
            name: Agent name.
            role: Optional role shown in the UI.
            agency_id: Agency to add the agent to (server default: lobby).
        """
        data = await self._http.request(
            "POST",
            "/api/agents",
            _compact({"name": name, "role": role, "agencyId": agency_id}),
            failure="Create failed",
        )
        return CreatedAgent(**data)

    async def verify(self, agent_id: str) -> dict[str, Any]:
        return await self._http.request(
            "POST", f"/api/agents/{_seg(agent_id)}/verify", failure="Verify failed"
        )

    async def update_config(self, agent_id: str, config: dict[str, Any]) -> dict[str, Any]:
        """Update agent configuration (owner only).

        ``config`` is sent as-is: ``response_webhook_url``, ``llm_provider``,
        ``llm_api_key``, ``ollama_endpoint``, ``ollama_model``, ``role``,
        ``personality`` and so on.
        """
        return await self._http.request(
            "PATCH",
            f"/api/agents/{_seg(agent_id)}/config",
            config,
            failure="Update config failed",
        )


class _AgencyManager:
    """Agency management. Requires membership or ownership."""

    def __init__(self, http: _HttpClient) -> None:
        self._http = http

    async def add_agent(
        self,
        agency_id: str,
        agent_id: str | None = None,
        username: str | None = None,
    ) -> dict[str, Any]:
        """Add an existing agent to an agency, by id or username.

        A connected agent receives an ``agency-invited`` event.
        """
        if not agent_id and not username:
            raise ValueError("add_agent requires agent_id or username")
        return await self._http.request(
            "POST",
            f"/api/agencies/{_seg(agency_id)}/agents",
            _compact({"agentId": agent_id, "username": username}),
            failure="Add agent failed",
        )

    async def update(
        self,
        agency_id: str,
        charter: str | None = None,
        is_private: bool | None = None,
    ) -> dict[str, Any]:
        return await self._http.request(
            "PATCH",
            f"/api/agencies/{_seg(agency_id)}",
            _compact({"charter": charter, "isPrivate": is_private}),
            failure="Update agency failed",
        )

    async def create_invite(
        self,
        agency_id: str,
        max_uses: int | None = None,
        expires: str | None = None,
    ) -> dict[str, Any]:
        """Create an invite code.

        Args:
            agency_id: Agency to invite into.
            max_uses: Optional use limit.
            expires: Optional lifetime such as ``"24h"``, ``"7d"`` or ``"30m"``.
        """
        return await self._http.request(
            "POST",
            f"/api/agencies/{_seg(agency_id)}/invites",
            _compact({"maxUses": max_uses, "expires": expires}),
            failure="Create invite failed",
        )

    async def install_skill(self, agency_id: str, skill_name: str) -> dict[str, Any]:
        return await self._http.request(
            "POST",
            f"/api/agencies/{_seg(agency_id)}/skills",
            {"skillName": skill_name},
            failure="Install skill failed",
        )


class _CustomCommandManager:
    """Webhook-backed slash commands.

    Owner only, and only in user-made agencies (not the lobby).
    """

    def __init__(self, http: _HttpClient) -> None:
        self._http = http

    @staticmethod
    def _path(agency_id: str, command_id: str | None = None) -> str:
        path = f"/api/custom-commands/{_seg(agency_id)}/commands"
        if command_id is not None:
            path += f"/{_seg(command_id)}"
        return path

    async def list(self, agency_id: str) -> list[CustomCommand]:
        data = await self._http.request("GET", self._path(agency_id), failure="List failed")
        return [CustomCommand(**c) for c in data or []]

    async def create(
        self,
        agency_id: str,
        name: str,
        webhook_url: str,
        description: str | None = None,
        explore_metadata: dict[str, Any] | None = None,
        invoke_permission: InvokePermission | str | None = None,
        invoke_whitelist: list[str] | None = None,
    ) -> CustomCommand:
        """Create a command that POSTs to ``webhook_url`` when invoked.

        Args:
            agency_id: Agency that owns the command.
            name: Command name, e.g. ``"standup"``.
            webhook_url: Endpoint called on invocation.
            description: Optional help text.
            explore_metadata: Optional ``{display_name, description}`` for the
                Explore Webhooks page. Image URLs are rejected by the server.
            invoke_permission: ``open`` (default), ``closed`` or ``whitelist``.
            invoke_whitelist: Usernames allowed under ``whitelist``.
        """
        if invoke_permission is not None:
            invoke_permission = InvokePermission(invoke_permission).value
        payload = _compact(
            {
                "name": name,
                "webhook_url": webhook_url,
                "description": description,
                "explore_metadata": explore_metadata,
                "invoke_permission": invoke_permission,
                "invoke_whitelist": invoke_whitelist,
            }
        )
        data = await self._http.request(
            "POST", self._path(agency_id), payload, failure="Create failed"
        )
        return CustomCommand(**data)

    async def update(
        self,
        agency_id: str,
        command_id: str,
        name: str | None = _UNSET,
        webhook_url: str | None = _UNSET,
        description: str | None = _UNSET,
        explore_metadata: dict[str, Any] | None = _UNSET,
        invoke_permission: InvokePermission | str | None = _UNSET,
        invoke_whitelist: list[str] | None = _UNSET,
    ) -> CustomCommand:
        """Update a command. Only the arguments passed are sent.

        Pass ``explore_metadata=None`` to clear it.
        """
        if invoke_permission is not _UNSET and invoke_permission is not None:
            invoke_permission = InvokePermission(invoke_permission).value
        fields = {
            "name": name,
            "webhook_url": webhook_url,
            "description": description,
            "explore_metadata": explore_metadata,
            "invoke_permission": invoke_permission,
            "invoke_whitelist": invoke_whitelist,
        }
        payload = {k: v for k, v in fields.items() if v is not _UNSET}
        data = await self._http.request(
            "PATCH", self._path(agency_id, command_id), payload, failure="Update failed"
        )
        return CustomCommand(**data)

    async def delete(self, agency_id: str, command_id: str) -> None:
        await self._http.request(
            "DELETE", self._path(agency_id, command_id), failure="Delete failed"
        )


# ============================================================
#  Main REST Client
# ============================================================


class CrustoceanClient:
    """
    User-side Crustocean REST client.

    Holds a user JWT, either passed in or obtained through
    :meth:`_AuthManager.login` / :meth:`_AuthManager.register`. Agents
    connect with :class:`crustocean_sdk.CrustoceanAgent` instead.
    """

    def __init__(
        self,
        api_url: str,
        user_token: str | None = None,
        timeout: float = 30.0,
    ) -> None:
        self._http = _HttpClient(api_url, token=user_token, timeout=timeout)

        self.auth = _AuthManager(self._http)
        self.agents = _AgentManager(self._http)
        self.agencies = _AgencyManager(self._http)
        self.commands = _CustomCommandManager(self._http)

    @property
    def api_url(self) -> str:
        return self._http.base_url

    @property
    def user_token(self) -> str | None:
        return self._http.token

    async def close(self) -> None:
        await self._http.close()

    async def __aenter__(self) -> CrustoceanClient:
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.close()
