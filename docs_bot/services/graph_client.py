"""Microsoft Graph API client with app-only (client credentials) auth."""

from __future__ import annotations

import time
from typing import Any

import httpx

from docs_bot.core.config import Settings
from docs_bot.core.errors import ConfigurationError, NotFoundError, UpstreamError
from docs_bot.core.logging import get_logger
from docs_bot.services.token_cache import DEFAULT_REFRESH_BUFFER_SECONDS, AccessToken, TokenCache

logger = get_logger(__name__)

GRAPH_BASE_URL = "https://graph.microsoft.com/v1.0"
GRAPH_SCOPE = "https://graph.microsoft.com/.default"
TOKEN_URL_TEMPLATE = "https://login.microsoftonline.com/{tenant}/oauth2/v2.0/token"


class GraphClient:
    """Authenticated JSON/binary requests against Microsoft Graph."""

    def __init__(
        self,
        tenant: str,
        client_id: str,
        client_secret: str,
        timeout: float = 30.0,
        refresh_buffer_seconds: int = DEFAULT_REFRESH_BUFFER_SECONDS,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        if not (tenant and client_id and client_secret):
            raise ConfigurationError(
                "Missing required Azure configuration: AZURE_TENANT, AZURE_CLIENT_ID, AZURE_CLIENT_SECRET"
            )
        self.tenant = tenant
        self.client_id = client_id
        self.client_secret = client_secret
        self.timeout = timeout
        self.transport = transport
        self._token_cache = TokenCache(self._fetch_token, refresh_buffer_seconds)

    @classmethod
    def from_settings(cls, settings: Settings, transport: httpx.AsyncBaseTransport | None = None) -> GraphClient:
        return cls(
            tenant=settings.AZURE_TENANT or "",
            client_id=settings.AZURE_CLIENT_ID or "",
            client_secret=settings.AZURE_CLIENT_SECRET or "",
            timeout=settings.HTTP_TIMEOUT_SECONDS,
            refresh_buffer_seconds=settings.TOKEN_REFRESH_BUFFER_SECONDS,
            transport=transport,
        )

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(timeout=self.timeout, transport=self.transport)

    async def _fetch_token(self) -> AccessToken:
        try:
            async with self._client() as client:
                resp = await client.post(
                    TOKEN_URL_TEMPLATE.format(tenant=self.tenant),
                    data={
                        "grant_type": "client_credentials",
                        "client_id": self.client_id,
                        "client_secret": self.client_secret,
                        "scope": GRAPH_SCOPE,
                    },
                )
        except httpx.HTTPError as e:
            raise UpstreamError(f"Failed to acquire Graph access token: {e}") from e
        if resp.status_code >= 400:
            raise UpstreamError(
                f"Failed to acquire Graph access token: {resp.status_code} {resp.text}",
                status_code=resp.status_code,
            )

        data = resp.json()
        logger.debug("Acquired Graph access token")
        return AccessToken(
            token=data["access_token"],
            expires_at=time.time() + int(data.get("expires_in", 3600)),
        )

    async def request(
        self,
        method: str,
        endpoint: str,
        json: dict[str, Any] | None = None,
        content: bytes | None = None,
        headers: dict[str, str] | None = None,
        params: dict[str, str] | None = None,
    ) -> dict[str, Any]:
        """
        Make an authenticated request to Microsoft Graph.

        Args:
            method: HTTP method
            endpoint: Path below the v1.0 base, starting with "/"
            json: JSON body
            content: Raw body (uploads)
            headers: Extra headers
            params: Query parameters

        Returns:
            Decoded JSON response, {} for 204 No Content

        Raises:
            NotFoundError: On HTTP 404
            UpstreamError: On any other non-2xx response or transport failure
        """
        token = await self._token_cache.get()
        request_headers = {
            "Authorization": f"Bearer {token}",
            "Accept": "application/json;odata.metadata=none",
        }
        if content is not None:
            request_headers["Content-Type"] = "application/octet-stream"
        request_headers.update(headers or {})

        try:
            async with self._client() as client:
                resp = await client.request(
                    method,
                    f"{GRAPH_BASE_URL}{endpoint}",
                    json=json,
                    content=content,
                    headers=request_headers,
                    params=params,
                )
        except httpx.HTTPError as e:
            raise UpstreamError(f"Graph request {method} {endpoint} failed: {e}") from e

        if resp.status_code == 404:
            raise NotFoundError(f"Graph resource not found: {endpoint}")
        if resp.status_code >= 400:
            raise UpstreamError(
                f"Graph API error: {resp.status_code} {resp.reason_phrase}\n{resp.text}",
                status_code=resp.status_code,
            )
        if resp.status_code == 204 or not resp.content:
            return {}
        return resp.json()
