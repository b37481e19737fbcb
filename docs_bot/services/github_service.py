"""GitHub REST API service for policy repositories.

Authenticates either with a static token or as a GitHub App installation.
Installation tokens live for an hour and are refreshed five minutes early.
"""

from __future__ import annotations

import base64
import time
from dataclasses import dataclass
from datetime import datetime
from typing import Any
from urllib.parse import quote

import httpx
import jwt

from docs_bot.core.config import Settings
from docs_bot.core.errors import ConfigurationError, NotFoundError, UpstreamError
from docs_bot.core.logging import get_logger
from docs_bot.services.token_cache import DEFAULT_REFRESH_BUFFER_SECONDS, AccessToken, TokenCache

logger = get_logger(__name__)

GITHUB_API = "https://api.github.com"
INSTALLATION_TOKEN_TTL_SECONDS = 3600
APP_JWT_TTL_SECONDS = 600


@dataclass(frozen=True)
class FileContent:
    content: str
    sha: str
    path: str


@dataclass(frozen=True)
class BinaryContent:
    data: bytes
    sha: str
    path: str


def decode_private_key(value: str) -> str:
    """Accept a PEM key as-is or base64-encoded."""
    if value.lstrip().startswith("-----BEGIN"):
        return value
    return base64.b64decode(value).decode("utf-8")


class GitHubService:
    """Reads repository contents and maintains pull-request descriptions."""

    def __init__(
        self,
        token: str | None = None,
        app_id: str | None = None,
        private_key: str | None = None,
        installation_id: str | None = None,
        timeout: float = 30.0,
        refresh_buffer_seconds: int = DEFAULT_REFRESH_BUFFER_SECONDS,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.timeout = timeout
        self.transport = transport
        self._static_token = token
        self._app_id = app_id
        self._private_key = decode_private_key(private_key) if private_key else None
        self._installation_id = installation_id
        self._token_cache: TokenCache | None = None

        if not token:
            if not (app_id and private_key and installation_id):
                raise ConfigurationError(
                    "Missing GitHub credentials. Set GITHUB_TOKEN or GITHUB_APP_ID, "
                    "GITHUB_APP_PRIVATE_KEY and GITHUB_APP_INSTALLATION_ID."
                )
            self._token_cache = TokenCache(self._fetch_installation_token, refresh_buffer_seconds)

    @classmethod
    def from_settings(cls, settings: Settings, transport: httpx.AsyncBaseTransport | None = None) -> GitHubService:
        return cls(
            token=settings.GITHUB_TOKEN,
            app_id=settings.GITHUB_APP_ID,
            private_key=settings.GITHUB_APP_PRIVATE_KEY,
            installation_id=settings.GITHUB_APP_INSTALLATION_ID,
            timeout=settings.HTTP_TIMEOUT_SECONDS,
            refresh_buffer_seconds=settings.TOKEN_REFRESH_BUFFER_SECONDS,
            transport=transport,
        )

    # -------------------------------------------------------------------------
    # Auth
    # -------------------------------------------------------------------------

    def _app_jwt(self) -> str:
        now = int(time.time())
        payload = {"iat": now - 60, "exp": now + APP_JWT_TTL_SECONDS, "iss": self._app_id}
        return jwt.encode(payload, self._private_key, algorithm="RS256")

    async def _fetch_installation_token(self) -> AccessToken:
        try:
            async with self._client() as client:
                resp = await client.post(
                    f"{GITHUB_API}/app/installations/{self._installation_id}/access_tokens",
                    headers={
                        "Authorization": f"Bearer {self._app_jwt()}",
                        "Accept": "application/vnd.github+json",
                    },
                )
        except httpx.HTTPError as e:
            raise UpstreamError(f"GitHub installation token request failed: {e}") from e
        if resp.status_code >= 400:
            raise UpstreamError(
                f"GitHub installation token request failed: {resp.status_code} {resp.text}",
                status_code=resp.status_code,
            )

        data = resp.json()
        expires_at = time.time() + INSTALLATION_TOKEN_TTL_SECONDS
        if data.get("expires_at"):
            expires_at = datetime.fromisoformat(data["expires_at"].replace("Z", "+00:00")).timestamp()
        logger.info(f"Obtained GitHub installation token for installation {self._installation_id}")
        return AccessToken(token=data["token"], expires_at=expires_at)

    async def _headers(self, accept: str = "application/vnd.github+json") -> dict[str, str]:
        token = self._static_token or await self._token_cache.get()
        return {
            "Authorization": f"token {token}",
            "Accept": accept,
            "X-GitHub-Api-Version": "2022-11-28",
        }

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(timeout=self.timeout, transport=self.transport)

    async def _request(
        self,
        method: str,
        path: str,
        accept: str = "application/vnd.github+json",
        **kwargs: Any,
    ) -> httpx.Response:
        """
        Send an authenticated request.

        Raises:
            NotFoundError: On HTTP 404
            UpstreamError: On any other non-2xx response or transport failure
        """
        headers = await self._headers(accept)
        try:
            async with self._client() as client:
                resp = await client.request(method, f"{GITHUB_API}{path}", headers=headers, **kwargs)
        except httpx.HTTPError as e:
            raise UpstreamError(f"GitHub request {method} {path} failed: {e}") from e

        if resp.status_code == 404:
            raise NotFoundError(f"GitHub resource not found: {path}")
        if resp.status_code >= 400:
            raise UpstreamError(
                f"GitHub API error {resp.status_code} for {method} {path}: {resp.text}",
                status_code=resp.status_code,
            )
        return resp

    # -------------------------------------------------------------------------
    # Contents
    # -------------------------------------------------------------------------

    async def _get_contents(self, owner: str, repo: str, path: str, ref: str | None) -> tuple[bytes, str] | None:
        contents_path = f"/repos/{owner}/{repo}/contents/{quote(path)}"
        params = {"ref": ref} if ref else None
        try:
            resp = await self._request("GET", contents_path, params=params)
        except NotFoundError:
            return None

        data = resp.json()
        if isinstance(data, list) or data.get("type") not in (None, "file"):
            # Directory or submodule
            return None

        if data.get("encoding") == "base64" and data.get("content"):
            return base64.b64decode(data["content"]), data.get("sha", "")

        # Files over 1 MB come back without inline content
        raw = await self._request("GET", contents_path, accept="application/vnd.github.raw", params=params)
        return raw.content, data.get("sha", "")

    async def fetch_file_content(
        self, owner: str, repo: str, path: str, ref: str | None = None
    ) -> FileContent | None:
        """
        Fetch a text file from a repository.

        Args:
            owner: Repository owner
            repo: Repository name
            path: File path within the repository
            ref: Branch, tag or commit SHA (default branch when None)

        Returns:
            FileContent, or None when the path does not exist or is a directory

        Raises:
            UpstreamError: On any other GitHub failure, or when the file is not UTF-8 text
        """
        result = await self._get_contents(owner, repo, path, ref)
        if result is None:
            return None
        data, sha = result
        try:
            text = data.decode("utf-8")
        except UnicodeDecodeError as e:
            raise UpstreamError(f"GitHub file {path} is not UTF-8 text: {e}") from e
        return FileContent(content=text, sha=sha, path=path)

    async def fetch_binary_content(
        self, owner: str, repo: str, path: str, ref: str | None = None
    ) -> BinaryContent | None:
        """Fetch a file's raw bytes. Same None/raise contract as fetch_file_content."""
        result = await self._get_contents(owner, repo, path, ref)
        if result is None:
            return None
        data, sha = result
        return BinaryContent(data=data, sha=sha, path=path)

    # -------------------------------------------------------------------------
    # Pull requests
    # -------------------------------------------------------------------------

    async def get_pull_request(self, owner: str, repo: str, number: int) -> dict:
        resp = await self._request("GET", f"/repos/{owner}/{repo}/pulls/{number}")
        return resp.json()

    async def list_pull_request_files(self, owner: str, repo: str, number: int) -> list[str]:
        """List the paths a pull request touches."""
        files: list[str] = []
        page = 1
        while True:
            resp = await self._request(
                "GET",
                f"/repos/{owner}/{repo}/pulls/{number}/files",
                params={"per_page": 100, "page": page},
            )
            batch = resp.json()
            files.extend(item["filename"] for item in batch)
            if len(batch) < 100:
                return files
            page += 1

    async def update_pull_request_body(self, owner: str, repo: str, number: int, body: str) -> dict:
        resp = await self._request("PATCH", f"/repos/{owner}/{repo}/pulls/{number}", json={"body": body})
        logger.info(f"Updated body of {owner}/{repo}#{number}")
        return resp.json()
