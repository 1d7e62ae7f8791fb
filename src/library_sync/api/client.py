"""
Web API operations used by the sync runner.

Key info, group versions and metadata, and API key creation/deletion.
Every request is a blocking ``requests`` call run in a worker thread
through the session's ConcurrencyGate.
"""

import asyncio
from typing import Any, Dict, Optional, Tuple
from urllib.parse import urljoin

import requests
from loguru import logger

from library_sync.domain.sync.exceptions import (
    APIKeyInvalidError,
    OfflineError,
    PreconditionFailedError,
    UnexpectedStatusError,
)
from library_sync.domain.sync.gate import ConcurrencyGate

API_BASE_URL = "https://api.zotero.org/"

# Access requested for keys created from a username and password
DEFAULT_KEY_ACCESS = {
    "user": {"library": True, "notes": True, "write": True, "files": True},
    "groups": {"all": {"library": True, "write": True}},
}


class APIClient:
    """Thin async wrapper around the web API.

    Args:
        base_url: API root, with or without a trailing slash
        api_version: Value sent in the API version header
        api_key: Key for authenticated requests (None for key creation)
        gate: Shared concurrency gate (a private one is made if omitted)
        timeout: Per-request timeout in seconds
        session: requests session to reuse
    """

    def __init__(
        self,
        base_url: str = API_BASE_URL,
        api_version: int = 3,
        api_key: Optional[str] = None,
        gate: Optional[ConcurrencyGate] = None,
        timeout: float = 30.0,
        session: Optional[requests.Session] = None,
    ):
        self.base_url = base_url.rstrip("/") + "/"
        self.api_version = api_version
        self.api_key = api_key
        self.timeout = timeout
        self._gate = gate or ConcurrencyGate()
        self._session = session or requests.Session()

    def _headers(self) -> Dict[str, str]:
        headers = {"Zotero-API-Version": str(self.api_version)}
        if self.api_key:
            headers["Zotero-API-Key"] = self.api_key
        return headers

    async def _request(
        self, method: str, path: str, none_on: Tuple[int, ...] = (), **kwargs: Any
    ) -> Optional[requests.Response]:
        """Send a request through the gate. Statuses in ``none_on`` return None."""
        return await self._gate.run(self._send, method, path, none_on, **kwargs)

    async def _send(
        self, method: str, path: str, none_on: Tuple[int, ...], **kwargs: Any
    ) -> Optional[requests.Response]:
        url = urljoin(self.base_url, path)
        try:
            response = await asyncio.to_thread(
                self._session.request,
                method,
                url,
                headers=self._headers(),
                timeout=self.timeout,
                **kwargs,
            )
            response.raise_for_status()
            return response

        except requests.HTTPError as e:
            status = e.response.status_code
            if status in none_on:
                return None
            if status == 412:
                raise PreconditionFailedError() from e
            logger.warning(f"{method} {url} failed: HTTP {status}")
            raise UnexpectedStatusError(status, f"HTTP {status} from {method} {path}") from e
        except requests.ConnectionError as e:
            raise OfflineError(f"Network error: {e}") from e

    async def get_key_info(self) -> Optional[Dict[str, Any]]:
        """Return key info for the current key, or None if it doesn't exist.

        Raises:
            APIKeyInvalidError: On 403
        """
        try:
            response = await self._request("GET", "keys/current", none_on=(404,))
        except UnexpectedStatusError as e:
            if e.status == 403:
                raise APIKeyInvalidError() from e
            raise
        return response.json() if response is not None else None

    async def get_group_versions(self, user_id: int) -> Dict[int, int]:
        """Return ``{group_id: version}`` for the user's groups."""
        response = await self._request(
            "GET", f"users/{user_id}/groups", params={"format": "versions"}
        )
        return {int(group_id): int(version) for group_id, version in response.json().items()}

    async def get_group(self, group_id: int) -> Optional[Dict[str, Any]]:
        """Return group JSON (``version`` and ``data``), or None if not found."""
        response = await self._request("GET", f"groups/{group_id}", none_on=(404,))
        return response.json() if response is not None else None

    async def create_api_key_from_credentials(
        self, username: str, password: str
    ) -> Optional[Dict[str, Any]]:
        """Create a key from login details. Returns None on bad credentials."""
        body = {
            "username": username,
            "password": password,
            "name": "Automatic Client Key",
            "access": DEFAULT_KEY_ACCESS,
        }
        response = await self._request("POST", "keys", none_on=(403,), json=body)
        return response.json() if response is not None else None

    async def delete_api_key(self) -> None:
        await self._request("DELETE", "keys/current")
