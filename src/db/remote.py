"""
REST client for the optional remote service.

Every call opens a short-lived httpx.AsyncClient. A non-2xx answer is
reported as None so callers fall back to the local store; transport and
parse failures raise RemoteError.
"""

from typing import Any, Dict, Optional

import httpx

from utils.logger import get_logger

_logger = get_logger(__name__)


class RemoteError(Exception):
    """The remote service could not be reached or answered garbage."""


class RemoteClient:
    def __init__(
        self,
        base_url: str,
        timeout: float = 10.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.token: Optional[str] = None
        self._transport = transport

    def _headers(self) -> Dict[str, str]:
        headers = {"Content-Type": "application/json"}
        if self.token:
            headers["Authorization"] = f"Bearer {self.token}"
        return headers

    async def request(
        self, method: str, endpoint: str, body: Optional[Any] = None
    ) -> Optional[Any]:
        """Send one request.

        Returns the decoded JSON body ({} for an empty one), or None on a
        non-2xx answer.
        """
        url = f"{self.base_url}{endpoint}"
        async with httpx.AsyncClient(
            timeout=self.timeout, transport=self._transport
        ) as client:
            try:
                resp = await client.request(
                    method, url, json=body, headers=self._headers()
                )
            except httpx.HTTPError as e:
                raise RemoteError(f"{method} {endpoint}: {e}") from e
            except (TypeError, ValueError) as e:
                # body could not be encoded as JSON
                raise RemoteError(f"{method} {endpoint}: {e}") from e

        if resp.is_error:
            _logger.warning(
                f"{method} {endpoint} answered {resp.status_code}, using local data"
            )
            return None
        if not resp.content:
            return {}
        try:
            return resp.json()
        except ValueError as e:
            raise RemoteError(f"{method} {endpoint}: invalid JSON body") from e

    async def get(self, endpoint: str) -> Optional[Any]:
        return await self.request("GET", endpoint)

    async def post(self, endpoint: str, body: Optional[Any] = None) -> Optional[Any]:
        return await self.request("POST", endpoint, body)
