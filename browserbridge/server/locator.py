"""
Reachability probe for the BrowserTools server.
"""

import logging
from typing import Optional

import httpx

from browserbridge.core.types import ServerEndpoint

logger = logging.getLogger("BrowserBridge.Locator")

IDENTITY_PATH = "/.identity"
SERVER_SIGNATURE = "mcp-browser-connector-24x7"
DEFAULT_PROBE_TIMEOUT_SEC = 1.5


class ProcessLocator:
    """
    Decides whether a compatible server is listening on an endpoint.

    A probe is purely observational: network failures, timeouts and foreign
    services on the port all come back as ``False``.
    """

    def __init__(
        self,
        timeout: float = DEFAULT_PROBE_TIMEOUT_SEC,
        http_client: Optional[httpx.AsyncClient] = None,
    ):
        self.timeout = timeout
        self._owns_client = http_client is None
        self._client = http_client or httpx.AsyncClient(headers={"Accept": "application/json"})
        self.probe_count = 0

    async def close(self) -> None:
        if self._owns_client:
            await self._client.aclose()

    async def probe(self, endpoint: ServerEndpoint) -> bool:
        self.probe_count += 1
        endpoint.reachable = await self._is_compatible(endpoint)
        return endpoint.reachable

    async def _is_compatible(self, endpoint: ServerEndpoint) -> bool:
        try:
            response = await self._client.get(endpoint.url(IDENTITY_PATH), timeout=self.timeout)
        except httpx.HTTPError as exc:
            logger.debug("Probe of %s failed: %s", endpoint, exc)
            return False

        if response.status_code != 200:
            logger.debug("Probe of %s returned HTTP %d", endpoint, response.status_code)
            return False
        try:
            identity = response.json()
        except ValueError:
            logger.warning("Service on %s answered %s with a non-JSON body", endpoint, IDENTITY_PATH)
            return False

        if not isinstance(identity, dict) or identity.get("signature") != SERVER_SIGNATURE:
            logger.warning(
                "Service on %s is not a BrowserTools server (identity=%r)",
                endpoint,
                identity,
            )
            return False
        return True
