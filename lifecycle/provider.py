"""
Bland AI client - thin async wrapper over the calling provider's REST API.

Two endpoints are used:
1. POST /call  - place an outbound call, returns a call id
2. POST /logs  - fetch the call log (status, length, transcript, recording)

Errors are not translated here: non-2xx responses raise
httpx.HTTPStatusError, transport failures raise httpx.HTTPError and
bodies that are not JSON objects raise ValueError. The dispatcher and
poller decide what each of those means for a run.
"""

import logging
from typing import Any, Dict, Optional

import httpx

logger = logging.getLogger(__name__)


class BlandClient:
    """Async client for the Bland AI call API."""

    DEFAULT_BASE_URL = "https://api.bland.ai"

    def __init__(
        self,
        api_key: str,
        base_url: str = DEFAULT_BASE_URL,
        http_client: Optional[httpx.AsyncClient] = None,
        timeout: float = 30.0,
    ):
        if not api_key:
            raise RuntimeError("BLAND_API_KEY is required for the call provider")

        self.api_key = api_key
        self.base_url = base_url.rstrip("/")
        self._owns_client = http_client is None
        self.http_client = http_client or httpx.AsyncClient(timeout=timeout)
        logger.info(f"BlandClient configured for {self.base_url}")

    @property
    def headers(self) -> Dict[str, str]:
        return {
            "authorization": f"Bearer {self.api_key}",
            "Content-Type": "application/json",
        }

    async def close(self):
        """Close the HTTP client if this instance created it."""
        if self._owns_client:
            await self.http_client.aclose()
            logger.info("BlandClient closed")

    async def dispatch_call(self, payload: Dict[str, Any]) -> Dict[str, Any]:
        """POST /call and return the decoded response body."""
        return await self._post("/call", payload)

    async def fetch_call_log(self, call_id: str) -> Dict[str, Any]:
        """POST /logs for a single call id and return the decoded body."""
        return await self._post("/logs", {"call_id": call_id})

    async def _post(self, path: str, payload: Dict[str, Any]) -> Dict[str, Any]:
        response = await self.http_client.post(
            f"{self.base_url}{path}",
            json=payload,
            headers=self.headers,
        )
        response.raise_for_status()
        data = response.json()
        if not isinstance(data, dict):
            raise ValueError(f"Expected a JSON object from {path}, got {type(data).__name__}")
        return data
