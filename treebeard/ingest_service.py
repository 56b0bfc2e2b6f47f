from __future__ import annotations

from typing import Any, Dict, Optional

import httpx

from .errors import DeliveryError
from .utils import dumps


class IngestService:
    """Async client for the batch ingestion endpoint."""

    def __init__(
        self,
        endpoint: str,
        api_key: Optional[str],
        *,
        timeout: float = 10.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self.endpoint = endpoint.rstrip("/")
        self.api_key = api_key
        self.timeout = timeout
        self._transport = transport

    def _headers(self) -> Dict[str, str]:
        headers = {"Content-Type": "application/json"}
        if self.api_key:
            headers["Authorization"] = f"Bearer {self.api_key}"
        return headers

    async def send_batch(self, payload: Dict[str, Any]) -> None:
        # A fresh client per batch: each delivery runs on its own event loop.
        async with httpx.AsyncClient(timeout=self.timeout, transport=self._transport) as client:
            try:
                response = await client.post(self.endpoint, content=dumps(payload), headers=self._headers())
            except httpx.HTTPError as exc:
                raise DeliveryError(f"failed to reach {self.endpoint}: {exc}") from exc

        if response.is_error:
            raise DeliveryError(
                f"ingestion rejected batch: {response.status_code} {response.reason_phrase} - {response.text[:200]}",
                status_code=response.status_code,
            )
