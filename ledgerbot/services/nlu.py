from __future__ import annotations

import httpx
from pydantic import ValidationError

from ..schemas.wit import WitMessageResponse


class NluServiceError(RuntimeError):
    """Raised when the intent extraction service fails or answers nonsense."""


class WitClient:
    """Thin wrapper around the Wit.ai ``/message`` endpoint."""

    def __init__(
        self,
        access_token: str,
        *,
        base_url: str = "https://api.wit.ai",
        api_version: str = "20210928",
        timeout: httpx.Timeout,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.api_version = api_version
        self.client = httpx.AsyncClient(
            base_url=base_url,
            timeout=timeout,
            headers={"Authorization": f"Bearer {access_token}"},
            transport=transport,
        )

    async def aclose(self) -> None:
        await self.client.aclose()

    async def message(self, text: str) -> WitMessageResponse:
        """Run intent and entity extraction on ``text``."""
        response = await self.client.get(
            "/message",
            params={"v": self.api_version, "q": text},
        )
        if response.is_error:
            raise NluServiceError(
                f"Wit.ai responded with HTTP {response.status_code}: {response.text}"
            )
        try:
            return WitMessageResponse.model_validate(response.json())
        except (ValueError, ValidationError) as exc:
            raise NluServiceError(f"Could not decode Wit.ai response: {response.text}") from exc
