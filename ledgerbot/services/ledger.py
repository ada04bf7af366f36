from __future__ import annotations

import logging
from typing import Any

import httpx

from ..schemas.transaction import TransactionCandidate
from ..schemas.user_record import UserRecordRead

logger = logging.getLogger(__name__)

TRANSACTIONS_PATH = "/public/api/v1/transactions"


class LedgerApiError(RuntimeError):
    """Raised when the ledger answers a request with an error status."""

    def __init__(self, status_code: int, details: Any) -> None:
        super().__init__(f"Ledger API responded with HTTP {status_code}: {details}")
        self.status_code = status_code
        self.details = details


def _response_details(response: httpx.Response) -> Any:
    try:
        return response.json()
    except ValueError:
        return response.text


class LedgerClient:
    """HTTP client that forwards transactions to a user's Firefly III instance."""

    def __init__(
        self,
        *,
        timeout: httpx.Timeout,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.client = httpx.AsyncClient(timeout=timeout, transport=transport)

    async def aclose(self) -> None:
        await self.client.aclose()

    async def create_transaction(
        self,
        record: UserRecordRead,
        candidate: TransactionCandidate,
    ) -> dict[str, Any]:
        url = record.ledger_url.rstrip("/") + TRANSACTIONS_PATH
        payload = {"transactions": [candidate.to_ledger_payload()]}
        response = await self.client.post(
            url,
            json=payload,
            headers={
                "Authorization": f"Bearer {record.ledger_token}",
                "Accept": "application/json",
            },
        )
        if response.is_error:
            details = _response_details(response)
            logger.warning(
                "Ledger rejected transaction for user %s with HTTP %s",
                record.user_id,
                response.status_code,
            )
            raise LedgerApiError(response.status_code, details)
        return _response_details(response)
