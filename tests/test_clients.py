from __future__ import annotations

import json
from datetime import date
from decimal import Decimal
from unittest import IsolatedAsyncioTestCase

import httpx

from ledgerbot.schemas.transaction import TransactionCandidate, TransactionType
from ledgerbot.schemas.user_record import UserRecordRead
from ledgerbot.services.ledger import LedgerApiError, LedgerClient
from ledgerbot.services.nlu import NluServiceError, WitClient

TIMEOUT = httpx.Timeout(timeout=5.0, connect=2.0)


def _record(url: str = "https://firefly.example.com/") -> UserRecordRead:
    return UserRecordRead(user_id=7, state="ready", ledger_url=url, ledger_token="pat-123")


def _candidate() -> TransactionCandidate:
    return TransactionCandidate(
        type=TransactionType.WITHDRAWAL,
        amount=Decimal("12.50"),
        description="coffee",
        source_name="Checking",
        destination_name="Cafe",
        date=date(2026, 10, 18),
    )


class LedgerClientTests(IsolatedAsyncioTestCase):
    async def asyncSetUp(self) -> None:
        self.requests: list[httpx.Request] = []
        self.response = httpx.Response(200, json={"data": {"id": "101"}})

        def handler(request: httpx.Request) -> httpx.Response:
            self.requests.append(request)
            return self.response

        self.client = LedgerClient(timeout=TIMEOUT, transport=httpx.MockTransport(handler))

    async def asyncTearDown(self) -> None:
        await self.client.aclose()

    async def test_posts_transaction_with_bearer_token(self) -> None:
        data = await self.client.create_transaction(_record(), _candidate())

        self.assertEqual(data, {"data": {"id": "101"}})
        self.assertEqual(len(self.requests), 1)
        request = self.requests[0]
        self.assertEqual(request.method, "POST")
        self.assertEqual(
            str(request.url), "https://firefly.example.com/public/api/v1/transactions"
        )
        self.assertEqual(request.headers["Authorization"], "Bearer pat-123")
        self.assertEqual(
            json.loads(request.content),
            {
                "transactions": [
                    {
                        "type": "withdrawal",
                        "description": "coffee",
                        "date": "2026-10-18",
                        "amount": "12.50",
                        "source_name": "Checking",
                        "destination_name": "Cafe",
                    }
                ]
            },
        )

    async def test_error_status_carries_response_body(self) -> None:
        self.response = httpx.Response(
            422, json={"message": "The given data was invalid.", "errors": {"amount": ["bad"]}}
        )

        with self.assertRaises(LedgerApiError) as ctx:
            await self.client.create_transaction(_record(), _candidate())

        self.assertEqual(ctx.exception.status_code, 422)
        self.assertEqual(ctx.exception.details["message"], "The given data was invalid.")

    async def test_non_json_error_body_is_kept_as_text(self) -> None:
        self.response = httpx.Response(502, text="Bad Gateway")

        with self.assertRaises(LedgerApiError) as ctx:
            await self.client.create_transaction(_record(), _candidate())

        self.assertEqual(ctx.exception.details, "Bad Gateway")


class WitClientTests(IsolatedAsyncioTestCase):
    async def asyncSetUp(self) -> None:
        self.requests: list[httpx.Request] = []
        self.response = httpx.Response(
            200,
            json={
                "text": "spent 5 on tea",
                "intents": [{"id": "1", "name": "transact", "confidence": 0.97}],
                "entities": {
                    "wit$amount_of_money:amount_of_money": [
                        {"id": "2", "name": "wit$amount_of_money", "role": "amount_of_money",
                         "value": 5, "unit": "EUR", "body": "5", "confidence": 0.9}
                    ]
                },
                "traits": {"flow": [{"id": "3", "value": "withdrawal", "confidence": 0.9}]},
            },
        )

        def handler(request: httpx.Request) -> httpx.Response:
            self.requests.append(request)
            return self.response

        self.client = WitClient(
            "wit-token",
            base_url="https://api.wit.ai",
            api_version="20210928",
            timeout=TIMEOUT,
            transport=httpx.MockTransport(handler),
        )

    async def asyncTearDown(self) -> None:
        await self.client.aclose()

    async def test_message_queries_wit(self) -> None:
        response = await self.client.message("spent 5 on tea")

        request = self.requests[0]
        self.assertEqual(request.method, "GET")
        self.assertEqual(request.url.path, "/message")
        self.assertEqual(request.url.params["q"], "spent 5 on tea")
        self.assertEqual(request.url.params["v"], "20210928")
        self.assertEqual(request.headers["Authorization"], "Bearer wit-token")
        self.assertEqual(response.intents[0].name, "transact")
        self.assertEqual(response.first_entity("wit$amount_of_money:amount_of_money").value, 5)
        self.assertEqual(response.first_trait("flow").value, "withdrawal")
        self.assertIsNone(response.first_entity("account:origin"))

    async def test_error_status_raises(self) -> None:
        self.response = httpx.Response(401, json={"error": "Bad auth", "code": "no-auth"})

        with self.assertRaises(NluServiceError):
            await self.client.message("hello")

    async def test_undecodable_body_raises(self) -> None:
        self.response = httpx.Response(200, text="<html>maintenance</html>")

        with self.assertRaises(NluServiceError):
            await self.client.message("hello")
