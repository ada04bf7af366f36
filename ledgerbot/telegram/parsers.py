"""Turn chat text into transaction candidates.

Two strategies share the :class:`TransactionParser` interface: strict
comma-delimited fields, or intent/entity extraction through Wit.ai. The one in
use is chosen once at startup by :func:`build_parser`.
"""

from __future__ import annotations

import logging
import textwrap
from datetime import date, datetime, timezone
from decimal import Decimal, InvalidOperation
from typing import Any, Optional, Protocol

from pydantic import ValidationError

from ..config import ParserStrategy, Settings
from ..schemas.transaction import TransactionCandidate, TransactionType
from ..schemas.wit import (
    AMOUNT_OF_MONEY_ENTITY,
    DEED_ENTITY,
    DESTINATION_ACCOUNT_ENTITY,
    FLOW_TRAIT,
    ORIGIN_ACCOUNT_ENTITY,
)
from ..services.nlu import WitClient

logger = logging.getLogger(__name__)

DELIMITED_FIELD_COUNT = 4

FLOW_ALIASES: dict[str, TransactionType] = {
    "withdrawal": TransactionType.WITHDRAWAL,
    "withdraw": TransactionType.WITHDRAWAL,
    "deposit": TransactionType.DEPOSIT,
    "transfer": TransactionType.TRANSFER,
}


class ParseError(ValueError):
    """Base class for messages that cannot be turned into a transaction."""


class MalformedInputError(ParseError):
    pass


class NoIntentDetectedError(ParseError):
    pass


class MissingAmountError(ParseError):
    pass


class MissingAccountError(ParseError):
    pass


class MissingFlowError(ParseError):
    pass


def processing_date() -> date:
    """Transactions are dated by when the bot handles them, in UTC."""
    return datetime.now(timezone.utc).date()


def parse_amount_token(raw: Any) -> Decimal:
    try:
        amount = Decimal(str(raw).strip())
    except (InvalidOperation, ValueError) as exc:
        raise ValueError(f"Invalid amount '{raw}'.") from exc
    if not amount.is_finite() or amount <= 0:
        raise ValueError(f"Invalid amount '{raw}'.")
    return amount


class TransactionParser(Protocol):
    usage: str

    async def parse(self, text: str) -> TransactionCandidate: ...


class DelimitedParser:
    """``Amount, Description, Source, Destination`` messages, always withdrawals."""

    usage = textwrap.dedent(
        """
        Send a message in the following format
        `Amount, Description, Source, Destination`

        For example: `12.50, Coffee, Checking, Cafe`
        """
    ).strip()

    async def parse(self, text: str) -> TransactionCandidate:
        fields = [field.strip() for field in text.split(",")]
        if len(fields) < DELIMITED_FIELD_COUNT:
            raise MalformedInputError(
                f"Expected {DELIMITED_FIELD_COUNT} comma-separated values but got {len(fields)}."
            )
        amount_raw, description, source_name, destination_name = fields[:DELIMITED_FIELD_COUNT]
        if not all((amount_raw, description, source_name, destination_name)):
            raise MalformedInputError("None of the values may be empty.")
        try:
            amount = parse_amount_token(amount_raw)
        except ValueError as exc:
            raise MalformedInputError(str(exc)) from exc
        try:
            return TransactionCandidate(
                type=TransactionType.WITHDRAWAL,
                amount=amount,
                description=description,
                source_name=source_name,
                destination_name=destination_name,
                date=processing_date(),
            )
        except ValidationError as exc:
            raise MalformedInputError("The transaction details are not valid.") from exc


class NluParser:
    """Free-text messages interpreted by Wit.ai."""

    usage = textwrap.dedent(
        """
        Describe the transaction in your own words, mentioning the amount,
        the account it comes from and the account it goes to.

        For example: `Spent 12.50 on coffee from Checking to Cafe`
        """
    ).strip()

    def __init__(self, client: WitClient) -> None:
        self.client = client

    async def parse(self, text: str) -> TransactionCandidate:
        response = await self.client.message(text)
        if not response.intents:
            raise NoIntentDetectedError("I could not tell what you want to record.")

        deed = response.first_entity(DEED_ENTITY)
        description = str(deed.value).strip() if deed and deed.value else text.strip()

        amount_entity = response.first_entity(AMOUNT_OF_MONEY_ENTITY)
        if amount_entity is None or amount_entity.value is None:
            raise MissingAmountError("I could not find an amount in your message.")
        try:
            amount = parse_amount_token(amount_entity.value)
        except ValueError as exc:
            raise MissingAmountError(str(exc)) from exc

        source = self._account_name(response.first_entity(ORIGIN_ACCOUNT_ENTITY))
        destination = self._account_name(response.first_entity(DESTINATION_ACCOUNT_ENTITY))
        if not source or not destination:
            raise MissingAccountError(
                "Please mention both the source and the destination account."
            )

        flow = response.first_trait(FLOW_TRAIT)
        if flow is None or flow.value is None:
            raise MissingFlowError(
                "I could not tell whether this is a withdrawal, deposit or transfer."
            )
        tx_type = FLOW_ALIASES.get(str(flow.value).strip().lower())
        if tx_type is None:
            raise MissingFlowError(f"Unsupported transaction flow '{flow.value}'.")

        try:
            return TransactionCandidate(
                type=tx_type,
                amount=amount,
                description=description,
                source_name=source,
                destination_name=destination,
                date=processing_date(),
            )
        except ValidationError as exc:
            raise MalformedInputError("The transaction details are not valid.") from exc

    @staticmethod
    def _account_name(entity: Any) -> Optional[str]:
        if entity is None or entity.value is None:
            return None
        name = str(entity.value).strip()
        return name or None


def build_parser(settings: Settings, nlu_client: Optional[WitClient]) -> TransactionParser:
    if settings.parser_strategy is ParserStrategy.NLU:
        if nlu_client is None:
            raise RuntimeError("The NLU parser needs a Wit.ai client.")
        logger.info("Using Wit.ai natural language transaction parser.")
        return NluParser(nlu_client)
    logger.info("Using comma-delimited transaction parser.")
    return DelimitedParser()
