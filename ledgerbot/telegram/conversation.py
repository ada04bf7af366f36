"""Per-message onboarding and transaction state machine.

Each incoming text is matched against the exact, case-sensitive commands
first. Anything else is interpreted according to the sender's stored
onboarding state:

    no record       -> ask the user to /start
    awaiting-url    -> save the ledger URL, ask for the access token
    awaiting-token  -> save the token, mark the record ready
    ready           -> parse a transaction and send it to the ledger
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Awaitable, Callable, Optional

from telegram.constants import ParseMode
from telegram.helpers import escape_markdown

from ..models.user_record import OnboardingState
from ..schemas.user_record import UserRecordRead, UserRecordWrite
from ..services.user_records import UserRecordStore
from . import messages
from .dispatcher import OutboundDispatcher
from .parsers import ParseError, TransactionParser

logger = logging.getLogger(__name__)


class UnknownStateError(RuntimeError):
    """Raised when a stored record is in a state the bot cannot act on."""


@dataclass(frozen=True)
class IncomingMessage:
    """The parts of a Telegram message the conversation needs."""

    user_id: int
    chat_id: int
    text: str


class Conversation:
    """Handles one message against one user's record.

    Instances are request scoped and must not be shared between updates.
    """

    def __init__(
        self,
        store: UserRecordStore,
        dispatcher: OutboundDispatcher,
        parser: TransactionParser,
    ) -> None:
        self.store = store
        self.dispatcher = dispatcher
        self.parser = parser
        self._commands: dict[str, Callable[[IncomingMessage], Awaitable[None]]] = {
            "/start": self.cmd_start,
            "/reset": self.cmd_reset,
            "/help": self.cmd_help,
            "/test": self.cmd_test,
        }

    async def handle(self, message: IncomingMessage) -> None:
        command = self._commands.get(message.text)
        if command is not None:
            logger.info("User %s sent %s", message.user_id, message.text)
            await command(message)
            return
        await self.handle_text(message)

    async def cmd_start(self, message: IncomingMessage) -> None:
        if await self.store.exists(message.user_id):
            await self._reply(message, messages.ALREADY_STARTED)
            return
        await self.store.put(message.user_id, UserRecordWrite(state=OnboardingState.AWAITING_URL))
        await self._reply(message, messages.ASK_LEDGER_URL, parse_mode=ParseMode.MARKDOWN)

    async def cmd_reset(self, message: IncomingMessage) -> None:
        await self.store.delete(message.user_id)
        await self._reply(message, messages.RESET_COMPLETE)

    async def cmd_help(self, message: IncomingMessage) -> None:
        if not await self.store.exists(message.user_id):
            await self._reply(message, messages.START_SETUP)
            return
        await self._reply(message, self.parser.usage, parse_mode=ParseMode.MARKDOWN)

    async def cmd_test(self, message: IncomingMessage) -> None:
        await self._reply(message, messages.ACK)

    async def handle_text(self, message: IncomingMessage) -> None:
        record = await self.store.get(message.user_id)
        if record is None:
            await self._reply(message, messages.START_SETUP)
            return

        try:
            state = OnboardingState(record.state)
        except ValueError as exc:
            raise UnknownStateError(
                f"User {record.user_id} has unknown state '{record.state}'"
            ) from exc

        if state is OnboardingState.AWAITING_URL:
            await self.save_ledger_url(message, record)
        elif state is OnboardingState.AWAITING_TOKEN:
            await self.save_ledger_token(message, record)
        else:
            if not record.has_credentials:
                raise UnknownStateError(
                    f"User {record.user_id} is ready but has no ledger credentials"
                )
            await self.transact(message, record)

    async def save_ledger_url(self, message: IncomingMessage, record: UserRecordRead) -> None:
        ledger_url = message.text.strip()
        if not ledger_url:
            await self._reply(message, messages.ASK_LEDGER_URL, parse_mode=ParseMode.MARKDOWN)
            return
        await self.store.put(
            message.user_id,
            UserRecordWrite(
                state=OnboardingState.AWAITING_TOKEN,
                ledger_url=ledger_url,
                ledger_token=record.ledger_token,
            ),
        )
        await self._reply(
            message,
            messages.ASK_LEDGER_TOKEN.format(ledger_url=escape_markdown(ledger_url.rstrip("/"))),
            parse_mode=ParseMode.MARKDOWN,
        )

    async def save_ledger_token(self, message: IncomingMessage, record: UserRecordRead) -> None:
        ledger_token = message.text.strip()
        if not ledger_token:
            await self._reply(message, messages.EMPTY_TOKEN)
            return
        if not record.ledger_url:
            raise UnknownStateError(f"User {record.user_id} is awaiting a token but has no ledger URL")
        await self.store.put(
            message.user_id,
            UserRecordWrite(
                state=OnboardingState.READY,
                ledger_url=record.ledger_url,
                ledger_token=ledger_token,
            ),
        )
        logger.info("User %s finished setup", message.user_id)
        await self._reply(message, messages.SETUP_COMPLETE)

    async def transact(self, message: IncomingMessage, record: UserRecordRead) -> None:
        await self.dispatcher.send_typing(message.chat_id)
        try:
            candidate = await self.parser.parse(message.text)
        except ParseError as exc:
            logger.info("Could not parse message from user %s: %s", message.user_id, exc)
            await self._reply(message, messages.PARSE_FAILED.format(reason=exc))
            return

        await self.dispatcher.create_transaction(record, candidate)
        await self._reply(
            message,
            messages.TRANSACTION_CREATED.format(
                type=candidate.type.value,
                amount=format(candidate.amount, "f"),
                description=candidate.description,
                source=candidate.source_name,
                destination=candidate.destination_name,
            ),
        )

    async def _reply(
        self,
        message: IncomingMessage,
        text: str,
        *,
        parse_mode: Optional[str] = None,
    ) -> None:
        await self.dispatcher.send_chat_message(message.chat_id, text, parse_mode=parse_mode)
