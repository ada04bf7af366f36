from __future__ import annotations

import logging
from typing import Any, Optional

from telegram import Bot
from telegram.constants import ChatAction
from telegram.error import TelegramError

from ..schemas.transaction import TransactionCandidate
from ..schemas.user_record import UserRecordRead
from ..services.ledger import LedgerClient
from . import messages

logger = logging.getLogger(__name__)

MAX_REPORT_LENGTH = 4000


class OperatorChannelError(RuntimeError):
    """Raised when an error report cannot be delivered to the operator chat."""


class OutboundDispatcher:
    """Every call leaving the bot: chat replies, ledger writes and error reports.

    Failures are never retried; they propagate to the caller.
    """

    def __init__(self, bot: Bot, ledger: LedgerClient, operator_chat_id: int) -> None:
        self.bot = bot
        self.ledger = ledger
        self.operator_chat_id = operator_chat_id

    async def send_chat_message(
        self,
        chat_id: int,
        text: str,
        *,
        parse_mode: Optional[str] = None,
    ) -> None:
        await self.bot.send_message(chat_id=chat_id, text=text, parse_mode=parse_mode)

    async def send_typing(self, chat_id: int) -> None:
        await self.bot.send_chat_action(chat_id=chat_id, action=ChatAction.TYPING)

    async def create_transaction(
        self,
        record: UserRecordRead,
        candidate: TransactionCandidate,
    ) -> dict[str, Any]:
        logger.info(
            "Creating %s of %s for user %s", candidate.type.value, candidate.amount, record.user_id
        )
        return await self.ledger.create_transaction(record, candidate)

    async def report_operator_error(self, message: str) -> None:
        try:
            await self.bot.send_message(
                chat_id=self.operator_chat_id,
                text=messages.OPERATOR_REPORT.format(message=message)[:MAX_REPORT_LENGTH],
            )
        except TelegramError as exc:
            raise OperatorChannelError("Failed to communicate with Telegram servers") from exc
