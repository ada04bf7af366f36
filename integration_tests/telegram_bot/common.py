"""Drive the deployed bot from a real Telegram account with Telethon."""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv
from telethon import TelegramClient
from telethon.errors import SessionPasswordNeededError
from telethon.tl.custom.message import Message

logger = logging.getLogger(__name__)

DEFAULT_SESSION_FILE = "integration_tests/telegram_bot/smoke_user.session"

load_dotenv()


class UnexpectedReplyError(AssertionError):
    pass


def _require(name: str) -> str:
    value = os.environ.get(name)
    if not value:
        raise SystemExit(f"Missing required env var: {name}")
    return value


@dataclass
class SmokeConfig:
    api_id: int
    api_hash: str
    phone_number: str
    bot_username: str
    session_path: Path
    ledger_url: str
    ledger_token: str

    @classmethod
    def from_env(cls) -> "SmokeConfig":
        session_path = Path(os.environ.get("TELEGRAM_TEST_SESSION", DEFAULT_SESSION_FILE))
        session_path.parent.mkdir(parents=True, exist_ok=True)
        return cls(
            api_id=int(_require("TELEGRAM_TEST_API_ID")),
            api_hash=_require("TELEGRAM_TEST_API_HASH"),
            phone_number=_require("TELEGRAM_TEST_PHONE"),
            bot_username=_require("TELEGRAM_BOT_USERNAME"),
            session_path=session_path,
            ledger_url=_require("LEDGER_TEST_URL").rstrip("/"),
            ledger_token=_require("LEDGER_TEST_TOKEN"),
        )


class BotChat:
    """One Telethon conversation with the bot; each message expects one reply."""

    def __init__(self, client: TelegramClient, bot_username: str, *, timeout: float = 60.0) -> None:
        self.client = client
        self.bot_username = bot_username
        self.timeout = timeout

    async def exchange(self, text: str, expected: str, *, timeout: Optional[float] = None) -> Message:
        async with self.client.conversation(
            self.bot_username, timeout=timeout or self.timeout, exclusive=True
        ) as conv:
            await conv.send_message(text)
            reply = await conv.get_response()
        body = reply.text or ""
        logger.info("%r -> %r", text, body)
        if expected.lower() not in body.lower():
            raise UnexpectedReplyError(f"Expected {expected!r} in reply to {text!r}, got {body!r}")
        return reply


def load_client(config: SmokeConfig) -> TelegramClient:
    return TelegramClient(str(config.session_path), config.api_id, config.api_hash)


async def ensure_authorized(client: TelegramClient, config: SmokeConfig) -> None:
    if await client.is_user_authorized():
        return
    logger.info("Signing in %s", config.phone_number)
    await client.send_code_request(config.phone_number)
    code = input("Login code sent by Telegram: ")
    try:
        await client.sign_in(config.phone_number, code)
    except SessionPasswordNeededError:
        password = os.environ.get("TELEGRAM_TEST_PASSWORD") or input("Telegram 2FA password: ")
        await client.sign_in(password=password)
