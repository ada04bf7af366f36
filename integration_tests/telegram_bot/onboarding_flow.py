"""Live smoke test: onboard against a real ledger and record one transaction.

Run from the repository root with ``python integration_tests/scripts.py``.
"""

from __future__ import annotations

import asyncio
import logging
import sys
from datetime import datetime, timezone
from pathlib import Path

ROOT_DIR = Path(__file__).resolve().parents[2]
if str(ROOT_DIR) not in sys.path:
    sys.path.insert(0, str(ROOT_DIR))

from integration_tests.telegram_bot.common import (
    BotChat,
    SmokeConfig,
    ensure_authorized,
    load_client,
)

logger = logging.getLogger(__name__)


async def run_flow(chat: BotChat, config: SmokeConfig) -> None:
    await chat.exchange("/test", "message ack")
    await chat.exchange("/reset", "reset complete")
    await chat.exchange("hello", "/start")

    await chat.exchange("/start", "server's url")
    await chat.exchange("/start", "already started")
    await chat.exchange(config.ledger_url, "personal access token")
    await chat.exchange(config.ledger_token, "setup complete")

    await chat.exchange("/help", "amount")
    await chat.exchange("not a transaction", "/help")

    stamp = datetime.now(timezone.utc).strftime("%H%M%S")
    await chat.exchange(
        f"1.23, smoke test {stamp}, Checking, Smoke Test Shop",
        "transaction created",
        timeout=90,
    )
    await chat.exchange("/reset", "reset complete")


async def main_async() -> None:
    logging.basicConfig(level=logging.INFO, format="[%(levelname)s] %(message)s")
    config = SmokeConfig.from_env()
    client = load_client(config)
    await client.connect()
    try:
        await ensure_authorized(client, config)
        await run_flow(BotChat(client, config.bot_username), config)
        logger.info("Onboarding flow completed")
    finally:
        await client.disconnect()


def main() -> None:
    asyncio.run(main_async())


if __name__ == "__main__":
    main()
