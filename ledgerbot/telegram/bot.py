from __future__ import annotations

import asyncio
import contextlib
import logging
import signal
from collections.abc import AsyncIterator
from typing import Any, Callable, Optional

import httpx
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker
from telegram import Bot, BotCommand, Update
from telegram.request import HTTPXRequest

from ..config import Settings, WebhookMode
from ..services.ledger import LedgerApiError, LedgerClient
from ..services.nlu import WitClient
from ..services.user_records import UserRecordStore
from .conversation import Conversation, IncomingMessage
from .dispatcher import OperatorChannelError, OutboundDispatcher
from .parsers import TransactionParser, build_parser

logger = logging.getLogger(__name__)

ALLOWED_UPDATES = ["message"]
BOT_COMMANDS = [
    BotCommand("start", "Connect your Firefly III ledger"),
    BotCommand("help", "Show how to record a transaction"),
    BotCommand("reset", "Forget your ledger settings"),
    BotCommand("test", "Check that the bot is alive"),
]


class UpdateProcessingError(RuntimeError):
    """Raised after an update failed and the failure was reported to the operator."""

    def __init__(self, message: str, details: Any) -> None:
        super().__init__(message)
        self.details = details


class UserLocks:
    """One ``asyncio.Lock`` per user so their updates run one at a time, in arrival order."""

    def __init__(self) -> None:
        self._locks: dict[int, asyncio.Lock] = {}
        self._holders: dict[int, int] = {}

    @contextlib.asynccontextmanager
    async def hold(self, user_id: int) -> AsyncIterator[None]:
        lock = self._locks.setdefault(user_id, asyncio.Lock())
        self._holders[user_id] = self._holders.get(user_id, 0) + 1
        try:
            async with lock:
                yield
        finally:
            self._holders[user_id] -= 1
            if not self._holders[user_id]:
                del self._holders[user_id]
                del self._locks[user_id]

    def __len__(self) -> int:
        return len(self._locks)


def _error_details(exc: BaseException) -> Any:
    if isinstance(exc, LedgerApiError):
        return exc.details
    return str(exc)


def request_shutdown(exc: BaseException) -> None:
    """Stop the whole service once errors can no longer reach the operator.

    SIGTERM lets uvicorn run the lifespan shutdown before the process exits.
    """
    logger.critical("Operator chat is unreachable; shutting down", exc_info=exc)
    signal.raise_signal(signal.SIGTERM)


class UpdateProcessor:
    """Runs Telegram updates through the conversation state machine."""

    def __init__(
        self,
        *,
        bot: Bot,
        store: UserRecordStore,
        dispatcher: OutboundDispatcher,
        parser: TransactionParser,
        mode: WebhookMode = WebhookMode.SYNC,
        on_fatal: Callable[[BaseException], None] = request_shutdown,
    ) -> None:
        self.bot = bot
        self.store = store
        self.dispatcher = dispatcher
        self.parser = parser
        self.mode = mode
        self.on_fatal = on_fatal
        self.locks = UserLocks()
        self._tasks: set[asyncio.Task[None]] = set()

    def decode(self, payload: dict[str, Any]) -> Optional[IncomingMessage]:
        update = Update.de_json(payload, self.bot)
        if update is None:
            raise ValueError("Empty update payload")
        message = update.message
        if message is None or message.text is None:
            logger.info("Ignoring update %s without a text message", update.update_id)
            return None
        if message.from_user is None:
            logger.info("Ignoring update %s without a sender", update.update_id)
            return None
        return IncomingMessage(
            user_id=message.from_user.id,
            chat_id=message.chat.id,
            text=message.text,
        )

    async def process(self, payload: dict[str, Any]) -> None:
        """Handle one update; every error propagates to the caller."""
        incoming = self.decode(payload)
        if incoming is None:
            return
        async with self.locks.hold(incoming.user_id):
            conversation = Conversation(self.store, self.dispatcher, self.parser)
            await conversation.handle(incoming)

    async def report_failure(self, message: str) -> None:
        """Send ``message`` to the operator chat.

        If that fails the service is shut down through ``on_fatal`` and
        :class:`OperatorChannelError` propagates.
        """
        try:
            await self.dispatcher.report_operator_error(message)
        except OperatorChannelError as exc:
            self.on_fatal(exc)
            raise

    async def handle(self, payload: dict[str, Any]) -> None:
        """Process an update, reporting failures to the operator chat.

        Raises :class:`UpdateProcessingError` once the failure has been reported.
        A failure of the report itself propagates unchanged.
        """
        try:
            await self.process(payload)
        except Exception as exc:
            logger.exception("Failed to process Telegram update")
            await self.report_failure(str(exc))
            raise UpdateProcessingError(str(exc), _error_details(exc)) from exc

    def submit(self, payload: dict[str, Any]) -> asyncio.Task[None]:
        """Process an update in the background and return immediately."""
        task = asyncio.create_task(self._handle_in_background(payload))
        self._tasks.add(task)
        task.add_done_callback(self._task_finished)
        return task

    async def _handle_in_background(self, payload: dict[str, Any]) -> None:
        try:
            await self.handle(payload)
        except UpdateProcessingError:
            # Already logged and reported to the operator chat.
            pass

    def _task_finished(self, task: asyncio.Task[None]) -> None:
        self._tasks.discard(task)
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            logger.critical("Background update processing crashed", exc_info=exc)

    async def drain(self) -> None:
        """Wait for background updates that are still running."""
        if self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)


class BotRuntime:
    """Everything the webhook needs, created at startup and closed at shutdown."""

    def __init__(
        self,
        *,
        bot: Bot,
        ledger: LedgerClient,
        nlu: Optional[WitClient],
        processor: UpdateProcessor,
    ) -> None:
        self.bot = bot
        self.ledger = ledger
        self.nlu = nlu
        self.processor = processor

    async def aclose(self) -> None:
        await self.processor.drain()
        with contextlib.suppress(Exception):
            await self.bot.shutdown()
        await self.ledger.aclose()
        if self.nlu is not None:
            await self.nlu.aclose()


def _http_timeout(settings: Settings) -> httpx.Timeout:
    return httpx.Timeout(
        timeout=settings.http_timeout_seconds,
        connect=settings.http_connect_timeout_seconds,
    )


def create_bot(settings: Settings) -> Bot:
    request = HTTPXRequest(
        connect_timeout=settings.http_connect_timeout_seconds,
        read_timeout=settings.http_timeout_seconds,
        write_timeout=settings.http_timeout_seconds,
        pool_timeout=settings.http_connect_timeout_seconds,
    )
    return Bot(token=settings.telegram_bot_token, request=request)


async def init_bot(
    settings: Settings,
    session_factory: async_sessionmaker[AsyncSession],
) -> BotRuntime:
    """Build the bot runtime and register commands (and optionally the webhook)."""
    timeout = _http_timeout(settings)
    bot = create_bot(settings)
    ledger = LedgerClient(timeout=timeout)
    nlu: Optional[WitClient] = None
    if settings.wit_access_token:
        nlu = WitClient(
            settings.wit_access_token,
            base_url=settings.wit_api_url,
            api_version=settings.wit_api_version,
            timeout=timeout,
        )
    parser = build_parser(settings, nlu)
    dispatcher = OutboundDispatcher(bot, ledger, settings.telegram_operator_chat_id)
    processor = UpdateProcessor(
        bot=bot,
        store=UserRecordStore(session_factory),
        dispatcher=dispatcher,
        parser=parser,
        mode=settings.webhook_mode,
    )
    runtime = BotRuntime(bot=bot, ledger=ledger, nlu=nlu, processor=processor)

    try:
        await bot.initialize()
        await bot.set_my_commands(BOT_COMMANDS)
    except Exception:
        logger.exception("Failed to set Telegram command list.")

    webhook_url = settings.webhook_url
    if settings.telegram_register_webhook_on_start:
        if not webhook_url:
            logger.warning("PUBLIC_BASE_URL is missing; skipping Telegram webhook setup.")
        else:
            await bot.set_webhook(url=webhook_url, allowed_updates=ALLOWED_UPDATES)
            logger.info("Telegram webhook configured at %s", webhook_url)

    logger.info(
        "Bot ready (parser=%s, webhook mode=%s)",
        settings.parser_strategy.value,
        settings.webhook_mode.value,
    )
    return runtime


async def shutdown_bot(runtime: BotRuntime) -> None:
    """Drain background work and close outbound clients."""
    await runtime.aclose()
