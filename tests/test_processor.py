from __future__ import annotations

import asyncio
import signal
from unittest import IsolatedAsyncioTestCase
from unittest.mock import AsyncMock, MagicMock, patch

from fakes import FakeUserRecordStore, make_record, make_update
from ledgerbot.config import WebhookMode
from ledgerbot.services.ledger import LedgerApiError
from ledgerbot.telegram import messages
from ledgerbot.telegram.bot import (
    UpdateProcessingError,
    UpdateProcessor,
    UserLocks,
    request_shutdown,
)
from ledgerbot.telegram.dispatcher import OperatorChannelError
from ledgerbot.telegram.parsers import DelimitedParser


class UpdateProcessorTests(IsolatedAsyncioTestCase):
    def setUp(self) -> None:
        self.store = FakeUserRecordStore()
        self.dispatcher = AsyncMock()
        self.on_fatal = MagicMock()
        self.processor = UpdateProcessor(
            bot=None,
            store=self.store,
            dispatcher=self.dispatcher,
            parser=DelimitedParser(),
            mode=WebhookMode.BACKGROUND,
            on_fatal=self.on_fatal,
        )

    def test_decode_extracts_sender_chat_and_text(self) -> None:
        message = self.processor.decode(make_update("/start", user_id=11, chat_id=22))

        self.assertEqual(message.user_id, 11)
        self.assertEqual(message.chat_id, 22)
        self.assertEqual(message.text, "/start")

    async def test_update_without_text_is_ignored(self) -> None:
        await self.processor.handle(make_update(None))
        await self.processor.handle({"update_id": 5})

        self.assertEqual(self.store.records, {})
        self.dispatcher.send_chat_message.assert_not_awaited()
        self.dispatcher.report_operator_error.assert_not_awaited()

    async def test_handle_runs_conversation(self) -> None:
        await self.processor.handle(make_update("/start"))

        self.assertEqual(self.store.records[7].state, "awaiting-url")
        self.dispatcher.send_chat_message.assert_awaited_once()

    async def test_failure_is_reported_and_raised(self) -> None:
        self.store.records[7] = make_record(7, "upload-url")

        with self.assertRaises(UpdateProcessingError) as ctx:
            await self.processor.handle(make_update("https://firefly.example.com"))

        self.dispatcher.report_operator_error.assert_awaited_once()
        reported = self.dispatcher.report_operator_error.await_args.args[0]
        self.assertIn("unknown state", reported)
        self.assertIn("unknown state", ctx.exception.details)

    async def test_ledger_error_details_are_kept(self) -> None:
        self.store.records[7] = make_record(
            7, "ready", ledger_url="https://firefly.example.com", ledger_token="pat"
        )
        self.dispatcher.create_transaction.side_effect = LedgerApiError(
            422, {"message": "The given data was invalid."}
        )

        with self.assertRaises(UpdateProcessingError) as ctx:
            await self.processor.handle(make_update("12.50, coffee, Checking, Cafe"))

        self.assertEqual(ctx.exception.details, {"message": "The given data was invalid."})

    async def test_undecodable_update_is_reported(self) -> None:
        with self.assertRaises(UpdateProcessingError):
            await self.processor.handle({"update_id": 1, "message": {"text": "hi"}})

        self.dispatcher.report_operator_error.assert_awaited_once()

    async def test_operator_channel_failure_shuts_the_service_down(self) -> None:
        self.store.records[7] = make_record(7, "upload-url")
        error = OperatorChannelError("down")
        self.dispatcher.report_operator_error.side_effect = error

        with self.assertRaises(OperatorChannelError):
            await self.processor.handle(make_update("hello"))

        self.on_fatal.assert_called_once_with(error)

    async def test_operator_channel_failure_in_background_shuts_down(self) -> None:
        self.store.records[7] = make_record(7, "upload-url")
        error = OperatorChannelError("down")
        self.dispatcher.report_operator_error.side_effect = error

        task = self.processor.submit(make_update("hello"))
        await self.processor.drain()

        self.assertIs(task.exception(), error)
        self.on_fatal.assert_called_once_with(error)

    async def test_successful_report_does_not_shut_down(self) -> None:
        await self.processor.report_failure("Invalid update payload")

        self.dispatcher.report_operator_error.assert_awaited_once_with("Invalid update payload")
        self.on_fatal.assert_not_called()

    def test_request_shutdown_sends_sigterm_to_the_process(self) -> None:
        with patch("ledgerbot.telegram.bot.signal.raise_signal") as raise_signal:
            request_shutdown(OperatorChannelError("down"))

        raise_signal.assert_called_once_with(signal.SIGTERM)

    async def test_background_updates_for_one_user_run_in_order(self) -> None:
        self.processor.submit(make_update("/start", update_id=1))
        self.processor.submit(make_update("https://firefly.example.com", update_id=2))
        self.processor.submit(make_update("pat-123", update_id=3))

        await self.processor.drain()

        record = self.store.records[7]
        self.assertEqual(record.state, "ready")
        self.assertEqual(record.ledger_url, "https://firefly.example.com")
        self.assertEqual(record.ledger_token, "pat-123")
        replies = [call.args[1] for call in self.dispatcher.send_chat_message.await_args_list]
        self.assertEqual(replies[0], messages.ASK_LEDGER_URL)
        self.assertEqual(replies[-1], messages.SETUP_COMPLETE)
        self.assertEqual(len(self.processor.locks), 0)

    async def test_background_failure_only_reaches_operator(self) -> None:
        self.store.records[7] = make_record(7, "upload-url")

        task = self.processor.submit(make_update("hello"))
        await self.processor.drain()

        self.assertTrue(task.done())
        self.assertIsNone(task.exception())
        self.dispatcher.report_operator_error.assert_awaited_once()


class UserLocksTests(IsolatedAsyncioTestCase):
    async def test_same_user_is_serialised_and_other_users_are_not(self) -> None:
        locks = UserLocks()
        events: list[str] = []
        release = asyncio.Event()

        async def slow(user_id: int, name: str) -> None:
            async with locks.hold(user_id):
                events.append(f"{name}:start")
                await release.wait()
                events.append(f"{name}:end")

        async def fast(user_id: int, name: str) -> None:
            async with locks.hold(user_id):
                events.append(f"{name}:start")
                events.append(f"{name}:end")

        first = asyncio.create_task(slow(1, "a"))
        second = asyncio.create_task(fast(1, "b"))
        other = asyncio.create_task(fast(2, "c"))
        await asyncio.sleep(0)
        await asyncio.sleep(0)

        self.assertIn("c:end", events)
        self.assertNotIn("b:start", events)

        release.set()
        await asyncio.gather(first, second, other)

        self.assertLess(events.index("a:end"), events.index("b:start"))
        self.assertEqual(len(locks), 0)
