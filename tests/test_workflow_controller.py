from __future__ import annotations

import tempfile
import unittest
from decimal import Decimal
from pathlib import Path
from unittest import mock

from core.enums import HandleStatus, WorkflowState
from core.models import InboundMessage, Prompt, WorkflowSession
from storage.repository import StorefrontRepository
from storage.repository_interface import ProductCommitError
from tgbot.gateway import TelegramChatGateway
from workflow.controller import WorkflowController
from workflow.definition import MSG_NOT_STARTED, MSG_UNKNOWN_ACTION


class _DummyGateway:
    def __init__(self) -> None:
        self.prompts: list[tuple[str, Prompt]] = []
        self.texts: list[tuple[str, str]] = []
        self._next_id = 100

    def send_prompt(self, channel_id: str, prompt: Prompt) -> str | None:
        self.prompts.append((channel_id, prompt))
        self._next_id += 1
        return str(self._next_id)

    def send_text(self, channel_id: str, text: str) -> str | None:
        self.texts.append((channel_id, text))
        self._next_id += 1
        return str(self._next_id)


def _text(text: str, reply_to: str | None = None) -> InboundMessage:
    return InboundMessage(subject_id="u1", channel_id="c1", text=text, reply_to_ref=reply_to)


def _callback(data: str) -> InboundMessage:
    return InboundMessage(subject_id="u1", channel_id="c1", callback_data=data, callback_id="cb")


def _photo(file_id: str) -> InboundMessage:
    return InboundMessage(subject_id="u1", channel_id="c1", media_ref=file_id)


class WorkflowControllerTest(unittest.TestCase):
    def setUp(self) -> None:
        self._tmp = tempfile.TemporaryDirectory()
        self.repository = StorefrontRepository(str(Path(self._tmp.name) / "store.db"))
        self.gateway = _DummyGateway()
        self.controller = WorkflowController(
            session_store=self.repository,
            product_repository=self.repository,
            gateway=self.gateway,
        )

    def tearDown(self) -> None:
        self._tmp.cleanup()

    def _session(self) -> WorkflowSession | None:
        return self.repository.get_session("u1", "add_product")

    def test_scenario_commits_product_and_deletes_session(self) -> None:
        inputs = [
            _text("/add_product"),
            _text("SKU-001"),
            _text("Widget"),
            _text("Tools"),
            _text("19.99"),
            _text("10"),
            _callback("skip_description"),
            _callback("done_specs"),
            _callback("skip_images"),
        ]
        for message in inputs:
            self.controller.handle(message)
        self.assertEqual(self._session().state, WorkflowState.CONFIRM)

        with mock.patch.object(self.repository, "commit", wraps=self.repository.commit) as commit:
            result = self.controller.handle(_callback("confirm"))

        self.assertEqual(result.status, HandleStatus.COMPLETED)
        record = commit.call_args.args[0]
        self.assertEqual(record.sku, "SKU-001")
        self.assertEqual(record.name, "Widget")
        self.assertEqual(record.category, "Tools")
        self.assertEqual(record.price, Decimal("19.99"))
        self.assertEqual(record.stock, 10)
        self.assertEqual(record.description, "")
        self.assertEqual(record.specs, [])
        self.assertEqual(record.image_refs, [])
        self.assertIsNone(self._session())
        self.assertIsNotNone(self.repository.get_product(result.product_id))
        self.assertIn(result.product_id, self.gateway.prompts[-1][1].text)

    def test_no_session_without_start_command(self) -> None:
        result = self.controller.handle(_text("hello"))
        self.assertEqual(result.status, HandleStatus.NO_SESSION)
        self.assertEqual(self.gateway.texts[-1][1], MSG_NOT_STARTED)
        self.assertIsNone(self._session())

    def test_start_persists_session_with_pending_reply(self) -> None:
        result = self.controller.handle(_text("/add_product"))
        self.assertEqual(result.status, HandleStatus.STARTED)
        session = self._session()
        self.assertEqual(session.state, WorkflowState.SKU)
        self.assertEqual(session.pending_reply_ref, "101")
        self.assertEqual(self.gateway.prompts[-1][1].state, WorkflowState.SKU)

    def test_validation_failure_is_not_persisted(self) -> None:
        for text in ("/add_product", "SKU-001", "Widget", "Tools"):
            self.controller.handle(_text(text))
        before = self._session()
        result = self.controller.handle(_text("abc"))
        self.assertEqual(result.status, HandleStatus.VALIDATION_FAILED)
        after = self._session()
        self.assertEqual(after.state, WorkflowState.PRICE)
        self.assertIsNone(after.record.price)
        self.assertEqual(after.updated_at, before.updated_at)
        self.assertEqual(self.gateway.prompts[-1][1].state, WorkflowState.PRICE)

    def test_commit_failure_keeps_session(self) -> None:
        for message in (
            _text("/add_product"),
            _text("SKU-001"),
            _text("Widget"),
            _text("Tools"),
            _text("1"),
            _text("1"),
            _callback("skip_description"),
            _callback("skip_specs"),
            _callback("skip_images"),
        ):
            self.controller.handle(message)
        with mock.patch.object(self.repository, "commit", side_effect=ProductCommitError("boom")):
            with self.assertRaises(ProductCommitError):
                self.controller.handle(_callback("confirm"))
        session = self._session()
        self.assertIsNotNone(session)
        self.assertEqual(session.state, WorkflowState.CONFIRM)

    def test_cancel_deletes_session(self) -> None:
        self.controller.handle(_text("/add_product"))
        self.controller.handle(_text("SKU-001"))
        result = self.controller.handle(_callback("cancel"))
        self.assertEqual(result.status, HandleStatus.CANCELLED)
        self.assertIsNone(self._session())
        self.assertIn("已取消", self.gateway.prompts[-1][1].text)

    def test_reject_in_confirm_cancels(self) -> None:
        for message in (
            _text("/add_product"),
            _text("SKU-9"),
            _text("Name"),
            _text("Cat"),
            _text("2"),
            _text("3"),
        ):
            self.controller.handle(message)
        self.assertEqual(self._session().state, WorkflowState.DESCRIPTION)
        self.assertEqual(self._session().record.description, "")
        self.controller.handle(_text("A fine thing"))
        self.controller.handle(_text("done"))
        self.controller.handle(_photo("file-1"))
        self.controller.handle(_text("done"))
        self.assertEqual(self._session().record.image_refs, ["file-1"])
        result = self.controller.handle(_text("取消"))
        self.assertEqual(result.status, HandleStatus.CANCELLED)
        self.assertIsNone(self._session())

    def test_pause_and_resume_with_start_command(self) -> None:
        self.controller.handle(_text("/add_product"))
        self.controller.handle(_text("SKU-001"))
        result = self.controller.handle(_callback("pause"))
        self.assertEqual(result.state, WorkflowState.PAUSED)

        result = self.controller.handle(_text("Widget"))
        self.assertEqual(result.status, HandleStatus.INVALID_INPUT)
        self.assertEqual(self._session().state, WorkflowState.PAUSED)

        result = self.controller.handle(_text("/add_product"))
        self.assertEqual(result.status, HandleStatus.RESUMED)
        session = self._session()
        self.assertEqual(session.state, WorkflowState.NAME)
        self.assertEqual(session.record.sku, "SKU-001")
        self.assertIn("找到未完成", self.gateway.prompts[-1][1].text)

    def test_restart_keeps_session_identity(self) -> None:
        self.controller.handle(_text("/add_product"))
        session_id = self._session().session_id
        self.controller.handle(_text("SKU-001"))
        self.controller.handle(_text("/restart"))
        session = self._session()
        self.assertEqual(session.session_id, session_id)
        self.assertEqual(session.state, WorkflowState.SKU)
        self.assertEqual(session.record.sku, "")

    def test_unknown_and_stale_callbacks(self) -> None:
        self.controller.handle(_text("/add_product"))
        result = self.controller.handle(_callback("frobnicate"))
        self.assertEqual(result.status, HandleStatus.UNKNOWN_ACTION)
        self.assertEqual(self.gateway.texts[-1][1], MSG_UNKNOWN_ACTION)

        result = self.controller.handle(_callback("confirm"))
        self.assertEqual(result.status, HandleStatus.UNKNOWN_ACTION)
        self.assertEqual(self._session().state, WorkflowState.SKU)

    def test_reply_to_older_prompt_is_ignored(self) -> None:
        self.controller.handle(_text("/add_product"))
        self.controller.handle(_text("SKU-001", reply_to="101"))
        pending = self._session().pending_reply_ref
        result = self.controller.handle(_text("stray", reply_to="101"))
        self.assertEqual(result.status, HandleStatus.IGNORED)
        session = self._session()
        self.assertEqual(session.state, WorkflowState.NAME)
        self.assertEqual(session.pending_reply_ref, pending)

        result = self.controller.handle(_text("Widget", reply_to=pending))
        self.assertEqual(result.status, HandleStatus.ADVANCED)
        self.assertEqual(self._session().record.name, "Widget")

    def test_expired_session_is_replaced_on_start(self) -> None:
        self.controller.handle(_text("/add_product"))
        old = self._session()
        old.expires_at = "2000-01-01T00:00:00.000000+00:00"
        self.repository.upsert_session(old)

        result = self.controller.handle(_text("SKU-001"))
        self.assertEqual(result.status, HandleStatus.NO_SESSION)

        result = self.controller.handle(_text("/add_product"))
        self.assertEqual(result.status, HandleStatus.STARTED)
        self.assertNotEqual(self._session().session_id, old.session_id)


    def test_oversized_stock_fails_at_stock_step(self) -> None:
        for text in ("/add_product", "SKU-1", "W", "T", "1"):
            self.controller.handle(_text(text))
        result = self.controller.handle(_text("9" * 25))
        self.assertEqual(result.status, HandleStatus.VALIDATION_FAILED)
        session = self._session()
        self.assertEqual(session.state, WorkflowState.STOCK)
        self.assertIsNone(session.record.stock)

        self.controller.handle(_text("12"))
        for data in ("skip_description", "skip_specs", "skip_images"):
            self.controller.handle(_callback(data))
        result = self.controller.handle(_text("yes"))
        self.assertEqual(result.status, HandleStatus.COMPLETED)
        self.assertEqual(self.repository.get_product(result.product_id)["stock_count"], 12)


class _FakeBotClient:
    def __init__(self) -> None:
        self.sent: list[tuple[str, str]] = []
        self._next_id = 10

    def send_message(self, chat_id: str, text: str, reply_markup: dict | None = None) -> dict:
        self._next_id += 1
        self.sent.append((str(self._next_id), text))
        return {"message_id": self._next_id}


class TelegramPromptReplyTest(unittest.TestCase):
    def setUp(self) -> None:
        self._tmp = tempfile.TemporaryDirectory()
        self.repository = StorefrontRepository(str(Path(self._tmp.name) / "store.db"))
        self.bot_client = _FakeBotClient()
        self.controller = WorkflowController(
            session_store=self.repository,
            product_repository=self.repository,
            gateway=TelegramChatGateway(self.bot_client),
        )

    def tearDown(self) -> None:
        self._tmp.cleanup()

    def test_reply_to_question_message_is_accepted(self) -> None:
        self.controller.handle(_text("/add_product"))
        self.assertEqual([message_id for message_id, _ in self.bot_client.sent], ["11", "12"])
        self.assertEqual(self.repository.get_session("u1", "add_product").pending_reply_ref, "11")

        result = self.controller.handle(_text("SKU-001", reply_to="11"))

        self.assertEqual(result.status, HandleStatus.ADVANCED)
        session = self.repository.get_session("u1", "add_product")
        self.assertEqual(session.state, WorkflowState.NAME)
        self.assertEqual(session.record.sku, "SKU-001")

    def test_reply_to_force_reply_hint_is_accepted(self) -> None:
        self.controller.handle(_text("/add_product"))
        result = self.controller.handle(_text("SKU-001", reply_to="12"))
        self.assertEqual(result.status, HandleStatus.ADVANCED)
        self.assertEqual(self.repository.get_session("u1", "add_product").state, WorkflowState.NAME)

    def test_reply_to_previous_prompt_is_ignored(self) -> None:
        self.controller.handle(_text("/add_product"))
        self.controller.handle(_text("SKU-001", reply_to="11"))
        sent = len(self.bot_client.sent)

        result = self.controller.handle(_text("stray", reply_to="12"))

        self.assertEqual(result.status, HandleStatus.IGNORED)
        self.assertEqual(len(self.bot_client.sent), sent)
        self.assertEqual(self.repository.get_session("u1", "add_product").record.name, "")


if __name__ == "__main__":
    unittest.main()
