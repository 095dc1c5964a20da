from __future__ import annotations

import uuid
from dataclasses import dataclass
from typing import Optional, Protocol

from core.enums import HandleStatus, OutcomeKind, WorkflowEvent, WorkflowKind, WorkflowState
from core.models import InboundMessage, Prompt, WorkflowSession
from storage.repository_interface import ProductRepositoryProtocol, SessionStoreProtocol
from workflow.definition import MSG_INVALID_INPUT, MSG_NOT_STARTED, MSG_UNKNOWN_ACTION, WorkflowDefinition
from workflow.engine import WorkflowEngine, WorkflowTransitionError
from workflow.events import REJECT_UNKNOWN_ACTION, derive_event, is_command, is_start_command


class ChatGatewayProtocol(Protocol):
    def send_prompt(self, channel_id: str, prompt: Prompt) -> str | None:
        ...

    def send_text(self, channel_id: str, text: str) -> str | None:
        ...


@dataclass(slots=True)
class HandleResult:
    status: HandleStatus
    state: Optional[WorkflowState] = None
    product_id: Optional[str] = None
    session_id: Optional[str] = None


class WorkflowController:
    def __init__(
        self,
        session_store: SessionStoreProtocol,
        product_repository: ProductRepositoryProtocol,
        gateway: ChatGatewayProtocol,
        engine: WorkflowEngine | None = None,
        workflow_kind: str = WorkflowKind.ADD_PRODUCT,
    ) -> None:
        self.session_store = session_store
        self.product_repository = product_repository
        self.gateway = gateway
        self.engine = engine or WorkflowEngine()
        self.workflow_kind = workflow_kind

    @property
    def definition(self) -> WorkflowDefinition:
        return self.engine.definition

    def handle(self, message: InboundMessage) -> HandleResult:
        session = self.session_store.get_session(message.subject_id, self.workflow_kind)
        if session is None:
            if message.callback_data is not None or not is_start_command(message.text):
                self.gateway.send_text(message.channel_id, MSG_NOT_STARTED)
                return HandleResult(status=HandleStatus.NO_SESSION)
            # expired rows still occupy the key until swept
            self.session_store.delete_session(message.subject_id, self.workflow_kind)
            session = self._new_session(message)
        elif self._is_stale_reply(session, message):
            return HandleResult(status=HandleStatus.IGNORED, state=session.state, session_id=session.session_id)

        derivation = derive_event(message, session.state)
        if derivation.event is None:
            if derivation.rejection == REJECT_UNKNOWN_ACTION:
                self.gateway.send_text(message.channel_id, MSG_UNKNOWN_ACTION)
                return HandleResult(status=HandleStatus.UNKNOWN_ACTION, state=session.state, session_id=session.session_id)
            self.gateway.send_text(message.channel_id, MSG_INVALID_INPUT)
            self.gateway.send_prompt(message.channel_id, self.definition.entry_prompt(session))
            return HandleResult(status=HandleStatus.INVALID_INPUT, state=session.state, session_id=session.session_id)

        event = derivation.event
        if message.callback_data is not None and self.definition.transition(
            session.state, event, session.paused_from
        ) is None:
            self.gateway.send_text(message.channel_id, MSG_UNKNOWN_ACTION)
            return HandleResult(status=HandleStatus.UNKNOWN_ACTION, state=session.state, session_id=session.session_id)

        updated, outcome = self.engine.apply(session, event, message.step_input())
        if outcome.kind == OutcomeKind.REJECTED:
            raise WorkflowTransitionError(session.state, event)

        if outcome.kind == OutcomeKind.VALIDATION_FAILED:
            self.gateway.send_text(message.channel_id, outcome.reason or MSG_INVALID_INPUT)
            if outcome.prompt is not None:
                self.gateway.send_prompt(message.channel_id, outcome.prompt)
            return HandleResult(status=HandleStatus.VALIDATION_FAILED, state=session.state, session_id=session.session_id)

        if outcome.kind == OutcomeKind.COMMITTED:
            product_id = self.product_repository.commit(updated.record, created_by=message.subject_id)
            self.session_store.delete_session(session.subject_id, self.workflow_kind)
            self.gateway.send_prompt(message.channel_id, self.definition.completed_prompt(product_id))
            return HandleResult(
                status=HandleStatus.COMPLETED,
                state=updated.state,
                product_id=product_id,
                session_id=session.session_id,
            )

        if outcome.kind == OutcomeKind.ABORTED:
            self.session_store.delete_session(session.subject_id, self.workflow_kind)
            if outcome.prompt is not None:
                self.gateway.send_prompt(message.channel_id, outcome.prompt)
            return HandleResult(status=HandleStatus.CANCELLED, state=updated.state, session_id=session.session_id)

        status = HandleStatus.ADVANCED
        prompt = outcome.prompt
        if event == WorkflowEvent.START:
            status = HandleStatus.STARTED
        elif event == WorkflowEvent.RESUME:
            status = HandleStatus.RESUMED
            prompt = self.definition.resumed_prompt(updated)

        if prompt is not None:
            updated.pending_reply_ref = self.gateway.send_prompt(message.channel_id, prompt)
        self.session_store.upsert_session(updated)
        return HandleResult(status=status, state=updated.state, session_id=updated.session_id)

    def _new_session(self, message: InboundMessage) -> WorkflowSession:
        return WorkflowSession(
            session_id=uuid.uuid4().hex,
            subject_id=message.subject_id,
            channel_id=message.channel_id,
            workflow_kind=self.workflow_kind,
            state=WorkflowState.INIT,
        )

    @staticmethod
    def _is_stale_reply(session: WorkflowSession, message: InboundMessage) -> bool:
        reply_to = message.reply_to_ref
        pending = session.pending_reply_ref
        if not reply_to or not pending or reply_to == pending:
            return False
        if message.callback_data is not None or is_command(message.text):
            return False
        # pending is the first message of the latest prompt and ids grow per chat
        if reply_to.isdigit() and pending.isdigit():
            return int(reply_to) < int(pending)
        return True
