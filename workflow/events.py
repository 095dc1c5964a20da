from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

from core.enums import WorkflowEvent, WorkflowState
from core.models import InboundMessage

START_COMMAND = "/add_product"
CANCEL_COMMAND = "/cancel"
RESTART_COMMAND = "/restart"

DONE_TOKENS = {"/done", "done"}
AFFIRMATIVE_TOKENS = {"confirm", "yes", "ok", "確認"}
NEGATIVE_TOKENS = {"reject", "no", "取消"}

REJECT_UNKNOWN_ACTION = "unknown_action"
REJECT_INVALID_INPUT = "invalid_input"

# prefix match, first entry wins
CALLBACK_PREFIXES: tuple[tuple[str, WorkflowEvent], ...] = (
    ("skip_", WorkflowEvent.SKIP),
    ("done_", WorkflowEvent.DONE),
    ("confirm", WorkflowEvent.CONFIRM),
    ("cancel", WorkflowEvent.CANCEL),
    ("pause", WorkflowEvent.PAUSE),
    ("resume", WorkflowEvent.RESUME),
    ("restart", WorkflowEvent.RESTART),
)
STATE_SCOPED_EVENTS = {WorkflowEvent.SKIP, WorkflowEvent.DONE}


@dataclass(slots=True)
class Derivation:
    event: Optional[WorkflowEvent] = None
    rejection: Optional[str] = None


def normalize_command(text: str | None) -> str:
    token = str(text or "").strip()
    if not token.startswith("/"):
        return token
    head = token.split(maxsplit=1)[0]
    return head.split("@", 1)[0].lower()


def is_start_command(text: str | None) -> bool:
    return normalize_command(text) == START_COMMAND


def is_command(text: str | None) -> bool:
    return normalize_command(text) in {START_COMMAND, CANCEL_COMMAND, RESTART_COMMAND, "/done"}


def event_from_callback(data: str, state: WorkflowState) -> WorkflowEvent | None:
    for prefix, event in CALLBACK_PREFIXES:
        if not data.startswith(prefix):
            continue
        if event in STATE_SCOPED_EVENTS and data[len(prefix):] != state.value:
            return None
        return event
    return None


def derive_event(message: InboundMessage, state: WorkflowState) -> Derivation:
    command = normalize_command(message.text)
    if command == CANCEL_COMMAND:
        return Derivation(event=WorkflowEvent.CANCEL)
    if command == RESTART_COMMAND:
        return Derivation(event=WorkflowEvent.RESTART)
    if command == START_COMMAND:
        if state == WorkflowState.INIT:
            return Derivation(event=WorkflowEvent.START)
        return Derivation(event=WorkflowEvent.RESUME)

    if message.callback_data is not None:
        event = event_from_callback(message.callback_data.strip(), state)
        if event is None:
            return Derivation(rejection=REJECT_UNKNOWN_ACTION)
        return Derivation(event=event)

    if state in {WorkflowState.CONFIRM, WorkflowState.PAUSED}:
        token = str(message.text or "").strip().lower()
        if state == WorkflowState.CONFIRM and token in AFFIRMATIVE_TOKENS:
            return Derivation(event=WorkflowEvent.CONFIRM)
        if state == WorkflowState.CONFIRM and token in NEGATIVE_TOKENS:
            return Derivation(event=WorkflowEvent.REJECT)
        return Derivation(rejection=REJECT_INVALID_INPUT)

    if state in {WorkflowState.SPECS, WorkflowState.IMAGES}:
        if command.lower() in DONE_TOKENS:
            return Derivation(event=WorkflowEvent.DONE)

    return Derivation(event=WorkflowEvent.NEXT)
