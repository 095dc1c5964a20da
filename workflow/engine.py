from __future__ import annotations

import copy
from dataclasses import dataclass
from datetime import datetime
from typing import Optional

from core.enums import OutcomeKind, WorkflowEvent, WorkflowState
from core.models import ProductRecord, Prompt, StepInput, WorkflowSession, expires_at_from, to_iso, utc_now
from workflow.definition import WorkflowDefinition
from workflow.validators import FieldValidationError


class WorkflowTransitionError(RuntimeError):
    def __init__(self, state: WorkflowState, event: WorkflowEvent) -> None:
        super().__init__(f"no transition for event={event.value} in state={state.value}")
        self.state = state
        self.event = event


@dataclass(slots=True)
class Outcome:
    kind: OutcomeKind
    prompt: Optional[Prompt] = None
    reason: Optional[str] = None
    error: Optional[FieldValidationError] = None


class WorkflowEngine:
    def __init__(
        self,
        definition: WorkflowDefinition | None = None,
        session_ttl_hours: float = 24,
    ) -> None:
        self.definition = definition or WorkflowDefinition()
        self.session_ttl_hours = max(1.0, float(session_ttl_hours))

    def apply(
        self,
        session: WorkflowSession,
        event: WorkflowEvent,
        step_input: StepInput | None = None,
        now: datetime | None = None,
    ) -> tuple[WorkflowSession, Outcome]:
        target = self.definition.transition(session.state, event, session.paused_from)
        if target is None:
            return session, Outcome(kind=OutcomeKind.REJECTED, reason=f"{session.state.value}:{event.value}")

        updated = copy.deepcopy(session)
        if event == WorkflowEvent.NEXT:
            spec = self.definition.step(session.state)
            if spec is not None and spec.validate is not None:
                try:
                    value = spec.validate(step_input or StepInput(), updated.record, self.definition.max_images)
                except FieldValidationError as exc:
                    return session, Outcome(
                        kind=OutcomeKind.VALIDATION_FAILED,
                        prompt=self.definition.entry_prompt(session),
                        reason=self.definition.validation_message(exc),
                        error=exc,
                    )
                if spec.store is not None:
                    spec.store(updated.record, value)

        if event == WorkflowEvent.RESTART:
            updated.record = ProductRecord()
        if target == WorkflowState.PAUSED:
            if session.state != WorkflowState.PAUSED:
                updated.paused_from = session.state
        else:
            updated.paused_from = None

        updated.state = target
        moment = now or utc_now()
        updated.updated_at = to_iso(moment)
        updated.expires_at = expires_at_from(moment, self.session_ttl_hours)
        if not updated.created_at:
            updated.created_at = updated.updated_at

        if target == WorkflowState.COMPLETED:
            return updated, Outcome(kind=OutcomeKind.COMMITTED, prompt=self.definition.entry_prompt(updated))
        if target == WorkflowState.CANCELLED:
            return updated, Outcome(kind=OutcomeKind.ABORTED, prompt=self.definition.entry_prompt(updated))
        reentered = event == WorkflowEvent.NEXT and target == session.state
        return updated, Outcome(
            kind=OutcomeKind.ADVANCED,
            prompt=self.definition.entry_prompt(updated, reentered=reentered),
        )
