from __future__ import annotations

import unittest
from decimal import Decimal

from core.enums import Affordance, WorkflowEvent, WorkflowState
from core.models import ProductRecord, WorkflowSession
from workflow.definition import TERMINAL_STATES, WorkflowDefinition

NON_TERMINAL_STATES = [state for state in WorkflowState if state not in TERMINAL_STATES]


def _session(state: WorkflowState, record: ProductRecord | None = None) -> WorkflowSession:
    return WorkflowSession(
        session_id="s1",
        subject_id="u1",
        channel_id="c1",
        workflow_kind="add_product",
        state=state,
        record=record or ProductRecord(),
    )


class WorkflowDefinitionTest(unittest.TestCase):
    def setUp(self) -> None:
        self.definition = WorkflowDefinition(max_images=5)

    def test_linear_chain(self) -> None:
        chain = [
            (WorkflowState.INIT, WorkflowEvent.START, WorkflowState.SKU),
            (WorkflowState.SKU, WorkflowEvent.NEXT, WorkflowState.NAME),
            (WorkflowState.NAME, WorkflowEvent.NEXT, WorkflowState.CATEGORY),
            (WorkflowState.CATEGORY, WorkflowEvent.NEXT, WorkflowState.PRICE),
            (WorkflowState.PRICE, WorkflowEvent.NEXT, WorkflowState.STOCK),
            (WorkflowState.STOCK, WorkflowEvent.NEXT, WorkflowState.DESCRIPTION),
            (WorkflowState.DESCRIPTION, WorkflowEvent.NEXT, WorkflowState.SPECS),
            (WorkflowState.DESCRIPTION, WorkflowEvent.SKIP, WorkflowState.SPECS),
            (WorkflowState.SPECS, WorkflowEvent.NEXT, WorkflowState.SPECS),
            (WorkflowState.SPECS, WorkflowEvent.DONE, WorkflowState.IMAGES),
            (WorkflowState.SPECS, WorkflowEvent.SKIP, WorkflowState.IMAGES),
            (WorkflowState.IMAGES, WorkflowEvent.NEXT, WorkflowState.IMAGES),
            (WorkflowState.IMAGES, WorkflowEvent.DONE, WorkflowState.CONFIRM),
            (WorkflowState.IMAGES, WorkflowEvent.SKIP, WorkflowState.CONFIRM),
            (WorkflowState.CONFIRM, WorkflowEvent.CONFIRM, WorkflowState.COMPLETED),
            (WorkflowState.CONFIRM, WorkflowEvent.REJECT, WorkflowState.CANCELLED),
        ]
        for src, event, dst in chain:
            with self.subTest(src=src, event=event):
                self.assertEqual(self.definition.transition(src, event), dst)

    def test_undeclared_pairs_have_no_transition(self) -> None:
        self.assertIsNone(self.definition.transition(WorkflowState.SKU, WorkflowEvent.SKIP))
        self.assertIsNone(self.definition.transition(WorkflowState.PRICE, WorkflowEvent.DONE))
        self.assertIsNone(self.definition.transition(WorkflowState.SKU, WorkflowEvent.CONFIRM))
        self.assertIsNone(self.definition.transition(WorkflowState.SKU, WorkflowEvent.START))

    def test_wildcards_apply_to_every_non_terminal_state(self) -> None:
        for state in NON_TERMINAL_STATES:
            with self.subTest(state=state):
                self.assertEqual(self.definition.transition(state, WorkflowEvent.CANCEL), WorkflowState.CANCELLED)
                self.assertEqual(self.definition.transition(state, WorkflowEvent.RESTART), WorkflowState.SKU)
                self.assertEqual(self.definition.transition(state, WorkflowEvent.PAUSE), WorkflowState.PAUSED)

    def test_terminal_states_have_no_outgoing_transitions(self) -> None:
        for state in TERMINAL_STATES:
            for event in WorkflowEvent:
                with self.subTest(state=state, event=event):
                    self.assertIsNone(self.definition.transition(state, event))

    def test_resume_targets_paused_source_or_current_state(self) -> None:
        self.assertEqual(
            self.definition.transition(WorkflowState.PAUSED, WorkflowEvent.RESUME, WorkflowState.PRICE),
            WorkflowState.PRICE,
        )
        self.assertEqual(self.definition.transition(WorkflowState.NAME, WorkflowEvent.RESUME), WorkflowState.NAME)

    def test_prompt_affordances(self) -> None:
        sku = self.definition.entry_prompt(_session(WorkflowState.SKU))
        self.assertEqual(sku.actions, (Affordance.CANCEL, Affordance.PAUSE))
        self.assertTrue(sku.force_reply)

        description = self.definition.entry_prompt(_session(WorkflowState.DESCRIPTION))
        self.assertIn(Affordance.SKIP, description.actions)

        specs = self.definition.entry_prompt(_session(WorkflowState.SPECS))
        self.assertEqual(specs.actions[:2], (Affordance.DONE, Affordance.SKIP))

        paused = self.definition.entry_prompt(_session(WorkflowState.PAUSED))
        self.assertEqual(paused.actions, (Affordance.RESUME, Affordance.RESTART, Affordance.CANCEL))
        self.assertIn("/add_product", paused.text)

    def test_image_reentry_prompt_reports_progress(self) -> None:
        record = ProductRecord(image_refs=["a", "b"])
        prompt = self.definition.entry_prompt(_session(WorkflowState.IMAGES, record), reentered=True)
        self.assertIn("(2/5)", prompt.text)
        self.assertIn("3", prompt.text)

        full = ProductRecord(image_refs=["a", "b", "c", "d", "e"])
        prompt = self.definition.entry_prompt(_session(WorkflowState.IMAGES, full), reentered=True)
        self.assertIn("(5/5)", prompt.text)
        self.assertIn("已達上限", prompt.text)

    def test_confirm_prompt_summarizes_record(self) -> None:
        record = ProductRecord(
            sku="SKU-001",
            name="Widget",
            category="Tools",
            price=Decimal("19.99"),
            stock=10,
            specs=["Color: Red"],
            image_refs=["f1"],
        )
        prompt = self.definition.entry_prompt(_session(WorkflowState.CONFIRM, record))
        self.assertIn("SKU-001", prompt.text)
        self.assertIn("19.99", prompt.text)
        self.assertIn("圖片數量: 1", prompt.text)
        self.assertEqual(prompt.actions, (Affordance.CONFIRM, Affordance.CANCEL))


if __name__ == "__main__":
    unittest.main()
