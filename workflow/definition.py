from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Callable, Optional

from core.enums import Affordance, WorkflowEvent, WorkflowState
from core.models import ProductRecord, Prompt, StepInput, WorkflowSession
from workflow import validators

DEFAULT_MAX_IMAGES = 5

TERMINAL_STATES = frozenset({WorkflowState.COMPLETED, WorkflowState.CANCELLED})
WILDCARD_EVENTS = frozenset(
    {
        WorkflowEvent.CANCEL,
        WorkflowEvent.RESTART,
        WorkflowEvent.PAUSE,
        WorkflowEvent.RESUME,
    }
)

TRANSITIONS: dict[tuple[WorkflowState, WorkflowEvent], WorkflowState] = {
    (WorkflowState.INIT, WorkflowEvent.START): WorkflowState.SKU,
    (WorkflowState.SKU, WorkflowEvent.NEXT): WorkflowState.NAME,
    (WorkflowState.NAME, WorkflowEvent.NEXT): WorkflowState.CATEGORY,
    (WorkflowState.CATEGORY, WorkflowEvent.NEXT): WorkflowState.PRICE,
    (WorkflowState.PRICE, WorkflowEvent.NEXT): WorkflowState.STOCK,
    (WorkflowState.STOCK, WorkflowEvent.NEXT): WorkflowState.DESCRIPTION,
    (WorkflowState.DESCRIPTION, WorkflowEvent.NEXT): WorkflowState.SPECS,
    (WorkflowState.DESCRIPTION, WorkflowEvent.SKIP): WorkflowState.SPECS,
    (WorkflowState.SPECS, WorkflowEvent.NEXT): WorkflowState.SPECS,
    (WorkflowState.SPECS, WorkflowEvent.SKIP): WorkflowState.IMAGES,
    (WorkflowState.SPECS, WorkflowEvent.DONE): WorkflowState.IMAGES,
    (WorkflowState.IMAGES, WorkflowEvent.NEXT): WorkflowState.IMAGES,
    (WorkflowState.IMAGES, WorkflowEvent.SKIP): WorkflowState.CONFIRM,
    (WorkflowState.IMAGES, WorkflowEvent.DONE): WorkflowState.CONFIRM,
    (WorkflowState.CONFIRM, WorkflowEvent.CONFIRM): WorkflowState.COMPLETED,
    (WorkflowState.CONFIRM, WorkflowEvent.REJECT): WorkflowState.CANCELLED,
}

TEXT_ENTRY_ACTIONS = (Affordance.CANCEL, Affordance.PAUSE)

MSG_PAUSED = "💾 流程已暫存，您可以稍後使用 /add_product 繼續"
MSG_COMPLETED = "🎉 商品已成功上架！"
MSG_CANCELLED = "❌ 已取消商品上架流程"
MSG_SPEC_ADDED = "✅ 規格已新增，繼續輸入或點擊「完成」按鈕："
MSG_IMAGE_UPLOADED = "✅ 圖片已上傳 ({count}/{limit})，還可上傳 {remaining} 張或點擊「完成」按鈕"
MSG_IMAGE_LIMIT_REACHED = "✅ 圖片已上傳 ({count}/{limit})，已達上限！點擊「完成」按鈕"
MSG_NOT_STARTED = "請使用 /add_product 開始上架商品。"
MSG_UNKNOWN_ACTION = "❌ 未知的操作"
MSG_INVALID_INPUT = "❌ 輸入格式錯誤，請重新輸入："
MSG_RESUMED = "📝 找到未完成的上架流程，目前步驟：{label}"

VALIDATION_MESSAGES = {
    "required": "❌ 此欄位不可空白，請重新輸入：",
    "invalid_decimal": "❌ 價格格式錯誤，請輸入數字：",
    "invalid_integer": "❌ 庫存格式錯誤，請輸入整數：",
    "image_required": "❌ 請上傳一張圖片：",
    "image_limit": "❌ 最多只能上傳 {limit} 張圖片，目前已上傳 {count} 張",
}


@dataclass(slots=True)
class StepSpec:
    prompt: str
    label: str
    actions: tuple[Affordance, ...] = TEXT_ENTRY_ACTIONS
    force_reply: bool = True
    validate: Optional[Callable[[StepInput, ProductRecord, int], Any]] = None
    store: Optional[Callable[[ProductRecord, Any], None]] = None


def _text(step_input: StepInput, record: ProductRecord, max_images: int) -> str:
    return validators.require_text(step_input.text)


def _price(step_input: StepInput, record: ProductRecord, max_images: int) -> Any:
    return validators.parse_price(step_input.text)


def _stock(step_input: StepInput, record: ProductRecord, max_images: int) -> int:
    return validators.parse_stock(step_input.text)


def _spec_lines(step_input: StepInput, record: ProductRecord, max_images: int) -> list[str]:
    validators.require_text(step_input.text)
    return validators.split_lines(step_input.text)


def _image(step_input: StepInput, record: ProductRecord, max_images: int) -> str:
    return validators.check_image_capacity(step_input.media_ref, len(record.image_refs), max_images)


def _set(attr: str) -> Callable[[ProductRecord, Any], None]:
    def _store(record: ProductRecord, value: Any) -> None:
        setattr(record, attr, value)

    return _store


def _append_specs(record: ProductRecord, value: list[str]) -> None:
    record.specs.extend(value)


def _append_image(record: ProductRecord, value: str) -> None:
    record.image_refs.append(value)


class WorkflowDefinition:
    def __init__(self, max_images: int = DEFAULT_MAX_IMAGES) -> None:
        self.max_images = max(1, int(max_images))
        self.steps: dict[WorkflowState, StepSpec] = {
            WorkflowState.SKU: StepSpec("請輸入商品 SKU：", "SKU", validate=_text, store=_set("sku")),
            WorkflowState.NAME: StepSpec("請輸入商品名稱：", "名稱", validate=_text, store=_set("name")),
            WorkflowState.CATEGORY: StepSpec("請輸入商品類別：", "類別", validate=_text, store=_set("category")),
            WorkflowState.PRICE: StepSpec("請輸入商品價格：", "價格", validate=_price, store=_set("price")),
            WorkflowState.STOCK: StepSpec("請輸入商品庫存數量：", "庫存", validate=_stock, store=_set("stock")),
            WorkflowState.DESCRIPTION: StepSpec(
                "請輸入商品描述：",
                "描述",
                actions=(Affordance.SKIP, Affordance.CANCEL, Affordance.PAUSE),
                validate=_text,
                store=_set("description"),
            ),
            WorkflowState.SPECS: StepSpec(
                "請輸入商品規格（每行一項）：",
                "規格",
                actions=(Affordance.DONE, Affordance.SKIP, Affordance.CANCEL, Affordance.PAUSE),
                validate=_spec_lines,
                store=_append_specs,
            ),
            WorkflowState.IMAGES: StepSpec(
                f"請上傳商品圖片（最多 {self.max_images} 張）：",
                "圖片",
                actions=(Affordance.DONE, Affordance.SKIP, Affordance.CANCEL, Affordance.PAUSE),
                force_reply=False,
                validate=_image,
                store=_append_image,
            ),
            WorkflowState.CONFIRM: StepSpec(
                "",
                "確認",
                actions=(Affordance.CONFIRM, Affordance.CANCEL),
                force_reply=False,
            ),
            WorkflowState.PAUSED: StepSpec(
                MSG_PAUSED,
                "暫存",
                actions=(Affordance.RESUME, Affordance.RESTART, Affordance.CANCEL),
                force_reply=False,
            ),
        }

    def transition(
        self,
        state: WorkflowState,
        event: WorkflowEvent,
        paused_from: WorkflowState | None = None,
    ) -> WorkflowState | None:
        if state in TERMINAL_STATES:
            return None
        if event in WILDCARD_EVENTS:
            if event == WorkflowEvent.CANCEL:
                return WorkflowState.CANCELLED
            if event == WorkflowEvent.RESTART:
                return WorkflowState.SKU
            if event == WorkflowEvent.PAUSE:
                return WorkflowState.PAUSED
            if state == WorkflowState.PAUSED:
                return paused_from or WorkflowState.SKU
            return state
        return TRANSITIONS.get((state, event))

    def step(self, state: WorkflowState) -> StepSpec | None:
        return self.steps.get(state)

    def step_label(self, state: WorkflowState | None) -> str:
        spec = self.steps.get(state) if state else None
        return spec.label if spec else ""

    def entry_prompt(self, session: WorkflowSession, reentered: bool = False) -> Prompt:
        state = session.state
        record = session.record
        if state == WorkflowState.COMPLETED:
            return Prompt(text=MSG_COMPLETED, state=state)
        if state == WorkflowState.CANCELLED:
            return Prompt(text=MSG_CANCELLED, state=state)
        if state == WorkflowState.CONFIRM:
            return Prompt(
                text=self.summary_text(record),
                actions=(Affordance.CONFIRM, Affordance.CANCEL),
                state=state,
            )
        spec = self.steps.get(state)
        if spec is None:
            return Prompt(text="", state=state)

        text = spec.prompt
        if reentered and state == WorkflowState.SPECS:
            text = MSG_SPEC_ADDED
        elif reentered and state == WorkflowState.IMAGES:
            count = len(record.image_refs)
            if count >= self.max_images:
                text = MSG_IMAGE_LIMIT_REACHED.format(count=count, limit=self.max_images)
            else:
                text = MSG_IMAGE_UPLOADED.format(
                    count=count,
                    limit=self.max_images,
                    remaining=self.max_images - count,
                )
        return Prompt(text=text, actions=spec.actions, state=state, force_reply=spec.force_reply)

    def completed_prompt(self, product_id: str) -> Prompt:
        return Prompt(text=f"{MSG_COMPLETED}\n商品編號: {product_id}", state=WorkflowState.COMPLETED)

    def resumed_prompt(self, session: WorkflowSession) -> Prompt:
        prompt = self.entry_prompt(session)
        notice = MSG_RESUMED.format(label=self.step_label(session.state))
        prompt.text = f"{notice}\n{prompt.text}" if prompt.text else notice
        return prompt

    def validation_message(self, error: validators.FieldValidationError) -> str:
        template = VALIDATION_MESSAGES.get(error.code)
        if template is None:
            return f"❌ {error.message}"
        return template.format(limit=self.max_images, count=error.count or 0)

    @staticmethod
    def summary_text(record: ProductRecord) -> str:
        price = "-" if record.price is None else f"{record.price:.2f}"
        stock = "-" if record.stock is None else str(record.stock)
        specs = "、".join(record.specs) if record.specs else "-"
        lines = [
            "商品摘要：",
            f"SKU: {record.sku}",
            f"名稱: {record.name}",
            f"類別: {record.category}",
            f"價格: {price}",
            f"庫存: {stock}",
            f"描述: {record.description or '-'}",
            f"規格: {specs}",
            f"圖片數量: {len(record.image_refs)}",
            "請選擇：",
        ]
        return "\n".join(lines)
