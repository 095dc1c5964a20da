from __future__ import annotations

from enum import Enum


class WorkflowState(str, Enum):
    INIT = "init"
    SKU = "sku"
    NAME = "name"
    CATEGORY = "category"
    PRICE = "price"
    STOCK = "stock"
    DESCRIPTION = "description"
    SPECS = "specs"
    IMAGES = "images"
    CONFIRM = "confirm"
    COMPLETED = "completed"
    CANCELLED = "cancelled"
    PAUSED = "paused"


class WorkflowEvent(str, Enum):
    START = "start"
    NEXT = "next"
    SKIP = "skip"
    DONE = "done"
    CONFIRM = "confirm"
    REJECT = "reject"
    CANCEL = "cancel"
    RESTART = "restart"
    PAUSE = "pause"
    RESUME = "resume"


class Affordance(str, Enum):
    SKIP = "skip"
    DONE = "done"
    PAUSE = "pause"
    CANCEL = "cancel"
    CONFIRM = "confirm"
    RESUME = "resume"
    RESTART = "restart"


class OutcomeKind(str, Enum):
    ADVANCED = "ADVANCED"
    VALIDATION_FAILED = "VALIDATION_FAILED"
    REJECTED = "REJECTED"
    COMMITTED = "COMMITTED"
    ABORTED = "ABORTED"


class HandleStatus(str, Enum):
    STARTED = "started"
    ADVANCED = "advanced"
    RESUMED = "resumed"
    VALIDATION_FAILED = "validation_failed"
    INVALID_INPUT = "invalid_input"
    UNKNOWN_ACTION = "unknown_action"
    NO_SESSION = "no_session"
    IGNORED = "ignored"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


class WorkflowKind:
    ADD_PRODUCT = "add_product"
