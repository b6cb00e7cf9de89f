"""Dataclass models matching the SQLite schema.

Each dataclass corresponds to one table. Fields match column names exactly.
All primary keys are TEXT (UUID strings generated via uuid4()).
Monetary amounts are integer cents.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from uuid import uuid4


def _new_id() -> str:
    return str(uuid4())


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


class InvoiceStatus(str, Enum):
    PROCESSING = "Processing"
    PENDING = "Pending"
    ERROR = "Error"
    PAID = "Paid"
    LATE = "Late"

    @classmethod
    def parse(cls, value: str) -> "InvoiceStatus":
        """Resolve a user-supplied status name, case-insensitively.

        "Analyzed" is accepted as an alias of Pending.
        """
        text = value.strip().lower()
        if text == "analyzed":
            return cls.PENDING
        for status in cls:
            if status.value.lower() == text:
                return status
        raise ValueError(f"Unknown invoice status: {value!r}")


class JobStatus(str, Enum):
    QUEUED = "queued"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"


class PointStatus(str, Enum):
    ACTIVE = "Active"
    REDEEMED = "Redeemed"
    EXPIRED = "Expired"


@dataclass
class User:
    name: str
    email: str
    id: str = field(default_factory=_new_id)
    created_at: str = field(default_factory=_now)


@dataclass
class Card:
    user_id: str
    name: str
    id: str = field(default_factory=_new_id)
    bank: str | None = None
    last_digits: str | None = None
    conversion_rate: float = 1.0
    annual_fee: int | None = None
    tier: str | None = None
    active: bool = True
    created_at: str = field(default_factory=_now)


@dataclass
class RewardProgram:
    name: str
    id: str = field(default_factory=_new_id)
    code: str | None = None
    description: str | None = None
    website: str | None = None
    logo_path: str | None = None


@dataclass
class CardRewardProgram:
    card_id: str
    reward_program_id: str
    id: str = field(default_factory=_new_id)
    conversion_rate: float = 1.0
    is_primary: bool = False
    terms: str | None = None


@dataclass
class Category:
    code: str
    name: str
    id: str = field(default_factory=_new_id)
    description: str | None = None
    icon: str | None = None
    color: str | None = None


@dataclass
class Invoice:
    user_id: str
    card_id: str
    reference_date: str
    id: str = field(default_factory=_new_id)
    total_amount: int = 0
    status: str = InvoiceStatus.PROCESSING.value
    file_path: str | None = None
    due_date: str | None = None
    closing_date: str | None = None
    notes: str | None = None
    error_message: str | None = None
    created_at: str = field(default_factory=_now)
    updated_at: str = field(default_factory=_now)


@dataclass
class Transaction:
    invoice_id: str
    merchant_name: str
    transaction_date: str
    amount: int
    id: str = field(default_factory=_new_id)
    category_id: str | None = None
    points_earned: int = 0
    is_recommended: bool = False
    description: str | None = None
    created_at: str = field(default_factory=_now)


@dataclass
class Point:
    user_id: str
    reward_program_id: str
    amount: int
    id: str = field(default_factory=_new_id)
    transaction_id: str | None = None
    expiration_date: str | None = None
    status: str = PointStatus.ACTIVE.value
    description: str | None = None
    created_at: str = field(default_factory=_now)


@dataclass
class Job:
    invoice_id: str
    file_path: str | None = None
    id: str = field(default_factory=_new_id)
    status: str = JobStatus.QUEUED.value
    attempts: int = 0
    error_message: str | None = None
    created_at: str = field(default_factory=_now)
    started_at: str | None = None
    finished_at: str | None = None
    available_at: str | None = None


@dataclass
class ApiUsage:
    month: str
    service: str
    id: str = field(default_factory=_new_id)
    request_count: int = 0
    input_tokens: int = 0
    output_tokens: int = 0
    estimated_cost_cents: int = 0
    updated_at: str = field(default_factory=_now)
