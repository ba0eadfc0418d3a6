from __future__ import annotations

from datetime import datetime, timezone
from decimal import Decimal
from enum import Enum
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

CURRENT_VERSION = 3

IDENTITY_COLLECTIONS = ("users", "roles", "user_roles", "user_claims", "user_logins", "user_tokens", "role_claims")
DOMAIN_COLLECTIONS = ("categories", "budgets", "goals", "recurring_transactions", "transactions")


class SnapshotKind(str, Enum):
    full = "full"
    data_only = "dataOnly"


class TransactionType(str, Enum):
    income = "Income"
    expense = "Expense"


class RecurrenceFrequency(str, Enum):
    daily = "Daily"
    weekly = "Weekly"
    monthly = "Monthly"
    yearly = "Yearly"


class DayOfWeek(str, Enum):
    sunday = "Sunday"
    monday = "Monday"
    tuesday = "Tuesday"
    wednesday = "Wednesday"
    thursday = "Thursday"
    friday = "Friday"
    saturday = "Saturday"


class CategoryKind(str, Enum):
    essential = "Essential"
    discretionary = "Discretionary"
    savings = "Savings"
    income = "Income"
    investment = "Investment"
    debt = "Debt"
    other = "Other"


class SnapshotModel(BaseModel):
    # Attribute names match table columns; JSON keys are camelCase.
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        use_enum_values=True,
        validate_default=True,
        frozen=True,
    )


class SnapshotRecord(SnapshotModel):
    def to_row(self) -> dict:
        return self.model_dump()


class UserSnapshot(SnapshotRecord):
    id: str
    user_name: Optional[str] = None
    normalized_user_name: Optional[str] = None
    email: Optional[str] = None
    normalized_email: Optional[str] = None
    email_confirmed: bool = False
    password_hash: Optional[str] = None
    security_stamp: Optional[str] = None
    concurrency_stamp: Optional[str] = None
    phone_number: Optional[str] = None
    phone_number_confirmed: bool = False
    two_factor_enabled: bool = False
    lockout_end: Optional[datetime] = None
    lockout_enabled: bool = False
    access_failed_count: int = 0
    first_name: str = ""
    last_name: str = ""
    photo_url: Optional[str] = None
    created_at: datetime


class RoleSnapshot(SnapshotRecord):
    id: str
    name: Optional[str] = None
    normalized_name: Optional[str] = None
    concurrency_stamp: Optional[str] = None


class RoleClaimSnapshot(SnapshotRecord):
    id: int
    role_id: str
    claim_type: Optional[str] = None
    claim_value: Optional[str] = None


class UserRoleSnapshot(SnapshotRecord):
    user_id: str
    role_id: str


class UserClaimSnapshot(SnapshotRecord):
    id: int
    user_id: str
    claim_type: Optional[str] = None
    claim_value: Optional[str] = None


class UserLoginSnapshot(SnapshotRecord):
    login_provider: str
    provider_key: str
    provider_display_name: Optional[str] = None
    user_id: str


class UserTokenSnapshot(SnapshotRecord):
    user_id: str
    login_provider: str
    name: str
    value: Optional[str] = None


class CategorySnapshot(SnapshotRecord):
    id: int
    user_id: str
    name: str
    icon: Optional[str] = None
    color: Optional[str] = None
    is_default: bool = False
    kind: CategoryKind = CategoryKind.essential
    segment: Optional[str] = None
    tags: str = "[]"
    created_at: datetime


class TransactionSnapshot(SnapshotRecord):
    id: int
    user_id: str
    amount: Decimal
    type: TransactionType
    description: str
    category_id: int
    date: datetime
    created_at: datetime


class GoalSnapshot(SnapshotRecord):
    id: int
    user_id: str
    category_id: int
    target_amount: Decimal
    month: int = Field(ge=1, le=12)
    year: int
    created_at: datetime


class BudgetSnapshot(SnapshotRecord):
    id: int
    user_id: str
    category_id: int
    amount: Decimal
    month: int = Field(ge=1, le=12)
    year: int
    alert_at_50_percent: bool = True
    alert_at_80_percent: bool = True
    alert_at_100_percent: bool = True
    alert_50_sent: bool = False
    alert_80_sent: bool = False
    alert_100_sent: bool = False
    created_at: datetime


class RecurringTransactionSnapshot(SnapshotRecord):
    id: int
    user_id: str
    amount: Decimal
    type: TransactionType
    description: str
    category_id: int
    frequency: RecurrenceFrequency
    start_date: datetime
    end_date: Optional[datetime] = None
    day_of_month: Optional[int] = Field(default=None, ge=1, le=31)
    day_of_week: Optional[DayOfWeek] = None
    is_active: bool = True
    last_generated_date: Optional[datetime] = None
    created_at: datetime


class DatabaseSnapshot(SnapshotModel):
    """Every backed-up collection of the store, as flat records.

    ``kind`` is absent in artifacts written before version 3; restore infers it
    from which collections are populated.
    """

    version: int = CURRENT_VERSION
    generated_at_utc: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    kind: Optional[SnapshotKind] = None
    users: list[UserSnapshot] = Field(default_factory=list)
    roles: list[RoleSnapshot] = Field(default_factory=list)
    user_roles: list[UserRoleSnapshot] = Field(default_factory=list)
    user_claims: list[UserClaimSnapshot] = Field(default_factory=list)
    user_logins: list[UserLoginSnapshot] = Field(default_factory=list)
    user_tokens: list[UserTokenSnapshot] = Field(default_factory=list)
    role_claims: list[RoleClaimSnapshot] = Field(default_factory=list)
    categories: list[CategorySnapshot] = Field(default_factory=list)
    transactions: list[TransactionSnapshot] = Field(default_factory=list)
    goals: list[GoalSnapshot] = Field(default_factory=list)
    budgets: list[BudgetSnapshot] = Field(default_factory=list)
    recurring_transactions: list[RecurringTransactionSnapshot] = Field(default_factory=list)

    def populated_identity_collections(self) -> list[str]:
        return [name for name in IDENTITY_COLLECTIONS if getattr(self, name)]

    def referenced_user_ids(self) -> set[str]:
        ids: set[str] = set()
        for name in DOMAIN_COLLECTIONS:
            for record in getattr(self, name):
                if record.user_id and record.user_id.strip():
                    ids.add(record.user_id)
        return ids

    def counts(self) -> dict[str, int]:
        return {to_camel(name): len(getattr(self, name)) for name in IDENTITY_COLLECTIONS + DOMAIN_COLLECTIONS}
