import datetime as dt
from decimal import Decimal
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field

from models import RecurringInterval


def amount_to_cents(amount: Decimal) -> int:
    return int((amount * 100).to_integral_value())


class CategoryIn(BaseModel):
    model_config = ConfigDict(extra="forbid")

    name: str = Field(..., min_length=1, max_length=100)
    color: str = Field(..., pattern=r"^#[0-9a-fA-F]{6}$")
    is_expense: bool = True
    emoji: Optional[str] = Field(default=None, max_length=16)


class CategoryPatch(BaseModel):
    model_config = ConfigDict(extra="forbid")

    name: Optional[str] = Field(default=None, min_length=1, max_length=100)
    color: Optional[str] = Field(default=None, pattern=r"^#[0-9a-fA-F]{6}$")
    is_expense: Optional[bool] = None
    emoji: Optional[str] = Field(default=None, max_length=16)


class TransactionIn(BaseModel):
    model_config = ConfigDict(extra="forbid")

    title: str = Field(..., min_length=1, max_length=200)
    amount: Decimal = Field(..., gt=0, max_digits=12, decimal_places=2)
    date: dt.date
    is_expense: bool
    category_id: Optional[int] = None
    person_label: str = Field(..., min_length=1, max_length=40)
    is_recurring: bool = False
    recurring_interval: Optional[RecurringInterval] = None
    recurring_end_date: Optional[dt.date] = None
    is_paid: bool = False
    notes: Optional[str] = Field(default=None, max_length=2000)

    @property
    def amount_cents(self) -> int:
        return amount_to_cents(self.amount)


class TransactionPatch(BaseModel):
    """Partial update; only the fields present in the request are applied."""

    model_config = ConfigDict(extra="forbid")

    title: Optional[str] = Field(default=None, min_length=1, max_length=200)
    amount: Optional[Decimal] = Field(
        default=None, gt=0, max_digits=12, decimal_places=2
    )
    date: Optional[dt.date] = None
    is_expense: Optional[bool] = None
    category_id: Optional[int] = None
    person_label: Optional[str] = Field(default=None, min_length=1, max_length=40)
    is_recurring: Optional[bool] = None
    recurring_interval: Optional[RecurringInterval] = None
    recurring_end_date: Optional[dt.date] = None
    is_paid: Optional[bool] = None
    notes: Optional[str] = Field(default=None, max_length=2000)


class PaidStatusIn(BaseModel):
    model_config = ConfigDict(extra="forbid")

    # null removes the month's paid override
    is_paid: Optional[bool]


class SavingsIn(BaseModel):
    model_config = ConfigDict(extra="forbid")

    amount: Decimal = Field(..., gt=0, max_digits=12, decimal_places=2)
    date: dt.date
    notes: Optional[str] = Field(default=None, max_length=2000)
    person_label: str = Field(..., min_length=1, max_length=40)

    @property
    def amount_cents(self) -> int:
        return amount_to_cents(self.amount)
