import datetime as dt
from datetime import datetime
from enum import Enum
from typing import Optional

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    Date,
    DateTime,
    Enum as SAEnum,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from database import Base


class TransactionType(str, Enum):
    income = "income"
    expense = "expense"


class RecurringInterval(str, Enum):
    daily = "daily"
    weekly = "weekly"
    monthly = "monthly"
    yearly = "yearly"


class MonthStatus(str, Enum):
    active = "active"
    skipped = "skipped"
    hidden = "hidden"


class TimestampMixin:
    created_at: Mapped[datetime] = mapped_column(
        DateTime, default=datetime.utcnow, nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False
    )


class Category(Base, TimestampMixin):
    __tablename__ = "categories"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    name: Mapped[str] = mapped_column(String(100), nullable=False)
    color: Mapped[str] = mapped_column(String(7), nullable=False)
    type: Mapped[TransactionType] = mapped_column(
        SAEnum(TransactionType), nullable=False
    )
    emoji: Mapped[Optional[str]] = mapped_column(String(16))

    transactions: Mapped[list["Transaction"]] = relationship(
        "Transaction", back_populates="category"
    )

    __table_args__ = (
        UniqueConstraint("type", "name", name="uq_category_type_name"),
    )

    @property
    def is_expense(self) -> bool:
        return self.type == TransactionType.expense


class Transaction(Base, TimestampMixin):
    __tablename__ = "transactions"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    title: Mapped[str] = mapped_column(String(200), nullable=False)
    amount_cents: Mapped[int] = mapped_column(Integer, nullable=False)
    date: Mapped[dt.date] = mapped_column(Date, nullable=False)
    type: Mapped[TransactionType] = mapped_column(
        SAEnum(TransactionType), nullable=False
    )
    category_id: Mapped[Optional[int]] = mapped_column(ForeignKey("categories.id"))
    person_label: Mapped[str] = mapped_column(String(40), nullable=False)
    is_recurring: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    recurring_interval: Mapped[Optional[RecurringInterval]] = mapped_column(
        SAEnum(RecurringInterval)
    )
    recurring_end_date: Mapped[Optional[dt.date]] = mapped_column(Date)
    is_paid: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    notes: Mapped[Optional[str]] = mapped_column(Text)

    category: Mapped[Optional["Category"]] = relationship(
        "Category", back_populates="transactions"
    )
    month_overrides: Mapped[list["MonthOverride"]] = relationship(
        "MonthOverride",
        back_populates="transaction",
        cascade="all, delete-orphan",
        passive_deletes=True,
    )

    __table_args__ = (
        Index("ix_transactions_date", "date"),
        Index("ix_transactions_recurring", "is_recurring"),
        CheckConstraint("amount_cents > 0", name="ck_transactions_amount_positive"),
        CheckConstraint(
            "NOT is_recurring OR recurring_interval IS NOT NULL",
            name="ck_transactions_recurring_interval",
        ),
        # AUTOINCREMENT keeps deleted ids from being handed out again.
        {"sqlite_autoincrement": True},
    )

    @property
    def is_expense(self) -> bool:
        return self.type == TransactionType.expense


class MonthOverride(Base, TimestampMixin):
    __tablename__ = "month_overrides"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    transaction_id: Mapped[int] = mapped_column(
        ForeignKey("transactions.id", ondelete="CASCADE"), nullable=False
    )
    month_key: Mapped[str] = mapped_column(String(7), nullable=False)
    status: Mapped[MonthStatus] = mapped_column(
        SAEnum(MonthStatus), default=MonthStatus.active, nullable=False
    )
    paid_override: Mapped[Optional[bool]] = mapped_column(Boolean)

    transaction: Mapped["Transaction"] = relationship(
        "Transaction", back_populates="month_overrides"
    )

    __table_args__ = (
        UniqueConstraint(
            "transaction_id", "month_key", name="uq_month_override_txn_month"
        ),
        Index("ix_month_override_month", "month_key"),
    )


class Savings(Base, TimestampMixin):
    __tablename__ = "savings"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    amount_cents: Mapped[int] = mapped_column(Integer, nullable=False)
    date: Mapped[dt.date] = mapped_column(Date, nullable=False)
    notes: Mapped[Optional[str]] = mapped_column(Text)
    person_label: Mapped[str] = mapped_column(String(40), nullable=False)

    __table_args__ = (
        Index("ix_savings_date", "date"),
        CheckConstraint("amount_cents > 0", name="ck_savings_amount_positive"),
    )
