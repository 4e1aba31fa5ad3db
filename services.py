from __future__ import annotations

import logging
from datetime import date, timedelta
from typing import Optional

from sqlalchemy import delete, func, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session, joinedload

from budget import (
    MonthResolution,
    OverrideState,
    Totals,
    aggregate,
    aggregate_window,
    resolve_month,
)
from config import get_settings
from errors import InvalidStateError, NotFoundError, ValidationError
from models import (
    Category,
    MonthOverride,
    MonthStatus,
    RecurringInterval,
    Savings,
    Transaction,
    TransactionType,
)
from periods import (
    Period,
    month_key_for,
    month_period,
    months_between,
    parse_month_key,
    summary_periods,
)
from recurrence import first_occurrence_on_or_after, monthly_equivalent_cents
from schemas import (
    CategoryIn,
    CategoryPatch,
    SavingsIn,
    TransactionIn,
    TransactionPatch,
    amount_to_cents,
)

logger = logging.getLogger(__name__)

DEFAULT_CATEGORIES: tuple[tuple[str, str, TransactionType, str], ...] = (
    ("Bills", "#3b82f6", TransactionType.expense, "💸"),
    ("Food", "#10b981", TransactionType.expense, "🍽️"),
    ("Transportation", "#8b5cf6", TransactionType.expense, "🚗"),
    ("Entertainment", "#f59e0b", TransactionType.expense, "🎬"),
    ("Shopping", "#ec4899", TransactionType.expense, "🛍️"),
    ("Health", "#ef4444", TransactionType.expense, "⚕️"),
    ("Travel", "#6366f1", TransactionType.expense, "✈️"),
    ("Beauty", "#d946ef", TransactionType.expense, "💅"),
    ("Courses", "#f97316", TransactionType.expense, "📚"),
    ("Subscription", "#14b8a6", TransactionType.expense, "🔄"),
    ("Other", "#64748b", TransactionType.expense, "📦"),
    ("Income", "#22c55e", TransactionType.income, "💰"),
    ("Gift", "#eab308", TransactionType.income, "🎁"),
)


def _type_for(is_expense: bool) -> TransactionType:
    return TransactionType.expense if is_expense else TransactionType.income


def _clean_name(value: str, what: str) -> str:
    clean = value.strip()
    if not clean:
        raise ValidationError(f"{what} cannot be empty")
    return clean


def validate_person_label(label: str) -> str:
    labels = get_settings().person_labels
    if label not in labels:
        raise ValidationError(
            f"Unknown person label {label!r}, expected one of {', '.join(labels)}"
        )
    return label


class CategoryService:
    def __init__(self, session: Session) -> None:
        self.session = session

    def list_all(self) -> list[Category]:
        stmt = select(Category).order_by(Category.type, Category.name)
        return list(self.session.scalars(stmt).all())

    def get(self, category_id: int) -> Category:
        category = self.session.get(Category, category_id)
        if not category:
            raise NotFoundError(f"Category {category_id} not found")
        return category

    def _ensure_unique_name(
        self, name: str, type_: TransactionType, exclude_id: Optional[int] = None
    ) -> None:
        stmt = select(Category.id).where(
            Category.type == type_,
            func.lower(Category.name) == name.lower(),
        )
        if exclude_id is not None:
            stmt = stmt.where(Category.id != exclude_id)
        if self.session.scalar(stmt) is not None:
            raise InvalidStateError(f"Category {name!r} already exists")

    def create(self, data: CategoryIn) -> Category:
        name = _clean_name(data.name, "Category name")
        type_ = _type_for(data.is_expense)
        self._ensure_unique_name(name, type_)
        category = Category(
            name=name,
            color=data.color.lower(),
            type=type_,
            emoji=data.emoji or None,
        )
        self.session.add(category)
        self.session.commit()
        self.session.refresh(category)
        logger.info(f"category_created: id={category.id} type={type_.value}")
        return category

    def update(self, category_id: int, data: CategoryPatch) -> Category:
        category = self.get(category_id)
        fields = data.model_fields_set

        type_ = category.type
        if "is_expense" in fields and data.is_expense is not None:
            type_ = _type_for(data.is_expense)
            if type_ != category.type:
                in_use = self.session.scalar(
                    select(func.count(Transaction.id)).where(
                        Transaction.category_id == category.id
                    )
                )
                if in_use:
                    raise InvalidStateError(
                        "Cannot change the type of a category used by transactions"
                    )
        name = category.name
        if "name" in fields and data.name is not None:
            name = _clean_name(data.name, "Category name")
        if name != category.name or type_ != category.type:
            self._ensure_unique_name(name, type_, exclude_id=category.id)

        category.name = name
        category.type = type_
        if "color" in fields and data.color is not None:
            category.color = data.color.lower()
        if "emoji" in fields:
            category.emoji = data.emoji or None
        self.session.commit()
        self.session.refresh(category)
        return category

    def delete(self, category_id: int) -> None:
        category = self.get(category_id)
        self.session.execute(
            update(Transaction)
            .where(Transaction.category_id == category.id)
            .values(category_id=None)
        )
        self.session.delete(category)
        self.session.commit()
        logger.info(f"category_deleted: id={category_id}")

    def seed_defaults(self) -> int:
        existing = self.session.scalar(select(func.count(Category.id))) or 0
        if existing:
            return 0
        for name, color, type_, emoji in DEFAULT_CATEGORIES:
            self.session.add(Category(name=name, color=color, type=type_, emoji=emoji))
        self.session.flush()
        logger.info(f"categories_seeded: count={len(DEFAULT_CATEGORIES)}")
        return len(DEFAULT_CATEGORIES)


class TransactionService:
    def __init__(self, session: Session) -> None:
        self.session = session

    def list_all(self) -> list[Transaction]:
        stmt = (
            select(Transaction)
            .options(joinedload(Transaction.category))
            .order_by(Transaction.date, Transaction.id)
        )
        return list(self.session.scalars(stmt).all())

    def get(self, transaction_id: int) -> Transaction:
        stmt = (
            select(Transaction)
            .options(joinedload(Transaction.category))
            .where(Transaction.id == transaction_id)
        )
        txn = self.session.scalar(stmt)
        if not txn:
            raise NotFoundError(f"Transaction {transaction_id} not found")
        return txn

    def _check_category(
        self, category_id: Optional[int], type_: TransactionType
    ) -> None:
        if category_id is None:
            return
        category = self.session.get(Category, category_id)
        if not category:
            raise NotFoundError(f"Category {category_id} not found")
        if category.type != type_:
            raise InvalidStateError(
                f"Category {category.name!r} is an {category.type.value} category "
                f"and cannot be used for an {type_.value} transaction"
            )

    @staticmethod
    def _check_recurrence(
        txn_date: date,
        is_recurring: bool,
        interval: Optional[RecurringInterval],
        end_date: Optional[date],
    ) -> tuple[Optional[RecurringInterval], Optional[date]]:
        if not is_recurring:
            return None, None
        if interval is None:
            raise InvalidStateError("Recurring transactions need a recurring interval")
        if end_date is not None and end_date < txn_date:
            raise ValidationError("Recurring end date must not be before the date")
        return interval, end_date

    def create(self, data: TransactionIn) -> Transaction:
        title = _clean_name(data.title, "Title")
        type_ = _type_for(data.is_expense)
        validate_person_label(data.person_label)
        self._check_category(data.category_id, type_)
        interval, end_date = self._check_recurrence(
            data.date,
            data.is_recurring,
            data.recurring_interval,
            data.recurring_end_date,
        )
        txn = Transaction(
            title=title,
            amount_cents=data.amount_cents,
            date=data.date,
            type=type_,
            category_id=data.category_id,
            person_label=data.person_label,
            is_recurring=data.is_recurring,
            recurring_interval=interval,
            recurring_end_date=end_date,
            is_paid=data.is_paid,
            notes=data.notes,
        )
        self.session.add(txn)
        self.session.commit()
        self.session.refresh(txn)
        logger.info(
            f"transaction_created: id={txn.id} type={type_.value} "
            f"recurring={txn.is_recurring}"
        )
        return txn

    def update(self, transaction_id: int, data: TransactionPatch) -> Transaction:
        txn = self.get(transaction_id)
        fields = data.model_fields_set

        def pick(name: str, current):
            value = getattr(data, name)
            return value if name in fields and value is not None else current

        title = _clean_name(pick("title", txn.title), "Title")
        amount_cents = (
            amount_to_cents(data.amount)
            if "amount" in fields and data.amount is not None
            else txn.amount_cents
        )
        txn_date = pick("date", txn.date)
        type_ = (
            _type_for(data.is_expense)
            if "is_expense" in fields and data.is_expense is not None
            else txn.type
        )
        category_id = data.category_id if "category_id" in fields else txn.category_id
        person_label = txn.person_label
        if "person_label" in fields and data.person_label is not None:
            person_label = validate_person_label(data.person_label)
        is_recurring = pick("is_recurring", txn.is_recurring)
        interval = pick("recurring_interval", txn.recurring_interval)
        end_date = (
            data.recurring_end_date
            if "recurring_end_date" in fields
            else txn.recurring_end_date
        )

        self._check_category(category_id, type_)
        interval, end_date = self._check_recurrence(
            txn_date, is_recurring, interval, end_date
        )

        txn.title = title
        txn.amount_cents = amount_cents
        txn.date = txn_date
        txn.type = type_
        txn.category_id = category_id
        txn.person_label = person_label
        txn.is_recurring = is_recurring
        txn.recurring_interval = interval
        txn.recurring_end_date = end_date
        txn.is_paid = pick("is_paid", txn.is_paid)
        if "notes" in fields:
            txn.notes = data.notes
        self.session.commit()
        self.session.refresh(txn)
        logger.info(f"transaction_updated: id={txn.id} fields={sorted(fields)}")
        return txn

    def delete(self, transaction_id: int) -> None:
        txn = self.get(transaction_id)
        removed = self.session.execute(
            delete(MonthOverride).where(MonthOverride.transaction_id == txn.id)
        ).rowcount
        self.session.delete(txn)
        self.session.commit()
        logger.info(
            f"transaction_deleted: id={transaction_id} overrides_removed={removed}"
        )


_UNSET = object()


class OverrideService:
    """Per (transaction, month) skip, hide and paid overrides."""

    def __init__(self, session: Session) -> None:
        self.session = session

    def _require_transaction(self, transaction_id: int) -> None:
        if self.session.get(Transaction, transaction_id) is None:
            raise NotFoundError(f"Transaction {transaction_id} not found")

    def _row(self, transaction_id: int, month_key: str) -> Optional[MonthOverride]:
        return self.session.scalar(
            select(MonthOverride).where(
                MonthOverride.transaction_id == transaction_id,
                MonthOverride.month_key == month_key,
            )
        )

    @staticmethod
    def _as_dict(row: Optional[MonthOverride]) -> dict[str, object]:
        if row is None:
            return {"skipped": False, "paid": None, "deleted": False}
        return {
            "skipped": row.status == MonthStatus.skipped,
            "paid": row.paid_override,
            "deleted": row.status == MonthStatus.hidden,
        }

    def get_override(self, transaction_id: int, month_key: str) -> dict[str, object]:
        parse_month_key(month_key)
        self._require_transaction(transaction_id)
        return self._as_dict(self._row(transaction_id, month_key))

    def set_override(
        self,
        transaction_id: int,
        month_key: str,
        *,
        skipped: Optional[bool] = None,
        paid=_UNSET,
        deleted: Optional[bool] = None,
    ) -> dict[str, object]:
        """Apply the given flags; flags left out keep their stored value.

        ``deleted`` hides the occurrence and takes precedence over
        ``skipped``. ``paid=None`` removes the paid override.
        """
        parse_month_key(month_key)
        self._require_transaction(transaction_id)
        # A concurrent insert of the same key surfaces as IntegrityError on
        # commit; the second pass then finds the row and updates it.
        for attempt in range(2):
            try:
                row = self._apply(transaction_id, month_key, skipped, paid, deleted)
                self.session.commit()
                break
            except IntegrityError:
                self.session.rollback()
                if attempt:
                    raise
        logger.info(
            f"override_set: transaction_id={transaction_id} month={month_key} "
            f"status={row.status.value if row else MonthStatus.active.value} "
            f"paid={row.paid_override if row else None}"
        )
        return self._as_dict(row)

    def _apply(
        self,
        transaction_id: int,
        month_key: str,
        skipped: Optional[bool],
        paid,
        deleted: Optional[bool],
    ) -> Optional[MonthOverride]:
        row = self._row(transaction_id, month_key)
        status = row.status if row else MonthStatus.active
        paid_override = row.paid_override if row else None

        if deleted is True:
            status = MonthStatus.hidden
        elif deleted is False and status == MonthStatus.hidden:
            status = MonthStatus.active
        if skipped is True and status != MonthStatus.hidden:
            status = MonthStatus.skipped
        elif skipped is False and status == MonthStatus.skipped:
            status = MonthStatus.active
        if paid is not _UNSET:
            paid_override = paid

        if status == MonthStatus.active and paid_override is None:
            if row is not None:
                self.session.delete(row)
            return None
        if row is None:
            row = MonthOverride(transaction_id=transaction_id, month_key=month_key)
            self.session.add(row)
        row.status = status
        row.paid_override = paid_override
        self.session.flush()
        return row

    def clear_override(self, transaction_id: int, month_key: str) -> None:
        parse_month_key(month_key)
        self._require_transaction(transaction_id)
        self.session.execute(
            delete(MonthOverride).where(
                MonthOverride.transaction_id == transaction_id,
                MonthOverride.month_key == month_key,
            )
        )
        self.session.commit()
        logger.info(
            f"override_cleared: transaction_id={transaction_id} month={month_key}"
        )

    def list_overridden_months(self, transaction_id: int) -> set[str]:
        self._require_transaction(transaction_id)
        stmt = select(MonthOverride.month_key).where(
            MonthOverride.transaction_id == transaction_id
        )
        return set(self.session.scalars(stmt).all())

    def overrides_for_month(self, month_key: str) -> dict[int, OverrideState]:
        stmt = select(MonthOverride).where(MonthOverride.month_key == month_key)
        return {
            row.transaction_id: OverrideState(row.status, row.paid_override)
            for row in self.session.scalars(stmt).all()
        }

    def skip(self, transaction_id: int, month_key: str) -> dict[str, object]:
        return self.set_override(transaction_id, month_key, skipped=True)

    def unskip(self, transaction_id: int, month_key: str) -> dict[str, object]:
        return self.set_override(transaction_id, month_key, skipped=False)

    def hide(self, transaction_id: int, month_key: str) -> dict[str, object]:
        return self.set_override(transaction_id, month_key, deleted=True)

    def unhide(self, transaction_id: int, month_key: str) -> dict[str, object]:
        return self.set_override(transaction_id, month_key, deleted=False)

    def set_paid(
        self, transaction_id: int, month_key: str, is_paid: Optional[bool]
    ) -> dict[str, object]:
        return self.set_override(transaction_id, month_key, paid=is_paid)


class SavingsService:
    def __init__(self, session: Session) -> None:
        self.session = session

    def list_all(self) -> list[Savings]:
        stmt = select(Savings).order_by(Savings.date.desc(), Savings.id.desc())
        return list(self.session.scalars(stmt).all())

    def create(self, data: SavingsIn) -> Savings:
        validate_person_label(data.person_label)
        entry = Savings(
            amount_cents=data.amount_cents,
            date=data.date,
            notes=data.notes,
            person_label=data.person_label,
        )
        self.session.add(entry)
        self.session.commit()
        self.session.refresh(entry)
        logger.info(f"savings_created: id={entry.id} amount_cents={entry.amount_cents}")
        return entry

    def delete(self, savings_id: int) -> None:
        entry = self.session.get(Savings, savings_id)
        if not entry:
            raise NotFoundError(f"Savings entry {savings_id} not found")
        self.session.delete(entry)
        self.session.commit()

    def total_cents(self, period: Optional[Period] = None) -> int:
        stmt = select(func.coalesce(func.sum(Savings.amount_cents), 0))
        if period is not None:
            stmt = stmt.where(Savings.date.between(period.start, period.end))
        return int(self.session.execute(stmt).scalar_one() or 0)


class BudgetService:
    """Month resolution and the read models built on it.

    Resolutions are memoized per instance and dropped as soon as any
    transaction or override changes.
    """

    def __init__(self, session: Session) -> None:
        self.session = session
        self._resolution_cache: dict[str, MonthResolution] = {}
        self._transactions: Optional[list[Transaction]] = None
        self._revision: Optional[tuple] = None

    def _current_revision(self) -> tuple:
        txn_row = self.session.execute(
            select(
                func.count(Transaction.id),
                func.max(Transaction.id),
                func.max(Transaction.updated_at),
            )
        ).one()
        override_row = self.session.execute(
            select(
                func.count(MonthOverride.id),
                func.max(MonthOverride.id),
                func.max(MonthOverride.updated_at),
            )
        ).one()
        return tuple(txn_row) + tuple(override_row)

    def invalidate(self) -> None:
        self._resolution_cache.clear()
        self._transactions = None
        self._revision = None

    def _sync(self) -> None:
        revision = self._current_revision()
        if revision != self._revision:
            self.invalidate()
            self._revision = revision

    def _all_transactions(self) -> list[Transaction]:
        if self._transactions is None:
            self._transactions = list(
                self.session.scalars(select(Transaction).order_by(Transaction.id))
            )
        return self._transactions

    def resolve(self, month) -> MonthResolution:
        period = month_period(month.start if isinstance(month, Period) else month)
        self._sync()
        key = month_key_for(period.start)
        cached = self._resolution_cache.get(key)
        if cached is not None:
            return cached
        overrides = OverrideService(self.session).overrides_for_month(key)
        resolution = resolve_month(self._all_transactions(), period, overrides)
        self._resolution_cache[key] = resolution
        return resolution

    def month_totals(self, month) -> Totals:
        return aggregate(self.resolve(month).active)

    def totals_for_period(self, window: Period) -> Totals:
        resolutions = [
            self.resolve(month) for month in months_between(window.start, window.end)
        ]
        return aggregate_window(resolutions, window)

    def period_summary(self, today: date) -> dict[str, dict[str, object]]:
        week_start = get_settings().week_start
        summary: dict[str, dict[str, object]] = {}
        for slug, window in summary_periods(today, week_start=week_start).items():
            totals = self.totals_for_period(window)
            summary[slug] = {
                "start": window.start,
                "end": window.end,
                **totals.as_dict(),
            }
        return summary

    def category_breakdown(
        self, month, transaction_type: TransactionType = TransactionType.expense
    ) -> list[dict[str, object]]:
        resolution = self.resolve(month)
        sums: dict[Optional[int], int] = {}
        for occurrence in resolution.active:
            if occurrence.type != transaction_type:
                continue
            sums[occurrence.category_id] = (
                sums.get(occurrence.category_id, 0) + occurrence.amount_cents
            )
        total = sum(sums.values())
        categories = {c.id: c for c in CategoryService(self.session).list_all()}

        breakdown = []
        for category_id, amount in sums.items():
            category = categories.get(category_id)
            breakdown.append(
                {
                    "category_id": category_id,
                    "name": category.name if category else "Uncategorized",
                    "color": category.color if category else None,
                    "emoji": category.emoji if category else None,
                    "amount_cents": amount,
                    "percent": round(amount / total * 100, 2) if total else 0,
                }
            )
        breakdown.sort(key=lambda row: (-row["amount_cents"], row["name"]))
        return breakdown

    def upcoming_expenses(self, today: date) -> dict[str, object]:
        resolution = self.resolve(today)
        soon = today + timedelta(days=3)
        items = []
        total = 0
        for occurrence in resolution.active:
            if not occurrence.is_expense or occurrence.date < today:
                continue
            total += occurrence.amount_cents
            items.append(
                {
                    "occurrence": occurrence,
                    "due_today": occurrence.date == today,
                    "due_soon": today < occurrence.date < soon,
                }
            )
        return {"items": items, "total_cents": total}

    def recurring_summary(
        self, today: date, category_id: Optional[int] = None
    ) -> dict[str, object]:
        stmt = (
            select(Transaction)
            .options(joinedload(Transaction.category))
            .where(
                Transaction.is_recurring.is_(True),
                Transaction.type == TransactionType.expense,
            )
        )
        if category_id is not None:
            CategoryService(self.session).get(category_id)
            stmt = stmt.where(Transaction.category_id == category_id)

        items = []
        for txn in self.session.scalars(stmt).all():
            next_date = first_occurrence_on_or_after(txn, today)
            if next_date is None:
                continue
            items.append(
                {
                    "transaction": txn,
                    "next_payment_date": next_date,
                    "monthly_cents": monthly_equivalent_cents(
                        txn.amount_cents, txn.recurring_interval
                    ),
                }
            )
        items.sort(key=lambda row: (row["next_payment_date"], row["transaction"].id))
        return {
            "items": items,
            "monthly_total_cents": sum(row["monthly_cents"] for row in items),
        }

    def savings_summary(self, month) -> dict[str, object]:
        period = month_period(month.start if isinstance(month, Period) else month)
        savings = SavingsService(self.session)
        return {
            "month": month_key_for(period.start),
            "total_saved_cents": savings.total_cents(),
            "month_saved_cents": savings.total_cents(period),
            "budget_left_cents": self.month_totals(period).balance_cents,
        }
