import logging
from datetime import date
from typing import Optional

from fastapi import Depends, FastAPI, HTTPException, Query, Response
from sqlalchemy.orm import Session

from config import get_settings
from database import SessionLocal, session_scope
from errors import InvalidStateError, NotFoundError, PlannerError, ValidationError
from models import Category, Savings, Transaction, TransactionType
from periods import month_period, parse_day
from recurrence import Occurrence, local_today
from schemas import (
    CategoryIn,
    CategoryPatch,
    PaidStatusIn,
    SavingsIn,
    TransactionIn,
    TransactionPatch,
)
from services import (
    BudgetService,
    CategoryService,
    OverrideService,
    SavingsService,
    TransactionService,
)

logging.basicConfig(level=get_settings().log_level)
logger = logging.getLogger(__name__)

app = FastAPI(title="Expense Planner")


def get_db():
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


_STATUS_BY_ERROR = (
    (NotFoundError, 404),
    (InvalidStateError, 409),
    (ValidationError, 422),
)


def http_error(exc: PlannerError) -> HTTPException:
    status_code = next(
        (code for cls, code in _STATUS_BY_ERROR if isinstance(exc, cls)), 400
    )
    return HTTPException(
        status_code=status_code, detail={"error": exc.kind, "message": str(exc)}
    )


@app.on_event("startup")
def startup_event():
    with session_scope() as session:
        CategoryService(session).seed_defaults()


def format_amount(cents: int) -> str:
    sign = "-" if cents < 0 else ""
    cents = abs(cents)
    return f"{sign}{cents // 100}.{cents % 100:02d}"


def category_payload(category: Optional[Category]) -> Optional[dict[str, object]]:
    if category is None:
        return None
    return {
        "id": category.id,
        "name": category.name,
        "color": category.color,
        "is_expense": category.is_expense,
        "emoji": category.emoji,
    }


def transaction_payload(txn: Transaction) -> dict[str, object]:
    return {
        "id": txn.id,
        "title": txn.title,
        "amount": format_amount(txn.amount_cents),
        "amount_cents": txn.amount_cents,
        "date": txn.date.isoformat(),
        "is_expense": txn.is_expense,
        "category_id": txn.category_id,
        "category": category_payload(txn.category),
        "person_label": txn.person_label,
        "is_recurring": txn.is_recurring,
        "recurring_interval": (
            txn.recurring_interval.value if txn.recurring_interval else None
        ),
        "recurring_end_date": (
            txn.recurring_end_date.isoformat() if txn.recurring_end_date else None
        ),
        "is_paid": txn.is_paid,
        "notes": txn.notes,
    }


def occurrence_payload(
    occurrence: Occurrence, categories: dict[int, Category]
) -> dict[str, object]:
    return {
        "transaction_id": occurrence.transaction_id,
        "date": occurrence.date.isoformat(),
        "is_instance": occurrence.is_instance,
        "title": occurrence.title,
        "amount": format_amount(occurrence.amount_cents),
        "amount_cents": occurrence.amount_cents,
        "is_expense": occurrence.is_expense,
        "category_id": occurrence.category_id,
        "category": category_payload(categories.get(occurrence.category_id)),
        "person_label": occurrence.person_label,
        "is_recurring": occurrence.is_recurring,
        "recurring_interval": (
            occurrence.recurring_interval.value
            if occurrence.recurring_interval
            else None
        ),
        "is_paid": occurrence.is_paid,
        "notes": occurrence.notes,
    }


def savings_payload(entry: Savings) -> dict[str, object]:
    return {
        "id": entry.id,
        "amount": format_amount(entry.amount_cents),
        "amount_cents": entry.amount_cents,
        "date": entry.date.isoformat(),
        "notes": entry.notes,
        "person_label": entry.person_label,
    }


def _categories_by_id(db: Session) -> dict[int, Category]:
    return {c.id: c for c in CategoryService(db).list_all()}


def _today(on: Optional[str]) -> date:
    try:
        return parse_day(on) or local_today()
    except PlannerError as exc:
        raise http_error(exc) from exc


@app.get("/health")
def health():
    return {"status": "ok"}


# Transactions


@app.get("/transactions")
def list_transactions(db: Session = Depends(get_db)):
    return [transaction_payload(txn) for txn in TransactionService(db).list_all()]


@app.post("/transactions", status_code=201)
def create_transaction(data: TransactionIn, db: Session = Depends(get_db)):
    service = TransactionService(db)
    try:
        txn = service.create(data)
    except PlannerError as exc:
        raise http_error(exc) from exc
    return transaction_payload(service.get(txn.id))


@app.get("/transactions/month/{month}")
def month_view(month: str, db: Session = Depends(get_db)):
    budget = BudgetService(db)
    try:
        resolution = budget.resolve(month)
    except PlannerError as exc:
        raise http_error(exc) from exc
    categories = _categories_by_id(db)
    totals = budget.month_totals(resolution.month)
    return {
        "month": resolution.month.slug,
        "start": resolution.month.start.isoformat(),
        "end": resolution.month.end.isoformat(),
        "active": [occurrence_payload(o, categories) for o in resolution.active],
        "skipped": [occurrence_payload(o, categories) for o in resolution.skipped],
        "skipped_count": resolution.skipped_count,
        "totals": totals.as_dict(),
    }


@app.get("/transactions/upcoming")
def upcoming_expenses(on: Optional[str] = None, db: Session = Depends(get_db)):
    today = _today(on)
    upcoming = BudgetService(db).upcoming_expenses(today)
    categories = _categories_by_id(db)
    return {
        "today": today.isoformat(),
        "items": [
            {
                **occurrence_payload(item["occurrence"], categories),
                "due_today": item["due_today"],
                "due_soon": item["due_soon"],
            }
            for item in upcoming["items"]
        ],
        "total_cents": upcoming["total_cents"],
    }


@app.get("/transactions/recurring")
def recurring_summary(
    category_id: Optional[int] = None,
    on: Optional[str] = None,
    db: Session = Depends(get_db),
):
    today = _today(on)
    try:
        summary = BudgetService(db).recurring_summary(today, category_id)
    except PlannerError as exc:
        raise http_error(exc) from exc
    return {
        "items": [
            {
                **transaction_payload(item["transaction"]),
                "next_payment_date": item["next_payment_date"].isoformat(),
                "monthly_cents": item["monthly_cents"],
            }
            for item in summary["items"]
        ],
        "monthly_total_cents": summary["monthly_total_cents"],
    }


@app.get("/transactions/{transaction_id}")
def get_transaction(transaction_id: int, db: Session = Depends(get_db)):
    try:
        return transaction_payload(TransactionService(db).get(transaction_id))
    except PlannerError as exc:
        raise http_error(exc) from exc


@app.patch("/transactions/{transaction_id}")
def update_transaction(
    transaction_id: int, data: TransactionPatch, db: Session = Depends(get_db)
):
    try:
        txn = TransactionService(db).update(transaction_id, data)
    except PlannerError as exc:
        raise http_error(exc) from exc
    return transaction_payload(txn)


@app.delete("/transactions/{transaction_id}", status_code=204)
def delete_transaction(transaction_id: int, db: Session = Depends(get_db)):
    try:
        TransactionService(db).delete(transaction_id)
    except PlannerError as exc:
        raise http_error(exc) from exc
    return Response(status_code=204)


# Month overrides


@app.post("/transactions/{transaction_id}/skip")
def skip_transaction(
    transaction_id: int, month: str = Query(...), db: Session = Depends(get_db)
):
    try:
        return OverrideService(db).skip(transaction_id, month)
    except PlannerError as exc:
        raise http_error(exc) from exc


@app.post("/transactions/{transaction_id}/unskip")
def unskip_transaction(
    transaction_id: int, month: str = Query(...), db: Session = Depends(get_db)
):
    try:
        return OverrideService(db).unskip(transaction_id, month)
    except PlannerError as exc:
        raise http_error(exc) from exc


@app.post("/transactions/{transaction_id}/hide")
def hide_transaction(
    transaction_id: int, month: str = Query(...), db: Session = Depends(get_db)
):
    try:
        return OverrideService(db).hide(transaction_id, month)
    except PlannerError as exc:
        raise http_error(exc) from exc


@app.post("/transactions/{transaction_id}/unhide")
def unhide_transaction(
    transaction_id: int, month: str = Query(...), db: Session = Depends(get_db)
):
    try:
        return OverrideService(db).unhide(transaction_id, month)
    except PlannerError as exc:
        raise http_error(exc) from exc


@app.patch("/transactions/{transaction_id}/paid")
def set_paid_status(
    transaction_id: int,
    data: PaidStatusIn,
    month: str = Query(...),
    db: Session = Depends(get_db),
):
    try:
        return OverrideService(db).set_paid(transaction_id, month, data.is_paid)
    except PlannerError as exc:
        raise http_error(exc) from exc


@app.get("/transactions/{transaction_id}/overrides")
def list_overrides(transaction_id: int, db: Session = Depends(get_db)):
    service = OverrideService(db)
    try:
        months = sorted(service.list_overridden_months(transaction_id))
        return {
            "transaction_id": transaction_id,
            "months": [
                {"month": key, **service.get_override(transaction_id, key)}
                for key in months
            ],
        }
    except PlannerError as exc:
        raise http_error(exc) from exc


@app.get("/transactions/{transaction_id}/overrides/{month}")
def get_override(transaction_id: int, month: str, db: Session = Depends(get_db)):
    try:
        state = OverrideService(db).get_override(transaction_id, month)
    except PlannerError as exc:
        raise http_error(exc) from exc
    return {"transaction_id": transaction_id, "month": month, **state}


@app.delete("/transactions/{transaction_id}/overrides/{month}", status_code=204)
def clear_override(transaction_id: int, month: str, db: Session = Depends(get_db)):
    try:
        OverrideService(db).clear_override(transaction_id, month)
    except PlannerError as exc:
        raise http_error(exc) from exc
    return Response(status_code=204)


# Categories


@app.get("/categories")
def list_categories(db: Session = Depends(get_db)):
    return [category_payload(c) for c in CategoryService(db).list_all()]


@app.post("/categories", status_code=201)
def create_category(data: CategoryIn, db: Session = Depends(get_db)):
    try:
        return category_payload(CategoryService(db).create(data))
    except PlannerError as exc:
        raise http_error(exc) from exc


@app.get("/categories/{category_id}")
def get_category(category_id: int, db: Session = Depends(get_db)):
    try:
        return category_payload(CategoryService(db).get(category_id))
    except PlannerError as exc:
        raise http_error(exc) from exc


@app.patch("/categories/{category_id}")
def update_category(
    category_id: int, data: CategoryPatch, db: Session = Depends(get_db)
):
    try:
        return category_payload(CategoryService(db).update(category_id, data))
    except PlannerError as exc:
        raise http_error(exc) from exc


@app.delete("/categories/{category_id}", status_code=204)
def delete_category(category_id: int, db: Session = Depends(get_db)):
    try:
        CategoryService(db).delete(category_id)
    except PlannerError as exc:
        raise http_error(exc) from exc
    return Response(status_code=204)


# Savings


@app.get("/savings")
def list_savings(db: Session = Depends(get_db)):
    return [savings_payload(entry) for entry in SavingsService(db).list_all()]


@app.post("/savings", status_code=201)
def create_savings(data: SavingsIn, db: Session = Depends(get_db)):
    try:
        return savings_payload(SavingsService(db).create(data))
    except PlannerError as exc:
        raise http_error(exc) from exc


@app.get("/savings/summary")
def savings_summary(month: Optional[str] = None, db: Session = Depends(get_db)):
    try:
        target = month_period(month) if month else month_period(local_today())
        return BudgetService(db).savings_summary(target)
    except PlannerError as exc:
        raise http_error(exc) from exc


@app.delete("/savings/{savings_id}", status_code=204)
def delete_savings(savings_id: int, db: Session = Depends(get_db)):
    try:
        SavingsService(db).delete(savings_id)
    except PlannerError as exc:
        raise http_error(exc) from exc
    return Response(status_code=204)


# Reports


@app.get("/summary")
def period_summary(on: Optional[str] = None, db: Session = Depends(get_db)):
    today = _today(on)
    summary = BudgetService(db).period_summary(today)
    return {
        "today": today.isoformat(),
        **{
            slug: {
                **values,
                "start": values["start"].isoformat(),
                "end": values["end"].isoformat(),
            }
            for slug, values in summary.items()
        },
    }


@app.get("/reports/categories/{month}")
def category_report(
    month: str,
    type_: TransactionType = Query(TransactionType.expense, alias="type"),
    db: Session = Depends(get_db),
):
    try:
        breakdown = BudgetService(db).category_breakdown(month, type_)
    except PlannerError as exc:
        raise http_error(exc) from exc
    return {"month": month, "type": type_.value, "categories": breakdown}


def main():
    import uvicorn

    uvicorn.run("main:app", host="0.0.0.0", port=8000, reload=False)


if __name__ == "__main__":
    main()
