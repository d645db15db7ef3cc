from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import date
from typing import Optional

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from csv_utils import export_expenses
from models import Expense
from schemas import ExpenseIn, QuickExpenseIn

logger = logging.getLogger(__name__)

SAMPLE_EXPENSES = (
    ("Groceries", 24.50, "Food", date(2025, 7, 10)),
    ("Bus ticket", 2.75, "Transport", date(2025, 7, 11)),
    ("Electricity bill", 60.00, "Utilities", date(2025, 7, 5)),
    ("Cinema", 12.00, "Entertainment", date(2025, 8, 1)),
    ("Lunch", 10.25, "Food", date(2025, 8, 3)),
)


def _month_start(year: int, month: int) -> date:
    return date(year, month, 1)


def _month_end(year: int, month: int) -> date:
    if month == 12:
        return date(year + 1, 1, 1) - date.resolution
    return date(year, month + 1, 1) - date.resolution


def month_key(day: date) -> str:
    return f"{day.year:04d}-{day.month:02d}"


def month_bounds(month: str) -> tuple[date, date]:
    """Return the first and last day of a ``YYYY-MM`` month key."""
    try:
        year_raw, month_raw = month.split("-")
        year, month_num = int(year_raw), int(month_raw)
        return _month_start(year, month_num), _month_end(year, month_num)
    except ValueError as exc:
        raise ValueError(f"Invalid month key: {month!r}") from exc


class ExpenseNotFound(ValueError):
    pass


@dataclass
class ExpenseFilters:
    category: Optional[str] = None
    start: Optional[date] = None
    end: Optional[date] = None


class ExpenseService:
    def __init__(self, session: Session) -> None:
        self.session = session

    def has_any(self) -> bool:
        stmt = select(func.count(Expense.id))
        return (self.session.execute(stmt).scalar_one() or 0) > 0

    def list(self, filters: Optional[ExpenseFilters] = None) -> list[Expense]:
        filters = filters or ExpenseFilters()
        stmt = select(Expense).order_by(Expense.date.desc(), Expense.id.desc())
        if filters.category:
            stmt = stmt.where(Expense.category == filters.category)
        if filters.start:
            stmt = stmt.where(Expense.date >= filters.start)
        if filters.end:
            stmt = stmt.where(Expense.date <= filters.end)
        return list(self.session.scalars(stmt).all())

    def get(self, expense_id: int) -> Expense:
        expense = self.session.get(Expense, expense_id)
        if not expense:
            raise ExpenseNotFound("Expense not found")
        return expense

    def create(self, data: ExpenseIn) -> Expense:
        expense = Expense(
            description=data.description,
            amount=data.amount,
            category=data.category,
            date=data.date,
        )
        self.session.add(expense)
        self.session.commit()
        self.session.refresh(expense)
        return expense

    def update(self, expense_id: int, data: ExpenseIn) -> Expense:
        expense = self.get(expense_id)
        expense.description = data.description
        expense.amount = data.amount
        expense.category = data.category
        expense.date = data.date
        self.session.commit()
        self.session.refresh(expense)
        return expense

    def delete(self, expense_id: int) -> None:
        expense = self.get(expense_id)
        self.session.delete(expense)
        self.session.commit()

    def quick_add(self, data: QuickExpenseIn, today: date) -> Expense:
        expense = Expense(
            description=data.description or f"Expense for {data.category}",
            amount=data.amount,
            category=data.category,
            date=today,
        )
        self.session.add(expense)
        self.session.commit()
        self.session.refresh(expense)
        return expense


class MetricsService:
    """Read-only spending aggregates over a calendar month."""

    def __init__(self, session: Session) -> None:
        self.session = session

    def monthly_totals_by_category(self, month: str) -> dict[str, float]:
        start, end = month_bounds(month)
        stmt = (
            select(Expense.category, func.sum(Expense.amount).label("total"))
            .where(Expense.date.between(start, end))
            .group_by(Expense.category)
            .order_by(Expense.category.asc())
        )
        rows = self.session.execute(stmt).all()
        return {row.category: float(row.total or 0) for row in rows}

    def monthly_total(self, month: str) -> float:
        start, end = month_bounds(month)
        total = self.session.execute(
            select(func.coalesce(func.sum(Expense.amount), 0.0)).where(
                Expense.date.between(start, end)
            )
        ).scalar_one()
        return float(total or 0)

    def category_breakdown(self, month: str) -> list[tuple[str, float]]:
        """
        Category totals for the month, largest first. Equal totals keep
        ascending category name order.
        """
        start, end = month_bounds(month)
        total = func.sum(Expense.amount).label("total")
        stmt = (
            select(Expense.category, total)
            .where(Expense.date.between(start, end))
            .group_by(Expense.category)
            .order_by(total.desc(), Expense.category.asc())
        )
        rows = self.session.execute(stmt).all()
        return [(row.category, float(row.total or 0)) for row in rows]


class CSVService:
    def __init__(self, session: Session) -> None:
        self.session = session

    def export(self, expenses: Optional[list[Expense]] = None) -> str:
        if expenses is None:
            expenses = ExpenseService(self.session).list()
        return export_expenses(expenses)


def seed_sample_expenses(session: Session) -> int:
    if ExpenseService(session).has_any():
        return 0
    session.add_all(
        Expense(description=description, amount=amount, category=category, date=day)
        for description, amount, category, day in SAMPLE_EXPENSES
    )
    session.commit()
    logger.info(f"seed_samples: inserted={len(SAMPLE_EXPENSES)}")
    return len(SAMPLE_EXPENSES)
