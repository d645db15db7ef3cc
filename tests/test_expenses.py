from datetime import date

import pytest
from pydantic import ValidationError
from sqlalchemy import create_engine, select
from sqlalchemy.orm import Session

from database import Base
from models import Expense
from schemas import ExpenseIn, QuickExpenseIn, first_error_message
from services import (
    SAMPLE_EXPENSES,
    ExpenseFilters,
    ExpenseNotFound,
    ExpenseService,
    seed_sample_expenses,
)


def _expense(description: str, amount: float, category: str, day: str) -> ExpenseIn:
    return ExpenseIn(description=description, amount=amount, category=category, date=day)


def _validation_message(**payload) -> str:
    with pytest.raises(ValidationError) as exc_info:
        ExpenseIn.model_validate(payload)
    return first_error_message(exc_info.value)


def test_expense_input_is_trimmed_and_parsed() -> None:
    data = ExpenseIn.model_validate(
        {
            "description": "  Coffee beans ",
            "amount": "12.40",
            "category": " Food  ",
            "date": "2025-08-02",
        }
    )
    assert data.description == "Coffee beans"
    assert data.amount == 12.40
    assert data.category == "Food"
    assert data.date == date(2025, 8, 2)


def test_expense_input_validation_messages() -> None:
    valid = {
        "description": "Lunch",
        "amount": 10,
        "category": "Food",
        "date": "2025-08-03",
    }
    assert _validation_message(**{**valid, "description": "   "}) == "Description required"
    assert _validation_message(**{**valid, "amount": 0}) == "Amount must be a positive number"
    assert _validation_message(**{**valid, "amount": "-3"}) == "Amount must be a positive number"
    assert _validation_message(**{**valid, "amount": "ten"}) == "Amount must be a positive number"
    assert _validation_message(**{**valid, "category": ""}) == "Category required"
    assert _validation_message(**{**valid, "date": "03/08/2025"}) == "Date required (YYYY-MM-DD)"
    assert _validation_message(**{**valid, "date": "2025-02-30"}) == "Date required (YYYY-MM-DD)"

    missing = dict(valid)
    del missing["description"]
    assert _validation_message(**missing) == "Description required"


def test_quick_expense_requires_amount_and_category() -> None:
    with pytest.raises(ValidationError) as exc_info:
        QuickExpenseIn.model_validate({"category": "Food"})
    assert first_error_message(exc_info.value) == "Amount and category are required"

    with pytest.raises(ValidationError) as exc_info:
        QuickExpenseIn.model_validate({"amount": 5})
    assert first_error_message(exc_info.value) == "Amount and category are required"

    data = QuickExpenseIn.model_validate({"amount": "4.5", "category": "Food"})
    assert data.amount == 4.5
    assert data.description is None


def test_create_and_list_expenses_in_date_then_id_order() -> None:
    engine = create_engine("sqlite:///:memory:")
    Base.metadata.create_all(engine)

    with Session(engine) as session:
        service = ExpenseService(session)
        first = service.create(_expense("Groceries", 24.5, "Food", "2025-07-10"))
        second = service.create(_expense("Bus ticket", 2.75, "Transport", "2025-07-11"))
        third = service.create(_expense("Snack", 3.0, "Food", "2025-07-11"))

        listed = service.list()
        assert [e.id for e in listed] == [third.id, second.id, first.id]
        assert first.to_dict() == {
            "id": first.id,
            "description": "Groceries",
            "amount": 24.5,
            "category": "Food",
            "date": "2025-07-10",
        }


def test_list_filters_are_combined() -> None:
    engine = create_engine("sqlite:///:memory:")
    Base.metadata.create_all(engine)

    with Session(engine) as session:
        service = ExpenseService(session)
        service.create(_expense("Groceries", 24.5, "Food", "2025-07-10"))
        service.create(_expense("Lunch", 10.25, "Food", "2025-08-03"))
        service.create(_expense("Cinema", 12.0, "Entertainment", "2025-08-01"))

        food = service.list(ExpenseFilters(category="Food"))
        assert {e.description for e in food} == {"Groceries", "Lunch"}

        august_food = service.list(
            ExpenseFilters(category="Food", start=date(2025, 8, 1), end=date(2025, 8, 31))
        )
        assert [e.description for e in august_food] == ["Lunch"]

        july = service.list(ExpenseFilters(end=date(2025, 7, 31)))
        assert [e.description for e in july] == ["Groceries"]


def test_update_replaces_full_record() -> None:
    engine = create_engine("sqlite:///:memory:")
    Base.metadata.create_all(engine)

    with Session(engine) as session:
        service = ExpenseService(session)
        expense = service.create(_expense("Groceries", 24.5, "Food", "2025-07-10"))

        updated = service.update(
            expense.id, _expense("Weekly groceries", 30, "Groceries", "2025-07-12")
        )
        assert updated.id == expense.id
        assert updated.description == "Weekly groceries"
        assert updated.amount == 30
        assert updated.category == "Groceries"
        assert updated.date == date(2025, 7, 12)


def test_update_and_delete_missing_expense_raise_not_found() -> None:
    engine = create_engine("sqlite:///:memory:")
    Base.metadata.create_all(engine)

    with Session(engine) as session:
        service = ExpenseService(session)
        kept = service.create(_expense("Groceries", 24.5, "Food", "2025-07-10"))

        with pytest.raises(ExpenseNotFound):
            service.update(kept.id + 100, _expense("Other", 1, "Misc", "2025-07-10"))
        with pytest.raises(ExpenseNotFound):
            service.delete(kept.id + 100)

        assert service.get(kept.id).description == "Groceries"


def test_delete_removes_row() -> None:
    engine = create_engine("sqlite:///:memory:")
    Base.metadata.create_all(engine)

    with Session(engine) as session:
        service = ExpenseService(session)
        expense = service.create(_expense("Groceries", 24.5, "Food", "2025-07-10"))
        service.delete(expense.id)
        assert session.scalars(select(Expense)).all() == []


def test_quick_add_defaults_description() -> None:
    engine = create_engine("sqlite:///:memory:")
    Base.metadata.create_all(engine)

    with Session(engine) as session:
        service = ExpenseService(session)
        expense = service.quick_add(
            QuickExpenseIn(amount=8, category="Transport"), date(2025, 8, 15)
        )
        assert expense.description == "Expense for Transport"
        assert expense.date == date(2025, 8, 15)

        named = service.quick_add(
            QuickExpenseIn(amount=3.5, category="Food", description="Bagel"),
            date(2025, 8, 15),
        )
        assert named.description == "Bagel"


def test_seed_samples_only_when_empty() -> None:
    engine = create_engine("sqlite:///:memory:")
    Base.metadata.create_all(engine)

    with Session(engine) as session:
        assert seed_sample_expenses(session) == len(SAMPLE_EXPENSES)
        assert seed_sample_expenses(session) == 0
        assert len(ExpenseService(session).list()) == len(SAMPLE_EXPENSES)
