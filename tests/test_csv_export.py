import csv
from datetime import date
from io import StringIO

import pytest
from sqlalchemy import create_engine, select
from sqlalchemy.orm import Session

from csv_utils import export_expenses, format_amount, parse_amount
from database import Base
from models import Expense
from services import CSVService


def test_format_amount_drops_trailing_zero_fraction() -> None:
    assert format_amount(60.0) == "60"
    assert format_amount(24.5) == "24.5"
    assert format_amount(2.75) == "2.75"


def test_parse_amount_accepts_numbers_and_numeric_text() -> None:
    assert parse_amount(3) == 3.0
    assert parse_amount(" 12.50 ") == 12.5
    for bad in (None, True, "", "abc", "nan", "inf", -1, 0, "$5", "1 000", "1_000"):
        with pytest.raises(ValueError, match="Amount must be a positive number"):
            parse_amount(bad)


def test_export_quotes_only_fields_that_need_it() -> None:
    expenses = [
        Expense(
            id=1,
            description='Dinner, "fancy" place',
            amount=42.0,
            category="Food",
            date=date(2025, 8, 3),
        ),
        Expense(
            id=2,
            description="Bus ticket",
            amount=2.75,
            category="Transport",
            date=date(2025, 8, 1),
        ),
    ]
    text = export_expenses(expenses)
    lines = text.splitlines()
    assert lines[0] == "id,description,amount,category,date"
    assert lines[1] == '1,"Dinner, ""fancy"" place",42,Food,2025-08-03'
    assert lines[2] == "2,Bus ticket,2.75,Transport,2025-08-01"


def test_csv_export_round_trips_field_values() -> None:
    engine = create_engine("sqlite:///:memory:")
    Base.metadata.create_all(engine)

    with Session(engine) as session:
        session.add_all(
            [
                Expense(
                    description='Dinner, "fancy" place',
                    amount=42.5,
                    category="Food",
                    date=date(2025, 8, 3),
                ),
                Expense(
                    description="Two line\nnote",
                    amount=9.99,
                    category="Misc, other",
                    date=date(2025, 8, 2),
                ),
            ]
        )
        session.commit()

        text = CSVService(session).export()
        rows = list(csv.DictReader(StringIO(text)))
        stored = {e.id: e for e in session.scalars(select(Expense)).all()}

        assert len(rows) == 2
        for row in rows:
            expense = stored[int(row["id"])]
            assert row["description"] == expense.description
            assert float(row["amount"]) == expense.amount
            assert row["category"] == expense.category
            assert row["date"] == expense.date.isoformat()
