import csv
import math
from io import StringIO
from typing import Sequence

from models import Expense

EXPORT_FIELDS = ("id", "description", "amount", "category", "date")


def parse_amount(value: object) -> float:
    if isinstance(value, bool) or value is None:
        raise ValueError("Amount must be a positive number")
    if isinstance(value, str):
        value = value.strip()
        # float() would also take digit separators such as "1_000"
        if "_" in value:
            raise ValueError("Amount must be a positive number")
    try:
        amount = float(value)
    except (TypeError, ValueError) as exc:
        raise ValueError("Amount must be a positive number") from exc
    if not math.isfinite(amount) or amount <= 0:
        raise ValueError("Amount must be a positive number")
    return amount


def format_amount(amount: float) -> str:
    if float(amount).is_integer():
        return str(int(amount))
    return repr(float(amount))


def export_expenses(expenses: Sequence[Expense]) -> str:
    """
    Render expenses as CSV. Fields holding a comma, quote or line break are
    quoted with internal quotes doubled.
    """
    output = StringIO()
    writer = csv.writer(output, lineterminator="\n")
    writer.writerow(EXPORT_FIELDS)
    for expense in expenses:
        writer.writerow(
            [
                expense.id,
                expense.description,
                format_amount(expense.amount),
                expense.category,
                expense.date.isoformat(),
            ]
        )
    return output.getvalue()
