import datetime as dt
import re
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from csv_utils import parse_amount

DATE_PATTERN = re.compile(r"^\d{4}-\d{2}-\d{2}$")


def parse_expense_date(value: object) -> dt.date:
    if isinstance(value, dt.date):
        return value
    if not isinstance(value, str) or not DATE_PATTERN.match(value):
        raise ValueError("Date required (YYYY-MM-DD)")
    try:
        return dt.date.fromisoformat(value)
    except ValueError as exc:
        raise ValueError("Date required (YYYY-MM-DD)") from exc


def first_error_message(exc: ValidationError) -> str:
    error = exc.errors()[0]
    cause = (error.get("ctx") or {}).get("error")
    return str(cause) if cause else str(error["msg"])


class ExpenseIn(BaseModel):
    description: str = Field(default=None, validate_default=True)
    amount: float = Field(default=None, validate_default=True)
    category: str = Field(default=None, validate_default=True)
    date: dt.date = Field(default=None, validate_default=True)

    @field_validator("description", mode="before")
    @classmethod
    def _require_description(cls, value: object) -> str:
        text = "" if value is None else str(value).strip()
        if not text:
            raise ValueError("Description required")
        return text

    @field_validator("amount", mode="before")
    @classmethod
    def _require_positive_amount(cls, value: object) -> float:
        return parse_amount(value)

    @field_validator("category", mode="before")
    @classmethod
    def _require_category(cls, value: object) -> str:
        text = "" if value is None else str(value).strip()
        if not text:
            raise ValueError("Category required")
        return text

    @field_validator("date", mode="before")
    @classmethod
    def _require_date(cls, value: object) -> dt.date:
        return parse_expense_date(value)


class QuickExpenseIn(BaseModel):
    amount: float = Field(default=None, validate_default=True)
    category: str = Field(default=None, validate_default=True)
    description: Optional[str] = None

    @field_validator("amount", mode="before")
    @classmethod
    def _amount(cls, value: object) -> float:
        if value in (None, "", 0):
            raise ValueError("Amount and category are required")
        return parse_amount(value)

    @field_validator("category", mode="before")
    @classmethod
    def _category(cls, value: object) -> str:
        text = "" if value is None else str(value).strip()
        if not text:
            raise ValueError("Amount and category are required")
        return text

    @field_validator("description", mode="before")
    @classmethod
    def _description(cls, value: object) -> Optional[str]:
        text = "" if value is None else str(value).strip()
        return text or None


class ChatRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    message: str = ""
    user_id: Optional[str] = Field(default=None, alias="userId")

    @field_validator("message", mode="before")
    @classmethod
    def _message(cls, value: object) -> str:
        return "" if value is None else str(value).strip()

    @field_validator("user_id", mode="before")
    @classmethod
    def _user_id(cls, value: object) -> Optional[str]:
        if value is None or value == "":
            return None
        return str(value)


class Insight(BaseModel):
    type: str
    message: str
    data: Optional[dict[str, float]] = None


class QuickAction(BaseModel):
    label: str
    message: str


class ChatResponse(BaseModel):
    reply: str
    type: str
    insights: Optional[list[Insight]] = None
    data: Optional[Any] = None
    actions: Optional[list[QuickAction]] = None

    def to_payload(self) -> dict[str, Any]:
        return self.model_dump(exclude_none=True)
