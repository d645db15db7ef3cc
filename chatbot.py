"""Finn, the rule-based financial friend.

A message is matched against ``INTENT_RULES`` in order and the first rule that
matches picks the handler. Keyword rules test substrings of the lower-cased
message; pattern rules run case-insensitively on the original text so that
captured descriptions keep their casing.
"""

from __future__ import annotations

import logging
import math
import random
import re
from dataclasses import dataclass
from datetime import date, datetime
from typing import Callable, Optional, TypeVar
from zoneinfo import ZoneInfo

from pydantic import ValidationError
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from config import get_settings
from memory import ConversationMemory
from models import Expense
from schemas import ChatResponse, ExpenseIn, Insight, QuickAction, first_error_message
from services import ExpenseService, MetricsService, month_key

logger = logging.getLogger(__name__)

T = TypeVar("T")

GREETINGS = (
    "Hey there! 👋 Ready to make your money work smarter today?",
    "Hello friend! 💰 How's your financial journey going?",
    "Hi! I was just looking at your expenses - want to hear something interesting?",
    "Hey! I've got some insights about your spending patterns. Want to chat?",
)

NO_EXPENSES_REPLY = (
    "I don't see any expenses for this month yet. Ready to track your first expense?"
)
SPENDING_TEMPLATES = (
    "This month you've spent ${total} so far. Want me to break it down by category?",
    "Your total spending this month is ${total}. I can show you where it's all going!",
    "I see ${total} in expenses this month. Curious about your spending patterns?",
)

SAVING_TIPS = (
    "Try the 24-hour rule: wait a day before buying anything over $50. You'd be surprised how many 'needs' become 'wants'!",
    "Here's a simple trick: Save your $5 bills. Every time you get one, put it aside. You'll save hundreds without noticing!",
    "Meal prep Sundays! Cooking in bulk can cut your food costs by 40% and save you time during the week.",
    "Unsubscribe from store emails. Fewer temptations = more savings. You've got this!",
    "Use cash for fun spending. When the cash is gone, the spending stops. Old school but super effective!",
)

NO_CATEGORY_DATA_REPLY = (
    "No category data yet. Start adding expenses and I'll help you analyze them!"
)

GENERAL_ADVICE = (
    "Start with a $500 emergency fund - it's your financial safety net!",
    "Track every expense for 2 weeks. Knowledge is power when it comes to spending!",
    "Set one small financial goal this month - like saving $50. Small wins build big habits!",
    "Review your subscriptions. The average person pays for 3 subscriptions they don't use!",
    "Pay yourself first! Set up auto-transfer to savings right when you get paid.",
)

EXPENSE_HELP_REPLY = (
    "I can help you add expenses! Use the '💸 Add Quick Expense' button in chat, "
    "or tell me: 'I spent $15 on lunch today' and I'll add it for you!"
)

EXPENSE_CONFIRMATIONS = (
    "Got it! I added ${amount} for {description} to your {category} expenses. 💰",
    "✅ Added! ${amount} for {description} is now tracked in {category}.",
    "Thanks for telling me! I've recorded ${amount} for {description} under {category}.",
)
STRUCTURED_CONFIRMATION = "✅ Added expense: {description} - ${amount} ({category}) on {date}"
NATURAL_EXPENSE_ERROR = (
    "Oops! I had trouble adding that expense. Can you try the quick expense button instead?"
)
STRUCTURED_EXPENSE_ERROR = (
    "Oops! I had trouble adding that expense. Please check the format and try again."
)

FRIENDLY_NUDGES = (
    "I'm your financial friend Finn! I can help you understand your spending, find saving opportunities, or just chat about money goals. What's on your mind?",
    "Hey! I'm here to help with your money questions. You can ask about your spending, get saving tips, or just chat about financial goals!",
    "As your financial buddy, I can analyze your expenses, suggest saving strategies, or help you understand where your money's going. What would you like to know?",
)

MEAL_PREP_TIP = (
    "Pro tip: Meal prepping could save you 30% on food costs! Want some easy recipes?"
)
FOOD_CATEGORY = "Food"
FOOD_SHARE_THRESHOLD = 0.3

DEFAULT_CATEGORY = "Other"
# checked in order, first hit wins
CATEGORY_KEYWORDS = (
    ("Food", ("food", "lunch", "dinner", "grocer", "restaurant")),
    ("Transport", ("bus", "train", "gas", "uber", "transport")),
    ("Entertainment", ("movie", "game", "entertain", "fun")),
    ("Utilities", ("bill", "rent", "utility", "electric", "water")),
    ("Shopping", ("shop", "cloth", "amazon", "buy")),
)

QUICK_ACTIONS = {
    "spending_summary": (
        ("Show categories", "Show me my spending by category"),
        ("Saving tips", "How can I save more?"),
        ("Add expense", "I want to add an expense"),
    ),
    "category_analysis": (
        ("Biggest category", "Where am I spending the most?"),
        ("Saving tips", "Give me saving advice"),
        ("Set a budget", "Help me set spending limits"),
    ),
    "saving_tip": (
        ("More tips", "Give me another saving tip"),
        ("Track spending", "How much have I spent this month?"),
        ("Easy savings", "What are quick ways to save?"),
    ),
    "general_advice": (
        ("More advice", "Give me more financial advice"),
        ("My spending", "How much have I spent?"),
        ("Saving tips", "How can I save money?"),
    ),
}

NATURAL_EXPENSE_RE = re.compile(
    r"(?:spent|paid|cost)\s*\$\s*(\d+(?:\.\d{2})?)\s*(?:on|for)\s*(.+)",
    re.IGNORECASE,
)
STRUCTURED_EXPENSE_RE = re.compile(
    r"add expense[,:\s]+(.+?),\s*([\d.]+),\s*([a-zA-Z ]+),\s*(\d{4}-\d{2}-\d{2})",
    re.IGNORECASE,
)

Matcher = Callable[[str], object]


def contains_any(*keywords: str) -> Matcher:
    def matcher(text: str) -> bool:
        lowered = text.lower()
        return any(keyword in lowered for keyword in keywords)

    return matcher


def pattern(regex: re.Pattern[str]) -> Matcher:
    return regex.search


@dataclass(frozen=True)
class IntentRule:
    intent: str
    matcher: Matcher

    def match(self, text: str) -> object:
        return self.matcher(text)


# The two expense-capture patterns sit ahead of the keyword rules: "spent"
# and "add expense" would otherwise shadow them.
INTENT_RULES: tuple[IntentRule, ...] = (
    IntentRule("greeting", contains_any("hello", "hi", "hey")),
    IntentRule("natural_expense", pattern(NATURAL_EXPENSE_RE)),
    IntentRule("structured_expense", pattern(STRUCTURED_EXPENSE_RE)),
    IntentRule("spending_query", contains_any("how much", "spent", "total")),
    IntentRule("saving_advice", contains_any("save", "saving")),
    IntentRule("category_analysis", contains_any("category", "categories")),
    IntentRule("general_advice", contains_any("tip", "advice", "help")),
    IntentRule("expense_help", contains_any("add expense", "new expense")),
)
FALLBACK_INTENT = "fallback"


def match_intent(
    text: str, rules: tuple[IntentRule, ...] = INTENT_RULES
) -> tuple[str, object]:
    for rule in rules:
        result = rule.match(text)
        if result:
            return rule.intent, result
    return FALLBACK_INTENT, None


def infer_category(description: str) -> str:
    lowered = description.lower()
    for category, keywords in CATEGORY_KEYWORDS:
        if any(keyword in lowered for keyword in keywords):
            return category
    return DEFAULT_CATEGORY


def round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


def build_insights(category_totals: dict[str, float]) -> list[Insight]:
    """
    Derive insights from one month's category totals. The top category is the
    first one reaching the maximum in mapping order.
    """
    total_spent = sum(category_totals.values())
    if total_spent <= 0 or not category_totals:
        return []

    top_category = max(category_totals, key=lambda name: category_totals[name])
    share = round_half_up(category_totals[top_category] / total_spent * 100)
    insights = [
        Insight(
            type="spending_pattern",
            message=(
                f"I notice you're spending most on {top_category} "
                f"({share}% of your budget)"
            ),
            data=dict(category_totals),
        )
    ]

    food_total = category_totals.get(FOOD_CATEGORY, 0.0)
    if food_total > total_spent * FOOD_SHARE_THRESHOLD:
        insights.append(Insight(type="saving_tip", message=MEAL_PREP_TIP))
    return insights


class ExpenseCaptureFailed(Exception):
    pass


def local_today() -> date:
    return datetime.now(ZoneInfo(get_settings().timezone)).date()


class FinancialFriend:
    def __init__(
        self,
        session: Session,
        memory: ConversationMemory,
        *,
        rng: Optional[random.Random] = None,
        today: Optional[Callable[[], date]] = None,
        rules: tuple[IntentRule, ...] = INTENT_RULES,
    ) -> None:
        self.session = session
        self.memory = memory
        self.rng = rng or random.Random()
        self.today = today or local_today
        self.rules = rules
        self.expenses = ExpenseService(session)
        self.metrics = MetricsService(session)
        self._handlers: dict[str, Callable[[object, list[Insight]], ChatResponse]] = {
            "greeting": self._greeting,
            "natural_expense": self._natural_expense,
            "structured_expense": self._structured_expense,
            "spending_query": self._spending_query,
            "saving_advice": self._saving_advice,
            "category_analysis": self._category_analysis,
            "general_advice": self._general_advice,
            "expense_help": self._expense_help,
            FALLBACK_INTENT: self._friendly_nudge,
        }

    def respond(self, user_id: str, message: str) -> ChatResponse:
        self.memory.update(user_id, message.lower())

        insights = self.analyze_spending()
        intent, match = match_intent(message, self.rules)
        logger.debug(f"chat_turn: user={user_id} intent={intent}")

        handler = self._handlers.get(intent)
        if handler is None:
            logger.warning(f"chat: no handler for intent {intent!r}, using fallback")
            handler = self._handlers[FALLBACK_INTENT]
        response = handler(match, insights)
        actions = QUICK_ACTIONS.get(response.type)
        if actions:
            response.actions = [
                QuickAction(label=label, message=text) for label, text in actions
            ]
        return response

    def analyze_spending(self) -> list[Insight]:
        totals = self._query(
            lambda: self.metrics.monthly_totals_by_category(self._current_month()),
            {},
        )
        return build_insights(totals)

    def _current_month(self) -> str:
        return month_key(self.today())

    def _query(self, fetch: Callable[[], T], default: T) -> T:
        try:
            return fetch()
        except SQLAlchemyError:
            self.session.rollback()
            logger.warning("chat: spending query failed, no data", exc_info=True)
            return default

    def _pick(self, options: tuple[str, ...]) -> str:
        return options[self.rng.randrange(len(options))]

    def _greeting(self, _match: object, insights: list[Insight]) -> ChatResponse:
        return ChatResponse(
            reply=self._pick(GREETINGS), insights=insights[:1], type="greeting"
        )

    def _spending_query(
        self, _match: object, _insights: list[Insight]
    ) -> ChatResponse:
        total = self._query(
            lambda: self.metrics.monthly_total(self._current_month()), 0.0
        )
        if not total:
            return ChatResponse(reply=NO_EXPENSES_REPLY, type="spending_summary")
        reply = self._pick(SPENDING_TEMPLATES).format(total=f"{total:.2f}")
        return ChatResponse(reply=reply, type="spending_summary", data={"total": total})

    def _saving_advice(self, _match: object, _insights: list[Insight]) -> ChatResponse:
        return ChatResponse(reply=self._pick(SAVING_TIPS), type="saving_tip")

    def _category_analysis(
        self, _match: object, _insights: list[Insight]
    ) -> ChatResponse:
        breakdown = self._query(
            lambda: self.metrics.category_breakdown(self._current_month()), []
        )
        if not breakdown:
            return ChatResponse(reply=NO_CATEGORY_DATA_REPLY, type="category_analysis")

        lines = ["Here's your spending breakdown:"]
        lines.extend(f"• {category}: ${total:.2f}" for category, total in breakdown)
        grand_total = sum(total for _, total in breakdown)
        lines.append("")
        lines.append(f"Total: ${grand_total:.2f}")
        lines.append("")
        lines.append("See any surprises? I can help you optimize these!")
        return ChatResponse(
            reply="\n".join(lines),
            type="category_analysis",
            data=[
                {"category": category, "total": total} for category, total in breakdown
            ],
        )

    def _general_advice(self, _match: object, _insights: list[Insight]) -> ChatResponse:
        return ChatResponse(reply=self._pick(GENERAL_ADVICE), type="general_advice")

    def _expense_help(self, _match: object, _insights: list[Insight]) -> ChatResponse:
        return ChatResponse(reply=EXPENSE_HELP_REPLY, type="expense_help")

    def _natural_expense(
        self, match: re.Match[str], _insights: list[Insight]
    ) -> ChatResponse:
        amount_raw, description = match.group(1), match.group(2).strip()
        category = infer_category(description)
        try:
            expense = self._record_expense(
                description, amount_raw, category, self.today()
            )
        except ExpenseCaptureFailed:
            return ChatResponse(reply=NATURAL_EXPENSE_ERROR, type="error")
        reply = self._pick(EXPENSE_CONFIRMATIONS).format(
            amount=f"{expense.amount:.2f}",
            description=expense.description,
            category=expense.category,
        )
        return self._expense_added(reply, expense)

    def _structured_expense(
        self, match: re.Match[str], _insights: list[Insight]
    ) -> ChatResponse:
        description, amount_raw, category, date_raw = match.groups()
        try:
            expense = self._record_expense(description, amount_raw, category, date_raw)
        except ExpenseCaptureFailed:
            return ChatResponse(reply=STRUCTURED_EXPENSE_ERROR, type="error")
        reply = STRUCTURED_CONFIRMATION.format(
            description=expense.description,
            amount=f"{expense.amount:.2f}",
            category=expense.category,
            date=expense.date.isoformat(),
        )
        return self._expense_added(reply, expense)

    def _record_expense(
        self, description: str, amount: str, category: str, day: object
    ) -> Expense:
        try:
            data = ExpenseIn(
                description=description, amount=amount, category=category, date=day
            )
        except ValidationError as exc:
            logger.info(f"chat: rejected captured expense: {first_error_message(exc)}")
            raise ExpenseCaptureFailed(first_error_message(exc)) from exc
        try:
            return self.expenses.create(data)
        except SQLAlchemyError as exc:
            self.session.rollback()
            logger.warning("chat: failed to store expense", exc_info=True)
            raise ExpenseCaptureFailed(str(exc)) from exc

    @staticmethod
    def _expense_added(reply: str, expense: Expense) -> ChatResponse:
        return ChatResponse(
            reply=reply,
            type="expense_added",
            data={
                "id": expense.id,
                "amount": expense.amount,
                "category": expense.category,
            },
        )

    def _friendly_nudge(self, _match: object, insights: list[Insight]) -> ChatResponse:
        return ChatResponse(
            reply=self._pick(FRIENDLY_NUDGES), insights=insights, type="friendly_nudge"
        )
