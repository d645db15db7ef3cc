import logging
import random
from datetime import date, datetime, timezone
from typing import Callable, Optional

from fastapi import Body, Depends, FastAPI, HTTPException, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse, StreamingResponse
from pydantic import ValidationError
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from chatbot import FinancialFriend, local_today
from config import get_settings
from database import SessionLocal, init_db, session_scope
from memory import ConversationMemory
from schemas import ChatRequest, ExpenseIn, QuickExpenseIn, first_error_message
from services import (
    CSVService,
    ExpenseFilters,
    ExpenseNotFound,
    ExpenseService,
    seed_sample_expenses,
)

logging.basicConfig(level=get_settings().log_level)
logger = logging.getLogger(__name__)

app = FastAPI(title="BudgetBuddy")

CHAT_FAILURE_REPLY = "Oops! I'm having a moment. Can you try that again?"


def _load_app_version() -> str:
    try:
        import tomllib
    except Exception:
        return "unknown"
    try:
        with open("pyproject.toml", "rb") as f:
            data = tomllib.load(f)
        return str(data.get("project", {}).get("version", "unknown"))
    except Exception:
        return "unknown"


APP_VERSION = _load_app_version()

conversation_memory = ConversationMemory()
_rng = random.Random()


def get_db():
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def get_conversation_memory() -> ConversationMemory:
    return conversation_memory


def get_rng() -> random.Random:
    return _rng


def get_clock() -> Callable[[], date]:
    return local_today


@app.on_event("startup")
def startup_event():
    settings = get_settings()
    init_db()
    if settings.seed_samples:
        with session_scope() as session:
            seed_sample_expenses(session)
    logger.info(f"BudgetBuddy {APP_VERSION} ready on port {settings.port}")


@app.exception_handler(RequestValidationError)
async def request_validation_handler(request: Request, exc: RequestValidationError):
    return JSONResponse(status_code=400, content={"detail": first_error_message(exc)})


@app.exception_handler(SQLAlchemyError)
async def store_error_handler(request: Request, exc: SQLAlchemyError):
    logger.exception(f"store error on {request.method} {request.url.path}")
    return JSONResponse(status_code=500, content={"detail": str(exc)})


def filters_from_request(request: Request) -> ExpenseFilters:
    category = request.query_params.get("category") or None
    try:
        start = _optional_date(request.query_params.get("start"))
        end = _optional_date(request.query_params.get("end"))
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    return ExpenseFilters(category=category, start=start, end=end)


def _optional_date(value: Optional[str]) -> Optional[date]:
    if not value:
        return None
    try:
        return date.fromisoformat(value)
    except ValueError as exc:
        raise ValueError(f"Invalid date filter: {value}") from exc


def expense_from_payload(payload: Optional[dict]) -> ExpenseIn:
    if payload is None:
        raise HTTPException(status_code=400, detail="Missing payload")
    try:
        return ExpenseIn.model_validate(payload)
    except ValidationError as exc:
        raise HTTPException(status_code=400, detail=first_error_message(exc)) from exc


def _require_valid_id(expense_id: int) -> None:
    if expense_id <= 0:
        raise HTTPException(status_code=400, detail="Invalid id")


@app.get("/api/expenses")
def api_list_expenses(request: Request, db: Session = Depends(get_db)):
    filters = filters_from_request(request)
    return [expense.to_dict() for expense in ExpenseService(db).list(filters)]


@app.post("/api/expenses")
def api_create_expense(
    payload: Optional[dict] = Body(default=None), db: Session = Depends(get_db)
):
    data = expense_from_payload(payload)
    expense = ExpenseService(db).create(data)
    return expense.to_dict()


@app.put("/api/expenses/{expense_id}")
def api_update_expense(
    expense_id: int,
    payload: Optional[dict] = Body(default=None),
    db: Session = Depends(get_db),
):
    _require_valid_id(expense_id)
    data = expense_from_payload(payload)
    try:
        expense = ExpenseService(db).update(expense_id, data)
    except ExpenseNotFound as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc
    return expense.to_dict()


@app.delete("/api/expenses/{expense_id}")
def api_delete_expense(expense_id: int, db: Session = Depends(get_db)):
    _require_valid_id(expense_id)
    try:
        ExpenseService(db).delete(expense_id)
    except ExpenseNotFound as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc
    return {"success": True}


@app.get("/api/download")
def api_download_csv(db: Session = Depends(get_db)):
    csv_text = CSVService(db).export()
    return StreamingResponse(
        iter([csv_text]),
        media_type="text/csv",
        headers={"Content-Disposition": 'attachment; filename="expenses.csv"'},
    )


@app.post("/api/chatbot")
def api_chatbot(
    payload: Optional[dict] = Body(default=None),
    db: Session = Depends(get_db),
    memory: ConversationMemory = Depends(get_conversation_memory),
    rng: random.Random = Depends(get_rng),
    clock: Callable[[], date] = Depends(get_clock),
):
    chat = ChatRequest.model_validate(payload or {})
    if not chat.message:
        raise HTTPException(status_code=400, detail="Empty message")
    user_id = chat.user_id or get_settings().default_user_id

    try:
        friend = FinancialFriend(db, memory, rng=rng, today=clock)
        response = friend.respond(user_id, chat.message)
    except Exception:
        logger.exception("Chatbot error")
        return JSONResponse(
            status_code=500, content={"reply": CHAT_FAILURE_REPLY, "type": "error"}
        )
    return response.to_payload()


@app.post("/api/expenses/quick")
def api_quick_expense(
    payload: Optional[dict] = Body(default=None),
    db: Session = Depends(get_db),
    clock: Callable[[], date] = Depends(get_clock),
):
    try:
        data = QuickExpenseIn.model_validate(payload or {})
    except ValidationError as exc:
        raise HTTPException(status_code=400, detail=first_error_message(exc)) from exc
    try:
        expense = ExpenseService(db).quick_add(data, clock())
    except SQLAlchemyError as exc:
        db.rollback()
        logger.exception("quick expense insert failed")
        raise HTTPException(status_code=500, detail="Failed to add expense") from exc
    return {"success": True, "id": expense.id, "message": "Expense added successfully!"}


@app.get("/api/health")
def api_health():
    return {
        "status": "OK",
        "message": "BudgetBuddy with Financial Friend Finn is running!",
        "version": APP_VERSION,
        "timestamp": datetime.now(timezone.utc).isoformat(),
    }


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(app, host="0.0.0.0", port=get_settings().port)
