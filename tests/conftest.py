import os
import random
import tempfile
from datetime import date

import pytest

os.environ.setdefault(
    "BUDGETBUDDY_DATA_DIR", tempfile.mkdtemp(prefix="budgetbuddy-tests-")
)

from fastapi.testclient import TestClient  # noqa: E402
from sqlalchemy import create_engine  # noqa: E402
from sqlalchemy.orm import sessionmaker  # noqa: E402
from sqlalchemy.pool import StaticPool  # noqa: E402

import main  # noqa: E402
from database import Base  # noqa: E402
from memory import ConversationMemory  # noqa: E402

TODAY = date(2025, 8, 15)


@pytest.fixture
def api_engine():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def memory() -> ConversationMemory:
    return ConversationMemory()


@pytest.fixture
def client(api_engine, memory):
    testing_session = sessionmaker(
        bind=api_engine, autoflush=False, expire_on_commit=False
    )

    def override_get_db():
        db = testing_session()
        try:
            yield db
        finally:
            db.close()

    main.app.dependency_overrides[main.get_db] = override_get_db
    main.app.dependency_overrides[main.get_conversation_memory] = lambda: memory
    main.app.dependency_overrides[main.get_rng] = lambda: random.Random(7)
    main.app.dependency_overrides[main.get_clock] = lambda: (lambda: TODAY)
    yield TestClient(main.app)
    main.app.dependency_overrides.clear()
