"""Pytest configuration and fixtures for METRICSNAP tests."""

import os

# Settings are read at import time; configure before importing the package.
TEST_ENCRYPTION_KEY = "00112233445566778899aabbccddeeff00112233445566778899aabbccddeeff"
os.environ["DATABASE_URL"] = "sqlite://"
os.environ["SCHEDULER_ENABLED"] = "false"
os.environ["ENCRYPTION_KEY"] = TEST_ENCRYPTION_KEY
os.environ["FACEBOOK_ACCESS_TOKEN"] = "test-token"
os.environ["SHEETS_ACCESS_TOKEN"] = ""

from collections.abc import AsyncGenerator, Generator  # noqa: E402
from datetime import datetime, timedelta, timezone  # noqa: E402
from typing import Any, List  # noqa: E402

import pytest  # noqa: E402
import pytest_asyncio  # noqa: E402
from httpx import ASGITransport, AsyncClient  # noqa: E402
from sqlmodel import Session, SQLModel  # noqa: E402

from metricsnap.connectors.sheets import SpreadsheetSink  # noqa: E402
from metricsnap.database import build_engine, get_session, init_db  # noqa: E402
from metricsnap.models.roster_models import Account, Sheet  # noqa: E402


class FixedClock:
    """A clock tests can move forward."""

    def __init__(self, now: datetime):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs: Any) -> None:
        self.now = self.now + timedelta(**kwargs)


class RecordingSink(SpreadsheetSink):
    """Spreadsheet sink that keeps every write in memory."""

    def __init__(self, fail: bool = False):
        self.fail = fail
        self.writes: List[tuple] = []

    async def append_rows(self, sink_id: str, rows: List[List[Any]]) -> int:
        if self.fail:
            raise RuntimeError("sheet is read-only")
        self.writes.append((sink_id, rows))
        return len(rows)

    def is_available(self) -> bool:
        return True


@pytest.fixture
def engine() -> Generator[Any, None, None]:
    """In-memory SQLite shared across connections."""
    test_engine = build_engine("sqlite://")
    init_db(test_engine)
    yield test_engine
    SQLModel.metadata.drop_all(test_engine)
    test_engine.dispose()


@pytest.fixture
def session(engine: Any) -> Generator[Session, None, None]:
    with Session(engine) as s:
        yield s


@pytest.fixture
def clock() -> FixedClock:
    return FixedClock(datetime(2026, 10, 16, 9, 30, tzinfo=timezone.utc))


@pytest.fixture
def sink() -> RecordingSink:
    return RecordingSink()


@pytest.fixture
def failing_sink() -> RecordingSink:
    return RecordingSink(fail=True)


@pytest.fixture
def accounts(session: Session) -> List[Account]:
    """Three active accounts and one paused one."""
    rows = [
        Account(brand="Alpha", pod="North", fb_account_id="act_1", store_id="alpha"),
        Account(brand="Bravo", pod="North", fb_account_id="act_2", store_id="bravo"),
        Account(brand="Charlie", pod="South", fb_account_id="act_3", store_id="charlie"),
        Account(brand="Delta", pod="South", status="paused", fb_account_id="act_4"),
    ]
    session.add_all(rows)
    session.commit()
    for row in rows:
        session.refresh(row)
    return [r for r in rows if r.status == "active"]


@pytest.fixture
def sheet(session: Session) -> Sheet:
    s = Sheet(name="Finance", spreadsheet_id="sheet-abc", refresh_type="financialx")
    session.add(s)
    session.commit()
    session.refresh(s)
    return s


@pytest_asyncio.fixture
async def client(session: Session) -> AsyncGenerator[AsyncClient, None]:
    """HTTP client against the app with the test session injected."""
    from metricsnap.main import app

    def override_get_session() -> Generator[Session, None, None]:
        yield session

    app.dependency_overrides[get_session] = override_get_session
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as c:
        yield c
    app.dependency_overrides.clear()
