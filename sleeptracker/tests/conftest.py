import os
import sys
import pytest
import pytest_asyncio
from pathlib import Path

# Ensure project root on sys.path
_THIS_DIR = Path(__file__).resolve().parent
_PROJECT_ROOT = _THIS_DIR.parent.parent
if str(_PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(_PROJECT_ROOT))


class FakeClock:
    """Deterministic millisecond clock for the controller."""

    def __init__(self, now: int = 1_000):
        self.now = now

    def __call__(self) -> int:
        return self.now

    def advance(self, ms: int):
        self.now += ms


@pytest.fixture(scope="session")
def tmp_db_path(tmp_path_factory):
    path = tmp_path_factory.mktemp("db") / "sleep_test.db"
    # Point the app to this temp DB
    os.environ["SLEEP_DB_PATH"] = str(path)
    from sleeptracker.db import get_conn, init_db
    with get_conn(str(path)) as conn:
        init_db(conn)
    return str(path)


@pytest.fixture()
def client(tmp_db_path):
    # Import app after DB ready so startup hooks can use it
    from sleeptracker.api import app
    from fastapi.testclient import TestClient
    with TestClient(app) as c:
        yield c


@pytest.fixture(autouse=True)
def _clean_db(tmp_db_path):
    # Clean tables before each test for isolation
    # Safety: ensure we only ever wipe the temp DB, never a real one
    assert os.environ.get("SLEEP_DB_PATH") == tmp_db_path, "Refusing to clean non-temp DB"
    from sleeptracker.db import get_conn, init_db
    with get_conn(tmp_db_path) as conn:
        for t in ("daily_sleep_quality", "operation_log", "config"):
            conn.execute(f"DELETE FROM {t}")
        init_db(conn)
    yield


@pytest.fixture()
def clock():
    return FakeClock()


@pytest_asyncio.fixture
async def db():
    from sleeptracker.db import SleepDatabase
    database = SleepDatabase(":memory:")
    yield database
    database.close()


@pytest_asyncio.fixture
async def tracker(db, clock):
    from sleeptracker.services.tracker_svc import SleepTrackerController
    controller = SleepTrackerController(db, clock=clock)
    await controller.initialized
    yield controller
    controller.close()
