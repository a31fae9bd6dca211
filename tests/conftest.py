from __future__ import annotations

import os
import sys
from datetime import UTC, datetime
from pathlib import Path

# Settings are read once at import time, so the environment has to be in
# place before anything under app/ is imported.
os.environ["APP_ENV"] = "test"
os.environ["ADMIN_API_KEYS"] = "test-admin-key"
os.environ["STORE_RETRY_BASE_DELAY_SECONDS"] = "0"
for _name in ("DATABASE_URL", "REDIS_URL", "COURSE_DIRECTORY_FILE"):
    os.environ.pop(_name, None)

import pytest  # noqa: E402
from fastapi.testclient import TestClient  # noqa: E402

from app.main import app  # noqa: E402
from app.models.course import Course  # noqa: E402
from app.repos import stores  # noqa: E402
from app.services.cache import cache_service  # noqa: E402
from app.services.task_queue import task_queue  # noqa: E402
from app.services.verb_usage import verb_usage  # noqa: E402

# Ensure repo root is on sys.path so `import app` works under pytest.
ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

ADMIN_API_KEY = "test-admin-key"
ADL = "http://adlnet.gov/expapi/verbs/"

PYTHON_COURSE = Course(
    course_id="python-101",
    activity_id="https://lms.example.com/courses/python-101",
    title="Python 101",
)
SQL_COURSE = Course(
    course_id="sql-201",
    activity_id="https://lms.example.com/courses/sql-201",
    title="SQL 201",
    expected_interactions=10,
)
TEST_COURSES = (PYTHON_COURSE, SQL_COURSE)


@pytest.fixture(autouse=True)
def reset_statement_state() -> None:
    """Clear stored statements and the rows derived from them between tests."""
    if hasattr(stores.statement_repo, "_by_id"):
        stores.statement_repo._by_id.clear()  # type: ignore[union-attr]
        stores.statement_repo._by_actor.clear()  # type: ignore[union-attr]
    if hasattr(stores.progress_repo, "_rows"):
        stores.progress_repo._rows.clear()  # type: ignore[union-attr]
    if hasattr(stores.kc_attempt_repo, "_by_statement"):
        stores.kc_attempt_repo._by_statement.clear()  # type: ignore[union-attr]


@pytest.fixture(autouse=True)
def reset_verb_state() -> None:
    """Clear verb overrides and usage stats between tests."""
    if hasattr(stores.verb_config_repo, "_by_verb"):
        stores.verb_config_repo._by_verb.clear()  # type: ignore[union-attr]
    if hasattr(verb_usage, "_by_verb"):
        verb_usage._by_verb.clear()  # type: ignore[union-attr]


@pytest.fixture(autouse=True)
def reset_course_config() -> None:
    """Clear module rules and stored xAPI documents between tests."""
    if hasattr(stores.module_rule_repo, "_by_course"):
        stores.module_rule_repo._by_course.clear()  # type: ignore[union-attr]
    if hasattr(stores.document_repo, "_docs"):
        stores.document_repo._docs.clear()  # type: ignore[union-attr]


@pytest.fixture(autouse=True)
def reset_courses() -> None:
    """Seed the course directory with the test catalog."""
    if hasattr(stores.course_repo, "clear"):
        stores.course_repo.clear()  # type: ignore[union-attr]
        for course in TEST_COURSES:
            stores.course_repo.add(course)  # type: ignore[union-attr]


@pytest.fixture(autouse=True)
def reset_cache() -> None:
    """Clear cache between tests."""
    if hasattr(cache_service, "_store"):
        cache_service._store.clear()  # type: ignore[union-attr]


@pytest.fixture(autouse=True)
def reset_task_queue() -> None:
    """Clear task queues between tests."""
    if hasattr(task_queue, "_queues"):
        task_queue._queues.clear()  # type: ignore[union-attr]


@pytest.fixture
def client() -> TestClient:
    return TestClient(app)


@pytest.fixture
def admin_headers() -> dict[str, str]:
    return {"X-API-Key": ADMIN_API_KEY}


# ---------------------------------------------------------------------------
# Statement helpers
# ---------------------------------------------------------------------------


def make_statement_doc(
    verb: str,
    *,
    email: str = "learner@example.com",
    activity: str = PYTHON_COURSE.activity_id,
    timestamp: str = "2024-03-01T10:00:00Z",
    statement_id: str | None = None,
    result: dict | None = None,
) -> dict:
    """Build an xAPI statement JSON document for tests.

    `verb` is either a full IRI or a bare ADL verb name ("completed").
    """
    doc: dict = {
        "actor": {"objectType": "Agent", "mbox": f"mailto:{email}"},
        "verb": {"id": verb if ":" in verb else ADL + verb},
        "object": {"objectType": "Activity", "id": activity},
        "timestamp": timestamp,
    }
    if statement_id is not None:
        doc["id"] = statement_id
    if result is not None:
        doc["result"] = result
    return doc


def ts(minute: int, second: int = 0, *, hour: int = 10) -> datetime:
    """A UTC timestamp on the fixed test day."""
    return datetime(2024, 3, 1, hour, minute, second, tzinfo=UTC)
