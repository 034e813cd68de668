"""
Shared test fixtures for SprintBoard API tests.
"""
import pytest

from httpx import AsyncClient, ASGITransport

from sprintboard.infrastructure.config import Settings
from sprintboard.services.board_service import BoardRegistry, BoardSession, get_board_registry
from fake_tracker import FakeTracker


@pytest.fixture
def tracker():
    """Tracker with one ACTIVE sprint S1 and a small backlog.

    S1 holds T1 (IN_PROGRESS) and T3 (TODO); T2 sits in the backlog.
    """
    fake = FakeTracker(project_id="P1")
    fake.add_sprint("S1", name="Sprint 1", status="ACTIVE")
    fake.add_task("T1", "Wire up login", status="IN_PROGRESS", sprint_id="S1")
    fake.add_task("T3", "Write docs", status="TODO", sprint_id="S1")
    fake.add_task("T2", "Fix flaky test", status="TODO", sprint_id=None)
    return fake


@pytest.fixture
def test_settings():
    """Settings pointing at the fake tracker."""
    return Settings(
        tracker_api_url="http://tracker.test",
        tracker_api_prefix="/api",
        backlog_page_size=25,
    )


@pytest.fixture
async def tracker_client(tracker):
    client = tracker.client()
    yield client
    await client.close()


@pytest.fixture
async def session(tracker_client, test_settings):
    """A loaded board session for project P1."""
    board = BoardSession("P1", tracker_client, test_settings)
    await board.load()
    return board


@pytest.fixture
async def client(tracker_client, test_settings):
    """Async HTTP client for testing FastAPI endpoints against the fake tracker."""
    from sprintboard.main import app

    registry = BoardRegistry(client=tracker_client, settings=test_settings)
    app.dependency_overrides[get_board_registry] = lambda: registry

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac

    app.dependency_overrides.clear()
