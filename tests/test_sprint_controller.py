"""
Tests for the sprint lifecycle controller.
"""
import asyncio
import pytest
from unittest.mock import AsyncMock

from sprintboard.infrastructure.exceptions import ActionInProgressError, ValidationFailure
from sprintboard.models.sprint import SprintPhase
from sprintboard.services.sprint_controller import (
    SprintLifecycleController,
    requires_initials,
    validate_sprint_initials,
)

START = "/projects/sprints/start/"
END = "/projects/sprints/end/"


class TestInitials:

    @pytest.mark.parametrize("raw,expected", [("USA", "USA"), ("abc", "ABC"), (" xyz ", "XYZ")])
    def test_accepts(self, raw, expected):
        assert validate_sprint_initials(raw) == expected

    @pytest.mark.parametrize("raw,message", [
        ("AB", "Please enter exactly 3 letters"),
        ("ABCD", "Please enter exactly 3 letters"),
        ("", "Please enter exactly 3 letters"),
        ("A1C", "Please use only letters (A-Z)"),
    ])
    def test_rejects(self, raw, message):
        with pytest.raises(ValidationFailure) as exc_info:
            validate_sprint_initials(raw)
        assert exc_info.value.message == message
        assert exc_info.value.field == "initials"

    def test_requires_initials_is_case_insensitive(self):
        assert requires_initials("Sprint INITIALS are required")
        assert not requires_initials("Sprint already running")
        assert not requires_initials("")


class TestLoadCurrent:

    @pytest.mark.asyncio
    async def test_active_sprint(self, tracker, tracker_client):
        controller = SprintLifecycleController(tracker_client, "P1")
        state = await controller.load_current()
        assert state.phase == SprintPhase.HAS_CURRENT
        assert state.sprint_id == "S1"
        assert state.active
        assert state.can_end
        assert not state.can_start

    @pytest.mark.asyncio
    async def test_planned_sprint_is_current_but_not_active(self, tracker, tracker_client):
        tracker.add_sprint("S2", status="PLANNED")
        controller = SprintLifecycleController(tracker_client, "P1")
        state = await controller.load_current()
        assert state.phase == SprintPhase.HAS_CURRENT
        assert state.sprint_id == "S2"
        assert not state.active
        assert state.can_start
        assert not state.can_end

    @pytest.mark.asyncio
    async def test_no_current_sprint(self, tracker, tracker_client):
        tracker.current_sprint_id = None
        controller = SprintLifecycleController(tracker_client, "P1")
        state = await controller.load_current()
        assert state.phase == SprintPhase.NO_SPRINT
        assert state.error == ""

    @pytest.mark.asyncio
    async def test_rejection_degrades_to_no_sprint(self, tracker, tracker_client):
        tracker.reject("/projects/sprints/current/", "Project not found")
        controller = SprintLifecycleController(tracker_client, "P1")
        state = await controller.load_current()
        assert state.phase == SprintPhase.NO_SPRINT
        assert state.error == "Project not found"

    @pytest.mark.asyncio
    async def test_http_failure_degrades_to_no_sprint(self, tracker, tracker_client):
        tracker.fail_http("/projects/sprints/current/", 503)
        controller = SprintLifecycleController(tracker_client, "P1")
        state = await controller.load_current()
        assert state.phase == SprintPhase.NO_SPRINT
        assert state.error == "Tracker API error 503"

    @pytest.mark.asyncio
    async def test_notifies_only_on_identity_change(self, tracker, tracker_client):
        controller = SprintLifecycleController(tracker_client, "P1")
        seen = []
        controller.subscribe(lambda state: seen.append(state.sprint_id))
        await controller.load_current()
        await controller.load_current()
        assert seen == ["S1"]


class TestStart:

    @pytest.mark.asyncio
    async def test_initials_prompt_then_retry(self, tracker, tracker_client):
        tracker.current_sprint_id = None
        tracker.require_initials = True
        controller = SprintLifecycleController(tracker_client, "P1")
        await controller.load_current()

        first = await controller.start()
        assert not first.ok
        assert first.needs_initials
        assert controller.state.needs_initials
        assert "initials" not in tracker.calls_to(START)[0]

        second = await controller.start("xyz")
        assert second.ok
        assert tracker.calls_to(START)[-1]["initials"] == "XYZ"
        assert controller.state.phase == SprintPhase.HAS_CURRENT
        assert controller.state.active
        assert not controller.state.needs_initials

    @pytest.mark.asyncio
    async def test_invalid_initials_rejected_locally(self, tracker, tracker_client):
        controller = SprintLifecycleController(tracker_client, "P1")
        result = await controller.start("A1")
        assert not result.ok
        assert result.needs_initials
        assert result.field_error == "Please enter exactly 3 letters"
        assert tracker.calls_to(START) == []

    @pytest.mark.asyncio
    async def test_success_notifies(self, tracker, tracker_client):
        tracker.current_sprint_id = None
        controller = SprintLifecycleController(tracker_client, "P1")
        await controller.load_current()
        seen = []
        controller.subscribe(lambda state: seen.append(state.phase))

        result = await controller.start(start_date="2026-02-01", end_date="2026-02-14")

        assert result.ok
        assert result.message == "Sprint started successfully!"
        assert seen == [SprintPhase.HAS_CURRENT]
        body = tracker.calls_to(START)[0]
        assert body["start_date"] == "2026-02-01"
        assert body["end_date"] == "2026-02-14"

    @pytest.mark.asyncio
    async def test_other_failure_is_shown_not_retried(self, tracker, tracker_client):
        tracker.reject(START, "A sprint is already active")
        controller = SprintLifecycleController(tracker_client, "P1")
        result = await controller.start()
        assert not result.ok
        assert not result.needs_initials
        assert controller.state.error == "A sprint is already active"
        assert len(tracker.calls_to(START)) == 1

    @pytest.mark.asyncio
    async def test_refused_while_sprint_is_active(self, tracker, tracker_client):
        controller = SprintLifecycleController(tracker_client, "P1")
        await controller.load_current()
        assert not controller.state.can_start

        result = await controller.start()

        assert not result.ok
        assert result.message == "A sprint is already in progress."
        assert tracker.calls_to(START) == []

    @pytest.mark.asyncio
    async def test_completed_current_sprint_cannot_start(self, tracker, tracker_client):
        tracker.add_sprint("S4", status="COMPLETED")
        controller = SprintLifecycleController(tracker_client, "P1")
        await controller.load_current()
        assert not controller.state.can_start
        assert not controller.state.can_end

    @pytest.mark.asyncio
    async def test_planned_sprint_can_be_started(self, tracker, tracker_client):
        tracker.add_sprint("S2", status="PLANNED")
        controller = SprintLifecycleController(tracker_client, "P1")
        await controller.load_current()

        result = await controller.start()

        assert result.ok
        assert len(tracker.calls_to(START)) == 1
        assert controller.state.active

    @pytest.mark.asyncio
    async def test_second_start_while_in_flight_is_refused(self):
        release = asyncio.Event()

        async def slow_start(*args, **kwargs):
            await release.wait()
            return {"id": "S9", "name": "Sprint 9", "status": "ACTIVE"}

        client = AsyncMock()
        client.start_sprint.side_effect = slow_start
        controller = SprintLifecycleController(client, "P1")

        first = asyncio.create_task(controller.start())
        await asyncio.sleep(0)
        assert controller.busy
        with pytest.raises(ActionInProgressError):
            await controller.start()
        release.set()
        result = await first

        assert result.ok
        assert client.start_sprint.await_count == 1
        assert not controller.busy


class TestEnd:

    @pytest.mark.asyncio
    async def test_end_moves_to_no_sprint(self, tracker, tracker_client):
        controller = SprintLifecycleController(tracker_client, "P1")
        await controller.load_current()
        seen = []
        controller.subscribe(lambda state: seen.append(state.phase))

        result = await controller.end()

        assert result.ok
        assert controller.state.phase == SprintPhase.NO_SPRINT
        assert seen == [SprintPhase.NO_SPRINT]
        assert tracker.sprints["S1"]["status"] == "COMPLETED"

    @pytest.mark.asyncio
    async def test_end_without_sprint(self, tracker, tracker_client):
        tracker.current_sprint_id = None
        controller = SprintLifecycleController(tracker_client, "P1")
        await controller.load_current()
        result = await controller.end()
        assert not result.ok
        assert result.message == "No active sprint to end."
        assert tracker.calls_to(END) == []

    @pytest.mark.asyncio
    async def test_end_failure_keeps_sprint(self, tracker, tracker_client):
        tracker.reject(END, "Sprint has open tasks")
        controller = SprintLifecycleController(tracker_client, "P1")
        await controller.load_current()
        result = await controller.end()
        assert not result.ok
        assert result.message == "Sprint has open tasks"
        assert controller.state.phase == SprintPhase.HAS_CURRENT

    @pytest.mark.asyncio
    async def test_planned_sprint_cannot_be_ended(self, tracker, tracker_client):
        tracker.add_sprint("S9", status="PLANNED")
        controller = SprintLifecycleController(tracker_client, "P1")
        await controller.load_current()
        assert not controller.state.can_end

        result = await controller.end()

        assert not result.ok
        assert result.message == "Only an active sprint can be ended."
        assert tracker.calls_to(END) == []
        assert controller.state.sprint_id == "S9"

    @pytest.mark.asyncio
    async def test_end_requires_the_current_sprint(self, tracker, tracker_client):
        controller = SprintLifecycleController(tracker_client, "P1")
        await controller.load_current()
        result = await controller.end("S7")
        assert not result.ok
        assert tracker.calls_to(END) == []
