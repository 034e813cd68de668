"""
Tests for the issue editor and its dirty-diff save pipeline.
"""
import pytest
from unittest.mock import AsyncMock

from sprintboard.infrastructure.exceptions import IssueNotLoadedError, ValidationFailure
from sprintboard.models.issue import SaveGroup
from sprintboard.services.issue_editor import IssueEditor
from sprintboard.services.move_operator import MoveOperator

DETAILS = "/projects/task/update/details/"
ASSIGNMENT = "/projects/task/update/assignment/"
CLASSIFICATION = "/projects/task/update/classification/"
PROPERTIES = "/projects/task/update/properties/"
MOVE = "/projects/task/move/"
UPDATE_PATHS = (DETAILS, ASSIGNMENT, CLASSIFICATION, PROPERTIES, MOVE)


def sent_paths(tracker):
    return [p for p in tracker.paths() if p in UPDATE_PATHS]


@pytest.fixture
def on_changed():
    return AsyncMock()


@pytest.fixture
async def editor(tracker_client, on_changed):
    issue = IssueEditor(
        tracker_client,
        MoveOperator(tracker_client),
        "T1",
        project_id="P1",
        on_changed=on_changed,
    )
    assert await issue.load()
    return issue


class TestLoad:

    @pytest.mark.asyncio
    async def test_load_populates_both_copies(self, editor):
        assert editor.loaded
        assert editor.pristine.title == "Wire up login"
        assert editor.working == editor.pristine
        assert editor.pristine.status == "IN_PROGRESS"
        assert editor.pristine.sprint == "S1"
        assert not editor.is_dirty

    @pytest.mark.asyncio
    async def test_load_failure_leaves_editor_unloaded(self, tracker_client):
        issue = IssueEditor(tracker_client, MoveOperator(tracker_client), "T404")
        assert not await issue.load()
        assert not issue.loaded
        assert issue.error == "Task not found"
        with pytest.raises(IssueNotLoadedError):
            issue.set_field("title", "x")


class TestDirtyTracking:

    @pytest.mark.asyncio
    async def test_single_field_toggles_dirty(self, editor):
        editor.set_field("title", "Wire up SSO login")
        assert editor.is_dirty
        assert editor.dirty_fields() == ["title"]
        assert editor.dirty_groups() == [SaveGroup.DETAILS]

        editor.set_field("title", "Wire up login")
        assert not editor.is_dirty

    @pytest.mark.asyncio
    async def test_groups_follow_fields(self, editor):
        editor.set_fields({"labels": "ui", "status": "done", "priority": "high"})
        assert editor.dirty_groups() == [SaveGroup.CLASSIFICATION, SaveGroup.PROPERTIES, SaveGroup.MOVE]
        assert editor.working.status == "DONE"

    @pytest.mark.asyncio
    async def test_field_validation(self, editor):
        with pytest.raises(ValidationFailure):
            editor.set_field("key", "X-1")
        with pytest.raises(ValidationFailure):
            editor.set_field("status", "SHIPPED")
        with pytest.raises(ValidationFailure):
            editor.set_field("priority", "URGENT")
        with pytest.raises(ValidationFailure):
            editor.set_field("story_points", "-2")
        with pytest.raises(ValidationFailure):
            editor.set_field("due_date", "next week")
        assert not editor.is_dirty

    @pytest.mark.asyncio
    async def test_rejected_batch_applies_nothing(self, editor):
        with pytest.raises(ValidationFailure) as exc_info:
            editor.set_fields({"title": "Changed", "priority": "BOGUS"})
        assert exc_info.value.field == "priority"
        assert editor.working.title == "Wire up login"
        assert not editor.is_dirty


class TestInlineEdit:

    @pytest.mark.asyncio
    async def test_escape_reverts_without_network(self, tracker, editor):
        calls_before = len(tracker.calls)
        editor.begin_edit("title")
        editor.set_field("title", "Half typed")
        editor.handle_key("title", "Escape")

        assert editor.working.title == "Wire up login"
        assert "title" not in editor.editing
        assert not editor.is_dirty
        assert len(tracker.calls) == calls_before

    @pytest.mark.asyncio
    async def test_enter_keeps_value(self, editor):
        editor.begin_edit("description")
        editor.set_field("description", "Use the OAuth flow")
        editor.handle_key("description", "Enter")
        assert editor.editing == set()
        assert editor.working.description == "Use the OAuth flow"
        assert editor.is_dirty

    @pytest.mark.asyncio
    async def test_only_title_and_description_are_inline(self, editor):
        with pytest.raises(ValidationFailure):
            editor.begin_edit("labels")


class TestSave:

    @pytest.mark.asyncio
    async def test_title_only_save_skips_move(self, tracker, editor, on_changed):
        editor.set_field("title", "Wire up SSO login")

        result = await editor.save()

        assert result.ok
        assert result.saved_groups == [SaveGroup.DETAILS]
        assert sent_paths(tracker) == [DETAILS]
        assert tracker.tasks["T1"]["title"] == "Wire up SSO login"
        assert tracker.tasks["T1"]["status"] == "IN_PROGRESS"
        assert tracker.tasks["T1"]["sprint_id"] == "S1"
        assert not editor.is_dirty
        on_changed.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_send_unchanged_groups(self, tracker, editor):
        editor.send_unchanged_groups = True
        editor.set_field("title", "Wire up SSO login")

        result = await editor.save()

        assert result.ok
        assert sorted(sent_paths(tracker)) == sorted([DETAILS, ASSIGNMENT, CLASSIFICATION])

    @pytest.mark.asyncio
    async def test_status_change_goes_through_move(self, tracker, editor):
        editor.set_field("status", "DONE")

        result = await editor.save()

        assert result.ok
        assert sent_paths(tracker) == [MOVE]
        assert tracker.calls_to(MOVE)[0] == {"id": "T1", "status": "DONE", "sprint_id": "S1"}
        assert tracker.tasks["T1"]["status"] == "DONE"

    @pytest.mark.asyncio
    async def test_move_runs_after_other_groups(self, tracker, editor):
        editor.set_fields({"title": "Renamed", "sprint": ""})
        await editor.save()
        assert sent_paths(tracker)[-1] == MOVE
        assert tracker.tasks["T1"]["sprint_id"] is None

    @pytest.mark.asyncio
    async def test_lists_and_points_are_parsed(self, tracker, editor):
        editor.set_fields({
            "labels": "auth, backend,, ",
            "story_points": "3",
            "fix_versions": "1.2",
        })

        result = await editor.save()

        assert result.ok
        assert tracker.calls_to(CLASSIFICATION)[0]["labels"] == ["auth", "backend"]
        properties = tracker.calls_to(PROPERTIES)[0]
        assert properties["story_points"] == 3.0
        assert properties["fix_versions"] == ["1.2"]

    @pytest.mark.asyncio
    async def test_partial_failure_keeps_failed_fields_dirty(self, tracker, editor, on_changed):
        tracker.reject(CLASSIFICATION, "Epic does not exist")
        editor.set_fields({"title": "Wire up SSO login", "labels": "auth"})

        result = await editor.save()

        assert not result.ok
        assert result.message == "Failed to save"
        assert result.saved_groups == [SaveGroup.DETAILS]
        assert result.failed_groups == [SaveGroup.CLASSIFICATION]
        assert editor.dirty_fields() == ["labels"]
        assert editor.error == "Failed to save"
        on_changed.assert_awaited_once()

        tracker.rejections.clear()
        tracker.calls.clear()
        retry = await editor.save()
        assert retry.ok
        assert sent_paths(tracker) == [CLASSIFICATION]
        assert not editor.is_dirty

    @pytest.mark.asyncio
    async def test_failed_move_is_reported(self, tracker, editor, on_changed):
        tracker.reject(MOVE, "Transition not allowed")
        editor.set_field("status", "DONE")

        result = await editor.save()

        assert not result.ok
        assert result.failed_groups == [SaveGroup.MOVE]
        assert result.outcomes[0].error == "Transition not allowed"
        assert editor.is_dirty
        on_changed.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_empty_title_is_rejected_locally(self, tracker, editor):
        editor.set_field("title", "   ")
        with pytest.raises(ValidationFailure) as exc_info:
            await editor.save()
        assert exc_info.value.field == "title"
        assert sent_paths(tracker) == []

    @pytest.mark.asyncio
    async def test_nothing_to_save(self, tracker, editor, on_changed):
        result = await editor.save()
        assert result.ok
        assert result.message == "No changes"
        assert sent_paths(tracker) == []
        on_changed.assert_not_awaited()
