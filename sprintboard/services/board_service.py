"""
Board session service.

One BoardSession per project wires the engine together: the task store,
reference lookups, the sprint lifecycle controller, the move operator, the
board/backlog views and any open issue editors. Every mutation ends in
``refresh()``, which bumps the store revision and refetches the collections.
"""

import asyncio
import time
from functools import lru_cache
from typing import Dict, List, Optional

import structlog

from sprintboard.infrastructure.config import Settings, get_settings
from sprintboard.infrastructure.exceptions import (
    IssueNotLoadedError,
    SprintBoardException,
    ValidationFailure,
    display_message,
)
from sprintboard.models.board import SprintActionResult, TaskListSnapshot
from sprintboard.models.sprint import Sprint, SprintPhase, SprintState
from sprintboard.models.task import (
    BoardUser,
    CommentThread,
    Task,
    TaskCreate,
    TaskStatus,
    TaskType,
    WorklogList,
)
from sprintboard.services.issue_editor import IssueEditor
from sprintboard.services.move_operator import MoveOperator
from sprintboard.services.sprint_controller import SprintLifecycleController
from sprintboard.services.task_accessor import (
    ReferenceData,
    normalize_comment,
    normalize_task,
    normalize_worklog,
    split_list,
)
from sprintboard.services.task_store import ALL_WORK, BACKLOG, BOARD, TaskStore
from sprintboard.services.tracker_client import TrackerClient, get_tracker_client
from sprintboard.services.views import BacklogView, BoardView

logger = structlog.get_logger(__name__)


class BoardSession:
    """Engine state for one project."""

    def __init__(
        self,
        project_id: str,
        client: TrackerClient,
        settings: Optional[Settings] = None,
    ):
        self.project_id = project_id
        self.client = client
        self.settings = settings or get_settings()

        self.store = TaskStore()
        self.lookup = ReferenceData()
        self.sprints = SprintLifecycleController(client, project_id, lookup=self.lookup)
        self.mover = MoveOperator(client)
        self.board = BoardView(project_id, self.store, self.sprints, self.mover, self.refresh)
        self.backlog = BacklogView(project_id, self.store, self.sprints, self.mover, self.refresh)
        self.editors: Dict[str, IssueEditor] = {}
        self.reference_error = ""

        self.sprints.subscribe(self._on_sprint_changed)

    def _on_sprint_changed(self, state: SprintState) -> None:
        # Lane contents only mean something for the current sprint
        if state.phase == SprintPhase.NO_SPRINT:
            self.store.clear(BOARD)

    # ============================================
    # LOADING
    # ============================================

    async def load(self) -> None:
        """Initial load: reference data, current sprint, then every collection."""
        await self.load_reference()
        await self.sprints.load_current()
        await self.reload_all()

    async def load_reference(self) -> None:
        """Users and sprints for name lookups. Failures keep the previous lists."""
        self.reference_error = ""
        try:
            users, sprints = await asyncio.gather(
                self.client.list_users(),
                self.client.list_sprints(self.project_id, page_size=self.settings.sprint_list_page_size),
            )
        except SprintBoardException as e:
            logger.warning("reference_load_failed", project_id=self.project_id, error=e.message)
            self.reference_error = display_message(e, "Failed to load users")
            return
        self.lookup.set_users(users)
        self.lookup.set_sprints(sprints)
        if self.sprints.state.sprint:
            self.lookup.remember_sprint(self.sprints.state.sprint)

    async def reload_sprint(self) -> SprintState:
        state = await self.sprints.load_current()
        await self.reload_board()
        return state

    async def reload_board(self) -> List[Task]:
        ticket = self.store.begin_fetch(BOARD)
        sprint_id = self.sprints.state.sprint_id
        if not sprint_id:
            self.store.apply(ticket, [])
            return []

        try:
            records = await self.client.list_sprint_tasks(sprint_id)
        except SprintBoardException as e:
            logger.warning("board_load_failed", sprint_id=sprint_id, error=e.message)
            self.store.apply(ticket, [], error=display_message(e, "Failed to load tasks"))
            return []

        tasks = [
            normalize_task(r, defaults={"sprint_id": sprint_id}, lookup=self.lookup)
            for r in records
        ]
        tasks = [t for t in tasks if t.sprint == sprint_id]
        self.store.apply(ticket, tasks)
        return tasks

    async def reload_backlog(self) -> List[Task]:
        ticket = self.store.begin_fetch(BACKLOG)
        try:
            records = await self.client.list_backlog(
                self.project_id, page_size=self.settings.backlog_page_size
            )
        except SprintBoardException as e:
            logger.warning("backlog_load_failed", project_id=self.project_id, error=e.message)
            self.store.apply(ticket, [], error=display_message(e, "Failed to load backlog"))
            return []

        tasks = [normalize_task(r, lookup=self.lookup) for r in records]
        tasks = [t for t in tasks if t.is_backlog_item]
        self.store.apply(ticket, tasks)
        return tasks

    async def reload_work(self) -> List[Task]:
        ticket = self.store.begin_fetch(ALL_WORK)
        try:
            records = await self.client.list_project_tasks(
                self.project_id, page_size=self.settings.backlog_page_size
            )
        except SprintBoardException as e:
            logger.warning("work_load_failed", project_id=self.project_id, error=e.message)
            self.store.apply(ticket, [], error=display_message(e, "Failed to load tasks"))
            return []

        tasks = [normalize_task(r, lookup=self.lookup) for r in records]
        self.store.apply(ticket, tasks)
        return tasks

    async def reload_all(self) -> None:
        await asyncio.gather(self.reload_board(), self.reload_backlog(), self.reload_work())

    def work_snapshot(self) -> TaskListSnapshot:
        return TaskListSnapshot(
            project_id=self.project_id,
            collection=ALL_WORK,
            revision=self.store.revision,
            tasks=self.store.tasks(ALL_WORK),
            error=self.store.error(ALL_WORK),
            current_sprint_id=self.sprints.state.sprint_id,
        )

    async def refresh(self, reason: str = "") -> None:
        """Invalidate the store and refetch every collection."""
        self.store.invalidate(reason)
        await self.reload_all()

    # ============================================
    # SPRINT ACTIONS
    # ============================================

    async def start_sprint(
        self,
        initials: Optional[str] = None,
        start_date: Optional[str] = None,
        end_date: Optional[str] = None,
    ) -> SprintActionResult:
        result = await self.sprints.start(initials=initials, start_date=start_date, end_date=end_date)
        if result.ok:
            await self.refresh("sprint_started")
        return result

    async def end_sprint(self) -> SprintActionResult:
        result = await self.sprints.end()
        if result.ok:
            await self.refresh("sprint_ended")
        return result

    def sprint_options(self) -> List[Sprint]:
        return list(self.lookup.sprints.values())

    def users(self) -> List[BoardUser]:
        return list(self.lookup.users.values())

    # ============================================
    # ISSUE EDITORS
    # ============================================

    async def open_issue(self, task_id: str) -> IssueEditor:
        """Open (or return) the editor for a task. A dirty editor is not reloaded."""
        editor = self.editors.get(task_id)
        if editor is None:
            editor = IssueEditor(
                self.client,
                self.mover,
                task_id,
                project_id=self.project_id,
                lookup=self.lookup,
                on_changed=self._issue_changed,
                send_unchanged_groups=self.settings.editor_send_unchanged_groups,
            )
            self.editors[task_id] = editor
        if not editor.is_dirty:
            await editor.load()
        return editor

    def editor(self, task_id: str) -> IssueEditor:
        editor = self.editors.get(task_id)
        if editor is None or not editor.loaded:
            raise IssueNotLoadedError(task_id)
        return editor

    def close_issue(self, task_id: str) -> None:
        self.editors.pop(task_id, None)

    @property
    def has_unsaved_edits(self) -> bool:
        return any(editor.is_dirty for editor in self.editors.values())

    async def _issue_changed(self) -> None:
        await self.refresh("issue_saved")

    async def create_issue(self, data: TaskCreate) -> Optional[Task]:
        """Create a task, story, bug or epic and refresh the collections."""
        if not self.project_id:
            raise ValidationFailure("Project is missing", field="project_id")
        title = data.title.strip()
        if not title:
            raise ValidationFailure("Title is required.", field="title")

        if data.task_type == TaskType.EPIC:
            record = await self.client.create_epic(self.project_id, title, data.description)
        else:
            sprint_id = None
            if data.to_current_sprint:
                sprint_id = self.sprints.state.sprint_id
                if not sprint_id:
                    raise ValidationFailure("No active sprint to add into.", field="sprint_id")
            record = await self.client.create_task({
                "project_id": self.project_id,
                "title": title,
                "description": data.description,
                "task_type": data.task_type.value,
                "priority": data.priority.value,
                "status": TaskStatus.TODO.value,
                "assigned_to": data.assignee or None,
                "epic": data.parent_epic or None,
                "labels": split_list(data.labels),
                "due_date": data.due_date.isoformat() if data.due_date else None,
                "sprint_id": sprint_id,
            })

        logger.info(
            "issue_created",
            project_id=self.project_id,
            task_type=data.task_type.value,
            task_id=record.get("id"),
        )
        await self.refresh("issue_created")
        if not record.get("id"):
            return None
        return normalize_task(
            record,
            defaults={"project_id": self.project_id, "title": title, "task_type": data.task_type.value},
            lookup=self.lookup,
        )

    # ============================================
    # COMMENTS & WORKLOGS
    # ============================================

    async def list_comments(self, task_id: str) -> CommentThread:
        try:
            records = await self.client.list_comments(
                task_id,
                sprint_id=self.sprints.state.sprint_id,
                page_size=self.settings.comments_page_size,
            )
        except SprintBoardException as e:
            logger.warning("comments_load_failed", task_id=task_id, error=e.message)
            return CommentThread(task_id=task_id, error=display_message(e, "Failed to load comments"))
        return CommentThread(
            task_id=task_id,
            comments=[normalize_comment(r, self.lookup) for r in records],
        )

    async def add_comment(self, task_id: str, content: str) -> CommentThread:
        text = (content or "").strip()
        if not text:
            raise ValidationFailure("Comment cannot be empty", field="content")
        await self.client.add_comment(task_id, text)
        return await self.list_comments(task_id)

    async def list_worklogs(self, task_id: str) -> WorklogList:
        try:
            records = await self.client.list_worklogs(task_id)
        except SprintBoardException as e:
            logger.warning("worklogs_load_failed", task_id=task_id, error=e.message)
            return WorklogList(task_id=task_id, error=display_message(e, "Failed to load worklogs"))
        return WorklogList(task_id=task_id, worklogs=[normalize_worklog(r) for r in records])

    async def add_worklog(self, task_id: str, hours: str, comment: str = "") -> WorklogList:
        hours = (hours or "").strip()
        if not hours:
            raise ValidationFailure("Hours are required", field="hours")
        await self.client.add_worklog(task_id, hours, comment or "")
        return await self.list_worklogs(task_id)


class BoardRegistry:
    """
    Lazily created, loaded BoardSessions keyed by project id.

    Loaded sessions are returned without locking. First loads are serialized
    per project so concurrent requests share one load. Sessions idle longer
    than ``session_idle_seconds`` are evicted unless an editor holds unsaved
    edits; 0 keeps sessions forever.
    """

    def __init__(self, client: Optional[TrackerClient] = None, settings: Optional[Settings] = None):
        self._client = client
        self.settings = settings or get_settings()
        self._sessions: Dict[str, BoardSession] = {}
        self._last_used: Dict[str, float] = {}
        self._locks: Dict[str, asyncio.Lock] = {}

    @property
    def client(self) -> TrackerClient:
        if self._client is None:
            self._client = get_tracker_client()
        return self._client

    async def get(self, project_id: str) -> BoardSession:
        session = self._sessions.get(project_id)
        if session is None:
            session = await self._create(project_id)
        self._last_used[project_id] = time.monotonic()
        self.evict_idle()
        return session

    async def _create(self, project_id: str) -> BoardSession:
        lock = self._locks.setdefault(project_id, asyncio.Lock())
        async with lock:
            session = self._sessions.get(project_id)
            if session is None:
                session = BoardSession(project_id, self.client, self.settings)
                await session.load()
                self._sessions[project_id] = session
                logger.info("board_session_created", project_id=project_id)
            return session

    def evict_idle(self, now: Optional[float] = None) -> List[str]:
        ttl = self.settings.session_idle_seconds
        if ttl <= 0:
            return []
        now = time.monotonic() if now is None else now
        stale = [
            project_id for project_id, used in self._last_used.items()
            if now - used > ttl and not self._sessions[project_id].has_unsaved_edits
        ]
        for project_id in stale:
            self.drop(project_id)
        if stale:
            logger.info("board_sessions_evicted", project_ids=stale)
        return stale

    def drop(self, project_id: str) -> None:
        self._sessions.pop(project_id, None)
        self._last_used.pop(project_id, None)
        self._locks.pop(project_id, None)

    def __len__(self) -> int:
        return len(self._sessions)

@lru_cache()
def get_board_registry() -> BoardRegistry:
    """Get the shared board registry."""
    return BoardRegistry()
