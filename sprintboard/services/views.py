"""
Board and backlog views.

Both render from the project's TaskStore and route every status or sprint
change through the shared MoveOperator. After a confirmed move they ask the
owning session to refresh; they never patch the task list locally.
"""

from typing import Awaitable, Callable, List, Optional

import structlog

from sprintboard.infrastructure.exceptions import ActionInProgressError, ValidationFailure
from sprintboard.models.board import (
    BoardSnapshot,
    DragPayload,
    Lane,
    MoveOrigin,
    MoveResult,
    OpenMode,
    Selection,
    TaskListSnapshot,
)
from sprintboard.models.task import Task, TaskStatus
from sprintboard.services.board_grouping import build_lanes
from sprintboard.services.move_operator import MoveOperator
from sprintboard.services.sprint_controller import SprintLifecycleController
from sprintboard.services.task_store import BACKLOG, BOARD, TaskStore

logger = structlog.get_logger(__name__)

Refresh = Callable[[str], Awaitable[None]]


def task_page_url(project_id: str, task_id: str) -> str:
    return f"/projects/{project_id}/tasks/{task_id}"


def click_selection(project_id: str, task_id: str, shift: bool = False) -> Selection:
    """A plain click opens the editor in place; shift-click opens the task page."""
    if shift:
        return Selection(task_id=task_id, mode=OpenMode.PAGE, url=task_page_url(project_id, task_id))
    return Selection(task_id=task_id, mode=OpenMode.MODAL)


class BoardView:
    """Status lanes of the current sprint, plus drop handling."""

    def __init__(
        self,
        project_id: str,
        store: TaskStore,
        sprints: SprintLifecycleController,
        mover: MoveOperator,
        refresh: Refresh,
    ):
        self.project_id = project_id
        self.store = store
        self.sprints = sprints
        self.mover = mover
        self.refresh = refresh

    def lanes(self) -> List[Lane]:
        return build_lanes(self.store.tasks(BOARD))

    @property
    def error(self) -> str:
        return self.store.error(BOARD)

    def snapshot(self) -> BoardSnapshot:
        return BoardSnapshot(
            project_id=self.project_id,
            revision=self.store.revision,
            sprint=self.sprints.state,
            lanes=self.lanes(),
            error=self.error,
        )

    async def drop(self, lane_status: str, payload: DragPayload) -> Optional[MoveResult]:
        """
        Handle a drop on a lane.

        Returns None when the payload carries no task. A card dragged in from
        the backlog joins the current sprint; a card moved between lanes only
        changes status.
        """
        if payload.is_empty:
            logger.debug("drop_ignored", project_id=self.project_id, lane=lane_status)
            return None

        if payload.origin == MoveOrigin.BACKLOG:
            result = await self.mover.move(
                payload.task_id,
                lane_status,
                self.sprints.state.sprint_id,
                origin=MoveOrigin.BACKLOG,
            )
        else:
            result = await self.mover.move(payload.task_id, lane_status, origin=MoveOrigin.BOARD)

        if result.ok:
            await self.refresh("board_drop")
        return result

    def click(self, task_id: str, shift: bool = False) -> Selection:
        return click_selection(self.project_id, task_id, shift)


class BacklogView:
    """Tasks outside any sprint."""

    def __init__(
        self,
        project_id: str,
        store: TaskStore,
        sprints: SprintLifecycleController,
        mover: MoveOperator,
        refresh: Refresh,
    ):
        self.project_id = project_id
        self.store = store
        self.sprints = sprints
        self.mover = mover
        self.refresh = refresh

    def rows(self) -> List[Task]:
        return self.store.tasks(BACKLOG)

    @property
    def error(self) -> str:
        return self.store.error(BACKLOG)

    def snapshot(self) -> TaskListSnapshot:
        return TaskListSnapshot(
            project_id=self.project_id,
            collection=BACKLOG,
            revision=self.store.revision,
            tasks=self.rows(),
            error=self.error,
            current_sprint_id=self.sprints.state.sprint_id,
        )

    def drag_start(self, task_id: str) -> DragPayload:
        """Payload for picking up a row. A row whose move is still in flight stays put."""
        try:
            self.store.find(task_id)
        except KeyError:
            raise ValidationFailure(f"Unknown task '{task_id}'", field="task_id")
        if self.mover.is_moving(task_id):
            raise ActionInProgressError("move_task", task_id)
        return DragPayload(origin=MoveOrigin.BACKLOG, task_id=task_id)

    async def add_to_sprint(self, task_id: str, status: str = TaskStatus.TODO.value) -> MoveResult:
        result = await self.mover.add_to_sprint(task_id, self.sprints.state.sprint_id, status)
        if result.ok:
            await self.refresh("backlog_add_to_sprint")
        return result

    def click(self, task_id: str, shift: bool = False) -> Selection:
        return click_selection(self.project_id, task_id, shift)
