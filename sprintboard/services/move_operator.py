"""
Move/transition operator.

The one way a task's status or sprint membership changes. Drag-and-drop,
the backlog "add to sprint" action and the issue editor all call ``move``
and observe the same post-condition: nothing local changes here, the caller
reloads from the tracker after a confirmed move.
"""

from typing import Optional, Set

import structlog

from sprintboard.infrastructure.exceptions import (
    ActionInProgressError,
    TrackerResponseError,
    TrackerTransportError,
    ValidationFailure,
    display_message,
)
from sprintboard.models.board import MoveOrigin, MoveResult
from sprintboard.models.task import BOARD_STATUSES, TaskStatus
from sprintboard.services.tracker_client import TrackerClient

logger = structlog.get_logger(__name__)


class MoveOperator:
    """Issues task moves against the tracker, one in flight per task."""

    def __init__(self, client: TrackerClient):
        self.client = client
        self._in_flight: Set[str] = set()

    def is_moving(self, task_id: str) -> bool:
        return task_id in self._in_flight

    async def move(
        self,
        task_id: str,
        new_status: str,
        new_sprint_id: Optional[str] = None,
        origin: MoveOrigin = MoveOrigin.BOARD,
    ) -> MoveResult:
        """
        Move a task.

        - BOARD: only the status is sent; sprint membership is untouched.
        - BACKLOG: status and ``new_sprint_id`` (the current sprint) are sent;
          a missing sprint is a validation failure.
        - EDITOR: status and sprint are sent; an empty sprint moves the task
          back to the backlog.

        A rejected move returns ``ok=False`` with the tracker's message.
        """
        if not task_id:
            raise ValidationFailure("A task is required to move", field="task_id")
        status = (new_status or "").upper()
        if status not in BOARD_STATUSES:
            raise ValidationFailure(f"Unknown status '{new_status}'", field="status")
        if origin == MoveOrigin.BACKLOG and not new_sprint_id:
            raise ValidationFailure("No active sprint to add into.", field="sprint_id")
        if task_id in self._in_flight:
            raise ActionInProgressError("move_task", task_id)

        include_sprint = origin != MoveOrigin.BOARD
        sprint_id = (new_sprint_id or None) if include_sprint else None

        self._in_flight.add(task_id)
        try:
            await self.client.move_task(
                task_id,
                status,
                sprint_id=sprint_id,
                include_sprint=include_sprint,
            )
        except (TrackerResponseError, TrackerTransportError) as e:
            message = display_message(e, "Failed to move task")
            logger.warning(
                "task_move_failed",
                task_id=task_id,
                status=status,
                sprint_id=sprint_id,
                origin=origin.value,
                error=message,
            )
            return MoveResult(
                ok=False,
                task_id=task_id,
                status=status,
                sprint_id=sprint_id,
                origin=origin,
                message=message,
            )
        finally:
            self._in_flight.discard(task_id)

        logger.info(
            "task_moved",
            task_id=task_id,
            status=status,
            sprint_id=sprint_id,
            origin=origin.value,
        )
        return MoveResult(ok=True, task_id=task_id, status=status, sprint_id=sprint_id, origin=origin)

    async def add_to_sprint(
        self,
        task_id: str,
        sprint_id: Optional[str],
        status: str = TaskStatus.TODO.value,
    ) -> MoveResult:
        """Backlog shortcut: place a task into the current sprint, TODO by default."""
        return await self.move(task_id, status, sprint_id, origin=MoveOrigin.BACKLOG)
