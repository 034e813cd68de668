"""
Board interaction models: drag payloads, move results, lanes and selections.
"""

from datetime import date
from enum import Enum
from typing import Any, Dict, List, Optional
from pydantic import BaseModel, Field

from sprintboard.models.sprint import Sprint, SprintState
from sprintboard.models.task import Task

# Keys written by the drag source, mirrored from the browser DataTransfer
TRANSFER_TASK_ID = "text/task-id"
TRANSFER_ORIGIN = "text/from"


class MoveOrigin(str, Enum):
    """Where a move was initiated. Decides which fields are sent."""
    BOARD = "board"
    BACKLOG = "backlog"
    EDITOR = "editor"


class DragPayload(BaseModel):
    """Tagged drag payload: the dragged task and the surface it came from."""
    origin: MoveOrigin = MoveOrigin.BOARD
    task_id: str = ""

    @classmethod
    def from_transfer(cls, data: Optional[Dict[str, Any]]) -> "DragPayload":
        """Read a payload from DataTransfer-style keys or plain JSON keys.

        Any origin other than ``backlog`` is treated as a board drag.
        """
        data = data or {}
        task_id = data.get(TRANSFER_TASK_ID) or data.get("task_id") or ""
        raw_origin = str(data.get(TRANSFER_ORIGIN) or data.get("origin") or "").lower()
        origin = MoveOrigin.BACKLOG if raw_origin == MoveOrigin.BACKLOG.value else MoveOrigin.BOARD
        return cls(origin=origin, task_id=str(task_id).strip())

    def to_transfer(self) -> Dict[str, str]:
        return {TRANSFER_TASK_ID: self.task_id, TRANSFER_ORIGIN: self.origin.value}

    @property
    def is_empty(self) -> bool:
        return not self.task_id


class MoveResult(BaseModel):
    """Outcome of one move call. ``ok`` is the server-confirmed flag."""
    ok: bool
    task_id: str
    status: str
    sprint_id: Optional[str] = None
    origin: MoveOrigin = MoveOrigin.BOARD
    message: str = ""


class Lane(BaseModel):
    status: str
    title: str
    tasks: List[Task] = Field(default_factory=list)

    @property
    def count(self) -> int:
        return len(self.tasks)


class OpenMode(str, Enum):
    MODAL = "modal"
    PAGE = "page"


class Selection(BaseModel):
    """What a click on a card or row opens."""
    task_id: str
    mode: OpenMode = OpenMode.MODAL
    url: str = ""


class SprintActionResult(BaseModel):
    """Result of a start/end request as shown next to the sprint button."""
    ok: bool = False
    needs_initials: bool = False
    message: str = ""
    field_error: str = ""
    sprint: Optional[Sprint] = None


class BoardSnapshot(BaseModel):
    """Board as rendered: sprint state plus its lanes at a store revision."""
    project_id: str
    revision: int
    sprint: SprintState
    lanes: List[Lane] = Field(default_factory=list)
    error: str = ""


class TaskListSnapshot(BaseModel):
    """Backlog or all-work rows at a store revision."""
    project_id: str
    collection: str
    revision: int
    tasks: List[Task] = Field(default_factory=list)
    error: str = ""
    current_sprint_id: Optional[str] = None


class DropRequest(BaseModel):
    """A drop on a lane. ``transfer`` holds the drag payload keys."""
    status: str
    transfer: Dict[str, Any] = Field(default_factory=dict)


class DropOutcome(BaseModel):
    moved: bool = False
    result: Optional[MoveResult] = None
    board: BoardSnapshot


class AddToSprintRequest(BaseModel):
    status: str = "TODO"


class AddToSprintOutcome(BaseModel):
    result: MoveResult
    backlog: TaskListSnapshot


class ClickRequest(BaseModel):
    task_id: str
    shift: bool = False


class StartSprintRequest(BaseModel):
    initials: Optional[str] = None
    start_date: Optional[date] = None
    end_date: Optional[date] = None
