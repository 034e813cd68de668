# Data models
from sprintboard.models.sprint import Sprint, SprintPhase, SprintState, SprintStatus
from sprintboard.models.task import (
    BOARD_STATUSES, Task, TaskCreate, TaskStatus, TaskPriority, TaskType,
    BoardUser, Comment, CommentThread, Worklog, WorklogList,
)
from sprintboard.models.board import (
    MoveOrigin, DragPayload, MoveResult, Lane, OpenMode, Selection, SprintActionResult,
    BoardSnapshot, TaskListSnapshot,
)
from sprintboard.models.issue import IssueFields, SaveGroup, GroupOutcome, SaveResult, IssueView

__all__ = [
    "Sprint", "SprintPhase", "SprintState", "SprintStatus",
    "BOARD_STATUSES", "Task", "TaskCreate", "TaskStatus", "TaskPriority", "TaskType",
    "BoardUser", "Comment", "CommentThread", "Worklog", "WorklogList",
    "MoveOrigin", "DragPayload", "MoveResult", "Lane", "OpenMode", "Selection", "SprintActionResult",
    "BoardSnapshot", "TaskListSnapshot",
    "IssueFields", "SaveGroup", "GroupOutcome", "SaveResult", "IssueView",
]
