"""
Task data models.
"""

from datetime import date, datetime
from enum import Enum
from typing import List, Optional
from pydantic import BaseModel, Field


class TaskStatus(str, Enum):
    """Task workflow status. Each value is one board lane."""
    TODO = "TODO"
    IN_PROGRESS = "IN_PROGRESS"
    IN_REVIEW = "IN_REVIEW"
    DONE = "DONE"
    BLOCKED = "BLOCKED"


# Lane order on the board
BOARD_STATUSES: tuple = tuple(s.value for s in TaskStatus)


class TaskPriority(str, Enum):
    """Task priority level."""
    LOW = "LOW"
    MEDIUM = "MEDIUM"
    HIGH = "HIGH"
    CRITICAL = "CRITICAL"


class TaskType(str, Enum):
    """Issue type."""
    TASK = "TASK"
    STORY = "STORY"
    BUG = "BUG"
    EPIC = "EPIC"


class Task(BaseModel):
    """Canonical task shape. Every field has a value; empty means unset."""

    id: str
    key: str
    project_id: str = ""
    title: str = ""
    description: str = ""
    # Kept as text so unknown statuses from the server survive grouping
    status: str = TaskStatus.TODO.value
    priority: TaskPriority = TaskPriority.MEDIUM
    task_type: TaskType = TaskType.TASK
    assignee: str = ""
    assignee_name: str = ""
    reporter: str = ""
    reporter_name: str = ""
    sprint: str = ""
    sprint_name: str = ""
    labels: List[str] = Field(default_factory=list)
    due_date: Optional[date] = None
    story_points: Optional[float] = None
    original_estimate: str = ""
    time_tracked: str = ""
    parent_epic: str = ""
    fix_versions: List[str] = Field(default_factory=list)
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    @property
    def labels_display(self) -> str:
        return ", ".join(self.labels)

    @property
    def fix_versions_display(self) -> str:
        return ", ".join(self.fix_versions)

    @property
    def is_backlog_item(self) -> bool:
        return not self.sprint


class TaskCreate(BaseModel):
    """Schema for creating a new issue."""
    title: str = ""
    description: str = ""
    task_type: TaskType = TaskType.TASK
    priority: TaskPriority = TaskPriority.MEDIUM
    assignee: Optional[str] = None
    parent_epic: Optional[str] = None
    labels: str = ""
    due_date: Optional[date] = None
    to_current_sprint: bool = False


class BoardUser(BaseModel):
    """Reference user used only for name lookups."""
    id: str
    name: str


class Comment(BaseModel):
    id: str = ""
    author_name: str = ""
    content: str = ""
    created_at: Optional[datetime] = None


class CommentThread(BaseModel):
    """Comments of one task. A failed load leaves ``error`` set and the list empty."""
    task_id: str
    comments: List[Comment] = Field(default_factory=list)
    error: str = ""


class Worklog(BaseModel):
    id: str = ""
    author_name: str = "User"
    hours: str = ""
    comment: str = ""
    created_at: Optional[datetime] = None


class WorklogList(BaseModel):
    task_id: str
    worklogs: List[Worklog] = Field(default_factory=list)
    error: str = ""


class CommentCreate(BaseModel):
    content: str = ""


class WorklogCreate(BaseModel):
    hours: str = ""
    comment: str = ""
