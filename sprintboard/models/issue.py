"""
Issue editor models: the editable field map and save outcomes.
"""

from enum import Enum
from typing import Dict, List, Optional, Tuple
from pydantic import BaseModel, Field

from sprintboard.models.task import Task


class IssueFields(BaseModel):
    """
    Editable fields of one issue, held the way the editor shows them.

    Lists (labels, fix versions) are comma-joined display text; dates and
    story points are text so an empty input means "unset".
    """
    title: str = ""
    description: str = ""
    status: str = "TODO"
    priority: str = "MEDIUM"
    task_type: str = "TASK"
    assignee: str = ""
    sprint: str = ""
    labels: str = ""
    due_date: str = ""
    story_points: str = ""
    original_estimate: str = ""
    parent_epic: str = ""
    fix_versions: str = ""

    @classmethod
    def from_task(cls, task: Task) -> "IssueFields":
        points = ""
        if task.story_points is not None:
            points = f"{task.story_points:g}"
        return cls(
            title=task.title,
            description=task.description,
            status=task.status,
            priority=task.priority.value,
            task_type=task.task_type.value,
            assignee=task.assignee,
            sprint=task.sprint,
            labels=task.labels_display,
            due_date=task.due_date.isoformat() if task.due_date else "",
            story_points=points,
            original_estimate=task.original_estimate,
            parent_epic=task.parent_epic,
            fix_versions=task.fix_versions_display,
        )


EDITABLE_FIELDS: Tuple[str, ...] = tuple(IssueFields.model_fields.keys())

# Fields that support inline toggle-to-edit
INLINE_FIELDS: Tuple[str, ...] = ("title", "description")


class SaveGroup(str, Enum):
    """Independent backend update calls an issue save is split into."""
    DETAILS = "details"
    ASSIGNMENT = "assignment"
    CLASSIFICATION = "classification"
    PROPERTIES = "properties"
    MOVE = "move"


GROUP_FIELDS: Dict[SaveGroup, Tuple[str, ...]] = {
    SaveGroup.DETAILS: ("title", "description"),
    SaveGroup.ASSIGNMENT: ("assignee", "due_date"),
    SaveGroup.CLASSIFICATION: ("parent_epic", "labels"),
    SaveGroup.PROPERTIES: ("task_type", "priority", "story_points", "original_estimate", "fix_versions"),
    SaveGroup.MOVE: ("status", "sprint"),
}


class GroupOutcome(BaseModel):
    group: SaveGroup
    ok: bool
    error: str = ""


class SaveResult(BaseModel):
    """Per-group record of one save attempt."""
    ok: bool
    outcomes: List[GroupOutcome] = Field(default_factory=list)
    message: str = ""

    @property
    def failed_groups(self) -> List[SaveGroup]:
        return [o.group for o in self.outcomes if not o.ok]

    @property
    def saved_groups(self) -> List[SaveGroup]:
        return [o.group for o in self.outcomes if o.ok]


class IssueUpdate(BaseModel):
    """Field edits applied to an open editor's working copy. Unset keys are left alone."""
    title: Optional[str] = None
    description: Optional[str] = None
    status: Optional[str] = None
    priority: Optional[str] = None
    task_type: Optional[str] = None
    assignee: Optional[str] = None
    sprint: Optional[str] = None
    labels: Optional[str] = None
    due_date: Optional[str] = None
    story_points: Optional[str] = None
    original_estimate: Optional[str] = None
    parent_epic: Optional[str] = None
    fix_versions: Optional[str] = None


class EditAction(str, Enum):
    BEGIN = "begin"
    COMMIT = "commit"
    CANCEL = "cancel"


class IssueView(BaseModel):
    """Editor state as shown in the issue modal or page."""
    task_id: str
    loaded: bool = False
    task: Optional[Task] = None
    working: Optional[IssueFields] = None
    dirty: bool = False
    dirty_fields: List[str] = Field(default_factory=list)
    editing: List[str] = Field(default_factory=list)
    saving: bool = False
    error: str = ""


class SaveOutcome(BaseModel):
    result: SaveResult
    issue: IssueView
