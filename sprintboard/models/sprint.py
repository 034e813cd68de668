"""
Sprint data models.
"""

from datetime import date
from enum import Enum
from typing import Optional
from pydantic import BaseModel, computed_field


class SprintStatus(str, Enum):
    """Sprint lifecycle status as reported by the tracker."""
    PLANNED = "PLANNED"
    ACTIVE = "ACTIVE"
    COMPLETED = "COMPLETED"


class SprintPhase(str, Enum):
    """Client-side view of whether the project has a current sprint."""
    NO_SPRINT = "NO_SPRINT"
    HAS_CURRENT = "HAS_CURRENT"


class Sprint(BaseModel):
    """Sprint record. ``status`` stays raw text; only ACTIVE means running."""
    id: str
    name: str = ""
    status: str = SprintStatus.PLANNED.value
    project_id: str = ""
    start_date: Optional[date] = None
    end_date: Optional[date] = None

    @property
    def is_active(self) -> bool:
        return self.status.upper() == SprintStatus.ACTIVE.value


class SprintState(BaseModel):
    """
    Snapshot of the lifecycle controller.

    "Current" and "active" are separate facts: the tracker may return a
    PLANNED sprint as current, in which case ``active`` is False.
    """
    phase: SprintPhase = SprintPhase.NO_SPRINT
    sprint: Optional[Sprint] = None
    active: bool = False
    error: str = ""
    loading: bool = False
    needs_initials: bool = False

    @property
    def sprint_id(self) -> Optional[str]:
        return self.sprint.id if self.sprint else None

    @computed_field
    @property
    def can_start(self) -> bool:
        if self.phase == SprintPhase.NO_SPRINT or self.sprint is None:
            return True
        return self.sprint.status.upper() == SprintStatus.PLANNED.value

    @computed_field
    @property
    def can_end(self) -> bool:
        return self.phase == SprintPhase.HAS_CURRENT and self.active
