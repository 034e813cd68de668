"""
Task entity accessor.

Turns raw tracker records into canonical ``Task`` objects with every field
defaulted, and resolves display names for users and sprints from the
currently loaded reference lists.
"""

from datetime import date, datetime
from typing import Any, Dict, Iterable, List, Optional

import structlog

from sprintboard.models.sprint import Sprint, SprintStatus
from sprintboard.models.task import BoardUser, Comment, Task, TaskPriority, TaskStatus, TaskType, Worklog

logger = structlog.get_logger(__name__)

UNASSIGNED = "Unassigned"
NO_SPRINT = "No Sprint"


def _text(value: Any) -> str:
    if value is None:
        return ""
    return str(value).strip() if not isinstance(value, str) else value


def _ref(value: Any) -> str:
    """Normalize an id reference, which may arrive as an int, str or nested dict."""
    if isinstance(value, dict):
        value = value.get("id")
    return "" if value is None else str(value).strip()


def split_list(value: Any) -> List[str]:
    """Accept a list or comma-joined text; return trimmed, non-empty entries in order."""
    if value is None:
        return []
    if isinstance(value, (list, tuple)):
        items = [_text(v).strip() for v in value]
    else:
        items = [part.strip() for part in str(value).split(",")]

    seen = set()
    result = []
    for item in items:
        if item and item not in seen:
            seen.add(item)
            result.append(item)
    return result


def join_list(items: Iterable[str]) -> str:
    return ", ".join(items)


def parse_date(value: Any) -> Optional[date]:
    if not value:
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    try:
        return date.fromisoformat(str(value)[:10])
    except ValueError:
        return None


def parse_datetime(value: Any) -> Optional[datetime]:
    if not value:
        return None
    if isinstance(value, datetime):
        return value
    try:
        return datetime.fromisoformat(str(value).replace("Z", "+00:00"))
    except ValueError:
        return None


def parse_points(value: Any) -> Optional[float]:
    """Story points are a non-negative number or empty."""
    if value is None or value == "":
        return None
    try:
        points = float(value)
    except (TypeError, ValueError):
        return None
    return points if points >= 0 else None


def _enum_value(enum_cls, value: Any, default):
    text = _text(value).upper()
    try:
        return enum_cls(text)
    except ValueError:
        return default


def normalize_task(
    raw: Dict[str, Any],
    defaults: Optional[Dict[str, Any]] = None,
    lookup: Optional["ReferenceData"] = None,
) -> Task:
    """
    Build a canonical Task from a raw tracker record.

    ``defaults`` fills keys the record leaves out (a sprint task listing may
    omit ``sprint_id``, for example). ``lookup`` resolves assignee, reporter
    and sprint names when the record does not carry them.
    """
    data = dict(defaults or {})
    data.update({k: v for k, v in (raw or {}).items() if v is not None})

    task_id = _ref(data.get("id") or data.get("pk"))
    key = _text(data.get("key") or data.get("code"))
    if not key and task_id:
        key = f"TASK-{task_id}"

    status = _text(data.get("status")).upper() or TaskStatus.TODO.value
    assignee = _ref(data.get("assigned_to") or data.get("assignee"))
    reporter = _ref(data.get("reporter") or data.get("created_by"))
    sprint = _ref(data.get("sprint_id") or data.get("sprint"))

    assignee_name = _text(data.get("assignee_name"))
    reporter_name = _text(data.get("reporter_name"))
    sprint_name = _text(data.get("sprint_name"))
    if lookup is not None:
        assignee_name = assignee_name or lookup.resolve_user_name(assignee)
        if reporter:
            reporter_name = reporter_name or lookup.resolve_user_name(reporter)
        sprint_name = sprint_name or lookup.resolve_sprint_name(sprint)
    else:
        assignee_name = assignee_name or (UNASSIGNED if not assignee else "")
        sprint_name = sprint_name or (NO_SPRINT if not sprint else "")

    return Task(
        id=task_id,
        key=key,
        project_id=_ref(data.get("project_id") or data.get("project")),
        title=_text(data.get("title")),
        description=_text(data.get("description")),
        status=status,
        priority=_enum_value(TaskPriority, data.get("priority"), TaskPriority.MEDIUM),
        task_type=_enum_value(TaskType, data.get("task_type") or data.get("type"), TaskType.TASK),
        assignee=assignee,
        assignee_name=assignee_name,
        reporter=reporter,
        reporter_name=reporter_name,
        sprint=sprint,
        sprint_name=sprint_name,
        labels=split_list(data.get("labels")),
        due_date=parse_date(data.get("due_date")),
        story_points=parse_points(data.get("story_points")),
        original_estimate=_text(data.get("original_estimate")),
        time_tracked=_text(data.get("time_logged") or data.get("time_tracked")),
        parent_epic=_ref(data.get("epic") or data.get("parent")),
        fix_versions=split_list(data.get("fix_versions")),
        created_at=parse_datetime(data.get("created_at")),
        updated_at=parse_datetime(data.get("updated_at")),
    )


def normalize_sprint(raw: Dict[str, Any]) -> Sprint:
    return Sprint(
        id=_ref(raw.get("id")),
        name=_text(raw.get("name")),
        status=_text(raw.get("status")).upper() or SprintStatus.PLANNED.value,
        project_id=_ref(raw.get("project_id") or raw.get("project")),
        start_date=parse_date(raw.get("start_date")),
        end_date=parse_date(raw.get("end_date")),
    )


def normalize_comment(raw: Dict[str, Any], lookup: Optional["ReferenceData"] = None) -> Comment:
    author = _text(raw.get("comment_by_name") or raw.get("author_name"))
    if not author and lookup is not None:
        author_id = _ref(raw.get("comment_by") or raw.get("user"))
        author = lookup.resolve_user_name(author_id) if author_id else ""
    return Comment(
        id=_ref(raw.get("id")),
        author_name=author,
        content=_text(raw.get("content")),
        created_at=parse_datetime(raw.get("created_at")),
    )


def normalize_worklog(raw: Dict[str, Any]) -> Worklog:
    return Worklog(
        id=_ref(raw.get("id")),
        author_name=_text(raw.get("author_name")) or "User",
        hours=_text(raw.get("time_spent_readable") or raw.get("hours")),
        comment=_text(raw.get("comment")),
        created_at=parse_datetime(raw.get("created_at")),
    )


def user_from_record(raw: Dict[str, Any]) -> Optional[BoardUser]:
    """Build a lookup user; name falls back name -> username -> email."""
    user_id = _ref(raw.get("id") or raw.get("user_id") or raw.get("pk"))
    name = _text(raw.get("name") or raw.get("username") or raw.get("email"))
    if not user_id or not name:
        return None
    return BoardUser(id=user_id, name=name)


class ReferenceData:
    """Users and sprints currently loaded for name lookups."""

    def __init__(self):
        self.users: Dict[str, BoardUser] = {}
        self.sprints: Dict[str, Sprint] = {}

    def set_users(self, records: List[Dict[str, Any]]) -> None:
        users = (user_from_record(r) for r in records if isinstance(r, dict))
        self.users = {u.id: u for u in users if u is not None}
        logger.debug("reference_users_loaded", count=len(self.users))

    def set_sprints(self, records: List[Dict[str, Any]]) -> None:
        sprints = (normalize_sprint(r) for r in records if isinstance(r, dict))
        self.sprints = {s.id: s for s in sprints if s.id}
        logger.debug("reference_sprints_loaded", count=len(self.sprints))

    def remember_sprint(self, sprint: Sprint) -> None:
        if sprint.id:
            self.sprints[sprint.id] = sprint

    def resolve_user_name(self, user_id: Optional[str]) -> str:
        user = self.users.get(_ref(user_id)) if user_id else None
        return user.name if user else UNASSIGNED

    def resolve_sprint_name(self, sprint_id: Optional[str]) -> str:
        sprint = self.sprints.get(_ref(sprint_id)) if sprint_id else None
        return sprint.name if sprint and sprint.name else NO_SPRINT
