"""
Issue editor with a dirty-diff save pipeline.

The editor keeps a pristine snapshot of an issue's editable fields and a
working copy the user mutates. Saving splits the diff into independent
tracker calls:

    details         title, description
    assignment      assignee, due date
    classification  parent epic, labels
    properties      type, priority, story points, estimate, fix versions
    move            status, sprint (through the MoveOperator)

The first four run concurrently; the move runs after them whether or not
they succeeded. Each call's outcome is recorded, and only the fields of
groups that succeeded are folded into the snapshot, so ``is_dirty`` keeps
describing what the tracker still lacks after a partial failure.
"""

import asyncio
from datetime import date
from typing import Awaitable, Callable, Dict, List, Optional, Set

import structlog

from sprintboard.infrastructure.exceptions import (
    ActionInProgressError,
    IssueNotLoadedError,
    SprintBoardException,
    TrackerResponseError,
    TrackerTransportError,
    ValidationFailure,
    display_message,
)
from sprintboard.models.board import MoveOrigin
from sprintboard.models.issue import (
    EDITABLE_FIELDS,
    GROUP_FIELDS,
    INLINE_FIELDS,
    GroupOutcome,
    IssueFields,
    IssueView,
    SaveGroup,
    SaveResult,
)
from sprintboard.models.task import BOARD_STATUSES, Task, TaskPriority, TaskType
from sprintboard.services.move_operator import MoveOperator
from sprintboard.services.task_accessor import ReferenceData, normalize_task, parse_points, split_list
from sprintboard.services.tracker_client import TrackerClient

logger = structlog.get_logger(__name__)

SAVE_FAILED = "Failed to save"

# Sent on every save when send_unchanged_groups is on
UNCONDITIONAL_GROUPS = (SaveGroup.DETAILS, SaveGroup.ASSIGNMENT, SaveGroup.CLASSIFICATION)
CONCURRENT_GROUPS = UNCONDITIONAL_GROUPS + (SaveGroup.PROPERTIES,)

ChangedCallback = Callable[[], Awaitable[None]]


class IssueEditor:
    """Working copy of one issue against its last-saved snapshot."""

    def __init__(
        self,
        client: TrackerClient,
        move_operator: MoveOperator,
        task_id: str,
        project_id: str = "",
        lookup: Optional[ReferenceData] = None,
        on_changed: Optional[ChangedCallback] = None,
        send_unchanged_groups: bool = False,
    ):
        self.client = client
        self.move_operator = move_operator
        self.task_id = task_id
        self.project_id = project_id
        self.lookup = lookup
        self.on_changed = on_changed
        self.send_unchanged_groups = send_unchanged_groups

        self.task: Optional[Task] = None
        self.pristine: Optional[IssueFields] = None
        self.working: Optional[IssueFields] = None
        self.editing: Set[str] = set()
        self.error = ""
        self.last_result: Optional[SaveResult] = None
        self._saving = False

    # ============================================
    # LOAD
    # ============================================

    async def load(self) -> bool:
        """Fetch the issue and reset both copies. Failures leave the editor unloaded."""
        self.error = ""
        try:
            record = await self.client.get_task_details(self.task_id, self.project_id or None)
        except SprintBoardException as e:
            logger.warning("issue_load_failed", task_id=self.task_id, error=e.message)
            self.error = display_message(e, "Failed to load task")
            return False

        self.task = normalize_task(record, lookup=self.lookup)
        self.pristine = IssueFields.from_task(self.task)
        self.working = self.pristine.model_copy()
        self.editing.clear()
        return True

    @property
    def loaded(self) -> bool:
        return self.pristine is not None and self.working is not None

    @property
    def saving(self) -> bool:
        return self._saving

    def view(self) -> IssueView:
        return IssueView(
            task_id=self.task_id,
            loaded=self.loaded,
            task=self.task,
            working=self.working,
            dirty=self.is_dirty,
            dirty_fields=self.dirty_fields(),
            editing=sorted(self.editing),
            saving=self._saving,
            error=self.error,
        )

    def _require_loaded(self) -> None:
        if not self.loaded:
            raise IssueNotLoadedError(self.task_id)

    # ============================================
    # DIRTY TRACKING
    # ============================================

    def dirty_fields(self) -> List[str]:
        if not self.loaded:
            return []
        return [
            name for name in EDITABLE_FIELDS
            if getattr(self.working, name) != getattr(self.pristine, name)
        ]

    @property
    def is_dirty(self) -> bool:
        return bool(self.dirty_fields())

    def dirty_groups(self) -> List[SaveGroup]:
        dirty = set(self.dirty_fields())
        return [g for g, fields in GROUP_FIELDS.items() if dirty.intersection(fields)]

    # ============================================
    # FIELD EDITS
    # ============================================

    def set_field(self, name: str, value) -> None:
        self.set_fields({name: value})

    def set_fields(self, values: Dict[str, object]) -> None:
        """Validate every value first; a rejected field leaves the working copy untouched."""
        self._require_loaded()
        update = {name: self._clean_field(name, value) for name, value in values.items()}
        self.working = self.working.model_copy(update=update)

    def _clean_field(self, name: str, value) -> str:
        if name not in EDITABLE_FIELDS:
            raise ValidationFailure(f"'{name}' is not editable", field=name)
        text = "" if value is None else str(value)
        if name in ("status", "priority", "task_type"):
            text = text.strip().upper()
        self._validate_field(name, text)
        return text

    def _validate_field(self, name: str, text: str) -> None:
        if name == "status" and text not in BOARD_STATUSES and text != self.pristine.status:
            raise ValidationFailure(f"Unknown status '{text}'", field=name)
        if name == "priority" and text not in TaskPriority.__members__:
            raise ValidationFailure(f"Unknown priority '{text}'", field=name)
        if name == "task_type" and text not in TaskType.__members__:
            raise ValidationFailure(f"Unknown type '{text}'", field=name)
        if name == "story_points" and text.strip() and parse_points(text) is None:
            raise ValidationFailure("Story points must be a non-negative number", field=name)
        if name == "due_date" and text:
            try:
                date.fromisoformat(text)
            except ValueError:
                raise ValidationFailure("Due date must be YYYY-MM-DD", field=name)

    # Inline toggle-to-edit for title/description. Purely local.

    def begin_edit(self, name: str) -> None:
        self._require_loaded()
        if name not in INLINE_FIELDS:
            raise ValidationFailure(f"'{name}' has no inline editor", field=name)
        self.editing.add(name)

    def commit_edit(self, name: str) -> None:
        """Blur or Enter: leave edit mode, keep the typed value."""
        self.editing.discard(name)

    def cancel_edit(self, name: str) -> None:
        """Escape: restore the pristine value and leave edit mode."""
        self._require_loaded()
        if name in INLINE_FIELDS:
            self.working = self.working.model_copy(update={name: getattr(self.pristine, name)})
        self.editing.discard(name)

    def handle_key(self, name: str, key: str) -> None:
        if key == "Enter":
            self.commit_edit(name)
        elif key == "Escape":
            self.cancel_edit(name)

    # ============================================
    # SAVE
    # ============================================

    def _groups_to_send(self) -> List[SaveGroup]:
        dirty = self.dirty_groups()
        groups = [
            g for g in CONCURRENT_GROUPS
            if g in dirty or (self.send_unchanged_groups and g in UNCONDITIONAL_GROUPS)
        ]
        if SaveGroup.MOVE in dirty:
            groups.append(SaveGroup.MOVE)
        return groups

    async def _send_group(self, group: SaveGroup, fields: IssueFields) -> GroupOutcome:
        try:
            if group == SaveGroup.DETAILS:
                await self.client.update_task_details(self.task_id, fields.title, fields.description)
            elif group == SaveGroup.ASSIGNMENT:
                await self.client.update_task_assignment(self.task_id, fields.assignee, fields.due_date)
            elif group == SaveGroup.CLASSIFICATION:
                await self.client.update_task_classification(
                    self.task_id, fields.parent_epic, split_list(fields.labels)
                )
            elif group == SaveGroup.PROPERTIES:
                await self.client.update_task_properties(
                    self.task_id,
                    task_type=fields.task_type,
                    priority=fields.priority,
                    story_points=parse_points(fields.story_points),
                    original_estimate=fields.original_estimate,
                    fix_versions=split_list(fields.fix_versions),
                )
        except (TrackerResponseError, TrackerTransportError) as e:
            logger.warning("issue_group_save_failed", task_id=self.task_id, group=group.value, error=e.message)
            return GroupOutcome(group=group, ok=False, error=display_message(e, SAVE_FAILED))
        return GroupOutcome(group=group, ok=True)

    async def _send_move(self, fields: IssueFields) -> GroupOutcome:
        try:
            result = await self.move_operator.move(
                self.task_id,
                fields.status,
                fields.sprint or None,
                origin=MoveOrigin.EDITOR,
            )
        except (ActionInProgressError, ValidationFailure) as e:
            return GroupOutcome(group=SaveGroup.MOVE, ok=False, error=e.message)
        return GroupOutcome(group=SaveGroup.MOVE, ok=result.ok, error=result.message)

    def _fold(self, outcomes: List[GroupOutcome], sent: IssueFields) -> None:
        update = {}
        for outcome in outcomes:
            if outcome.ok:
                for name in GROUP_FIELDS[outcome.group]:
                    update[name] = getattr(sent, name)
        if update:
            self.pristine = self.pristine.model_copy(update=update)

    async def save(self) -> SaveResult:
        """
        Save the working copy.

        Returns a per-group record. Overall ``ok`` is true only when every
        sent group succeeded; otherwise the message is a single generic
        failure and the failed groups stay dirty for the next attempt.
        """
        self._require_loaded()
        if self._saving:
            raise ActionInProgressError("save_issue", self.task_id)
        if not self.is_dirty:
            return SaveResult(ok=True, message="No changes")
        if not self.working.title.strip():
            raise ValidationFailure("Title is required.", field="title")

        sent = self.working.model_copy()
        groups = self._groups_to_send()
        self._saving = True
        self.error = ""
        try:
            concurrent = [g for g in groups if g != SaveGroup.MOVE]
            outcomes = list(await asyncio.gather(*(self._send_group(g, sent) for g in concurrent)))
            if SaveGroup.MOVE in groups:
                outcomes.append(await self._send_move(sent))
        finally:
            self._saving = False

        self._fold(outcomes, sent)
        ok = all(o.ok for o in outcomes)
        result = SaveResult(ok=ok, outcomes=outcomes, message="" if ok else SAVE_FAILED)
        self.last_result = result

        logger.info(
            "issue_saved" if ok else "issue_save_partial",
            task_id=self.task_id,
            saved=[g.value for g in result.saved_groups],
            failed=[g.value for g in result.failed_groups],
        )

        if ok:
            self.editing.clear()
        else:
            self.error = SAVE_FAILED
        if result.saved_groups and self.on_changed is not None:
            await self.on_changed()
        return result
