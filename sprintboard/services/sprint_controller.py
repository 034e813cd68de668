"""
Sprint lifecycle controller.

Tracks whether a project has a current sprint (and whether that sprint is
ACTIVE), starts and ends sprints, and tells dependents when the sprint
identity changes. First-time starts may need a 3-letter naming token; the
tracker signals that with a failure message mentioning "initials".
"""

import re
from typing import Callable, List, Optional

import structlog

from sprintboard.infrastructure.exceptions import (
    ActionInProgressError,
    SprintBoardException,
    TrackerResponseError,
    TrackerTransportError,
    ValidationFailure,
    display_message,
)
from sprintboard.models.board import SprintActionResult
from sprintboard.models.sprint import SprintPhase, SprintState, SprintStatus
from sprintboard.services.task_accessor import ReferenceData, normalize_sprint
from sprintboard.services.tracker_client import TrackerClient

logger = structlog.get_logger(__name__)

INITIALS_PATTERN = re.compile(r"^[A-Z]{3}$")

StateListener = Callable[[SprintState], None]


def validate_sprint_initials(raw: Optional[str]) -> str:
    """Return the normalized token (``"abc"`` -> ``"ABC"``) or raise ValidationFailure."""
    clean = (raw or "").strip().upper()
    if len(clean) != 3:
        raise ValidationFailure("Please enter exactly 3 letters", field="initials")
    if not INITIALS_PATTERN.match(clean):
        raise ValidationFailure("Please use only letters (A-Z)", field="initials")
    return clean


def requires_initials(message: str) -> bool:
    return "initials" in (message or "").lower()


class SprintLifecycleController:
    """State machine over NO_SPRINT / HAS_CURRENT(id, active) for one project."""

    def __init__(
        self,
        client: TrackerClient,
        project_id: str,
        lookup: Optional[ReferenceData] = None,
    ):
        self.client = client
        self.project_id = project_id
        self.lookup = lookup
        self.state = SprintState()
        self._listeners: List[StateListener] = []
        self._busy = False

    def subscribe(self, listener: StateListener) -> None:
        self._listeners.append(listener)

    def _notify(self) -> None:
        for listener in list(self._listeners):
            listener(self.state)

    def _set_no_sprint(self, error: str = "") -> None:
        self.state = SprintState(phase=SprintPhase.NO_SPRINT, error=error)

    # ============================================
    # LOAD
    # ============================================

    async def load_current(self) -> SprintState:
        """Query the current sprint. Never raises; failures end in NO_SPRINT."""
        previous_id = self.state.sprint_id
        self.state = self.state.model_copy(update={"loading": True, "error": ""})
        try:
            record = await self.client.get_current_sprint(self.project_id)
        except SprintBoardException as e:
            logger.warning("current_sprint_load_failed", project_id=self.project_id, error=e.message)
            self._set_no_sprint(error=display_message(e, "Failed to load sprint"))
        else:
            sprint = normalize_sprint(record) if record else None
            if sprint and sprint.id:
                if self.lookup is not None:
                    self.lookup.remember_sprint(sprint)
                self.state = SprintState(
                    phase=SprintPhase.HAS_CURRENT,
                    sprint=sprint,
                    active=sprint.is_active,
                )
            else:
                self._set_no_sprint()

        logger.info(
            "current_sprint_loaded",
            project_id=self.project_id,
            phase=self.state.phase.value,
            sprint_id=self.state.sprint_id,
            active=self.state.active,
        )
        if previous_id != self.state.sprint_id:
            self._notify()
        return self.state

    # ============================================
    # START / END
    # ============================================

    async def start(
        self,
        initials: Optional[str] = None,
        start_date: Optional[str] = None,
        end_date: Optional[str] = None,
    ) -> SprintActionResult:
        """
        Start a sprint.

        Call without ``initials`` first. If the tracker answers that initials
        are required, the result has ``needs_initials`` set and the caller
        prompts for a token and calls again with it.
        """
        if self._busy:
            raise ActionInProgressError("start_sprint", self.project_id)
        if not self.state.can_start:
            logger.info("sprint_start_refused", project_id=self.project_id, sprint_id=self.state.sprint_id)
            return SprintActionResult(ok=False, message="A sprint is already in progress.")

        token = None
        if initials is not None:
            try:
                token = validate_sprint_initials(initials)
            except ValidationFailure as e:
                return SprintActionResult(ok=False, needs_initials=True, field_error=e.message)

        self._busy = True
        self.state = self.state.model_copy(update={"loading": True, "error": ""})
        try:
            record = await self.client.start_sprint(
                self.project_id,
                initials=token,
                start_date=start_date,
                end_date=end_date,
            )
        except (TrackerResponseError, TrackerTransportError) as e:
            message = display_message(e, "Failed to start sprint")
            if token is None and requires_initials(message):
                logger.info("sprint_start_needs_initials", project_id=self.project_id)
                self.state = self.state.model_copy(update={"loading": False, "needs_initials": True})
                return SprintActionResult(ok=False, needs_initials=True, message=message)
            logger.warning("sprint_start_failed", project_id=self.project_id, error=message)
            self.state = self.state.model_copy(update={"loading": False, "error": message})
            return SprintActionResult(ok=False, needs_initials=token is not None and requires_initials(message), message=message)
        finally:
            self._busy = False

        sprint = normalize_sprint(record) if record else None
        if not sprint or not sprint.id:
            # Tracker confirmed but sent no record; ask for the authoritative one
            await self.load_current()
            return SprintActionResult(ok=True, message="Sprint started successfully!", sprint=self.state.sprint)

        sprint = sprint.model_copy(update={"status": SprintStatus.ACTIVE.value})
        if self.lookup is not None:
            self.lookup.remember_sprint(sprint)
        self.state = SprintState(phase=SprintPhase.HAS_CURRENT, sprint=sprint, active=True)
        logger.info("sprint_started", project_id=self.project_id, sprint_id=sprint.id, name=sprint.name)
        self._notify()
        return SprintActionResult(ok=True, message="Sprint started successfully!", sprint=sprint)

    async def end(self, sprint_id: Optional[str] = None) -> SprintActionResult:
        """End the given (or current) sprint. Failures are final; nothing is retried."""
        sprint_id = sprint_id or self.state.sprint_id
        if not sprint_id:
            return SprintActionResult(ok=False, message="No active sprint to end.")
        if self._busy:
            raise ActionInProgressError("end_sprint", sprint_id)
        if not self.state.can_end or sprint_id != self.state.sprint_id:
            logger.info("sprint_end_refused", sprint_id=sprint_id, active=self.state.active)
            return SprintActionResult(ok=False, message="Only an active sprint can be ended.")

        self._busy = True
        self.state = self.state.model_copy(update={"loading": True, "error": ""})
        try:
            await self.client.end_sprint(sprint_id, project_id=self.project_id)
        except (TrackerResponseError, TrackerTransportError) as e:
            message = display_message(e, "Failed to end sprint")
            logger.warning("sprint_end_failed", sprint_id=sprint_id, error=message)
            self.state = self.state.model_copy(update={"loading": False, "error": message})
            return SprintActionResult(ok=False, message=message)
        finally:
            self._busy = False

        logger.info("sprint_ended", project_id=self.project_id, sprint_id=sprint_id)
        self._set_no_sprint()
        self._notify()
        return SprintActionResult(ok=True, message="Sprint ended successfully!")

    @property
    def busy(self) -> bool:
        return self._busy
