"""
Revisioned task-collection store.

Board, backlog and all-work views render from one store per project. A
change anywhere calls ``invalidate()``, which bumps a monotonically
increasing revision; every fetch is tagged with the revision and a
per-collection sequence at dispatch time and is applied only if both are
still current when it completes. Results always replace, never merge.
"""

from dataclasses import dataclass
from typing import Callable, Dict, List

import structlog

from sprintboard.models.task import BOARD_STATUSES, Task
from sprintboard.services.board_grouping import group_tasks

logger = structlog.get_logger(__name__)

BOARD = "board"
BACKLOG = "backlog"
ALL_WORK = "work"

Listener = Callable[[int], None]


@dataclass(frozen=True)
class FetchTicket:
    collection: str
    revision: int
    sequence: int


class TaskStore:
    """Owned task collections plus the invalidate-and-refetch signal."""

    def __init__(self):
        self._revision = 0
        self._sequence = 0
        self._latest: Dict[str, int] = {}
        self._tasks: Dict[str, List[Task]] = {}
        self._errors: Dict[str, str] = {}
        self._listeners: List[Listener] = []

    @property
    def revision(self) -> int:
        return self._revision

    def tasks(self, collection: str) -> List[Task]:
        return list(self._tasks.get(collection, []))

    def error(self, collection: str) -> str:
        return self._errors.get(collection, "")

    def grouped(self, collection: str = BOARD) -> Dict[str, List[Task]]:
        return group_tasks(self._tasks.get(collection, []), BOARD_STATUSES)

    def find(self, task_id: str) -> Task:
        for tasks in self._tasks.values():
            for task in tasks:
                if task.id == task_id:
                    return task
        raise KeyError(task_id)

    # ============================================
    # FETCH LIFECYCLE
    # ============================================

    def begin_fetch(self, collection: str) -> FetchTicket:
        self._sequence += 1
        self._latest[collection] = self._sequence
        return FetchTicket(collection=collection, revision=self._revision, sequence=self._sequence)

    def is_current(self, ticket: FetchTicket) -> bool:
        return (
            ticket.revision == self._revision
            and self._latest.get(ticket.collection) == ticket.sequence
        )

    def apply(self, ticket: FetchTicket, tasks: List[Task], error: str = "") -> bool:
        """Replace a collection with a fetch result unless it was superseded."""
        if not self.is_current(ticket):
            logger.debug(
                "stale_fetch_discarded",
                collection=ticket.collection,
                ticket_revision=ticket.revision,
                revision=self._revision,
            )
            return False
        self._tasks[ticket.collection] = list(tasks)
        self._errors[ticket.collection] = error
        return True

    def clear(self, collection: str) -> None:
        """Empty a collection and orphan any fetch still in flight for it."""
        self._sequence += 1
        self._latest[collection] = self._sequence
        self._tasks[collection] = []
        self._errors[collection] = ""

    # ============================================
    # CHANGE SIGNAL
    # ============================================

    def invalidate(self, reason: str = "") -> int:
        self._revision += 1
        logger.debug("task_store_invalidated", revision=self._revision, reason=reason)
        for listener in list(self._listeners):
            listener(self._revision)
        return self._revision

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        self._listeners.append(listener)

        def unsubscribe():
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe
