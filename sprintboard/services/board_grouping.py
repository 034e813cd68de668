"""
Board grouping: partition a sprint's tasks into status lanes.
"""

from typing import Dict, Iterable, List, Sequence

from sprintboard.models.board import Lane
from sprintboard.models.task import BOARD_STATUSES, Task


def group_tasks(
    tasks: Iterable[Task],
    statuses: Sequence[str] = BOARD_STATUSES,
) -> Dict[str, List[Task]]:
    """
    Group tasks by status, keeping the order the tracker returned them in.

    Every known status gets a (possibly empty) lane. A task with any other
    status lands in a lane keyed by that literal value, after the known ones.
    """
    grouped: Dict[str, List[Task]] = {status: [] for status in statuses}
    for task in tasks:
        grouped.setdefault(task.status, []).append(task)
    return grouped


def lane_title(status: str) -> str:
    return status.replace("_", " ")


def build_lanes(
    tasks: Iterable[Task],
    statuses: Sequence[str] = BOARD_STATUSES,
) -> List[Lane]:
    """Grouped tasks as ordered lanes for rendering."""
    return [
        Lane(status=status, title=lane_title(status), tasks=lane_tasks)
        for status, lane_tasks in group_tasks(tasks, statuses).items()
    ]
