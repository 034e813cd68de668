"""
Backlog and all-work API endpoints.
"""

from fastapi import APIRouter, Depends
from typing import Optional
import structlog

from sprintboard.models.board import (
    AddToSprintOutcome,
    AddToSprintRequest,
    ClickRequest,
    DragPayload,
    Selection,
    TaskListSnapshot,
)
from sprintboard.routers.deps import get_board_session
from sprintboard.services.board_service import BoardSession

router = APIRouter()
logger = structlog.get_logger(__name__)


@router.get("/backlog", response_model=TaskListSnapshot)
async def get_backlog(session: BoardSession = Depends(get_board_session)):
    """Get tasks not in any sprint."""
    return session.backlog.snapshot()


@router.post("/backlog/reload", response_model=TaskListSnapshot)
async def reload_backlog(session: BoardSession = Depends(get_board_session)):
    """Refetch the backlog."""
    await session.reload_backlog()
    return session.backlog.snapshot()


@router.post("/backlog/{task_id}/add-to-sprint", response_model=AddToSprintOutcome)
async def add_to_sprint(
    task_id: str,
    request: Optional[AddToSprintRequest] = None,
    session: BoardSession = Depends(get_board_session),
):
    """Place a backlog task into the current sprint."""
    request = request or AddToSprintRequest()
    result = await session.backlog.add_to_sprint(task_id, request.status)
    return AddToSprintOutcome(result=result, backlog=session.backlog.snapshot())


@router.get("/backlog/{task_id}/drag", response_model=DragPayload)
async def drag_backlog_row(task_id: str, session: BoardSession = Depends(get_board_session)):
    """Drag payload for a backlog row."""
    return session.backlog.drag_start(task_id)


@router.post("/backlog/click", response_model=Selection)
async def click_row(click: ClickRequest, session: BoardSession = Depends(get_board_session)):
    """Resolve what a click on a backlog row opens."""
    return session.backlog.click(click.task_id, click.shift)


@router.get("/work", response_model=TaskListSnapshot)
async def get_all_work(session: BoardSession = Depends(get_board_session)):
    """Get every task of the project."""
    return session.work_snapshot()


@router.post("/work/reload", response_model=TaskListSnapshot)
async def reload_all_work(session: BoardSession = Depends(get_board_session)):
    """Refetch every task of the project."""
    await session.reload_work()
    return session.work_snapshot()
