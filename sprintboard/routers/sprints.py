"""
Sprint lifecycle API endpoints.
Current sprint, start/end actions and the sprint list for pickers.
"""

from fastapi import APIRouter, Depends
from typing import List, Optional
import structlog

from sprintboard.models.board import SprintActionResult, StartSprintRequest
from sprintboard.models.sprint import Sprint, SprintState
from sprintboard.models.task import BoardUser
from sprintboard.routers.deps import get_board_session
from sprintboard.services.board_service import BoardSession

router = APIRouter()
logger = structlog.get_logger(__name__)


@router.get("/sprint", response_model=SprintState)
async def get_sprint(session: BoardSession = Depends(get_board_session)):
    """Get the project's current sprint state."""
    return session.sprints.state


@router.post("/sprint/reload", response_model=SprintState)
async def reload_sprint(session: BoardSession = Depends(get_board_session)):
    """Re-query the current sprint and its board."""
    return await session.reload_sprint()


@router.post("/sprint/start", response_model=SprintActionResult)
async def start_sprint(
    request: Optional[StartSprintRequest] = None,
    session: BoardSession = Depends(get_board_session),
):
    """Start a sprint. Answers ``needs_initials`` when a naming token is required."""
    request = request or StartSprintRequest()
    return await session.start_sprint(
        initials=request.initials,
        start_date=request.start_date.isoformat() if request.start_date else None,
        end_date=request.end_date.isoformat() if request.end_date else None,
    )


@router.post("/sprint/end", response_model=SprintActionResult)
async def end_sprint(session: BoardSession = Depends(get_board_session)):
    """End the current sprint."""
    return await session.end_sprint()


@router.get("/sprints", response_model=List[Sprint])
async def list_sprints(session: BoardSession = Depends(get_board_session)):
    """Get the project's sprints for pickers and name lookups."""
    return session.sprint_options()


@router.get("/users", response_model=List[BoardUser])
async def list_users(session: BoardSession = Depends(get_board_session)):
    """Get assignable users."""
    return session.users()
