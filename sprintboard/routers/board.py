"""
Board API endpoints.
Status lanes of the current sprint and drag-and-drop between them.
"""

from fastapi import APIRouter, Depends
import structlog

from sprintboard.models.board import BoardSnapshot, ClickRequest, DragPayload, DropOutcome, DropRequest, Selection
from sprintboard.routers.deps import get_board_session
from sprintboard.services.board_service import BoardSession

router = APIRouter()
logger = structlog.get_logger(__name__)


@router.get("/board", response_model=BoardSnapshot)
async def get_board(session: BoardSession = Depends(get_board_session)):
    """Get the board lanes."""
    return session.board.snapshot()


@router.post("/board/reload", response_model=BoardSnapshot)
async def reload_board(session: BoardSession = Depends(get_board_session)):
    """Refetch the current sprint's tasks."""
    await session.reload_board()
    return session.board.snapshot()


@router.post("/board/drop", response_model=DropOutcome)
async def drop_on_lane(drop: DropRequest, session: BoardSession = Depends(get_board_session)):
    """Drop a dragged card (from a lane or the backlog) on a lane."""
    payload = DragPayload.from_transfer(drop.transfer)
    result = await session.board.drop(drop.status, payload)
    return DropOutcome(
        moved=bool(result and result.ok),
        result=result,
        board=session.board.snapshot(),
    )


@router.post("/board/click", response_model=Selection)
async def click_card(click: ClickRequest, session: BoardSession = Depends(get_board_session)):
    """Resolve what a click on a card opens."""
    return session.board.click(click.task_id, click.shift)
