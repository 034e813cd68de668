"""
Issue API endpoints.
Create issues, drive the issue editor (field edits, inline edit mode, save)
and the comment/worklog panels.
"""

from fastapi import APIRouter, Depends, status
from typing import Optional
import structlog

from sprintboard.models.issue import EditAction, IssueUpdate, IssueView, SaveOutcome
from sprintboard.models.task import (
    CommentCreate,
    CommentThread,
    Task,
    TaskCreate,
    WorklogCreate,
    WorklogList,
)
from sprintboard.routers.deps import get_board_session
from sprintboard.services.board_service import BoardSession

router = APIRouter()
logger = structlog.get_logger(__name__)


@router.post("/issues", response_model=Optional[Task], status_code=status.HTTP_201_CREATED)
async def create_issue(data: TaskCreate, session: BoardSession = Depends(get_board_session)):
    """Create a task, story, bug or epic."""
    return await session.create_issue(data)


@router.get("/issues/{task_id}", response_model=IssueView)
async def open_issue(task_id: str, session: BoardSession = Depends(get_board_session)):
    """Open the editor for a task. Unsaved edits are kept."""
    editor = await session.open_issue(task_id)
    return editor.view()


@router.patch("/issues/{task_id}", response_model=IssueView)
async def edit_issue(
    task_id: str,
    updates: IssueUpdate,
    session: BoardSession = Depends(get_board_session),
):
    """Apply field edits to the working copy. Nothing is sent until save."""
    editor = session.editor(task_id)
    editor.set_fields(updates.model_dump(exclude_unset=True))
    return editor.view()


@router.post("/issues/{task_id}/edit/{field}/{action}", response_model=IssueView)
async def inline_edit(
    task_id: str,
    field: str,
    action: EditAction,
    session: BoardSession = Depends(get_board_session),
):
    """Enter, commit (blur/Enter) or cancel (Escape) inline editing of a field."""
    editor = session.editor(task_id)
    if action == EditAction.BEGIN:
        editor.begin_edit(field)
    elif action == EditAction.COMMIT:
        editor.commit_edit(field)
    else:
        editor.cancel_edit(field)
    return editor.view()


@router.post("/issues/{task_id}/save", response_model=SaveOutcome)
async def save_issue(task_id: str, session: BoardSession = Depends(get_board_session)):
    """Save the working copy group by group."""
    editor = session.editor(task_id)
    result = await editor.save()
    return SaveOutcome(result=result, issue=editor.view())


@router.delete("/issues/{task_id}")
async def close_issue(task_id: str, session: BoardSession = Depends(get_board_session)):
    """Close the editor, discarding unsaved edits."""
    session.close_issue(task_id)
    return {"status": "closed", "task_id": task_id}


@router.get("/issues/{task_id}/comments", response_model=CommentThread)
async def list_comments(task_id: str, session: BoardSession = Depends(get_board_session)):
    return await session.list_comments(task_id)


@router.post("/issues/{task_id}/comments", response_model=CommentThread)
async def add_comment(
    task_id: str,
    comment: CommentCreate,
    session: BoardSession = Depends(get_board_session),
):
    return await session.add_comment(task_id, comment.content)


@router.get("/issues/{task_id}/worklogs", response_model=WorklogList)
async def list_worklogs(task_id: str, session: BoardSession = Depends(get_board_session)):
    return await session.list_worklogs(task_id)


@router.post("/issues/{task_id}/worklogs", response_model=WorklogList)
async def add_worklog(
    task_id: str,
    worklog: WorklogCreate,
    session: BoardSession = Depends(get_board_session),
):
    return await session.add_worklog(task_id, worklog.hours, worklog.comment)
