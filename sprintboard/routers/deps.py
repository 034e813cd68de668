"""
Shared router dependencies.
"""

from fastapi import Depends

from sprintboard.services.board_service import BoardRegistry, BoardSession, get_board_registry


async def get_board_session(
    project_id: str,
    registry: BoardRegistry = Depends(get_board_registry),
) -> BoardSession:
    """Resolve (and on first use, load) the session for the project in the path."""
    return await registry.get(project_id)
