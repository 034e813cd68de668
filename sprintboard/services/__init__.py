# Services
from sprintboard.services.board_service import BoardRegistry, BoardSession, get_board_registry
from sprintboard.services.tracker_client import TrackerClient, get_tracker_client

__all__ = ["BoardRegistry", "BoardSession", "get_board_registry", "TrackerClient", "get_tracker_client"]
