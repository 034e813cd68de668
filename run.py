"""
Run script for SprintBoard API.
"""

import os
import uvicorn

from sprintboard.infrastructure.config import get_settings

if __name__ == "__main__":
    settings = get_settings()
    uvicorn.run(
        "sprintboard.main:app",
        host=settings.api_host,
        port=settings.api_port,
        reload=os.getenv("SPRINTBOARD_DEV_MODE", "").lower() == "true",
        log_level="info"
    )
