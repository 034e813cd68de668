"""
SprintBoard API - FastAPI Backend

Sprint/task board engine for the project tracker: current sprint lifecycle,
status lanes with drag-and-drop moves, backlog, and the issue editor.
"""

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from contextlib import asynccontextmanager
import structlog

from sprintboard.routers import backlog, board, issues, sprints
from sprintboard.infrastructure.config import get_settings
from sprintboard.infrastructure.exceptions import register_exception_handlers
from sprintboard.services.tracker_client import close_tracker_client

# Configure structured logging
structlog.configure(
    processors=[
        structlog.stdlib.filter_by_level,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
        structlog.processors.UnicodeDecoder(),
        structlog.dev.ConsoleRenderer()
    ],
    wrapper_class=structlog.stdlib.BoundLogger,
    context_class=dict,
    logger_factory=structlog.stdlib.LoggerFactory(),
    cache_logger_on_first_use=True,
)

logger = structlog.get_logger()

PROJECT_PREFIX = "/api/projects/{project_id}"


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan manager."""
    settings = get_settings()
    logger.info("sprintboard_starting", tracker=settings.tracker_api_url)

    yield

    await close_tracker_client()
    logger.info("sprintboard_stopped")


app = FastAPI(
    title="SprintBoard API",
    description="Sprint/task board engine - sprint lifecycle, board lanes, backlog and issue editing",
    version="1.0.0",
    lifespan=lifespan,
)

# Register global exception handlers
register_exception_handlers(app)

# CORS configuration for frontend
app.add_middleware(
    CORSMiddleware,
    allow_origins=get_settings().cors_origin_list,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Include routers
app.include_router(sprints.router, prefix=PROJECT_PREFIX, tags=["Sprints"])
app.include_router(board.router, prefix=PROJECT_PREFIX, tags=["Board"])
app.include_router(backlog.router, prefix=PROJECT_PREFIX, tags=["Backlog"])
app.include_router(issues.router, prefix=PROJECT_PREFIX, tags=["Issues"])


@app.get("/")
async def root():
    """Health check endpoint."""
    return {
        "status": "ok",
        "service": "SprintBoard API",
        "version": "1.0.0"
    }


@app.get("/health")
async def health():
    """Detailed health check."""
    from sprintboard.services.board_service import get_board_registry
    settings = get_settings()

    return {
        "status": "healthy",
        "components": {
            "api": "ok",
            "tracker": settings.tracker_api_url,
            "sessions": len(get_board_registry()),
        }
    }
