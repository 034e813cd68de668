"""
Tracker Client - API client for the remote project tracker REST service.

The tracker owns tasks, sprints, users and comments. Every response is an
envelope ``{"status": bool, "message": str, "records": ...}``; a falsy
``status`` is treated exactly like a transport failure by callers, and the
payload is never trusted when it is falsy.

Operations covered:
- Sprint operations (current, list, start, end, sprint tasks)
- Task operations (backlog, details, grouped updates, move, create)
- Reference data (users)
- Comments and worklogs

Calls are issued once; nothing is retried automatically.
"""
from typing import Optional, List, Dict, Any
from functools import lru_cache
import httpx
import structlog
from pydantic import BaseModel, Field

from sprintboard.infrastructure.exceptions import TrackerResponseError, TrackerTransportError

logger = structlog.get_logger(__name__)


# ============================================
# CONFIGURATION
# ============================================

class TrackerConfig(BaseModel):
    """Configuration for the tracker client."""
    base_url: str = Field(default="http://localhost:8000")
    api_prefix: str = Field(default="/api")
    token: Optional[str] = Field(default=None)
    timeout_seconds: float = Field(default=30.0)


# ============================================
# TRACKER CLIENT
# ============================================

class TrackerClient:
    """
    Async client for the project tracker.

    Usage:
        client = TrackerClient()
        sprint = await client.get_current_sprint(project_id="7")
        await client.move_task("42", "DONE")
    """

    def __init__(
        self,
        config: Optional[TrackerConfig] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.config = config or TrackerConfig()
        self._transport = transport
        self._client: Optional[httpx.AsyncClient] = None

    @property
    def client(self) -> httpx.AsyncClient:
        """Get or create a persistent HTTP client for connection reuse."""
        if self._client is None or self._client.is_closed:
            headers = {"Content-Type": "application/json"}
            if self.config.token:
                headers["Authorization"] = f"Bearer {self.config.token}"
            self._client = httpx.AsyncClient(
                base_url=f"{self.config.base_url}{self.config.api_prefix}",
                headers=headers,
                timeout=self.config.timeout_seconds,
                transport=self._transport,
            )
        return self._client

    async def close(self):
        """Close the underlying HTTP client."""
        if self._client and not self._client.is_closed:
            await self._client.aclose()

    async def _request(
        self,
        method: str,
        endpoint: str,
        json: Optional[Dict] = None,
    ) -> Any:
        """Send one request and unwrap the tracker envelope into ``records``."""
        try:
            response = await self.client.request(method, endpoint, json=json)
        except httpx.HTTPError as e:
            logger.warning("tracker_request_failed", endpoint=endpoint, error=str(e))
            raise TrackerTransportError(f"Failed to reach tracker: {e}", endpoint=endpoint)

        body = self._decode(response)

        if response.status_code >= 400:
            message = body.get("message") if isinstance(body, dict) else None
            logger.warning(
                "tracker_http_error",
                endpoint=endpoint,
                status=response.status_code,
                message=message,
            )
            raise TrackerTransportError(
                message or f"Tracker API error {response.status_code}",
                http_status=response.status_code,
                endpoint=endpoint,
            )

        # Some list endpoints answer with a bare list
        if isinstance(body, list):
            return body

        if not isinstance(body, dict) or not body.get("status"):
            message = body.get("message") if isinstance(body, dict) else None
            logger.info("tracker_rejected", endpoint=endpoint, message=message)
            raise TrackerResponseError(message or "Request failed.", endpoint=endpoint)

        return body.get("records")

    @staticmethod
    def _decode(response: httpx.Response) -> Any:
        try:
            return response.json()
        except ValueError:
            return None

    async def _get(self, endpoint: str) -> Any:
        """Make a GET request."""
        return await self._request("GET", endpoint)

    async def _post(self, endpoint: str, json: Optional[Dict] = None) -> Any:
        """Make a POST request."""
        return await self._request("POST", endpoint, json=json)

    async def _put(self, endpoint: str, json: Optional[Dict] = None) -> Any:
        """Make a PUT request."""
        return await self._request("PUT", endpoint, json=json)

    @staticmethod
    def _as_list(records: Any) -> List[Dict]:
        return records if isinstance(records, list) else []

    # ============================================
    # REFERENCE DATA
    # ============================================

    async def list_users(self) -> List[Dict]:
        """Get all users that can be assigned."""
        return self._as_list(await self._get("/users/list/"))

    # ============================================
    # SPRINT OPERATIONS
    # ============================================

    async def get_current_sprint(self, project_id: str) -> Optional[Dict]:
        """Get the sprint the tracker designates as current (not necessarily ACTIVE)."""
        record = await self._post("/projects/sprints/current/", {"project_id": project_id})
        return record or None

    async def list_sprints(self, project_id: str, page_size: int = 100) -> List[Dict]:
        """Get all sprints of a project."""
        records = await self._post(
            "/projects/sprints/list/",
            {"project_id": project_id, "page_size": page_size},
        )
        return self._as_list(records)

    async def list_sprint_tasks(self, sprint_id: str) -> List[Dict]:
        """Get tasks for a sprint."""
        return self._as_list(await self._post("/projects/sprints/tasks/", {"sprint_id": sprint_id}))

    async def start_sprint(
        self,
        project_id: str,
        initials: Optional[str] = None,
        start_date: Optional[str] = None,
        end_date: Optional[str] = None,
    ) -> Dict:
        """Start the next sprint. The tracker may answer that initials are required."""
        payload: Dict[str, Any] = {"project_id": project_id}
        if initials:
            payload["initials"] = initials
        if start_date:
            payload["start_date"] = start_date
        if end_date:
            payload["end_date"] = end_date
        record = await self._post("/projects/sprints/start/", payload)
        return record if isinstance(record, dict) else {}

    async def end_sprint(self, sprint_id: str, project_id: Optional[str] = None) -> None:
        """End a sprint."""
        payload: Dict[str, Any] = {"sprint_id": sprint_id}
        if project_id:
            payload["project_id"] = project_id
        await self._post("/projects/sprints/end/", payload)

    # ============================================
    # TASK OPERATIONS
    # ============================================

    async def list_backlog(self, project_id: str, page_size: int = 50) -> List[Dict]:
        """Get project tasks that are not in any sprint."""
        records = await self._post(
            "/projects/backlog/list/",
            {"project_id": project_id, "page_size": page_size},
        )
        return self._as_list(records)

    async def list_project_tasks(self, project_id: str, page_size: int = 50) -> List[Dict]:
        """Get every task of a project."""
        records = await self._post(
            "/projects/tasks/list/",
            {"project_id": project_id, "page_size": page_size},
        )
        return self._as_list(records)

    async def get_task_details(self, task_id: str, project_id: Optional[str] = None) -> Dict:
        """Get a single task record."""
        record = await self._post(
            "/projects/task/details/",
            {"id": task_id, "project_id": project_id},
        )
        if not isinstance(record, dict) or not record:
            raise TrackerResponseError("Unable to load task", endpoint="/projects/task/details/")
        return record

    async def move_task(
        self,
        task_id: str,
        status: str,
        sprint_id: Optional[str] = None,
        include_sprint: bool = False,
    ) -> None:
        """Change a task's status and, when ``include_sprint``, its sprint.

        Without ``include_sprint`` the ``sprint_id`` key is omitted so the
        tracker leaves sprint membership untouched.
        """
        payload: Dict[str, Any] = {"id": task_id, "status": status}
        if include_sprint:
            payload["sprint_id"] = sprint_id or None
        await self._put("/projects/task/move/", payload)

    async def update_task_details(self, task_id: str, title: str, description: str) -> None:
        await self._put(
            "/projects/task/update/details/",
            {"id": task_id, "title": title, "description": description},
        )

    async def update_task_assignment(
        self,
        task_id: str,
        assigned_to: Optional[str],
        due_date: Optional[str],
    ) -> None:
        await self._put(
            "/projects/task/update/assignment/",
            {"id": task_id, "assigned_to": assigned_to or None, "due_date": due_date or None},
        )

    async def update_task_classification(
        self,
        task_id: str,
        epic: Optional[str],
        labels: List[str],
    ) -> None:
        await self._put(
            "/projects/task/update/classification/",
            {"id": task_id, "epic": epic or None, "labels": labels},
        )

    async def update_task_properties(
        self,
        task_id: str,
        task_type: str,
        priority: str,
        story_points: Optional[float],
        original_estimate: str,
        fix_versions: List[str],
    ) -> None:
        await self._put(
            "/projects/task/update/properties/",
            {
                "id": task_id,
                "task_type": task_type,
                "priority": priority,
                "story_points": story_points,
                "original_estimate": original_estimate,
                "fix_versions": fix_versions,
            },
        )

    async def create_task(self, payload: Dict[str, Any]) -> Dict:
        """Create a task (TASK/STORY/BUG)."""
        record = await self._post("/projects/task/add/", payload)
        return record if isinstance(record, dict) else {}

    async def create_epic(self, project_id: str, name: str, description: str, color: str = "#36B37E") -> Dict:
        """Create an epic."""
        record = await self._post(
            "/projects/epic/add/",
            {"name": name, "description": description, "project_id": project_id, "color": color},
        )
        return record if isinstance(record, dict) else {}

    # ============================================
    # COMMENTS & WORKLOGS
    # ============================================

    async def list_comments(
        self,
        task_id: str,
        sprint_id: Optional[str] = None,
        page_size: int = 50,
    ) -> List[Dict]:
        payload: Dict[str, Any] = {"task_id": task_id, "page_size": page_size}
        if sprint_id:
            payload["sprint_id"] = sprint_id
        return self._as_list(await self._post("/projects/comments/list/", payload))

    async def add_comment(self, task_id: str, content: str) -> None:
        await self._post("/projects/comments/add/", {"task": task_id, "content": content})

    async def list_worklogs(self, task_id: str) -> List[Dict]:
        return self._as_list(await self._post("/projects/task/worklog/list/", {"task_id": task_id}))

    async def add_worklog(self, task_id: str, hours: str, comment: str = "") -> None:
        await self._post(
            "/projects/task/worklog/add/",
            {"task_id": task_id, "hours": hours, "comment": comment},
        )


# ============================================
# SINGLETON INSTANCE
# ============================================

@lru_cache()
def get_tracker_client() -> TrackerClient:
    """Get the shared tracker client instance."""
    from sprintboard.infrastructure.config import get_settings
    settings = get_settings()
    config = TrackerConfig(
        base_url=settings.tracker_api_url,
        api_prefix=settings.tracker_api_prefix,
        token=settings.tracker_api_token,
        timeout_seconds=settings.tracker_timeout,
    )
    return TrackerClient(config)


async def close_tracker_client():
    """Close the shared tracker client."""
    if get_tracker_client.cache_info().currsize:
        await get_tracker_client().close()
        get_tracker_client.cache_clear()
