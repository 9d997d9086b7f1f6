"""
API request and response models for the Taskboard REST endpoints.

These Pydantic v2 models define the HTTP transport contract for the API layer.
They are intentionally separate from the dataclasses in each feature package
(auth/models.py, projects/models.py, ...), which own the internal domain
representation. Route handlers map between the two.

Every response is wrapped in an envelope:
  success -> Envelope[T]   {"success": true, "status_code", "message", "data", "meta"?}
  failure -> ErrorResponse {"success": false, "status_code", "code", "message": [...],
                            "errors", "path", "timestamp"}

Request models only check shape (types, lengths, enum membership). Business
rules such as the password policy or the permission-matrix vocabulary live in
the services so the CLI and the tests get the same validation.
"""

from datetime import date
from enum import Enum
from typing import Any, Generic, Optional, TypeVar

from pydantic import BaseModel, ConfigDict, Field

T = TypeVar("T")


# ---------------------------------------------------------------------------
# Enums
# ---------------------------------------------------------------------------


class ProjectStatusEnum(str, Enum):
    active = "active"
    archived = "archived"
    completed = "completed"


class TaskStatusEnum(str, Enum):
    todo = "todo"
    in_progress = "in_progress"
    review = "review"
    done = "done"


class TaskPriorityEnum(str, Enum):
    low = "low"
    medium = "medium"
    high = "high"
    urgent = "urgent"


# ---------------------------------------------------------------------------
# Envelopes
# ---------------------------------------------------------------------------


class PageMeta(BaseModel):
    total: int
    page: int
    limit: int
    total_pages: int


class Envelope(BaseModel, Generic[T]):
    """Success envelope. meta is present on paginated lists only."""

    success: bool = True
    status_code: int = 200
    message: str = "OK"
    data: Optional[T] = None
    meta: Optional[PageMeta] = None


class ErrorResponse(BaseModel):
    """Error envelope returned on every 4xx/5xx response."""

    model_config = ConfigDict(frozen=True)

    success: bool = False
    status_code: int
    code: str
    message: list[str]
    errors: Optional[Any] = None
    path: str
    timestamp: str


class HealthResponse(BaseModel):
    """Response for GET /api/v1/health."""

    model_config = ConfigDict(frozen=True)

    status: str = "healthy"
    version: str
    components: dict[str, str]


# ---------------------------------------------------------------------------
# Auth
# ---------------------------------------------------------------------------


class RegisterRequest(BaseModel):
    model_config = ConfigDict(str_strip_whitespace=True)

    email: str = Field(min_length=3, max_length=255, pattern=r"^[^@\s]+@[^@\s]+$")
    password: str = Field(min_length=1, max_length=128)
    display_name: str = Field(min_length=1, max_length=100)


class LoginRequest(BaseModel):
    email: str = Field(min_length=1, max_length=255)
    password: str = Field(min_length=1, max_length=128)


class RefreshRequest(BaseModel):
    refresh_token: str = Field(min_length=1, max_length=512)


class LogoutRequest(BaseModel):
    """refresh_token set: end that one session. Omitted: end every session."""

    refresh_token: Optional[str] = Field(default=None, max_length=512)


class ChangePasswordRequest(BaseModel):
    current_password: str = Field(min_length=1, max_length=128)
    new_password: str = Field(min_length=1, max_length=128)


class TokenResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    access_token: str
    refresh_token: str
    token_type: str = "bearer"  # noqa: S105 # nosec B105 -- OAuth token type, not a password
    expires_in: int


class UserOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    email: str
    display_name: str
    avatar_url: Optional[str] = None
    is_active: bool
    created_at: Optional[str] = None
    updated_at: Optional[str] = None


class AuthResponse(BaseModel):
    """Register and login return the profile alongside the token pair."""

    user: UserOut
    tokens: TokenResponse


class ProfileUpdate(BaseModel):
    model_config = ConfigDict(str_strip_whitespace=True)

    display_name: Optional[str] = Field(default=None, min_length=1, max_length=100)
    avatar_url: Optional[str] = Field(default=None, max_length=500)


# ---------------------------------------------------------------------------
# Roles
# ---------------------------------------------------------------------------


class RoleCreate(BaseModel):
    model_config = ConfigDict(str_strip_whitespace=True)

    name: str = Field(min_length=1, max_length=50)
    permissions: dict[str, list[str]]


class RoleUpdate(BaseModel):
    model_config = ConfigDict(str_strip_whitespace=True)

    name: Optional[str] = Field(default=None, min_length=1, max_length=50)
    permissions: Optional[dict[str, list[str]]] = None


class RoleOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    name: str
    permissions: dict[str, list[str]]
    is_builtin: bool
    created_at: Optional[str] = None
    updated_at: Optional[str] = None


# ---------------------------------------------------------------------------
# Projects and members
# ---------------------------------------------------------------------------


class ProjectCreate(BaseModel):
    model_config = ConfigDict(str_strip_whitespace=True)

    name: str = Field(min_length=1, max_length=100)
    description: Optional[str] = Field(default=None, max_length=5000)


class ProjectUpdate(BaseModel):
    model_config = ConfigDict(str_strip_whitespace=True)

    name: Optional[str] = Field(default=None, min_length=1, max_length=100)
    description: Optional[str] = Field(default=None, max_length=5000)
    status: Optional[ProjectStatusEnum] = None


class ProjectOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    name: str
    description: Optional[str] = None
    status: str
    owner_id: int
    created_at: Optional[str] = None
    updated_at: Optional[str] = None


class MemberAdd(BaseModel):
    user_id: int = Field(gt=0)
    role_id: int = Field(gt=0)


class MemberUpdate(BaseModel):
    role_id: int = Field(gt=0)


class MemberOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    project_id: int
    user_id: int
    role_id: int
    role_name: Optional[str] = None
    email: Optional[str] = None
    display_name: Optional[str] = None
    joined_at: Optional[str] = None


# ---------------------------------------------------------------------------
# Tasks and labels
# ---------------------------------------------------------------------------


class TaskCreate(BaseModel):
    model_config = ConfigDict(str_strip_whitespace=True)

    title: str = Field(min_length=1, max_length=200)
    description: Optional[str] = Field(default=None, max_length=10000)
    status: TaskStatusEnum = TaskStatusEnum.todo
    priority: TaskPriorityEnum = TaskPriorityEnum.medium
    due_date: Optional[date] = None
    parent_task_id: Optional[int] = Field(default=None, gt=0)
    assignee_ids: list[int] = Field(default_factory=list, max_length=50)
    label_ids: list[int] = Field(default_factory=list, max_length=50)


class TaskUpdate(BaseModel):
    """Partial update. Only fields present in the request body are applied."""

    model_config = ConfigDict(str_strip_whitespace=True)

    title: Optional[str] = Field(default=None, min_length=1, max_length=200)
    description: Optional[str] = Field(default=None, max_length=10000)
    status: Optional[TaskStatusEnum] = None
    priority: Optional[TaskPriorityEnum] = None
    due_date: Optional[date] = None
    assignee_ids: Optional[list[int]] = Field(default=None, max_length=50)
    label_ids: Optional[list[int]] = Field(default=None, max_length=50)


class TaskOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    project_id: int
    title: str
    description: Optional[str] = None
    status: str
    priority: str
    due_date: Optional[str] = None
    parent_task_id: Optional[int] = None
    created_by: int
    assignee_ids: list[int] = []
    label_ids: list[int] = []
    subtask_ids: list[int] = []
    created_at: Optional[str] = None
    updated_at: Optional[str] = None


class AssigneesIn(BaseModel):
    user_ids: list[int] = Field(min_length=1, max_length=50)


class LabelCreate(BaseModel):
    model_config = ConfigDict(str_strip_whitespace=True)

    name: str = Field(min_length=1, max_length=50)
    color: Optional[str] = Field(default=None, max_length=7)


class LabelUpdate(BaseModel):
    model_config = ConfigDict(str_strip_whitespace=True)

    name: Optional[str] = Field(default=None, min_length=1, max_length=50)
    color: Optional[str] = Field(default=None, max_length=7)


class LabelOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    project_id: int
    name: str
    color: str


# ---------------------------------------------------------------------------
# Comments and time logs
# ---------------------------------------------------------------------------


class CommentIn(BaseModel):
    content: str = Field(min_length=1, max_length=10000)


class CommentOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    task_id: int
    user_id: int
    user_display_name: Optional[str] = None
    content: str
    created_at: Optional[str] = None
    updated_at: Optional[str] = None


class TimeLogCreate(BaseModel):
    duration_minutes: int = Field(ge=1, le=1440)
    logged_on: date
    description: Optional[str] = Field(default=None, max_length=1000)


class TimeLogUpdate(BaseModel):
    duration_minutes: Optional[int] = Field(default=None, ge=1, le=1440)
    logged_on: Optional[date] = None
    description: Optional[str] = Field(default=None, max_length=1000)


class TimeLogOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    task_id: int
    project_id: Optional[int] = None
    task_title: Optional[str] = None
    user_id: int
    user_display_name: Optional[str] = None
    duration_minutes: int
    logged_on: str
    description: Optional[str] = None
    created_at: Optional[str] = None


# ---------------------------------------------------------------------------
# Activity
# ---------------------------------------------------------------------------


class ActivityOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    project_id: int
    project_name: Optional[str] = None
    user_id: int
    user_display_name: Optional[str] = None
    action: str
    entity_type: str
    entity_id: int
    details: dict[str, Any]
    created_at: str
