import uuid
from datetime import date, datetime
from decimal import Decimal
from typing import Annotated, Any, Literal

from pydantic import BaseModel, ConfigDict, Field, model_validator

from app.models import AppRole, TimesheetStatus


class SuccessResponse(BaseModel):
    success: bool = True


# --- auth ---------------------------------------------------------------


class SignupRequest(BaseModel):
    email: str = Field(min_length=3, max_length=320)
    password: str
    first_name: str = Field(min_length=1, max_length=255)
    last_name: str | None = Field(default=None, max_length=255)
    employee_id: str | None = Field(default=None, max_length=64)


class LoginRequest(BaseModel):
    email: str
    password: str


class AuthResponse(BaseModel):
    access_token: str
    token_type: str = "bearer"
    expires_in: int


# --- privileged account handlers ------------------------------------------
#
# Bodies keep the camelCase field names the web client sends. Fields are
# optional so that missing values produce the handler's own 400 message.


class _CamelRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)


class AccountCreateRequest(_CamelRequest):
    first_name: str | None = Field(default=None, alias="firstName")
    last_name: str | None = Field(default=None, alias="lastName")
    employee_id: str | None = Field(default=None, alias="employeeId")
    email: str | None = None
    password: str | None = None


class AccountCreateResponse(SuccessResponse):
    message: str
    user_id: uuid.UUID = Field(serialization_alias="userId")


class RoleUpdateRequest(_CamelRequest):
    user_id: uuid.UUID | None = Field(default=None, alias="userId")
    new_role: str | None = Field(default=None, alias="newRole")


class PasswordUpdateRequest(_CamelRequest):
    user_id: uuid.UUID | None = Field(default=None, alias="userId")
    new_password: str | None = Field(default=None, alias="newPassword")


class EmployeeIdUpdateRequest(_CamelRequest):
    user_id: uuid.UUID | None = Field(default=None, alias="userId")
    employee_id: str | None = Field(default=None, alias="employeeId")


class AccountRosterItem(BaseModel):
    id: uuid.UUID
    email: str
    display_name: str | None = Field(serialization_alias="displayName")
    employee_id: str | None = Field(serialization_alias="employeeId")
    department: str | None = None
    password_changed_at: datetime | None = Field(serialization_alias="passwordChangedAt")
    created_at: datetime | None = Field(serialization_alias="createdAt")
    projects: list[str]
    role: AppRole


class AccountRosterResponse(SuccessResponse):
    users: list[AccountRosterItem]


class MissingEmployeeIdResponse(SuccessResponse):
    message: str
    notified: int
    skipped: int = 0


# --- projects -----------------------------------------------------------


class ProjectCreate(BaseModel):
    name: str = Field(min_length=1, max_length=255)
    description: str | None = None
    is_active: bool = True


class ProjectUpdate(BaseModel):
    name: str | None = Field(default=None, min_length=1, max_length=255)
    description: str | None = None
    is_active: bool | None = None


class ProjectRead(BaseModel):
    id: uuid.UUID
    name: str
    description: str | None
    is_active: bool
    created_at: datetime | None = None

    model_config = ConfigDict(from_attributes=True)


class ProjectMemberRequest(BaseModel):
    account_id: uuid.UUID


class ProjectHeadsReplaceRequest(BaseModel):
    account_ids: list[uuid.UUID] = Field(default_factory=list)


class ProjectMemberRead(BaseModel):
    project_id: uuid.UUID
    account_id: uuid.UUID
    display_name: str | None = None
    assigned_by: uuid.UUID | None = None
    assigned_at: datetime | None = None


# --- timesheets ---------------------------------------------------------


class TimesheetEntryCreate(BaseModel):
    project: str = Field(min_length=1, max_length=255)
    hours: Decimal = Field(gt=0, le=24, max_digits=5, decimal_places=2)
    start_date: date
    end_date: date
    description: str | None = None

    @model_validator(mode="after")
    def _validate_dates(self) -> "TimesheetEntryCreate":
        if self.end_date < self.start_date:
            raise ValueError("end_date must be greater than or equal to start_date")
        return self


class TimesheetEntryUpdate(BaseModel):
    hours: Decimal | None = Field(default=None, gt=0, le=24, max_digits=5, decimal_places=2)
    description: str | None = None


class TimesheetReviewRequest(BaseModel):
    status: Literal["approved", "rejected"]
    notes: str | None = None


class TimesheetEntryRead(BaseModel):
    id: uuid.UUID
    account_id: uuid.UUID
    name: str
    employee_id: str
    project_id: uuid.UUID
    project: str | None
    hours: float
    start_date: date
    end_date: date
    description: str | None
    status: TimesheetStatus
    reviewed_by: uuid.UUID | None
    reviewed_at: datetime | None
    review_notes: str | None
    created_at: datetime | None = None


WeeklyHours = Annotated[Decimal, Field(ge=0, le=24, max_digits=5, decimal_places=2)]


class WeeklyRow(BaseModel):
    project: str = ""
    description: str | None = None
    hours: dict[date, WeeklyHours] = Field(default_factory=dict)


class WeeklySubmitRequest(BaseModel):
    week_start: date
    entries: list[WeeklyRow]


class WeeklySubmitResponse(SuccessResponse):
    created: int
    entries: list[TimesheetEntryRead]


class DraftRow(BaseModel):
    id: str | None = None
    project: str = ""
    description: str = ""
    hours: dict[str, float] = Field(default_factory=dict)


class DraftUpsertRequest(BaseModel):
    entries: list[DraftRow]


class DraftRead(BaseModel):
    storage_key: str
    week_start: date
    entries: list[DraftRow]
    updated_at: datetime | None = None


# --- self service -------------------------------------------------------


class MeResponse(BaseModel):
    id: uuid.UUID
    email: str
    display_name: str | None
    employee_id: str | None
    department: str | None
    avatar_url: str | None
    role: AppRole
    head_project_ids: list[uuid.UUID]


class ProfileUpdateRequest(BaseModel):
    display_name: str | None = Field(default=None, max_length=255)
    employee_id: str | None = Field(default=None, max_length=64)
    department: str | None = Field(default=None, max_length=255)
    avatar_url: str | None = Field(default=None, max_length=1024)


class NotificationRead(BaseModel):
    id: int
    title: str
    message: str
    type: str
    is_read: bool
    metadata: dict[str, Any]
    created_at: datetime | None = None


class NotificationsReadAllResponse(SuccessResponse):
    updated: int


# --- dashboards ---------------------------------------------------------


class DashboardStatsRead(BaseModel):
    total_hours: float
    total_projects: int
    this_week_hours: float
    total_entries: int


class AnalyticsStatsRead(BaseModel):
    total_hours: float
    total_employees: int
    total_projects: int
    avg_hours_per_entry: float
    total_entries: int


class ProjectHoursItem(BaseModel):
    name: str
    value: float


class EmployeeHoursItem(BaseModel):
    name: str
    hours: float
    entries: int


class WeeklyTrendItem(BaseModel):
    week: str
    hours: float
    start_date: date
    end_date: date
