"""
Pydantic Schemas for LawBridge
==============================

Request bodies for the REST API. Responses are plain dicts built by
lawbridge.serializers so the same shapes travel over the live channel.
"""

from typing import ClassVar, List, Optional, Dict, Tuple
from datetime import datetime

from pydantic import BaseModel, Field, model_validator

from .db.models import (
    CaseCategory, CaseStatus, Priority, SharePermission, NoteVisibility,
    TaskStatus, HearingStatus, HearingSide, NotificationType, UserStatus,
)


class PartialUpdate(BaseModel):
    """
    Body for a PUT that only touches the fields it sends.

    Fields named in ``not_null`` may be left out but not sent as null,
    since the columns behind them cannot be cleared.
    """
    not_null: ClassVar[Tuple[str, ...]] = ()

    @model_validator(mode="before")
    @classmethod
    def _reject_cleared(cls, data):
        if isinstance(data, dict):
            cleared = [name for name in cls.not_null if name in data and data[name] is None]
            if cleared:
                raise ValueError(f"Field(s) cannot be null: {', '.join(cleared)}")
        return data


# =============================================================================
# Auth & Users
# =============================================================================

class RegisterRequest(BaseModel):
    name: str = Field(..., min_length=1, max_length=255)
    email: str = Field(..., min_length=3, max_length=255)
    password: str = Field(..., min_length=6)
    role: Optional[str] = Field(None, description="client or paralegal (default client)")
    phone: Optional[str] = None

    class Config:
        json_schema_extra = {
            "example": {
                "name": "Jane Wanjiru",
                "email": "jane@example.com",
                "password": "s3cret-pass",
                "role": "client",
            }
        }


class LoginRequest(BaseModel):
    email: str
    password: str


class ChangePasswordRequest(BaseModel):
    current_password: str
    new_password: str = Field(..., min_length=6)


class CreateUserRequest(BaseModel):
    """Admin-only user creation (any role)"""
    name: str = Field(..., min_length=1, max_length=255)
    email: str = Field(..., min_length=3, max_length=255)
    password: str = Field(..., min_length=6)
    role: str
    status: UserStatus = UserStatus.ACTIVE
    phone: Optional[str] = None


class UpdateUserRequest(BaseModel):
    role: Optional[str] = None
    status: Optional[UserStatus] = None
    name: Optional[str] = None
    phone: Optional[str] = None


# =============================================================================
# Cases
# =============================================================================

class CreateCaseRequest(BaseModel):
    """Request to create a new case"""
    title: str = Field(..., min_length=1, max_length=200)
    description: Optional[str] = Field(None, max_length=10000)
    category: CaseCategory = CaseCategory.CIVIL
    priority: Priority = Priority.MEDIUM
    status: CaseStatus = CaseStatus.DRAFT
    client_id: Optional[str] = None
    respondent_id: Optional[str] = None
    assigned_to_id: Optional[str] = None
    court: Optional[str] = None
    jurisdiction: Optional[str] = None
    shared_with: List[str] = Field(default_factory=list)

    class Config:
        json_schema_extra = {
            "example": {
                "title": "Mwangi v. Acme Ltd",
                "description": "Breach of supply contract",
                "category": "civil",
                "priority": "high",
                "court": "High Court, Nairobi",
            }
        }


class UpdateCaseRequest(PartialUpdate):
    not_null = ("title", "category", "priority")

    title: Optional[str] = Field(None, min_length=1, max_length=200)
    description: Optional[str] = Field(None, max_length=10000)
    category: Optional[CaseCategory] = None
    priority: Optional[Priority] = None
    client_id: Optional[str] = None
    respondent_id: Optional[str] = None
    assigned_to_id: Optional[str] = None
    court: Optional[str] = None
    jurisdiction: Optional[str] = None


class CaseStatusRequest(BaseModel):
    status: CaseStatus
    note: Optional[str] = None


class ShareCaseRequest(BaseModel):
    user_id: str
    permission: SharePermission = SharePermission.VIEW


class CaseNoteRequest(BaseModel):
    content: str = Field(..., min_length=1)
    visibility: NoteVisibility = NoteVisibility.PRIVATE


# =============================================================================
# Tasks
# =============================================================================

class CreateTaskRequest(BaseModel):
    title: str = Field(..., min_length=1, max_length=200)
    description: Optional[str] = None
    case_id: Optional[str] = None
    assignees: List[str] = Field(default_factory=list)
    shared_with: List[str] = Field(default_factory=list)
    status: TaskStatus = TaskStatus.PENDING
    priority: Priority = Priority.MEDIUM
    due_date: Optional[datetime] = None
    progress: int = Field(0, ge=0, le=100)


class UpdateTaskRequest(PartialUpdate):
    not_null = ("title", "status", "priority", "progress")

    title: Optional[str] = Field(None, min_length=1, max_length=200)
    description: Optional[str] = None
    assignees: Optional[List[str]] = None
    shared_with: Optional[List[str]] = None
    status: Optional[TaskStatus] = None
    priority: Optional[Priority] = None
    due_date: Optional[datetime] = None
    progress: Optional[int] = Field(None, ge=0, le=100)


# =============================================================================
# Hearings
# =============================================================================

class CreateHearingRequest(BaseModel):
    case_id: str
    title: str = Field(..., min_length=1, max_length=200)
    description: Optional[str] = None
    start: datetime
    end: datetime
    venue: Optional[str] = None
    meeting_link: Optional[str] = None
    participants: Dict[HearingSide, List[str]] = Field(default_factory=dict)

    @model_validator(mode="after")
    def _check_window(self):
        if self.end <= self.start:
            raise ValueError("Hearing end must be after start")
        return self


class UpdateHearingRequest(PartialUpdate):
    not_null = ("title", "start", "end", "status")

    title: Optional[str] = Field(None, min_length=1, max_length=200)
    description: Optional[str] = None
    start: Optional[datetime] = None
    end: Optional[datetime] = None
    venue: Optional[str] = None
    meeting_link: Optional[str] = None
    status: Optional[HearingStatus] = None
    participants: Optional[Dict[HearingSide, List[str]]] = None


class HearingNoteRequest(BaseModel):
    content: str = Field(..., min_length=1)


# =============================================================================
# Notifications
# =============================================================================

class CreateNotificationRequest(BaseModel):
    recipient_id: str
    title: str = Field(..., min_length=1, max_length=200)
    message: str = Field(..., min_length=1)
    type: NotificationType = NotificationType.GENERAL
    link: Optional[str] = None
    related_case_id: Optional[str] = None
    related_task_id: Optional[str] = None
