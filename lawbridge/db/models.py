"""
SQLAlchemy Models for Database
==============================

Schema for role-based legal case management:
- Users with a closed role set and account status
- Cases with ownership, explicit sharing, notes and an audit history
- Tasks (optionally linked to a case) with assignees and shares
- Hearings with participants by side and notes
- Notifications
- Revoked access tokens (logout)

Supports both PostgreSQL and SQLite via SQLAlchemy.
"""

import enum
from datetime import datetime
from sqlalchemy import (
    Column, String, Text, Integer, Boolean, DateTime, Enum, ForeignKey,
    UniqueConstraint, Index, JSON
)
from sqlalchemy.orm import relationship, declarative_base
import uuid

# Use JSON for cross-database compatibility (works with both PostgreSQL and SQLite)
JSONB = JSON

Base = declarative_base()


def generate_uuid():
    return str(uuid.uuid4())


# =============================================================================
# ENUMS
# =============================================================================

class Role(str, enum.Enum):
    """Closed set of principal roles"""
    ADMIN = "admin"
    ADVOCATE = "advocate"
    PARALEGAL = "paralegal"
    MEDIATOR = "mediator"
    ARBITRATOR = "arbitrator"
    RECONCILIATOR = "reconciliator"
    CLIENT = "client"
    RESPONDENT = "respondent"


class UserStatus(str, enum.Enum):
    ACTIVE = "active"
    INACTIVE = "inactive"
    SUSPENDED = "suspended"


class CaseCategory(str, enum.Enum):
    CIVIL = "civil"
    CRIMINAL = "criminal"
    ADR = "adr"
    OTHER = "other"


class CaseStatus(str, enum.Enum):
    """Case lifecycle status"""
    DRAFT = "draft"
    FILED = "filed"
    UNDER_REVIEW = "under_review"
    ACCEPTED = "accepted"
    HEARING_SCHEDULED = "hearing_scheduled"
    HEARING_IN_PROGRESS = "hearing_in_progress"
    AWARD_ISSUED = "award_issued"
    RESOLVED = "resolved"
    CLOSED = "closed"
    REJECTED = "rejected"
    ARCHIVED = "archived"


class Priority(str, enum.Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    URGENT = "urgent"


class SharePermission(str, enum.Enum):
    VIEW = "view"
    COMMENT = "comment"
    EDIT = "edit"


class NoteVisibility(str, enum.Enum):
    PRIVATE = "private"
    SHARED = "shared"
    PUBLIC = "public"


class TaskStatus(str, enum.Enum):
    PENDING = "pending"
    IN_PROGRESS = "in-progress"
    COMPLETED = "completed"
    OVERDUE = "overdue"
    ARCHIVED = "archived"


class TaskMemberKind(str, enum.Enum):
    """How a user is attached to a task"""
    ASSIGNEE = "assignee"
    SHARED = "shared"


class HearingStatus(str, enum.Enum):
    SCHEDULED = "scheduled"
    IN_PROGRESS = "in_progress"
    ADJOURNED = "adjourned"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


class HearingSide(str, enum.Enum):
    ADVOCATE = "advocate"
    ARBITRATOR = "arbitrator"
    CLIENT = "client"
    RESPONDENT = "respondent"


class NotificationType(str, enum.Enum):
    GENERAL = "general"
    SYSTEM = "system"
    CASE_UPDATE = "case_update"
    TASK_UPDATE = "task_update"
    ADR_UPDATE = "adr_update"
    DOCUMENT = "document"
    REMINDER = "reminder"
    ALERT = "alert"
    MESSAGE = "message"


# =============================================================================
# USERS
# =============================================================================

class User(Base):
    """User in the system"""
    __tablename__ = "users"

    id = Column(String(36), primary_key=True, default=generate_uuid)
    email = Column(String(255), nullable=False, unique=True)
    name = Column(String(255), nullable=False)
    role = Column(Enum(Role), default=Role.CLIENT, nullable=False)
    status = Column(Enum(UserStatus), default=UserStatus.ACTIVE, nullable=False)
    phone = Column(String(50), nullable=True)
    password_hash = Column(String(255), nullable=True)
    password_changed_at = Column(DateTime, nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow)
    last_login = Column(DateTime, nullable=True)
    extra_data = Column(JSONB, default=dict)  # Note: 'metadata' is reserved by SQLAlchemy

    owned_cases = relationship("Case", back_populates="owner", foreign_keys="Case.owner_id")


# =============================================================================
# CASES
# =============================================================================

class Case(Base):
    """A legal case; the shared resource guarded by ownership and sharing"""
    __tablename__ = "cases"

    id = Column(String(36), primary_key=True, default=generate_uuid)
    case_number = Column(String(64), nullable=False, unique=True)
    title = Column(String(200), nullable=False)
    description = Column(Text, nullable=True)

    # Ownership
    owner_id = Column(String(36), ForeignKey("users.id", ondelete="RESTRICT"), nullable=False)
    assigned_to_id = Column(String(36), ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    client_id = Column(String(36), ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    respondent_id = Column(String(36), ForeignKey("users.id", ondelete="SET NULL"), nullable=True)

    category = Column(Enum(CaseCategory), default=CaseCategory.CIVIL, nullable=False)
    status = Column(Enum(CaseStatus), default=CaseStatus.DRAFT, nullable=False)
    priority = Column(Enum(Priority), default=Priority.MEDIUM, nullable=False)
    court = Column(String(255), nullable=True)
    jurisdiction = Column(String(255), nullable=True)
    is_paused = Column(Boolean, default=False, nullable=False)
    filed_at = Column(DateTime, nullable=True)

    # Soft delete
    is_deleted = Column(Boolean, default=False, nullable=False)
    deleted_at = Column(DateTime, nullable=True)

    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)
    extra_data = Column(JSONB, default=dict)

    __table_args__ = (
        Index("ix_cases_owner_deleted", "owner_id", "is_deleted"),
    )

    owner = relationship("User", back_populates="owned_cases", foreign_keys=[owner_id])
    shares = relationship("CaseShare", back_populates="case", cascade="all, delete-orphan")
    notes = relationship("CaseNote", back_populates="case", cascade="all, delete-orphan",
                         order_by="CaseNote.created_at")
    history = relationship("CaseHistory", back_populates="case", cascade="all, delete-orphan",
                           order_by="CaseHistory.timestamp")

    @property
    def shared_with_ids(self):
        return [s.user_id for s in self.shares]

    def add_history(self, action: str, user_id=None, note: str = "", meta=None):
        self.history.append(CaseHistory(
            action=action,
            performed_by_id=user_id,
            note=note,
            meta=meta or {},
        ))


class CaseShare(Base):
    """Explicit grant of case access to a user"""
    __tablename__ = "case_shares"

    id = Column(String(36), primary_key=True, default=generate_uuid)
    case_id = Column(String(36), ForeignKey("cases.id", ondelete="CASCADE"), nullable=False)
    user_id = Column(String(36), ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    shared_by_id = Column(String(36), ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    permission = Column(Enum(SharePermission), default=SharePermission.VIEW, nullable=False)
    shared_at = Column(DateTime, default=datetime.utcnow)

    __table_args__ = (
        UniqueConstraint("case_id", "user_id", name="uq_case_share_user"),
    )

    case = relationship("Case", back_populates="shares")


class CaseNote(Base):
    __tablename__ = "case_notes"

    id = Column(String(36), primary_key=True, default=generate_uuid)
    case_id = Column(String(36), ForeignKey("cases.id", ondelete="CASCADE"), nullable=False)
    author_id = Column(String(36), ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    content = Column(Text, nullable=False)
    visibility = Column(Enum(NoteVisibility), default=NoteVisibility.PRIVATE, nullable=False)
    created_at = Column(DateTime, default=datetime.utcnow)

    case = relationship("Case", back_populates="notes")


class CaseHistory(Base):
    """Audit trail entry for a case"""
    __tablename__ = "case_history"

    id = Column(String(36), primary_key=True, default=generate_uuid)
    case_id = Column(String(36), ForeignKey("cases.id", ondelete="CASCADE"), nullable=False)
    action = Column(String(100), nullable=False)
    performed_by_id = Column(String(36), ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    note = Column(Text, nullable=True)
    meta = Column(JSONB, default=dict)
    timestamp = Column(DateTime, default=datetime.utcnow)

    case = relationship("Case", back_populates="history")


# =============================================================================
# TASKS
# =============================================================================

class Task(Base):
    __tablename__ = "tasks"

    id = Column(String(36), primary_key=True, default=generate_uuid)
    title = Column(String(200), nullable=False)
    description = Column(Text, nullable=True)
    case_id = Column(String(36), ForeignKey("cases.id", ondelete="SET NULL"), nullable=True)
    created_by_id = Column(String(36), ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    status = Column(Enum(TaskStatus), default=TaskStatus.PENDING, nullable=False)
    priority = Column(Enum(Priority), default=Priority.MEDIUM, nullable=False)
    due_date = Column(DateTime, nullable=True)
    progress = Column(Integer, default=0, nullable=False)
    completed_at = Column(DateTime, nullable=True)
    is_deleted = Column(Boolean, default=False, nullable=False)
    deleted_at = Column(DateTime, nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    members = relationship("TaskMember", back_populates="task", cascade="all, delete-orphan")

    @property
    def assignee_ids(self):
        return [m.user_id for m in self.members if m.kind == TaskMemberKind.ASSIGNEE]

    @property
    def shared_with_ids(self):
        return [m.user_id for m in self.members if m.kind == TaskMemberKind.SHARED]


class TaskMember(Base):
    __tablename__ = "task_members"

    id = Column(String(36), primary_key=True, default=generate_uuid)
    task_id = Column(String(36), ForeignKey("tasks.id", ondelete="CASCADE"), nullable=False)
    user_id = Column(String(36), ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    kind = Column(Enum(TaskMemberKind), nullable=False)

    __table_args__ = (
        UniqueConstraint("task_id", "user_id", "kind", name="uq_task_member"),
    )

    task = relationship("Task", back_populates="members")


# =============================================================================
# HEARINGS
# =============================================================================

class Hearing(Base):
    __tablename__ = "hearings"

    id = Column(String(36), primary_key=True, default=generate_uuid)
    case_id = Column(String(36), ForeignKey("cases.id", ondelete="CASCADE"), nullable=False)
    title = Column(String(200), nullable=False)
    description = Column(Text, nullable=True)
    start_at = Column(DateTime, nullable=False)
    end_at = Column(DateTime, nullable=False)
    venue = Column(String(255), default="To be determined", nullable=False)
    meeting_link = Column(String(500), nullable=True)
    status = Column(Enum(HearingStatus), default=HearingStatus.SCHEDULED, nullable=False)
    created_by_id = Column(String(36), ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    is_deleted = Column(Boolean, default=False, nullable=False)
    deleted_at = Column(DateTime, nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    __table_args__ = (
        Index("ix_hearings_case_start", "case_id", "start_at"),
    )

    participants = relationship("HearingParticipant", back_populates="hearing", cascade="all, delete-orphan")
    notes = relationship("HearingNote", back_populates="hearing", cascade="all, delete-orphan",
                         order_by="HearingNote.created_at")

    @property
    def participant_ids(self):
        return [p.user_id for p in self.participants]


class HearingParticipant(Base):
    __tablename__ = "hearing_participants"

    id = Column(String(36), primary_key=True, default=generate_uuid)
    hearing_id = Column(String(36), ForeignKey("hearings.id", ondelete="CASCADE"), nullable=False)
    user_id = Column(String(36), ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    side = Column(Enum(HearingSide), nullable=False)

    __table_args__ = (
        UniqueConstraint("hearing_id", "user_id", "side", name="uq_hearing_participant"),
    )

    hearing = relationship("Hearing", back_populates="participants")


class HearingNote(Base):
    __tablename__ = "hearing_notes"

    id = Column(String(36), primary_key=True, default=generate_uuid)
    hearing_id = Column(String(36), ForeignKey("hearings.id", ondelete="CASCADE"), nullable=False)
    author_id = Column(String(36), ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    content = Column(Text, nullable=False)
    created_at = Column(DateTime, default=datetime.utcnow)

    hearing = relationship("Hearing", back_populates="notes")


# =============================================================================
# NOTIFICATIONS
# =============================================================================

class Notification(Base):
    __tablename__ = "notifications"

    id = Column(String(36), primary_key=True, default=generate_uuid)
    recipient_id = Column(String(36), ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    sender_id = Column(String(36), ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    type = Column(Enum(NotificationType), default=NotificationType.GENERAL, nullable=False)
    title = Column(String(200), nullable=False)
    message = Column(Text, nullable=False)
    link = Column(String(500), nullable=True)
    related_case_id = Column(String(36), ForeignKey("cases.id", ondelete="SET NULL"), nullable=True)
    related_task_id = Column(String(36), ForeignKey("tasks.id", ondelete="SET NULL"), nullable=True)
    is_read = Column(Boolean, default=False, nullable=False)
    read_at = Column(DateTime, nullable=True)
    is_deleted = Column(Boolean, default=False, nullable=False)
    created_at = Column(DateTime, default=datetime.utcnow)

    __table_args__ = (
        Index("ix_notifications_recipient_read", "recipient_id", "is_read"),
    )


# =============================================================================
# AUTH
# =============================================================================

class RevokedToken(Base):
    """Database fallback for the token revocation list"""
    __tablename__ = "revoked_tokens"

    jti = Column(String(64), primary_key=True)
    user_id = Column(String(36), ForeignKey("users.id", ondelete="CASCADE"), nullable=True)
    expires_at = Column(DateTime, nullable=False)
    revoked_at = Column(DateTime, default=datetime.utcnow)
