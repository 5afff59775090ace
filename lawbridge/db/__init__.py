"""
Database Package - SQLAlchemy
=============================

Persistence layer for cases, tasks, hearings, notifications and users.
"""

from .models import (
    Base,
    User, Case, CaseShare, CaseNote, CaseHistory,
    Task, TaskMember,
    Hearing, HearingParticipant, HearingNote,
    Notification, RevokedToken,
    Role, UserStatus, CaseCategory, CaseStatus, Priority, SharePermission,
    NoteVisibility, TaskStatus, TaskMemberKind, HearingStatus, HearingSide,
    NotificationType,
)
from .session import get_db, get_db_session, init_db, get_engine, reset_engine

__all__ = [
    # Base
    "Base",
    # Users
    "User", "RevokedToken",
    # Cases
    "Case", "CaseShare", "CaseNote", "CaseHistory",
    # Tasks
    "Task", "TaskMember",
    # Hearings
    "Hearing", "HearingParticipant", "HearingNote",
    # Notifications
    "Notification",
    # Enums
    "Role", "UserStatus", "CaseCategory", "CaseStatus", "Priority", "SharePermission",
    "NoteVisibility", "TaskStatus", "TaskMemberKind", "HearingStatus", "HearingSide",
    "NotificationType",
    # Session
    "get_db", "get_db_session", "init_db", "get_engine", "reset_engine",
]
