"""
Response shapes shared by the REST API and live events.
"""

from datetime import datetime, timezone
from typing import Any, Dict, Optional

from .db.models import User, Case, CaseNote, CaseHistory, Task, Hearing, Notification


def _iso(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value else None


def _enum(value) -> Optional[str]:
    return getattr(value, "value", value)


def to_naive_utc(value: Optional[datetime]) -> Optional[datetime]:
    """Store datetimes as naive UTC (matches datetime.utcnow columns)."""
    if value is None or value.tzinfo is None:
        return value
    return value.astimezone(timezone.utc).replace(tzinfo=None)


def user_dict(user: User) -> Dict[str, Any]:
    return {
        "id": user.id,
        "name": user.name,
        "email": user.email,
        "role": _enum(user.role),
        "status": _enum(user.status),
        "phone": user.phone,
        "created_at": _iso(user.created_at),
        "last_login": _iso(user.last_login),
    }


def case_dict(case: Case) -> Dict[str, Any]:
    return {
        "id": case.id,
        "case_number": case.case_number,
        "title": case.title,
        "description": case.description,
        "owner_id": case.owner_id,
        "assigned_to_id": case.assigned_to_id,
        "client_id": case.client_id,
        "respondent_id": case.respondent_id,
        "shared_with": sorted(case.shared_with_ids),
        "category": _enum(case.category),
        "status": _enum(case.status),
        "priority": _enum(case.priority),
        "court": case.court,
        "jurisdiction": case.jurisdiction,
        "is_paused": bool(case.is_paused),
        "filed_at": _iso(case.filed_at),
        "created_at": _iso(case.created_at),
        "updated_at": _iso(case.updated_at),
    }


def case_note_dict(note: CaseNote) -> Dict[str, Any]:
    return {
        "id": note.id,
        "case_id": note.case_id,
        "author_id": note.author_id,
        "content": note.content,
        "visibility": _enum(note.visibility),
        "created_at": _iso(note.created_at),
    }


def case_history_dict(entry: CaseHistory) -> Dict[str, Any]:
    return {
        "id": entry.id,
        "action": entry.action,
        "performed_by_id": entry.performed_by_id,
        "note": entry.note,
        "meta": entry.meta or {},
        "timestamp": _iso(entry.timestamp),
    }


def task_dict(task: Task, client_id: Optional[str] = None) -> Dict[str, Any]:
    return {
        "id": task.id,
        "title": task.title,
        "description": task.description,
        "case_id": task.case_id,
        "client_id": client_id,
        "created_by_id": task.created_by_id,
        "assignees": sorted(task.assignee_ids),
        "shared_with": sorted(task.shared_with_ids),
        "status": _enum(task.status),
        "priority": _enum(task.priority),
        "due_date": _iso(task.due_date),
        "progress": task.progress,
        "completed_at": _iso(task.completed_at),
        "created_at": _iso(task.created_at),
        "updated_at": _iso(task.updated_at),
    }


def hearing_dict(hearing: Hearing) -> Dict[str, Any]:
    participants: Dict[str, list] = {}
    for p in hearing.participants:
        participants.setdefault(_enum(p.side), []).append(p.user_id)
    return {
        "id": hearing.id,
        "case_id": hearing.case_id,
        "title": hearing.title,
        "description": hearing.description,
        "start": _iso(hearing.start_at),
        "end": _iso(hearing.end_at),
        "venue": hearing.venue,
        "meeting_link": hearing.meeting_link,
        "status": _enum(hearing.status),
        "participants": {side: sorted(ids) for side, ids in participants.items()},
        "notes": [
            {"id": n.id, "author_id": n.author_id, "content": n.content, "created_at": _iso(n.created_at)}
            for n in hearing.notes
        ],
        "created_by_id": hearing.created_by_id,
        "created_at": _iso(hearing.created_at),
        "updated_at": _iso(hearing.updated_at),
    }


def notification_dict(notification: Notification) -> Dict[str, Any]:
    return {
        "id": notification.id,
        "recipient_id": notification.recipient_id,
        "sender_id": notification.sender_id,
        "type": _enum(notification.type),
        "title": notification.title,
        "message": notification.message,
        "link": notification.link,
        "related_case_id": notification.related_case_id,
        "related_task_id": notification.related_task_id,
        "is_read": bool(notification.is_read),
        "read_at": _iso(notification.read_at),
        "created_at": _iso(notification.created_at),
    }
