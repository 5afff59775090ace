"""
Case Endpoints
==============

- GET    /api/cases/stats                    - Status totals for the caller's cases
- GET    /api/cases/export                   - CSV export of visible cases
- POST   /api/cases                          - Create case (caller becomes owner)
- GET    /api/cases                          - List visible cases
- GET    /api/cases/{case_id}                - Get case
- PUT    /api/cases/{case_id}                - Update case fields
- PATCH  /api/cases/{case_id}/status         - Change status
- PATCH  /api/cases/{case_id}/pause|resume   - Pause / resume
- POST   /api/cases/{case_id}/share          - Share with a user (owner/admin)
- DELETE /api/cases/{case_id}/share/{uid}    - Revoke a share (owner/admin)
- POST   /api/cases/{case_id}/notes          - Add note
- GET    /api/cases/{case_id}/notes          - List notes
- GET    /api/cases/{case_id}/history        - Audit history
- DELETE /api/cases/{case_id}                - Soft delete (owner/admin)
- PATCH  /api/cases/{case_id}/restore        - Restore (admin)

Every per-case route runs the Role Gate, then the Case Access Guard.
"""

import csv
import io
import logging
from datetime import datetime
from typing import Iterable, List, Optional

from fastapi import APIRouter, Depends, Query
from fastapi.responses import Response
from sqlalchemy import or_, func
from sqlalchemy.orm import Session, selectinload

from .access import RoomAccessPolicy, case_access
from .auth import Principal, authorize, ALL_ROLES
from .db.models import (
    Case, CaseShare, CaseNote, CaseStatus, CaseCategory, Hearing, Priority, NoteVisibility,
    Notification, NotificationType, Role, User, UserStatus,
)
from .db.session import get_db
from .dependencies import get_outbox, get_registry
from .errors import Forbidden, MalformedRequest, NotFound
from .realtime import events
from .realtime.events import Event
from .realtime.outbox import EventOutbox
from .realtime.registry import ConnectionRegistry
from .realtime.rooms import case_room, hearing_room, user_room
from .schemas import (
    CreateCaseRequest, UpdateCaseRequest, CaseStatusRequest, ShareCaseRequest, CaseNoteRequest,
)
from .serializers import case_dict, case_note_dict, case_history_dict, notification_dict

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/cases", tags=["Cases"])

# Role gates per route family
REPORT_GATE = authorize(Role.ADVOCATE, Role.ADMIN)
CREATE_GATE = authorize(Role.ADVOCATE, Role.CLIENT, Role.ADMIN)
VIEW_GATE = authorize(*ALL_ROLES)
UPDATE_GATE = authorize(Role.ADVOCATE, Role.ADMIN, Role.ARBITRATOR)
SHARE_GATE = authorize(Role.ADVOCATE, Role.ADMIN)
DELETE_GATE = authorize(Role.ADVOCATE, Role.ADMIN)
RESTORE_GATE = authorize(Role.ADMIN)

ACTIVE_STATUSES = (CaseStatus.FILED, CaseStatus.UNDER_REVIEW)
CLOSED_STATUSES = (CaseStatus.CLOSED, CaseStatus.RESOLVED)

EXPORT_FIELDS = ["case_number", "title", "category", "status", "priority", "court", "jurisdiction", "filed_at"]


# =============================================================================
# Helpers
# =============================================================================

def case_rooms(case: Case, extra_users: Iterable[str] = ()) -> List[str]:
    """Rooms a case event fans out to: owner, shared users, the case room."""
    user_ids = [case.owner_id, *case.shared_with_ids, *extra_users]
    return [user_room(uid) for uid in user_ids if uid] + [case_room(case.id)]


def _stage(outbox: EventOutbox, db: Session, event_type: str, case: Case, rooms=None):
    db.flush()
    outbox.stage(db, Event(event_type, case.id, case_dict(case), tuple(rooms or case_rooms(case))))


def _require_users(db: Session, user_ids: Iterable[str]) -> None:
    wanted = {uid for uid in user_ids if uid}
    if not wanted:
        return
    found = {row.id for row in db.query(User.id).filter(User.id.in_(wanted)).all()}
    missing = wanted - found
    if missing:
        raise MalformedRequest("Unknown user id(s)", details={"user_ids": sorted(missing)})


def _next_case_number(db: Session, owner_id: str) -> str:
    seq = db.query(func.count(Case.id)).scalar() + 1
    return f"ADV-{owner_id[-4:].upper()}-{datetime.utcnow():%Y%m%d}-{seq:04d}"


def _require_owner_or_admin(principal: Principal, case: Case, action: str):
    if not (principal.is_admin or case.owner_id == principal.user_id):
        logger.warning(f"{principal.user_id} tried to {action} case {case.id} without ownership")
        raise Forbidden(f"Only the case owner or an admin can {action} this case")


def _visible_cases(db: Session, principal: Principal):
    q = db.query(Case).options(selectinload(Case.shares)).filter(Case.is_deleted == False)  # noqa: E712
    if not principal.is_admin:
        q = q.filter(or_(
            Case.owner_id == principal.user_id,
            Case.shares.any(CaseShare.user_id == principal.user_id),
        ))
    return q


# =============================================================================
# Reports
# =============================================================================

@router.get("/stats")
async def case_stats(principal: Principal = Depends(REPORT_GATE), db: Session = Depends(get_db)):
    q = db.query(Case.status, func.count(Case.id)).filter(Case.is_deleted == False)  # noqa: E712
    if not principal.is_admin:
        q = q.filter(Case.owner_id == principal.user_id)
    by_status = {status.value: count for status, count in q.group_by(Case.status).all()}

    return {
        "success": True,
        "data": {
            "total": sum(by_status.values()),
            "active": sum(by_status.get(s.value, 0) for s in ACTIVE_STATUSES),
            "closed": sum(by_status.get(s.value, 0) for s in CLOSED_STATUSES),
            "by_status": by_status,
        },
    }


@router.get("/export")
async def export_cases_csv(principal: Principal = Depends(REPORT_GATE), db: Session = Depends(get_db)):
    cases = _visible_cases(db, principal).order_by(Case.created_at.desc()).all()

    buffer = io.StringIO()
    writer = csv.DictWriter(buffer, fieldnames=EXPORT_FIELDS)
    writer.writeheader()
    for c in cases:
        row = case_dict(c)
        writer.writerow({name: row.get(name) or "" for name in EXPORT_FIELDS})

    return Response(
        content=buffer.getvalue(),
        media_type="text/csv",
        headers={"Content-Disposition": 'attachment; filename="cases_export.csv"'},
    )


# =============================================================================
# CRUD
# =============================================================================

@router.post("", status_code=201)
async def create_case(
    body: CreateCaseRequest,
    principal: Principal = Depends(CREATE_GATE),
    db: Session = Depends(get_db),
    outbox: EventOutbox = Depends(get_outbox),
):
    shared_with = [uid for uid in dict.fromkeys(body.shared_with) if uid != principal.user_id]
    _require_users(db, [body.client_id, body.respondent_id, body.assigned_to_id, *shared_with])

    case = Case(
        case_number=_next_case_number(db, principal.user_id),
        title=body.title.strip(),
        description=body.description,
        owner_id=principal.user_id,
        assigned_to_id=body.assigned_to_id,
        client_id=body.client_id,
        respondent_id=body.respondent_id,
        category=body.category,
        priority=body.priority,
        status=body.status,
        court=body.court,
        jurisdiction=body.jurisdiction,
        filed_at=datetime.utcnow() if body.status == CaseStatus.FILED else None,
    )
    for uid in shared_with:
        case.shares.append(CaseShare(user_id=uid, shared_by_id=principal.user_id))
    case.add_history("Case Created", principal.user_id, f"Case '{case.title}' created")
    db.add(case)

    _stage(outbox, db, events.CASE_NEW, case)
    db.commit()
    logger.info(f"Case {case.id} created by {principal.user_id}")
    return {"success": True, "data": case_dict(case)}


@router.get("")
async def list_cases(
    status: Optional[CaseStatus] = Query(None),
    category: Optional[CaseCategory] = Query(None),
    priority: Optional[Priority] = Query(None),
    search: Optional[str] = Query(None, max_length=200),
    principal: Principal = Depends(VIEW_GATE),
    db: Session = Depends(get_db),
):
    q = _visible_cases(db, principal)
    if status:
        q = q.filter(Case.status == status)
    if category:
        q = q.filter(Case.category == category)
    if priority:
        q = q.filter(Case.priority == priority)
    if search:
        pattern = f"%{search.strip()}%"
        q = q.filter(or_(Case.title.ilike(pattern), Case.case_number.ilike(pattern)))

    cases = q.order_by(Case.created_at.desc()).all()
    return {"success": True, "count": len(cases), "data": [case_dict(c) for c in cases]}


@router.get("/{case_id}")
async def get_case(case: Case = Depends(case_access(VIEW_GATE))):
    return {"success": True, "data": case_dict(case)}


@router.put("/{case_id}")
async def update_case(
    body: UpdateCaseRequest,
    case: Case = Depends(case_access(UPDATE_GATE)),
    principal: Principal = Depends(UPDATE_GATE),
    db: Session = Depends(get_db),
    outbox: EventOutbox = Depends(get_outbox),
):
    changes = body.model_dump(exclude_unset=True)
    _require_users(db, [changes.get(k) for k in ("client_id", "respondent_id", "assigned_to_id")])
    if changes.get("title") is not None:
        changes["title"] = changes["title"].strip()

    for field, value in changes.items():
        setattr(case, field, value)
    case.add_history("Case Updated", principal.user_id, meta={"fields": sorted(changes)})

    _stage(outbox, db, events.CASE_UPDATED, case)
    db.commit()
    return {"success": True, "data": case_dict(case)}


@router.patch("/{case_id}/status")
async def update_case_status(
    body: CaseStatusRequest,
    case: Case = Depends(case_access(UPDATE_GATE)),
    principal: Principal = Depends(UPDATE_GATE),
    db: Session = Depends(get_db),
    outbox: EventOutbox = Depends(get_outbox),
):
    previous = case.status
    case.status = body.status
    if body.status == CaseStatus.FILED and case.filed_at is None:
        case.filed_at = datetime.utcnow()
    case.add_history(
        "Status Changed", principal.user_id, body.note or "",
        meta={"from": previous.value, "to": body.status.value},
    )

    _stage(outbox, db, events.CASE_STATUS, case)
    db.commit()
    return {"success": True, "data": case_dict(case)}


async def _set_paused(case: Case, principal: Principal, db: Session, outbox: EventOutbox, paused: bool):
    if case.is_paused == paused:
        raise MalformedRequest("Case is already paused" if paused else "Case is not paused")
    case.is_paused = paused
    case.add_history("Case Paused" if paused else "Case Resumed", principal.user_id)
    _stage(outbox, db, events.CASE_UPDATED, case)
    db.commit()
    return {"success": True, "data": case_dict(case)}


@router.patch("/{case_id}/pause")
async def pause_case(
    case: Case = Depends(case_access(UPDATE_GATE)),
    principal: Principal = Depends(UPDATE_GATE),
    db: Session = Depends(get_db),
    outbox: EventOutbox = Depends(get_outbox),
):
    return await _set_paused(case, principal, db, outbox, True)


@router.patch("/{case_id}/resume")
async def resume_case(
    case: Case = Depends(case_access(UPDATE_GATE)),
    principal: Principal = Depends(UPDATE_GATE),
    db: Session = Depends(get_db),
    outbox: EventOutbox = Depends(get_outbox),
):
    return await _set_paused(case, principal, db, outbox, False)


# =============================================================================
# Sharing
# =============================================================================

@router.post("/{case_id}/share")
async def share_case(
    body: ShareCaseRequest,
    case: Case = Depends(case_access(SHARE_GATE)),
    principal: Principal = Depends(SHARE_GATE),
    db: Session = Depends(get_db),
    outbox: EventOutbox = Depends(get_outbox),
):
    _require_owner_or_admin(principal, case, "share")
    if body.user_id == case.owner_id:
        raise MalformedRequest("Case owner already has access")

    recipient = db.get(User, body.user_id)
    if recipient is None or recipient.status != UserStatus.ACTIVE:
        raise NotFound("User not found")

    existing = next((s for s in case.shares if s.user_id == body.user_id), None)
    if existing is not None:
        existing.permission = body.permission
    else:
        case.shares.append(CaseShare(
            user_id=body.user_id,
            shared_by_id=principal.user_id,
            permission=body.permission,
        ))
    case.add_history(
        "Case Shared", principal.user_id, f"Shared with {recipient.name}",
        meta={"user_id": body.user_id, "permission": body.permission.value},
    )

    notification = Notification(
        recipient_id=body.user_id,
        sender_id=principal.user_id,
        type=NotificationType.CASE_UPDATE,
        title="Case shared with you",
        message=f"Case {case.case_number} '{case.title}' was shared with you",
        link=f"/cases/{case.id}",
        related_case_id=case.id,
    )
    db.add(notification)

    _stage(outbox, db, events.CASE_SHARED, case)
    outbox.stage(db, Event(
        events.NOTIFICATION_NEW, notification.id, notification_dict(notification),
        (user_room(body.user_id),),
    ))
    db.commit()
    logger.info(f"Case {case.id} shared with {body.user_id} by {principal.user_id}")
    return {"success": True, "data": case_dict(case)}


@router.delete("/{case_id}/share/{user_id}")
async def unshare_case(
    user_id: str,
    case: Case = Depends(case_access(SHARE_GATE)),
    principal: Principal = Depends(SHARE_GATE),
    db: Session = Depends(get_db),
    outbox: EventOutbox = Depends(get_outbox),
    registry: ConnectionRegistry = Depends(get_registry),
):
    _require_owner_or_admin(principal, case, "unshare")
    share = next((s for s in case.shares if s.user_id == user_id), None)
    if share is None:
        raise NotFound("User is not shared on this case")

    case.shares.remove(share)
    case.add_history("Case Unshared", principal.user_id, meta={"user_id": user_id})

    _stage(outbox, db, events.CASE_UPDATED, case)
    outbox.stage(db, Event(events.CASE_UNSHARED, case.id, {"id": case.id}, (user_room(user_id),)))
    db.commit()

    live_hearings = db.query(Hearing.id).filter(Hearing.case_id == case.id, Hearing.is_deleted == False).all()  # noqa: E712
    RoomAccessPolicy(db).revoke(
        registry, user_id, [case_room(case.id), *(hearing_room(h.id) for h in live_hearings)],
    )
    logger.info(f"Case {case.id} unshared from {user_id} by {principal.user_id}")
    return {"success": True, "data": case_dict(case)}


# =============================================================================
# Notes & History
# =============================================================================

@router.post("/{case_id}/notes", status_code=201)
async def add_case_note(
    body: CaseNoteRequest,
    case: Case = Depends(case_access(VIEW_GATE)),
    principal: Principal = Depends(VIEW_GATE),
    db: Session = Depends(get_db),
    outbox: EventOutbox = Depends(get_outbox),
):
    note = CaseNote(author_id=principal.user_id, content=body.content.strip(), visibility=body.visibility)
    case.notes.append(note)
    case.add_history("Note Added", principal.user_id, note.content[:200])
    db.flush()

    outbox.stage(db, Event(
        events.CASE_NOTE_ADDED, case.id,
        {"id": case.id, "note": case_note_dict(note)},
        tuple(case_rooms(case)),
    ))
    db.commit()
    return {"success": True, "message": "Note added", "data": case_note_dict(note)}


@router.get("/{case_id}/notes")
async def list_case_notes(
    case: Case = Depends(case_access(VIEW_GATE)),
    principal: Principal = Depends(VIEW_GATE),
):
    notes = [
        n for n in case.notes
        if n.visibility != NoteVisibility.PRIVATE or n.author_id == principal.user_id or principal.is_admin
    ]
    return {"success": True, "data": [case_note_dict(n) for n in notes]}


@router.get("/{case_id}/history")
async def case_history(case: Case = Depends(case_access(VIEW_GATE))):
    return {"success": True, "data": [case_history_dict(h) for h in case.history]}


# =============================================================================
# Soft delete / restore
# =============================================================================

@router.delete("/{case_id}")
async def delete_case(
    case: Case = Depends(case_access(DELETE_GATE)),
    principal: Principal = Depends(DELETE_GATE),
    db: Session = Depends(get_db),
    outbox: EventOutbox = Depends(get_outbox),
):
    _require_owner_or_admin(principal, case, "delete")
    case.is_deleted = True
    case.deleted_at = datetime.utcnow()
    case.add_history("Soft Deleted", principal.user_id)

    db.flush()
    outbox.stage(db, Event(events.CASE_DELETED, case.id, {"id": case.id}, tuple(case_rooms(case))))
    db.commit()
    logger.info(f"Case {case.id} soft-deleted by {principal.user_id}")
    return {"success": True, "message": "Case deleted"}


@router.patch("/{case_id}/restore")
async def restore_case(
    case_id: str,
    principal: Principal = Depends(RESTORE_GATE),
    db: Session = Depends(get_db),
    outbox: EventOutbox = Depends(get_outbox),
):
    # deleted cases are invisible to the guard, so restore looks them up directly
    case = db.query(Case).options(selectinload(Case.shares)).filter(Case.id == case_id).first()
    if case is None:
        raise NotFound("Case not found")
    if not case.is_deleted:
        raise MalformedRequest("Case is not deleted")

    case.is_deleted = False
    case.deleted_at = None
    case.add_history("Restored", principal.user_id)

    _stage(outbox, db, events.CASE_RESTORED, case)
    db.commit()
    logger.info(f"Case {case.id} restored by {principal.user_id}")
    return {"success": True, "data": case_dict(case)}
