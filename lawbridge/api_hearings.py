"""
Hearing Endpoints
=================

- GET    /api/hearings                 - List hearings (case_id, from, to filters)
- POST   /api/hearings                 - Schedule a hearing on an accessible case
- GET    /api/hearings/{hearing_id}    - Get hearing
- PUT    /api/hearings/{hearing_id}    - Update hearing
- DELETE /api/hearings/{hearing_id}    - Soft delete
- POST   /api/hearings/{hearing_id}/notes

A hearing is visible to anyone who can access its case, and to its listed
participants. Changes require case access.
"""

import logging
from datetime import datetime
from typing import Dict, Iterable, List, Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy import or_
from sqlalchemy.orm import Session, selectinload

from .access import RoomAccessPolicy, get_case_guard
from .auth import Principal, authorize, ALL_ROLES
from .db.models import Case, CaseShare, Hearing, HearingNote, HearingParticipant, HearingSide, Role, User
from .db.session import get_db
from .dependencies import get_outbox, get_registry
from .errors import MalformedRequest, NotFound
from .realtime import events
from .realtime.events import Event
from .realtime.outbox import EventOutbox
from .realtime.registry import ConnectionRegistry
from .realtime.rooms import case_room, hearing_room, user_room
from .schemas import CreateHearingRequest, UpdateHearingRequest, HearingNoteRequest
from .serializers import hearing_dict, to_naive_utc

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/hearings", tags=["Hearings"])

LIST_GATE = authorize(Role.ADVOCATE, Role.ARBITRATOR, Role.CLIENT, Role.ADMIN)
VIEW_GATE = authorize(*ALL_ROLES)
MANAGE_GATE = authorize(Role.ADVOCATE, Role.ARBITRATOR, Role.ADMIN)
DELETE_GATE = authorize(Role.ADVOCATE, Role.ADMIN)
NOTES_GATE = authorize(Role.ADVOCATE, Role.ARBITRATOR, Role.CLIENT, Role.ADMIN)

DEFAULT_VENUE = "To be determined"


# =============================================================================
# Helpers
# =============================================================================

def hearing_rooms(hearing: Hearing) -> List[str]:
    user_ids = [hearing.created_by_id, *hearing.participant_ids]
    return [case_room(hearing.case_id), hearing_room(hearing.id)] + [user_room(uid) for uid in user_ids if uid]


def _stage(outbox: EventOutbox, db: Session, event_type: str, hearing: Hearing, resource: Optional[dict] = None):
    db.flush()
    outbox.stage(db, Event(event_type, hearing.id, resource or hearing_dict(hearing), tuple(hearing_rooms(hearing))))


def _set_participants(db: Session, hearing: Hearing, participants: Dict[HearingSide, Iterable[str]]):
    wanted = {(side, uid) for side, ids in participants.items() for uid in ids if uid}
    user_ids = {uid for _, uid in wanted}
    if user_ids:
        found = {row.id for row in db.query(User.id).filter(User.id.in_(user_ids)).all()}
        if user_ids - found:
            raise MalformedRequest("Unknown participant id(s)", details={"user_ids": sorted(user_ids - found)})

    kept = [p for p in hearing.participants if (p.side, p.user_id) in wanted]
    present = {(p.side, p.user_id) for p in kept}
    hearing.participants = kept + [
        HearingParticipant(side=side, user_id=uid) for side, uid in sorted(wanted) if (side, uid) not in present
    ]


def _load_hearing(db: Session, hearing_id: str) -> Hearing:
    hearing = (
        db.query(Hearing)
        .options(selectinload(Hearing.participants), selectinload(Hearing.notes))
        .filter(Hearing.id == hearing_id)
        .first()
    )
    if hearing is None or hearing.is_deleted:
        raise NotFound("Hearing not found")
    return hearing


def _require_view(db: Session, principal: Principal, hearing: Hearing):
    """Case access, or listed participant of a hearing on a live case."""
    guard = get_case_guard(db)
    if principal.user_id in hearing.participant_ids:
        case = guard.repository.find_by_id(hearing.case_id, projection=True)
        if case is None or case.is_deleted:
            raise NotFound("Hearing not found")
        return
    guard.check(principal, hearing.case_id, projection=True)


# =============================================================================
# Endpoints
# =============================================================================

@router.get("")
async def list_hearings(
    case_id: Optional[str] = Query(None),
    start_from: Optional[datetime] = Query(None, alias="from"),
    start_to: Optional[datetime] = Query(None, alias="to"),
    principal: Principal = Depends(LIST_GATE),
    db: Session = Depends(get_db),
):
    if case_id:
        get_case_guard(db).check(principal, case_id, projection=True)

    q = (
        db.query(Hearing)
        .join(Case, Case.id == Hearing.case_id)
        .options(selectinload(Hearing.participants), selectinload(Hearing.notes))
        .filter(Hearing.is_deleted == False, Case.is_deleted == False)  # noqa: E712
    )
    if case_id:
        q = q.filter(Hearing.case_id == case_id)
    elif not principal.is_admin:
        q = q.filter(or_(
            Case.owner_id == principal.user_id,
            Case.shares.any(CaseShare.user_id == principal.user_id),
            Hearing.participants.any(HearingParticipant.user_id == principal.user_id),
        ))
    if start_from:
        q = q.filter(Hearing.start_at >= to_naive_utc(start_from))
    if start_to:
        q = q.filter(Hearing.start_at <= to_naive_utc(start_to))

    hearings = q.order_by(Hearing.start_at).all()
    return {"success": True, "count": len(hearings), "data": [hearing_dict(h) for h in hearings]}


@router.post("", status_code=201)
async def create_hearing(
    body: CreateHearingRequest,
    principal: Principal = Depends(MANAGE_GATE),
    db: Session = Depends(get_db),
    outbox: EventOutbox = Depends(get_outbox),
):
    get_case_guard(db).check(principal, body.case_id, projection=True)

    hearing = Hearing(
        case_id=body.case_id,
        title=body.title.strip(),
        description=body.description,
        start_at=to_naive_utc(body.start),
        end_at=to_naive_utc(body.end),
        venue=(body.venue or "").strip() or DEFAULT_VENUE,
        meeting_link=body.meeting_link,
        created_by_id=principal.user_id,
    )
    _set_participants(db, hearing, body.participants)
    db.add(hearing)

    _stage(outbox, db, events.HEARING_NEW, hearing)
    db.commit()
    logger.info(f"Hearing {hearing.id} scheduled on case {hearing.case_id} by {principal.user_id}")
    return {"success": True, "data": hearing_dict(hearing)}


@router.get("/{hearing_id}")
async def get_hearing(hearing_id: str, principal: Principal = Depends(VIEW_GATE), db: Session = Depends(get_db)):
    hearing = _load_hearing(db, hearing_id)
    _require_view(db, principal, hearing)
    return {"success": True, "data": hearing_dict(hearing)}


@router.put("/{hearing_id}")
async def update_hearing(
    hearing_id: str,
    body: UpdateHearingRequest,
    principal: Principal = Depends(MANAGE_GATE),
    db: Session = Depends(get_db),
    outbox: EventOutbox = Depends(get_outbox),
    registry: ConnectionRegistry = Depends(get_registry),
):
    hearing = _load_hearing(db, hearing_id)
    get_case_guard(db).check(principal, hearing.case_id, projection=True)

    changes = body.model_dump(exclude_unset=True)
    participants = changes.pop("participants", None)
    start = to_naive_utc(changes.pop("start", None)) or hearing.start_at
    end = to_naive_utc(changes.pop("end", None)) or hearing.end_at
    if end <= start:
        raise MalformedRequest("Hearing end must be after start")
    hearing.start_at, hearing.end_at = start, end

    if "venue" in changes:
        changes["venue"] = (changes["venue"] or "").strip() or DEFAULT_VENUE
    for field, value in changes.items():
        setattr(hearing, field, value)
    dropped = set()
    if participants is not None:
        before = set(hearing.participant_ids)
        _set_participants(db, hearing, participants)
        dropped = before - set(hearing.participant_ids)

    _stage(outbox, db, events.HEARING_UPDATED, hearing)
    db.commit()

    policy = RoomAccessPolicy(db)
    for user_id in dropped:
        policy.revoke(registry, user_id, [hearing_room(hearing.id)])
    return {"success": True, "data": hearing_dict(hearing)}


@router.delete("/{hearing_id}")
async def delete_hearing(
    hearing_id: str,
    principal: Principal = Depends(DELETE_GATE),
    db: Session = Depends(get_db),
    outbox: EventOutbox = Depends(get_outbox),
):
    hearing = _load_hearing(db, hearing_id)
    get_case_guard(db).check(principal, hearing.case_id, projection=True)

    hearing.is_deleted = True
    hearing.deleted_at = datetime.utcnow()
    _stage(outbox, db, events.HEARING_DELETED, hearing, resource={"id": hearing.id, "case_id": hearing.case_id})
    db.commit()
    logger.info(f"Hearing {hearing.id} deleted by {principal.user_id}")
    return {"success": True, "message": "Hearing deleted"}


@router.post("/{hearing_id}/notes", status_code=201)
async def add_hearing_note(
    hearing_id: str,
    body: HearingNoteRequest,
    principal: Principal = Depends(NOTES_GATE),
    db: Session = Depends(get_db),
    outbox: EventOutbox = Depends(get_outbox),
):
    hearing = _load_hearing(db, hearing_id)
    _require_view(db, principal, hearing)

    hearing.notes.append(HearingNote(author_id=principal.user_id, content=body.content.strip()))
    _stage(outbox, db, events.HEARING_NOTE, hearing)
    db.commit()
    return {"success": True, "data": hearing_dict(hearing)}
