"""
Notification Endpoints
======================

- POST   /api/notifications                 - Staff: send a notification
- GET    /api/notifications                 - Own notifications (unread_only filter)
- GET    /api/notifications/unread-count
- PATCH  /api/notifications/read-all
- PATCH  /api/notifications/{id}/read
- DELETE /api/notifications/clear-read      - Soft delete all read notifications
- DELETE /api/notifications/{id}

Every change is pushed to the recipient's ``user_<id>`` room.
"""

import logging
from datetime import datetime

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from .auth import Principal, authorize, get_principal, STAFF_ROLES
from .db.models import Notification, User
from .db.session import get_db
from .dependencies import get_outbox
from .errors import NotFound
from .realtime import events
from .realtime.events import Event
from .realtime.outbox import EventOutbox
from .realtime.rooms import user_room
from .schemas import CreateNotificationRequest
from .serializers import notification_dict

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/notifications", tags=["Notifications"])

SEND_GATE = authorize(*STAFF_ROLES)


def _own(db: Session, principal: Principal):
    return db.query(Notification).filter(
        Notification.recipient_id == principal.user_id,
        Notification.is_deleted == False,  # noqa: E712
    )


def _load_own(db: Session, principal: Principal, notification_id: str) -> Notification:
    notification = _own(db, principal).filter(Notification.id == notification_id).first()
    if notification is None:
        raise NotFound("Notification not found")
    return notification


@router.post("", status_code=201)
async def create_notification(
    body: CreateNotificationRequest,
    principal: Principal = Depends(SEND_GATE),
    db: Session = Depends(get_db),
    outbox: EventOutbox = Depends(get_outbox),
):
    if db.get(User, body.recipient_id) is None:
        raise NotFound("Recipient not found")

    notification = Notification(sender_id=principal.user_id, **body.model_dump())
    db.add(notification)
    db.flush()
    outbox.stage(db, Event(
        events.NOTIFICATION_NEW, notification.id, notification_dict(notification),
        (user_room(notification.recipient_id),),
    ))
    db.commit()
    return {"success": True, "data": notification_dict(notification)}


@router.get("")
async def list_notifications(
    unread_only: bool = Query(False),
    limit: int = Query(50, ge=1, le=200),
    principal: Principal = Depends(get_principal),
    db: Session = Depends(get_db),
):
    q = _own(db, principal)
    if unread_only:
        q = q.filter(Notification.is_read == False)  # noqa: E712
    items = q.order_by(Notification.created_at.desc()).limit(limit).all()
    return {"success": True, "count": len(items), "data": [notification_dict(n) for n in items]}


@router.get("/unread-count")
async def unread_count(principal: Principal = Depends(get_principal), db: Session = Depends(get_db)):
    count = _own(db, principal).filter(Notification.is_read == False).count()  # noqa: E712
    return {"success": True, "data": {"unread": count}}


@router.patch("/read-all")
async def mark_all_read(
    principal: Principal = Depends(get_principal),
    db: Session = Depends(get_db),
    outbox: EventOutbox = Depends(get_outbox),
):
    now = datetime.utcnow()
    unread = _own(db, principal).filter(Notification.is_read == False).all()  # noqa: E712
    for n in unread:
        n.is_read = True
        n.read_at = now
    outbox.stage(db, Event(
        events.NOTIFICATION_READ_ALL, principal.user_id,
        {"id": principal.user_id, "count": len(unread)},
        (user_room(principal.user_id),),
    ))
    db.commit()
    return {"success": True, "count": len(unread)}


@router.patch("/{notification_id}/read")
async def mark_read(
    notification_id: str,
    principal: Principal = Depends(get_principal),
    db: Session = Depends(get_db),
    outbox: EventOutbox = Depends(get_outbox),
):
    notification = _load_own(db, principal, notification_id)
    if not notification.is_read:
        notification.is_read = True
        notification.read_at = datetime.utcnow()
        db.flush()
        outbox.stage(db, Event(
            events.NOTIFICATION_READ, notification.id, notification_dict(notification),
            (user_room(principal.user_id),),
        ))
        db.commit()
    return {"success": True, "data": notification_dict(notification)}


@router.delete("/clear-read")
async def clear_read(
    principal: Principal = Depends(get_principal),
    db: Session = Depends(get_db),
    outbox: EventOutbox = Depends(get_outbox),
):
    read = _own(db, principal).filter(Notification.is_read == True).all()  # noqa: E712
    for n in read:
        n.is_deleted = True
    outbox.stage(db, Event(
        events.NOTIFICATION_CLEARED, principal.user_id,
        {"id": principal.user_id, "ids": [n.id for n in read]},
        (user_room(principal.user_id),),
    ))
    db.commit()
    return {"success": True, "count": len(read)}


@router.delete("/{notification_id}")
async def delete_notification(
    notification_id: str,
    principal: Principal = Depends(get_principal),
    db: Session = Depends(get_db),
    outbox: EventOutbox = Depends(get_outbox),
):
    notification = _load_own(db, principal, notification_id)
    notification.is_deleted = True
    outbox.stage(db, Event(
        events.NOTIFICATION_DELETED, notification.id, {"id": notification.id},
        (user_room(principal.user_id),),
    ))
    db.commit()
    return {"success": True, "message": "Notification deleted"}
