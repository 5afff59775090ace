"""
Task Endpoints
==============

- GET    /api/tasks/analytics        - Counts by status, overdue, completion rate
- GET    /api/tasks/overdue          - Visible open tasks past their due date
- POST   /api/tasks/mark-overdue     - Admin: flag past-due open tasks as overdue
- GET    /api/tasks                  - List visible tasks
- GET    /api/tasks/{task_id}        - Get task
- POST   /api/tasks                  - Create task (linked case requires case access)
- PUT    /api/tasks/{task_id}        - Update task
- PATCH  /api/tasks/{task_id}/complete
- DELETE /api/tasks/{task_id}        - Soft delete
- PATCH  /api/tasks/{task_id}/restore

Visibility: admin, creator, assignees and shared users. Changes: admin,
creator and assignees.
"""

import logging
from datetime import datetime
from typing import Iterable, List, Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy import or_
from sqlalchemy.orm import Session, selectinload

from .access import get_case_guard
from .auth import Principal, authorize
from .db.models import Case, Priority, Role, Task, TaskMember, TaskMemberKind, TaskStatus, User
from .db.session import get_db
from .dependencies import get_outbox
from .errors import Forbidden, MalformedRequest, NotFound
from .realtime import events
from .realtime.events import Event
from .realtime.outbox import EventOutbox
from .realtime.rooms import case_room, user_room
from .schemas import CreateTaskRequest, UpdateTaskRequest
from .serializers import task_dict, to_naive_utc

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/tasks", tags=["Tasks"])

MANAGE_GATE = authorize(Role.ADMIN, Role.ADVOCATE)
VIEW_GATE = authorize(Role.ADMIN, Role.ADVOCATE, Role.ARBITRATOR, Role.PARALEGAL)
ADMIN_GATE = authorize(Role.ADMIN)

OPEN_STATUSES = (TaskStatus.PENDING, TaskStatus.IN_PROGRESS)


# =============================================================================
# Helpers
# =============================================================================

def task_rooms(task: Task) -> List[str]:
    user_ids = [task.created_by_id, *task.assignee_ids, *task.shared_with_ids]
    rooms = [user_room(uid) for uid in user_ids if uid]
    if task.case_id:
        rooms.append(case_room(task.case_id))
    return rooms


def _payload(db: Session, task: Task) -> dict:
    client_id = None
    if task.case_id:
        client_id = db.query(Case.client_id).filter(Case.id == task.case_id).scalar()
    return task_dict(task, client_id=client_id)


def _stage(outbox: EventOutbox, db: Session, event_type: str, task: Task, resource: Optional[dict] = None):
    db.flush()
    outbox.stage(db, Event(event_type, task.id, resource or _payload(db, task), tuple(task_rooms(task))))


def _set_members(task: Task, kind: TaskMemberKind, user_ids: Iterable[str]):
    wanted = list(dict.fromkeys(uid for uid in user_ids if uid))
    kept = [m for m in task.members if m.kind != kind or m.user_id in wanted]
    present = {m.user_id for m in kept if m.kind == kind}
    task.members = kept + [TaskMember(user_id=uid, kind=kind) for uid in wanted if uid not in present]


def _require_users(db: Session, user_ids: Iterable[str]) -> None:
    wanted = {uid for uid in user_ids if uid}
    if not wanted:
        return
    found = {row.id for row in db.query(User.id).filter(User.id.in_(wanted)).all()}
    if wanted - found:
        raise MalformedRequest("Unknown user id(s)", details={"user_ids": sorted(wanted - found)})


def _can_view(principal: Principal, task: Task) -> bool:
    return (
        principal.is_admin
        or task.created_by_id == principal.user_id
        or principal.user_id in task.assignee_ids
        or principal.user_id in task.shared_with_ids
    )


def _can_change(principal: Principal, task: Task) -> bool:
    return (
        principal.is_admin
        or task.created_by_id == principal.user_id
        or principal.user_id in task.assignee_ids
    )


def _load_task(db: Session, task_id: str, include_deleted: bool = False) -> Task:
    task = db.query(Task).options(selectinload(Task.members)).filter(Task.id == task_id).first()
    if task is None or (task.is_deleted and not include_deleted):
        raise NotFound("Task not found")
    return task


def _visible_tasks(db: Session, principal: Principal):
    q = db.query(Task).options(selectinload(Task.members)).filter(Task.is_deleted == False)  # noqa: E712
    if not principal.is_admin:
        q = q.filter(or_(
            Task.created_by_id == principal.user_id,
            Task.members.any(TaskMember.user_id == principal.user_id),
        ))
    return q


def _is_overdue(task: Task, now: datetime) -> bool:
    return task.due_date is not None and task.due_date < now and task.status in OPEN_STATUSES + (TaskStatus.OVERDUE,)


# =============================================================================
# Reports
# =============================================================================

@router.get("/analytics")
async def task_analytics(principal: Principal = Depends(VIEW_GATE), db: Session = Depends(get_db)):
    tasks = _visible_tasks(db, principal).all()
    now = datetime.utcnow()

    by_status = {s.value: 0 for s in TaskStatus}
    for t in tasks:
        by_status[t.status.value] += 1
    total = len(tasks)
    completed = by_status[TaskStatus.COMPLETED.value]

    return {
        "success": True,
        "data": {
            "total": total,
            "by_status": by_status,
            "overdue": sum(1 for t in tasks if _is_overdue(t, now)),
            "completion_rate": round(completed / total * 100, 1) if total else 0.0,
        },
    }


@router.get("/overdue")
async def overdue_tasks(principal: Principal = Depends(MANAGE_GATE), db: Session = Depends(get_db)):
    now = datetime.utcnow()
    tasks = [t for t in _visible_tasks(db, principal).order_by(Task.due_date).all() if _is_overdue(t, now)]
    return {"success": True, "count": len(tasks), "data": [_payload(db, t) for t in tasks]}


@router.post("/mark-overdue")
async def mark_overdue(
    principal: Principal = Depends(ADMIN_GATE),
    db: Session = Depends(get_db),
    outbox: EventOutbox = Depends(get_outbox),
):
    now = datetime.utcnow()
    tasks = (
        db.query(Task)
        .options(selectinload(Task.members))
        .filter(
            Task.is_deleted == False,  # noqa: E712
            Task.due_date < now,
            Task.status.in_(OPEN_STATUSES),
        )
        .all()
    )
    for task in tasks:
        task.status = TaskStatus.OVERDUE
        _stage(outbox, db, events.TASK_OVERDUE, task)
    db.commit()
    logger.info(f"Marked {len(tasks)} task(s) overdue")
    return {"success": True, "count": len(tasks)}


# =============================================================================
# CRUD
# =============================================================================

@router.get("")
async def list_tasks(
    case_id: Optional[str] = Query(None),
    status: Optional[TaskStatus] = Query(None),
    priority: Optional[Priority] = Query(None),
    principal: Principal = Depends(VIEW_GATE),
    db: Session = Depends(get_db),
):
    q = _visible_tasks(db, principal)
    if case_id:
        q = q.filter(Task.case_id == case_id)
    if status:
        q = q.filter(Task.status == status)
    if priority:
        q = q.filter(Task.priority == priority)
    tasks = q.order_by(Task.created_at.desc()).all()
    return {"success": True, "count": len(tasks), "data": [_payload(db, t) for t in tasks]}


@router.get("/{task_id}")
async def get_task(task_id: str, principal: Principal = Depends(VIEW_GATE), db: Session = Depends(get_db)):
    task = _load_task(db, task_id)
    if not _can_view(principal, task):
        raise Forbidden("You do not have permission to view this task")
    return {"success": True, "data": _payload(db, task)}


@router.post("", status_code=201)
async def create_task(
    body: CreateTaskRequest,
    principal: Principal = Depends(MANAGE_GATE),
    db: Session = Depends(get_db),
    outbox: EventOutbox = Depends(get_outbox),
):
    if body.case_id:
        get_case_guard(db).check(principal, body.case_id, projection=True)
    _require_users(db, [*body.assignees, *body.shared_with])

    task = Task(
        title=body.title.strip(),
        description=body.description,
        case_id=body.case_id,
        created_by_id=principal.user_id,
        status=body.status,
        priority=body.priority,
        due_date=to_naive_utc(body.due_date),
        progress=body.progress,
    )
    _set_members(task, TaskMemberKind.ASSIGNEE, body.assignees)
    _set_members(task, TaskMemberKind.SHARED, body.shared_with)
    db.add(task)

    _stage(outbox, db, events.TASK_NEW, task)
    db.commit()
    logger.info(f"Task {task.id} created by {principal.user_id}")
    return {"success": True, "data": _payload(db, task)}


@router.put("/{task_id}")
async def update_task(
    task_id: str,
    body: UpdateTaskRequest,
    principal: Principal = Depends(MANAGE_GATE),
    db: Session = Depends(get_db),
    outbox: EventOutbox = Depends(get_outbox),
):
    task = _load_task(db, task_id)
    if not _can_change(principal, task):
        raise Forbidden("You do not have permission to update this task")

    changes = body.model_dump(exclude_unset=True)
    assignees = changes.pop("assignees", None)
    shared_with = changes.pop("shared_with", None)
    _require_users(db, [*(assignees or []), *(shared_with or [])])

    if "due_date" in changes:
        changes["due_date"] = to_naive_utc(changes["due_date"])
    if changes.get("title") is not None:
        changes["title"] = changes["title"].strip()
    for field, value in changes.items():
        setattr(task, field, value)
    if assignees is not None:
        _set_members(task, TaskMemberKind.ASSIGNEE, assignees)
    if shared_with is not None:
        _set_members(task, TaskMemberKind.SHARED, shared_with)

    if task.status == TaskStatus.COMPLETED and task.completed_at is None:
        task.completed_at = datetime.utcnow()
        task.progress = 100
    elif task.status != TaskStatus.COMPLETED:
        task.completed_at = None

    _stage(outbox, db, events.TASK_UPDATED, task)
    db.commit()
    return {"success": True, "data": _payload(db, task)}


@router.patch("/{task_id}/complete")
async def complete_task(
    task_id: str,
    principal: Principal = Depends(MANAGE_GATE),
    db: Session = Depends(get_db),
    outbox: EventOutbox = Depends(get_outbox),
):
    task = _load_task(db, task_id)
    if not _can_change(principal, task):
        raise Forbidden("You do not have permission to complete this task")

    task.status = TaskStatus.COMPLETED
    task.progress = 100
    task.completed_at = datetime.utcnow()

    _stage(outbox, db, events.TASK_COMPLETED, task)
    db.commit()
    return {"success": True, "data": _payload(db, task)}


@router.delete("/{task_id}")
async def delete_task(
    task_id: str,
    principal: Principal = Depends(MANAGE_GATE),
    db: Session = Depends(get_db),
    outbox: EventOutbox = Depends(get_outbox),
):
    task = _load_task(db, task_id)
    if not _can_change(principal, task):
        raise Forbidden("You do not have permission to delete this task")

    task.is_deleted = True
    task.deleted_at = datetime.utcnow()
    _stage(outbox, db, events.TASK_DELETED, task, resource={"id": task.id, "case_id": task.case_id})
    db.commit()
    logger.info(f"Task {task.id} deleted by {principal.user_id}")
    return {"success": True, "message": "Task deleted"}


@router.patch("/{task_id}/restore")
async def restore_task(
    task_id: str,
    principal: Principal = Depends(MANAGE_GATE),
    db: Session = Depends(get_db),
    outbox: EventOutbox = Depends(get_outbox),
):
    task = _load_task(db, task_id, include_deleted=True)
    if not (principal.is_admin or task.created_by_id == principal.user_id):
        raise Forbidden("Only the task creator or an admin can restore this task")
    if not task.is_deleted:
        raise MalformedRequest("Task is not deleted")

    task.is_deleted = False
    task.deleted_at = None
    _stage(outbox, db, events.TASK_RESTORED, task)
    db.commit()
    return {"success": True, "data": _payload(db, task)}
