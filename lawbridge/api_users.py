"""
User Management Endpoints
=========================

- GET   /api/users              - Admin: list users (role/status filters)
- POST  /api/users              - Admin: create a user with any role
- PATCH /api/users/{user_id}    - Admin: change role, status, profile
- GET   /api/users/directory    - Staff: active users for share/assign pickers
"""

import logging
from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from .auth import Principal, authorize, parse_role, get_password_hash, STAFF_ROLES, is_password_too_long
from .db.models import Role, User, UserStatus
from .db.session import get_db
from .errors import Conflict, MalformedRequest, NotFound
from .schemas import CreateUserRequest, UpdateUserRequest
from .serializers import user_dict

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/users", tags=["Users"])

ADMIN_GATE = authorize(Role.ADMIN)
DIRECTORY_GATE = authorize(*STAFF_ROLES, Role.PARALEGAL)


def _require_role(raw: str) -> Role:
    role = parse_role(raw)
    if role is None:
        raise MalformedRequest(f"Unknown role: {raw}")
    return role


@router.get("")
async def list_users(
    role: Optional[str] = Query(None),
    status: Optional[UserStatus] = Query(None),
    principal: Principal = Depends(ADMIN_GATE),
    db: Session = Depends(get_db),
):
    q = db.query(User)
    if role:
        q = q.filter(User.role == _require_role(role))
    if status:
        q = q.filter(User.status == status)
    users = q.order_by(User.created_at.desc()).all()
    return {"success": True, "count": len(users), "data": [user_dict(u) for u in users]}


@router.post("", status_code=201)
async def create_user(
    body: CreateUserRequest,
    principal: Principal = Depends(ADMIN_GATE),
    db: Session = Depends(get_db),
):
    email = body.email.strip().lower()
    if is_password_too_long(body.password):
        raise MalformedRequest("Password exceeds bcrypt 72-byte limit")
    if db.query(User).filter(User.email == email).first():
        raise Conflict("User already exists")

    user = User(
        name=body.name.strip(),
        email=email,
        role=_require_role(body.role),
        status=body.status,
        phone=body.phone,
        password_hash=get_password_hash(body.password),
    )
    db.add(user)
    db.commit()
    db.refresh(user)
    logger.info(f"Admin {principal.user_id} created user {user.id} ({user.role.value})")
    return {"success": True, "data": user_dict(user)}


@router.get("/directory")
async def user_directory(
    role: Optional[str] = Query(None),
    principal: Principal = Depends(DIRECTORY_GATE),
    db: Session = Depends(get_db),
):
    q = db.query(User).filter(User.status == UserStatus.ACTIVE)
    if role:
        q = q.filter(User.role == _require_role(role))
    users = q.order_by(User.name).all()
    return {
        "success": True,
        "data": [{"id": u.id, "name": u.name, "role": u.role.value} for u in users],
    }


@router.patch("/{user_id}")
async def update_user(
    user_id: str,
    body: UpdateUserRequest,
    principal: Principal = Depends(ADMIN_GATE),
    db: Session = Depends(get_db),
):
    user = db.get(User, user_id)
    if user is None:
        raise NotFound("User not found")

    if body.role is not None:
        user.role = _require_role(body.role)
    if body.status is not None:
        user.status = body.status
    if body.name is not None:
        user.name = body.name.strip()
    if body.phone is not None:
        user.phone = body.phone

    db.commit()
    db.refresh(user)
    logger.info(f"Admin {principal.user_id} updated user {user.id}")
    return {"success": True, "data": user_dict(user)}
