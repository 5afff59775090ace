"""
Auth Endpoints
==============

- POST /api/auth/register         - Self-service signup (client or paralegal)
- POST /api/auth/login            - Email/password login, returns access token
- GET  /api/auth/me               - Current user
- POST /api/auth/logout           - Revoke the presented token
- POST /api/auth/change-password  - Change password, revoke the presented token
"""

import logging
from datetime import datetime, timedelta

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from .auth import (
    Principal, get_principal, get_auth_service, parse_role,
    create_access_token, get_password_hash, verify_password, is_password_too_long,
    MAX_PASSWORD_BYTES,
)
from .db.models import Role, User, UserStatus
from .db.session import get_db
from .errors import Conflict, Forbidden, MalformedRequest, NotFound, Unauthenticated
from .schemas import RegisterRequest, LoginRequest, ChangePasswordRequest
from .serializers import user_dict
from .token_blacklist import revoke_token

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/auth", tags=["Auth"])

SELF_SERVICE_ROLES = (Role.CLIENT, Role.PARALEGAL)


def _check_password_length(password: str):
    if is_password_too_long(password):
        raise MalformedRequest(f"Password must be at most {MAX_PASSWORD_BYTES} bytes")


def _revoke_current(db: Session, principal: Principal) -> None:
    if principal.token_jti:
        expires_at = principal.token_expires_at or datetime.utcnow() + timedelta(days=1)
        revoke_token(db, principal.token_jti, expires_at, user_id=principal.user_id)


@router.post("/register", status_code=201)
async def register(body: RegisterRequest, db: Session = Depends(get_db)):
    email = body.email.strip().lower()
    _check_password_length(body.password)

    if db.query(User).filter(User.email == email).first():
        raise Conflict("User already exists")

    # only safe roles may be self-assigned; anything else becomes client
    role = parse_role(body.role)
    if role not in SELF_SERVICE_ROLES:
        role = Role.CLIENT

    user = User(
        name=body.name.strip(),
        email=email,
        role=role,
        status=UserStatus.ACTIVE,
        phone=body.phone,
        password_hash=get_password_hash(body.password),
    )
    db.add(user)
    db.commit()
    db.refresh(user)
    logger.info(f"Registered user {user.id} as {role.value}")

    return {
        "success": True,
        "message": "User registered successfully",
        "token": create_access_token(user.id, user.role),
        "user": user_dict(user),
    }


@router.post("/login")
async def login(body: LoginRequest, db: Session = Depends(get_db)):
    user = get_auth_service(db).authenticate_user(body.email, body.password)
    if user is None:
        raise Unauthenticated("Invalid email or password")
    if user.status != UserStatus.ACTIVE:
        raise Forbidden("User account is not active.")

    user.last_login = datetime.utcnow()
    db.commit()
    db.refresh(user)
    logger.info(f"User {user.id} logged in")

    return {
        "success": True,
        "token": create_access_token(user.id, user.role),
        "user": user_dict(user),
    }


@router.get("/me")
async def me(principal: Principal = Depends(get_principal), db: Session = Depends(get_db)):
    user = db.get(User, principal.user_id)
    if user is None:
        raise NotFound("User not found")
    return {"success": True, "data": user_dict(user)}


@router.post("/logout")
async def logout(principal: Principal = Depends(get_principal), db: Session = Depends(get_db)):
    _revoke_current(db, principal)
    logger.info(f"User {principal.user_id} logged out")
    return {"success": True, "message": "Logged out"}


@router.post("/change-password")
async def change_password(
    body: ChangePasswordRequest,
    principal: Principal = Depends(get_principal),
    db: Session = Depends(get_db),
):
    _check_password_length(body.new_password)
    user = db.get(User, principal.user_id)
    if user is None or not user.password_hash or not verify_password(body.current_password, user.password_hash):
        raise Unauthenticated("Current password is incorrect")

    user.password_hash = get_password_hash(body.new_password)
    # one second back so a token issued right after this call stays valid
    user.password_changed_at = datetime.utcnow() - timedelta(seconds=1)
    db.commit()
    _revoke_current(db, principal)

    return {
        "success": True,
        "message": "Password updated",
        "token": create_access_token(user.id, user.role),
    }
