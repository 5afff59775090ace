"""
Authentication and Role Gate
============================

Roles (closed set, see lawbridge.db.models.Role):
- admin: full access, bypasses case ownership/sharing checks
- advocate: files and manages cases, tasks and hearings
- paralegal, mediator, arbitrator, reconciliator: staff roles
- client, respondent: parties to a case

Authentication Flow:
1. Read the Bearer token from the Authorization header
2. Decode the JWT (signature, expiry), reject revoked JTIs
3. Load the user; reject inactive accounts and tokens issued before the
   last password change
4. Expose the caller as a Principal to route dependencies

The Role Gate (``authorize``) then admits or rejects the principal by role,
before any per-case check in lawbridge.access runs.
"""

import uuid
import logging
import calendar
from typing import Optional, Union, Iterable
from dataclasses import dataclass
from datetime import datetime, timedelta

import jwt
from fastapi import Depends, Header
from passlib.context import CryptContext
from sqlalchemy.orm import Session

from .config import get_settings
from .db.models import Role, UserStatus, User
from .db.session import get_db
from .errors import Unauthenticated, Forbidden
from .token_blacklist import is_token_revoked

logger = logging.getLogger(__name__)


# =============================================================================
# ROLES
# =============================================================================

def parse_role(value: Union[Role, str, None]) -> Optional[Role]:
    """Case-insensitive role lookup; None for missing or unknown labels."""
    if value is None:
        return None
    if isinstance(value, Role):
        return value
    try:
        return Role(str(value).strip().lower())
    except ValueError:
        return None


# =============================================================================
# PASSWORD HASHING
# =============================================================================

# bcrypt truncates passwords at 72 bytes; enforce to avoid 500s.
MAX_PASSWORD_BYTES = 72

pwd_context = CryptContext(schemes=["bcrypt"], deprecated="auto")


def is_password_too_long(password: str) -> bool:
    """Return True if password exceeds bcrypt 72-byte limit."""
    return len(password.encode("utf-8")) > MAX_PASSWORD_BYTES


def verify_password(plain_password: str, hashed_password: str) -> bool:
    """Verify a password against a hash"""
    if is_password_too_long(plain_password):
        logger.warning("Auth failed: password exceeds bcrypt 72-byte limit")
        return False
    try:
        return pwd_context.verify(plain_password, hashed_password)
    except ValueError as e:
        logger.warning(f"Auth failed: invalid password format ({e})")
        return False


def get_password_hash(password: str) -> str:
    """Hash a password"""
    if is_password_too_long(password):
        raise ValueError("Password exceeds bcrypt 72-byte limit")
    return pwd_context.hash(password)


# =============================================================================
# JWT TOKEN HANDLING
# =============================================================================

def _epoch_seconds(moment: datetime) -> int:
    return calendar.timegm(moment.utctimetuple())


def create_access_token(
    user_id: str,
    role: Union[Role, str],
    expires_delta: Optional[timedelta] = None,
) -> str:
    """Create a JWT access token for a user"""
    settings = get_settings()
    now = datetime.utcnow()
    expire = now + (expires_delta or timedelta(minutes=settings.jwt_access_token_expire_minutes))
    role_value = role.value if isinstance(role, Role) else str(role)
    to_encode = {
        "sub": user_id,
        "role": role_value,
        "jti": uuid.uuid4().hex,
        "iat": _epoch_seconds(now),
        "exp": expire,
        "type": "access",
    }
    return jwt.encode(to_encode, settings.jwt_secret_key, algorithm=settings.jwt_algorithm)


def decode_token(token: str) -> dict:
    """Decode and validate a JWT token; raises Unauthenticated on failure."""
    settings = get_settings()
    try:
        payload = jwt.decode(token, settings.jwt_secret_key, algorithms=[settings.jwt_algorithm])
    except jwt.ExpiredSignatureError:
        raise Unauthenticated("Not authorized, token expired")
    except jwt.InvalidTokenError as e:
        logger.warning(f"Invalid JWT token: {e}")
        raise Unauthenticated("Not authorized, token failed")

    if payload.get("type") != "access" or not payload.get("sub"):
        raise Unauthenticated("Not authorized, token failed")
    return payload


# =============================================================================
# PRINCIPAL
# =============================================================================

@dataclass
class Principal:
    """The authenticated caller of a request or live connection"""
    user_id: str
    role: Optional[Role]
    status: UserStatus = UserStatus.ACTIVE
    email: str = ""
    name: str = ""
    token_jti: Optional[str] = None
    token_expires_at: Optional[datetime] = None

    @property
    def is_admin(self) -> bool:
        return parse_role(self.role) == Role.ADMIN

    @classmethod
    def from_user(cls, user: User, payload: Optional[dict] = None) -> "Principal":
        payload = payload or {}
        exp = payload.get("exp")
        return cls(
            user_id=user.id,
            role=user.role,
            status=user.status,
            email=user.email,
            name=user.name,
            token_jti=payload.get("jti"),
            token_expires_at=datetime.utcfromtimestamp(exp) if exp else None,
        )


class AuthService:
    """Authentication service"""

    def __init__(self, db: Session):
        self.db = db

    def authenticate_user(self, email: str, password: str) -> Optional[User]:
        """
        Authenticate a user by email and password.

        Returns:
            The User if the credentials match, None otherwise. Account status
            is not checked here so callers can report it distinctly.
        """
        user = self.db.query(User).filter(User.email == email.strip().lower()).first()
        if not user:
            logger.warning(f"Auth failed: email {email} not found")
            return None

        if not user.password_hash:
            logger.warning(f"Auth failed: user {user.id} has no password set")
            return None

        if not verify_password(password, user.password_hash):
            logger.warning(f"Auth failed: invalid password for user {user.id}")
            return None

        return user

    def principal_from_token(self, token: Optional[str]) -> Principal:
        """Resolve a bearer token to a Principal or raise."""
        if not token:
            raise Unauthenticated("Not authorized, no token")

        payload = decode_token(token)

        jti = payload.get("jti")
        if jti and is_token_revoked(self.db, jti):
            logger.warning(f"Auth failed: revoked token for user {payload.get('sub')}")
            raise Unauthenticated("Not authorized, token revoked")

        user = self.db.get(User, payload["sub"])
        if not user:
            logger.warning(f"Auth failed: user {payload['sub']} not found")
            raise Unauthenticated("Not authorized, user not found")

        if user.status != UserStatus.ACTIVE:
            logger.warning(f"Auth failed: user {user.id} is {user.status.value}")
            raise Forbidden("User account is not active.")

        if user.password_changed_at is not None:
            issued_at = int(payload.get("iat") or 0)
            if issued_at < _epoch_seconds(user.password_changed_at):
                raise Unauthenticated("User recently changed password. Please log in again.")

        return Principal.from_user(user, payload)


def get_auth_service(db: Session) -> AuthService:
    """Factory function to get auth service"""
    return AuthService(db)


def bearer_token(authorization: Optional[str]) -> Optional[str]:
    if authorization and authorization.lower().startswith("bearer "):
        return authorization[7:].strip() or None
    return None


async def get_principal(
    authorization: Optional[str] = Header(None),
    db: Session = Depends(get_db),
) -> Principal:
    """FastAPI dependency: the authenticated caller."""
    return get_auth_service(db).principal_from_token(bearer_token(authorization))


# =============================================================================
# ROLE GATE
# =============================================================================

class RoleGate:
    """
    Route-family gate on the principal's role.

    The accepted set is fixed when the route is registered. Comparison is
    case-insensitive; a missing principal or role is always rejected.
    """

    def __init__(self, roles: Iterable[Union[Role, str]]):
        allowed = set()
        for raw in roles:
            role = parse_role(raw)
            if role is None:
                raise ValueError(f"Unknown role: {raw!r}")
            allowed.add(role)
        self.allowed = frozenset(allowed)

    def check(self, principal: Optional[Principal]) -> Principal:
        raw_role = getattr(principal, "role", None) if principal is not None else None
        if principal is None or raw_role is None or str(getattr(raw_role, "value", raw_role)).strip() == "":
            logger.warning("Role gate denied: no principal role")
            raise Forbidden("Access denied. No user role found.")

        role = parse_role(raw_role)
        if role is None or role not in self.allowed:
            label = getattr(raw_role, "value", raw_role)
            logger.warning(f"Role gate denied: {principal.user_id} has role {label}")
            raise Forbidden(f"Access denied. {label} is not authorized to perform this action.")
        return principal

    async def __call__(self, principal: Principal = Depends(get_principal)) -> Principal:
        return self.check(principal)


def authorize(*roles: Union[Role, str]) -> RoleGate:
    """
    Build a Role Gate dependency.

    Usage:
        @router.get("/stats")
        async def stats(principal: Principal = Depends(authorize("advocate", "admin"))):
            ...
    """
    return RoleGate(roles)


# Role sets shared by routers
STAFF_ROLES = (Role.ADMIN, Role.ADVOCATE, Role.ARBITRATOR, Role.MEDIATOR, Role.RECONCILIATOR)
ALL_ROLES = tuple(Role)
