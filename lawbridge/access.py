"""
Case Access Guard
=================

Decides whether a principal may act on a specific case:

    allow = case exists
            AND NOT case.is_deleted
            AND (principal is admin OR owner OR principal in shared_with)

Check order matters. Existence and soft deletion are decided before the
ownership test, and both "absent" and "deleted" surface as NotFound, so a
caller cannot tell a hidden case from a missing one. Admins do not see
soft-deleted cases through the guard either; restore uses its own lookup.

The same guard backs live-channel room joins (see RoomAccessPolicy).
"""

import logging
from dataclasses import dataclass
from typing import FrozenSet, Iterable, Optional, Union

from fastapi import Depends, Request
from sqlalchemy.orm import Session, selectinload

from .auth import Principal, RoleGate
from .db.models import Case, CaseShare, Hearing, HearingParticipant, User
from .db.session import get_db
from .errors import LawBridgeError, MalformedRequest, NotFound, Forbidden, InternalError
from .realtime.rooms import parse_room, ROOM_USER, ROOM_CASE, ROOM_HEARING

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CaseAccessView:
    """Projection of the fields the guard needs"""
    id: str
    owner_id: str
    shared_with_ids: FrozenSet[str]
    is_deleted: bool


class SqlCaseRepository:
    """Case lookups backed by SQLAlchemy"""

    def __init__(self, db: Session):
        self.db = db

    def find_by_id(self, case_id: str, projection: bool = False) -> Union[Case, CaseAccessView, None]:
        """
        Fetch a case by id.

        With ``projection=True`` only owner, share list and deletion flag are
        loaded and a CaseAccessView is returned.
        """
        if projection:
            row = (
                self.db.query(Case.id, Case.owner_id, Case.is_deleted)
                .filter(Case.id == case_id)
                .first()
            )
            if row is None:
                return None
            shared = self.db.query(CaseShare.user_id).filter(CaseShare.case_id == case_id).all()
            return CaseAccessView(
                id=row.id,
                owner_id=row.owner_id,
                shared_with_ids=frozenset(s.user_id for s in shared),
                is_deleted=bool(row.is_deleted),
            )

        return (
            self.db.query(Case)
            .options(selectinload(Case.shares))
            .filter(Case.id == case_id)
            .first()
        )


def _shared_ids(case) -> FrozenSet[str]:
    if isinstance(case, CaseAccessView):
        return case.shared_with_ids
    return frozenset(case.shared_with_ids)


class CaseAccessGuard:
    """Per-case authorization: ownership, share list, admin override."""

    def __init__(self, repository):
        self.repository = repository

    def check(self, principal: Optional[Principal], case_id: Optional[str], projection: bool = False):
        """
        Return the resolved case if the principal may access it.

        Raises:
            MalformedRequest: principal or case id missing
            NotFound: case absent or soft-deleted
            Forbidden: visible case, but not admin/owner/shared
            InternalError: lookup failed unexpectedly
        """
        if principal is None or not getattr(principal, "user_id", None) or not case_id:
            raise MalformedRequest("Missing case ID or user context")

        try:
            case = self.repository.find_by_id(case_id, projection=projection)
        except LawBridgeError:
            raise
        except Exception:
            logger.error(f"Case access lookup failed for case {case_id}", exc_info=True)
            raise InternalError("Server error while checking case access")

        if case is None or case.is_deleted:
            logger.info(f"Case access: {case_id} not found for {principal.user_id}")
            raise NotFound("Case not found")

        if principal.is_admin or case.owner_id == principal.user_id or principal.user_id in _shared_ids(case):
            return case

        logger.warning(f"Case access denied: {principal.user_id} cannot access case {case_id}")
        raise Forbidden("You do not have permission to access this case")

    def can_access(self, principal: Optional[Principal], case_id: Optional[str]) -> bool:
        """Boolean form of check() for filters; lookup failures still raise."""
        try:
            self.check(principal, case_id, projection=True)
        except (MalformedRequest, NotFound, Forbidden):
            return False
        return True


def get_case_guard(db: Session) -> CaseAccessGuard:
    return CaseAccessGuard(SqlCaseRepository(db))


def case_access(gate: RoleGate, param: str = "case_id"):
    """
    Dependency factory layering the Role Gate before the Access Guard.

    The resolved case is attached to ``request.state.case`` and returned.

    Usage:
        @router.get("/{case_id}")
        async def get_case(case: Case = Depends(case_access(VIEW_GATE))):
            ...
    """

    async def dependency(
        request: Request,
        principal: Principal = Depends(gate),
        db: Session = Depends(get_db),
    ) -> Case:
        case = get_case_guard(db).check(principal, request.path_params.get(param))
        request.state.case = case
        request.state.principal = principal
        return case

    return dependency


# =============================================================================
# LIVE CHANNEL ROOM JOINS
# =============================================================================

class RoomAccessPolicy:
    """
    Decides whether a connection's principal may join a room.

    - user_<id>: only the user themselves
    - case_<id>: same rule as the Case Access Guard
    - hearing_<id>: access to the hearing's case, or listed as a participant
    - anything else: denied
    """

    def __init__(self, db: Session):
        self.db = db
        self.guard = get_case_guard(db)

    def can_join(self, principal: Optional[Principal], room: str) -> bool:
        if principal is None:
            return False

        parsed = parse_room(room)
        if parsed is None:
            return False
        kind, resource_id = parsed

        if kind == ROOM_USER:
            return resource_id == principal.user_id

        if kind == ROOM_CASE:
            return self.guard.can_access(principal, resource_id)

        if kind == ROOM_HEARING:
            hearing = self.db.get(Hearing, resource_id)
            if hearing is None or hearing.is_deleted:
                return False
            case = self.guard.repository.find_by_id(hearing.case_id, projection=True)
            if case is None or case.is_deleted:
                return False
            if self.guard.can_access(principal, hearing.case_id):
                return True
            listed = (
                self.db.query(HearingParticipant.id)
                .filter(
                    HearingParticipant.hearing_id == resource_id,
                    HearingParticipant.user_id == principal.user_id,
                )
                .first()
            )
            return listed is not None

        return False

    def revoke(self, registry, user_id: str, rooms: Iterable[str]) -> int:
        """
        Evict ``user_id`` from each of ``rooms`` the user may no longer join.

        Call after the change that removed access has been flushed or
        committed. Returns the number of connections evicted.
        """
        user = self.db.get(User, user_id)
        principal = Principal.from_user(user) if user is not None else None
        evicted = 0
        for room in rooms:
            if not self.can_join(principal, room):
                evicted += registry.evict_user(user_id, room)
        return evicted
