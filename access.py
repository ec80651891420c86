"""
Role predicates for the portal.

Every check takes the current time explicitly (defaulting to now) and is
evaluated on each request; nothing here is cached.
"""
from datetime import datetime, timezone
from typing import List, Optional

from schemas import Role, User

REGISTRATION_DATA_ROLES = frozenset({
    Role.NATIONAL_COUNCIL,
    Role.NATIONAL_COUPLE,
    Role.REGIONAL_COUPLE,
    Role.ARCHDIOCESAN_COUPLE,
    Role.SECTOR_COUPLE,
    Role.STAGE_1_TEAM,
    Role.STAGE_2_TEAM,
    Role.STAGE_3_TEAM,
})


def _now(now: Optional[datetime]) -> datetime:
    return now or datetime.now(timezone.utc)


def has_valid_term(user: User, now: Optional[datetime] = None) -> bool:
    if user.term_end is None:
        return False
    return user.term_end > _now(now)


def is_authorized_for_registration_data(user: Optional[User], now: Optional[datetime] = None) -> bool:
    """Can this user see couple registrations, the approval queue and the region directory?

    Spiritual directors always can. The listed leadership roles can only while
    their term end date is still in the future.
    """
    if user is None:
        return False
    if user.role == Role.SPIRITUAL_DIRECTOR:
        return True
    return user.role in REGISTRATION_DATA_ROLES and has_valid_term(user, now)


def is_leader(user: User) -> bool:
    return user.role != Role.COUPLE_USER


def is_term_expired(user: User, now: Optional[datetime] = None) -> bool:
    # only roles gated by a term can have an expired one
    if user.role in (Role.SPIRITUAL_DIRECTOR, Role.COUPLE_USER, Role.ADMIN):
        return False
    return not has_valid_term(user, now)


def visible_rooms(user: User) -> List[str]:
    # couples only talk to the support channel
    if is_leader(user):
        return ["ADMIN", "SUPPORT"]
    return ["SUPPORT"]
