"""
Read-side helpers: filters and aggregates computed over full collections.
"""
from collections import Counter
from datetime import datetime
from typing import Dict, Iterable, List, Optional

from schemas import (
    GENERAL_STAGE,
    ApostolicRegion,
    ChatMessage,
    Couple,
    ECCEvent,
    ECCNotification,
    ECCSong,
    EncounterRecord,
    GalleryPhoto,
    RegistrationStatus,
)


def _contains(value: Optional[str], term: str) -> bool:
    return term in (value or "").lower()


def dashboard_stats(couples: List[Couple], notifications: Iterable[ECCNotification] = ()) -> Dict:
    approved = [c for c in couples if c.status == RegistrationStatus.APPROVED]
    per_state = Counter(c.state for c in approved)
    return {
        "approved_count": len(approved),
        "parish_count": len({c.parish for c in approved}),
        "pending_count": sum(1 for c in couples if c.status == RegistrationStatus.PENDING),
        "unread_notifications": sum(1 for n in notifications if not n.read),
        "state_distribution": [
            {"state": state, "couples": count}
            for state, count in sorted(per_state.items(), key=lambda kv: kv[1], reverse=True)
        ],
    }


def pending_couples(couples: List[Couple]) -> List[Couple]:
    return [c for c in couples if c.status == RegistrationStatus.PENDING]


def search_couples(couples: List[Couple], q: str = "", state: Optional[str] = None) -> List[Couple]:
    term = q.lower()
    results = []
    for c in couples:
        matches_search = any(
            _contains(value, term)
            for value in (c.husband.name, c.wife.name, c.parish, c.region, c.city)
        )
        if matches_search and (not state or c.state == state):
            results.append(c)
    return results


def encounter_history(couples: List[Couple], q: str = "") -> List[EncounterRecord]:
    """All encounters across couples, one per (stage, number, date), newest number first."""
    unique: Dict[tuple, EncounterRecord] = {}
    for couple in couples:
        for enc in couple.encounters:
            unique.setdefault((enc.stage, enc.number, enc.date), enc)
    encounters = sorted(unique.values(), key=lambda e: e.number, reverse=True)
    if not q:
        return encounters
    term = q.lower()
    return [
        e for e in encounters
        if _contains(e.theme, term) or term in str(e.number) or _contains(e.motto, term)
    ]


def sort_events(events: List[ECCEvent]) -> List[ECCEvent]:
    return sorted(events, key=lambda e: e.start_date, reverse=True)


def held_events(events: List[ECCEvent]) -> List[ECCEvent]:
    return [e for e in events if e.status == "REALIZADO"]


def filter_songs(songs: List[ECCSong], stage: Optional[str] = None, q: str = "") -> List[ECCSong]:
    term = q.lower()
    return [
        s for s in songs
        if (stage is None or s.stage == stage)
        and (_contains(s.title, term) or _contains(s.author, term))
    ]


def search_regions(regions: List[ApostolicRegion], q: str = "") -> List[ApostolicRegion]:
    term = q.lower()
    return [r for r in regions if _contains(r.name, term) or _contains(r.state, term)]


def filter_gallery(photos: List[GalleryPhoto], stage: str = GENERAL_STAGE, q: str = "") -> List[GalleryPhoto]:
    term = q.lower()
    return [
        p for p in photos
        if (stage == GENERAL_STAGE or p.stage == stage)
        and (_contains(p.title, term) or _contains(p.description, term) or _contains(p.uploaded_by, term))
    ]


def messages_for_room(messages: List[ChatMessage], room: str, since: Optional[datetime] = None) -> List[ChatMessage]:
    return [m for m in messages if m.room == room and (since is None or m.timestamp > since)]


def notifications_since(notifications: List[ECCNotification], since: Optional[datetime] = None) -> List[ECCNotification]:
    if since is None:
        return notifications
    return [n for n in notifications if n.created_at > since]
