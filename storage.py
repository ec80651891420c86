"""
Persistence Adapter

Every collection lives under a fixed key of the storage medium as one JSON
array. Each operation loads the whole collection, changes it in memory and
writes the whole collection back. There are no indices and no version checks:
the last writer wins.

Operations on ids that do not exist are no-ops here; they return None/False so
the caller can decide whether that is an error.
"""
import logging
from datetime import datetime, timezone
from hashlib import sha256
from typing import Callable, Generic, List, Optional, Type, TypeVar, get_args

from pydantic import BaseModel, TypeAdapter, ValidationError

from schemas import (
    ApostolicRegion,
    AttendeeStatus,
    ChatMessage,
    Couple,
    ECCEvent,
    ECCNotification,
    ECCSong,
    EventAttendee,
    GalleryPhoto,
    RegistrationStatus,
    Stage,
    User,
    UserAccount,
    UserSession,
    new_id,
)

logger = logging.getLogger(__name__)

COUPLES_KEY = "ecc_couples_db"
CHAT_KEY = "ecc_chat_messages"
REGIONS_KEY = "ecc_apostolic_regions"
SONGS_KEY = "ecc_songs_db"
USERS_KEY = "ecc_users_accounts"
EVENTS_KEY = "ecc_events_agenda"
NOTIFICATIONS_KEY = "ecc_notifications_db"
GALLERY_KEY = "ecc_gallery_photos"
SESSION_KEY = "ecc_session"
THEME_KEY = "ecc_theme"

CHAT_HISTORY_LIMIT = 100
THEMES = ("light", "dark")

T = TypeVar("T", bound=BaseModel)


class DuplicateEmailError(ValueError):
    """Raised when an email is already registered."""


def hash_password(password: str) -> str:
    return sha256(password.encode()).hexdigest()


def normalize_email(email: str) -> str:
    return email.strip().lower()


def _default_songs() -> List[ECCSong]:
    return [
        ECCSong(
            id="s1",
            title="Oração pela Família",
            author="Padre Zezinho",
            stage=Stage.FIRST,
            category="Espiritualidade",
            lyrics=(
                "Que nenhuma família comece em qualquer de repente\n"
                "Que nenhuma família termine por falta de amor\n"
                "Que o casal seja um para o outro de corpo e de mente\n"
                "E que nada no mundo separe um casal sonhador..."
            ),
            video_url="https://www.youtube.com/watch?v=M5G877FAn3k",
        )
    ]


class Collection(Generic[T]):
    """A list of models stored as one JSON array under one key."""

    def __init__(self, store, key: str, model: Type[T], seed: Optional[Callable[[], List[T]]] = None):
        self.store = store
        self.key = key
        self.model = model
        self._adapter = TypeAdapter(List[model])
        self._seed = seed

    def get_all(self) -> List[T]:
        raw = self.store.get_item(self.key)
        if raw is None:
            if self._seed is None:
                return []
            items = self._seed()
            self.replace_all(items)
            return items
        return self._adapter.validate_json(raw)

    def replace_all(self, items: List[T]) -> None:
        self.store.set_item(self.key, self._adapter.dump_json(items).decode())

    def get(self, item_id: str) -> Optional[T]:
        return next((item for item in self.get_all() if item.id == item_id), None)

    def save(self, item: T) -> T:
        """Upsert by id: replace in place when found, append otherwise."""
        items = self.get_all()
        for index, existing in enumerate(items):
            if existing.id == item.id:
                items[index] = item
                break
        else:
            items.append(item)
        self.replace_all(items)
        return item

    def append(self, item: T) -> T:
        items = self.get_all()
        items.append(item)
        self.replace_all(items)
        return item

    def delete_by_id(self, item_id: str) -> bool:
        items = self.get_all()
        kept = [item for item in items if item.id != item_id]
        if len(kept) == len(items):
            return False
        self.replace_all(kept)
        return True


class StorageService:
    def __init__(self, store):
        self.store = store
        self.users = Collection(store, USERS_KEY, UserAccount)
        self.couples = Collection(store, COUPLES_KEY, Couple)
        self.messages = Collection(store, CHAT_KEY, ChatMessage)
        self.regions = Collection(store, REGIONS_KEY, ApostolicRegion)
        self.songs = Collection(store, SONGS_KEY, ECCSong, seed=_default_songs)
        self.events = Collection(store, EVENTS_KEY, ECCEvent)
        self.notifications = Collection(store, NOTIFICATIONS_KEY, ECCNotification)
        self.gallery = Collection(store, GALLERY_KEY, GalleryPhoto)
        self.sessions = Collection(store, SESSION_KEY, UserSession)

    # -------------------- Users --------------------

    def get_users(self) -> List[UserAccount]:
        return self.users.get_all()

    def get_user(self, user_id: str) -> Optional[User]:
        account = self.users.get(user_id)
        return account.to_public() if account else None

    def save_user(self, account: UserAccount) -> UserAccount:
        accounts = self.users.get_all()
        if any(existing.email == account.email for existing in accounts):
            raise DuplicateEmailError("Este e-mail já possui um acesso cadastrado.")
        accounts.append(account)
        self.users.replace_all(accounts)
        logger.info(f"Account created for user {account.id} ({account.role.value})")
        return account

    def create_account(self, user: User, password: str) -> User:
        account = UserAccount(**user.model_dump(), password_hash=hash_password(password))
        return self.save_user(account).to_public()

    def find_user_by_credentials(self, email: str, password: str) -> Optional[User]:
        password_hash = hash_password(password)
        for account in self.users.get_all():
            if account.email == email and account.password_hash == password_hash:
                return account.to_public()
        return None

    def extend_user_term(self, user_id: str, term_end: datetime, term_start: Optional[datetime] = None) -> Optional[User]:
        account = self.users.get(user_id)
        if account is None:
            return None
        changes = {"term_end": term_end}
        if term_start is not None:
            changes["term_start"] = term_start
        # re-validate so naive datetimes get normalized like everywhere else
        updated = UserAccount.model_validate({**account.model_dump(), **changes})
        self.users.save(updated)
        return updated.to_public()

    # -------------------- Couples --------------------

    def get_couples(self) -> List[Couple]:
        return self.couples.get_all()

    def save_couple(self, couple: Couple) -> Couple:
        return self.couples.save(couple)

    def find_couple_by_email(self, email: str) -> Optional[Couple]:
        wanted = normalize_email(email)
        if not wanted:
            return None
        return next((c for c in self.couples.get_all() if normalize_email(c.email) == wanted), None)

    def register_couple(self, couple: Couple) -> Couple:
        """Validate and store a new registration, always in PENDING status.

        The record always gets a fresh id, so a registration can never replace
        an existing couple.
        """
        if self.find_couple_by_email(couple.email):
            raise DuplicateEmailError("Este e-mail do casal já está registrado.")
        couple = couple.model_copy(update={
            "id": new_id(),
            "email": couple.email.strip(),
            "status": RegistrationStatus.PENDING,
            "created_at": datetime.now(timezone.utc),
        })
        self.couples.save(couple)
        logger.info(f"Couple {couple.id} registered for parish {couple.parish!r}")
        return couple

    def _set_couple_status(self, couple_id: str, status: RegistrationStatus) -> Optional[Couple]:
        found = None
        couples = self.couples.get_all()
        for index, couple in enumerate(couples):
            if couple.id == couple_id:
                found = couple.model_copy(update={"status": status})
                couples[index] = found
        if found is None:
            return None
        self.couples.replace_all(couples)
        logger.info(f"Couple {couple_id} set to {status.value}")
        return found

    def approve_couple(self, couple_id: str) -> Optional[Couple]:
        return self._set_couple_status(couple_id, RegistrationStatus.APPROVED)

    def reject_couple(self, couple_id: str) -> Optional[Couple]:
        return self._set_couple_status(couple_id, RegistrationStatus.REJECTED)

    # -------------------- Chat --------------------

    def get_messages(self) -> List[ChatMessage]:
        return self.messages.get_all()

    def send_message(self, message: ChatMessage) -> ChatMessage:
        messages = self.messages.get_all()
        messages.append(message)
        if len(messages) > CHAT_HISTORY_LIMIT:
            dropped = len(messages) - CHAT_HISTORY_LIMIT
            logger.debug(f"Chat history full, dropping {dropped} oldest message(s)")
            messages = messages[-CHAT_HISTORY_LIMIT:]
        self.messages.replace_all(messages)
        return message

    # -------------------- Songs & Regions --------------------

    def get_songs(self) -> List[ECCSong]:
        return self.songs.get_all()

    def save_song(self, song: ECCSong) -> ECCSong:
        return self.songs.append(song)

    def get_apostolic_regions(self) -> List[ApostolicRegion]:
        return self.regions.get_all()

    def save_apostolic_region(self, region: ApostolicRegion) -> ApostolicRegion:
        return self.regions.save(region)

    # -------------------- Events --------------------

    def get_events(self) -> List[ECCEvent]:
        return self.events.get_all()

    def get_event(self, event_id: str) -> Optional[ECCEvent]:
        return self.events.get(event_id)

    def save_event(self, event: ECCEvent) -> ECCEvent:
        return self.events.save(event)

    def delete_event(self, event_id: str) -> bool:
        return self.events.delete_by_id(event_id)

    def subscribe_to_event(self, event_id: str, user_id: str) -> Optional[ECCEvent]:
        """Add a PENDING attendee. Subscribing twice keeps a single entry."""
        events = self.events.get_all()
        event = next((e for e in events if e.id == event_id), None)
        if event is None:
            return None
        if not any(a.user_id == user_id for a in event.attendees):
            event.attendees.append(EventAttendee(user_id=user_id))
            self.events.replace_all(events)
        return event

    def unsubscribe_from_event(self, event_id: str, user_id: str) -> Optional[ECCEvent]:
        events = self.events.get_all()
        event = next((e for e in events if e.id == event_id), None)
        if event is None:
            return None
        event.attendees = [a for a in event.attendees if a.user_id != user_id]
        self.events.replace_all(events)
        return event

    def update_attendee_status(self, event_id: str, user_id: str, status: AttendeeStatus, approver_label: str) -> Optional[ECCEvent]:
        """Set an attendee's status and notify them.

        A notification is written only when the attendee moves into APPROVED or
        REJECTED from a different status. Re-applying the same status or
        reverting to PENDING is silent. Unknown statuses raise ValueError and
        leave the event untouched.
        """
        if status not in get_args(AttendeeStatus):
            raise ValueError(f"Unknown attendee status: {status}")
        events = self.events.get_all()
        event = next((e for e in events if e.id == event_id), None)
        if event is None:
            return None
        attendee = next((a for a in event.attendees if a.user_id == user_id), None)
        if attendee is None:
            return None

        previous = attendee.status
        attendee.status = status
        self.events.replace_all(events)
        logger.info(f"Attendee {user_id} of event {event_id}: {previous} -> {status}")

        if status != previous and status in ("APPROVED", "REJECTED"):
            approved = status == "APPROVED"
            self.add_notification(ECCNotification(
                user_id=user_id,
                title="Inscrição Aprovada!" if approved else "Inscrição Não Homologada",
                message=(
                    f'Sua participação no evento "{event.title}" foi '
                    f'{"aprovada" if approved else "rejeitada"} pela coordenação ({approver_label}).'
                ),
                type="SUCCESS" if approved else "WARNING",
            ))
        return event

    # -------------------- Notifications --------------------

    def get_notifications(self, user_id: str) -> List[ECCNotification]:
        mine = [n for n in self.notifications.get_all() if n.user_id == user_id]
        return sorted(mine, key=lambda n: n.created_at, reverse=True)

    def add_notification(self, notification: ECCNotification) -> ECCNotification:
        logger.debug(f"Notification {notification.id} for user {notification.user_id}")
        return self.notifications.append(notification)

    def mark_as_read(self, notification_id: str) -> bool:
        notifications = self.notifications.get_all()
        found = False
        for notification in notifications:
            if notification.id == notification_id:
                notification.read = True
                found = True
        if found:
            self.notifications.replace_all(notifications)
        return found

    # -------------------- Gallery --------------------

    def get_gallery_photos(self) -> List[GalleryPhoto]:
        return sorted(self.gallery.get_all(), key=lambda p: p.created_at, reverse=True)

    def save_gallery_photo(self, photo: GalleryPhoto) -> GalleryPhoto:
        return self.gallery.save(photo)

    def delete_gallery_photo(self, photo_id: str) -> bool:
        return self.gallery.delete_by_id(photo_id)

    # -------------------- Session & Theme --------------------

    def save_session(self, user: User) -> str:
        """Open a session for this login and return its token."""
        session = self.sessions.append(UserSession(user=user))
        return session.id

    def load_session(self, token: Optional[str]) -> Optional[User]:
        """Return the user behind a token, refreshed from the accounts collection when possible."""
        if not token:
            return None
        try:
            session = self.sessions.get(token)
        except ValidationError:
            logger.warning("Discarding unreadable sessions")
            self.store.remove_item(SESSION_KEY)
            return None
        if session is None:
            return None
        return self.get_user(session.user.id) or session.user

    def clear_session(self, token: Optional[str]) -> bool:
        if not token:
            return False
        return self.sessions.delete_by_id(token)

    def get_theme(self) -> str:
        theme = self.store.get_item(THEME_KEY)
        return theme if theme in THEMES else "light"

    def set_theme(self, theme: str) -> str:
        if theme not in THEMES:
            raise ValueError(f"Unknown theme: {theme}")
        self.store.set_item(THEME_KEY, theme)
        return theme
