import logging
import os
from datetime import datetime
from typing import Literal, Optional

from fastapi import Depends, FastAPI, HTTPException
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from fastapi.middleware.cors import CORSMiddleware
from pydantic import BaseModel, EmailStr, Field

import access
import queries
from database import db, get_store
from schemas import (
    GENERAL_STAGE,
    ApostolicRegion,
    AttendeeStatus,
    ChatMessage,
    ChatRoom,
    Couple,
    ECCEvent,
    ECCSong,
    GalleryPhoto,
    Role,
    Stage,
    User,
    ensure_utc,
    new_id,
)
from storage import DuplicateEmailError, StorageService

logging.basicConfig(level=os.getenv("LOG_LEVEL", "INFO"))
logger = logging.getLogger(__name__)

app = FastAPI(title="ECC Portal API")

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# -------------------- Dependencies --------------------

def get_storage() -> StorageService:
    return StorageService(get_store())

bearer_scheme = HTTPBearer(auto_error=False)

def session_token(credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer_scheme)) -> Optional[str]:
    return credentials.credentials if credentials else None

def current_user(token: Optional[str] = Depends(session_token), storage: StorageService = Depends(get_storage)) -> User:
    user = storage.load_session(token)
    if user is None:
        raise HTTPException(status_code=401, detail="Not logged in")
    return user

def leader_user(user: User = Depends(current_user)) -> User:
    if not access.is_leader(user):
        raise HTTPException(status_code=403, detail="Restricted to leadership")
    return user

def registration_data_user(user: User = Depends(current_user)) -> User:
    if not access.is_authorized_for_registration_data(user):
        reason = "Mandato Expirado" if access.is_term_expired(user) else "Acesso Restrito"
        raise HTTPException(status_code=403, detail=reason)
    return user

def _since(value: Optional[datetime]) -> Optional[datetime]:
    return ensure_utc(value) if value else None

# -------------------- Models --------------------

class SignupDTO(BaseModel):
    name: str = Field(..., min_length=2, max_length=120)
    email: EmailStr
    password: str = Field(..., min_length=1)
    role: Role = Role.STAGE_1_TEAM
    parish: str = ""
    region: str = ""
    jurisdiction: Optional[str] = None
    accepted_terms: bool = False

class LoginDTO(BaseModel):
    email: EmailStr
    password: str

class ThemeDTO(BaseModel):
    theme: Literal["light", "dark"]

class TermDTO(BaseModel):
    term_end: datetime
    term_start: Optional[datetime] = None

class AttendeeStatusDTO(BaseModel):
    status: AttendeeStatus

class MessageDTO(BaseModel):
    content: str
    room: ChatRoom = "SUPPORT"

class PhotoDTO(BaseModel):
    url: str
    title: str
    description: Optional[str] = None
    event_id: Optional[str] = None
    stage: str = GENERAL_STAGE

# -------------------- Root/Test --------------------

@app.get("/")
def read_root():
    return {"message": "ECC Portal API running"}

@app.get("/test")
def test_database(storage: StorageService = Depends(get_storage)):
    response = {
        "backend": "✅ Running",
        "database": "❌ Not Available",
        "database_url": "✅ Set" if os.getenv("DATABASE_URL") else "❌ Not Set",
        "database_name": None,
        "connection_status": "Not Connected",
        "storage": type(storage.store).__name__,
        "keys": [],
    }
    try:
        if db is not None:
            response["database"] = "✅ Available"
            response["database_name"] = db.name
            response["connection_status"] = "Connected"
            try:
                response["keys"] = storage.store.keys()[:10]
                response["database"] = "✅ Connected & Working"
            except Exception as e:
                response["database"] = f"⚠️ Connected but Error: {str(e)[:50]}"
        else:
            response["database"] = "⚠️ Using in-memory storage"
            response["keys"] = storage.store.keys()[:10]
    except Exception as e:
        response["database"] = f"❌ Error: {str(e)[:50]}"
    return response

# -------------------- Auth --------------------

@app.post("/api/auth/register")
def register(body: SignupDTO, storage: StorageService = Depends(get_storage)):
    if not body.accepted_terms:
        raise HTTPException(status_code=400, detail="É necessário declarar sua autoridade eclesiástica para prosseguir.")
    user = User(
        name=body.name,
        email=body.email,
        role=body.role,
        parish=body.parish,
        region=body.region,
        jurisdiction=body.jurisdiction,
    )
    try:
        created = storage.create_account(user, body.password)
    except DuplicateEmailError as e:
        raise HTTPException(status_code=400, detail=str(e))
    return {"user": created}

@app.post("/api/auth/login")
def login(body: LoginDTO, storage: StorageService = Depends(get_storage)):
    user = storage.find_user_by_credentials(body.email, body.password)
    if user is None:
        logger.info("Rejected login attempt")
        raise HTTPException(status_code=401, detail="E-mail ou senha incorretos. Verifique suas credenciais.")
    token = storage.save_session(user)
    logger.info(f"User {user.id} logged in as {user.role.value}")
    return {"user": user, "token": token}

@app.post("/api/auth/logout")
def logout(token: Optional[str] = Depends(session_token), storage: StorageService = Depends(get_storage)):
    storage.clear_session(token)
    return {"status": "ok"}

@app.get("/api/session")
def session(user: User = Depends(current_user)):
    return {
        "user": user,
        "is_leader": access.is_leader(user),
        "has_registration_access": access.is_authorized_for_registration_data(user),
        "is_term_expired": access.is_term_expired(user),
        "rooms": access.visible_rooms(user),
    }

@app.put("/api/users/{user_id}/term")
def extend_term(user_id: str, body: TermDTO, user: User = Depends(current_user), storage: StorageService = Depends(get_storage)):
    if user.role not in (Role.SPIRITUAL_DIRECTOR, Role.ADMIN):
        raise HTTPException(status_code=403, detail="Only the spiritual director can renew terms")
    updated = storage.extend_user_term(user_id, body.term_end, body.term_start)
    if updated is None:
        raise HTTPException(status_code=404, detail="User not found")
    return {"user": updated}

# -------------------- Theme --------------------

@app.get("/api/theme")
def get_theme(storage: StorageService = Depends(get_storage)):
    return {"theme": storage.get_theme()}

@app.put("/api/theme")
def set_theme(body: ThemeDTO, storage: StorageService = Depends(get_storage)):
    return {"theme": storage.set_theme(body.theme)}

# -------------------- Dashboard --------------------

@app.get("/api/dashboard")
def dashboard(user: User = Depends(leader_user), storage: StorageService = Depends(get_storage)):
    return queries.dashboard_stats(storage.get_couples(), storage.get_notifications(user.id))

# -------------------- Couples & Approvals --------------------

@app.get("/api/couples")
def list_couples(q: str = "", state: Optional[str] = None, user: User = Depends(registration_data_user), storage: StorageService = Depends(get_storage)):
    return {"items": queries.search_couples(storage.get_couples(), q, state)}

@app.post("/api/couples")
def register_couple(body: Couple, user: User = Depends(leader_user), storage: StorageService = Depends(get_storage)):
    if access.is_term_expired(user):
        raise HTTPException(status_code=403, detail="Mandato Expirado")
    try:
        couple = storage.register_couple(body)
    except DuplicateEmailError as e:
        raise HTTPException(status_code=400, detail=str(e))
    return {"id": couple.id, "status": couple.status}

@app.get("/api/approvals")
def approval_queue(user: User = Depends(registration_data_user), storage: StorageService = Depends(get_storage)):
    return {"items": queries.pending_couples(storage.get_couples())}

@app.post("/api/approvals/{couple_id}/approve")
def approve(couple_id: str, user: User = Depends(registration_data_user), storage: StorageService = Depends(get_storage)):
    couple = storage.approve_couple(couple_id)
    if couple is None:
        raise HTTPException(status_code=404, detail="Couple not found")
    return {"id": couple.id, "status": couple.status}

@app.post("/api/approvals/{couple_id}/reject")
def reject(couple_id: str, user: User = Depends(registration_data_user), storage: StorageService = Depends(get_storage)):
    couple = storage.reject_couple(couple_id)
    if couple is None:
        raise HTTPException(status_code=404, detail="Couple not found")
    return {"id": couple.id, "status": couple.status}

@app.get("/api/encounters")
def encounters(q: str = "", user: User = Depends(registration_data_user), storage: StorageService = Depends(get_storage)):
    return {"items": queries.encounter_history(storage.get_couples(), q)}

# -------------------- Events --------------------

@app.get("/api/events")
def list_events(held: bool = False, user: User = Depends(current_user), storage: StorageService = Depends(get_storage)):
    events = queries.sort_events(storage.get_events())
    if held:
        events = queries.held_events(events)
    return {"items": events}

@app.post("/api/events")
def create_event(body: ECCEvent, user: User = Depends(leader_user), storage: StorageService = Depends(get_storage)):
    # a new event never takes over an existing id or its attendees
    event = storage.save_event(body.model_copy(update={"id": new_id(), "attendees": []}))
    return {"id": event.id}

@app.put("/api/events/{event_id}")
def update_event(event_id: str, body: ECCEvent, user: User = Depends(leader_user), storage: StorageService = Depends(get_storage)):
    existing = storage.get_event(event_id)
    if existing is None:
        raise HTTPException(status_code=404, detail="Event not found")
    # attendee list is owned by subscribe/approve, never by the edit form
    event = storage.save_event(body.model_copy(update={"id": event_id, "attendees": existing.attendees}))
    return {"event": event}

@app.delete("/api/events/{event_id}")
def delete_event(event_id: str, user: User = Depends(leader_user), storage: StorageService = Depends(get_storage)):
    if not storage.delete_event(event_id):
        raise HTTPException(status_code=404, detail="Event not found")
    return {"status": "deleted"}

@app.post("/api/events/{event_id}/subscription")
def subscribe(event_id: str, user: User = Depends(current_user), storage: StorageService = Depends(get_storage)):
    event = storage.subscribe_to_event(event_id, user.id)
    if event is None:
        raise HTTPException(status_code=404, detail="Event not found")
    return {"event": event}

@app.delete("/api/events/{event_id}/subscription")
def unsubscribe(event_id: str, user: User = Depends(current_user), storage: StorageService = Depends(get_storage)):
    event = storage.unsubscribe_from_event(event_id, user.id)
    if event is None:
        raise HTTPException(status_code=404, detail="Event not found")
    return {"event": event}

@app.get("/api/events/{event_id}/attendees")
def list_attendees(event_id: str, user: User = Depends(leader_user), storage: StorageService = Depends(get_storage)):
    event = storage.get_event(event_id)
    if event is None:
        raise HTTPException(status_code=404, detail="Event not found")
    users = {u.id: u.to_public() for u in storage.get_users()}
    items = [
        {"attendee": attendee, "user": users.get(attendee.user_id)}
        for attendee in event.attendees
    ]
    return {"items": items}

@app.put("/api/events/{event_id}/attendees/{user_id}")
def set_attendee_status(event_id: str, user_id: str, body: AttendeeStatusDTO, user: User = Depends(leader_user), storage: StorageService = Depends(get_storage)):
    event = storage.update_attendee_status(event_id, user_id, body.status, user.role.label)
    if event is None:
        raise HTTPException(status_code=404, detail="Attendee not found")
    return {"event": event}

# -------------------- Gallery --------------------

@app.get("/api/gallery")
def list_gallery(stage: str = GENERAL_STAGE, q: str = "", user: User = Depends(current_user), storage: StorageService = Depends(get_storage)):
    return {"items": queries.filter_gallery(storage.get_gallery_photos(), stage, q)}

@app.post("/api/gallery")
def add_photo(body: PhotoDTO, user: User = Depends(leader_user), storage: StorageService = Depends(get_storage)):
    if body.url.startswith("data:") and not body.url.startswith("data:image/"):
        raise HTTPException(status_code=400, detail="Formato inválido. Por favor, selecione apenas arquivos de imagem.")
    if body.stage != GENERAL_STAGE and body.stage not in [s.value for s in Stage]:
        raise HTTPException(status_code=400, detail=f"Unknown stage: {body.stage}")
    photo = storage.save_gallery_photo(GalleryPhoto(
        url=body.url,
        title=body.title,
        description=body.description,
        event_id=body.event_id or None,
        stage=body.stage,
        uploaded_by=user.name,
    ))
    return {"id": photo.id}

@app.delete("/api/gallery/{photo_id}")
def delete_photo(photo_id: str, user: User = Depends(leader_user), storage: StorageService = Depends(get_storage)):
    if not storage.delete_gallery_photo(photo_id):
        raise HTTPException(status_code=404, detail="Photo not found")
    return {"status": "deleted"}

# -------------------- Songs & Regions --------------------

@app.get("/api/songs")
def list_songs(stage: Optional[Stage] = None, q: str = "", user: User = Depends(current_user), storage: StorageService = Depends(get_storage)):
    return {"items": queries.filter_songs(storage.get_songs(), stage, q)}

@app.post("/api/songs")
def add_song(body: ECCSong, user: User = Depends(current_user), storage: StorageService = Depends(get_storage)):
    song = storage.save_song(body)
    return {"id": song.id}

@app.get("/api/regions")
def list_regions(q: str = "", user: User = Depends(registration_data_user), storage: StorageService = Depends(get_storage)):
    return {"items": queries.search_regions(storage.get_apostolic_regions(), q)}

@app.put("/api/regions")
def save_region(body: ApostolicRegion, user: User = Depends(registration_data_user), storage: StorageService = Depends(get_storage)):
    region = storage.save_apostolic_region(body)
    return {"region": region}

# -------------------- Chat --------------------

@app.get("/api/chat/{room}")
def chat_messages(room: ChatRoom, since: Optional[datetime] = None, user: User = Depends(current_user), storage: StorageService = Depends(get_storage)):
    if room not in access.visible_rooms(user):
        raise HTTPException(status_code=403, detail="Room not available")
    return {"items": queries.messages_for_room(storage.get_messages(), room, _since(since))}

@app.post("/api/chat")
def send_message(body: MessageDTO, user: User = Depends(current_user), storage: StorageService = Depends(get_storage)):
    if not body.content.strip():
        raise HTTPException(status_code=400, detail="Message is empty")
    if body.room not in access.visible_rooms(user):
        raise HTTPException(status_code=403, detail="Room not available")
    message = storage.send_message(ChatMessage(
        sender_id=user.id,
        sender_name=user.name,
        sender_role=user.role,
        sender_parish=user.parish,
        sender_region=user.region,
        content=body.content,
        room=body.room,
    ))
    return {"message": message}

# -------------------- Notifications --------------------

@app.get("/api/notifications")
def list_notifications(since: Optional[datetime] = None, user: User = Depends(current_user), storage: StorageService = Depends(get_storage)):
    mine = storage.get_notifications(user.id)
    return {
        "items": queries.notifications_since(mine, _since(since)),
        "unread": sum(1 for n in mine if not n.read),
    }

@app.post("/api/notifications/{notification_id}/read")
def mark_read(notification_id: str, user: User = Depends(current_user), storage: StorageService = Depends(get_storage)):
    if notification_id not in {n.id for n in storage.get_notifications(user.id)}:
        raise HTTPException(status_code=404, detail="Notification not found")
    storage.mark_as_read(notification_id)
    return {"items": storage.get_notifications(user.id)}

if __name__ == "__main__":
    import uvicorn
    port = int(os.getenv("PORT", 8000))
    uvicorn.run(app, host="0.0.0.0", port=port)
