"""
Persisted Schemas for the ECC Portal

Each top-level Pydantic model is one entry of a JSON collection stored under a
fixed key of the storage medium (see storage.py for the key names). Nested
models (Person, EncounterRecord, EventAttendee, StageLeader...) live inside
their parent record and are never stored on their own.
"""
import secrets
from datetime import date as Date
from datetime import datetime, timezone
from enum import Enum
from typing import Annotated, List, Literal, Optional, Union

from bson import ObjectId
from pydantic import AfterValidator, BaseModel, EmailStr, Field


def new_id() -> str:
    return str(ObjectId())


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def ensure_utc(value: datetime) -> datetime:
    # naive values coming from date pickers are read as UTC
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


UTCDateTime = Annotated[datetime, AfterValidator(ensure_utc)]

# -------------------- Enums --------------------

class Role(str, Enum):
    NATIONAL_COUNCIL = "NATIONAL_COUNCIL"
    NATIONAL_COUPLE = "NATIONAL_COUPLE"
    REGIONAL_COUPLE = "REGIONAL_COUPLE"
    SPIRITUAL_DIRECTOR = "SPIRITUAL_DIRECTOR"
    ARCHDIOCESAN_COUPLE = "ARCHDIOCESAN_COUPLE"
    SECTOR_COUPLE = "SECTOR_COUPLE"
    STAGE_1_TEAM = "STAGE_1_TEAM"
    STAGE_2_TEAM = "STAGE_2_TEAM"
    STAGE_3_TEAM = "STAGE_3_TEAM"
    COUPLE_USER = "COUPLE_USER"
    ADMIN = "ADMIN"

    @property
    def label(self) -> str:
        return self.value.replace("_", " ")


class Stage(str, Enum):
    FIRST = "1ª Etapa"
    SECOND = "2ª Etapa"
    THIRD = "3ª Etapa"


class RegistrationStatus(str, Enum):
    PENDING = "PENDING"
    APPROVED = "APPROVED"
    REJECTED = "REJECTED"


GENERAL_STAGE = "GERAL"

AttendeeStatus = Literal["PENDING", "APPROVED", "REJECTED"]
ChatRoom = Literal["ADMIN", "SUPPORT"]
NotificationType = Literal["SUCCESS", "INFO", "WARNING"]

# -------------------- Accounts --------------------

class User(BaseModel):
    id: str = Field(default_factory=new_id)
    name: str = Field(..., min_length=2, max_length=120)
    role: Role
    email: EmailStr
    parish: str = ""
    region: str = ""
    jurisdiction: Optional[str] = None
    term_start: Optional[UTCDateTime] = Field(None, description="Start of the leadership term")
    term_end: Optional[UTCDateTime] = Field(None, description="End of the leadership term")

class UserAccount(User):
    """User record as persisted: the public profile plus the credential hash."""
    password_hash: str

    def to_public(self) -> User:
        return User(**self.model_dump(exclude={"password_hash"}))

def new_token() -> str:
    return secrets.token_urlsafe(32)

class UserSession(BaseModel):
    """One login. The id doubles as the bearer token handed to the client."""
    id: str = Field(default_factory=new_token)
    user: User
    created_at: UTCDateTime = Field(default_factory=utcnow)

# -------------------- Couples --------------------

class Person(BaseModel):
    name: str
    photo_base64: Optional[str] = None
    phone: Optional[str] = None
    email: Optional[str] = None
    occupation: Optional[str] = None

class ECCDocument(BaseModel):
    id: str = Field(default_factory=new_id)
    name: str
    type: str
    data: str = Field(..., description="Base64 payload")
    upload_date: UTCDateTime = Field(default_factory=utcnow)

class ParishCoordinatingTeam(BaseModel):
    casal_montagem: str = ""
    casal_ficha: str = ""
    casal_financa: str = ""
    casal_recepcao_palestra: str = ""
    casal_pos_encontro: str = ""
    term_start: Optional[Date] = None
    term_end: Optional[Date] = None

class EncounterTeams(BaseModel):
    sala: Optional[str] = None
    cafezinho: Optional[str] = None
    cozinha: Optional[str] = None
    ordem_limpeza: Optional[str] = None
    visitacao: Optional[str] = None
    circulo_estudo: Optional[str] = None
    compras: Optional[str] = None
    coordenador_geral: Optional[str] = None
    secretaria: Optional[str] = None
    liturgia: Optional[str] = None
    som_projecao: Optional[str] = None
    recepcao_palestrante: Optional[str] = None

class EncounterRecord(BaseModel):
    id: str = Field(default_factory=new_id)
    stage: Stage
    number: int = Field(..., ge=1)
    date: Date
    theme: Optional[str] = None
    motto: Optional[str] = None
    quadrante_base64: Optional[str] = None
    coordinating_team: Optional[ParishCoordinatingTeam] = None
    teams: Optional[EncounterTeams] = None
    specific_role_in_encounter: Optional[str] = None

class Couple(BaseModel):
    id: str = Field(default_factory=new_id)
    husband: Person
    wife: Person
    address: str = ""
    phone: str = ""
    email: str = ""
    parish: str = ""
    region: str = ""
    sector_name: str = ""
    sector_couple: str = ""
    sector_term_start: Optional[Date] = None
    sector_term_end: Optional[Date] = None
    city: str = ""
    state: str = Field("", description="Two-letter state code (UF)")
    is_engaged: bool = False
    pastoral_group: str = "Nenhum"
    wedding_date: Optional[Date] = None
    encounters: List[EncounterRecord] = Field(default_factory=list)
    documents: List[ECCDocument] = Field(default_factory=list)
    status: RegistrationStatus = RegistrationStatus.PENDING
    created_at: UTCDateTime = Field(default_factory=utcnow)
    synced: bool = False

# -------------------- Events --------------------

class EventAttendee(BaseModel):
    user_id: str
    status: AttendeeStatus = "PENDING"
    registration_date: UTCDateTime = Field(default_factory=utcnow)

class ECCEvent(BaseModel):
    id: str = Field(default_factory=new_id)
    title: str
    type: Literal["ENCONTRO", "REUNIAO", "PALESTRA", "ESPIRITUALIDADE"] = "ENCONTRO"
    stage: Union[Stage, Literal["GERAL"]] = Stage.FIRST
    start_date: UTCDateTime
    end_date: Optional[UTCDateTime] = None
    location: str = ""
    theme: Optional[str] = None
    motto: Optional[str] = None
    coordinating_team: Optional[ParishCoordinatingTeam] = None
    status: Literal["PLANEJADO", "REALIZADO", "CANCELADO"] = "PLANEJADO"
    quadrante_base64: Optional[str] = None
    description: Optional[str] = None
    attendees: List[EventAttendee] = Field(default_factory=list)

# -------------------- Chat & Notifications --------------------

class ChatMessage(BaseModel):
    id: str = Field(default_factory=new_id)
    sender_id: str
    sender_name: str
    sender_role: Role
    sender_parish: str = ""
    sender_region: str = ""
    content: str
    timestamp: UTCDateTime = Field(default_factory=utcnow)
    is_private: bool = False
    target_role: Optional[Role] = None
    room: ChatRoom = "SUPPORT"

class ECCNotification(BaseModel):
    id: str = Field(default_factory=new_id)
    user_id: str
    title: str
    message: str
    type: NotificationType = "INFO"
    read: bool = False
    created_at: UTCDateTime = Field(default_factory=utcnow)

# -------------------- Directories --------------------

class StageLeader(BaseModel):
    stage: Stage
    couple_names: str = ""
    team_name: str = ""
    term_start: Optional[Date] = None
    term_end: Optional[Date] = None

def _default_stage_leaders() -> List[StageLeader]:
    return [StageLeader(stage=stage) for stage in Stage]

class ApostolicRegion(BaseModel):
    id: str = Field(default_factory=new_id)
    name: str
    state: str = ""
    spiritual_director: str = ""
    regional_director: str = ""
    national_director: str = ""
    archdiocesan_couple: str = ""
    stage_leaders: List[StageLeader] = Field(default_factory=_default_stage_leaders)
    term_start: Optional[Date] = None
    term_end: Optional[Date] = None

class ECCSong(BaseModel):
    id: str = Field(default_factory=new_id)
    title: str
    author: str = ""
    stage: Stage
    lyrics: str = ""
    category: str = ""
    video_url: Optional[str] = None

class GalleryPhoto(BaseModel):
    id: str = Field(default_factory=new_id)
    url: str = Field(..., description="Data URL or external link of the image")
    title: str
    description: Optional[str] = None
    event_id: Optional[str] = None
    stage: Union[Stage, Literal["GERAL"]] = GENERAL_STAGE
    uploaded_by: str
    created_at: UTCDateTime = Field(default_factory=utcnow)
