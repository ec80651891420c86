from datetime import datetime, timedelta, timezone

import pytest
from fastapi.testclient import TestClient

from database import MemoryStore
from main import app, get_storage
from schemas import Couple, ECCEvent, Person, Role, User
from storage import StorageService


@pytest.fixture
def store() -> MemoryStore:
    return MemoryStore()


@pytest.fixture
def storage(store) -> StorageService:
    return StorageService(store)


@pytest.fixture
def future() -> datetime:
    return datetime.now(timezone.utc) + timedelta(days=365)


@pytest.fixture
def past() -> datetime:
    return datetime.now(timezone.utc) - timedelta(days=1)


@pytest.fixture
def make_couple():
    def _make(email: str = "a@b.com", **overrides) -> Couple:
        data = dict(
            husband=Person(name="João Silva"),
            wife=Person(name="Maria Silva"),
            email=email,
            parish="São José",
            region="Sul 1",
            city="Curitiba",
            state="PR",
        )
        data.update(overrides)
        return Couple(**data)
    return _make


@pytest.fixture
def make_event():
    def _make(title: str = "Encontro de Casais", **overrides) -> ECCEvent:
        data = dict(title=title, start_date=datetime(2026, 5, 10, tzinfo=timezone.utc), location="Salão Paroquial")
        data.update(overrides)
        return ECCEvent(**data)
    return _make


@pytest.fixture
def client(store):
    app.dependency_overrides[get_storage] = lambda: StorageService(store)
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()


@pytest.fixture
def sign_in():
    """Log in through the API and send the returned token on every later request."""
    def _sign_in(client, email: str, password: str):
        response = client.post("/api/auth/login", json={"email": email, "password": password})
        assert response.status_code == 200
        client.headers["Authorization"] = f"Bearer {response.json()['token']}"
        return response
    return _sign_in


@pytest.fixture
def login_as(client, storage, future, sign_in):
    """Create an account with the given role and open a session for it."""
    counter = {"n": 0}

    def _login(role: Role = Role.REGIONAL_COUPLE, term_end=None, name: str = "Casal Coordenador") -> User:
        counter["n"] += 1
        user = storage.create_account(
            User(
                name=name,
                email=f"user{counter['n']}@ecc.org",
                role=role,
                parish="São José",
                region="Sul 1",
                term_end=future if term_end is None else term_end,
            ),
            "secret",
        )
        sign_in(client, user.email, "secret")
        return user

    return _login
