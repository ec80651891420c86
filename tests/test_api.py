"""
End-to-end tests through the HTTP view layer.
"""

from fastapi.testclient import TestClient

from main import app
from schemas import RegistrationStatus, Role


def _couple_payload(email="a@b.com", state="PR"):
    return {
        "husband": {"name": "João Silva"},
        "wife": {"name": "Maria Silva"},
        "email": email,
        "parish": "São José",
        "city": "Curitiba",
        "state": state,
    }


def _event_payload(title="Encontro de Casais"):
    return {"title": title, "start_date": "2026-05-10T08:00:00", "location": "Salão"}


# =============================================================================
# AUTH & SESSION
# =============================================================================


class TestAuth:
    def test_register_login_logout(self, client, sign_in):
        response = client.post("/api/auth/register", json={
            "name": "Ana e Pedro",
            "email": "ana@ecc.org",
            "password": "s3cret",
            "role": "STAGE_1_TEAM",
            "accepted_terms": True,
        })
        assert response.status_code == 200
        assert "password_hash" not in response.json()["user"]

        response = sign_in(client, "ana@ecc.org", "s3cret")
        assert response.json()["token"]

        session = client.get("/api/session").json()
        assert session["user"]["email"] == "ana@ecc.org"
        assert session["is_leader"] is True
        assert session["has_registration_access"] is False

        client.post("/api/auth/logout")
        assert client.get("/api/session").status_code == 401

    def test_sessions_are_per_client(self, client, login_as):
        login_as(Role.SPIRITUAL_DIRECTOR)
        assert client.get("/api/approvals").status_code == 200

        with TestClient(app) as anonymous:
            assert anonymous.get("/api/approvals").status_code == 401
            assert anonymous.get("/api/session").status_code == 401
            anonymous.headers["Authorization"] = "Bearer not-a-token"
            assert anonymous.get("/api/session").status_code == 401

    def test_logout_ends_only_that_session(self, client, login_as, sign_in):
        user = login_as(Role.STAGE_1_TEAM)
        with TestClient(app) as other:
            sign_in(other, user.email, "secret")

            client.post("/api/auth/logout")

            assert client.get("/api/session").status_code == 401
            assert other.get("/api/session").json()["user"]["id"] == user.id

    def test_login_with_the_address_used_at_signup(self, client, sign_in):
        body = {"name": "Ana e Pedro", "email": "Ana@Paroquia.ORG", "password": "s3cret", "accepted_terms": True}
        assert client.post("/api/auth/register", json=body).status_code == 200

        sign_in(client, "Ana@Paroquia.ORG", "s3cret")
        assert client.get("/api/session").json()["user"]["email"] == "Ana@paroquia.org"

    def test_register_requires_terms(self, client):
        response = client.post("/api/auth/register", json={
            "name": "Ana e Pedro", "email": "ana@ecc.org", "password": "x",
        })
        assert response.status_code == 400

    def test_register_duplicate_email(self, client):
        body = {"name": "Ana e Pedro", "email": "ana@ecc.org", "password": "x", "accepted_terms": True}
        assert client.post("/api/auth/register", json=body).status_code == 200

        response = client.post("/api/auth/register", json=body)
        assert response.status_code == 400
        assert "e-mail" in response.json()["detail"]

    def test_bad_credentials(self, client):
        response = client.post("/api/auth/login", json={"email": "nobody@ecc.org", "password": "x"})
        assert response.status_code == 401

    def test_term_extension_by_director(self, client, login_as, storage, past):
        leader = login_as(Role.REGIONAL_COUPLE, term_end=past)
        assert client.get("/api/couples").status_code == 403

        login_as(Role.SPIRITUAL_DIRECTOR)
        response = client.put(f"/api/users/{leader.id}/term", json={"term_end": "2099-12-31T00:00:00"})
        assert response.status_code == 200
        assert storage.get_user(leader.id).term_end.year == 2099

    def test_term_extension_forbidden_for_others(self, client, login_as):
        other = login_as(Role.STAGE_1_TEAM)
        login_as(Role.REGIONAL_COUPLE)
        assert client.put(f"/api/users/{other.id}/term", json={"term_end": "2099-12-31T00:00:00"}).status_code == 403

    def test_theme(self, client):
        assert client.get("/api/theme").json() == {"theme": "light"}
        assert client.put("/api/theme", json={"theme": "dark"}).json() == {"theme": "dark"}
        assert client.put("/api/theme", json={"theme": "blue"}).status_code == 422


# =============================================================================
# REGISTRATION & APPROVAL
# =============================================================================


class TestRegistrationFlow:
    def test_register_approve_and_count(self, client, login_as):
        login_as(Role.REGIONAL_COUPLE)

        response = client.post("/api/couples", json=_couple_payload("a@b.com"))
        assert response.status_code == 200
        couple_id = response.json()["id"]
        assert response.json()["status"] == RegistrationStatus.PENDING.value

        assert [c["id"] for c in client.get("/api/approvals").json()["items"]] == [couple_id]

        response = client.post(f"/api/approvals/{couple_id}/approve")
        assert response.json()["status"] == "APPROVED"

        assert client.get("/api/approvals").json()["items"] == []
        stats = client.get("/api/dashboard").json()
        assert stats["approved_count"] == 1
        assert stats["state_distribution"] == [{"state": "PR", "couples": 1}]

    def test_duplicate_couple_email_rejected(self, client, login_as):
        login_as(Role.REGIONAL_COUPLE)
        assert client.post("/api/couples", json=_couple_payload("a@b.com")).status_code == 200

        response = client.post("/api/couples", json=_couple_payload("A@B.com "))
        assert response.status_code == 400
        assert len(client.get("/api/couples").json()["items"]) == 1

    def test_new_registration_never_replaces_existing_couple(self, client, login_as):
        login_as(Role.REGIONAL_COUPLE)
        first_id = client.post("/api/couples", json=_couple_payload("a@b.com")).json()["id"]
        client.post(f"/api/approvals/{first_id}/approve")

        response = client.post("/api/couples", json={**_couple_payload("other@b.com"), "id": first_id})
        assert response.status_code == 200
        assert response.json()["id"] != first_id

        couples = {c["email"]: c["status"] for c in client.get("/api/couples").json()["items"]}
        assert couples == {"a@b.com": "APPROVED", "other@b.com": "PENDING"}

    def test_admin_without_term_gets_restricted_not_expired(self, client, login_as, storage):
        admin = login_as(Role.ADMIN)
        storage.users.save(storage.users.get(admin.id).model_copy(update={"term_end": None}))

        response = client.get("/api/approvals")
        assert response.status_code == 403
        assert response.json()["detail"] == "Acesso Restrito"

    def test_reject_and_missing_id(self, client, login_as):
        login_as(Role.SPIRITUAL_DIRECTOR)
        couple_id = client.post("/api/couples", json=_couple_payload()).json()["id"]

        assert client.post(f"/api/approvals/{couple_id}/reject").json()["status"] == "REJECTED"
        assert client.post("/api/approvals/missing/approve").status_code == 404

    def test_expired_leader_denied(self, client, login_as, past):
        login_as(Role.NATIONAL_COUPLE, term_end=past)

        response = client.get("/api/approvals")
        assert response.status_code == 403
        assert response.json()["detail"] == "Mandato Expirado"
        assert client.post("/api/couples", json=_couple_payload()).status_code == 403

    def test_couples_cannot_see_registration_data(self, client, login_as):
        login_as(Role.COUPLE_USER)

        assert client.get("/api/couples").status_code == 403
        assert client.get("/api/regions").status_code == 403
        assert client.get("/api/dashboard").status_code == 403

    def test_search_and_encounters(self, client, login_as):
        login_as(Role.STAGE_2_TEAM)
        payload = _couple_payload("x@y.com", state="SP")
        payload["encounters"] = [{"stage": "1ª Etapa", "number": 4, "date": "2024-03-01", "theme": "Família"}]
        client.post("/api/couples", json=payload)
        client.post("/api/couples", json=_couple_payload("z@y.com"))

        assert len(client.get("/api/couples", params={"state": "SP"}).json()["items"]) == 1
        encounters = client.get("/api/encounters", params={"q": "famí"}).json()["items"]
        assert [e["number"] for e in encounters] == [4]


# =============================================================================
# EVENTS
# =============================================================================


class TestEvents:
    def test_subscribe_approve_notifies_once(self, client, login_as, sign_in):
        leader = login_as(Role.REGIONAL_COUPLE)
        event_id = client.post("/api/events", json=_event_payload("Retiro")).json()["id"]

        member = login_as(Role.COUPLE_USER, name="Casal Membro")
        client.post(f"/api/events/{event_id}/subscription")
        client.post(f"/api/events/{event_id}/subscription")

        login_as(Role.REGIONAL_COUPLE)
        attendees = client.get(f"/api/events/{event_id}/attendees").json()["items"]
        assert len(attendees) == 1
        assert attendees[0]["user"]["name"] == "Casal Membro"

        response = client.put(f"/api/events/{event_id}/attendees/{member.id}", json={"status": "APPROVED"})
        assert response.status_code == 200
        client.put(f"/api/events/{event_id}/attendees/{member.id}", json={"status": "PENDING"})

        sign_in(client, member.email, "secret")
        notifications = client.get("/api/notifications").json()
        assert len(notifications["items"]) == 1
        assert notifications["items"][0]["type"] == "SUCCESS"
        assert "REGIONAL COUPLE" in notifications["items"][0]["message"]
        assert notifications["unread"] == 1

        notification_id = notifications["items"][0]["id"]
        client.post(f"/api/notifications/{notification_id}/read")
        assert client.get("/api/notifications").json()["unread"] == 0
        assert leader.id != member.id

    def test_unsubscribe(self, client, login_as):
        login_as(Role.STAGE_1_TEAM)
        event_id = client.post("/api/events", json=_event_payload()).json()["id"]

        client.post(f"/api/events/{event_id}/subscription")
        response = client.delete(f"/api/events/{event_id}/subscription")
        assert response.json()["event"]["attendees"] == []

    def test_edit_preserves_attendees(self, client, login_as):
        login_as(Role.STAGE_1_TEAM)
        event_id = client.post("/api/events", json=_event_payload()).json()["id"]
        client.post(f"/api/events/{event_id}/subscription")

        response = client.put(f"/api/events/{event_id}", json={**_event_payload("Novo Título"), "attendees": []})
        assert response.status_code == 200

        [event] = client.get("/api/events").json()["items"]
        assert event["title"] == "Novo Título"
        assert len(event["attendees"]) == 1

    def test_create_never_overwrites_existing_event(self, client, login_as):
        login_as(Role.STAGE_1_TEAM)
        event_id = client.post("/api/events", json=_event_payload("Retiro")).json()["id"]
        client.post(f"/api/events/{event_id}/subscription")

        response = client.post("/api/events", json={**_event_payload("Outro"), "id": event_id})
        assert response.status_code == 200
        assert response.json()["id"] != event_id

        events = {e["title"]: e for e in client.get("/api/events").json()["items"]}
        assert set(events) == {"Retiro", "Outro"}
        assert len(events["Retiro"]["attendees"]) == 1

    def test_couples_cannot_manage_events(self, client, login_as):
        login_as(Role.COUPLE_USER)
        assert client.post("/api/events", json=_event_payload()).status_code == 403

    def test_delete_event(self, client, login_as):
        login_as(Role.STAGE_1_TEAM)
        event_id = client.post("/api/events", json=_event_payload()).json()["id"]

        assert client.delete(f"/api/events/{event_id}").status_code == 200
        assert client.delete(f"/api/events/{event_id}").status_code == 404


# =============================================================================
# CHAT, SONGS, GALLERY, REGIONS
# =============================================================================


class TestChat:
    def test_couples_limited_to_support_room(self, client, login_as):
        login_as(Role.COUPLE_USER)

        assert client.post("/api/chat", json={"content": "Olá", "room": "SUPPORT"}).status_code == 200
        assert client.post("/api/chat", json={"content": "Olá", "room": "ADMIN"}).status_code == 403
        assert client.get("/api/chat/ADMIN").status_code == 403

        [message] = client.get("/api/chat/SUPPORT").json()["items"]
        assert message["sender_name"] == "Casal Coordenador"
        assert message["sender_role"] == "COUPLE_USER"

    def test_empty_message_rejected(self, client, login_as):
        login_as(Role.STAGE_1_TEAM)
        assert client.post("/api/chat", json={"content": "   ", "room": "ADMIN"}).status_code == 400

    def test_since_filter(self, client, login_as):
        login_as(Role.STAGE_1_TEAM)
        sent = client.post("/api/chat", json={"content": "primeira", "room": "ADMIN"}).json()["message"]

        response = client.get("/api/chat/ADMIN", params={"since": sent["timestamp"]})
        assert response.json()["items"] == []


class TestDirectories:
    def test_songs_seeded_and_added(self, client, login_as):
        login_as(Role.COUPLE_USER)

        assert [s["id"] for s in client.get("/api/songs").json()["items"]] == ["s1"]
        client.post("/api/songs", json={"title": "Hino", "author": "Equipe", "stage": "2ª Etapa"})
        assert [s["title"] for s in client.get("/api/songs", params={"stage": "2ª Etapa"}).json()["items"]] == ["Hino"]

    def test_gallery_rules(self, client, login_as):
        login_as(Role.STAGE_3_TEAM, name="Casal Fotógrafo")

        bad = client.post("/api/gallery", json={"url": "data:application/pdf;base64,AAAA", "title": "Doc"})
        assert bad.status_code == 400

        photo_id = client.post("/api/gallery", json={"url": "data:image/png;base64,AAAA", "title": "Missa"}).json()["id"]
        [photo] = client.get("/api/gallery").json()["items"]
        assert photo["uploaded_by"] == "Casal Fotógrafo"

        login_as(Role.COUPLE_USER)
        assert client.delete(f"/api/gallery/{photo_id}").status_code == 403

    def test_region_upsert(self, client, login_as):
        login_as(Role.SPIRITUAL_DIRECTOR)

        region = client.put("/api/regions", json={"name": "Sul 1", "state": "PR"}).json()["region"]
        client.put("/api/regions", json={**region, "spiritual_director": "Pe. Antônio"})

        [stored] = client.get("/api/regions", params={"q": "sul"}).json()["items"]
        assert stored["spiritual_director"] == "Pe. Antônio"


def test_health(client):
    assert client.get("/").status_code == 200
    assert client.get("/test").json()["storage"] == "MemoryStore"
