"""
Tests for the Flask API – token handling, serialisation and the mapping
of service errors to status codes.
"""

from datetime import datetime

import jwt
import pytest
from sqlalchemy import select

from conftest import NOW
from telehealth.api.app import create_app
from telehealth.api.auth import generate_token, identity_from_claims, verify_token
from telehealth.api.routes import parse_datetime
from telehealth.config import IDP_JWT_SECRET
from telehealth.identity import resolve_current_user
from telehealth.models import SessionIdentity
from telehealth.schema import consultations, reminders

FAR_FUTURE = datetime(2099, 1, 1, 9, 0)


@pytest.fixture
def client(engine):
    app = create_app(engine)
    app.config["TESTING"] = True
    return app.test_client()


def _auth(identity):
    return {"Authorization": f"Bearer {generate_token(identity)}"}


@pytest.fixture
def alice(engine):
    ident = SessionIdentity("idp_alice", email="alice@example.com", first_name="Alice",
                            last_name="Patient", role_hint="patient")
    return ident, resolve_current_user(engine, ident)


@pytest.fixture
def house(engine):
    ident = SessionIdentity("idp_house", email="house@example.com", first_name="Gregory",
                            last_name="House", role_hint="doctor")
    return ident, resolve_current_user(engine, ident)


# ── Tests: tokens ────────────────────────────────────────────────────

def test_token_round_trip():
    ident = SessionIdentity("idp_1", email="a@example.com", first_name="A", role_hint="doctor")
    claims = verify_token(generate_token(ident))
    assert identity_from_claims(claims) == ident


def test_expired_token_is_rejected():
    ident = SessionIdentity("idp_1", email="a@example.com")
    assert verify_token(generate_token(ident, expires_in_hours=-1)) is None


def test_foreign_signature_is_rejected():
    token = jwt.encode({"sub": "idp_1"}, IDP_JWT_SECRET + "-other", algorithm="HS256")
    assert verify_token(token) is None


def test_claims_without_subject():
    assert identity_from_claims({"email": "a@example.com"}) is None


# ── Tests: endpoints ─────────────────────────────────────────────────

def test_health(client):
    r = client.get("/health")
    assert r.status_code == 200
    assert r.get_json()["checks"]["database"] is True


def test_missing_token_is_401(client):
    r = client.get("/api/consultations")
    assert r.status_code == 401
    assert r.get_json()["error"] == "Authentication token is missing"


def test_invalid_token_is_401(client):
    r = client.get("/api/consultations", headers={"Authorization": "Bearer nonsense"})
    assert r.status_code == 401


def test_me_provisions_on_first_request(client):
    ident = SessionIdentity("idp_fresh", email="fresh@example.com", first_name="Fresh", last_name="User")
    r = client.get("/api/me", headers=_auth(ident))
    assert r.status_code == 200
    body = r.get_json()
    assert body["user"]["user_type"] == "patient"
    assert body["display_name"] == "Fresh User"


def test_identity_without_email_is_401(client):
    r = client.get("/api/me", headers=_auth(SessionIdentity("idp_anon")))
    assert r.status_code == 401


def test_consultation_flow_and_status_codes(client, alice, house):
    alice_ident, alice_user = alice
    house_ident, house_user = house
    booked = client.post(
        "/api/consultations",
        json={"doctor_id": house_user.doctor_id,
              "scheduled_at": FAR_FUTURE.isoformat()},
        headers=_auth(alice_ident),
    )
    assert booked.status_code == 201
    consultation_id = booked.get_json()["consultation"]["id"]

    listing = client.get("/api/consultations", headers=_auth(alice_ident)).get_json()
    assert [c["id"] for c in listing["upcoming_consultations"]] == [consultation_id]
    scheduled_at = listing["upcoming_consultations"][0]["scheduled_at"]
    assert datetime.fromisoformat(scheduled_at) == FAR_FUTURE

    sent = client.post(f"/api/consultations/{consultation_id}/messages",
                       json={"content": "Hello doctor"}, headers=_auth(alice_ident))
    assert sent.status_code == 201

    thread = client.get(f"/api/consultations/{consultation_id}/messages", headers=_auth(house_ident))
    assert [m["content"] for m in thread.get_json()] == ["Hello doctor"]

    outsider = SessionIdentity("idp_eve", email="eve@example.com", role_hint="patient")
    denied = client.get(f"/api/consultations/{consultation_id}", headers=_auth(outsider))
    assert denied.status_code == 403

    missing = client.get("/api/consultations/does-not-exist", headers=_auth(alice_ident))
    assert missing.status_code == 404


def test_validation_errors_are_400(client, alice):
    alice_ident, _ = alice
    r = client.post("/api/consultations", json={}, headers=_auth(alice_ident))
    assert r.status_code == 400
    r = client.post("/api/consultations", json={"doctor_id": "x", "scheduled_at": "tomorrow"},
                    headers=_auth(alice_ident))
    assert r.status_code == 400


def test_role_mismatch_is_403(client, alice):
    alice_ident, _ = alice
    r = client.get("/api/doctor/earnings?period=this_month", headers=_auth(alice_ident))
    assert r.status_code == 403


def test_records_are_serialised(client, factory, alice, house):
    alice_ident, alice_user = alice
    _, house_user = house
    factory.prescription(alice_user, house_user, "Metformin")

    r = client.get("/api/records", headers=_auth(alice_ident))
    assert r.status_code == 200
    [record] = r.get_json()
    assert record["title"] == "Metformin Prescription"
    assert record["date"] == NOW.isoformat()


def test_unknown_endpoint_is_404(client):
    assert client.get("/api/nowhere").status_code == 404


# ── Tests: datetimes ─────────────────────────────────────────────────

def test_parse_datetime_normalises_to_naive_utc():
    assert parse_datetime("2099-01-01T10:00:00+05:00", "at") == datetime(2099, 1, 1, 5, 0)
    assert parse_datetime("2099-01-01T10:00:00Z", "at") == datetime(2099, 1, 1, 10, 0)
    assert parse_datetime("2099-01-01T10:00:00", "at") == datetime(2099, 1, 1, 10, 0)
    assert parse_datetime("", "at") is None


def test_booking_with_offset_is_stored_in_utc(client, engine, alice, house):
    alice_ident, _ = alice
    _, house_user = house
    booked = client.post(
        "/api/consultations",
        json={"doctor_id": house_user.doctor_id, "scheduled_at": "2099-01-01T10:00:00+05:00"},
        headers=_auth(alice_ident),
    )
    assert booked.status_code == 201

    consultation_id = booked.get_json()["consultation"]["id"]
    with engine.connect() as conn:
        stored = conn.execute(
            select(consultations.c.scheduled_at).where(consultations.c.id == consultation_id)
        ).scalar_one()
    assert stored == datetime(2099, 1, 1, 5, 0)


# ── Tests: reminders ─────────────────────────────────────────────────

def test_reminder_taken_rejects_string_flag(client, engine, factory, alice):
    alice_ident, alice_user = alice
    reminder_id = factory.reminder(alice_user)

    r = client.post(f"/api/reminders/{reminder_id}/taken", json={"taken": "false"},
                    headers=_auth(alice_ident))
    assert r.status_code == 400
    with engine.connect() as conn:
        taken = conn.execute(
            select(reminders.c.dosage_taken).where(reminders.c.id == reminder_id)
        ).scalar_one()
    assert taken is False


# ── Tests: directory, dashboard, meetings ────────────────────────────

def test_patient_finds_doctor_then_books(client, factory, alice):
    alice_ident, _ = alice
    wilson = factory.doctor("James", "Wilson", specialty="oncology")

    listed = client.get("/api/doctors?specialty=oncology", headers=_auth(alice_ident)).get_json()
    assert [d["id"] for d in listed] == [wilson.doctor_id]

    profile = client.get(f"/api/doctors/{wilson.doctor_id}", headers=_auth(alice_ident))
    assert profile.get_json()["user"]["last_name"] == "Wilson"
    assert client.get("/api/doctors/nobody", headers=_auth(alice_ident)).status_code == 404

    booked = client.post("/api/consultations",
                         json={"doctor_id": listed[0]["id"], "scheduled_at": FAR_FUTURE.isoformat()},
                         headers=_auth(alice_ident))
    assert booked.status_code == 201

    dashboard = client.get("/api/dashboard", headers=_auth(alice_ident)).get_json()
    assert dashboard["user_type"] == "patient"
    assert dashboard["next_appointment"]["id"] == booked.get_json()["consultation"]["id"]


def test_meeting_status_endpoint(client, factory, alice, house):
    alice_ident, alice_user = alice
    house_ident, house_user = house
    consultation_id = factory.consultation(alice_user, house_user)

    r = client.post(f"/api/consultations/{consultation_id}/meeting-status",
                    json={"status": "in_progress", "timestamp": "2026-10-17T12:01:00Z"},
                    headers=_auth(house_ident))
    assert r.status_code == 200
    body = r.get_json()["consultation"]
    assert body["meeting_status"] == "in_progress"
    assert datetime.fromisoformat(body["meeting_started_at"]) == datetime(2026, 10, 17, 12, 1)

    bad = client.post(f"/api/consultations/{consultation_id}/meeting-status",
                      json={"status": "paused"}, headers=_auth(house_ident))
    assert bad.status_code == 400


def test_doctor_notes_views(client, factory, alice, house):
    _, alice_user = alice
    house_ident, house_user = house
    factory.consultation(alice_user, house_user, follow_up_required=True)

    r = client.get("/api/doctor/notes?view=follow_up", headers=_auth(house_ident))
    assert r.status_code == 200
    assert [n["patient_name"] for n in r.get_json()] == ["Alice Patient"]
    assert client.get("/api/doctor/notes?view=weekly", headers=_auth(house_ident)).status_code == 400
