"""
Shared fixtures: an in-memory SQLite store with the full schema, and a
record factory that provisions users through the identity module.
"""

import itertools
import json
from datetime import datetime, time, timedelta

import pytest
from sqlalchemy import create_engine, update
from sqlalchemy.exc import OperationalError
from sqlalchemy.pool import StaticPool

from telehealth.database import create_schema
from telehealth.identity import resolve_current_user
from telehealth.models import SessionIdentity
from telehealth.schema import (
    consultations,
    doctors,
    messages,
    new_id,
    prescriptions,
    reminders,
    symptoms,
)

NOW = datetime(2026, 10, 17, 12, 0, 0)


# ── Fakes ────────────────────────────────────────────────────────────

class FakeEngine:
    """Engine whose every connection attempt fails like a dead database."""
    def __init__(self):
        self.connect_calls = 0

    def _fail(self):
        self.connect_calls += 1
        raise OperationalError("SELECT 1", {}, Exception("database is unavailable"))

    def connect(self):
        self._fail()

    def begin(self):
        self._fail()


# ── Record factory ───────────────────────────────────────────────────

class Factory:
    def __init__(self, engine):
        self.engine = engine
        self._seq = itertools.count(1)

    def identity(self, role, first_name="Test", last_name=None, email=None):
        n = next(self._seq)
        return SessionIdentity(
            external_id=f"idp_{role}_{n}",
            email=email or f"{role}{n}@example.com",
            first_name=first_name,
            last_name=last_name or f"{role.capitalize()}{n}",
            role_hint=role,
        )

    def patient(self, first_name="Pat", last_name=None, email=None):
        return resolve_current_user(self.engine, self.identity("patient", first_name, last_name, email))

    def doctor(self, first_name="Doc", last_name=None, specialty="cardiology", fee=100.0):
        user = resolve_current_user(self.engine, self.identity("doctor", first_name, last_name))
        with self.engine.begin() as conn:
            conn.execute(
                update(doctors)
                .where(doctors.c.id == user.doctor_id)
                .values(specialty=specialty, consultation_fee=fee, is_available=True)
            )
        return user

    def admin(self):
        return resolve_current_user(self.engine, self.identity("admin", "Ada", "Admin"))

    def _insert(self, table, values):
        with self.engine.begin() as conn:
            conn.execute(table.insert().values(**values))
        return values["id"]

    def consultation(self, patient, doctor, scheduled_at=NOW, status="scheduled",
                     consultation_type="video_call", fee=100.0, **extra):
        values = {
            "id": new_id(),
            "patient_id": patient.patient_id,
            "doctor_id": doctor.doctor_id,
            "scheduled_at": scheduled_at,
            "duration": "30",
            "consultation_type": consultation_type,
            "status": status,
            "symptoms": json.dumps(["cough"]),
            "consultation_fee": fee,
            "created_at": scheduled_at - timedelta(days=1),
            "updated_at": scheduled_at - timedelta(days=1),
        }
        values.update(extra)
        return self._insert(consultations, values)

    def message(self, consultation_id, sender, content="hello", created_at=NOW):
        return self._insert(messages, {
            "id": new_id(),
            "consultation_id": consultation_id,
            "sender_id": sender.id,
            "content": content,
            "message_type": "text",
            "status": "sent",
            "created_at": created_at,
            "updated_at": created_at,
        })

    def prescription(self, patient, doctor, medication_name="Amoxicillin", created_at=NOW,
                     status="pending", is_active=True, consultation_id=None):
        return self._insert(prescriptions, {
            "id": new_id(),
            "consultation_id": consultation_id,
            "patient_id": patient.patient_id,
            "doctor_id": doctor.doctor_id,
            "medication_name": medication_name,
            "dosage": "500mg",
            "frequency": "twice_daily",
            "duration": 7,
            "quantity": 14,
            "status": status,
            "is_active": is_active,
            "start_date": created_at,
            "end_date": created_at + timedelta(days=7),
            "created_at": created_at,
            "updated_at": created_at,
        })

    def reminder(self, patient, next_reminder_at=NOW, reminder_type="medication",
                 status="active", prescription_id=None, at=time(9, 0), title="Take medicine"):
        return self._insert(reminders, {
            "id": new_id(),
            "patient_id": patient.patient_id,
            "prescription_id": prescription_id,
            "reminder_type": reminder_type,
            "title": title,
            "reminder_time": at,
            "status": status,
            "next_reminder_at": next_reminder_at,
            "created_at": NOW - timedelta(days=3),
            "updated_at": NOW - timedelta(days=3),
        })

    def symptom(self, patient, symptom_name="Headache", severity="moderate",
                created_at=NOW, resolved_date=None):
        return self._insert(symptoms, {
            "id": new_id(),
            "patient_id": patient.patient_id,
            "symptom_name": symptom_name,
            "category": "neurological",
            "description": f"{symptom_name} since yesterday",
            "severity": severity,
            "resolved_date": resolved_date,
            "created_at": created_at,
            "updated_at": created_at,
        })


# ── Fixtures ─────────────────────────────────────────────────────────

@pytest.fixture
def engine():
    eng = create_engine(
        "sqlite://",
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
        future=True,
    )
    create_schema(eng)
    yield eng
    eng.dispose()


@pytest.fixture
def factory(engine):
    return Factory(engine)


@pytest.fixture
def patient(factory):
    return factory.patient("Alice", "Patient")


@pytest.fixture
def doctor(factory):
    return factory.doctor("Gregory", "House")
