"""
Unit tests for the per-role dashboard summary.
"""

from datetime import timedelta

import pytest

from conftest import NOW, FakeEngine
from telehealth.dashboard import get_dashboard_data
from telehealth.errors import NotAuthenticatedError, NotAuthorizedError, StoreError


def test_patient_dashboard(engine, factory, patient, doctor):
    soon = factory.consultation(patient, doctor, scheduled_at=NOW + timedelta(days=1))
    later = factory.consultation(patient, doctor, scheduled_at=NOW + timedelta(days=2))
    seen = factory.consultation(patient, doctor, scheduled_at=NOW - timedelta(days=3),
                                status="completed", diagnosis="Migraine")
    factory.consultation(patient, doctor, scheduled_at=NOW - timedelta(days=5), status="cancelled")
    factory.prescription(patient, doctor, "Sumatriptan")
    factory.prescription(patient, doctor, "Old course", created_at=NOW - timedelta(days=40), is_active=False)
    factory.reminder(patient)
    factory.reminder(patient, reminder_type="follow_up")
    factory.reminder(patient, status="paused")

    data = get_dashboard_data(engine, patient, now=NOW)

    assert data["user_type"] == "patient"
    assert data["next_appointment"]["id"] == soon
    assert data["next_appointment"]["doctor_last_name"] == "House"
    assert [c["id"] for c in data["upcoming_appointments"]] == [soon, later]
    assert [c["id"] for c in data["recent_consultations"]] == [seen]
    assert data["recent_consultations"][0]["diagnosis"] == "Migraine"
    assert [p["medication_name"] for p in data["recent_prescriptions"]] == ["Sumatriptan", "Old course"]
    assert data["active_prescriptions_count"] == 1
    assert data["prescriptions_due_today_count"] == 1


def test_patient_dashboard_without_appointments(engine, patient):
    data = get_dashboard_data(engine, patient, now=NOW)
    assert data["next_appointment"] is None
    assert data["upcoming_appointments"] == []


def test_doctor_dashboard(engine, factory, patient, doctor):
    bob = factory.patient("Bob", "Builder")
    factory.consultation(patient, doctor, scheduled_at=NOW.replace(hour=8))
    factory.consultation(patient, doctor, scheduled_at=NOW - timedelta(days=7))
    tomorrow = factory.consultation(bob, doctor, scheduled_at=NOW + timedelta(days=1))
    factory.consultation(patient, factory.doctor("Other", "Doc"), scheduled_at=NOW.replace(hour=9))

    data = get_dashboard_data(engine, doctor, now=NOW)

    assert data["user_type"] == "doctor"
    assert data["todays_appointments_count"] == 1
    assert data["total_patients_count"] == 2
    assert [c["id"] for c in data["upcoming_appointments"]] == [tomorrow]
    assert data["upcoming_appointments"][0]["patient_first_name"] == "Bob"
    assert data["rating"] == 0
    assert data["total_ratings"] == 0


def test_dashboard_requires_caller(engine):
    with pytest.raises(NotAuthenticatedError):
        get_dashboard_data(engine, None)


def test_dashboard_rejects_admin(engine, factory):
    with pytest.raises(NotAuthorizedError):
        get_dashboard_data(engine, factory.admin())


def test_dashboard_store_failure(patient):
    with pytest.raises(StoreError):
        get_dashboard_data(FakeEngine(), patient, now=NOW)
