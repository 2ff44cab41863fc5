"""
Unit tests for patient reminders – listings and ownership-scoped updates.
"""

from datetime import time, timedelta

import pytest
from sqlalchemy import select

from conftest import NOW
from telehealth.errors import NotAuthorizedError, NotFoundError, ValidationError
from telehealth.reminders import (
    get_active_reminders,
    get_patient_reminders,
    get_reminders_by_type,
    get_todays_reminders,
    mark_reminder_taken,
    snooze_reminder,
)
from telehealth.schema import reminders


def _row(engine, reminder_id):
    with engine.connect() as conn:
        return conn.execute(select(reminders).where(reminders.c.id == reminder_id)).mappings().first()


def test_listing_joins_prescription(engine, factory, patient, doctor):
    prescription_id = factory.prescription(patient, doctor, "Lisinopril")
    factory.reminder(patient, prescription_id=prescription_id)

    listed = get_patient_reminders(engine, patient)
    assert len(listed) == 1
    assert listed[0]["medication_name"] == "Lisinopril"
    assert listed[0]["dosage"] == "500mg"


def test_listing_is_scoped_to_caller(engine, factory, patient):
    other = factory.patient("Bob", "Else")
    mine = factory.reminder(patient)
    factory.reminder(other)

    assert [r["id"] for r in get_patient_reminders(engine, patient)] == [mine]


def test_active_and_todays(engine, factory, patient):
    evening = factory.reminder(patient, next_reminder_at=NOW.replace(hour=21), at=time(21, 0))
    morning = factory.reminder(patient, next_reminder_at=NOW.replace(hour=8), at=time(8, 0))
    factory.reminder(patient, next_reminder_at=NOW + timedelta(days=1))
    factory.reminder(patient, next_reminder_at=NOW, status="paused")

    assert len(get_active_reminders(engine, patient)) == 3
    assert [r["id"] for r in get_todays_reminders(engine, patient, now=NOW)] == [morning, evening]


def test_by_type(engine, factory, patient):
    factory.reminder(patient, reminder_type="medication")
    follow_up = factory.reminder(patient, reminder_type="follow_up", title="See Dr. House")

    assert [r["id"] for r in get_reminders_by_type(engine, patient, "follow_up")] == [follow_up]
    with pytest.raises(ValidationError):
        get_reminders_by_type(engine, patient, "horoscope")


def test_doctor_cannot_list_reminders(engine, doctor):
    with pytest.raises(NotAuthorizedError):
        get_patient_reminders(engine, doctor)


def test_mark_taken_updates_own_reminder(engine, factory, patient):
    reminder_id = factory.reminder(patient)
    assert mark_reminder_taken(engine, patient, reminder_id, notes="with breakfast") == {"success": True}

    row = _row(engine, reminder_id)
    assert row["dosage_taken"] is True
    assert row["notes"] == "with breakfast"


def test_mark_taken_without_notes_keeps_existing_notes(engine, factory, patient):
    reminder_id = factory.reminder(patient)
    mark_reminder_taken(engine, patient, reminder_id, True, "with food")
    mark_reminder_taken(engine, patient, reminder_id, False)

    row = _row(engine, reminder_id)
    assert row["dosage_taken"] is False
    assert row["notes"] == "with food"


def test_mark_taken_requires_boolean(engine, factory, patient):
    reminder_id = factory.reminder(patient)
    with pytest.raises(ValidationError):
        mark_reminder_taken(engine, patient, reminder_id, "false")
    assert _row(engine, reminder_id)["dosage_taken"] is False


def test_other_patient_cannot_touch_reminder(engine, factory, patient):
    reminder_id = factory.reminder(patient)
    intruder = factory.patient("Eve", "Outsider")

    with pytest.raises(NotFoundError):
        mark_reminder_taken(engine, intruder, reminder_id)
    with pytest.raises(NotFoundError):
        snooze_reminder(engine, intruder, reminder_id, 10, now=NOW)

    row = _row(engine, reminder_id)
    assert row["dosage_taken"] is False
    assert row["snooze_until"] is None


def test_snooze_sets_snooze_until(engine, factory, patient):
    reminder_id = factory.reminder(patient)
    result = snooze_reminder(engine, patient, reminder_id, 30, now=NOW)

    assert result["snooze_until"] == NOW + timedelta(minutes=30)
    assert _row(engine, reminder_id)["snooze_until"] == NOW + timedelta(minutes=30)


def test_snooze_rejects_non_positive_minutes(engine, factory, patient):
    reminder_id = factory.reminder(patient)
    with pytest.raises(ValidationError):
        snooze_reminder(engine, patient, reminder_id, 0, now=NOW)
