"""
Unit tests for the merged medical record history.
"""

from datetime import timedelta

import pytest

from conftest import NOW
from telehealth.errors import NotAuthorizedError, ValidationError
from telehealth.records import (
    consultation_title,
    get_medical_record_by_id,
    get_medical_records_by_type,
    get_patient_medical_records,
    get_recent_medical_activity,
    merge_records,
)
from telehealth.models import MedicalRecord


def test_titles():
    assert consultation_title("video_call") == "VIDEO CALL Consultation"
    assert consultation_title("in_person") == "IN PERSON Consultation"


def test_history_merges_and_sorts_newest_first(engine, factory, patient, doctor):
    consultation_id = factory.consultation(
        patient, doctor, scheduled_at=NOW - timedelta(days=3),
        status="completed", diagnosis="Seasonal flu",
    )
    symptom_id = factory.symptom(patient, "Headache", "severe", created_at=NOW - timedelta(days=1))
    prescription_id = factory.prescription(patient, doctor, "Amoxicillin", created_at=NOW - timedelta(days=2))
    factory.symptom(factory.patient("Bob", "Else"), "Rash")

    history = get_patient_medical_records(engine, patient)

    assert [(r.type, r.id) for r in history] == [
        ("symptom", symptom_id),
        ("prescription", prescription_id),
        ("consultation", consultation_id),
    ]
    symptom, prescription, consultation = history

    assert symptom.title == "Headache - SEVERE Severity"
    assert symptom.status == "pending"
    assert symptom.doctor is None

    assert prescription.title == "Amoxicillin Prescription"
    assert prescription.description == "500mg - twice_daily for 7 days"
    assert prescription.doctor == "Dr. Gregory House"

    assert consultation.title == "VIDEO CALL Consultation"
    assert consultation.description == "Seasonal flu"
    assert consultation.doctor_specialty == "CARDIOLOGY"
    assert consultation.status == "completed"


def test_resolved_symptom_is_completed(engine, factory, patient):
    factory.symptom(patient, resolved_date=NOW)
    [record] = get_patient_medical_records(engine, patient)
    assert record.status == "completed"


def test_consultation_description_falls_back(engine, factory, patient, doctor):
    factory.consultation(patient, doctor, symptoms=None)
    [record] = get_patient_medical_records(engine, patient)
    assert record.description == "Medical consultation"


def test_equal_dates_keep_source_order():
    a = MedicalRecord("a", NOW, "consultation", "A", "", "completed")
    b = MedicalRecord("b", NOW, "symptom", "B", "", "pending")
    c = MedicalRecord("c", NOW + timedelta(hours=1), "prescription", "C", "", "pending")
    assert [r.id for r in merge_records([a], [b, c])] == ["c", "a", "b"]


def test_filter_by_type_and_recent(engine, factory, patient, doctor):
    for days in range(4):
        factory.symptom(patient, f"Symptom {days}", created_at=NOW - timedelta(days=days))
    factory.prescription(patient, doctor, created_at=NOW - timedelta(days=10))

    assert len(get_medical_records_by_type(engine, patient, "symptom")) == 4
    assert len(get_medical_records_by_type(engine, patient, "lab_test")) == 0
    with pytest.raises(ValidationError):
        get_medical_records_by_type(engine, patient, "horoscope")

    recent = get_recent_medical_activity(engine, patient, limit=2)
    assert [r.title for r in recent] == ["Symptom 0 - MODERATE Severity", "Symptom 1 - MODERATE Severity"]


def test_single_record_lookup_is_owner_scoped(engine, factory, patient, doctor):
    mine = factory.prescription(patient, doctor)
    theirs = factory.prescription(factory.patient("Bob", "Else"), doctor)

    assert get_medical_record_by_id(engine, patient, mine, "prescription").id == mine
    assert get_medical_record_by_id(engine, patient, theirs, "prescription") is None
    assert get_medical_record_by_id(engine, patient, "missing", "symptom") is None


def test_doctor_is_rejected(engine, doctor):
    with pytest.raises(NotAuthorizedError):
        get_patient_medical_records(engine, doctor)


def test_without_caller_is_empty(engine):
    assert get_patient_medical_records(engine, None) == []
