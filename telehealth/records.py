"""
Medical record aggregation – consultations, symptoms and prescriptions of
the calling patient merged into one history, newest first.

The three source queries run independently; there is no snapshot across
them.
"""

from datetime import datetime
from typing import List, Optional

from sqlalchemy import select

from telehealth.config import RECENT_ACTIVITY_LIMIT
from telehealth.errors import ValidationError, read_operation
from telehealth.models import MedicalRecord
from telehealth.rbac import get_patient_profile_id, require_patient, require_patient_profile
from telehealth.schema import consultations, doctors, prescriptions, symptoms, users

RECORD_TYPES = ("consultation", "symptom", "prescription", "lab_test", "procedure")

_CONSULTATION_DATA = (
    "symptoms", "diagnosis", "doctor_notes", "consultation_type", "consultation_fee",
    "prescription_given", "follow_up_required", "follow_up_date",
)
_SYMPTOM_DATA = (
    "symptom_name", "category", "severity", "duration", "frequency", "triggers",
    "associated_symptoms", "body_part", "onset_date", "resolved_date",
    "medication_taken", "consultation_requested", "urgency_level", "images",
)
_PRESCRIPTION_DATA = (
    "medication_name", "generic_name", "dosage", "frequency", "duration", "quantity",
    "instructions", "start_date", "end_date", "is_active",
)


# ── Title / label synthesis ──────────────────────────────────────────

def _humanize(value: Optional[str]) -> str:
    return (value or "").replace("_", " ").upper()


def consultation_title(consultation_type: Optional[str]) -> str:
    return f"{_humanize(consultation_type)} Consultation".strip()


def symptom_title(symptom_name: str, severity: Optional[str]) -> str:
    return f"{symptom_name} - {(severity or '').upper()} Severity"


def prescription_title(medication_name: str) -> str:
    return f"{medication_name} Prescription"


def doctor_display_name(first_name: Optional[str], last_name: Optional[str]) -> str:
    if first_name and last_name:
        return f"Dr. {first_name} {last_name}"
    return "Unknown Doctor"


# ── Row mappers ──────────────────────────────────────────────────────

def _with_doctor(table):
    """Select *table* plus the prescribing/consulting doctor's display fields."""
    return (
        select(
            table,
            users.c.first_name.label("doctor_first_name"),
            users.c.last_name.label("doctor_last_name"),
            doctors.c.specialty.label("doctor_specialty"),
        )
        .select_from(
            table
            .outerjoin(doctors, table.c.doctor_id == doctors.c.id)
            .outerjoin(users, doctors.c.user_id == users.c.id)
        )
    )


def consultation_record(row) -> MedicalRecord:
    return MedicalRecord(
        id=row["id"],
        date=row["scheduled_at"],
        type="consultation",
        title=consultation_title(row["consultation_type"]),
        description=row["diagnosis"] or row["symptoms"] or "Medical consultation",
        doctor=doctor_display_name(row["doctor_first_name"], row["doctor_last_name"]),
        doctor_specialty=_humanize(row["doctor_specialty"]) or None,
        status=row["status"],
        data={key: row[key] for key in _CONSULTATION_DATA},
    )


def symptom_record(row) -> MedicalRecord:
    return MedicalRecord(
        id=row["id"],
        date=row["created_at"],
        type="symptom",
        title=symptom_title(row["symptom_name"], row["severity"]),
        description=row["description"],
        status="completed" if row["resolved_date"] else "pending",
        data={key: row[key] for key in _SYMPTOM_DATA},
    )


def prescription_record(row) -> MedicalRecord:
    return MedicalRecord(
        id=row["id"],
        date=row["created_at"],
        type="prescription",
        title=prescription_title(row["medication_name"]),
        description=f"{row['dosage']} - {row['frequency']} for {row['duration']} days",
        doctor=doctor_display_name(row["doctor_first_name"], row["doctor_last_name"]),
        doctor_specialty=_humanize(row["doctor_specialty"]) or None,
        status=row["status"],
        data={key: row[key] for key in _PRESCRIPTION_DATA},
    )


def merge_records(*groups: List[MedicalRecord]) -> List[MedicalRecord]:
    """Concatenate and sort by date, newest first; ties keep input order."""
    merged = [record for group in groups for record in group]
    merged.sort(key=lambda r: r.date or datetime.min, reverse=True)
    return merged


# ── Operations ───────────────────────────────────────────────────────

@read_operation(list)
def get_patient_medical_records(engine, caller) -> List[MedicalRecord]:
    require_patient(caller)
    with engine.connect() as conn:
        patient_id = get_patient_profile_id(conn, caller.id)
        if patient_id is None:
            return []

        consultation_rows = conn.execute(
            _with_doctor(consultations)
            .where(consultations.c.patient_id == patient_id)
            .order_by(consultations.c.scheduled_at.desc())
        ).mappings().all()

        symptom_rows = conn.execute(
            select(symptoms)
            .where(symptoms.c.patient_id == patient_id)
            .order_by(symptoms.c.created_at.desc())
        ).mappings().all()

        prescription_rows = conn.execute(
            _with_doctor(prescriptions)
            .where(prescriptions.c.patient_id == patient_id)
            .order_by(prescriptions.c.created_at.desc())
        ).mappings().all()

    return merge_records(
        [consultation_record(r) for r in consultation_rows],
        [symptom_record(r) for r in symptom_rows],
        [prescription_record(r) for r in prescription_rows],
    )


def get_medical_records_by_type(engine, caller, record_type: str) -> List[MedicalRecord]:
    if record_type not in RECORD_TYPES:
        raise ValidationError(f"Unknown medical record type '{record_type}'")
    return [r for r in get_patient_medical_records(engine, caller) if r.type == record_type]


def get_recent_medical_activity(engine, caller, limit: int = RECENT_ACTIVITY_LIMIT) -> List[MedicalRecord]:
    return get_patient_medical_records(engine, caller)[:limit]


@read_operation(lambda: None)
def get_medical_record_by_id(engine, caller, record_id: str, record_type: str) -> Optional[MedicalRecord]:
    """One owned record of the given type, or ``None`` if there is none."""
    if record_type not in ("consultation", "symptom", "prescription"):
        raise ValidationError(f"Unknown medical record type '{record_type}'")

    with engine.connect() as conn:
        patient_id = require_patient_profile(conn, caller)

        if record_type == "consultation":
            row = conn.execute(
                _with_doctor(consultations)
                .where(consultations.c.id == record_id)
                .where(consultations.c.patient_id == patient_id)
                .limit(1)
            ).mappings().first()
            return consultation_record(row) if row else None

        if record_type == "symptom":
            row = conn.execute(
                select(symptoms)
                .where(symptoms.c.id == record_id)
                .where(symptoms.c.patient_id == patient_id)
                .limit(1)
            ).mappings().first()
            return symptom_record(row) if row else None

        row = conn.execute(
            _with_doctor(prescriptions)
            .where(prescriptions.c.id == record_id)
            .where(prescriptions.c.patient_id == patient_id)
            .limit(1)
        ).mappings().first()
        return prescription_record(row) if row else None
