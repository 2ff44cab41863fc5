"""
Doctor-facing patient roster – the patients a doctor has consulted, with
per-patient activity counts, search, and a single patient's history.
"""

import logging
from typing import Any, Dict, List, Optional

from sqlalchemy import func, or_, select

from telehealth.errors import NotAuthorizedError, NotFoundError, read_operation
from telehealth.rbac import get_doctor_profile_id, require_doctor, require_doctor_profile
from telehealth.schema import consultations, patients, prescriptions, symptoms, users

logger = logging.getLogger(__name__)

_USER_FIELDS = ("id", "email", "first_name", "last_name", "phone", "profile_image")


def _roster_query(doctor_id: str):
    """Patients with at least one consultation with *doctor_id*, plus counts."""
    own_consultations = (consultations.c.patient_id == patients.c.id) & (consultations.c.doctor_id == doctor_id)

    consultation_count = (
        select(func.count()).select_from(consultations).where(own_consultations)
        .correlate(patients).scalar_subquery()
    )
    last_consultation = (
        select(func.max(consultations.c.scheduled_at)).where(own_consultations)
        .correlate(patients).scalar_subquery()
    )
    prescription_count = (
        select(func.count()).select_from(prescriptions)
        .where(prescriptions.c.patient_id == patients.c.id)
        .where(prescriptions.c.doctor_id == doctor_id)
        .correlate(patients).scalar_subquery()
    )
    active_symptoms = (
        select(func.count()).select_from(symptoms)
        .where(symptoms.c.patient_id == patients.c.id)
        .where(symptoms.c.resolved_date.is_(None))
        .correlate(patients).scalar_subquery()
    )
    consulted = select(consultations.c.patient_id).where(consultations.c.doctor_id == doctor_id)

    return (
        select(
            patients,
            *[users.c[name].label(f"patient_user_{name}") for name in _USER_FIELDS],
            consultation_count.label("consultation_count"),
            last_consultation.label("last_consultation"),
            prescription_count.label("prescription_count"),
            active_symptoms.label("active_symptoms"),
        )
        .select_from(patients.join(users, patients.c.user_id == users.c.id))
        .where(patients.c.id.in_(consulted))
        .order_by(patients.c.updated_at.desc())
    )


def _shape_patient(row) -> Dict[str, Any]:
    item = {col.name: row[col.name] for col in patients.c}
    item["user"] = {name: row[f"patient_user_{name}"] for name in _USER_FIELDS}
    item["consultation_count"] = row["consultation_count"] or 0
    item["last_consultation"] = row["last_consultation"]
    item["prescription_count"] = row["prescription_count"] or 0
    item["active_symptoms"] = row["active_symptoms"] or 0
    return item


def _roster(engine, caller, *clauses) -> List[Dict[str, Any]]:
    require_doctor(caller)
    with engine.connect() as conn:
        doctor_id = get_doctor_profile_id(conn, caller.id)
        if doctor_id is None:
            return []
        query = _roster_query(doctor_id)
        for clause in clauses:
            query = query.where(clause)
        rows = conn.execute(query).mappings().all()
    return [_shape_patient(r) for r in rows]


@read_operation(list)
def get_doctor_patients(engine, caller) -> List[Dict[str, Any]]:
    return _roster(engine, caller)


@read_operation(list)
def search_doctor_patients(engine, caller, term: str) -> List[Dict[str, Any]]:
    """Case-insensitive substring match on first/last name, email or phone."""
    term = (term or "").strip()
    if not term:
        return _roster(engine, caller)
    pattern = f"%{term.lower()}%"
    return _roster(engine, caller, or_(
        func.lower(users.c.first_name).like(pattern),
        func.lower(users.c.last_name).like(pattern),
        func.lower(users.c.email).like(pattern),
        users.c.phone.like(f"%{term}%"),
    ))


@read_operation(lambda: None)
def get_patient_detail(engine, caller, patient_id: str) -> Optional[Dict[str, Any]]:
    """
    Profile plus consultation, prescription and symptom history of one
    patient.  Only a doctor who has consulted the patient may look.
    """
    with engine.connect() as conn:
        doctor_id = require_doctor_profile(conn, caller)

        seen = conn.execute(
            select(consultations.c.id)
            .where(consultations.c.patient_id == patient_id)
            .where(consultations.c.doctor_id == doctor_id)
            .limit(1)
        ).first()
        if seen is None:
            logger.warning("Doctor %s requested patient %s without a consultation", doctor_id, patient_id)
            raise NotAuthorizedError("Not authorized to view this patient")

        row = conn.execute(
            select(patients, *[users.c[name].label(f"patient_user_{name}") for name in _USER_FIELDS])
            .select_from(patients.join(users, patients.c.user_id == users.c.id))
            .where(patients.c.id == patient_id)
            .limit(1)
        ).mappings().first()
        if row is None:
            raise NotFoundError("Patient not found")

        consultation_history = conn.execute(
            select(consultations)
            .where(consultations.c.patient_id == patient_id)
            .where(consultations.c.doctor_id == doctor_id)
            .order_by(consultations.c.scheduled_at.desc())
        ).mappings().all()

        prescription_history = conn.execute(
            select(prescriptions)
            .where(prescriptions.c.patient_id == patient_id)
            .where(prescriptions.c.doctor_id == doctor_id)
            .order_by(prescriptions.c.created_at.desc())
        ).mappings().all()

        symptom_history = conn.execute(
            select(symptoms)
            .where(symptoms.c.patient_id == patient_id)
            .order_by(symptoms.c.created_at.desc())
        ).mappings().all()

    patient = {col.name: row[col.name] for col in patients.c}
    patient["user"] = {name: row[f"patient_user_{name}"] for name in _USER_FIELDS}
    return {
        "patient": patient,
        "consultation_history": [dict(r) for r in consultation_history],
        "prescription_history": [dict(r) for r in prescription_history],
        "symptom_history": [dict(r) for r in symptom_history],
    }
