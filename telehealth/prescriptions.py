"""
Prescriptions – the patient's own prescriptions and the prescribing
doctor's worklist, creation and status workflow.

Every query is constrained by the caller's profile id, never by an id
argument alone.
"""

import logging
from datetime import datetime, timedelta
from typing import Any, Dict, List, Optional

from sqlalchemy import func, select, update

from telehealth.errors import NotFoundError, NotAuthorizedError, ValidationError, mutation, read_operation
from telehealth.rbac import (
    get_doctor_profile_id,
    get_patient_profile_id,
    require_doctor,
    require_doctor_profile,
    require_patient,
    require_patient_profile,
)
from telehealth.schema import (
    MEDICATION_FREQUENCIES,
    PRESCRIPTION_STATUSES,
    consultations,
    doctors,
    new_id,
    patients,
    prescriptions,
    users,
)

logger = logging.getLogger(__name__)


def _check_status(status: str) -> None:
    if status not in PRESCRIPTION_STATUSES:
        raise ValidationError(f"Unknown prescription status '{status}'")


# ── Patient side ─────────────────────────────────────────────────────

def _patient_query(patient_id: str):
    return (
        select(
            prescriptions,
            users.c.first_name.label("doctor_first_name"),
            users.c.last_name.label("doctor_last_name"),
            doctors.c.specialty.label("doctor_specialty"),
        )
        .select_from(
            prescriptions
            .outerjoin(doctors, prescriptions.c.doctor_id == doctors.c.id)
            .outerjoin(users, doctors.c.user_id == users.c.id)
        )
        .where(prescriptions.c.patient_id == patient_id)
    )


def _list_for_patient(engine, caller, *clauses) -> List[Dict[str, Any]]:
    require_patient(caller)
    with engine.connect() as conn:
        patient_id = get_patient_profile_id(conn, caller.id)
        if patient_id is None:
            return []
        query = _patient_query(patient_id)
        for clause in clauses:
            query = query.where(clause)
        rows = conn.execute(query.order_by(prescriptions.c.created_at.desc())).mappings().all()
    return [dict(r) for r in rows]


@read_operation(list)
def get_patient_prescriptions(engine, caller):
    return _list_for_patient(engine, caller)


@read_operation(list)
def get_active_prescriptions(engine, caller):
    return _list_for_patient(engine, caller, prescriptions.c.is_active.is_(True))


@read_operation(list)
def get_prescriptions_by_status(engine, caller, status: str):
    _check_status(status)
    return _list_for_patient(engine, caller, prescriptions.c.status == status)


@read_operation(lambda: None)
def get_prescription_by_id(engine, caller, prescription_id: str):
    with engine.connect() as conn:
        patient_id = require_patient_profile(conn, caller)
        row = conn.execute(
            _patient_query(patient_id).where(prescriptions.c.id == prescription_id).limit(1)
        ).mappings().first()
    if row is None:
        raise NotFoundError("Prescription not found")
    return dict(row)


# ── Doctor side ──────────────────────────────────────────────────────

def _shape_for_doctor(row) -> Dict[str, Any]:
    item = {col.name: row[col.name] for col in prescriptions.c}
    item["patient"] = {
        "id": row["patient_id"],
        "user": {
            "first_name": row["patient_first_name"],
            "last_name": row["patient_last_name"],
            "email": row["patient_email"],
        },
    }
    return item


def _list_for_doctor(engine, caller, *clauses) -> List[Dict[str, Any]]:
    require_doctor(caller)
    with engine.connect() as conn:
        doctor_id = get_doctor_profile_id(conn, caller.id)
        if doctor_id is None:
            return []
        query = (
            select(
                prescriptions,
                users.c.first_name.label("patient_first_name"),
                users.c.last_name.label("patient_last_name"),
                users.c.email.label("patient_email"),
            )
            .select_from(
                prescriptions
                .join(patients, prescriptions.c.patient_id == patients.c.id)
                .join(users, patients.c.user_id == users.c.id)
            )
            .where(prescriptions.c.doctor_id == doctor_id)
        )
        for clause in clauses:
            query = query.where(clause)
        rows = conn.execute(query.order_by(prescriptions.c.created_at.desc())).mappings().all()
    return [_shape_for_doctor(r) for r in rows]


@read_operation(list)
def get_doctor_prescriptions(engine, caller):
    return _list_for_doctor(engine, caller)


@read_operation(list)
def get_doctor_prescriptions_by_status(engine, caller, status: str):
    _check_status(status)
    return _list_for_doctor(engine, caller, prescriptions.c.status == status)


@read_operation(list)
def get_active_doctor_prescriptions(engine, caller):
    return _list_for_doctor(engine, caller, prescriptions.c.is_active.is_(True))


@read_operation(lambda: None)
def get_doctor_prescription_stats(engine, caller, now: Optional[datetime] = None):
    require_doctor(caller)
    now = now or datetime.utcnow()
    start_of_month = now.replace(day=1, hour=0, minute=0, second=0, microsecond=0)
    p = prescriptions.c

    with engine.connect() as conn:
        doctor_id = get_doctor_profile_id(conn, caller.id)
        if doctor_id is None:
            return None

        def count(*clauses):
            query = select(func.count()).select_from(prescriptions).where(p.doctor_id == doctor_id)
            for clause in clauses:
                query = query.where(clause)
            return conn.execute(query).scalar_one()

        return {
            "total": count(),
            "active": count(p.is_active.is_(True)),
            "pending": count(p.status == "pending"),
            "this_month": count(p.created_at >= start_of_month),
        }


@mutation
def create_prescription(engine, caller, patient_id: str, medication_name: str, dosage: str,
                        frequency: str, duration: int, quantity: int,
                        consultation_id: Optional[str] = None,
                        generic_name: Optional[str] = None,
                        custom_frequency: Optional[str] = None,
                        instructions: Optional[str] = None,
                        side_effects: Optional[str] = None,
                        interactions: Optional[str] = None,
                        refills_allowed: int = 0,
                        pharmacy_name: Optional[str] = None,
                        pharmacy_address: Optional[str] = None,
                        pharmacy_phone: Optional[str] = None) -> Dict[str, Any]:
    """Issue a prescription from the calling doctor to *patient_id*."""
    require_doctor(caller)
    if not medication_name or not dosage:
        raise ValidationError("medication_name and dosage are required")
    if frequency not in MEDICATION_FREQUENCIES:
        raise ValidationError(f"Unknown medication frequency '{frequency}'")
    if int(duration) <= 0 or int(quantity) <= 0:
        raise ValidationError("duration and quantity must be positive")

    now = datetime.utcnow()
    with engine.begin() as conn:
        doctor_id = require_doctor_profile(conn, caller)

        patient = conn.execute(
            select(patients.c.id).where(patients.c.id == patient_id).limit(1)
        ).first()
        if patient is None:
            raise NotFoundError("Patient not found")

        if consultation_id is not None:
            consultation = conn.execute(
                select(consultations.c.patient_id, consultations.c.doctor_id)
                .where(consultations.c.id == consultation_id).limit(1)
            ).mappings().first()
            if consultation is None:
                raise NotFoundError("Consultation not found")
            if consultation["doctor_id"] != doctor_id or consultation["patient_id"] != patient_id:
                raise NotAuthorizedError("Consultation does not belong to this doctor and patient")

        values = {
            "id": new_id(),
            "consultation_id": consultation_id,
            "patient_id": patient_id,
            "doctor_id": doctor_id,
            "medication_name": medication_name,
            "generic_name": generic_name,
            "dosage": dosage,
            "frequency": frequency,
            "custom_frequency": custom_frequency,
            "duration": int(duration),
            "quantity": int(quantity),
            "instructions": instructions,
            "side_effects": side_effects,
            "interactions": interactions,
            "refills_allowed": refills_allowed,
            "status": "pending",
            "pharmacy_name": pharmacy_name,
            "pharmacy_address": pharmacy_address,
            "pharmacy_phone": pharmacy_phone,
            "start_date": now,
            "end_date": now + timedelta(days=int(duration)),
            "is_active": True,
            "created_at": now,
            "updated_at": now,
        }
        conn.execute(prescriptions.insert().values(**values))

    logger.info("Doctor %s prescribed %s to patient %s", doctor_id, medication_name, patient_id)
    return {"success": True, "prescription": values}


@mutation
def update_prescription_status(engine, caller, prescription_id: str, status: str):
    """Move a prescription along its workflow; only its prescriber may."""
    _check_status(status)
    require_doctor(caller)
    with engine.begin() as conn:
        doctor_id = require_doctor_profile(conn, caller)
        result = conn.execute(
            update(prescriptions)
            .where(prescriptions.c.id == prescription_id)
            .where(prescriptions.c.doctor_id == doctor_id)
            .values(status=status, updated_at=datetime.utcnow())
        )
        if result.rowcount == 0:
            raise NotFoundError("Prescription not found")
    return {"success": True}
