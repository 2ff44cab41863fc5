"""
Role-Based Access Control – role gates, profile lookups and consultation
participation checks.

Nothing here is cached: every call re-reads the user and profile rows.
"""

import logging
from typing import Optional

from sqlalchemy import select

from telehealth.errors import NotAuthenticatedError, NotAuthorizedError, NotFoundError
from telehealth.models import CurrentUser
from telehealth.schema import consultations, doctors, patients, users

logger = logging.getLogger(__name__)


# ── Profile lookups ──────────────────────────────────────────────────

def get_patient_profile_id(conn, user_id: str) -> Optional[str]:
    """Return the PatientProfile id attached to *user_id*, if any."""
    row = conn.execute(
        select(patients.c.id).where(patients.c.user_id == user_id).limit(1)
    ).first()
    return row[0] if row else None


def get_doctor_profile_id(conn, user_id: str) -> Optional[str]:
    """Return the DoctorProfile id attached to *user_id*, if any."""
    row = conn.execute(
        select(doctors.c.id).where(doctors.c.user_id == user_id).limit(1)
    ).first()
    return row[0] if row else None


# ── Role gates ───────────────────────────────────────────────────────

def require_role(caller: Optional[CurrentUser], role: str) -> CurrentUser:
    if caller is None:
        raise NotAuthenticatedError("Not authenticated")
    if caller.user_type != role:
        raise NotAuthorizedError(f"Unauthorized - {role.capitalize()} access required")
    return caller


def require_patient(caller: Optional[CurrentUser]) -> CurrentUser:
    return require_role(caller, "patient")


def require_doctor(caller: Optional[CurrentUser]) -> CurrentUser:
    return require_role(caller, "doctor")


def require_patient_profile(conn, caller: Optional[CurrentUser]) -> str:
    """Role gate plus profile lookup; raises if the profile row is missing."""
    require_patient(caller)
    patient_id = get_patient_profile_id(conn, caller.id)
    if patient_id is None:
        raise NotFoundError("Patient profile not found")
    return patient_id


def require_doctor_profile(conn, caller: Optional[CurrentUser]) -> str:
    require_doctor(caller)
    doctor_id = get_doctor_profile_id(conn, caller.id)
    if doctor_id is None:
        raise NotFoundError("Doctor profile not found")
    return doctor_id


# ── Consultation participation ───────────────────────────────────────

def participant_role(conn, consultation_id: str, caller: Optional[CurrentUser]) -> Optional[str]:
    """
    Return ``"patient"`` or ``"doctor"`` when *caller* is that party on the
    consultation, else ``None``.

    A missing consultation is denied before any id comparison is made.
    """
    if caller is None:
        return None

    consultation = conn.execute(
        select(consultations.c.patient_id, consultations.c.doctor_id)
        .where(consultations.c.id == consultation_id)
        .limit(1)
    ).mappings().first()
    if consultation is None:
        return None

    user = conn.execute(
        select(users.c.id, users.c.user_type).where(users.c.id == caller.id).limit(1)
    ).mappings().first()
    if user is None:
        return None

    if user["user_type"] == "patient":
        patient_id = get_patient_profile_id(conn, user["id"])
        if patient_id is not None and patient_id == consultation["patient_id"]:
            return "patient"
    elif user["user_type"] == "doctor":
        doctor_id = get_doctor_profile_id(conn, user["id"])
        if doctor_id is not None and doctor_id == consultation["doctor_id"]:
            return "doctor"
    return None


def verify_consultation_access(conn, consultation_id: str, caller: Optional[CurrentUser]) -> bool:
    """True iff *caller* is the patient or the doctor on the consultation."""
    return participant_role(conn, consultation_id, caller) is not None


def ensure_consultation_access(conn, consultation_id: str, caller: Optional[CurrentUser],
                               action: str = "access") -> str:
    """Like :func:`participant_role` but raises when access is denied."""
    if caller is None:
        raise NotAuthenticatedError("Not authenticated")
    role = participant_role(conn, consultation_id, caller)
    if role is None:
        logger.warning("Access denied: user %s attempted to %s consultation %s",
                       caller.id, action, consultation_id)
        raise NotAuthorizedError(f"Not authorized to {action} this consultation")
    return role
