"""
Landing-page summary for the signed-in user.

Patients see their next appointment, prescription counts and recent
activity.  Doctors see today's load, how many distinct patients they have
seen, their next appointments and their rating.
"""

import logging
from datetime import datetime, timedelta
from typing import Any, Dict, Optional

from sqlalchemy import func, select
from sqlalchemy.exc import DBAPIError

from telehealth.consultations import start_of_day
from telehealth.errors import NotAuthenticatedError, NotAuthorizedError, NotFoundError, StoreError
from telehealth.models import CurrentUser
from telehealth.rbac import get_doctor_profile_id, get_patient_profile_id
from telehealth.schema import consultations, doctors, patients, prescriptions, reminders, users

logger = logging.getLogger(__name__)

DASHBOARD_LIST_LIMIT = 5


def _with_doctor_names(*columns):
    return (
        select(*columns, users.c.first_name.label("doctor_first_name"),
               users.c.last_name.label("doctor_last_name"))
        .select_from(
            consultations
            .outerjoin(doctors, consultations.c.doctor_id == doctors.c.id)
            .outerjoin(users, doctors.c.user_id == users.c.id)
        )
    )


def _patient_dashboard(conn, patient_id: str, now: datetime) -> Dict[str, Any]:
    c = consultations.c

    upcoming = conn.execute(
        _with_doctor_names(c.id, c.scheduled_at, c.consultation_type, c.status)
        .where(c.patient_id == patient_id)
        .where(c.scheduled_at >= now)
        .order_by(c.scheduled_at.asc())
        .limit(DASHBOARD_LIST_LIMIT)
    ).mappings().all()

    recent_consultations = conn.execute(
        _with_doctor_names(c.id, c.scheduled_at, c.diagnosis, c.status)
        .where(c.patient_id == patient_id)
        .where(c.status == "completed")
        .order_by(c.scheduled_at.desc())
        .limit(DASHBOARD_LIST_LIMIT)
    ).mappings().all()

    recent_prescriptions = conn.execute(
        select(
            prescriptions.c.id, prescriptions.c.medication_name, prescriptions.c.dosage,
            prescriptions.c.frequency, prescriptions.c.status, prescriptions.c.created_at,
        )
        .where(prescriptions.c.patient_id == patient_id)
        .order_by(prescriptions.c.created_at.desc())
        .limit(DASHBOARD_LIST_LIMIT)
    ).mappings().all()

    active_prescriptions = conn.execute(
        select(func.count()).select_from(prescriptions)
        .where(prescriptions.c.patient_id == patient_id)
        .where(prescriptions.c.is_active.is_(True))
    ).scalar_one()

    medication_reminders = conn.execute(
        select(func.count()).select_from(reminders)
        .where(reminders.c.patient_id == patient_id)
        .where(reminders.c.reminder_type == "medication")
        .where(reminders.c.status == "active")
    ).scalar_one()

    upcoming = [dict(r) for r in upcoming]
    return {
        "user_type": "patient",
        "next_appointment": upcoming[0] if upcoming else None,
        "active_prescriptions_count": active_prescriptions,
        "prescriptions_due_today_count": medication_reminders,
        "recent_consultations": [dict(r) for r in recent_consultations],
        "recent_prescriptions": [dict(r) for r in recent_prescriptions],
        "upcoming_appointments": upcoming,
    }


def _doctor_dashboard(conn, doctor_id: str, now: datetime) -> Dict[str, Any]:
    c = consultations.c
    day = start_of_day(now)

    todays = conn.execute(
        select(func.count()).select_from(consultations)
        .where(c.doctor_id == doctor_id)
        .where(c.scheduled_at >= day)
        .where(c.scheduled_at < day + timedelta(days=1))
    ).scalar_one()

    total_patients = conn.execute(
        select(func.count(func.distinct(c.patient_id))).where(c.doctor_id == doctor_id)
    ).scalar_one()

    upcoming = conn.execute(
        select(
            c.id, c.scheduled_at, c.consultation_type, c.status,
            users.c.first_name.label("patient_first_name"),
            users.c.last_name.label("patient_last_name"),
        )
        .select_from(
            consultations
            .outerjoin(patients, c.patient_id == patients.c.id)
            .outerjoin(users, patients.c.user_id == users.c.id)
        )
        .where(c.doctor_id == doctor_id)
        .where(c.scheduled_at >= now)
        .order_by(c.scheduled_at.asc())
        .limit(DASHBOARD_LIST_LIMIT)
    ).mappings().all()

    profile = conn.execute(
        select(doctors.c.rating, doctors.c.total_ratings).where(doctors.c.id == doctor_id)
    ).mappings().first()

    return {
        "user_type": "doctor",
        "todays_appointments_count": todays,
        "total_patients_count": total_patients,
        "upcoming_appointments": [dict(r) for r in upcoming],
        "rating": profile["rating"] or 0,
        "total_ratings": profile["total_ratings"] or 0,
    }


def get_dashboard_data(engine, caller: Optional[CurrentUser],
                       now: Optional[datetime] = None) -> Dict[str, Any]:
    """Dispatch on the caller's role; a missing role profile raises."""
    if caller is None:
        raise NotAuthenticatedError("Not authenticated")
    if caller.user_type not in ("patient", "doctor"):
        raise NotAuthorizedError("Dashboards are only available to patients and doctors")
    now = now or datetime.utcnow()

    try:
        with engine.connect() as conn:
            if caller.user_type == "patient":
                patient_id = get_patient_profile_id(conn, caller.id)
                if patient_id is None:
                    raise NotFoundError("Patient profile not found")
                return _patient_dashboard(conn, patient_id, now)

            doctor_id = get_doctor_profile_id(conn, caller.id)
            if doctor_id is None:
                raise NotFoundError("Doctor profile not found")
            return _doctor_dashboard(conn, doctor_id, now)
    except DBAPIError as e:
        logger.exception("Dashboard query failed for user %s", caller.id)
        raise StoreError("Dashboard unavailable") from e
