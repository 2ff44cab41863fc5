"""
Consultations – per-role listings, the unified view, booking and the
doctor/participant mutations.

All listings go through :func:`query_consultations`, which takes the role,
the caller's profile id and a scope.  Patient "past" is time-based while the
doctor's unified "past" is status-based; see ``get_unified_consultations``.
"""

import json
import logging
import secrets
import string
import time
from datetime import datetime, timedelta
from typing import Any, Dict, List, Optional

from sqlalchemy import func, select, update

from telehealth.config import (
    DEFAULT_CONSULTATION_DURATION,
    DEFAULT_CONSULTATION_FEE,
    RECENT_NOTES_DAYS,
)
from telehealth.errors import (
    NotAuthenticatedError,
    NotAuthorizedError,
    NotFoundError,
    ValidationError,
    mutation,
    read_operation,
)
from telehealth.models import CurrentUser
from telehealth.rbac import (
    ensure_consultation_access,
    get_doctor_profile_id,
    get_patient_profile_id,
    participant_role,
    require_doctor,
    require_doctor_profile,
    require_patient,
    require_patient_profile,
)
from telehealth.schema import (
    CONSULTATION_TYPES,
    MEETING_STATUSES,
    consultations,
    doctors,
    new_id,
    patients,
    prescriptions,
    users,
)

logger = logging.getLogger(__name__)

SCOPES = ("all", "upcoming", "past", "today", "pending")
PAST_STATUSES = ("completed", "cancelled")


# ── Query building ───────────────────────────────────────────────────

def start_of_day(now: datetime) -> datetime:
    return now.replace(hour=0, minute=0, second=0, microsecond=0)


def _scope_filter(role: str, scope: str, now: datetime):
    """Return (where-clauses, ordering) for a listing scope."""
    c = consultations.c
    if scope == "all":
        return [], c.scheduled_at.desc()
    if scope == "upcoming":
        clauses = [c.scheduled_at >= now]
        if role == "doctor":
            clauses.append(c.status == "scheduled")
        return clauses, c.scheduled_at.asc()
    if scope == "past":
        return [c.scheduled_at < now], c.scheduled_at.desc()
    if scope == "today":
        day = start_of_day(now)
        return [c.scheduled_at >= day, c.scheduled_at < day + timedelta(days=1)], c.scheduled_at.asc()
    if scope == "pending":
        return [c.status == "scheduled"], c.scheduled_at.asc()
    raise ValidationError(f"Unknown consultation scope '{scope}'")


def _patient_view_query(patient_id: str):
    return (
        select(
            consultations,
            doctors.c.user_id.label("doctor_user_id"),
            doctors.c.specialty.label("doctor_specialty"),
            doctors.c.rating.label("doctor_rating"),
            users.c.first_name.label("doctor_first_name"),
            users.c.last_name.label("doctor_last_name"),
            users.c.email.label("doctor_email"),
            users.c.profile_image.label("doctor_profile_image"),
        )
        .select_from(
            consultations
            .outerjoin(doctors, consultations.c.doctor_id == doctors.c.id)
            .outerjoin(users, doctors.c.user_id == users.c.id)
        )
        .where(consultations.c.patient_id == patient_id)
    )


def _doctor_view_query(doctor_id: str):
    return (
        select(
            consultations,
            patients.c.user_id.label("patient_user_id"),
            patients.c.date_of_birth.label("patient_date_of_birth"),
            patients.c.gender.label("patient_gender"),
            patients.c.blood_type.label("patient_blood_type"),
            users.c.email.label("patient_email"),
            users.c.first_name.label("patient_first_name"),
            users.c.last_name.label("patient_last_name"),
            users.c.phone.label("patient_phone"),
            users.c.profile_image.label("patient_profile_image"),
        )
        .select_from(
            consultations
            .join(patients, consultations.c.patient_id == patients.c.id)
            .join(users, patients.c.user_id == users.c.id)
        )
        .where(consultations.c.doctor_id == doctor_id)
    )


def _consultation_fields(row) -> Dict[str, Any]:
    return {col.name: row[col.name] for col in consultations.c}


def _shape_for_patient(row) -> Dict[str, Any]:
    item = _consultation_fields(row)
    item["doctor"] = {
        "id": row["doctor_id"],
        "user_id": row["doctor_user_id"],
        "specialty": row["doctor_specialty"],
        "rating": row["doctor_rating"],
        "user": {
            "first_name": row["doctor_first_name"],
            "last_name": row["doctor_last_name"],
            "email": row["doctor_email"],
            "profile_image": row["doctor_profile_image"],
        },
    }
    return item


def _shape_for_doctor(row) -> Dict[str, Any]:
    item = _consultation_fields(row)
    item["patient"] = {
        "id": row["patient_id"],
        "user_id": row["patient_user_id"],
        "date_of_birth": row["patient_date_of_birth"],
        "gender": row["patient_gender"],
        "blood_type": row["patient_blood_type"],
        "user": {
            "id": row["patient_user_id"],
            "email": row["patient_email"],
            "first_name": row["patient_first_name"],
            "last_name": row["patient_last_name"],
            "phone": row["patient_phone"],
            "profile_image": row["patient_profile_image"],
        },
    }
    return item


def query_consultations(conn, role: str, profile_id: str, scope: str = "all",
                        now: Optional[datetime] = None) -> List[Dict[str, Any]]:
    """Run one scoped consultation listing and return nested view-models."""
    now = now or datetime.utcnow()
    clauses, ordering = _scope_filter(role, scope, now)

    if role == "patient":
        query, shape = _patient_view_query(profile_id), _shape_for_patient
    elif role == "doctor":
        query, shape = _doctor_view_query(profile_id), _shape_for_doctor
    else:
        raise ValidationError(f"No consultation view for role '{role}'")

    for clause in clauses:
        query = query.where(clause)
    rows = conn.execute(query.order_by(ordering)).mappings().all()
    return [shape(r) for r in rows]


def _list_for_patient(engine, caller, scope, now):
    require_patient(caller)
    with engine.connect() as conn:
        patient_id = get_patient_profile_id(conn, caller.id)
        if patient_id is None:
            return []
        return query_consultations(conn, "patient", patient_id, scope, now)


def _list_for_doctor(engine, caller, scope, now):
    require_doctor(caller)
    with engine.connect() as conn:
        doctor_id = get_doctor_profile_id(conn, caller.id)
        if doctor_id is None:
            return []
        return query_consultations(conn, "doctor", doctor_id, scope, now)


# ── Patient listings ─────────────────────────────────────────────────

@read_operation(list)
def get_patient_consultations(engine, caller, now=None):
    return _list_for_patient(engine, caller, "all", now)


@read_operation(list)
def get_upcoming_patient_consultations(engine, caller, now=None):
    return _list_for_patient(engine, caller, "upcoming", now)


@read_operation(list)
def get_past_patient_consultations(engine, caller, now=None):
    return _list_for_patient(engine, caller, "past", now)


# ── Doctor listings ──────────────────────────────────────────────────

@read_operation(list)
def get_doctor_consultations(engine, caller, now=None):
    return _list_for_doctor(engine, caller, "all", now)


@read_operation(list)
def get_todays_consultations(engine, caller, now=None):
    return _list_for_doctor(engine, caller, "today", now)


@read_operation(list)
def get_upcoming_doctor_consultations(engine, caller, now=None):
    return _list_for_doctor(engine, caller, "upcoming", now)


@read_operation(list)
def get_pending_consultations(engine, caller, now=None):
    return _list_for_doctor(engine, caller, "pending", now)


def get_unified_consultations(engine, caller: Optional[CurrentUser],
                              now: Optional[datetime] = None) -> Dict[str, Any]:
    """
    Dispatch on the caller's role and return all / upcoming / past lists.

    For doctors "past" is every consultation whose status is completed or
    cancelled, regardless of date.  For patients it is every consultation
    scheduled before *now*.  A cancelled future consultation is therefore
    "past" for the doctor but not for the patient.
    """
    if caller is None:
        raise NotAuthenticatedError("User not found")
    now = now or datetime.utcnow()

    if caller.user_type == "patient":
        return {
            "user_type": "patient",
            "all_consultations": get_patient_consultations(engine, caller, now),
            "upcoming_consultations": get_upcoming_patient_consultations(engine, caller, now),
            "past_consultations": get_past_patient_consultations(engine, caller, now),
        }

    if caller.user_type == "doctor":
        everything = get_doctor_consultations(engine, caller, now)
        return {
            "user_type": "doctor",
            "all_consultations": everything,
            "upcoming_consultations": get_upcoming_doctor_consultations(engine, caller, now),
            "past_consultations": [c for c in everything if c["status"] in PAST_STATUSES],
        }

    raise NotAuthorizedError("Consultations are only available to patients and doctors")


# ── Single consultation ──────────────────────────────────────────────

def _party_user(conn, table, profile_id: str):
    return conn.execute(
        select(users.c.id, users.c.first_name, users.c.last_name)
        .select_from(table.join(users, table.c.user_id == users.c.id))
        .where(table.c.id == profile_id)
        .limit(1)
    ).mappings().first()


@read_operation(lambda: None)
def get_consultation_by_id(engine, caller, consultation_id: str) -> Dict[str, Any]:
    """Return one consultation with both parties' names, for a participant."""
    with engine.connect() as conn:
        row = conn.execute(
            select(consultations).where(consultations.c.id == consultation_id).limit(1)
        ).mappings().first()
        if row is None:
            raise NotFoundError("Consultation not found")

        if participant_role(conn, consultation_id, caller) is None:
            logger.warning("Access denied: user %s attempted to read consultation %s",
                           caller.id, consultation_id)
            raise NotAuthorizedError("Not authorized to access this consultation")

        doctor_user = _party_user(conn, doctors, row["doctor_id"])
        patient_user = _party_user(conn, patients, row["patient_id"])

    result = _consultation_fields(row)
    result["meeting_status"] = row["meeting_status"] or "scheduled"
    result["doctor_joined"] = bool(row["doctor_joined"])
    result["patient_joined"] = bool(row["patient_joined"])
    result["doctor_first_name"] = doctor_user["first_name"] if doctor_user else None
    result["doctor_last_name"] = doctor_user["last_name"] if doctor_user else None
    result["patient_first_name"] = patient_user["first_name"] if patient_user else None
    result["patient_last_name"] = patient_user["last_name"] if patient_user else None
    result["current_user"] = {
        "id": caller.id,
        "user_type": caller.user_type,
        "first_name": caller.first_name,
        "last_name": caller.last_name,
    }
    return result


# ── Booking ──────────────────────────────────────────────────────────

def _room_suffix(length: int = 9) -> str:
    chars = string.ascii_lowercase + string.digits
    return "".join(secrets.choice(chars) for _ in range(length))


@mutation
def create_consultation(engine, caller, doctor_id: str, consultation_type: str = "video_call",
                        symptoms: Optional[List[str]] = None,
                        scheduled_at: Optional[datetime] = None,
                        duration: Optional[str] = None,
                        consultation_fee: Optional[float] = None,
                        now: Optional[datetime] = None) -> Dict[str, Any]:
    """Book a consultation for the calling patient with *doctor_id*."""
    if consultation_type not in CONSULTATION_TYPES:
        raise ValidationError(f"Unsupported consultation type '{consultation_type}'")
    if caller.user_type != "patient":
        raise NotAuthorizedError("Only patients can book consultations")

    now = now or datetime.utcnow()
    with engine.begin() as conn:
        patient_id = require_patient_profile(conn, caller)

        doctor = conn.execute(
            select(doctors.c.id, doctors.c.consultation_fee).where(doctors.c.id == doctor_id).limit(1)
        ).mappings().first()
        if doctor is None:
            raise NotFoundError("Doctor not found")

        fee = consultation_fee or doctor["consultation_fee"] or DEFAULT_CONSULTATION_FEE
        values = {
            "id": new_id(),
            "patient_id": patient_id,
            "doctor_id": doctor_id,
            "scheduled_at": scheduled_at or now,
            "duration": duration or DEFAULT_CONSULTATION_DURATION,
            "consultation_type": consultation_type,
            "status": "scheduled",
            "symptoms": json.dumps(symptoms) if symptoms else None,
            "consultation_fee": float(fee),
            "payment_status": "pending",
            "video_room_name": f"healthcare-{int(time.time() * 1000)}-{_room_suffix()}",
            "meeting_status": "scheduled",
            "doctor_joined": False,
            "patient_joined": False,
            "created_at": now,
            "updated_at": now,
        }
        conn.execute(consultations.insert().values(**values))

    logger.info("Created consultation %s for patient %s with doctor %s",
                values["id"], patient_id, doctor_id)
    return {
        "success": True,
        "consultation": {
            key: values[key]
            for key in ("id", "scheduled_at", "consultation_type", "status",
                        "video_room_name", "meeting_status")
        },
    }


def create_instant_consultation(engine, caller, doctor_id: str, consultation_type: str = "video_call"):
    if consultation_type not in ("video_call", "chat_only"):
        raise ValidationError("Instant consultations must be video_call or chat_only")
    return create_consultation(engine, caller, doctor_id, consultation_type,
                               scheduled_at=datetime.utcnow(),
                               duration=DEFAULT_CONSULTATION_DURATION)


# ── Doctor / participant updates ─────────────────────────────────────

def _update_own_consultation(engine, caller, consultation_id: str, values: Dict[str, Any]):
    """Apply *values* with ``WHERE id = ? AND doctor_id = <caller's profile>``."""
    require_doctor(caller)
    values["updated_at"] = datetime.utcnow()
    with engine.begin() as conn:
        doctor_id = require_doctor_profile(conn, caller)
        result = conn.execute(
            update(consultations)
            .where(consultations.c.id == consultation_id)
            .where(consultations.c.doctor_id == doctor_id)
            .values(**values)
        )
        if result.rowcount == 0:
            raise NotFoundError("Consultation not found")
    return {"success": True}


@mutation
def update_consultation_notes(engine, caller, consultation_id: str, notes: str,
                              diagnosis: Optional[str] = None):
    values = {"doctor_notes": notes}
    if diagnosis is not None:
        values["diagnosis"] = diagnosis
    return _update_own_consultation(engine, caller, consultation_id, values)


@mutation
def update_consultation_diagnosis(engine, caller, consultation_id: str, diagnosis: str):
    return _update_own_consultation(engine, caller, consultation_id, {"diagnosis": diagnosis})


@mutation
def update_join_status(engine, caller, consultation_id: str, joined: bool):
    """Record that the calling participant joined or left the meeting."""
    if not isinstance(joined, bool):
        raise ValidationError("joined must be a boolean")

    with engine.begin() as conn:
        role = ensure_consultation_access(conn, consultation_id, caller, action="join")
        conn.execute(
            update(consultations)
            .where(consultations.c.id == consultation_id)
            .values(**{f"{role}_joined": joined, "updated_at": datetime.utcnow()})
        )
        row = conn.execute(
            select(consultations.c.id, consultations.c.doctor_joined, consultations.c.patient_joined)
            .where(consultations.c.id == consultation_id)
        ).mappings().first()
    return {"success": True, "consultation": dict(row)}


@mutation
def generate_video_room_name(engine, caller, consultation_id: str) -> str:
    room_name = f"healthcare-{consultation_id}-{int(time.time() * 1000)}"
    with engine.begin() as conn:
        ensure_consultation_access(conn, consultation_id, caller, action="open a room for")
        conn.execute(
            update(consultations)
            .where(consultations.c.id == consultation_id)
            .values(video_room_name=room_name, updated_at=datetime.utcnow())
        )
    return room_name


# ── Notes statistics ─────────────────────────────────────────────────

@read_operation(lambda: None)
def get_consultation_notes_stats(engine, caller, now: Optional[datetime] = None):
    """Counts behind the doctor's notes dashboard."""
    require_doctor(caller)
    now = now or datetime.utcnow()
    c = consultations.c

    with engine.connect() as conn:
        doctor_id = get_doctor_profile_id(conn, caller.id)
        if doctor_id is None:
            return None

        def count(*clauses):
            query = select(func.count()).select_from(consultations).where(c.doctor_id == doctor_id)
            for clause in clauses:
                query = query.where(clause)
            return conn.execute(query).scalar_one()

        has_prescription = (
            select(prescriptions.c.id)
            .where(prescriptions.c.consultation_id == c.id)
            .exists()
        )
        return {
            "total": count(),
            "recent": count(c.scheduled_at >= now - timedelta(days=RECENT_NOTES_DAYS)),
            "follow_up": count(c.follow_up_required.is_(True)),
            "prescriptions": count(has_prescription),
        }


# ── Notes listings ───────────────────────────────────────────────────

def _parse_symptoms(raw) -> List[str]:
    if not raw:
        return []
    try:
        parsed = json.loads(raw)
    except (TypeError, ValueError):
        return [raw]
    return parsed if isinstance(parsed, list) else [parsed]


def _notes_for_doctor(engine, caller, *clauses) -> List[Dict[str, Any]]:
    """The doctor's consultations as note entries, newest first."""
    require_doctor(caller)
    c = consultations.c
    has_prescription = (
        select(prescriptions.c.id)
        .where(prescriptions.c.consultation_id == c.id)
        .exists()
    )
    with engine.connect() as conn:
        doctor_id = get_doctor_profile_id(conn, caller.id)
        if doctor_id is None:
            return []
        query = (
            select(
                c.id, c.scheduled_at, c.consultation_type, c.symptoms, c.diagnosis,
                c.doctor_notes, c.follow_up_required, c.follow_up_date, c.status,
                c.created_at, c.updated_at,
                users.c.first_name, users.c.last_name, users.c.email, users.c.profile_image,
                has_prescription.label("prescription_given"),
            )
            .select_from(
                consultations
                .join(patients, c.patient_id == patients.c.id)
                .join(users, patients.c.user_id == users.c.id)
            )
            .where(c.doctor_id == doctor_id)
        )
        for clause in clauses:
            query = query.where(clause)
        rows = conn.execute(query.order_by(c.scheduled_at.desc())).mappings().all()

    return [
        {
            "id": r["id"],
            "consultation_id": r["id"],
            "patient_name": f"{r['first_name']} {r['last_name']}",
            "patient_email": r["email"],
            "patient_profile_image": r["profile_image"],
            "consultation_date": r["scheduled_at"],
            "consultation_type": r["consultation_type"],
            "symptoms": _parse_symptoms(r["symptoms"]),
            "diagnosis": r["diagnosis"],
            "notes": r["doctor_notes"],
            "prescription_given": bool(r["prescription_given"]),
            "follow_up_required": bool(r["follow_up_required"]),
            "follow_up_date": r["follow_up_date"],
            "status": r["status"],
            "created_at": r["created_at"],
            "updated_at": r["updated_at"],
        }
        for r in rows
    ]


@read_operation(list)
def get_doctor_consultation_notes(engine, caller):
    return _notes_for_doctor(engine, caller)


@read_operation(list)
def get_recent_consultation_notes(engine, caller, days: int = RECENT_NOTES_DAYS,
                                  now: Optional[datetime] = None):
    now = now or datetime.utcnow()
    return _notes_for_doctor(engine, caller, consultations.c.scheduled_at >= now - timedelta(days=days))


@read_operation(list)
def get_consultation_notes_with_follow_up(engine, caller):
    return _notes_for_doctor(engine, caller, consultations.c.follow_up_required.is_(True))


@read_operation(list)
def get_consultation_notes_with_prescriptions(engine, caller):
    has_prescription = (
        select(prescriptions.c.id)
        .where(prescriptions.c.consultation_id == consultations.c.id)
        .exists()
    )
    return _notes_for_doctor(engine, caller, has_prescription)


# ── Meeting status ───────────────────────────────────────────────────

@mutation
def update_meeting_status(engine, caller, consultation_id: str, status: str,
                          timestamp: Optional[datetime] = None):
    """
    Move the video meeting to *status*.  ``in_progress`` stamps
    ``meeting_started_at`` and ``completed`` stamps ``meeting_ended_at``
    with *timestamp* (default now).
    """
    if status not in MEETING_STATUSES:
        raise ValidationError(f"Unknown meeting status '{status}'")
    timestamp = timestamp or datetime.utcnow()

    values = {"meeting_status": status, "updated_at": datetime.utcnow()}
    if status == "in_progress":
        values["meeting_started_at"] = timestamp
    elif status == "completed":
        values["meeting_ended_at"] = timestamp

    with engine.begin() as conn:
        ensure_consultation_access(conn, consultation_id, caller, action="update the meeting of")
        conn.execute(
            update(consultations)
            .where(consultations.c.id == consultation_id)
            .values(**values)
        )
        row = conn.execute(
            select(
                consultations.c.id,
                consultations.c.meeting_status,
                consultations.c.meeting_started_at,
                consultations.c.meeting_ended_at,
            )
            .where(consultations.c.id == consultation_id)
        ).mappings().first()
    logger.info("Consultation %s meeting is now %s", consultation_id, status)
    return {"success": True, "consultation": dict(row)}
