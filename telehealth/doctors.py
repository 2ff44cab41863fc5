"""
Doctor directory – the bookable doctors a patient chooses from, with their
user details nested under ``user``.

Only doctors marked available are listed; a freshly provisioned doctor
stays hidden until the profile is switched on.  A lookup by id returns the
profile regardless of availability so existing bookings can show it.
"""

import logging
from typing import Any, Dict, List, Optional

from sqlalchemy import func, or_, select

from telehealth.errors import read_operation
from telehealth.schema import doctors, users

logger = logging.getLogger(__name__)

_USER_FIELDS = ("id", "email", "first_name", "last_name", "phone", "profile_image")


def _directory_query():
    return (
        select(
            doctors,
            *[users.c[name].label(f"doctor_user_{name}") for name in _USER_FIELDS],
        )
        .select_from(doctors.join(users, doctors.c.user_id == users.c.id))
    )


def _listed(query):
    return (
        query.where(doctors.c.is_available.is_(True))
        .order_by(doctors.c.rating.desc(), users.c.first_name.asc())
    )


def _shape_doctor(row) -> Dict[str, Any]:
    item = {col.name: row[col.name] for col in doctors.c}
    item["is_available"] = bool(row["is_available"])
    item["user"] = {name: row[f"doctor_user_{name}"] for name in _USER_FIELDS}
    return item


def _fetch(engine, query) -> List[Dict[str, Any]]:
    with engine.connect() as conn:
        rows = conn.execute(query).mappings().all()
    return [_shape_doctor(r) for r in rows]


@read_operation(list)
def get_all_doctors(engine, caller) -> List[Dict[str, Any]]:
    """Available doctors, best rated first."""
    return _fetch(engine, _listed(_directory_query()))


@read_operation(list)
def get_doctors_by_specialty(engine, caller, specialty: str) -> List[Dict[str, Any]]:
    return _fetch(engine, _listed(_directory_query().where(doctors.c.specialty == specialty)))


@read_operation(lambda: None)
def get_doctor_by_id(engine, caller, doctor_id: str) -> Optional[Dict[str, Any]]:
    with engine.connect() as conn:
        row = conn.execute(
            _directory_query().where(doctors.c.id == doctor_id).limit(1)
        ).mappings().first()
    return _shape_doctor(row) if row is not None else None


@read_operation(list)
def search_doctors(engine, caller, term: str) -> List[Dict[str, Any]]:
    """Case-insensitive match on name, specialty, sub-specialty or bio."""
    term = (term or "").strip()
    if not term:
        return get_all_doctors(engine, caller)
    logger.debug("Doctor search for %r", term)
    pattern = f"%{term.lower()}%"
    return _fetch(engine, _listed(_directory_query().where(or_(
        func.lower(users.c.first_name).like(pattern),
        func.lower(users.c.last_name).like(pattern),
        func.lower(doctors.c.specialty).like(pattern),
        func.lower(doctors.c.sub_specialty).like(pattern),
        func.lower(doctors.c.bio).like(pattern),
    ))))
