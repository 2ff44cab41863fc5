"""
Patient reminders – listings joined to the linked prescription, and the
ownership-scoped mark-taken / snooze updates.

Snoozing only stores ``snooze_until``; dispatching reminders is done
elsewhere.
"""

import logging
from datetime import datetime, timedelta
from typing import Any, Dict, List, Optional

from sqlalchemy import select, update

from telehealth.config import DEFAULT_SNOOZE_MINUTES
from telehealth.errors import NotFoundError, ValidationError, mutation, read_operation
from telehealth.rbac import get_patient_profile_id, require_patient, require_patient_profile
from telehealth.schema import REMINDER_TYPES, prescriptions, reminders

logger = logging.getLogger(__name__)


def _list_for_patient(engine, caller, clauses, ordering) -> List[Dict[str, Any]]:
    require_patient(caller)
    with engine.connect() as conn:
        patient_id = get_patient_profile_id(conn, caller.id)
        if patient_id is None:
            return []
        query = (
            select(
                reminders,
                prescriptions.c.medication_name,
                prescriptions.c.dosage,
                prescriptions.c.frequency,
            )
            .select_from(
                reminders.outerjoin(prescriptions, reminders.c.prescription_id == prescriptions.c.id)
            )
            .where(reminders.c.patient_id == patient_id)
        )
        for clause in clauses:
            query = query.where(clause)
        rows = conn.execute(query.order_by(ordering)).mappings().all()
    return [dict(r) for r in rows]


@read_operation(list)
def get_patient_reminders(engine, caller):
    return _list_for_patient(engine, caller, [], reminders.c.next_reminder_at.desc())


@read_operation(list)
def get_active_reminders(engine, caller):
    return _list_for_patient(
        engine, caller, [reminders.c.status == "active"], reminders.c.next_reminder_at.asc()
    )


@read_operation(list)
def get_todays_reminders(engine, caller, now: Optional[datetime] = None):
    now = now or datetime.utcnow()
    day = now.replace(hour=0, minute=0, second=0, microsecond=0)
    return _list_for_patient(
        engine, caller,
        [
            reminders.c.status == "active",
            reminders.c.next_reminder_at >= day,
            reminders.c.next_reminder_at < day + timedelta(days=1),
        ],
        reminders.c.reminder_time.asc(),
    )


@read_operation(list)
def get_reminders_by_type(engine, caller, reminder_type: str):
    if reminder_type not in REMINDER_TYPES:
        raise ValidationError(f"Unknown reminder type '{reminder_type}'")
    return _list_for_patient(
        engine, caller, [reminders.c.reminder_type == reminder_type],
        reminders.c.next_reminder_at.desc(),
    )


def _update_own_reminder(engine, caller, reminder_id: str, values: Dict[str, Any]) -> None:
    """Apply *values* with ``WHERE id = ? AND patient_id = <caller's profile>``."""
    with engine.begin() as conn:
        patient_id = require_patient_profile(conn, caller)
        result = conn.execute(
            update(reminders)
            .where(reminders.c.id == reminder_id)
            .where(reminders.c.patient_id == patient_id)
            .values(**values)
        )
        if result.rowcount == 0:
            logger.warning("Reminder %s not updated for patient %s", reminder_id, patient_id)
            raise NotFoundError("Reminder not found")


@mutation
def mark_reminder_taken(engine, caller, reminder_id: str, taken: bool = True,
                        notes: Optional[str] = None):
    """Record whether the dose was taken; stored notes are kept unless *notes* is given."""
    if not isinstance(taken, bool):
        raise ValidationError("taken must be a boolean")
    values = {"dosage_taken": taken, "updated_at": datetime.utcnow()}
    if notes is not None:
        values["notes"] = notes
    _update_own_reminder(engine, caller, reminder_id, values)
    return {"success": True}


@mutation
def snooze_reminder(engine, caller, reminder_id: str,
                    minutes: int = DEFAULT_SNOOZE_MINUTES,
                    now: Optional[datetime] = None):
    if minutes is None or int(minutes) <= 0:
        raise ValidationError("Snooze minutes must be positive")
    now = now or datetime.utcnow()
    snooze_until = now + timedelta(minutes=int(minutes))
    _update_own_reminder(engine, caller, reminder_id, {
        "snooze_until": snooze_until,
        "updated_at": now,
    })
    return {"success": True, "snooze_until": snooze_until}
