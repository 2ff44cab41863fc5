"""
Relational schema – SQLAlchemy Core table definitions and enumerated values.
"""

import uuid
from datetime import datetime

from sqlalchemy import (
    Boolean,
    Column,
    Date,
    DateTime,
    ForeignKey,
    Integer,
    MetaData,
    Numeric,
    String,
    Table,
    Text,
    Time,
)

metadata = MetaData()


def new_id() -> str:
    """Return a fresh UUID primary key as text."""
    return str(uuid.uuid4())


# ── Enumerations ─────────────────────────────────────────────────────

USER_TYPES = ("patient", "doctor", "admin")

MEETING_STATUSES = ("scheduled", "in_progress", "completed")
CONSULTATION_TYPES = ("video_call", "chat_only", "phone_call", "in_person")

MESSAGE_TYPES = ("text", "prescription", "system", "file_attachment", "image")

PRESCRIPTION_STATUSES = (
    "pending", "sent_to_pharmacy", "ready_for_pickup", "delivered", "completed",
)
MEDICATION_FREQUENCIES = (
    "once_daily", "twice_daily", "three_times_daily", "four_times_daily",
    "as_needed", "weekly", "custom",
)

REMINDER_TYPES = ("medication", "appointment", "follow_up", "health_check", "lab_test")

SYMPTOM_SEVERITIES = ("mild", "moderate", "severe", "critical")


def _timestamps():
    return [
        Column("created_at", DateTime, nullable=False, default=datetime.utcnow),
        Column("updated_at", DateTime, nullable=False, default=datetime.utcnow),
    ]


# ── Tables ───────────────────────────────────────────────────────────

users = Table(
    "users", metadata,
    Column("id", String(36), primary_key=True, default=new_id),
    Column("external_id", String(255), unique=True, nullable=False),
    Column("user_type", String(16), nullable=False),
    Column("email", String(255), unique=True, nullable=False),
    Column("first_name", String(120), nullable=False),
    Column("last_name", String(120), nullable=False),
    Column("phone", String(40)),
    Column("profile_image", Text),
    Column("is_active", Boolean, nullable=False, default=True),
    Column("is_verified", Boolean, nullable=False, default=False),
    *_timestamps(),
)

patients = Table(
    "patients", metadata,
    Column("id", String(36), primary_key=True, default=new_id),
    Column("user_id", String(36), ForeignKey("users.id"), unique=True, nullable=False),
    Column("date_of_birth", Date),
    Column("gender", String(32)),
    Column("blood_type", String(8), default="unknown"),
    Column("height", Integer),  # cm
    Column("weight", Integer),  # kg
    Column("address", Text),
    Column("city", String(120)),
    Column("state", String(120)),
    Column("zip_code", String(20)),
    Column("country", String(2), default="US"),
    Column("emergency_contact_name", String(255)),
    Column("emergency_contact_phone", String(40)),
    Column("emergency_contact_relation", String(64)),
    Column("allergies", Text),
    Column("medical_history", Text),
    Column("current_medications", Text),
    *_timestamps(),
)

doctors = Table(
    "doctors", metadata,
    Column("id", String(36), primary_key=True, default=new_id),
    Column("user_id", String(36), ForeignKey("users.id"), unique=True, nullable=False),
    Column("license_number", String(64), unique=True, nullable=False),
    Column("specialty", String(64), nullable=False),
    Column("sub_specialty", String(120)),
    Column("years_of_experience", Integer),
    Column("bio", Text),
    Column("consultation_fee", Numeric(10, 2, asdecimal=False)),
    Column("rating", Numeric(3, 2, asdecimal=False), default=0),
    Column("total_ratings", Integer, default=0),
    Column("is_available", Boolean, default=True),
    Column("available_hours", Text),
    Column("languages", Text),
    *_timestamps(),
)

consultations = Table(
    "consultations", metadata,
    Column("id", String(36), primary_key=True, default=new_id),
    Column("patient_id", String(36), ForeignKey("patients.id"), nullable=False),
    Column("doctor_id", String(36), ForeignKey("doctors.id"), nullable=False),
    Column("scheduled_at", DateTime, nullable=False),
    Column("duration", String(8), default="30"),  # minutes
    Column("consultation_type", String(16), default="video_call"),
    Column("status", String(16), default="scheduled"),
    Column("symptoms", Text),  # JSON list
    Column("diagnosis", Text),
    Column("doctor_notes", Text),
    Column("patient_notes", Text),
    Column("prescription_given", Boolean, default=False),
    Column("follow_up_required", Boolean, default=False),
    Column("follow_up_date", DateTime),
    Column("consultation_fee", Numeric(10, 2, asdecimal=False)),
    Column("payment_status", String(16), default="pending"),
    Column("meeting_link", Text),
    Column("video_room_name", String(120)),
    Column("meeting_status", String(16), default="scheduled"),
    Column("meeting_started_at", DateTime),
    Column("meeting_ended_at", DateTime),
    Column("doctor_joined", Boolean, default=False),
    Column("patient_joined", Boolean, default=False),
    *_timestamps(),
)

messages = Table(
    "messages", metadata,
    Column("id", String(36), primary_key=True, default=new_id),
    Column("consultation_id", String(36), ForeignKey("consultations.id"), nullable=False),
    Column("sender_id", String(36), ForeignKey("users.id"), nullable=False),
    Column("content", Text, nullable=False),
    Column("message_type", String(20), default="text"),
    Column("status", String(12), default="sent"),
    Column("attachment_url", Text),
    Column("attachment_name", String(255)),
    Column("attachment_size", String(32)),
    Column("is_edited", Boolean, default=False),
    Column("edited_at", DateTime),
    Column("reply_to_message_id", String(36), ForeignKey("messages.id")),
    *_timestamps(),
)

prescriptions = Table(
    "prescriptions", metadata,
    Column("id", String(36), primary_key=True, default=new_id),
    Column("consultation_id", String(36), ForeignKey("consultations.id")),
    Column("patient_id", String(36), ForeignKey("patients.id"), nullable=False),
    Column("doctor_id", String(36), ForeignKey("doctors.id"), nullable=False),
    Column("medication_name", String(255), nullable=False),
    Column("generic_name", String(255)),
    Column("dosage", String(120), nullable=False),
    Column("frequency", String(32), nullable=False),
    Column("custom_frequency", String(120)),
    Column("duration", Integer, nullable=False),  # days
    Column("quantity", Integer, nullable=False),
    Column("instructions", Text),
    Column("side_effects", Text),
    Column("interactions", Text),
    Column("refills_allowed", Integer, default=0),
    Column("status", String(20), default="pending"),
    Column("pharmacy_name", String(255)),
    Column("pharmacy_address", Text),
    Column("pharmacy_phone", String(40)),
    Column("start_date", DateTime, default=datetime.utcnow),
    Column("end_date", DateTime),
    Column("is_active", Boolean, default=True),
    *_timestamps(),
)

reminders = Table(
    "reminders", metadata,
    Column("id", String(36), primary_key=True, default=new_id),
    Column("patient_id", String(36), ForeignKey("patients.id"), nullable=False),
    Column("prescription_id", String(36), ForeignKey("prescriptions.id")),
    Column("reminder_type", String(20), nullable=False),
    Column("title", String(255), nullable=False),
    Column("message", Text),
    Column("reminder_time", Time, nullable=False),
    Column("reminder_days", Text),  # JSON list of weekday names
    Column("is_recurring", Boolean, default=True),
    Column("status", String(12), default="active"),
    Column("last_sent_at", DateTime),
    Column("next_reminder_at", DateTime),
    Column("total_sent", Integer, default=0),
    Column("dosage_taken", Boolean, default=False),
    Column("notes", Text),
    Column("snooze_until", DateTime),
    *_timestamps(),
)

symptoms = Table(
    "symptoms", metadata,
    Column("id", String(36), primary_key=True, default=new_id),
    Column("patient_id", String(36), ForeignKey("patients.id"), nullable=False),
    Column("symptom_name", String(255), nullable=False),
    Column("category", String(32), nullable=False),
    Column("description", Text, nullable=False),
    Column("severity", String(12), nullable=False),
    Column("duration", String(64)),
    Column("frequency", String(64)),
    Column("triggers", Text),
    Column("associated_symptoms", Text),
    Column("body_part", String(120)),
    Column("onset_date", DateTime),
    Column("resolved_date", DateTime),
    Column("medication_taken", Text),
    Column("consultation_requested", Boolean, default=False),
    Column("urgency_level", Integer, default=1),  # 1-5
    Column("images", Text),
    *_timestamps(),
)
