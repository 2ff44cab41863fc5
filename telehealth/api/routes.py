"""
Flask route handlers for the REST API.

Every handler resolves the caller from the verified token, calls one
operation and returns its result as JSON.  Service errors map to status
codes through their ``status_code``.
"""

import logging
from datetime import date, datetime, time, timezone
from decimal import Decimal
from typing import Any, Optional

from flask import jsonify, request
from sqlalchemy import text as sa_text
from sqlalchemy.exc import SQLAlchemyError

from telehealth import (
    consultations,
    dashboard,
    doctors,
    earnings,
    messages,
    patients,
    prescriptions,
    records,
    reminders,
)
from telehealth.api.auth import token_required
from telehealth.config import (
    DEFAULT_SNOOZE_MINUTES,
    EARNINGS_TREND_MONTHS,
    RECENT_NOTES_DAYS,
    TRANSACTIONS_LIMIT,
)
from telehealth.errors import NotAuthenticatedError, NotFoundError, TelehealthError, ValidationError
from telehealth.identity import get_user_display_name, resolve_current_user
from telehealth.models import CurrentUser

logger = logging.getLogger(__name__)

DOCTOR_SCOPES = {
    "all": consultations.get_doctor_consultations,
    "today": consultations.get_todays_consultations,
    "upcoming": consultations.get_upcoming_doctor_consultations,
    "pending": consultations.get_pending_consultations,
}

NOTES_VIEWS = {
    "all": consultations.get_doctor_consultation_notes,
    "follow_up": consultations.get_consultation_notes_with_follow_up,
    "prescriptions": consultations.get_consultation_notes_with_prescriptions,
}


def to_jsonable(value: Any) -> Any:
    """Recursively convert results to JSON-safe values (ISO-8601 for temporals)."""
    if hasattr(value, "to_dict"):
        value = value.to_dict()
    if isinstance(value, dict):
        return {k: to_jsonable(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [to_jsonable(v) for v in value]
    if isinstance(value, (datetime, date, time)):
        return value.isoformat()
    if isinstance(value, Decimal):
        return float(value)
    return value


def parse_datetime(value: Optional[str], field: str) -> Optional[datetime]:
    """Parse an ISO-8601 value into the naive UTC datetimes the store holds."""
    if value in (None, ""):
        return None
    if isinstance(value, str) and value.endswith("Z"):
        value = value[:-1] + "+00:00"
    try:
        parsed = datetime.fromisoformat(value)
    except (TypeError, ValueError):
        raise ValidationError(f"{field} must be an ISO-8601 datetime")
    if parsed.tzinfo is not None:
        parsed = parsed.astimezone(timezone.utc).replace(tzinfo=None)
    return parsed


def register_routes(app, engine):
    """Register all API routes on the Flask *app*."""

    def _caller() -> CurrentUser:
        user = resolve_current_user(engine, request.identity)
        if user is None:
            raise NotAuthenticatedError("User not found")
        return user

    def _body() -> dict:
        return request.get_json(silent=True) or {}

    def _ok(payload, status: int = 200):
        return jsonify(to_jsonable(payload)), status

    # ── Health / info ────────────────────────────────────────────────

    @app.route("/", methods=["GET"])
    def index():
        return jsonify({
            "service": "Telehealth Consultation API",
            "version": "1.0.0",
            "status": "running",
        })

    @app.route("/health", methods=["GET"])
    def health():
        checks = {"database": False}
        try:
            with engine.connect() as conn:
                conn.execute(sa_text("SELECT 1"))
            checks["database"] = True
        except SQLAlchemyError:
            logger.exception("Health check failed")

        healthy = all(checks.values())
        return jsonify({
            "status": "healthy" if healthy else "unhealthy",
            "checks": checks,
        }), 200 if healthy else 503

    # ── Identity ─────────────────────────────────────────────────────

    @app.route("/api/me", methods=["GET"])
    @token_required
    def me():
        user = _caller()
        return _ok({
            "success": True,
            "user": user,
            "display_name": get_user_display_name(user),
        })

    @app.route("/api/dashboard", methods=["GET"])
    @token_required
    def dashboard_summary():
        return _ok(dashboard.get_dashboard_data(engine, _caller()))

    # ── Doctor directory ─────────────────────────────────────────────

    @app.route("/api/doctors", methods=["GET"])
    @token_required
    def doctor_directory():
        caller = _caller()
        term = request.args.get("q")
        specialty = request.args.get("specialty")
        if term:
            return _ok(doctors.search_doctors(engine, caller, term))
        if specialty:
            return _ok(doctors.get_doctors_by_specialty(engine, caller, specialty))
        return _ok(doctors.get_all_doctors(engine, caller))

    @app.route("/api/doctors/<doctor_id>", methods=["GET"])
    @token_required
    def doctor_profile(doctor_id):
        doctor = doctors.get_doctor_by_id(engine, _caller(), doctor_id)
        if doctor is None:
            raise NotFoundError("Doctor not found")
        return _ok(doctor)

    # ── Consultations ────────────────────────────────────────────────

    @app.route("/api/consultations", methods=["GET"])
    @token_required
    def list_consultations():
        return _ok(consultations.get_unified_consultations(engine, _caller()))

    @app.route("/api/consultations", methods=["POST"])
    @token_required
    def book_consultation():
        data = _body()
        doctor_id = data.get("doctor_id")
        if not doctor_id:
            raise ValidationError("doctor_id is required")
        result = consultations.create_consultation(
            engine, _caller(), doctor_id,
            consultation_type=data.get("consultation_type", "video_call"),
            symptoms=data.get("symptoms"),
            scheduled_at=parse_datetime(data.get("scheduled_at"), "scheduled_at"),
            duration=data.get("duration"),
            consultation_fee=data.get("consultation_fee"),
        )
        return _ok(result, 201)

    @app.route("/api/consultations/instant", methods=["POST"])
    @token_required
    def book_instant_consultation():
        data = _body()
        doctor_id = data.get("doctor_id")
        if not doctor_id:
            raise ValidationError("doctor_id is required")
        result = consultations.create_instant_consultation(
            engine, _caller(), doctor_id, data.get("consultation_type", "video_call")
        )
        return _ok(result, 201)

    @app.route("/api/consultations/<consultation_id>", methods=["GET"])
    @token_required
    def consultation_detail(consultation_id):
        return _ok(consultations.get_consultation_by_id(engine, _caller(), consultation_id))

    @app.route("/api/consultations/<consultation_id>/notes", methods=["PATCH"])
    @token_required
    def consultation_notes(consultation_id):
        data = _body()
        notes = data.get("notes")
        if notes is None:
            raise ValidationError("notes is required")
        return _ok(consultations.update_consultation_notes(
            engine, _caller(), consultation_id, notes, data.get("diagnosis")
        ))

    @app.route("/api/consultations/<consultation_id>/diagnosis", methods=["PATCH"])
    @token_required
    def consultation_diagnosis(consultation_id):
        diagnosis = _body().get("diagnosis")
        if diagnosis is None:
            raise ValidationError("diagnosis is required")
        return _ok(consultations.update_consultation_diagnosis(engine, _caller(), consultation_id, diagnosis))

    @app.route("/api/consultations/<consultation_id>/join", methods=["POST"])
    @token_required
    def consultation_join(consultation_id):
        return _ok(consultations.update_join_status(
            engine, _caller(), consultation_id, _body().get("joined", True)
        ))

    @app.route("/api/consultations/<consultation_id>/room", methods=["POST"])
    @token_required
    def consultation_room(consultation_id):
        room = consultations.generate_video_room_name(engine, _caller(), consultation_id)
        return _ok({"success": True, "video_room_name": room})

    @app.route("/api/consultations/<consultation_id>/meeting-status", methods=["POST"])
    @token_required
    def consultation_meeting_status(consultation_id):
        data = _body()
        status = data.get("status")
        if not status:
            raise ValidationError("status is required")
        return _ok(consultations.update_meeting_status(
            engine, _caller(), consultation_id, status,
            parse_datetime(data.get("timestamp"), "timestamp"),
        ))

    @app.route("/api/doctor/consultations", methods=["GET"])
    @token_required
    def doctor_consultations():
        scope = request.args.get("scope", "all")
        operation = DOCTOR_SCOPES.get(scope)
        if operation is None:
            raise ValidationError(f"Unknown scope '{scope}'")
        return _ok(operation(engine, _caller()))

    @app.route("/api/doctor/notes-stats", methods=["GET"])
    @token_required
    def doctor_notes_stats():
        return _ok(consultations.get_consultation_notes_stats(engine, _caller()))

    @app.route("/api/doctor/notes", methods=["GET"])
    @token_required
    def doctor_notes():
        view = request.args.get("view", "all")
        if view == "recent":
            days = request.args.get("days", RECENT_NOTES_DAYS, type=int)
            return _ok(consultations.get_recent_consultation_notes(engine, _caller(), days))
        operation = NOTES_VIEWS.get(view)
        if operation is None:
            raise ValidationError(f"Unknown notes view '{view}'")
        return _ok(operation(engine, _caller()))

    # ── Messages ─────────────────────────────────────────────────────

    @app.route("/api/consultations/<consultation_id>/messages", methods=["GET"])
    @token_required
    def consultation_messages(consultation_id):
        return _ok(messages.list_messages(engine, _caller(), consultation_id))

    @app.route("/api/consultations/<consultation_id>/messages", methods=["POST"])
    @token_required
    def post_message(consultation_id):
        data = _body()
        result = messages.send_message(
            engine, _caller(), consultation_id, data.get("content", ""),
            message_type=data.get("message_type", "text"),
            attachment_url=data.get("attachment_url"),
            attachment_name=data.get("attachment_name"),
            reply_to_message_id=data.get("reply_to_message_id"),
        )
        return _ok(result, 201)

    @app.route("/api/messages/<message_id>/read", methods=["POST"])
    @token_required
    def read_message(message_id):
        return _ok(messages.mark_message_read(engine, _caller(), message_id))

    # ── Prescriptions ────────────────────────────────────────────────

    @app.route("/api/prescriptions", methods=["GET"])
    @token_required
    def patient_prescriptions():
        caller = _caller()
        status = request.args.get("status")
        if status:
            return _ok(prescriptions.get_prescriptions_by_status(engine, caller, status))
        if request.args.get("active") == "true":
            return _ok(prescriptions.get_active_prescriptions(engine, caller))
        return _ok(prescriptions.get_patient_prescriptions(engine, caller))

    @app.route("/api/prescriptions/<prescription_id>", methods=["GET"])
    @token_required
    def prescription_detail(prescription_id):
        return _ok(prescriptions.get_prescription_by_id(engine, _caller(), prescription_id))

    @app.route("/api/doctor/prescriptions", methods=["GET"])
    @token_required
    def doctor_prescriptions():
        caller = _caller()
        status = request.args.get("status")
        if status:
            return _ok(prescriptions.get_doctor_prescriptions_by_status(engine, caller, status))
        if request.args.get("active") == "true":
            return _ok(prescriptions.get_active_doctor_prescriptions(engine, caller))
        return _ok(prescriptions.get_doctor_prescriptions(engine, caller))

    @app.route("/api/doctor/prescriptions/stats", methods=["GET"])
    @token_required
    def doctor_prescription_stats():
        return _ok(prescriptions.get_doctor_prescription_stats(engine, _caller()))

    @app.route("/api/doctor/prescriptions", methods=["POST"])
    @token_required
    def issue_prescription():
        data = dict(_body())
        required = ("patient_id", "medication_name", "dosage", "frequency", "duration", "quantity")
        missing = [name for name in required if data.get(name) in (None, "")]
        if missing:
            raise ValidationError(f"Missing fields: {', '.join(missing)}")
        args = [data.pop(name) for name in required]
        allowed = {
            "consultation_id", "generic_name", "custom_frequency", "instructions",
            "side_effects", "interactions", "refills_allowed",
            "pharmacy_name", "pharmacy_address", "pharmacy_phone",
        }
        extra = {k: v for k, v in data.items() if k in allowed}
        return _ok(prescriptions.create_prescription(engine, _caller(), *args, **extra), 201)

    @app.route("/api/doctor/prescriptions/<prescription_id>/status", methods=["PATCH"])
    @token_required
    def prescription_status(prescription_id):
        status = _body().get("status")
        if not status:
            raise ValidationError("status is required")
        return _ok(prescriptions.update_prescription_status(engine, _caller(), prescription_id, status))

    # ── Reminders ────────────────────────────────────────────────────

    @app.route("/api/reminders", methods=["GET"])
    @token_required
    def patient_reminders():
        caller = _caller()
        view = request.args.get("view", "all")
        reminder_type = request.args.get("type")
        if reminder_type:
            return _ok(reminders.get_reminders_by_type(engine, caller, reminder_type))
        if view == "active":
            return _ok(reminders.get_active_reminders(engine, caller))
        if view == "today":
            return _ok(reminders.get_todays_reminders(engine, caller))
        if view != "all":
            raise ValidationError(f"Unknown view '{view}'")
        return _ok(reminders.get_patient_reminders(engine, caller))

    @app.route("/api/reminders/<reminder_id>/taken", methods=["POST"])
    @token_required
    def reminder_taken(reminder_id):
        data = _body()
        return _ok(reminders.mark_reminder_taken(
            engine, _caller(), reminder_id, data.get("taken", True), data.get("notes")
        ))

    @app.route("/api/reminders/<reminder_id>/snooze", methods=["POST"])
    @token_required
    def reminder_snooze(reminder_id):
        minutes = _body().get("minutes", DEFAULT_SNOOZE_MINUTES)
        try:
            minutes = int(minutes)
        except (TypeError, ValueError):
            raise ValidationError("minutes must be an integer")
        return _ok(reminders.snooze_reminder(engine, _caller(), reminder_id, minutes))

    # ── Medical records ──────────────────────────────────────────────

    @app.route("/api/records", methods=["GET"])
    @token_required
    def medical_records():
        caller = _caller()
        record_type = request.args.get("type")
        limit = request.args.get("limit", type=int)
        if record_type:
            result = records.get_medical_records_by_type(engine, caller, record_type)
        elif limit:
            result = records.get_recent_medical_activity(engine, caller, limit)
        else:
            result = records.get_patient_medical_records(engine, caller)
        return _ok(result)

    @app.route("/api/records/<record_type>/<record_id>", methods=["GET"])
    @token_required
    def medical_record_detail(record_type, record_id):
        record = records.get_medical_record_by_id(engine, _caller(), record_id, record_type)
        if record is None:
            raise NotFoundError("Medical record not found")
        return _ok(record)

    # ── Earnings ─────────────────────────────────────────────────────

    @app.route("/api/doctor/earnings", methods=["GET"])
    @token_required
    def doctor_earnings():
        period = request.args.get("period")
        if period:
            return _ok(earnings.get_doctor_earnings(engine, _caller(), period))
        return _ok(earnings.get_all_doctor_earnings(engine, _caller()))

    @app.route("/api/doctor/earnings/transactions", methods=["GET"])
    @token_required
    def doctor_transactions():
        limit = request.args.get("limit", TRANSACTIONS_LIMIT, type=int)
        return _ok(earnings.get_doctor_transactions(engine, _caller(), limit))

    @app.route("/api/doctor/earnings/breakdown", methods=["GET"])
    @token_required
    def doctor_earnings_breakdown():
        return _ok(earnings.get_doctor_earnings_breakdown(engine, _caller()))

    @app.route("/api/doctor/earnings/stats", methods=["GET"])
    @token_required
    def doctor_earnings_stats():
        return _ok(earnings.get_doctor_earnings_stats(engine, _caller()))

    @app.route("/api/doctor/earnings/trend", methods=["GET"])
    @token_required
    def doctor_earnings_trend():
        months = request.args.get("months", EARNINGS_TREND_MONTHS, type=int)
        return _ok(earnings.get_monthly_earnings_trend(engine, _caller(), months))

    # ── Patients ─────────────────────────────────────────────────────

    @app.route("/api/doctor/patients", methods=["GET"])
    @token_required
    def doctor_patients():
        term = request.args.get("q")
        if term:
            return _ok(patients.search_doctor_patients(engine, _caller(), term))
        return _ok(patients.get_doctor_patients(engine, _caller()))

    @app.route("/api/doctor/patients/<patient_id>", methods=["GET"])
    @token_required
    def doctor_patient_detail(patient_id):
        return _ok(patients.get_patient_detail(engine, _caller(), patient_id))

    # ── Error handlers ───────────────────────────────────────────────

    @app.errorhandler(TelehealthError)
    def service_error(e):
        if e.status_code >= 500:
            logger.error("Service error: %s", e)
        return jsonify({"error": str(e) or type(e).__name__}), e.status_code

    @app.errorhandler(404)
    def not_found(e):
        return jsonify({"error": "Endpoint not found", "message": str(e)}), 404

    @app.errorhandler(405)
    def method_not_allowed(e):
        return jsonify({"error": "Method not allowed", "message": str(e)}), 405

    @app.errorhandler(500)
    def internal_error(e):
        return jsonify({"error": "Internal server error", "message": str(e)}), 500
