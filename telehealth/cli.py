"""
Interactive CLI for the telehealth service.
Paste an identity token, then browse consultations, messages and records
with the same access rules the API enforces.
"""

import pandas as pd

from telehealth import consultations, doctors, earnings, messages, prescriptions, records, reminders
from telehealth.api.auth import identity_from_claims, verify_token
from telehealth.config import configure_logging
from telehealth.database import create_schema, init_engine
from telehealth.errors import TelehealthError
from telehealth.identity import get_user_display_name, resolve_current_user

HELP = """Commands:
  doctors [term]         browse or search available doctors
  consultations          list your consultations
  messages <id>          show a consultation's messages
  send <id> <text>       send a message in a consultation
  records                your medical history (patients)
  prescriptions          your prescriptions
  reminders              your reminders (patients)
  earnings               earnings per period (doctors)
  quit                   exit"""


def _show(rows, columns):
    """Print *rows* (dicts) as a table limited to *columns*."""
    if not rows:
        print("(nothing to show)")
        return
    df = pd.DataFrame(rows)
    print(df[[c for c in columns if c in df.columns]].to_string(index=False))


def run_command(engine, user, line: str) -> None:
    """Execute one REPL command for *user*; raises service errors."""
    command, _, rest = line.partition(" ")
    command = command.lower()

    if command == "doctors":
        rows = doctors.search_doctors(engine, user, rest)
        _show([{**d, "name": f"Dr. {d['user']['first_name']} {d['user']['last_name']}"} for d in rows],
              ["id", "name", "specialty", "consultation_fee", "rating"])

    elif command == "consultations":
        result = consultations.get_unified_consultations(engine, user)
        print(f"\n[upcoming] {len(result['upcoming_consultations'])}")
        _show(result["upcoming_consultations"], ["id", "scheduled_at", "consultation_type", "status"])
        print(f"\n[past] {len(result['past_consultations'])}")
        _show(result["past_consultations"], ["id", "scheduled_at", "consultation_type", "status"])

    elif command == "messages":
        consultation_id = rest.strip()
        if not consultation_id:
            print("Usage: messages <consultation id>")
            return
        _show(messages.list_messages(engine, user, consultation_id),
              ["created_at", "sender_name", "content", "status"])

    elif command == "send":
        consultation_id, _, content = rest.strip().partition(" ")
        if not consultation_id or not content:
            print("Usage: send <consultation id> <text>")
            return
        result = messages.send_message(engine, user, consultation_id, content)
        print(f"[sent] {result['message']['id']}")

    elif command == "records":
        _show([r.to_dict() for r in records.get_patient_medical_records(engine, user)],
              ["date", "type", "title", "status", "doctor"])

    elif command == "prescriptions":
        if user.user_type == "doctor":
            rows = prescriptions.get_doctor_prescriptions(engine, user)
        else:
            rows = prescriptions.get_patient_prescriptions(engine, user)
        _show(rows, ["medication_name", "dosage", "frequency", "status", "created_at"])

    elif command == "reminders":
        _show(reminders.get_patient_reminders(engine, user),
              ["title", "reminder_type", "next_reminder_at", "status", "medication_name"])

    elif command == "earnings":
        _show(earnings.get_all_doctor_earnings(engine, user),
              ["period", "total_earnings", "consultations", "average_per_consultation", "growth"])

    else:
        print(HELP)


def main():
    configure_logging("WARNING")
    print("=== Telehealth Console ===\n")

    engine = init_engine()
    create_schema(engine)

    # ── Login ────────────────────────────────────────────────────────
    try:
        token = input("Paste identity token (or 'quit'): ").strip()
    except (EOFError, KeyboardInterrupt):
        print("\nExiting.")
        return

    if not token or token.lower() in {"quit", "exit"}:
        print("Goodbye.")
        return

    claims = verify_token(token)
    identity = identity_from_claims(claims) if claims else None
    if identity is None:
        print("\n[ERROR] Login failed: invalid or expired token.")
        return

    user = resolve_current_user(engine, identity)
    if user is None:
        print("\n[ERROR] Login failed: no user could be resolved for this token.")
        return

    print(f"\n[auth] Logged in as: {get_user_display_name(user)} (role={user.user_type})")
    if not user.persisted:
        print("[auth] WARNING: store unavailable, running as a temporary user")
    print(HELP)

    # ── REPL ─────────────────────────────────────────────────────────
    while True:
        try:
            line = input("\n> ").strip()
        except (EOFError, KeyboardInterrupt):
            print("\nExiting.")
            break

        if not line:
            continue
        if line.lower() in {"quit", "exit"}:
            print("Goodbye.")
            break

        try:
            run_command(engine, user, line)
        except TelehealthError as e:
            print(f"\n[{type(e).__name__}] {e}")


if __name__ == "__main__":
    main()
