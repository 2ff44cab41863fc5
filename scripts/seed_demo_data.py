#!/usr/bin/env python3
"""
Fill the configured database with Faker-generated demo data: users with
patient / doctor profiles, consultations, messages, prescriptions,
reminders and symptoms.
"""

import json
import random
from datetime import datetime, time, timedelta

from faker import Faker
from sqlalchemy import select

from telehealth.database import create_schema, init_engine
from telehealth.schema import (
    CONSULTATION_TYPES,
    MEDICATION_FREQUENCIES,
    PRESCRIPTION_STATUSES,
    REMINDER_TYPES,
    SYMPTOM_SEVERITIES,
    consultations,
    doctors,
    messages,
    new_id,
    patients,
    prescriptions,
    reminders,
    symptoms,
    users,
)

# --------------------------------------------------------------------
# CONFIG
# --------------------------------------------------------------------
NUM_DOCTORS = 8
NUM_PATIENTS = 40

# how many rows per patient (min, max)
PER_PATIENT = {
    "consultations": (0, 5),
    "symptoms": (0, 3),
    "reminders": (0, 2),
}
MESSAGES_PER_CONSULTATION = (0, 6)

SPECIALTIES = ["general_practice", "cardiology", "dermatology", "pediatrics", "psychiatry", "neurology"]
MEDICATIONS = ["Amoxicillin", "Lisinopril", "Metformin", "Atorvastatin", "Ibuprofen", "Sertraline"]
SYMPTOM_CATEGORIES = ["respiratory", "cardiovascular", "digestive", "neurological", "skin", "general"]

# --------------------------------------------------------------------
# SETUP
# --------------------------------------------------------------------
fake = Faker()
random.seed(42)
Faker.seed(42)


# --------------------------------------------------------------------
# HELPERS
# --------------------------------------------------------------------
def random_bool(p_true=0.5):
    return random.random() < p_true


def random_datetime_around(days_back=180, days_forward=30):
    now = datetime.utcnow()
    delta = timedelta(days=random.randint(-days_back, days_forward), minutes=random.randint(0, 1440))
    return now + delta


def per_patient_count(table_name):
    lo, hi = PER_PATIENT.get(table_name, (0, 0))
    return random.randint(lo, hi)


def user_row(user_type):
    now = datetime.utcnow()
    return {
        "id": new_id(),
        "external_id": f"user_{fake.unique.bothify('????????????')}",
        "user_type": user_type,
        "email": fake.unique.email(),
        "first_name": fake.first_name(),
        "last_name": fake.last_name(),
        "phone": fake.phone_number(),
        "is_active": True,
        "is_verified": random_bool(0.8),
        "created_at": now,
        "updated_at": now,
    }


# --------------------------------------------------------------------
# SEED FUNCTIONS
# --------------------------------------------------------------------
def seed_doctors(conn, n=NUM_DOCTORS):
    user_rows, doctor_rows = [], []
    for _ in range(n):
        user = user_row("doctor")
        user_rows.append(user)
        doctor_rows.append(
            {
                "id": new_id(),
                "user_id": user["id"],
                "license_number": f"MD{fake.unique.random_int(100000, 999999)}",
                "specialty": random.choice(SPECIALTIES),
                "years_of_experience": random.randint(1, 35),
                "bio": fake.text(max_nb_chars=160),
                "consultation_fee": random.choice([50, 75, 100, 150]),
                "rating": round(random.uniform(3.5, 5.0), 2),
                "total_ratings": random.randint(0, 400),
                "is_available": random_bool(0.8),
                "languages": json.dumps(["English"]),
                "created_at": user["created_at"],
                "updated_at": user["updated_at"],
            }
        )
    conn.execute(users.insert(), user_rows)
    conn.execute(doctors.insert(), doctor_rows)
    return conn.execute(select(doctors.c.id)).scalars().all()


def seed_patients(conn, n=NUM_PATIENTS):
    user_rows, patient_rows = [], []
    for _ in range(n):
        user = user_row("patient")
        user_rows.append(user)
        patient_rows.append(
            {
                "id": new_id(),
                "user_id": user["id"],
                "date_of_birth": fake.date_of_birth(minimum_age=18, maximum_age=90),
                "gender": random.choice(["male", "female", "other"]),
                "blood_type": random.choice(["A+", "A-", "B+", "O+", "O-", "AB+", "unknown"]),
                "height": random.randint(150, 200),
                "weight": random.randint(45, 120),
                "address": fake.street_address(),
                "city": fake.city(),
                "state": fake.state_abbr(),
                "zip_code": fake.postcode(),
                "country": "US",
                "allergies": random.choice([None, "Penicillin", "Peanuts", "Latex"]),
                "medical_history": fake.text(max_nb_chars=120),
                "created_at": user["created_at"],
                "updated_at": user["updated_at"],
            }
        )
    conn.execute(users.insert(), user_rows)
    conn.execute(patients.insert(), patient_rows)
    return conn.execute(select(patients.c.id)).scalars().all()


def seed_consultations(conn, patient_ids, doctor_ids):
    rows = []
    for pid in patient_ids:
        for _ in range(per_patient_count("consultations")):
            scheduled = random_datetime_around()
            past = scheduled < datetime.utcnow()
            status = random.choice(["completed", "completed", "cancelled", "no_show"]) if past else "scheduled"
            rows.append(
                {
                    "id": new_id(),
                    "patient_id": pid,
                    "doctor_id": random.choice(doctor_ids),
                    "scheduled_at": scheduled,
                    "duration": random.choice(["15", "30", "45"]),
                    "consultation_type": random.choice(CONSULTATION_TYPES),
                    "status": status,
                    "symptoms": json.dumps(fake.words(nb=random.randint(1, 3))),
                    "diagnosis": fake.sentence() if status == "completed" else None,
                    "doctor_notes": fake.text(max_nb_chars=120) if status == "completed" else None,
                    "follow_up_required": random_bool(0.2),
                    "consultation_fee": random.choice([50, 75, 100, 150]),
                    "payment_status": "paid" if status == "completed" else "pending",
                    "video_room_name": f"healthcare-{int(scheduled.timestamp() * 1000)}-{fake.lexify('?????????')}",
                    "meeting_status": "completed" if past else "scheduled",
                    "created_at": scheduled - timedelta(days=random.randint(1, 14)),
                    "updated_at": scheduled,
                }
            )
    if rows:
        conn.execute(consultations.insert(), rows)
    return rows


def seed_messages(conn, consultation_rows):
    patient_users = dict(conn.execute(select(patients.c.id, patients.c.user_id)).all())
    doctor_users = dict(conn.execute(select(doctors.c.id, doctors.c.user_id)).all())
    rows = []
    for c in consultation_rows:
        sent = c["scheduled_at"]
        for _ in range(random.randint(*MESSAGES_PER_CONSULTATION)):
            sent = sent + timedelta(minutes=random.randint(1, 10))
            sender = random.choice([patient_users[c["patient_id"]], doctor_users[c["doctor_id"]]])
            rows.append(
                {
                    "id": new_id(),
                    "consultation_id": c["id"],
                    "sender_id": sender,
                    "content": fake.sentence(),
                    "message_type": "text",
                    "status": random.choice(["sent", "delivered", "read"]),
                    "created_at": sent,
                    "updated_at": sent,
                }
            )
    if rows:
        conn.execute(messages.insert(), rows)


def seed_prescriptions(conn, consultation_rows):
    rows = []
    for c in consultation_rows:
        if c["status"] != "completed" or not random_bool(0.5):
            continue
        duration = random.choice([7, 14, 30])
        rows.append(
            {
                "id": new_id(),
                "consultation_id": c["id"],
                "patient_id": c["patient_id"],
                "doctor_id": c["doctor_id"],
                "medication_name": random.choice(MEDICATIONS),
                "dosage": random.choice(["250mg", "500mg", "10mg", "20mg"]),
                "frequency": random.choice(MEDICATION_FREQUENCIES[:4]),
                "duration": duration,
                "quantity": duration * random.randint(1, 3),
                "instructions": "Take with food",
                "status": random.choice(PRESCRIPTION_STATUSES),
                "start_date": c["scheduled_at"],
                "end_date": c["scheduled_at"] + timedelta(days=duration),
                "is_active": c["scheduled_at"] + timedelta(days=duration) > datetime.utcnow(),
                "created_at": c["scheduled_at"],
                "updated_at": c["scheduled_at"],
            }
        )
    if rows:
        conn.execute(prescriptions.insert(), rows)
    return rows


def seed_reminders(conn, patient_ids, prescription_rows):
    by_patient = {}
    for p in prescription_rows:
        by_patient.setdefault(p["patient_id"], []).append(p["id"])
    rows = []
    now = datetime.utcnow()
    for pid in patient_ids:
        for _ in range(per_patient_count("reminders")):
            reminder_type = random.choice(REMINDER_TYPES)
            prescription_id = None
            if reminder_type == "medication" and by_patient.get(pid):
                prescription_id = random.choice(by_patient[pid])
            at = time(hour=random.choice([8, 12, 18, 21]))
            rows.append(
                {
                    "id": new_id(),
                    "patient_id": pid,
                    "prescription_id": prescription_id,
                    "reminder_type": reminder_type,
                    "title": f"{reminder_type.replace('_', ' ').title()} reminder",
                    "message": fake.sentence(),
                    "reminder_time": at,
                    "reminder_days": json.dumps(["monday", "wednesday", "friday"]),
                    "status": random.choice(["active", "active", "paused", "completed"]),
                    "next_reminder_at": datetime.combine(now.date(), at) + timedelta(days=random.randint(0, 3)),
                    "created_at": now,
                    "updated_at": now,
                }
            )
    if rows:
        conn.execute(reminders.insert(), rows)


def seed_symptoms(conn, patient_ids):
    rows = []
    for pid in patient_ids:
        for _ in range(per_patient_count("symptoms")):
            created = random_datetime_around(days_forward=0)
            rows.append(
                {
                    "id": new_id(),
                    "patient_id": pid,
                    "symptom_name": random.choice(["Headache", "Cough", "Rash", "Fatigue", "Nausea"]),
                    "category": random.choice(SYMPTOM_CATEGORIES),
                    "description": fake.sentence(),
                    "severity": random.choice(SYMPTOM_SEVERITIES),
                    "duration": random.choice(["1 day", "3 days", "1 week"]),
                    "onset_date": created - timedelta(days=random.randint(0, 7)),
                    "resolved_date": created + timedelta(days=3) if random_bool(0.4) else None,
                    "urgency_level": random.randint(1, 5),
                    "created_at": created,
                    "updated_at": created,
                }
            )
    if rows:
        conn.execute(symptoms.insert(), rows)


# --------------------------------------------------------------------
# MAIN
# --------------------------------------------------------------------
def main():
    engine = init_engine()
    create_schema(engine)

    with engine.begin() as conn:
        print("Seeding doctors...")
        doctor_ids = seed_doctors(conn)

        print("Seeding patients...")
        patient_ids = seed_patients(conn)

        print("Seeding consultations...")
        consultation_rows = seed_consultations(conn, patient_ids, doctor_ids)

        print("Seeding dependent tables...")
        seed_messages(conn, consultation_rows)
        prescription_rows = seed_prescriptions(conn, consultation_rows)
        seed_reminders(conn, patient_ids, prescription_rows)
        seed_symptoms(conn, patient_ids)

        print("Done!")


if __name__ == "__main__":
    main()
