"""
Doctor earnings – period summaries, transactions, per-type breakdown and
the monthly trend, computed with pandas over completed consultations.

Every window is half-open: ``start <= scheduled_at < end``.
"""

import logging
from datetime import datetime
from typing import Any, Dict, List, Optional, Tuple

import pandas as pd
from sqlalchemy import select

from telehealth.config import DEFAULT_PAYMENT_METHOD, EARNINGS_TREND_MONTHS, TRANSACTIONS_LIMIT
from telehealth.errors import ValidationError, read_operation
from telehealth.rbac import get_doctor_profile_id, require_doctor
from telehealth.schema import consultations, patients, users

logger = logging.getLogger(__name__)

PERIODS = ("this_month", "last_month", "this_quarter", "this_year")

# consultation_type -> breakdown key
BREAKDOWN_KEYS = {
    "video_call": "video",
    "chat_only": "chat",
    "phone_call": "phone",
    "in_person": "in_person",
}

Window = Tuple[datetime, datetime]


# ── Calendar windows ─────────────────────────────────────────────────

def month_start(year: int, month: int) -> datetime:
    """First instant of *month*; months outside 1..12 roll over the year."""
    carry, index = divmod(month - 1, 12)
    return datetime(year + carry, index + 1, 1)


def period_bounds(period: str, now: datetime) -> Tuple[Window, Window]:
    """Return ``(current, previous)`` windows for *period* relative to *now*."""
    y, m = now.year, now.month
    if period == "this_month":
        return (month_start(y, m), month_start(y, m + 1)), (month_start(y, m - 1), month_start(y, m))
    if period == "last_month":
        return (month_start(y, m - 1), month_start(y, m)), (month_start(y, m - 2), month_start(y, m - 1))
    if period == "this_quarter":
        q = (m - 1) // 3 * 3 + 1
        return (month_start(y, q), month_start(y, q + 3)), (month_start(y, q - 3), month_start(y, q))
    if period == "this_year":
        return (month_start(y, 1), month_start(y + 1, 1)), (month_start(y - 1, 1), month_start(y, 1))
    raise ValidationError(f"Unknown earnings period '{period}'")


# ── Frame helpers ────────────────────────────────────────────────────

def _completed_frame(conn, doctor_id: str) -> pd.DataFrame:
    query = (
        select(
            consultations.c.scheduled_at,
            consultations.c.consultation_fee,
            consultations.c.consultation_type,
        )
        .where(consultations.c.doctor_id == doctor_id)
        .where(consultations.c.status == "completed")
    )
    df = pd.read_sql_query(query, conn)
    df["scheduled_at"] = pd.to_datetime(df["scheduled_at"])
    df["consultation_fee"] = pd.to_numeric(df["consultation_fee"]).fillna(0.0)
    return df


def _load_completed(engine, caller) -> Optional[pd.DataFrame]:
    require_doctor(caller)
    with engine.connect() as conn:
        doctor_id = get_doctor_profile_id(conn, caller.id)
        if doctor_id is None:
            return None
        return _completed_frame(conn, doctor_id)


def window_totals(df: pd.DataFrame, window: Window) -> Tuple[float, int]:
    """(sum of fees, number of consultations) inside *window*."""
    start, end = window
    mask = (df["scheduled_at"] >= start) & (df["scheduled_at"] < end)
    return float(df.loc[mask, "consultation_fee"].sum()), int(mask.sum())


def summarize_period(df: pd.DataFrame, period: str, now: datetime) -> Dict[str, Any]:
    current, previous = period_bounds(period, now)
    total, count = window_totals(df, current)
    previous_total, _ = window_totals(df, previous)
    return {
        "period": period,
        "total_earnings": total,
        "consultations": count,
        "average_per_consultation": total / count if count else 0.0,
        "growth": (total - previous_total) / previous_total * 100 if previous_total > 0 else 0.0,
    }


def _empty_breakdown() -> Dict[str, Dict[str, Any]]:
    return {key: {"count": 0, "total": 0.0} for key in BREAKDOWN_KEYS.values()}


# ── Operations ───────────────────────────────────────────────────────

@read_operation(lambda: None)
def get_doctor_earnings(engine, caller, period: str = "this_month",
                        now: Optional[datetime] = None) -> Optional[Dict[str, Any]]:
    if period not in PERIODS:
        raise ValidationError(f"Unknown earnings period '{period}'")
    df = _load_completed(engine, caller)
    if df is None:
        return None
    return summarize_period(df, period, now or datetime.utcnow())


@read_operation(list)
def get_all_doctor_earnings(engine, caller, now: Optional[datetime] = None) -> List[Dict[str, Any]]:
    """One summary per period, computed from a single read."""
    df = _load_completed(engine, caller)
    if df is None:
        return []
    now = now or datetime.utcnow()
    return [summarize_period(df, period, now) for period in PERIODS]


@read_operation(list)
def get_doctor_transactions(engine, caller, limit: int = TRANSACTIONS_LIMIT) -> List[Dict[str, Any]]:
    """Most recent consultations of any status, newest first."""
    require_doctor(caller)
    with engine.connect() as conn:
        doctor_id = get_doctor_profile_id(conn, caller.id)
        if doctor_id is None:
            return []
        rows = conn.execute(
            select(
                consultations.c.id,
                consultations.c.scheduled_at,
                consultations.c.consultation_type,
                consultations.c.consultation_fee,
                consultations.c.status,
                consultations.c.created_at,
                users.c.first_name,
                users.c.last_name,
                users.c.email,
            )
            .select_from(
                consultations
                .join(patients, consultations.c.patient_id == patients.c.id)
                .join(users, patients.c.user_id == users.c.id)
            )
            .where(consultations.c.doctor_id == doctor_id)
            .order_by(consultations.c.scheduled_at.desc())
            .limit(limit)
        ).mappings().all()

    return [
        {
            "id": r["id"],
            "consultation_id": r["id"],
            "date": r["scheduled_at"],
            "patient_name": f"{r['first_name']} {r['last_name']}",
            "patient_email": r["email"],
            "consultation_type": r["consultation_type"],
            "amount": r["consultation_fee"] or 0,
            "status": r["status"],
            "payment_method": DEFAULT_PAYMENT_METHOD,
            "created_at": r["created_at"],
        }
        for r in rows
    ]


@read_operation(_empty_breakdown)
def get_doctor_earnings_breakdown(engine, caller) -> Dict[str, Dict[str, Any]]:
    """Completed consultation counts and fee totals per consultation type."""
    breakdown = _empty_breakdown()
    df = _load_completed(engine, caller)
    if df is None or df.empty:
        return breakdown

    grouped = df.groupby("consultation_type")["consultation_fee"].agg(["count", "sum"])
    for consultation_type, row in grouped.iterrows():
        key = BREAKDOWN_KEYS.get(consultation_type)
        if key is None:
            logger.warning("Unrecognised consultation type %r in earnings", consultation_type)
            continue
        breakdown[key] = {"count": int(row["count"]), "total": float(row["sum"])}
    return breakdown


@read_operation(lambda: None)
def get_doctor_earnings_stats(engine, caller, now: Optional[datetime] = None):
    df = _load_completed(engine, caller)
    if df is None:
        return None
    now = now or datetime.utcnow()

    def block(window: Optional[Window]) -> Dict[str, Any]:
        if window is None:
            earnings, count = float(df["consultation_fee"].sum()), len(df)
        else:
            earnings, count = window_totals(df, window)
        return {"earnings": earnings, "consultations": count}

    return {
        "monthly": block(period_bounds("this_month", now)[0]),
        "yearly": block(period_bounds("this_year", now)[0]),
        "total": block(None),
    }


@read_operation(list)
def get_monthly_earnings_trend(engine, caller, months: int = EARNINGS_TREND_MONTHS,
                               now: Optional[datetime] = None) -> List[Dict[str, Any]]:
    """Earnings per calendar month for the last *months* months, oldest first."""
    if months <= 0:
        raise ValidationError("months must be positive")
    df = _load_completed(engine, caller)
    if df is None:
        return []
    now = now or datetime.utcnow()

    by_month = (
        df.assign(month=df["scheduled_at"].dt.to_period("M"))
        .groupby("month")["consultation_fee"]
        .agg(["sum", "count"])
    )

    trend = []
    for offset in range(months - 1, -1, -1):
        start = month_start(now.year, now.month - offset)
        key = pd.Period(start, freq="M")
        if key in by_month.index:
            earnings, count = float(by_month.at[key, "sum"]), int(by_month.at[key, "count"])
        else:
            earnings, count = 0.0, 0
        trend.append({
            "month": start.strftime("%b %Y"),
            "earnings": earnings,
            "consultations": count,
        })
    return trend
