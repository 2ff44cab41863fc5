"""
Unit tests for doctor earnings – calendar windows and the pandas
aggregations over completed consultations.
"""

from datetime import datetime

import pytest

from conftest import NOW
from telehealth.earnings import (
    get_all_doctor_earnings,
    get_doctor_earnings,
    get_doctor_earnings_breakdown,
    get_doctor_earnings_stats,
    get_doctor_transactions,
    get_monthly_earnings_trend,
    month_start,
    period_bounds,
)
from telehealth.errors import NotAuthorizedError, ValidationError


# ── Tests: calendar windows ──────────────────────────────────────────

def test_month_start_rolls_over_years():
    assert month_start(2026, 0) == datetime(2025, 12, 1)
    assert month_start(2026, 13) == datetime(2027, 1, 1)
    assert month_start(2026, -10) == datetime(2025, 2, 1)


def test_period_bounds():
    assert period_bounds("this_month", NOW) == (
        (datetime(2026, 10, 1), datetime(2026, 11, 1)),
        (datetime(2026, 9, 1), datetime(2026, 10, 1)),
    )
    assert period_bounds("last_month", datetime(2026, 1, 15)) == (
        (datetime(2025, 12, 1), datetime(2026, 1, 1)),
        (datetime(2025, 11, 1), datetime(2025, 12, 1)),
    )
    assert period_bounds("this_quarter", NOW) == (
        (datetime(2026, 10, 1), datetime(2027, 1, 1)),
        (datetime(2026, 7, 1), datetime(2026, 10, 1)),
    )
    assert period_bounds("this_year", NOW) == (
        (datetime(2026, 1, 1), datetime(2027, 1, 1)),
        (datetime(2025, 1, 1), datetime(2026, 1, 1)),
    )
    with pytest.raises(ValidationError):
        period_bounds("this_decade", NOW)


# ── Fixture data ─────────────────────────────────────────────────────

@pytest.fixture
def ledger(factory, patient, doctor):
    """Completed consultations for *doctor*, plus noise that must not count."""
    ids = {
        "oct05": factory.consultation(patient, doctor, datetime(2026, 10, 5, 9), "completed", fee=100),
        "oct10": factory.consultation(patient, doctor, datetime(2026, 10, 10, 9), "completed",
                                      consultation_type="chat_only", fee=50),
        "oct12": factory.consultation(patient, doctor, datetime(2026, 10, 12, 9), "cancelled", fee=999),
        # last evening of the month still belongs to it
        "oct31": factory.consultation(patient, doctor, datetime(2026, 10, 31, 23), "completed", fee=25),
        "sep20": factory.consultation(patient, doctor, datetime(2026, 9, 20, 9), "completed", fee=100),
        "dec15": factory.consultation(patient, doctor, datetime(2025, 12, 15, 9), "completed",
                                      consultation_type="phone_call", fee=80),
    }
    factory.consultation(patient, factory.doctor("Other", "Doc"), datetime(2026, 10, 6, 9),
                         "completed", fee=500)
    return ids


# ── Tests: operations ────────────────────────────────────────────────

def test_this_month_summary(engine, doctor, ledger):
    summary = get_doctor_earnings(engine, doctor, "this_month", now=NOW)
    assert summary["period"] == "this_month"
    assert summary["total_earnings"] == pytest.approx(175.0)
    assert summary["consultations"] == 3
    assert summary["average_per_consultation"] == pytest.approx(175.0 / 3)
    assert summary["growth"] == pytest.approx(75.0)


def test_growth_is_zero_without_previous_earnings(engine, doctor, ledger):
    summary = get_doctor_earnings(engine, doctor, "last_month", now=NOW)
    assert summary["total_earnings"] == pytest.approx(100.0)
    assert summary["growth"] == 0.0


def test_all_periods(engine, doctor, ledger):
    summaries = {s["period"]: s for s in get_all_doctor_earnings(engine, doctor, now=NOW)}
    assert list(summaries) == ["this_month", "last_month", "this_quarter", "this_year"]
    assert summaries["this_quarter"]["growth"] == pytest.approx(75.0)
    assert summaries["this_year"]["total_earnings"] == pytest.approx(275.0)
    assert summaries["this_year"]["growth"] == pytest.approx((275.0 - 80.0) / 80.0 * 100)


def test_unknown_period(engine, doctor):
    with pytest.raises(ValidationError):
        get_doctor_earnings(engine, doctor, "forever", now=NOW)


def test_breakdown_by_type(engine, doctor, ledger):
    breakdown = get_doctor_earnings_breakdown(engine, doctor)
    assert breakdown["video"] == {"count": 3, "total": pytest.approx(225.0)}
    assert breakdown["chat"] == {"count": 1, "total": pytest.approx(50.0)}
    assert breakdown["phone"] == {"count": 1, "total": pytest.approx(80.0)}
    assert breakdown["in_person"] == {"count": 0, "total": 0.0}


def test_breakdown_without_data(engine, doctor):
    assert get_doctor_earnings_breakdown(engine, doctor)["video"] == {"count": 0, "total": 0.0}


def test_stats(engine, doctor, ledger):
    stats = get_doctor_earnings_stats(engine, doctor, now=NOW)
    assert stats["monthly"] == {"earnings": pytest.approx(175.0), "consultations": 3}
    assert stats["yearly"] == {"earnings": pytest.approx(275.0), "consultations": 4}
    assert stats["total"] == {"earnings": pytest.approx(355.0), "consultations": 5}


def test_monthly_trend(engine, doctor, ledger):
    trend = get_monthly_earnings_trend(engine, doctor, months=3, now=NOW)
    assert [t["month"] for t in trend] == ["Aug 2026", "Sep 2026", "Oct 2026"]
    assert [t["consultations"] for t in trend] == [0, 1, 3]
    assert trend[2]["earnings"] == pytest.approx(175.0)


def test_trend_on_empty_ledger(engine, doctor):
    trend = get_monthly_earnings_trend(engine, doctor, months=12, now=NOW)
    assert len(trend) == 12
    assert trend[0]["month"] == "Nov 2025"
    assert all(t["earnings"] == 0.0 for t in trend)


def test_transactions_include_every_status(engine, doctor, ledger):
    transactions = get_doctor_transactions(engine, doctor, limit=2)
    assert [t["id"] for t in transactions] == [ledger["oct31"], ledger["oct12"]]
    assert transactions[1]["status"] == "cancelled"
    assert transactions[0]["patient_name"] == "Alice Patient"
    assert transactions[0]["payment_method"] == "Credit Card"


def test_patients_are_rejected(engine, patient):
    with pytest.raises(NotAuthorizedError):
        get_doctor_earnings(engine, patient)


def test_without_caller(engine):
    assert get_doctor_earnings(engine, None) is None
    assert get_all_doctor_earnings(engine, None) == []
    assert get_doctor_earnings_breakdown(engine, None)["chat"] == {"count": 0, "total": 0.0}
