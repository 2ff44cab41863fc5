"""
Unit tests for the read / mutation failure discipline.
"""

import pytest
from sqlalchemy.exc import IntegrityError, InvalidRequestError, OperationalError

from telehealth.errors import NotAuthenticatedError, StoreError, mutation, read_operation


def _raiser(exc):
    def operation(engine, caller):
        raise exc
    return operation


def test_read_without_caller_returns_default():
    assert read_operation(list)(_raiser(AssertionError("not called")))(None, None) == []


def test_read_degrades_when_store_is_unreachable():
    failing = read_operation(list)(_raiser(OperationalError("SELECT 1", {}, Exception("down"))))
    assert failing(None, object()) == []


def test_read_surfaces_query_bugs():
    broken = read_operation(list)(_raiser(InvalidRequestError("Ambiguous column name 'user_id'")))
    with pytest.raises(InvalidRequestError):
        broken(None, object())


def test_mutation_requires_caller():
    with pytest.raises(NotAuthenticatedError):
        mutation(_raiser(AssertionError("not called")))(None, None)


def test_mutation_wraps_store_failures():
    failing = mutation(_raiser(IntegrityError("INSERT", {}, Exception("duplicate"))))
    with pytest.raises(StoreError) as e:
        failing(None, object())
    assert isinstance(e.value.__cause__, IntegrityError)
