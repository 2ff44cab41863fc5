"""
Error taxonomy and the read / mutation failure discipline.

Reads degrade: an unauthenticated caller or an unreachable store yields the
operation's default (empty list, ``None``, zeroed summary).  Mutations
always raise.  Authorization and not-found failures raise in both, and so
do SQLAlchemy usage errors, which are bugs rather than outages.
"""

import logging
from functools import wraps
from typing import Any, Callable

from sqlalchemy.exc import DBAPIError, SQLAlchemyError

logger = logging.getLogger(__name__)


class TelehealthError(Exception):
    """Base class for labelled service failures."""
    status_code = 500


class NotAuthenticatedError(TelehealthError):
    status_code = 401


class NotAuthorizedError(TelehealthError):
    status_code = 403


class NotFoundError(TelehealthError):
    status_code = 404


class ValidationError(TelehealthError, ValueError):
    status_code = 400


class StoreError(TelehealthError):
    status_code = 500


def read_operation(default_factory: Callable[[], Any]):
    """Decorate ``fn(engine, caller, ...)`` as a degrading read."""
    def decorator(func):
        @wraps(func)
        def wrapper(engine, caller, *args, **kwargs):
            if caller is None:
                return default_factory()
            try:
                return func(engine, caller, *args, **kwargs)
            except DBAPIError:
                logger.exception("%s failed; returning default result", func.__name__)
                return default_factory()
        return wrapper
    return decorator


def mutation(func):
    """Decorate ``fn(engine, caller, ...)`` as a raising write."""
    @wraps(func)
    def wrapper(engine, caller, *args, **kwargs):
        if caller is None:
            raise NotAuthenticatedError("Not authenticated")
        try:
            return func(engine, caller, *args, **kwargs)
        except SQLAlchemyError as e:
            logger.exception("%s failed", func.__name__)
            raise StoreError(f"{func.__name__} failed") from e
    return wrapper
