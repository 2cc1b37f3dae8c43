# Overview: Service-layer operations for generated identifiers (transaction numbers, customer codes).

"""
Generated identifiers have the shape <PREFIX>-<epoch ms>-<6 chars A-Z0-9>.

The random suffix comes from `secrets`, so two callers in the same
millisecond still collide only with probability 36**-6. The unique
constraint on the column is the actual guarantee: callers run their unit
of work through retry_on_identifier_conflict(), which regenerates the
identifier on IntegrityError and gives up with ConflictError after a
bounded number of attempts.
"""

from __future__ import annotations

import logging
import secrets
import string

from sqlalchemy.exc import IntegrityError

from ..config import setting
from ..errors import ConflictError
from ..time_utils import epoch_millis

logger = logging.getLogger(__name__)

SUFFIX_ALPHABET = string.ascii_uppercase + string.digits
SUFFIX_LENGTH = 6
DEFAULT_RETRY_ATTEMPTS = 3


def random_suffix(length: int = SUFFIX_LENGTH) -> str:
    return "".join(secrets.choice(SUFFIX_ALPHABET) for _ in range(length))


def generate_identifier(prefix: str, now=None) -> str:
    return f"{prefix}-{epoch_millis(now)}-{random_suffix()}"


def generate_transaction_number(now=None) -> str:
    return generate_identifier(setting("TRANSACTION_NUMBER_PREFIX", "TXN"), now)


def generate_customer_code(now=None) -> str:
    return generate_identifier(setting("CUSTOMER_CODE_PREFIX", "CUST"), now)


def is_identifier_collision(exc: IntegrityError, constraint: str, column: str) -> bool:
    """
    True when exc is a unique violation on the identifier column.

    PostgreSQL reports the constraint name; SQLite reports
    "UNIQUE constraint failed: <table>.<column>".
    """
    message = str(exc.orig)
    if constraint in message:
        return True
    return "UNIQUE" in message.upper() and column in message


def retry_on_identifier_conflict(
    unit, *, session, make_identifier, label: str, constraint: str, column: str, attempts: int | None = None
):
    """
    Run unit(identifier) and retry with a fresh identifier on a collision.

    unit must perform the whole write (including commit) so that a retry
    starts from a rolled-back session. Only a unique violation on the
    identifier (constraint name, or table.column on SQLite) is retried; any
    other IntegrityError propagates unchanged.
    """
    if attempts is None:
        attempts = setting("IDENTIFIER_RETRY_ATTEMPTS", DEFAULT_RETRY_ATTEMPTS)

    for attempt in range(1, attempts + 1):
        identifier = make_identifier()
        try:
            return unit(identifier)
        except IntegrityError as exc:
            session.rollback()
            if not is_identifier_collision(exc, constraint, column):
                raise
            logger.warning("%s %s collided (attempt %d/%d)", label, identifier, attempt, attempts)

    raise ConflictError(
        f"Could not generate a unique {label} after {attempts} attempts",
        {"attempts": attempts},
    )
