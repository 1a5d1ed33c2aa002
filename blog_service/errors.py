"""
Error taxonomy shared by the service and HTTP layers.

Lookups that find nothing return ``None`` rather than raising; only
store-level trouble surfaces as an exception.
"""
from enum import IntEnum

from sqlalchemy.exc import DisconnectionError, OperationalError, TimeoutError as PoolTimeoutError


class ResultCode(IntEnum):
    SUCCESS = 200
    ERROR = -1
    INVALID_PARAM = 400
    UNAUTHORIZED = 401
    SERVER_ERROR = 500


class TransientStoreError(Exception):
    """The relational store could not be reached in time (pool exhausted,
    connection dropped, statement timed out).  Callers may retry."""


class LoginRequired(Exception):
    """Raised by ``require_login`` when the request carries no session user."""


# SQLAlchemy exceptions that indicate the store, not the statement, failed.
TRANSIENT_ERRORS = (PoolTimeoutError, OperationalError, DisconnectionError)
