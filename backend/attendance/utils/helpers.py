"""Helper functions for the application."""
import logging
import time
from datetime import datetime, timezone
from typing import Any, Callable, Tuple, Type

from flask import jsonify

from attendance.utils.errors import TransientStoreError

logger = logging.getLogger(__name__)


def utcnow() -> datetime:
    """Trusted server clock as naive UTC, the form stored in the database."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def to_naive_utc(value: datetime) -> datetime:
    """Normalise an aware datetime to naive UTC; naive values are assumed UTC."""
    if value.tzinfo is not None:
        value = value.astimezone(timezone.utc).replace(tzinfo=None)
    return value


def retry_call(
    func: Callable[[], Any],
    attempts: int,
    exceptions: Tuple[Type[BaseException], ...],
    backoff_seconds: float = 0.0,
    on_retry: Callable[[], None] = None
) -> Any:
    """Call func, retrying on the given exceptions a bounded number of times.

    Raises TransientStoreError once every attempt has failed.
    """
    attempts = max(1, int(attempts))
    for attempt in range(1, attempts + 1):
        try:
            return func()
        except exceptions as exc:
            if attempt == attempts:
                logger.error("Store call failed after %d attempts: %s", attempts, exc)
                raise TransientStoreError("Attendance store is unavailable, please retry") from exc
            logger.warning("Store call failed (attempt %d/%d): %s", attempt, attempts, exc)
            if on_retry:
                on_retry()
            if backoff_seconds:
                time.sleep(backoff_seconds * attempt)


def handle_error(error, status_code: int):
    """Handle application errors with consistent format."""
    return jsonify({
        'error': True,
        'message': str(error),
        'status_code': status_code
    }), status_code


def success_response(data: Any = None, message: str = "Success", status_code: int = 200):
    """Return consistent success response."""
    response = {
        'error': False,
        'message': message
    }

    if data is not None:
        response['data'] = data

    return jsonify(response), status_code


def error_response(message: str, status_code: int = 400):
    """Return consistent error response."""
    return jsonify({
        'error': True,
        'message': message,
        'status_code': status_code
    }), status_code
