import traceback
from typing import Tuple
from loguru import logger
from functools import wraps
from pymongo.errors import ConnectionFailure

from exceptions.exceptions import TransientError


def log_error(error: Exception, context: str) -> Tuple[str, str]:
    """
    Internal utility for consistent error logging across services.
    Returns the error message and stack trace for debugging purposes.

    Args:
        error: The exception that occurred
        context: Description of where/why the error occurred

    Returns:
        Tuple of (error_message, stack_trace)
    """
    error_message = f"{context}: {str(error)}"
    stack_trace = traceback.format_exc()
    logger.exception(f"{error_message}\n{stack_trace}")
    return error_message, stack_trace


def translate_datastore_errors(f):
    """
    Decorator for repository methods.
    Converts pymongo connection failures into TransientError so callers can
    apply their own retry policy; everything else propagates unchanged.
    """

    @wraps(f)
    def decorated_function(*args, **kwargs):
        try:
            return f(*args, **kwargs)
        except ConnectionFailure as e:
            error_message, _ = log_error(e, f"Datastore unavailable in {f.__name__}")
            raise TransientError(error_message, guard="datastore_available") from e

    return decorated_function
