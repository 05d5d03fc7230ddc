import logging
import sys
from enum import Enum
from functools import wraps
from itertools import chain
from typing import Any, Callable, Final

from loguru import logger
from returns.io import IOFailure, IOResult, IOSuccess
from returns.result import Failure, Result, Success

from exceptions import ComputeTaskFailure

LOG_FORMAT: Final[str] = (
    "<green>{time:HH:mm:ss.SSS}</green> | <level>{level: <8}</level> | "
    "<cyan>{name}</cyan>:<cyan>{function}</cyan> - <level>{message}</level>"
)


def configure_logging(level: str = "INFO") -> int:
    """
    Replace loguru's default sink with a stderr sink at `level`.

    :returns: The id of the installed sink, usable with `logger.remove`.
    """
    logger.remove()
    return logger.add(sys.stderr, level=level.upper(), format=LOG_FORMAT)


def _debug_function_signature(func: Callable[..., Any], *args, **kwargs):
    signature = ", ".join(
        chain(
            (repr(arg) for arg in args),
            (f"{key}={value!r}" for key, value in kwargs.items()),
        )
    )
    logger.debug(f"Calling {func.__name__}({signature})")


class FailureLevel(Enum):
    WARNING = logging.WARNING
    ERROR = logging.ERROR
    CRITICAL = logging.CRITICAL


def log_failure(
    failure_message: str, failure_level: FailureLevel, error: BaseException | str
) -> None:
    """
    Log a failure at `failure_level`, with the error itself at debug level.

    The individual task errors of a `ComputeTaskFailure` are logged one by one.
    """
    if isinstance(error, ComputeTaskFailure):
        for index, task_error in error.failures.items():
            logger.debug(f"{failure_message}: image {index}: {task_error!r}")
    else:
        logger.debug(f"{failure_message}: {error}")
    logger.log(failure_level.name, failure_message)


def _log_outcome(
    result: Result | IOResult,
    failure_message: str,
    success_message: str | None,
    failure_level: FailureLevel,
) -> None:
    match result:
        case Success() | IOSuccess():
            if success_message:
                logger.info(success_message)
        case Failure(error) | IOFailure(Failure(error)):
            log_failure(failure_message, failure_level, error)


def log_railway_function(
    failure_message: str,
    success_message: str | None = None,
    failure_level: FailureLevel = FailureLevel.ERROR,
    trace_calls: bool = False,
):
    """
    Log the outcome of a function returning a `Result` or `IOResult` container.

    Exceptions raised by the function itself are not caught.

    :param failure_message: Logged at `failure_level` when a failure is returned.
    :param success_message: Logged at info level on success; nothing when empty.
    :param failure_level: Level of the failure message.
    :param trace_calls: Also log every call with its arguments at debug level.
    """

    def decorator(func):
        @wraps(func)
        def wrapper(*args, **kwargs):
            if trace_calls:
                _debug_function_signature(func, *args, **kwargs)
            result = func(*args, **kwargs)
            if isinstance(result, (Result, IOResult)):
                _log_outcome(result, failure_message, success_message, failure_level)
            return result

        return wrapper

    return decorator
