"""
Centralized error handling for document store operations.

Provides a decorator that logs store calls consistently and translates
driver failures into the InfrastructureError family. Errors are never
swallowed and never retried here; retry policy belongs to the driver.
"""

import logging
from functools import wraps
from typing import Any, Callable, TypeVar

from pymongo.errors import DuplicateKeyError, PyMongoError

from .errors import DocRepoError, DuplicateRecord, StoreUnavailable

T = TypeVar("T")


def store_operation(
    operation_name: str,
    critical: bool = True,
    log_success: bool = False,
):
    """
    Decorator for document store operations with consistent error handling.

    Provides:
    - Optional DEBUG logging on success
    - ERROR logging with stack trace for critical driver failures,
      WARNING without trace otherwise
    - Translation of DuplicateKeyError into DuplicateRecord (409)
    - Translation of any other PyMongoError into StoreUnavailable
    - docrepo errors pass through untouched

    Args:
        operation_name: Human-readable operation name (e.g., "find_one")
        critical: If True, logs at ERROR level with stack trace; if False, WARNING
        log_success: If True, logs successful completion at DEBUG level

    Usage:
        @store_operation("find_one")
        def find_one(self, filter):
            ...
    """

    def decorator(func: Callable[..., T]) -> Callable[..., T]:
        @wraps(func)
        def wrapper(*args: Any, **kwargs: Any) -> T:
            logger = logging.getLogger(func.__module__)
            try:
                result = func(*args, **kwargs)
            except DocRepoError:
                raise
            except DuplicateKeyError as e:
                logger.info(f"[store] [{operation_name}] Duplicate key (code {e.code})")
                raise DuplicateRecord() from e
            except PyMongoError as e:
                log_level = logging.ERROR if critical else logging.WARNING
                logger.log(
                    log_level,
                    f"[store] [{operation_name}] Failed: {e}",
                    exc_info=critical,
                )
                raise StoreUnavailable(f"{operation_name} failed: {e}") from e
            if log_success:
                logger.debug(f"[store] [{operation_name}] Completed")
            return result

        return wrapper

    return decorator


def log_on_exception(
    logger: logging.Logger,
    operation: str,
    level: int = logging.WARNING,
    include_traceback: bool = False,
):
    """
    Context manager for logging exceptions without swallowing them.

    Usage:
        with log_on_exception(logger, "token signing", level=logging.ERROR):
            jwt.encode(...)

    Args:
        logger: Logger instance to use
        operation: Operation description for the log message
        level: Log level (default: WARNING)
        include_traceback: Whether to include stack trace in log
    """

    class ExceptionLogger:
        def __enter__(self):
            return self

        def __exit__(self, exc_type, exc_val, exc_tb):
            if exc_val is not None:
                logger.log(level, f"[{operation}] Failed: {exc_val}", exc_info=include_traceback)
            # Do not suppress the exception
            return False

    return ExceptionLogger()
