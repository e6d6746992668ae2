"""
Base classes and utilities for the service layer.

Services return a ``ServiceResult`` for expected failures (validation, lookup,
permission) and reserve exceptions for unexpected conditions. Views map the
error codes in ``ErrorCodes`` to HTTP status codes.
"""

import logging
import time
from dataclasses import dataclass
from functools import wraps
from typing import Any, Callable, Generic, Optional, TypeVar

T = TypeVar("T")


@dataclass
class ServiceResult(Generic[T]):
    """
    A result type that encapsulates success or failure from service operations.

    Attributes:
        ok: True if operation succeeded, False otherwise
        value: The success value (present if ok=True)
        error: Error code (present if ok=False)
        error_detail: Human-readable error message (present if ok=False)

    Examples:
        >>> result = service_ok(settlement)
        >>> if result.ok:
        ...     return Response({"settlement": result.value}, 200)

        >>> result = service_err(ErrorCodes.NOT_FOUND, "Image 123 does not exist")
        >>> print(result.error)  # "not_found"
    """

    ok: bool
    value: Optional[T] = None
    error: Optional[str] = None
    error_detail: Optional[str] = None

    def map(self, func: Callable[[T], Any]) -> "ServiceResult":
        """Transform the success value if ok=True, otherwise pass through error."""
        if self.ok and self.value is not None:
            try:
                return service_ok(func(self.value))
            except Exception as e:
                return service_err(ErrorCodes.INTERNAL_ERROR, str(e))
        return self

    def to_dict(self) -> dict:
        """
        Convert to dictionary for JSON serialization.

        Returns:
            Dictionary with 'success' and either 'data' or 'error'
        """
        if self.ok:
            return {"success": True, "data": self.value}
        return {
            "success": False,
            "error": {"code": self.error, "message": self.error_detail},
        }


def service_ok(value: T = None) -> ServiceResult[T]:
    """Create a successful ServiceResult."""
    return ServiceResult(ok=True, value=value)


def service_err(error: str, error_detail: str = "") -> ServiceResult:
    """
    Create a failed ServiceResult.

    Args:
        error: Error code from ErrorCodes
        error_detail: Human-readable error message

    Returns:
        ServiceResult with ok=False and error information
    """
    return ServiceResult(ok=False, error=error, error_detail=error_detail or error)


class BaseService:
    """
    Base class for all services providing common functionality.

    Provides:
    - Logging with class name
    - Performance timing decorator

    Usage:
        class CheckoutService(BaseService):
            def __init__(self, payment_provider):
                super().__init__()
                self.payment_provider = payment_provider

            @BaseService.log_performance
            def create_checkout_session(self, buyer, image_ids, return_url):
                self.logger.info(f"Creating checkout for {len(image_ids)} images")
    """

    def __init__(self):
        """Initialize base service with logger."""
        self.logger = logging.getLogger(self.__class__.__module__ + "." + self.__class__.__name__)

    @staticmethod
    def log_performance(func: Callable) -> Callable:
        """
        Decorator to log performance of service methods.

        Logs execution time and any errors that occur. Exceptions are logged
        with their traceback and re-raised.
        """

        @wraps(func)
        def wrapper(self, *args, **kwargs):
            start_time = time.time()
            method_name = f"{self.__class__.__name__}.{func.__name__}"

            try:
                self.logger.debug(f"{method_name} started")
                result = func(self, *args, **kwargs)
                elapsed_time = (time.time() - start_time) * 1000  # Convert to ms

                if isinstance(result, ServiceResult):
                    if result.ok:
                        self.logger.info(f"{method_name} completed successfully in {elapsed_time:.2f}ms")
                    else:
                        self.logger.warning(
                            f"{method_name} failed with error '{result.error}' in {elapsed_time:.2f}ms"
                        )
                else:
                    self.logger.info(f"{method_name} completed in {elapsed_time:.2f}ms")

                return result

            except Exception as e:
                elapsed_time = (time.time() - start_time) * 1000
                self.logger.error(
                    f"{method_name} raised exception after {elapsed_time:.2f}ms: {str(e)}",
                    exc_info=True,
                )
                raise

        return wrapper


class ErrorCodes:
    """Standard error codes used across Pixora services."""

    # Request errors
    INVALID_REQUEST = "invalid_request"
    NOT_FOUND = "not_found"
    NOT_ALLOWED = "not_allowed"
    UNAUTHORIZED = "unauthorized"

    # Upstream errors
    PAYMENT_PROVIDER_ERROR = "payment_provider_error"

    # Internal errors
    INTERNAL_ERROR = "internal_error"


# HTTP status returned by the API for each service error code
ERROR_HTTP_STATUS = {
    ErrorCodes.INVALID_REQUEST: 400,
    ErrorCodes.UNAUTHORIZED: 400,
    ErrorCodes.NOT_FOUND: 404,
    ErrorCodes.NOT_ALLOWED: 403,
    ErrorCodes.PAYMENT_PROVIDER_ERROR: 502,
    ErrorCodes.INTERNAL_ERROR: 500,
}


def http_status_for(result: ServiceResult) -> int:
    return ERROR_HTTP_STATUS.get(result.error, 500)
