"""
Domain Exceptions
Structured errors raised by the order engine and its collaborators
"""
from typing import Dict, Any, List, Optional

from fastapi import status


class APIError(Exception):
    """Custom API error with structured information"""

    def __init__(
        self,
        message: str,
        status_code: int = 500,
        error_code: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None
    ):
        self.message = message
        self.status_code = status_code
        self.error_code = error_code
        self.details = details or {}
        super().__init__(message)


class OrderValidationError(APIError):
    """
    Input rejected before anything was written.

    ``field_errors`` lists every violated field, not just the first one.
    """

    def __init__(self, field_errors: List[Dict[str, str]], message: str = "Validation failed"):
        self.field_errors = list(field_errors)
        super().__init__(
            message=message,
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            error_code="VALIDATION_ERROR",
            details={"field_errors": self.field_errors}
        )

    @classmethod
    def for_field(cls, field: str, message: str) -> "OrderValidationError":
        return cls([{"field": field, "message": message}])

    @property
    def fields(self) -> List[str]:
        return [error["field"] for error in self.field_errors]


class IllegalTransitionError(APIError):
    """A status or payment status move the state machine does not allow"""

    def __init__(self, current: str, requested: str, machine: str = "status", reason: Optional[str] = None):
        self.current = current
        self.requested = requested
        self.machine = machine
        message = reason or f"Cannot change {machine} from '{current}' to '{requested}'"
        super().__init__(
            message=message,
            status_code=status.HTTP_409_CONFLICT,
            error_code="ILLEGAL_TRANSITION",
            details={"machine": machine, "current": current, "requested": requested}
        )


class OrderNotFoundError(APIError):

    def __init__(self, order_id: str):
        self.order_id = order_id
        super().__init__(
            message=f"Order {order_id} not found",
            status_code=status.HTTP_404_NOT_FOUND,
            error_code="NOT_FOUND",
            details={"order_id": order_id}
        )


class PersistenceError(APIError):
    """The data store failed or was unreachable"""

    def __init__(self, operation: str, cause: Optional[Exception] = None):
        self.operation = operation
        self.cause = cause
        message = f"Persistence failure during {operation}"
        if cause is not None:
            message = f"{message}: {cause}"
        super().__init__(
            message=message,
            status_code=status.HTTP_502_BAD_GATEWAY,
            error_code="PERSISTENCE_ERROR",
            details={"operation": operation}
        )


class PaymentProviderError(APIError):
    """The payment provider failed or rejected a call"""

    error_code = "PAYMENT_PROVIDER_ERROR"

    def __init__(self, message: str, provider_status: Optional[int] = None):
        self.provider_status = provider_status
        super().__init__(
            message=message,
            status_code=status.HTTP_502_BAD_GATEWAY,
            error_code=type(self).error_code,
            details={"provider_status": provider_status} if provider_status else None
        )


class PaymentInitiationError(PaymentProviderError):
    """The payment provider could not produce a checkout link"""

    error_code = "PAYMENT_INITIATION_ERROR"


class RecordMappingError(APIError):
    """A stored row could not be mapped onto the current order schema"""

    def __init__(self, record_type: str, reason: str):
        self.record_type = record_type
        self.reason = reason
        super().__init__(
            message=f"Invalid {record_type} record: {reason}",
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            error_code="RECORD_MAPPING_ERROR",
            details={"record_type": record_type}
        )


class CommonErrors:
    """Common error responses for reuse"""

    @staticmethod
    def not_found(resource: str = "Resource") -> APIError:
        return APIError(
            message=f"{resource} not found",
            status_code=status.HTTP_404_NOT_FOUND,
            error_code="NOT_FOUND"
        )

    @staticmethod
    def bad_request(message: str = "Bad request") -> APIError:
        return APIError(
            message=message,
            status_code=status.HTTP_400_BAD_REQUEST,
            error_code="BAD_REQUEST"
        )
