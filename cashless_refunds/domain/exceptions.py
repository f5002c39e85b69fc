"""Domain-specific exceptions"""

from enum import Enum
from typing import Any, Optional


class ErrorCode(str, Enum):
    """Machine-readable error codes returned to API callers"""

    INVALID_REQUEST = "INVALID_REQUEST"
    UNAUTHORIZED = "UNAUTHORIZED"
    CONFIGURATION_ERROR = "CONFIGURATION_ERROR"
    REFUND_DATA_ERROR = "REFUND_DATA_ERROR"
    NO_REFUNDS_AVAILABLE = "NO_REFUNDS_AVAILABLE"
    XML_GENERATION_ERROR = "XML_GENERATION_ERROR"
    SERVER_ERROR = "SERVER_ERROR"


class DomainException(Exception):
    """Base exception for domain layer"""

    code: ErrorCode = ErrorCode.SERVER_ERROR

    def __init__(self, message: str, details: Optional[Any] = None):
        super().__init__(message)
        self.message = message
        self.details = details


class UnauthorizedError(DomainException):
    """Caller credentials are missing or not recognised"""

    code = ErrorCode.UNAUTHORIZED

    def __init__(self, message: str, missing_credentials: bool = True):
        super().__init__(message)
        self.missing_credentials = missing_credentials


class InvalidRequestError(DomainException):
    """Caller-supplied options are malformed"""

    code = ErrorCode.INVALID_REQUEST


class ConfigurationError(DomainException):
    """Payer configuration or document options are invalid"""

    code = ErrorCode.CONFIGURATION_ERROR


class RefundDataError(DomainException):
    """Candidate source or ledger could not provide refund data"""

    code = ErrorCode.REFUND_DATA_ERROR

    def __init__(self, message: str, details: Optional[Any] = None, upstream_status: Optional[int] = None):
        super().__init__(message, details)
        self.upstream_status = upstream_status


class LedgerUnavailableError(RefundDataError):
    """Ledger store returned an error or is unavailable"""

    pass


class NoRefundsAvailableError(DomainException):
    """No candidate is left to export.

    ``reason`` tells the two cases apart: ``none_available`` when enrichment
    produced nothing, ``filtered_out`` when the batch options removed every
    remaining candidate.
    """

    code = ErrorCode.NO_REFUNDS_AVAILABLE

    NONE_AVAILABLE = "none_available"
    FILTERED_OUT = "filtered_out"

    def __init__(self, message: str, reason: str, details: Optional[Any] = None):
        super().__init__(message, {"reason": reason, **(details or {})})
        self.reason = reason


class DocumentGenerationError(DomainException):
    """Refunds failed re-validation while building the payment document"""

    code = ErrorCode.XML_GENERATION_ERROR


class AmountValidationError(DomainException):
    """Monetary value is malformed or outside the accepted range"""

    code = ErrorCode.INVALID_REQUEST


class StateStoreError(DomainException):
    """Export flags could not be read or written"""

    pass


class InvalidTransitionError(DomainException):
    """Pipeline attempted a transition its state table does not allow"""

    pass
