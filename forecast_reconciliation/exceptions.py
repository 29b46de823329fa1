class ReconciliationError(Exception):
    """Base exception for Forecast Reconciliation Engine errors."""

    def __init__(self, message=None, code=None, details=None):
        """Initialize the exception.

        Args:
            message: Error message
            code: Error code
            details: Additional error details
        """
        self.message = message or "An error occurred in the Forecast Reconciliation Engine"
        self.code = code
        self.details = details
        super().__init__(self.message)

    def __str__(self):
        """String representation of the error."""
        if self.code:
            return f"[{self.code}] {self.message}"
        return self.message

    def to_dict(self):
        """Convert the exception to a dictionary."""
        error_dict = {
            'error': self.__class__.__name__,
            'message': self.message,
        }

        if self.code:
            error_dict['code'] = self.code

        if self.details:
            error_dict['details'] = self.details

        return error_dict


class ConfigError(ReconciliationError):
    """Exception raised for configuration errors."""

    def __init__(self, message=None, code=None, details=None):
        message = message or "Configuration error"
        super().__init__(message, code, details)


class DatabaseError(ReconciliationError):
    """Exception raised for database-related errors."""

    def __init__(self, message=None, code=None, details=None):
        message = message or "Database error"
        super().__init__(message, code, details)


class ValidationError(ReconciliationError):
    """Exception raised for data validation errors."""

    def __init__(self, message=None, code=None, details=None):
        message = message or "Validation error"
        super().__init__(message, code, details)


class VendorError(ReconciliationError):
    """Exception raised for vendor-related errors."""

    def __init__(self, message=None, code=None, details=None):
        message = message or "Vendor error"
        super().__init__(message, code, details)


class ForecastImportError(ReconciliationError):
    """Exception raised while importing a forecast batch."""

    def __init__(self, message=None, code=None, details=None):
        message = message or "Forecast import error"
        super().__init__(message, code, details)


class PendingImportNotFoundError(ForecastImportError):
    """Raised when a pending import handle is unknown or has expired."""

    def __init__(self, message=None, code='PENDING_NOT_FOUND', details=None):
        message = message or "Pending import not found or expired, please re-upload the file"
        super().__init__(message, code, details)


class MatchingError(ReconciliationError):
    """Exception raised for order matching errors."""

    def __init__(self, message=None, code=None, details=None):
        message = message or "Matching error"
        super().__init__(message, code, details)


class BeliefStateError(ReconciliationError):
    """Exception raised for an illegal match status transition."""

    def __init__(self, message=None, code='ILLEGAL_TRANSITION', details=None):
        message = message or "Illegal match status transition"
        super().__init__(message, code, details)


class NotFoundError(ReconciliationError):
    """Exception raised when a requested resource is not found."""

    def __init__(self, message=None, code=None, details=None):
        message = message or "Resource not found"
        super().__init__(message, code, details)


class BatchProcessError(ReconciliationError):
    """Exception raised for batch process errors."""

    def __init__(self, message=None, code=None, details=None):
        message = message or "Batch process error"
        super().__init__(message, code, details)


class ReportingError(ReconciliationError):
    """Exception raised for reporting errors."""

    def __init__(self, message=None, code=None, details=None):
        message = message or "Reporting error"
        super().__init__(message, code, details)
