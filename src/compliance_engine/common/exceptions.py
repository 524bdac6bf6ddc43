"""Compliance-Engine exception hierarchy."""


class ComplianceError(Exception):
    """Base exception for all compliance errors."""

    status_code = 500

    def __init__(self, message: str = "", code: str = "COMPLIANCE_ERROR"):
        self.message = message
        self.code = code
        super().__init__(message)


class NotFoundError(ComplianceError):
    """Raised when an entity is missing, deleted, or outside the caller's tenant."""

    status_code = 404

    def __init__(self, message: str = "Resource not found"):
        super().__init__(message, code="NOT_FOUND")


class ForbiddenError(ComplianceError):
    """Raised when the caller's role or identity does not permit the operation."""

    status_code = 403

    def __init__(self, message: str = "Operation not permitted", code: str = "FORBIDDEN"):
        super().__init__(message, code=code)


class AccessDeniedError(ForbiddenError):
    """Raised by the tenant guard when a resource belongs to another organization."""

    def __init__(self, message: str = "Access denied to this organization's resources"):
        super().__init__(message, code="ACCESS_DENIED")


class InvalidStateError(ComplianceError):
    """Raised when an entity is not in a state that allows the operation."""

    status_code = 409

    def __init__(self, message: str = "Invalid state for this operation", code: str = "INVALID_STATE"):
        super().__init__(message, code=code)


class InvalidTransitionError(InvalidStateError):
    """Raised when a post status change is not in the transition table."""

    def __init__(self, from_status: str, to_status: str):
        self.from_status = from_status
        self.to_status = to_status
        super().__init__(
            f"Invalid status transition from {from_status} to {to_status}",
            code="INVALID_TRANSITION",
        )


class ConflictError(ComplianceError):
    """Raised when a uniqueness rule would be violated."""

    status_code = 409

    def __init__(self, message: str = "Resource already exists"):
        super().__init__(message, code="CONFLICT")


class ValidationError(ComplianceError):
    """Raised when input is malformed or out of range."""

    status_code = 400

    def __init__(self, message: str = "Invalid input"):
        super().__init__(message, code="VALIDATION_ERROR")


class TransientError(ComplianceError):
    """Raised when a dependency timed out or is unavailable; safe to retry."""

    status_code = 503

    def __init__(self, message: str = "Service temporarily unavailable"):
        super().__init__(message, code="UNAVAILABLE")
