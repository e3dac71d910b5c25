# gradelink/services/exceptions.py

from typing import List, Optional

class ServiceException(Exception):
    """
    Base exception for all service layer errors.
    `compensation_errors` collects cleanup steps (rollbacks, drops) that
    failed while this error was being handled.
    """
    retryable: bool = False

    def __init__(self, message: str):
        self.message = message
        self.compensation_errors: List[str] = []
        super().__init__(self.message)

    @property
    def compensation_failed(self) -> bool:
        return bool(self.compensation_errors)

class NotFoundError(ServiceException):
    """Raised when a requested record does not exist."""
    pass

class InvalidCredentialsError(ServiceException):
    """Raised during authentication if credentials are invalid."""
    pass

class ConstraintViolation(ServiceException):
    """Raised when a uniqueness or foreign-key rule is violated on either database."""
    pass

# --- Tenancy ---

class InvalidIdentifier(ServiceException):
    """Raised when a display name or identifier is empty or unsafe to address a database with."""
    pass

class DuplicateTenant(ServiceException):
    """Raised when a school with the same name (or the same normalized identifier) is already registered."""
    pass

class TenantAlreadyExists(ServiceException):
    """Raised when the physical database/schema for an identifier already exists."""
    pass

class TenantProvisioningFailed(ServiceException):
    """
    Raised when creating the physical tenant or its tables failed.
    `compensation_errors` lists any cleanup step that itself failed; the
    request is only safe to retry when that list is empty.
    """

    def __init__(self, message: str, identifier: str, phase: str, compensation_errors: Optional[List[str]] = None):
        super().__init__(message)
        self.identifier = identifier
        self.phase = phase
        self.compensation_errors = compensation_errors or []

    @property
    def retryable(self) -> bool:
        return not self.compensation_errors

class AdminProvisioningFailed(ServiceException):
    """The tenant is usable, only the first admin account could not be created."""

    def __init__(self, message: str, school_id: int, identifier: str):
        super().__init__(message)
        self.school_id = school_id
        self.identifier = identifier

class TenantUnavailable(ServiceException):
    """
    Raised when a tenant database cannot be used.
    reason is "missing" (known to the directory but not physically present)
    or "unreachable" (transient).
    """

    def __init__(self, message: str, identifier: str, reason: str = "unreachable"):
        super().__init__(message)
        self.identifier = identifier
        self.reason = reason
        self.retryable = reason == "unreachable"

class OperationTimeout(ServiceException):
    """A database call exceeded its time bound. Any open transaction has been rolled back."""
    retryable = True

class TenantSchemaIncomplete(ServiceException):
    """Raised when a write targets a tenant table that does not exist."""
    pass

class PartialCommit(ServiceException):
    """One side of a linked write committed and the other did not."""

    def __init__(self, message: str, identifier: str, operation: str, committed_side: str):
        super().__init__(message)
        self.identifier = identifier
        self.operation = operation
        self.committed_side = committed_side
