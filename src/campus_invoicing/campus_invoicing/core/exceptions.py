class DomainError(Exception):
    """Base exception for business rule violations."""


class ValidationError(DomainError):
    """Raised when input data is invalid or violates domain rules."""


class AuthenticationError(DomainError):
    """Raised when login credentials are invalid."""


class LoginBlockedError(AuthenticationError):
    """Raised when too many failed logins were recorded for an email or IP."""


class AuthorizationError(DomainError):
    """Raised when a user lacks permission for an action."""


class NotFoundError(DomainError):
    """Raised when a referenced entity does not exist."""


class InvalidTransitionError(DomainError):
    """Raised when an invoice cannot move from its current status."""


class ConcurrentModificationError(DomainError):
    """Raised when a row changed between read and write."""


class InvoiceLockedError(DomainError):
    """Raised when lines are added to an invoice that already left pending."""


class ProvisioningError(DomainError):
    """Raised when an account could not be provisioned."""
