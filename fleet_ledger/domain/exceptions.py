"""Domain-specific exceptions"""


class DomainException(Exception):
    """Base exception for domain layer"""

    pass


class ValidationError(DomainException):
    """Input rejected before any ledger mutation"""

    pass


class SelectionNotFoundError(DomainException):
    """Plan selection id resolves to nothing"""

    pass


class ActiveSelectionExistsError(DomainException):
    """Driver already holds an active plan selection"""

    pass


class InvalidTransitionError(DomainException):
    """Status change not allowed from the current state"""

    pass


class RentRateLockedError(DomainException):
    """Rent per day is fixed once the plan is selected"""

    pass


class ConcurrencyConflictError(DomainException):
    """Concurrent writers raced on the same plan selection; safe to retry"""

    pass


class NotificationDeliveryError(DomainException):
    """Notification dispatcher unreachable after all retries"""

    pass
