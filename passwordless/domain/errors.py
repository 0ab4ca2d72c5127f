class DomainError(Exception):
    """Base class for all domain-level errors."""

    pass


class InvalidParameter(DomainError):
    """A generator or configuration value is out of range."""

    pass


class StorageError(DomainError):
    """The token store backend failed (disk, connection, query...)."""

    pass


class DeliveryError(DomainError):
    """The transport could not deliver the code to the recipient."""

    pass


class Canceled(DomainError):
    """The call context was canceled before the work could complete."""

    pass


class DeadlineExceeded(Canceled):
    """The call context deadline passed before the work could complete."""

    pass


class VerificationFailed(DomainError):
    """
    Expected, user-facing verification outcome.

    Callers branch on the concrete subclass to decide what to show the user.
    """

    pass


class TokenNotFound(VerificationFailed):
    """No live token matches the given id."""

    pass


class TokenExpired(VerificationFailed):
    """The token outlived its TTL. The token is deleted as a side effect."""

    pass


class InvalidCode(VerificationFailed):
    """The submitted code (or link hash) does not match the token."""

    def __init__(self, message: str = "invalid code", *, attempts_remaining: int = 0):
        super().__init__(message)
        self.attempts_remaining = attempts_remaining


class AttemptsExhausted(VerificationFailed):
    """Too many failed attempts. The token is deleted as a side effect."""

    pass
