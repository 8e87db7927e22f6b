"""
Remote Healthcare Registry Exceptions
=====================================
Exception classes raised by the registry state machine and its collaborators.

Every operation that raises leaves the registry untouched: no table change,
no notification.
"""

from typing import Optional


class RegistryError(Exception):
    """Base exception for all registry errors."""

    def __init__(
        self,
        message: str,
        error_code: Optional[str] = None,
        details: Optional[dict] = None,
    ):
        super().__init__(message)
        self.message = message
        self.error_code = error_code
        self.details = details or {}

    def __str__(self) -> str:
        if self.error_code:
            return f"[{self.error_code}] {self.message}"
        return self.message

    def to_dict(self) -> dict:
        """Convert exception to dictionary for logging/serialization."""
        return {
            "error_type": self.__class__.__name__,
            "message": self.message,
            "error_code": self.error_code,
            "details": self.details,
        }


# =============================================================================
# Caller-correctable errors
# =============================================================================


class AccessDeniedError(RegistryError):
    """Caller fails the authority/self/authorized-practitioner check."""

    def __init__(self, caller: str, operation: str, subject: Optional[str] = None):
        message = f"Caller {caller!r} may not perform {operation}"
        if subject is not None:
            message += f" on {subject!r}"
        super().__init__(
            message,
            error_code="ACCESS_DENIED",
            details={"caller": caller, "operation": operation, "subject": subject},
        )
        self.caller = caller
        self.operation = operation
        self.subject = subject


class NotFoundError(RegistryError):
    """Account is not currently registered in the expected population."""

    def __init__(self, account: str, population: str):
        super().__init__(
            f"Account {account!r} is not a registered {population}",
            error_code="NOT_FOUND",
            details={"account": account, "population": population},
        )
        self.account = account
        self.population = population


class AlreadyRegisteredError(RegistryError):
    """Account already holds a record in one of the two populations."""

    def __init__(self, account: str, population: str):
        super().__init__(
            f"Account {account!r} is already a registered {population}",
            error_code="ALREADY_REGISTERED",
            details={"account": account, "population": population},
        )
        self.account = account
        self.population = population


class InvalidArgumentError(RegistryError):
    """Argument value outside its declared domain."""

    def __init__(self, argument: str, reason: str, value: object = None):
        super().__init__(
            f"Invalid {argument}: {reason}",
            error_code="INVALID_ARGUMENT",
            details={"argument": argument, "reason": reason, "value": repr(value)},
        )
        self.argument = argument
        self.reason = reason


# =============================================================================
# Environment errors
# =============================================================================


class RegistryConfigurationError(RegistryError):
    """Registry cannot be constructed from the given settings."""

    def __init__(self, message: str, setting: Optional[str] = None):
        super().__init__(
            message,
            error_code="CONFIGURATION_ERROR",
            details={"setting": setting},
        )
        self.setting = setting


class PersistenceError(RegistryError):
    """Durable storage rejected a commit; the operation was rolled back."""

    def __init__(self, message: str):
        super().__init__(message, error_code="PERSISTENCE_ERROR")
