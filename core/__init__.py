"""
Remote Healthcare Registry Core Module
======================================
Models, typed requests, exceptions and utilities shared by the registry,
its persistence backend and the command-line tool.
"""

from .exceptions import (
    RegistryError,
    AccessDeniedError,
    NotFoundError,
    AlreadyRegisteredError,
    InvalidArgumentError,
    RegistryConfigurationError,
    PersistenceError,
)
from .models import (
    EMPTY_PAYLOAD,
    AccountRecord,
    Notification,
    NotificationType,
    Population,
    RegistryCounters,
)
from .requests import RegistryRequest, parse_request

__all__ = [
    # Exceptions
    "RegistryError",
    "AccessDeniedError",
    "NotFoundError",
    "AlreadyRegisteredError",
    "InvalidArgumentError",
    "RegistryConfigurationError",
    "PersistenceError",
    # Models
    "EMPTY_PAYLOAD",
    "AccountRecord",
    "Notification",
    "NotificationType",
    "Population",
    "RegistryCounters",
    # Requests
    "RegistryRequest",
    "parse_request",
]
