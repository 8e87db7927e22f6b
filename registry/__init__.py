"""
Remote Healthcare Registry
==========================
Registry state machine, access control, notification log and SQLite
persistence.
"""

from .access_control import AccessController
from .notifications import NotificationLog
from .persistence import RegistryDB
from .state_machine import RemoteHealthcareRegistry

__all__ = [
    "AccessController",
    "NotificationLog",
    "RegistryDB",
    "RemoteHealthcareRegistry",
]
