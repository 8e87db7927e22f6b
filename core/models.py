"""
Remote Healthcare Registry Data Models
======================================
Pydantic models for the records, counters and notifications held by the
registry state machine.
"""

from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, Tuple
from pydantic import BaseModel, ConfigDict, Field


# Value returned for a registered patient that never published parameters
EMPTY_PAYLOAD = ""

MAX_AGE = 255


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


# =============================================================================
# Enums
# =============================================================================


class Population(str, Enum):
    """The two disjoint account populations."""

    PATIENT = "patient"
    PRACTITIONER = "practitioner"


class NotificationType(str, Enum):
    """Notifications emitted by successful write operations."""

    PATIENT_ADDED = "PatientAdded"
    PATIENT_MODIFIED = "PatientModified"
    PATIENT_REMOVED = "PatientRemoved"
    PRACTITIONER_ADDED = "PractitionerAdded"
    PRACTITIONER_MODIFIED = "PractitionerModified"
    PRACTITIONER_REMOVED = "PractitionerRemoved"
    SENSOR_DATA_COLLECTED = "SensorDataCollected"


# =============================================================================
# Records
# =============================================================================


class AccountRecord(BaseModel):
    """A registered patient or practitioner."""

    model_config = ConfigDict(frozen=True)

    account: str = Field(..., min_length=1, description="Account identifier")
    record_id: int = Field(..., ge=1, description="Sequential identifier within the population")
    name: str = Field(..., description="Display name")
    age: int = Field(..., ge=0, le=MAX_AGE)
    address: str = Field(..., description="Free-form address")
    population: Population

    def as_tuple(self) -> Tuple[str, int, str, int, str]:
        """Return (account, id, name, age, address)."""
        return (self.account, self.record_id, self.name, self.age, self.address)


class RegistryCounters(BaseModel):
    """Running totals and sequence generators of the registry."""

    model_config = ConfigDict(frozen=True)

    patient_count: int = Field(default=0, ge=0)
    practitioner_count: int = Field(default=0, ge=0)
    next_patient_id: int = Field(default=1, ge=1)
    next_practitioner_id: int = Field(default=1, ge=1)
    notification_sequence: int = Field(default=0, ge=0)

    def next_id(self, population: Population) -> int:
        if population is Population.PATIENT:
            return self.next_patient_id
        return self.next_practitioner_id

    def after_add(self, population: Population) -> "RegistryCounters":
        """Counters once a record has been created in ``population``."""
        if population is Population.PATIENT:
            return self.model_copy(update={
                "patient_count": self.patient_count + 1,
                "next_patient_id": self.next_patient_id + 1,
            })
        return self.model_copy(update={
            "practitioner_count": self.practitioner_count + 1,
            "next_practitioner_id": self.next_practitioner_id + 1,
        })

    def after_remove(self, population: Population) -> "RegistryCounters":
        """Counters once a record has been deleted from ``population``."""
        if population is Population.PATIENT:
            return self.model_copy(update={"patient_count": self.patient_count - 1})
        return self.model_copy(update={"practitioner_count": self.practitioner_count - 1})

    def after_notification(self) -> "RegistryCounters":
        return self.model_copy(update={"notification_sequence": self.notification_sequence + 1})

    def to_dict(self) -> Dict[str, int]:
        return self.model_dump()


# =============================================================================
# Notifications
# =============================================================================


class Notification(BaseModel):
    """Append-only event emitted by a successful write."""

    model_config = ConfigDict(frozen=True)

    sequence: int = Field(..., ge=1, description="Position in the total order of notifications")
    event: NotificationType
    account: str = Field(..., description="Account the notification is about")
    arguments: Dict[str, Any] = Field(default_factory=dict)
    emitted_at: datetime = Field(default_factory=utcnow)

    def as_tuple(self) -> Tuple[Any, ...]:
        """Notification arguments in declaration order, e.g. (account, id, name, age, address)."""
        return tuple(self.arguments.values())

    def to_log_entry(self) -> dict:
        """Convert to structured log entry."""
        return {
            "sequence": self.sequence,
            "event": self.event.value,
            "account": self.account,
            "arguments": self.arguments,
            "emitted_at": self.emitted_at.isoformat(),
        }
