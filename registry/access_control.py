"""
Access Control Module
=====================
The authority guard and the read predicate that gate every registry
operation.

    CanRead(caller, subject) :=
        caller == authority
     OR caller == subject
     OR (subject is a patient AND (caller, subject) is authorized)
"""

from typing import Callable, Optional
import structlog

from core.exceptions import AccessDeniedError
from core.utils import mask_account

logger = structlog.get_logger(__name__)


class AccessController:
    """
    Evaluates caller permissions against the registry's current state.

    The controller owns no state besides the authority: patient membership
    and the authorization relation are looked up through the callables it is
    constructed with, so every decision reflects the registry at call time.
    """

    def __init__(
        self,
        authority: str,
        is_patient: Callable[[str], bool],
        is_authorized: Callable[[str, str], bool],
    ):
        """
        Initialize access controller.

        Args:
            authority: The single administrative account.
            is_patient: Returns True if an account is a registered patient.
            is_authorized: Returns True if (practitioner, patient) is granted.
        """
        self._authority = authority
        self._is_patient = is_patient
        self._is_authorized = is_authorized

    @property
    def authority(self) -> str:
        return self._authority

    def is_authority(self, caller: str) -> bool:
        return caller == self._authority

    def can_read(self, caller: str, subject: str) -> bool:
        """Evaluate the read predicate for ``caller`` on ``subject``."""
        if caller == self._authority or caller == subject:
            return True
        return self._is_patient(subject) and self._is_authorized(caller, subject)

    def can_view_authorization(self, caller: str, practitioner: str, patient: str) -> bool:
        """Authorization pairs are visible to the authority and to either party."""
        return caller in (self._authority, practitioner, patient)

    # -------------------------------------------------------------------------
    # Guards
    # -------------------------------------------------------------------------

    def require_authority(self, caller: str, operation: str) -> None:
        """Reject administrative operations from any caller but the authority."""
        if not self.is_authority(caller):
            self._deny(caller, operation)

    def require_registered_patient(self, caller: str, operation: str) -> None:
        """Patient self-service writes are open to registered patients only."""
        if not self._is_patient(caller):
            self._deny(caller, operation)

    def require_readable(self, caller: str, subject: str, operation: str) -> None:
        if not self.can_read(caller, subject):
            self._deny(caller, operation, subject)

    def require_authorization_visible(
        self, caller: str, practitioner: str, patient: str, operation: str
    ) -> None:
        if not self.can_view_authorization(caller, practitioner, patient):
            self._deny(caller, operation, f"{practitioner}->{patient}")

    def _deny(self, caller: str, operation: str, subject: Optional[str] = None) -> None:
        logger.warning(
            "Access denied",
            caller=mask_account(caller),
            operation=operation,
            subject=mask_account(subject),
        )
        raise AccessDeniedError(caller, operation, subject)
