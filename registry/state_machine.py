"""
Registry State Machine
======================
Permissioned registry of patients and practitioners managed by a single
authority account.

The registry owns the patient and practitioner tables, the authorization
relation between practitioners and patients, and the latest monitoring
payload of every patient. Each operation takes the authenticated caller as
its first argument and either applies completely (tables, counters, one
notification) or raises a ``RegistryError`` leaving everything untouched.

Invocations are expected to be serialized by the host environment; the
registry does no locking of its own.
"""

from typing import Any, Callable, Dict, NoReturn, Optional, Set, Tuple
import structlog

from core.exceptions import (
    AlreadyRegisteredError,
    InvalidArgumentError,
    NotFoundError,
    RegistryConfigurationError,
    RegistryError,
)
from core.models import (
    EMPTY_PAYLOAD,
    MAX_AGE,
    AccountRecord,
    Notification,
    NotificationType,
    Population,
    RegistryCounters,
)
from core.requests import (
    AddPatientRequest,
    AddPractitionerRequest,
    AuthorizePatientForPractitionerRequest,
    CancelPatientForPractitionerRequest,
    GetAuthorityRequest,
    GetAuthorizationRequest,
    GetParametersRequest,
    GetPatientCountRequest,
    GetPatientRequest,
    GetPractitionerCountRequest,
    GetPractitionerRequest,
    IsPatientRegisteredRequest,
    IsPractitionerRegisteredRequest,
    ModifyPatientRequest,
    ModifyPractitionerRequest,
    PublishParametersRequest,
    RegistryRequest,
    RemovePatientRequest,
    RemovePractitionerRequest,
)
from core.utils import mask_account, payload_digest
from registry.access_control import AccessController
from registry.notifications import NotificationLog, Subscriber
from registry.persistence import RegistryDB

logger = structlog.get_logger(__name__)


_LIFECYCLE_NOTIFICATIONS = {
    Population.PATIENT: (
        NotificationType.PATIENT_ADDED,
        NotificationType.PATIENT_MODIFIED,
        NotificationType.PATIENT_REMOVED,
    ),
    Population.PRACTITIONER: (
        NotificationType.PRACTITIONER_ADDED,
        NotificationType.PRACTITIONER_MODIFIED,
        NotificationType.PRACTITIONER_REMOVED,
    ),
}


def _counterpart(population: Population) -> Population:
    if population is Population.PATIENT:
        return Population.PRACTITIONER
    return Population.PATIENT


def _validate_account(argument: str, value: Any) -> None:
    if not isinstance(value, str) or not value:
        raise InvalidArgumentError(argument, "must be a non-empty string", value)


def _validate_profile(name: Any, age: Any, address: Any) -> None:
    if not isinstance(name, str):
        raise InvalidArgumentError("name", "must be a string", name)
    if isinstance(age, bool) or not isinstance(age, int) or not 0 <= age <= MAX_AGE:
        raise InvalidArgumentError("age", f"must be an integer between 0 and {MAX_AGE}", age)
    if not isinstance(address, str):
        raise InvalidArgumentError("address", "must be a string", address)


class RemoteHealthcareRegistry:
    """
    Registry state machine for patients, practitioners and their grants.

    Administrative writes (add/modify/remove, authorize/cancel) are reserved
    to the authority. A registered patient may publish its own monitoring
    payload. Reads are gated by the access predicate of ``AccessController``.

    With a ``RegistryDB`` attached, the state is loaded from it at
    construction and every write is committed to it in one transaction
    before the in-memory tables change.
    """

    def __init__(
        self,
        authority: Optional[str] = None,
        db: Optional[RegistryDB] = None,
        notification_log: Optional[NotificationLog] = None,
    ):
        """
        Initialize the registry.

        Args:
            authority: Administrative account. May be omitted when ``db``
                already stores one.
            db: Optional RegistryDB for durable state.
            notification_log: Log receiving emitted notifications. Defaults
                to a log preloaded from ``db``.

        Raises:
            RegistryConfigurationError: No authority available, one that
                differs from the authority stored in ``db``, or a
                notification log ahead of the stored counters.
        """
        stored_authority = db.get_authority() if db is not None else None
        if authority is None:
            authority = stored_authority
        if not isinstance(authority, str) or not authority:
            raise RegistryConfigurationError(
                "An authority account is required to construct the registry",
                setting="authority",
            )
        if stored_authority is not None and stored_authority != authority:
            raise RegistryConfigurationError(
                f"Authority {authority!r} does not match the stored authority "
                f"{stored_authority!r}",
                setting="authority",
            )

        self._db = db
        self._records: Dict[Population, Dict[str, AccountRecord]] = {
            population: {} for population in Population
        }
        self._authorizations: Set[Tuple[str, str]] = set()
        self._parameters: Dict[str, str] = {}
        self._counters = RegistryCounters()

        if db is not None:
            if stored_authority is None:
                db.set_authority(authority)
            for population in Population:
                self._records[population] = {
                    record.account: record for record in db.list_records(population)
                }
            self._authorizations = set(db.list_authorizations())
            self._parameters = db.load_parameters()
            self._counters = db.load_counters()

        if notification_log is None:
            notification_log = NotificationLog(db=db)
        self._check_notification_log(notification_log)
        self._notifications = notification_log
        self._access = AccessController(
            authority,
            is_patient=self.is_patient_registered,
            is_authorized=self._is_authorized,
        )
        self._handlers: Dict[type, Callable[[str, Any], Any]] = {
            AddPatientRequest: lambda c, r: self.add_patient(c, r.account, r.name, r.age, r.address),
            ModifyPatientRequest: lambda c, r: self.modify_patient(c, r.account, r.name, r.age, r.address),
            RemovePatientRequest: lambda c, r: self.remove_patient(c, r.account),
            GetPatientRequest: lambda c, r: self.get_patient(c, r.account),
            IsPatientRegisteredRequest: lambda c, r: self.is_patient_registered(r.account),
            AddPractitionerRequest: lambda c, r: self.add_practitioner(c, r.account, r.name, r.age, r.address),
            ModifyPractitionerRequest: lambda c, r: self.modify_practitioner(c, r.account, r.name, r.age, r.address),
            RemovePractitionerRequest: lambda c, r: self.remove_practitioner(c, r.account),
            GetPractitionerRequest: lambda c, r: self.get_practitioner(c, r.account),
            IsPractitionerRegisteredRequest: lambda c, r: self.is_practitioner_registered(r.account),
            AuthorizePatientForPractitionerRequest: lambda c, r: self.authorize_patient_for_practitioner(
                c, r.practitioner, r.patient
            ),
            CancelPatientForPractitionerRequest: lambda c, r: self.cancel_patient_for_practitioner(
                c, r.practitioner, r.patient
            ),
            GetAuthorizationRequest: lambda c, r: self.get_authorization(c, r.practitioner, r.patient),
            PublishParametersRequest: lambda c, r: self.publish_parameters(c, r.payload),
            GetParametersRequest: lambda c, r: self.get_parameters(c, r.account),
            GetPatientCountRequest: lambda c, r: self.get_patient_count(),
            GetPractitionerCountRequest: lambda c, r: self.get_practitioner_count(),
            GetAuthorityRequest: lambda c, r: self.get_authority(),
        }

        logger.info(
            "Registry initialized",
            authority=mask_account(authority),
            persistent=db is not None,
            patients=self._counters.patient_count,
            practitioners=self._counters.practitioner_count,
        )

    # -------------------------------------------------------------------------
    # Public introspection
    # -------------------------------------------------------------------------

    @property
    def authority(self) -> str:
        return self._access.authority

    @property
    def patient_count(self) -> int:
        return self._counters.patient_count

    @property
    def practitioner_count(self) -> int:
        return self._counters.practitioner_count

    @property
    def counters(self) -> RegistryCounters:
        return self._counters

    @property
    def notifications(self) -> NotificationLog:
        return self._notifications

    def get_authority(self) -> str:
        return self.authority

    def get_patient_count(self) -> int:
        return self.patient_count

    def get_practitioner_count(self) -> int:
        return self.practitioner_count

    def is_patient_registered(self, account: str) -> bool:
        return isinstance(account, str) and account in self._records[Population.PATIENT]

    def is_practitioner_registered(self, account: str) -> bool:
        return isinstance(account, str) and account in self._records[Population.PRACTITIONER]

    def can_read(self, caller: str, subject: str) -> bool:
        return self._access.can_read(caller, subject)

    def subscribe(self, callback: Subscriber) -> Callable[[], None]:
        """Register a notification observer; returns its unsubscribe function."""
        return self._notifications.subscribe(callback)

    def _is_authorized(self, practitioner: str, patient: str) -> bool:
        if not isinstance(practitioner, str) or not isinstance(patient, str):
            return False
        return (practitioner, patient) in self._authorizations

    # -------------------------------------------------------------------------
    # Typed dispatch
    # -------------------------------------------------------------------------

    def execute(self, caller: str, request: RegistryRequest) -> Any:
        """
        Run one typed request on behalf of ``caller``.

        Returns:
            The operation's result: a record, payload, flag, count, the
            authority, or None for writes without a result.
        """
        handler = self._handlers.get(type(request))
        if handler is None:
            raise InvalidArgumentError(
                "request", "unsupported request type", type(request).__name__
            )
        return handler(caller, request)

    # -------------------------------------------------------------------------
    # Patients
    # -------------------------------------------------------------------------

    def add_patient(self, caller: str, account: str, name: str, age: int, address: str) -> AccountRecord:
        return self._add(caller, Population.PATIENT, account, name, age, address)

    def modify_patient(self, caller: str, account: str, name: str, age: int, address: str) -> AccountRecord:
        return self._modify(caller, Population.PATIENT, account, name, age, address)

    def remove_patient(self, caller: str, account: str) -> None:
        self._remove(caller, Population.PATIENT, account)

    def get_patient(self, caller: str, account: str) -> AccountRecord:
        return self._get(caller, Population.PATIENT, account)

    # -------------------------------------------------------------------------
    # Practitioners
    # -------------------------------------------------------------------------

    def add_practitioner(self, caller: str, account: str, name: str, age: int, address: str) -> AccountRecord:
        return self._add(caller, Population.PRACTITIONER, account, name, age, address)

    def modify_practitioner(self, caller: str, account: str, name: str, age: int, address: str) -> AccountRecord:
        return self._modify(caller, Population.PRACTITIONER, account, name, age, address)

    def remove_practitioner(self, caller: str, account: str) -> None:
        self._remove(caller, Population.PRACTITIONER, account)

    def get_practitioner(self, caller: str, account: str) -> AccountRecord:
        return self._get(caller, Population.PRACTITIONER, account)

    # -------------------------------------------------------------------------
    # Authorization relation
    # -------------------------------------------------------------------------

    def authorize_patient_for_practitioner(self, caller: str, practitioner: str, patient: str) -> None:
        """Grant ``practitioner`` read access to ``patient``; both must be registered."""
        operation = "authorize_patient_for_practitioner"
        self._access.require_authority(caller, operation)
        _validate_account("practitioner", practitioner)
        _validate_account("patient", patient)
        if not self.is_practitioner_registered(practitioner):
            self._reject(NotFoundError(practitioner, Population.PRACTITIONER.value), operation)
        if not self.is_patient_registered(patient):
            self._reject(NotFoundError(patient, Population.PATIENT.value), operation)

        pair = (practitioner, patient)
        self._commit(
            self._counters,
            persist=lambda db: db.grant_authorization(practitioner, patient),
            apply=lambda: self._authorizations.add(pair),
        )
        logger.info(
            "Practitioner authorized for patient",
            practitioner=mask_account(practitioner),
            patient=mask_account(patient),
        )

    def cancel_patient_for_practitioner(self, caller: str, practitioner: str, patient: str) -> None:
        """Clear a grant. Cancelling an absent grant is a no-op."""
        operation = "cancel_patient_for_practitioner"
        self._access.require_authority(caller, operation)
        _validate_account("practitioner", practitioner)
        _validate_account("patient", patient)

        pair = (practitioner, patient)
        self._commit(
            self._counters,
            persist=lambda db: db.revoke_authorization(practitioner, patient),
            apply=lambda: self._authorizations.discard(pair),
        )
        logger.info(
            "Practitioner authorization cancelled",
            practitioner=mask_account(practitioner),
            patient=mask_account(patient),
        )

    def get_authorization(self, caller: str, practitioner: str, patient: str) -> bool:
        self._access.require_authorization_visible(
            caller, practitioner, patient, "get_authorization"
        )
        return self._is_authorized(practitioner, patient)

    # -------------------------------------------------------------------------
    # Monitoring payload
    # -------------------------------------------------------------------------

    def publish_parameters(self, caller: str, payload: str) -> None:
        """Overwrite the calling patient's monitoring payload."""
        operation = "publish_parameters"
        self._access.require_registered_patient(caller, operation)
        if not isinstance(payload, str):
            self._reject(InvalidArgumentError("payload", "must be a string", payload), operation)

        self._commit(
            self._counters,
            persist=lambda db: db.save_parameters(caller, payload),
            apply=lambda: self._parameters.update({caller: payload}),
            event=NotificationType.SENSOR_DATA_COLLECTED,
            account=caller,
            arguments={"account": caller, "payload": payload},
        )
        logger.info(
            "Sensor data collected",
            patient=mask_account(caller),
            payload_digest=payload_digest(payload),
            payload_size=len(payload),
        )

    def get_parameters(self, caller: str, account: str) -> str:
        """
        Latest payload of ``account``.

        Returns ``EMPTY_PAYLOAD`` for a registered patient that never
        published.
        """
        operation = "get_parameters"
        self._access.require_readable(caller, account, operation)
        _validate_account("account", account)
        if not self.is_patient_registered(account):
            self._reject(NotFoundError(account, Population.PATIENT.value), operation)
        return self._parameters.get(account, EMPTY_PAYLOAD)

    # -------------------------------------------------------------------------
    # Shared population operations
    # -------------------------------------------------------------------------

    def _add(
        self, caller: str, population: Population, account: str, name: str, age: int, address: str
    ) -> AccountRecord:
        operation = f"add_{population.value}"
        self._access.require_authority(caller, operation)
        _validate_account("account", account)
        _validate_profile(name, age, address)
        if account in self._records[population]:
            self._reject(AlreadyRegisteredError(account, population.value), operation)
        counterpart = _counterpart(population)
        if account in self._records[counterpart]:
            self._reject(AlreadyRegisteredError(account, counterpart.value), operation)

        record = AccountRecord(
            account=account,
            record_id=self._counters.next_id(population),
            name=name,
            age=age,
            address=address,
            population=population,
        )
        self._commit(
            self._counters.after_add(population),
            persist=lambda db: db.save_record(record),
            apply=lambda: self._records[population].update({account: record}),
            event=_LIFECYCLE_NOTIFICATIONS[population][0],
            account=account,
            arguments={
                "account": account,
                "id": record.record_id,
                "name": name,
                "age": age,
                "address": address,
            },
        )
        logger.info(
            f"{population.value.capitalize()} added",
            account=mask_account(account),
            record_id=record.record_id,
        )
        return record

    def _modify(
        self, caller: str, population: Population, account: str, name: str, age: int, address: str
    ) -> AccountRecord:
        operation = f"modify_{population.value}"
        self._access.require_authority(caller, operation)
        _validate_account("account", account)
        _validate_profile(name, age, address)
        current = self._records[population].get(account)
        if current is None:
            self._reject(NotFoundError(account, population.value), operation)

        record = current.model_copy(update={"name": name, "age": age, "address": address})
        self._commit(
            self._counters,
            persist=lambda db: db.save_record(record),
            apply=lambda: self._records[population].update({account: record}),
            event=_LIFECYCLE_NOTIFICATIONS[population][1],
            account=account,
            arguments={"account": account, "name": name, "age": age, "address": address},
        )
        logger.info(
            f"{population.value.capitalize()} modified",
            account=mask_account(account),
            record_id=record.record_id,
        )
        return record

    def _remove(self, caller: str, population: Population, account: str) -> None:
        operation = f"remove_{population.value}"
        self._access.require_authority(caller, operation)
        _validate_account("account", account)
        if account not in self._records[population]:
            self._reject(NotFoundError(account, population.value), operation)

        # Grants and payloads never outlive the record they refer to
        side = 1 if population is Population.PATIENT else 0
        remaining = {pair for pair in self._authorizations if pair[side] != account}

        def persist(db: RegistryDB) -> None:
            db.delete_record(population, account)
            db.revoke_authorizations_for(population, account)
            if population is Population.PATIENT:
                db.delete_parameters(account)

        def apply() -> None:
            del self._records[population][account]
            self._authorizations = remaining
            if population is Population.PATIENT:
                self._parameters.pop(account, None)

        revoked = len(self._authorizations) - len(remaining)
        self._commit(
            self._counters.after_remove(population),
            persist=persist,
            apply=apply,
            event=_LIFECYCLE_NOTIFICATIONS[population][2],
            account=account,
            arguments={"account": account},
        )
        logger.info(
            f"{population.value.capitalize()} removed",
            account=mask_account(account),
            authorizations_revoked=revoked,
        )

    def _get(self, caller: str, population: Population, account: str) -> AccountRecord:
        operation = f"get_{population.value}"
        self._access.require_readable(caller, account, operation)
        _validate_account("account", account)
        record = self._records[population].get(account)
        if record is None:
            self._reject(NotFoundError(account, population.value), operation)
        return record

    # -------------------------------------------------------------------------
    # Commit
    # -------------------------------------------------------------------------

    def _commit(
        self,
        counters: RegistryCounters,
        persist: Callable[[RegistryDB], Any],
        apply: Callable[[], Any],
        event: Optional[NotificationType] = None,
        account: Optional[str] = None,
        arguments: Optional[Dict[str, Any]] = None,
    ) -> Optional[Notification]:
        """
        Apply one validated write.

        Durable writes happen first inside a single transaction; in-memory
        tables change only once it has committed, and the notification is
        published last.
        """
        notification = None
        if event is not None:
            # A log shared with another registry may have moved past our counters
            self._check_notification_log(self._notifications)
            counters = counters.after_notification()
            notification = Notification(
                sequence=counters.notification_sequence,
                event=event,
                account=account,
                arguments=arguments or {},
            )

        if self._db is not None:
            with self._db.transaction():
                persist(self._db)
                if counters != self._counters:
                    self._db.save_counters(counters)
                if notification is not None:
                    self._db.save_notification(notification)

        apply()
        self._counters = counters
        if notification is not None:
            self._notifications.publish(notification)
        return notification

    def _check_notification_log(self, log: NotificationLog) -> None:
        """Notification sequences must continue from the registry's counter."""
        if log.last_sequence > self._counters.notification_sequence:
            raise RegistryConfigurationError(
                f"Notification log is at sequence {log.last_sequence}, ahead of "
                f"the registry's {self._counters.notification_sequence}",
                setting="notification_log",
            )

    def _reject(self, error: RegistryError, operation: str) -> NoReturn:
        logger.warning(
            "Operation rejected",
            operation=operation,
            error_code=error.error_code,
            reason=error.message,
        )
        raise error
