"""Tests for the registry access controller."""

import pytest

from core.exceptions import AccessDeniedError
from registry.access_control import AccessController


AUTHORITY = "0xHospital"


@pytest.fixture
def controller():
    patients = {"0xAlice", "0xBob"}
    grants = {("0xDrWho", "0xAlice")}
    return AccessController(
        AUTHORITY,
        is_patient=lambda account: account in patients,
        is_authorized=lambda practitioner, patient: (practitioner, patient) in grants,
    )


class TestReadPredicate:
    """Test CanRead(caller, subject)."""

    def test_authority_reads_anything(self, controller):
        assert controller.can_read(AUTHORITY, "0xAlice") is True
        assert controller.can_read(AUTHORITY, "0xNobody") is True

    def test_self_read(self, controller):
        """Any account may read itself, registered or not."""
        assert controller.can_read("0xBob", "0xBob") is True
        assert controller.can_read("0xNobody", "0xNobody") is True

    def test_authorized_practitioner(self, controller):
        assert controller.can_read("0xDrWho", "0xAlice") is True
        assert controller.can_read("0xDrWho", "0xBob") is False

    def test_grant_requires_patient_subject(self):
        """A grant on a non-patient subject opens nothing."""
        controller = AccessController(
            AUTHORITY,
            is_patient=lambda account: False,
            is_authorized=lambda practitioner, patient: True,
        )
        assert controller.can_read("0xDrWho", "0xAlice") is False

    def test_stranger(self, controller):
        assert controller.can_read("0xEve", "0xAlice") is False


class TestGuards:
    """Test the raising guards."""

    def test_require_authority(self, controller):
        controller.require_authority(AUTHORITY, "add_patient")

        with pytest.raises(AccessDeniedError) as exc_info:
            controller.require_authority("0xEve", "add_patient")

        assert exc_info.value.caller == "0xEve"
        assert exc_info.value.operation == "add_patient"
        assert exc_info.value.error_code == "ACCESS_DENIED"

    def test_require_registered_patient(self, controller):
        controller.require_registered_patient("0xAlice", "publish_parameters")

        with pytest.raises(AccessDeniedError):
            controller.require_registered_patient(AUTHORITY, "publish_parameters")

    def test_require_readable(self, controller):
        controller.require_readable("0xDrWho", "0xAlice", "get_parameters")

        with pytest.raises(AccessDeniedError) as exc_info:
            controller.require_readable("0xDrWho", "0xBob", "get_parameters")

        assert exc_info.value.subject == "0xBob"
        assert "0xBob" in str(exc_info.value)

    def test_authorization_visibility(self, controller):
        """Authority and both parties may look up a pair."""
        for caller in (AUTHORITY, "0xDrWho", "0xAlice"):
            controller.require_authorization_visible(caller, "0xDrWho", "0xAlice", "get_authorization")

        with pytest.raises(AccessDeniedError):
            controller.require_authorization_visible("0xBob", "0xDrWho", "0xAlice", "get_authorization")

    def test_decisions_follow_current_state(self):
        """The controller consults its lookups on every call."""
        grants = set()
        controller = AccessController(
            AUTHORITY,
            is_patient=lambda account: account == "0xAlice",
            is_authorized=lambda practitioner, patient: (practitioner, patient) in grants,
        )
        assert controller.can_read("0xDrWho", "0xAlice") is False

        grants.add(("0xDrWho", "0xAlice"))
        assert controller.can_read("0xDrWho", "0xAlice") is True
