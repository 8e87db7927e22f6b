#!/usr/bin/env python3
"""
Remote Healthcare Registry - Command-Line Tool
==============================================
Runs one registry operation per invocation against a SQLite-backed registry.

Usage:
    python -m terminal.main --caller <account> <command> [args...]

Or with the remote-healthcare command (if installed):
    remote-healthcare --caller 0xHospital add-patient 0xAlice Alice 30 "Addr 1"

Settings (authority, database path, default caller, logging) come from
config.yaml and REMOTE_HEALTHCARE_* environment variables; see
config/config_loader.py.
"""

import argparse
import json
import sys
from typing import Any, Callable, List, Optional, Sequence, Tuple

from config.config_loader import get_registry_settings
from core.exceptions import RegistryError
from core.models import AccountRecord, MAX_AGE, Notification, NotificationType
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
    RemovePatientRequest,
    RemovePractitionerRequest,
)
from core.utils import setup_logging
from registry.notifications import NotificationLog
from registry.persistence import RegistryDB
from registry.state_machine import RemoteHealthcareRegistry
from terminal.colors import print_error, print_section, print_success


def age_type(value: str) -> int:
    """argparse type for ages stored as an unsigned byte."""
    try:
        age = int(value)
    except ValueError:
        raise argparse.ArgumentTypeError(f"age must be an integer, got {value!r}")
    if not 0 <= age <= MAX_AGE:
        raise argparse.ArgumentTypeError(f"age must be between 0 and {MAX_AGE}, got {age}")
    return age


Argument = Tuple[str, dict]

_ACCOUNT: List[Argument] = [("account", {"help": "Account identifier"})]
_PROFILE: List[Argument] = [
    ("account", {"help": "Account identifier"}),
    ("name", {"help": "Display name"}),
    ("age", {"type": age_type, "help": f"Age (0..{MAX_AGE})"}),
    ("address", {"help": "Home address"}),
]
_PAIR: List[Argument] = [
    ("practitioner", {"help": "Practitioner account"}),
    ("patient", {"help": "Patient account"}),
]

# (command, request type, needs a caller, help, positional arguments)
_REQUEST_COMMANDS = [
    ("get-authority", GetAuthorityRequest, False, "Show the authority account", []),
    ("add-patient", AddPatientRequest, True, "Register a patient (authority)", _PROFILE),
    ("modify-patient", ModifyPatientRequest, True, "Update a patient (authority)", _PROFILE),
    ("remove-patient", RemovePatientRequest, True, "Remove a patient (authority)", _ACCOUNT),
    ("get-patient", GetPatientRequest, True, "Show a patient record", _ACCOUNT),
    ("is-patient", IsPatientRegisteredRequest, False, "Check patient registration", _ACCOUNT),
    ("add-practitioner", AddPractitionerRequest, True, "Register a practitioner (authority)", _PROFILE),
    ("modify-practitioner", ModifyPractitionerRequest, True, "Update a practitioner (authority)", _PROFILE),
    ("remove-practitioner", RemovePractitionerRequest, True, "Remove a practitioner (authority)", _ACCOUNT),
    ("get-practitioner", GetPractitionerRequest, True, "Show a practitioner record", _ACCOUNT),
    ("is-practitioner", IsPractitionerRegisteredRequest, False, "Check practitioner registration", _ACCOUNT),
    ("authorize", AuthorizePatientForPractitionerRequest, True,
     "Let a practitioner read a patient's data (authority)", _PAIR),
    ("cancel", CancelPatientForPractitionerRequest, True,
     "Withdraw a practitioner's access to a patient (authority)", _PAIR),
    ("get-authorization", GetAuthorizationRequest, True, "Check a practitioner/patient grant", _PAIR),
    ("publish-parameters", PublishParametersRequest, True,
     "Publish the caller's monitoring payload (patient)",
     [("payload", {"help": "Opaque payload, e.g. '{\"hb\":72}'"})]),
    ("get-parameters", GetParametersRequest, True, "Show a patient's latest payload", _ACCOUNT),
]


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="remote-healthcare",
        description="Remote healthcare registry command-line tool",
    )
    parser.add_argument("--config", help="Path to config.yaml")
    parser.add_argument("--db", help="SQLite database path (overrides config)")
    parser.add_argument("--caller", help="Account the command runs as")
    parser.add_argument("--authority", help="Authority account (required for a new database)")

    subparsers = parser.add_subparsers(dest="command", required=True)

    info = subparsers.add_parser("info", help="Show registry summary")
    info.set_defaults(handler=_run_info)

    counts = subparsers.add_parser("get-counts", help="Show patient and practitioner counts")
    counts.set_defaults(handler=_run_counts)

    events = subparsers.add_parser("events", help="List emitted notifications")
    events.add_argument("--event", choices=[t.value for t in NotificationType])
    events.add_argument("--account")
    events.add_argument("--since", type=int, help="Only notifications after this sequence")
    events.add_argument("--limit", type=int)
    events.set_defaults(handler=_run_events)

    for command, request_type, needs_caller, help_text, arguments in _REQUEST_COMMANDS:
        sub = subparsers.add_parser(command, help=help_text)
        for dest, kwargs in arguments:
            sub.add_argument(dest, **kwargs)
        sub.set_defaults(
            handler=_run_request,
            request_type=request_type,
            request_fields=[dest for dest, _ in arguments],
            needs_caller=needs_caller,
        )

    return parser


# =============================================================================
# Output
# =============================================================================


def _to_jsonable(result: Any) -> Any:
    if isinstance(result, AccountRecord):
        return {
            "account": result.account,
            "id": result.record_id,
            "name": result.name,
            "age": result.age,
            "address": result.address,
        }
    return result


def _print_json(data: Any) -> None:
    print(json.dumps(data, indent=2))


def _print_notification(notification: Notification) -> None:
    arguments = ", ".join(repr(v) for v in notification.as_tuple())
    print_success(f"#{notification.sequence} {notification.event.value}({arguments})")


# =============================================================================
# Command handlers
# =============================================================================


def _run_request(registry: RemoteHealthcareRegistry, args: argparse.Namespace) -> int:
    if args.needs_caller and not args.caller:
        print_error("A caller identity is required (--caller or REMOTE_HEALTHCARE_CALLER)")
        return 2

    request = args.request_type(**{name: getattr(args, name) for name in args.request_fields})
    emitted: List[Notification] = []
    unsubscribe = registry.subscribe(emitted.append)
    try:
        result = registry.execute(args.caller or "", request)
    finally:
        unsubscribe()

    if result is not None:
        if isinstance(request, GetParametersRequest):
            result = {"account": request.account, "parameters": result}
        _print_json(_to_jsonable(result))
    for notification in emitted:
        _print_notification(notification)
    if result is None and not emitted:
        print_success(f"{args.command} applied")
    return 0


def _run_counts(registry: RemoteHealthcareRegistry, args: argparse.Namespace) -> int:
    _print_json({
        "patients": registry.execute(args.caller or "", GetPatientCountRequest()),
        "practitioners": registry.execute(args.caller or "", GetPractitionerCountRequest()),
    })
    return 0


def _run_info(registry: RemoteHealthcareRegistry, args: argparse.Namespace) -> int:
    print_section("Remote healthcare registry")
    _print_json({
        "authority": registry.get_authority(),
        "database": str(args.db_path),
        "caller": args.caller,
        "patients": registry.get_patient_count(),
        "practitioners": registry.get_practitioner_count(),
        "notifications": len(registry.notifications),
        "last_sequence": registry.notifications.last_sequence,
    })
    return 0


def _run_events(registry: RemoteHealthcareRegistry, args: argparse.Namespace) -> int:
    notifications = registry.notifications.history(
        event=NotificationType(args.event) if args.event else None,
        account=args.account,
        since_sequence=args.since,
        limit=args.limit,
    )
    _print_json([n.to_log_entry() for n in notifications])
    return 0


# =============================================================================
# Entry point
# =============================================================================


def main(argv: Optional[Sequence[str]] = None) -> int:
    """Main entry point for the registry command-line tool."""
    parser = build_parser()
    args = parser.parse_args(argv)

    settings = get_registry_settings(args.config)
    setup_logging(settings["log_level"], settings["log_format"])

    args.db_path = args.db or settings["db_path"]
    args.caller = args.caller or settings["caller"]
    authority = args.authority or settings["authority"]
    handler: Callable[[RemoteHealthcareRegistry, argparse.Namespace], int] = args.handler

    db = RegistryDB(args.db_path)
    try:
        notification_log = NotificationLog(
            storage_path=settings["notification_log_path"], db=db
        )
        registry = RemoteHealthcareRegistry(authority, db=db, notification_log=notification_log)
        return handler(registry, args)
    except RegistryError as e:
        print_error(str(e))
        return 1
    finally:
        db.close()


if __name__ == "__main__":
    sys.exit(main())
