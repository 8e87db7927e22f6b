"""Tests for the remote-healthcare command-line tool."""

import argparse
import json

import pytest

from config.config_loader import reload_config
from terminal.main import age_type, build_parser, main


HOSPITAL = "0xHospital"


@pytest.fixture
def db_path(tmp_path, monkeypatch):
    """Fresh database path, with settings isolated from the environment."""
    for name in ("REMOTE_HEALTHCARE_CONFIG", "REMOTE_HEALTHCARE_AUTHORITY",
                 "REMOTE_HEALTHCARE_DB_PATH", "REMOTE_HEALTHCARE_CALLER",
                 "REMOTE_HEALTHCARE_NOTIFICATION_LOG", "REMOTE_HEALTHCARE_LOG_LEVEL",
                 "REMOTE_HEALTHCARE_LOG_FORMAT"):
        monkeypatch.delenv(name, raising=False)
    monkeypatch.chdir(tmp_path)
    reload_config()
    yield str(tmp_path / "registry.db")
    reload_config()


def run(capsys, db_path, *argv, caller=None, authority=HOSPITAL):
    """Run the CLI and return (exit code, stdout, stderr)."""
    args = ["--db", db_path]
    if authority:
        args += ["--authority", authority]
    if caller:
        args += ["--caller", caller]
    code = main(args + list(argv))
    captured = capsys.readouterr()
    return code, captured.out, captured.err


def first_json(text):
    """Decode the JSON document at the start of ``text``."""
    value, _ = json.JSONDecoder().raw_decode(text)
    return value


class TestParser:
    """Test argument parsing."""

    def test_age_type(self):
        assert age_type("0") == 0
        assert age_type("255") == 255

    @pytest.mark.parametrize("value", ["-1", "256", "thirty"])
    def test_age_type_rejects(self, value):
        with pytest.raises(argparse.ArgumentTypeError):
            age_type(value)

    def test_command_required(self):
        with pytest.raises(SystemExit):
            build_parser().parse_args([])

    def test_out_of_range_age_exits(self, capsys, db_path):
        with pytest.raises(SystemExit) as exc_info:
            main(["--db", db_path, "--caller", HOSPITAL,
                  "add-patient", "0xAlice", "Alice", "300", "Addr1"])
        assert exc_info.value.code == 2


class TestCommands:
    """Test command execution against a temporary database."""

    def test_add_and_get_patient(self, capsys, db_path):
        code, out, _ = run(capsys, db_path, "add-patient", "0xAlice", "Alice", "30", "Addr1",
                           caller=HOSPITAL)
        assert code == 0
        assert first_json(out) == {
            "account": "0xAlice", "id": 1, "name": "Alice", "age": 30, "address": "Addr1",
        }
        assert "#1 PatientAdded('0xAlice', 1, 'Alice', 30, 'Addr1')" in out

        code, out, _ = run(capsys, db_path, "get-patient", "0xAlice", caller="0xAlice")
        assert code == 0
        assert first_json(out)["name"] == "Alice"

    def test_caller_required(self, capsys, db_path):
        code, _, err = run(capsys, db_path, "add-patient", "0xAlice", "Alice", "30", "Addr1")
        assert code == 2
        assert "caller" in err

    def test_access_denied(self, capsys, db_path):
        code, _, err = run(capsys, db_path, "add-patient", "0xAlice", "Alice", "30", "Addr1",
                           caller="0xEve")
        assert code == 1
        assert "ACCESS_DENIED" in err

        code, out, _ = run(capsys, db_path, "get-counts")
        assert first_json(out) == {"patients": 0, "practitioners": 0}

    def test_monitoring_flow(self, capsys, db_path):
        """Register, grant, publish and read back through separate invocations."""
        run(capsys, db_path, "add-patient", "0xAlice", "Alice", "30", "Addr1", caller=HOSPITAL)
        run(capsys, db_path, "add-practitioner", "0xDrWho", "Dr Who", "40", "Clinic",
            caller=HOSPITAL)

        code, out, _ = run(capsys, db_path, "authorize", "0xDrWho", "0xAlice", caller=HOSPITAL)
        assert code == 0
        assert "authorize applied" in out

        code, out, _ = run(capsys, db_path, "publish-parameters", '{"hb":72}', caller="0xAlice")
        assert code == 0
        assert "SensorDataCollected" in out

        code, out, _ = run(capsys, db_path, "get-parameters", "0xAlice", caller="0xDrWho")
        assert code == 0
        assert first_json(out) == {"account": "0xAlice", "parameters": '{"hb":72}'}

        code, out, _ = run(capsys, db_path, "get-authorization", "0xDrWho", "0xAlice",
                           caller="0xAlice")
        assert first_json(out) is True

        run(capsys, db_path, "cancel", "0xDrWho", "0xAlice", caller=HOSPITAL)
        code, _, err = run(capsys, db_path, "get-parameters", "0xAlice", caller="0xDrWho")
        assert code == 1
        assert "ACCESS_DENIED" in err

    def test_unpublished_parameters(self, capsys, db_path):
        run(capsys, db_path, "add-patient", "0xAlice", "Alice", "30", "Addr1", caller=HOSPITAL)

        code, out, _ = run(capsys, db_path, "get-parameters", "0xAlice", caller=HOSPITAL)

        assert code == 0
        assert first_json(out) == {"account": "0xAlice", "parameters": ""}

    def test_registration_checks_need_no_caller(self, capsys, db_path):
        run(capsys, db_path, "add-practitioner", "0xDrWho", "Dr Who", "40", "Clinic",
            caller=HOSPITAL)

        _, out, _ = run(capsys, db_path, "is-practitioner", "0xDrWho")
        assert first_json(out) is True
        _, out, _ = run(capsys, db_path, "is-patient", "0xDrWho")
        assert first_json(out) is False

    def test_cross_registration_fails(self, capsys, db_path):
        run(capsys, db_path, "add-patient", "0xAlice", "Alice", "30", "Addr1", caller=HOSPITAL)

        code, _, err = run(capsys, db_path, "add-practitioner", "0xAlice", "Alice", "30", "Addr1",
                           caller=HOSPITAL)

        assert code == 1
        assert "ALREADY_REGISTERED" in err

    def test_events(self, capsys, db_path):
        run(capsys, db_path, "add-patient", "0xAlice", "Alice", "30", "Addr1", caller=HOSPITAL)
        run(capsys, db_path, "add-patient", "0xBob", "Bob", "35", "Addr2", caller=HOSPITAL)
        run(capsys, db_path, "remove-patient", "0xAlice", caller=HOSPITAL)

        _, out, _ = run(capsys, db_path, "events", "--account", "0xAlice")
        entries = first_json(out)
        assert [e["event"] for e in entries] == ["PatientAdded", "PatientRemoved"]
        assert [e["sequence"] for e in entries] == [1, 3]

        _, out, _ = run(capsys, db_path, "events", "--since", "1", "--limit", "1")
        assert [e["sequence"] for e in first_json(out)] == [2]

    def test_info(self, capsys, db_path):
        run(capsys, db_path, "add-patient", "0xAlice", "Alice", "30", "Addr1", caller=HOSPITAL)

        code, out, _ = run(capsys, db_path, "info", authority=None)

        assert code == 0
        summary = first_json(out[out.index("{"):])
        assert summary["authority"] == HOSPITAL
        assert summary["patients"] == 1
        assert summary["last_sequence"] == 1

    def test_new_database_needs_authority(self, capsys, db_path):
        code, _, err = run(capsys, db_path, "get-authority", authority=None)
        assert code == 1
        assert "CONFIGURATION_ERROR" in err

    def test_authority_from_environment(self, capsys, db_path, monkeypatch):
        monkeypatch.setenv("REMOTE_HEALTHCARE_AUTHORITY", "0xClinic")
        reload_config()

        code, out, _ = run(capsys, db_path, "get-authority", authority=None)

        assert code == 0
        assert first_json(out) == "0xClinic"

    def test_notification_log_file(self, capsys, db_path, tmp_path, monkeypatch):
        log_path = tmp_path / "notifications.jsonl"
        monkeypatch.setenv("REMOTE_HEALTHCARE_NOTIFICATION_LOG", str(log_path))
        reload_config()

        run(capsys, db_path, "add-patient", "0xAlice", "Alice", "30", "Addr1", caller=HOSPITAL)

        [line] = log_path.read_text(encoding="utf-8").splitlines()
        assert json.loads(line)["event"] == "PatientAdded"
