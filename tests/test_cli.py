"""Tests for the command line interface."""

import json

import pytest

from dtr_payroll.__main__ import PayrollCli

from tests.conftest import OFFICE_SCHEDULE_CONFIG


def _write(tmp_path, document):
    path = tmp_path / "day.json"
    path.write_text(json.dumps(document))
    return path


class TestClassifyCommand:
    def test_classifies_document(self, tmp_path, capsys):
        path = _write(
            tmp_path,
            {
                "employee_id": "00000000-0000-0000-0000-000000000001",
                "work_date": "2025-01-06",
                "schedule": {
                    "name": "Office",
                    "schedule_type": "fixed",
                    "time_configuration": OFFICE_SCHEDULE_CONFIG,
                },
                "punches": [
                    {"timestamp": "2025-01-06T08:00:00"},
                    {"timestamp": "2025-01-06T19:00:00"},
                ],
            },
        )

        exit_code = PayrollCli().run(["classify", "--input", str(path)])

        output = json.loads(capsys.readouterr().out)
        assert exit_code == 0
        assert output["status"] == "present"
        assert output["total_work_minutes"] == 600
        assert output["overtime_minutes"] == 120
        assert output["overtime_approved"] is False

    def test_holiday_in_document(self, tmp_path, capsys):
        path = _write(
            tmp_path,
            {
                "employee_id": "00000000-0000-0000-0000-000000000001",
                "work_date": "2025-01-06",
                "schedule": {
                    "name": "Office",
                    "schedule_type": "fixed",
                    "time_configuration": OFFICE_SCHEDULE_CONFIG,
                },
                "holidays": [{"date": "2025-01-06", "name": "Local holiday"}],
            },
        )

        assert PayrollCli().run(["classify", "--input", str(path)]) == 0
        output = json.loads(capsys.readouterr().out)
        assert output["status"] == "holiday"
        assert output["holiday_type"] == "regular"

    def test_invalid_document(self, tmp_path, capsys):
        path = _write(tmp_path, {"work_date": "not-a-date"})

        assert PayrollCli().run(["classify", "--input", str(path)]) == 1
        assert "Invalid request" in capsys.readouterr().err

    def test_engine_error_reported_as_json(self, tmp_path, capsys):
        path = _write(
            tmp_path,
            {
                "employee_id": "00000000-0000-0000-0000-000000000001",
                "work_date": "2025-01-06",
                "shift_name": "graveyard",
                "schedule": {
                    "name": "Plant",
                    "schedule_type": "shifting",
                    "time_configuration": {
                        "shifts": [
                            {"name": "night", "start_time": "22:00", "end_time": "06:00"}
                        ]
                    },
                },
                "punches": [{"timestamp": "2025-01-06T22:00:00"}],
            },
        )

        exit_code = PayrollCli().run(["classify", "--input", str(path)])

        output = json.loads(capsys.readouterr().out)
        assert exit_code == 2
        assert output["error"]["code"] == "SHIFT_NOT_DEFINED"

    def test_no_command_prints_help(self, capsys):
        assert PayrollCli().run([]) == 1
        assert "dtr-payroll" in capsys.readouterr().out


class TestGeneratePeriodsCommand:
    def test_supplemental_cycle_rejected(self, capsys):
        with pytest.raises(SystemExit):
            PayrollCli().run(["generate-periods", "--cycle", "supplemental", "--year", "2025"])
        assert "invalid choice" in capsys.readouterr().err

    def test_year_required(self, capsys):
        with pytest.raises(SystemExit):
            PayrollCli().run(["generate-periods"])
