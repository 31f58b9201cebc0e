"""Tests for the holdfast command-line interface."""

import json
from pathlib import Path
from unittest.mock import MagicMock, patch

import pytest
import requests

from src.assistant.client import AssistantError, AssistantReply
from src.cli import main

EXAMPLE = str(Path(__file__).parent.parent / "config" / "contracts" / "lisbon_offsite.yaml")


@pytest.fixture(autouse=True)
def no_log_files():
    with patch("src.cli.configure_logging"):
        yield


@pytest.fixture
def near_contract(tmp_path):
    path = tmp_path / "near.yaml"
    path.write_text(
        "contract_id: near\n"
        "name: Train to Porto\n"
        "regime: hard\n"
        "boundary: '2026-03-10T14:00:00+00:00'\n"
    )
    return str(path)


class TestCommands:
    def test_no_command_prints_help(self, capsys):
        assert main([]) == 0
        assert "usage: holdfast" in capsys.readouterr().out

    def test_parse_pass(self, capsys):
        assert main(["parse-pass", "Flight AB123 JFK-LAX 2025-03-10 14:30 REF: XYZ1234"]) == 0
        out = json.loads(capsys.readouterr().out)
        assert out["flight_number"] == "AB123"
        assert out["booking_reference"] == "XYZ1234"

    def test_suggest_docs(self, capsys):
        assert main(["suggest-docs", "--regime", "hard", "--context", "flight to Lisbon"]) == 0
        out = capsys.readouterr().out
        assert "Boarding pass [required] - Flight context detected." in out
        assert "[optional]" in out

    def test_suggest_docs_none(self, capsys):
        assert main(["suggest-docs", "--regime", "soft", "--context", "Write more"]) == 0
        assert "No documents suggested." in capsys.readouterr().out

    def test_score(self, capsys):
        assert main(["score", EXAMPLE, "--now", "2026-11-01T09:00:00Z"]) == 0
        out = json.loads(capsys.readouterr().out)
        assert out["snapshot"]["evaluated_at"] == "2026-11-01T09:00:00+00:00"
        assert out["snapshot"]["coupling_statuses"]["geospatial"] == "locked_stationary"
        assert out["readiness"]["label"] == "partial"
        assert out["readiness"]["missing_types"] == ["event_ticket"]

    def test_score_missing_file(self, capsys, tmp_path):
        assert main(["score", str(tmp_path / "missing.yaml")]) == 1
        assert "not found" in capsys.readouterr().err

    def test_plan(self, capsys):
        assert main(["plan", EXAMPLE, "--now", "2026-11-03T12:00:00Z"]) == 0
        plan = json.loads(capsys.readouterr().out)["plan"]
        assert "action_boundary_lock" in plan["actions"]
        assert "action_hard_boundary" in plan["actions"]
        assert plan["actors"]["actor_primary"]["deadline"] == 150

    def test_keys(self):
        with patch("src.cli.secrets._cli_check", return_value=0) as mock_check:
            assert main(["keys"]) == 0
        mock_check.assert_called_once()


class TestCheckCommand:
    def test_escalation_on_second_check(self, capsys, near_contract):
        code = main(["check", near_contract, "--count", "3", "--now", "2026-03-10T12:00:00Z"])
        assert code == 0
        out = capsys.readouterr().out.splitlines()
        checks = [line for line in out if line.startswith("[")]
        assert len(checks) == 3
        assert "PLAN B streak=1" in checks[0]
        assert checks[1].startswith("[2] 2026-03-10T12:05:00+00:00")
        assert sum("ESCALATION" in line for line in out) == 1

    def test_auto_ack_allows_re_escalation(self, capsys, near_contract):
        main(["check", near_contract, "--count", "4", "--now", "2026-03-10T12:00:00Z", "--auto-ack"])
        out = capsys.readouterr().out
        assert out.count("ESCALATION") == 2

    def test_refuses_past_boundary(self, capsys, near_contract):
        assert main(["check", near_contract, "--now", "2026-03-11T00:00:00Z"]) == 1
        err = capsys.readouterr().err
        assert "cannot be activated" in err
        assert "future" in err

    def test_live_refresh_uses_planner(self, capsys):
        with patch("src.stability.monitor.ContractMonitor.refresh_planner") as mock_refresh:
            assert main(["check", EXAMPLE, "--live", "--count", "2", "--now", "2026-11-01T09:00:00Z"]) == 0
        assert mock_refresh.call_count == 2


class TestPromptCommand:
    def test_prints_prompt(self, capsys):
        assert main(["prompt", EXAMPLE, "Am I on track?", "--now", "2026-11-01T09:00:00Z"]) == 0
        out = capsys.readouterr().out
        assert out.startswith("User request: Am I on track?")
        assert "contract_id=lisbon-offsite" in out

    def test_send(self, capsys):
        client = MagicMock()
        client.ask.return_value = AssistantReply(reply="Looks fine.", model="m1")
        with patch("src.cli.AssistantClient", return_value=client):
            assert main(["prompt", EXAMPLE, "Am I on track?", "--send", "--mission-id", "m-1"]) == 0
        assert "Looks fine." in capsys.readouterr().out
        assert client.ask.call_args.kwargs["mission_id"] == "m-1"

    def test_send_failure(self, capsys):
        with patch("src.cli.AssistantClient", side_effect=AssistantError("Assistant URL is required.")):
            assert main(["prompt", EXAMPLE, "hi", "--send"]) == 1
        assert "Assistant unavailable" in capsys.readouterr().err


class TestConfigOption:
    @pytest.fixture
    def config_file(self, tmp_path):
        path = tmp_path / "holdfast.yaml"
        path.write_text(
            "adapters:\n"
            "  timeout_seconds: 5\n"
            "  request_timeout: [2, 4]\n"
            "  retry:\n"
            "    max_retries: 3\n"
            "assistant:\n"
            "  base_url: 'https://assist.example.com/chat'\n"
        )
        return str(path)

    @patch("src.signals.base_adapter.time.sleep")
    def test_adapter_retry_settings_take_effect(self, mock_sleep, capsys, config_file):
        with patch("src.signals.ics_feed._session.get", side_effect=requests.ConnectionError("down")) as mock_get:
            assert main([
                "--config", config_file, "check", EXAMPLE, "--live", "--now", "2026-11-01T09:00:00Z",
            ]) == 0
        assert mock_get.call_count == 3
        assert mock_get.call_args.kwargs["timeout"] == (2.0, 4.0)
        assert "[1]" in capsys.readouterr().out

    def test_assistant_base_url_taken_from_config(self, capsys, config_file):
        response = MagicMock(ok=True)
        response.json.return_value = {"reply": "On track.", "provider": "core", "model": "m1"}
        with patch("src.assistant.client._session.post", return_value=response) as mock_post:
            assert main(["--config", config_file, "prompt", EXAMPLE, "Am I on track?", "--send"]) == 0
        assert mock_post.call_args.args[0] == "https://assist.example.com/assistant_chat"
        assert "On track." in capsys.readouterr().out

    def test_base_url_flag_beats_config(self, config_file):
        response = MagicMock(ok=True)
        response.json.return_value = {"reply": "Fine."}
        with patch("src.assistant.client._session.post", return_value=response) as mock_post:
            assert main([
                "--config", config_file, "prompt", EXAMPLE, "hi", "--send", "--base-url", "http://localhost:9000",
            ]) == 0
        assert mock_post.call_args.args[0] == "http://localhost:9000/assistant_chat"
