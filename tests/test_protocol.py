"""Tests for wiretap.broadcast.protocol — message shapes and inbound parsing."""

from __future__ import annotations

import json

import pytest
from conftest import make_log, make_network

from wiretap.broadcast.protocol import (
    ClearCommand,
    ControlCommand,
    batch_message,
    clear_message,
    config_message,
    encode,
    from_notification,
    parse_inbound,
    status_message,
)
from wiretap.capture.collector import Notification
from wiretap.capture.policy import CapturePolicy


# ---------------------------------------------------------------------------
# Outbound
# ---------------------------------------------------------------------------


class TestOutbound:
    """Message builders."""

    def test_batch(self) -> None:
        log = make_log("a")
        req = make_network()
        message = batch_message([log], [req])
        assert message["type"] == "batch"
        assert message["data"]["logs"] == [log.to_dict()]
        assert message["data"]["requests"] == [req.to_dict()]

    def test_status(self) -> None:
        message = status_message({"pausedLogs": True})
        assert message == {"type": "status", "data": {"pausedLogs": True, "pausedNetwork": False}}

    def test_config(self) -> None:
        message = config_message(CapturePolicy().to_dict())
        assert message["type"] == "config"
        assert message["data"]["truncateBodyBytes"] == 1_000_000

    def test_clear_has_target_at_top_level(self) -> None:
        assert clear_message("all") == {"type": "clear", "target": "all"}

    def test_from_notification(self) -> None:
        record = make_log()
        assert from_notification(Notification("log", record, 1)) == {
            "type": "log",
            "data": record.to_dict(),
        }
        req = make_network()
        assert from_notification(Notification("network", req, 2))["type"] == "network"
        assert from_notification(Notification("clear", "logs", 3)) == clear_message("logs")
        status = {"pausedLogs": False, "pausedNetwork": True}
        assert from_notification(Notification("status", status, 4)) == status_message(status)

    def test_encode_single_line_json(self) -> None:
        text = encode({"type": "log", "data": {"message": "a\nb ✓"}})
        assert "\n" not in text
        assert json.loads(text)["data"]["message"] == "a\nb ✓"


# ---------------------------------------------------------------------------
# Inbound
# ---------------------------------------------------------------------------


class TestParseInbound:
    """parse_inbound — lenient, never raising."""

    def test_clear(self) -> None:
        assert parse_inbound('{"type": "clear", "target": "logs"}') == ClearCommand("logs")

    def test_clear_bad_target(self) -> None:
        assert parse_inbound('{"type": "clear", "target": "everything"}') is None

    def test_control_pause(self) -> None:
        command = parse_inbound('{"type": "control", "data": {"pauseNetwork": true}}')
        assert command == ControlCommand(pause_network=True)
        assert not command.has_policy_update

    def test_control_non_bool_pause_ignored(self) -> None:
        command = parse_inbound('{"type": "control", "data": {"pauseLogs": "yes"}}')
        assert isinstance(command, ControlCommand)
        assert command.pause_logs is None

    def test_control_policy_fields(self) -> None:
        raw = json.dumps({
            "type": "control",
            "data": {"truncateBodyBytes": 50, "redactHeaders": ["x"], "other": 1},
        })
        command = parse_inbound(raw)
        assert isinstance(command, ControlCommand)
        assert command.policy_patch == {"truncateBodyBytes": 50, "redactHeaders": ["x"]}
        assert command.has_policy_update

    def test_control_without_data(self) -> None:
        assert parse_inbound('{"type": "control"}') is None

    def test_bytes_accepted(self) -> None:
        assert parse_inbound(b'{"type": "clear", "target": "all"}') == ClearCommand("all")

    @pytest.mark.parametrize(
        "raw",
        ["not json", "[]", '"clear"', "{}", '{"type": "hello"}', ""],
    )
    def test_malformed(self, raw: str) -> None:
        assert parse_inbound(raw) is None
