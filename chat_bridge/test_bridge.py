import json
import os
import subprocess

import pytest

import bridge
import bridge_worker
from bridge import BridgeCLI, BridgeOrchestrator, WORKER_PATH


def _arg(cmd, flag):
    return cmd[cmd.index(flag) + 1]


class FakeRunner:
    """Stands in for subprocess.run; writes `result` where the worker would."""

    def __init__(self, result=None, raises=None, raw=None):
        self.result = result
        self.raises = raises
        self.raw = raw
        self.cmd = None
        self.timeout = None
        self.message = None

    def __call__(self, cmd, timeout=None):
        self.cmd = cmd
        self.timeout = timeout
        with open(_arg(cmd, "--message-file"), encoding="utf-8") as f:
            self.message = f.read()
        if self.raises is not None:
            raise self.raises
        if self.raw is not None:
            with open(_arg(cmd, "--response-file"), "w", encoding="utf-8") as f:
                f.write(self.raw)
        elif self.result is not None:
            with open(_arg(cmd, "--response-file"), "w", encoding="utf-8") as f:
                json.dump(self.result, f)
        return subprocess.CompletedProcess(cmd, 0 if self.result else 1)


def _temp_files(runner):
    return [_arg(runner.cmd, "--message-file"), _arg(runner.cmd, "--response-file")]


def test_query_returns_worker_result_and_cleans_up():
    payload = {"success": True, "message": "hi", "response": "yo", "elapsed": 12, "status": "stable"}
    runner = FakeRunner(result=payload)
    bridge = BridgeOrchestrator(max_wait_time=60_000, python="python3", runner=runner)

    result = bridge.query("hi")

    assert result == payload
    assert runner.message == "hi"
    assert runner.cmd[:2] == ["python3", WORKER_PATH]
    assert runner.timeout == pytest.approx(70.0)
    assert all(not os.path.exists(p) for p in _temp_files(runner))


def test_worker_command_carries_options():
    bridge = BridgeOrchestrator(app_name="ChatGPT Beta", check_interval=2000, stable_checks=3,
                                max_wait_time=90_000, debug=True, python="py")
    cmd = bridge.worker_command("m.txt", "r.json", new_conversation=False)
    assert _arg(cmd, "--check-interval") == "2000"
    assert _arg(cmd, "--stable-checks") == "3"
    assert _arg(cmd, "--max-wait") == "90000"
    assert _arg(cmd, "--app") == "ChatGPT Beta"
    assert "--no-new-chat" in cmd
    assert "--debug" in cmd


def test_hard_timeout_kills_and_reports_failure():
    runner = FakeRunner(raises=subprocess.TimeoutExpired(cmd="worker", timeout=1))
    bridge = BridgeOrchestrator(max_wait_time=1000, runner=runner)

    result = bridge.query("hi")

    assert result["success"] is False
    assert "timed out after 1000ms" in result["error"]
    assert all(not os.path.exists(p) for p in _temp_files(runner))


def test_missing_result_file_is_a_failure():
    runner = FakeRunner()
    result = BridgeOrchestrator(runner=runner).query("hi")
    assert result["success"] is False
    assert "without writing a result" in result["error"]


def test_unparseable_result_file_is_a_failure():
    runner = FakeRunner(raw="{not json")
    result = BridgeOrchestrator(runner=runner).query("hi")
    assert result["success"] is False
    assert "Failed to parse" in result["error"]


def test_result_is_persisted(tmp_path):
    out = tmp_path / "last_result.json"
    payload = {"success": True, "message": "hi", "response": "yo", "elapsed": 3}
    BridgeOrchestrator(output_path=str(out), runner=FakeRunner(result=payload)).query("hi")
    assert json.loads(out.read_text(encoding="utf-8")) == payload


def test_cli_parse_args():
    args = BridgeCLI().parse_args(["Explain foo()", "--no-new-chat", "--max-wait", "30000", "--app", "ChatGPT"])
    assert args["message"] == "Explain foo()"
    assert args["new_chat"] is False
    assert args["max_wait_time"] == 30000
    assert args["app"] == "ChatGPT"

    with pytest.raises(ValueError):
        BridgeCLI().parse_args(["--stable-checks", "two"])


def test_cli_without_message_is_usage_error():
    assert BridgeCLI().run([]) == 2


# ---------------- worker ----------------

class FakePoller:
    def __init__(self, result=None, raises=None):
        self.result = result
        self.raises = raises
        self.metrics = {"ui_reads": 1}
        self.calls = []

    def query(self, message, new_chat):
        self.calls.append((message, new_chat))
        if self.raises is not None:
            raise self.raises
        return self.result


def test_worker_parse_args():
    args = bridge_worker.parse_args([
        "--message-file", "m.txt", "--response-file", "r.json",
        "--no-new-chat", "--check-interval", "1500", "--debug",
    ])
    assert args["message_file"] == "m.txt"
    assert args["response_file"] == "r.json"
    assert args["new_chat"] is False
    assert args["check_interval"] == 1500
    assert args["debug"] is True

    with pytest.raises(ValueError):
        bridge_worker.parse_args(["--message-file", "m.txt"])


def test_worker_writes_poller_result(tmp_path):
    message_file = tmp_path / "m.txt"
    message_file.write_text("Explain foo()", encoding="utf-8")
    response_file = tmp_path / "r.json"
    args = bridge_worker.parse_args(["--message-file", str(message_file), "--response-file", str(response_file)])
    poller = FakePoller(result={"success": True, "response": "foo returns 42"})

    assert bridge_worker.run(args, poller=poller) == 0
    assert poller.calls == [("Explain foo()", True)]
    assert json.loads(response_file.read_text(encoding="utf-8"))["response"] == "foo returns 42"


def test_worker_reports_unexpected_errors(tmp_path):
    message_file = tmp_path / "m.txt"
    message_file.write_text("hi", encoding="utf-8")
    response_file = tmp_path / "r.json"
    args = bridge_worker.parse_args(["--message-file", str(message_file), "--response-file", str(response_file)])

    assert bridge_worker.run(args, poller=FakePoller(raises=RuntimeError("boom"))) == 1
    written = json.loads(response_file.read_text(encoding="utf-8"))
    assert written["success"] is False
    assert written["error"] == "boom"


def test_worker_missing_message_file(tmp_path):
    response_file = tmp_path / "r.json"
    args = bridge_worker.parse_args(["--message-file", str(tmp_path / "nope.txt"), "--response-file", str(response_file)])
    assert bridge_worker.run(args, poller=FakePoller()) == 1
    assert json.loads(response_file.read_text(encoding="utf-8"))["success"] is False


def test_worker_main_bad_arguments():
    assert bridge_worker.main(["--stable-checks", "x"]) == 2


# ---------------- CLI preconditions ----------------

def test_cli_stops_when_app_is_not_installed(monkeypatch):
    def no_query(self, message, new_conversation=True):
        raise AssertionError("query should not run")

    monkeypatch.setattr(BridgeOrchestrator, "is_app_installed", lambda self: False)
    monkeypatch.setattr(BridgeOrchestrator, "query", no_query)
    assert BridgeCLI().run(["hi"]) == 1


def test_dump_tree_requires_accessibility_trust(monkeypatch, tmp_path):
    out = tmp_path / "tree.json"
    monkeypatch.setattr(bridge, "ensure_trust", lambda: False)
    assert BridgeCLI().run(["--dump-tree", str(out)]) == 1
    assert not out.exists()


def test_dump_tree_records_window_and_checks_path(monkeypatch, tmp_path, recorded_window):
    out = tmp_path / "tree.json"
    monkeypatch.setattr(bridge, "ensure_trust", lambda: True)
    monkeypatch.setattr(bridge.AccessibilityTreeReader, "front_window",
                        lambda self, app_name=None: (recorded_window, None))

    assert BridgeCLI().run(["--dump-tree", str(out)]) == 0
    assert json.loads(out.read_text(encoding="utf-8"))["tree"]["role"] == "AXWindow"
