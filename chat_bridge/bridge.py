#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
Chat Bridge - Orchestrator and CLI
==================================

Sends a message to the chat desktop app and returns the assistant's reply.

The send/poll sequence runs in a separate worker process (bridge_worker.py)
under a hard wall-clock timeout of max_wait_time + 10s. AX calls can block
forever when the target app hangs; killing the worker is the only reliable
way out, and the caller then gets a failure result instead of waiting.

Usage:
    python bridge.py "message" [options]
    python bridge.py --dump-tree tree.json

Options:
    --no-new-chat        Reuse the current conversation
    --check-interval MS  Delay between UI reads (default 5000)
    --stable-checks N    Identical reads needed to accept the reply (default 2)
    --max-wait MS        Give up after this long (default 1200000)
    --app NAME           Target app (default ChatGPT)
    --output PATH        Also persist the result JSON to PATH
    --dump-tree PATH     Record the front window's AX tree to PATH and check
                         the conversation path against it
    --debug              Per-check status lines
"""

import json
import os
import subprocess
import sys
import tempfile
import time

from app_control import ChatAppController
from ax_nodes import ensure_trust, save_snapshot, snapshot_tree
from ax_reader import CONVERSATION_PATH, DEFAULT_APP_NAME, AccessibilityTreeReader
from bridge_errors import BridgeError
from response_poller import CHECK_INTERVAL_MS, MAX_WAIT_TIME_MS, STABLE_CHECKS

# ---------------- Constants ----------------
WORKER_PATH = os.path.join(os.path.dirname(os.path.abspath(__file__)), "bridge_worker.py")

# Headroom over max_wait_time for focus/paste/send and interpreter start-up
HARD_TIMEOUT_MARGIN_MS = 10_000

DUMP_TREE_DEPTH = 8
DUMP_TREE_NODES = 1500


def _preview(message: str) -> str:
    return message[:100] + ("..." if len(message) > 100 else "")


class BridgeOrchestrator:
    """Runs queries in an isolated worker process and collects their results."""

    def __init__(self, app_name: str = DEFAULT_APP_NAME, check_interval: int = CHECK_INTERVAL_MS,
                 stable_checks: int = STABLE_CHECKS, max_wait_time: int = MAX_WAIT_TIME_MS,
                 output_path=None, debug: bool = False, python: str = sys.executable,
                 runner=subprocess.run):
        """
        Args:
            app_name: target app
            check_interval / stable_checks / max_wait_time: passed to the poller
            output_path: optional file that receives every result as JSON
            debug: print operation details
            python: interpreter for the worker process
            runner: subprocess.run compatible callable (replaced in tests)
        """
        self.app_name = app_name
        self.check_interval = check_interval
        self.stable_checks = stable_checks
        self.max_wait_time = max_wait_time
        self.output_path = output_path
        self.debug = debug
        self.python = python
        self._run = runner

    @property
    def hard_timeout(self) -> float:
        """Seconds before the worker process is killed."""
        return (self.max_wait_time + HARD_TIMEOUT_MARGIN_MS) / 1000.0

    def is_app_installed(self) -> bool:
        return ChatAppController(self.app_name, debug=self.debug).is_installed()

    def worker_command(self, message_file: str, response_file: str, new_conversation: bool) -> list:
        cmd = [
            self.python, WORKER_PATH,
            "--message-file", message_file,
            "--response-file", response_file,
            "--check-interval", str(self.check_interval),
            "--stable-checks", str(self.stable_checks),
            "--max-wait", str(self.max_wait_time),
            "--app", self.app_name,
        ]
        if not new_conversation:
            cmd.append("--no-new-chat")
        if self.debug:
            cmd.append("--debug")
        return cmd

    def query(self, message: str, new_conversation: bool = True) -> dict:
        """
        Send `message` and wait for the reply.

        Returns:
            dict: {"success", "message", "response"?, "error"?, "elapsed", "status"?, "metrics"?}
        """
        start = time.monotonic()
        print(f"[BRIDGE] Starting query via worker process ({len(message)} chars)")

        fd, message_file = tempfile.mkstemp(prefix="chat_bridge_message_", suffix=".txt")
        os.close(fd)
        fd, response_file = tempfile.mkstemp(prefix="chat_bridge_response_", suffix=".json")
        os.close(fd)
        os.unlink(response_file)

        try:
            with open(message_file, "w", encoding="utf-8") as f:
                f.write(message)

            cmd = self.worker_command(message_file, response_file, new_conversation)
            try:
                proc = self._run(cmd, timeout=self.hard_timeout)
            except subprocess.TimeoutExpired:
                print(f"[BRIDGE] ❌ Hard timeout reached, worker killed after {self.hard_timeout:.0f}s")
                result = self._failure(
                    message, f"Automation timed out after {self.max_wait_time}ms", start)
            except OSError as e:
                result = self._failure(message, f"Could not start worker: {e}", start)
            else:
                result = self._load_result(response_file, message, proc, start)
        finally:
            for path in (message_file, response_file):
                try:
                    os.unlink(path)
                except FileNotFoundError:
                    pass

        print(f"[BRIDGE] Completed in {int(round(time.monotonic() - start))}s "
              f"({'✅ pass' if result.get('success') else '❌ fail'})")
        self._persist(result)
        return result

    def _load_result(self, response_file, message, proc, start) -> dict:
        code = getattr(proc, "returncode", None)
        if not os.path.exists(response_file):
            return self._failure(message, f"Worker exited ({code}) without writing a result", start)
        try:
            with open(response_file, encoding="utf-8") as f:
                result = json.load(f)
        except (OSError, ValueError) as e:
            return self._failure(message, f"Failed to parse worker result: {e}", start)
        if not isinstance(result, dict):
            return self._failure(message, "Worker result is not an object", start)
        return result

    @staticmethod
    def _failure(message, error, start) -> dict:
        return {
            "success": False,
            "message": _preview(message),
            "error": error,
            "elapsed": int(round(time.monotonic() - start)),
        }

    def _persist(self, result) -> None:
        if not self.output_path:
            return
        try:
            with open(self.output_path, "w", encoding="utf-8") as f:
                json.dump(result, f, ensure_ascii=False, indent=2)
            if self.debug:
                print(f"[SAVED] Result written to {self.output_path}")
        except OSError as e:
            print(f"[ERROR] Failed to write {self.output_path}: {e}")


class BridgeCLI:
    """CLI wrapper around BridgeOrchestrator."""

    def parse_args(self, argv):
        """Parse command line arguments."""
        args = {
            "message": None,
            "new_chat": True,
            "check_interval": CHECK_INTERVAL_MS,
            "stable_checks": STABLE_CHECKS,
            "max_wait_time": MAX_WAIT_TIME_MS,
            "app": DEFAULT_APP_NAME,
            "output": None,
            "dump_tree": None,
            "debug": False,
        }
        ints = {"--check-interval": "check_interval", "--stable-checks": "stable_checks",
                "--max-wait": "max_wait_time"}

        i = 0
        while i < len(argv):
            arg = argv[i]
            if arg in ints and i + 1 < len(argv):
                try:
                    args[ints[arg]] = int(argv[i + 1])
                except ValueError:
                    raise ValueError(f"Invalid value for {arg}: '{argv[i + 1]}'")
                i += 1
            elif arg in ("--app", "--output", "--dump-tree") and i + 1 < len(argv):
                args[arg[2:].replace("-", "_")] = argv[i + 1]
                i += 1
            elif arg == "--no-new-chat":
                args["new_chat"] = False
            elif arg == "--debug":
                args["debug"] = True
            elif arg.startswith("--"):
                print(f"Warning: Unknown option '{arg}' ignored")
            elif args["message"] is None:
                args["message"] = arg
            i += 1
        return args

    def dump_tree(self, args) -> int:
        """Record the live window and report where the conversation path breaks."""
        if not ensure_trust():
            return 1
        reader = AccessibilityTreeReader(app_name=args["app"], debug=args["debug"])
        try:
            window, error = reader.front_window()
        except BridgeError as e:
            print(f"Error: {e}")
            return 1
        if error:
            print(f"Error: {error}")
            return 1

        snapshot = snapshot_tree(window, max_depth=DUMP_TREE_DEPTH, max_nodes=DUMP_TREE_NODES)
        if not save_snapshot(snapshot, args["dump_tree"]):
            return 1

        problems = CONVERSATION_PATH.verify(window)
        if problems:
            print("❌ Conversation path no longer matches the recorded layout:")
            for p in problems:
                print(f"   {json.dumps(p, ensure_ascii=False)}")
            return 1
        print(f"✅ Conversation path {list(CONVERSATION_PATH.path)} still resolves")
        return 0

    def run(self, argv) -> int:
        try:
            args = self.parse_args(argv)
        except ValueError as e:
            print(f"Error: {e}")
            return 2

        if args["dump_tree"]:
            return self.dump_tree(args)

        if not args["message"]:
            print("Error: no message given")
            print(__doc__)
            return 2

        bridge = BridgeOrchestrator(
            app_name=args["app"],
            check_interval=args["check_interval"],
            stable_checks=args["stable_checks"],
            max_wait_time=args["max_wait_time"],
            output_path=args["output"],
            debug=args["debug"],
        )
        if not bridge.is_app_installed():
            print(f"Error: {args['app']} is not installed")
            return 1
        result = bridge.query(args["message"], new_conversation=args["new_chat"])
        print(json.dumps(result, ensure_ascii=False, indent=2))
        return 0 if result.get("success") else 1


def main():
    """Entry point."""
    return BridgeCLI().run(sys.argv[1:])


if __name__ == "__main__":
    sys.exit(main())
