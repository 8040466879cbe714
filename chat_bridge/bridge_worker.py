#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
Bridge Worker - Isolated Send/Poll Process
==========================================

Runs one query end to end (focus → new chat → paste/send → poll) and writes
the result as JSON. Launched by bridge.py in its own process, so a hung AX
call can be killed from outside without stranding the caller.

Usage:
    python bridge_worker.py --message-file M --response-file R [options]

Options:
    --no-new-chat        Reuse the current conversation
    --check-interval MS  Delay between UI reads (default 5000)
    --stable-checks N    Identical reads needed to accept the reply (default 2)
    --max-wait MS        Give up after this long (default 1200000)
    --app NAME           Target app (default ChatGPT)
    --debug              Per-check status lines

Exit codes: 0 result written, 1 fatal error (a failure result is still
written when possible), 2 bad arguments.
"""

import json
import sys

from app_control import ChatAppController
from ax_reader import AccessibilityTreeReader, DEFAULT_APP_NAME
from response_poller import CHECK_INTERVAL_MS, MAX_WAIT_TIME_MS, STABLE_CHECKS, ResponsePoller

INT_OPTIONS = {
    "--check-interval": "check_interval",
    "--stable-checks": "stable_checks",
    "--max-wait": "max_wait_time",
}


def parse_args(argv):
    """Parse command line arguments. Raises ValueError on bad input."""
    args = {
        "message_file": None,
        "response_file": None,
        "new_chat": True,
        "check_interval": CHECK_INTERVAL_MS,
        "stable_checks": STABLE_CHECKS,
        "max_wait_time": MAX_WAIT_TIME_MS,
        "app": DEFAULT_APP_NAME,
        "debug": False,
    }

    i = 0
    while i < len(argv):
        arg = argv[i]
        if arg in ("--message-file", "--response-file", "--app") and i + 1 < len(argv):
            args[arg[2:].replace("-", "_")] = argv[i + 1]
            i += 1
        elif arg in INT_OPTIONS and i + 1 < len(argv):
            try:
                args[INT_OPTIONS[arg]] = int(argv[i + 1])
            except ValueError:
                raise ValueError(f"Invalid value for {arg}: '{argv[i + 1]}'")
            i += 1
        elif arg == "--no-new-chat":
            args["new_chat"] = False
        elif arg == "--new-chat":
            args["new_chat"] = True
        elif arg == "--debug":
            args["debug"] = True
        elif arg.startswith("--"):
            print(f"Warning: Unknown option '{arg}' ignored")
        i += 1

    if not args["message_file"] or not args["response_file"]:
        raise ValueError("--message-file and --response-file are required")
    return args


def build_poller(args, reader=None, controller=None):
    reader = reader or AccessibilityTreeReader(app_name=args["app"], debug=args["debug"])
    controller = controller or ChatAppController(app_name=args["app"], debug=args["debug"])
    return ResponsePoller(
        reader,
        controller,
        check_interval=args["check_interval"],
        stable_checks=args["stable_checks"],
        max_wait_time=args["max_wait_time"],
        debug=args["debug"],
    )


def write_result(path, result) -> bool:
    try:
        with open(path, "w", encoding="utf-8") as f:
            json.dump(result, f, ensure_ascii=False, indent=2)
        return True
    except OSError as e:
        print(f"[WORKER] Failed to write {path}: {e}")
        return False


def run(args, poller=None) -> int:
    """Execute one query and write its result file."""
    try:
        with open(args["message_file"], encoding="utf-8") as f:
            message = f.read()
    except OSError as e:
        write_result(args["response_file"], {"success": False, "message": "", "error": str(e), "elapsed": 0})
        return 1

    poller = poller or build_poller(args)
    try:
        result = poller.query(message, args["new_chat"])
    except Exception as e:
        print(f"[WORKER] Fatal error: {e}")
        write_result(args["response_file"], {
            "success": False,
            "message": "",
            "error": str(e),
            "elapsed": 0,
            "metrics": dict(poller.metrics),
        })
        return 1

    if not write_result(args["response_file"], result):
        return 1
    print("[WORKER] Response saved to file")
    return 0


def main(argv=None):
    """Entry point."""
    try:
        args = parse_args(sys.argv[1:] if argv is None else argv)
    except ValueError as e:
        print(f"Error: {e}")
        return 2
    return run(args)


if __name__ == "__main__":
    sys.exit(main())
