"""
Response Poller - Streamed Response Capture
===========================================

Sends one message through the app controller, then polls the AX reader until
the assistant's reply stops changing.

Phases (PollPhase):

    AWAITING_FIRST_MESSAGE  no messages in the conversation yet
    AWAITING_RESPONSE       only the user message is visible
    RESPONSE_GROWING        reply visible, still changing (or being confirmed)
    RESPONSE_STABLE         reply unchanged for `stable_checks` reads  -> success
    TIMEOUT                 max_wait_time reached                      -> best effort
    MISMATCH                UI shows another conversation              -> hard failure

The transitions live in plain functions (on_read_error, on_messages,
on_timeout) so each one can be exercised without a UI. A PollState belongs to
exactly one wait_for_response() call and is dropped when the query returns.
"""

import time
from enum import Enum

from bridge_errors import BridgeError, ConversationMismatch

# ---------------- Constants ----------------
# Polling too often makes the app stutter while it streams; 5s keeps reads
# cheap. 20 minutes covers the slow "thinking" models.
CHECK_INTERVAL_MS = 5000
STABLE_CHECKS = 2
MAX_WAIT_TIME_MS = 1_200_000

# Conversation validation: compare normalized prefixes of the sent message and
# the user message shown in the UI
PREVIEW_CHARS = 100
PROBE_CHARS = 50

STATUS_PREVIEW_CHARS = 80
SPINNER_FRAMES = "⠋⠙⠹⠸⠼⠴⠦⠧⠇⠏"


class PollPhase(Enum):
    AWAITING_FIRST_MESSAGE = "awaiting_first_message"
    AWAITING_RESPONSE = "awaiting_response"
    RESPONSE_GROWING = "response_growing"
    RESPONSE_STABLE = "stable"
    TIMEOUT = "timeout"
    MISMATCH = "mismatch"

    @property
    def terminal(self) -> bool:
        return self in (PollPhase.RESPONSE_STABLE, PollPhase.TIMEOUT, PollPhase.MISMATCH)


class PollState:
    """Mutable state of one polling session."""

    def __init__(self, start_time: float):
        self.last_response = None
        self.stable_count = 0
        self.check_number = 0
        self.start_time = start_time
        self.conversation_validated = False
        self.phase = PollPhase.AWAITING_FIRST_MESSAGE
        self.last_error = None

    def __repr__(self):
        return (f"PollState(phase={self.phase.name}, check={self.check_number}, "
                f"stable={self.stable_count}, validated={self.conversation_validated})")


def message_preview(text, limit: int = PREVIEW_CHARS) -> str:
    """First `limit` chars with newlines collapsed to spaces, trimmed."""
    if not text:
        return ""
    return text[:limit].replace("\n", " ").strip()


def conversation_matches(sent: str, observed: str) -> bool:
    """True when either normalized prefix contains the other's first PROBE_CHARS chars."""
    expected = message_preview(sent)
    found = message_preview(observed)
    return expected[:PROBE_CHARS] in found or found[:PROBE_CHARS] in expected


# ---------------- Transitions ----------------
def on_read_error(state: PollState, error: str) -> PollPhase:
    """A failed read is transient: remember it, change nothing else."""
    state.last_error = error
    return state.phase


def on_timeout(state: PollState) -> PollPhase:
    state.phase = PollPhase.TIMEOUT
    return state.phase


def on_messages(state: PollState, messages: list, sent_message: str, stable_checks: int) -> PollPhase:
    """
    Fold one successful read into `state`.

    Raises:
        ConversationMismatch: on the first multi-message read, if the user
            message in the UI is not the one we sent
    """
    state.last_error = None
    if not messages:
        state.phase = PollPhase.AWAITING_FIRST_MESSAGE
        return state.phase
    if len(messages) == 1:
        state.phase = PollPhase.AWAITING_RESPONSE
        return state.phase

    if not state.conversation_validated and message_preview(sent_message):
        user_message = messages[-2]
        if not conversation_matches(sent_message, user_message):
            state.phase = PollPhase.MISMATCH
            raise ConversationMismatch(
                message_preview(sent_message)[:PROBE_CHARS],
                message_preview(user_message)[:PROBE_CHARS],
            )
        state.conversation_validated = True

    candidate = messages[-1]
    if not candidate or not candidate.strip():
        state.phase = PollPhase.AWAITING_RESPONSE
        return state.phase

    if candidate == state.last_response:
        state.stable_count += 1
    else:
        state.stable_count = 0
        state.last_response = candidate

    if state.stable_count >= stable_checks:
        state.phase = PollPhase.RESPONSE_STABLE
    else:
        state.phase = PollPhase.RESPONSE_GROWING
    return state.phase


# ---------------- Poller ----------------
class ResponsePoller:
    """
    One message in, one reply out.

    `reader` needs read() -> ExtractionResult dict; `controller` needs focus(),
    new_conversation() and send_message(text). `sleep` and `clock` are
    injectable so the loop can be driven by a fake clock in tests.
    """

    def __init__(self, reader, controller=None, check_interval: int = CHECK_INTERVAL_MS,
                 stable_checks: int = STABLE_CHECKS, max_wait_time: int = MAX_WAIT_TIME_MS,
                 debug: bool = False, sleep=time.sleep, clock=time.monotonic):
        self.reader = reader
        self.controller = controller
        self.check_interval = max(0, int(check_interval))
        self.stable_checks = max(1, int(stable_checks))
        self.max_wait_time = max(0, int(max_wait_time))
        self.debug = debug
        self._sleep = sleep
        self._clock = clock
        self.metrics = self._fresh_metrics()
        self._last_status = None

    @staticmethod
    def _fresh_metrics() -> dict:
        return {
            "ui_reads": 0,
            "total_read_time": 0,
            "focus_time": 0,
            "paste_time": 0,
            "waiting_time": 0,
        }

    def _ms_since(self, t0: float) -> int:
        return int(round((self._clock() - t0) * 1000))

    # ==================== QUERY ====================

    def query(self, message: str, start_new_conversation: bool = True) -> dict:
        """
        Send `message` and wait for the reply.

        Returns:
            dict: {"success", "message", "response", "error"?, "elapsed", "status", "metrics"}
        """
        self.metrics = self._fresh_metrics()
        start = self._clock()
        preview = (message or "")[:100] + ("..." if len(message or "") > 100 else "")
        print(f"[POLL] Starting query ({len(message or '')} chars)")

        try:
            if self.controller is None:
                raise BridgeError("No app controller configured")

            t0 = self._clock()
            self.controller.focus()
            self.metrics["focus_time"] = self._ms_since(t0)

            if start_new_conversation:
                self.controller.new_conversation()

            t0 = self._clock()
            self.controller.send_message(message)
            self.metrics["paste_time"] = self._ms_since(t0)

            state = self.wait_for_response(message)
        except BridgeError as e:
            status = PollPhase.MISMATCH.value if isinstance(e, ConversationMismatch) else "error"
            print(f"[POLL] ❌ {e}")
            return {
                "success": False,
                "message": preview,
                "response": None,
                "error": str(e),
                "elapsed": int(round(self._clock() - start)),
                "status": status,
                "metrics": dict(self.metrics),
            }

        result = {
            "success": state.last_response is not None,
            "message": preview,
            "response": state.last_response,
            "elapsed": int(round(self._clock() - start)),
            "status": state.phase.value,
            "metrics": dict(self.metrics),
        }
        if state.last_response is None:
            result["error"] = state.last_error or f"No response captured within {self.max_wait_time // 1000}s"
        return result

    # ==================== POLL LOOP ====================

    def wait_for_response(self, message: str) -> PollState:
        """
        Poll until the reply is stable or max_wait_time passes.

        Raises:
            ConversationMismatch: the UI shows another conversation
            AccessibilityUnavailable: the AX layer cannot be used at all
        """
        state = PollState(self._clock())
        self._last_status = None
        if self.debug:
            print(f"[POLL] Waiting for response (every {self.check_interval}ms, "
                  f"{self.stable_checks} stable reads, max {self.max_wait_time}ms)")

        while True:
            if self._ms_since(state.start_time) >= self.max_wait_time:
                on_timeout(state)
                break

            state.check_number += 1
            data = self._read()

            if data.get("error"):
                on_read_error(state, data["error"])
                self._report(state, f"⚠️ UI read error - {data['error']}")
            else:
                messages = data.get("messages") or []
                previous = state.last_response
                was_validated = state.conversation_validated
                try:
                    on_messages(state, messages, message, self.stable_checks)
                except ConversationMismatch as e:
                    print("[POLL] ⚠️ Warning: Conversation mismatch detected!")
                    print(f"[POLL]    Expected: \"{e.expected}...\"")
                    print(f"[POLL]    Found: \"{e.found}...\"")
                    print("[POLL] ❌ Aborting - wrong conversation thread")
                    raise
                if state.conversation_validated and not was_validated:
                    print("[POLL] ✓ Conversation validated - correct thread")
                self._report(state, self._describe(state, messages, previous))

            if state.phase is PollPhase.RESPONSE_STABLE:
                break
            self._sleep(self.check_interval / 1000.0)

        self.metrics["waiting_time"] = self._ms_since(state.start_time)
        secs = self.metrics["waiting_time"] // 1000
        if state.phase is PollPhase.RESPONSE_STABLE:
            print(f"[POLL] ✅ Response confirmed stable after {secs} seconds")
        else:
            print(f"[POLL] ⏱️ Timeout reached after {secs} seconds")
        return state

    def _read(self) -> dict:
        t0 = self._clock()
        self.metrics["ui_reads"] += 1
        try:
            data = self.reader.read()
        except BridgeError:
            raise
        except Exception as e:
            data = {"error": str(e) or type(e).__name__}
        self.metrics["total_read_time"] += self._ms_since(t0)
        return data if isinstance(data, dict) else {"error": "Malformed reader result"}

    # ==================== STATUS ====================

    def _describe(self, state: PollState, messages: list, previous) -> str:
        phase = state.phase
        if phase is PollPhase.AWAITING_FIRST_MESSAGE:
            return "No messages found yet"
        if phase is PollPhase.AWAITING_RESPONSE:
            return "Waiting for AI response..." if len(messages) < 2 else "Empty AI response"
        size = len(state.last_response or "")
        if phase is PollPhase.RESPONSE_STABLE or state.stable_count > 0:
            return f"Response stable ({size} chars) - Confirming: {state.stable_count}/{self.stable_checks}"
        if previous is None:
            return f"AI responding... ({size} chars)"
        diff = size - len(previous)
        return f"AI still typing... ({diff:+d} chars, total: {size})"

    def _report(self, state: PollState, status: str) -> None:
        changed = status != self._last_status
        self._last_status = status
        if not (self.debug or changed):
            return
        elapsed = self._ms_since(state.start_time) // 1000
        if self.debug:
            spinner = SPINNER_FRAMES[state.check_number % len(SPINNER_FRAMES)]
            print(f"[POLL] {spinner} Check #{state.check_number} ({elapsed}s): {status}")
        else:
            print(f"[POLL] Check #{state.check_number} ({elapsed}s): {status}")
        if changed and state.phase is PollPhase.RESPONSE_GROWING and state.stable_count == 0 and state.last_response:
            snippet = state.last_response[:STATUS_PREVIEW_CHARS].replace("\n", " ")
            print(f"[POLL] 💬 \"{snippet}...\"")
