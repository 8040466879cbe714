"""
Bridge Errors - Hard Failure Types
==================================

Only failures that must stop a query are exceptions. Everything else
(app not running, no window, path not found, transient read errors,
timeouts) travels as an "error"/"status" field in the result dicts.
"""


class BridgeError(Exception):
    """Base class for hard bridge failures."""


class AccessibilityUnavailable(BridgeError):
    """The AX layer cannot be used at all (pyobjc missing or process not trusted)."""


class AppControlError(BridgeError):
    """Focusing, opening a conversation or sending the message failed."""


class ConversationMismatch(BridgeError):
    """The UI shows a different conversation than the one we started."""

    def __init__(self, expected, found):
        self.expected = expected
        self.found = found
        super().__init__("Wrong conversation thread - user message does not match")
