"""
App Control - Drive the Chat App's Input Side
=============================================

Focus the target app, open a new conversation, paste and send a message.
Nothing here reads the UI; the poller does that through ax_reader.

Supported Operations:
1. is_installed  - osascript can resolve the app by name
2. focus         - NSRunningApplication activate, osascript fallback (launches)
3. new_conversation - Cmd+N
4. send_message  - clipboard + Cmd+V + Enter, previous clipboard restored

Failures raise AppControlError; a query cannot go on without its input.
"""

import subprocess
import time

from ax_nodes import find_running_app, NSApplicationActivateIgnoringOtherApps
from bridge_errors import AppControlError

# ---------------- Constants ----------------
# Settle delays (seconds) after each UI action. Tuned against the ChatGPT
# desktop app; shorter values drop keystrokes while the window animates.
FOCUS_DELAY = 0.5
NEW_CHAT_DELAY = 1.5
CLIPBOARD_DELAY = 0.2
PASTE_DELAY = 0.3
SEND_DELAY = 1.5
MODIFIER_RELEASE_DELAY = 0.05

OSASCRIPT_TIMEOUT = 10


def _osascript(script: str, timeout: float = OSASCRIPT_TIMEOUT):
    return subprocess.run(
        ["osascript", "-e", script],
        capture_output=True, text=True, timeout=timeout,
    )


class ChatAppController:
    """Input-side automation for one target app."""

    def __init__(self, app_name: str = "ChatGPT", debug: bool = False, sleep=time.sleep):
        """
        Args:
            app_name: localized app name (as shown in the Dock)
            debug: print operation details
            sleep: delay function, replaced in tests
        """
        self.app_name = app_name
        self.debug = debug
        self._sleep = sleep

    # ==================== STATE ====================

    def is_installed(self) -> bool:
        """True if AppleScript can resolve the app (it does not need to run)."""
        try:
            result = _osascript(f'tell application "{self.app_name}" to name')
        except (OSError, subprocess.SubprocessError) as e:
            if self.debug:
                print(f"[FOCUS] osascript unavailable: {e}")
            return False
        return result.returncode == 0

    # ==================== OPERATIONS ====================

    def focus(self) -> None:
        """Bring the app to the front, launching it if needed."""
        app = find_running_app(self.app_name)
        activated = False
        if app is not None and NSApplicationActivateIgnoringOtherApps is not None:
            try:
                activated = bool(app.activateWithOptions_(NSApplicationActivateIgnoringOtherApps))
            except Exception as e:
                if self.debug:
                    print(f"[FOCUS] NSRunningApplication activate failed: {e}")

        if not activated:
            try:
                result = _osascript(f'tell application "{self.app_name}" to activate')
            except (OSError, subprocess.SubprocessError) as e:
                raise AppControlError(f"Could not activate {self.app_name}: {e}") from e
            if result.returncode != 0:
                raise AppControlError(f"Could not activate {self.app_name}: {result.stderr.strip()}")

        if self.debug:
            print(f"[FOCUS] {self.app_name} -> {'NSRunningApplication' if activated else 'osascript'}")
        self._sleep(FOCUS_DELAY)

    def new_conversation(self) -> None:
        """Open a fresh conversation (Cmd+N)."""
        self._hotkey("command", "n")
        if self.debug:
            print("[KEY] Combo: cmd+n (new chat)")
        self._sleep(NEW_CHAT_DELAY)

    def send_message(self, text: str) -> None:
        """Paste `text` into the focused composer and press Enter."""
        if not text:
            raise AppControlError("Refusing to send an empty message")

        try:
            import pyperclip
        except ImportError as e:
            raise AppControlError("pyperclip is required to paste messages") from e

        try:
            old_clipboard = pyperclip.paste()
        except pyperclip.PyperclipException:
            old_clipboard = None

        try:
            pyperclip.copy(text)
            self._sleep(CLIPBOARD_DELAY)
            self._hotkey("command", "v")
            self._sleep(PASTE_DELAY)
            if self.debug:
                print(f"[TYPE] Clipboard paste: {len(text)} chars")

            self._press_enter()
            self._sleep(SEND_DELAY)
        except pyperclip.PyperclipException as e:
            raise AppControlError(f"Clipboard unavailable: {e}") from e
        finally:
            if old_clipboard is not None:
                try:
                    pyperclip.copy(old_clipboard)
                except pyperclip.PyperclipException:
                    pass

    # ==================== KEYBOARD ====================

    def _hotkey(self, *keys: str) -> None:
        try:
            import pyautogui
            pyautogui.hotkey(*keys)
        except Exception as e:
            raise AppControlError(f"Key combo {'+'.join(keys)} failed: {e}") from e

    def _press_enter(self) -> None:
        """Enter with clean modifier state (a held Cmd would send Cmd+Enter)."""
        try:
            import pyautogui
            for mod in ("command", "ctrl", "alt", "shift"):
                pyautogui.keyUp(mod)
            self._sleep(MODIFIER_RELEASE_DELAY)
            pyautogui.press("enter")
        except Exception as e:
            raise AppControlError(f"Enter key failed: {e}") from e
        if self.debug:
            print("[ENTER] Pressed successfully")
