"""
AX Reader - Budget-Bounded Conversation Extraction
==================================================

Reads the message list of the chat app's front window in three steps:

    1. Blind navigation   window > AXGroup[0] > AXSplitGroup[0] > AXGroup[2]
                          (child indices only, no property reads)
    2. Guided search      AXScrollArea (first 2 children) > AXList > [AXList]
    3. Text extraction    AXStaticText leaves of each AXGroup message,
                          joined with newlines, at most 2 levels deep

Every visited node costs one unit of a fixed budget; when it runs out the
reader returns what it has. Results are plain JSON-ready dicts:

    {"messages": [...], "meta": {"elapsed_ms", "nodes_visited", "message_count"}}
    {"error": "...", "nodes_checked": n}

The index path in step 1 is tied to one build of the target app. When the app
changes its layout the reader reports "Conversation area not found" (or reads
the wrong thing); it does not try to repair the path. Record the new layout
with `bridge.py --dump-tree` and update CONVERSATION_PATH / MESSAGE_LIST_LOCATOR.
"""

import time

from ax_walk import Budget, LocatorStep, PathNavigator, StructuralLocator, bounded_walk, safe_children, safe_get, safe_text
from ax_nodes import app_pid, app_windows, ax_available, is_trusted
from bridge_errors import AccessibilityUnavailable

# ---------------- Constants ----------------
DEFAULT_APP_NAME = "ChatGPT"

# Just enough to reach the messages; we know the path
MAX_DEPTH = 4
NODE_BUDGET = 100

# Levels below a message group that may hold text
TEXT_DEPTH = 2

ERR_NOT_RUNNING = "{app} not running"
ERR_NO_WINDOW = "No window"
ERR_PATH_NOT_FOUND = "Conversation area not found"

ROLE_STATIC_TEXT = "AXStaticText"
ROLE_GROUP = "AXGroup"
TEXT_CONTAINER_ROLES = {"AXGroup", "AXScrollArea"}

# ChatGPT desktop layout: window > AXGroup[0] > AXSplitGroup[0] > AXGroup[2]
CONVERSATION_PATH = PathNavigator(
    (0, 0, 2),
    expected_roles=("AXGroup", "AXSplitGroup", "AXGroup"),
)

MESSAGE_LIST_LOCATOR = StructuralLocator(
    (
        LocatorStep(role="AXScrollArea", scan=2),
        LocatorStep(role="AXList"),
        # inner list, when present, is the outer list's first child
        LocatorStep(role="AXList", scan=1, optional=True),
    ),
    name="message-list",
)


def leaf_text(node):
    """Text of a static-text leaf: AXDescription, falling back to AXValue."""
    return safe_text(node, "description") or safe_text(node, "value")


def extract_text(group, budget: Budget, max_depth: int = TEXT_DEPTH) -> str:
    """
    Join the static-text leaves under `group` with newlines (document order).

    Only AXGroup/AXScrollArea containers are descended; other roles are charged
    and skipped. Budget exhaustion returns the partial text collected so far.
    """
    texts = []

    def visit(node, depth, path):
        role = safe_get(node, "role")
        if role == ROLE_STATIC_TEXT:
            t = leaf_text(node)
            if t:
                texts.append(t)
            return False
        return role in TEXT_CONTAINER_ROLES

    bounded_walk(group, budget, visit, max_depth=max_depth)
    return "\n".join(texts)


class AccessibilityTreeReader:
    """Stateless reader; one instance can serve any number of reads."""

    def __init__(self, app_name: str = DEFAULT_APP_NAME, max_depth: int = MAX_DEPTH,
                 node_budget: int = NODE_BUDGET, navigator: PathNavigator = CONVERSATION_PATH,
                 locator: StructuralLocator = MESSAGE_LIST_LOCATOR, debug: bool = False):
        self.app_name = app_name
        self.max_depth = max_depth
        self.node_budget = node_budget
        self.navigator = navigator
        self.locator = locator
        self.debug = debug

    # ---------------- Live read ----------------
    def front_window(self, app_name=None):
        """
        Resolve the target's front window.

        Returns:
            (window, error): exactly one of them is None
        Raises:
            AccessibilityUnavailable: pyobjc is missing or the process is not trusted
        """
        app = app_name or self.app_name
        if not ax_available():
            raise AccessibilityUnavailable("pyobjc ApplicationServices bindings are not available")
        if not is_trusted():
            raise AccessibilityUnavailable(
                "Process is not trusted for Accessibility (System Settings → Privacy & Security → Accessibility)"
            )
        pid = app_pid(app)
        if pid is None:
            return None, ERR_NOT_RUNNING.format(app=app)
        wins = app_windows(pid)
        if not wins:
            return None, ERR_NO_WINDOW
        return wins[0], None

    def read(self, app_name=None) -> dict:
        """Read the conversation of the running app's front window."""
        window, error = self.front_window(app_name)
        if error:
            if self.debug:
                print(f"[READ] {error}")
            return {"error": error}
        return self.extract(window, self.max_depth, self.node_budget)

    # ---------------- Extraction ----------------
    def extract(self, root, max_depth: int = MAX_DEPTH, node_budget: int = NODE_BUDGET) -> dict:
        """
        Extract message texts below `root` (the app window).

        Args:
            root: window node
            max_depth: levels the guided search may descend below the container
            node_budget: maximum number of nodes visited by this call

        Returns:
            dict: ExtractionResult (messages + meta, or error + nodes_checked)
        """
        budget = Budget(node_budget)
        t0 = time.monotonic()

        container = self.navigator.navigate(root, budget)
        if container is None:
            if self.debug:
                print(f"[READ] ❌ {ERR_PATH_NOT_FOUND} after {budget.used} node(s)")
            return {"error": ERR_PATH_NOT_FOUND, "nodes_checked": budget.used}

        messages = []
        message_list = self.locator.locate(container, budget, max_depth=max_depth)
        if message_list is not None:
            messages = self._extract_messages(message_list, budget)
        elif self.debug:
            print(f"[READ] {self.locator.name} not found; treating as empty conversation")

        elapsed_ms = int(round((time.monotonic() - t0) * 1000))
        if self.debug:
            print(f"[READ] {len(messages)} message(s), {budget.used}/{budget.total} nodes, {elapsed_ms}ms")
        return {
            "messages": messages,
            "meta": {
                "elapsed_ms": elapsed_ms,
                "nodes_visited": budget.used,
                "message_count": len(messages),
            },
        }

    def _extract_messages(self, message_list, budget: Budget) -> list:
        messages = []
        for group in safe_children(message_list):
            if not budget.take():
                break
            if safe_get(group, "role") != ROLE_GROUP:
                continue
            text = extract_text(group, budget)
            if text:
                messages.append(text)
        return messages
