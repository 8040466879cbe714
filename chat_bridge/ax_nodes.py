"""
AX Nodes - macOS Accessibility Element Adapter
==============================================

Thin, read-only view of a live AXUIElement as a UI node exposing
role(), description(), title(), value() and children().

Core Components:
- ax_get / ax_children: raw attribute access with error handling
- AXNode: node adapter over an AXUIElement (every accessor degrades to None/[])
- find_running_app / app_windows: target process + window resolution
- snapshot_tree / RecordedNode: record a live tree to JSON and replay it offline

Recorded trees are what the locator rules are checked against when the
target app ships a new UI build.
"""

import json
import time
from typing import Optional

from ax_walk import Budget, MAX_WALK_DEPTH, MAX_WALK_NODES, bounded_walk, safe_text, safe_children

# ---------------- Accessibility (optional on non-macOS hosts) ----------------
AX_DIRECT_OK = True
try:
    from ApplicationServices import (
        AXUIElementCreateApplication, AXUIElementCopyAttributeValue,
        AXIsProcessTrusted,
    )
except Exception:
    AX_DIRECT_OK = False
    AXUIElementCreateApplication = None
    AXUIElementCopyAttributeValue = None
    AXIsProcessTrusted = None

try:
    from AppKit import NSWorkspace
    from AppKit import NSApplicationActivateIgnoringOtherApps
except Exception:
    NSWorkspace = None
    NSApplicationActivateIgnoringOtherApps = None

# ---------------- Constants ----------------
kAXErrorSuccess = 0
SCHEMA_VERSION = "1.0"

# Fields clipped when recording, so fixtures stay reviewable
RECORD_TEXT_LIMIT = 200

# AX attribute names behind each node capability
CAPABILITY_ATTRS = {
    "role": "AXRole",
    "description": "AXDescription",
    "title": "AXTitle",
    "value": "AXValue",
    "children": "AXChildren",
}


def ax_available() -> bool:
    """True when pyobjc's ApplicationServices bindings imported."""
    return AX_DIRECT_OK and AXUIElementCopyAttributeValue is not None


def is_trusted() -> bool:
    """Check whether this process may use the Accessibility API."""
    if not ax_available() or AXIsProcessTrusted is None:
        return False
    try:
        return bool(AXIsProcessTrusted())
    except Exception:
        return False


def ensure_trust() -> bool:
    """Check and warn about accessibility trust."""
    ok = is_trusted()
    if not ok:
        print("⚠️ Enable Accessibility for Terminal/VSCode: System Settings → Privacy & Security → Accessibility")
    return ok


# ---------------- AX API Wrappers ----------------
def ax_get(el, attr):
    """Get AX attribute with error handling (pyobjc returns (err, value) tuples)."""
    if el is None or AXUIElementCopyAttributeValue is None:
        return None
    try:
        val = AXUIElementCopyAttributeValue(el, attr, None)
        if isinstance(val, tuple) and len(val) == 2:
            err, real = val
            return real if err == kAXErrorSuccess else None
        return val
    except Exception:
        return None


def ax_children(el):
    """Return children array for an element."""
    kids = ax_get(el, "AXChildren")
    try:
        return list(kids) if kids else []
    except TypeError:
        return []


def _to_str(v):
    """Convert value to string unless None or empty."""
    if v is None:
        return None
    try:
        s = str(v)
        return s if s != "" else None
    except Exception:
        return None


class AXNode:
    """Live node over an AXUIElement. Each call is one AX round trip."""

    __slots__ = ("element",)

    def __init__(self, element):
        self.element = element

    def role(self):
        return _to_str(ax_get(self.element, CAPABILITY_ATTRS["role"]))

    def description(self):
        return _to_str(ax_get(self.element, CAPABILITY_ATTRS["description"]))

    def title(self):
        return _to_str(ax_get(self.element, CAPABILITY_ATTRS["title"]))

    def value(self):
        v = ax_get(self.element, CAPABILITY_ATTRS["value"])
        # AXValue is also used for numbers, ranges and geometry; only text matters here
        return v if isinstance(v, str) else None

    def children(self):
        return [AXNode(c) for c in ax_children(self.element)]

    def __repr__(self):
        return f"AXNode({self.element!r})"


# ---------------- App/Window Resolution ----------------
def find_running_app(app_name: str):
    """Return the NSRunningApplication whose localized name matches, or None."""
    if NSWorkspace is None or not app_name:
        return None
    want = app_name.strip().casefold()
    try:
        for app in NSWorkspace.sharedWorkspace().runningApplications():
            name = app.localizedName()
            if name and str(name).strip().casefold() == want:
                return app
    except Exception:
        return None
    return None


def app_pid(app_name: str) -> Optional[int]:
    app = find_running_app(app_name)
    if app is None:
        return None
    try:
        return int(app.processIdentifier())
    except Exception:
        return None


def app_windows(pid: int) -> list:
    """AXWindows of the application as AXNode list (front window first)."""
    if AXUIElementCreateApplication is None:
        return []
    try:
        app_el = AXUIElementCreateApplication(pid)
    except Exception:
        return []
    wins = ax_get(app_el, "AXWindows") or []
    return [AXNode(w) for w in wins]


# ---------------- Recording / replay ----------------
def _clip(s, limit=RECORD_TEXT_LIMIT):
    if s is None:
        return None
    return s if len(s) <= limit else s[:limit]


def snapshot_tree(root, max_depth: int = MAX_WALK_DEPTH, max_nodes: int = MAX_WALK_NODES) -> dict:
    """
    Record `root` and its descendants as nested dicts.

    Args:
        root: any UI node (AXNode, RecordedNode, ...)
        max_depth: levels below root to record
        max_nodes: node budget for the whole recording

    Returns:
        dict: {"schema_version", "recorded_at", "nodes_recorded", "tree"}
    """
    records = {}

    def visit(node, depth, path):
        kids = safe_children(node)
        rec = {
            "role": safe_text(node, "role"),
            "description": _clip(safe_text(node, "description")),
            "title": _clip(safe_text(node, "title")),
            "value": _clip(safe_text(node, "value")),
            "child_count": len(kids),
            "children": [],
        }
        records[path] = rec
        if path:
            records[path[:-1]]["children"].append(rec)
        return True

    visited = bounded_walk(root, Budget(max_nodes), visit, max_depth=max_depth)
    return {
        "schema_version": SCHEMA_VERSION,
        "recorded_at": time.strftime("%Y-%m-%d %H:%M:%S"),
        "nodes_recorded": visited,
        "tree": records.get((), {}),
    }


def save_snapshot(snapshot: dict, path: str) -> bool:
    """Save a recorded tree to JSON file."""
    try:
        with open(path, "w", encoding="utf-8") as f:
            json.dump(snapshot, f, ensure_ascii=False, indent=2)
        print(f"[SAVED] Wrote {snapshot.get('nodes_recorded', 0)} node(s) to {path}")
        return True
    except OSError as e:
        print(f"[ERROR] Failed to write {path}: {e}")
        return False


class RecordedNode:
    """Replay node built from a snapshot_tree() record."""

    __slots__ = ("record",)

    def __init__(self, record: dict):
        self.record = record or {}

    def role(self):
        return self.record.get("role")

    def description(self):
        return self.record.get("description")

    def title(self):
        return self.record.get("title")

    def value(self):
        return self.record.get("value")

    def children(self):
        return [RecordedNode(c) for c in self.record.get("children") or []]

    def __repr__(self):
        return f"RecordedNode({self.record.get('role')!r})"

    @classmethod
    def load(cls, path: str) -> "RecordedNode":
        """Load a recorded tree (snapshot dict or bare tree dict) from JSON file."""
        with open(path, encoding="utf-8") as f:
            data = json.load(f)
        tree = data.get("tree", data) if isinstance(data, dict) else {}
        return cls(tree)

