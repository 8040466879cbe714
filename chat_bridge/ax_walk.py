"""
AX Walk - Budget-Bounded Tree Traversal
=======================================

Application-independent traversal helpers for accessibility trees.

Core Components:
- Budget: node visit counter shared by every traversal of one read
- safe_get / safe_children: capability access that never raises
- bounded_walk: depth-first, document-order walk with a visitor callback
- PathNavigator: blind child-index descent that reads no node properties
- StructuralLocator: declarative role/position matcher (LocatorStep rules)

Nodes are duck-typed: anything exposing role(), description(), title(),
value() and children() works (live AX elements, recorded fixtures, fakes).
"""

from typing import Callable, Optional, Sequence

# ---------------- Constants ----------------
MAX_WALK_DEPTH = 4
MAX_WALK_NODES = 800


# ---------------- Budget ----------------
class Budget:
    """Mutable, never-negative node counter."""

    def __init__(self, total: int):
        self.total = max(0, int(total))
        self.remaining = self.total

    def take(self) -> bool:
        """Consume one unit. Returns False (and consumes nothing) once exhausted."""
        if self.remaining <= 0:
            return False
        self.remaining -= 1
        return True

    @property
    def used(self) -> int:
        return self.total - self.remaining

    @property
    def exhausted(self) -> bool:
        return self.remaining <= 0

    def __repr__(self):
        return f"Budget({self.remaining}/{self.total})"


# ---------------- Safe capability access ----------------
def safe_get(node, capability: str):
    """Call node.<capability>() and return its value, or None on any failure."""
    if node is None:
        return None
    try:
        return getattr(node, capability)()
    except Exception:
        return None


def safe_children(node) -> list:
    """Return node.children() as a list, or [] on any failure."""
    kids = safe_get(node, "children")
    if not kids:
        return []
    try:
        return list(kids)
    except TypeError:
        return []


def safe_text(node, capability: str) -> Optional[str]:
    """String form of a capability value; None when absent or empty."""
    v = safe_get(node, capability)
    if v is None:
        return None
    try:
        s = str(v)
    except Exception:
        return None
    return s if s != "" else None


def role_in(*roles: str) -> Callable[[object], bool]:
    """Build a role predicate for bounded_walk visitors and locator rules."""
    wanted = set(roles)

    def _pred(node) -> bool:
        return safe_get(node, "role") in wanted

    return _pred


# ---------------- Bounded walk ----------------
def bounded_walk(root, budget: Budget, visit, max_depth: int = MAX_WALK_DEPTH) -> int:
    """
    Depth-first, document-order walk of `root`, charging one budget unit per node.

    visit(node, depth, path) is called once per visited node, where `path` is the
    tuple of child indices from root. A truthy return walks the node's children
    (unless depth == max_depth). The walk stops as soon as the budget runs out;
    whatever the visitor collected so far stays valid.

    Returns:
        int: number of nodes visited by this walk
    """
    stack = [(root, 0, ())]
    visited = 0
    while stack:
        if not budget.take():
            break
        node, depth, path = stack.pop()
        visited += 1
        if not visit(node, depth, path) or depth >= max_depth:
            continue
        kids = safe_children(node)
        for i in range(len(kids) - 1, -1, -1):
            stack.append((kids[i], depth + 1, path + (i,)))
    return visited


# ---------------- Path navigation ----------------
class PathNavigator:
    """
    Blind index descent: window > child[i0] > child[i1] > ...

    Reads only children(), never role or text, so each hop is one AX call.
    `expected_roles` documents what the path is supposed to land on; it is only
    consulted by verify(), never during navigation.
    """

    def __init__(self, path: Sequence[int], expected_roles: Sequence[str] = ()):
        self.path = tuple(path)
        self.expected_roles = tuple(expected_roles)

    def navigate(self, root, budget: Budget):
        """Return the node at the end of the path, or None if a hop is out of range."""
        current = root
        for index in self.path:
            kids = safe_children(current)
            if index >= len(kids):
                return None
            if not budget.take():
                return None
            current = kids[index]
        return current

    def verify(self, root) -> list:
        """
        Walk the path reading roles and report every hop that differs from
        `expected_roles`. An empty list means the recorded structure still holds.
        """
        problems = []
        current = root
        for hop, index in enumerate(self.path):
            kids = safe_children(current)
            if index >= len(kids):
                problems.append({"hop": hop, "index": index, "error": f"only {len(kids)} children"})
                return problems
            current = kids[index]
            if hop < len(self.expected_roles):
                want = self.expected_roles[hop]
                got = safe_get(current, "role")
                if got != want:
                    problems.append({"hop": hop, "index": index, "expected": want, "found": got})
        return problems


# ---------------- Structural locator ----------------
class LocatorStep:
    """
    One rule of a StructuralLocator.

    role:     required role of the matched child (None = any role, not read)
    index:    only consider the child at this position
    scan:     only consider the first `scan` children
    optional: when no child matches, stay on the current node and go on
    """

    def __init__(self, role: Optional[str] = None, index: Optional[int] = None,
                 scan: Optional[int] = None, optional: bool = False):
        self.role = role
        self.index = index
        self.scan = scan
        self.optional = optional

    def candidates(self, node) -> list:
        kids = safe_children(node)
        if self.index is not None:
            return kids[self.index:self.index + 1]
        if self.scan is not None:
            return kids[:self.scan]
        return kids

    def matches(self, node) -> bool:
        return self.role is None or safe_get(node, "role") == self.role

    def __repr__(self):
        parts = [f"role={self.role!r}"]
        if self.index is not None:
            parts.append(f"index={self.index}")
        if self.scan is not None:
            parts.append(f"scan={self.scan}")
        if self.optional:
            parts.append("optional")
        return f"LocatorStep({', '.join(parts)})"


class StructuralLocator:
    """
    Declarative description of where a target element lives.

    Steps are matched top-down with backtracking: if a matching child leads to a
    dead end further down, the next matching sibling is tried. Every inspected
    candidate costs one budget unit, matched or not. A dead end is not an error;
    locate() simply returns None.
    """

    def __init__(self, steps: Sequence[LocatorStep], name: str = "locator"):
        self.steps = tuple(steps)
        self.name = name

    def locate(self, root, budget: Budget, max_depth: Optional[int] = None):
        limit = len(self.steps) if max_depth is None else min(max_depth, len(self.steps))
        if limit < len(self.steps) and not all(s.optional for s in self.steps[limit:]):
            return None
        return self._match(root, 0, budget, limit)

    def _match(self, node, step_no: int, budget: Budget, limit: int):
        if step_no >= limit:
            return node
        step = self.steps[step_no]
        for child in step.candidates(node):
            if not budget.take():
                return None
            if step.matches(child):
                found = self._match(child, step_no + 1, budget, limit)
                if found is not None:
                    return found
        if step.optional:
            return self._match(node, step_no + 1, budget, limit)
        return None

    def __repr__(self):
        return f"StructuralLocator({self.name!r}, {list(self.steps)!r})"
