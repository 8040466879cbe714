from ax_walk import Budget, LocatorStep, PathNavigator, StructuralLocator, bounded_walk, role_in, safe_children, safe_get
from conftest import FakeNode, group, text


def test_budget_never_goes_negative():
    budget = Budget(2)
    assert budget.take()
    assert budget.take()
    assert not budget.take()
    assert budget.remaining == 0
    assert budget.used == 2
    assert budget.exhausted


def test_budget_clamps_negative_total():
    budget = Budget(-5)
    assert budget.total == 0
    assert not budget.take()


def test_safe_access_swallows_capability_errors():
    node = FakeNode("AXGroup", fail=("role", "children"))
    assert safe_get(node, "role") is None
    assert safe_children(node) == []
    assert safe_get(None, "role") is None


def test_safe_children_handles_non_iterables():
    class Odd:
        def children(self):
            return 42

    assert safe_children(Odd()) == []


def test_bounded_walk_visits_in_document_order():
    tree = group(group(text("a"), text("b")), text("c"))
    seen = []

    def visit(node, depth, path):
        seen.append((node.role(), path))
        return True

    visited = bounded_walk(tree, Budget(100), visit, max_depth=5)
    assert visited == 5
    assert [p for _, p in seen] == [(), (0,), (0, 0), (0, 1), (1,)]


def test_bounded_walk_stops_at_budget():
    tree = group(*[text(str(i)) for i in range(10)])
    budget = Budget(4)
    visited = bounded_walk(tree, budget, lambda n, d, p: True)
    assert visited == 4
    assert budget.remaining == 0


def test_bounded_walk_respects_depth_and_visitor_pruning():
    tree = group(group(group(text("deep"))), FakeNode("AXButton", text("hidden")))
    is_group = role_in("AXGroup")
    roles = []

    def visit(node, depth, path):
        roles.append(node.role())
        return is_group(node)

    bounded_walk(tree, Budget(100), visit, max_depth=2)
    assert roles == ["AXGroup", "AXGroup", "AXGroup", "AXButton"]


def test_path_navigator_reads_only_children():
    target = group(description="target")
    middle = FakeNode("AXSplitGroup", group(), group(), target)
    top = group(middle)
    root = FakeNode("AXWindow", top)
    budget = Budget(10)

    found = PathNavigator((0, 0, 2)).navigate(root, budget)

    assert found is target
    assert budget.used == 3
    for node in (root, top, middle):
        assert set(node.reads) == {"children"}
    assert target.reads == []


def test_path_navigator_out_of_range():
    root = FakeNode("AXWindow", group())
    budget = Budget(10)
    assert PathNavigator((0, 3)).navigate(root, budget) is None
    assert budget.used == 1


def test_path_navigator_stops_when_budget_runs_out():
    root = FakeNode("AXWindow", group(group(group())))
    budget = Budget(2)
    assert PathNavigator((0, 0, 0)).navigate(root, budget) is None
    assert budget.used == 2


def test_path_navigator_verify_against_recording(recorded_window):
    nav = PathNavigator((0, 0, 2), expected_roles=("AXGroup", "AXSplitGroup", "AXGroup"))
    assert nav.verify(recorded_window) == []

    drifted = PathNavigator((0, 0, 1), expected_roles=("AXGroup", "AXSplitGroup", "AXGroup"))
    problems = drifted.verify(recorded_window)
    assert problems == [{"hop": 2, "index": 1, "expected": "AXGroup", "found": "AXSplitter"}]

    assert PathNavigator((0, 5)).verify(recorded_window)[0]["error"] == "only 1 children"


def test_locator_backtracks_to_next_candidate():
    dead_end = FakeNode("AXScrollArea", group())
    good_list = FakeNode("AXList", group(text("hi")))
    live = FakeNode("AXScrollArea", good_list)
    container = group(dead_end, live)
    locator = StructuralLocator((LocatorStep(role="AXScrollArea", scan=2), LocatorStep(role="AXList")))

    assert locator.locate(container, Budget(20)) is good_list


def test_locator_scan_limits_candidates():
    late = FakeNode("AXScrollArea")
    container = group(group(), group(), late)
    locator = StructuralLocator((LocatorStep(role="AXScrollArea", scan=2),))
    budget = Budget(20)

    assert locator.locate(container, budget) is None
    assert budget.used == 2
    assert late.reads == []


def test_locator_optional_step_falls_back_to_current_node():
    outer = FakeNode("AXList", group(text("a")), group(text("b")))
    container = group(FakeNode("AXScrollArea", outer))
    locator = StructuralLocator((
        LocatorStep(role="AXScrollArea", scan=2),
        LocatorStep(role="AXList"),
        LocatorStep(role="AXList", optional=True),
    ))
    assert locator.locate(container, Budget(20)) is outer


def test_locator_index_step_and_depth_limit():
    wanted = FakeNode("AXList")
    container = group(FakeNode("AXList"), wanted)
    by_index = StructuralLocator((LocatorStep(role="AXList", index=1),))
    assert by_index.locate(container, Budget(5)) is wanted

    two_steps = StructuralLocator((LocatorStep(index=1), LocatorStep(role="AXGroup")))
    assert two_steps.locate(container, Budget(5), max_depth=1) is None


def test_locator_charges_every_inspected_candidate():
    container = group(group(), group(), group())
    locator = StructuralLocator((LocatorStep(role="AXList"),))
    budget = Budget(10)
    assert locator.locate(container, budget) is None
    assert budget.used == 3
