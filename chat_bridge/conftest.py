"""Shared pytest fixtures: fake UI nodes and the recorded ChatGPT window."""

import os

import pytest

from ax_nodes import RecordedNode

FIXTURES_DIR = os.path.join(os.path.dirname(os.path.abspath(__file__)), "fixtures")


class FakeNode:
    """In-memory UI node. Capabilities named in `fail` raise on access."""

    def __init__(self, role=None, *children, description=None, title=None, value=None, fail=()):
        self._role = role
        self._children = list(children)
        self._description = description
        self._title = title
        self._value = value
        self._fail = set(fail)
        self.reads = []

    def _get(self, name, v):
        self.reads.append(name)
        if name in self._fail:
            raise RuntimeError(f"AX error reading {name}")
        return v

    def role(self):
        return self._get("role", self._role)

    def description(self):
        return self._get("description", self._description)

    def title(self):
        return self._get("title", self._title)

    def value(self):
        return self._get("value", self._value)

    def children(self):
        return self._get("children", self._children)


def text(s, **kw):
    return FakeNode("AXStaticText", description=s, **kw)


def group(*children, **kw):
    return FakeNode("AXGroup", *children, **kw)


def chat_window(*messages, scroll_index=1, nested=True):
    """Window laid out like the ChatGPT desktop app, one AXGroup per message."""
    message_list = FakeNode("AXList", *[group(text(m)) for m in messages])
    if nested:
        message_list = FakeNode("AXList", message_list)
    scroll = FakeNode("AXScrollArea", message_list)
    conv_children = [group(FakeNode("AXButton", description="New chat"))]
    conv_children.insert(scroll_index, scroll)
    conversation = group(*conv_children)
    split = FakeNode("AXSplitGroup", group(description="Sidebar"), FakeNode("AXSplitter"), conversation)
    return FakeNode("AXWindow", group(split))


@pytest.fixture
def recorded_window():
    return RecordedNode.load(os.path.join(FIXTURES_DIR, "chatgpt_window.json"))
