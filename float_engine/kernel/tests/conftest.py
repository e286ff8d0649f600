"""
Float kernel test configuration.

Shared fixtures for reducer and rule tests. Kernel code is synchronous and
pure, so nothing here needs an event loop.
"""

import pytest

from float_engine.kernel.actions import make_action
from float_engine.kernel.reducer import empty_state, replay


@pytest.fixture
def state():
    return empty_state()


@pytest.fixture
def session_actions():
    """A realistic mixed session across every slice."""
    return [
        make_action("brain/boot", {"user": "evan", "session": "morning"}),
        make_action("context/load", {"context": "float"}),
        make_action("context/load", {"context": "react-patterns"}),
        make_action("context/nest", {"parent": "float", "child": "react-patterns"}),
        make_action("context/store", {"context": "float", "data": {"notes": ["a", "b"]}}),
        make_action("vault/touch", {"file": "daily/2025-01-01.md"}),
        make_action("vault/search", {"query": "burp"}),
        make_action("vault/search_complete", [{"id": "doc-1"}, {"id": "doc-2"}]),
        make_action("brain/boost_focus", {"reason": "react_mentioned"}),
        make_action("bridges/restore", {"bridge_id": "CB-20250101-0900-ABCD"}),
        make_action(
            "bridges/restore_complete",
            {"bridge_id": "CB-20250101-0900-ABCD", "context": {"documents": [["anchor"]]}},
        ),
        make_action("context/unload", {"context": "react-patterns"}),
        make_action("unknown/verb", {"ignored": True}),
        make_action("brain/rest"),
    ]


@pytest.fixture
def session_state(session_actions):
    return replay(session_actions)
