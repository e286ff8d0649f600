"""
Float Reducer -- Slice Tests

One class per slice. Each verb is checked for its effect on its own slice
and for leaving every other slice untouched.

Covers:
  - context: load / unload / nest / store, de-duplication and ordering
  - brain: boot / boost_focus / load / rest
  - vault: search placeholder, search_complete list-wrapping, touch (MRU, capped)
  - bridges: restore / restore_complete, available_bridges bookkeeping
  - middleware: register mirrors descriptors in order, duplicates kept
  - unknown domains / verbs / non-namespaced types are no-ops
  - input state is never mutated
"""

import copy

from float_engine.kernel.actions import make_action, register, restore_complete, search_complete
from float_engine.kernel.reducer import empty_state, reduce, replay
from float_engine.kernel.types import FOCUS_STATES, RECENT_FILES_LIMIT

# ============================================================================
# Helpers
# ============================================================================


def other_slices_unchanged(before, after, slice_name):
    for name in before:
        if name != slice_name:
            assert after[name] == before[name], f"slice {name} changed"


# ============================================================================
# 1. Initial state
# ============================================================================


class TestEmptyState:
    def test_has_all_slices(self):
        state = empty_state()
        assert set(state) == {"context", "brain", "vault", "bridges", "middleware"}

    def test_defaults(self):
        state = empty_state()
        assert state["context"] == {"active": [], "hierarchy": {}, "data": {}}
        assert state["brain"]["focus_state"] == "idle"
        assert state["brain"]["current_context"] is None
        assert state["vault"]["search_results"] == []
        assert state["bridges"]["active_bridge"] is None
        assert state["middleware"]["registered"] == []

    def test_fresh_copy_each_call(self):
        a = empty_state()
        a["context"]["active"].append("x")
        assert empty_state()["context"]["active"] == []


# ============================================================================
# 2. context
# ============================================================================


class TestContextSlice:
    def test_load_appends(self, state):
        result = reduce(state, make_action("context/load", {"context": "float"}))
        assert result.applied
        assert result.state["context"]["active"] == ["float"]
        other_slices_unchanged(state, result.state, "context")

    def test_load_preserves_insertion_order(self, state):
        state = replay(
            [
                make_action("context/load", {"context": "b"}),
                make_action("context/load", {"context": "a"}),
                make_action("context/load", {"context": "c"}),
            ],
            state,
        )
        assert state["context"]["active"] == ["b", "a", "c"]

    def test_load_is_deduplicated(self, state):
        once = reduce(state, make_action("context/load", {"context": "float"})).state
        result = reduce(once, make_action("context/load", {"context": "float"}))
        assert not result.applied
        assert result.state["context"]["active"] == ["float"]

    def test_unload_removes(self, state):
        state = replay(
            [
                make_action("context/load", {"context": "a"}),
                make_action("context/load", {"context": "b"}),
                make_action("context/unload", {"context": "a"}),
            ],
            state,
        )
        assert state["context"]["active"] == ["b"]

    def test_unload_missing_is_noop(self, state):
        result = reduce(state, make_action("context/unload", {"context": "ghost"}))
        assert not result.applied
        assert result.state == state

    def test_nest_records_child_once(self, state):
        nest = make_action("context/nest", {"parent": "float", "child": "redux"})
        s1 = reduce(state, nest).state
        s2 = reduce(s1, nest)
        assert s1["context"]["hierarchy"] == {"float": ["redux"]}
        assert not s2.applied

    def test_store_sets_data(self, state):
        result = reduce(state, make_action("context/store", {"context": "float", "data": {"k": 1}}))
        assert result.state["context"]["data"] == {"float": {"k": 1}}

    def test_store_copies_payload(self, state):
        data = {"k": [1]}
        result = reduce(state, make_action("context/store", {"context": "float", "data": data}))
        data["k"].append(2)
        assert result.state["context"]["data"]["float"] == {"k": [1]}


# ============================================================================
# 3. brain
# ============================================================================


class TestBrainSlice:
    def test_boot_sets_context_and_activates(self, state):
        result = reduce(state, make_action("brain/boot", {"user": "evan"}))
        assert result.state["brain"]["current_context"] == {"user": "evan"}
        assert result.state["brain"]["focus_state"] == "active"
        other_slices_unchanged(state, result.state, "brain")

    def test_boost_focus(self, state):
        result = reduce(state, make_action("brain/boost_focus", {"reason": "react_mentioned"}))
        assert result.state["brain"]["focus_state"] == "boosted"

    def test_boost_focus_without_payload(self, state):
        result = reduce(state, make_action("brain/boost_focus"))
        assert result.applied
        assert result.state["brain"]["focus_state"] == "boosted"

    def test_load_sets_loaded_data(self, state):
        result = reduce(state, make_action("brain/load", {"data": [1, 2, 3]}))
        assert result.state["brain"]["loaded_data"] == [1, 2, 3]

    def test_rest_returns_to_idle(self, state):
        state = replay([make_action("brain/boot", {}), make_action("brain/rest")], state)
        assert state["brain"]["focus_state"] == "idle"


# ============================================================================
# 4. vault
# ============================================================================


class TestVaultSlice:
    def test_search_sets_placeholder(self, state):
        result = reduce(state, make_action("vault/search", {"query": "burp"}))
        assert result.state["vault"]["search_results"] == ["Searching for: burp..."]
        other_slices_unchanged(state, result.state, "vault")

    def test_search_complete_list(self, state):
        result = reduce(state, search_complete([{"id": 1}, {"id": 2}]))
        assert result.state["vault"]["search_results"] == [{"id": 1}, {"id": 2}]

    def test_search_complete_wraps_non_list(self, state):
        result = reduce(state, search_complete({"content": [{"type": "text", "text": "hit"}]}))
        assert result.state["vault"]["search_results"] == [{"content": [{"type": "text", "text": "hit"}]}]

    def test_search_complete_none_clears(self, state):
        state = reduce(state, make_action("vault/search", {"query": "q"})).state
        result = reduce(state, search_complete(None))
        assert result.state["vault"]["search_results"] == []

    def test_search_complete_replaces_placeholder(self, state):
        state = replay([make_action("vault/search", {"query": "q"}), search_complete(["r1"])], state)
        assert state["vault"]["search_results"] == ["r1"]

    def test_touch_most_recent_first(self, state):
        state = replay(
            [
                make_action("vault/touch", {"file": "a.md"}),
                make_action("vault/touch", {"file": "b.md"}),
                make_action("vault/touch", {"file": "a.md"}),
            ],
            state,
        )
        assert state["vault"]["recent_files"] == ["a.md", "b.md"]

    def test_touch_is_capped(self, state):
        actions = [make_action("vault/touch", {"file": f"f{i}.md"}) for i in range(RECENT_FILES_LIMIT + 5)]
        state = replay(actions, state)
        recent = state["vault"]["recent_files"]
        assert len(recent) == RECENT_FILES_LIMIT
        assert recent[0] == f"f{RECENT_FILES_LIMIT + 4}.md"


# ============================================================================
# 5. bridges
# ============================================================================


class TestBridgesSlice:
    def test_restore_sets_active_bridge(self, state):
        result = reduce(state, make_action("bridges/restore", {"bridge_id": "CB-1"}))
        assert result.state["bridges"]["active_bridge"] == "CB-1"
        assert result.state["bridges"]["restored_context"] is None
        other_slices_unchanged(state, result.state, "bridges")

    def test_restore_complete_sets_context(self, state):
        result = reduce(state, restore_complete("CB-1", {"documents": ["d"]}))
        bridges = result.state["bridges"]
        assert bridges["active_bridge"] == "CB-1"
        assert bridges["restored_context"] == {"documents": ["d"]}
        assert bridges["available_bridges"] == ["CB-1"]

    def test_restore_complete_records_each_bridge_once(self, state):
        state = replay(
            [
                restore_complete("CB-1", {}),
                restore_complete("CB-2", {}),
                restore_complete("CB-1", {"again": True}),
            ],
            state,
        )
        assert state["bridges"]["available_bridges"] == ["CB-1", "CB-2"]
        assert state["bridges"]["active_bridge"] == "CB-1"


# ============================================================================
# 6. middleware
# ============================================================================


class TestMiddlewareSlice:
    def test_register_appends_descriptor(self, state):
        descriptor = {"name": "r1", "pattern": "/x/", "actions": [{"type": "brain/boost_focus"}]}
        result = reduce(state, register(descriptor))
        assert result.state["middleware"]["registered"] == [descriptor]
        other_slices_unchanged(state, result.state, "middleware")

    def test_duplicate_names_are_kept(self, state):
        descriptor = {"name": "r1", "pattern": "/x/", "actions": [{"type": "brain/boost_focus"}]}
        state = replay([register(descriptor), register(descriptor)], state)
        assert len(state["middleware"]["registered"]) == 2


# ============================================================================
# 7. Unknown / malformed
# ============================================================================


class TestNoOps:
    def test_unknown_domain(self, state):
        result = reduce(state, make_action("telemetry/ping", {}))
        assert not result.applied
        assert result.reason.startswith("UNKNOWN_DOMAIN")
        assert result.state is state

    def test_unknown_verb(self, state):
        result = reduce(state, make_action("brain/explode", {}))
        assert not result.applied
        assert result.reason.startswith("UNKNOWN_VERB")
        assert result.state is state

    def test_not_namespaced(self, state):
        result = reduce(state, make_action("chroma", {}))
        assert not result.applied
        assert result.reason.startswith("NOT_NAMESPACED")

    def test_malformed_payload_does_not_raise(self, state):
        result = reduce(state, make_action("context/load", "not-an-object"))
        assert not result.applied
        assert result.state == state


# ============================================================================
# 8. Purity
# ============================================================================


class TestPurity:
    def test_input_state_not_mutated(self, session_actions):
        state = empty_state()
        for action in session_actions:
            before = copy.deepcopy(state)
            result = reduce(state, action)
            assert state == before
            state = result.state

    def test_focus_state_stays_in_vocabulary(self, session_actions):
        state = empty_state()
        assert state["brain"]["focus_state"] in FOCUS_STATES
        for action in session_actions:
            state = reduce(state, action).state
            assert state["brain"]["focus_state"] in FOCUS_STATES

    def test_untouched_slices_are_shared(self, state):
        result = reduce(state, make_action("brain/boost_focus"))
        assert result.state["vault"] is state["vault"]
        assert result.state["brain"] is not state["brain"]
