from __future__ import annotations

from chat_sync.realtime.presence import PresenceTracker


def test_presence_set_semantics():
    tracker = PresenceTracker()
    changes: list[frozenset[str]] = []
    tracker.subscribe(lambda: changes.append(tracker.online_users()))

    tracker.mark_online("bob")
    tracker.mark_online("bob")
    tracker.mark_online("carol")
    tracker.mark_offline("dan")
    tracker.mark_offline("bob")

    assert tracker.is_online("carol")
    assert not tracker.is_online("bob")
    assert changes == [frozenset({"bob"}), frozenset({"bob", "carol"}), frozenset({"carol"})]


def test_clear_empties_presence():
    tracker = PresenceTracker()
    tracker.mark_online("bob")

    tracker.clear()

    assert tracker.online_users() == frozenset()


def test_failing_listener_does_not_block_others():
    tracker = PresenceTracker()
    seen: list[str] = []

    def broken() -> None:
        raise RuntimeError("listener exploded")

    tracker.subscribe(broken)
    unsubscribe = tracker.subscribe(lambda: seen.append("ok"))
    tracker.mark_online("bob")
    unsubscribe()
    tracker.mark_online("carol")

    assert seen == ["ok"]
