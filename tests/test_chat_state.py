from datetime import datetime

import pytest

from chat_state import (
    ANONYMOUS,
    ConnectionRegistry,
    NameRegistry,
    SessionTable,
    StateError,
    WaitingQueue,
)


class TestConnectionRegistry:
    def test_register_records_connect_time(self):
        registry = ConnectionRegistry()
        conn = registry.register("a")
        assert "a" in registry
        assert len(registry) == 1
        assert isinstance(conn.connect_time, datetime)
        assert conn.username is None

    def test_register_twice_is_an_error(self):
        registry = ConnectionRegistry()
        registry.register("a")
        with pytest.raises(StateError):
            registry.register("a")

    def test_set_display_name_unknown_connection_is_ignored(self):
        registry = ConnectionRegistry()
        assert registry.set_display_name("ghost", "alice") is False
        assert "ghost" not in registry

    def test_unregister_returns_name_or_sentinel(self):
        registry = ConnectionRegistry()
        registry.register("a")
        registry.register("b")
        registry.set_display_name("a", "alice")

        assert registry.unregister("a") == "alice"
        assert registry.unregister("b") == ANONYMOUS
        assert registry.unregister("never-there") == ANONYMOUS
        assert len(registry) == 0

    def test_unregister_logs_activity(self):
        registry = ConnectionRegistry()
        registry.register("a")
        registry.set_display_name("a", "alice")
        registry.unregister("a")

        [record] = registry.activity()
        assert record["id"] == "a"
        assert record["username"] == "alice"
        assert record["duration"] >= 0
        assert record["connectTime"] <= record["disconnectTime"]

    def test_activity_log_is_bounded(self):
        registry = ConnectionRegistry(activity_limit=2)
        for cid in ("a", "b", "c"):
            registry.register(cid)
            registry.unregister(cid)
        assert [r["id"] for r in registry.activity()] == ["b", "c"]

    def test_display_name_defaults_to_anonymous(self):
        registry = ConnectionRegistry()
        registry.register("a")
        assert registry.display_name("a") == ANONYMOUS
        assert registry.display_name("missing") == ANONYMOUS


class TestNameRegistry:
    def test_names_are_case_insensitive(self):
        names = NameRegistry()
        assert names.claim("Alice")
        assert not names.claim("aLICE")
        assert not names.is_available("ALICE")
        assert names.is_available("bob")

    def test_release_frees_the_name(self):
        names = NameRegistry()
        names.claim("Alice")
        names.release("alice")
        assert names.is_available("Alice")
        assert names.claim("ALICE")

    def test_blank_name_is_never_claimed(self):
        names = NameRegistry()
        assert not names.claim("   ")

    def test_fallback_name_is_reserved(self):
        names = NameRegistry()
        assert not names.is_available(ANONYMOUS)
        assert not names.claim(ANONYMOUS)
        assert not names.claim("  anonymous ")

    def test_releasing_the_sentinel_is_harmless(self):
        names = NameRegistry()
        names.release(ANONYMOUS)
        names.release(None)


class TestWaitingQueue:
    def test_fifo_order(self):
        queue = WaitingQueue()
        for cid in ("a", "b", "c"):
            queue.enqueue(cid)
        assert list(queue) == ["a", "b", "c"]
        assert queue.dequeue_next() == "a"
        assert queue.dequeue_next() == "b"
        assert list(queue) == ["c"]

    def test_enqueue_is_idempotent(self):
        queue = WaitingQueue()
        queue.enqueue("a")
        queue.enqueue("b")
        queue.enqueue("a")
        assert list(queue) == ["a", "b"]

    def test_empty_dequeue_returns_none(self):
        assert WaitingQueue().dequeue_next() is None

    def test_remove_absent_twice_is_noop(self):
        queue = WaitingQueue()
        queue.enqueue("a")
        queue.remove("x")
        queue.remove("x")
        assert list(queue) == ["a"]

    def test_remove_keeps_order_of_the_rest(self):
        queue = WaitingQueue()
        for cid in ("a", "b", "c"):
            queue.enqueue(cid)
        queue.remove("b")
        assert "b" not in queue
        assert list(queue) == ["a", "c"]


class TestSessionTable:
    def test_pair_is_symmetric(self):
        table = SessionTable()
        table.pair("a", "b")
        assert table.partner_of("a") == "b"
        assert table.partner_of("b") == "a"
        assert len(table) == 1
        assert list(table.pairs()) == [("a", "b")]

    def test_partner_of_unpaired_is_none(self):
        assert SessionTable().partner_of("a") is None

    def test_pairing_a_paired_connection_is_an_error(self):
        table = SessionTable()
        table.pair("a", "b")
        with pytest.raises(StateError):
            table.pair("c", "a")
        with pytest.raises(StateError):
            table.pair("b", "c")
        assert table.partner_of("c") is None

    def test_pairing_with_self_is_an_error(self):
        with pytest.raises(StateError):
            SessionTable().pair("a", "a")

    def test_unpair_removes_both_directions(self):
        table = SessionTable()
        table.pair("a", "b")
        assert table.unpair("b") == "a"
        assert "a" not in table
        assert "b" not in table
        assert table.unpair("a") is None
