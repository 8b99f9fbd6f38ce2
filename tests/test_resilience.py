"""
Backend call policy tests — retry, timeout budget, error translation,
request sequencing and list refresh degradation.
"""

import pytest
from sqlalchemy.exc import IntegrityError, OperationalError, ProgrammingError

from app.core.exceptions import ConflictError, NetworkError, StaleResponseError
from app.repositories.resilience import RequestSequencer, call_backend, is_transient
from app.services.refresh import ListRefresher
from app.services.roles import RoleContext


def _flaky(failures, exc_factory, result="ok"):
    calls = {"n": 0}

    def fn():
        calls["n"] += 1
        if calls["n"] <= failures:
            raise exc_factory()
        return result

    return fn, calls


def _lost_connection():
    return OperationalError("SELECT 1", {}, Exception("server closed the connection"))


class TestCallBackend:
    def test_transient_failures_are_retried(self):
        fn, calls = _flaky(2, _lost_connection)
        assert call_backend("Task.select", fn) == "ok"
        assert calls["n"] == 3

    def test_gives_up_after_max_retries(self, app, monkeypatch):
        monkeypatch.setitem(app.config, "BACKEND_MAX_RETRIES", 2)
        fn, calls = _flaky(10, _lost_connection)
        with pytest.raises(NetworkError) as exc:
            call_backend("Task.select", fn)
        assert calls["n"] == 3
        assert exc.value.operation == "Task.select"

    def test_timeout_budget_stops_retries(self, app, monkeypatch):
        monkeypatch.setitem(app.config, "BACKEND_TIMEOUT_SECONDS", 0.05)
        monkeypatch.setitem(app.config, "BACKEND_RETRY_BACKOFF_SECONDS", 1.0)
        fn, calls = _flaky(10, _lost_connection)
        with pytest.raises(NetworkError):
            call_backend("Task.select", fn)
        assert calls["n"] == 1

    def test_non_transient_error_not_retried(self):
        fn, calls = _flaky(1, lambda: ProgrammingError("SELECT x", {}, Exception("no such column")))
        with pytest.raises(NetworkError):
            call_backend("Task.select", fn)
        assert calls["n"] == 1

    def test_integrity_error_becomes_conflict(self):
        fn, calls = _flaky(1, lambda: IntegrityError("INSERT", {}, Exception("UNIQUE constraint failed")))
        with pytest.raises(ConflictError):
            call_backend("Task.insert", fn, resource="Task")
        assert calls["n"] == 1

    def test_is_transient(self):
        assert is_transient(_lost_connection())
        assert not is_transient(ProgrammingError("SELECT", {}, Exception("bad")))
        assert not is_transient(ValueError("nope"))


class TestRequestSequencer:
    def test_tickets_increase_per_key(self):
        seq = RequestSequencer()
        assert seq.begin("tasks:1") == 1
        assert seq.begin("tasks:1") == 2
        assert seq.begin("tasks:2") == 1
        assert seq.latest("tasks:1") == 2

    def test_only_latest_response_accepted(self):
        seq = RequestSequencer()
        old = seq.begin("tickets:5")
        new = seq.begin("tickets:5")
        assert seq.accept("tickets:5", new, ["fresh"]) == ["fresh"]
        with pytest.raises(StaleResponseError) as exc:
            seq.accept("tickets:5", old, ["stale"])
        assert exc.value.latest == new
        assert not seq.is_current("tickets:5", old)


class TestListRefresher:
    def test_stores_latest_rows(self):
        refresher = ListRefresher()
        assert refresher.refresh("k", lambda: [1, 2]) == [1, 2]
        assert refresher.latest["k"] == [1, 2]

    def test_slow_response_does_not_overwrite_newer(self):
        refresher = ListRefresher()

        def slow_fetch():
            # a newer refresh completes while this one is in flight
            refresher.refresh("k", lambda: ["new"])
            return ["old"]

        assert refresher.refresh("k", slow_fetch) == ["new"]
        assert refresher.latest["k"] == ["new"]

    def test_network_error_degrades_to_empty_list(self):
        refresher = ListRefresher()

        def failing():
            raise NetworkError("SupportTicket.select")

        assert refresher.refresh("k", failing) == []

    def test_refresh_tasks_uses_task_listing(self, project, owner, make_task):
        make_task(project["id"], title="Lobby")
        rows = ListRefresher().refresh_tasks(project["id"], owner.id)
        assert [r["title"] for r in rows] == ["Lobby"]

    def test_oldest_key_evicted_past_cap(self):
        refresher = ListRefresher(max_cached=2)
        refresher.refresh("a", lambda: [1])
        refresher.refresh("b", lambda: [2])
        refresher.refresh("a", lambda: [3])
        refresher.refresh("c", lambda: [4])
        assert list(refresher.latest) == ["a", "c"]

    def test_ticket_keys_separate_callers_and_filters(self, make_user, make_ticket):
        alice = make_user("alice@example.com")
        bob = make_user("bob@example.com")
        make_ticket(alice.id, subject="Alice urgent", priority="urgent")
        make_ticket(alice.id, subject="Alice low", priority="low")
        make_ticket(bob.id, subject="Bob")
        refresher = ListRefresher()

        urgent = refresher.refresh_tickets(RoleContext(user_id=alice.id), priority="urgent")
        everything = refresher.refresh_tickets(RoleContext(user_id=alice.id))
        bobs = refresher.refresh_tickets(RoleContext(user_id=bob.id))

        assert [t["subject"] for t in urgent] == ["Alice urgent"]
        assert len(everything) == 2
        assert [t["subject"] for t in bobs] == ["Bob"]
        assert len(refresher.latest) == 3
