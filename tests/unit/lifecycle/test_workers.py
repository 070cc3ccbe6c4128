"""Tests for the background activity writer and the session sweeper."""

from datetime import timedelta

from trustgate.data.schemas import SessionActivity
from trustgate.lifecycle.schema import CreateSessionRequest
from trustgate.lifecycle.sweeper import SessionSweeper
from trustgate.lifecycle.writer import BackgroundActivityWriter

from fixtures.sessions import NOW, make_session


def _activity(session_id, minutes_ago=0):
    return SessionActivity(
        session_id=session_id,
        user_id="user_1",
        action="request",
        timestamp=NOW - timedelta(minutes=minutes_ago),
    )


class TestBackgroundActivityWriter:

    def test_writes_off_the_request_path(self, store):
        session = make_session()
        store.insert_session_with_cap(session, 5)
        writer = BackgroundActivityWriter(store)
        try:
            assert writer.submit(_activity(session.session_id)) is True
            writer.flush()
            assert len(store.list_activities(session.session_id)) == 1
            assert writer.get_stats()["written"] == 1
        finally:
            writer.shutdown(timeout=2.0)

    def test_store_failure_is_counted_not_raised(self, store):
        writer = BackgroundActivityWriter(store)
        try:
            writer.submit(_activity("sess_missing"))
            writer.flush()
            assert writer.get_stats()["failed"] == 1
        finally:
            writer.shutdown(timeout=2.0)

    def test_writes_synchronously_after_shutdown(self, store):
        session = make_session()
        store.insert_session_with_cap(session, 5)
        writer = BackgroundActivityWriter(store)
        writer.shutdown(timeout=2.0)

        assert writer.is_running is False
        assert writer.submit(_activity(session.session_id)) is True
        assert len(store.list_activities(session.session_id)) == 1

    def test_manager_uses_writer(self, manager, store):
        writer = BackgroundActivityWriter(store)
        manager.activity_writer = writer
        try:
            request = CreateSessionRequest(user_id="user_1", ip_address="74.125.20.7")
            session = manager.create_session(request, now=NOW).session
            writer.flush()
            assert [a.action for a in store.list_activities(session.session_id)] == ["login"]
        finally:
            writer.shutdown(timeout=2.0)


class TestSessionSweeper:

    def test_run_once(self, store):
        live = make_session(created_at=NOW - timedelta(minutes=10))
        idle = make_session(created_at=NOW - timedelta(hours=3))
        store.insert_session_with_cap(live, 5)
        store.insert_session_with_cap(idle, 5)
        store.add_activity(_activity(live.session_id, minutes_ago=60 * 24 * 91))
        store.add_activity(_activity(live.session_id, minutes_ago=1))

        result = SessionSweeper(store, clock=lambda: NOW).run_once()

        assert result.expired_session_ids == [idle.session_id]
        assert result.purged_activities == 1
        assert result.swept_at == NOW
        assert store.get_session(live.session_id) is not None

    def test_start_and_stop(self, store):
        sweeper = SessionSweeper(store, interval_seconds=60)
        sweeper.start()
        assert sweeper.is_running
        sweeper.stop(timeout=2.0)
        assert not sweeper.is_running
