from datetime import timedelta

from app.services.session_manager import SessionManager

TIMEOUT_MS = 15 * 60 * 1000


class TestSessionLifecycle:
    def test_unknown_session_has_no_times(self, session_manager):
        assert session_manager.get_session_start_time("c1") is None
        assert session_manager.get_last_activity_time("c1") is None
        assert session_manager.get_session_age_ms("c1") is None
        assert session_manager.get_time_until_expiration_ms("c1") is None

    def test_unknown_session_is_not_expired(self, session_manager):
        assert session_manager.is_session_expired("c1") is False

    def test_first_activity_creates_session(self, session_manager, clock):
        session_manager.update_activity("c1")

        assert session_manager.get_session_start_time("c1") == clock.now
        assert session_manager.get_last_activity_time("c1") == clock.now

    def test_later_activity_keeps_start_time(self, session_manager, clock):
        session_manager.update_activity("c1")
        started = clock.now
        clock.advance(60_000)
        session_manager.update_activity("c1")

        assert session_manager.get_session_start_time("c1") == started
        assert session_manager.get_last_activity_time("c1") == clock.now

    def test_last_activity_never_precedes_start(self, session_manager, clock):
        session_manager.update_activity("c1")
        started = clock.now
        clock.now = started - timedelta(seconds=5)
        session_manager.update_activity("c1")

        assert session_manager.get_last_activity_time("c1") == started

    def test_reset_forgets_session(self, session_manager):
        session_manager.update_activity("c1")
        session_manager.reset_session("c1")

        assert session_manager.get_session_start_time("c1") is None
        assert session_manager.is_session_expired("c1") is False

    def test_reset_unknown_session_is_noop(self, session_manager):
        session_manager.reset_session("missing")
        assert session_manager.get_session_start_time("missing") is None

    def test_sessions_are_independent(self, session_manager, clock):
        session_manager.update_activity("a")
        clock.advance(TIMEOUT_MS)
        session_manager.update_activity("b")

        assert session_manager.is_session_expired("a") is True
        assert session_manager.is_session_expired("b") is False


class TestSessionExpiry:
    def test_not_expired_just_before_timeout(self, session_manager, clock):
        session_manager.update_activity("c1")
        clock.advance(TIMEOUT_MS - 1)
        assert session_manager.is_session_expired("c1") is False

    def test_expired_at_timeout(self, session_manager, clock):
        session_manager.update_activity("c1")
        clock.advance(TIMEOUT_MS)
        assert session_manager.is_session_expired("c1") is True

    def test_expiry_is_sliding(self, session_manager, clock):
        session_manager.update_activity("c1")
        clock.advance(TIMEOUT_MS - 1000)
        session_manager.update_activity("c1")
        clock.advance(TIMEOUT_MS - 1000)

        assert session_manager.is_session_expired("c1") is False
        assert session_manager.get_session_age_ms("c1") == 2 * (TIMEOUT_MS - 1000)

    def test_time_until_expiration(self, session_manager, clock):
        session_manager.update_activity("c1")
        clock.advance(60_000)
        assert session_manager.get_time_until_expiration_ms("c1") == TIMEOUT_MS - 60_000

    def test_time_until_expiration_is_floored_at_zero(self, session_manager, clock):
        session_manager.update_activity("c1")
        clock.advance(TIMEOUT_MS * 2)
        assert session_manager.get_time_until_expiration_ms("c1") == 0

    def test_short_timeout(self, clock):
        manager = SessionManager(session_timeout_ms=10, clock=clock)
        manager.update_activity("c1")
        clock.advance(10)
        assert manager.is_session_expired("c1") is True
