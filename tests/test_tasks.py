# =============================================================================
# Unit Tests — Retention Purge Task
# =============================================================================
#
# The task body is executed directly (no broker). The sync session is
# replaced with a MagicMock so no database is needed.
# =============================================================================

from contextlib import contextmanager
from datetime import UTC, datetime, timedelta
from unittest.mock import MagicMock, patch

from loghog.workers.tasks import purge_expired_logs, retention_cutoff

NOW = datetime(2024, 6, 30, 0, 0, tzinfo=UTC)


def _fake_session(rowcount: int) -> MagicMock:
    session = MagicMock()
    session.execute.return_value = MagicMock(rowcount=rowcount)
    return session


def _session_cm(session):
    @contextmanager
    def _get_sync_session():
        yield session
    return _get_sync_session


class TestRetentionCutoff:
    def test_cutoff_is_days_before_now(self):
        assert retention_cutoff(now=NOW, days=30) == NOW - timedelta(days=30)

    def test_zero_days_disables(self):
        assert retention_cutoff(now=NOW, days=0) is None

    def test_unset_setting_disables(self):
        with patch("loghog.workers.tasks.settings") as mock_settings:
            mock_settings.log_retention_days = None
            assert retention_cutoff(now=NOW) is None


class TestPurgeExpiredLogs:
    def test_deletes_old_records(self):
        session = _fake_session(rowcount=17)
        with (
            patch("loghog.workers.tasks.settings") as mock_settings,
            patch("loghog.workers.tasks.get_sync_session", _session_cm(session)),
        ):
            mock_settings.log_retention_days = 30
            result = purge_expired_logs.run()

        assert result["status"] == "completed"
        assert result["deleted"] == 17
        session.execute.assert_called_once()
        statement = str(session.execute.call_args.args[0])
        assert "DELETE FROM log_records" in statement
        assert "created_at <" in statement

    def test_skipped_when_retention_disabled(self):
        session = _fake_session(rowcount=0)
        with (
            patch("loghog.workers.tasks.settings") as mock_settings,
            patch("loghog.workers.tasks.get_sync_session", _session_cm(session)),
        ):
            mock_settings.log_retention_days = None
            result = purge_expired_logs.run()

        assert result == {"status": "skipped", "deleted": 0, "cutoff": None}
        session.execute.assert_not_called()

    def test_beat_schedule_registered(self):
        from loghog.workers.celery_app import celery_app

        schedule = celery_app.conf.beat_schedule
        assert schedule["purge-expired-logs"]["task"] == "purge_expired_logs"
