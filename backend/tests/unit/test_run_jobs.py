"""
Unit tests for the notifications/run_jobs.py CLI
"""

import unittest
from unittest.mock import Mock, patch

from models import SweepReport
from notifications import run_jobs
from shared.errors import PersistenceFailure
from shared.utils import utc_now


def make_engine():
    engine = Mock()
    engine.sweeper.run.return_value = SweepReport(started_at=utc_now())
    engine.templates.install_defaults.return_value = ["property_alert"]
    return engine


@patch("builtins.print")
@patch("notifications.run_jobs.Settings")
@patch("notifications.run_jobs.build_engine")
class TestRunJobs(unittest.TestCase):
    """Tests for argument handling and job selection."""

    def run_cli(self, *args):
        with patch("sys.argv", ["run_jobs", *args]):
            run_jobs.main()

    def test_requires_a_job(self, mock_build, _settings, _print):
        with patch("sys.stderr"), self.assertRaises(SystemExit):
            self.run_cli("--dry-run")
        mock_build.assert_not_called()

    def test_expiry_sweep_dry_run(self, mock_build, _settings, _print):
        engine = make_engine()
        mock_build.return_value = engine

        self.run_cli("--expiry-sweep", "--dry-run")

        engine.sweeper.run.assert_called_once_with(dry_run=True)
        engine.close.assert_called_once()

    def test_sweep_failures_exit_nonzero(self, mock_build, _settings, _print):
        engine = make_engine()
        engine.sweeper.run.return_value = SweepReport(started_at=utc_now(), failed=2)
        mock_build.return_value = engine

        with self.assertRaises(SystemExit) as ctx:
            self.run_cli("--expiry-sweep")

        self.assertEqual(ctx.exception.code, 1)
        engine.close.assert_called_once()

    def test_stats_defaults_to_thirty_days(self, mock_build, _settings, _print):
        engine = make_engine()
        engine.analytics.get_stats.return_value.top_types = []
        engine.analytics.get_stats.return_value.by_day = []
        mock_build.return_value = engine

        self.run_cli("--stats")

        engine.analytics.get_stats.assert_called_once_with(window_days=30)

    def test_fanout_engine_error_exits(self, mock_build, _settings, _print):
        engine = make_engine()
        engine.fanout.on_property_created_by_id.side_effect = PersistenceFailure(
            "list alerts", "timeout"
        )
        mock_build.return_value = engine

        with self.assertRaises(SystemExit) as ctx:
            self.run_cli("--fanout", "p1")

        self.assertEqual(ctx.exception.code, 1)
        engine.close.assert_called_once()

    def test_install_templates(self, mock_build, _settings, _print):
        engine = make_engine()
        mock_build.return_value = engine

        self.run_cli("--install-templates")

        engine.templates.install_defaults.assert_called_once()


if __name__ == "__main__":
    unittest.main()
