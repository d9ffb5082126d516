"""Tests for the fleet runner."""

from unittest.mock import Mock

from tools.janitor.credentials import Credentials
from tools.janitor.errors import FetchError
from tools.janitor.outcomes import OutcomeKind
from tools.janitor.pruner import Pruner
from tools.janitor.runner import JanitorRunner, RepositoryStatus, RunSummary, RepositoryReport


class TestJanitorRunner:
    """Test processing of several repositories."""

    def test_failed_repository_does_not_stop_run(
        self, feature_graph, make_repository, make_settings, tmp_path
    ):
        """Test an unreachable repository is reported and the next one still runs."""
        broken = make_repository(name="broken", url=str(tmp_path / "missing"))
        healthy = make_repository(name="healthy")
        settings = make_settings([broken, healthy])

        summary = JanitorRunner(settings, None, pruner=Pruner(settings, Mock())).run()

        assert [(r.name, r.status) for r in summary.reports] == [
            ("broken", RepositoryStatus.FAILED),
            ("healthy", RepositoryStatus.PROCESSED),
        ]
        assert "broken" in summary.reports[0].error
        assert [o.branch for o in summary.reports[1].outcomes] == ["origin/feature/a"]
        assert summary.counts[OutcomeKind.DRY_RUN_SKIPPED] == 1

    def test_missing_master_is_skipped(self, feature_graph, make_repository, make_settings):
        """Test a repository without its master branch is skipped, not failed."""
        settings = make_settings([make_repository(master="main")])

        summary = JanitorRunner(settings, None, pruner=Pruner(settings, Mock())).run()

        assert summary.reports[0].status is RepositoryStatus.SKIPPED
        assert summary.outcomes == []

    def test_fetch_error(self, feature_graph, make_repository, make_settings):
        """Test a fetch failure marks only that repository failed."""
        settings = make_settings([make_repository(name="one"), make_repository(name="two")])
        synchronizer = Mock()
        synchronizer.fetch.side_effect = [FetchError("Error fetching one"), None]

        summary = JanitorRunner(
            settings, None, synchronizer=synchronizer, pruner=Pruner(settings, Mock())
        ).run()

        assert [r.status for r in summary.reports] == [
            RepositoryStatus.FAILED,
            RepositoryStatus.PROCESSED,
        ]
        assert summary.reports[0].error == "Error fetching one"

    def test_os_error_does_not_stop_run(self, feature_graph, make_repository, make_settings):
        """Test an OS-level failure in one repository is recorded and the run continues."""
        settings = make_settings([make_repository(name="one"), make_repository(name="two")])
        synchronizer = Mock()
        synchronizer.fetch.side_effect = [OSError(24, "Too many open files"), None]

        summary = JanitorRunner(
            settings, None, synchronizer=synchronizer, pruner=Pruner(settings, Mock())
        ).run()

        assert [r.status for r in summary.reports] == [
            RepositoryStatus.FAILED,
            RepositoryStatus.PROCESSED,
        ]
        assert "Too many open files" in summary.reports[0].error

    def test_credentials_passed_to_every_stage(self, make_repository, make_settings):
        """Test the run's credentials reach the clone, the fetch and the pruner."""
        repository = make_repository()
        settings = make_settings([repository])
        credentials = Credentials("deploy-bot", "s3cret")
        cache, synchronizer, pruner = Mock(), Mock(), Mock()
        pruner.evaluate.return_value = []

        JanitorRunner(settings, credentials, cache, synchronizer, pruner).run()

        mirror = cache.ensure_mirror.return_value
        cache.ensure_mirror.assert_called_once_with(repository, credentials)
        synchronizer.fetch.assert_called_once_with(mirror, credentials)
        pruner.evaluate.assert_called_once_with(repository, mirror, credentials)

    def test_deletes_when_enabled(self, feature_graph, make_repository, make_settings):
        """Test a run with PushDeletesToRemote removes merged branches upstream."""
        settings = make_settings([make_repository()], push=True)

        summary = JanitorRunner(settings, None, pruner=Pruner(settings, Mock())).run()

        assert summary.counts[OutcomeKind.DELETED] == 1
        assert not feature_graph.has_branch("feature/a")


class TestRunSummary:
    """Test summary aggregation."""

    def test_counts_include_every_kind(self):
        """Test counts has an entry for each outcome kind."""
        summary = RunSummary([RepositoryReport("a", RepositoryStatus.FAILED, error="x")])

        assert summary.counts == {kind: 0 for kind in OutcomeKind}
        assert [r.name for r in summary.failed_repositories] == ["a"]
