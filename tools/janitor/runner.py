"""Runs the prune pass over every configured repository."""

from collections import Counter
from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, List, Optional

import git

from shared.logger import get_logger

from .config import ConfiguredRepository, Settings
from .credentials import Credentials
from .errors import CloneError, FetchError
from .mirror import RepositoryCache
from .notifier import build_notifier
from .outcomes import OutcomeKind, PruneOutcome
from .pruner import Pruner
from .sync import Synchronizer

logger = get_logger(__name__)


class RepositoryStatus(Enum):
    """How processing of a repository ended."""

    PROCESSED = "processed"
    SKIPPED = "skipped"
    FAILED = "failed"


@dataclass
class RepositoryReport:
    """Per-repository result of a run."""

    name: str
    status: RepositoryStatus
    outcomes: List[PruneOutcome] = field(default_factory=list)
    error: Optional[str] = None


@dataclass
class RunSummary:
    """Aggregated result of a run over all repositories."""

    reports: List[RepositoryReport] = field(default_factory=list)

    @property
    def outcomes(self) -> List[PruneOutcome]:
        """Every outcome of every processed repository, in run order."""
        return [outcome for report in self.reports for outcome in report.outcomes]

    @property
    def counts(self) -> Dict[OutcomeKind, int]:
        """Number of outcomes per kind (every kind present, zero if unused)."""
        counter = Counter(outcome.kind for outcome in self.outcomes)
        return {kind: counter.get(kind, 0) for kind in OutcomeKind}

    @property
    def failed_repositories(self) -> List[RepositoryReport]:
        return [r for r in self.reports if r.status is RepositoryStatus.FAILED]


class JanitorRunner:
    """
    Processes repositories one at a time: mirror, fetch, prune.

    A repository that fails to clone or fetch is logged and skipped; the
    remaining repositories are still processed.
    """

    def __init__(
        self,
        settings: Settings,
        credentials: Optional[Credentials],
        cache: Optional[RepositoryCache] = None,
        synchronizer: Optional[Synchronizer] = None,
        pruner: Optional[Pruner] = None,
    ):
        """
        Initialize runner.

        Args:
            settings: Run settings
            credentials: Credentials for clone, fetch and push (may be None)
            cache: Repository cache (defaults to one rooted at PathToRepos)
            synchronizer: Synchronizer (defaults to Synchronizer())
            pruner: Pruner (defaults to one notifying via build_notifier)
        """
        self.settings = settings
        self.credentials = credentials
        self.cache = cache or RepositoryCache(settings.path_to_repos)
        self.synchronizer = synchronizer or Synchronizer()
        self.pruner = pruner or Pruner(settings, build_notifier(settings))

    def run(self) -> RunSummary:
        """Run one pass over every configured repository."""
        summary = RunSummary()
        mode = "deleting" if self.settings.push_deletes_to_remote else "dry run"
        logger.info(
            f"Pruning merged branches in {len(self.settings.configured_repositories)} "
            f"repositories ({mode})"
        )

        for repository in self.settings.configured_repositories:
            summary.reports.append(self.process(repository))

        counts = summary.counts
        logger.info(
            f"Run complete: {counts[OutcomeKind.DELETED]} deleted, "
            f"{counts[OutcomeKind.DRY_RUN_SKIPPED]} dry-run, "
            f"{counts[OutcomeKind.PUSH_FAILED] + counts[OutcomeKind.NOTIFICATION_MISMATCH]} failed, "
            f"{len(summary.failed_repositories)} repositories failed"
        )
        return summary

    def process(self, repository: ConfiguredRepository) -> RepositoryReport:
        """
        Prune one repository.

        Returns:
            RepositoryReport; failures are recorded, not raised
        """
        try:
            mirror = self.cache.ensure_mirror(repository, self.credentials)
            self.synchronizer.fetch(mirror, self.credentials)

            if self.pruner.master_ref(repository, mirror) is None:
                return RepositoryReport(repository.name, RepositoryStatus.SKIPPED)

            outcomes = self.pruner.evaluate(repository, mirror, self.credentials)
        except (CloneError, FetchError) as e:
            logger.error(f"Skipping {repository.name}: {e}")
            return RepositoryReport(repository.name, RepositoryStatus.FAILED, error=str(e))
        except (git.exc.GitError, OSError) as e:
            logger.error(f"Error while processing {repository.name}: {e}")
            return RepositoryReport(repository.name, RepositoryStatus.FAILED, error=str(e))

        return RepositoryReport(repository.name, RepositoryStatus.PROCESSED, outcomes)
