"""Pruning policy: decide which remote branches are merged and delete them."""

from typing import List, Optional

import git
from git.remote import PushInfo

from shared.logger import get_logger

from .config import ConfiguredRepository, Settings
from .credentials import Credentials, git_environment
from .divergence import DivergenceCalculator
from .errors import git_error_message
from .mirror import REMOTE_NAME, MirrorHandle, RemoteBranchRef
from .notifier import Notifier
from .outcomes import PruneOutcome

logger = get_logger(__name__)

# Push result flags that mean the remote refused or failed the update
FAILURE_FLAGS = (
    PushInfo.ERROR
    | PushInfo.REJECTED
    | PushInfo.REMOTE_REJECTED
    | PushInfo.REMOTE_FAILURE
    | PushInfo.NO_MATCH
)


class Pruner:
    """
    Deletes remote branches that master has fully absorbed.

    A branch qualifies when it is ahead of master by zero commits. Branches
    ahead of master are left alone and produce no outcome.
    """

    def __init__(
        self,
        settings: Settings,
        notifier: Notifier,
        divergence: Optional[DivergenceCalculator] = None,
    ):
        """
        Initialize pruner.

        Args:
            settings: Run settings (PushDeletesToRemote gates remote deletion)
            notifier: Receives every outcome
            divergence: Divergence calculator (defaults to DivergenceCalculator())
        """
        self.push_deletes_to_remote = settings.push_deletes_to_remote
        self.notifier = notifier
        self.divergence = divergence or DivergenceCalculator()

    def master_ref(
        self, repository: ConfiguredRepository, mirror: MirrorHandle
    ) -> Optional[RemoteBranchRef]:
        """Resolve origin/<MasterBranchName>, warning when it does not exist."""
        friendly_name = f"{REMOTE_NAME}/{repository.master_branch_name}"
        master = mirror.remote_branch(friendly_name)
        if master is None:
            logger.warning(
                f'Master branch "{repository.master_branch_name}" not found in '
                f"{repository.name}, skipping repository."
            )
        return master

    def candidates(
        self, repository: ConfiguredRepository, mirror: MirrorHandle, master: RemoteBranchRef
    ) -> List[RemoteBranchRef]:
        """
        Remote branches to evaluate, most recently authored first.

        Master itself is always excluded, whether or not it is listed in
        IgnoredBranches. Ignore entries match origin/<name> or <name>.
        """
        ignored = repository.ignored_branches
        branches = [
            branch
            for branch in mirror.remote_branches()
            if branch.is_remote
            and branch.friendly_name != master.friendly_name
            and branch.friendly_name not in ignored
            and branch.short_name not in ignored
        ]
        return sorted(branches, key=lambda b: b.tip_author_timestamp, reverse=True)

    def evaluate(
        self,
        repository: ConfiguredRepository,
        mirror: MirrorHandle,
        credentials: Optional[Credentials],
    ) -> List[PruneOutcome]:
        """
        Evaluate every candidate branch of a repository and act on merged ones.

        Args:
            repository: Configured repository
            mirror: Freshly fetched mirror
            credentials: Credentials for the deletion push

        Returns:
            One outcome per merged branch, in evaluation order
        """
        master = self.master_ref(repository, mirror)
        if master is None:
            return []

        logger.info(
            f"determining divergence from master @ {master.short_sha} for {repository.name}"
        )

        outcomes = []
        checked = 0
        for branch in self.candidates(repository, mirror, master):
            checked += 1
            try:
                divergence = self.divergence.diverge(
                    mirror, branch.tip_commit_id, master.tip_commit_id
                )
            except git.exc.GitCommandError as e:
                logger.error(
                    f"Cannot compute divergence for {repository.name} => "
                    f"{branch.friendly_name} => {branch.short_sha}: {e}"
                )
                continue

            if not divergence.is_merged:
                continue

            outcome = self._act(repository, mirror, branch, credentials)
            self.notifier.notify(outcome, repository.name)
            outcomes.append(outcome)

        logger.info(
            f"Checked {checked} branches in {repository.name}, found {len(outcomes)} candidates."
        )
        return outcomes

    def _act(
        self,
        repository: ConfiguredRepository,
        mirror: MirrorHandle,
        branch: RemoteBranchRef,
        credentials: Optional[Credentials],
    ) -> PruneOutcome:
        if not self.push_deletes_to_remote:
            return PruneOutcome.dry_run_skipped(branch)
        return self.delete_remote_branch(mirror, branch, credentials)

    def delete_remote_branch(
        self,
        mirror: MirrorHandle,
        branch: RemoteBranchRef,
        credentials: Optional[Credentials],
    ) -> PruneOutcome:
        """
        Push a deletion of the branch's upstream ref.

        The push carries a lease on the observed tip, so the remote only
        deletes the ref if it still points at the commit that was evaluated.

        Returns:
            Outcome derived from the per-ref push report
        """
        upstream = branch.upstream_canonical_name
        try:
            with git_environment(credentials) as env:
                with mirror.repo.git.custom_environment(**env):
                    results = mirror.remote.push(
                        refspec=f":{upstream}",
                        force_with_lease=f"{upstream}:{branch.tip_commit_id}",
                    )
        except git.exc.GitCommandError as e:
            return PruneOutcome.push_failed(branch, git_error_message(e))
        except OSError as e:
            return PruneOutcome.push_failed(branch, f"cannot run git push: {e}")

        return interpret_push(branch, results)


def interpret_push(branch: RemoteBranchRef, results: List[PushInfo]) -> PruneOutcome:
    """
    Map the transport's per-ref push report to an outcome.

    Only a report of the branch's own upstream ref being deleted counts as
    a deletion; a stale lease means the branch moved after it was fetched.
    """
    for result in results:
        if result.remote_ref_string != branch.upstream_canonical_name:
            continue

        summary = (result.summary or "").strip()
        if result.flags & PushInfo.DELETED:
            return PruneOutcome.deleted(branch)
        if "stale info" in summary:
            return PruneOutcome.notification_mismatch(
                branch, f"remote ref no longer at {branch.short_sha}"
            )
        if result.flags & FAILURE_FLAGS:
            return PruneOutcome.push_failed(branch, summary or "push rejected")
        return PruneOutcome.notification_mismatch(
            branch, f"remote reported {summary or 'no deletion'}"
        )

    error = getattr(results, "error", None)
    if error is not None:
        return PruneOutcome.push_failed(branch, str(error))

    return PruneOutcome.notification_mismatch(branch, "no deletion reported for the ref")
