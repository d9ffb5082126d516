"""Outcome records produced for each merged branch."""

from dataclasses import dataclass
from enum import Enum
from typing import Optional

from .mirror import RemoteBranchRef


class OutcomeKind(Enum):
    """What happened to a merged branch."""

    DELETED = "deleted"
    DRY_RUN_SKIPPED = "dry_run_skipped"
    PUSH_FAILED = "push_failed"
    NOTIFICATION_MISMATCH = "notification_mismatch"


@dataclass(frozen=True)
class PruneOutcome:
    """Result of acting on one merged branch."""

    kind: OutcomeKind
    branch: str
    tip_sha: str
    reason: Optional[str] = None

    @property
    def short_sha(self) -> str:
        """Seven character prefix of the tip commit."""
        return self.tip_sha[:7]

    @property
    def is_failure(self) -> bool:
        """True when a deletion was attempted and did not go through."""
        return self.kind in (OutcomeKind.PUSH_FAILED, OutcomeKind.NOTIFICATION_MISMATCH)

    @classmethod
    def deleted(cls, branch: RemoteBranchRef) -> "PruneOutcome":
        """Branch was deleted on the remote."""
        return cls(OutcomeKind.DELETED, branch.friendly_name, branch.tip_commit_id)

    @classmethod
    def dry_run_skipped(cls, branch: RemoteBranchRef) -> "PruneOutcome":
        """Branch would have been deleted, but pushing deletes is disabled."""
        return cls(OutcomeKind.DRY_RUN_SKIPPED, branch.friendly_name, branch.tip_commit_id)

    @classmethod
    def push_failed(cls, branch: RemoteBranchRef, reason: str) -> "PruneOutcome":
        """Deletion push failed; reason is the remote's message."""
        return cls(OutcomeKind.PUSH_FAILED, branch.friendly_name, branch.tip_commit_id, reason)

    @classmethod
    def notification_mismatch(cls, branch: RemoteBranchRef, reason: str) -> "PruneOutcome":
        """Remote did not report deleting the branch at its observed tip."""
        return cls(
            OutcomeKind.NOTIFICATION_MISMATCH, branch.friendly_name, branch.tip_commit_id, reason
        )
