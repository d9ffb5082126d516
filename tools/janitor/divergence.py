"""Ahead/behind counts between a branch tip and the master tip."""

from dataclasses import dataclass
from typing import Optional

from shared.logger import get_logger

from .mirror import MirrorHandle

logger = get_logger(__name__)


@dataclass(frozen=True)
class DivergenceResult:
    """
    Commit counts relative to the merge-base.

    Attributes:
        ahead_by: Commits reachable from the branch tip but not from master
        behind_by: Commits reachable from master but not from the branch tip
        merge_base: Common ancestor sha, None for unrelated histories
    """

    ahead_by: int
    behind_by: int
    merge_base: Optional[str] = None

    @property
    def is_merged(self) -> bool:
        """A branch is merged when master already contains every commit of it."""
        return self.ahead_by == 0


class DivergenceCalculator:
    """Computes divergence without touching refs or objects."""

    def diverge(self, mirror: MirrorHandle, branch_tip: str, master_tip: str) -> DivergenceResult:
        """
        Compute how far a branch tip has diverged from the master tip.

        Args:
            mirror: Mirror holding both commits
            branch_tip: Commit id of the candidate branch
            master_tip: Commit id of master

        Returns:
            DivergenceResult for the pair
        """
        repo = mirror.repo

        bases = repo.merge_base(branch_tip, master_tip)
        merge_base = bases[0].hexsha if bases else None

        # Symmetric difference: left side is the branch, right side is master
        counts = repo.git.rev_list("--left-right", "--count", f"{branch_tip}...{master_tip}")
        ahead, behind = (int(n) for n in counts.split())

        logger.debug(
            f"{branch_tip[:7]} vs {master_tip[:7]}: ahead {ahead}, behind {behind}, "
            f"merge-base {merge_base[:7] if merge_base else 'none'}"
        )
        return DivergenceResult(ahead_by=ahead, behind_by=behind, merge_base=merge_base)
