"""Local bare mirrors of the configured repositories."""

import shutil
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path
from typing import List, Optional

import git
from git import Repo
from git.refs.remote import RemoteReference

from shared.logger import get_logger

from .config import ConfiguredRepository
from .credentials import Credentials, git_environment
from .errors import CloneError, git_error_message

logger = get_logger(__name__)

REMOTE_NAME = "origin"


@dataclass(frozen=True)
class RemoteBranchRef:
    """Read-only view of a remote-tracking branch in a mirror."""

    friendly_name: str
    upstream_canonical_name: str
    tip_commit_id: str
    tip_author_timestamp: datetime
    is_remote: bool = True

    @property
    def short_sha(self) -> str:
        """Seven character commit hash prefix."""
        return self.tip_commit_id[:7]

    @property
    def short_name(self) -> str:
        """Branch name without the remote prefix (origin/feature/x -> feature/x)."""
        prefix = f"{REMOTE_NAME}/"
        if self.friendly_name.startswith(prefix):
            return self.friendly_name[len(prefix):]
        return self.friendly_name


class MirrorHandle:
    """
    Handle to an on-disk bare mirror.

    Attributes:
        name: Configured repository name
        path: Mirror directory
        repo: GitPython repository object
    """

    def __init__(self, name: str, path: Path, repo: Repo):
        """Wrap an opened bare mirror of repository name at path."""
        self.name = name
        self.path = path
        self.repo = repo

    @property
    def remote(self) -> git.Remote:
        """The mirror's origin remote."""
        return self.repo.remote(REMOTE_NAME)

    def remote_branches(self) -> List[RemoteBranchRef]:
        """
        Read the remote-tracking branches of origin.

        Always reads the ref table afresh; nothing is cached between calls.
        """
        branches = []
        for ref in self.repo.refs:
            if not isinstance(ref, RemoteReference) or ref.remote_name != REMOTE_NAME:
                continue
            if ref.remote_head == "HEAD":
                continue

            commit = ref.commit
            branches.append(
                RemoteBranchRef(
                    friendly_name=ref.name,
                    upstream_canonical_name=f"refs/heads/{ref.remote_head}",
                    tip_commit_id=commit.hexsha,
                    tip_author_timestamp=commit.authored_datetime,
                )
            )
        return branches

    def remote_branch(self, friendly_name: str) -> Optional[RemoteBranchRef]:
        """Look up one remote-tracking branch by friendly name (e.g. origin/master)."""
        for branch in self.remote_branches():
            if branch.friendly_name == friendly_name:
                return branch
        return None


class RepositoryCache:
    """Creates bare mirrors on first use and reopens them afterwards."""

    def __init__(self, base_path: Path):
        """
        Initialize repository cache.

        Args:
            base_path: Directory under which mirrors are kept
        """
        self.base_path = Path(base_path)

    def ensure_mirror(
        self, repository: ConfiguredRepository, credentials: Optional[Credentials]
    ) -> MirrorHandle:
        """
        Return a handle to the repository's mirror, cloning it if missing.

        Args:
            repository: Configured repository
            credentials: Credentials for the initial clone (may be None)

        Returns:
            MirrorHandle for the local mirror

        Raises:
            CloneError: If the mirror cannot be created or opened
        """
        path = repository.mirror_path(self.base_path)

        if path.exists():
            return self._open(repository, path)

        try:
            self.base_path.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise CloneError(f"Cannot create mirror directory {self.base_path}: {e}") from e
        return self._clone(repository, path, credentials)

    def _open(self, repository: ConfiguredRepository, path: Path) -> MirrorHandle:
        try:
            repo = Repo(path)
        except (git.exc.InvalidGitRepositoryError, git.exc.NoSuchPathError) as e:
            raise CloneError(f"{path} exists but is not a git repository") from e

        if REMOTE_NAME not in [remote.name for remote in repo.remotes]:
            raise CloneError(f"Mirror {path} has no '{REMOTE_NAME}' remote")

        logger.debug(f"Using existing mirror of {repository.name} at {path}")
        return MirrorHandle(repository.name, path, repo)

    def _clone(
        self, repository: ConfiguredRepository, path: Path, credentials: Optional[Credentials]
    ) -> MirrorHandle:
        # A bare repository whose origin keeps the default fetch ref-spec, so
        # upstream branches land under refs/remotes/origin/* rather than refs/heads/*.
        logger.info(f"Cloning {repository.name} to {path}, please wait.")
        try:
            repo = Repo.init(path, bare=True)
            repo.create_remote(REMOTE_NAME, repository.url)
            with git_environment(credentials) as env:
                with repo.git.custom_environment(**env):
                    repo.git.fetch(REMOTE_NAME)
        except git.exc.GitCommandError as e:
            shutil.rmtree(path, ignore_errors=True)
            raise CloneError(
                f"Cloning {repository.name} from {repository.url} failed: "
                f"{git_error_message(e)}"
            ) from e
        except OSError as e:
            shutil.rmtree(path, ignore_errors=True)
            raise CloneError(f"Cloning {repository.name} to {path} failed: {e}") from e

        logger.info(f"Cloning of {repository.name} to {path} complete.")
        return MirrorHandle(repository.name, path, repo)
