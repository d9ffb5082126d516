"""Fetching remote refs into a mirror."""

from typing import Optional

import git

from shared.logger import get_logger

from .credentials import Credentials, git_environment
from .errors import FetchError, git_error_message
from .mirror import REMOTE_NAME, MirrorHandle

logger = get_logger(__name__)


class Synchronizer:
    """Brings a mirror's remote-tracking refs up to date with origin."""

    def fetch(self, mirror: MirrorHandle, credentials: Optional[Credentials]) -> None:
        """
        Fetch origin's configured ref-specs with pruning.

        Remote-tracking refs whose upstream branch is gone are deleted, so
        branches removed upstream are not evaluated again.

        Raises:
            FetchError: On authentication or network failure
        """
        before = len(mirror.remote_branches())

        try:
            with git_environment(credentials) as env:
                with mirror.repo.git.custom_environment(**env):
                    mirror.repo.git.fetch(REMOTE_NAME, prune=True)
        except git.exc.GitCommandError as e:
            raise FetchError(
                f"Error fetching {mirror.name}, invalid credentials? {git_error_message(e)}"
            ) from e
        except OSError as e:
            raise FetchError(f"Error fetching {mirror.name}: {e}") from e

        after = len(mirror.remote_branches())
        logger.info(f"Fetched {mirror.name}: {after} remote branches (was {before})")
