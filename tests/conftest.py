"""Shared fixtures: throwaway upstream repositories with crafted commit graphs."""

import itertools
from pathlib import Path
from typing import Optional, Sequence

import pytest
from git import Actor, Commit, Repo
from git.cmd import Git

from tools.janitor.config import ConfiguredRepository, Settings
from tools.janitor.mirror import MirrorHandle, RepositoryCache
from tools.janitor.sync import Synchronizer

AUTHOR = Actor("Jane Dev", "jane@example.com")
BASE_TIMESTAMP = 1_700_000_000


class Upstream:
    """A non-bare repository playing the part of the remote."""

    def __init__(self, path: Path):
        self.path = path
        self.repo = Repo.init(path)
        self.repo.git.symbolic_ref("HEAD", "refs/heads/master")
        self._counter = itertools.count(1)

    def commit(
        self,
        parents: Sequence[Commit] = (),
        message: Optional[str] = None,
        timestamp: Optional[int] = None,
    ) -> Commit:
        """Create a commit with the given parents without moving any branch."""
        n = next(self._counter)
        file = self.path / f"file{n}.txt"
        file.write_text(f"{n}\n")
        self.repo.index.add([str(file)])

        when = f"{timestamp if timestamp is not None else BASE_TIMESTAMP + n * 60} +0000"
        return self.repo.index.commit(
            message or f"commit {n}",
            parent_commits=list(parents),
            head=False,
            author=AUTHOR,
            committer=AUTHOR,
            author_date=when,
            commit_date=when,
        )

    def chain(self, parent: Optional[Commit], length: int) -> Commit:
        """Create `length` commits on top of parent and return the last one."""
        tip = parent
        for _ in range(length):
            tip = self.commit([tip] if tip is not None else [])
        return tip

    def branch(self, name: str, commit: Commit) -> Commit:
        """Point branch `name` at commit, creating or moving it."""
        self.repo.create_head(name, commit, force=True)
        return commit

    def has_branch(self, name: str) -> bool:
        return name in [head.name for head in self.repo.heads]


@pytest.fixture
def upstream(tmp_path) -> Upstream:
    return Upstream(tmp_path / "upstream")


@pytest.fixture
def mirrors_dir(tmp_path) -> Path:
    return tmp_path / "mirrors"


@pytest.fixture
def make_repository(upstream):
    def factory(
        name: str = "service",
        master: str = "master",
        ignored: Sequence[str] = ("origin/master",),
        url: Optional[str] = None,
    ) -> ConfiguredRepository:
        return ConfiguredRepository(
            name=name,
            url=url or str(upstream.path),
            master_branch_name=master,
            ignored_branches=frozenset(ignored),
        )

    return factory


@pytest.fixture
def make_settings(mirrors_dir):
    def factory(repositories=(), push: bool = False, webhook: Optional[str] = None) -> Settings:
        return Settings(
            path_to_repos=mirrors_dir,
            push_deletes_to_remote=push,
            slack_webhook=webhook,
            configured_repositories=list(repositories),
        )

    return factory


@pytest.fixture
def fetched_mirror(mirrors_dir):
    """Create (or reopen) and fetch the mirror of a configured repository."""

    def factory(repository: ConfiguredRepository) -> MirrorHandle:
        mirror = RepositoryCache(mirrors_dir).ensure_mirror(repository, None)
        Synchronizer().fetch(mirror, None)
        return mirror

    return factory


@pytest.fixture
def feature_graph(upstream):
    """
    master:    c1 - c2 - c3 - c4
    feature/a:       c2             (merged, behind 2)
    feature/b:            c3 - b1 - b2  (ahead 2)
    """
    base = upstream.chain(None, 2)
    master = upstream.chain(base, 2)
    upstream.branch("master", master)
    upstream.branch("feature/a", base)
    upstream.branch("feature/b", upstream.chain(master.parents[0], 2))
    return upstream


class GitCalls:
    """Git commands run during a test, with the environment overrides in effect for each."""

    def __init__(self):
        self.calls = []

    def record(self, command, environment):
        self.calls.append((list(command), dict(environment)))

    def environment_of(self, subcommand: str) -> dict:
        """Environment of the first recorded command running `subcommand`."""
        return next(env for command, env in self.calls if subcommand in command)


@pytest.fixture
def git_calls(monkeypatch) -> GitCalls:
    recorder = GitCalls()
    execute = Git.execute

    def recording_execute(self, command, *args, **kwargs):
        recorder.record(command, self.environment())
        return execute(self, command, *args, **kwargs)

    monkeypatch.setattr(Git, "execute", recording_execute)
    return recorder
