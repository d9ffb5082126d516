"""Exception types raised by the janitor engine."""

import re

import git


class JanitorError(Exception):
    """Base class for janitor errors."""


class ConfigurationError(JanitorError):
    """Settings are missing or malformed. Fatal to the whole run."""


class CloneError(JanitorError):
    """A local mirror could not be created or opened. Fatal to one repository."""


class FetchError(JanitorError):
    """Fetching from the remote failed. Fatal to one repository."""


def git_error_message(error: git.exc.GitCommandError) -> str:
    """
    Text git printed on stderr, without GitPython's "stderr: '...'" wrapper.

    Falls back to str(error) when git printed nothing.
    """
    text = (error.stderr or "").strip()
    match = re.fullmatch(r"stderr: '(.*)'", text, re.DOTALL)
    if match:
        text = match.group(1).strip()
    return text or str(error)
