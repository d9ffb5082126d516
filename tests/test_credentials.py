"""Tests for the credential store and git authentication environment."""

import os
import stat
import subprocess
from pathlib import Path

import pytest

from tools.janitor.credentials import (
    PASSWORD_VARIABLE,
    USERNAME_VARIABLE,
    CredentialStore,
    Credentials,
    git_environment,
)
from tools.janitor.errors import ConfigurationError


class TestCredentials:
    """Test the Credentials value type."""

    def test_repr_hides_password(self):
        """Test that the password never shows up in repr."""
        creds = Credentials("deploy-bot", "hunter2")
        assert "hunter2" not in repr(creds)
        assert "deploy-bot" in repr(creds)


class TestCredentialStore:
    """Test the encrypted credential store."""

    def test_save_and_load(self, tmp_path):
        """Test that stored credentials can be read back with the same passphrase."""
        path = tmp_path / "store" / "git-janitor.cred"
        CredentialStore(path, "passphrase").save(Credentials("deploy-bot", "s3cret"))

        loaded = CredentialStore(path, "passphrase").load()

        assert loaded == Credentials("deploy-bot", "s3cret")
        assert b"s3cret" not in path.read_bytes()

    def test_file_is_owner_only(self, tmp_path):
        """Test the store file is created with mode 0600."""
        path = CredentialStore(tmp_path / "c.cred", "passphrase").save(Credentials("u", "p"))
        assert stat.S_IMODE(os.stat(path).st_mode) == 0o600

    def test_missing_file_is_not_an_error(self, tmp_path):
        """Test that absent credentials load as None."""
        assert CredentialStore(tmp_path / "absent.cred", "passphrase").load() is None

    def test_missing_passphrase_is_not_an_error(self, tmp_path, monkeypatch):
        """Test that an unset passphrase loads as None."""
        monkeypatch.delenv("GIT_JANITOR_CREDENTIAL_KEY", raising=False)
        path = tmp_path / "c.cred"
        CredentialStore(path, "passphrase").save(Credentials("u", "p"))

        assert CredentialStore(path).load() is None

    def test_passphrase_from_environment(self, tmp_path, monkeypatch):
        """Test GIT_JANITOR_CREDENTIAL_KEY is used by default."""
        monkeypatch.setenv("GIT_JANITOR_CREDENTIAL_KEY", "from-env")
        path = tmp_path / "c.cred"
        CredentialStore(path).save(Credentials("u", "p"))

        assert CredentialStore(path, "from-env").load() == Credentials("u", "p")

    def test_wrong_passphrase(self, tmp_path):
        """Test that a wrong passphrase is a configuration error."""
        path = tmp_path / "c.cred"
        CredentialStore(path, "right").save(Credentials("u", "p"))

        with pytest.raises(ConfigurationError, match="Wrong passphrase"):
            CredentialStore(path, "wrong").load()

    def test_save_requires_passphrase(self, tmp_path, monkeypatch):
        """Test that saving without a passphrase fails."""
        monkeypatch.delenv("GIT_JANITOR_CREDENTIAL_KEY", raising=False)
        with pytest.raises(ConfigurationError):
            CredentialStore(tmp_path / "c.cred").save(Credentials("u", "p"))


class TestGitEnvironment:
    """Test the environment passed to git subprocesses."""

    def test_without_credentials(self):
        """Test that git never prompts, and no askpass helper is installed."""
        with git_environment(None) as env:
            assert env["GIT_TERMINAL_PROMPT"] == "0"
            assert "GIT_ASKPASS" not in env

    def test_askpass_answers_prompts(self):
        """Test the helper answers username and password prompts."""
        creds = Credentials("deploy-bot", "s3cret")

        with git_environment(creds) as env:
            script = Path(env["GIT_ASKPASS"])
            assert script.exists()
            assert "s3cret" not in script.read_text()

            child_env = {**os.environ, **env}
            username = subprocess.run(
                [str(script), "Username for 'https://git.example.com': "],
                env=child_env,
                capture_output=True,
                text=True,
                check=True,
            )
            password = subprocess.run(
                [str(script), "Password for 'https://deploy-bot@git.example.com': "],
                env=child_env,
                capture_output=True,
                text=True,
                check=True,
            )

        assert username.stdout.strip() == "deploy-bot"
        assert password.stdout.strip() == "s3cret"
        assert env[USERNAME_VARIABLE] == "deploy-bot"
        assert env[PASSWORD_VARIABLE] == "s3cret"
        assert not script.exists()
