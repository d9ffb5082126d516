"""Credential storage and git authentication environment."""

import base64
import json
import os
import stat
import tempfile
from contextlib import contextmanager
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, Iterator, Optional

from cryptography.fernet import Fernet, InvalidToken
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.kdf.pbkdf2 import PBKDF2HMAC

from shared.logger import get_logger

from .config import CREDENTIAL_KEY_VARIABLE
from .errors import ConfigurationError

logger = get_logger(__name__)

APPLICATION_ID = "git-janitor"
DEFAULT_STORE_PATH = Path.home() / ".config" / APPLICATION_ID / f"{APPLICATION_ID}.cred"

# Names of the child-process variables the askpass helper reads
USERNAME_VARIABLE = "GIT_JANITOR_ASKPASS_USERNAME"
PASSWORD_VARIABLE = "GIT_JANITOR_ASKPASS_PASSWORD"

ASKPASS_SCRIPT = f"""#!/bin/sh
case "$1" in
    Username*) printf '%s\\n' "${USERNAME_VARIABLE}" ;;
    *) printf '%s\\n' "${PASSWORD_VARIABLE}" ;;
esac
"""


@dataclass(frozen=True)
class Credentials:
    """Username/password pair for authenticating to remotes."""

    username: str
    password: str = field(repr=False)


class CredentialStore:
    """
    Encrypted on-disk store holding the single credential for this application.

    The file holds Fernet-encrypted JSON. The key is derived from a
    passphrase (GIT_JANITOR_CREDENTIAL_KEY) with PBKDF2.
    """

    def __init__(self, path: Optional[Path] = None, passphrase: Optional[str] = None):
        """
        Initialize credential store.

        Args:
            path: Store file (defaults to ~/.config/git-janitor/git-janitor.cred)
            passphrase: Encryption passphrase (defaults to GIT_JANITOR_CREDENTIAL_KEY)
        """
        self.path = Path(path) if path else DEFAULT_STORE_PATH
        self.passphrase = passphrase if passphrase is not None else os.environ.get(CREDENTIAL_KEY_VARIABLE)

    def _fernet(self) -> Fernet:
        kdf = PBKDF2HMAC(
            algorithm=hashes.SHA256(),
            length=32,
            salt=f"{APPLICATION_ID}-credential-store".encode(),
            iterations=100000,
        )
        key = base64.urlsafe_b64encode(kdf.derive(self.passphrase.encode()))
        return Fernet(key)

    def load(self) -> Optional[Credentials]:
        """
        Load the stored credential.

        Returns:
            Credentials, or None if nothing is stored or no passphrase is set

        Raises:
            ConfigurationError: If the store cannot be decrypted or parsed
        """
        if not self.path.exists():
            logger.warning(f"No stored credentials at {self.path}, continuing without")
            return None

        if not self.passphrase:
            logger.warning(f"{CREDENTIAL_KEY_VARIABLE} is not set, continuing without credentials")
            return None

        with open(self.path, "rb") as f:
            encrypted = f.read()

        try:
            payload = json.loads(self._fernet().decrypt(encrypted))
            credentials = Credentials(
                username=payload["username"], password=payload["password"]
            )
        except InvalidToken as e:
            raise ConfigurationError(
                f"Cannot decrypt credential store {self.path}. Wrong passphrase?"
            ) from e
        except (ValueError, KeyError, TypeError) as e:
            raise ConfigurationError(f"Credential store {self.path} is corrupt") from e

        logger.debug(f"Loaded credentials for {credentials.username}")
        return credentials

    def save(self, credentials: Credentials) -> Path:
        """
        Encrypt and write the credential, readable by the owner only.

        Raises:
            ConfigurationError: If no passphrase is available
        """
        if not self.passphrase:
            raise ConfigurationError(f"{CREDENTIAL_KEY_VARIABLE} must be set to store credentials")

        payload = json.dumps(
            {"username": credentials.username, "password": credentials.password}
        ).encode()
        encrypted = self._fernet().encrypt(payload)

        self.path.parent.mkdir(parents=True, exist_ok=True)
        fd = os.open(self.path, os.O_WRONLY | os.O_CREAT | os.O_TRUNC, 0o600)
        with os.fdopen(fd, "wb") as f:
            f.write(encrypted)

        logger.info(f"Stored credentials for {credentials.username} in {self.path}")
        return self.path


@contextmanager
def git_environment(credentials: Optional[Credentials]) -> Iterator[Dict[str, str]]:
    """
    Environment for git subprocesses that never prompts interactively.

    With credentials, a temporary GIT_ASKPASS helper answers git's
    username/password prompts from variables set on the child process only.
    The helper script itself holds no secret.

    Yields:
        Environment variables to pass to git
    """
    env = {"GIT_TERMINAL_PROMPT": "0", "GCM_INTERACTIVE": "never"}

    if credentials is None:
        yield env
        return

    fd, script = tempfile.mkstemp(prefix=f"{APPLICATION_ID}-askpass-", suffix=".sh")
    try:
        with os.fdopen(fd, "w") as f:
            f.write(ASKPASS_SCRIPT)
        os.chmod(script, stat.S_IRWXU)

        env.update(
            {
                "GIT_ASKPASS": script,
                USERNAME_VARIABLE: credentials.username,
                PASSWORD_VARIABLE: credentials.password,
            }
        )
        yield env
    finally:
        os.unlink(script)
