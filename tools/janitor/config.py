"""Settings loading: layered JSON files plus environment overlay."""

import json
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, FrozenSet, List, Mapping, Optional

from shared.logger import get_logger

from .errors import ConfigurationError

logger = get_logger(__name__)

SETTINGS_FILE = "appsettings.json"
ENV_PREFIX = "GIT_JANITOR_"
ENVIRONMENT_VARIABLE = "GIT_JANITOR_ENVIRONMENT"
CREDENTIAL_KEY_VARIABLE = "GIT_JANITOR_CREDENTIAL_KEY"

# Environment variables with the prefix that are not settings keys
RESERVED_VARIABLES = {ENVIRONMENT_VARIABLE, CREDENTIAL_KEY_VARIABLE}

LOG_LEVELS = ("CRITICAL", "ERROR", "WARNING", "INFO", "DEBUG")

TRUE_VALUES = {"true", "1", "yes", "on"}
FALSE_VALUES = {"false", "0", "no", "off", ""}


@dataclass(frozen=True)
class ConfiguredRepository:
    """A repository whose merged remote branches should be pruned."""

    name: str
    url: str
    master_branch_name: str
    ignored_branches: FrozenSet[str] = frozenset()

    def mirror_path(self, base: Path) -> Path:
        """Local path of the bare mirror for this repository."""
        return Path(base) / self.name


@dataclass(frozen=True)
class Settings:
    """Immutable run settings, built once at startup."""

    path_to_repos: Path
    push_deletes_to_remote: bool = False
    slack_webhook: Optional[str] = None
    configured_repositories: List[ConfiguredRepository] = field(default_factory=list)
    log_file: Optional[Path] = None
    log_level: str = "INFO"
    credential_store: Optional[Path] = None


def parse_bool(value: Any, key: str) -> bool:
    """
    Parse a boolean setting.

    Args:
        value: Raw value from JSON or the environment
        key: Setting name, for error messages

    Returns:
        Parsed boolean

    Raises:
        ConfigurationError: If the value is not recognised
    """
    if value is None:
        return False
    if isinstance(value, bool):
        return value
    text = str(value).strip().lower()
    if text in TRUE_VALUES:
        return True
    if text in FALSE_VALUES:
        return False
    raise ConfigurationError(f"Invalid boolean for {key}: {value!r}")


def _read_json(path: Path) -> Dict[str, Any]:
    try:
        with open(path, "r", encoding="utf-8") as f:
            data = json.load(f)
    except json.JSONDecodeError as e:
        raise ConfigurationError(f"Malformed settings file {path}: {e}") from e
    except OSError as e:
        raise ConfigurationError(f"Cannot read settings file {path}: {e}") from e

    if not isinstance(data, dict):
        raise ConfigurationError(f"Settings file {path} must contain a JSON object")

    logger.debug(f"Loaded settings from {path}")
    return data


def _find_key(mapping: Mapping[str, Any], key: str) -> str:
    """Return the existing key matching case-insensitively, or the key itself."""
    for existing in mapping:
        if existing.lower() == key.lower():
            return existing
    return key


def merge_settings(base: Any, override: Any) -> Any:
    """
    Deep-merge two settings trees.

    Objects merge key by key (case-insensitively), lists merge element by
    index, anything else is replaced by the override.
    """
    if override is None:
        return base

    if isinstance(base, dict) and isinstance(override, dict):
        merged = dict(base)
        for key, value in override.items():
            target = _find_key(merged, key)
            merged[target] = merge_settings(merged.get(target), value)
        return merged

    if isinstance(base, list) and isinstance(override, list):
        merged_list = list(base)
        for index, value in enumerate(override):
            if index < len(merged_list):
                merged_list[index] = merge_settings(merged_list[index], value)
            else:
                merged_list.append(value)
        return merged_list

    return override


def _set_path(tree: Dict[str, Any], segments: List[str], value: str, variable: str) -> None:
    """
    Assign a value at a '__'-separated key path, creating containers.

    Raises:
        ConfigurationError: If a list level is addressed with a non-numeric key
    """
    node: Any = tree
    for position, segment in enumerate(segments):
        last = position == len(segments) - 1
        next_is_index = not last and segments[position + 1].isdigit()

        if isinstance(node, list):
            if not segment.isdigit():
                raise ConfigurationError(
                    f"{variable}: '{segment}' is not a list index at this level"
                )
            index = int(segment)
            while len(node) <= index:
                node.append(None)
            if last:
                node[index] = value
            else:
                if not isinstance(node[index], (dict, list)):
                    node[index] = [] if next_is_index else {}
                node = node[index]
            continue

        key = _find_key(node, segment)
        if last:
            node[key] = value
        else:
            if not isinstance(node.get(key), (dict, list)):
                node[key] = [] if next_is_index else {}
            node = node[key]


def environment_overlay(environ: Mapping[str, str]) -> Dict[str, Any]:
    """
    Build a settings tree from GIT_JANITOR_* environment variables.

    GIT_JANITOR_PushDeletesToRemote=true sets a top-level key;
    GIT_JANITOR_ConfiguredRepositories__0__Url sets a nested one.
    """
    overlay: Dict[str, Any] = {}
    for name in sorted(environ):
        if not name.startswith(ENV_PREFIX) or name in RESERVED_VARIABLES:
            continue
        path = name[len(ENV_PREFIX):]
        segments = [s for s in path.split("__") if s]
        if not segments:
            continue
        _set_path(overlay, segments, environ[name], name)
    return overlay


def _lookup(tree: Mapping[str, Any], key: str, default: Any = None) -> Any:
    actual = _find_key(tree, key)
    return tree.get(actual, default)


def _parse_repository(raw: Any, index: int) -> ConfiguredRepository:
    if not isinstance(raw, dict):
        raise ConfigurationError(f"ConfiguredRepositories[{index}] must be an object")

    values = {}
    for key in ("Name", "Url", "MasterBranchName"):
        value = _lookup(raw, key)
        if value is None or not str(value).strip():
            raise ConfigurationError(f"ConfiguredRepositories[{index}] is missing {key}")
        values[key] = str(value).strip()

    name = values["Name"]
    if name in (".", "..") or "/" in name or "\\" in name:
        raise ConfigurationError(f"Repository name cannot be used as a directory: {name!r}")

    ignored = _lookup(raw, "IgnoredBranches") or []
    if isinstance(ignored, str):
        ignored = [part.strip() for part in ignored.split(",")]
    if not isinstance(ignored, list):
        raise ConfigurationError(f"IgnoredBranches of {name} must be a list")

    return ConfiguredRepository(
        name=name,
        url=values["Url"],
        master_branch_name=values["MasterBranchName"],
        ignored_branches=frozenset(str(b) for b in ignored if b),
    )


def build_settings(tree: Mapping[str, Any]) -> Settings:
    """
    Validate a merged settings tree and build Settings from it.

    Raises:
        ConfigurationError: If required keys are missing or values are invalid
    """
    path_to_repos = _lookup(tree, "PathToRepos")
    if not path_to_repos:
        raise ConfigurationError("PathToRepos is not configured")

    raw_repositories = _lookup(tree, "ConfiguredRepositories") or []
    if not isinstance(raw_repositories, list):
        raise ConfigurationError("ConfiguredRepositories must be a list")

    repositories = [
        _parse_repository(raw, index)
        for index, raw in enumerate(raw_repositories)
        if raw is not None
    ]

    seen = set()
    for repository in repositories:
        folded = repository.name.lower()
        if folded in seen:
            raise ConfigurationError(f"Duplicate repository name: {repository.name}")
        seen.add(folded)

    log_level = str(_lookup(tree, "LogLevel") or "INFO").strip().upper()
    if log_level not in LOG_LEVELS:
        raise ConfigurationError(
            f"Invalid LogLevel {log_level!r}, expected one of {', '.join(LOG_LEVELS)}"
        )

    log_file = _lookup(tree, "LogFile")
    credential_store = _lookup(tree, "CredentialStore")
    slack_webhook = _lookup(tree, "SlackWebhook")

    return Settings(
        path_to_repos=Path(str(path_to_repos)).expanduser(),
        push_deletes_to_remote=parse_bool(
            _lookup(tree, "PushDeletesToRemote"), "PushDeletesToRemote"
        ),
        slack_webhook=str(slack_webhook) if slack_webhook else None,
        configured_repositories=repositories,
        log_file=Path(str(log_file)).expanduser() if log_file else None,
        log_level=log_level,
        credential_store=Path(str(credential_store)).expanduser() if credential_store else None,
    )


def load_settings(
    config_dir: Optional[Path] = None,
    environment: Optional[str] = None,
    environ: Optional[Mapping[str, str]] = None,
) -> Settings:
    """
    Load settings from appsettings files and the environment.

    Sources, later ones winning:
    1. appsettings.json
    2. appsettings.<environment>.json
    3. GIT_JANITOR_* environment variables

    Args:
        config_dir: Directory holding the settings files (defaults to cwd)
        environment: Environment name (defaults to GIT_JANITOR_ENVIRONMENT)
        environ: Environment mapping (defaults to os.environ)

    Returns:
        Validated Settings

    Raises:
        ConfigurationError: If settings are missing or malformed
    """
    config_dir = Path(config_dir) if config_dir else Path.cwd()
    environ = os.environ if environ is None else environ
    environment = environment or environ.get(ENVIRONMENT_VARIABLE)

    tree: Dict[str, Any] = {}
    candidates = [config_dir / SETTINGS_FILE]
    if environment:
        candidates.append(config_dir / f"appsettings.{environment}.json")

    for candidate in candidates:
        if candidate.is_file():
            tree = merge_settings(tree, _read_json(candidate))

    tree = merge_settings(tree, environment_overlay(environ))
    settings = build_settings(tree)

    logger.info(
        f"Loaded settings: {len(settings.configured_repositories)} repositories, "
        f"push deletes to remote: {settings.push_deletes_to_remote}"
    )
    return settings
