"""Git Janitor - prune fully merged remote branches across a fleet of repositories."""

from .config import ConfiguredRepository, Settings, load_settings
from .outcomes import OutcomeKind, PruneOutcome
from .pruner import Pruner
from .runner import JanitorRunner, RunSummary

__all__ = [
    "ConfiguredRepository",
    "JanitorRunner",
    "OutcomeKind",
    "PruneOutcome",
    "Pruner",
    "RunSummary",
    "Settings",
    "load_settings",
]
