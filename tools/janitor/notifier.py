"""Outcome notifications: log lines and Slack webhook messages."""

from typing import Optional, Protocol

import requests

from shared.logger import get_logger

from .config import Settings
from .outcomes import OutcomeKind, PruneOutcome

logger = get_logger(__name__)


def describe(outcome: PruneOutcome, repo_name: str) -> str:
    """Format '<repo> => <branch> => <sha7>'."""
    return f"{repo_name} => {outcome.branch} => {outcome.short_sha}"


class Notifier(Protocol):
    """Receives prune outcomes. Implementations must never raise."""

    def notify(self, outcome: PruneOutcome, repo_name: str) -> None:
        ...


class LogNotifier:
    """Writes each outcome to the log."""

    def notify(self, outcome: PruneOutcome, repo_name: str) -> None:
        line = describe(outcome, repo_name)
        if outcome.kind is OutcomeKind.DELETED:
            logger.info(f"Deleted {line}")
        elif outcome.kind is OutcomeKind.DRY_RUN_SKIPPED:
            logger.info(f"Would delete (dry run) {line}")
        elif outcome.kind is OutcomeKind.PUSH_FAILED:
            logger.error(f"Error pushing deletion of {line}: {outcome.reason}")
        else:
            logger.error(f"Delete failed for {line}: {outcome.reason}")


class SlackNotifier(LogNotifier):
    """
    Logs each outcome and posts deletions and failures to a Slack webhook.

    Dry-run outcomes are logged only. Delivery failures are logged and
    never propagate to the caller.
    """

    def __init__(
        self,
        webhook_url: str,
        session: Optional[requests.Session] = None,
        timeout: float = 10.0,
    ):
        """
        Initialize Slack notifier.

        Args:
            webhook_url: Incoming webhook URL
            session: HTTP session (defaults to a new requests.Session)
            timeout: Request timeout in seconds
        """
        self.webhook_url = webhook_url
        self.session = session or requests.Session()
        self.timeout = timeout

    def message(self, outcome: PruneOutcome, repo_name: str) -> Optional[str]:
        """Slack text for an outcome, or None if it is not posted."""
        line = describe(outcome, repo_name)
        if outcome.kind is OutcomeKind.DELETED:
            return f"`{line}`"
        if outcome.is_failure:
            return f":warning: Delete failed for `{line}`: {outcome.reason}"
        return None

    def notify(self, outcome: PruneOutcome, repo_name: str) -> None:
        super().notify(outcome, repo_name)

        text = self.message(outcome, repo_name)
        if text is None:
            return

        try:
            response = self.session.post(
                self.webhook_url, json={"text": text}, timeout=self.timeout
            )
            response.raise_for_status()
        except requests.RequestException as e:
            logger.error(f"Slack notification failed for {describe(outcome, repo_name)}: {e}")
            return

        logger.debug(f"Posted Slack notification for {describe(outcome, repo_name)}")


def build_notifier(settings: Settings) -> Notifier:
    """Slack notifier when a webhook is configured, log-only otherwise."""
    if settings.slack_webhook:
        return SlackNotifier(settings.slack_webhook)
    logger.debug("No SlackWebhook configured, notifications go to the log only")
    return LogNotifier()
