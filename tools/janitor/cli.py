"""CLI interface for Git Janitor."""

import os
import sys
from dataclasses import replace
from pathlib import Path
from typing import Optional

import click

from shared.cli import create_table, error, handle_errors, info, print_table, success, warning
from shared.logger import setup_logger, shutdown_logging

from .config import CREDENTIAL_KEY_VARIABLE, load_settings
from .credentials import CredentialStore, Credentials
from .errors import ConfigurationError
from .outcomes import OutcomeKind
from .runner import JanitorRunner, RepositoryStatus, RunSummary

LOGGER_NAME = "janitor"

OUTCOME_STYLES = {
    OutcomeKind.DELETED: "green",
    OutcomeKind.DRY_RUN_SKIPPED: "cyan",
    OutcomeKind.PUSH_FAILED: "red",
    OutcomeKind.NOTIFICATION_MISMATCH: "red",
}


def display_summary(summary: RunSummary) -> None:
    """
    Display run results in a table.

    Args:
        summary: Result of the run
    """
    table = create_table(title="Prune Results")
    table.add_column("Repository", style="cyan")
    table.add_column("Branch")
    table.add_column("Commit", style="dim")
    table.add_column("Outcome")

    for report in summary.reports:
        if report.status is RepositoryStatus.FAILED:
            table.add_row(report.name, "-", "-", f"[red]failed: {report.error}[/red]")
            continue
        if report.status is RepositoryStatus.SKIPPED:
            table.add_row(report.name, "-", "-", "[yellow]skipped: master not found[/yellow]")
            continue
        if not report.outcomes:
            table.add_row(report.name, "-", "-", "[dim]nothing to prune[/dim]")
        for outcome in report.outcomes:
            style = OUTCOME_STYLES[outcome.kind]
            table.add_row(
                report.name,
                outcome.branch,
                outcome.short_sha,
                f"[{style}]{outcome.kind.value}[/{style}]",
            )

    print_table(table)


@click.group()
def main() -> None:
    """Git Janitor - prune fully merged remote branches across many repositories."""
    pass


@main.command()
@click.option(
    "--config-dir",
    "-c",
    type=click.Path(exists=True, file_okay=False, dir_okay=True, path_type=Path),
    help="Directory containing appsettings.json (defaults to current directory)",
)
@click.option(
    "--environment",
    "-e",
    help="Environment name; loads appsettings.<environment>.json on top",
)
@click.option(
    "--dry-run",
    is_flag=True,
    help="Never push deletions, whatever PushDeletesToRemote says",
)
@click.option("--verbose", "-v", is_flag=True, help="Verbose output")
@handle_errors
def run(
    config_dir: Optional[Path],
    environment: Optional[str],
    dry_run: bool,
    verbose: bool,
) -> None:
    """
    Prune merged remote branches in every configured repository.

    Examples:

        \b
        # Use ./appsettings.json
        git-janitor run

        \b
        # Production settings, but only report what would be deleted
        git-janitor run --environment Production --dry-run
    """
    setup_logger(LOGGER_NAME, level="DEBUG" if verbose else "INFO")

    try:
        settings = load_settings(config_dir=config_dir, environment=environment)
        setup_logger(
            LOGGER_NAME,
            level="DEBUG" if verbose else settings.log_level,
            log_file=settings.log_file,
        )

        if dry_run and settings.push_deletes_to_remote:
            settings = replace(settings, push_deletes_to_remote=False)

        credentials = CredentialStore(settings.credential_store).load()

        info(f"Starting run over {len(settings.configured_repositories)} repositories")
        if not settings.push_deletes_to_remote:
            warning("Dry run: no branches will be deleted on remotes")

        summary = JanitorRunner(settings, credentials).run()
    except ConfigurationError as e:
        error(f"Configuration error: {e}")
        sys.exit(2)
    finally:
        shutdown_logging(LOGGER_NAME)

    display_summary(summary)

    counts = summary.counts
    failed_branches = counts[OutcomeKind.PUSH_FAILED] + counts[OutcomeKind.NOTIFICATION_MISMATCH]
    info(f"\nSummary:")
    info(f"  Deleted: {counts[OutcomeKind.DELETED]}")
    info(f"  Dry run: {counts[OutcomeKind.DRY_RUN_SKIPPED]}")
    if failed_branches:
        warning(f"  Failed deletions: {failed_branches}")
    if summary.failed_repositories:
        warning(f"  Failed repositories: {len(summary.failed_repositories)}")

    success("Run completed")


@main.command("store-credentials")
@click.option("--username", "-u", required=True, help="Git username")
@click.option(
    "--password",
    "-p",
    prompt=True,
    hide_input=True,
    help="Git password or access token",
)
@click.option(
    "--store",
    type=click.Path(dir_okay=False, path_type=Path),
    help="Credential store file (defaults to ~/.config/git-janitor/git-janitor.cred)",
)
@handle_errors
def store_credentials(username: str, password: str, store: Optional[Path]) -> None:
    """
    Save the git credentials used for fetch and push, encrypted.

    The passphrase is read from GIT_JANITOR_CREDENTIAL_KEY, or prompted for.
    """
    passphrase = os.environ.get(CREDENTIAL_KEY_VARIABLE) or click.prompt(
        "Store passphrase", hide_input=True, confirmation_prompt=True
    )

    path = CredentialStore(store, passphrase).save(Credentials(username, password))
    success(f"Credentials stored in {path}")
    info(f"Set {CREDENTIAL_KEY_VARIABLE} for runs to be able to read them")


if __name__ == "__main__":
    main()
