"""CLI tools for ticketdesk operations."""

import json
import logging

import click

from ticketdesk.db.enums import RunOutcome, SyncSource
from ticketdesk.db.session import SessionLocal
from ticketdesk.services import dedupe_service, run_coordinator, sync_log_service


@click.group()
@click.option("--verbose", is_flag=True, help="Log at DEBUG level")
def cli(verbose: bool):
    """Ticketdesk CLI tools."""
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


@cli.command()
@click.option("--apply", "apply_changes", is_flag=True, help="Delete the duplicates (default is a dry run)")
def dedupe_tickets(apply_changes: bool):
    """
    Find and remove duplicate tickets.

    Dry run by default: prints the plan summary only.

    Example:
        python -m ticketdesk.cli dedupe-tickets --apply
    """
    db = SessionLocal()
    try:
        plan = dedupe_service.build_plan(db)
        click.echo(json.dumps(plan.summary(), indent=2))

        if not apply_changes:
            click.echo("Dry run. Use --apply to delete duplicates.")
            return
        deleted = dedupe_service.apply_plan(db, plan)
        if plan.to_delete:
            click.echo(f"Deleted {deleted} duplicate tickets.")
        else:
            click.echo("No duplicates to delete.")
    except Exception as e:
        db.rollback()
        raise click.ClickException(str(e)) from e
    finally:
        db.close()


@cli.command()
@click.option("--actor", default=None, help="Email recorded as the run's initiator")
def run_ingestion(actor: str | None):
    """
    Run one mailbox ingestion pass now.

    Example:
        python -m ticketdesk.cli run-ingestion --actor "ops@vendora.se"
    """
    try:
        result = run_coordinator.run_ingestion(
            SyncSource.MANUAL, actor_email=actor, session_factory=SessionLocal
        )
    except Exception as e:
        raise click.ClickException(str(e)) from e

    click.echo(json.dumps({"outcome": result.outcome.value, **result.details}, indent=2, default=str))
    if result.outcome == RunOutcome.FAILED:
        raise SystemExit(1)


@cli.command()
def latest_run():
    """Print the most recent ingestion run from the audit log."""
    db = SessionLocal()
    try:
        entry = sync_log_service.get_latest_run(db)
        if entry is None:
            click.echo("No ingestion runs recorded.")
            return
        click.echo(json.dumps(sync_log_service.serialize_run(entry), indent=2, default=str))
    finally:
        db.close()


if __name__ == "__main__":
    cli()
