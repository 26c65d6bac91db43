"""Operator CLI for the milestone tracker."""

from __future__ import annotations

import asyncio
import os
import uuid

import click


def run_async(coro):
    """Run an async function in a new event loop."""
    return asyncio.run(coro)


def _parse_uuid(value: str, label: str) -> uuid.UUID:
    try:
        return uuid.UUID(value)
    except ValueError:
        raise click.BadParameter(f"{label} must be a UUID, got {value!r}") from None


@click.group()
def cli():
    """Milestone tracker administration CLI."""
    pass


# --- Setup ---


@cli.command()
def setup():
    """Run database migrations."""
    click.echo("Running database migrations...")
    _run_migrations()
    click.echo("Setup complete.")


def _run_migrations():
    """Run Alembic migrations using the Python API."""
    from alembic import command
    from alembic.config import Config

    # Look for alembic.ini in /app (Docker) or alongside this script (local)
    for candidate in ["/app/alembic.ini", os.path.join(os.path.dirname(__file__), "alembic.ini")]:
        if os.path.exists(candidate):
            alembic_cfg = Config(candidate)
            script_dir = os.path.join(os.path.dirname(candidate), "alembic")
            if os.path.isdir(script_dir):
                alembic_cfg.set_main_option("script_location", script_dir)
            db_url = os.environ.get("DATABASE_URL")
            if db_url:
                alembic_cfg.set_main_option("sqlalchemy.url", db_url)
            command.upgrade(alembic_cfg, "head")
            return

    click.echo("  Warning: alembic.ini not found, skipping migrations.")


# --- Progress ---


@cli.group()
def progress():
    """Milestone progress commands."""
    pass


@progress.command("refresh")
@click.option("--milestone-id", default=None, help="Recompute a single milestone")
@click.option("--booking-id", default=None, help="Recompute every milestone of a booking")
@click.option("--no-sync", is_flag=True, help="Skip the booking progress notification")
def refresh(milestone_id, booking_id, no_sync):
    """Recompute milestone totals, progress and status from their tasks."""
    if bool(milestone_id) == bool(booking_id):
        click.echo("Error: Pass exactly one of --milestone-id or --booking-id.")
        return
    run_async(_refresh(milestone_id, booking_id, no_sync))


async def _refresh(milestone_id, booking_id, no_sync):
    from modules.milestones.aggregator import MilestoneAggregator
    from modules.milestones.sync import BookingProgressSync, _background_tasks
    from shared.database import dispose_engine, get_session_factory
    from shared.errors import TrackerError

    sync = None if no_sync else BookingProgressSync()
    aggregator = MilestoneAggregator(get_session_factory(), sync)
    try:
        if milestone_id:
            milestones = [await aggregator.recompute(_parse_uuid(milestone_id, "milestone-id"))]
        else:
            milestones = await aggregator.recompute_booking(_parse_uuid(booking_id, "booking-id"))
    except TrackerError as e:
        click.echo(f"Error: {e}")
        return
    finally:
        await dispose_engine()

    if not milestones:
        click.echo("No milestones found.")
    for m in milestones:
        click.echo(
            f"{m.id} | {m.title} | {m.status} | {m.progress_percentage}% "
            f"({m.completed_tasks}/{m.total_tasks} tasks)"
        )

    # Let in-flight booking syncs finish before the loop closes
    if _background_tasks:
        await asyncio.gather(*_background_tasks, return_exceptions=True)


@progress.command("overview")
@click.option("--booking-id", required=True, help="Booking ID")
def overview(booking_id):
    """Show a booking's milestones and its weighted overall progress."""
    run_async(_overview(booking_id))


async def _overview(booking_id):
    from modules.milestones.tools import MilestoneTrackerTools
    from shared.database import dispose_engine, get_session_factory
    from shared.errors import TrackerError

    tools = MilestoneTrackerTools(get_session_factory())
    try:
        data = await tools.list_milestones(booking_id)
        summary = await tools.get_progress_summary(booking_id)
    except TrackerError as e:
        click.echo(f"Error: {e}")
        return
    finally:
        await dispose_engine()

    click.echo(f"Booking {booking_id}: {data['overall_progress']}% overall")
    for m in data["milestones"]:
        click.echo(
            f"  {m['title']} [{m['status']}] {m['progress_percentage']}% "
            f"weight={m['weight']} tasks={m['completed_tasks']}/{m['total_tasks']}"
        )
        for t in m["tasks"]:
            flags = " OVERDUE" if t["is_overdue"] else ""
            click.echo(
                f"    - {t['title']} [{t['status']}] {t['progress_percentage']}% "
                f"approval={t['client_approval']}{flags}"
            )
    click.echo(
        f"Overdue tasks: {summary['overdue_tasks']} | "
        f"hours: {summary['total_actual_hours']}/{summary['total_estimated_hours']}"
    )


if __name__ == "__main__":
    cli()
