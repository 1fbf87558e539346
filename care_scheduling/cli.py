"""Command-line interface for Care Scheduling API management"""

import json
from datetime import datetime, timezone
from typing import Optional

import click
import structlog

from care_scheduling.database import SessionLocal, engine, Base
from care_scheduling.errors import SchedulingError
from care_scheduling.services.availability import local_today
from care_scheduling.services.bookability import BookabilityService
from care_scheduling.services.credentialing import CredentialingEngine
from care_scheduling.services.reconciliation import BookabilityHealthService, ReconciliationService
import care_scheduling.models  # noqa: F401

logger = structlog.get_logger()


def _parse_date(value: Optional[str]):
    if value is None:
        return local_today(datetime.now(timezone.utc))
    return datetime.strptime(value, "%Y-%m-%d").date()


@click.group()
def cli():
    """Care Scheduling API Management CLI"""
    pass


@cli.command("init-db")
def init_db():
    """Create all tables (development; use alembic in deployed environments)"""
    Base.metadata.create_all(bind=engine)
    click.echo("✅ Tables created")


@cli.command()
@click.option('--payer-id', '-p', help='Refresh a single payer (default: all payers)')
@click.option('--as-of', help='As-of date YYYY-MM-DD (default: today)')
def refresh(payer_id: Optional[str], as_of: Optional[str]):
    """Re-materialize bookability snapshots"""
    db = SessionLocal()
    try:
        result = BookabilityService(db).refresh(payer_id=payer_id, as_of=_parse_date(as_of))
    except SchedulingError as e:
        click.echo(f"❌ Refresh failed: {e.message}")
        raise SystemExit(1)
    finally:
        db.close()

    click.echo(f"🔄 Refreshed {result['payers_refreshed']} payer(s)")
    click.echo(f"   Entries: {result['entries_processed']}  added: {result['added']}  removed: {result['removed']}")
    if result['errors']:
        click.echo(f"⚠️  Errors: {len(result['errors'])}")
        for error in result['errors']:
            click.echo(f"   - {error['payer_id']}: {error['error']}")
        raise SystemExit(1)


@cli.command()
@click.option('--sample-size', '-n', type=int, help='Number of payers to check')
def reconcile(sample_size: Optional[int]):
    """Compare cached bookability with the live recompute"""
    db = SessionLocal()
    try:
        summary = ReconciliationService(db).check(sample_size=sample_size)
    finally:
        db.close()

    click.echo(f"🔍 Checked {summary['checked']} payer(s): {summary['consistent']} consistent, "
               f"{summary['diverged']} diverged, {summary['stale']} stale, {summary['no_snapshot']} without snapshot")
    for result in summary['results']:
        if result['status'] == 'diverged':
            click.echo(f"❌ {result['payer_id']}: cache={result['cache_count']} live={result['live_count']}")
    if summary['diverged']:
        raise SystemExit(2)


@cli.command("health-report")
@click.option('--date', 'as_of', help='As-of date YYYY-MM-DD (default: today)')
def health_report(as_of: Optional[str]):
    """Print the bookability coverage report as JSON"""
    db = SessionLocal()
    try:
        report = BookabilityHealthService(db).report(_parse_date(as_of))
    finally:
        db.close()
    click.echo(json.dumps(report, indent=2))


@cli.command("instantiate-tasks")
@click.argument('provider_id')
@click.argument('payer_id')
def instantiate_tasks(provider_id: str, payer_id: str):
    """Generate the credentialing checklist for a provider and payer"""
    db = SessionLocal()
    try:
        tasks = CredentialingEngine(db).instantiate_tasks(provider_id, payer_id, today=_parse_date(None))
        click.echo(f"✅ Created {len(tasks)} task(s)")
        for task in tasks:
            due = task.due_date.isoformat() if task.due_date else "-"
            click.echo(f"   {task.task_order:>2}. {task.title} (due {due})")
    except SchedulingError as e:
        click.echo(f"❌ {e.code}: {e.message}")
        raise SystemExit(1)
    finally:
        db.close()


if __name__ == '__main__':
    cli()
