# commands.py

import click
from flask import current_app
from flask.cli import with_appcontext
from utils.datetime_utils import parse_utc_iso


def _now_option(value):
    return parse_utc_iso(value) if value else None


@click.command('process-touches')
@click.option('--limit', default=200, show_default=True, help='Most enrollments to process')
@click.option('--now', 'now_str', default=None, help='Pretend the current time is this ISO timestamp')
@with_appcontext
def process_touches(limit, now_str):
    """Fire campaign touches that are due"""
    stats = current_app.services.get('enrollment').process_due_touches(now=_now_option(now_str), limit=limit)
    click.echo(
        f"Processed {stats['processed']} enrollments: {stats['sent']} sent, {stats['skipped']} skipped, "
        f"{stats['failed']} failed, {stats['deferred']} deferred"
    )


@click.command('process-scheduled-sends')
@click.option('--now', 'now_str', default=None, help='Pretend the current time is this ISO timestamp')
@with_appcontext
def process_scheduled_sends(now_str):
    """Run scheduled sends that are due"""
    stats = current_app.services.get('scheduled_send').process_due(now=_now_option(now_str))
    click.echo(f"Processed {stats['processed']} scheduled sends: "
               f"{stats['completed']} completed, {stats['failed']} failed")


@click.command('resolve-conflicts')
@with_appcontext
def resolve_conflicts():
    """Enroll ended queue_after jobs and auto-resolve stale conflicts"""
    enrollment_service = current_app.services.get('enrollment')
    queued = enrollment_service.process_queued_jobs()
    conflicts = enrollment_service.auto_resolve_stale_conflicts()
    click.echo(f"Queued jobs enrolled: {queued['enrolled']}; conflicts replaced: {conflicts['replaced']}")


@click.command('seed-presets')
@click.option('--account-id', type=int, required=True, help='Account to create the campaign for')
@click.option('--preset', 'preset_ids', multiple=True, default=('standard',), show_default=True,
              help='Preset to create; repeat for several')
@click.option('--service-type', default=None, help='Service type the campaigns apply to (default: all)')
@with_appcontext
def seed_presets(account_id, preset_ids, service_type):
    """Create campaigns from the built-in presets"""
    campaign_service = current_app.services.get('campaign')
    for preset_id in preset_ids:
        result = campaign_service.create_from_preset(account_id, preset_id, service_type=service_type)
        if result.is_success:
            click.echo(f"Created campaign {result.data.id} from preset '{preset_id}'")
        else:
            click.echo(f"Failed to create '{preset_id}': {result.error}", err=True)


def init_app(app):
    """Register commands with the Flask app"""
    app.cli.add_command(process_touches)
    app.cli.add_command(process_scheduled_sends)
    app.cli.add_command(resolve_conflicts)
    app.cli.add_command(seed_presets)
