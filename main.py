#!/usr/bin/env python3
"""
PO DatePromised Alert: CLI entry point.

Usage examples:
  python main.py check                              # Verify config, database and SMTP settings
  python main.py run                                # One check, email the report if anything is due
  python main.py run --dry-run                      # Print the report instead of sending it
  python main.py run --threshold 5 --no-overdue     # Override THRESHOLD_DAYS / INCLUDE_OVERDUE
  python main.py run --dry-run --today 2024-06-10   # Classify against a fixed date

  python main.py serve                              # Run on CRON_SCHEDULE
  python main.py serve --cron "0 7 * * 1-5"         # Weekdays at 07:00
  python main.py serve --interval 15                # Every 15 minutes instead of cron
"""
import logging
import sys
from datetime import date, datetime

import click
from dotenv import load_dotenv

from config import Config
from errors import ConfigurationError, DeliveryFailure, SourceUnavailable
from pipeline.database import PurchaseOrderSource
from pipeline.mailer import SmtpMailer
from pipeline.runner import AlertRunner
from pipeline.schedule import build_schedule

EXIT_FAILURE = 1
EXIT_CONFIG_ERROR = 2


def _setup_logging(verbose: bool) -> None:
    level = logging.DEBUG if verbose else logging.INFO
    logging.basicConfig(
        level=level,
        format="%(asctime)s  %(levelname)-8s  %(name)s - %(message)s",
        datefmt="%H:%M:%S",
    )
    # Quieten noisy third-party loggers
    logging.getLogger("sqlalchemy").setLevel(logging.WARNING)
    logging.getLogger("pymssql").setLevel(logging.WARNING)


def _load_config(threshold: int | None = None, no_overdue: bool = False) -> Config:
    """Build and validate Config, applying CLI overrides. Exits 2 on error."""
    config = Config()
    if threshold is not None:
        config.threshold_days = threshold
    if no_overdue:
        config.include_overdue = False
    try:
        config.validate()
    except ConfigurationError as exc:
        click.echo("Configuration error:", err=True)
        for problem in exc.problems:
            click.echo(f"  ✗ {problem}", err=True)
        sys.exit(EXIT_CONFIG_ERROR)
    return config


def _parse_date(ctx: click.Context, param: click.Parameter, value: str | None) -> date | None:
    if value is None:
        return None
    try:
        return datetime.strptime(value, "%Y-%m-%d").date()
    except ValueError:
        raise click.BadParameter(f"expected YYYY-MM-DD, got {value!r}")


@click.group()
@click.option("--verbose", "-v", is_flag=True, help="Enable debug logging")
@click.pass_context
def cli(ctx: click.Context, verbose: bool) -> None:
    """PO DatePromised Alert: email open PO lines that are due soon or overdue."""
    load_dotenv()
    ctx.ensure_object(dict)
    ctx.obj["verbose"] = verbose
    _setup_logging(verbose)


# --------------------------------------------------------------------
# check command
# --------------------------------------------------------------------

@cli.command()
@click.pass_context
def check(ctx: click.Context) -> None:
    """Verify configuration, database connectivity and SMTP settings."""
    config = _load_config()

    click.echo("\n=== PO Alert Setup Check ===\n")
    click.echo(f"  Threshold:       {config.threshold_days} days")
    click.echo(f"  Include overdue: {'yes' if config.include_overdue else 'no'}")
    click.echo(f"  Recipients:      {', '.join(config.recipients)}")
    try:
        click.echo(f"  Schedule:        {build_schedule(config)}")
    except ConfigurationError:
        click.echo("  Schedule:        none (serve needs CRON_SCHEDULE)")
    click.echo()

    source = PurchaseOrderSource(config)
    try:
        status = source.check_connection()
    finally:
        source.close()
    click.echo(f"  PO source:       {config.po_source_name}")
    if status["ok"]:
        click.echo("  Database:        ✓ reachable")
    else:
        click.echo(f"  Database:        ✗ NOT reachable ({status.get('error')})")
        click.echo("  → Check DB_SERVER, DB_DATABASE, DB_USER, DB_PASSWORD in your .env")

    try:
        SmtpMailer(config)
        click.echo(f"  SMTP:            ✓ {config.smtp_host}:{config.smtp_port} as {config.sender}")
        smtp_ok = True
    except ConfigurationError as exc:
        click.echo(f"  SMTP:            ✗ {exc}")
        smtp_ok = False

    click.echo()
    if not (status["ok"] and smtp_ok):
        sys.exit(EXIT_FAILURE)


# --------------------------------------------------------------------
# run command
# --------------------------------------------------------------------

@cli.command()
@click.option("--dry-run", is_flag=True, help="Render the report and print it instead of emailing it")
@click.option("--today", default=None, callback=_parse_date, help="Classify against this date (YYYY-MM-DD)")
@click.option("--threshold", "-t", default=None, type=click.IntRange(min=0), help="Override THRESHOLD_DAYS")
@click.option("--no-overdue", is_flag=True, help="Leave overdue lines out of the report")
@click.pass_context
def run(
    ctx: click.Context,
    dry_run: bool,
    today: date | None,
    threshold: int | None,
    no_overdue: bool,
) -> None:
    """Run one check and email the report if any lines are due."""
    config = _load_config(threshold, no_overdue)
    runner = AlertRunner(config)

    try:
        result = runner.run_once(today=today, dry_run=dry_run)
    except (SourceUnavailable, DeliveryFailure) as exc:
        click.echo(f"\n✗ Run failed: {exc}", err=True)
        sys.exit(EXIT_FAILURE)
    except ConfigurationError as exc:
        # SMTP settings are only checked once there is something to send
        click.echo(f"\n✗ Configuration error: {exc}", err=True)
        sys.exit(EXIT_CONFIG_ERROR)

    click.echo()
    if result.status == "empty":
        click.echo("  ✓ No lines within threshold. Nothing to email.")
    elif result.status == "skipped":
        click.echo("  ⚠  Another run is in progress, skipped.")
    else:
        click.echo(f"  Lines:      {result.line_count}")
        click.echo(f"  POs:        {result.po_count}")
        if result.rejected_count:
            click.echo(f"  Rejected:   {result.rejected_count} (see log)")
        if result.status == "sent":
            click.echo(f"  ✓ Email sent to {', '.join(config.recipients)}")
            click.echo(f"  Message-ID: {result.message_id}")
        else:
            click.echo(f"  Subject:    {result.report.subject}")
            click.echo()
            click.echo(result.report.text_body)
    click.echo()


# --------------------------------------------------------------------
# serve command
# --------------------------------------------------------------------

@cli.command()
@click.option("--cron", default=None, help='Cron expression, e.g. "0 7 * * 1-5" (default: CRON_SCHEDULE env var)')
@click.option(
    "--interval", "-i", default=None, type=click.IntRange(min=1),
    help="Minutes between runs; replaces CRON_SCHEDULE unless --cron is also given",
)
@click.option("--no-run-on-startup", is_flag=True, help="Wait for the first scheduled time before running")
@click.pass_context
def serve(ctx: click.Context, cron: str | None, interval: int | None, no_run_on_startup: bool) -> None:
    """
    Run the check on a schedule until interrupted.

    \b
    A run that is still in progress when the next one is due causes that
    tick to be skipped. Database and SMTP failures are logged and the
    scheduler keeps going.
    """
    config = _load_config()
    if cron is not None:
        config.cron_schedule = cron
    if interval is not None:
        config.schedule_interval_minutes = interval
        if cron is None:
            config.cron_schedule = None
    if no_run_on_startup:
        config.run_on_startup = False

    try:
        schedule = build_schedule(config)
    except ConfigurationError as exc:
        click.echo(f"Configuration error:\n  ✗ {exc}", err=True)
        sys.exit(EXIT_CONFIG_ERROR)

    click.echo(
        f"\n  Source:     {config.po_source_name}\n"
        f"  Schedule:   {schedule}\n"
        f"  Threshold:  {config.threshold_days} days"
        f" ({'including' if config.include_overdue else 'excluding'} overdue)\n"
        f"  Recipients: {', '.join(config.recipients)}\n"
    )
    click.echo("  Press Ctrl-C to stop.\n")

    runner = AlertRunner(config)
    runner.serve(schedule, run_on_startup=config.run_on_startup)


if __name__ == "__main__":
    cli()
