# ABOUTME: Main CLI application entry point using asyncclick for native async support
# ABOUTME: Provides stage workers, message submission and job/channel inspection commands

import asyncio
import hashlib
import signal
import uuid
from contextlib import asynccontextmanager
from pathlib import Path

import asyncclick as click
from rich.console import Console
from rich.panel import Panel

from rpa_pipeline.config import Config, get_config
from rpa_pipeline.core.context import AppContext
from rpa_pipeline.core.execution import ExecutionService
from rpa_pipeline.core.handlers import build_default_registry
from rpa_pipeline.core.ingestion import IngestionService
from rpa_pipeline.core.models import ExecutionRequest, InboundMessage, JobNotification, JobStatus
from rpa_pipeline.core.notification import ConsoleNotifier, NotificationService
from rpa_pipeline.extraction import Classifier
from rpa_pipeline.queue import DEAD_LETTER, JOB_EXECUTION, NOTIFICATIONS, RAW_INGESTION
from rpa_pipeline.utils.logging import (
    LoggingMode,
    configure_logging,
    get_logging_status,
    with_pipeline_context,
)
from rpa_pipeline.utils.retry import get_transport_retry_status
from rpa_pipeline.utils.rich_tables import (
    create_classification_table,
    create_dead_letter_table,
    create_job_status_table,
    create_jobs_table,
    create_logging_status_table,
    create_retry_status_table,
    print_rich_table,
)
from rpa_pipeline.workflow import (
    ConnectivityCheck,
    DryRunSessionFactory,
    SessionFactory,
    WorkflowEngine,
    build_estimation_workflow,
    build_job_card_workflow,
)

console = Console()


HEADER_NAMES = ("subject", "from", "to", "message-id")


def read_message_file(path: Path, subject: str | None = None, sender: str | None = None) -> InboundMessage:
    """Parse a saved message into an InboundMessage.

    Leading Subject/From/To/Message-ID lines are headers, ended by a blank
    line; everything after is the body. Without a Message-ID the id is
    derived from the content so resubmitting the same file is a no-op.
    """
    text = path.read_text(encoding="utf-8")
    lines = text.splitlines()
    headers: dict[str, str] = {}
    body_start = len(lines)
    for index, line in enumerate(lines):
        name, separator, value = line.partition(":")
        if not separator or name.strip().lower() not in HEADER_NAMES:
            body_start = index
            break
        headers[name.strip().lower()] = value.strip()

    body_lines = lines[body_start:]
    if headers and body_lines and not body_lines[0].strip():
        body_lines = body_lines[1:]

    recipients = [addr.strip() for addr in headers.get("to", "").split(",") if addr.strip()]
    message_id = headers.get("message-id") or hashlib.sha256(text.encode("utf-8")).hexdigest()
    return InboundMessage(
        message_id=message_id,
        subject=subject if subject is not None else headers.get("subject", ""),
        sender=sender if sender is not None else headers.get("from", ""),
        body="\n".join(body_lines),
        recipients=recipients,
    )


@asynccontextmanager
async def _app_context(config: Config | None = None):
    ctx = AppContext.from_config(config or get_config())
    await ctx.start()
    try:
        yield ctx
    finally:
        await ctx.close()


def _install_signal_handlers(*events: asyncio.Event) -> None:
    """SIGINT/SIGTERM set the given events so workers wind down cleanly."""
    loop = asyncio.get_running_loop()

    def _stop() -> None:
        console.print("[yellow]⏹️ Stopping after the current message...[/yellow]")
        for event in events:
            event.set()

    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(sig, _stop)
        except (NotImplementedError, RuntimeError):
            # Not supported on this platform or loop
            pass


def _build_session_factory(config: Config, dry_run: bool) -> SessionFactory:
    if dry_run:
        return DryRunSessionFactory(config.erp_base_url)

    from rpa_pipeline.workflow.playwright_session import PlaywrightSessionFactory

    return PlaywrightSessionFactory(
        config.erp_base_url,
        headless=config.browser_headless,
        slow_mo_ms=config.browser_slow_mo_ms,
        timeout_ms=config.browser_timeout_ms,
    )


def build_execution_service(
    ctx: AppContext, session_factory: SessionFactory, cancel_event: asyncio.Event | None = None
) -> ExecutionService:
    config = ctx.config
    estimation_engine = WorkflowEngine(
        session_factory,
        step_delay=config.step_delay_seconds,
        preflight=ConnectivityCheck(config.erp_alternative_urls, config.connectivity_timeout_seconds),
        screenshot_dir=config.screenshot_dir,
    )
    job_card_engine = WorkflowEngine(
        session_factory, step_delay=config.step_delay_seconds, screenshot_dir=config.screenshot_dir
    )
    registry = build_default_registry(
        estimation_engine,
        build_estimation_workflow(config.erp_financial_year),
        build_job_card_workflow(),
        job_card_engine=job_card_engine,
    )
    return ExecutionService(ctx, registry, cancel_event)


@click.command()
@click.argument("message_file", type=click.Path(exists=True, dir_okay=False, path_type=Path))
@click.option("--subject", help="Override the subject read from the file")
@click.pass_context
async def classify(ctx, message_file: Path, subject: str | None):
    """
    🏷️ Classify a saved message without creating a job.
    """
    message = read_message_file(message_file, subject=subject)
    result = Classifier().classify(message.subject, message.body)

    if ctx.obj["json_output"]:
        click.echo(result.model_dump_json())
        return
    print_rich_table(console, create_classification_table(result))


@click.command()
@click.argument("message_file", type=click.Path(exists=True, dir_okay=False, path_type=Path))
@click.option("--subject", help="Override the subject read from the file")
@click.option("--sender", help="Override the sender read from the file")
@click.pass_context
async def submit(ctx, message_file: Path, subject: str | None, sender: str | None):
    """
    📨 Publish a saved message to the raw-ingestion channel.
    """
    message = read_message_file(message_file, subject=subject, sender=sender)
    async with _app_context() as app_ctx:
        message_id = await app_ctx.broker.publish(RAW_INGESTION, message)

    if ctx.obj["json_output"]:
        click.echo(message_id)
        return
    console.print(f"✅ Submitted [bold]{message.subject or '(no subject)'}[/bold] as message [cyan]{message_id}[/cyan]")


async def _run_worker(channel: str, handler, model, once: bool, stop_event: asyncio.Event, ctx: AppContext) -> int:
    with with_pipeline_context(channel) as logger:
        handled = await ctx.broker.consume(
            channel, handler, model, stop_event=stop_event, max_messages=1 if once else None
        )
        logger.info("Worker finished", handled=handled)
    return handled


@click.command(name="ingest-worker")
@click.option("--once", is_flag=True, help="Handle at most one message, then exit")
async def ingest_worker(once: bool):
    """
    📥 Turn raw inbound messages into jobs.
    """
    stop_event = asyncio.Event()
    _install_signal_handlers(stop_event)
    async with _app_context() as ctx:
        service = IngestionService(ctx)
        handled = await _run_worker(RAW_INGESTION, service.handle, InboundMessage, once, stop_event, ctx)
    console.print(f"📥 Ingested {handled} message(s)")


@click.command(name="execution-worker")
@click.option("--once", is_flag=True, help="Handle at most one message, then exit")
@click.option("--dry-run", is_flag=True, help="Record automation actions instead of driving a browser")
async def execution_worker(once: bool, dry_run: bool):
    """
    ⚙️ Run queued jobs through their automation workflows.

    Live runs need the browser extra (pip install 'rpa-pipeline[browser]').
    """
    stop_event = asyncio.Event()
    cancel_event = asyncio.Event()
    _install_signal_handlers(stop_event, cancel_event)
    async with _app_context() as ctx:
        service = build_execution_service(ctx, _build_session_factory(ctx.config, dry_run), cancel_event)
        handled = await _run_worker(JOB_EXECUTION, service.handle, ExecutionRequest, once, stop_event, ctx)
    console.print(f"⚙️ Executed {handled} job request(s)")


@click.command(name="notification-worker")
@click.option("--once", is_flag=True, help="Handle at most one message, then exit")
async def notification_worker(once: bool):
    """
    📬 Deliver job outcome notifications.
    """
    stop_event = asyncio.Event()
    _install_signal_handlers(stop_event)
    async with _app_context() as ctx:
        service = NotificationService(ConsoleNotifier(console))
        handled = await _run_worker(NOTIFICATIONS, service.handle, JobNotification, once, stop_event, ctx)
    console.print(f"📬 Delivered {handled} notification(s)")


@click.command(name="job-status")
@click.argument("job_id", type=click.UUID)
@click.pass_context
async def job_status(ctx, job_id: uuid.UUID):
    """
    📋 Show a job's lifecycle state and last result.
    """
    async with _app_context() as app_ctx:
        job = await app_ctx.db.get_job(job_id)

    if job is None:
        console.print(f"[red]❌ No job with id {job_id}[/red]")
        ctx.exit(1)
        return
    if ctx.obj["json_output"]:
        click.echo(job.model_dump_json(exclude={"body", "extracted_credentials", "payload_json"}))
        return
    print_rich_table(console, create_job_status_table(job))


@click.command()
@click.option(
    "--status",
    type=click.Choice([s.value for s in JobStatus]),
    help="Only show jobs in this state",
)
@click.option("--limit", default=20, show_default=True, help="Maximum number of jobs to list")
async def jobs(status: str | None, limit: int):
    """
    🗂️ List recent jobs.
    """
    async with _app_context() as ctx:
        rows = await ctx.db.list_jobs(JobStatus(status) if status else None, limit=limit)
        summary = await ctx.db.job_summary()

    if not rows:
        console.print("[yellow]No jobs found.[/yellow]")
        return
    print_rich_table(console, create_jobs_table(rows, summary))


@click.command(name="dead-letters")
@click.option("--limit", default=50, show_default=True, help="Maximum number of messages to list")
async def dead_letters(limit: int):
    """
    ☠️ Show messages that could not be processed.
    """
    async with _app_context() as ctx:
        envelopes = await ctx.broker.dead_letters(limit)
        depth = await ctx.broker.depth(DEAD_LETTER)

    if not envelopes:
        console.print("[green]✅ Dead-letter channel is empty.[/green]")
        return
    print_rich_table(console, create_dead_letter_table(envelopes))
    console.print(f"[dim]{depth} message(s) in {DEAD_LETTER}[/dim]")


def _initialize_logging(json_output: bool, log_level: str | None = None, log_file: str | None = None) -> None:
    """Initialize logging configuration."""
    try:
        config = get_config()
        mode = LoggingMode.PRODUCTION if json_output else LoggingMode.INTERACTIVE

        final_log_level = log_level or config.log_level
        final_log_file = log_file or (str(config.log_file) if config.log_file else None)

        configure_logging(mode=mode, log_level=final_log_level, log_file=final_log_file)
    except (FileNotFoundError, PermissionError, OSError):
        # Log directory not writable; fall back to stdout-only logging
        configure_logging(mode=LoggingMode.PRODUCTION, log_level=log_level or "INFO", log_file=None)


@click.command(name="logging-status")
def logging_status():
    """
    📊 Show current logging and transport retry configuration.
    """
    status = get_logging_status()
    print_rich_table(console, create_logging_status_table(status))
    print_rich_table(console, create_retry_status_table(get_transport_retry_status()))


@click.group(invoke_without_command=True)
@click.option("--json", is_flag=True, help="Output structured JSON logs instead of rich interface")
@click.option("--log-level", default=None, help="Logging level (DEBUG, INFO, WARNING, ERROR)")
@click.option("--log-file", help="Custom log file path")
@click.pass_context
def app(ctx, json: bool, log_level: str | None, log_file: str | None):
    """
    🤖 RPA Pipeline - email requests to automated ERP jobs

    Classifies inbound requests, extracts their data, and runs them through
    durable ingestion, execution and notification stages.
    """
    ctx.ensure_object(dict)
    ctx.obj["json_output"] = json

    _initialize_logging(json, log_level, log_file)

    if ctx.invoked_subcommand is None:
        console.print(Panel.fit("🤖 [bold cyan]RPA Pipeline[/bold cyan]", border_style="magenta"))
        click.echo(ctx.get_help())


app.add_command(classify)
app.add_command(submit)
app.add_command(ingest_worker)
app.add_command(execution_worker)
app.add_command(notification_worker)
app.add_command(job_status)
app.add_command(jobs)
app.add_command(dead_letters)
app.add_command(logging_status)


if __name__ == "__main__":
    app()
