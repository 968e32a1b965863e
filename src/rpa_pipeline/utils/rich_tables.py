# ABOUTME: Rich table utilities for job, classification, channel and logging displays
# ABOUTME: Pre-configured key-value and multi-column table builders used by the CLI

from typing import Any

from rich.box import ROUNDED, SIMPLE
from rich.console import Console
from rich.table import Table

from rpa_pipeline.core.models import ClassificationResult, JobStatus, WorkflowRunData
from rpa_pipeline.persistence.manager import JobSummary
from rpa_pipeline.persistence.models import Job
from rpa_pipeline.queue.channels import MessageEnvelope

STATUS_ICONS = {
    JobStatus.PENDING: "⏳ Pending",
    JobStatus.PROCESSING: "⚙️ Processing",
    JobStatus.RETRYING: "🔁 Retrying",
    JobStatus.COMPLETED: "[green]✅ Completed[/green]",
    JobStatus.FAILED: "[red]❌ Failed[/red]",
    JobStatus.CANCELLED: "[yellow]⏹️ Cancelled[/yellow]",
}


def create_key_value_table(
    title: str,
    data: dict[str, str],
    title_style: str = "bold cyan",
    key_style: str = "bold blue",
    value_style: str = "green",
    box_style=ROUNDED,
) -> Table:
    """Create a two-column Field/Value table.

    Args:
        title: Table title with emoji/styling
        data: Dictionary of key-value pairs to display
        title_style: Style for the table title
        key_style: Style for the key column
        value_style: Style for the value column
        box_style: Border style for the table
    """
    table = Table(
        title=f"[{title_style}]{title}[/{title_style}]",
        box=box_style,
        show_header=True,
        header_style="bold magenta",
        border_style="cyan",
        title_justify="left",
        expand=False,
    )

    table.add_column("Field", style=key_style, no_wrap=False)
    table.add_column("Value", style=value_style, no_wrap=False)

    for key, value in data.items():
        table.add_row(key, str(value))

    return table


def create_multi_column_table(
    title: str,
    columns: list[tuple[str, str]],
    rows: list[list[str]],
    title_style: str = "bold cyan",
    header_style: str = "bold magenta",
    alternate_row_styles: list[str] | None = None,
    box_style=ROUNDED,
) -> Table:
    """Create a multi-column table with zebra striping.

    Args:
        title: Table title with emoji/styling
        columns: List of (column_name, column_style) tuples
        rows: List of row data
    """
    table = Table(
        title=f"[{title_style}]{title}[/{title_style}]",
        box=box_style,
        show_header=True,
        header_style=header_style,
        border_style="cyan",
        title_justify="left",
        row_styles=alternate_row_styles or ["", "dim"],
        expand=True,
    )

    for name, style in columns:
        table.add_column(name, style=style)

    for row in rows:
        table.add_row(*row)

    return table


def _timestamp(value) -> str:
    return value.strftime("%Y-%m-%d %H:%M:%S") if value else "-"


def _truncate(text: str, length: int) -> str:
    return text[:length] + "..." if len(text) > length else text


def create_classification_table(result: ClassificationResult) -> Table:
    confidence = result.confidence
    if confidence >= 0.8:
        styled = f"[bold green]{confidence:.0%}[/bold green]"
    elif confidence >= 0.6:
        styled = f"[bold yellow]{confidence:.0%}[/bold yellow]"
    else:
        styled = f"[bold red]{confidence:.0%}[/bold red]"

    data = {
        "🏷️ Label": result.label,
        "🎯 Confidence": styled,
        "🔍 Method": result.method,
    }
    for key, value in result.metadata.items():
        if key != "method":
            data[f"   {key}"] = ", ".join(map(str, value)) if isinstance(value, list) else str(value)

    return create_key_value_table(
        title="📨 Classification", data=data, title_style="bold magenta", key_style="cyan", value_style="white"
    )


def create_job_status_table(job: Job) -> Table:
    """Job details including the last processing result, never credentials."""
    status = JobStatus(job.status)
    data = {
        "🆔 Job": str(job.id),
        "📨 Subject": _truncate(job.subject, 80),
        "👤 Sender": job.sender or "-",
        "🏷️ Type": job.job_type or "unknown",
        "📊 Status": STATUS_ICONS.get(status, status.value),
        "⚡ Priority": str(job.priority),
        "🔁 Retries": str(job.retry_count),
        "📅 Created": _timestamp(job.created_at),
        "▶️ Started": _timestamp(job.started_at),
        "🏁 Completed": _timestamp(job.completed_at),
        "📬 Notified": _timestamp(job.notified_at),
    }
    if job.error_message:
        data["🚨 Error"] = _truncate(job.error_message, 200)

    result = job.processing_result
    if result is not None:
        data["💬 Result"] = result.message or "-"
        if isinstance(result.data, WorkflowRunData):
            data["🧭 Steps"] = f"{result.data.completed_steps}/{result.data.total_steps} completed"
            if result.data.screenshot_path:
                data["🖼️ Screenshot"] = result.data.screenshot_path

    return create_key_value_table(
        title="📋 Job Status", data=data, title_style="bold green", key_style="blue", value_style="white"
    )


def create_jobs_table(jobs: list[Job], summary: JobSummary | None = None) -> Table:
    columns = [
        ("ID", "cyan"),
        ("Created", "white"),
        ("Type", "magenta"),
        ("Status", "white"),
        ("Retries", "yellow"),
        ("Subject", "dim white"),
    ]
    rows = [
        [
            str(job.id)[:8],
            _timestamp(job.created_at),
            job.job_type or "unknown",
            STATUS_ICONS.get(JobStatus(job.status), str(job.status)),
            str(job.retry_count),
            _truncate(job.subject, 50),
        ]
        for job in jobs
    ]
    title = "📋 Jobs"
    if summary is not None:
        title += f" ({summary.total} total, {summary.active} active)"
    return create_multi_column_table(title=title, columns=columns, rows=rows)


def create_dead_letter_table(envelopes: list[MessageEnvelope]) -> Table:
    columns = [
        ("Message", "cyan"),
        ("Received", "white"),
        ("From Channel", "magenta"),
        ("Deliveries", "yellow"),
        ("Reason", "red"),
    ]
    rows = [
        [
            envelope.message_id[:12],
            _timestamp(envelope.timestamp),
            envelope.source_channel or "-",
            str(envelope.delivery_count),
            _truncate(envelope.dead_letter_reason or "", 80),
        ]
        for envelope in envelopes
    ]
    return create_multi_column_table(title="☠️ Dead Letters", columns=columns, rows=rows)


def create_logging_status_table(status: dict[str, Any]) -> Table:
    logging_data = {
        "🔧 Mode": status["mode"].title(),
        "📁 Log Directory": status["log_directory"] or "N/A (production mode)",
        "🔇 Suppressed Libraries": ", ".join(status["third_party_suppressed"]),
    }

    if status["log_files"]["main"]:
        logging_data["📝 Main Log"] = status["log_files"]["main"]
    if status["log_files"]["json"]:
        logging_data["📊 JSON Log"] = status["log_files"]["json"]
    if status["log_files"]["errors"]:
        logging_data["🚨 Error Log"] = status["log_files"]["errors"]

    return create_key_value_table(
        title="🔍 Logging Configuration",
        data=logging_data,
        title_style="bold green",
        key_style="blue",
        value_style="white",
        box_style=SIMPLE,
    )


def create_retry_status_table(status: dict[str, Any]) -> Table:
    data = {
        "🔁 Max Attempts": str(status["max_attempts"]),
        "⏱️ Wait Range": f"{status['min_wait']}s - {status['max_wait']}s",
        "📈 Multiplier": str(status["multiplier"]),
    }
    return create_key_value_table(
        title="🔁 Transport Retry",
        data=data,
        title_style="bold green",
        key_style="blue",
        value_style="white",
        box_style=SIMPLE,
    )


def print_rich_table(console: Console, table: Table) -> None:
    """Print a table with a blank line either side."""
    console.print()
    console.print(table)
    console.print()
