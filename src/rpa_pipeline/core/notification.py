# ABOUTME: Notification stage - delivers terminal job outcomes to the requester
# ABOUTME: Notifiers are pluggable; the console notifier renders outcomes with rich

from typing import Protocol

from rich.console import Console

from rpa_pipeline.core.models import JobNotification, JobStatus
from rpa_pipeline.utils.logging import get_logger, with_job_context

STATUS_STYLES = {
    JobStatus.COMPLETED: ("✅", "green"),
    JobStatus.FAILED: ("❌", "red"),
    JobStatus.CANCELLED: ("⏹️", "yellow"),
}


class Notifier(Protocol):
    async def send(self, notification: JobNotification) -> None: ...


def summarize(notification: JobNotification) -> str:
    """One-line outcome text. Carries no payload data, only status, message and error count."""
    result = notification.result
    message = result.message if result and result.message else notification.status.value
    errors = len(result.errors) if result else 0
    suffix = f" ({errors} error(s))" if errors else ""
    return f"Job {notification.job_id} [{notification.job_type or 'unknown'}] {message}{suffix}"


class ConsoleNotifier:
    """Prints outcomes to a rich console; stands in for the mail transport."""

    def __init__(self, console: Console | None = None):
        self.console = console or Console()

    async def send(self, notification: JobNotification) -> None:
        icon, style = STATUS_STYLES.get(notification.status, ("ℹ️", "white"))
        self.console.print(
            f"{icon} [{style}]{notification.status.value.title()}[/{style}] "
            f"to [bold]{notification.recipient_email or 'unknown recipient'}[/bold]: {summarize(notification)}"
        )
        if notification.result:
            for error in notification.result.errors:
                self.console.print(f"   [dim]- {error}[/dim]")


class NotificationService:
    """Consumes the notifications channel. A notifier failure propagates so the message is dead-lettered."""

    def __init__(self, notifier: Notifier | None = None):
        self.notifier = notifier or ConsoleNotifier()
        self.logger = get_logger(__name__)

    async def handle(self, notification: JobNotification) -> None:
        with with_job_context(notification.job_id, pipeline="notification") as logger:
            if not notification.recipient_email:
                logger.warning("Notification has no recipient, recording only", status=notification.status.value)
                return
            await self.notifier.send(notification)
            logger.info(
                "Notification sent",
                status=notification.status.value,
                recipient=notification.recipient_email,
                job_type=notification.job_type,
            )
