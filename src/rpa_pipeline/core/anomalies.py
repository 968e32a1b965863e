# ABOUTME: Post-execution sanity checks on a job and its processing result
# ABOUTME: Findings are appended to the result errors, they never change the outcome

from datetime import timedelta

from rpa_pipeline.core.models import ProcessingResult, ensure_utc, utcnow
from rpa_pipeline.persistence.models import Job

MAX_JOB_AGE = timedelta(days=7)
RETRY_WARNING_THRESHOLD = 2


def detect_anomalies(job: Job, result: ProcessingResult) -> list[str]:
    anomalies = []
    if utcnow() - ensure_utc(job.created_at) > MAX_JOB_AGE:
        anomalies.append(f"Anomaly: job is older than {MAX_JOB_AGE.days} days")
    if result.success and not result.cancelled and result.data is None:
        anomalies.append("Anomaly: successful result carries no data")
    if not result.success and not result.cancelled and not result.errors:
        anomalies.append("Anomaly: failed result carries no errors")
    if job.retry_count > RETRY_WARNING_THRESHOLD:
        anomalies.append(f"Anomaly: job needed {job.retry_count} retries")
    return anomalies
