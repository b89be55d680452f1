"""Background workers for async processing tasks."""

from beatfoundry.workers.job_poller import JobStatusPoller, JobTracker

__all__ = [
    "JobStatusPoller",
    "JobTracker",
]
