"""Background jobs."""

from jobs.scheduler import JobScheduler, job_scheduler

__all__ = ["JobScheduler", "job_scheduler"]
