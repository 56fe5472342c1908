"""
Background job scheduler for pipeline maintenance tasks.
"""

from apscheduler.schedulers.background import BackgroundScheduler
from apscheduler.triggers.interval import IntervalTrigger

from api.dependencies import get_store
from config import settings
from observability import trace_logger
from services import PipelineService


class JobScheduler:
    """Background job scheduler."""

    def __init__(self, pipeline_service: PipelineService = None):
        self.scheduler = BackgroundScheduler()
        self._pipeline_service = pipeline_service

    @property
    def pipeline_service(self) -> PipelineService:
        if self._pipeline_service is None:
            self._pipeline_service = PipelineService(get_store())
        return self._pipeline_service

    def start(self):
        """Start the scheduler."""
        if not settings.enable_background_jobs:
            trace_logger.info("Background jobs disabled")
            return

        self.scheduler.add_job(
            func=self.auto_advance_leads,
            trigger=IntervalTrigger(
                minutes=settings.auto_advance_interval_minutes
            ),
            id="auto_advance_leads",
            name="Pipeline auto-advancement sweep",
            replace_existing=True
        )

        self.scheduler.start()
        trace_logger.info("Job scheduler started")

    def stop(self):
        """Stop the scheduler."""
        if self.scheduler.running:
            self.scheduler.shutdown()
            trace_logger.info("Job scheduler stopped")

    def auto_advance_leads(self):
        """Advance every lead whose activity satisfies a stage rule."""
        with trace_logger.trace():
            try:
                return self.pipeline_service.run_auto_advancement_sweep()
            except Exception as e:
                trace_logger.error_occurred(
                    error_type="auto_advance_error",
                    error_message=str(e)
                )
                return None


# Singleton instance
job_scheduler = JobScheduler()
