"""
Main entry point for running the CRM server.
"""

import uvicorn
from config import settings
from jobs import job_scheduler


def main():
    """Start the CRM server."""
    # Start background job scheduler
    job_scheduler.start()

    try:
        uvicorn.run(
            "api.app:app",
            host=settings.api_host,
            port=settings.api_port,
            reload=False,
            log_level=settings.log_level.lower()
        )
    finally:
        job_scheduler.stop()


if __name__ == "__main__":
    main()
