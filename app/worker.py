"""
Celery worker entry point
Runs reminder dispatch, notification e-mail, calendar sync and maintenance sweeps
"""
import logging
from celery.signals import worker_ready, worker_shutdown

from app.config.celery_config import celery_app
from app.utils.my_logging import setup_logging

# Setup logging first
setup_logging()
logger = logging.getLogger(__name__)

# Import task modules so they register on the app
import app.tasks.reminder_tasks  # noqa: E402,F401
import app.tasks.calendar_tasks  # noqa: E402,F401
import app.tasks.maintenance_tasks  # noqa: E402,F401
import app.tasks.email_tasks  # noqa: E402,F401


@worker_ready.connect
def worker_ready_handler(sender=None, **kwargs):
    """Handle worker startup"""
    logger.info("Celery worker ready")
    logger.info(f"Registered tasks: {sorted(k for k in celery_app.tasks.keys() if k.startswith('app.'))}")


@worker_shutdown.connect
def worker_shutdown_handler(sender=None, **kwargs):
    """Handle worker shutdown"""
    logger.info("Celery worker shutting down...")


if __name__ == "__main__":
    celery_app.start([
        'worker',
        '--beat',
        '--loglevel=info',
        '--concurrency=4',
        '--max-tasks-per-child=1000'
    ])
