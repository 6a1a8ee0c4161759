from celery import Celery
from celery.signals import setup_logging

from sweepstakes.core.config import get_settings
from sweepstakes.core.logging import configure_logging

settings = get_settings()

celery_app = Celery(
    "sweepstakes",
    broker=settings.celery_broker_url,
    backend=settings.celery_result_backend,
    include=[
        "sweepstakes.workers.tasks.migration_automation",
    ],
)

celery_app.conf.update(
    task_default_queue="q_normal",
    task_acks_late=True,
    worker_prefetch_multiplier=1,
    task_serializer="json",
    result_serializer="json",
    accept_content=["json"],
    timezone="UTC",
    enable_utc=True,
)


@setup_logging.connect
def _configure_worker_logging(**_kwargs: object) -> None:
    settings = get_settings()
    configure_logging(settings.log_level, json_output=settings.app_env != "dev")
