"""Celery application for dataset worker hosts.

Each host that runs the dataset container starts a worker consuming its
own command queue, so the orchestrator can address a specific host:

    celery -A worker.celery_app worker -Q commands.<instance-id> --concurrency 1

Settings:
- Redis as broker and result backend
- JSON serialization, UTC
- Late acks, one command at a time per worker process
"""

from celery import Celery

from app.config import get_settings

settings = get_settings()

celery_app = Celery(
    "db_processor",
    broker=settings.REDIS_URL,
    backend=settings.REDIS_URL,
)

celery_app.conf.update(
    # Serialization
    task_serializer="json",
    accept_content=["json"],
    result_serializer="json",

    # Timezone
    timezone="UTC",
    enable_utc=True,

    # Commands without an explicit queue land here
    task_default_queue="commands.default",

    # Result expiration (24 hours)
    result_expires=86400,

    # Operations may run for the full command timeout; the hard limit leaves headroom
    task_soft_time_limit=settings.COMMAND_TIMEOUT_SECONDS + 60,
    task_time_limit=settings.COMMAND_TIMEOUT_SECONDS + 120,
    task_acks_late=True,
    worker_prefetch_multiplier=1,

    task_reject_on_worker_lost=True,
    task_acks_on_failure_or_timeout=True,

    include=[
        "worker.tasks.commands",
    ],
)
