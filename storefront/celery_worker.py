# storefront/celery_worker.py
from celery import Celery
from celery.schedules import crontab

from storefront.utils.settings import (
    CELERY_BROKER_URL,
    CELERY_RESULT_BACKEND,
    CELERY_TASK_ALWAYS_EAGER,
)

celery_app = Celery(
    "storefront",
    broker=CELERY_BROKER_URL,
    backend=CELERY_RESULT_BACKEND,
)

# tasks must be imported explicitly so the worker registers them
celery_app.conf.imports = (
    "storefront.tasks.maintenance",
    "storefront.services.notification_service",
)

celery_app.conf.beat_schedule = {
    "expire-guest-carts-hourly": {
        "task": "storefront.tasks.maintenance.expire_guest_carts_task",
        "schedule": crontab(minute=0),
    },
    "repair-carts-nightly": {
        "task": "storefront.tasks.maintenance.repair_carts_task",
        "schedule": crontab(hour=3, minute=30),
    },
}

celery_app.conf.timezone = "UTC"
celery_app.conf.task_always_eager = CELERY_TASK_ALWAYS_EAGER
celery_app.conf.task_eager_propagates = CELERY_TASK_ALWAYS_EAGER
