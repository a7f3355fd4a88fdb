"""
NominaHub - Celery Configuration

Celery configuration for background payroll batches.
Uses Redis as the message broker and result backend.
"""

from celery import Celery

from nominahub.config import settings


# Create Celery app
celery_app = Celery(
    'nominahub',
    broker=settings.redis_url,
    backend=settings.redis_url,
    include=['nominahub.tasks.celery_tasks'],
)

# Celery configuration
celery_app.conf.update(
    # Serialization
    task_serializer='json',
    accept_content=['json'],
    result_serializer='json',

    # Timezone
    timezone='America/Mexico_City',
    enable_utc=True,

    # Task execution settings
    task_acks_late=True,
    task_reject_on_worker_lost=True,
    task_time_limit=900,  # 15 minutes
    task_soft_time_limit=840,

    # Worker settings
    worker_prefetch_multiplier=1,

    # Result backend settings
    result_expires=86400,  # 24 hours
)
