"""
Celery app for the plan parsing worker
"""
from celery import Celery
from dotenv import load_dotenv
import os

load_dotenv()

REDIS_URL = os.getenv('REDIS_URL', 'redis://localhost:6379/0')

app = Celery(
    'planscope',
    broker=os.getenv('CELERY_BROKER_URL', REDIS_URL),
    backend=os.getenv('CELERY_RESULT_BACKEND', REDIS_URL),
    include=['tasks.parse_plans']
)

app.conf.update(
    task_serializer='json',
    accept_content=['json'],
    result_serializer='json',
    timezone='UTC',
    enable_utc=True,
    # Parse jobs are long and few; one at a time per worker process
    worker_prefetch_multiplier=1,
    task_track_started=True,
    result_expires=24 * 3600,
)

celery = app
