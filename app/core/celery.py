"""
Celery application for background matching jobs.

Only match expiry runs here. It is queued by POST /api/v1/matches/expire
(or an external scheduler calling it); there is no beat schedule.
"""
from celery import Celery
import os
import ssl
from dotenv import load_dotenv

load_dotenv(override=True)  # Override shell env vars with .env values

broker_url = os.getenv('CELERY_BROKER_URL', os.getenv('REDIS_URL', 'redis://localhost:6379/0'))
result_backend_url = os.getenv('CELERY_RESULT_BACKEND', broker_url)
always_eager = os.getenv('CELERY_TASK_ALWAYS_EAGER', 'false').lower() == 'true'


def _ssl_options(url: str):
    # rediss:// providers (Upstash, etc.) use certificates Celery cannot verify
    if url.startswith('rediss://'):
        return {'ssl_cert_reqs': ssl.CERT_NONE}
    return None


celery_app = Celery(
    'venture_match',
    broker=broker_url,
    backend=result_backend_url,
    broker_use_ssl=_ssl_options(broker_url),
    redis_backend_use_ssl=_ssl_options(result_backend_url),
    include=['app.workers.match_expiry'],
)

celery_app.conf.update(
    task_serializer='json',
    accept_content=['json'],
    result_serializer='json',
    timezone='UTC',
    enable_utc=True,
    task_track_started=True,
    # Expiry is a single UPDATE; anything slower is a stuck database
    task_time_limit=5 * 60,
    task_soft_time_limit=4 * 60,
    result_expires=24 * 60 * 60,
    worker_prefetch_multiplier=1,
    # Run tasks in-process when no worker is deployed
    task_always_eager=always_eager,
    task_eager_propagates=always_eager,
)
