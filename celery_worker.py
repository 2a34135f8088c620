# celery_worker.py
from app import create_app
from celery_config import create_celery_app
from logging_config import get_logger

logger = get_logger(__name__)

# Create Celery instance with shared configuration
celery = create_celery_app(__name__)

# Tasks run inside this app's context
flask_app = create_app()


class ContextTask(celery.Task):
    def __call__(self, *args, **kwargs):
        with flask_app.app_context():
            return self.run(*args, **kwargs)


celery.Task = ContextTask

# --- Celery Beat Schedule ---
celery.conf.beat_schedule = {
    'process-campaign-touches': {
        'task': 'tasks.outreach_tasks.process_campaign_touches',
        # Every minute; touches are due on the hour granularity of their delays
        'schedule': 60.0,
    },
    'process-scheduled-sends': {
        'task': 'tasks.outreach_tasks.process_scheduled_sends',
        'schedule': 60.0,
    },
    'process-queued-jobs': {
        'task': 'tasks.outreach_tasks.process_queued_jobs',
        'schedule': 300.0,  # 5 minutes
    },
    'resolve-enrollment-conflicts': {
        'task': 'tasks.outreach_tasks.resolve_enrollment_conflicts',
        'schedule': 300.0,  # 5 minutes
    },
}
celery.conf.timezone = 'UTC'

# Import tasks to ensure they're registered with Celery
with flask_app.app_context():
    import tasks.outreach_tasks  # noqa: F401,E402
    logger.info("Registered tasks", tasks=sorted(t for t in celery.tasks.keys() if t.startswith('tasks.')))
