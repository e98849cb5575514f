import os
from celery import Celery
from celery.schedules import crontab

os.environ.setdefault('DJANGO_SETTINGS_MODULE', 'detailhub_project.settings')

app = Celery('detailhub_project')
app.config_from_object('django.conf:settings', namespace='CELERY')
app.autodiscover_tasks()

# Beat schedule - runs same logic as the management commands
app.conf.beat_schedule = {
    'run-weekly-payouts': {
        'task': 'core.tasks.run_weekly_payouts_task',
        'schedule': crontab(minute=0, hour=9, day_of_week='wed'),  # Previous Mon-Sun week
    },
    'retry-failed-transfers': {
        'task': 'core.tasks.retry_failed_transfers_task',
        'schedule': crontab(minute='*/15'),
    },
    'sync-transfer-status': {
        'task': 'core.tasks.sync_transfer_status_task',
        'schedule': crontab(minute=0, hour='*/6'),
    },
}

app.conf.timezone = 'UTC'
