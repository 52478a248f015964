from celery.schedules import crontab

CELERY_BEAT_SCHEDULE = {
    "resume-active-workflows": {
        "task": "app.workers.tasks.resume_active_workflows",
        "schedule": crontab(minute="*/15"),
    },
}
