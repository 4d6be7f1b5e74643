"""
Celery Beat Schedule Configuration

Defines periodic tasks that run on a schedule.
"""

from celery.schedules import crontab

beat_schedule = {
    # Reminder emails for drafts left untouched (see ASSESSMENT_REMINDER_AFTER_HOURS)
    'send-assessment-reminders': {
        'task': 'tasks.send_assessment_reminders',
        'schedule': crontab(minute=5),  # Hourly, 5 past
    },
}
