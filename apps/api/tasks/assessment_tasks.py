"""
Assessment maintenance tasks.

- tasks.consolidate_assessments: operator-triggered analysis repair
- tasks.send_assessment_reminders: hourly via celerybeat_schedule
"""

from typing import Dict, Optional
import logging

from celery import Task
from sqlalchemy.orm import Session

from core.database import get_db_sync
from core.feature_flags import load_feature_flags
from services.consolidation import consolidate_assessment_systems
from services.reminders import send_assessment_reminders
from tasks import celery_app

logger = logging.getLogger(__name__)


@celery_app.task(name="tasks.consolidate_assessments", bind=True)
def consolidate_assessments_task(self: Task, limit: Optional[int] = None) -> Dict:
    db: Session = get_db_sync()
    try:
        summary = consolidate_assessment_systems(db, limit=limit, flags=load_feature_flags())
        db.commit()
        return {"status": "success", **summary}
    except Exception as e:
        db.rollback()
        logger.error(f"Assessment consolidation task failed: {e}", exc_info=True)
        raise
    finally:
        db.close()


@celery_app.task(name="tasks.send_assessment_reminders", bind=True)
def send_assessment_reminders_task(self: Task) -> Dict:
    db: Session = get_db_sync()
    try:
        summary = send_assessment_reminders(db, flags=load_feature_flags())
        db.commit()
        return {"status": "success", **summary}
    except Exception as e:
        db.rollback()
        logger.error(f"Assessment reminder task failed: {e}", exc_info=True)
        raise
    finally:
        db.close()
