"""
Assessment consolidation.

Operator-triggered repair pass for rounds that were stored without an AI
analysis (the analysis call failed at completion time). This is the only
retry path for analysis; nothing retries automatically.
"""

import logging
from typing import Dict, Optional

from sqlalchemy.orm import Session

from core.cache import invalidate_client_cache_on_commit
from core.config import settings
from core.feature_flags import DEFAULT_FLAGS, FeatureFlags
from models import AssessmentRound, PathEntry
from services.ai_analysis import StefanAnalysisService, get_analysis_service
from services.assessment_flow import attach_analysis, request_analysis
from services.journey_progress import recalculate_journey_progress, record_assessment_completion
from services.path_entries import add_path_entry, create_assessment_actionables

logger = logging.getLogger(__name__)


def _add_recommendation_entries(db: Session, round_: AssessmentRound, recommendations) -> int:
    created = 0
    for idx, text in enumerate(recommendations or []):
        add_path_entry(
            db,
            user_id=round_.user_id,
            entry_type="recommendation",
            title=str(text)[:200],
            pillar_key=round_.pillar_key,
            ai_generated=True,
            round_id=round_.id,
            metadata={"source": "stefan_ai", "position": idx, "consolidated": True},
        )
        created += 1
    return created


def consolidate_assessment_systems(
    db: Session,
    limit: Optional[int] = None,
    flags: Optional[FeatureFlags] = None,
    analyzer: Optional[StefanAnalysisService] = None,
    max_attempts: Optional[int] = None,
) -> Dict[str, int]:
    """
    Least-tried unanalysed rounds first, oldest first among equals, at most
    `limit` of them. Rounds that already used up `max_attempts` analysis
    requests are skipped.

    Each round is handled in its own savepoint; one failure does not stop
    the batch. A repaired round is recorded on the client's journey.
    Returns {scanned, repaired, failed}.
    """
    flags = flags or DEFAULT_FLAGS
    limit = settings.CONSOLIDATION_BATCH_LIMIT if limit is None else limit
    max_attempts = settings.CONSOLIDATION_MAX_ATTEMPTS if max_attempts is None else max_attempts
    if limit < 1:
        return {"scanned": 0, "repaired": 0, "failed": 0}
    analyzer = analyzer or get_analysis_service()

    rounds = (
        db.query(AssessmentRound)
        .filter(
            AssessmentRound.ai_analysis.is_(None),
            AssessmentRound.analysis_attempts < max_attempts,
        )
        .order_by(AssessmentRound.analysis_attempts.asc(), AssessmentRound.created_at.asc())
        .limit(limit)
        .all()
    )

    repaired = 0
    failed = 0
    for round_ in rounds:
        result = request_analysis(analyzer, round_)
        db.flush()
        if not result.success:
            failed += 1
            logger.warning(
                f"Consolidation could not analyse round {round_.id}: {result.error}",
                extra={"extra_fields": {"round_id": str(round_.id), "attempts": round_.analysis_attempts}},
            )
            continue
        try:
            with db.begin_nested():
                attach_analysis(db, round_, result.analysis, result.recommendations)
                if flags.auto_actionables:
                    has_assessment_entry = db.query(PathEntry.id).filter(
                        PathEntry.round_id == round_.id, PathEntry.entry_type == "assessment"
                    ).first()
                    if not has_assessment_entry:
                        create_assessment_actionables(db, round_, result.recommendations)
                    else:
                        _add_recommendation_entries(db, round_, result.recommendations)
                record_assessment_completion(db, round_.user_id, round_.pillar_key, round_.scores)
                recalculate_journey_progress(db, round_.user_id)
            repaired += 1
            invalidate_client_cache_on_commit(db, round_.user_id)
        except Exception as e:
            failed += 1
            logger.error(f"Consolidation failed for round {round_.id}: {e}")

    db.flush()
    summary = {"scanned": len(rounds), "repaired": repaired, "failed": failed}
    logger.info("Assessment consolidation finished", extra={"extra_fields": summary})
    return summary
