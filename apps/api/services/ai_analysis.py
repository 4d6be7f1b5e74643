"""
Stefan AI analysis.

Sends a completed assessment (answers, computed scores, insight context) to
the chat model and returns an analysis text plus a short list of concrete
recommendations.

The service never raises into the caller: any failure (no key, network,
unparseable output) comes back as AnalysisResult(success=False) and the
caller treats it as "analysis unavailable". There is no automatic retry;
consolidation re-requests analysis for rounds that ended up without one.
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from openai import OpenAI

from core.config import settings
from services.pillars import get_definition, generate_insights

logger = logging.getLogger(__name__)

MAX_RECOMMENDATIONS = 5


@dataclass
class AnalysisRequest:
    pillar_key: str
    client_id: str
    answers: Dict[str, Any]
    calculated_scores: Dict[str, float]
    context: Dict[str, Any] = field(default_factory=dict)


@dataclass
class AnalysisResult:
    success: bool
    analysis: Optional[str] = None
    recommendations: List[str] = field(default_factory=list)
    error: Optional[str] = None


def _extract_json_object(text: str) -> Dict[str, Any]:
    """Extract first JSON object from model output."""
    if not text:
        raise ValueError("Empty model response")

    try:
        parsed = json.loads(text)
        if isinstance(parsed, dict):
            return parsed
    except ValueError:
        pass

    start = text.find("{")
    end = text.rfind("}")
    if start == -1 or end == -1 or end <= start:
        raise ValueError("No JSON object found in model response")

    parsed = json.loads(text[start : end + 1])
    if not isinstance(parsed, dict):
        raise ValueError("Model response JSON is not an object")
    return parsed


def build_analysis_context(pillar_key: str, answers: Dict[str, Any], scores: Dict[str, float]) -> Dict[str, Any]:
    overall = scores.get("overall", 0.0)
    return {"insights": generate_insights(pillar_key, answers, overall)}


def build_prompt(request: AnalysisRequest) -> Dict[str, str]:
    definition = get_definition(request.pillar_key)
    questions = {q.key: q.text for q in definition.questions}

    system = (
        "You are Stefan, a warm and practical personal development coach. "
        f"You are analysing a client's {definition.name} assessment "
        f"({definition.description}). Focus on {definition.ai_focus}. "
        "Return ONLY valid JSON. No markdown, no commentary."
    )

    answered = "\n".join(
        f"- {questions.get(k, k)}: {v}" for k, v in request.answers.items()
    )
    user = f"""Assessment: {definition.name}
Answers:
{answered}

Calculated scores (0-10): {json.dumps(request.calculated_scores)}
Context: {json.dumps(request.context, default=str)}

Return a JSON object:
{{
  "analysis": string,          // 2-4 short paragraphs addressed to the client
  "recommendations": [string]  // 2-{MAX_RECOMMENDATIONS} concrete next actions
}}"""
    return {"system": system, "user": user}


class StefanAnalysisService:
    """Thin wrapper over the OpenAI chat completions API."""

    def __init__(self, client: Optional[Any] = None, model: Optional[str] = None):
        self._client = client
        self.model = model or settings.OPENAI_MODEL

    @property
    def client(self):
        if self._client is None:
            if not settings.OPENAI_API_KEY:
                raise RuntimeError("OPENAI_API_KEY not configured")
            self._client = OpenAI(
                api_key=settings.OPENAI_API_KEY,
                timeout=settings.AI_REQUEST_TIMEOUT_S,
            )
        return self._client

    def analyze(self, request: AnalysisRequest) -> AnalysisResult:
        prompt = build_prompt(request)
        try:
            response = self.client.chat.completions.create(
                model=self.model,
                messages=[
                    {"role": "system", "content": prompt["system"]},
                    {"role": "user", "content": prompt["user"]},
                ],
                max_tokens=settings.AI_MAX_TOKENS,
            )
            content = response.choices[0].message.content or ""
            data = _extract_json_object(content)
        except Exception as e:
            logger.error(
                f"Stefan analysis failed for {request.pillar_key}: {e}",
                extra={"extra_fields": {"client_id": request.client_id, "pillar_key": request.pillar_key}},
            )
            return AnalysisResult(success=False, error=str(e))

        analysis = data.get("analysis")
        if not isinstance(analysis, str) or not analysis.strip():
            logger.warning(f"Stefan analysis for {request.pillar_key} returned no analysis text")
            return AnalysisResult(success=False, error="Empty analysis")

        recs = data.get("recommendations") or []
        if not isinstance(recs, list):
            recs = []
        recommendations = [str(r).strip() for r in recs if str(r).strip()][:MAX_RECOMMENDATIONS]

        return AnalysisResult(success=True, analysis=analysis.strip(), recommendations=recommendations)


_service: Optional[StefanAnalysisService] = None


def get_analysis_service() -> StefanAnalysisService:
    global _service
    if _service is None:
        _service = StefanAnalysisService()
    return _service
