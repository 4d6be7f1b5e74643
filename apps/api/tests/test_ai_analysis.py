"""
Stefan AI analysis tests. The OpenAI client is replaced with a mock.
"""
from unittest.mock import MagicMock

import pytest

from services.ai_analysis import (
    AnalysisRequest,
    StefanAnalysisService,
    _extract_json_object,
    build_analysis_context,
    build_prompt,
)


def _request():
    answers = {"sleep_quality": 2, "stress_level": 4}
    scores = {"sleep_quality": 2.0, "stress_level": 7.0, "overall": 4.6}
    return AnalysisRequest(
        pillar_key="self_care",
        client_id="c-1",
        answers=answers,
        calculated_scores=scores,
        context=build_analysis_context("self_care", answers, scores),
    )


def _client_returning(content):
    client = MagicMock()
    message = MagicMock()
    message.content = content
    client.chat.completions.create.return_value = MagicMock(choices=[MagicMock(message=message)])
    return client


class TestExtractJson:
    def test_plain(self):
        assert _extract_json_object('{"analysis": "ok"}') == {"analysis": "ok"}

    def test_wrapped_in_prose(self):
        assert _extract_json_object('Sure!\n```json\n{"analysis": "ok"}\n```') == {"analysis": "ok"}

    @pytest.mark.parametrize("text", ["", "no json here", "[1, 2]"])
    def test_rejects(self, text):
        with pytest.raises(ValueError):
            _extract_json_object(text)


def test_prompt_mentions_questions_and_scores():
    prompt = build_prompt(_request())
    assert "Self Care" in prompt["system"]
    assert "How well do you sleep at night?: 2" in prompt["user"]
    assert '"overall": 4.6' in prompt["user"]
    assert "critical_areas" in prompt["user"]


def test_success_caps_recommendations():
    recs = [f"step {i}" for i in range(8)]
    client = _client_returning('{"analysis": " Good start. ", "recommendations": %s}' % str(recs).replace("'", '"'))
    result = StefanAnalysisService(client=client, model="test-model").analyze(_request())

    assert result.success
    assert result.analysis == "Good start."
    assert result.recommendations == recs[:5]
    assert client.chat.completions.create.call_args.kwargs["model"] == "test-model"


def test_empty_analysis_is_failure():
    result = StefanAnalysisService(client=_client_returning('{"analysis": ""}')).analyze(_request())
    assert not result.success


def test_client_error_is_failure():
    client = MagicMock()
    client.chat.completions.create.side_effect = TimeoutError("read timeout")
    result = StefanAnalysisService(client=client).analyze(_request())
    assert not result.success
    assert "read timeout" in result.error


def test_missing_key_is_failure(monkeypatch):
    from core.config import settings

    monkeypatch.setattr(settings, "OPENAI_API_KEY", None)
    result = StefanAnalysisService().analyze(_request())
    assert not result.success
    assert "OPENAI_API_KEY" in result.error
