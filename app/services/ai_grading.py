"""Advisory grade suggestions for subjective answers.

Suggestions are returned to the grader and never written to a graded answer.
"""
from __future__ import annotations

import json
import logging
import math
import re
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any

import httpx
from sqlalchemy.orm import Session

from app.core.config import settings
from app.core.exceptions import AIGradingUnavailableException, NotFoundException, ValidationFailedException
from app.crud.graded_answer import graded_answer as crud_graded_answer
from app.crud.grading_session import grading_session as crud_grading_session
from app.crud.question import question as crud_question
from app.models.question import Question
from app.schemas.grading import GradeSuggestion
from app.schemas.user import UserContext
from app.utils.permission import PermissionHelper as permission_helper

logger = logging.getLogger(__name__)

_WORD = re.compile(r"[a-z0-9]+")
_FENCE = re.compile(r"^\s*```(?:json)?\s*(.*?)\s*```\s*$", re.DOTALL | re.IGNORECASE)


@dataclass
class GradingRequest:
    question_text: str
    model_answer: str | None
    candidate_answer: str
    max_points: float


@dataclass
class GradingResponse:
    score: float
    comment: str
    confidence: float
    raw: dict[str, Any] | None = None


class GradingProvider(ABC):
    name: str = "base"

    @abstractmethod
    async def suggest(self, req: GradingRequest) -> GradingResponse:
        raise NotImplementedError


def parse_grading_reply(text: str, max_points: float) -> GradingResponse:
    """Read a model's JSON verdict, tolerating a markdown code fence around it.

    The score is clamped to ``[0, max_points]`` and confidence to ``[0, 1]``;
    a reply that is not JSON or carries a non-finite number is rejected.
    """
    fenced = _FENCE.match(text)
    body = fenced.group(1) if fenced else text
    try:
        parsed = json.loads(body)
        score = float(parsed["score"])
        confidence = float(parsed.get("confidence", 0.5))
        comment = str(parsed.get("comment", ""))
        if not (math.isfinite(score) and math.isfinite(confidence)):
            raise ValueError("non-finite number in reply")
    except (ValueError, KeyError, TypeError):
        logger.warning(f"Unparseable AI grading reply: {text[:200]!r}")
        raise AIGradingUnavailableException("AI grading provider returned an unreadable reply.")
    return GradingResponse(
        score=min(max(score, 0.0), max_points),
        comment=comment,
        confidence=min(max(confidence, 0.0), 1.0),
    )


class MockGradingProvider(GradingProvider):
    """Deterministic provider for local development: scores by word overlap with the model answer."""
    name = "mock"

    async def suggest(self, req: GradingRequest) -> GradingResponse:
        expected = set(_WORD.findall((req.model_answer or "").lower()))
        given = set(_WORD.findall(req.candidate_answer.lower()))
        if not expected:
            return GradingResponse(score=0.0, comment="(mock) No model answer to compare against.", confidence=0.0)
        ratio = len(expected & given) / len(expected)
        return GradingResponse(
            score=round(req.max_points * ratio, 2),
            comment=f"(mock) {round(ratio * 100)}% of the model answer's terms are present.",
            confidence=0.5,
            raw={"provider": "mock"},
        )


class OpenAIGradingProvider(GradingProvider):
    name = "openai"

    def __init__(self, api_key: str | None = None, base_url: str | None = None, model: str | None = None) -> None:
        self.api_key = api_key or settings.OPENAI_API_KEY
        self.base_url = base_url or settings.OPENAI_BASE_URL or "https://api.openai.com/v1"
        self.model = model or settings.AI_GRADING_MODEL

    def _prompt(self, req: GradingRequest) -> str:
        return (
            "Grade the candidate's answer. Reply with JSON only: "
            '{"score": number, "comment": string, "confidence": number between 0 and 1}.\n'
            f"Maximum points: {req.max_points}\n"
            f"Question: {req.question_text}\n"
            f"Model answer: {req.model_answer or '(none)'}\n"
            f"Candidate answer: {req.candidate_answer}"
        )

    async def suggest(self, req: GradingRequest) -> GradingResponse:
        if not self.api_key:
            raise AIGradingUnavailableException("OPENAI_API_KEY is not set.")

        payload: dict[str, Any] = {
            "model": self.model,
            "input": [
                {"role": "system", "content": "You are a strict, fair exam grader."},
                {"role": "user", "content": self._prompt(req)},
            ],
            "temperature": 0,
        }
        headers = {"Authorization": f"Bearer {self.api_key}"}
        try:
            async with httpx.AsyncClient(timeout=60.0) as client:
                r = await client.post(f"{self.base_url}/responses", json=payload, headers=headers)
                r.raise_for_status()
                data = r.json()
        except httpx.HTTPError as e:
            logger.error(f"AI grading request failed: {e}")
            raise AIGradingUnavailableException("AI grading provider request failed.")

        text = ""
        for item in data.get("output", []) or []:
            for content in item.get("content", []) or []:
                if content.get("type") in ("output_text", "text"):
                    text += content.get("text", "")
        response = parse_grading_reply(text, req.max_points)
        response.raw = data
        return response


def get_grading_provider(provider: str | None = None) -> GradingProvider:
    p = (provider or settings.AI_GRADING_PROVIDER or "").strip().lower()
    if p == "openai":
        return OpenAIGradingProvider()
    return MockGradingProvider()


class AIGradingService:

    def _require_subjective(self, db: Session, exam_id: int, question_id: int) -> Question:
        question = crud_question.get_in_exam(db, exam_id=exam_id, question_id=question_id)
        if not question:
            raise ValidationFailedException.for_field("question_id", "Question does not belong to this exam.")
        if question.is_objective:
            raise ValidationFailedException.for_field("question_id", "Objective questions are graded automatically.")
        return question

    async def suggest_grade(
        self,
        db: Session,
        current_user_context: UserContext,
        session_id: int,
        question_id: int,
        provider: GradingProvider | None = None,
    ) -> GradeSuggestion:
        permission_helper.require_grader(current_user_context)
        session = crud_grading_session.get_detail(db, id=session_id)
        if not session:
            raise NotFoundException("Grading session not found.")
        question = self._require_subjective(db, session.attempt.exam_id, question_id)
        row = crud_graded_answer.get_by_session_and_question(db, grading_session_id=session.id, question_id=question.id)
        if not row or not row.text_answer:
            raise ValidationFailedException.for_field("question_id", "There is no text answer to assess.")

        request = GradingRequest(
            question_text=question.question_text,
            model_answer=question.model_answer,
            candidate_answer=row.text_answer,
            max_points=float(question.points),
        )
        session_id, question_id = session.id, question.id
        # no read transaction may stay open while the provider is awaited
        db.commit()

        provider = provider or get_grading_provider()
        response = await provider.suggest(request)
        logger.info(f"AI suggestion for session {session_id} question {question_id} via {provider.name}: {response.score}")
        return GradeSuggestion(
            question_id=question_id,
            suggested_score=response.score,
            max_points=request.max_points,
            comment=response.comment,
            confidence=response.confidence,
            provider=provider.name,
        )


ai_grading_service = AIGradingService()
