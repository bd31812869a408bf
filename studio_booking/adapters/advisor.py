"""
Text advisor: advisory messages with no effect on booking state.

``FallbackAdvisor`` is deterministic and always available. ``OpenAIAdvisor``
asks an LLM for JSON and validates it with pydantic; it raises on any
problem and the engine substitutes the fallback at the side-effect boundary.
"""

import json
import logging
from abc import ABC, abstractmethod
from datetime import date
from typing import Any, Optional

from pydantic import BaseModel, Field

from studio_booking.config import AdvisorConfig
from studio_booking.adapters.prompts import (
    ALTERNATIVES_PROMPT,
    INSIGHTS_PROMPT,
    RECOMMEND_PROMPT,
    WAITLIST_PROMPT,
)
from studio_booking.schemas.booking_schema import AlternativeSuggestions
from studio_booking.schemas.resource_schema import Resource
from studio_booking.schemas.waitlist_schema import UNSPECIFIED, WaitlistPreferences

logger = logging.getLogger(__name__)

WAITLIST_FALLBACK_MESSAGE = (
    "Thank you for joining our waitlist. We'll notify you when a suitable "
    "appointment becomes available."
)
ALTERNATIVES_FALLBACK_MESSAGE = (
    "We're sorry about your cancellation. Here are some alternative options "
    "that might work for you."
)


class Recommendation(BaseModel):
    """Suggested resource for a client's preferences."""

    resource_id: Optional[int] = None
    message: str


class AdvisorInsights(BaseModel):
    """Narrative summary of an analytics snapshot."""

    insights: list[str] = Field(default_factory=list)
    recommendations: list[str] = Field(default_factory=list)


class _MessageOnly(BaseModel):
    message: str


class TextAdvisor(ABC):
    """Advisory text generation interface."""

    @abstractmethod
    def recommend(
        self, resources: list[Resource], preferences: WaitlistPreferences
    ) -> Recommendation: ...

    @abstractmethod
    def summarize(self, snapshot: dict[str, Any]) -> AdvisorInsights: ...

    @abstractmethod
    def suggest_alternatives(
        self,
        cancelled: dict[str, Any],
        reason: str,
        candidate_resources: list[Resource],
        candidate_dates: list[date],
    ) -> AlternativeSuggestions: ...

    @abstractmethod
    def waitlist_message(self, preferences: WaitlistPreferences) -> str: ...


class FallbackAdvisor(TextAdvisor):
    """Deterministic advisor used when no LLM is configured or it fails."""

    def recommend(
        self, resources: list[Resource], preferences: WaitlistPreferences
    ) -> Recommendation:
        if not resources:
            return Recommendation(message="No artists are accepting bookings right now.")
        chosen = resources[0]
        if preferences.style != UNSPECIFIED:
            for resource in resources:
                if preferences.style in resource.specialty.lower():
                    chosen = resource
                    break
        specialty = chosen.specialty or "a range of styles"
        return Recommendation(
            resource_id=chosen.id,
            message=f"We recommend {chosen.name} who specializes in {specialty}.",
        )

    def summarize(self, snapshot: dict[str, Any]) -> AdvisorInsights:
        revenue = snapshot.get("total_revenue", 0)
        growth = snapshot.get("business_growth", 0.0)
        completion = snapshot.get("completion_rate", 0.0)
        conversion = snapshot.get("waitlist_conversion_rate", 0.0)

        insights = [
            f"Revenue for the period was ${revenue} ({growth:+.1f}% vs the previous period).",
            f"{completion:.1f}% of bookings in the period were completed.",
            f"{conversion:.1f}% of waitlist entries converted to bookings.",
        ]
        recommendations = []
        if growth < 0:
            recommendations.append("Promote open slots to recover revenue lost against the previous period.")
        else:
            recommendations.append("Extend availability at peak times to capture growing demand.")
        if conversion < 50:
            recommendations.append("Contact waitlisted clients promptly when slots open to improve conversion.")
        recommendations.append("Offer incentives for quieter time slots to spread bookings more evenly.")
        return AdvisorInsights(insights=insights, recommendations=recommendations)

    def suggest_alternatives(
        self,
        cancelled: dict[str, Any],
        reason: str,
        candidate_resources: list[Resource],
        candidate_dates: list[date],
    ) -> AlternativeSuggestions:
        return AlternativeSuggestions(
            message=ALTERNATIVES_FALLBACK_MESSAGE,
            resource_ids=[r.id for r in candidate_resources[:2]],
            dates=list(candidate_dates[:3]),
        )

    def waitlist_message(self, preferences: WaitlistPreferences) -> str:
        return WAITLIST_FALLBACK_MESSAGE


class OpenAIAdvisor(TextAdvisor):
    """LLM-backed advisor using the OpenAI chat completions API."""

    def __init__(self, config: AdvisorConfig, client: Any = None) -> None:
        self._config = config
        if client is None:
            from openai import OpenAI

            client = OpenAI(timeout=config.request_timeout_sec)
        self._client = client

    def _complete_json(self, system_prompt: str, payload: dict[str, Any]) -> dict[str, Any]:
        response = self._client.chat.completions.create(
            model=self._config.llm_model,
            temperature=self._config.llm_temperature,
            messages=[
                {"role": "system", "content": system_prompt},
                {"role": "user", "content": json.dumps(payload, default=str)},
            ],
            response_format={"type": "json_object"},
        )
        content = response.choices[0].message.content
        if not content:
            raise ValueError("Empty advisor response")
        return json.loads(content)

    @staticmethod
    def _describe(resources: list[Resource]) -> list[dict[str, Any]]:
        return [
            {"id": r.id, "name": r.name, "specialty": r.specialty, "bio": r.bio}
            for r in resources
        ]

    def recommend(
        self, resources: list[Resource], preferences: WaitlistPreferences
    ) -> Recommendation:
        data = self._complete_json(
            RECOMMEND_PROMPT,
            {"preferences": preferences.model_dump(), "artists": self._describe(resources)},
        )
        result = Recommendation.model_validate(data)
        if result.resource_id not in {r.id for r in resources}:
            raise ValueError(f"Advisor recommended unknown resource {result.resource_id}")
        return result

    def summarize(self, snapshot: dict[str, Any]) -> AdvisorInsights:
        return AdvisorInsights.model_validate(self._complete_json(INSIGHTS_PROMPT, snapshot))

    def suggest_alternatives(
        self,
        cancelled: dict[str, Any],
        reason: str,
        candidate_resources: list[Resource],
        candidate_dates: list[date],
    ) -> AlternativeSuggestions:
        data = self._complete_json(
            ALTERNATIVES_PROMPT,
            {
                "original_appointment": cancelled,
                "cancellation_reason": reason,
                "available_artists": self._describe(candidate_resources),
                "available_dates": [d.isoformat() for d in candidate_dates],
            },
        )
        result = AlternativeSuggestions.model_validate(data)
        allowed_ids = {r.id for r in candidate_resources}
        allowed_dates = set(candidate_dates)
        # Only candidates the engine offered may be suggested.
        return result.model_copy(update={
            "resource_ids": [i for i in result.resource_ids if i in allowed_ids],
            "dates": [d for d in result.dates if d in allowed_dates],
        })

    def waitlist_message(self, preferences: WaitlistPreferences) -> str:
        data = self._complete_json(WAITLIST_PROMPT, preferences.model_dump())
        return _MessageOnly.model_validate(data).message
