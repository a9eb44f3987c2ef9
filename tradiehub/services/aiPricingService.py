"""
AI Pricing Advisor
==================

Suggests a price for a job from the tradie's hourly rate, an estimated
duration and a complexity factor. The complexity factor comes from an
OpenAI-compatible chat-completions endpoint when one is configured; every
other part of the calculation is deterministic.

The advisor never touches a quote. Its output is advisory only.

Formula::

    labour    = hourly_rate * hours * complexity
    materials = labour * 0.30
    markup    = (labour + materials) * 0.15
    total     = labour + materials + markup
    band      = total * 0.85 .. total * 1.15
"""

from __future__ import annotations

import asyncio
import logging
import re
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Optional

import httpx

from tradiehub.core.config import settings
from tradiehub.core.errors import FieldError, ValidationError
from tradiehub.integrations.messaging import MessagingError, post_with_retry
from tradiehub.services.pricingCalculator import round_money

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Constants
# ---------------------------------------------------------------------------

DEFAULT_COMPLEXITY = 1.2
MIN_COMPLEXITY = 0.8
MAX_COMPLEXITY = 3.0

MIN_HOURLY_RATE = Decimal("10")
MAX_HOURLY_RATE = Decimal("500")

MIN_DURATION_HOURS = 0.5
MAX_DURATION_HOURS = 2000.0

MIN_DESCRIPTION_LENGTH = 10

MATERIALS_RATIO = Decimal("0.30")
MARKUP_RATIO = Decimal("0.15")
BAND_LOW = Decimal("0.85")
BAND_HIGH = Decimal("1.15")

MODEL_MAX_TOKENS = 10
MODEL_TEMPERATURE = 0.3

BASE_HOURS_BY_JOB_TYPE: dict[str, float] = {
    "plumbing": 4,
    "electrical": 6,
    "carpentry": 8,
    "painting": 6,
    "roofing": 12,
    "flooring": 10,
    "tiling": 8,
    "landscaping": 16,
    "renovation": 24,
    "installation": 4,
}
DEFAULT_BASE_HOURS = 8.0

_SYSTEM_PROMPT = (
    "You are an expert construction and trade work analyst. Analyse job "
    "complexity and return only a numeric complexity factor between 0.8 and 3.0."
)

_NUMBER_RE = re.compile(r"\d+(?:\.\d+)?")


@dataclass(frozen=True)
class PricingBreakdown:
    labour: Decimal
    materials: Decimal
    markup: Decimal


@dataclass(frozen=True)
class PricingSuggestion:
    suggested_total: Decimal
    min_price: Decimal
    max_price: Decimal
    complexity_factor: float
    estimated_hours: float
    confidence: float
    breakdown: PricingBreakdown
    reasoning: str
    source: str
    warnings: list[str] = field(default_factory=list)


# ---------------------------------------------------------------------------
# Heuristics
# ---------------------------------------------------------------------------

def estimate_duration(job_description: str, job_type: str) -> float:
    """Rough hours for a job from its type and a few size keywords."""
    text = job_description.lower()
    hours = float(BASE_HOURS_BY_JOB_TYPE.get(job_type.lower(), DEFAULT_BASE_HOURS))

    if "small" in text or "minor" in text:
        hours *= 0.5
    elif "large" in text or "major" in text:
        hours *= 2
    elif "complete" in text or "full" in text:
        hours *= 1.5

    return max(MIN_DURATION_HOURS, min(hours, MAX_DURATION_HOURS))


def clamp_complexity(value: float) -> float:
    return max(MIN_COMPLEXITY, min(value, MAX_COMPLEXITY))


def calculate_breakdown(hourly_rate: Decimal, hours: float, complexity: float) -> PricingBreakdown:
    labour = hourly_rate * Decimal(str(hours)) * Decimal(str(complexity))
    materials = labour * MATERIALS_RATIO
    markup = (labour + materials) * MARKUP_RATIO
    return PricingBreakdown(
        labour=round_money(labour),
        materials=round_money(materials),
        markup=round_money(markup),
    )


def calculate_confidence(
    *,
    job_description: str,
    estimated_duration: Optional[float],
    location: Optional[str],
    complexity: float,
    model_available: bool,
) -> float:
    confidence = 0.7
    if len(job_description) > 50:
        confidence += 0.1
    if estimated_duration:
        confidence += 0.1
    if location:
        confidence += 0.05
    if 1.0 <= complexity <= 2.0:
        confidence += 0.1
    confidence = min(confidence, 1.0)

    if not model_available:
        confidence = max(confidence / 2, 0.1)
    return round(confidence, 2)


def _build_reasoning(job_type: str, hourly_rate: Decimal, hours: float, complexity: float) -> str:
    if complexity < 1.0:
        level = "routine"
    elif complexity < 1.5:
        level = "standard"
    elif complexity < 2.0:
        level = "above-average"
    else:
        level = "high"
    return (
        f"Based on {hours:g} estimated hours of {job_type} work at ${hourly_rate}/hr "
        f"with {level} complexity (factor {complexity:.2f}). Materials are estimated at "
        f"30% of labour and a 15% markup covers overheads."
    )


def _validate(job_description: str, job_type: str, hourly_rate: Decimal) -> None:
    errors: list[FieldError] = []
    if not job_description or len(job_description.strip()) < MIN_DESCRIPTION_LENGTH:
        errors.append(FieldError(
            "job_description",
            f"Job description must be at least {MIN_DESCRIPTION_LENGTH} characters.",
        ))
    if not job_type or not job_type.strip():
        errors.append(FieldError("job_type", "Job type is required."))
    if hourly_rate <= 0 or not (MIN_HOURLY_RATE <= hourly_rate <= MAX_HOURLY_RATE):
        errors.append(FieldError(
            "hourly_rate",
            f"Hourly rate must be between ${MIN_HOURLY_RATE} and ${MAX_HOURLY_RATE}.",
        ))
    if errors:
        raise ValidationError("Invalid pricing request.", errors=errors)


# ---------------------------------------------------------------------------
# Model call
# ---------------------------------------------------------------------------

async def analyze_job_complexity(
    client: httpx.AsyncClient,
    job_description: str,
    job_type: str,
) -> Optional[float]:
    """Ask the configured model for a complexity factor.

    Returns None when no model is configured or the call fails; the caller
    falls back to ``DEFAULT_COMPLEXITY``.
    """
    if not settings.ai_pricing_api_key:
        return None

    prompt = (
        f"Analyse the complexity of this {job_type} job and return a complexity "
        f"factor between {MIN_COMPLEXITY} and {MAX_COMPLEXITY}.\n\n"
        f"Job description: {job_description}\n"
        f"Job type: {job_type}\n\n"
        "Consider technical difficulty, time, materials, safety, site access "
        "and coordination with other trades. Return only the number."
    )
    payload = {
        "model": settings.ai_pricing_model,
        "messages": [
            {"role": "system", "content": _SYSTEM_PROMPT},
            {"role": "user", "content": prompt},
        ],
        "max_tokens": MODEL_MAX_TOKENS,
        "temperature": MODEL_TEMPERATURE,
    }

    try:
        data = await asyncio.wait_for(
            post_with_retry(
                client,
                "AI pricing",
                settings.ai_pricing_api_url,
                settings.ai_pricing_api_key,
                payload,
            ),
            timeout=settings.ai_pricing_timeout_seconds,
        )
    except (MessagingError, asyncio.TimeoutError) as exc:
        logger.warning("AI complexity analysis unavailable for %s job: %s", job_type, exc)
        return None

    try:
        content = data["choices"][0]["message"]["content"]
    except (KeyError, IndexError, TypeError):
        logger.warning("AI complexity response had an unexpected shape: %r", data)
        return None

    match = _NUMBER_RE.search(content or "")
    if match is None:
        logger.warning("AI complexity response was not numeric: %r", content)
        return None

    value = float(match.group())
    if not (MIN_COMPLEXITY <= value <= MAX_COMPLEXITY):
        logger.info("Clamping AI complexity %.2f into %.1f..%.1f", value, MIN_COMPLEXITY, MAX_COMPLEXITY)
    return clamp_complexity(value)


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------

async def get_suggested_pricing(
    client: httpx.AsyncClient,
    *,
    job_description: str,
    job_type: str,
    hourly_rate: Decimal,
    estimated_duration: Optional[float] = None,
    location: Optional[str] = None,
) -> PricingSuggestion:
    """Build a pricing suggestion for a job.

    Raises:
        ValidationError: On a short description, missing job type or an
            hourly rate outside $10..$500.
    """
    hourly_rate = Decimal(str(hourly_rate))
    _validate(job_description, job_type, hourly_rate)

    model_complexity = await analyze_job_complexity(client, job_description, job_type)
    model_available = model_complexity is not None
    complexity = model_complexity if model_available else DEFAULT_COMPLEXITY

    if estimated_duration:
        hours = max(MIN_DURATION_HOURS, min(float(estimated_duration), MAX_DURATION_HOURS))
    else:
        hours = estimate_duration(job_description, job_type)

    breakdown = calculate_breakdown(hourly_rate, hours, complexity)
    total = round_money(breakdown.labour + breakdown.materials + breakdown.markup)

    warnings: list[str] = []
    if not model_available:
        warnings.append("AI analysis unavailable; default complexity used.")

    suggestion = PricingSuggestion(
        suggested_total=total,
        min_price=round_money(total * BAND_LOW),
        max_price=round_money(total * BAND_HIGH),
        complexity_factor=round(complexity, 2),
        estimated_hours=hours,
        confidence=calculate_confidence(
            job_description=job_description,
            estimated_duration=estimated_duration,
            location=location,
            complexity=complexity,
            model_available=model_available,
        ),
        breakdown=breakdown,
        reasoning=_build_reasoning(job_type, hourly_rate, hours, complexity),
        source="ai" if model_available else "heuristic",
        warnings=warnings,
    )

    logger.info(
        "Pricing suggestion for %s job: total=%s complexity=%.2f confidence=%.2f source=%s",
        job_type,
        suggestion.suggested_total,
        complexity,
        suggestion.confidence,
        suggestion.source,
    )
    return suggestion
