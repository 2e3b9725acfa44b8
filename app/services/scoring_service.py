"""
Lead Scoring - rule-based 0-100 lead quality score.

The score is the sum of six independently capped components, clamped to
[0, 100]. Component functions are pure: they read a lead snapshot, an activity
count and a reference time, nothing else. LeadScoringService adds the single
persistence step on top.
"""
import logging
from datetime import datetime, UTC
from decimal import Decimal
from typing import Any, Optional

from app.core.base import coerce_enum
from app.core.config import settings
from app.models.activity import LeadActivity, ActivityType
from app.models.lead import Lead, LeadSource, LeadIntent
from app.repositories.activity_repo import ActivityRepository
from app.repositories.lead_repo import LeadRepository

logger = logging.getLogger(__name__)


WEIGHTS = {
    "engagement": 25,
    "budget": 20,
    "intent": 15,
    "recency": 20,
    "completeness": 10,
    "source_quality": 10,
}

LABELS = {
    "engagement": "Engagement",
    "budget": "Budget",
    "intent": "Intent",
    "recency": "Recency",
    "completeness": "Profile",
    "source_quality": "Source",
}

SOURCE_SCORES = {
    LeadSource.REFERRAL: 10,
    LeadSource.WEBSITE: 8,
    LeadSource.WHATSAPP: 7,
    LeadSource.INSTAGRAM: 6,
    LeadSource.FACEBOOK: 5,
    LeadSource.TIKTOK: 4,
    LeadSource.PORTAL: 3,
    LeadSource.COLD_OUTREACH: 2,
}

INTENT_SCORES = {
    LeadIntent.INVESTOR: 15,
    LeadIntent.END_BUYER: 12,
    LeadIntent.DEVELOPER: 10,
    LeadIntent.RENTER: 5,
}

# (minimum budget in USD, points), checked top-down
BUDGET_TIERS = [
    (1_000_000, 20),
    (500_000, 16),
    (250_000, 12),
    (100_000, 8),
    (50_000, 4),
]
BUDGET_FLOOR_POINTS = 2

# (max whole days since last interaction, points)
RECENCY_TIERS = [
    (1, 20),
    (3, 16),
    (7, 12),
    (14, 8),
    (30, 4),
]

COMPLETENESS_FIELDS = {
    "name": 1,
    "email": 2,
    "phone": 2,
    "intent": 2,
    "budget_min": 1,
    "budget_max": 1,
    "preferences": 1,
}


def _as_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=UTC)
    return value


def engagement_score(activity_count: int) -> int:
    if not activity_count or activity_count <= 0:
        return 0
    return min(WEIGHTS["engagement"], int(activity_count * 1.25))


def budget_score(lead: Any) -> int:
    budget = max(
        Decimal(lead.budget_max or 0),
        Decimal(lead.budget_min or 0),
        Decimal(0),
    )
    if budget <= 0:
        return 0
    for threshold, points in BUDGET_TIERS:
        if budget >= threshold:
            return points
    return BUDGET_FLOOR_POINTS


def intent_score(lead: Any) -> int:
    intent = coerce_enum(LeadIntent, lead.intent)
    return INTENT_SCORES.get(intent, 0)


def recency_score(lead: Any, now: Optional[datetime] = None) -> int:
    last_interaction = lead.last_interaction_at or lead.created_at
    if last_interaction is None:
        return 0

    now = _as_utc(now or datetime.now(UTC))
    elapsed = abs((now - _as_utc(last_interaction)).total_seconds())
    days = int(elapsed // 86400)

    for max_days, points in RECENCY_TIERS:
        if days <= max_days:
            return points
    return 0


def completeness_score(lead: Any) -> int:
    score = 0
    for field, points in COMPLETENESS_FIELDS.items():
        value = getattr(lead, field, None)
        if field == "preferences":
            if isinstance(value, (dict, list)) and value:
                score += points
        elif isinstance(value, str):
            if value.strip():
                score += points
        elif value:
            score += points
    return min(WEIGHTS["completeness"], score)


def source_score(lead: Any) -> int:
    source = coerce_enum(LeadSource, lead.source)
    return SOURCE_SCORES.get(source, 0)


def _components(lead: Any, activity_count: int, now: Optional[datetime]) -> dict[str, int]:
    return {
        "engagement": engagement_score(activity_count),
        "budget": budget_score(lead),
        "intent": intent_score(lead),
        "recency": recency_score(lead, now),
        "completeness": completeness_score(lead),
        "source_quality": source_score(lead),
    }


def calculate_score(lead: Any, activity_count: int = 0, now: Optional[datetime] = None) -> int:
    """Total score for a lead snapshot, always within [0, 100]."""
    total = sum(_components(lead, activity_count, now).values())
    return min(100, max(0, total))


def score_breakdown(lead: Any, activity_count: int = 0, now: Optional[datetime] = None) -> dict:
    """Per-component scores with their caps, plus the clamped total."""
    components = _components(lead, activity_count, now)
    return {
        "total": min(100, max(0, sum(components.values()))),
        "components": {
            name: {
                "score": value,
                "max": WEIGHTS[name],
                "label": LABELS[name],
            }
            for name, value in components.items()
        },
    }


class LeadScoringService:
    """Computes lead scores and persists them through the lead repository."""

    def __init__(self, lead_repo: LeadRepository, activity_repo: ActivityRepository):
        self.lead_repo = lead_repo
        self.activity_repo = activity_repo

    def calculate(self, lead: Lead, activity_count: int, now: Optional[datetime] = None) -> int:
        return calculate_score(lead, activity_count, now)

    async def get_breakdown(self, lead: Lead) -> dict:
        activity_count = await self.activity_repo.count_for_lead(lead.id)
        return score_breakdown(lead, activity_count)

    async def update_score(self, lead: Lead) -> Lead:
        """
        Recompute and store the lead's score.
        Changes of SCORE_ACTIVITY_THRESHOLD points or more are written to the activity log.
        """
        activity_count = await self.activity_repo.count_for_lead(lead.id)
        new_score = self.calculate(lead, activity_count)
        old_score = lead.score or 0

        if new_score == old_score:
            return lead

        changed = await self.lead_repo.set_score(lead, new_score)
        if not changed:
            return lead

        delta = new_score - old_score
        logger.info(f"Lead {lead.id} score {old_score} -> {new_score}")

        if abs(delta) >= settings.SCORE_ACTIVITY_THRESHOLD:
            await self.activity_repo.add(
                LeadActivity(
                    lead_id=lead.id,
                    type=ActivityType.SCORE_UPDATE,
                    title="Score updated",
                    description=f"Lead score changed from {old_score} to {new_score}",
                    details={
                        "old_score": old_score,
                        "new_score": new_score,
                        "change": delta,
                    },
                    created_by="scoring",
                )
            )

        return lead
