"""Prospect readiness scoring.

Calculates a 0-100 composite score from five weighted sub-scores:
    - Intent (pain points, opportunity language, decision signals)
    - Financial readiness (income, stability, savings, debt pressure)
    - Engagement behavior (response speed, comments, likes, curiosity)
    - Personality match (agent vs prospect style)
    - Vouch (referral quality)

The formula is fixed and auditable: every snapshot stores the matched
keywords and raw sub-metrics that produced it.

Usage:
    from scoutflow.engine.scoring import compute_score, ScoreCalculator

    result = compute_score(signals, user_personality="driver")
    result = ScoreCalculator(db).score_prospect(prospect_id)
"""

import math
from dataclasses import dataclass, field
from typing import Any, Optional

from scoutflow.core.exceptions import DatabaseError, PersistenceWarning, ProspectNotFound
from scoutflow.core.logging import get_logger
from scoutflow.db.database import Database, utcnow
from scoutflow.db.models import (
    LeadTemperature,
    PersonalityType,
    ProspectSignals,
    ReferralQuality,
    ScoreSnapshot,
)
from scoutflow.engine.signals import KeywordSignalExtractor, SignalExtractor

logger = get_logger(__name__)


# =============================================================================
# WEIGHTS AND TABLES
# =============================================================================


@dataclass(frozen=True)
class ScoreWeights:
    """Composite weights. Total should equal 1.0."""

    intent: float = 0.40
    financial: float = 0.25
    engagement: float = 0.15
    personality: float = 0.10
    vouch: float = 0.10


DEFAULT_WEIGHTS = ScoreWeights()

# (user type, prospect type) -> compatibility
PERSONALITY_MATRIX: dict[PersonalityType, dict[PersonalityType, int]] = {
    PersonalityType.DRIVER: {
        PersonalityType.DRIVER: 100,
        PersonalityType.INFLUENCER: 80,
        PersonalityType.SUPPORTIVE: 60,
        PersonalityType.ANALYTICAL: 50,
    },
    PersonalityType.INFLUENCER: {
        PersonalityType.DRIVER: 80,
        PersonalityType.INFLUENCER: 100,
        PersonalityType.SUPPORTIVE: 90,
        PersonalityType.ANALYTICAL: 60,
    },
    PersonalityType.SUPPORTIVE: {
        PersonalityType.DRIVER: 60,
        PersonalityType.INFLUENCER: 90,
        PersonalityType.SUPPORTIVE: 100,
        PersonalityType.ANALYTICAL: 70,
    },
    PersonalityType.ANALYTICAL: {
        PersonalityType.DRIVER: 50,
        PersonalityType.INFLUENCER: 60,
        PersonalityType.SUPPORTIVE: 70,
        PersonalityType.ANALYTICAL: 100,
    },
}

UNKNOWN_PERSONALITY_SCORE = 50

# Base referral weights, scaled x10 onto the sub-score range then clamped
REFERRAL_BASE: dict[ReferralQuality, int] = {
    ReferralQuality.HOT: 15,
    ReferralQuality.WARM: 10,
    ReferralQuality.COLD: 5,
}
REFERRAL_MULTIPLIER = 10

HOT_THRESHOLD = 80
WARM_THRESHOLD = 50

_SUB_SCORE_TAGS: dict[str, str] = {
    "intent_score": "Strong buying intent",
    "financial_readiness": "Financially ready",
    "engagement_behavior": "Highly engaged prospect",
    "personality_match": "Good personality fit",
    "vouch_score": "Strong referral",
}
_TAG_THRESHOLD = 70
MAX_EXPLANATION_TAGS = 5


@dataclass
class ScoreResult:
    """Result of one scoring run.

    Attributes:
        prospect_id: Scored prospect (None for pure computation)
        intent_score .. vouch_score: Sub-scores 0-100
        final_score: Composite 0-100
        bucket: cold/warm/hot band of the composite
        breakdown: Evidence behind each sub-score
        snapshot_id: Stored snapshot ID (None if not persisted)
        warnings: PersistenceWarning instances if storage failed
    """

    intent_score: float
    financial_readiness: float
    engagement_behavior: float
    personality_match: float
    vouch_score: float
    final_score: int
    bucket: LeadTemperature
    breakdown: dict[str, Any]
    prospect_id: Optional[int] = None
    snapshot_id: Optional[int] = None
    warnings: list[PersistenceWarning] = field(default_factory=list)

    @property
    def persisted(self) -> bool:
        return self.snapshot_id is not None


@dataclass
class RescoreResult:
    """Outcome of a bulk rescore."""

    scored: int = 0
    results: list[ScoreResult] = field(default_factory=list)
    errors: list[str] = field(default_factory=list)


# =============================================================================
# PURE FUNCTIONS
# =============================================================================


def _clamp(value: float, low: float = 0.0, high: float = 100.0) -> float:
    return max(low, min(high, value))


def round_half_up(value: float) -> int:
    """Round to nearest integer, .5 away from zero for positives."""
    return int(math.floor(value + 0.5))


def classify_temperature(score: int) -> LeadTemperature:
    """Band a composite score: >= 80 hot, >= 50 warm, else cold."""
    if score >= HOT_THRESHOLD:
        return LeadTemperature.HOT
    if score >= WARM_THRESHOLD:
        return LeadTemperature.WARM
    return LeadTemperature.COLD


def _parse_personality(value: Optional[str]) -> Optional[PersonalityType]:
    if not value:
        return None
    try:
        return PersonalityType(value.strip().lower())
    except ValueError:
        return None


def personality_match(user_personality: Optional[str], prospect_personality: Optional[str]) -> int:
    """Compatibility of two personality styles (50 when either is unknown)."""
    user_type = _parse_personality(user_personality)
    prospect_type = _parse_personality(prospect_personality)
    if user_type is None or prospect_type is None:
        return UNKNOWN_PERSONALITY_SCORE
    return PERSONALITY_MATRIX[user_type][prospect_type]


def vouch_score(referral_source: Optional[str], referral_quality: Optional[ReferralQuality]) -> float:
    """Referral sub-score. No source scores 0; a missing quality counts as cold."""
    if not referral_source:
        return 0.0
    quality = ReferralQuality(referral_quality) if referral_quality else ReferralQuality.COLD
    return _clamp(REFERRAL_BASE[quality] * REFERRAL_MULTIPLIER)


def _explanation_tags(
    sub_scores: dict[str, float],
    pain_point: float,
    opportunity: float,
    referral_quality: Optional[ReferralQuality],
) -> list[str]:
    tags: list[str] = []

    top = sorted(sub_scores.items(), key=lambda item: item[1], reverse=True)[:3]
    for name, value in top:
        if value >= _TAG_THRESHOLD:
            tags.append(_SUB_SCORE_TAGS[name])

    if pain_point > 0 and opportunity > 0:
        tags.append("Problem-aware + opportunity-minded")

    if referral_quality == ReferralQuality.HOT and "Strong referral" not in tags:
        tags.append("Vouched by a hot referral")

    return tags[:MAX_EXPLANATION_TAGS]


def compute_score(
    signals: ProspectSignals,
    user_personality: Optional[str] = None,
    extractor: Optional[SignalExtractor] = None,
    weights: ScoreWeights = DEFAULT_WEIGHTS,
) -> ScoreResult:
    """Score a signal bundle.

    Pure and deterministic: the same bundle always yields the same result.

    Args:
        signals: Prospect signal bundle
        user_personality: Personality type of the owning user (agent)
        extractor: Signal extractor (defaults to the Taglish keyword extractor)
        weights: Composite weights

    Returns:
        ScoreResult without persistence fields set
    """
    extracted = (extractor or KeywordSignalExtractor()).extract(signals)

    intent = _clamp(0.5 * extracted.pain_point + 0.3 * extracted.opportunity + 0.2 * extracted.decision)

    financial = _clamp(
        0.4 * extracted.income
        + 0.3 * extracted.employment_stability
        + 0.2 * extracted.savings
        - 0.1 * extracted.debt_pressure
    )

    metrics = signals.engagement
    response_term = _clamp((signals.response_speed or 0) / 10)
    comment_term = _clamp(metrics.comments / 10)
    like_term = _clamp(metrics.likes / 20)
    engagement = (response_term + comment_term + like_term + _clamp(extracted.curiosity)) / 4

    personality = float(personality_match(user_personality, signals.personality))
    vouch = vouch_score(signals.referral_source, signals.referral_quality)

    raw = (
        weights.intent * intent
        + weights.financial * financial
        + weights.engagement * engagement
        + weights.personality * personality
        + weights.vouch * vouch
    )
    final_score = int(_clamp(round_half_up(raw)))

    sub_scores = {
        "intent_score": intent,
        "financial_readiness": financial,
        "engagement_behavior": engagement,
        "personality_match": personality,
        "vouch_score": vouch,
    }

    breakdown: dict[str, Any] = {
        "pain_point_indicators": extracted.pain_point_indicators,
        "opportunity_language_count": extracted.opportunity_language_count,
        "decision_signals": extracted.decision_signals,
        "income_keywords": extracted.income_keywords,
        "employment_stability": extracted.employment_stability,
        "debt_pressure": extracted.debt_pressure,
        "avg_response_speed": signals.response_speed or 0,
        "comment_ratio": metrics.comments,
        "like_ratio": metrics.likes,
        "curiosity_markers": extracted.curiosity_markers,
        "personality_type": signals.personality or "unknown",
        "referral_source": signals.referral_source or "none",
        "raw": {
            "pain_point": extracted.pain_point,
            "opportunity": extracted.opportunity,
            "decision": extracted.decision,
            "income": extracted.income,
            "savings": extracted.savings,
            "curiosity": extracted.curiosity,
        },
        "explanation_tags": _explanation_tags(
            sub_scores, extracted.pain_point, extracted.opportunity, signals.referral_quality
        ),
    }

    return ScoreResult(
        intent_score=intent,
        financial_readiness=financial,
        engagement_behavior=engagement,
        personality_match=personality,
        vouch_score=vouch,
        final_score=final_score,
        bucket=classify_temperature(final_score),
        breakdown=breakdown,
    )


# =============================================================================
# DATABASE-BACKED CALCULATOR
# =============================================================================


class ScoreCalculator:
    """Scores stored prospects and appends score snapshots."""

    def __init__(self, db: Database, extractor: Optional[SignalExtractor] = None):
        self.db = db
        self.extractor = extractor or KeywordSignalExtractor()

    def score_prospect(self, prospect_id: int) -> ScoreResult:
        """Score one prospect and persist a snapshot.

        A storage failure does not lose the score: it is logged and a
        PersistenceWarning is attached to the returned result.

        Raises:
            ProspectNotFound: If the prospect does not exist
        """
        prospect = self.db.get_prospect(prospect_id)
        if prospect is None:
            raise ProspectNotFound(prospect_id)

        signals = self.db.get_signals(prospect_id)
        if signals is None:
            logger.debug(
                "No signals stored, scoring empty bundle",
                extra={"context": {"prospect_id": prospect_id}},
            )
            signals = ProspectSignals()

        profile = self.db.get_agent_profile(prospect.user_id)
        user_personality = profile.personality_type if profile else None

        result = compute_score(signals, user_personality=user_personality, extractor=self.extractor)
        result.prospect_id = prospect_id

        snapshot = ScoreSnapshot(
            id=None,
            prospect_id=prospect_id,
            user_id=prospect.user_id,
            intent_score=result.intent_score,
            financial_readiness=result.financial_readiness,
            engagement_behavior=result.engagement_behavior,
            personality_match=result.personality_match,
            vouch_score=result.vouch_score,
            final_score=result.final_score,
            bucket=result.bucket,
            breakdown=result.breakdown,
            created_at=utcnow(),
        )

        try:
            result.snapshot_id = self.db.create_score_snapshot(snapshot)
        except DatabaseError as e:
            logger.warning(
                "Score computed but snapshot not stored",
                extra={"context": {"prospect_id": prospect_id, "error": str(e)}},
            )
            result.warnings.append(PersistenceWarning(f"Score snapshot not stored: {e}"))

        logger.info(
            "Prospect scored",
            extra={
                "context": {
                    "prospect_id": prospect_id,
                    "final_score": result.final_score,
                    "bucket": result.bucket.value,
                }
            },
        )
        return result


def rescore_all(db: Database, user_id: Optional[str] = None, limit: int = 100) -> RescoreResult:
    """Rescore every prospect that has signals.

    Per-prospect failures are recorded and never stop the run.
    """
    calculator = ScoreCalculator(db)
    outcome = RescoreResult()

    for prospect_id in db.get_scorable_prospect_ids(user_id=user_id, limit=limit):
        try:
            outcome.results.append(calculator.score_prospect(prospect_id))
            outcome.scored += 1
        except Exception as e:
            outcome.errors.append(f"Prospect {prospect_id}: {e}")
            logger.error(
                "Rescore failed for prospect",
                extra={"context": {"prospect_id": prospect_id, "error": str(e)}},
            )

    logger.info(
        "Rescore complete",
        extra={"context": {"scored": outcome.scored, "errors": len(outcome.errors)}},
    )
    return outcome
