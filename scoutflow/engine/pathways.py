"""Nurture pathway selection.

Maps (lead temperature, composite score) to one of three fixed outreach
plans:

    hot and score >= 80   -> hot_close     (3 steps over 2 days)
    warm and score >= 60  -> warm_nurture  (4 steps over 7 days)
    anything else         -> cold_nurture  (5 steps over 21 days)

Timing buckets and content angles are advisory metadata; they never
change which steps run.

Usage:
    from scoutflow.engine.pathways import PathwaySelector, select_pathway

    pathway = select_pathway(prospect_id, "warm", 72)
    pathway = PathwaySelector(db).select(prospect_id, "warm", 72)
"""

from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Optional, Union

from scoutflow.core.exceptions import DatabaseError, PersistenceWarning, ProspectNotFound, ValidationError
from scoutflow.core.logging import get_logger
from scoutflow.db.database import Database, utcnow
from scoutflow.db.models import LeadTemperature, NurturePathway, NurtureStep
from scoutflow.engine.scoring import classify_temperature

logger = get_logger(__name__)

__all__ = [
    "PATHWAY_POLICIES",
    "PathwayPolicy",
    "PathwaySelection",
    "PathwaySelector",
    "classify_temperature",
    "content_angles_for",
    "policy_for",
    "select_pathway",
]


@dataclass(frozen=True)
class PathwayPolicy:
    """One row of the pathway policy table."""

    sequence_key: str
    steps: tuple[NurtureStep, ...]
    next_action: str
    next_action_delay: timedelta


HOT_CLOSE = PathwayPolicy(
    sequence_key="hot_close",
    steps=(
        NurtureStep(0, "Direct pitch", "Present opportunity immediately"),
        NurtureStep(1, "Follow-up", "Answer questions and address concerns"),
        NurtureStep(2, "Close", "Guide to commitment"),
    ),
    next_action="Schedule call or meeting",
    next_action_delay=timedelta(hours=2),
)

WARM_NURTURE = PathwayPolicy(
    sequence_key="warm_nurture",
    steps=(
        NurtureStep(0, "Value touch", "Share success story"),
        NurtureStep(2, "Educational content", "Explain benefits"),
        NurtureStep(5, "Soft pitch", "Introduce opportunity"),
        NurtureStep(7, "Follow-up", "Check interest level"),
    ),
    next_action="Send educational content",
    next_action_delay=timedelta(days=1),
)

COLD_NURTURE = PathwayPolicy(
    sequence_key="cold_nurture",
    steps=(
        NurtureStep(0, "Warm introduction", "Build rapport"),
        NurtureStep(3, "Value content", "Share helpful tips"),
        NurtureStep(7, "Story share", "Personal transformation story"),
        NurtureStep(14, "Educational post", "Industry insights"),
        NurtureStep(21, "Soft inquiry", "Check if timing is right"),
    ),
    next_action="Build rapport with value touch",
    next_action_delay=timedelta(days=3),
)

PATHWAY_POLICIES: dict[str, PathwayPolicy] = {
    p.sequence_key: p for p in (HOT_CLOSE, WARM_NURTURE, COLD_NURTURE)
}

HOT_PATHWAY_MIN_SCORE = 80
WARM_PATHWAY_MIN_SCORE = 60

RECOMMENDED_TIMING: tuple[dict[str, object], ...] = (
    {"step": 1, "timing": "Morning 9-11am"},
    {"step": 2, "timing": "Lunch 12-1pm"},
    {"step": 3, "timing": "Evening 7-9pm"},
)


def _coerce_temperature(temperature: Union[str, LeadTemperature]) -> LeadTemperature:
    try:
        return LeadTemperature(temperature.lower() if isinstance(temperature, str) else temperature)
    except ValueError as e:
        raise ValidationError(f"Unknown lead temperature: {temperature!r}") from e


def policy_for(temperature: Union[str, LeadTemperature], score: int) -> PathwayPolicy:
    """Pick the policy row for a temperature and score."""
    temp = _coerce_temperature(temperature)
    if temp is LeadTemperature.HOT and score >= HOT_PATHWAY_MIN_SCORE:
        return HOT_CLOSE
    if temp is LeadTemperature.WARM and score >= WARM_PATHWAY_MIN_SCORE:
        return WARM_NURTURE
    return COLD_NURTURE


def content_angles_for(score: int) -> list[str]:
    """Suggested messaging angles by score band."""
    if score >= HOT_PATHWAY_MIN_SCORE:
        return ["Direct opportunity presentation", "Financial freedom angle", "Time leverage"]
    if score >= WARM_PATHWAY_MIN_SCORE:
        return ["Success stories", "Industry education", "Problem-solution focus"]
    return ["Value-first content", "Relationship building", "Educational resources"]


def select_pathway(
    prospect_id: int,
    temperature: Union[str, LeadTemperature],
    score: int,
    now: Optional[datetime] = None,
    user_id: str = "",
) -> NurturePathway:
    """Build the nurture pathway for a prospect.

    Pure given ``now``.

    Raises:
        ValidationError: If temperature is not hot, warm or cold
    """
    temp = _coerce_temperature(temperature)
    policy = policy_for(temp, score)
    now = now or utcnow()

    return NurturePathway(
        prospect_id=prospect_id,
        user_id=user_id,
        lead_temperature=temp,
        score=score,
        sequence_key=policy.sequence_key,
        nurture_sequence=[NurtureStep(s.day, s.action, s.content) for s in policy.steps],
        recommended_timing=[dict(t) for t in RECOMMENDED_TIMING],
        content_angles=content_angles_for(score),
        next_action=policy.next_action,
        next_action_date=now + policy.next_action_delay,
        updated_at=now,
    )


@dataclass
class PathwaySelection:
    """A selected pathway plus any storage warnings."""

    pathway: NurturePathway
    warnings: list[PersistenceWarning] = field(default_factory=list)


class PathwaySelector:
    """Selects pathways and replaces the stored one for the prospect."""

    def __init__(self, db: Database):
        self.db = db

    def select(
        self,
        prospect_id: int,
        temperature: Union[str, LeadTemperature, None],
        score: int,
        now: Optional[datetime] = None,
    ) -> PathwaySelection:
        """Select and store the pathway.

        A missing temperature is derived from the score. Storage failure
        is surfaced as a PersistenceWarning, not raised.

        Raises:
            ProspectNotFound: If the prospect does not exist
            ValidationError: If temperature is invalid
        """
        prospect = self.db.get_prospect(prospect_id)
        if prospect is None:
            raise ProspectNotFound(prospect_id)

        if temperature is None:
            temperature = classify_temperature(score)

        pathway = select_pathway(prospect_id, temperature, score, now=now, user_id=prospect.user_id)
        selection = PathwaySelection(pathway=pathway)

        try:
            self.db.upsert_pathway(pathway)
        except DatabaseError as e:
            logger.warning(
                "Pathway selected but not stored",
                extra={"context": {"prospect_id": prospect_id, "error": str(e)}},
            )
            selection.warnings.append(PersistenceWarning(f"Nurture pathway not stored: {e}"))

        logger.info(
            "Nurture pathway selected",
            extra={
                "context": {
                    "prospect_id": prospect_id,
                    "temperature": pathway.lead_temperature.value,
                    "score": score,
                    "sequence": pathway.sequence_key,
                }
            },
        )
        return selection
