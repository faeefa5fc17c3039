"""Follow-up planner.

Runs the full scoring-to-scheduling flow for one prospect:

    score -> temperature -> pathway -> (supersede old plan) -> materialize

A pathway maps onto the user's active sequence definition of the same
name (hot_close, warm_nurture, cold_nurture). When the pathway changes,
pending executions from the previous sequence are superseded so they
never send.
"""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Optional, Union

from scoutflow.core.exceptions import DuplicateMaterialization, PersistenceWarning
from scoutflow.core.logging import get_logger
from scoutflow.db.database import Database
from scoutflow.db.models import LeadTemperature, NurturePathway, StepExecution
from scoutflow.engine.pathways import PathwaySelector
from scoutflow.engine.scheduler import StepScheduler
from scoutflow.engine.scoring import ScoreCalculator, ScoreResult

logger = get_logger(__name__)


@dataclass
class PlanResult:
    """Outcome of planning one prospect.

    Attributes:
        score: Scoring result
        pathway: Selected pathway
        sequence_id: Definition the prospect is enrolled in (None if none)
        executions: Executions created by this run
        superseded: Pending executions cancelled from a previous plan
        already_enrolled: Prospect was already in this sequence
        missing_sequence: Pathway has no active definition for the user
        warnings: Storage warnings from scoring or pathway selection
    """

    score: ScoreResult
    pathway: NurturePathway
    sequence_id: Optional[int] = None
    executions: list[StepExecution] = field(default_factory=list)
    superseded: int = 0
    already_enrolled: bool = False
    missing_sequence: bool = False
    warnings: list[PersistenceWarning] = field(default_factory=list)


class FollowUpPlanner:
    """Scores a prospect and keeps its scheduled outreach in line with the result."""

    def __init__(self, db: Database):
        self.db = db
        self.calculator = ScoreCalculator(db)
        self.selector = PathwaySelector(db)
        self.scheduler = StepScheduler(db)

    def plan(
        self,
        prospect_id: int,
        temperature: Union[str, LeadTemperature, None] = None,
        now: Optional[datetime] = None,
    ) -> PlanResult:
        """Score, select a pathway and schedule its sequence.

        Raises:
            ProspectNotFound: If the prospect does not exist
            ValidationError: If temperature is invalid
        """
        score = self.calculator.score_prospect(prospect_id)
        selection = self.selector.select(prospect_id, temperature, score.final_score, now=now)
        pathway = selection.pathway

        result = PlanResult(
            score=score,
            pathway=pathway,
            warnings=list(score.warnings) + list(selection.warnings),
        )

        definition = self.db.get_active_sequence(pathway.user_id, name=pathway.sequence_key)
        if definition is None or definition.id is None:
            result.missing_sequence = True
            logger.warning(
                "No active sequence for pathway",
                extra={
                    "context": {
                        "prospect_id": prospect_id,
                        "user_id": pathway.user_id,
                        "sequence": pathway.sequence_key,
                    }
                },
            )
            return result

        result.sequence_id = definition.id
        result.superseded = self.scheduler.supersede_pending(prospect_id, keep_sequence_id=definition.id)

        try:
            result.executions = self.scheduler.materialize(prospect_id, definition.id, now=now)
        except DuplicateMaterialization:
            result.already_enrolled = True
            logger.debug(
                "Prospect already enrolled in sequence",
                extra={"context": {"prospect_id": prospect_id, "sequence_id": definition.id}},
            )

        return result
