"""Sequence materialization.

Turns a sequence definition into one pending step execution per step for
a prospect. Step fields (order, condition, template, channel) are copied
onto each execution so later definition versions never change work that
is already scheduled.

Materialization is all-or-nothing: the executions, the engagement status
record and the definition's started counter are written in a single
transaction.

Usage:
    from scoutflow.engine.scheduler import StepScheduler

    scheduler = StepScheduler(db)
    executions = scheduler.materialize(prospect_id)
"""

from datetime import datetime, timedelta
from typing import Optional

from scoutflow.core.exceptions import DuplicateMaterialization, NoActiveSequence, ProspectNotFound
from scoutflow.core.logging import get_logger
from scoutflow.db.database import Database, utcnow
from scoutflow.db.models import SequenceDefinition, StepExecution

logger = get_logger(__name__)


class StepScheduler:
    """Creates and supersedes step executions."""

    def __init__(self, db: Database):
        self.db = db

    def _resolve_sequence(self, user_id: str, sequence_id: Optional[int]) -> SequenceDefinition:
        if sequence_id is None:
            definition = self.db.get_active_sequence(user_id)
            if definition is None:
                raise NoActiveSequence(f"No active sequence for user {user_id}")
        else:
            definition = self.db.get_sequence(sequence_id)
            if definition is None or definition.user_id != user_id:
                raise NoActiveSequence(f"Sequence {sequence_id} not found for user {user_id}")
            if not definition.is_active:
                raise NoActiveSequence(f"Sequence {sequence_id} is not active")

        if not definition.steps:
            raise NoActiveSequence(f"Sequence {definition.id} has no steps")
        return definition

    def materialize(
        self,
        prospect_id: int,
        sequence_id: Optional[int] = None,
        now: Optional[datetime] = None,
    ) -> list[StepExecution]:
        """Schedule every step of a sequence for a prospect.

        Args:
            prospect_id: Prospect to enroll
            sequence_id: Definition to use (default: owner's newest active one)
            now: Sequence start time (default: current UTC time)

        Returns:
            Created executions in step order

        Raises:
            ProspectNotFound: Prospect does not exist
            NoActiveSequence: No usable definition; nothing is written
            DuplicateMaterialization: Already enrolled; nothing is written
        """
        prospect = self.db.get_prospect(prospect_id)
        if prospect is None:
            raise ProspectNotFound(prospect_id)

        definition = self._resolve_sequence(prospect.user_id, sequence_id)
        assert definition.id is not None
        start = now or utcnow()

        if self.db.count_step_executions(prospect_id, definition.id) > 0:
            raise DuplicateMaterialization(
                f"Sequence {definition.id} already materialized for prospect {prospect_id}"
            )

        executions: list[StepExecution] = []
        with self.db.transaction():
            for step in definition.steps:
                assert step.id is not None
                execution = StepExecution(
                    prospect_id=prospect_id,
                    user_id=prospect.user_id,
                    sequence_id=definition.id,
                    step_id=step.id,
                    step_order=step.step_order,
                    attempt=1,
                    channel=step.channel_override or definition.default_channel,
                    condition_type=step.condition_type,
                    template_key=step.template_key,
                    scheduled_for=start + timedelta(minutes=step.delay_minutes),
                    created_at=start,
                )
                execution.id = self.db.create_step_execution(execution)
                executions.append(execution)

            self.db.init_engagement_status(prospect_id, prospect.user_id)
            self.db.increment_sequence_started(definition.id)

        logger.info(
            "Sequence materialized",
            extra={
                "context": {
                    "prospect_id": prospect_id,
                    "sequence_id": definition.id,
                    "sequence": definition.name,
                    "steps": len(executions),
                }
            },
        )
        return executions

    def supersede_pending(self, prospect_id: int, keep_sequence_id: Optional[int] = None) -> int:
        """Cancel a prospect's pending executions from other sequences.

        Returns:
            Number of executions moved to superseded
        """
        count = self.db.supersede_pending_executions(prospect_id, keep_sequence_id)
        if count:
            logger.info(
                "Pending executions superseded",
                extra={
                    "context": {
                        "prospect_id": prospect_id,
                        "count": count,
                        "kept_sequence_id": keep_sequence_id,
                    }
                },
            )
        return count
