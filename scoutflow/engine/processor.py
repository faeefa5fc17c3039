"""Step processor - periodic delivery of due step executions.

One run:
    1. Selects up to ``batch_size`` pending executions that are due
    2. Claims each one (conditional update; lost claims are skipped)
    3. Evaluates the step condition against engagement status
    4. Skips, or renders and sends the message
    5. Records the terminal state: sent, skipped or failed

A failure in one execution never stops the batch. Conditions that cannot
be evaluated skip the step; nothing is sent on doubt.

With ``max_attempts > 1`` a retryable delivery failure schedules a fresh
execution (attempt + 1) after exponential backoff; the last failed
attempt is flagged as dead-lettered.

Usage:
    from scoutflow.engine.processor import StepProcessor

    processor = StepProcessor(db, sender)
    report = processor.process_due()
"""

from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Callable, Optional, Union

from scoutflow.core.config import get_config
from scoutflow.core.exceptions import (
    ConditionEvaluationError,
    DeliveryFailure,
    ProspectNotFound,
    ScoutFlowError,
    TemplateNotFound,
    TemplateRenderError,
)
from scoutflow.core.logging import get_logger
from scoutflow.db.database import DEFAULT_CLAIM_TTL, Database, utcnow
from scoutflow.db.models import ConditionType, EngagementStatus, StepExecution
from scoutflow.engine.engagement import EngagementTracker
from scoutflow.engine.sequences import SequenceRegistry
from scoutflow.engine.templates import build_context, render
from scoutflow.integrations.channels import ChannelSender

logger = get_logger(__name__)

Renderer = Callable[..., str]


@dataclass
class ProcessingReport:
    """Counts from one processing run."""

    selected: int = 0
    claimed: int = 0
    sent: int = 0
    skipped: int = 0
    failed: int = 0
    retried: int = 0
    dead_lettered: int = 0
    lost_claims: int = 0
    errors: list[str] = field(default_factory=list)


def evaluate_condition(condition: Union[str, ConditionType], status: EngagementStatus) -> bool:
    """Whether a step with this condition should send.

    Raises:
        ConditionEvaluationError: Unknown condition type
    """
    try:
        condition = ConditionType(condition)
    except ValueError as e:
        raise ConditionEvaluationError(f"Unknown condition type: {condition!r}") from e

    if condition is ConditionType.ALWAYS:
        return True
    if condition is ConditionType.NO_REPLY:
        return not status.has_any_reply
    if condition is ConditionType.NO_MEETING:
        return not status.has_meeting_scheduled
    if condition is ConditionType.NO_SALE:
        return not status.has_closed_won
    if condition is ConditionType.NO_OPEN:
        return not status.has_opened_message
    raise ConditionEvaluationError(f"Unhandled condition type: {condition.value}")


def _condition_label(condition: Union[str, ConditionType]) -> str:
    return condition.value if isinstance(condition, ConditionType) else str(condition)


class StepProcessor:
    """Processes due step executions in bounded batches."""

    def __init__(
        self,
        db: Database,
        sender: ChannelSender,
        renderer: Optional[Renderer] = None,
        batch_size: Optional[int] = None,
        max_attempts: Optional[int] = None,
        retry_base_minutes: Optional[int] = None,
        claim_ttl: timedelta = DEFAULT_CLAIM_TTL,
    ):
        config = get_config()
        self.db = db
        self.sender = sender
        self.renderer = renderer or render
        self.batch_size = batch_size if batch_size is not None else config.batch_size
        self.max_attempts = max_attempts if max_attempts is not None else config.max_delivery_attempts
        self.retry_base_minutes = (
            retry_base_minutes if retry_base_minutes is not None else config.retry_base_minutes
        )
        self.claim_ttl = claim_ttl
        self._tracker = EngagementTracker(db)
        self._registry = SequenceRegistry(db)

    def process_due(self, now: Optional[datetime] = None) -> ProcessingReport:
        """Process every due pending execution, up to the batch size."""
        now = now or utcnow()
        report = ProcessingReport()

        due = self.db.get_due_executions(now, self.batch_size, claim_ttl=self.claim_ttl)
        report.selected = len(due)

        for execution in due:
            try:
                self._process_one(execution, now, report)
            except Exception as e:
                report.errors.append(f"Execution {execution.id}: {e}")
                logger.error(
                    "Step execution processing error",
                    extra={"context": {"execution_id": execution.id, "error": str(e)}},
                    exc_info=True,
                )

        logger.info(
            "Step processing run complete",
            extra={
                "context": {
                    "selected": report.selected,
                    "sent": report.sent,
                    "skipped": report.skipped,
                    "failed": report.failed,
                    "retried": report.retried,
                    "lost_claims": report.lost_claims,
                }
            },
        )
        return report

    def _process_one(self, execution: StepExecution, now: datetime, report: ProcessingReport) -> None:
        assert execution.id is not None
        if not self.db.claim_execution(execution.id, now, claim_ttl=self.claim_ttl):
            report.lost_claims += 1
            logger.debug(
                "Execution claimed elsewhere",
                extra={"context": {"execution_id": execution.id}},
            )
            return
        report.claimed += 1

        # Claimed rows always end in a terminal state.
        try:
            self._handle_claimed(execution, now, report)
        except Exception as e:
            error = e if isinstance(e, ScoutFlowError) else ScoutFlowError(f"Unexpected error: {e}")
            logger.error(
                "Unexpected error processing claimed step",
                extra={"context": {"execution_id": execution.id, "error": str(e)}},
                exc_info=True,
            )
            self._fail(execution, error, now, report)

    def _handle_claimed(self, execution: StepExecution, now: datetime, report: ProcessingReport) -> None:
        assert execution.id is not None
        condition = _condition_label(execution.condition_type)
        try:
            status = self._tracker.get_status(execution.prospect_id)
            should_send = evaluate_condition(execution.condition_type, status)
            skip_reason = f"Condition not met: {condition}"
        except ConditionEvaluationError as e:
            should_send = False
            skip_reason = f"Condition not met: {condition} ({e})"

        if not should_send:
            if self.db.mark_execution_skipped(execution.id, skip_reason):
                report.skipped += 1
                logger.info(
                    "Step skipped",
                    extra={"context": {"execution_id": execution.id, "reason": skip_reason}},
                )
            return

        try:
            message = self._deliver(execution)
        except (ProspectNotFound, TemplateNotFound, TemplateRenderError, DeliveryFailure) as e:
            self._fail(execution, e, now, report)
            return

        if self.db.mark_execution_sent(execution.id, message, utcnow()):
            report.sent += 1
            logger.info(
                "Step sent",
                extra={
                    "context": {
                        "execution_id": execution.id,
                        "prospect_id": execution.prospect_id,
                        "step_order": execution.step_order,
                        "channel": execution.channel.value,
                    }
                },
            )

    def _deliver(self, execution: StepExecution) -> str:
        """Render and send. Returns the message text that was sent."""
        prospect = self.db.get_prospect(execution.prospect_id)
        if prospect is None:
            raise ProspectNotFound(execution.prospect_id)

        template = self._registry.get_template(execution.template_key)
        agent = self.db.get_agent_profile(prospect.user_id)
        try:
            message = self.renderer(template.content, build_context(prospect, agent))
        except TemplateRenderError:
            raise
        except Exception as e:
            raise TemplateRenderError(f"Cannot render template {execution.template_key}: {e}") from e

        channel = execution.channel
        contact = prospect.contact_for(channel)
        if contact is None:
            raise DeliveryFailure(
                f"No {channel.value} contact for prospect {prospect.id}",
                channel=channel.value,
                retryable=False,
            )

        try:
            outcome = self.sender.send(contact, channel, message)
        except ScoutFlowError as e:
            raise DeliveryFailure(str(e), channel=channel.value) from e
        except Exception as e:
            raise DeliveryFailure(f"Channel send error: {e}", channel=channel.value) from e

        if not outcome.success:
            raise DeliveryFailure(
                outcome.error or "Delivery failed",
                channel=channel.value,
                retryable=outcome.retryable,
            )
        return message

    def _retry_delay(self, attempt: int) -> timedelta:
        return timedelta(minutes=self.retry_base_minutes * (2 ** (attempt - 1)))

    def _fail(
        self,
        execution: StepExecution,
        error: ScoutFlowError,
        now: datetime,
        report: ProcessingReport,
    ) -> None:
        assert execution.id is not None
        retries_enabled = self.max_attempts > 1 and isinstance(error, DeliveryFailure)
        will_retry = retries_enabled and error.retryable and execution.attempt < self.max_attempts  # type: ignore[union-attr]
        dead_letter = retries_enabled and not will_retry

        with self.db.transaction():
            if not self.db.mark_execution_failed(execution.id, str(error), dead_lettered=dead_letter):
                return
            report.failed += 1

            if will_retry:
                retry = StepExecution(
                    prospect_id=execution.prospect_id,
                    user_id=execution.user_id,
                    sequence_id=execution.sequence_id,
                    step_id=execution.step_id,
                    step_order=execution.step_order,
                    attempt=execution.attempt + 1,
                    channel=execution.channel,
                    condition_type=execution.condition_type,
                    template_key=execution.template_key,
                    scheduled_for=now + self._retry_delay(execution.attempt),
                    retry_of=execution.id,
                    created_at=now,
                )
                self.db.create_step_execution(retry)
                report.retried += 1

        if dead_letter:
            report.dead_lettered += 1

        logger.warning(
            "Step failed",
            extra={
                "context": {
                    "execution_id": execution.id,
                    "prospect_id": execution.prospect_id,
                    "attempt": execution.attempt,
                    "error": str(error),
                    "retry_scheduled": will_retry,
                    "dead_lettered": dead_letter,
                }
            },
        )
