"""Prospect engagement status.

Engagement milestones are appended to an event log by external
subsystems (inbox monitor, calendar, deal tracking). The status flags the
step processor gates on are a projection of that log, so a flag can only
go from False to True.

Usage:
    from scoutflow.engine.engagement import EngagementTracker

    tracker = EngagementTracker(db)
    tracker.record_event(prospect_id, "reply_received", source="messenger")
    status = tracker.get_status(prospect_id)
"""

from typing import Optional, Union

from scoutflow.core.exceptions import ProspectNotFound, ValidationError
from scoutflow.core.logging import get_logger
from scoutflow.db.database import Database, utcnow
from scoutflow.db.models import EngagementEvent, EngagementEventType, EngagementStatus

logger = get_logger(__name__)

_FLAG_FOR_EVENT: dict[EngagementEventType, str] = {
    EngagementEventType.REPLY_RECEIVED: "has_any_reply",
    EngagementEventType.MEETING_BOOKED: "has_meeting_scheduled",
    EngagementEventType.DEAL_CLOSED: "has_closed_won",
    EngagementEventType.MESSAGE_OPENED: "has_opened_message",
}


class EngagementTracker:
    """Engagement event log and status projection."""

    def __init__(self, db: Database):
        self.db = db

    def initialize(self, prospect_id: int, user_id: str) -> bool:
        """Create the status record with all flags false.

        Idempotent; returns True only when the record was created.
        """
        created = self.db.init_engagement_status(prospect_id, user_id)
        if created:
            logger.debug(
                "Engagement status initialized",
                extra={"context": {"prospect_id": prospect_id}},
            )
        return created

    def record_event(
        self,
        prospect_id: int,
        event_type: Union[str, EngagementEventType],
        source: Optional[str] = None,
    ) -> int:
        """Append an engagement milestone.

        Raises:
            ValidationError: Unknown event type
            ProspectNotFound: Unknown prospect
        """
        try:
            etype = EngagementEventType(event_type)
        except ValueError as e:
            raise ValidationError(f"Unknown engagement event type: {event_type!r}") from e

        prospect = self.db.get_prospect(prospect_id)
        if prospect is None:
            raise ProspectNotFound(prospect_id)

        with self.db.transaction():
            self.db.init_engagement_status(prospect_id, prospect.user_id)
            event_id = self.db.create_engagement_event(
                EngagementEvent(
                    prospect_id=prospect_id,
                    event_type=etype,
                    source=source,
                    occurred_at=utcnow(),
                )
            )

        logger.info(
            "Engagement event recorded",
            extra={
                "context": {
                    "prospect_id": prospect_id,
                    "event_type": etype.value,
                    "source": source,
                }
            },
        )
        return event_id

    def get_status(self, prospect_id: int) -> EngagementStatus:
        """Project the event log into status flags.

        A prospect with no record yields all-false flags and
        ``initialized=False``.
        """
        status = EngagementStatus(
            prospect_id=prospect_id,
            initialized=self.db.is_engagement_initialized(prospect_id),
        )
        for event in self.db.get_engagement_events(prospect_id):
            setattr(status, _FLAG_FOR_EVENT[event.event_type], True)
        return status
