"""Tests for engagement status (scoutflow/engine/engagement.py)."""

import pytest

from scoutflow.core.exceptions import ProspectNotFound, ValidationError
from scoutflow.db.database import Database
from scoutflow.db.models import EngagementEventType
from scoutflow.engine.engagement import EngagementTracker
from tests.conftest import USER_ID


class TestInitialize:
    """Status record creation."""

    def test_initialize_idempotent(self, memory_db: Database, prospect_id: int):
        tracker = EngagementTracker(memory_db)
        assert tracker.initialize(prospect_id, USER_ID) is True
        assert tracker.initialize(prospect_id, USER_ID) is False

    def test_new_status_all_false(self, memory_db: Database, prospect_id: int):
        tracker = EngagementTracker(memory_db)
        tracker.initialize(prospect_id, USER_ID)
        status = tracker.get_status(prospect_id)
        assert status.initialized is True
        assert not any(
            (
                status.has_any_reply,
                status.has_meeting_scheduled,
                status.has_closed_won,
                status.has_opened_message,
            )
        )

    def test_uninitialized_status(self, memory_db: Database, prospect_id: int):
        status = EngagementTracker(memory_db).get_status(prospect_id)
        assert status.initialized is False
        assert status.has_any_reply is False


class TestRecordEvent:
    """Event log and projection."""

    @pytest.mark.parametrize(
        "event_type,flag",
        [
            ("reply_received", "has_any_reply"),
            ("meeting_booked", "has_meeting_scheduled"),
            ("deal_closed", "has_closed_won"),
            (EngagementEventType.MESSAGE_OPENED, "has_opened_message"),
        ],
    )
    def test_event_sets_flag(self, memory_db: Database, prospect_id: int, event_type, flag):
        tracker = EngagementTracker(memory_db)
        tracker.record_event(prospect_id, event_type, source="test")
        assert getattr(tracker.get_status(prospect_id), flag) is True

    def test_flags_are_monotonic(self, memory_db: Database, prospect_id: int):
        """Once true, a flag stays true whatever happens next."""
        tracker = EngagementTracker(memory_db)
        tracker.record_event(prospect_id, "reply_received")
        tracker.initialize(prospect_id, USER_ID)
        tracker.record_event(prospect_id, "message_opened")
        status = tracker.get_status(prospect_id)
        assert status.has_any_reply is True
        assert status.has_opened_message is True

    def test_event_initializes_status(self, memory_db: Database, prospect_id: int):
        EngagementTracker(memory_db).record_event(prospect_id, "reply_received")
        assert memory_db.is_engagement_initialized(prospect_id)

    def test_unknown_event_type(self, memory_db: Database, prospect_id: int):
        with pytest.raises(ValidationError):
            EngagementTracker(memory_db).record_event(prospect_id, "liked_post")
        assert memory_db.get_engagement_events(prospect_id) == []

    def test_unknown_prospect(self, memory_db: Database):
        with pytest.raises(ProspectNotFound):
            EngagementTracker(memory_db).record_event(777, "reply_received")
