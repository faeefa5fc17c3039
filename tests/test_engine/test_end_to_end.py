"""Full flow: signals -> score -> pathway -> schedule -> deliver."""

from datetime import timedelta

import pytest

from scoutflow.db.database import Database
from scoutflow.db.models import DeliveryStatus, LeadTemperature
from scoutflow.engine.engagement import EngagementTracker
from scoutflow.engine.pathways import PathwaySelector
from scoutflow.engine.processor import StepProcessor
from scoutflow.engine.scheduler import StepScheduler
from scoutflow.engine.scoring import ScoreCalculator
from scoutflow.integrations.channels import DryRunChannelSender
from tests.conftest import NOW, USER_ID


class TestReferredProspectFlow:
    """Hot-referred prospect with extra-income intent and some debt."""

    def test_scores_and_selects(self, populated_db: Database, prospect_id: int):
        score = ScoreCalculator(populated_db).score_prospect(prospect_id)

        assert score.intent_score == pytest.approx(15.0)
        assert score.engagement_behavior == pytest.approx(1.75)
        assert score.personality_match == 50
        assert score.vouch_score == 100
        assert score.final_score == 23
        assert score.bucket is LeadTemperature.COLD

        selection = PathwaySelector(populated_db).select(prospect_id, "warm", score.final_score, now=NOW)
        assert selection.pathway.sequence_key == "cold_nurture"

    def test_warm_sequence_delivery(self, populated_db: Database, prospect_id: int):
        warm = populated_db.get_active_sequence(USER_ID, name="warm_nurture")
        executions = StepScheduler(populated_db).materialize(prospect_id, warm.id, now=NOW)
        assert [e.scheduled_for - NOW for e in executions] == [
            timedelta(days=0),
            timedelta(days=2),
            timedelta(days=5),
            timedelta(days=7),
        ]

        sender = DryRunChannelSender()
        processor = StepProcessor(populated_db, sender)
        report = processor.process_due(now=NOW)

        assert report.sent == 1
        statuses = [e.delivery_status for e in populated_db.get_step_executions(prospect_id)]
        assert statuses == [DeliveryStatus.SENT] + [DeliveryStatus.PENDING] * 3
        assert sender.sent[0][2].startswith("Hi Ana!")

        # Reply before day 2: the remaining no_reply steps are skipped
        EngagementTracker(populated_db).record_event(prospect_id, "reply_received")
        report = processor.process_due(now=NOW + timedelta(days=8))

        assert report.skipped == 3
        assert report.sent == 0
        assert len(sender.sent) == 1
