"""Tests for sequence materialization (scoutflow/engine/scheduler.py)."""

from datetime import timedelta
from unittest.mock import patch

import pytest

from scoutflow.core.exceptions import (
    DatabaseError,
    DuplicateMaterialization,
    NoActiveSequence,
    ProspectNotFound,
)
from scoutflow.db.database import Database
from scoutflow.db.models import Channel, DeliveryStatus
from scoutflow.engine.scheduler import StepScheduler
from scoutflow.engine.sequences import StepSpec, publish_sequence
from tests.conftest import NOW, USER_ID


def _count_rows(db: Database, table: str) -> int:
    return db._get_connection().execute(f"SELECT COUNT(*) FROM {table}").fetchone()[0]


@pytest.fixture
def three_step(memory_db: Database):
    return publish_sequence(
        memory_db,
        USER_ID,
        "intro",
        [
            StepSpec(0, "t1"),
            StepSpec(60, "t2", "no_reply", Channel.SMS),
            StepSpec(1440, "t3", "no_meeting"),
        ],
    )


class TestMaterialize:
    """One pending execution per step."""

    def test_creates_pending_executions(self, memory_db: Database, prospect_id: int, three_step):
        executions = StepScheduler(memory_db).materialize(prospect_id, now=NOW)

        assert len(executions) == 3
        stored = memory_db.get_step_executions(prospect_id)
        assert [e.step_order for e in stored] == [1, 2, 3]
        assert all(e.delivery_status is DeliveryStatus.PENDING for e in stored)
        assert [e.scheduled_for for e in stored] == [
            NOW,
            NOW + timedelta(minutes=60),
            NOW + timedelta(days=1),
        ]

    def test_copies_step_fields(self, memory_db: Database, prospect_id: int, three_step):
        StepScheduler(memory_db).materialize(prospect_id, now=NOW)
        second = memory_db.get_step_executions(prospect_id)[1]
        assert second.channel is Channel.SMS
        assert second.condition_type.value == "no_reply"
        assert second.template_key == "t2"
        assert second.attempt == 1

    def test_channel_defaults_to_sequence(self, memory_db: Database, prospect_id: int, three_step):
        StepScheduler(memory_db).materialize(prospect_id, now=NOW)
        assert memory_db.get_step_executions(prospect_id)[0].channel is Channel.MESSENGER

    def test_initializes_engagement_and_counter(self, memory_db: Database, prospect_id: int, three_step):
        StepScheduler(memory_db).materialize(prospect_id, now=NOW)
        assert memory_db.is_engagement_initialized(prospect_id)
        assert memory_db.get_sequence(three_step.id).total_started == 1

    def test_explicit_sequence(self, memory_db: Database, prospect_id: int, three_step):
        other = publish_sequence(memory_db, USER_ID, "other", [StepSpec(0, "x")])
        executions = StepScheduler(memory_db).materialize(prospect_id, sequence_id=three_step.id, now=NOW)
        assert {e.sequence_id for e in executions} == {three_step.id}
        assert other.id != three_step.id

    def test_later_definition_changes_do_not_affect_executions(
        self, memory_db: Database, prospect_id: int, three_step
    ):
        StepScheduler(memory_db).materialize(prospect_id, now=NOW)
        publish_sequence(memory_db, USER_ID, "intro", [StepSpec(0, "replacement")])
        assert memory_db.get_step_executions(prospect_id)[0].template_key == "t1"


class TestMaterializeErrors:
    """Aborted materialization writes nothing."""

    def test_missing_prospect(self, memory_db: Database, three_step):
        with pytest.raises(ProspectNotFound):
            StepScheduler(memory_db).materialize(999)

    def test_no_active_sequence(self, memory_db: Database, prospect_id: int):
        with pytest.raises(NoActiveSequence):
            StepScheduler(memory_db).materialize(prospect_id, now=NOW)
        assert _count_rows(memory_db, "step_executions") == 0
        assert not memory_db.is_engagement_initialized(prospect_id)

    def test_inactive_sequence(self, memory_db: Database, prospect_id: int, three_step):
        publish_sequence(memory_db, USER_ID, "intro", [StepSpec(0, "v2")])
        with pytest.raises(NoActiveSequence):
            StepScheduler(memory_db).materialize(prospect_id, sequence_id=three_step.id)
        assert _count_rows(memory_db, "step_executions") == 0

    def test_other_users_sequence(self, memory_db: Database, prospect_id: int):
        foreign = publish_sequence(memory_db, "someone-else", "intro", [StepSpec(0, "t1")])
        with pytest.raises(NoActiveSequence):
            StepScheduler(memory_db).materialize(prospect_id, sequence_id=foreign.id)

    def test_duplicate_rejected(self, memory_db: Database, prospect_id: int, three_step):
        scheduler = StepScheduler(memory_db)
        scheduler.materialize(prospect_id, now=NOW)
        with pytest.raises(DuplicateMaterialization):
            scheduler.materialize(prospect_id, now=NOW + timedelta(hours=1))
        assert _count_rows(memory_db, "step_executions") == 3
        assert memory_db.get_sequence(three_step.id).total_started == 1

    def test_partial_failure_rolls_back(self, memory_db: Database, prospect_id: int, three_step):
        """A failure midway leaves no executions behind."""
        real = memory_db.create_step_execution
        calls = {"n": 0}

        def _fail_on_third(execution):
            calls["n"] += 1
            if calls["n"] == 3:
                raise DatabaseError("disk full")
            return real(execution)

        with patch.object(memory_db, "create_step_execution", side_effect=_fail_on_third):
            with pytest.raises(DatabaseError):
                StepScheduler(memory_db).materialize(prospect_id, now=NOW)

        assert _count_rows(memory_db, "step_executions") == 0
        assert memory_db.get_sequence(three_step.id).total_started == 0


class TestSupersede:
    """Cancelling an outdated plan."""

    def test_supersedes_other_sequences(self, memory_db: Database, prospect_id: int, three_step):
        scheduler = StepScheduler(memory_db)
        scheduler.materialize(prospect_id, now=NOW)
        replacement = publish_sequence(memory_db, USER_ID, "replacement", [StepSpec(0, "r1")])

        assert scheduler.supersede_pending(prospect_id, keep_sequence_id=replacement.id) == 3
        statuses = {e.delivery_status for e in memory_db.get_step_executions(prospect_id)}
        assert statuses == {DeliveryStatus.SUPERSEDED}

    def test_nothing_pending(self, memory_db: Database, prospect_id: int):
        assert StepScheduler(memory_db).supersede_pending(prospect_id) == 0
