"""Tests for the sequence definition registry (scoutflow/engine/sequences.py)."""

import pytest

from scoutflow.core.exceptions import TemplateNotFound, ValidationError
from scoutflow.db.database import Database
from scoutflow.db.models import Channel, ConditionType
from scoutflow.engine.sequences import (
    DEFAULT_TEMPLATES,
    MINUTES_PER_DAY,
    SequenceRegistry,
    StepSpec,
    publish_sequence,
    seed_default_sequences,
)
from tests.conftest import USER_ID


class TestPublishSequence:
    """Versioned authoring."""

    def test_first_version(self, memory_db: Database):
        definition = publish_sequence(
            memory_db,
            USER_ID,
            "intro",
            [StepSpec(0, "t1"), StepSpec(60, "t2", ConditionType.NO_REPLY, Channel.SMS)],
        )
        assert definition.version == 1
        assert definition.is_active is True
        assert [s.step_order for s in definition.steps] == [1, 2]
        assert definition.steps[1].condition_type is ConditionType.NO_REPLY
        assert definition.steps[1].channel_override is Channel.SMS

    def test_new_version_retires_old(self, memory_db: Database):
        first = publish_sequence(memory_db, USER_ID, "intro", [StepSpec(0, "t1")])
        second = publish_sequence(memory_db, USER_ID, "intro", [StepSpec(0, "t1"), StepSpec(30, "t2")])

        assert second.version == 2
        old = memory_db.get_sequence(first.id)
        assert old.is_active is False
        assert len(old.steps) == 1
        assert memory_db.get_active_sequence(USER_ID, name="intro").id == second.id

    def test_requires_steps(self, memory_db: Database):
        with pytest.raises(ValidationError):
            publish_sequence(memory_db, USER_ID, "empty", [])

    def test_rejects_negative_delay(self, memory_db: Database):
        with pytest.raises(ValidationError):
            publish_sequence(memory_db, USER_ID, "bad", [StepSpec(-5, "t1")])

    def test_rejects_unknown_condition(self, memory_db: Database):
        with pytest.raises(ValidationError):
            publish_sequence(memory_db, USER_ID, "bad", [StepSpec(0, "t1", "no_smile")])
        assert memory_db.get_active_sequence(USER_ID) is None


class TestSeedDefaults:
    """Default pathway sequences."""

    def test_publishes_three_sequences(self, memory_db: Database):
        published = seed_default_sequences(memory_db, USER_ID)
        assert [d.name for d in published] == ["hot_close", "warm_nurture", "cold_nurture"]

    def test_delays_match_pathway_days(self, memory_db: Database):
        seed_default_sequences(memory_db, USER_ID)
        warm = memory_db.get_active_sequence(USER_ID, name="warm_nurture")
        assert [s.delay_minutes // MINUTES_PER_DAY for s in warm.steps] == [0, 2, 5, 7]
        assert warm.steps[0].condition_type is ConditionType.ALWAYS
        assert all(s.condition_type is ConditionType.NO_REPLY for s in warm.steps[1:])

    def test_templates_seeded(self, memory_db: Database):
        seed_default_sequences(memory_db, USER_ID)
        registry = SequenceRegistry(memory_db)
        for definition in (registry.get_active_sequence(USER_ID, name=n) for n in ("hot_close", "cold_nurture")):
            for step in definition.steps:
                assert registry.get_template(step.template_key).content == DEFAULT_TEMPLATES[step.template_key]

    def test_reseeding_creates_new_versions(self, memory_db: Database):
        seed_default_sequences(memory_db, USER_ID)
        again = seed_default_sequences(memory_db, USER_ID)
        assert {d.version for d in again} == {2}


class TestRegistry:
    """Read access."""

    def test_get_steps_ordered(self, memory_db: Database):
        definition = publish_sequence(memory_db, USER_ID, "x", [StepSpec(0, "a"), StepSpec(5, "b")])
        steps = SequenceRegistry(memory_db).get_steps(definition.id)
        assert [s.template_key for s in steps] == ["a", "b"]

    def test_missing_template(self, memory_db: Database):
        with pytest.raises(TemplateNotFound):
            SequenceRegistry(memory_db).get_template("nope")

    def test_missing_sequence(self, memory_db: Database):
        registry = SequenceRegistry(memory_db)
        assert registry.get_sequence(123) is None
        assert registry.get_active_sequence(USER_ID) is None
