"""Sequence definition registry.

Read-only access to versioned sequence definitions and message templates,
plus authoring helpers used by setup and tests. Definitions are never
edited in place: publishing a sequence creates a new version and retires
the previous ones, so step executions that already copied their step
fields are unaffected.

Usage:
    from scoutflow.engine.sequences import SequenceRegistry, seed_default_sequences

    registry = SequenceRegistry(db)
    definition = registry.get_active_sequence("user-1", name="warm_nurture")
"""

from dataclasses import dataclass
from typing import Iterable, Optional, Union

from scoutflow.core.exceptions import TemplateNotFound, ValidationError
from scoutflow.core.logging import get_logger
from scoutflow.db.database import Database
from scoutflow.db.models import (
    Channel,
    ConditionType,
    MessageTemplate,
    SequenceDefinition,
    SequenceStep,
)
from scoutflow.engine.pathways import PATHWAY_POLICIES

logger = get_logger(__name__)

MINUTES_PER_DAY = 24 * 60


@dataclass
class StepSpec:
    """Authoring input for one step of a new sequence version."""

    delay_minutes: int
    template_key: str
    condition_type: Union[str, ConditionType] = ConditionType.ALWAYS
    channel_override: Optional[Union[str, Channel]] = None


# Default bodies for the seeded pathway sequences. Placeholders are
# filled by the template renderer at send time.
DEFAULT_TEMPLATES: dict[str, str] = {
    "hot_close_1": (
        "Hi {{first_name}}! It's {{agent_name}}. You mentioned wanting more for "
        "{{user_goal}}, so I'll be direct: {{product_name}} could be a fit. "
        "Grab a time here: {{booking_link}}"
    ),
    "hot_close_2": (
        "Hi {{first_name}}, any questions about {{product_name}}? Happy to walk you "
        "through {{product_core_benefits}}."
    ),
    "hot_close_3": (
        "{{first_name}}, ready to take the next step? Book a quick call: {{booking_link}}"
    ),
    "warm_nurture_1": (
        "Hi {{first_name}}! Quick story: {{client_example_name}} {{client_pain_point}} "
        "and {{client_result}}. Thought of you."
    ),
    "warm_nurture_2": (
        "Hi {{first_name}}, here's how {{product_name}} works: {{product_core_benefits}}."
    ),
    "warm_nurture_3": (
        "{{first_name}}, would you be open to hearing how this could help with "
        "{{user_goal}}? No pressure."
    ),
    "warm_nurture_4": (
        "Hi {{first_name}}, just checking in. Still curious about {{product_name}}? "
        "- {{agent_name}}"
    ),
    "cold_nurture_1": "Hi {{first_name}}! {{agent_name}} here. Hope your week is going well.",
    "cold_nurture_2": (
        "Hi {{first_name}}, sharing a few tips that helped my clients work toward "
        "{{user_goal}}."
    ),
    "cold_nurture_3": (
        "{{first_name}}, a while back {{client_example_name}} {{client_pain_point}}. "
        "Within {{timeframe}} they {{client_result}}."
    ),
    "cold_nurture_4": (
        "Hi {{first_name}}, some insights on {{product_name}} and what's working now."
    ),
    "cold_nurture_5": (
        "Hi {{first_name}}, is now a good time to talk about {{user_goal}}? "
        "Here's my calendar if so: {{booking_link}}"
    ),
}

# Later steps only go out while the prospect has not replied
_FOLLOW_UP_CONDITION = ConditionType.NO_REPLY


class SequenceRegistry:
    """Read access to sequence definitions and templates."""

    def __init__(self, db: Database):
        self.db = db

    def get_active_sequence(
        self, user_id: str, name: Optional[str] = None
    ) -> Optional[SequenceDefinition]:
        """Newest active definition for the user, optionally by name."""
        return self.db.get_active_sequence(user_id, name=name)

    def get_sequence(self, sequence_id: int) -> Optional[SequenceDefinition]:
        return self.db.get_sequence(sequence_id)

    def get_steps(self, sequence_id: int) -> list[SequenceStep]:
        """Steps ordered by step_order."""
        return self.db.get_sequence_steps(sequence_id)

    def get_template(self, template_key: str) -> MessageTemplate:
        """Look up a template.

        Raises:
            TemplateNotFound: If no template has this key
        """
        template = self.db.get_template(template_key)
        if template is None:
            raise TemplateNotFound(template_key)
        return template


def publish_sequence(
    db: Database,
    user_id: str,
    name: str,
    steps: Iterable[StepSpec],
    default_channel: Union[str, Channel] = Channel.MESSENGER,
) -> SequenceDefinition:
    """Publish a new version of a named sequence.

    Prior versions with the same name are deactivated, never modified
    otherwise. Steps are numbered in the order given.

    Raises:
        ValidationError: If there are no steps or a delay is negative
    """
    specs = list(steps)
    if not specs:
        raise ValidationError(f"Sequence '{name}' must have at least one step")

    definition_steps: list[SequenceStep] = []
    for order, spec in enumerate(specs, start=1):
        if spec.delay_minutes < 0:
            raise ValidationError(f"Step {order} of '{name}' has a negative delay")
        try:
            definition_steps.append(
                SequenceStep(
                    step_order=order,
                    delay_minutes=spec.delay_minutes,
                    condition_type=ConditionType(spec.condition_type),
                    template_key=spec.template_key,
                    channel_override=Channel(spec.channel_override) if spec.channel_override else None,
                )
            )
        except ValueError as e:
            raise ValidationError(f"Step {order} of '{name}': {e}") from e

    with db.transaction():
        version = db.get_latest_sequence_version(user_id, name) + 1
        db.deactivate_sequences(user_id, name)
        sequence_id = db.create_sequence(
            SequenceDefinition(
                user_id=user_id,
                name=name,
                version=version,
                is_active=True,
                default_channel=Channel(default_channel),
                steps=definition_steps,
            )
        )

    published = db.get_sequence(sequence_id)
    assert published is not None
    logger.info(
        "Sequence published",
        extra={"context": {"user_id": user_id, "name": name, "version": version}},
    )
    return published


def seed_default_templates(db: Database) -> int:
    """Store the default message templates. Returns number written."""
    for key, body in DEFAULT_TEMPLATES.items():
        db.upsert_template(MessageTemplate(template_key=key, content=body))
    return len(DEFAULT_TEMPLATES)


def seed_default_sequences(
    db: Database,
    user_id: str,
    default_channel: Union[str, Channel] = Channel.MESSENGER,
) -> list[SequenceDefinition]:
    """Publish hot_close, warm_nurture and cold_nurture for a user.

    Step delays mirror the pathway policy day offsets; the first step of
    each always sends, later ones only while no reply has arrived.
    """
    seed_default_templates(db)

    published: list[SequenceDefinition] = []
    for key, policy in PATHWAY_POLICIES.items():
        specs = [
            StepSpec(
                delay_minutes=step.day * MINUTES_PER_DAY,
                template_key=f"{key}_{i}",
                condition_type=ConditionType.ALWAYS if i == 1 else _FOLLOW_UP_CONDITION,
            )
            for i, step in enumerate(policy.steps, start=1)
        ]
        published.append(publish_sequence(db, user_id, key, specs, default_channel=default_channel))

    return published
