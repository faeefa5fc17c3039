"""Database package - SQLite store and models.

Modules:
    - database: SQLite connection and operations
    - models: Data models and enumerations
"""

from scoutflow.db.models import (
    AgentProfile,
    Channel,
    ConditionType,
    DeliveryStatus,
    EngagementEvent,
    EngagementEventType,
    EngagementMetrics,
    EngagementStatus,
    LeadTemperature,
    MessageTemplate,
    NurturePathway,
    NurtureStep,
    PersonalityType,
    Prospect,
    ProspectSignals,
    ReferralQuality,
    ScoreSnapshot,
    SequenceDefinition,
    SequenceStep,
    StepExecution,
)

__all__ = [
    # Enums
    "LeadTemperature",
    "ReferralQuality",
    "PersonalityType",
    "ConditionType",
    "Channel",
    "DeliveryStatus",
    "EngagementEventType",
    # Dataclasses
    "Prospect",
    "AgentProfile",
    "EngagementMetrics",
    "ProspectSignals",
    "ScoreSnapshot",
    "NurtureStep",
    "NurturePathway",
    "SequenceStep",
    "SequenceDefinition",
    "MessageTemplate",
    "StepExecution",
    "EngagementEvent",
    "EngagementStatus",
]
