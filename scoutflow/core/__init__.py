"""Core package - Configuration, logging, exceptions.

This package provides foundational infrastructure used by all other layers.

Modules:
    - config: Environment and configuration management
    - logging: Structured JSON logging
    - exceptions: Custom exception hierarchy
"""

from scoutflow.core.exceptions import (
    ConditionEvaluationError,
    ConfigurationError,
    DatabaseError,
    DeliveryFailure,
    DuplicateMaterialization,
    IntegrationError,
    NoActiveSequence,
    PersistenceWarning,
    ProspectNotFound,
    SchedulingError,
    ScoutFlowError,
    TemplateNotFound,
    TemplateRenderError,
    ValidationError,
)

__all__ = [
    "ScoutFlowError",
    "ConfigurationError",
    "ValidationError",
    "DatabaseError",
    "IntegrationError",
    "DeliveryFailure",
    "SchedulingError",
    "NoActiveSequence",
    "DuplicateMaterialization",
    "ProspectNotFound",
    "TemplateNotFound",
    "TemplateRenderError",
    "ConditionEvaluationError",
    "PersistenceWarning",
]
