"""ScoutFlow Exception Hierarchy.

All custom exceptions inherit from ScoutFlowError.
PersistenceWarning is a warning category, not an error: it is attached to
results whose value was computed but could not be stored.

Exception Hierarchy:
    ScoutFlowError (base)
    ├── ConfigurationError
    ├── ValidationError
    ├── DatabaseError
    ├── IntegrationError
    │   └── DeliveryFailure
    ├── SchedulingError
    │   ├── NoActiveSequence
    │   └── DuplicateMaterialization
    ├── ProspectNotFound
    ├── TemplateNotFound
    ├── TemplateRenderError
    └── ConditionEvaluationError

    UserWarning
    └── PersistenceWarning
"""

from typing import Optional


class ScoutFlowError(Exception):
    """Base exception for all ScoutFlow errors.

    All custom exceptions in ScoutFlow inherit from this class,
    allowing for broad exception handling when needed.
    """

    pass


class ConfigurationError(ScoutFlowError):
    """Configuration is invalid or missing.

    Raised when:
        - Required environment variable is missing
        - Configuration value cannot be parsed
        - Path is not writable
    """

    pass


class ValidationError(ScoutFlowError):
    """Data validation failed.

    Raised when:
        - Required field is missing
        - Enumerated value is unknown (temperature, event type)
        - Business rule validation fails
    """

    pass


class DatabaseError(ScoutFlowError):
    """Database operation failed.

    Raised when:
        - Database file cannot be opened
        - Database is locked
        - Query execution fails
        - Constraint violated
    """

    pass


class IntegrationError(ScoutFlowError):
    """External integration failed.

    Base class for integration-specific errors.
    """

    pass


class DeliveryFailure(IntegrationError):
    """Channel-sending capability could not deliver a message.

    Raised when:
        - Prospect has no contact info for the channel
        - Gateway rejected or timed out on the send
        - Channel is not supported
    """

    def __init__(self, message: str, channel: Optional[str] = None, retryable: bool = True):
        super().__init__(message)
        self.channel = channel
        self.retryable = retryable


class SchedulingError(ScoutFlowError):
    """Sequence materialization failed."""

    pass


class NoActiveSequence(SchedulingError):
    """No usable sequence definition for the prospect's owner.

    Materialization is aborted before any write.
    """

    pass


class DuplicateMaterialization(SchedulingError):
    """Sequence was already materialized for this prospect.

    Rejected by the unique (prospect, sequence, step, attempt) constraint.
    """

    pass


class ProspectNotFound(ScoutFlowError):
    """Prospect does not exist. Aborts that prospect's unit of work only."""

    def __init__(self, prospect_id: int):
        super().__init__(f"Prospect not found: {prospect_id}")
        self.prospect_id = prospect_id


class TemplateNotFound(ScoutFlowError):
    """Message template key has no stored template."""

    def __init__(self, template_key: str):
        super().__init__(f"Template not found: {template_key}")
        self.template_key = template_key


class TemplateRenderError(ScoutFlowError):
    """Template body could not be parsed or rendered."""

    pass


class ConditionEvaluationError(ScoutFlowError):
    """Step condition could not be evaluated.

    Always treated as condition-false: the step is skipped, never sent.
    """

    pass


class PersistenceWarning(UserWarning):
    """Value was computed but could not be durably stored."""

    pass
