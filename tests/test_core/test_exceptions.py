"""Tests for the exception hierarchy."""

import pytest

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


class TestHierarchy:
    """All custom errors share the ScoutFlowError base."""

    @pytest.mark.parametrize(
        "exc_class",
        [
            ConfigurationError,
            ValidationError,
            DatabaseError,
            IntegrationError,
            SchedulingError,
            TemplateRenderError,
            ConditionEvaluationError,
        ],
    )
    def test_subclass_of_base(self, exc_class):
        assert issubclass(exc_class, ScoutFlowError)

    def test_scheduling_errors(self):
        assert issubclass(NoActiveSequence, SchedulingError)
        assert issubclass(DuplicateMaterialization, SchedulingError)

    def test_delivery_failure_is_integration_error(self):
        assert issubclass(DeliveryFailure, IntegrationError)

    def test_persistence_warning_is_a_warning(self):
        """PersistenceWarning is a warning category, not an error."""
        assert issubclass(PersistenceWarning, UserWarning)
        assert not issubclass(PersistenceWarning, ScoutFlowError)


class TestMessages:
    """Errors carrying identifiers format their messages."""

    def test_prospect_not_found(self):
        err = ProspectNotFound(42)
        assert str(err) == "Prospect not found: 42"
        assert err.prospect_id == 42

    def test_template_not_found(self):
        err = TemplateNotFound("warm_nurture_9")
        assert str(err) == "Template not found: warm_nurture_9"
        assert err.template_key == "warm_nurture_9"

    def test_delivery_failure_defaults(self):
        err = DeliveryFailure("gateway down")
        assert err.retryable is True
        assert err.channel is None

    def test_delivery_failure_not_retryable(self):
        err = DeliveryFailure("no phone", channel="sms", retryable=False)
        assert err.channel == "sms"
        assert err.retryable is False
