"""Shared pytest fixtures for ScoutFlow tests.

Fixtures:
    - temp_db: Fresh file-backed SQLite database
    - memory_db: Fresh in-memory SQLite database
    - sample_prospect: Prospect with messenger, sms and email contacts
    - sample_signals: Signal bundle with pain, debt and referral signals
    - sample_agent: Agent profile for template context
    - populated_db: memory_db with agent, prospect, signals, default sequences
    - mock_config: Test configuration with temp paths
"""

from datetime import datetime
from pathlib import Path
from typing import Generator

import pytest

from scoutflow.core.config import Config, reset_config
from scoutflow.db.database import Database
from scoutflow.db.models import (
    AgentProfile,
    EngagementMetrics,
    Prospect,
    ProspectSignals,
    ReferralQuality,
)
from scoutflow.engine.sequences import seed_default_sequences

USER_ID = "agent-001"
NOW = datetime(2026, 3, 2, 9, 0, 0)


@pytest.fixture(autouse=True)
def _isolated_config(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> Generator[None, None, None]:
    """Keep the config singleton and env vars from leaking between tests."""
    for key in (
        "SCOUTFLOW_DB_PATH",
        "SCOUTFLOW_LOG_PATH",
        "SCOUTFLOW_DEBUG",
        "SCOUTFLOW_BATCH_SIZE",
        "SCOUTFLOW_MAX_DELIVERY_ATTEMPTS",
        "SCOUTFLOW_RETRY_BASE_MINUTES",
        "SCOUTFLOW_DRY_RUN",
        "MESSAGING_GATEWAY_URL",
        "MESSAGING_GATEWAY_TOKEN",
    ):
        monkeypatch.delenv(key, raising=False)
    monkeypatch.chdir(tmp_path)
    reset_config()
    yield
    reset_config()


@pytest.fixture
def temp_db(tmp_path: Path) -> Generator[Database, None, None]:
    """Create a temporary database for testing.

    Yields:
        Database connected to temp file, cleaned up after test
    """
    db_path = tmp_path / "test.db"
    db = Database(str(db_path))
    db.initialize()
    yield db
    db.close()


@pytest.fixture
def memory_db() -> Generator[Database, None, None]:
    """Create an in-memory database for fast tests.

    Yields:
        Database using :memory:, no cleanup needed
    """
    db = Database(":memory:")
    db.initialize()
    yield db
    db.close()


@pytest.fixture
def sample_prospect() -> Prospect:
    """Sample Prospect record for testing."""
    return Prospect(
        user_id=USER_ID,
        first_name="Ana",
        last_name="Reyes",
        email="ana.reyes@example.com",
        phone="+639171234567",
        messenger_id="psid-12345",
    )


@pytest.fixture
def sample_signals() -> ProspectSignals:
    """Signals from the reference scenario: extra income, some utang, hot referral."""
    return ProspectSignals(
        bio="looking for extra income, may utang pa rin",
        referral_source="Carla Santos",
        referral_quality=ReferralQuality.HOT,
        response_speed=60,
        engagement=EngagementMetrics(comments=5, likes=10),
    )


@pytest.fixture
def sample_agent() -> AgentProfile:
    """Sample AgentProfile for testing."""
    return AgentProfile(
        user_id=USER_ID,
        agent_name="Joy",
        personality_type="influencer",
        product_name="Kaagapay Plan",
        booking_link="https://cal.example.com/joy",
        user_goal="financial freedom",
    )


@pytest.fixture
def mock_config(tmp_path: Path) -> Config:
    """Test configuration with temp paths."""
    return Config(
        db_path=tmp_path / "test.db",
        log_path=tmp_path / "logs",
        debug=True,
    )


@pytest.fixture
def prospect_id(memory_db: Database, sample_prospect: Prospect) -> int:
    """ID of sample_prospect stored in memory_db."""
    return memory_db.create_prospect(sample_prospect)


@pytest.fixture
def populated_db(
    memory_db: Database,
    prospect_id: int,
    sample_signals: ProspectSignals,
    sample_agent: AgentProfile,
) -> Database:
    """Database pre-populated with sample data.

    Contains:
        - 1 agent profile
        - 1 prospect with the scenario signal bundle
        - default hot_close, warm_nurture and cold_nurture sequences + templates
    """
    memory_db.upsert_agent_profile(sample_agent)
    memory_db.save_signals(prospect_id, sample_signals)
    seed_default_sequences(memory_db, USER_ID)
    return memory_db


# Markers for different test types
def pytest_configure(config):
    """Configure custom markers."""
    config.addinivalue_line(
        "markers", "slow: marks tests as slow (deselect with '-m \"not slow\"')"
    )
    config.addinivalue_line("markers", "integration: marks tests requiring external services")
    config.addinivalue_line("markers", "database: marks tests requiring database")
