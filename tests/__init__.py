"""ScoutFlow Test Suite.

Test organization mirrors scoutflow/ structure:
    tests/
    ├── conftest.py          # Shared fixtures
    ├── test_core/           # Config, logging, exceptions
    ├── test_db/             # Database and models
    ├── test_engine/         # Scoring, pathways, scheduling, delivery
    ├── test_integrations/   # Channel senders
    ├── test_autonomous/     # Orchestrator
    └── test_stage/          # Entry-point readiness

Markers:
    - @pytest.mark.slow: Tests taking > 1 second
    - @pytest.mark.integration: Tests requiring external services
    - @pytest.mark.database: Tests requiring database
"""
