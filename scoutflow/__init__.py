"""ScoutFlow Source Package.

Lead scoring and adaptive follow-up scheduling engine.

Layers:
    - core: Configuration, logging, exceptions
    - db: Database and models
    - engine: Scoring, pathway selection, sequences, scheduling, processing
    - integrations: Channel-sending capability
    - autonomous: Periodic background operations
"""

__version__ = "0.1.0"
