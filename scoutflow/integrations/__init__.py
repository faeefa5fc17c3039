"""Integrations package - External service connections.

Modules:
    - base: Abstract base class, retry and rate limiting
    - channels: Channel-sending capability (dry run, messaging gateway)
"""

from scoutflow.integrations.base import IntegrationBase

__all__ = [
    "IntegrationBase",
]
