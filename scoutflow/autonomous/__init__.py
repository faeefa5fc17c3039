"""Autonomous operations package.

Modules:
    - orchestrator: Periodic, non-overlapping background tasks
"""
