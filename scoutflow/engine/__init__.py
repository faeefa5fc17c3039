"""Engine package - Business logic layer.

Modules:
    - signals: Keyword dictionaries and signal extraction
    - scoring: Composite readiness score and snapshots
    - pathways: Nurture pathway policy table
    - sequences: Sequence definition registry and defaults
    - scheduler: Sequence materialization into step executions
    - engagement: Engagement event log and status projection
    - templates: Message template rendering
    - processor: Periodic delivery of due step executions
    - planner: Score-to-schedule flow for one prospect
"""

from scoutflow.engine.pathways import PathwaySelector, classify_temperature, select_pathway
from scoutflow.engine.planner import FollowUpPlanner, PlanResult
from scoutflow.engine.processor import ProcessingReport, StepProcessor
from scoutflow.engine.scheduler import StepScheduler
from scoutflow.engine.scoring import ScoreCalculator, ScoreResult, compute_score, rescore_all

__all__ = [
    # Scoring
    "ScoreCalculator",
    "ScoreResult",
    "compute_score",
    "rescore_all",
    # Pathways
    "PathwaySelector",
    "classify_temperature",
    "select_pathway",
    # Scheduling and delivery
    "StepScheduler",
    "StepProcessor",
    "ProcessingReport",
    # Planning
    "FollowUpPlanner",
    "PlanResult",
]
