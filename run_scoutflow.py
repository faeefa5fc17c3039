#!/usr/bin/env python3
"""ScoutFlow - Lead scoring and adaptive follow-up scheduling.

Single entry point for the application.

Usage:
    python run_scoutflow.py --init-db                 # Create schema
    python run_scoutflow.py --seed USER_ID            # Default sequences + templates
    python run_scoutflow.py --score 42                # Score one prospect
    python run_scoutflow.py --plan 42 --temperature warm
    python run_scoutflow.py --materialize 42 [--sequence 3]
    python run_scoutflow.py --event 42 reply_received
    python run_scoutflow.py --process-steps           # One processing batch
    python run_scoutflow.py --orchestrator            # Run periodic tasks (headless)
    python run_scoutflow.py --status                  # Readiness report
    python run_scoutflow.py --version
"""

import argparse
import logging
import sys
from datetime import timedelta
from typing import Optional

from scoutflow import __version__
from scoutflow.core.config import get_config, validate_config
from scoutflow.core.exceptions import ScoutFlowError
from scoutflow.core.logging import get_logger, setup_logging


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="ScoutFlow - Lead scoring and adaptive follow-up scheduling"
    )
    parser.add_argument("--version", action="store_true", help="Show version and exit")
    parser.add_argument("--status", action="store_true", help="Show readiness report and exit")
    parser.add_argument("--init-db", action="store_true", help="Create database schema")
    parser.add_argument("--seed", metavar="USER_ID", help="Publish default sequences for a user")
    parser.add_argument("--score", type=int, metavar="PROSPECT_ID", help="Score one prospect")
    parser.add_argument("--plan", type=int, metavar="PROSPECT_ID", help="Score, select pathway, schedule")
    parser.add_argument(
        "--temperature",
        choices=["cold", "warm", "hot"],
        help="Lead temperature for --plan (default: derived from score)",
    )
    parser.add_argument(
        "--materialize", type=int, metavar="PROSPECT_ID", help="Schedule a sequence for a prospect"
    )
    parser.add_argument("--sequence", type=int, metavar="SEQUENCE_ID", help="Sequence for --materialize")
    parser.add_argument(
        "--event",
        nargs=2,
        metavar=("PROSPECT_ID", "EVENT_TYPE"),
        help="Record an engagement event (reply_received, meeting_booked, deal_closed, message_opened)",
    )
    parser.add_argument("--process-steps", action="store_true", help="Process one batch of due steps")
    parser.add_argument(
        "--orchestrator", action="store_true", help="Run periodic background tasks (headless)"
    )
    parser.add_argument("--debug", action="store_true", help="Enable debug logging")
    return parser


def main(argv: Optional[list[str]] = None) -> int:
    """Main entry point for ScoutFlow.

    Returns:
        Exit code (0 = success, non-zero = error)
    """
    args = _build_parser().parse_args(argv)

    if args.version:
        print(f"ScoutFlow v{__version__}")
        return 0

    config = get_config()
    console_level = logging.DEBUG if (args.debug or config.debug) else logging.INFO
    setup_logging(log_dir=config.log_path, console_level=console_level)
    logger = get_logger("main")
    logger.info(f"ScoutFlow v{__version__} starting...")

    issues = validate_config(config)
    for issue in issues:
        if issue.startswith("CRITICAL:"):
            logger.error(f"Configuration: {issue}")
        else:
            logger.warning(f"Configuration issue: {issue}")

    from scoutflow.db.database import Database

    try:
        db = Database()
        db.initialize()
    except ScoutFlowError as e:
        logger.error(f"Failed to initialize database: {e}")
        return 1

    try:
        return _dispatch(args, db, issues)
    except ScoutFlowError as e:
        logger.error(str(e))
        print(f"Error: {e}", file=sys.stderr)
        return 1
    finally:
        db.close()


def _dispatch(args: argparse.Namespace, db, issues: list[str]) -> int:  # type: ignore[no-untyped-def]
    config = get_config()
    logger = get_logger("main")

    if args.status:
        from scoutflow.integrations.channels import create_channel_sender

        sender = create_channel_sender(config)
        counts = db.get_execution_status_counts()
        print(f"\nScoutFlow v{__version__} - Readiness\n")
        print(f"  Database:  {config.db_path}")
        print(f"  Sender:    {type(sender).__name__} (healthy: {sender.health_check()})")
        print("  Step executions:")
        for status, count in counts.items():
            print(f"    {status.value:<11} {count}")
        if issues:
            print(f"\nConfiguration issues ({len(issues)}):")
            for issue in issues:
                print(f"  ! {issue}")
        print()
        return 0

    if args.init_db:
        print(f"Database ready: {db.db_path}")
        return 0

    if args.seed:
        from scoutflow.engine.sequences import seed_default_sequences

        published = seed_default_sequences(db, args.seed)
        for definition in published:
            print(f"  {definition.name} v{definition.version} (id {definition.id}, {len(definition.steps)} steps)")
        return 0

    if args.score is not None:
        from scoutflow.engine.scoring import ScoreCalculator

        result = ScoreCalculator(db).score_prospect(args.score)
        print(f"Prospect {args.score}: {result.final_score} ({result.bucket.value})")
        for tag in result.breakdown.get("explanation_tags", []):
            print(f"  - {tag}")
        for warning in result.warnings:
            print(f"  ! {warning}")
        return 0

    if args.plan is not None:
        from scoutflow.engine.planner import FollowUpPlanner

        plan = FollowUpPlanner(db).plan(args.plan, temperature=args.temperature)
        print(
            f"Prospect {args.plan}: score {plan.score.final_score}, "
            f"pathway {plan.pathway.sequence_key}, next: {plan.pathway.next_action}"
        )
        if plan.missing_sequence:
            print(f"  ! No active '{plan.pathway.sequence_key}' sequence; nothing scheduled")
        elif plan.already_enrolled:
            print("  Already enrolled; schedule unchanged")
        else:
            print(f"  Scheduled {len(plan.executions)} step(s), superseded {plan.superseded}")
        return 0

    if args.materialize is not None:
        from scoutflow.engine.scheduler import StepScheduler

        executions = StepScheduler(db).materialize(args.materialize, sequence_id=args.sequence)
        for execution in executions:
            print(f"  step {execution.step_order}: {execution.channel.value} at {execution.scheduled_for}")
        return 0

    if args.event:
        from scoutflow.engine.engagement import EngagementTracker

        prospect_id, event_type = args.event
        EngagementTracker(db).record_event(int(prospect_id), event_type, source="cli")
        print(f"Recorded {event_type} for prospect {prospect_id}")
        return 0

    if args.process_steps:
        report = _build_processor(db).process_due()
        print(
            f"Processed {report.selected}: sent {report.sent}, skipped {report.skipped}, "
            f"failed {report.failed}, retried {report.retried}"
        )
        return 0

    if args.orchestrator:
        logger.info("Starting orchestrator (headless)...")
        from scoutflow.autonomous.orchestrator import Orchestrator

        orchestrator = Orchestrator()
        _register_orchestrator_tasks(orchestrator, db)
        orchestrator.run_headless()
        return 0

    _build_parser().print_help()
    return 0


def _build_processor(db):  # type: ignore[no-untyped-def]
    from scoutflow.engine.processor import StepProcessor
    from scoutflow.integrations.channels import create_channel_sender

    return StepProcessor(db, create_channel_sender())


def _register_orchestrator_tasks(orchestrator, db) -> None:  # type: ignore[no-untyped-def]
    """Register recurring background tasks.

    Tasks registered:
        - Step processing: every SCOUTFLOW_PROCESS_INTERVAL_MINUTES
        - Bulk rescore: hourly
    """
    config = get_config()
    processor = _build_processor(db)

    orchestrator.register_task(
        "process_steps",
        processor.process_due,
        timedelta(minutes=config.process_interval_minutes),
    )

    def _rescore() -> None:
        from scoutflow.engine.scoring import rescore_all

        rescore_all(db, limit=config.batch_size)

    orchestrator.register_task("rescore", _rescore, timedelta(hours=1))


if __name__ == "__main__":
    sys.exit(main())
