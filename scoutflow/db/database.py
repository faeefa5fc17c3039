"""SQLite database connection and operations for ScoutFlow.

Provides:
    - Connection management with WAL mode
    - Schema creation
    - CRUD operations for prospects, signals, snapshots, pathways,
      sequences, templates, step executions and engagement events
    - Conditional-update state transitions for step executions

Timestamps are stored as fixed-width naive-UTC text so that lexical order
matches chronological order in range queries.

Usage:
    from scoutflow.db.database import Database

    db = Database()
    db.initialize()

    prospect_id = db.create_prospect(Prospect(user_id="u1", first_name="Ana"))
"""

import json
import sqlite3
from contextlib import contextmanager
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Any, Iterator, Optional

from scoutflow.core.config import get_config
from scoutflow.core.exceptions import DatabaseError, DuplicateMaterialization
from scoutflow.core.logging import get_logger
from scoutflow.db.models import (
    AgentProfile,
    Channel,
    ConditionType,
    DeliveryStatus,
    EngagementEvent,
    EngagementEventType,
    LeadTemperature,
    MessageTemplate,
    NurturePathway,
    NurtureStep,
    Prospect,
    ProspectSignals,
    ScoreSnapshot,
    SequenceDefinition,
    SequenceStep,
    StepExecution,
)

logger = get_logger(__name__)


SCHEMA_VERSION = 1

_TS_FORMAT = "%Y-%m-%d %H:%M:%S.%f"

# Claims older than this are considered abandoned by a crashed run
DEFAULT_CLAIM_TTL = timedelta(minutes=30)


def utcnow() -> datetime:
    """Current time as naive UTC."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def to_db_timestamp(value: Optional[datetime]) -> Optional[str]:
    """Format a datetime for storage (aware values are converted to UTC)."""
    if value is None:
        return None
    if value.tzinfo is not None:
        value = value.astimezone(timezone.utc).replace(tzinfo=None)
    return value.strftime(_TS_FORMAT)


def from_db_timestamp(value: Optional[str]) -> Optional[datetime]:
    """Parse a stored timestamp (also accepts SQLite CURRENT_TIMESTAMP text)."""
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return value
    return datetime.fromisoformat(value)


class Database:
    """SQLite database manager.

    Attributes:
        db_path: Path to database file
    """

    def __init__(self, db_path: Optional[str] = None):
        """Initialize database.

        Args:
            db_path: Path to database file. Use ":memory:" for in-memory.
                    Defaults to config path.
        """
        if db_path is None:
            self.db_path = str(get_config().db_path)
        else:
            self.db_path = db_path

        self._conn: Optional[sqlite3.Connection] = None
        self._tx_depth = 0

    def _get_connection(self) -> sqlite3.Connection:
        """Get or create database connection."""
        if self._conn is None:
            try:
                if self.db_path != ":memory:":
                    Path(self.db_path).parent.mkdir(parents=True, exist_ok=True)

                # The orchestrator thread reuses this connection; tasks never overlap.
                self._conn = sqlite3.connect(self.db_path, check_same_thread=False)
                self._conn.row_factory = sqlite3.Row
                self._conn.execute("PRAGMA foreign_keys = ON")

                if self.db_path != ":memory:":
                    self._conn.execute("PRAGMA journal_mode = WAL")
                    self._conn.execute("PRAGMA busy_timeout = 5000")

            except sqlite3.Error as e:
                raise DatabaseError(f"Cannot connect to database: {e}") from e

        return self._conn

    @staticmethod
    def _lastrowid(cursor: sqlite3.Cursor) -> int:
        """Extract lastrowid from cursor (always set after INSERT in SQLite)."""
        row_id = cursor.lastrowid
        assert row_id is not None, "lastrowid was None after INSERT"
        return row_id

    def close(self) -> None:
        """Close database connection."""
        if self._conn is not None:
            self._conn.close()
            self._conn = None

    def initialize(self) -> None:
        """Create schema if not exists."""
        conn = self._get_connection()

        try:
            conn.executescript(self._get_schema_ddl())
            conn.commit()
            logger.info("Database initialized", extra={"context": {"path": self.db_path}})
        except sqlite3.Error as e:
            raise DatabaseError(f"Cannot initialize database: {e}") from e

    def _get_schema_ddl(self) -> str:
        """Return complete schema DDL."""
        return """
        -- Prospects (identity view of the CRM's signal store)
        CREATE TABLE IF NOT EXISTS prospects (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            user_id TEXT NOT NULL,
            first_name TEXT NOT NULL DEFAULT '',
            last_name TEXT NOT NULL DEFAULT '',
            email TEXT,
            phone TEXT,
            messenger_id TEXT,
            created_at TEXT NOT NULL
        );

        CREATE INDEX IF NOT EXISTS idx_prospects_user ON prospects(user_id);

        -- Agent profiles (per owning user)
        CREATE TABLE IF NOT EXISTS agent_profiles (
            user_id TEXT PRIMARY KEY,
            agent_name TEXT,
            personality_type TEXT,
            product_name TEXT,
            booking_link TEXT,
            user_goal TEXT
        );

        -- Prospect signal bundles
        CREATE TABLE IF NOT EXISTS prospect_signals (
            prospect_id INTEGER PRIMARY KEY,
            signals TEXT NOT NULL,
            updated_at TEXT NOT NULL,
            FOREIGN KEY (prospect_id) REFERENCES prospects(id) ON DELETE CASCADE
        );

        -- Score snapshots (append-only)
        CREATE TABLE IF NOT EXISTS score_snapshots (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            prospect_id INTEGER NOT NULL,
            user_id TEXT NOT NULL,
            intent_score REAL NOT NULL,
            financial_readiness REAL NOT NULL,
            engagement_behavior REAL NOT NULL,
            personality_match REAL NOT NULL,
            vouch_score REAL NOT NULL,
            final_score INTEGER NOT NULL CHECK (final_score BETWEEN 0 AND 100),
            bucket TEXT NOT NULL,
            breakdown TEXT NOT NULL,
            created_at TEXT NOT NULL,
            FOREIGN KEY (prospect_id) REFERENCES prospects(id) ON DELETE CASCADE
        );

        CREATE INDEX IF NOT EXISTS idx_snapshots_prospect ON score_snapshots(prospect_id, id);

        -- Nurture pathways (one current row per prospect)
        CREATE TABLE IF NOT EXISTS nurture_pathways (
            prospect_id INTEGER PRIMARY KEY,
            user_id TEXT NOT NULL,
            lead_temperature TEXT NOT NULL,
            score INTEGER NOT NULL,
            sequence_key TEXT NOT NULL,
            nurture_sequence TEXT NOT NULL,
            recommended_timing TEXT NOT NULL,
            content_angles TEXT NOT NULL,
            next_action TEXT NOT NULL,
            next_action_date TEXT,
            updated_at TEXT NOT NULL,
            FOREIGN KEY (prospect_id) REFERENCES prospects(id) ON DELETE CASCADE
        );

        -- Sequence definitions (versioned, never edited once referenced)
        CREATE TABLE IF NOT EXISTS sequence_definitions (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            user_id TEXT NOT NULL,
            name TEXT NOT NULL,
            version INTEGER NOT NULL DEFAULT 1,
            is_active BOOLEAN NOT NULL DEFAULT 1,
            default_channel TEXT NOT NULL DEFAULT 'messenger',
            total_started INTEGER NOT NULL DEFAULT 0,
            created_at TEXT NOT NULL,
            UNIQUE(user_id, name, version)
        );

        CREATE INDEX IF NOT EXISTS idx_sequences_active
            ON sequence_definitions(user_id, is_active);

        CREATE TABLE IF NOT EXISTS sequence_steps (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            sequence_id INTEGER NOT NULL,
            step_order INTEGER NOT NULL,
            delay_minutes INTEGER NOT NULL DEFAULT 0,
            condition_type TEXT NOT NULL DEFAULT 'always',
            template_key TEXT NOT NULL,
            channel_override TEXT,
            FOREIGN KEY (sequence_id) REFERENCES sequence_definitions(id) ON DELETE CASCADE,
            UNIQUE(sequence_id, step_order)
        );

        -- Message templates
        CREATE TABLE IF NOT EXISTS message_templates (
            template_key TEXT PRIMARY KEY,
            content TEXT NOT NULL,
            created_at TEXT NOT NULL
        );

        -- Step executions
        CREATE TABLE IF NOT EXISTS step_executions (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            prospect_id INTEGER NOT NULL,
            user_id TEXT NOT NULL,
            sequence_id INTEGER NOT NULL,
            step_id INTEGER NOT NULL,
            step_order INTEGER NOT NULL,
            attempt INTEGER NOT NULL DEFAULT 1,
            channel TEXT NOT NULL,
            condition_type TEXT NOT NULL,
            template_key TEXT NOT NULL,
            delivery_status TEXT NOT NULL DEFAULT 'pending',
            scheduled_for TEXT NOT NULL,
            claimed_at TEXT,
            message_content TEXT,
            sent_at TEXT,
            skip_reason TEXT,
            error_message TEXT,
            dead_lettered BOOLEAN NOT NULL DEFAULT 0,
            retry_of INTEGER,
            created_at TEXT NOT NULL,
            FOREIGN KEY (prospect_id) REFERENCES prospects(id) ON DELETE CASCADE,
            FOREIGN KEY (sequence_id) REFERENCES sequence_definitions(id),
            FOREIGN KEY (step_id) REFERENCES sequence_steps(id),
            FOREIGN KEY (retry_of) REFERENCES step_executions(id),
            UNIQUE(prospect_id, sequence_id, step_order, attempt)
        );

        CREATE INDEX IF NOT EXISTS idx_executions_due
            ON step_executions(delivery_status, scheduled_for);
        CREATE INDEX IF NOT EXISTS idx_executions_prospect
            ON step_executions(prospect_id, sequence_id);

        -- Engagement status (initialization marker) and event log
        CREATE TABLE IF NOT EXISTS prospect_engagement_status (
            prospect_id INTEGER PRIMARY KEY,
            user_id TEXT NOT NULL,
            initialized_at TEXT NOT NULL,
            FOREIGN KEY (prospect_id) REFERENCES prospects(id) ON DELETE CASCADE
        );

        CREATE TABLE IF NOT EXISTS engagement_events (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            prospect_id INTEGER NOT NULL,
            event_type TEXT NOT NULL,
            source TEXT,
            occurred_at TEXT NOT NULL,
            FOREIGN KEY (prospect_id) REFERENCES prospects(id) ON DELETE CASCADE
        );

        CREATE INDEX IF NOT EXISTS idx_events_prospect ON engagement_events(prospect_id);

        -- Schema Version
        CREATE TABLE IF NOT EXISTS schema_version (
            version INTEGER PRIMARY KEY,
            applied_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
        );

        INSERT OR IGNORE INTO schema_version (version) VALUES (1);
        """

    # =========================================================================
    # TRANSACTIONS
    # =========================================================================

    @contextmanager
    def transaction(self) -> Iterator[sqlite3.Connection]:
        """Group writes into one atomic unit.

        Nested use joins the outer transaction. Any exception rolls back
        everything written since the outermost ``transaction()`` began.
        """
        conn = self._get_connection()
        if self._tx_depth > 0:
            self._tx_depth += 1
            try:
                yield conn
            finally:
                self._tx_depth -= 1
            return

        self._tx_depth = 1
        try:
            yield conn
            conn.commit()
        except BaseException:
            conn.rollback()
            raise
        finally:
            self._tx_depth = 0

    def _write(self, sql: str, params: tuple = (), action: str = "write") -> sqlite3.Cursor:
        """Execute a write, committing unless inside ``transaction()``."""
        conn = self._get_connection()
        try:
            cursor = conn.execute(sql, params)
            if self._tx_depth == 0:
                conn.commit()
            return cursor
        except sqlite3.Error as e:
            if self._tx_depth == 0:
                conn.rollback()
            raise DatabaseError(f"Failed to {action}: {e}") from e

    def _fetchone(self, sql: str, params: tuple = ()) -> Optional[sqlite3.Row]:
        try:
            return self._get_connection().execute(sql, params).fetchone()
        except sqlite3.Error as e:
            raise DatabaseError(f"Query failed: {e}") from e

    def _fetchall(self, sql: str, params: tuple = ()) -> list[sqlite3.Row]:
        try:
            return self._get_connection().execute(sql, params).fetchall()
        except sqlite3.Error as e:
            raise DatabaseError(f"Query failed: {e}") from e

    # =========================================================================
    # ROW-TO-MODEL HELPERS
    # =========================================================================

    def _row_to_prospect(self, row: sqlite3.Row) -> Prospect:
        return Prospect(
            id=row["id"],
            user_id=row["user_id"],
            first_name=row["first_name"] or "",
            last_name=row["last_name"] or "",
            email=row["email"],
            phone=row["phone"],
            messenger_id=row["messenger_id"],
            created_at=from_db_timestamp(row["created_at"]),
        )

    def _row_to_snapshot(self, row: sqlite3.Row) -> ScoreSnapshot:
        return ScoreSnapshot(
            id=row["id"],
            prospect_id=row["prospect_id"],
            user_id=row["user_id"],
            intent_score=row["intent_score"],
            financial_readiness=row["financial_readiness"],
            engagement_behavior=row["engagement_behavior"],
            personality_match=row["personality_match"],
            vouch_score=row["vouch_score"],
            final_score=row["final_score"],
            bucket=LeadTemperature(row["bucket"]),
            breakdown=json.loads(row["breakdown"]),
            created_at=from_db_timestamp(row["created_at"]),  # type: ignore[arg-type]
        )

    def _row_to_pathway(self, row: sqlite3.Row) -> NurturePathway:
        return NurturePathway(
            prospect_id=row["prospect_id"],
            user_id=row["user_id"],
            lead_temperature=LeadTemperature(row["lead_temperature"]),
            score=row["score"],
            sequence_key=row["sequence_key"],
            nurture_sequence=[NurtureStep(**s) for s in json.loads(row["nurture_sequence"])],
            recommended_timing=json.loads(row["recommended_timing"]),
            content_angles=json.loads(row["content_angles"]),
            next_action=row["next_action"],
            next_action_date=from_db_timestamp(row["next_action_date"]),
            updated_at=from_db_timestamp(row["updated_at"]),
        )

    def _row_to_sequence(self, row: sqlite3.Row) -> SequenceDefinition:
        return SequenceDefinition(
            id=row["id"],
            user_id=row["user_id"],
            name=row["name"],
            version=row["version"],
            is_active=bool(row["is_active"]),
            default_channel=Channel(row["default_channel"]),
            total_started=row["total_started"] or 0,
            created_at=from_db_timestamp(row["created_at"]),
        )

    def _row_to_step(self, row: sqlite3.Row) -> SequenceStep:
        override = row["channel_override"]
        return SequenceStep(
            id=row["id"],
            sequence_id=row["sequence_id"],
            step_order=row["step_order"],
            delay_minutes=row["delay_minutes"],
            condition_type=ConditionType(row["condition_type"]),
            template_key=row["template_key"],
            channel_override=Channel(override) if override else None,
        )

    def _row_to_execution(self, row: sqlite3.Row) -> StepExecution:
        # Stored condition may predate the current enum; keep raw text for the evaluator.
        condition = row["condition_type"]
        try:
            condition = ConditionType(condition)
        except ValueError:
            pass

        return StepExecution(
            id=row["id"],
            prospect_id=row["prospect_id"],
            user_id=row["user_id"],
            sequence_id=row["sequence_id"],
            step_id=row["step_id"],
            step_order=row["step_order"],
            attempt=row["attempt"],
            channel=Channel(row["channel"]),
            condition_type=condition,
            template_key=row["template_key"],
            delivery_status=DeliveryStatus(row["delivery_status"]),
            scheduled_for=from_db_timestamp(row["scheduled_for"]),
            claimed_at=from_db_timestamp(row["claimed_at"]),
            message_content=row["message_content"],
            sent_at=from_db_timestamp(row["sent_at"]),
            skip_reason=row["skip_reason"],
            error_message=row["error_message"],
            dead_lettered=bool(row["dead_lettered"]),
            retry_of=row["retry_of"],
            created_at=from_db_timestamp(row["created_at"]),
        )

    # =========================================================================
    # PROSPECT OPERATIONS
    # =========================================================================

    def create_prospect(self, prospect: Prospect) -> int:
        """Create a prospect record."""
        cursor = self._write(
            """INSERT INTO prospects
               (user_id, first_name, last_name, email, phone, messenger_id, created_at)
               VALUES (?, ?, ?, ?, ?, ?, ?)""",
            (
                prospect.user_id,
                prospect.first_name,
                prospect.last_name,
                prospect.email,
                prospect.phone,
                prospect.messenger_id,
                to_db_timestamp(prospect.created_at or utcnow()),
            ),
            action="create prospect",
        )
        prospect_id = self._lastrowid(cursor)
        logger.info(
            "Prospect created",
            extra={"context": {"prospect_id": prospect_id, "user_id": prospect.user_id}},
        )
        return prospect_id

    def get_prospect(self, prospect_id: int) -> Optional[Prospect]:
        """Get prospect by ID."""
        row = self._fetchone("SELECT * FROM prospects WHERE id = ?", (prospect_id,))
        if row is None:
            return None
        return self._row_to_prospect(row)

    def get_scorable_prospect_ids(self, user_id: Optional[str] = None, limit: int = 100) -> list[int]:
        """IDs of prospects that have a signal bundle, oldest first."""
        sql = """SELECT p.id FROM prospects p
                 JOIN prospect_signals s ON s.prospect_id = p.id"""
        params: list[Any] = []
        if user_id is not None:
            sql += " WHERE p.user_id = ?"
            params.append(user_id)
        sql += " ORDER BY p.id LIMIT ?"
        params.append(limit)
        return [row["id"] for row in self._fetchall(sql, tuple(params))]

    # =========================================================================
    # AGENT PROFILES
    # =========================================================================

    def upsert_agent_profile(self, profile: AgentProfile) -> None:
        """Create or replace the profile for a user."""
        self._write(
            """INSERT INTO agent_profiles
               (user_id, agent_name, personality_type, product_name, booking_link, user_goal)
               VALUES (?, ?, ?, ?, ?, ?)
               ON CONFLICT(user_id) DO UPDATE SET
                   agent_name = excluded.agent_name,
                   personality_type = excluded.personality_type,
                   product_name = excluded.product_name,
                   booking_link = excluded.booking_link,
                   user_goal = excluded.user_goal""",
            (
                profile.user_id,
                profile.agent_name,
                profile.personality_type,
                profile.product_name,
                profile.booking_link,
                profile.user_goal,
            ),
            action="save agent profile",
        )

    def get_agent_profile(self, user_id: str) -> Optional[AgentProfile]:
        """Get profile for a user, or None."""
        row = self._fetchone("SELECT * FROM agent_profiles WHERE user_id = ?", (user_id,))
        if row is None:
            return None
        return AgentProfile(
            user_id=row["user_id"],
            agent_name=row["agent_name"],
            personality_type=row["personality_type"],
            product_name=row["product_name"],
            booking_link=row["booking_link"],
            user_goal=row["user_goal"],
        )

    # =========================================================================
    # SIGNALS
    # =========================================================================

    def save_signals(self, prospect_id: int, signals: ProspectSignals) -> None:
        """Store the latest signal bundle for a prospect."""
        self._write(
            """INSERT INTO prospect_signals (prospect_id, signals, updated_at)
               VALUES (?, ?, ?)
               ON CONFLICT(prospect_id) DO UPDATE SET
                   signals = excluded.signals,
                   updated_at = excluded.updated_at""",
            (prospect_id, json.dumps(signals.to_dict()), to_db_timestamp(utcnow())),
            action="save signals",
        )

    def get_signals(self, prospect_id: int) -> Optional[ProspectSignals]:
        """Get the signal bundle for a prospect, or None."""
        row = self._fetchone(
            "SELECT signals FROM prospect_signals WHERE prospect_id = ?", (prospect_id,)
        )
        if row is None:
            return None
        return ProspectSignals.from_dict(json.loads(row["signals"]))

    # =========================================================================
    # SCORE SNAPSHOTS
    # =========================================================================

    def create_score_snapshot(self, snapshot: ScoreSnapshot) -> int:
        """Append a score snapshot. Snapshots are never updated."""
        cursor = self._write(
            """INSERT INTO score_snapshots
               (prospect_id, user_id, intent_score, financial_readiness,
                engagement_behavior, personality_match, vouch_score,
                final_score, bucket, breakdown, created_at)
               VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)""",
            (
                snapshot.prospect_id,
                snapshot.user_id,
                snapshot.intent_score,
                snapshot.financial_readiness,
                snapshot.engagement_behavior,
                snapshot.personality_match,
                snapshot.vouch_score,
                snapshot.final_score,
                snapshot.bucket.value,
                json.dumps(snapshot.breakdown),
                to_db_timestamp(snapshot.created_at),
            ),
            action="create score snapshot",
        )
        return self._lastrowid(cursor)

    def get_latest_snapshot(self, prospect_id: int) -> Optional[ScoreSnapshot]:
        """Most recent snapshot for a prospect (the authoritative one)."""
        row = self._fetchone(
            "SELECT * FROM score_snapshots WHERE prospect_id = ? ORDER BY id DESC LIMIT 1",
            (prospect_id,),
        )
        if row is None:
            return None
        return self._row_to_snapshot(row)

    def get_snapshots(self, prospect_id: int) -> list[ScoreSnapshot]:
        """All snapshots for a prospect, oldest first."""
        rows = self._fetchall(
            "SELECT * FROM score_snapshots WHERE prospect_id = ? ORDER BY id", (prospect_id,)
        )
        return [self._row_to_snapshot(row) for row in rows]

    # =========================================================================
    # NURTURE PATHWAYS
    # =========================================================================

    def upsert_pathway(self, pathway: NurturePathway) -> None:
        """Replace the current pathway for the prospect."""
        self._write(
            """INSERT INTO nurture_pathways
               (prospect_id, user_id, lead_temperature, score, sequence_key,
                nurture_sequence, recommended_timing, content_angles,
                next_action, next_action_date, updated_at)
               VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
               ON CONFLICT(prospect_id) DO UPDATE SET
                   user_id = excluded.user_id,
                   lead_temperature = excluded.lead_temperature,
                   score = excluded.score,
                   sequence_key = excluded.sequence_key,
                   nurture_sequence = excluded.nurture_sequence,
                   recommended_timing = excluded.recommended_timing,
                   content_angles = excluded.content_angles,
                   next_action = excluded.next_action,
                   next_action_date = excluded.next_action_date,
                   updated_at = excluded.updated_at""",
            (
                pathway.prospect_id,
                pathway.user_id,
                pathway.lead_temperature.value,
                pathway.score,
                pathway.sequence_key,
                json.dumps([vars(s) for s in pathway.nurture_sequence]),
                json.dumps(pathway.recommended_timing),
                json.dumps(pathway.content_angles),
                pathway.next_action,
                to_db_timestamp(pathway.next_action_date),
                to_db_timestamp(pathway.updated_at or utcnow()),
            ),
            action="save nurture pathway",
        )

    def get_pathway(self, prospect_id: int) -> Optional[NurturePathway]:
        """Current pathway for a prospect, or None."""
        row = self._fetchone(
            "SELECT * FROM nurture_pathways WHERE prospect_id = ?", (prospect_id,)
        )
        if row is None:
            return None
        return self._row_to_pathway(row)

    # =========================================================================
    # SEQUENCE DEFINITIONS
    # =========================================================================

    def create_sequence(self, definition: SequenceDefinition) -> int:
        """Insert a definition and its steps atomically. Returns the new ID."""
        with self.transaction():
            cursor = self._write(
                """INSERT INTO sequence_definitions
                   (user_id, name, version, is_active, default_channel, total_started, created_at)
                   VALUES (?, ?, ?, ?, ?, 0, ?)""",
                (
                    definition.user_id,
                    definition.name,
                    definition.version,
                    1 if definition.is_active else 0,
                    Channel(definition.default_channel).value,
                    to_db_timestamp(definition.created_at or utcnow()),
                ),
                action="create sequence",
            )
            sequence_id = self._lastrowid(cursor)
            for step in definition.steps:
                self._write(
                    """INSERT INTO sequence_steps
                       (sequence_id, step_order, delay_minutes, condition_type,
                        template_key, channel_override)
                       VALUES (?, ?, ?, ?, ?, ?)""",
                    (
                        sequence_id,
                        step.step_order,
                        step.delay_minutes,
                        ConditionType(step.condition_type).value,
                        step.template_key,
                        Channel(step.channel_override).value if step.channel_override else None,
                    ),
                    action="create sequence step",
                )
        logger.info(
            "Sequence created",
            extra={
                "context": {
                    "sequence_id": sequence_id,
                    "name": definition.name,
                    "version": definition.version,
                    "steps": len(definition.steps),
                }
            },
        )
        return sequence_id

    def deactivate_sequences(self, user_id: str, name: str) -> int:
        """Mark every version of a named sequence inactive. Returns rows changed."""
        cursor = self._write(
            """UPDATE sequence_definitions SET is_active = 0
               WHERE user_id = ? AND name = ? AND is_active = 1""",
            (user_id, name),
            action="deactivate sequences",
        )
        return cursor.rowcount

    def get_latest_sequence_version(self, user_id: str, name: str) -> int:
        """Highest version number for a named sequence (0 if none)."""
        row = self._fetchone(
            """SELECT MAX(version) AS v FROM sequence_definitions
               WHERE user_id = ? AND name = ?""",
            (user_id, name),
        )
        return row["v"] if row and row["v"] else 0

    def get_sequence(self, sequence_id: int) -> Optional[SequenceDefinition]:
        """Get definition by ID, with steps."""
        row = self._fetchone("SELECT * FROM sequence_definitions WHERE id = ?", (sequence_id,))
        if row is None:
            return None
        definition = self._row_to_sequence(row)
        definition.steps = self.get_sequence_steps(sequence_id)
        return definition

    def get_active_sequence(
        self, user_id: str, name: Optional[str] = None
    ) -> Optional[SequenceDefinition]:
        """Newest active definition for a user (optionally by name), with steps."""
        sql = "SELECT * FROM sequence_definitions WHERE user_id = ? AND is_active = 1"
        params: list[Any] = [user_id]
        if name is not None:
            sql += " AND name = ?"
            params.append(name)
        sql += " ORDER BY created_at DESC, id DESC LIMIT 1"

        row = self._fetchone(sql, tuple(params))
        if row is None:
            return None
        definition = self._row_to_sequence(row)
        definition.steps = self.get_sequence_steps(definition.id)  # type: ignore[arg-type]
        return definition

    def get_sequence_steps(self, sequence_id: int) -> list[SequenceStep]:
        """Steps of a definition ordered by step_order."""
        rows = self._fetchall(
            "SELECT * FROM sequence_steps WHERE sequence_id = ? ORDER BY step_order",
            (sequence_id,),
        )
        return [self._row_to_step(row) for row in rows]

    def increment_sequence_started(self, sequence_id: int) -> None:
        """Bump the started counter of a definition."""
        self._write(
            "UPDATE sequence_definitions SET total_started = total_started + 1 WHERE id = ?",
            (sequence_id,),
            action="update sequence stats",
        )

    # =========================================================================
    # MESSAGE TEMPLATES
    # =========================================================================

    def upsert_template(self, template: MessageTemplate) -> None:
        """Create or replace a message template."""
        self._write(
            """INSERT INTO message_templates (template_key, content, created_at)
               VALUES (?, ?, ?)
               ON CONFLICT(template_key) DO UPDATE SET content = excluded.content""",
            (template.template_key, template.content, to_db_timestamp(utcnow())),
            action="save template",
        )

    def get_template(self, template_key: str) -> Optional[MessageTemplate]:
        """Get template by key, or None."""
        row = self._fetchone(
            "SELECT * FROM message_templates WHERE template_key = ?", (template_key,)
        )
        if row is None:
            return None
        return MessageTemplate(
            template_key=row["template_key"],
            content=row["content"],
            created_at=from_db_timestamp(row["created_at"]),
        )

    # =========================================================================
    # STEP EXECUTIONS
    # =========================================================================

    def create_step_execution(self, execution: StepExecution) -> int:
        """Insert a pending execution.

        Raises:
            DuplicateMaterialization: (prospect, sequence, step, attempt) exists
        """
        conn = self._get_connection()
        params = (
            execution.prospect_id,
            execution.user_id,
            execution.sequence_id,
            execution.step_id,
            execution.step_order,
            execution.attempt,
            Channel(execution.channel).value,
            ConditionType(execution.condition_type).value,
            execution.template_key,
            DeliveryStatus.PENDING.value,
            to_db_timestamp(execution.scheduled_for),
            execution.retry_of,
            to_db_timestamp(execution.created_at or utcnow()),
        )
        try:
            cursor = conn.execute(
                """INSERT INTO step_executions
                   (prospect_id, user_id, sequence_id, step_id, step_order, attempt,
                    channel, condition_type, template_key, delivery_status,
                    scheduled_for, retry_of, created_at)
                   VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)""",
                params,
            )
            if self._tx_depth == 0:
                conn.commit()
            return self._lastrowid(cursor)
        except sqlite3.IntegrityError as e:
            if self._tx_depth == 0:
                conn.rollback()
            if "UNIQUE" in str(e).upper():
                raise DuplicateMaterialization(
                    f"Step {execution.step_order} (attempt {execution.attempt}) of sequence "
                    f"{execution.sequence_id} already materialized for prospect "
                    f"{execution.prospect_id}"
                ) from e
            raise DatabaseError(f"Failed to create step execution: {e}") from e
        except sqlite3.Error as e:
            if self._tx_depth == 0:
                conn.rollback()
            raise DatabaseError(f"Failed to create step execution: {e}") from e

    def get_step_execution(self, execution_id: int) -> Optional[StepExecution]:
        """Get execution by ID."""
        row = self._fetchone("SELECT * FROM step_executions WHERE id = ?", (execution_id,))
        if row is None:
            return None
        return self._row_to_execution(row)

    def get_step_executions(
        self,
        prospect_id: int,
        sequence_id: Optional[int] = None,
        status: Optional[DeliveryStatus] = None,
    ) -> list[StepExecution]:
        """Executions for a prospect ordered by step then attempt."""
        sql = "SELECT * FROM step_executions WHERE prospect_id = ?"
        params: list[Any] = [prospect_id]
        if sequence_id is not None:
            sql += " AND sequence_id = ?"
            params.append(sequence_id)
        if status is not None:
            sql += " AND delivery_status = ?"
            params.append(DeliveryStatus(status).value)
        sql += " ORDER BY sequence_id, step_order, attempt"
        return [self._row_to_execution(row) for row in self._fetchall(sql, tuple(params))]

    def count_step_executions(self, prospect_id: int, sequence_id: int) -> int:
        """Number of executions of a sequence for a prospect (all attempts)."""
        row = self._fetchone(
            """SELECT COUNT(*) AS cnt FROM step_executions
               WHERE prospect_id = ? AND sequence_id = ?""",
            (prospect_id, sequence_id),
        )
        return row["cnt"] if row else 0

    def get_due_executions(
        self,
        now: datetime,
        limit: int,
        claim_ttl: timedelta = DEFAULT_CLAIM_TTL,
    ) -> list[StepExecution]:
        """Pending executions due at ``now`` that no live run has claimed."""
        rows = self._fetchall(
            """SELECT * FROM step_executions
               WHERE delivery_status = 'pending'
                 AND scheduled_for <= ?
                 AND (claimed_at IS NULL OR claimed_at < ?)
               ORDER BY scheduled_for, id
               LIMIT ?""",
            (to_db_timestamp(now), to_db_timestamp(now - claim_ttl), limit),
        )
        return [self._row_to_execution(row) for row in rows]

    def claim_execution(
        self,
        execution_id: int,
        now: datetime,
        claim_ttl: timedelta = DEFAULT_CLAIM_TTL,
    ) -> bool:
        """Claim a pending execution for this run.

        Returns False if another run holds a live claim or the row has
        already left ``pending``.
        """
        cursor = self._write(
            """UPDATE step_executions SET claimed_at = ?
               WHERE id = ? AND delivery_status = 'pending'
                 AND (claimed_at IS NULL OR claimed_at < ?)""",
            (to_db_timestamp(now), execution_id, to_db_timestamp(now - claim_ttl)),
            action="claim step execution",
        )
        return cursor.rowcount == 1

    def mark_execution_sent(self, execution_id: int, message_content: str, sent_at: datetime) -> bool:
        """Transition pending -> sent. Returns False if not pending."""
        cursor = self._write(
            """UPDATE step_executions
               SET delivery_status = 'sent', message_content = ?, sent_at = ?
               WHERE id = ? AND delivery_status = 'pending'""",
            (message_content, to_db_timestamp(sent_at), execution_id),
            action="mark step sent",
        )
        return cursor.rowcount == 1

    def mark_execution_skipped(self, execution_id: int, reason: str) -> bool:
        """Transition pending -> skipped. Returns False if not pending."""
        cursor = self._write(
            """UPDATE step_executions
               SET delivery_status = 'skipped', skip_reason = ?
               WHERE id = ? AND delivery_status = 'pending'""",
            (reason, execution_id),
            action="mark step skipped",
        )
        return cursor.rowcount == 1

    def mark_execution_failed(
        self, execution_id: int, error_message: str, dead_lettered: bool = False
    ) -> bool:
        """Transition pending -> failed. Returns False if not pending."""
        cursor = self._write(
            """UPDATE step_executions
               SET delivery_status = 'failed', error_message = ?, dead_lettered = ?
               WHERE id = ? AND delivery_status = 'pending'""",
            (error_message, 1 if dead_lettered else 0, execution_id),
            action="mark step failed",
        )
        return cursor.rowcount == 1

    def supersede_pending_executions(
        self, prospect_id: int, keep_sequence_id: Optional[int] = None
    ) -> int:
        """Transition a prospect's pending executions to superseded.

        Executions belonging to ``keep_sequence_id`` are left alone.
        Returns the number of executions superseded.
        """
        sql = """UPDATE step_executions
                 SET delivery_status = 'superseded',
                     skip_reason = 'Superseded by a newer nurture plan'
                 WHERE prospect_id = ? AND delivery_status = 'pending'"""
        params: list[Any] = [prospect_id]
        if keep_sequence_id is not None:
            sql += " AND sequence_id != ?"
            params.append(keep_sequence_id)
        cursor = self._write(sql, tuple(params), action="supersede step executions")
        return cursor.rowcount

    def get_execution_status_counts(self) -> dict[DeliveryStatus, int]:
        """Count executions per delivery status (all statuses present)."""
        counts = {status: 0 for status in DeliveryStatus}
        rows = self._fetchall(
            "SELECT delivery_status, COUNT(*) AS cnt FROM step_executions GROUP BY delivery_status"
        )
        for row in rows:
            counts[DeliveryStatus(row["delivery_status"])] = row["cnt"]
        return counts

    # =========================================================================
    # ENGAGEMENT
    # =========================================================================

    def init_engagement_status(self, prospect_id: int, user_id: str) -> bool:
        """Create the status marker if absent. Returns True if created."""
        cursor = self._write(
            """INSERT OR IGNORE INTO prospect_engagement_status
               (prospect_id, user_id, initialized_at) VALUES (?, ?, ?)""",
            (prospect_id, user_id, to_db_timestamp(utcnow())),
            action="initialize engagement status",
        )
        return cursor.rowcount == 1

    def is_engagement_initialized(self, prospect_id: int) -> bool:
        row = self._fetchone(
            "SELECT 1 FROM prospect_engagement_status WHERE prospect_id = ?", (prospect_id,)
        )
        return row is not None

    def create_engagement_event(self, event: EngagementEvent) -> int:
        """Append an engagement event."""
        cursor = self._write(
            """INSERT INTO engagement_events (prospect_id, event_type, source, occurred_at)
               VALUES (?, ?, ?, ?)""",
            (
                event.prospect_id,
                EngagementEventType(event.event_type).value,
                event.source,
                to_db_timestamp(event.occurred_at or utcnow()),
            ),
            action="record engagement event",
        )
        return self._lastrowid(cursor)

    def get_engagement_events(self, prospect_id: int) -> list[EngagementEvent]:
        """Events for a prospect, oldest first."""
        rows = self._fetchall(
            "SELECT * FROM engagement_events WHERE prospect_id = ? ORDER BY id", (prospect_id,)
        )
        return [
            EngagementEvent(
                id=row["id"],
                prospect_id=row["prospect_id"],
                event_type=EngagementEventType(row["event_type"]),
                source=row["source"],
                occurred_at=from_db_timestamp(row["occurred_at"]),
            )
            for row in rows
        ]
