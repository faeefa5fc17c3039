"""Data models and enumerations for ScoutFlow.

All enums stored as TEXT in SQLite.
Dataclasses use frozen=False for mutability during processing, except the
score snapshot, which is append-only and therefore frozen.

This module defines:
    - Enumerations for all categorical fields
    - Dataclasses for database records
    - Channel/contact resolution helper
"""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Optional

# =============================================================================
# ENUMERATIONS
# =============================================================================


class LeadTemperature(str, Enum):
    """Coarse readiness classification supplied to the pathway selector."""

    COLD = "cold"
    WARM = "warm"
    HOT = "hot"


class ReferralQuality(str, Enum):
    """Quality of the person who referred the prospect."""

    HOT = "hot"
    WARM = "warm"
    COLD = "cold"


class PersonalityType(str, Enum):
    """Four-quadrant personality styles used for compatibility matching."""

    DRIVER = "driver"
    INFLUENCER = "influencer"
    SUPPORTIVE = "supportive"
    ANALYTICAL = "analytical"


class ConditionType(str, Enum):
    """Predicate over engagement status gating whether a step sends.

    Values:
        ALWAYS: Always send
        NO_REPLY: Send only if the prospect never replied
        NO_MEETING: Send only if no meeting is booked
        NO_SALE: Send only if no deal has closed
        NO_OPEN: Send only if no message was opened
    """

    ALWAYS = "always"
    NO_REPLY = "no_reply"
    NO_MEETING = "no_meeting"
    NO_SALE = "no_sale"
    NO_OPEN = "no_open"


class Channel(str, Enum):
    """Outbound messaging channel."""

    MESSENGER = "messenger"
    SMS = "sms"
    EMAIL = "email"


class DeliveryStatus(str, Enum):
    """Lifecycle of a step execution.

    PENDING is the only non-terminal state. Every other state is reached
    exactly once and never left.
    """

    PENDING = "pending"
    SENT = "sent"
    SKIPPED = "skipped"
    FAILED = "failed"
    SUPERSEDED = "superseded"

    @property
    def is_terminal(self) -> bool:
        return self is not DeliveryStatus.PENDING


class EngagementEventType(str, Enum):
    """Milestone reported by an external subsystem."""

    REPLY_RECEIVED = "reply_received"
    MEETING_BOOKED = "meeting_booked"
    DEAL_CLOSED = "deal_closed"
    MESSAGE_OPENED = "message_opened"


# =============================================================================
# DATACLASSES
# =============================================================================


@dataclass
class Prospect:
    """Prospect identity and contact record (owned by the CRM).

    Attributes:
        id: Primary key
        user_id: Owning user (agent)
        first_name: First name
        last_name: Last name
        email: Email address (email channel)
        phone: Phone number (sms channel)
        messenger_id: Page-scoped Messenger id (messenger channel)
        created_at: Record creation time
    """

    id: Optional[int] = None
    user_id: str = ""
    first_name: str = ""
    last_name: str = ""
    email: Optional[str] = None
    phone: Optional[str] = None
    messenger_id: Optional[str] = None
    created_at: Optional[datetime] = None

    @property
    def full_name(self) -> str:
        """Return full name."""
        return f"{self.first_name} {self.last_name}".strip()

    def contact_for(self, channel: Channel) -> Optional[str]:
        """Return the contact field matching a channel, or None if absent."""
        value = {
            Channel.MESSENGER: self.messenger_id,
            Channel.SMS: self.phone,
            Channel.EMAIL: self.email,
        }.get(Channel(channel))
        return value.strip() if value and value.strip() else None


@dataclass
class AgentProfile:
    """Per-user settings used by scoring and template context.

    Attributes:
        user_id: Owning user
        agent_name: Name signed on messages
        personality_type: User side of the compatibility matrix
        product_name: Product being offered
        booking_link: Calendar booking URL
        user_goal: Goal phrase used in templates
    """

    user_id: str = ""
    agent_name: Optional[str] = None
    personality_type: Optional[str] = None
    product_name: Optional[str] = None
    booking_link: Optional[str] = None
    user_goal: Optional[str] = None


@dataclass
class EngagementMetrics:
    """Raw social engagement counters."""

    comments: int = 0
    likes: int = 0
    shares: int = 0


@dataclass
class ProspectSignals:
    """Prospect signal bundle - the read-only input to scoring.

    Attributes:
        bio: Profile bio text
        posts: Recent post texts
        comments: Comments the prospect wrote
        recent_activity: Recent activity strings
        employment: Employment descriptor
        interests: Declared interests
        personality: Declared personality type
        referral_source: Who referred the prospect (None if not referred)
        referral_quality: hot/warm/cold quality of the referral
        response_speed: Response-speed metric in seconds
        engagement: Engagement counters
    """

    bio: Optional[str] = None
    posts: list[str] = field(default_factory=list)
    comments: list[str] = field(default_factory=list)
    recent_activity: list[str] = field(default_factory=list)
    employment: Optional[str] = None
    interests: list[str] = field(default_factory=list)
    personality: Optional[str] = None
    referral_source: Optional[str] = None
    referral_quality: Optional[ReferralQuality] = None
    response_speed: Optional[float] = None
    engagement: EngagementMetrics = field(default_factory=EngagementMetrics)

    def to_dict(self) -> dict[str, Any]:
        """Serialize for JSON storage."""
        return {
            "bio": self.bio,
            "posts": list(self.posts),
            "comments": list(self.comments),
            "recent_activity": list(self.recent_activity),
            "employment": self.employment,
            "interests": list(self.interests),
            "personality": self.personality,
            "referral_source": self.referral_source,
            "referral_quality": self.referral_quality.value if self.referral_quality else None,
            "response_speed": self.response_speed,
            "engagement": {
                "comments": self.engagement.comments,
                "likes": self.engagement.likes,
                "shares": self.engagement.shares,
            },
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "ProspectSignals":
        """Build from stored JSON. Unknown keys are ignored."""
        quality = data.get("referral_quality")
        metrics = data.get("engagement") or {}
        return cls(
            bio=data.get("bio"),
            posts=list(data.get("posts") or []),
            comments=list(data.get("comments") or []),
            recent_activity=list(data.get("recent_activity") or []),
            employment=data.get("employment"),
            interests=list(data.get("interests") or []),
            personality=data.get("personality"),
            referral_source=data.get("referral_source"),
            referral_quality=ReferralQuality(quality) if quality else None,
            response_speed=data.get("response_speed"),
            engagement=EngagementMetrics(
                comments=int(metrics.get("comments") or 0),
                likes=int(metrics.get("likes") or 0),
                shares=int(metrics.get("shares") or 0),
            ),
        )


@dataclass(frozen=True)
class ScoreSnapshot:
    """Append-only record of one scoring run.

    Attributes:
        id: Primary key (None until persisted)
        prospect_id: Scored prospect
        user_id: Owning user
        intent_score: Intent sub-score 0-100
        financial_readiness: Financial sub-score 0-100
        engagement_behavior: Engagement sub-score 0-100
        personality_match: Personality sub-score 0-100
        vouch_score: Referral sub-score 0-100
        final_score: Composite 0-100
        bucket: cold/warm/hot band of the composite
        breakdown: Matched keywords, counts and raw sub-metrics
        created_at: When scored
    """

    id: Optional[int]
    prospect_id: int
    user_id: str
    intent_score: float
    financial_readiness: float
    engagement_behavior: float
    personality_match: float
    vouch_score: float
    final_score: int
    bucket: LeadTemperature
    breakdown: dict[str, Any]
    created_at: datetime


@dataclass
class NurtureStep:
    """One day-offset/action tuple of a nurture pathway."""

    day: int
    action: str
    content: str


@dataclass
class NurturePathway:
    """The current outreach plan for one prospect.

    Attributes:
        prospect_id: Prospect the plan belongs to (one row per prospect)
        user_id: Owning user
        lead_temperature: Temperature used for selection
        score: Composite score used for selection
        sequence_key: Name of the sequence definition implementing the plan
        nurture_sequence: Ordered day/action/content steps
        recommended_timing: Send-time-of-day buckets (metadata only)
        content_angles: Suggested messaging angles (metadata only)
        next_action: Next recommended action label
        next_action_date: When the next action is due
        updated_at: Last replacement time
    """

    prospect_id: int = 0
    user_id: str = ""
    lead_temperature: LeadTemperature = LeadTemperature.COLD
    score: int = 0
    sequence_key: str = ""
    nurture_sequence: list[NurtureStep] = field(default_factory=list)
    recommended_timing: list[dict[str, Any]] = field(default_factory=list)
    content_angles: list[str] = field(default_factory=list)
    next_action: str = ""
    next_action_date: Optional[datetime] = None
    updated_at: Optional[datetime] = None


@dataclass
class SequenceStep:
    """One step of a sequence definition.

    Attributes:
        id: Primary key
        sequence_id: Owning definition
        step_order: Position in the sequence (1-based)
        delay_minutes: Offset from sequence start
        condition_type: Gate evaluated at send time
        template_key: Message template to render
        channel_override: Channel for this step (None = sequence default)
    """

    id: Optional[int] = None
    sequence_id: int = 0
    step_order: int = 1
    delay_minutes: int = 0
    condition_type: ConditionType = ConditionType.ALWAYS
    template_key: str = ""
    channel_override: Optional[Channel] = None


@dataclass
class SequenceDefinition:
    """Named, versioned outreach sequence.

    Attributes:
        id: Primary key
        user_id: Owning user
        name: Sequence name (versions share a name)
        version: Version number within the name
        is_active: Whether new prospects may start this version
        default_channel: Channel used when a step has no override
        total_started: Number of prospects materialized into it
        steps: Ordered steps (loaded on demand)
        created_at: Record creation time
    """

    id: Optional[int] = None
    user_id: str = ""
    name: str = ""
    version: int = 1
    is_active: bool = True
    default_channel: Channel = Channel.MESSENGER
    total_started: int = 0
    steps: list[SequenceStep] = field(default_factory=list)
    created_at: Optional[datetime] = None


@dataclass
class MessageTemplate:
    """Opaque message body with {{placeholders}}."""

    template_key: str = ""
    content: str = ""
    created_at: Optional[datetime] = None


@dataclass
class StepExecution:
    """One schedulable instance of a sequence step for one prospect.

    Attributes:
        id: Primary key
        prospect_id: Target prospect
        user_id: Owning user
        sequence_id: Definition the step came from
        step_id: Step the execution instantiates
        step_order: Copied step position
        attempt: Delivery attempt number (1 = original)
        channel: Resolved channel
        condition_type: Copied gate
        template_key: Copied template key
        delivery_status: Lifecycle state
        scheduled_for: When the step becomes due
        claimed_at: When a processor run claimed it
        message_content: Rendered message (set on send)
        sent_at: When sent
        skip_reason: Why skipped
        error_message: Why failed
        dead_lettered: Final failed attempt with retries exhausted
        retry_of: Failed execution this one retries
        created_at: Materialization time
    """

    id: Optional[int] = None
    prospect_id: int = 0
    user_id: str = ""
    sequence_id: int = 0
    step_id: int = 0
    step_order: int = 1
    attempt: int = 1
    channel: Channel = Channel.MESSENGER
    condition_type: ConditionType = ConditionType.ALWAYS
    template_key: str = ""
    delivery_status: DeliveryStatus = DeliveryStatus.PENDING
    scheduled_for: Optional[datetime] = None
    claimed_at: Optional[datetime] = None
    message_content: Optional[str] = None
    sent_at: Optional[datetime] = None
    skip_reason: Optional[str] = None
    error_message: Optional[str] = None
    dead_lettered: bool = False
    retry_of: Optional[int] = None
    created_at: Optional[datetime] = None


@dataclass
class EngagementEvent:
    """Append-only engagement milestone."""

    id: Optional[int] = None
    prospect_id: int = 0
    event_type: EngagementEventType = EngagementEventType.REPLY_RECEIVED
    source: Optional[str] = None
    occurred_at: Optional[datetime] = None


@dataclass
class EngagementStatus:
    """Projection of the engagement event log for one prospect.

    Flags are derived from events, so they only ever go from False to True.
    """

    prospect_id: int = 0
    initialized: bool = False
    has_any_reply: bool = False
    has_meeting_scheduled: bool = False
    has_closed_won: bool = False
    has_opened_message: bool = False
