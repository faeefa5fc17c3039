"""Keyword signal extraction.

Keyword sets are data (KeywordDictionary); a SignalExtractor turns a
ProspectSignals bundle into raw 0-100 sub-metrics plus the matched
evidence used in the score breakdown. The weighting formula in
scoring.py never looks at keywords directly, so a new market only needs a
new dictionary.

Usage:
    from scoutflow.engine.signals import KeywordSignalExtractor, TAGLISH_DICTIONARY

    extractor = KeywordSignalExtractor(TAGLISH_DICTIONARY)
    extracted = extractor.extract(signals)
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Iterable, Optional

from scoutflow.db.models import ProspectSignals


def match_keywords(text: str, keywords: Iterable[str]) -> list[str]:
    """Keywords that appear in text (case-insensitive substring match)."""
    lowered = (text or "").lower()
    return [kw for kw in keywords if kw.lower() in lowered]


def count_occurrences(text: str, keywords: Iterable[str]) -> int:
    """Total non-overlapping occurrences of all keywords in text."""
    lowered = (text or "").lower()
    return sum(lowered.count(kw.lower()) for kw in keywords if kw)


def ratio_score(matched: int, total: int) -> float:
    """Share of a keyword set that matched, scaled to 0-100."""
    if total <= 0:
        return 0.0
    return min(100.0, 100.0 * matched / total)


def _join(*parts: Optional[Iterable[str] | str]) -> str:
    chunks: list[str] = []
    for part in parts:
        if not part:
            continue
        if isinstance(part, str):
            chunks.append(part)
        else:
            chunks.extend(p for p in part if p)
    return " ".join(chunks)


@dataclass(frozen=True)
class KeywordDictionary:
    """Keyword sets for one language/market.

    The ``*_evidence`` sets are the shorter lists reported in the score
    breakdown; they do not affect the score itself.
    """

    name: str
    pain: tuple[str, ...]
    opportunity: tuple[str, ...]
    decision: tuple[str, ...]
    income: tuple[str, ...]
    stability: tuple[str, ...]
    savings: tuple[str, ...]
    debt: tuple[str, ...]
    curiosity: tuple[str, ...]
    pain_evidence: tuple[str, ...] = ()
    opportunity_evidence: tuple[str, ...] = ()
    decision_evidence: tuple[str, ...] = ()
    income_evidence: tuple[str, ...] = ()
    curiosity_evidence: tuple[str, ...] = ()


# Mixed Filipino/English social-media vocabulary
TAGLISH_DICTIONARY = KeywordDictionary(
    name="taglish",
    pain=(
        "income",
        "side hustle",
        "extra",
        "bayarin",
        "utang",
        "quit job",
        "lipat",
        "financial",
        "money",
        "sahod",
    ),
    opportunity=(
        "business",
        "invest",
        "opportunity",
        "negosyo",
        "kita",
        "passive",
        "entrepreneur",
        "growth",
    ),
    decision=(
        "planning",
        "thinking about",
        "gusto ko",
        "balak",
        "interested",
        "ready",
        "seryoso",
        "decide",
    ),
    income=("employed", "work", "salary", "sahod", "income", "business owner", "freelance"),
    stability=("stable job", "permanent", "regular", "company", "professional"),
    savings=("savings", "save", "ipon", "investment", "emergency fund"),
    debt=("utang", "debt", "loan", "hirap", "struggle", "walang pera", "broke"),
    curiosity=(
        "how",
        "what",
        "paano",
        "ano",
        "interested",
        "tell me more",
        "curious",
        "learn",
    ),
    pain_evidence=("income", "side hustle", "bayarin", "utang"),
    opportunity_evidence=("business", "invest", "opportunity", "negosyo"),
    decision_evidence=("planning", "thinking", "interested", "ready"),
    income_evidence=("employed", "work", "salary", "income"),
    curiosity_evidence=("how", "what", "paano", "interested"),
)


@dataclass
class ExtractedSignals:
    """Raw sub-metrics (each 0-100) and breakdown evidence."""

    pain_point: float = 0.0
    opportunity: float = 0.0
    decision: float = 0.0
    income: float = 0.0
    employment_stability: float = 0.0
    savings: float = 0.0
    debt_pressure: float = 0.0
    curiosity: float = 0.0
    pain_point_indicators: list[str] = field(default_factory=list)
    opportunity_language_count: int = 0
    decision_signals: list[str] = field(default_factory=list)
    income_keywords: list[str] = field(default_factory=list)
    curiosity_markers: int = 0


class SignalExtractor(ABC):
    """Strategy turning a signal bundle into raw sub-metrics."""

    @abstractmethod
    def extract(self, signals: ProspectSignals) -> ExtractedSignals:
        """Compute raw sub-metrics for one prospect."""
        pass


class KeywordSignalExtractor(SignalExtractor):
    """Substring keyword matching over a KeywordDictionary."""

    def __init__(self, dictionary: KeywordDictionary = TAGLISH_DICTIONARY):
        self.dictionary = dictionary

    def extract(self, signals: ProspectSignals) -> ExtractedSignals:
        d = self.dictionary

        all_text = _join(signals.bio, signals.posts, signals.comments)
        bio_posts = _join(signals.bio, signals.posts)
        activity = _join(signals.recent_activity)
        bio_employment = _join(signals.bio, signals.employment)
        employment = signals.employment or ""
        posts_comments = _join(signals.posts, signals.comments)
        comments = _join(signals.comments)

        return ExtractedSignals(
            pain_point=ratio_score(len(match_keywords(all_text, d.pain)), len(d.pain)),
            opportunity=min(100.0, 10.0 * count_occurrences(bio_posts, d.opportunity)),
            decision=ratio_score(len(match_keywords(activity, d.decision)), len(d.decision)),
            income=ratio_score(len(match_keywords(bio_employment, d.income)), len(d.income)),
            employment_stability=ratio_score(
                len(match_keywords(employment, d.stability)), len(d.stability)
            ),
            savings=ratio_score(len(match_keywords(posts_comments, d.savings)), len(d.savings)),
            debt_pressure=ratio_score(len(match_keywords(posts_comments, d.debt)), len(d.debt)),
            curiosity=ratio_score(len(match_keywords(comments, d.curiosity)), len(d.curiosity)),
            pain_point_indicators=match_keywords(bio_posts, d.pain_evidence),
            opportunity_language_count=len(match_keywords(bio_posts, d.opportunity_evidence)),
            decision_signals=match_keywords(activity, d.decision_evidence),
            income_keywords=match_keywords(bio_employment, d.income_evidence),
            curiosity_markers=len(match_keywords(comments, d.curiosity_evidence)),
        )
