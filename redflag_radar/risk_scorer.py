"""
RISK SCORER - Deterministic keyword-based red flag detection for chat transcripts

KEY RULES:
1. Risk score is BOUNDED: 0-100 (never negative, never above 100)
2. Scoring is a PURE function of (text, messages, pattern table)
3. Empty or malformed input is a valid MINIMAL RISK result, never an error
4. Red flags are sorted by severity, discovery order breaks ties

SCORING MATH:
total  = sum(weight * min(frequency, 3))          per matched keyword
       + weight * 0.5                             per category with 2+ keywords
       + 10                                       if > 50 messages/day
riskScore = min(100, round_half_up(total))

SUMMARY BANDS:
- 80-100: CRITICAL
- 60-79:  HIGH
- 40-59:  MODERATE
- 20-39:  LOW
- 0-19:   MINIMAL
"""

import math
import re
import logging
from dataclasses import dataclass, field, replace
from typing import Any, Dict, List, Optional, Sequence, Tuple

from .patterns import PatternCategory, ScorerConfig, Severity, default_config

logger = logging.getLogger(__name__)

HARASSMENT_CATEGORY = "Harassment"

MINIMAL_RISK_SUMMARY = (
    "MINIMAL RISK: No significant red flags detected. Chat appears relatively safe."
)


@dataclass(frozen=True)
class RedFlag:
    """Single detected indicator, tied to one matched keyword"""
    category: str
    severity: Severity
    message: str
    context: str
    matched_keyword: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "category": self.category,
            "severity": self.severity.value,
            "message": self.message,
            "context": self.context,
            "matchedKeyword": self.matched_keyword,
        }


@dataclass
class RiskAssessment:
    """Result of one scoring pass"""
    risk_score: int
    red_flags: List[RedFlag] = field(default_factory=list)
    keywords_detected: List[str] = field(default_factory=list)
    summary: str = MINIMAL_RISK_SUMMARY

    def count(self, severity: Severity) -> int:
        return sum(1 for f in self.red_flags if f.severity == severity)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "riskScore": self.risk_score,
            "redFlags": [f.to_dict() for f in self.red_flags],
            "keywordsDetected": list(self.keywords_detected),
            "summary": self.summary,
        }


@dataclass(frozen=True)
class MessageFrequency:
    is_excessive: bool
    avg_per_day: float
    total_messages: int
    total_days: int


def round_half_up(value: float) -> int:
    """Halves round up: 6.5 -> 7, unlike round()"""
    return int(math.floor(value + 0.5))


def _message_date(message: Any) -> Any:
    """Grouping key for a message; accepts objects or mappings"""
    if isinstance(message, dict):
        key = message.get("date")
    else:
        key = getattr(message, "date", None)
    try:
        hash(key)
    except TypeError:
        key = repr(key)
    return key


class RiskScorer:
    """
    Rule-based chat risk scorer.

    The pattern table is frozen at construction and keyword regexes are
    compiled once, so one instance can be shared across requests.
    """

    def __init__(self, config: Optional[ScorerConfig] = None):
        self.config = config or default_config()
        self._compiled: List[Tuple[PatternCategory, List[Tuple[str, re.Pattern]]]] = [
            (
                pattern,
                [(kw, re.compile(r"\b" + re.escape(kw) + r"\b")) for kw in pattern.keywords],
            )
            for pattern in self.config.categories
        ]

    def score(self, raw_text: Optional[str], messages: Optional[Sequence[Any]] = None) -> RiskAssessment:
        """
        Score a transcript.

        raw_text is the full chat text, messages the parsed message list
        (anything with a `date`). Both may be empty or None.
        """
        text = raw_text if isinstance(raw_text, str) else ""
        try:
            messages = list(messages or [])
        except TypeError:
            messages = []
        lower_text = text.lower()

        red_flags: List[RedFlag] = []
        keywords_detected: List[str] = []
        total = 0.0

        for pattern, keyword_regexes in self._compiled:
            found_keywords = 0

            for keyword, regex in keyword_regexes:
                frequency = len(regex.findall(lower_text))
                if frequency == 0:
                    continue

                found_keywords += 1
                if keyword not in keywords_detected:
                    keywords_detected.append(keyword)

                context = self._extract_context(text, lower_text, keyword)
                severity = self._effective_severity(pattern.base_severity, frequency, context)

                red_flags.append(RedFlag(
                    category=pattern.category,
                    severity=severity,
                    message=f'Detected {pattern.category.lower()} pattern: "{keyword}"',
                    context=self._truncate(context),
                    matched_keyword=keyword,
                ))

                total += pattern.weight * min(frequency, self.config.frequency_cap)

            # Breadth bonus: only the last flag of the category escalates
            if found_keywords > 1:
                last = red_flags[-1]
                if last.category == pattern.category:
                    red_flags[-1] = replace(last, severity=last.severity.escalate())
                    total += pattern.weight * self.config.breadth_bonus_factor

        frequency_check = self.analyze_message_frequency(messages)
        if frequency_check.is_excessive:
            red_flags.append(RedFlag(
                category=HARASSMENT_CATEGORY,
                severity=self.config.harassment_severity,
                message=(
                    f"Excessive messaging detected: {frequency_check.total_messages} messages "
                    f"over {frequency_check.total_days} days "
                    f"(average {frequency_check.avg_per_day} messages per day)"
                ),
                context=f"Average {frequency_check.avg_per_day} messages per day",
            ))
            total += self.config.harassment_bonus

        risk_score = min(100, round_half_up(total))

        # sorted() is stable, so discovery order survives within a severity
        red_flags = sorted(red_flags, key=lambda f: f.severity.rank, reverse=True)

        assessment = RiskAssessment(
            risk_score=risk_score,
            red_flags=red_flags,
            keywords_detected=keywords_detected,
        )
        assessment.summary = self.generate_summary(assessment)

        logger.debug(
            f"📊 Risk score {risk_score} (raw {total:.1f}) | "
            f"{len(red_flags)} flags, {len(keywords_detected)} keywords"
        )
        return assessment

    def _extract_context(self, text: str, lower_text: str, keyword: str) -> str:
        """Window around the first occurrence, cut from the original-case text"""
        index = lower_text.find(keyword)
        if index < 0:
            return ""
        radius = self.config.context_radius
        start = max(0, index - radius)
        end = min(len(lower_text), index + len(keyword) + radius)
        return text[start:end].strip()

    def _truncate(self, context: str) -> str:
        limit = self.config.context_max_length
        if len(context) > limit:
            return context[:limit] + "..."
        return context

    def _effective_severity(self, base: Severity, frequency: int, context: str) -> Severity:
        """Escalate base severity on repetition or nearby intensifiers"""
        lowered = context.lower()
        has_intensifier = any(word in lowered for word in self.config.intensifiers)

        if base == Severity.CRITICAL:
            return Severity.CRITICAL
        if base == Severity.HIGH and (frequency > 2 or has_intensifier):
            return Severity.CRITICAL
        if base == Severity.MEDIUM and frequency > 3:
            return Severity.HIGH
        if base == Severity.LOW and frequency > 2:
            return Severity.MEDIUM
        return base

    def analyze_message_frequency(self, messages: Sequence[Any]) -> MessageFrequency:
        """Average messages per distinct calendar date"""
        if not messages:
            return MessageFrequency(False, 0.0, 0, 0)

        per_date: Dict[Any, int] = {}
        for message in messages:
            key = _message_date(message)
            per_date[key] = per_date.get(key, 0) + 1

        total_days = len(per_date)
        avg = len(messages) / total_days if total_days else 0.0

        return MessageFrequency(
            is_excessive=avg > self.config.message_frequency_threshold,
            avg_per_day=round_half_up(avg * 10) / 10,
            total_messages=len(messages),
            total_days=total_days,
        )

    @staticmethod
    def generate_summary(assessment: RiskAssessment) -> str:
        score = assessment.risk_score
        keyword_count = len(assessment.keywords_detected)
        critical = assessment.count(Severity.CRITICAL)
        high = assessment.count(Severity.HIGH)

        if score >= 80:
            return (
                f"CRITICAL RISK: {critical} critical and {high} high-severity red flags detected. "
                f"{keyword_count} concerning keywords found. Immediate attention recommended."
            )
        if score >= 60:
            return (
                f"HIGH RISK: {high} high-severity red flags detected. "
                f"{keyword_count} concerning keywords found. Review recommended."
            )
        if score >= 40:
            return (
                f"MODERATE RISK: {len(assessment.red_flags)} red flags detected. "
                f"{keyword_count} concerning keywords found. Monitor situation."
            )
        if score >= 20:
            return (
                f"LOW RISK: {len(assessment.red_flags)} minor red flags detected. "
                f"{keyword_count} keywords found. Stay vigilant."
            )
        return MINIMAL_RISK_SUMMARY


# Singleton instance
risk_scorer = RiskScorer()


def analyze_chat_risk(raw_text: Optional[str], messages: Optional[Sequence[Any]] = None) -> RiskAssessment:
    """Score with the default pattern table"""
    return risk_scorer.score(raw_text, messages)
