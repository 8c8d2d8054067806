"""
AI CHAT ANALYZER - Groq-backed narrative analysis with keyword fallback

KEY DESIGN:
- The keyword RiskScorer ALWAYS runs; it is the answer when AI is off
- AI is used only when ANALYSIS_ENGINE=ai and GROQ_API_KEY is set
- Any provider failure (network, bad JSON, missing fields) falls back
  to the keyword result; the API never fails because the LLM did
- AI output is normalised to the same shape and invariants as the
  keyword result (score 0-100, flags sorted by severity)
"""

import json
import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from groq import AsyncGroq

from . import config
from .chat_parser import ParsedChat
from .patterns import Severity
from .risk_scorer import RedFlag, RiskAssessment, RiskScorer, risk_scorer
from .sanitize import sanitize_for_prompt

logger = logging.getLogger(__name__)


@dataclass
class ChatAnalysis:
    """RiskAssessment plus the narrative fields only the AI engine fills"""
    risk_score: int
    red_flags: List[RedFlag]
    keywords_detected: List[str]
    summary: str
    recommendations: List[str] = field(default_factory=list)
    patterns_detected: List[Dict[str, Any]] = field(default_factory=list)
    engine: str = "rules"

    @classmethod
    def from_assessment(cls, assessment: RiskAssessment) -> "ChatAnalysis":
        return cls(
            risk_score=assessment.risk_score,
            red_flags=list(assessment.red_flags),
            keywords_detected=list(assessment.keywords_detected),
            summary=assessment.summary,
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "riskScore": self.risk_score,
            "redFlags": [f.to_dict() for f in self.red_flags],
            "keywordsDetected": list(self.keywords_detected),
            "summary": self.summary,
            "recommendations": list(self.recommendations),
            "patternsDetected": list(self.patterns_detected),
            "engine": self.engine,
        }


SYSTEM_PROMPT = (
    "You are a forensic communication analyst. You identify extortion, threats, "
    "manipulation, isolation, false accusations, dowry demands, intimidation, "
    "gaslighting and harassment in chat transcripts. Output only valid JSON."
)


class ChatAnalyzer:
    """
    Chat analysis entry point used by the API.

    Pass `client` to inject a Groq client (tests use a fake one).
    """

    def __init__(
        self,
        scorer: Optional[RiskScorer] = None,
        engine: str = config.ANALYSIS_ENGINE,
        api_key: Optional[str] = config.GROQ_API_KEY,
        model: str = config.GROQ_MODEL,
        client: Any = None,
    ):
        self.scorer = scorer or risk_scorer
        self.model = model
        if client is not None:
            self.client = client
        elif engine == "ai" and api_key:
            self.client = AsyncGroq(api_key=api_key)
        else:
            self.client = None

    async def analyze(self, text: str, parsed: Optional[ParsedChat] = None) -> ChatAnalysis:
        messages = parsed.messages if parsed else []
        assessment = self.scorer.score(text, messages)

        if not self.client:
            return ChatAnalysis.from_assessment(assessment)

        try:
            analysis = await self._analyze_with_ai(text, parsed)
            logger.info(
                f"🧠 AI analysis complete: score={analysis.risk_score}, "
                f"flags={len(analysis.red_flags)} (keyword score was {assessment.risk_score})"
            )
            return analysis
        except Exception as e:
            logger.error(f"AI analysis failed, using keyword scorer: {e}")
            return ChatAnalysis.from_assessment(assessment)

    async def _analyze_with_ai(self, text: str, parsed: Optional[ParsedChat]) -> ChatAnalysis:
        response = await self.client.chat.completions.create(
            messages=[
                {"role": "system", "content": SYSTEM_PROMPT},
                {"role": "user", "content": self.build_prompt(text, parsed)},
            ],
            model=self.model,
            temperature=0.2,
            max_tokens=2000,
        )
        result_text = response.choices[0].message.content or ""
        return self.parse_response(result_text)

    def build_prompt(self, text: str, parsed: Optional[ParsedChat]) -> str:
        text = text or ""
        messages = parsed.messages if parsed else []
        participants = parsed.participants if parsed else []
        start, end = parsed.date_range if parsed else ("", "")
        frequency = self.scorer.analyze_message_frequency(messages)

        chat = sanitize_for_prompt(truncate_chat(text), max_length=len(text) + 200, collapse_whitespace=False)

        sample_section = ""
        samples = messages[-20:][:10]
        if samples:
            lines = [
                f"{i + 1}. [{m.date} {m.time}] {sanitize_for_prompt(m.sender, 100)}: "
                f"{sanitize_for_prompt(m.text, 200)}"
                for i, m in enumerate(samples)
            ]
            sample_section = "\n\nSample Messages (for context):\n" + "\n".join(lines)

        return f"""CHAT METADATA:
- Participants: {', '.join(sanitize_for_prompt(p, 100) for p in participants) or 'Unknown'}
- Total Messages: {len(messages)}
- Date Range: {start or 'unknown'} to {end or 'unknown'}
- Average Messages per Day: {frequency.avg_per_day}{sample_section}

CHAT CONTENT:
{chat}

Look for PATTERNS, ESCALATION over time, FREQUENCY and INTENSITY. Distinguish normal
disagreements from concerning behaviour. Do not give legal advice.

Respond in this EXACT JSON format:
{{
    "riskScore": 0-100,
    "redFlags": [
        {{"category": "name", "severity": "low|medium|high|critical", "message": "what was detected",
          "context": "quote from the chat", "matchedKeyword": "optional keyword"}}
    ],
    "keywordsDetected": ["keyword"],
    "summary": "overall assessment with specific examples",
    "recommendations": ["specific, actionable step"],
    "patternsDetected": [{{"pattern": "name", "description": "text", "examples": ["quote"]}}]
}}

RISK SCORING: 0-20 minimal, 21-40 low, 41-60 moderate, 61-80 high, 81-100 critical."""

    def parse_response(self, result_text: str) -> ChatAnalysis:
        """Normalise the model's JSON; raises ValueError if unusable"""
        result_text = result_text.strip()
        if "```" in result_text:
            result_text = result_text.split("```")[1]
            if result_text.startswith("json"):
                result_text = result_text[4:]
            result_text = result_text.strip()

        result = json.loads(result_text)
        if not isinstance(result, dict) or "riskScore" not in result:
            raise ValueError("AI response has no riskScore")

        risk_score = min(100, max(0, int(round(float(result["riskScore"])))))

        red_flags = [
            _coerce_flag(item, self.scorer.config.context_max_length)
            for item in result.get("redFlags") or []
            if isinstance(item, dict)
        ]
        red_flags.sort(key=lambda f: f.severity.rank, reverse=True)

        keywords: List[str] = []
        for keyword in result.get("keywordsDetected") or []:
            if isinstance(keyword, str) and keyword and keyword not in keywords:
                keywords.append(keyword)

        summary = str(result.get("summary") or "").strip()
        if not summary:
            summary = RiskScorer.generate_summary(RiskAssessment(risk_score, red_flags, keywords))

        patterns = []
        for item in result.get("patternsDetected") or []:
            if isinstance(item, dict) and item.get("pattern"):
                patterns.append({
                    "pattern": str(item["pattern"]),
                    "description": str(item.get("description") or ""),
                    "examples": [str(e) for e in item.get("examples") or []],
                })

        return ChatAnalysis(
            risk_score=risk_score,
            red_flags=red_flags,
            keywords_detected=keywords,
            summary=summary,
            recommendations=[str(r) for r in result.get("recommendations") or [] if r],
            patterns_detected=patterns,
            engine="ai",
        )


def truncate_chat(text: str) -> str:
    """Keep the opening context and the most recent activity of long chats"""
    if len(text) > 15000:
        return (
            f"{text[:2000]}\n\n... [{len(text) - 14000} characters truncated - showing beginning "
            f"and most recent messages] ...\n\n{text[-12000:]}"
        )
    if len(text) > 8000:
        return f"... [earlier messages truncated] ...\n{text[-8000:]}"
    return text


def _coerce_flag(item: Dict[str, Any], max_context: int) -> RedFlag:
    try:
        severity = Severity(str(item.get("severity", "")).lower())
    except ValueError:
        severity = Severity.MEDIUM

    context = str(item.get("context") or "")
    if len(context) > max_context:
        context = context[:max_context] + "..."

    keyword = item.get("matchedKeyword") or item.get("keyword")
    return RedFlag(
        category=str(item.get("category") or item.get("type") or "Other"),
        severity=severity,
        message=str(item.get("message") or ""),
        context=context,
        matched_keyword=str(keyword) if keyword else None,
    )
