from pydantic import BaseModel, Field
from typing import List, Optional, Literal

from .chat_parser import Platform

SeverityLiteral = Literal["low", "medium", "high", "critical"]


class ScoreMessage(BaseModel):
    date: Optional[str] = None  # Calendar date, used as the per-day grouping key
    sender: str = ""
    text: str = ""


class ScoreRequest(BaseModel):
    text: str = ""  # Full transcript text
    messages: List[ScoreMessage] = Field(default_factory=list)  # Parsed messages, chronological


class TextAnalysisRequest(BaseModel):
    text: str  # Pasted conversation
    platform: Optional[Platform] = None  # Skip detection when set


class RedFlagOut(BaseModel):
    category: str
    severity: SeverityLiteral
    message: str
    context: str
    matchedKeyword: Optional[str] = None


class RiskAssessmentOut(BaseModel):
    riskScore: int = Field(ge=0, le=100)
    redFlags: List[RedFlagOut] = Field(default_factory=list)
    keywordsDetected: List[str] = Field(default_factory=list)
    summary: str


class PatternDetected(BaseModel):
    pattern: str
    description: str = ""
    examples: List[str] = Field(default_factory=list)


class DateRange(BaseModel):
    start: str = ""
    end: str = ""


class ChatStats(BaseModel):
    totalMessages: int
    participants: List[str] = Field(default_factory=list)
    dateRange: DateRange


class PlatformMetadataOut(BaseModel):
    platform: Platform
    confidence: float
    detectedFormat: Optional[str] = None


class ChatAnalysisOut(RiskAssessmentOut):
    recommendations: List[str] = Field(default_factory=list)
    patternsDetected: List[PatternDetected] = Field(default_factory=list)
    engine: Literal["rules", "ai"]  # Which analyzer produced the result
    chatStats: ChatStats
    platform: Platform
    platformMetadata: PlatformMetadataOut


class AnalysisResponse(BaseModel):
    success: bool = True
    analysis: ChatAnalysisOut
