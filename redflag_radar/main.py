"""
MAIN API - FastAPI application for chat red flag analysis

PIPELINE:
Raw export / pasted text → Platform detection → Message parsing →
Keyword RiskScorer (always) → optional AI analysis (falls back to keywords) →
JSON response

Persistence, history and PDF export live in other services; this API is
stateless.
"""

import logging
import uuid
from pathlib import Path
from typing import Optional

from fastapi import Depends, FastAPI, File, HTTPException, Query, Request, UploadFile
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from . import config
from .ai_analyzer import ChatAnalyzer
from .auth import get_api_key
from .chat_parser import Platform, extract_text_content, parse_universal_chat
from .models import AnalysisResponse, RiskAssessmentOut, ScoreRequest, TextAnalysisRequest
from .patterns import resolve_config
from .risk_scorer import RiskScorer

logging.basicConfig(level=config.LOG_LEVEL)
logger = logging.getLogger(__name__)

ALLOWED_MIME_TYPES = {"text/plain", "text/csv", "message/rfc822"}
ALLOWED_EXTENSIONS = {".txt", ".csv", ".eml"}

app = FastAPI(title="Red Flag Radar API", version=config.APP_VERSION)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Initialize components (pattern table is loaded once, at startup)
scorer = RiskScorer(resolve_config(config.PATTERNS_FILE))
chat_analyzer = ChatAnalyzer(scorer=scorer)


@app.middleware("http")
async def add_request_id(request: Request, call_next):
    request_id = request.headers.get("x-request-id") or str(uuid.uuid4())
    request.state.request_id = request_id
    response = await call_next(request)
    response.headers["x-request-id"] = request_id
    return response


@app.exception_handler(Exception)
async def unhandled_error_handler(request: Request, exc: Exception):
    """Log everything server-side; never leak internals in production"""
    request_id = (
        getattr(request.state, "request_id", None)
        or request.headers.get("x-request-id")
        or str(uuid.uuid4())
    )
    logger.exception(f"[{request_id}] Unhandled error on {request.method} {request.url.path}: {exc}")

    message = (
        "An internal error occurred. Please try again later."
        if config.is_production()
        else str(exc) or "An error occurred"
    )
    return JSONResponse(
        status_code=500,
        content={"ok": False, "error": message, "requestId": request_id},
        headers={"x-request-id": request_id},
    )


@app.get("/health")
async def health_check():
    """Health check endpoint"""
    return {"status": "healthy", "version": config.APP_VERSION}


@app.post("/analyze/score", response_model=RiskAssessmentOut)
async def score_handler(request: ScoreRequest, api_key: str = Depends(get_api_key)):
    """Score already-parsed messages directly with the keyword scorer"""
    if len(request.text) > config.MAX_TEXT_CHARS:
        raise HTTPException(status_code=400, detail="Text content is too large")

    assessment = scorer.score(request.text, request.messages)
    logger.info(
        f"📊 Scored {len(request.messages)} messages: risk={assessment.risk_score}, "
        f"flags={len(assessment.red_flags)}"
    )
    return assessment.to_dict()


@app.post("/analyze/text", response_model=AnalysisResponse)
async def analyze_text_handler(request: TextAnalysisRequest, api_key: str = Depends(get_api_key)):
    """Analyze pasted conversation text"""
    text = request.text
    if not text or not text.strip():
        raise HTTPException(status_code=400, detail="Text content is required")
    if len(text) > config.MAX_TEXT_CHARS:
        raise HTTPException(status_code=400, detail="Text content is too large")

    logger.info(f"Analyzing pasted text, size: {len(text)} chars")
    return await run_analysis(text, request.platform)


@app.post("/analyze/chat", response_model=AnalysisResponse)
async def analyze_chat_handler(
    chatFile: UploadFile = File(...),
    platform: Optional[Platform] = Query(None),
    api_key: str = Depends(get_api_key),
):
    """Upload and analyze a chat export (WhatsApp, SMS, email...)"""
    filename = chatFile.filename or ""
    has_valid_ext = Path(filename).suffix.lower() in ALLOWED_EXTENSIONS
    if chatFile.content_type not in ALLOWED_MIME_TYPES and not has_valid_ext:
        raise HTTPException(status_code=400, detail="Only .txt, .csv, or .eml files are allowed")

    raw = await chatFile.read()
    if len(raw) > config.MAX_UPLOAD_BYTES:
        raise HTTPException(status_code=413, detail="Chat file is too large")

    text = raw.decode("utf-8", errors="replace")
    if not text.strip():
        raise HTTPException(status_code=400, detail="Chat file is empty")

    logger.info(f"Analyzing uploaded chat {filename!r}, size: {len(text)} chars")
    return await run_analysis(text, platform, include_samples=True)


async def run_analysis(text: str, platform: Optional[Platform], include_samples: bool = False) -> dict:
    parsed, metadata = parse_universal_chat(text, platform)

    if parsed.total_messages == 0:
        detail = {
            "error": f"Could not parse any messages from {metadata.detected_format or 'text'}. "
                     "Please ensure the format is correct.",
            "hint": "Try formatting as: Sender: Message or [Date] Sender: Message",
            "detectedPlatform": metadata.platform.value,
        }
        if include_samples:
            detail["sampleLines"] = [line for line in text.split("\n") if line.strip()][:3]
        raise HTTPException(status_code=400, detail=detail)

    analysis = await chat_analyzer.analyze(extract_text_content(parsed), parsed)
    logger.info(
        f"✅ Analysis complete ({analysis.engine}): risk={analysis.risk_score}, "
        f"flags={len(analysis.red_flags)}, platform={metadata.platform.value}"
    )

    start, end = parsed.date_range
    return {
        "success": True,
        "analysis": {
            **analysis.to_dict(),
            "chatStats": {
                "totalMessages": parsed.total_messages,
                "participants": parsed.participants,
                "dateRange": {"start": start, "end": end},
            },
            "platform": metadata.platform.value,
            "platformMetadata": metadata.to_dict(),
        },
    }
