from __future__ import annotations

import json
from types import SimpleNamespace

import pytest
from fastapi.testclient import TestClient

from redflag_radar import config
from redflag_radar import main
from redflag_radar.ai_analyzer import ChatAnalyzer

API_KEY = "test-key"
HEADERS = {"x-api-key": API_KEY}

WHATSAPP_CHAT = "\n".join([
    "29/09/2024, 11:22 am - Rahul: Send me the money today",
    "you must do it",
    "29/09/2024, 11:25 pm - Priya: I will not",
    "30/09/2024, 9:01 am - Rahul: <Media omitted>",
])


@pytest.fixture(autouse=True)
def api_key(monkeypatch):
    monkeypatch.setattr(config, "API_KEY", API_KEY)


@pytest.fixture
def client():
    return TestClient(main.app)


def test_health(client):
    response = client.get("/health")

    assert response.status_code == 200
    assert response.json() == {"status": "healthy", "version": config.APP_VERSION}


def test_missing_api_key_is_rejected(client):
    response = client.post("/analyze/score", json={"text": "money"})

    assert response.status_code == 422


def test_wrong_api_key_is_forbidden(client):
    response = client.post("/analyze/score", json={"text": "money"}, headers={"x-api-key": "nope"})

    assert response.status_code == 403
    assert response.json()["detail"] == "Invalid API Key"


def test_score_endpoint_returns_assessment(client):
    response = client.post(
        "/analyze/score",
        json={"text": "send me money or I will file a police case", "messages": []},
        headers=HEADERS,
    )

    assert response.status_code == 200
    body = response.json()
    assert body["riskScore"] == 100
    assert body["keywordsDetected"] == ["money", "send me", "police", "case", "file"]
    assert body["summary"].startswith("CRITICAL RISK: 5 critical")


def test_score_endpoint_flags_message_bursts(client):
    messages = [{"date": "2024-01-01", "sender": "A", "text": "hi"}] * 200

    response = client.post("/analyze/score", json={"text": "", "messages": messages}, headers=HEADERS)

    body = response.json()
    assert body["riskScore"] == 10
    assert body["redFlags"][0]["category"] == "Harassment"
    assert body["redFlags"][0]["matchedKeyword"] is None


def test_score_endpoint_empty_body_is_minimal(client):
    response = client.post("/analyze/score", json={}, headers=HEADERS)

    assert response.status_code == 200
    assert response.json() == {
        "riskScore": 0,
        "redFlags": [],
        "keywordsDetected": [],
        "summary": "MINIMAL RISK: No significant red flags detected. Chat appears relatively safe.",
    }


def test_analyze_text_parses_and_scores(client):
    response = client.post("/analyze/text", json={"text": WHATSAPP_CHAT}, headers=HEADERS)

    assert response.status_code == 200
    body = response.json()
    assert body["success"] is True
    analysis = body["analysis"]
    assert analysis["engine"] == "rules"
    assert analysis["riskScore"] == 63
    assert analysis["summary"] == (
        "HIGH RISK: 0 high-severity red flags detected. 2 concerning keywords found. Review recommended."
    )
    assert analysis["platform"] == "whatsapp"
    assert analysis["platformMetadata"]["detectedFormat"] == "WhatsApp Export"
    assert analysis["chatStats"] == {
        "totalMessages": 3,
        "participants": ["Rahul", "Priya"],
        "dateRange": {"start": "2024-09-29", "end": "2024-09-30"},
    }


def test_analyze_text_with_explicit_platform(client):
    response = client.post(
        "/analyze/text",
        json={"text": "Ravi: give me the gold\nAsha: no", "platform": "manual"},
        headers=HEADERS,
    )

    analysis = response.json()["analysis"]
    assert analysis["platform"] == "manual"
    assert analysis["platformMetadata"]["confidence"] == 1.0
    assert analysis["chatStats"]["totalMessages"] == 2
    assert "gold" in analysis["keywordsDetected"]


@pytest.mark.parametrize("text", ["", "   \n "])
def test_analyze_text_requires_content(client, text):
    response = client.post("/analyze/text", json={"text": text}, headers=HEADERS)

    assert response.status_code == 400
    assert response.json()["detail"] == "Text content is required"


def test_analyze_text_rejects_oversized_text(client, monkeypatch):
    monkeypatch.setattr(config, "MAX_TEXT_CHARS", 10)

    response = client.post("/analyze/text", json={"text": WHATSAPP_CHAT}, headers=HEADERS)

    assert response.status_code == 400
    assert response.json()["detail"] == "Text content is too large"


def test_analyze_text_reports_unparseable_content(client):
    response = client.post("/analyze/text", json={"text": "hello"}, headers=HEADERS)

    assert response.status_code == 400
    detail = response.json()["detail"]
    assert detail["detectedPlatform"] == "manual"
    assert "hint" in detail
    assert "sampleLines" not in detail


def test_analyze_text_rejects_unknown_platform(client):
    response = client.post("/analyze/text", json={"text": "a: b", "platform": "telegram"}, headers=HEADERS)

    assert response.status_code == 422


def test_upload_chat_file(client):
    response = client.post(
        "/analyze/chat",
        files={"chatFile": ("chat.txt", WHATSAPP_CHAT.encode("utf-8"), "text/plain")},
        headers=HEADERS,
    )

    assert response.status_code == 200
    assert response.json()["analysis"]["riskScore"] == 63


def test_upload_accepts_known_extension_with_generic_mime(client):
    response = client.post(
        "/analyze/chat",
        files={"chatFile": ("chat.txt", WHATSAPP_CHAT.encode("utf-8"), "application/octet-stream")},
        headers=HEADERS,
    )

    assert response.status_code == 200


def test_upload_rejects_unsupported_files(client):
    response = client.post(
        "/analyze/chat",
        files={"chatFile": ("chat.pdf", b"%PDF-1.4", "application/pdf")},
        headers=HEADERS,
    )

    assert response.status_code == 400
    assert response.json()["detail"] == "Only .txt, .csv, or .eml files are allowed"


def test_upload_rejects_oversized_files(client, monkeypatch):
    monkeypatch.setattr(config, "MAX_UPLOAD_BYTES", 5)

    response = client.post(
        "/analyze/chat",
        files={"chatFile": ("chat.txt", WHATSAPP_CHAT.encode("utf-8"), "text/plain")},
        headers=HEADERS,
    )

    assert response.status_code == 413


def test_upload_rejects_empty_files(client):
    response = client.post(
        "/analyze/chat",
        files={"chatFile": ("chat.txt", b"  \n", "text/plain")},
        headers=HEADERS,
    )

    assert response.status_code == 400
    assert response.json()["detail"] == "Chat file is empty"


def test_upload_unparseable_file_includes_sample_lines(client):
    response = client.post(
        "/analyze/chat",
        files={"chatFile": ("chat.txt", b"line one\nline two\nline three\nline four", "text/plain")},
        headers=HEADERS,
    )

    assert response.status_code == 400
    assert response.json()["detail"]["sampleLines"] == ["line one", "line two", "line three"]


def test_request_id_is_echoed(client):
    response = client.get("/health", headers={"x-request-id": "req-123"})

    assert response.headers["x-request-id"] == "req-123"


def test_ai_engine_result_is_returned(client, monkeypatch):
    async def create(**kwargs):
        content = json.dumps({"riskScore": 42, "summary": "AI view", "recommendations": ["Save evidence"]})
        return SimpleNamespace(choices=[SimpleNamespace(message=SimpleNamespace(content=content))])

    fake = SimpleNamespace(chat=SimpleNamespace(completions=SimpleNamespace(create=create)))
    monkeypatch.setattr(main, "chat_analyzer", ChatAnalyzer(scorer=main.scorer, client=fake))

    response = client.post("/analyze/text", json={"text": WHATSAPP_CHAT}, headers=HEADERS)

    analysis = response.json()["analysis"]
    assert analysis["engine"] == "ai"
    assert analysis["riskScore"] == 42
    assert analysis["summary"] == "AI view"
    assert analysis["recommendations"] == ["Save evidence"]


class ExplodingAnalyzer:
    async def analyze(self, text, parsed=None):
        raise RuntimeError("boom")


def test_unhandled_errors_return_request_id(monkeypatch):
    monkeypatch.setattr(main, "chat_analyzer", ExplodingAnalyzer())
    client = TestClient(main.app, raise_server_exceptions=False)

    response = client.post("/analyze/text", json={"text": WHATSAPP_CHAT}, headers=HEADERS)

    assert response.status_code == 500
    body = response.json()
    assert body["ok"] is False
    assert body["error"] == "boom"
    assert body["requestId"]


def test_unhandled_errors_are_generic_in_production(monkeypatch):
    monkeypatch.setattr(main, "chat_analyzer", ExplodingAnalyzer())
    monkeypatch.setattr(config, "APP_ENV", "production")
    client = TestClient(main.app, raise_server_exceptions=False)

    response = client.post(
        "/analyze/text", json={"text": WHATSAPP_CHAT}, headers={**HEADERS, "x-request-id": "abc"}
    )

    assert response.json() == {
        "ok": False,
        "error": "An internal error occurred. Please try again later.",
        "requestId": "abc",
    }
