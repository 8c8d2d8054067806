import os
from dotenv import load_dotenv

load_dotenv()

APP_VERSION = "1.0.0"
APP_ENV = os.getenv("APP_ENV", "development")
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()

API_KEY = os.getenv("REDFLAG_API_KEY", "devSecretKey123")  # Default for testing

# Optional JSON file replacing the built-in keyword table
PATTERNS_FILE = os.getenv("REDFLAG_PATTERNS_FILE")

# "rules" = keyword scorer only, "ai" = Groq analysis with keyword fallback
ANALYSIS_ENGINE = os.getenv("ANALYSIS_ENGINE", "rules").lower()
GROQ_API_KEY = os.getenv("GROQ_API_KEY")
GROQ_MODEL = os.getenv("GROQ_MODEL", "llama-3.1-8b-instant")

MAX_TEXT_CHARS = int(os.getenv("MAX_TEXT_CHARS", "500000"))
MAX_UPLOAD_BYTES = int(os.getenv("MAX_UPLOAD_BYTES", str(10 * 1024 * 1024)))


def is_production() -> bool:
    return APP_ENV == "production"
