"""
RED FLAG PATTERNS - Static pattern table for chat risk scoring

The keyword table is CONFIGURATION, not logic:
- Each category carries its keywords, base severity and weight
- The scorer never hardcodes a category name
- A JSON file can replace the whole table (e.g. another language)

FILE FORMAT:
{
    "categories": [
        {"category": "Extortion", "keywords": ["money"], "severity": "critical", "weight": 25}
    ],
    "intensifiers": ["must", "will"],
    "messageFrequencyThreshold": 50,
    "harassmentBonus": 10
}
Only "categories" is required. Missing fields keep their defaults.
"""

import json
import logging
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Dict, List, Optional, Tuple, Union

logger = logging.getLogger(__name__)


class PatternConfigError(ValueError):
    """Raised when a pattern table cannot be loaded"""


class Severity(str, Enum):
    """Four-level ordinal: low < medium < high < critical"""
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"

    @property
    def rank(self) -> int:
        return _SEVERITY_RANK[self]

    def escalate(self) -> "Severity":
        """One step up; critical stays critical"""
        return _ESCALATION[self]


_SEVERITY_RANK = {
    Severity.LOW: 1,
    Severity.MEDIUM: 2,
    Severity.HIGH: 3,
    Severity.CRITICAL: 4,
}

_ESCALATION = {
    Severity.LOW: Severity.MEDIUM,
    Severity.MEDIUM: Severity.HIGH,
    Severity.HIGH: Severity.CRITICAL,
    Severity.CRITICAL: Severity.CRITICAL,
}


@dataclass(frozen=True)
class PatternCategory:
    """One category of concerning language"""
    category: str
    keywords: Tuple[str, ...]
    base_severity: Severity
    weight: int


@dataclass(frozen=True)
class ScorerConfig:
    """
    Everything tunable about the scorer.

    categories are scanned in order; flag discovery order (and therefore
    tie order after sorting) follows this order.
    """
    categories: Tuple[PatternCategory, ...]
    intensifiers: Tuple[str, ...] = ("must", "will", "definitely", "surely", "promise", "guarantee")
    message_frequency_threshold: float = 50.0
    harassment_bonus: float = 10.0
    harassment_severity: Severity = Severity.MEDIUM
    frequency_cap: int = 3
    breadth_bonus_factor: float = 0.5
    context_radius: int = 50
    context_max_length: int = 100


# ======================================================================
# DEFAULT PATTERN TABLE
# ----------------------------------------------------------------------
# Eight categories tuned for domestic-abuse and dowry-harassment chats.
# "demand" is in two categories: it scores in both but
# is only listed once in keywordsDetected.
# ======================================================================

DEFAULT_CATEGORIES: List[Dict] = [
    {
        "category": "Extortion",
        "keywords": [
            "money", "rupees", "lakh", "crore", "pay", "payment", "give me",
            "send me", "transfer", "bank", "account", "cash", "demand", "extort",
        ],
        "severity": "critical",
        "weight": 25,
    },
    {
        "category": "Threats",
        "keywords": [
            "threat", "threaten", "harm", "hurt", "kill", "die", "suicide",
            "police", "court", "case", "file", "complaint", "legal", "lawyer",
        ],
        "severity": "high",
        "weight": 20,
    },
    {
        "category": "Emotional Manipulation",
        "keywords": [
            "guilt", "blame", "fault", "your mistake", "you did", "because of you",
            "you made me", "i will leave", "break up", "divorce",
        ],
        "severity": "medium",
        "weight": 15,
    },
    {
        "category": "Isolation",
        "keywords": [
            "don't tell", "keep secret", "don't share", "your family",
            "your friends", "stay away", "cut off", "isolate",
        ],
        "severity": "high",
        "weight": 18,
    },
    {
        "category": "False Accusations",
        "keywords": [
            "cheating", "affair", "other woman", "other man", "betrayal",
            "unfaithful", "lying", "liar", "trust",
        ],
        "severity": "medium",
        "weight": 12,
    },
    {
        "category": "Property/Dowry Demands",
        "keywords": [
            "property", "house", "car", "jewellery", "jewelry", "gold", "dowry",
            "gift", "demand", "want", "need",
        ],
        "severity": "high",
        "weight": 20,
    },
    {
        "category": "Intimidation",
        "keywords": [
            "fear", "afraid", "scared", "intimidate", "control", "obey",
            "listen", "do as i say", "my way",
        ],
        "severity": "high",
        "weight": 15,
    },
    {
        "category": "Gaslighting",
        "keywords": [
            "you're wrong", "you're crazy", "you're imagining", "that never happened",
            "you're lying", "you don't remember",
        ],
        "severity": "medium",
        "weight": 10,
    },
]


def build_category(raw: Dict) -> PatternCategory:
    """Validate one raw category entry and freeze it"""
    if not isinstance(raw, dict):
        raise PatternConfigError(f"Category entry must be an object, got {type(raw).__name__}")

    name = raw.get("category")
    if not isinstance(name, str) or not name.strip():
        raise PatternConfigError("Category entry is missing a 'category' name")

    keywords = raw.get("keywords")
    if not isinstance(keywords, list) or not keywords:
        raise PatternConfigError(f"Category '{name}' needs a non-empty 'keywords' list")

    cleaned: List[str] = []
    for keyword in keywords:
        if not isinstance(keyword, str) or not keyword.strip():
            raise PatternConfigError(f"Category '{name}' has an empty or non-string keyword")
        lowered = keyword.strip().lower()
        if lowered not in cleaned:
            cleaned.append(lowered)

    try:
        severity = Severity(str(raw.get("severity", "")).lower())
    except ValueError:
        raise PatternConfigError(
            f"Category '{name}' has invalid severity {raw.get('severity')!r}"
        ) from None

    weight = raw.get("weight")
    if isinstance(weight, float) and weight.is_integer():
        weight = int(weight)
    if isinstance(weight, bool) or not isinstance(weight, int) or weight < 0:
        raise PatternConfigError(f"Category '{name}' needs a non-negative integer 'weight'")

    return PatternCategory(
        category=name.strip(),
        keywords=tuple(cleaned),
        base_severity=severity,
        weight=weight,
    )


def build_config(data: Dict) -> ScorerConfig:
    """Build a ScorerConfig from the JSON-shaped dict described above"""
    if not isinstance(data, dict):
        raise PatternConfigError("Pattern file must contain a JSON object")

    raw_categories = data.get("categories")
    if not isinstance(raw_categories, list) or not raw_categories:
        raise PatternConfigError("Pattern file needs a non-empty 'categories' list")

    kwargs = {"categories": tuple(build_category(c) for c in raw_categories)}

    if "intensifiers" in data:
        intensifiers = data["intensifiers"]
        if not isinstance(intensifiers, list) or not all(isinstance(w, str) for w in intensifiers):
            raise PatternConfigError("'intensifiers' must be a list of strings")
        kwargs["intensifiers"] = tuple(w.strip().lower() for w in intensifiers if w.strip())

    for key, attr in (
        ("messageFrequencyThreshold", "message_frequency_threshold"),
        ("harassmentBonus", "harassment_bonus"),
    ):
        if key in data:
            value = data[key]
            if isinstance(value, bool) or not isinstance(value, (int, float)) or value < 0:
                raise PatternConfigError(f"'{key}' must be a non-negative number")
            kwargs[attr] = float(value)

    return ScorerConfig(**kwargs)


def load_config(path: Union[str, Path]) -> ScorerConfig:
    """Load a pattern table from a JSON file"""
    path = Path(path)
    try:
        data = json.loads(path.read_text(encoding="utf-8"))
    except OSError as e:
        raise PatternConfigError(f"Cannot read pattern file {path}: {e}") from e
    except json.JSONDecodeError as e:
        raise PatternConfigError(f"Pattern file {path} is not valid JSON: {e}") from e

    config = build_config(data)
    logger.info(f"📚 Loaded {len(config.categories)} pattern categories from {path}")
    return config


def default_config() -> ScorerConfig:
    return build_config({"categories": DEFAULT_CATEGORIES})


def resolve_config(path: Optional[str] = None) -> ScorerConfig:
    """Pattern file if one is configured, otherwise the built-in table"""
    if path:
        return load_config(path)
    return default_config()
