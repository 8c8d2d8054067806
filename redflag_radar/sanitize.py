"""
Input sanitization for text that ends up inside an LLM prompt.
"""

import re

# (pattern, flags) pairs stripped in order
_INJECTION_PATTERNS = [
    (r"ignore\s+(previous|above|all)\s+instructions?", re.IGNORECASE),
    (r"forget\s+(previous|above|all)\s+instructions?", re.IGNORECASE),
    (r"disregard\s+(previous|above|all)\s+instructions?", re.IGNORECASE),
    (r"system\s*:", re.IGNORECASE),
    (r"user\s*:", re.IGNORECASE),
    (r"assistant\s*:", re.IGNORECASE),
    (r"human\s*:", re.IGNORECASE),
    (r"\[INST\]", re.IGNORECASE),
    (r"\[/INST\]", re.IGNORECASE),
    (r"<\|im_start\|>", re.IGNORECASE),
    (r"<\|im_end\|>", re.IGNORECASE),
    (r"```[\s\S]*?```", 0),
    (r"<script[\s\S]*?</script>", re.IGNORECASE),
    (r"javascript:", re.IGNORECASE),
    (r"on\w+\s*=", re.IGNORECASE),
]

_COMPILED = [re.compile(p, flags) for p, flags in _INJECTION_PATTERNS]


def sanitize_for_prompt(text: str, max_length: int = 2000, collapse_whitespace: bool = True) -> str:
    """
    Strip prompt-injection markers and cap length.

    Chat bodies pass collapse_whitespace=False so one message stays on one line.
    """
    if not text or not isinstance(text, str):
        return ""

    for pattern in _COMPILED:
        text = pattern.sub("", text)

    if collapse_whitespace:
        text = re.sub(r"\s+", " ", text)
    else:
        text = re.sub(r"[ \t]+", " ", text)
    return text.strip()[:max_length]
