"""Content-aware token estimation for output budget control.

Token counts are ``ceil(characters / ratio)`` where the ratio depends on the
detected content type:

=======  =====
prose    3.5
code     2.5
mixed    3.0
cjk      1.5
=======  =====

The estimate is deterministic and only meant for budget enforcement, not for
exact tokenizer parity.
"""

from __future__ import annotations

import math
import re
from dataclasses import dataclass
from typing import Final

from context_compiler.constants import DEFAULT_BUDGET_MARGIN_PERCENT
from context_compiler.models import ContentType

TOKEN_RATIOS: Final[dict[ContentType, float]] = {
    ContentType.PROSE: 3.5,
    ContentType.CODE: 2.5,
    ContentType.MIXED: 3.0,
    ContentType.CJK: 1.5,
}

# Every match of every pattern counts once towards the code score.
CODE_INDICATORS: Final[tuple[re.Pattern[str], ...]] = (
    re.compile(r"\bimport\s+"),
    re.compile(r"\bexport\s+"),
    re.compile(r"\bfunction\s+"),
    re.compile(r"\bclass\s+"),
    re.compile(r"\bconst\s+"),
    re.compile(r"\blet\s+"),
    re.compile(r"\bvar\s+"),
    re.compile(r"\bdef\s+"),
    re.compile(r"\basync\s+"),
    re.compile(r"=>"),
    re.compile(r"\breturn\s+"),
    re.compile(r"\bif\s*\("),
    re.compile(r"\bfor\s*\("),
    re.compile(r"\bwhile\s*\("),
    re.compile(r"\bswitch\s*\("),
    re.compile(r"\{[ \t]*$", re.MULTILINE),
    re.compile(r"^[ \t]*\}", re.MULTILINE),
)

# Checked per line; a line counts at most once.
PROSE_INDICATORS: Final[tuple[re.Pattern[str], ...]] = (
    re.compile(r"^#+\s+"),
    re.compile(r"^\s*[-*]\s+"),
    re.compile(r"^\d+\.\s+"),
    re.compile(r"\*\*[^*]+\*\*"),
    re.compile(r"\*[^*]+\*"),
)

# CJK unified ideographs, extension A, hiragana, katakana, hangul syllables.
CJK_PATTERN: Final[re.Pattern[str]] = re.compile(
    "[\u4e00-\u9fff\u3400-\u4dbf\u3040-\u309f\u30a0-\u30ff\uac00-\ud7af]"
)

CODE_INDICATOR_THRESHOLD: Final[int] = 3
PROSE_INDICATOR_THRESHOLD: Final[int] = 3
CJK_RATIO_THRESHOLD: Final[float] = 0.3


@dataclass(frozen=True)
class TokenEstimate:
    tokens: int
    content_type: ContentType
    characters: int
    ratio: float


def count_code_indicators(text: str) -> int:
    return sum(len(pattern.findall(text)) for pattern in CODE_INDICATORS)


def count_prose_indicators(text: str) -> int:
    count = 0
    for line in text.split("\n"):
        if any(pattern.search(line) for pattern in PROSE_INDICATORS):
            count += 1
    return count


def cjk_density(text: str) -> float:
    if not text:
        return 0.0
    return len(CJK_PATTERN.findall(text)) / len(text)


def detect_content_type(text: str) -> ContentType:
    if not text:
        return ContentType.MIXED
    if cjk_density(text) >= CJK_RATIO_THRESHOLD:
        return ContentType.CJK

    code_count = count_code_indicators(text)
    if code_count >= CODE_INDICATOR_THRESHOLD:
        return ContentType.CODE
    if count_prose_indicators(text) >= PROSE_INDICATOR_THRESHOLD:
        return ContentType.PROSE
    return ContentType.MIXED


def estimate_with_type(text: str, content_type: ContentType) -> TokenEstimate:
    ratio = TOKEN_RATIOS[content_type]
    characters = len(text)
    return TokenEstimate(
        tokens=math.ceil(characters / ratio),
        content_type=content_type,
        characters=characters,
        ratio=ratio,
    )


def estimate(text: str) -> TokenEstimate:
    """Estimate the token count of ``text``.

    Empty input yields zero tokens classified as ``mixed``.
    """
    if not text:
        return estimate_with_type("", ContentType.MIXED)
    return estimate_with_type(text, detect_content_type(text))


def estimate_tokens(text: str) -> int:
    return estimate(text).tokens


def apply_budget_margin(
    budget: int, margin_percent: float = DEFAULT_BUDGET_MARGIN_PERCENT
) -> int:
    """Return the part of ``budget`` left after withholding the margin."""
    return math.floor(budget * (1 - margin_percent / 100))
