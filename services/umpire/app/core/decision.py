"""
Umpire decision record and the free-text parsers that produce it.

The final-stage model answers in prose. Two pure functions recover structure
from it:

  extract_confidence  -- High / Medium / Low, default Medium
  extract_final_call  -- first decision token found in the text, scanned in a
                         fixed priority order, default "DECISION REQUIRED"

Token tables are ordered so that a token always precedes any shorter token it
contains ("NOT OUT" before "OUT", "INVALID" before "VALID"). Models routinely
restate the call they rejected, so the reverse order would misclassify.
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Dict, Sequence, Tuple

HIGH, MEDIUM, LOW = "High", "Medium", "Low"
CONFIDENCE_LEVELS = (HIGH, MEDIUM, LOW)
DEFAULT_CONFIDENCE = MEDIUM

DECISION_REQUIRED = "DECISION REQUIRED"


def validate_token_order(tokens: Sequence[str]) -> Tuple[str, ...]:
    """Reject tables where a token is listed after a shorter token it contains."""
    for i, earlier in enumerate(tokens):
        for later in tokens[i + 1:]:
            if earlier in later:
                raise ValueError(f"token {later!r} must come before {earlier!r}")
    return tuple(tokens)


# ── Token tables ──────────────────────────────────────────────────────────────
CRICKET_TOKENS = validate_token_order(["NOT OUT", "OUT"])

GENERAL_TOKENS = validate_token_order([
    "NOT OUT", "OUT",           # cricket
    "NO GOAL", "GOAL",          # football
    "NO FOUL", "FOUL",
    "NO SCORE", "SCORE",
    "INVALID", "VALID",
    "ILLEGAL", "LEGAL",
    "FAULT", "LET", "PENALTY", "FREE KICK",
])

TOKEN_TABLES: Dict[str, Tuple[str, ...]] = {
    "cricket": CRICKET_TOKENS,
}

# (level, phrases) checked in order; first hit wins
_CONFIDENCE_PATTERNS = (
    (HIGH, ("high confidence", "confidence: high")),
    (MEDIUM, ("medium confidence", "confidence: medium")),
    (LOW, ("low confidence", "confidence: low")),
)


def extract_confidence(decision_text: str) -> str:
    text = (decision_text or "").lower()
    for level, phrases in _CONFIDENCE_PATTERNS:
        if any(p in text for p in phrases):
            return level
    return DEFAULT_CONFIDENCE


def tokens_for(sport: str) -> Tuple[str, ...]:
    return TOKEN_TABLES.get((sport or "").lower(), GENERAL_TOKENS)


def extract_final_call(decision_text: str, sport: str) -> str:
    """First token of the sport's table found anywhere in the upper-cased text."""
    text = (decision_text or "").upper()
    for token in tokens_for(sport):
        if token in text:
            return token
    return DECISION_REQUIRED


def utc_now_iso() -> str:
    return datetime.now(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")


@dataclass(frozen=True)
class Decision:
    sport: str
    video_duration: float
    decision: str
    confidence: str
    final_call: str
    has_audio: bool
    processed_as_full_video: bool = True
    timestamp: str = field(default_factory=utc_now_iso)

    @classmethod
    def from_text(cls, decision_text: str, sport: str, video_duration: float, has_audio: bool) -> "Decision":
        return cls(
            sport=sport,
            video_duration=video_duration,
            decision=decision_text,
            confidence=extract_confidence(decision_text),
            final_call=extract_final_call(decision_text, sport),
            has_audio=has_audio,
        )

    def to_dict(self) -> dict:
        return {
            "timestamp": self.timestamp,
            "sport": self.sport,
            "videoDuration": self.video_duration,
            "decision": self.decision,
            "confidence": self.confidence,
            "finalCall": self.final_call,
            "hasAudio": self.has_audio,
            "processedAsFullVideo": self.processed_as_full_video,
        }
