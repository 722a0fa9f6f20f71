"""Trigger classifier: derives semantic triggers from submission data.

Three detectors run over a completed submission:

- Score triggers: fields named like nps / csat / ces / rating / satisfaction
  with numeric values, compared against per-type thresholds
- Keyword triggers: free-text fields scanned for six keyword categories
- Sentiment triggers: overall sentiment score and per-emotion intensities

All functions are pure; they never touch the database.
"""

import json
import logging
import re
from dataclasses import dataclass
from typing import Any, Optional

from core.constants import TriggerType
from triggers.base import DetectedTrigger

logger = logging.getLogger(__name__)

EXCERPT_LENGTH = 200
MIN_TEXT_LENGTH = 3


# ─── Score triggers ────────────────────────────────────────────

@dataclass(frozen=True)
class ScoreField:
    pattern: re.Pattern
    score_type: str
    low_threshold: Optional[float] = None
    high_threshold: Optional[float] = None
    detractor_threshold: Optional[float] = None
    promoter_threshold: Optional[float] = None


SCORE_FIELDS = (
    ScoreField(re.compile("nps", re.I), "nps_score", detractor_threshold=6, promoter_threshold=9),
    ScoreField(re.compile("csat", re.I), "csat_score", low_threshold=3, high_threshold=4),
    ScoreField(re.compile("ces", re.I), "ces_score", low_threshold=3, high_threshold=6),
    ScoreField(re.compile("rating", re.I), "rating_score", low_threshold=3, high_threshold=4),
    ScoreField(re.compile("satisfaction", re.I), "satisfaction_score", low_threshold=3, high_threshold=4),
)


def _parse_score(value: Any) -> Optional[float]:
    if isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return float(value)
    if isinstance(value, str):
        try:
            return float(value.strip())
        except ValueError:
            return None
    return None


def detect_score_triggers(data: dict) -> list[DetectedTrigger]:
    """Emit NPS / low / high score triggers for every matching score field.

    A key that matches several patterns (e.g. ``nps_rating``) is checked
    against each of them.
    """
    triggers: list[DetectedTrigger] = []

    for key, value in (data or {}).items():
        score = _parse_score(value)
        if score is None:
            continue

        for score_field in SCORE_FIELDS:
            if not score_field.pattern.search(str(key)):
                continue

            if score_field.detractor_threshold is not None:
                if score <= score_field.detractor_threshold:
                    triggers.append(DetectedTrigger(
                        TriggerType.NPS_DETRACTOR_DETECTED.value,
                        {"field": key, "score": score, "threshold": score_field.detractor_threshold},
                    ))
                elif score >= score_field.promoter_threshold:
                    triggers.append(DetectedTrigger(
                        TriggerType.NPS_PROMOTER_DETECTED.value,
                        {"field": key, "score": score, "threshold": score_field.promoter_threshold},
                    ))
            elif score <= score_field.low_threshold:
                triggers.append(DetectedTrigger(
                    TriggerType.LOW_SCORE_DETECTED.value,
                    {"scoreType": score_field.score_type, "field": key, "score": score, "threshold": score_field.low_threshold},
                ))
            elif score >= score_field.high_threshold:
                triggers.append(DetectedTrigger(
                    TriggerType.HIGH_SCORE_DETECTED.value,
                    {"scoreType": score_field.score_type, "field": key, "score": score, "threshold": score_field.high_threshold},
                ))

    return triggers


# ─── Keyword triggers ──────────────────────────────────────────

KEYWORD_CATEGORIES: dict[str, tuple[TriggerType, tuple[str, ...]]] = {
    "urgent": (
        TriggerType.URGENT_KEYWORD_DETECTED,
        ("urgent", "asap", "immediately", "emergency", "critical", "now"),
    ),
    "complaint": (
        TriggerType.COMPLAINT_KEYWORD_DETECTED,
        ("complaint", "complain", "issue", "problem", "broken", "not working",
         "terrible", "worst", "awful", "horrible"),
    ),
    "cancel": (
        TriggerType.CANCELLATION_KEYWORD_DETECTED,
        ("cancel", "unsubscribe", "quit", "leave", "stop", "discontinue"),
    ),
    "competitor": (
        TriggerType.COMPETITOR_MENTIONED,
        ("competitor", "alternative", "switch", "other product", "different service"),
    ),
    "praise": (
        TriggerType.PRAISE_KEYWORD_DETECTED,
        ("excellent", "amazing", "wonderful", "fantastic", "love", "best", "perfect", "impressed"),
    ),
    "bug": (
        TriggerType.BUG_KEYWORD_DETECTED,
        ("bug", "error", "glitch", "crash", "freeze", "hang", "malfunction"),
    ),
}


def detect_keyword_triggers(data: dict) -> list[DetectedTrigger]:
    """Emit one trigger per (text field, matched category).

    Matching is a case-insensitive substring test.
    """
    triggers: list[DetectedTrigger] = []

    for key, value in (data or {}).items():
        if not isinstance(value, str) or len(value) < MIN_TEXT_LENGTH:
            continue

        text = value.lower()
        for category, (trigger_type, keywords) in KEYWORD_CATEGORIES.items():
            matched = [kw for kw in keywords if kw in text]
            if matched:
                triggers.append(DetectedTrigger(
                    trigger_type.value,
                    {
                        "category": category,
                        "field": key,
                        "matchedKeywords": matched,
                        "text": value[:EXCERPT_LENGTH],
                    },
                ))

    return triggers


# ─── Sentiment triggers ────────────────────────────────────────

NEGATIVE_SENTIMENT_THRESHOLD = -0.5
POSITIVE_SENTIMENT_THRESHOLD = 0.5
FRUSTRATION_THRESHOLD = 0.6
DELIGHT_THRESHOLD = 0.7


def dominant_emotion(emotions: dict) -> dict:
    """Return ``{"emotion", "score"}`` for the highest-scoring emotion."""
    best, best_score = None, 0.0
    for emotion, score in emotions.items():
        value = _parse_score(score)
        if value is not None and value > best_score:
            best, best_score = emotion, value
    return {"emotion": best, "score": best_score}


def _load_emotions(raw: Any) -> dict:
    if isinstance(raw, str):
        try:
            raw = json.loads(raw)
        except ValueError:
            logger.warning("Ignoring malformed emotions payload")
            return {}
    return raw if isinstance(raw, dict) else {}


def detect_sentiment_triggers(sentiment: Any) -> list[DetectedTrigger]:
    if not isinstance(sentiment, dict):
        return []

    triggers: list[DetectedTrigger] = []
    score = _parse_score(sentiment.get("score"))

    if score is not None and score <= NEGATIVE_SENTIMENT_THRESHOLD:
        triggers.append(DetectedTrigger(
            TriggerType.NEGATIVE_SENTIMENT_DETECTED.value,
            {
                "score": score,
                "confidence": sentiment.get("confidence"),
                "keywords": sentiment.get("keywords"),
                "themes": sentiment.get("themes"),
            },
        ))
    if score is not None and score >= POSITIVE_SENTIMENT_THRESHOLD:
        triggers.append(DetectedTrigger(
            TriggerType.POSITIVE_SENTIMENT_DETECTED.value,
            {
                "score": score,
                "confidence": sentiment.get("confidence"),
                "keywords": sentiment.get("keywords"),
            },
        ))

    emotions = _load_emotions(sentiment.get("emotions"))
    if emotions:
        def level(name: str) -> float:
            return _parse_score(emotions.get(name)) or 0.0

        if level("frustrated") > FRUSTRATION_THRESHOLD or level("angry") > FRUSTRATION_THRESHOLD:
            triggers.append(DetectedTrigger(
                TriggerType.FRUSTRATED_CUSTOMER_DETECTED.value,
                {"emotions": emotions, "dominantEmotion": dominant_emotion(emotions)},
            ))
        if level("happy") > DELIGHT_THRESHOLD or level("satisfied") > DELIGHT_THRESHOLD:
            triggers.append(DetectedTrigger(
                TriggerType.DELIGHTED_CUSTOMER_DETECTED.value,
                {"emotions": emotions, "dominantEmotion": dominant_emotion(emotions)},
            ))

    return triggers


def classify_submission(submission: dict) -> list[DetectedTrigger]:
    """Run every detector over a submission ``{"data": {...}, "sentiment": {...}}``."""
    data = submission.get("data") or {}
    triggers = detect_score_triggers(data) + detect_keyword_triggers(data)
    if submission.get("sentiment"):
        triggers += detect_sentiment_triggers(submission["sentiment"])
    return triggers
