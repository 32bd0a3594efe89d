"""
Checkup review: turn a day's stats into a model-written review and keep history.
"""
import json
import logging
import math
from typing import Any, Awaitable, Callable, Optional

from pydantic import ValidationError

from checklist import today_string
from database import get_value, set_value
from models import AIConfig, CheckupAgentState, CheckupHistory, CheckupReview, DailyStats
from prompts import build_prompt
from providers import GenerationError, NotConfiguredError, generate
from stats import round_half_up

logger = logging.getLogger(__name__)

STORAGE_KEY = "checkup-agent-v1"

FALLBACK_SUMMARY = "Another day of honest effort!"
DEFAULT_MOOD = "good"
DEFAULT_SCORE = 70
MOODS = ("excellent", "good", "average", "poor")

Generator = Callable[[str, Optional[AIConfig]], Awaitable[str]]


class AnalysisInProgressError(Exception):
    pass


def extract_json_object(text: str) -> Optional[dict]:
    """
    Find the first balanced {...} in text that parses as a JSON object.
    Braces inside JSON strings are ignored. Returns None if there is none.
    """
    start = text.find("{")
    while start != -1:
        depth = 0
        in_string = False
        escaped = False
        end = None
        for i in range(start, len(text)):
            ch = text[i]
            if in_string:
                if escaped:
                    escaped = False
                elif ch == "\\":
                    escaped = True
                elif ch == '"':
                    in_string = False
            elif ch == '"':
                in_string = True
            elif ch == "{":
                depth += 1
            elif ch == "}":
                depth -= 1
                if depth == 0:
                    end = i
                    break
        if end is None:
            # Unbalanced brace, try the next one
            start = text.find("{", start + 1)
            continue
        try:
            parsed = json.loads(text[start:end + 1])
        except json.JSONDecodeError:
            parsed = None
        if isinstance(parsed, dict):
            return parsed
        # Skip the whole rejected group so nested objects are not picked up
        start = text.find("{", end + 1)
    return None


def _string_list(value: Any) -> list[str]:
    if not isinstance(value, list):
        return []
    return [item.strip() for item in value if isinstance(item, str) and item.strip()]


def _non_empty(value: Any) -> Optional[str]:
    if isinstance(value, str) and value.strip():
        return value.strip()
    return None


def _score(value: Any) -> int:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return DEFAULT_SCORE
    if isinstance(value, int):
        return min(100, max(0, value))
    if not math.isfinite(value):
        return DEFAULT_SCORE
    return min(100, max(0, round_half_up(value)))


def parse_review(raw: str, date: str) -> CheckupReview:
    """
    Build a review from raw model output. Never raises.

    Missing or invalid fields fall back to defaults; output without a JSON
    object becomes the detailed review as-is.
    """
    parsed = extract_json_object(raw)
    if parsed is None:
        logger.warning("No JSON object in model response, using raw text")
        return CheckupReview(date=date, summary=FALLBACK_SUMMARY, detailed_review=raw)

    mood = parsed.get("mood")
    return CheckupReview(
        date=date,
        summary=_non_empty(parsed.get("summary")) or FALLBACK_SUMMARY,
        detailed_review=_non_empty(parsed.get("detailed_review")) or _non_empty(parsed.get("detailedReview")) or raw,
        highlights=_string_list(parsed.get("highlights")),
        suggestions=_string_list(parsed.get("suggestions")),
        mood=mood if mood in MOODS else DEFAULT_MOOD,
        score=_score(parsed.get("score")),
    )


def merge_history(history: CheckupHistory, review: CheckupReview, stats: DailyStats) -> CheckupHistory:
    """Replace any entries for the review's date with the new review and stats."""
    return CheckupHistory(
        reviews=[r for r in history.reviews if r.date != review.date] + [review],
        stats=[s for s in history.stats if s.date != review.date] + [stats],
    )


async def review_day(
    stats: DailyStats,
    history: CheckupHistory,
    config: Optional[AIConfig],
    generator: Generator = generate,
) -> CheckupReview:
    """Ask the model for a review of stats. Generation errors propagate."""
    prompt = build_prompt(stats, history)
    raw = await generator(prompt, config)
    logger.debug("Model response for %s: %s", stats.date, raw)
    return parse_review(raw, stats.date)


class CheckupAgent:
    """
    Persisted checkup state for the local user, with at most one analysis in flight.
    """

    def __init__(self, generator: Generator = generate):
        self.generator = generator
        self.is_analyzing = False

    def state(self, today: Optional[str] = None) -> CheckupAgentState:
        raw = get_value(STORAGE_KEY)
        if raw is None:
            return CheckupAgentState()
        try:
            state = CheckupAgentState.model_validate(raw)
        except ValidationError:
            logger.warning("Stored checkup state is malformed, starting from an empty state")
            return CheckupAgentState()
        # A review from an earlier day is history, not today's review
        today = today or today_string()
        if state.today_review is not None and state.today_review.date != today:
            state = state.model_copy(update={"today_review": None})
        return state

    def _save(self, state: CheckupAgentState) -> CheckupAgentState:
        set_value(STORAGE_KEY, state.model_dump(mode="json"))
        return state

    def save_config(self, config: AIConfig) -> CheckupAgentState:
        clean = config.model_copy(update={"api_key": config.api_key.strip()})
        return self._save(self.state().model_copy(update={"config": clean, "error": None}))

    def clear_config(self) -> CheckupAgentState:
        return self._save(self.state().model_copy(update={"config": None}))

    def clear_today_review(self) -> CheckupAgentState:
        """Forget today's review so a fresh one can be requested. History is kept."""
        return self._save(self.state().model_copy(update={"today_review": None, "error": None}))

    async def analyze(self, stats: DailyStats) -> CheckupReview:
        """
        Review today's stats and record the result in history.

        Raises AnalysisInProgressError if an analysis is already running and
        GenerationError on failure; failures leave review and history untouched.
        """
        if self.is_analyzing:
            raise AnalysisInProgressError("An analysis is already in progress")
        self.is_analyzing = True
        try:
            state = self.state(stats.date)
            if state.config is None:
                raise NotConfiguredError("Please configure an AI provider first")
            logger.info("Analyzing %s with %s", stats.date, state.config.provider.value)
            review = await review_day(stats, state.history, state.config, self.generator)
        except GenerationError as e:
            logger.error("Checkup analysis failed: %s", e)
            self._save(self.state(stats.date).model_copy(update={"error": str(e)}))
            raise
        finally:
            self.is_analyzing = False

        # Re-read so config changes made while the call was outstanding are kept
        latest = self.state(stats.date)
        self._save(latest.model_copy(update={
            "today_review": review,
            "history": merge_history(latest.history, review, stats),
            "error": None,
        }))
        return review
