from models import CheckupHistory, DailyStats

# Number of past reviews shown to the model for comparison
HISTORY_WINDOW = 7

CHECKUP_PROMPT = """You are an experienced habit coach and a warm, honest friend. Based on the user's task data for today, give encouraging but sincere feedback.

## Today's task data ({date})

### Overall completion
- Total tasks: {total_tasks}
- Completed: {completed_tasks}
- Completion rate: {completion_rate}%

### Completion by importance
- High importance: {high_importance.completed}/{high_importance.total} completed
- Medium importance: {medium_importance.completed}/{medium_importance.total} completed
- Low importance: {low_importance.completed}/{low_importance.total} completed

### Completion by difficulty
- High difficulty: {high_difficulty.completed}/{high_difficulty.total} completed
- Medium difficulty: {medium_difficulty.completed}/{medium_difficulty.total} completed
- Low difficulty: {low_difficulty.completed}/{low_difficulty.total} completed
"""

FOCUS_SECTION = """
### Focus time
- Total focus time: {hours}h {minutes}m
- Average session: {average_minutes} min
"""

HISTORY_SECTION = """
### Recent history
{entries}
"""

RESPONSE_INSTRUCTIONS = """
## Respond with a JSON object in exactly this format:

{{
    "summary": "one-sentence summary of the day (under 20 words, warm and a little playful)",
    "detailed_review": "detailed review (100-200 words) analysing today's performance, comparing with history when available",
    "highlights": ["highlight 1", "highlight 2"],
    "suggestions": ["suggestion 1"],
    "mood": "one of excellent | good | average | poor",
    "score": integer from 0 to 100
}}

Notes:
1. Sound like a friend, not an official report
2. Celebrate a high completion rate; with a low one, be understanding and encouraging, never critical
3. One or two highlights and suggestions are enough
4. If history is available, point out progress or setbacks

Only respond with valid JSON, no other text.
"""


def build_prompt(stats: DailyStats, history: CheckupHistory) -> str:
    """
    Render the checkup prompt for a day's stats.
    Includes up to HISTORY_WINDOW of the most recent earlier reviews.
    """
    prompt = CHECKUP_PROMPT.format(**dict(stats))

    if stats.total_duration > 0:
        prompt += FOCUS_SECTION.format(
            hours=stats.total_duration // 3_600_000,
            minutes=(stats.total_duration % 3_600_000) // 60_000,
            average_minutes=stats.average_duration // 60_000,
        )

    earlier = sorted(
        (review for review in history.reviews if review.date != stats.date),
        key=lambda review: review.date,
    )[-HISTORY_WINDOW:]
    if earlier:
        entries = "\n".join(f"- {review.date}: {review.summary} (score: {review.score})" for review in earlier)
        prompt += HISTORY_SECTION.format(entries=entries)

    prompt += RESPONSE_INSTRUCTIONS.format()
    return prompt
