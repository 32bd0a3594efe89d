from typing import Optional

from checklist import today_string


class DailyQuota:
    """Per-caller request counter that resets each calendar day."""

    def __init__(self, limit: int):
        self.limit = limit
        self._counts: dict[tuple[str, str], int] = {}

    def consume(self, caller: str, today: Optional[str] = None) -> bool:
        """Count one request for caller. Returns False once today's limit is used up."""
        today = today or today_string()
        # Counts from earlier days can never be hit again
        self._counts = {key: count for key, count in self._counts.items() if key[1] == today}

        key = (caller, today)
        count = self._counts.get(key, 0)
        if count >= self.limit:
            return False
        self._counts[key] = count + 1
        return True

    def remaining(self, caller: str, today: Optional[str] = None) -> int:
        today = today or today_string()
        return max(0, self.limit - self._counts.get((caller, today), 0))
