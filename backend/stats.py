import math

from models import ActionItem, BucketStats, DailyStats, TodayTask


def round_half_up(value: float) -> int:
    """Round to the nearest integer, halves away from zero for non-negative values."""
    return int(math.floor(value + 0.5))


def calculate_daily_stats(
    date: str,
    action_items: list[ActionItem],
    today_tasks: list[TodayTask],
) -> DailyStats:
    """
    Summarise a day's completion from action definitions and their task instances.

    total_tasks counts every definition; buckets and durations only count
    definitions that have a task instance. Inputs are not modified.
    """
    tasks_by_action = {task.action_id: task for task in today_tasks}
    buckets = {
        f"{level}_{kind}": BucketStats()
        for level in ("high", "medium", "low")
        for kind in ("importance", "difficulty")
    }

    completed_tasks = 0
    total_duration = 0
    duration_count = 0

    for action in action_items:
        task = tasks_by_action.get(action.id)
        if task is None:
            continue

        done = task.is_completed_today
        if done:
            completed_tasks += 1

        for key in (f"{action.importance}_importance", f"{action.difficulty}_difficulty"):
            bucket = buckets[key]
            bucket.total += 1
            if done:
                bucket.completed += 1

        for execution in task.executions:
            if execution.duration > 0:
                total_duration += execution.duration
                duration_count += 1

    total_tasks = len(action_items)
    completion_rate = round_half_up(completed_tasks / total_tasks * 100) if total_tasks else 0
    average_duration = round_half_up(total_duration / duration_count) if duration_count else 0

    return DailyStats(
        date=date,
        total_tasks=total_tasks,
        completed_tasks=completed_tasks,
        completion_rate=completion_rate,
        total_duration=total_duration,
        average_duration=average_duration,
        **buckets,
    )
