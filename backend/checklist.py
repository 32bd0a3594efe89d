"""
Action registry and daily task engine.

Every transition takes an AppState snapshot and returns a new one; inputs are
never mutated. Persistence happens at the boundary through apply().
"""
import logging
import threading
import time
import uuid
from datetime import datetime
from typing import Callable, Optional

from pydantic import ValidationError

from database import get_value, set_value
from models import ActionItem, AppState, TaskExecution, TodayTask

logger = logging.getLogger(__name__)

STORAGE_KEY = "checklist-app-v1"

# Serializes load -> transition -> save across request threads
_state_lock = threading.RLock()

IMPORTANCE_WEIGHT = {"high": 3, "medium": 2, "low": 1}

# Fields whose change invalidates today's progress for an action
SHAPE_FIELDS = ("times_per_day", "tracks_duration")


def today_string() -> str:
    """Local calendar day as YYYY-MM-DD."""
    return datetime.now().strftime("%Y-%m-%d")


def now_ms() -> int:
    return int(time.time() * 1000)


def create_empty_task(action_id: str, now: Optional[int] = None) -> TodayTask:
    return TodayTask(action_id=action_id, last_updated=now if now is not None else now_ms())


def empty_state(today: Optional[str] = None) -> AppState:
    return AppState(current_date=today or today_string())


def _find_action(state: AppState, action_id: str) -> Optional[ActionItem]:
    return next((item for item in state.action_items if item.id == action_id), None)


def _replace_task(state: AppState, action_id: str, update: Callable[[TodayTask], TodayTask]) -> AppState:
    """Return a new state with the task for action_id passed through update."""
    tasks = [update(task) if task.action_id == action_id else task for task in state.today_tasks]
    return state.model_copy(update={"today_tasks": tasks})


# Action registry

def add_action_item(
    state: AppState,
    name: str,
    difficulty: str = "medium",
    importance: str = "medium",
    times_per_day: int = 1,
    tracks_duration: bool = False,
    now: Optional[int] = None,
) -> AppState:
    """
    Add a recurring action and its empty task instance for today.
    Blank names leave the state unchanged.
    """
    name = (name or "").strip()
    if not name:
        return state
    now = now if now is not None else now_ms()
    item = ActionItem(
        id=str(uuid.uuid4()),
        name=name,
        difficulty=difficulty,
        importance=importance,
        times_per_day=max(1, times_per_day),
        tracks_duration=tracks_duration,
        created_at=now,
    )
    return state.model_copy(update={
        "action_items": [*state.action_items, item],
        "today_tasks": [*state.today_tasks, create_empty_task(item.id, now)],
    })


def update_action_item(state: AppState, action_id: str, now: Optional[int] = None, **updates) -> AppState:
    """
    Merge updates into an existing action. Unknown ids are ignored.

    Changing times_per_day or tracks_duration resets today's task for the action.
    """
    existing = _find_action(state, action_id)
    if existing is None:
        return state

    changes = {}
    for field, value in updates.items():
        if value is None or field in ("id", "created_at") or field not in ActionItem.model_fields:
            continue
        if field == "name":
            value = value.strip()
            if not value:
                continue
        if field == "times_per_day":
            value = max(1, value)
        changes[field] = value

    updated = ActionItem.model_validate({**existing.model_dump(), **changes})
    items = [updated if item.id == action_id else item for item in state.action_items]
    new_state = state.model_copy(update={"action_items": items})

    if any(getattr(updated, field) != getattr(existing, field) for field in SHAPE_FIELDS):
        now = now if now is not None else now_ms()
        new_state = _replace_task(new_state, action_id, lambda task: create_empty_task(action_id, now))
    return new_state


def delete_action_item(state: AppState, action_id: str) -> AppState:
    return state.model_copy(update={
        "action_items": [item for item in state.action_items if item.id != action_id],
        "today_tasks": [task for task in state.today_tasks if task.action_id != action_id],
    })


# Task execution

def _record_completion(task: TodayTask, times_per_day: int, now: int, **extra) -> TodayTask:
    count = task.completed_count + 1
    return task.model_copy(update={
        "completed_count": count,
        "is_completed_today": count >= times_per_day,
        "last_updated": now,
        **extra,
    })


def complete_task_simple(state: AppState, action_id: str, now: Optional[int] = None) -> AppState:
    """Count one completion of a single-click task."""
    action = _find_action(state, action_id)
    if action is None:
        return state
    now = now if now is not None else now_ms()
    return _replace_task(state, action_id, lambda task: _record_completion(task, action.times_per_day, now))


def start_task(state: AppState, action_id: str, now: Optional[int] = None) -> AppState:
    """Open a timed execution. Ignored while one is already running."""
    if _find_action(state, action_id) is None:
        return state
    now = now if now is not None else now_ms()

    def start(task: TodayTask) -> TodayTask:
        if task.current_execution is not None:
            return task
        return task.model_copy(update={
            "current_execution": TaskExecution(start_time=now),
            "last_updated": now,
        })

    return _replace_task(state, action_id, start)


def complete_task_with_duration(state: AppState, action_id: str, now: Optional[int] = None) -> AppState:
    """Close the running execution and count it as one completion."""
    action = _find_action(state, action_id)
    if action is None:
        return state
    now = now if now is not None else now_ms()

    def finish(task: TodayTask) -> TodayTask:
        current = task.current_execution
        if current is None or current.start_time is None:
            return task
        closed = current.model_copy(update={
            "end_time": now,
            "duration": max(0, now - current.start_time),
        })
        return _record_completion(
            task,
            action.times_per_day,
            now,
            current_execution=None,
            executions=[*task.executions, closed],
        )

    return _replace_task(state, action_id, finish)


def cancel_task(state: AppState, action_id: str, now: Optional[int] = None) -> AppState:
    """Drop the running execution without recording it."""
    now = now if now is not None else now_ms()

    def cancel(task: TodayTask) -> TodayTask:
        if task.current_execution is None:
            return task
        return task.model_copy(update={"current_execution": None, "last_updated": now})

    return _replace_task(state, action_id, cancel)


# Day rollover and ordering

def reconcile_date(state: AppState, today: Optional[str] = None, now: Optional[int] = None) -> AppState:
    """
    Reset today's tasks when the stored date is not the current day.
    Action items are kept; yesterday's task instances are discarded.
    Returns the same snapshot when no rollover is due.
    """
    today = today or today_string()
    if state.current_date == today:
        return state
    now = now if now is not None else now_ms()
    logger.info("Day rollover %s -> %s, resetting %d tasks", state.current_date, today, len(state.action_items))
    return AppState(
        action_items=state.action_items,
        today_tasks=[create_empty_task(item.id, now) for item in state.action_items],
        current_date=today,
    )


def sorted_tasks(state: AppState) -> list[tuple[TodayTask, ActionItem]]:
    """
    Today's tasks paired with their actions.
    Incomplete first, then by importance (high first), then by creation time.
    """
    actions = {item.id: item for item in state.action_items}
    pairs = [(task, actions[task.action_id]) for task in state.today_tasks if task.action_id in actions]
    return sorted(
        pairs,
        key=lambda pair: (
            pair[0].is_completed_today,
            -IMPORTANCE_WEIGHT[pair[1].importance],
            pair[1].created_at,
        ),
    )


# Persistence boundary

def save_state(state: AppState) -> None:
    set_value(STORAGE_KEY, state.model_dump(mode="json"))


def load_state(today: Optional[str] = None) -> AppState:
    """Load the stored state, applying day rollover (and persisting it) if due."""
    today = today or today_string()
    with _state_lock:
        raw = get_value(STORAGE_KEY)
        if raw is None:
            return empty_state(today)
        try:
            state = AppState.model_validate(raw)
        except ValidationError:
            logger.warning("Stored checklist state is malformed, starting from an empty state")
            return empty_state(today)

        reconciled = reconcile_date(state, today)
        if reconciled is not state:
            save_state(reconciled)
        return reconciled


def apply(transition: Callable[..., AppState], *args, today: Optional[str] = None, **kwargs) -> AppState:
    """
    Run a transition against the stored state and persist the result.
    The date is reconciled before the transition runs.
    """
    with _state_lock:
        state = load_state(today)
        new_state = transition(state, *args, **kwargs)
        save_state(new_state)
        return new_state
