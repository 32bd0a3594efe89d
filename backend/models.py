from pydantic import BaseModel, ConfigDict, Field
from typing import Literal, Optional
from enum import Enum

Difficulty = Literal["low", "medium", "high"]
Importance = Literal["low", "medium", "high"]
Mood = Literal["excellent", "good", "average", "poor"]


class ActionItem(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: str
    name: str
    difficulty: Difficulty = "medium"
    importance: Importance = "medium"
    times_per_day: int = 1
    tracks_duration: bool = False  # Timed start/stop vs. single-click completion
    created_at: int  # Epoch milliseconds, tie-break sort key only


class TaskExecution(BaseModel):
    model_config = ConfigDict(frozen=True)

    start_time: Optional[int] = None
    end_time: Optional[int] = None
    duration: int = 0  # Milliseconds, 0 until closed


class TodayTask(BaseModel):
    model_config = ConfigDict(frozen=True)

    action_id: str
    completed_count: int = 0
    current_execution: Optional[TaskExecution] = None  # Open execution for timed tasks
    is_completed_today: bool = False
    executions: list[TaskExecution] = Field(default_factory=list)
    last_updated: int


class AppState(BaseModel):
    model_config = ConfigDict(frozen=True)

    action_items: list[ActionItem] = Field(default_factory=list)
    today_tasks: list[TodayTask] = Field(default_factory=list)
    current_date: str  # YYYY-MM-DD, local calendar day


class ActionItemCreate(BaseModel):
    name: str
    difficulty: Difficulty = "medium"
    importance: Importance = "medium"
    times_per_day: int = 1
    tracks_duration: bool = False


class ActionItemUpdate(BaseModel):
    name: Optional[str] = None
    difficulty: Optional[Difficulty] = None
    importance: Optional[Importance] = None
    times_per_day: Optional[int] = None
    tracks_duration: Optional[bool] = None


class BucketStats(BaseModel):
    total: int = 0
    completed: int = 0


class DailyStats(BaseModel):
    date: str
    total_tasks: int = 0
    completed_tasks: int = 0
    completion_rate: int = 0  # 0-100
    high_importance: BucketStats = Field(default_factory=BucketStats)
    medium_importance: BucketStats = Field(default_factory=BucketStats)
    low_importance: BucketStats = Field(default_factory=BucketStats)
    high_difficulty: BucketStats = Field(default_factory=BucketStats)
    medium_difficulty: BucketStats = Field(default_factory=BucketStats)
    low_difficulty: BucketStats = Field(default_factory=BucketStats)
    total_duration: int = 0  # Milliseconds
    average_duration: int = 0  # Milliseconds


class CheckupReview(BaseModel):
    date: str
    summary: str
    detailed_review: str
    highlights: list[str] = Field(default_factory=list)
    suggestions: list[str] = Field(default_factory=list)
    mood: Mood = "good"
    score: int = 70  # 0-100


class CheckupHistory(BaseModel):
    reviews: list[CheckupReview] = Field(default_factory=list)
    stats: list[DailyStats] = Field(default_factory=list)


class Provider(str, Enum):
    OPENAI = "openai"
    ANTHROPIC = "anthropic"
    ZHIPU = "zhipu"
    MOONSHOT = "moonshot"
    CUSTOM = "custom"


class AIConfig(BaseModel):
    provider: Provider
    api_key: str
    api_url: Optional[str] = None  # Required for the custom provider, optional proxy otherwise
    model: str = ""


class CheckupAgentState(BaseModel):
    config: Optional[AIConfig] = None
    today_review: Optional[CheckupReview] = None
    history: CheckupHistory = Field(default_factory=CheckupHistory)
    error: Optional[str] = None


class CheckupRequest(BaseModel):
    stats: DailyStats
    history: CheckupHistory
