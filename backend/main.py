from contextlib import asynccontextmanager
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
import logging
import os
from dotenv import load_dotenv

from models import ActionItemCreate, ActionItemUpdate, AIConfig, CheckupRequest, Provider
from database import init_db
from checklist import (
    apply,
    load_state,
    sorted_tasks,
    add_action_item,
    update_action_item,
    delete_action_item,
    start_task,
    complete_task_with_duration,
    complete_task_simple,
    cancel_task,
)
from stats import calculate_daily_stats
from checkup import AnalysisInProgressError, CheckupAgent, review_day
from providers import GenerationError, NotConfiguredError, generate
from ratelimit import DailyQuota

load_dotenv()

logging.basicConfig(
    level=os.getenv("LOG_LEVEL", "INFO"),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)

CHECKUP_API_PROVIDER = os.getenv("CHECKUP_API_PROVIDER", "moonshot")
CHECKUP_API_KEY = os.getenv("CHECKUP_API_KEY", "")
CHECKUP_API_MODEL = os.getenv("CHECKUP_API_MODEL", "moonshot-v1-8k")
CHECKUP_API_URL = os.getenv("CHECKUP_API_URL") or None
CHECKUP_DAILY_LIMIT = int(os.getenv("CHECKUP_DAILY_LIMIT", "5"))
CORS_ORIGINS = os.getenv("CORS_ORIGINS", "http://localhost:5173").split(",")


@asynccontextmanager
async def lifespan(app: FastAPI):
    # Startup
    init_db()
    app.state.agent = CheckupAgent()
    app.state.quota = DailyQuota(CHECKUP_DAILY_LIMIT)
    app.state.generate = generate
    yield
    # Shutdown (nothing to do)

app = FastAPI(lifespan=lifespan)

app.add_middleware(
    CORSMiddleware,
    allow_origins=CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


def error_response(status_code: int, message: str) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"error": message})


def generation_status(error: GenerationError) -> int:
    """503 when nothing is configured, 502 when the provider call failed."""
    return 503 if isinstance(error, NotConfiguredError) else 502


@app.exception_handler(RequestValidationError)
async def validation_error_handler(_request: Request, exc: RequestValidationError) -> JSONResponse:
    fields = ", ".join(".".join(str(part) for part in err["loc"][1:]) or "body" for err in exc.errors())
    return error_response(400, f"Missing or invalid parameters: {fields}")


# Checklist

def _state_response(state) -> dict:
    return state.model_dump(mode="json")


@app.get("/state")
def get_state() -> dict:
    return _state_response(load_state())


@app.get("/tasks")
def get_tasks() -> list[dict]:
    """Today's tasks in display order, each with its action item."""
    return [
        {"task": task.model_dump(mode="json"), "action_item": item.model_dump(mode="json")}
        for task, item in sorted_tasks(load_state())
    ]


@app.get("/stats")
def get_stats() -> dict:
    state = load_state()
    return calculate_daily_stats(state.current_date, state.action_items, state.today_tasks).model_dump()


@app.post("/actions")
def create_action(action_data: ActionItemCreate) -> dict:
    return _state_response(apply(
        add_action_item,
        action_data.name,
        action_data.difficulty,
        action_data.importance,
        action_data.times_per_day,
        action_data.tracks_duration,
    ))


@app.patch("/actions/{action_id}")
def update_action(action_id: str, action_data: ActionItemUpdate) -> dict:
    return _state_response(apply(update_action_item, action_id, **action_data.model_dump(exclude_unset=True)))


@app.delete("/actions/{action_id}")
def delete_action(action_id: str) -> dict:
    return _state_response(apply(delete_action_item, action_id))


@app.post("/tasks/{action_id}/start")
def start(action_id: str) -> dict:
    return _state_response(apply(start_task, action_id))


@app.post("/tasks/{action_id}/stop")
def stop(action_id: str) -> dict:
    """Finish the running execution of a timed task."""
    return _state_response(apply(complete_task_with_duration, action_id))


@app.post("/tasks/{action_id}/complete")
def complete(action_id: str) -> dict:
    return _state_response(apply(complete_task_simple, action_id))


@app.post("/tasks/{action_id}/cancel")
def cancel(action_id: str) -> dict:
    return _state_response(apply(cancel_task, action_id))


# Checkup (local agent)

def _today_stats():
    state = load_state()
    return calculate_daily_stats(state.current_date, state.action_items, state.today_tasks)


@app.get("/checkup")
def get_checkup(request: Request) -> dict:
    agent: CheckupAgent = request.app.state.agent
    return {
        **agent.state().model_dump(mode="json"),
        "is_analyzing": agent.is_analyzing,
        "today_stats": _today_stats().model_dump(),
    }


@app.put("/checkup/config")
def save_checkup_config(config: AIConfig, request: Request) -> dict:
    return request.app.state.agent.save_config(config).model_dump(mode="json")


@app.delete("/checkup/config")
def clear_checkup_config(request: Request) -> dict:
    return request.app.state.agent.clear_config().model_dump(mode="json")


@app.post("/checkup/analyze")
async def analyze(request: Request):
    agent: CheckupAgent = request.app.state.agent
    try:
        review = await agent.analyze(_today_stats())
    except AnalysisInProgressError as e:
        return error_response(409, str(e))
    except GenerationError as e:
        return error_response(generation_status(e), str(e))
    return {"review": review.model_dump(mode="json")}


@app.delete("/checkup/review")
def clear_review(request: Request) -> dict:
    return request.app.state.agent.clear_today_review().model_dump(mode="json")


# Checkup (hosted)

def server_config() -> AIConfig:
    if not CHECKUP_API_KEY:
        raise NotConfiguredError("Server API key is not configured")
    try:
        provider = Provider(CHECKUP_API_PROVIDER)
    except ValueError:
        raise NotConfiguredError(f"Unsupported AI provider: {CHECKUP_API_PROVIDER}")
    return AIConfig(provider=provider, api_key=CHECKUP_API_KEY, api_url=CHECKUP_API_URL, model=CHECKUP_API_MODEL)


def caller_id(request: Request) -> str:
    forwarded = request.headers.get("x-forwarded-for")
    if forwarded:
        return forwarded.split(",")[0].strip()
    return request.client.host if request.client else "unknown"


@app.post("/api/checkup")
async def hosted_checkup(checkup_request: CheckupRequest, request: Request):
    """Review stats sent by a client using the server's provider credentials."""
    caller = caller_id(request)
    if not request.app.state.quota.consume(caller):
        logger.info("Daily checkup limit reached for %s", caller)
        return error_response(429, f"Daily checkup limit reached ({CHECKUP_DAILY_LIMIT} per day), try again tomorrow")

    try:
        review = await review_day(
            checkup_request.stats,
            checkup_request.history,
            server_config(),
            request.app.state.generate,
        )
    except GenerationError as e:
        logger.error("Hosted checkup failed: %s", e)
        return error_response(generation_status(e), str(e))
    return {"review": review.model_dump(mode="json")}


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=8000)
