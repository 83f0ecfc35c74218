"""
Cron Task Scheduler

Scheduled task table and orchestrator. Schedules are standard 5-field
cron expressions evaluated in UTC (*, lists, ranges and steps), matched
with croniter at minute resolution.
"""

import asyncio
import logging
from datetime import datetime, timezone
from typing import Any, Awaitable, Callable, Dict, List, Optional

from croniter import croniter
from pydantic import BaseModel, Field, field_validator

from src.app.config import Settings, settings
from src.core.exceptions import InvalidCronExpressionError
from src.core.observability.metrics import observe_task_duration

logger = logging.getLogger(__name__)

TaskHandler = Callable[[datetime], Awaitable[Any]]


class CronComponents(BaseModel):
    minute: str
    hour: str
    day: str
    month: str
    weekday: str


def parse_cron_expression(expression: str) -> CronComponents:
    """
    Split a cron expression into its five fields.

    Raises:
        InvalidCronExpressionError: If the expression does not have five
            fields or croniter rejects it
    """
    parts = expression.strip().split()
    if len(parts) != 5:
        raise InvalidCronExpressionError(expression, f"expected 5 components, got {len(parts)}")
    if not croniter.is_valid(expression):
        raise InvalidCronExpressionError(expression, "invalid field value")
    return CronComponents(
        minute=parts[0],
        hour=parts[1],
        day=parts[2],
        month=parts[3],
        weekday=parts[4],
    )


class CronTask(BaseModel):
    """A scheduled task definition."""
    id: str = Field(..., description="Unique task ID")
    name: str = Field(..., description="Human-readable name")
    description: str = Field(default="", description="What the task does")
    schedule: str = Field(..., description="UTC cron expression")
    enabled: bool = Field(default=True)
    max_duration_seconds: int = Field(default=300, ge=1, description="Hard wall-clock ceiling")

    @field_validator("schedule")
    @classmethod
    def validate_schedule(cls, v: str) -> str:
        try:
            parse_cron_expression(v)
        except InvalidCronExpressionError as e:
            raise ValueError(e.message) from e
        return v.strip()


class TaskExecutionResult(BaseModel):
    task_id: str
    task_name: str
    success: bool
    start_time: datetime
    end_time: datetime
    duration_ms: float
    error: Optional[str] = None
    response: Optional[Any] = None


def build_cron_tasks(config: Settings) -> List[CronTask]:
    return [
        CronTask(
            id="evaluate-alerts",
            name="Evaluate Alert Rules",
            description="Evaluates alert rules against current cost data and triggers notifications",
            schedule=config.evaluate_alerts_schedule,
            max_duration_seconds=config.evaluate_alerts_max_duration_seconds,
        ),
        CronTask(
            id="send-digests",
            name="Send Alert Digests",
            description="Delivers queued alerts as digests for every organization with due entries",
            schedule=config.send_digests_schedule,
            max_duration_seconds=config.send_digests_max_duration_seconds,
        ),
    ]


CRON_TASKS: List[CronTask] = build_cron_tasks(settings)


def _utc(now: Optional[datetime]) -> datetime:
    now = now or datetime.now(timezone.utc)
    if now.tzinfo is None:
        return now.replace(tzinfo=timezone.utc)
    return now.astimezone(timezone.utc)


def should_task_run(task: CronTask, now: Optional[datetime] = None) -> bool:
    """True if the task is enabled and its schedule matches now's UTC minute."""
    if not task.enabled:
        return False
    return croniter.match(task.schedule, _utc(now).replace(second=0, microsecond=0))


def get_tasks_to_run(
    now: Optional[datetime] = None,
    tasks: Optional[List[CronTask]] = None
) -> List[CronTask]:
    return [task for task in (tasks if tasks is not None else CRON_TASKS) if should_task_run(task, now)]


def get_task_by_id(task_id: str, tasks: Optional[List[CronTask]] = None) -> Optional[CronTask]:
    return next((t for t in (tasks if tasks is not None else CRON_TASKS) if t.id == task_id), None)


def next_run_time(task: CronTask, now: Optional[datetime] = None) -> datetime:
    """Next UTC time strictly after now when the task is scheduled."""
    return croniter(task.schedule, _utc(now)).get_next(datetime)


def format_task_result(result: TaskExecutionResult) -> str:
    status = "OK" if result.success else "FAILED"
    return f"[{status}] {result.task_name} ({result.duration_ms:.0f}ms)"


class TaskOrchestrator:
    """
    Runs due tasks, each under its max duration.

    A task that exceeds its ceiling is cancelled and reported as failed;
    other tasks are unaffected.
    """

    def __init__(self, handlers: Dict[str, TaskHandler], tasks: Optional[List[CronTask]] = None):
        self.handlers = handlers
        self.tasks = tasks if tasks is not None else CRON_TASKS

    async def run_task(self, task: CronTask, now: Optional[datetime] = None) -> TaskExecutionResult:
        now = _utc(now)
        start_time = datetime.now(timezone.utc)
        handler = self.handlers.get(task.id)
        error: Optional[str] = None
        response: Any = None

        if handler is None:
            error = f"No handler registered for task {task.id}"
        else:
            try:
                response = await asyncio.wait_for(handler(now), timeout=task.max_duration_seconds)
            except asyncio.TimeoutError:
                error = f"Task exceeded max duration of {task.max_duration_seconds}s"
            except Exception as e:
                logger.error(f"Task {task.id} failed: {e}", exc_info=True)
                error = str(e)

        end_time = datetime.now(timezone.utc)
        result = TaskExecutionResult(
            task_id=task.id,
            task_name=task.name,
            success=error is None,
            start_time=start_time,
            end_time=end_time,
            duration_ms=(end_time - start_time).total_seconds() * 1000,
            error=error,
            response=response.model_dump(mode="json") if isinstance(response, BaseModel) else response,
        )
        observe_task_duration(task.id, "success" if result.success else "failed", result.duration_ms / 1000)
        logger.info(format_task_result(result), extra={"task_id": task.id, "error": error})
        return result

    async def run_due_tasks(self, now: Optional[datetime] = None) -> List[TaskExecutionResult]:
        now = _utc(now)
        due = get_tasks_to_run(now, self.tasks)
        if not due:
            logger.debug(f"No tasks due at {now.isoformat()}")
            return []
        logger.info(f"Running {len(due)} due tasks: {[t.id for t in due]}")
        return list(await asyncio.gather(*[self.run_task(task, now) for task in due]))
