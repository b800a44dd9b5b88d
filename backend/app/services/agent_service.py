"""Agent task execution: state machine, per-step persistence and queries."""

import asyncio
import logging
import time
from datetime import datetime, timedelta
from typing import Any, Dict, List, Optional, Sequence

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from app.agent_tools.prompts import system_prompt_for
from app.config import settings
from app.core.errors import AgentStepFailure, AgentTimeout, InvalidTaskTransition
from app.core.events import publish_safely
from app.llm.base import ChatModel
from app.llm.tool_loop import GenerationResult, StepEvent, Tool, generate_with_tools
from app.models.agent_task import AgentTask, AgentTaskStatus, AgentTaskType


logger = logging.getLogger(__name__)

THINKING_STEP = "thinking"
STUCK_TASK_ERROR = "Task exceeded its execution window"

# Valid state transitions
VALID_TRANSITIONS = {
    'pending': ['running'],
    'running': ['completed', 'failed'],
}


def _transition(task: AgentTask, new_status: AgentTaskStatus) -> None:
    allowed = VALID_TRANSITIONS.get(task.status, [])
    if new_status.value not in allowed:
        raise InvalidTaskTransition(f"Cannot move task from '{task.status}' to '{new_status.value}'")
    task.status = new_status.value
    task.updated_at = datetime.utcnow()


def build_step_records(event: StepEvent, first_number: int, elapsed_ms: int) -> List[Dict[str, Any]]:
    """
    Step records for one model turn.

    A turn that ran tools yields one record per tool call, in call order. A
    turn without tool calls yields a single ``thinking`` record holding the
    emitted text.
    """
    timestamp = datetime.utcnow().isoformat()
    if not event.tool_results:
        return [{
            "stepNumber": first_number,
            "toolName": THINKING_STEP,
            "input": {},
            "output": event.text,
            "timestamp": timestamp,
            "durationMs": elapsed_ms,
        }]
    return [
        {
            "stepNumber": first_number + offset,
            "toolName": result.tool_name,
            "input": result.input,
            "output": result.output,
            "timestamp": timestamp,
            "durationMs": elapsed_ms,
        }
        for offset, result in enumerate(event.tool_results)
    ]


def _step_failure(result: GenerationResult, step_count: int) -> Optional[AgentStepFailure]:
    """A loop cut off by the turn bound while its last tool call was failing."""
    if result.finish_reason != "max_steps" or not result.steps:
        return None
    last = result.steps[-1].tool_results
    if not last or not last[-1].failed:
        return None
    failed = last[-1]
    return AgentStepFailure(
        f"Tool {failed.tool_name} failed: {failed.output.get('error', 'unknown error')}",
        tool_name=failed.tool_name,
        step_number=step_count,
    )


async def _fail_task(db: AsyncSession, task_id: str, error: str) -> Optional[AgentTask]:
    """Mark a running task failed in a clean transaction, keeping the steps already persisted."""
    await db.rollback()
    task = await db.get(AgentTask, task_id, populate_existing=True)
    if task is None or task.status != AgentTaskStatus.RUNNING.value:
        return task

    _transition(task, AgentTaskStatus.FAILED)
    task.error = error
    task.completed_at = datetime.utcnow()
    await db.commit()
    await db.refresh(task)

    await publish_safely(task.tenant_id, "agent_task_failed", {
        "task_id": task.id,
        "error": error,
        "steps": len(task.steps),
    })
    return task


async def execute_task(
    db: AsyncSession,
    *,
    tenant_id: str,
    user_id: str,
    prompt: str,
    task_type: AgentTaskType,
    model: ChatModel,
    tools: Sequence[Tool],
    ai_provider: Optional[str] = None,
    max_steps: int = settings.AGENT_MAX_STEPS,
    timeout_seconds: float = settings.AGENT_TIMEOUT_SECONDS,
) -> AgentTask:
    """
    Run one agent task to completion.

    The task row is committed as ``pending``, moved to ``running``, and its
    ``steps`` list is re-committed after every model turn so a crash leaves
    all finished steps readable. On success the task ends ``completed``
    with ``{text, usage, finishReason}`` as its result.

    Raises:
        AgentTimeout: The loop exceeded ``timeout_seconds``; the task is failed
        AgentStepFailure: The turn bound was hit on a failing tool call; the task is failed
        Exception: Any model or persistence error, after the task is failed
    """
    task_type = AgentTaskType(task_type)
    task = AgentTask(
        tenant_id=tenant_id,
        user_id=user_id,
        type=task_type.value,
        prompt=prompt,
        ai_provider=ai_provider,
        status=AgentTaskStatus.PENDING.value,
        steps=[],
    )
    db.add(task)
    await db.commit()
    await db.refresh(task)
    task_id = task.id
    log_extra = {"tenant_id": tenant_id, "user_id": user_id, "task_id": task_id}

    try:
        _transition(task, AgentTaskStatus.RUNNING)
        task.started_at = datetime.utcnow()
        await db.commit()

        await publish_safely(tenant_id, "agent_task_started", {
            "task_id": task_id,
            "type": task_type.value,
        })
        logger.info("Agent task started (%s)", task_type.value, extra=log_extra)

        loop_started = time.monotonic()
        steps: List[Dict[str, Any]] = []

        async def on_step(event: StepEvent) -> None:
            nonlocal steps
            elapsed_ms = int((time.monotonic() - loop_started) * 1000)
            new_steps = build_step_records(event, len(steps) + 1, elapsed_ms)
            # Reassign so the JSON column is flagged dirty; earlier records are never touched
            steps = steps + new_steps
            task.steps = list(steps)
            task.updated_at = datetime.utcnow()
            await db.commit()

            for step in new_steps:
                await publish_safely(tenant_id, "agent_task_step", {"task_id": task_id, "step": step})

        result = await asyncio.wait_for(
            generate_with_tools(
                model,
                system=system_prompt_for(task_type),
                prompt=prompt,
                tools=tools,
                on_step=on_step,
                max_steps=max_steps,
            ),
            timeout=timeout_seconds,
        )

        failure = _step_failure(result, len(steps))
        if failure is not None:
            raise failure

        task.result = {
            "text": result.text,
            "usage": result.usage.to_dict(),
            "finishReason": result.finish_reason,
        }
        _transition(task, AgentTaskStatus.COMPLETED)
        task.completed_at = datetime.utcnow()
        await db.commit()
        await db.refresh(task)

    except asyncio.TimeoutError as exc:
        message = f"Agent task timed out after {timeout_seconds:g}s"
        logger.error(message, extra=log_extra)
        await _fail_task(db, task_id, message)
        raise AgentTimeout(message) from exc

    except Exception as exc:
        logger.exception("Agent task failed", extra=log_extra)
        await _fail_task(db, task_id, str(exc) or type(exc).__name__)
        raise

    await publish_safely(tenant_id, "agent_task_completed", {
        "task_id": task_id,
        "steps": len(task.steps),
        "finish_reason": result.finish_reason,
    })
    logger.info("Agent task completed in %d step(s)", len(task.steps), extra=log_extra)
    return task


async def get_task_by_id(db: AsyncSession, task_id: str) -> Optional[AgentTask]:
    result = await db.execute(select(AgentTask).where(AgentTask.id == task_id))
    return result.scalar_one_or_none()


async def list_tasks(db: AsyncSession, tenant_id: str, limit: int = 50) -> List[AgentTask]:
    """Most recent tasks for a tenant, newest first."""
    result = await db.execute(
        select(AgentTask)
        .where(AgentTask.tenant_id == tenant_id)
        .order_by(AgentTask.created_at.desc())
        .limit(limit)
    )
    return list(result.scalars().all())


async def fail_stuck_tasks(
    db: AsyncSession,
    *,
    older_than: timedelta = timedelta(seconds=settings.AGENT_STUCK_AFTER_SECONDS),
    now: Optional[datetime] = None,
) -> int:
    """
    Fail ``running`` tasks that started before ``now - older_than``.

    Such tasks were abandoned by a crashed or cancelled worker. Returns the
    number of tasks failed.
    """
    cutoff = (now or datetime.utcnow()) - older_than
    result = await db.execute(
        select(AgentTask).where(
            AgentTask.status == AgentTaskStatus.RUNNING.value,
            AgentTask.started_at < cutoff,
        )
    )
    stuck = list(result.scalars().all())
    for task in stuck:
        _transition(task, AgentTaskStatus.FAILED)
        task.error = STUCK_TASK_ERROR
        task.completed_at = datetime.utcnow()
    await db.commit()

    for task in stuck:
        logger.warning("Failed stuck agent task", extra={"tenant_id": task.tenant_id, "task_id": task.id})
        await publish_safely(task.tenant_id, "agent_task_failed", {"task_id": task.id, "error": STUCK_TASK_ERROR})
    return len(stuck)


async def reap_stuck_tasks(
    session_factory: async_sessionmaker,
    *,
    interval_seconds: float = settings.AGENT_REAPER_INTERVAL_SECONDS,
    older_than: timedelta = timedelta(seconds=settings.AGENT_STUCK_AFTER_SECONDS),
) -> None:
    """
    Run ``fail_stuck_tasks`` every ``interval_seconds`` until cancelled.

    A failed sweep is logged and retried on the next tick.
    """
    while True:
        try:
            async with session_factory() as session:
                count = await fail_stuck_tasks(session, older_than=older_than)
            if count:
                logger.info("Reaped %d stuck agent task(s)", count)
        except Exception:
            logger.exception("Stuck task sweep failed")
        await asyncio.sleep(interval_seconds)
