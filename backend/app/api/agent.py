"""Agent API router: run tasks and inspect their steps."""

from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from app.api.deps import (
    ModelBuilder,
    TenantContext,
    ToolBuilder,
    get_model_builder,
    get_tenant_context,
    get_tool_builder,
)
from app.config import settings
from app.database import get_db
from app.schemas.agent import AgentExecuteRequest, AgentTaskList, AgentTaskResponse
from app.services.agent_service import execute_task, get_task_by_id, list_tasks

router = APIRouter()


@router.post("/execute", response_model=AgentTaskResponse)
async def execute_agent_task(
    payload: AgentExecuteRequest,
    ctx: TenantContext = Depends(get_tenant_context),
    db: AsyncSession = Depends(get_db),
    build_model: ModelBuilder = Depends(get_model_builder),
    build_tools: ToolBuilder = Depends(get_tool_builder),
):
    """
    Run an agent task to completion and return it with all of its steps.

    A task that fails is still persisted with the steps it finished; the
    error response carries the failure and the task is readable through
    ``GET /agent/tasks``.
    """
    model = await build_model(db, ctx.tenant_id, payload.ai_provider)
    task = await execute_task(
        db,
        tenant_id=ctx.tenant_id,
        user_id=ctx.user_id,
        prompt=payload.prompt,
        task_type=payload.type,
        model=model,
        tools=build_tools(payload.type, ctx),
        ai_provider=model.provider,
        max_steps=payload.max_steps or settings.AGENT_MAX_STEPS,
    )
    return task


@router.get("/tasks", response_model=AgentTaskList)
async def get_agent_tasks(
    limit: int = Query(50, ge=1, le=200),
    ctx: TenantContext = Depends(get_tenant_context),
    db: AsyncSession = Depends(get_db),
):
    tasks = await list_tasks(db, ctx.tenant_id, limit=limit)
    return AgentTaskList(
        tasks=[AgentTaskResponse.model_validate(task) for task in tasks],
        total=len(tasks),
    )


@router.get("/tasks/{task_id}", response_model=AgentTaskResponse)
async def get_agent_task(
    task_id: str,
    ctx: TenantContext = Depends(get_tenant_context),
    db: AsyncSession = Depends(get_db),
):
    task = await get_task_by_id(db, task_id)
    # Other tenants' tasks are reported as missing
    if task is None or task.tenant_id != ctx.tenant_id:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail={
                "code": "TASK_NOT_FOUND",
                "message": "Agent task not found"
            }
        )
    return task
