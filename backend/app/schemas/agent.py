"""Pydantic schemas for agent task execution."""

from datetime import datetime
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field

from app.models.agent_task import AgentTaskType
from app.models.provider_settings import ProviderKind


class AgentExecuteRequest(BaseModel):
    """Schema for starting an agent task."""
    prompt: str = Field(..., min_length=1, max_length=10_000)
    type: AgentTaskType = AgentTaskType.CUSTOM
    ai_provider: Optional[ProviderKind] = None
    max_steps: Optional[int] = Field(None, ge=1, le=50)


class AgentStepResponse(BaseModel):
    stepNumber: int
    toolName: str
    input: Any
    output: Any
    timestamp: str
    durationMs: int


class AgentTaskResponse(BaseModel):
    """Full agent task, including every persisted step."""
    id: str
    tenant_id: str
    user_id: str
    type: str
    prompt: str
    ai_provider: Optional[str]
    status: str
    steps: List[AgentStepResponse]
    result: Optional[Dict[str, Any]]
    error: Optional[str]
    created_at: datetime
    updated_at: datetime
    started_at: Optional[datetime]
    completed_at: Optional[datetime]

    model_config = {"from_attributes": True}


class AgentTaskList(BaseModel):
    tasks: List[AgentTaskResponse]
    total: int
