"""Agent task database model."""

from datetime import datetime
from enum import Enum
from typing import Any, List
import uuid

from sqlalchemy import String, Text, TIMESTAMP, Index
from sqlalchemy import JSON
from sqlalchemy.orm import Mapped, mapped_column

from app.database import Base


class AgentTaskType(str, Enum):
    LEAD_DISCOVERY = "lead-discovery"
    EMAIL_OUTREACH = "email-outreach"
    RESEARCH = "research"
    CUSTOM = "custom"


class AgentTaskStatus(str, Enum):
    PENDING = "pending"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"


class AgentTask(Base):
    """One agent invocation and the ordered steps it executed."""

    __tablename__ = "agent_tasks"

    # Primary Key
    id: Mapped[str] = mapped_column(
        String(36),
        primary_key=True,
        default=lambda: str(uuid.uuid4())
    )

    # Ownership
    tenant_id: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    user_id: Mapped[str] = mapped_column(String(64), nullable=False)

    # Task Details
    type: Mapped[str] = mapped_column(String(32), nullable=False, default=AgentTaskType.CUSTOM.value)
    prompt: Mapped[str] = mapped_column(Text, nullable=False)
    ai_provider: Mapped[str | None] = mapped_column(String(32), nullable=True)

    # Status & State
    status: Mapped[str] = mapped_column(
        String(20),
        nullable=False,
        default=AgentTaskStatus.PENDING.value,
        index=True
    )  # pending|running|completed|failed

    # Append-only list of step dicts; always reassigned, never mutated in place
    steps: Mapped[List[dict[str, Any]]] = mapped_column(JSON, nullable=False, default=list)
    result: Mapped[dict | None] = mapped_column(JSON, nullable=True)
    error: Mapped[str | None] = mapped_column(Text, nullable=True)

    # Timestamps
    created_at: Mapped[datetime] = mapped_column(
        TIMESTAMP,
        nullable=False,
        default=datetime.utcnow
    )
    updated_at: Mapped[datetime] = mapped_column(
        TIMESTAMP,
        nullable=False,
        default=datetime.utcnow,
        onupdate=datetime.utcnow
    )
    started_at: Mapped[datetime | None] = mapped_column(TIMESTAMP, nullable=True)
    completed_at: Mapped[datetime | None] = mapped_column(TIMESTAMP, nullable=True)

    __table_args__ = (
        Index("idx_agent_tasks_tenant_created", "tenant_id", "created_at"),
    )

    def __repr__(self) -> str:
        return f"<AgentTask(id={self.id}, type={self.type}, status={self.status})>"
