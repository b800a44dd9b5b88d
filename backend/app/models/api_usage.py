"""Outbound API usage record for metering and analytics."""

from datetime import datetime
import uuid

from sqlalchemy import String, Integer, TIMESTAMP, Text, Index
from sqlalchemy.orm import Mapped, mapped_column

from app.database import Base


class ApiUsage(Base):
    """One row per terminal outcome of an outbound provider call."""

    __tablename__ = "api_usage"

    id: Mapped[str] = mapped_column(
        String(36),
        primary_key=True,
        default=lambda: str(uuid.uuid4())
    )

    tenant_id: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    provider: Mapped[str] = mapped_column(String(32), nullable=False, default="rocketreach")
    endpoint: Mapped[str] = mapped_column(String(500), nullable=False)
    method: Mapped[str] = mapped_column(String(10), nullable=False)
    units: Mapped[int] = mapped_column(Integer, nullable=False, default=1)

    status: Mapped[str] = mapped_column(String(20), nullable=False)  # success|error
    status_code: Mapped[int | None] = mapped_column(Integer, nullable=True)
    duration_ms: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    error: Mapped[str | None] = mapped_column(Text, nullable=True)

    created_at: Mapped[datetime] = mapped_column(
        TIMESTAMP,
        nullable=False,
        default=datetime.utcnow
    )

    __table_args__ = (
        Index("idx_api_usage_tenant_created", "tenant_id", "created_at"),
        Index("idx_api_usage_provider_created", "provider", "created_at"),
    )

    def __repr__(self) -> str:
        return f"<ApiUsage(tenant_id={self.tenant_id}, endpoint={self.endpoint}, status={self.status})>"
