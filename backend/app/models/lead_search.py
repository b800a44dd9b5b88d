"""Lead search history model."""

from datetime import datetime
import uuid

from sqlalchemy import String, Integer, TIMESTAMP
from sqlalchemy import JSON
from sqlalchemy.orm import Mapped, mapped_column

from app.database import Base


class LeadSearch(Base):
    """A people search executed through the search endpoint."""

    __tablename__ = "lead_searches"

    id: Mapped[str] = mapped_column(
        String(36),
        primary_key=True,
        default=lambda: str(uuid.uuid4())
    )

    tenant_id: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    query: Mapped[dict] = mapped_column(JSON, nullable=False, default=dict)
    filters: Mapped[dict] = mapped_column(JSON, nullable=False, default=dict)
    result_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    executed_by: Mapped[str | None] = mapped_column(String(255), nullable=True)

    created_at: Mapped[datetime] = mapped_column(
        TIMESTAMP,
        nullable=False,
        default=datetime.utcnow,
        index=True
    )

    def __repr__(self) -> str:
        return f"<LeadSearch(id={self.id}, results={self.result_count})>"
