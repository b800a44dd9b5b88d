"""saveLead: upsert a contact into the tenant's lead list."""

import logging
from datetime import datetime
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field
from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import async_sessionmaker

from app.llm.tool_loop import Tool
from app.models.lead import Lead


logger = logging.getLogger(__name__)

EMAIL_PATTERN = r"^[^@\s]+@[^@\s]+\.[^@\s]+$"


class SaveLeadInput(BaseModel):
    email: str = Field(pattern=EMAIL_PATTERN, description="Lead email address")
    first_name: str = Field(min_length=1, max_length=100, description="First name")
    last_name: str = Field(min_length=1, max_length=100, description="Last name")
    company: Optional[str] = Field(None, description="Company name")
    title: Optional[str] = Field(None, description="Job title")
    linkedin_url: Optional[str] = Field(None, pattern="^https?://", description="LinkedIn profile URL")
    phone: Optional[str] = Field(None, description="Phone number")
    location: Optional[str] = Field(None, description="Location/city")
    notes: Optional[str] = Field(None, description="Any additional notes about this lead")
    tags: Optional[List[str]] = Field(None, description="Tags to categorize this lead")


def create_save_lead_tool(session_factory: async_sessionmaker, tenant_id: str, user_id: str) -> Tool:
    """Bind the save tool to a tenant; each call uses its own session."""

    async def save_lead(args: SaveLeadInput) -> Dict[str, Any]:
        fields = args.model_dump(exclude_unset=True)
        full_name = f"{args.first_name} {args.last_name}"
        try:
            async with session_factory() as session:
                result = await session.execute(
                    select(Lead).where(Lead.tenant_id == tenant_id, Lead.email == args.email)
                )
                lead = result.scalar_one_or_none()

                if lead is not None:
                    for key, value in fields.items():
                        setattr(lead, key, value)
                    lead.updated_at = datetime.utcnow()
                    action = "updated"
                else:
                    lead = Lead(tenant_id=tenant_id, user_id=user_id, source="ai-agent", status="new", **fields)
                    session.add(lead)
                    action = "created"

                await session.commit()
                await session.refresh(lead)
        except SQLAlchemyError as exc:
            logger.exception("Save lead error", extra={"tenant_id": tenant_id})
            return {"success": False, "error": f"Failed to save lead: {type(exc).__name__}"}

        return {
            "success": True,
            "leadId": lead.id,
            "action": action,
            "message": f"Lead {full_name} {'saved' if action == 'created' else 'updated'} successfully",
        }

    return Tool(
        name="saveLead",
        description=(
            "Save a lead to the database. Use this to store contact information for people "
            "you've found during research. Provide the lead's details."
        ),
        input_model=SaveLeadInput,
        handler=save_lead,
    )
