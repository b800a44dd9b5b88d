"""searchLeads: RocketReach people search and profile lookup."""

import logging
from typing import Any, Dict, Literal, Optional

import httpx
from pydantic import BaseModel, Field

from app.core.errors import IntegrationError
from app.llm.tool_loop import Tool
from app.services.rocketreach_client import RocketReachClient


logger = logging.getLogger(__name__)


class SearchLeadsInput(BaseModel):
    search_type: Literal["people", "personId"] = Field(description="Type of search to perform")
    company_name: Optional[str] = Field(None, description="Company name to search (for people search)")
    role: Optional[str] = Field(None, description="Job title or role to search for (for people search)")
    person_id: Optional[str] = Field(None, description="RocketReach person ID (for profile lookup)")
    limit: int = Field(10, ge=1, le=50, description="Maximum number of results")


def create_search_leads_tool(client: RocketReachClient, tenant_id: str) -> Tool:
    """Bind the search tool to one tenant's RocketReach settings."""

    async def search_leads(args: SearchLeadsInput) -> Dict[str, Any]:
        try:
            if args.search_type == "personId" and args.person_id:
                profile = await client.lookup_profile(tenant_id, args.person_id)
                return {
                    "success": True,
                    "searchType": args.search_type,
                    "results": [profile],
                    "count": 1,
                }

            if args.search_type == "people":
                if not args.company_name:
                    return {"success": False, "error": "Company name is required for people search"}

                data = await client.search_people(
                    tenant_id,
                    company=args.company_name,
                    title=args.role,
                    page_size=args.limit,
                )
                data = data if isinstance(data, dict) else {}
                profiles = data.get("profiles") or []
                return {
                    "success": True,
                    "searchType": args.search_type,
                    "results": profiles,
                    "count": len(profiles),
                    "totalResults": (data.get("pagination") or {}).get("total", 0),
                }
        except (IntegrationError, httpx.HTTPError) as exc:
            logger.warning("Lead search failed: %s", exc, extra={"tenant_id": tenant_id})
            return {"success": False, "error": str(exc)}

        return {"success": False, "error": "Invalid search type or missing required parameters"}

    return Tool(
        name="searchLeads",
        description=(
            "Search for leads using RocketReach API. You can search by company name and role, "
            "or look up a person by RocketReach ID. Returns contact information including emails "
            "and phone numbers."
        ),
        input_model=SearchLeadsInput,
        handler=search_leads,
    )
