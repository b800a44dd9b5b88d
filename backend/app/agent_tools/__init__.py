"""Tools the lead-generation agent can call."""

from typing import Dict, List, Optional

import httpx
from sqlalchemy.ext.asyncio import async_sessionmaker

from app.agent_tools.generate_email import create_generate_email_tool
from app.agent_tools.prompts import system_prompt_for, tool_names_for
from app.agent_tools.save_lead import create_save_lead_tool
from app.agent_tools.search_leads import create_search_leads_tool
from app.agent_tools.send_email import EmailSender, create_send_email_tool
from app.agent_tools.visit_website import create_visit_website_tool
from app.llm.tool_loop import Tool
from app.models.agent_task import AgentTaskType
from app.services.rocketreach_client import RocketReachClient


def build_tools(
    task_type: AgentTaskType,
    *,
    tenant_id: str,
    user_id: str,
    client: RocketReachClient,
    email_sender: EmailSender,
    session_factory: async_sessionmaker,
    web_transport: Optional[httpx.AsyncBaseTransport] = None,
) -> List[Tool]:
    """Bind every tool to the tenant, then keep the subset granted to ``task_type``."""
    available: Dict[str, Tool] = {
        tool.name: tool
        for tool in (
            create_visit_website_tool(transport=web_transport),
            create_search_leads_tool(client, tenant_id),
            create_generate_email_tool(),
            create_send_email_tool(email_sender, session_factory, tenant_id),
            create_save_lead_tool(session_factory, tenant_id, user_id),
        )
    }
    return [available[name] for name in tool_names_for(task_type)]


__all__ = ["build_tools", "system_prompt_for", "tool_names_for"]
