"""sendEmail: deliver an email through the tenant's email provider and track it."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Dict, Optional, Protocol

import httpx
from pydantic import BaseModel, Field
from sqlalchemy.ext.asyncio import async_sessionmaker

from app.agent_tools.save_lead import EMAIL_PATTERN
from app.config import settings
from app.core.errors import IntegrationError
from app.llm.tool_loop import Tool
from app.models.sent_email import SentEmail
from app.services.settings_resolver import SettingsResolver


logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SentMessage:
    id: str
    provider: str
    from_address: str


class EmailSender(Protocol):
    async def send(
        self,
        tenant_id: str,
        *,
        to: str,
        subject: str,
        html: str,
        text: Optional[str] = None,
    ) -> SentMessage:
        ...


class ResendEmailSender:
    """Sends through Resend's HTTP API using the tenant's ``resend`` settings."""

    provider = "resend"

    def __init__(
        self,
        resolver: SettingsResolver,
        *,
        from_address: str = settings.EMAIL_FROM_ADDRESS,
        from_name: str = settings.EMAIL_FROM_NAME,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        timeout: float = settings.HTTP_TIMEOUT_SECONDS,
    ):
        self._resolver = resolver
        self.from_address = from_address
        self.from_name = from_name
        self._transport = transport
        self._timeout = timeout

    async def send(
        self,
        tenant_id: str,
        *,
        to: str,
        subject: str,
        html: str,
        text: Optional[str] = None,
    ) -> SentMessage:
        resolved = await self._resolver.resolve(tenant_id)
        payload: Dict[str, Any] = {
            "from": f"{self.from_name} <{self.from_address}>",
            "to": [to],
            "subject": subject,
            "html": html,
        }
        if text:
            payload["text"] = text

        async with httpx.AsyncClient(transport=self._transport, timeout=self._timeout) as client:
            resp = await client.post(
                f"{resolved.base_url}/emails",
                json=payload,
                headers={"Authorization": f"Bearer {resolved.api_key}"},
            )
        if resp.status_code >= 400:
            raise IntegrationError(f"Resend error {resp.status_code}: {resp.text[:500]}")

        return SentMessage(
            id=str(resp.json().get("id") or "unknown"),
            provider=self.provider,
            from_address=self.from_address,
        )


class SendEmailInput(BaseModel):
    to: str = Field(pattern=EMAIL_PATTERN, description="Recipient email address")
    subject: str = Field(min_length=1, description="Email subject line")
    body: str = Field(min_length=1, description="Email body content (can be HTML or plain text)")
    is_html: bool = Field(True, description="Whether the body is HTML formatted")
    tracking_id: Optional[str] = Field(None, description="Optional tracking ID to associate with this email")


def create_send_email_tool(sender: EmailSender, session_factory: async_sessionmaker, tenant_id: str) -> Tool:

    async def send_email(args: SendEmailInput) -> Dict[str, Any]:
        try:
            message = await sender.send(
                tenant_id,
                to=args.to,
                subject=args.subject,
                html=args.body if args.is_html else "",
                text=None if args.is_html else args.body,
            )
        except (IntegrationError, httpx.HTTPError) as exc:
            logger.warning("Send email error: %s", exc, extra={"tenant_id": tenant_id})
            return {"success": False, "error": str(exc), "to": args.to, "subject": args.subject}

        logger.info("Email %s sent via %s", message.id, message.provider, extra={"tenant_id": tenant_id})

        # The email is already delivered; a tracking failure must not invite a resend
        tracked = True
        try:
            async with session_factory() as session:
                session.add(SentEmail(
                    tenant_id=tenant_id,
                    message_id=message.id,
                    to_address=args.to,
                    from_address=message.from_address,
                    subject=args.subject,
                    body=args.body,
                    provider=message.provider,
                    status="sent",
                    tracking_id=args.tracking_id,
                ))
                await session.commit()
        except Exception:
            tracked = False
            logger.exception("Failed to record sent email %s", message.id, extra={"tenant_id": tenant_id})

        return {
            "success": True,
            "messageId": message.id,
            "to": args.to,
            "subject": args.subject,
            "provider": message.provider,
            "tracked": tracked,
            "message": f"Email sent successfully to {args.to}",
        }


    return Tool(
        name="sendEmail",
        description=(
            "Send an email to a recipient. Use this after generating email content. Provide the "
            "recipient's email, subject line, and email body (HTML or text)."
        ),
        input_model=SendEmailInput,
        handler=send_email,
    )
