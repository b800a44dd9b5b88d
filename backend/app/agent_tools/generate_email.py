"""generateEmail: hand the model a drafting brief for an outreach email."""

from typing import Any, Dict, Literal, Optional

from pydantic import BaseModel, Field

from app.llm.tool_loop import Tool


class GenerateEmailInput(BaseModel):
    recipient_name: str = Field(description="Name of the email recipient")
    recipient_company: Optional[str] = Field(None, description="Company where the recipient works")
    recipient_role: Optional[str] = Field(None, description="Job title or role of the recipient")
    purpose: str = Field(description='Purpose of the email (e.g., "introduce our product", "request meeting")')
    context: Optional[str] = Field(None, description="Additional context or details to include")
    tone: Literal["formal", "professional", "casual", "friendly"] = Field(
        "professional", description="Tone of the email"
    )


def build_email_prompt(args: GenerateEmailInput) -> str:
    recipient = args.recipient_name
    if args.recipient_role:
        recipient += f" - {args.recipient_role}"
    if args.recipient_company:
        recipient += f" at {args.recipient_company}"

    lines = [
        f"Generate a {args.tone} email with the following details:",
        "",
        f"Recipient: {recipient}",
        f"Purpose: {args.purpose}",
    ]
    if args.context:
        lines.append(f"Context: {args.context}")
    lines += [
        "",
        "Requirements:",
        '- Subject line (start with "Subject: ")',
        "- Professional greeting",
        "- Clear, concise body (2-3 paragraphs max)",
        "- Strong call-to-action",
        "- Professional signature line",
        "",
        "Format the output as:",
        "Subject: [subject line]",
        "",
        "[email body]",
    ]
    return "\n".join(lines)


async def generate_email(args: GenerateEmailInput) -> Dict[str, Any]:
    # The model writes the email itself on its next turn
    return {
        "success": True,
        "needsGeneration": True,
        "prompt": build_email_prompt(args),
        "recipientInfo": {
            "name": args.recipient_name,
            "company": args.recipient_company,
            "role": args.recipient_role,
        },
    }


def create_generate_email_tool() -> Tool:
    return Tool(
        name="generateEmail",
        description=(
            "Generate a personalized email for outreach. Provide context about the recipient "
            "and the purpose of the email. The AI will craft an appropriate, professional email."
        ),
        input_model=GenerateEmailInput,
        handler=generate_email,
    )
