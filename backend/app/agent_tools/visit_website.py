"""visitWebsite: fetch a page and extract its readable content."""

import logging
from typing import Any, Dict, List, Optional

import httpx
from bs4 import BeautifulSoup
from pydantic import BaseModel, Field

from app.config import settings
from app.llm.tool_loop import Tool


logger = logging.getLogger(__name__)

MAX_TEXT_CHARS = 5000
MAX_LINKS = 50
STRIPPED_TAGS = ["script", "style", "nav", "footer", "iframe", "noscript"]
USER_AGENT = "Mozilla/5.0 (compatible; RockReachAgent/1.0)"


class VisitWebsiteInput(BaseModel):
    url: str = Field(pattern="^https?://", description="The URL to visit")
    extract_links: bool = Field(False, description="Whether to extract links from the page")


def extract_page(html: str, extract_links: bool = False) -> Dict[str, Any]:
    """Title, meta description, visible text and optionally links from an HTML document."""
    soup = BeautifulSoup(html, "html.parser")

    title = soup.title.get_text(strip=True) if soup.title else ""
    meta = soup.find("meta", attrs={"name": "description"})
    meta_description = (meta.get("content") or "").strip() if meta else ""

    links: List[str] = []
    if extract_links:
        for anchor in soup.find_all("a", href=True):
            href = anchor["href"]
            if href.startswith("http") or href.startswith("/"):
                links.append(href)
            if len(links) >= MAX_LINKS:
                break

    body = soup.body or soup
    for tag in body.find_all(STRIPPED_TAGS):
        tag.decompose()
    text = " ".join(body.get_text(separator=" ").split())

    return {
        "title": title,
        "metaDescription": meta_description,
        "mainText": text[:MAX_TEXT_CHARS],
        "links": links,
    }


def create_visit_website_tool(
    transport: Optional[httpx.AsyncBaseTransport] = None,
    timeout: float = settings.WEBSITE_FETCH_TIMEOUT_SECONDS,
) -> Tool:

    async def visit_website(args: VisitWebsiteInput) -> Dict[str, Any]:
        try:
            async with httpx.AsyncClient(
                transport=transport,
                timeout=timeout,
                follow_redirects=True,
                headers={"User-Agent": USER_AGENT},
            ) as client:
                resp = await client.get(args.url)
                resp.raise_for_status()
        except httpx.HTTPError as exc:
            logger.warning("Website visit error for %s: %s", args.url, exc)
            return {"success": False, "url": args.url, "error": str(exc) or type(exc).__name__}

        return {"success": True, "url": args.url, **extract_page(resp.text, args.extract_links)}

    return Tool(
        name="visitWebsite",
        description=(
            "Visit a website and extract its content. Use this to research companies, find contact "
            "information, or analyze web pages. Returns the page title, meta description, and main "
            "text content."
        ),
        input_model=VisitWebsiteInput,
        handler=visit_website,
    )
