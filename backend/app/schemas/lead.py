"""Pydantic schemas for lead search."""

from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field, model_validator


class LeadSearchRequest(BaseModel):
    """People search filters; at least one must be set."""
    name: Optional[str] = Field(None, max_length=200)
    title: Optional[str] = Field(None, max_length=200)
    company: Optional[str] = Field(None, max_length=200)
    domain: Optional[str] = Field(None, max_length=200)
    location: Optional[str] = Field(None, max_length=200)
    page: int = Field(default=1, ge=1)
    page_size: int = Field(default=25, ge=1, le=100)

    @model_validator(mode="after")
    def require_filter(self) -> "LeadSearchRequest":
        if not any([self.name, self.title, self.company, self.domain, self.location]):
            raise ValueError("At least one search filter is required")
        return self

    def filters(self) -> Dict[str, str]:
        return {
            key: value
            for key, value in self.model_dump(include={"name", "title", "company", "domain", "location"}).items()
            if value
        }


class LeadSearchResponse(BaseModel):
    profiles: List[Dict[str, Any]]
    total: int
    page: int
    page_size: int


class EmailLookupRequest(BaseModel):
    name: str = Field(..., min_length=1, max_length=200)
    domain: str = Field(..., min_length=1, max_length=200)


class BulkLookupRequest(BaseModel):
    ids: List[str] = Field(..., min_length=1, max_length=100)
