"""Pydantic schemas for the HTTP boundary.

Schema Hierarchy
=================
::
    URLCreate (Input)
    ├─ url: str
    └─ alias: str | None

    URLCreated (Output)
    └─ alias: str

    HealthResponse (Output)
    ├─ status: HealthStatus
    └─ database: HealthStatus

    ErrorResponse (Output)
    └─ detail: str

Key Behaviours
===============
- Schemas only check shapes and types; URL and alias rules live in
  ``shortener.url_service`` so that every caller gets the same checks.
"""

from typing import Optional

from pydantic import BaseModel, Field

from shortener.enums import HealthStatus

__all__ = ["ErrorResponse", "HealthResponse", "URLCreate", "URLCreated"]


class URLCreate(BaseModel):
    url: str = Field(..., description="Absolute target URL, e.g. 'https://example.com'")
    alias: Optional[str] = Field(None, description="Optional caller-chosen alias")


class URLCreated(BaseModel):
    alias: str


class HealthResponse(BaseModel):
    status: HealthStatus
    database: HealthStatus


class ErrorResponse(BaseModel):
    detail: str
