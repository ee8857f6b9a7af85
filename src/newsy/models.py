"""Domain models used across the application."""

from __future__ import annotations

from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field


def canonical_category(name: str) -> str:
    """Return the display form of a category: first letter upper, rest lower."""

    value = (name or "").strip()
    return value[:1].upper() + value[1:].lower()


class Article(BaseModel):
    """A stored news article."""

    id: Optional[str] = None
    title: str
    author: str
    source_name: str
    url: str = ""
    published_at: datetime
    published_at_estimated: bool = Field(
        default=False,
        description="True when published_at was defaulted because the upstream date was unparseable",
    )
    fetched_at: Optional[datetime] = None
    category: str
    description: str
    image_url: str
    source_icon: str


class UpstreamRecord(BaseModel):
    """One entry of the NewsData.io ``results`` array."""

    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    title: Optional[str] = None
    creator: Optional[List[Optional[str]]] = None
    description: Optional[str] = None
    content: Optional[str] = None
    link: Optional[str] = None
    pub_date: Optional[str] = Field(default=None, alias="pubDate")
    image_url: Optional[str] = None
    source_id: Optional[str] = None
    source_name: Optional[str] = None
    source_icon: Optional[str] = None


class NewsApiResponse(BaseModel):
    model_config = ConfigDict(extra="ignore")

    status: Optional[str] = None
    results: Optional[List[UpstreamRecord]] = None


class Subscriber(BaseModel):
    """A newsletter recipient and their category preferences."""

    email: str
    categories: Optional[List[Optional[str]]] = None
    verified: bool = False
    active: bool = True
    verification_token: str = ""


class DigestEntry(BaseModel):
    title: str
    url: str
    summary: str
