"""Mapping of raw NewsData.io records onto :class:`~newsy.models.Article`."""

from __future__ import annotations

from typing import Iterable, Optional

from newsy.models import Article, UpstreamRecord, canonical_category
from newsy.services.dates import DateNormalizer

__all__ = [
    "ArticleMapper",
    "DEFAULT_IMAGE",
    "MAX_DESCRIPTION_LENGTH",
    "default_image_for_category",
    "fallback_source_icon",
    "map_article",
]

MAX_DESCRIPTION_LENGTH = 500

NO_TITLE = "No Title"
UNKNOWN_AUTHOR = "Unknown Author"
UNKNOWN_SOURCE = "Unknown Source"
NO_DESCRIPTION = "No description available"

CATEGORY_IMAGES = {
    "technology": "https://images.unsplash.com/photo-1518770660439-4636190af475?w=800",
    "sports": "https://images.unsplash.com/photo-1461896836934-ffe607ba8211?w=800",
    "business": "https://images.unsplash.com/photo-1486406146926-c627a92ad1ab?w=800",
    "education": "https://images.unsplash.com/photo-1506748686214-e9df14d4d9d0?w=800",
    "entertainment": "https://images.unsplash.com/photo-1517841905240-472988babdf9?w=800",
}
DEFAULT_IMAGE = "https://images.unsplash.com/photo-1504711434969-e33886168f5c?w=800"

FAVICON_SERVICE = "https://www.google.com/s2/favicons?domain={domain}&sz=64"
FALLBACK_ICON_DOMAIN = "news.com"


def _present(value: Optional[str]) -> Optional[str]:
    """Return ``value`` unless it is ``None`` or blank."""

    if value is None or not value.strip():
        return None
    return value


def default_image_for_category(category: str) -> str:
    return CATEGORY_IMAGES.get(category.strip().lower(), DEFAULT_IMAGE)


def fallback_source_icon(source_id: Optional[str]) -> str:
    domain = _present(source_id) or FALLBACK_ICON_DOMAIN
    return FAVICON_SERVICE.format(domain=domain.strip())


def _first_author(creators: Optional[Iterable[Optional[str]]]) -> str:
    for name in creators or ():
        if _present(name):
            return name
    return UNKNOWN_AUTHOR


def _description(record: UpstreamRecord) -> str:
    description = _present(record.description)
    if description is not None:
        return description

    content = _present(record.content)
    if content is None:
        return NO_DESCRIPTION
    if len(content) > MAX_DESCRIPTION_LENGTH:
        return content[:MAX_DESCRIPTION_LENGTH] + "..."
    return content


class ArticleMapper:
    """Turn an :class:`UpstreamRecord` into an :class:`Article`, filling every gap."""

    def __init__(self, dates: DateNormalizer | None = None) -> None:
        self._dates = dates or DateNormalizer()

    def map(self, record: UpstreamRecord, category: str) -> Article:
        published_at, estimated = self._dates.resolve(record.pub_date)

        return Article(
            title=_present(record.title) or NO_TITLE,
            author=_first_author(record.creator),
            source_name=_present(record.source_name) or _present(record.source_id) or UNKNOWN_SOURCE,
            url=record.link or "",
            published_at=published_at,
            published_at_estimated=estimated,
            category=canonical_category(category),
            description=_description(record),
            image_url=_present(record.image_url) or default_image_for_category(category),
            source_icon=_present(record.source_icon) or fallback_source_icon(record.source_id),
        )


def map_article(record: UpstreamRecord, category: str, dates: DateNormalizer | None = None) -> Article:
    return ArticleMapper(dates).map(record, category)
