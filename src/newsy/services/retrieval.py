"""Read-side queries over the stored articles."""

from __future__ import annotations

import logging
from typing import Dict, List

from pydantic import BaseModel, Field

from newsy.models import Article, canonical_category
from newsy.storage import ArticleStore

__all__ = ["CATEGORY_PAGE_SIZE", "GROUP_SIZE", "GroupedNews", "RetrievalService"]

logger = logging.getLogger(__name__)

CATEGORY_PAGE_SIZE = 5
GROUP_SIZE = 4


class GroupedNews(BaseModel):
    total_categories: int = 0
    total_articles: int = 0
    news: Dict[str, List[Article]] = Field(default_factory=dict)


class RetrievalService:
    """Newest-first views of the article store, bounded per category."""

    def __init__(self, store: ArticleStore) -> None:
        self._store = store

    def top_articles(self, category: str, limit: int) -> List[Article]:
        """Return up to ``limit`` articles, most recently fetched first."""

        if limit <= 0:
            return []
        articles = self._store.find_by_category(canonical_category(category), limit)
        return list(articles)[:limit]

    def get_by_category(self, category: str) -> List[Article]:
        logger.info("Fetching news for category: %s", category)
        return self.top_articles(category, CATEGORY_PAGE_SIZE)

    def get_all(self) -> GroupedNews:
        """Group every stored article by category, keeping at most four per group.

        Groups appear in the order their first article appears in the
        newest-first listing.
        """

        logger.info("Fetching all news")
        grouped: Dict[str, List[Article]] = {}
        for article in self._store.find_all():
            bucket = grouped.setdefault(article.category, [])
            if len(bucket) < GROUP_SIZE:
                bucket.append(article)

        return GroupedNews(
            total_categories=len(grouped),
            total_articles=sum(len(articles) for articles in grouped.values()),
            news=grouped,
        )
