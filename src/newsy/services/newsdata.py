"""HTTP client for the NewsData.io ``latest`` endpoint."""

from __future__ import annotations

import logging

import requests
from pydantic import ValidationError
from requests.adapters import HTTPAdapter

from newsy.config import NewsDataConfig
from newsy.models import NewsApiResponse

__all__ = ["DEFAULT_HEADERS", "NewsDataClient", "UpstreamError"]

logger = logging.getLogger(__name__)

DEFAULT_HEADERS = {
    "User-Agent": "newsy/0.1 (+https://newsdata.io)",
    "Accept": "application/json",
}

CONNECT_TIMEOUT = 10


class UpstreamError(RuntimeError):
    """Raised when the news API answers with a payload that cannot be decoded."""


class NewsDataClient:
    """Fetch the latest articles for one category, one attempt per call."""

    def __init__(self, config: NewsDataConfig, session: requests.Session | None = None) -> None:
        self._config = config
        if session is None:
            session = requests.Session()
            session.mount("https://", HTTPAdapter(max_retries=0))
            session.mount("http://", HTTPAdapter(max_retries=0))
        self._session = session
        self._session.headers.update(DEFAULT_HEADERS)

    def _masked(self, url: str) -> str:
        key = self._config.api_key
        return url.replace(key, "***") if key else url

    def fetch_latest(self, category: str, size: int) -> NewsApiResponse:
        """Request up to ``size`` English, duplicate-suppressed articles for ``category``.

        A 4xx answer carrying a NewsData error body (bad key, rate limit) is
        returned like any other non-success status.  Network failures and
        other HTTP errors propagate as :class:`requests.RequestException`; an
        undecodable body raises :class:`UpstreamError`.
        """

        params = {
            "apikey": self._config.api_key,
            "category": category.lower(),
            "language": self._config.language,
            "size": size,
            "removeduplicate": "1",
        }
        response = self._session.get(
            self._config.api_url,
            params=params,
            timeout=(CONNECT_TIMEOUT, self._config.timeout),
        )
        logger.debug("API URL: %s", self._masked(str(getattr(response, "url", self._config.api_url))))
        if 400 <= response.status_code < 500:
            status = _error_status(response)
            if status is not None:
                logger.warning(
                    "News API rejected category %s with HTTP %s (%s)", category, response.status_code, status
                )
                return NewsApiResponse(status=status)
        response.raise_for_status()

        try:
            payload = response.json()
        except ValueError as exc:
            raise UpstreamError(f"News API returned a non-JSON body for category {category}") from exc

        # error responses carry an object in ``results``
        if isinstance(payload, dict) and payload.get("status") != "success":
            logger.warning("News API answered %s for category %s", payload.get("status"), category)
            return NewsApiResponse(status=payload.get("status"))

        try:
            return NewsApiResponse.model_validate(payload)
        except ValidationError as exc:
            raise UpstreamError(f"News API returned an unexpected payload for category {category}") from exc


def _error_status(response: requests.Response) -> str | None:
    try:
        payload = response.json()
    except ValueError:
        return None
    if isinstance(payload, dict) and payload.get("status") and payload.get("status") != "success":
        return str(payload["status"])
    return None
