from __future__ import annotations

from types import SimpleNamespace

import pytest
import requests

from newsy.config import NewsDataConfig
from newsy.services.ingestion import CategoryStatus, IngestionPipeline
from newsy.services.mapper import ArticleMapper
from newsy.services.newsdata import NewsDataClient, UpstreamError
from newsy.services.recency import RecencyFilter
from newsy.storage import JsonArticleStore


class DummyResponse:
    def __init__(self, payload=None, status_code: int = 200, text_only: bool = False) -> None:
        self.payload = payload
        self.status_code = status_code
        self.text_only = text_only
        self.url = "https://newsdata.test/api?apikey=secret"

    def raise_for_status(self) -> None:
        if self.status_code >= 400:
            raise requests.HTTPError(f"{self.status_code} error")

    def json(self):
        if self.text_only:
            raise ValueError("not json")
        return self.payload


def make_client(response: DummyResponse, captured: dict) -> NewsDataClient:
    def fake_get(url, params, timeout):
        captured.update(url=url, params=params, timeout=timeout)
        return response

    session = SimpleNamespace(get=fake_get, headers={})
    config = NewsDataConfig(api_url="https://newsdata.test/api", api_key="secret", timeout=5)
    return NewsDataClient(config, session=session)


def test_fetch_latest_sends_expected_query() -> None:
    captured: dict = {}
    payload = {
        "status": "success",
        "totalResults": 1,
        "results": [{"title": "Hello", "creator": ["A"], "pubDate": "2025-11-02 08:00:00"}],
    }
    client = make_client(DummyResponse(payload), captured)

    response = client.fetch_latest("Technology", 10)

    assert captured["url"] == "https://newsdata.test/api"
    assert captured["params"] == {
        "apikey": "secret",
        "category": "technology",
        "language": "en",
        "size": 10,
        "removeduplicate": "1",
    }
    assert captured["timeout"] == (10, 5)
    assert response.status == "success"
    assert response.results[0].title == "Hello"
    assert response.results[0].pub_date == "2025-11-02 08:00:00"


def test_error_status_is_returned_not_raised() -> None:
    client = make_client(DummyResponse({"status": "error", "results": {"message": "bad key"}}), {})

    response = client.fetch_latest("sports", 10)

    assert response.status == "error"
    assert response.results is None


def test_malformed_success_payload_raises_upstream_error() -> None:
    client = make_client(DummyResponse({"status": "success", "results": "oops"}), {})

    with pytest.raises(UpstreamError):
        client.fetch_latest("sports", 10)


def test_http_errors_propagate() -> None:
    client = make_client(DummyResponse(status_code=503), {})

    with pytest.raises(requests.HTTPError):
        client.fetch_latest("sports", 10)


def test_non_json_body_raises_upstream_error() -> None:
    client = make_client(DummyResponse(text_only=True), {})

    with pytest.raises(UpstreamError):
        client.fetch_latest("sports", 10)


def test_api_key_is_masked_in_logs() -> None:
    client = make_client(DummyResponse({"status": "success"}), {})

    assert client._masked("https://newsdata.test/api?apikey=secret") == "https://newsdata.test/api?apikey=***"


@pytest.mark.parametrize("status_code", [401, 429])
def test_client_error_with_error_body_is_returned_not_raised(status_code: int) -> None:
    payload = {"status": "error", "results": {"message": "API key invalid", "code": "Unauthorized"}}
    client = make_client(DummyResponse(payload, status_code=status_code), {})

    response = client.fetch_latest("sports", 10)

    assert response.status == "error"
    assert response.results is None


@pytest.mark.parametrize(
    "response",
    [
        DummyResponse(status_code=404, text_only=True),
        DummyResponse({"status": "success", "results": []}, status_code=400),
        DummyResponse({"status": "error"}, status_code=502),
    ],
)
def test_other_http_errors_still_raise(response: DummyResponse) -> None:
    with pytest.raises(requests.HTTPError):
        make_client(response, {}).fetch_latest("sports", 10)


def test_rejected_category_is_skipped_by_the_pipeline(tmp_path) -> None:
    client = make_client(DummyResponse({"status": "error"}, status_code=401), {})
    store = JsonArticleStore(tmp_path)
    pipeline = IngestionPipeline(
        client,
        store,
        ["sports"],
        mapper=ArticleMapper(),
        recency=RecencyFilter(2),
    )

    report = pipeline.run_cycle()

    assert [outcome.status for outcome in report.outcomes] == [CategoryStatus.SKIPPED]
