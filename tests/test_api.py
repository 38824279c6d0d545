"""
HTTP-level tests for the FastAPI application.

Tests:
- Input errors surface as 400 with the {ok, error} envelope
- Audit reports come back with wire field names
- Fetch failures degrade instead of erroring; audit exceptions become 500s
- Monitor, site health and content endpoints
"""

import aiohttp
import pytest
from fastapi.testclient import TestClient

import main
import seo_audit_engine
from seo_audit_engine import FetchResult
from site_monitor import MonitorResult, SiteHealthReport


@pytest.fixture
def client():
    with TestClient(main.app) as test_client:
        yield test_client


# ----------------------------------------------------------------------------
# /seo_audit
# ----------------------------------------------------------------------------


def test_get_audit_without_target_is_400(client):
    response = client.get("/seo_audit")

    assert response.status_code == 400
    assert response.json() == {"ok": False, "error": "Missing domain"}


def test_get_audit_with_blank_target_is_400(client):
    response = client.get("/seo_audit", params={"domain": "   "})

    assert response.status_code == 400
    assert response.json()["error"] == "Missing domain"


def test_blank_domain_falls_back_to_url_param(client, stub_fetch, full_page):
    calls = stub_fetch(FetchResult(ok=True, status=200, body=full_page))

    response = client.get("/seo_audit", params={"domain": " ", "url": "example.com"})

    assert response.status_code == 200
    assert calls == ["https://example.com"]


def test_monitor_blank_domain_falls_back_to_url_param(client, monkeypatch):
    seen = []

    async def fake_check_monitor(target):
        seen.append(target)
        return MonitorResult(url="https://a.example", ok=True, status=200, ms=1, checked_at="t")

    monkeypatch.setattr(main, "check_monitor", fake_check_monitor)

    response = client.get("/monitor_check", params={"domain": "", "url": " a.example "})

    assert response.status_code == 200
    assert seen == ["a.example"]


def test_post_audit_without_url_is_400(client):
    response = client.post("/seo_audit", json={})

    assert response.status_code == 400
    assert response.json() == {"ok": False, "error": "Missing url"}


def test_post_audit_with_malformed_body_is_400(client):
    response = client.post(
        "/seo_audit",
        content=b"{not json",
        headers={"content-type": "application/json"},
    )

    assert response.status_code == 400
    assert response.json()["ok"] is False
    assert response.json()["error"] == "Invalid request"


def test_post_audit_with_wrong_type_is_400(client):
    response = client.post("/seo_audit", json={"url": 42})

    assert response.status_code == 400
    assert response.json()["error"] == "Invalid request"


def test_get_audit_by_domain(client, stub_fetch, bare_page):
    calls = stub_fetch(FetchResult(ok=True, status=200, body=bare_page))

    response = client.get("/seo_audit", params={"domain": "example.com"})

    assert response.status_code == 200
    assert calls == ["https://example.com"]
    body = response.json()
    assert body["url"] == "https://example.com"
    assert body["fetched"] == {"ok": True, "status": 200}
    assert body["snapshot"] == {
        "title": None,
        "description": None,
        "canonical": None,
        "h1Count": 2,
    }
    assert body["issues"] == [
        {"severity": "high", "key": "missing_title", "description": "Page has no <title> tag"},
        {
            "severity": "medium",
            "key": "missing_meta_description",
            "description": "Page has no meta description",
        },
        {
            "severity": "medium",
            "key": "missing_canonical",
            "description": "Page has no canonical link",
        },
        {
            "severity": "low",
            "key": "multiple_h1",
            "description": "Page has 2 <h1> headings, expected one",
        },
    ]
    assert body["score"] == 45
    assert "auditedAt" in body


def test_get_audit_accepts_url_param(client, stub_fetch, full_page):
    calls = stub_fetch(FetchResult(ok=True, status=200, body=full_page))

    response = client.get("/seo_audit", params={"url": "http://acme.example/"})

    assert response.status_code == 200
    assert calls == ["http://acme.example/"]
    assert response.json()["score"] == 100


def test_post_audit(client, stub_fetch, full_page):
    stub_fetch(FetchResult(ok=True, status=200, body=full_page))

    response = client.post("/seo_audit", json={"url": "acme.example"})

    assert response.status_code == 200
    assert response.json()["snapshot"]["title"] == "Acme Plumbing | Emergency Repairs"


def test_unreachable_site_still_returns_report(client, stub_fetch):
    stub_fetch(FetchResult(ok=False, status=0, body=""))

    response = client.get("/seo_audit", params={"domain": "down.example"})

    assert response.status_code == 200
    body = response.json()
    assert body["fetched"] == {"ok": False, "status": 0}
    assert len(body["issues"]) == 4


def test_audit_exception_is_500(client, monkeypatch):
    async def exploding_fetch(url):
        raise aiohttp.InvalidURL(url)

    monkeypatch.setattr(seo_audit_engine, "fetch_page", exploding_fetch)

    response = client.post("/seo_audit", json={"url": "https://bad host"})

    assert response.status_code == 500
    body = response.json()
    assert body["ok"] is False
    assert "bad host" in body["error"]


# ----------------------------------------------------------------------------
# /monitor_check
# ----------------------------------------------------------------------------


def test_monitor_without_target_is_400(client):
    assert client.get("/monitor_check").json() == {"ok": False, "error": "Missing domain"}
    response = client.post("/monitor_check", json={})
    assert response.status_code == 400
    assert response.json() == {"ok": False, "error": "Missing url"}


def test_monitor_unreachable_host(client):
    response = client.get("/monitor_check", params={"url": "http://127.0.0.1:1"})

    assert response.status_code == 200
    body = response.json()
    assert body["ok"] is False
    assert body["status"] == 0
    assert set(body) == {"url", "ok", "status", "ms", "checkedAt"}


def test_monitor_post_accepts_domain(client, monkeypatch):
    seen = []

    async def fake_check_monitor(target):
        seen.append(target)
        return MonitorResult(url="https://a.example", ok=True, status=200, ms=5, checked_at="t")

    monkeypatch.setattr(main, "check_monitor", fake_check_monitor)

    response = client.post("/monitor_check", json={"domain": "a.example"})

    assert response.status_code == 200
    assert seen == ["a.example"]
    assert response.json()["checkedAt"] == "t"


# ----------------------------------------------------------------------------
# /seo_health
# ----------------------------------------------------------------------------


def test_seo_health(client, monkeypatch):
    async def fake_check_site_health(target):
        return SiteHealthReport(url="https://a.example", ssl_valid=True, health_score=30, checked_at="t")

    monkeypatch.setattr(main, "check_site_health", fake_check_site_health)

    response = client.get("/seo_health", params={"domain": "a.example"})

    assert response.status_code == 200
    assert response.json()["health_score"] == 30
    assert client.post("/seo_health", json={}).status_code == 400


# ----------------------------------------------------------------------------
# /geo_generate
# ----------------------------------------------------------------------------


def test_geo_generate_requires_keyword(client):
    response = client.get("/geo_generate")

    assert response.status_code == 400
    assert response.json() == {"ok": False, "error": "Missing keyword"}


def test_geo_generate_fallback_defaults_location(client, monkeypatch):
    monkeypatch.setattr("content_generator.OPENAI_API_KEY", None)

    response = client.get("/geo_generate", params={"keyword": "window cleaning"})

    assert response.status_code == 200
    body = response.json()
    assert body["model"] == "fallback"
    assert body["title"] == "window cleaning in United Kingdom: local guide (template)"
    assert "createdAt" in body


def test_geo_generate_post(client, monkeypatch):
    monkeypatch.setattr("content_generator.OPENAI_API_KEY", None)

    response = client.post("/geo_generate", json={"keyword": "roofers", "location": "Bath"})

    assert response.status_code == 200
    assert response.json()["title"].startswith("roofers in Bath")


# ----------------------------------------------------------------------------
# Misc
# ----------------------------------------------------------------------------


def test_health_and_root(client):
    assert client.get("/health").json()["status"] == "healthy"
    assert "seo_audit" in client.get("/").json()["endpoints"]


def test_cors_headers(client):
    response = client.get("/health", headers={"Origin": "https://dashboard.example"})
    assert "access-control-allow-origin" in response.headers


def test_api_key_enforced_when_configured(client, monkeypatch):
    monkeypatch.setattr(main, "API_KEY", "secret")

    response = client.get("/seo_audit", params={"domain": "example.com"})

    assert response.status_code == 401
    assert response.json()["ok"] is False
