"""Shared fixtures for the SEO audit service tests."""

import os

# Pin configuration before the service modules read it at import time
os.environ["API_KEY"] = ""
os.environ["OPENAI_API_KEY"] = ""
os.environ["RATE_LIMIT_PER_MINUTE"] = "1000"
os.environ["MONITOR_RATE_LIMIT_PER_MINUTE"] = "1000"
os.environ.pop("FETCH_TIMEOUT_SECONDS", None)

from contextlib import asynccontextmanager

import pytest
from aiohttp import web
from aiohttp.test_utils import TestServer

from seo_audit_engine import FetchResult


FULL_PAGE = """<!DOCTYPE html>
<html>
<head>
  <title>  Acme Plumbing | Emergency Repairs  </title>
  <meta name="description" content="24/7 plumbing repairs across London.">
  <link rel="canonical" href="https://acme.example/">
</head>
<body>
  <h1 class="hero">Emergency plumbers</h1>
  <h2>Services</h2>
</body>
</html>
"""

BARE_PAGE = """<html><body>
<h1>First</h1>
<H1>Second</H1>
</body></html>
"""


@pytest.fixture
def full_page():
    return FULL_PAGE


@pytest.fixture
def bare_page():
    return BARE_PAGE


@pytest.fixture
def stub_fetch(monkeypatch):
    """Replace the audit fetcher with a canned response; records requested URLs."""
    import seo_audit_engine

    calls = []

    def install(result: FetchResult):
        async def fake_fetch_page(url):
            calls.append(url)
            return result

        monkeypatch.setattr(seo_audit_engine, "fetch_page", fake_fetch_page)
        return calls

    return install


@asynccontextmanager
async def running_server(routes):
    """Serve aiohttp routes on a local port for the duration of the block."""
    app = web.Application()
    app.add_routes(routes)
    server = TestServer(app)
    await server.start_server()
    try:
        yield server
    finally:
        await server.close()


@pytest.fixture
def local_server():
    return running_server
