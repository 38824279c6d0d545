"""
Website monitoring checks.

Two lightweight probes used by the dashboard's daily checks:

- ``check_monitor``: a single HEAD request reporting reachability and latency.
- ``check_site_health``: robots.txt, sitemap and TLS certificate probes rolled
  into a weighted health score.

Neither raises on network failure; an unreachable site simply reports
``ok=False`` or failing probes.
"""

import asyncio
import logging
import re
import ssl
import time
from datetime import datetime, timezone
from typing import Any, Dict, Optional, Tuple
from urllib.parse import urlparse

import aiohttp
from pydantic import BaseModel, ConfigDict, Field

from seo_audit_engine import (
    AUDIT_USER_AGENT,
    client_timeout,
    is_success,
    normalize_url,
    utc_timestamp,
)

logger = logging.getLogger(__name__)

SITEMAP_PATHS = ("/sitemap.xml", "/sitemap_index.xml", "/sitemap/sitemap.xml")

HEALTH_WEIGHTS = {
    "robots_txt_exists": 15,
    "robots_txt_valid": 10,
    "robots_txt_allows_crawl": 10,
    "sitemap_exists": 20,
    "sitemap_valid": 15,
    "ssl_valid": 30,
}

BLANKET_DISALLOW_RE = re.compile(r"^\s*disallow:\s*/\s*$", re.IGNORECASE | re.MULTILINE)
LOC_RE = re.compile(r"<loc>", re.IGNORECASE)

# Network-level failures that turn into a failed probe rather than an error
PROBE_ERRORS = (aiohttp.ClientError, asyncio.TimeoutError, ssl.SSLError, OSError, ValueError)


# ============================================================================
# Models
# ============================================================================


class MonitorResult(BaseModel):
    model_config = ConfigDict(frozen=True, populate_by_name=True)

    url: str
    ok: bool
    status: int
    ms: int
    checked_at: str = Field(alias="checkedAt")


class SiteHealthReport(BaseModel):
    """Crawlability and TLS signals for a site root."""

    model_config = ConfigDict(frozen=True)

    url: str
    robots_txt_exists: bool = False
    robots_txt_valid: bool = False
    robots_txt_allows_crawl: bool = False
    robots_txt_content: Optional[str] = None
    sitemap_exists: bool = False
    sitemap_valid: bool = False
    sitemap_url_count: int = 0
    sitemap_url: Optional[str] = None
    ssl_valid: bool = False
    ssl_issuer: Optional[str] = None
    ssl_expires_at: Optional[str] = None
    ssl_days_remaining: Optional[int] = None
    health_score: int = 0
    checked_at: str = ""


# ============================================================================
# Monitor Check
# ============================================================================


async def check_monitor(raw_url: str) -> MonitorResult:
    """
    HEAD a URL and time the round trip.

    Args:
        raw_url: Host name or URL as supplied by the caller

    Returns:
        MonitorResult; ``ok=False, status=0`` when no response was received
    """
    url = normalize_url(raw_url)
    started = time.perf_counter()
    ok = False
    status = 0

    session_kwargs = {}
    timeout = client_timeout()
    if timeout is not None:
        session_kwargs["timeout"] = timeout

    try:
        async with aiohttp.ClientSession(**session_kwargs) as session:
            async with session.head(
                url, headers={"User-Agent": AUDIT_USER_AGENT}, allow_redirects=True
            ) as response:
                status = response.status
                ok = is_success(status)
    except PROBE_ERRORS as e:
        logger.warning(f"Monitor check failed for {url}: {e!r}")

    ms = int((time.perf_counter() - started) * 1000)
    logger.info(f"Monitor check {url}: ok={ok} status={status} ({ms}ms)")
    return MonitorResult(url=url, ok=ok, status=status, ms=ms, checked_at=utc_timestamp())


# ============================================================================
# Site Health Probes
# ============================================================================


async def fetch_text(session: aiohttp.ClientSession, url: str) -> Tuple[int, Optional[str]]:
    """GET a URL; returns (status, body) or (0, None) on network failure."""
    try:
        async with session.get(url, allow_redirects=True) as response:
            return response.status, await response.text(errors="replace")
    except PROBE_ERRORS as e:
        logger.debug(f"Probe GET failed for {url}: {e!r}")
        return 0, None


async def check_robots_txt(session: aiohttp.ClientSession, base_url: str) -> Dict[str, Any]:
    status, content = await fetch_text(session, f"{base_url}/robots.txt")
    if not is_success(status) or content is None:
        return {
            "robots_txt_exists": False,
            "robots_txt_valid": False,
            "robots_txt_allows_crawl": False,
            "robots_txt_content": None,
        }
    return {
        "robots_txt_exists": True,
        "robots_txt_valid": "user-agent" in content.lower(),
        "robots_txt_allows_crawl": not BLANKET_DISALLOW_RE.search(content),
        "robots_txt_content": content,
    }


async def check_sitemap(session: aiohttp.ClientSession, base_url: str) -> Dict[str, Any]:
    for path in SITEMAP_PATHS:
        url = f"{base_url}{path}"
        status, content = await fetch_text(session, url)
        if is_success(status) and content is not None:
            return {
                "sitemap_exists": True,
                "sitemap_valid": "<urlset" in content or "<sitemapindex" in content,
                "sitemap_url_count": len(LOC_RE.findall(content)),
                "sitemap_url": url,
            }
    return {
        "sitemap_exists": False,
        "sitemap_valid": False,
        "sitemap_url_count": 0,
        "sitemap_url": None,
    }


def _cert_issuer(cert: Dict[str, Any]) -> Optional[str]:
    # issuer is a tuple of RDNs, each a tuple of (key, value) pairs
    fields = {key: value for rdn in cert.get("issuer", ()) for key, value in rdn}
    return fields.get("organizationName") or fields.get("commonName")


async def close_writer(writer: asyncio.StreamWriter) -> None:
    writer.close()
    try:
        await writer.wait_closed()
    except PROBE_ERRORS as e:
        # peers often drop TLS without a close_notify
        logger.debug(f"TLS teardown error ignored: {e!r}")


async def check_ssl(base_url: str) -> Dict[str, Any]:
    """Handshake with the host on 443 and read the verified peer certificate."""
    result = {
        "ssl_valid": False,
        "ssl_issuer": None,
        "ssl_expires_at": None,
        "ssl_days_remaining": None,
    }
    hostname = urlparse(base_url).hostname
    if not hostname:
        return result

    writer = None
    try:
        context = ssl.create_default_context()
        timeout = client_timeout()
        _, writer = await asyncio.wait_for(
            asyncio.open_connection(hostname, 443, ssl=context, server_hostname=hostname),
            timeout=timeout.total if timeout is not None else None,
        )
        cert = writer.get_extra_info("peercert") or {}
    except PROBE_ERRORS as e:
        logger.debug(f"TLS handshake failed for {hostname}: {e!r}")
        return result
    finally:
        if writer is not None:
            await close_writer(writer)

    result["ssl_valid"] = True
    result["ssl_issuer"] = _cert_issuer(cert)
    if cert.get("notAfter"):
        expires = datetime.fromtimestamp(
            ssl.cert_time_to_seconds(cert["notAfter"]), tz=timezone.utc
        )
        result["ssl_expires_at"] = expires.isoformat()
        result["ssl_days_remaining"] = (expires - datetime.now(timezone.utc)).days
    return result


def calculate_health_score(result: Dict[str, Any]) -> int:
    score = sum(weight for key, weight in HEALTH_WEIGHTS.items() if result.get(key))
    return min(100, score)


async def check_site_health(raw_url: str) -> SiteHealthReport:
    """
    Run the robots.txt, sitemap and TLS probes concurrently.

    Args:
        raw_url: Host name or URL of the site root

    Returns:
        SiteHealthReport with a 0-100 weighted health score
    """
    base_url = normalize_url(raw_url).rstrip("/")
    checked_at = utc_timestamp()
    logger.info(f"Running site health check for {base_url}")

    session_kwargs = {"headers": {"User-Agent": AUDIT_USER_AGENT}}
    timeout = client_timeout()
    if timeout is not None:
        session_kwargs["timeout"] = timeout

    async with aiohttp.ClientSession(**session_kwargs) as session:
        robots, sitemap, tls = await asyncio.gather(
            check_robots_txt(session, base_url),
            check_sitemap(session, base_url),
            check_ssl(base_url),
        )

    fields = {**robots, **sitemap, **tls}
    report = SiteHealthReport(
        url=base_url,
        health_score=calculate_health_score(fields),
        checked_at=checked_at,
        **fields,
    )
    logger.info(f"Site health for {base_url}: {report.health_score}/100")
    return report
