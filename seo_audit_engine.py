"""
SEO Health Audit Engine

Fetches a single page, extracts a handful of structural signals from the raw
HTML with regular expressions, checks them against a fixed rule set and
produces a deterministic score.

Matching is purely textual on purpose: no HTML parser is involved, so the
engine tolerates broken markup but shares the usual regex blind spots
(commented-out tags still count, attributes in an unexpected order are
missed).
"""

import asyncio
import logging
import os
import re
from datetime import datetime, timezone
from enum import Enum
from typing import List, Optional, Tuple

import aiohttp
from dotenv import load_dotenv
from pydantic import BaseModel, ConfigDict, Field

load_dotenv()

logger = logging.getLogger(__name__)

# Unset means the aiohttp default timeout applies
FETCH_TIMEOUT_SECONDS = os.getenv("FETCH_TIMEOUT_SECONDS")

AUDIT_USER_AGENT = os.getenv(
    "AUDIT_USER_AGENT",
    "Mozilla/5.0 (compatible; SeoAuditService/1.0; +https://example.com/bot)",
)


# ============================================================================
# Data Model
# ============================================================================


class Severity(str, Enum):
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"


SEVERITY_PENALTIES = {
    Severity.HIGH: 25,
    Severity.MEDIUM: 12,
    Severity.LOW: 6,
}


class _Frozen(BaseModel):
    model_config = ConfigDict(frozen=True, populate_by_name=True)


class AuditTarget(_Frozen):
    """A normalized absolute URL to audit."""

    url: str


class PageSnapshot(_Frozen):
    """Structural facts extracted from a page's HTML."""

    title: Optional[str] = None
    description: Optional[str] = None
    canonical: Optional[str] = None
    h1_count: int = Field(default=0, ge=0, alias="h1Count")


class Issue(_Frozen):
    severity: Severity
    key: str
    description: str


class FetchOutcome(_Frozen):
    ok: bool
    status: int


class AuditReport(_Frozen):
    """Complete result of one audit pass."""

    url: str
    fetched: FetchOutcome
    snapshot: PageSnapshot
    issues: Tuple[Issue, ...]
    score: int = Field(ge=0, le=100)
    audited_at: str = Field(alias="auditedAt")


class FetchResult:
    """Raw outcome of the audit GET: status plus whatever body was read."""

    def __init__(self, ok: bool, status: int, body: str = ""):
        self.ok = ok
        self.status = status
        self.body = body


# ============================================================================
# Utility Functions
# ============================================================================


def utc_timestamp() -> str:
    """Current wall-clock time as an ISO-8601 UTC string with milliseconds."""
    return (
        datetime.now(timezone.utc)
        .isoformat(timespec="milliseconds")
        .replace("+00:00", "Z")
    )


def normalize_url(raw: str) -> str:
    """
    Default the scheme of a host or URL to https.

    Strings that already start with ``http`` are returned as-is; nothing else
    is validated here, a malformed URL fails later at fetch time.
    """
    raw = raw.strip()
    if raw.lower().startswith("http"):
        return raw
    return f"https://{raw}"


def client_timeout() -> Optional[aiohttp.ClientTimeout]:
    if not FETCH_TIMEOUT_SECONDS:
        return None
    return aiohttp.ClientTimeout(total=float(FETCH_TIMEOUT_SECONDS))


def is_success(status: int) -> bool:
    return 200 <= status < 300


# ============================================================================
# Fetcher
# ============================================================================


async def fetch_page(url: str) -> FetchResult:
    """
    GET a page for auditing, following redirects.

    Network failures, including a bad redirect sent by the target site, are
    folded into the result (``ok=False``, ``status=0``, empty body) instead
    of raised. A caller-supplied URL the client refuses to parse propagates.

    Args:
        url: Normalized absolute URL

    Returns:
        FetchResult with the final status and the decoded body
    """
    headers = {"User-Agent": AUDIT_USER_AGENT}
    session_kwargs = {}
    timeout = client_timeout()
    if timeout is not None:
        session_kwargs["timeout"] = timeout

    try:
        async with aiohttp.ClientSession(**session_kwargs) as session:
            async with session.get(url, headers=headers, allow_redirects=True) as response:
                body = await response.text(errors="replace")
                return FetchResult(
                    ok=is_success(response.status), status=response.status, body=body
                )
    except aiohttp.RedirectClientError as e:
        logger.warning(f"Bad redirect from {url}, auditing empty document: {e!r}")
        return FetchResult(ok=False, status=0, body="")
    except aiohttp.InvalidURL:
        raise
    except (aiohttp.ClientError, asyncio.TimeoutError) as e:
        logger.warning(f"Fetch failed for {url}, auditing empty document: {e!r}")
        return FetchResult(ok=False, status=0, body="")


# ============================================================================
# Snapshot Extractor
# ============================================================================

TITLE_RE = re.compile(r"<title[^>]*>([\s\S]*?)</title>", re.IGNORECASE)
DESCRIPTION_RE = re.compile(
    r"<meta[^>]+name=[\"']description[\"'][^>]*content=([\"'])(.*?)\1",
    re.IGNORECASE,
)
CANONICAL_RE = re.compile(
    r"<link[^>]+rel=[\"']canonical[\"'][^>]*href=([\"'])(.*?)\1",
    re.IGNORECASE,
)
H1_RE = re.compile(r"<h1\b", re.IGNORECASE)


def _last_group(pattern: re.Pattern, html: str) -> Optional[str]:
    match = pattern.search(html)
    if not match:
        return None
    value = match.group(match.re.groups).strip()
    return value or None


def extract_snapshot(html: str) -> PageSnapshot:
    """Run the four independent pattern matches against raw HTML."""
    return PageSnapshot(
        title=_last_group(TITLE_RE, html),
        description=_last_group(DESCRIPTION_RE, html),
        canonical=_last_group(CANONICAL_RE, html),
        h1_count=len(H1_RE.findall(html)),
    )


# ============================================================================
# Rule Evaluator and Scorer
# ============================================================================


def evaluate_rules(snapshot: PageSnapshot) -> List[Issue]:
    """
    Check a snapshot against the fixed rule list.

    Returns:
        Issues in detection order: title, description, canonical, H1 rules
    """
    issues: List[Issue] = []

    if not snapshot.title:
        issues.append(
            Issue(
                severity=Severity.HIGH,
                key="missing_title",
                description="Page has no <title> tag",
            )
        )
    if not snapshot.description:
        issues.append(
            Issue(
                severity=Severity.MEDIUM,
                key="missing_meta_description",
                description="Page has no meta description",
            )
        )
    if not snapshot.canonical:
        issues.append(
            Issue(
                severity=Severity.MEDIUM,
                key="missing_canonical",
                description="Page has no canonical link",
            )
        )
    if snapshot.h1_count == 0:
        issues.append(
            Issue(
                severity=Severity.MEDIUM,
                key="missing_h1",
                description="Page has no <h1> heading",
            )
        )
    elif snapshot.h1_count > 1:
        issues.append(
            Issue(
                severity=Severity.LOW,
                key="multiple_h1",
                description=f"Page has {snapshot.h1_count} <h1> headings, expected one",
            )
        )

    return issues


def calculate_score(issues: List[Issue]) -> int:
    """100 minus the per-severity penalties, floored at 0."""
    penalty = sum(SEVERITY_PENALTIES[issue.severity] for issue in issues)
    return max(0, 100 - penalty)


# ============================================================================
# Report Assembler
# ============================================================================


def build_report(url: str, fetched: FetchResult) -> AuditReport:
    snapshot = extract_snapshot(fetched.body)
    issues = evaluate_rules(snapshot)
    return AuditReport(
        url=url,
        fetched=FetchOutcome(ok=fetched.ok, status=fetched.status),
        snapshot=snapshot,
        issues=tuple(issues),
        score=calculate_score(issues),
        audited_at=utc_timestamp(),
    )


async def run_audit(raw_url: str) -> AuditReport:
    """
    Audit one URL: normalize, fetch, extract, evaluate, score.

    Args:
        raw_url: Host name or URL as supplied by the caller

    Returns:
        AuditReport, degraded (``fetched.ok=False``) when the page could not
        be retrieved

    Raises:
        aiohttp.InvalidURL: If the normalized URL cannot be parsed
    """
    target = AuditTarget(url=normalize_url(raw_url))
    logger.info(f"Auditing {target.url}")

    fetched = await fetch_page(target.url)
    report = build_report(target.url, fetched)

    logger.info(
        f"Audit finished for {target.url}: status={fetched.status}, "
        f"issues={len(report.issues)}, score={report.score}/100"
    )
    return report
