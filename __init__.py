"""SEO Audit Service."""

from seo_audit_engine import AuditReport, run_audit
from site_monitor import check_monitor, check_site_health
from content_generator import ContentGenerator, create_generator

__all__ = [
    "AuditReport",
    "run_audit",
    "check_monitor",
    "check_site_health",
    "ContentGenerator",
    "create_generator",
]
