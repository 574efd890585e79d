import logging
import os
from typing import Dict, List, NamedTuple, Optional
from urllib.parse import quote, urlparse
from jinja2 import Environment, FileSystemLoader, select_autoescape
from .config import DEFAULT_TIMEOUT
from .errors import RecordError
from .provenance import ProvenanceChecker, fetch_record, parse_record_url
from .providers.workload import fetch_measurement
from .types import LiveStatus, ProvenanceEntry

logger = logging.getLogger(__name__)

TEMPLATE_DIR = os.path.join(os.path.dirname(__file__), "templates")
TEE_TYPE = "AMD SEV-SNP"
LOOPBACK_HOSTS = ("localhost", "127.0.0.1", "::1")

NO_CACHE_HEADERS = {
    "Content-Type": "text/html; charset=utf-8",
    "Cache-Control": "no-store, no-cache, must-revalidate, max-age=0",
    "Pragma": "no-cache",
    "Expires": "0",
}

_PALETTES = {
    "success": {"border": "#e5e7eb", "icon": "#16a34a", "live": "#16a34a"},
    "failed": {"border": "#fca5a5", "icon": "#ef4444", "live": "#dc2626"},
    "error": {"border": "#fca5a5", "icon": "#ef4444", "live": "#dc2626"},
}

_LIVE_TEXT = {
    LiveStatus.MATCHES: "Live workload matches",
    LiveStatus.CHANGED: "Live measurement changed",
    LiveStatus.UNAVAILABLE: "Live check unavailable",
}


class Badge(NamedTuple):
    html: str
    headers: Dict[str, str]
    status_code: int = 200


def shorten_measurement(measurement: str) -> str:
    if len(measurement) <= 20:
        return measurement
    return f"{measurement[:12]}...{measurement[-8:]}"


def _domain_of(value: str) -> str:
    value = value.strip().lower()
    if "://" in value:
        return (urlparse(value).hostname or "").lower()
    return value.split("/")[0].split(":")[0]


def is_loopback(hostname: str) -> bool:
    return hostname.strip("[]").lower() in LOOPBACK_HOSTS


def is_origin_allowed(referer: Optional[str], allowed_domains: List[str]) -> bool:
    """
    Embedding allow-list check.

    An empty allow-list allows every origin, a missing referer is allowed, and
    loopback origins are always allowed. Otherwise the referer host must equal
    an allowed domain or be a subdomain of one.
    """
    domains = [d for d in (_domain_of(d) for d in allowed_domains or []) if d]
    if not domains:
        return True
    if not referer:
        return True

    try:
        hostname = (urlparse(referer).hostname or "").lower()
    except ValueError:
        return False
    if not hostname:
        return False
    if is_loopback(hostname):
        return True
    return any(hostname == d or hostname.endswith("." + d) for d in domains)


def live_status(expected_measurement: str, report_url: str, timeout: float = DEFAULT_TIMEOUT) -> LiveStatus:
    try:
        measurement = fetch_measurement(report_url, timeout=timeout)
    except Exception as e:
        logger.warning(f"Live report check failed for {report_url}: {e}")
        return LiveStatus.UNAVAILABLE
    if not measurement:
        return LiveStatus.UNAVAILABLE
    if measurement.lower() == expected_measurement.lower():
        return LiveStatus.MATCHES
    return LiveStatus.CHANGED


def embed_snippet(base_url: str, verification_url: str, report_url: Optional[str] = None) -> str:
    params = f"verificationUrl={quote(verification_url, safe='')}"
    if report_url:
        params += f"&reportUrl={quote(report_url, safe='')}"
    return (
        f'<iframe src="{base_url.rstrip("/")}/badge?{params}"'
        ' width="260" height="90" scrolling="no" style="border: none"></iframe>'
    )


class BadgeRenderer:
    """Renders the embeddable HTML attestation badge. Never raises."""

    def __init__(
        self,
        checker: ProvenanceChecker,
        timeout: float = DEFAULT_TIMEOUT,
        env: Optional[Environment] = None,
    ):
        self.checker = checker
        self.timeout = timeout
        self.env = env or Environment(
            loader=FileSystemLoader(TEMPLATE_DIR),
            autoescape=select_autoescape(enabled_extensions=["html"]),
        )
        self.template = self.env.get_template("badge.html")

    def error_badge(self, message: str) -> Badge:
        html = self.template.render(
            style="error",
            palette=_PALETTES["error"],
            icon="✗",
            title=message,
        )
        return Badge(html, dict(NO_CACHE_HEADERS))

    def success_badge(
        self,
        entry: ProvenanceEntry,
        verification_url: str,
        status: Optional[LiveStatus] = None,
    ) -> Badge:
        style = "failed" if status == LiveStatus.CHANGED else "success"
        html = self.template.render(
            style=style,
            palette=_PALETTES[style],
            icon="✗" if style == "failed" else "✓",
            label="Attestation",
            title="Verified by nilCC",
            tee_type=TEE_TYPE,
            short_measurement=shorten_measurement(entry.measurement_hash),
            live_status=status.value if status else None,
            live_text=_LIVE_TEXT.get(status) if status else None,
            link=verification_url,
        )
        return Badge(html, dict(NO_CACHE_HEADERS))

    async def render(
        self,
        verification_url: Optional[str],
        report_url: Optional[str] = None,
        referer: Optional[str] = None,
    ) -> Badge:
        try:
            return self._render(verification_url, report_url, referer)
        except Exception:
            logger.exception("Badge rendering failed")
            return self.error_badge("Verification failed")

    def _render(
        self,
        verification_url: Optional[str],
        report_url: Optional[str],
        referer: Optional[str],
    ) -> Badge:
        if not verification_url:
            return self.error_badge("Verification URL required")

        location = parse_record_url(verification_url)
        if location is None:
            return self.error_badge("Invalid verification URL")

        if not self.checker.check(location):
            return self.error_badge("Unverified attestation source")

        try:
            _, entry = fetch_record(location, timeout=self.timeout)
        except RecordError as e:
            return self.error_badge(str(e))

        if not is_origin_allowed(referer, entry.allowed_domains):
            logger.warning(f"Badge embed refused for referer {referer!r}")
            return self.error_badge("Not authorized to display this badge")

        status = None
        if report_url:
            status = live_status(entry.measurement_hash, report_url, timeout=self.timeout)

        return self.success_badge(entry, verification_url, status)
