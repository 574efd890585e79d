from unittest.mock import MagicMock, patch
import pytest
import requests
from nilcc_verifier.badge import (
    BadgeRenderer,
    embed_snippet,
    is_origin_allowed,
    live_status,
    shorten_measurement,
)
from nilcc_verifier.errors import RecordError
from nilcc_verifier.types import LiveStatus, ProvenanceEntry

MEASUREMENT = "0123456789abcdef" * 6
VERIFICATION_URL = "https://github.com/acme/site/blob/main/measurement-hash.json"
REPORT_URL = "https://w1.workloads.nilcc.nillion.network/nilcc/api/v2/report"


@pytest.mark.parametrize(
    "referer, allowed",
    [
        ("https://app.example.com/page", True),
        ("https://example.com", True),
        ("https://evil.com", False),
        ("https://notexample.com", False),
        ("https://example.com.evil.com", False),
        (None, True),
        ("", True),
        ("http://localhost:3000", True),
        ("http://127.0.0.1:8080/x", True),
        ("http://[::1]:3000", True),
    ],
)
def test_allow_list(referer, allowed):
    assert is_origin_allowed(referer, ["example.com"]) is allowed


def test_empty_allow_list_allows_anything():
    assert is_origin_allowed("https://evil.com", []) is True
    assert is_origin_allowed("https://evil.com", None) is True


def test_allow_list_entries_may_carry_scheme():
    assert is_origin_allowed("https://docs.example.com", ["https://example.com/"]) is True


def test_shorten_measurement():
    assert shorten_measurement(MEASUREMENT) == f"{MEASUREMENT[:12]}...{MEASUREMENT[-8:]}"
    assert shorten_measurement("abc") == "abc"


def test_live_status_categories(fake_response):
    target = "nilcc_verifier.providers.workload.requests.get"
    with patch(target, return_value=fake_response(200, {"report": {"measurement": MEASUREMENT}})):
        assert live_status(MEASUREMENT, REPORT_URL) == LiveStatus.MATCHES
    with patch(target, return_value=fake_response(200, {"report": {"measurement": "ff" * 48}})):
        assert live_status(MEASUREMENT, REPORT_URL) == LiveStatus.CHANGED
    with patch(target, return_value=fake_response(200, {"report": {}})):
        assert live_status(MEASUREMENT, REPORT_URL) == LiveStatus.UNAVAILABLE
    with patch(target, return_value=fake_response(503, text="down")):
        assert live_status(MEASUREMENT, REPORT_URL) == LiveStatus.UNAVAILABLE
    with patch(target, side_effect=requests.ConnectionError("refused")):
        assert live_status(MEASUREMENT, REPORT_URL) == LiveStatus.UNAVAILABLE


def test_embed_snippet():
    snippet = embed_snippet("https://verify.example/", VERIFICATION_URL, REPORT_URL)
    assert 'src="https://verify.example/badge?verificationUrl=https%3A%2F%2Fgithub.com' in snippet
    assert "&reportUrl=https%3A%2F%2Fw1.workloads" in snippet
    assert 'width="260" height="90"' in snippet
    assert snippet.endswith("</iframe>")
    assert "reportUrl" not in embed_snippet("https://verify.example", VERIFICATION_URL)


@pytest.fixture
def checker():
    checker = MagicMock()
    checker.check.return_value = True
    return checker


@pytest.fixture
def renderer(checker):
    return BadgeRenderer(checker, timeout=5)


def _entry(allowed=None):
    return ("0.3.6", ProvenanceEntry(measurement_hash=MEASUREMENT, allowedDomains=allowed or []))


@pytest.mark.asyncio
async def test_missing_and_invalid_url(renderer, checker):
    badge = await renderer.render(None)
    assert "Verification URL required" in badge.html
    assert badge.status_code == 200

    badge = await renderer.render("https://gitlab.com/a/b/blob/main/x.json")
    assert "Invalid verification URL" in badge.html
    checker.check.assert_not_called()


@pytest.mark.asyncio
async def test_unauthentic_source(renderer, checker):
    checker.check.return_value = False
    with patch("nilcc_verifier.badge.fetch_record") as fetch:
        badge = await renderer.render(VERIFICATION_URL)
    assert "Unverified attestation source" in badge.html
    fetch.assert_not_called()


@pytest.mark.asyncio
async def test_record_errors_render_diagnostic(renderer):
    with patch(
        "nilcc_verifier.badge.fetch_record",
        side_effect=RecordError("No measurement_hash in verification file"),
    ):
        badge = await renderer.render(VERIFICATION_URL)
    assert "No measurement_hash in verification file" in badge.html


@pytest.mark.asyncio
async def test_success_without_live_check(renderer):
    with patch("nilcc_verifier.badge.fetch_record", return_value=_entry()), patch(
        "nilcc_verifier.badge.live_status"
    ) as live:
        badge = await renderer.render(VERIFICATION_URL, referer="https://anything.io")

    live.assert_not_called()
    assert "Verified by nilCC" in badge.html
    assert shorten_measurement(MEASUREMENT) in badge.html
    assert f'href="{VERIFICATION_URL}"' in badge.html
    assert 'class="live' not in badge.html
    assert "no-store" in badge.headers["Cache-Control"]
    assert badge.headers["Pragma"] == "no-cache"


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "status, text, style",
    [
        (LiveStatus.MATCHES, "Live workload matches", "badge-success"),
        (LiveStatus.CHANGED, "Live measurement changed", "badge-failed"),
        (LiveStatus.UNAVAILABLE, "Live check unavailable", "badge-success"),
    ],
)
async def test_live_status_section(renderer, status, text, style):
    with patch("nilcc_verifier.badge.fetch_record", return_value=_entry()), patch(
        "nilcc_verifier.badge.live_status", return_value=status
    ) as live:
        badge = await renderer.render(VERIFICATION_URL, REPORT_URL)

    live.assert_called_once_with(MEASUREMENT, REPORT_URL, timeout=5)
    assert text in badge.html
    assert style in badge.html


@pytest.mark.asyncio
async def test_domain_not_allowed_hides_allow_list(renderer):
    with patch(
        "nilcc_verifier.badge.fetch_record",
        return_value=_entry(["secret-partner.com"]),
    ):
        badge = await renderer.render(VERIFICATION_URL, referer="https://evil.com/")
    assert "Not authorized" in badge.html
    assert "secret-partner.com" not in badge.html


@pytest.mark.asyncio
async def test_user_input_is_escaped(renderer):
    with patch(
        "nilcc_verifier.badge.fetch_record",
        side_effect=RecordError("<script>alert(1)</script>"),
    ):
        badge = await renderer.render(VERIFICATION_URL)
    assert "<script>" not in badge.html
    assert "&lt;script&gt;" in badge.html


@pytest.mark.asyncio
async def test_unexpected_error_still_renders(renderer, checker):
    checker.check.side_effect = RuntimeError("boom")
    badge = await renderer.render(VERIFICATION_URL)
    assert badge.status_code == 200
    assert "Verification failed" in badge.html
