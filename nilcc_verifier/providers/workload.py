import logging
from typing import Any, Optional
import requests
from .base import ReportProvider
from ..config import DEFAULT_TIMEOUT, PRODUCTION_WORKLOADS_HOST
from ..errors import ReportError
from ..types import WorkloadReport

logger = logging.getLogger(__name__)

REPORT_PATH = "/nilcc/api/v2/report"


def report_url(domain: str) -> str:
    return f"https://{domain}{REPORT_PATH}"


def report_url_for_workload(
    workload_id: str, workloads_host: str = PRODUCTION_WORKLOADS_HOST
) -> str:
    if not workload_id:
        raise ValueError("workload_id is required")
    return report_url(f"{workload_id}.{workloads_host}")


def parse_report(data: Any) -> WorkloadReport:
    if not isinstance(data, dict):
        raise ReportError("Workload report is not a JSON object")

    raw_report = data.get("raw_report")
    if not raw_report:
        raise ReportError("No raw_report found in response")

    report = data.get("report") or {}
    environment = data.get("environment")
    if not isinstance(environment, dict):
        environment = {}
    measurement = report.get("measurement") if isinstance(report, dict) else None

    try:
        cpu_count = int(environment.get("cpu_count") or 0)
    except (TypeError, ValueError):
        cpu_count = 0

    return WorkloadReport(
        raw_report=str(raw_report),
        measurement=measurement if isinstance(measurement, str) else None,
        nilcc_version=str(environment.get("nilcc_version") or ""),
        cpu_count=cpu_count,
        vm_type=str(environment.get("vm_type") or ""),
        raw=data,
    )


def fetch_measurement(url: str, timeout: float = DEFAULT_TIMEOUT) -> Optional[str]:
    """``report.measurement`` of the report at ``url``; raises on fetch errors."""
    response = requests.get(url, timeout=timeout)
    response.raise_for_status()
    data = response.json()
    report = data.get("report") if isinstance(data, dict) else None
    measurement = report.get("measurement") if isinstance(report, dict) else None
    if isinstance(measurement, str) and measurement:
        return measurement
    return None


class WorkloadReportProvider(ReportProvider):
    """Fetches the live attestation report straight from a workload's domain."""

    def __init__(self, timeout: float = DEFAULT_TIMEOUT):
        self.timeout = timeout

    async def fetch_report(self, domain: str) -> WorkloadReport:
        if not domain:
            raise ReportError("Workload has no domain")

        url = report_url(domain)
        logger.info(f"[Workload] Fetching report from {url}")
        try:
            response = requests.get(url, timeout=self.timeout)
        except requests.RequestException as e:
            raise ReportError(f"Failed to fetch report: {e}") from e

        if not response.ok:
            raise ReportError(f"Failed to fetch report ({response.status_code})")

        try:
            data = response.json()
        except ValueError as e:
            raise ReportError("Workload report is not valid JSON") from e
        return parse_report(data)
