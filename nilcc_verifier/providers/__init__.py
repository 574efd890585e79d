from .base import ReportProvider
from .workload import WorkloadReportProvider, report_url, report_url_for_workload
from .nilcc import NilccApiClient

__all__ = [
    "ReportProvider",
    "WorkloadReportProvider",
    "NilccApiClient",
    "report_url",
    "report_url_for_workload",
]
