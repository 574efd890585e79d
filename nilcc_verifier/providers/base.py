from ..types import WorkloadReport


class ReportProvider:
    async def fetch_report(self, domain: str) -> WorkloadReport:
        raise NotImplementedError
