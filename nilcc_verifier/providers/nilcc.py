import logging
from typing import Any, List, Optional
import requests
from ..config import DEFAULT_API_BASE_URL, DEFAULT_TIMEOUT
from ..errors import NilccApiError, parse_error_body
from ..types import Artifact, Workload, WorkloadTier

logger = logging.getLogger(__name__)


class NilccApiClient:
    """Read-only access to the nilCC platform API, enough to drive verification."""

    def __init__(
        self,
        api_key: str,
        api_base_url: Optional[str] = None,
        timeout: float = DEFAULT_TIMEOUT,
    ):
        self.api_key = api_key
        self.api_base_url = (api_base_url or DEFAULT_API_BASE_URL).rstrip("/")
        self.timeout = timeout

    def _get(self, path: str) -> Any:
        url = f"{self.api_base_url}{path}"
        logger.info(f"[nilCC] GET {url}")
        try:
            response = requests.get(
                url,
                headers={"x-api-key": self.api_key, "Content-Type": "application/json"},
                timeout=self.timeout,
            )
        except requests.RequestException as e:
            raise NilccApiError(f"nilCC API unreachable: {e}") from e

        if not response.ok:
            diagnostic = parse_error_body(
                response.text, default=f"nilCC API error ({response.status_code})"
            )
            raise NilccApiError(diagnostic.message, response.status_code)
        return response.json()

    def list_workloads(self) -> List[Workload]:
        return [Workload(**w) for w in self._get("/api/v1/workloads/list")]

    def get_workload(self, workload_id: str) -> Workload:
        return Workload(**self._get(f"/api/v1/workloads/{workload_id}"))

    def list_workload_tiers(self) -> List[WorkloadTier]:
        return [WorkloadTier(**t) for t in self._get("/api/v1/workload-tiers/list")]

    def list_artifacts(self) -> List[Artifact]:
        return [Artifact(**a) for a in self._get("/api/v1/artifacts/list")]
