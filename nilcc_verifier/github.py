import logging
from typing import Any, Dict, List, Optional
import requests
from .config import DEFAULT_TIMEOUT

logger = logging.getLogger(__name__)

API_BASE = "https://api.github.com"
API_VERSION = "2022-11-28"


class GitHubClient:
    """Minimal GitHub REST client for the endpoints verification needs."""

    def __init__(
        self,
        token: Optional[str],
        api_base: str = API_BASE,
        timeout: float = DEFAULT_TIMEOUT,
    ):
        self.token = token
        self.api_base = api_base.rstrip("/")
        self.timeout = timeout

    @property
    def headers(self) -> Dict[str, str]:
        headers = {
            "Accept": "application/vnd.github+json",
            "X-GitHub-Api-Version": API_VERSION,
        }
        if self.token:
            headers["Authorization"] = f"Bearer {self.token}"
        return headers

    def list_commits(
        self, owner: str, repo: str, path: str, branch: str, per_page: int = 1
    ) -> List[Dict[str, Any]]:
        """
        Commits touching ``path`` on ``branch``, newest first.

        Raises ``requests.HTTPError`` on a non-2xx reply.
        """
        url = f"{self.api_base}/repos/{owner}/{repo}/commits"
        logger.info(f"Fetching latest commit for {owner}/{repo}:{path}@{branch}")
        response = requests.get(
            url,
            params={"path": path, "sha": branch, "per_page": per_page},
            headers=self.headers,
            timeout=self.timeout,
        )
        response.raise_for_status()
        data = response.json()
        if not isinstance(data, list):
            raise ValueError("Unexpected commit list payload")
        return data

    def dispatch_workflow(
        self,
        owner: str,
        repo: str,
        workflow_id: str,
        ref: str,
        inputs: Dict[str, str],
    ) -> requests.Response:
        url = f"{self.api_base}/repos/{owner}/{repo}/actions/workflows/{workflow_id}/dispatches"
        logger.info(f"Dispatching {workflow_id} on {owner}/{repo}@{ref}")
        return requests.post(
            url,
            json={"ref": ref, "inputs": inputs},
            headers=self.headers,
            timeout=self.timeout,
        )

    def list_workflow_runs(
        self, owner: str, repo: str, workflow_id: str, branch: str, per_page: int = 1
    ) -> requests.Response:
        url = f"{self.api_base}/repos/{owner}/{repo}/actions/workflows/{workflow_id}/runs"
        return requests.get(
            url,
            params={"branch": branch, "per_page": per_page},
            headers=self.headers,
            timeout=self.timeout,
        )

    def get_workflow_run(self, owner: str, repo: str, run_id: str) -> requests.Response:
        url = f"{self.api_base}/repos/{owner}/{repo}/actions/runs/{run_id}"
        return requests.get(url, headers=self.headers, timeout=self.timeout)
