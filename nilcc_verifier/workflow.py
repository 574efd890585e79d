import asyncio
import logging
from typing import Any, Dict, Optional, Union
from pydantic import BaseModel
from .config import ServerConfig
from .errors import parse_error_body
from .github import GitHubClient

logger = logging.getLogger(__name__)

RUN_LOOKUP_DELAY = 2.0


class WorkflowOutcome(BaseModel):
    success: bool
    error: Optional[str] = None
    message: Optional[str] = None
    workflow_run_id: Optional[Union[int, str]] = None
    status: Optional[str] = None
    conclusion: Optional[str] = None
    verified: Optional[bool] = None
    html_url: Optional[str] = None
    run_data: Optional[Dict[str, Any]] = None
    status_code: int = 200


def verdict(status: Optional[str], conclusion: Optional[str]) -> Optional[bool]:
    """The workflow exits non-zero on a mismatch, so its conclusion is the verdict."""
    if status != "completed":
        return None
    if conclusion == "success":
        return True
    if conclusion == "failure":
        return False
    return None


class MeasurementWorkflow:
    """
    Runs measurement verification in CI: dispatches the
    ``verify-measurement.yml`` workflow and reports on its run.
    """

    def __init__(self, config: ServerConfig, client: Optional[GitHubClient] = None):
        self.config = config
        self.client = client or GitHubClient(
            config.github_token, timeout=config.request_timeout
        )

    def _not_configured(self) -> WorkflowOutcome:
        return WorkflowOutcome(
            success=False,
            error="configuration_error",
            message="GITHUB_TOKEN environment variable is not set",
            status_code=500,
        )

    async def trigger(
        self,
        measurement_hash: str,
        docker_compose_hash: str,
        nilcc_version: str,
        vcpus: Union[int, str, None],
    ) -> WorkflowOutcome:
        inputs = {
            "measurement_hash": (measurement_hash or "").strip(),
            "docker_compose_hash": (docker_compose_hash or "").strip(),
            "nilcc_version": (nilcc_version or "").strip(),
            "vcpus": "" if vcpus is None else str(vcpus).strip(),
        }
        if not all(inputs.values()):
            return WorkflowOutcome(
                success=False,
                error="invalid_request",
                message="measurementHash, dockerComposeHash, nilccVersion, and vcpus are required",
                status_code=400,
            )
        if not self.config.github_token:
            return self._not_configured()

        cfg = self.config
        try:
            dispatch = self.client.dispatch_workflow(
                cfg.workflow_owner,
                cfg.workflow_repo,
                cfg.workflow_id,
                cfg.github_branch,
                inputs,
            )
            if not dispatch.ok:
                return WorkflowOutcome(
                    success=False,
                    error="workflow_trigger_failed",
                    message=f"Failed to trigger workflow: {parse_error_body(dispatch.text).message}",
                    status_code=dispatch.status_code,
                )

            # The run is created asynchronously after the dispatch is accepted
            await asyncio.sleep(RUN_LOOKUP_DELAY)

            runs = self.client.list_workflow_runs(
                cfg.workflow_owner, cfg.workflow_repo, cfg.workflow_id, cfg.github_branch
            )
            if not runs.ok:
                return WorkflowOutcome(
                    success=False,
                    error="workflow_run_fetch_failed",
                    message="Failed to fetch workflow run ID",
                    status_code=runs.status_code,
                )
            workflow_runs = runs.json().get("workflow_runs") or []
            run_id = workflow_runs[0].get("id") if workflow_runs else None
        except Exception as e:
            logger.exception("Error triggering measurement workflow")
            return WorkflowOutcome(
                success=False,
                error="verification_failed",
                message=str(e),
                status_code=500,
            )

        if not run_id:
            return WorkflowOutcome(
                success=False,
                error="workflow_run_not_found",
                message="Workflow was triggered but run ID could not be determined",
            )
        return WorkflowOutcome(
            success=True,
            workflow_run_id=run_id,
            status="queued",
            message="Verification workflow triggered. Please poll for results.",
        )

    async def monitor(self, run_id: str) -> WorkflowOutcome:
        if not run_id:
            return WorkflowOutcome(
                success=False,
                error="invalid_request",
                message="run_id query parameter is required",
                status_code=400,
            )
        if not self.config.github_token:
            return self._not_configured()

        cfg = self.config
        try:
            response = self.client.get_workflow_run(
                cfg.workflow_owner, cfg.workflow_repo, run_id
            )
            if not response.ok:
                return WorkflowOutcome(
                    success=False,
                    error="workflow_run_fetch_failed",
                    message=f"Failed to fetch workflow run: {parse_error_body(response.text).message}",
                    status_code=response.status_code,
                )
            run = response.json()
        except Exception as e:
            logger.exception("Error monitoring measurement workflow")
            return WorkflowOutcome(
                success=False,
                error="monitoring_failed",
                message=str(e),
                status_code=500,
            )

        status = run.get("status")
        conclusion = run.get("conclusion")
        return WorkflowOutcome(
            success=True,
            workflow_run_id=run_id,
            status=status,
            conclusion=conclusion,
            verified=verdict(status, conclusion),
            html_url=run.get("html_url"),
            run_data={
                "status": status,
                "conclusion": conclusion,
                "created_at": run.get("created_at"),
                "updated_at": run.get("updated_at"),
            },
        )
