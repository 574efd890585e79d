import logging
from typing import Optional, Union
from fastapi import FastAPI, HTTPException, Query, Request
from fastapi.responses import HTMLResponse, JSONResponse
from pydantic import BaseModel, Field
from nilcc_verifier.badge import BadgeRenderer, embed_snippet
from nilcc_verifier.config import ServerConfig
from nilcc_verifier.errors import ReportError
from nilcc_verifier.provenance import ProvenanceChecker
from nilcc_verifier.providers import WorkloadReportProvider
from nilcc_verifier.types import (
    AttestationVerificationRequest,
    FailureKind,
    MeasurementVerificationRequest,
    VerificationResult,
)
from nilcc_verifier.verifiers import LocalMeasurementVerifier, NilccVerifierClient
from nilcc_verifier.workflow import MeasurementWorkflow, WorkflowOutcome

logger = logging.getLogger(__name__)

app = FastAPI(title="nilCC Attestation Verifier API")
config = ServerConfig.from_env()
verifier = NilccVerifierClient(config.verifier_url, timeout=config.request_timeout)
local_verifier = LocalMeasurementVerifier(config.measurement_image)
badge_renderer = BadgeRenderer(
    ProvenanceChecker(
        config.github_token, config.trusted_author, timeout=config.request_timeout
    ),
    timeout=config.request_timeout,
)
report_provider = WorkloadReportProvider(timeout=config.request_timeout)
workflow = MeasurementWorkflow(config)

_STATUS_BY_FAILURE = {
    FailureKind.INVALID_REQUEST: 400,
    FailureKind.VERIFICATION_FAILED: 400,
    FailureKind.UPSTREAM_UNAVAILABLE: 502,
    FailureKind.INTERNAL_ERROR: 500,
}


class WorkflowRequest(BaseModel):
    measurement_hash: Optional[str] = Field(default=None, alias="measurementHash")
    docker_compose_hash: Optional[str] = Field(default=None, alias="dockerComposeHash")
    nilcc_version: Optional[str] = Field(default=None, alias="nilccVersion")
    vcpus: Optional[Union[int, str]] = None


def _result_response(result: VerificationResult) -> JSONResponse:
    body = result.model_dump(
        mode="json", exclude={"status_code", "details"}, exclude_none=True
    )
    if result.success:
        # Relay the verifier payload next to our own fields
        body = {**(result.details or {}), **body}
        return JSONResponse(body)

    if result.details is not None:
        body["details"] = result.details
    status = result.status_code or _STATUS_BY_FAILURE.get(result.error, 500)
    return JSONResponse(body, status_code=status)


def _workflow_response(outcome: WorkflowOutcome) -> JSONResponse:
    body = outcome.model_dump(mode="json", exclude={"status_code"}, exclude_none=True)
    return JSONResponse(body, status_code=outcome.status_code)


@app.get("/badge", response_class=HTMLResponse)
async def badge(
    request: Request,
    verification_url: Optional[str] = Query(default=None, alias="verificationUrl"),
    report_url: Optional[str] = Query(default=None, alias="reportUrl"),
):
    referer = request.headers.get("referer") or request.headers.get("origin")
    rendered = await badge_renderer.render(verification_url, report_url, referer)
    return HTMLResponse(
        rendered.html, status_code=rendered.status_code, headers=rendered.headers
    )


@app.get("/embed-code")
def embed_code(
    request: Request,
    verification_url: str = Query(alias="verificationUrl"),
    report_url: Optional[str] = Query(default=None, alias="reportUrl"),
):
    base_url = str(request.base_url).rstrip("/")
    return {"embed_code": embed_snippet(base_url, verification_url, report_url)}


@app.post("/verify-new")
async def verify_new(body: MeasurementVerificationRequest):
    try:
        result = await verifier.verify(body)
    except Exception as e:
        logger.exception("Verify-new error")
        result = VerificationResult.failure(FailureKind.INTERNAL_ERROR, str(e))
    return _result_response(result)


@app.post("/verify-amd")
async def verify_amd(body: AttestationVerificationRequest):
    try:
        result = await verifier.verify(body)
    except Exception as e:
        logger.exception("Verify-amd error")
        result = VerificationResult.failure(FailureKind.INTERNAL_ERROR, str(e))
    return _result_response(result)


@app.post("/verify-local")
async def verify_local(body: MeasurementVerificationRequest):
    try:
        result = await local_verifier.verify(body)
    except Exception as e:
        logger.exception("Verify-local error")
        result = VerificationResult.failure(FailureKind.INTERNAL_ERROR, str(e))
    return _result_response(result)


@app.post("/verify")
async def verify_workflow(body: WorkflowRequest):
    outcome = await workflow.trigger(
        body.measurement_hash, body.docker_compose_hash, body.nilcc_version, body.vcpus
    )
    return _workflow_response(outcome)


@app.get("/verify/monitor-workflow")
async def monitor_workflow(run_id: Optional[str] = None):
    outcome = await workflow.monitor(run_id or "")
    return _workflow_response(outcome)


@app.get("/report")
async def fetch_report(
    domain: Optional[str] = None, workload_id: Optional[str] = None
):
    if not domain and not workload_id:
        raise HTTPException(status_code=400, detail="domain or workload_id is required")
    if not domain:
        domain = f"{workload_id}.{config.workloads_host}"
    try:
        return await report_provider.fetch_report(domain)
    except ReportError as e:
        raise HTTPException(status_code=502, detail=str(e))


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(app, host="0.0.0.0", port=8000)
