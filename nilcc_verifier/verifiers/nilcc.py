import logging
from typing import Optional, Union
import requests
from .base import Verifier
from ..config import DEFAULT_TIMEOUT, DEFAULT_VERIFIER_URL
from ..errors import parse_error_body
from ..types import (
    AttestationVerificationRequest,
    FailureKind,
    MeasurementVerificationRequest,
    VerificationRequest,
    VerificationResult,
)

logger = logging.getLogger(__name__)


class NilccVerifierClient(Verifier):
    """
    Client for the nilCC attestation verifier service.

    Two modes:
    - attestation + measurement: the service rebuilds the expected measurement
      from the Docker Compose hash, nilCC version, vCPU count and VM type and
      compares it with the one embedded in the report.
    - attestation only: the service checks that the report is signed by
      genuine AMD SEV-SNP hardware.
    """

    def __init__(
        self,
        service_url: Optional[str] = None,
        timeout: float = DEFAULT_TIMEOUT,
    ):
        self.service_url = (service_url or DEFAULT_VERIFIER_URL).rstrip("/")
        self.timeout = timeout

    async def verify_with_measurement(
        self,
        report: str,
        docker_compose_hash: str,
        nilcc_version: str,
        vcpus: Union[int, str, None],
        vm_type: str,
    ) -> VerificationResult:
        return await self.verify(
            MeasurementVerificationRequest(
                report=report,
                docker_compose_hash=docker_compose_hash,
                nilcc_version=nilcc_version,
                vcpus=vcpus,
                vm_type=vm_type,
            )
        )

    async def verify_attestation_only(self, report: str) -> VerificationResult:
        return await self.verify(AttestationVerificationRequest(report=report))

    async def verify(self, request: VerificationRequest) -> VerificationResult:
        missing = request.missing_fields()
        if missing:
            return VerificationResult.failure(
                FailureKind.INVALID_REQUEST,
                f"{', '.join(request.required_fields)} are required",
                details={"missing": missing},
            )

        url = f"{self.service_url}{request.endpoint}"
        logger.info(f"Submitting {request.mode} verification to {url}")
        try:
            response = requests.post(
                url,
                json=request.payload(),
                headers={"Content-Type": "application/json"},
                timeout=self.timeout,
            )
        except requests.RequestException as e:
            logger.error(f"Verifier service unreachable: {e}")
            return VerificationResult.failure(
                FailureKind.UPSTREAM_UNAVAILABLE, f"Verifier unreachable: {e}"
            )

        diagnostic = parse_error_body(response.text)
        if not response.ok:
            logger.warning(
                f"Verifier rejected {request.mode} request with status {response.status_code}"
            )
            message = diagnostic.payload.get("message")
            return VerificationResult.failure(
                FailureKind.VERIFICATION_FAILED,
                message
                if isinstance(message, str) and message
                else "Verification request failed",
                details=diagnostic.payload,
                status_code=response.status_code,
            )

        message = diagnostic.payload.get("message")
        # Some verifier versions answer 200 with an explicit negative verdict
        if any(diagnostic.payload.get(key) is False for key in ("success", "verified")):
            return VerificationResult.failure(
                FailureKind.VERIFICATION_FAILED,
                message if isinstance(message, str) and message else "Not verified",
                details=diagnostic.payload,
                status_code=response.status_code,
            )
        return VerificationResult(
            success=True,
            message=message if isinstance(message, str) else None,
            details=diagnostic.payload,
            status_code=response.status_code,
        )
