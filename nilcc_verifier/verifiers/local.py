import logging
import shutil
import subprocess
from typing import List, Optional
from .base import Verifier
from ..types import (
    FailureKind,
    MeasurementVerificationRequest,
    VerificationRequest,
    VerificationResult,
)

logger = logging.getLogger(__name__)

LOCAL_TIMEOUT = 120


class LocalMeasurementVerifier(Verifier):
    """
    Offline verifier: recomputes the measurement hash with the containerized
    nilCC measurement tool and compares it with the expected measurement.

    Only the attestation + measurement mode is supported, and the request must
    carry ``expected_measurement`` (the value reported by the workload).
    """

    def __init__(
        self,
        image: Optional[str],
        docker_binary: str = "docker",
        timeout: float = LOCAL_TIMEOUT,
    ):
        self.image = image
        self.docker_binary = docker_binary
        self.timeout = timeout

    def build_command(self, request: MeasurementVerificationRequest) -> List[str]:
        payload = request.payload()
        return [
            self.docker_binary,
            "run",
            "--rm",
            self.image,
            "measurement-hash",
            "--docker-compose-hash",
            payload["docker_compose_hash"],
            "--nilcc-version",
            payload["nilcc_version"],
            "--vcpus",
            str(payload["vcpus"]),
            "--vm-type",
            payload["vm_type"],
        ]

    async def verify(self, request: VerificationRequest) -> VerificationResult:
        if not isinstance(request, MeasurementVerificationRequest):
            return VerificationResult.failure(
                FailureKind.INVALID_REQUEST,
                "Local verification only supports attestation + measurement",
            )

        missing = request.missing_fields()
        if missing:
            return VerificationResult.failure(
                FailureKind.INVALID_REQUEST,
                f"{', '.join(request.required_fields)} are required",
                details={"missing": missing},
            )

        expected = (request.expected_measurement or "").strip().lower()
        if not expected:
            return VerificationResult.failure(
                FailureKind.INVALID_REQUEST, "expected_measurement is required"
            )

        if not self.image:
            return VerificationResult.failure(
                FailureKind.INTERNAL_ERROR, "No measurement tool image configured"
            )

        if shutil.which(self.docker_binary) is None:
            return VerificationResult.failure(
                FailureKind.UPSTREAM_UNAVAILABLE,
                f"{self.docker_binary} not found on PATH",
            )

        command = self.build_command(request)
        logger.info(f"Recomputing measurement locally with {self.image}")
        try:
            result = subprocess.run(
                command, capture_output=True, text=True, timeout=self.timeout
            )
        except subprocess.TimeoutExpired:
            logger.error(f"Measurement tool timed out after {self.timeout}s")
            return VerificationResult.failure(
                FailureKind.UPSTREAM_UNAVAILABLE, "Measurement tool timed out"
            )
        except OSError as e:
            logger.error(f"Failed to run measurement tool: {e}")
            return VerificationResult.failure(FailureKind.INTERNAL_ERROR, str(e))

        if result.returncode != 0:
            return VerificationResult.failure(
                FailureKind.VERIFICATION_FAILED,
                f"Measurement tool failed: {result.stderr.strip()}",
                details={"returncode": result.returncode},
            )

        computed = result.stdout.strip().lower()
        details = {"computed_measurement": computed, "expected_measurement": expected}
        if computed != expected:
            return VerificationResult.failure(
                FailureKind.VERIFICATION_FAILED,
                "Measurement hash mismatch",
                details=details,
            )
        return VerificationResult(
            success=True, message="Measurement hash verified", details=details
        )
