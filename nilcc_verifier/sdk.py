import logging
from enum import Enum
from typing import List, NamedTuple, Optional, Union
from pydantic import BaseModel
from urllib.parse import quote
from .badge import embed_snippet
from .config import PRODUCTION_WORKLOADS_HOST
from .errors import NilccApiError, ReportError
from .hashing import docker_compose_hash
from .providers import NilccApiClient, ReportProvider, WorkloadReportProvider
from .providers.workload import report_url, report_url_for_workload
from .types import (
    Artifact,
    AttestationVerificationRequest,
    FailureKind,
    MeasurementVerificationRequest,
    VerificationMode,
    VerificationRequest,
    VerificationResult,
    Workload,
    WorkloadReport,
    WorkloadTier,
)
from .verifiers import Verifier

logger = logging.getLogger(__name__)


class SessionState(str, Enum):
    IDLE = "idle"
    FETCHING_REPORT = "fetching_report"
    READY = "ready"
    SUBMITTING = "submitting"
    RESULT = "result"
    ERROR = "error"


class ManualInputs(BaseModel):
    """Values typed in by the operator when not using a fetched report."""

    report: str = ""
    measurement_hash: str = ""
    docker_compose_hash: str = ""
    nilcc_version: str = ""
    vcpus: str = ""
    vm_type: str = ""


class BadgeInstructions(NamedTuple):
    report_url: Optional[str]
    preview_url: str
    embed_code: str


class VerificationSession:
    """
    One operator's verification flow:

        idle -> fetching_report -> ready -> submitting -> result

    ``error`` is entered when the report cannot be fetched. Every call to
    ``select_workload``/``submit``/``cancel`` starts a new generation; a
    coroutine that finishes for an older generation drops its result.
    """

    def __init__(
        self,
        verifier: Verifier,
        report_provider: Optional[ReportProvider] = None,
        api_client: Optional[NilccApiClient] = None,
        workloads_host: str = PRODUCTION_WORKLOADS_HOST,
    ):
        self.verifier = verifier
        self.report_provider = report_provider or WorkloadReportProvider()
        self.api_client = api_client
        self.workloads_host = workloads_host

        self.state = SessionState.IDLE
        self.workloads: List[Workload] = []
        self.tiers: List[WorkloadTier] = []
        self.artifacts: List[Artifact] = []
        self.selected: Optional[Workload] = None
        self.report: Optional[WorkloadReport] = None
        self.report_error: Optional[str] = None
        self.docker_compose_hash = ""

        self.use_fetched_report = True
        self.manual = ManualInputs()
        self.override_measurement = False

        self.result: Optional[VerificationResult] = None
        self.verified_from: Optional[VerificationMode] = None
        self._generation = 0

    def _next_generation(self) -> int:
        self._generation += 1
        return self._generation

    def _is_current(self, generation: int) -> bool:
        return generation == self._generation

    def load_workloads(self) -> List[Workload]:
        if not self.api_client:
            self.workloads = []
            return self.workloads
        try:
            self.workloads = self.api_client.list_workloads()
        except NilccApiError as e:
            logger.warning(f"Failed to list workloads: {e.message}")
            self.workloads = []
        return self.workloads

    def load_tiers(self) -> List[WorkloadTier]:
        """Resource tiers for the manual inputs; the first one is preselected."""
        self.tiers = []
        if self.api_client:
            try:
                self.tiers = self.api_client.list_workload_tiers()
            except NilccApiError as e:
                logger.warning(f"Failed to list workload tiers: {e.message}")
        if self.tiers:
            self.select_tier(self.tiers[0].tier_id)
        return self.tiers

    def load_artifacts(self) -> List[Artifact]:
        """Artifact versions for the manual inputs; the first one is preselected."""
        self.artifacts = []
        if self.api_client:
            try:
                self.artifacts = self.api_client.list_artifacts()
            except NilccApiError as e:
                logger.warning(f"Failed to list artifacts: {e.message}")
        if self.artifacts:
            self.select_artifact(self.artifacts[0].version)
        return self.artifacts

    def select_tier(self, tier_id: str) -> WorkloadTier:
        for tier in self.tiers:
            if tier.tier_id == tier_id:
                self.manual.vcpus = str(tier.cpus)
                return tier
        raise ValueError(f"Unknown workload tier: {tier_id}")

    def select_artifact(self, version: str) -> Artifact:
        for artifact in self.artifacts:
            if artifact.version == version:
                self.manual.nilcc_version = artifact.version
                return artifact
        raise ValueError(f"Unknown artifact version: {version}")

    def find_workload(self, workload_id: str) -> Optional[Workload]:
        for workload in self.workloads:
            if workload.workload_id == workload_id:
                return workload
        if self.api_client:
            try:
                return self.api_client.get_workload(workload_id)
            except NilccApiError as e:
                logger.warning(f"Failed to get workload {workload_id}: {e.message}")
        return None

    async def select_workload(self, workload: Union[Workload, str]) -> SessionState:
        if isinstance(workload, str):
            found = self.find_workload(workload)
            if found is None:
                self._next_generation()
                self.selected = None
                self.report = None
                self.report_error = f"Unknown workload: {workload}"
                self.state = SessionState.ERROR
                return self.state
            workload = found

        generation = self._next_generation()
        self.selected = workload
        self.report = None
        self.report_error = None
        self.result = None
        self.verified_from = None
        self.docker_compose_hash = (
            docker_compose_hash(workload.docker_compose)
            if workload.docker_compose
            else ""
        )
        self.state = SessionState.FETCHING_REPORT

        try:
            report = await self.report_provider.fetch_report(workload.domain or "")
        except ReportError as e:
            if self._is_current(generation):
                self.report_error = str(e)
                self.state = SessionState.ERROR
            return self.state
        except Exception as e:
            logger.exception("Unexpected error fetching workload report")
            if self._is_current(generation):
                self.report_error = f"Failed to fetch report: {e}"
                self.state = SessionState.ERROR
            return self.state

        if self._is_current(generation):
            self.report = report
            self.state = SessionState.READY
        return self.state

    def cancel(self) -> None:
        """Discard whatever is in flight; the view that started it is gone."""
        self._next_generation()
        if self.state in (SessionState.FETCHING_REPORT, SessionState.SUBMITTING):
            self.state = SessionState.IDLE

    @property
    def fetched_measurement(self) -> Optional[str]:
        return self.report.measurement if self.report else None

    @property
    def expected_measurement(self) -> Optional[str]:
        """
        Measurement shown to the operator for visual comparison. The manual
        override only changes this value, never what ``submit`` sends.
        """
        if self.override_measurement or not self.use_fetched_report:
            return self.manual.measurement_hash.strip() or None
        return self.fetched_measurement

    @property
    def report_url(self) -> Optional[str]:
        if self.selected is None:
            return None
        if self.selected.domain:
            return report_url(self.selected.domain)
        return report_url_for_workload(self.selected.workload_id, self.workloads_host)

    def build_request(self, mode: VerificationMode) -> VerificationRequest:
        if self.use_fetched_report:
            report = self.report
            raw_report = report.raw_report if report else ""
            if mode == VerificationMode.ATTESTATION:
                return AttestationVerificationRequest(report=raw_report)
            return MeasurementVerificationRequest(
                report=raw_report,
                docker_compose_hash=self.docker_compose_hash,
                nilcc_version=report.nilcc_version if report else "",
                vcpus=report.cpu_count if report else None,
                vm_type=report.vm_type if report else "",
                expected_measurement=self.fetched_measurement,
            )

        manual = self.manual
        if mode == VerificationMode.ATTESTATION:
            return AttestationVerificationRequest(report=manual.report)
        return MeasurementVerificationRequest(
            report=manual.report,
            docker_compose_hash=manual.docker_compose_hash,
            nilcc_version=manual.nilcc_version,
            vcpus=manual.vcpus,
            vm_type=manual.vm_type,
            expected_measurement=manual.measurement_hash or None,
        )

    async def submit(
        self, mode: VerificationMode = VerificationMode.ATTESTATION_MEASUREMENT
    ) -> Optional[VerificationResult]:
        """Run one verification attempt; returns None if it was superseded."""
        if self.state == SessionState.FETCHING_REPORT:
            # Leaves the pending fetch and the session state untouched
            return VerificationResult.failure(
                FailureKind.INVALID_REQUEST, "Workload report is still loading"
            )

        generation = self._next_generation()
        request = self.build_request(mode)

        gate = ["report"]
        if mode == VerificationMode.ATTESTATION_MEASUREMENT:
            gate.append("docker_compose_hash")
        missing = [f for f in gate if not (getattr(request, f) or "").strip()]
        if missing:
            self._finish(
                mode,
                VerificationResult.failure(
                    FailureKind.INVALID_REQUEST,
                    f"Missing {', '.join(missing)}",
                    details={"missing": missing},
                ),
            )
            return self.result

        self.state = SessionState.SUBMITTING
        self.result = None
        try:
            result = await self.verifier.verify(request)
        except Exception as e:
            logger.exception("Verifier raised during submission")
            result = VerificationResult.failure(FailureKind.INTERNAL_ERROR, str(e))

        if not self._is_current(generation):
            logger.info("Discarding result of a superseded verification attempt")
            return None
        self._finish(mode, result)
        return result

    def _finish(self, mode: VerificationMode, result: VerificationResult) -> None:
        self.result = result
        self.verified_from = mode
        self.state = SessionState.RESULT

    @property
    def verified(self) -> Optional[bool]:
        if self.state != SessionState.RESULT or self.result is None:
            return None
        return self.result.success

    def badge_instructions(
        self, base_url: str, verification_url: str
    ) -> Optional[BadgeInstructions]:
        """Embed instructions, offered only after a successful measurement check."""
        if not (
            self.verified
            and self.verified_from == VerificationMode.ATTESTATION_MEASUREMENT
            and verification_url
        ):
            return None
        live_url = self.report_url
        preview = f"{base_url.rstrip('/')}/badge?verificationUrl={quote(verification_url, safe='')}"
        if live_url:
            preview += f"&reportUrl={quote(live_url, safe='')}"
        return BadgeInstructions(
            report_url=live_url,
            preview_url=preview,
            embed_code=embed_snippet(base_url, verification_url, live_url),
        )
