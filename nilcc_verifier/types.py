import time
from enum import Enum
from typing import (
    Annotated,
    Any,
    ClassVar,
    Dict,
    List,
    Literal,
    NamedTuple,
    Optional,
    Tuple,
    Union,
)
from pydantic import BaseModel, Field


class VerificationMode(str, Enum):
    ATTESTATION_MEASUREMENT = "attestation-measurement"
    ATTESTATION = "attestation"


class FailureKind(str, Enum):
    INVALID_REQUEST = "invalid_request"
    VERIFICATION_FAILED = "verification_failed"
    UPSTREAM_UNAVAILABLE = "upstream_unavailable"
    INTERNAL_ERROR = "internal_error"


class LiveStatus(str, Enum):
    MATCHES = "matches"
    CHANGED = "changed"
    UNAVAILABLE = "unavailable"


class WorkloadReport(BaseModel):
    """Parsed ``/nilcc/api/v2/report`` payload of a running workload."""

    raw_report: str
    measurement: Optional[str] = None
    nilcc_version: str = ""
    cpu_count: int = 0
    vm_type: str = ""
    raw: Optional[Dict[str, Any]] = None


class Workload(BaseModel):
    workload_id: str = Field(alias="workloadId")
    name: str = ""
    domain: Optional[str] = None
    docker_compose: Optional[str] = Field(default=None, alias="dockerCompose")
    cpus: Optional[int] = None
    artifacts_version: Optional[str] = Field(default=None, alias="artifactsVersion")
    status: Optional[str] = None

    model_config = {"populate_by_name": True}


class WorkloadTier(BaseModel):
    tier_id: str = Field(alias="tierId")
    name: str = ""
    cpus: int = 0
    gpus: int = 0
    memory_mb: int = Field(default=0, alias="memoryMb")
    disk_gb: int = Field(default=0, alias="diskGb")

    model_config = {"populate_by_name": True}


class Artifact(BaseModel):
    version: str
    built_at: Optional[str] = Field(default=None, alias="builtAt")

    model_config = {"populate_by_name": True}


class MeasurementVerificationRequest(BaseModel):
    """Attestation report plus the launch parameters the measurement is rebuilt from."""

    mode: Literal["attestation-measurement"] = "attestation-measurement"
    report: Optional[str] = None
    docker_compose_hash: Optional[str] = None
    nilcc_version: Optional[str] = None
    vcpus: Optional[Union[int, str]] = None
    vm_type: Optional[str] = None
    # Only consumed by the local verifier; never sent over the network.
    expected_measurement: Optional[str] = None

    endpoint: ClassVar[str] = "/v1/attestations/verify"
    required_fields: ClassVar[Tuple[str, ...]] = (
        "report",
        "docker_compose_hash",
        "nilcc_version",
        "vcpus",
        "vm_type",
    )

    def missing_fields(self) -> List[str]:
        missing = []
        for name in self.required_fields:
            value = getattr(self, name)
            # vcpus=0 is a real value: compare its string form, not its truthiness
            if value is None or not str(value).strip():
                missing.append(name)
        return missing

    def payload(self) -> Dict[str, Any]:
        return {
            "report": self.report.strip(),
            "docker_compose_hash": self.docker_compose_hash.strip(),
            "nilcc_version": self.nilcc_version.strip(),
            "vcpus": _coerce_vcpus(self.vcpus),
            "vm_type": self.vm_type.strip(),
        }


class AttestationVerificationRequest(BaseModel):
    """Attestation report only; checks the AMD SEV-SNP signature chain."""

    mode: Literal["attestation"] = "attestation"
    report: Optional[str] = None

    endpoint: ClassVar[str] = "/v1/attestations/verify-amd"
    required_fields: ClassVar[Tuple[str, ...]] = ("report",)

    def missing_fields(self) -> List[str]:
        if self.report is None or not self.report.strip():
            return ["report"]
        return []

    def payload(self) -> Dict[str, Any]:
        return {"report": self.report.strip()}


VerificationRequest = Annotated[
    Union[MeasurementVerificationRequest, AttestationVerificationRequest],
    Field(discriminator="mode"),
]


class VerificationResult(BaseModel):
    success: bool
    timestamp: float = Field(default_factory=time.time)
    message: Optional[str] = None
    details: Optional[Dict[str, Any]] = None
    error: Optional[FailureKind] = None
    status_code: Optional[int] = None

    @classmethod
    def failure(
        cls,
        kind: FailureKind,
        message: str,
        details: Optional[Dict[str, Any]] = None,
        status_code: Optional[int] = None,
    ) -> "VerificationResult":
        return cls(
            success=False,
            error=kind,
            message=message,
            details=details,
            status_code=status_code,
        )


class ProvenanceEntry(BaseModel):
    measurement_hash: str
    allowed_domains: List[str] = Field(default_factory=list, alias="allowedDomains")

    model_config = {"populate_by_name": True}


class RecordLocation(NamedTuple):
    owner: str
    repo: str
    branch: str
    filepath: str


def _coerce_vcpus(value: Union[int, str]) -> Union[int, str]:
    if isinstance(value, int):
        return value
    text = str(value).strip()
    return int(text) if text.isdigit() else text
