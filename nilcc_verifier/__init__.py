from .types import (
    VerificationMode,
    FailureKind,
    LiveStatus,
    WorkloadReport,
    MeasurementVerificationRequest,
    AttestationVerificationRequest,
    VerificationResult,
    RecordLocation,
)
from .hashing import docker_compose_hash
from .sdk import VerificationSession, SessionState
from .verifiers import NilccVerifierClient, LocalMeasurementVerifier
from .provenance import ProvenanceChecker, parse_record_url
from .badge import BadgeRenderer

__all__ = [
    "VerificationMode",
    "FailureKind",
    "LiveStatus",
    "WorkloadReport",
    "MeasurementVerificationRequest",
    "AttestationVerificationRequest",
    "VerificationResult",
    "RecordLocation",
    "docker_compose_hash",
    "VerificationSession",
    "SessionState",
    "NilccVerifierClient",
    "LocalMeasurementVerifier",
    "ProvenanceChecker",
    "parse_record_url",
    "BadgeRenderer",
]
