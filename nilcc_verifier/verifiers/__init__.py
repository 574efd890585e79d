from .base import Verifier
from .nilcc import NilccVerifierClient
from .local import LocalMeasurementVerifier

# NilccVerifierClient: network verifier (verify / verify-amd endpoints)
# LocalMeasurementVerifier: offline fallback running the measurement tool in docker

__all__ = [
    "Verifier",
    "NilccVerifierClient",
    "LocalMeasurementVerifier",
]
