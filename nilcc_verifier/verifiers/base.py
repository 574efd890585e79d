from ..types import VerificationRequest, VerificationResult


class Verifier:
    async def verify(self, request: VerificationRequest) -> VerificationResult:
        raise NotImplementedError
