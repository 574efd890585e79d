import hashlib


def docker_compose_hash(content: str) -> str:
    """
    SHA-256 of the exact UTF-8 bytes of a Docker Compose document, as lowercase hex.

    The raw string is hashed as-is (no whitespace or line-ending normalization),
    so the value matches what ``sha256sum docker-compose.yml`` prints in CI.
    """
    return hashlib.sha256(content.encode("utf-8")).hexdigest()
