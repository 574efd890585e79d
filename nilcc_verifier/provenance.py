"""
Provenance of published measurement records.

A measurement record is a small JSON file kept in a public GitHub repository
and rewritten by a CI workflow every time the workload is re-measured::

    {"0.3.6": {"measurement_hash": "ab12...", "allowedDomains": ["example.com"]}}

Anyone can fork and edit a public file, so its contents are only trusted once
the most recent commit touching that path on that branch is shown to come
from the trusted automation identity.
"""

import json
import logging
from typing import Any, Dict, List, Optional, Tuple
from urllib.parse import unquote, urlparse
import requests
from packaging.version import InvalidVersion, Version
from .config import DEFAULT_TIMEOUT, TRUSTED_AUTOMATION_IDENTITY
from .errors import RecordError
from .github import GitHubClient
from .types import ProvenanceEntry, RecordLocation

logger = logging.getLogger(__name__)

GITHUB_HOST = "github.com"
RAW_HOST = "raw.githubusercontent.com"


def parse_record_url(url: str) -> Optional[RecordLocation]:
    """
    Extract (owner, repo, branch, filepath) from a GitHub blob URL or its
    raw.githubusercontent.com equivalent.

    - https://github.com/{owner}/{repo}/blob/{branch}/{path}
    - https://raw.githubusercontent.com/{owner}/{repo}/{branch}/{path}
    - https://raw.githubusercontent.com/{owner}/{repo}/refs/heads/{branch}/{path}

    Returns None for anything else.
    """
    if not url or not isinstance(url, str):
        return None
    try:
        parsed = urlparse(url.strip())
    except ValueError:
        return None
    if parsed.scheme not in ("http", "https"):
        return None

    host = (parsed.hostname or "").lower()
    segments = [s for s in parsed.path.split("/") if s]

    if host == GITHUB_HOST:
        if len(segments) < 5 or segments[2] != "blob":
            return None
        owner, repo, _, branch = segments[:4]
        path_segments = segments[4:]
    elif host == RAW_HOST:
        if segments[2:4] == ["refs", "heads"]:
            if len(segments) < 6:
                return None
            owner, repo, branch = segments[0], segments[1], segments[4]
            path_segments = segments[5:]
        elif len(segments) >= 4:
            owner, repo, branch = segments[:3]
            path_segments = segments[3:]
        else:
            return None
    else:
        return None

    # The checked path must be the fetched path: no traversal or encoded separators
    for segment in [owner, repo, branch, *path_segments]:
        decoded = unquote(segment)
        if not decoded.strip() or decoded in (".", "..") or "/" in decoded:
            return None

    return RecordLocation(owner, repo, branch, "/".join(path_segments))


def raw_url(location: RecordLocation) -> str:
    return (
        f"https://{RAW_HOST}/{location.owner}/{location.repo}/"
        f"{location.branch}/{location.filepath}"
    )


def blob_url(location: RecordLocation) -> str:
    return (
        f"https://{GITHUB_HOST}/{location.owner}/{location.repo}/blob/"
        f"{location.branch}/{location.filepath}"
    )


class ProvenanceChecker:
    def __init__(
        self,
        token: Optional[str],
        trusted_identity: str = TRUSTED_AUTOMATION_IDENTITY,
        timeout: float = DEFAULT_TIMEOUT,
        client: Optional[GitHubClient] = None,
    ):
        self.token = token
        self.trusted_identity = trusted_identity
        self.client = client or GitHubClient(token, timeout=timeout)

    def is_authentic(self, owner: str, repo: str, branch: str, filepath: str) -> bool:
        """
        True only if the latest commit to ``filepath`` on ``branch`` was made
        by the trusted automation identity. Every error path returns False.
        """
        if not self.token:
            logger.warning("GITHUB_TOKEN not set, provenance check fails closed")
            return False

        try:
            commits = self.client.list_commits(owner, repo, filepath, branch)
            if not commits:
                logger.warning(f"No commits found for {owner}/{repo}:{filepath}@{branch}")
                return False

            latest = commits[0]
            author_name = ((latest.get("commit") or {}).get("author") or {}).get("name")
            committer_login = (latest.get("committer") or {}).get("login")
            authentic = self.trusted_identity in (author_name, committer_login)
            if not authentic:
                logger.warning(
                    f"Latest commit to {owner}/{repo}:{filepath} is by "
                    f"{author_name or committer_login!r}, not {self.trusted_identity}"
                )
            return authentic
        except Exception as e:
            logger.error(f"Provenance check failed for {owner}/{repo}:{filepath}: {e}")
            return False

    def check(self, location: RecordLocation) -> bool:
        return self.is_authentic(*location)


def select_version(entries: Dict[str, Any]) -> Optional[str]:
    """
    Pick the record version to trust: the highest semantic version among the
    keys, or the first key when none of them parses as a version.
    """
    if not entries:
        return None

    versioned: List[Tuple[Version, str]] = []
    for key in entries:
        try:
            versioned.append((Version(key), key))
        except InvalidVersion:
            continue
    if versioned:
        return max(versioned)[1]
    return next(iter(entries))


def parse_record(data: Any) -> Tuple[str, ProvenanceEntry]:
    if not isinstance(data, dict) or not data:
        raise RecordError("No version entries in verification file")

    version = select_version(data)
    entry = data[version]
    if not isinstance(entry, dict) or not entry.get("measurement_hash"):
        raise RecordError("No measurement_hash in verification file")

    allowed = entry.get("allowedDomains") or []
    if not isinstance(allowed, list):
        allowed = []
    return version, ProvenanceEntry(
        measurement_hash=str(entry["measurement_hash"]),
        allowedDomains=[str(d) for d in allowed if d],
    )


def fetch_record(
    location: RecordLocation, timeout: float = DEFAULT_TIMEOUT
) -> Tuple[str, ProvenanceEntry]:
    """Fetch and validate the record at ``location``; raises ``RecordError``."""
    url = raw_url(location)
    logger.info(f"Fetching verification record from {url}")
    try:
        response = requests.get(url, timeout=timeout)
    except requests.RequestException as e:
        raise RecordError("Failed to fetch verification file") from e
    if not response.ok:
        raise RecordError("Failed to fetch verification file")

    try:
        data = json.loads(response.text)
    except ValueError as e:
        raise RecordError("Verification file is not valid JSON") from e
    return parse_record(data)
