import logging
import os
from typing import Optional
import yaml
from dotenv import load_dotenv
from pydantic import BaseModel

load_dotenv()

logger = logging.getLogger(__name__)

DEFAULT_VERIFIER_URL = "https://nilcc-verifier.nillion.network"
DEFAULT_API_BASE_URL = "https://nilcc-api.sandbox.app-cluster.sandbox.nilogy.xyz"
PRODUCTION_WORKLOADS_HOST = "workloads.nilcc.nillion.network"
SANDBOX_WORKLOADS_HOST = "workloads.nilcc.sandbox.nillion.network"
TRUSTED_AUTOMATION_IDENTITY = "github-actions[bot]"
DEFAULT_TIMEOUT = 15.0
DEFAULT_SETTINGS_PATH = os.path.join(
    os.path.expanduser("~"), ".config", "nilcc-verifier", "settings.yml"
)


def _env_flag(name: str) -> bool:
    return os.getenv(name, "").strip().lower() in ("1", "true", "yes")


def _env_float(name: str, default: float) -> float:
    value = os.getenv(name)
    if not value:
        return default
    try:
        return float(value)
    except ValueError:
        logger.warning(f"Ignoring invalid {name}={value!r}, using {default}")
        return default


class ServerConfig(BaseModel):
    """Process configuration read once from the environment and passed down."""

    verifier_url: str = DEFAULT_VERIFIER_URL
    api_base_url: str = DEFAULT_API_BASE_URL
    sandbox: bool = False
    github_token: Optional[str] = None
    github_branch: str = "main"
    workflow_owner: str = "NillionNetwork"
    workflow_repo: str = "nilcc-workload-manager"
    workflow_id: str = "verify-measurement.yml"
    trusted_author: str = TRUSTED_AUTOMATION_IDENTITY
    measurement_image: Optional[str] = None
    request_timeout: float = DEFAULT_TIMEOUT

    @classmethod
    def from_env(cls) -> "ServerConfig":
        api_base_url = os.getenv("NILCC_API_BASE") or DEFAULT_API_BASE_URL
        return cls(
            verifier_url=os.getenv("NILCC_VERIFIER_URL") or DEFAULT_VERIFIER_URL,
            api_base_url=api_base_url,
            sandbox="sandbox" in api_base_url or _env_flag("NILCC_SANDBOX"),
            github_token=os.getenv("GITHUB_TOKEN") or None,
            github_branch=os.getenv("GITHUB_BRANCH") or "main",
            workflow_owner=os.getenv("GITHUB_WORKFLOW_OWNER") or "NillionNetwork",
            workflow_repo=os.getenv("GITHUB_WORKFLOW_REPO")
            or "nilcc-workload-manager",
            workflow_id=os.getenv("GITHUB_WORKFLOW_ID") or "verify-measurement.yml",
            trusted_author=os.getenv("NILCC_TRUSTED_AUTHOR")
            or TRUSTED_AUTOMATION_IDENTITY,
            measurement_image=os.getenv("NILCC_MEASUREMENT_IMAGE") or None,
            request_timeout=_env_float("NILCC_REQUEST_TIMEOUT", DEFAULT_TIMEOUT),
        )

    @property
    def workloads_host(self) -> str:
        return SANDBOX_WORKLOADS_HOST if self.sandbox else PRODUCTION_WORKLOADS_HOST


class DashboardSettings(BaseModel):
    api_key: Optional[str] = None
    api_base_url: str = DEFAULT_API_BASE_URL
    theme: str = "system"


class SettingsStore:
    """
    Operator settings persisted to a YAML file.

    ``load()`` hydrates from disk; every ``set_*``/``clear_*`` call mutates the
    in-memory copy and writes it back immediately.
    """

    def __init__(self, path: Optional[str] = None):
        self.path = path or os.getenv("NILCC_SETTINGS_PATH") or DEFAULT_SETTINGS_PATH
        self.settings = DashboardSettings()

    def load(self) -> DashboardSettings:
        if not os.path.exists(self.path):
            self.settings = DashboardSettings()
            return self.settings

        try:
            with open(self.path, "r") as f:
                data = yaml.safe_load(f) or {}
            self.settings = DashboardSettings(**data)
        except Exception as e:
            logger.warning(f"Failed to load settings from {self.path}: {e}")
            self.settings = DashboardSettings()
        return self.settings

    def save(self) -> None:
        directory = os.path.dirname(self.path)
        if directory:
            os.makedirs(directory, exist_ok=True)
        with open(self.path, "w") as f:
            yaml.safe_dump(self.settings.model_dump(), f, sort_keys=False)

    def set_api_key(self, api_key: str) -> DashboardSettings:
        self.settings = self.settings.model_copy(update={"api_key": api_key})
        self.save()
        return self.settings

    def set_api_base_url(self, url: str) -> DashboardSettings:
        self.settings = self.settings.model_copy(update={"api_base_url": url})
        self.save()
        return self.settings

    def set_theme(self, theme: str) -> DashboardSettings:
        if theme not in ("light", "dark", "system"):
            raise ValueError(f"Unknown theme: {theme}")
        self.settings = self.settings.model_copy(update={"theme": theme})
        self.save()
        return self.settings

    def clear_api_key(self) -> DashboardSettings:
        self.settings = self.settings.model_copy(update={"api_key": None})
        self.save()
        return self.settings

    def client(self, timeout: float = DEFAULT_TIMEOUT):
        """Build a nilCC API client from the current settings, or None without a key."""
        from .providers.nilcc import NilccApiClient

        if not self.settings.api_key:
            return None
        return NilccApiClient(
            self.settings.api_key, self.settings.api_base_url, timeout=timeout
        )
