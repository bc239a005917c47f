"""Configuration settings for KubeForge."""

from enum import Enum

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class DeleteJobPolicy(str, Enum):
    """Retention policy for finished scanner jobs."""

    ALL = "All"  # Delete every finished job
    SUCCESSFUL = "Successful"  # Delete only jobs whose scan succeeded
    NEVER = "Never"  # Keep all jobs for inspection


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Application
    app_name: str = "KubeForge"
    port: int = 8080  # Control API
    log_level: str = "INFO"
    timezone: str = "UTC"

    # Result listener (scanner jobs post results here)
    result_listen_host: str = "0.0.0.0"
    result_listen_port: int = 8081
    result_service_host: str = "kubeforge.kubeforge"  # DNS name reachable from scanner pods

    # Kubernetes
    kubeconfig: str | None = None  # Optional: explicit kubeconfig path, otherwise in-cluster
    target_namespace: str = ""  # Empty means all namespaces
    ignored_namespaces: list[str] = []

    # Scanning
    max_parallelism: int = Field(default=10, ge=1)  # Number of scanner jobs running at once
    scan_timeout: float = Field(default=600, gt=0)  # Seconds to wait for a single image result
    severity_threshold: str = "MEDIUM"  # Lowest severity reported by the scanner
    delete_job_policy: DeleteJobPolicy = DeleteJobPolicy.SUCCESSFUL

    # Scanner job
    scanner_image: str = "ghcr.io/kubeforge/klar-scanner:latest"
    scanner_namespace: str = "kubeforge"  # Used when no image pull secret pins the namespace


settings = Settings()
