from pydantic import SecretStr
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore")

    app_name: str = "VPS Dashboard API"
    app_version: str = "0.1.0"
    env: str = "development"
    debug: bool = False

    database_url: str = "sqlite+aiosqlite:///./vps_dashboard.db"

    # Proxmox VE connection settings (used by ProxmoxClient)
    proxmox_url: str = "https://localhost:8006/api2/json"
    proxmox_token: SecretStr = SecretStr("")
    proxmox_verify_tls: bool = True
    proxmox_request_timeout_s: float = 10.0
    proxmox_task_poll_interval_s: float = 1.0
    proxmox_task_timeout_s: float = 30.0

    use_mock_hypervisor: bool = True
    # Simulated duration of every fake hypervisor operation
    mock_hypervisor_latency_s: float = 2.0

    # Sizes a create request may pick instead of its product's defaults
    cpu_core_options: list[int] = [1, 2, 4, 8, 16]
    ram_gb_options: list[int] = [1, 2, 4, 8, 16, 32, 64]

    # Background job execution
    worker_concurrency: int = 4
    worker_shutdown_timeout_s: float = 30.0
    job_attempt_timeout_s: float = 60.0
    job_deadline_s: float = 300.0

    # Retry policy for transient hypervisor failures
    retry_max_attempts: int = 5
    retry_backoff_base_s: float = 1.0
    retry_backoff_max_s: float = 30.0

    # Stale transient-status detection
    stale_scan_interval_s: float = 60.0
    stale_grace_s: float = 60.0


settings = Settings()
