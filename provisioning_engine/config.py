#provisioning_engine\config.py

from dataclasses import dataclass
from functools import lru_cache
from pathlib import Path
from typing import List, Optional

from pydantic import AliasChoices, Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class ProvisionerSettings(BaseSettings):
    """Provisioner configuration from environment variables / .env."""

    model_config = SettingsConfigDict(
        env_prefix="PROVISIONER_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
        populate_by_name=True,
    )

    # Project layout
    project_dir: Path = Path(".")
    domain: Optional[str] = None
    compose_command: List[str] = ["docker", "compose"]

    # Images
    proxy_image: str = "nginx:latest"
    mysql_image: str = "mysql:8"
    wordpress_image: str = "wordpress:latest"
    php_image: str = "php:8.2-fpm"
    automation_image: str = "n8nio/n8n"
    redis_image: str = "redis:alpine"
    certbot_image: str = "certbot/certbot"

    # Database
    mysql_root_password: str = "rootpassword"
    mysql_database: str = "wordpress"
    mysql_user: str = "wpuser"
    mysql_password: str = "wppassword"

    # Certificates
    contact_email: Optional[str] = None
    certbot_staging: bool = False
    renew_before_days: int = 30

    # Notifications (same variable names as the renewal script's .env)
    telegram_bot_token: Optional[str] = Field(
        default=None,
        validation_alias=AliasChoices("telegram_bot_token", "provisioner_telegram_bot_token"),
    )
    telegram_chat_id: Optional[str] = Field(
        default=None,
        validation_alias=AliasChoices("telegram_chat_id", "provisioner_telegram_chat_id"),
    )
    telegram_api_url: str = "https://api.telegram.org"

    # Scheduling
    renewal_hour: int = Field(default=3, ge=0, le=23)
    renewal_log: Path = Path("/var/log/ssl_renew.log")

    # Timeouts (seconds)
    command_timeout: float = 120.0
    certbot_timeout: float = 300.0
    http_timeout: float = 5.0
    tls_timeout: float = 5.0

    # Readiness backoff
    readiness_attempts: int = 6
    readiness_initial_delay: float = 1.0
    readiness_backoff_factor: float = 2.0
    readiness_max_delay: float = 15.0
    challenge_port: int = 80
    readiness_host: str = "127.0.0.1"

    @property
    def nginx_dir(self) -> Path:
        return self.project_dir / "nginx"

    @property
    def conf_dir(self) -> Path:
        return self.nginx_dir / "conf.d"

    @property
    def certs_dir(self) -> Path:
        return self.nginx_dir / "certs"

    @property
    def webroot_dir(self) -> Path:
        return self.nginx_dir / "www"

    @property
    def automation_data_dir(self) -> Path:
        return self.project_dir / "n8n_data"

    @property
    def compose_file(self) -> Path:
        return self.project_dir / "docker-compose.yml"

    @property
    def renewal_script(self) -> Path:
        return self.project_dir / "ssl_renew.sh"

    @property
    def healthcheck_script(self) -> Path:
        return self.project_dir / "postcheck.sh"

    @property
    def domain_file(self) -> Path:
        return self.project_dir / ".provisioner-domain"

    def contact_email_for(self, primary: str) -> str:
        return self.contact_email or f"admin@{primary}"

    def secrets(self) -> List[str]:
        """Values that must never show up in logs."""
        values = [
            self.mysql_root_password,
            self.mysql_password,
            self.telegram_bot_token,
        ]
        return [v for v in values if v]


@dataclass(frozen=True)
class RunnerConfig:
    """Per-run tunables derived from settings."""

    command_timeout: float = 120.0
    certbot_timeout: float = 300.0
    readiness_attempts: int = 6
    readiness_initial_delay: float = 1.0
    readiness_backoff_factor: float = 2.0
    readiness_max_delay: float = 15.0

    @classmethod
    def from_settings(cls, settings: ProvisionerSettings) -> "RunnerConfig":
        return cls(
            command_timeout=settings.command_timeout,
            certbot_timeout=settings.certbot_timeout,
            readiness_attempts=settings.readiness_attempts,
            readiness_initial_delay=settings.readiness_initial_delay,
            readiness_backoff_factor=settings.readiness_backoff_factor,
            readiness_max_delay=settings.readiness_max_delay,
        )


@lru_cache
def get_settings() -> ProvisionerSettings:
    return ProvisionerSettings()
