from __future__ import annotations

from functools import lru_cache
from pathlib import Path

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """
    App settings.

    Notes:
    - Defaults are local and deterministic so the service boots without setup.
    - Every field can be overridden with an `APP_` prefixed env var.
    - `month_close_enabled` is only the fallback; the `MONTH_CLOSE_ENABLED`
      row in `system_config` wins when present.
    """

    model_config = SettingsConfigDict(env_prefix="APP_", extra="ignore")

    db_url: str | None = None
    security_config_path: str | None = None
    log_level: str = "INFO"

    jwt_secret: str = "change-me-in-production"
    jwt_issuer: str = "coreops"
    jwt_audience: str = "coreops-web"

    capability_secret: str | None = None
    export_token_ttl_seconds: int = 600
    export_storage_root: str | None = None

    month_close_enabled: bool = False

    def resolved_db_url(self) -> str:
        if self.db_url:
            return self.db_url

        repo_root = Path(__file__).resolve().parents[1]
        db_path = repo_root / "coreops.db"
        return f"sqlite:///{db_path}"

    def resolved_security_config_path(self) -> Path:
        if self.security_config_path:
            return Path(self.security_config_path)

        repo_root = Path(__file__).resolve().parents[1]
        return repo_root / "config" / "security_config.yaml"

    def resolved_capability_secret(self) -> str:
        # Falls back to the identity token secret, like the download links always have.
        return self.capability_secret or self.jwt_secret

    def resolved_export_storage_root(self) -> Path:
        if self.export_storage_root:
            return Path(self.export_storage_root)

        repo_root = Path(__file__).resolve().parents[1]
        return repo_root / "storage" / "audit_exports"


@lru_cache
def get_settings() -> Settings:
    return Settings()
