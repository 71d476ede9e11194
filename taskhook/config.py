# taskhook/config.py
from pydantic_settings import BaseSettings, SettingsConfigDict
from typing import Literal


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore"
    )

    # Application
    app_env: Literal["dev", "staging", "prod"] = "dev"
    log_level: str = "INFO"
    log_json: bool | None = None  # None = JSON in prod, console elsewhere

    # HTTP transport
    host: str = "0.0.0.0"
    port: int = 8080
    health_path: str = "/_health"
    enable_request_logging: bool = True

    # GitHub webhooks
    # Empty secret is allowed when the instance only runs cron tasks.
    webhook_secret: str = ""
    webhook_path: str = "/"

    # Cron
    default_timezone: str = "UTC"

    # Task modules imported by `python -m taskhook`.
    # Comma-separated dotted paths, each exposing register(runtime).
    task_modules: str = ""

    @property
    def is_production(self) -> bool:
        return self.app_env == "prod"

    @property
    def is_staging(self) -> bool:
        return self.app_env == "staging"

    @property
    def use_json_logs(self) -> bool:
        if self.log_json is None:
            return self.is_production
        return self.log_json


def warn_on_risky_config(s: "Settings") -> list[str]:
    warnings: list[str] = []

    if not s.webhook_secret:
        warnings.append(
            "webhook_secret is empty: every signed webhook delivery will be rejected "
            "unless it was signed with an empty key."
        )

    if s.is_production and s.log_level.upper() == "DEBUG":
        warnings.append("prod: log_level=DEBUG (handler payloads may end up in logs).")

    if not s.webhook_path.startswith("/"):
        warnings.append(f"webhook_path={s.webhook_path!r} does not start with '/' and will never match.")

    return warnings


settings = Settings()
